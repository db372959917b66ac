"""
Medical records views.

Reads are open to the record's patient, doctors and admins; writes need a
doctor profile. Every endpoint is audited by the services layer.
"""
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.permissions import IsDoctor, IsDoctorOrAdmin
from apps.core.exceptions import DomainError, error_response
from apps.records import services
from apps.records.serializers import (
    AttachmentUploadSerializer,
    AuditQuerySerializer,
    MedicalRecordListSerializer,
    MedicalRecordSerializer,
    RecordAttachmentSerializer,
    RecordAuditLogSerializer,
    RecordCreateSerializer,
    RecordListQuerySerializer,
    RecordSearchQuerySerializer,
    RecordUpdateSerializer,
    RecordVersionListSerializer,
    RecordVersionSerializer,
)


class ReadOrDoctorWriteMixin:
    """GET for any authenticated user (services check ownership); writes for doctors."""

    def get_permissions(self):
        if self.request.method == 'GET':
            return [IsAuthenticated()]
        return [IsDoctor()]


class PatientRecordsView(ReadOrDoctorWriteMixin, APIView):
    """
    GET /api/v1/patients/{patient_id}/records/?page=&limit=&include_deleted=
    POST /api/v1/patients/{patient_id}/records/
        Body: {title, description?, tags?, content?, change_description?}
    """

    def get(self, request, patient_id):
        query = RecordListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        try:
            records, pagination = services.list_patient_records(
                request.user, patient_id, request=request, **query.validated_data
            )
        except DomainError as exc:
            return error_response(exc)
        return Response({
            'records': MedicalRecordListSerializer(records, many=True).data,
            'pagination': pagination,
        })

    def post(self, request, patient_id):
        serializer = RecordCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            record = services.create_record(request.user, patient_id, request=request, **serializer.validated_data)
        except DomainError as exc:
            return error_response(exc)
        return Response(MedicalRecordSerializer(record).data, status=status.HTTP_201_CREATED)


class RecordDetailView(ReadOrDoctorWriteMixin, APIView):
    """
    GET /api/v1/records/{record_id}/ - record with current version
    PUT/PATCH /api/v1/records/{record_id}/ - update; new version only if content changed
    DELETE /api/v1/records/{record_id}/ - soft delete
    """

    def get(self, request, record_id):
        try:
            record = services.get_record(request.user, record_id, request=request)
        except DomainError as exc:
            return error_response(exc)
        return Response(MedicalRecordSerializer(record).data)

    def put(self, request, record_id):
        serializer = RecordUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            record, version = services.update_record(
                request.user, record_id, serializer.validated_data, request=request
            )
        except DomainError as exc:
            return error_response(exc)
        return Response({
            'record': MedicalRecordSerializer(record).data,
            'new_version_created': version is not None,
        })

    patch = put

    def delete(self, request, record_id):
        try:
            services.delete_record(request.user, record_id, request=request)
        except DomainError as exc:
            return error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)


class RecordRestoreView(APIView):
    """POST /api/v1/records/{record_id}/restore/"""
    permission_classes = [IsDoctor]

    def post(self, request, record_id):
        try:
            record = services.restore_record(request.user, record_id, request=request)
        except DomainError as exc:
            return error_response(exc)
        return Response(MedicalRecordSerializer(record).data)


class RecordVersionsView(APIView):
    """GET /api/v1/records/{record_id}/versions/ - history without content"""
    permission_classes = [IsAuthenticated]

    def get(self, request, record_id):
        try:
            record, versions = services.list_versions(request.user, record_id, request=request)
        except DomainError as exc:
            return error_response(exc)
        data = RecordVersionListSerializer(versions, many=True).data
        return Response({'record_id': record.record_id, 'count': len(data), 'versions': data})


class RecordVersionDetailView(APIView):
    """GET /api/v1/records/{record_id}/versions/{n}/ - content, integrity check and diff"""
    permission_classes = [IsAuthenticated]

    def get(self, request, record_id, version_number):
        try:
            result = services.get_version(request.user, record_id, version_number, request=request)
        except DomainError as exc:
            return error_response(exc)
        return Response({
            'version': RecordVersionSerializer(result['version']).data,
            'integrity_verified': result['integrity_verified'],
            'diff': result['diff'],
        })


class RecordAuditView(APIView):
    """GET /api/v1/records/{record_id}/audit/"""
    permission_classes = [IsDoctor]

    def get(self, request, record_id):
        try:
            record, logs = services.record_audit(record_id)
        except DomainError as exc:
            return error_response(exc)
        return Response({
            'record_id': record.record_id,
            'audit_logs': RecordAuditLogSerializer(logs, many=True).data,
        })


class PatientAuditView(APIView):
    """GET /api/v1/patients/{patient_id}/records/audit/?actions=&start_date=&end_date="""
    permission_classes = [IsDoctor]

    def get(self, request, patient_id):
        query = AuditQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        try:
            patient, logs, summary = services.patient_audit(patient_id, **query.validated_data)
        except DomainError as exc:
            return error_response(exc)
        return Response({
            'patient_id': str(patient.pk),
            'summary': summary,
            'audit_logs': RecordAuditLogSerializer(logs, many=True).data,
        })


class DoctorActivityView(APIView):
    """GET /api/v1/doctors/{doctor_id}/activity/?start_date=&end_date= (that doctor or admin)"""
    permission_classes = [IsDoctorOrAdmin]

    def get(self, request, doctor_id):
        query = AuditQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        try:
            doctor, logs, summary = services.doctor_activity(
                request.user,
                doctor_id,
                start_date=query.validated_data.get('start_date'),
                end_date=query.validated_data.get('end_date'),
            )
        except DomainError as exc:
            return error_response(exc)
        return Response({
            'doctor_id': str(doctor.pk),
            'summary': summary,
            'activity': RecordAuditLogSerializer(logs, many=True).data,
        })


class RecordAttachmentsView(ReadOrDoctorWriteMixin, APIView):
    """
    GET /api/v1/records/{record_id}/attachments/
    POST /api/v1/records/{record_id}/attachments/
        Body: {file_name, content_type, size}
        Returns the attachment and a presigned PUT URL for the upload.
    """

    def get(self, request, record_id):
        try:
            attachments = services.list_attachments(request.user, record_id, request=request)
        except DomainError as exc:
            return error_response(exc)
        return Response(RecordAttachmentSerializer(attachments, many=True).data)

    def post(self, request, record_id):
        serializer = AttachmentUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            attachment, upload_url = services.create_attachment_upload(
                request.user, record_id, request=request, **serializer.validated_data
            )
        except DomainError as exc:
            return error_response(exc)
        return Response(
            {'attachment': RecordAttachmentSerializer(attachment).data, 'upload_url': upload_url},
            status=status.HTTP_201_CREATED
        )


class RecordAttachmentDetailView(ReadOrDoctorWriteMixin, APIView):
    """
    GET /api/v1/records/{record_id}/attachments/{id}/ - presigned download URL
    DELETE /api/v1/records/{record_id}/attachments/{id}/
    """

    def get(self, request, record_id, attachment_id):
        try:
            attachment, url = services.attachment_download_url(
                request.user, record_id, attachment_id, request=request
            )
        except DomainError as exc:
            return error_response(exc)
        return Response({'attachment': RecordAttachmentSerializer(attachment).data, 'download_url': url})

    def delete(self, request, record_id, attachment_id):
        try:
            services.delete_attachment(request.user, record_id, attachment_id, request=request)
        except DomainError as exc:
            return error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)


class RecordBackupView(APIView):
    """POST /api/v1/records/{record_id}/backup/ - back up the current version now"""
    permission_classes = [IsDoctor]

    def post(self, request, record_id):
        try:
            result = services.backup_record(request.user, record_id, request=request)
        except DomainError as exc:
            return error_response(exc)
        return Response({'success': True, **result})


class PatientBackupsView(APIView):
    """GET /api/v1/patients/{patient_id}/records/backups/"""
    permission_classes = [IsDoctorOrAdmin]

    def get(self, request, patient_id):
        try:
            patient, backups = services.list_patient_backups(patient_id)
        except DomainError as exc:
            return error_response(exc)
        return Response({'patient_id': str(patient.pk), 'count': len(backups), 'backups': backups})


class PatientExportView(APIView):
    """POST /api/v1/patients/{patient_id}/records/export/"""
    permission_classes = [IsDoctorOrAdmin]

    def post(self, request, patient_id):
        try:
            result = services.export_patient_history(request.user, patient_id, request=request)
        except DomainError as exc:
            return error_response(exc)
        return Response({'success': True, **result})


class BackupStatsView(APIView):
    """GET /api/v1/records/backup-stats/"""
    permission_classes = [IsDoctorOrAdmin]

    def get(self, request):
        return Response(services.backup_stats())


class RecordSearchView(APIView):
    """GET /api/v1/records/search/?query=&patient_id=&tags=a,b&date_from=&date_to=&page=&limit="""
    permission_classes = [IsDoctor]

    def get(self, request):
        query = RecordSearchQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data
        records, pagination = services.search_records(
            query=params.get('query'),
            patient_id=params.get('patient_id'),
            tags=params.get('tags'),
            date_from=params.get('date_from'),
            date_to=params.get('date_to'),
            page=params['page'],
            limit=params['limit'],
        )
        return Response({
            'records': MedicalRecordListSerializer(records, many=True).data,
            'pagination': pagination,
        })


class RecordsHealthView(APIView):
    """GET /api/v1/records/health/"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(services.health())
