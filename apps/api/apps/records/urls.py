"""
Medical records URLs.
"""
from django.urls import path

from . import views

urlpatterns = [
    path('records/search/', views.RecordSearchView.as_view(), name='record-search'),
    path('records/health/', views.RecordsHealthView.as_view(), name='record-health'),
    path('records/backup-stats/', views.BackupStatsView.as_view(), name='record-backup-stats'),
    path('records/<str:record_id>/', views.RecordDetailView.as_view(), name='record-detail'),
    path('records/<str:record_id>/restore/', views.RecordRestoreView.as_view(), name='record-restore'),
    path('records/<str:record_id>/versions/', views.RecordVersionsView.as_view(), name='record-versions'),
    path(
        'records/<str:record_id>/versions/<int:version_number>/',
        views.RecordVersionDetailView.as_view(),
        name='record-version-detail'
    ),
    path('records/<str:record_id>/audit/', views.RecordAuditView.as_view(), name='record-audit'),
    path('records/<str:record_id>/backup/', views.RecordBackupView.as_view(), name='record-backup'),
    path('records/<str:record_id>/attachments/', views.RecordAttachmentsView.as_view(), name='record-attachments'),
    path(
        'records/<str:record_id>/attachments/<uuid:attachment_id>/',
        views.RecordAttachmentDetailView.as_view(),
        name='record-attachment-detail'
    ),
    path('patients/<uuid:patient_id>/records/', views.PatientRecordsView.as_view(), name='patient-records'),
    path('patients/<uuid:patient_id>/records/audit/', views.PatientAuditView.as_view(), name='patient-records-audit'),
    path(
        'patients/<uuid:patient_id>/records/backups/',
        views.PatientBackupsView.as_view(),
        name='patient-records-backups'
    ),
    path(
        'patients/<uuid:patient_id>/records/export/',
        views.PatientExportView.as_view(),
        name='patient-records-export'
    ),
    path('doctors/<uuid:doctor_id>/activity/', views.DoctorActivityView.as_view(), name='doctor-activity'),
]
