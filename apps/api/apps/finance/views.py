"""
Finance views: admin income analytics and per-doctor finance pages.
"""
import uuid

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.models import RoleChoices
from apps.authz.permissions import IsAdmin, IsDoctorOrAdmin, user_roles
from apps.core.exceptions import DomainError, error_response
from apps.doctors.models import Doctor
from apps.doctors.services import get_doctor_for_user
from apps.finance import services


class MonthlyIncomeByDoctorView(APIView):
    """GET /api/v1/finance/doctors/monthly/?year=2025 (Admin)"""
    permission_classes = [IsAdmin]

    def get(self, request):
        year = request.query_params.get('year')
        if year and not (year.isdigit() and 1970 <= int(year) <= 9998):
            return Response({'error': 'year must be a number'}, status=status.HTTP_400_BAD_REQUEST)
        data = services.monthly_income_by_doctor(int(year) if year else None)
        return Response({'ok': True, 'data': data})


class BusinessInsightsView(APIView):
    """
    GET /api/v1/finance/insights/ (Admin)

    Query parameters:
    - granularity: monthly | quarterly | yearly (default monthly)
    - fromYear, fromMonth, toYear, toMonth: month range
    - from, to: ISO date range (not together with the month range)
    - top: leaderboard size (default 5, max 25)
    """
    permission_classes = [IsAdmin]

    def get(self, request):
        try:
            data = services.business_insights(request.query_params)
        except DomainError as exc:
            return error_response(exc)
        return Response({'ok': True, 'data': data})


class DoctorFinanceMixin:
    """
    Resolve the doctor a finance page is about: the calling doctor, or any
    doctor via ?doctor_id= for admins.
    """
    permission_classes = [IsDoctorOrAdmin]

    def get_doctor(self, request):
        doctor_id = request.query_params.get('doctor_id')
        if doctor_id and RoleChoices.ADMIN in user_roles(request):
            try:
                return Doctor.objects.filter(pk=uuid.UUID(doctor_id)).first()
            except ValueError:
                return None
        return get_doctor_for_user(request.user)

    def doctor_not_found(self):
        return Response({'error': 'Doctor profile not found'}, status=status.HTTP_404_NOT_FOUND)


class DoctorOverviewView(DoctorFinanceMixin, APIView):
    """GET /api/v1/finance/doctor/overview/?months=12 (max 60)"""

    def get(self, request):
        doctor = self.get_doctor(request)
        if doctor is None:
            return self.doctor_not_found()
        months = request.query_params.get('months')
        months = int(months) if months and months.isdigit() else 12
        return Response({'ok': True, 'data': services.doctor_overview(doctor, months)})


class DoctorQuickStatsView(DoctorFinanceMixin, APIView):
    """GET /api/v1/finance/doctor/quick/"""

    def get(self, request):
        doctor = self.get_doctor(request)
        if doctor is None:
            return self.doctor_not_found()
        return Response({'ok': True, 'data': services.doctor_quick_stats(doctor)})


class DoctorPaymentsView(DoctorFinanceMixin, APIView):
    """GET /api/v1/finance/doctor/payments/?from=2025-01-01&to=2025-12-31"""

    def get(self, request):
        doctor = self.get_doctor(request)
        if doctor is None:
            return self.doctor_not_found()
        try:
            data = services.doctor_payments(
                doctor,
                date_from=request.query_params.get('from'),
                date_to=request.query_params.get('to'),
            )
        except DomainError as exc:
            return error_response(exc)
        return Response({'ok': True, 'data': data})
