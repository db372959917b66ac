"""
Authz views: registration, current user, role and admin management.
"""
from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework import status, viewsets
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.authz.models import User, RoleChoices, UserAuditActionChoices
from apps.authz.permissions import IsAdmin
from apps.authz.serializers import (
    RegisterSerializer,
    UserSummarySerializer,
    RoleUpdateSerializer,
    AdminGrantSerializer,
)
from apps.authz.services import change_user_role, grant_admin, revoke_admin, log_user_audit
from apps.core.exceptions import DomainError, error_response
from apps.core.observability.events import log_domain_event
from apps.core.utils import enqueue
from apps.notifications.tasks import send_registration_email


class RegisterView(APIView):
    """
    POST /api/v1/auth/register/ - Create an account with role patient|doctor.

    Public endpoint, throttled. Sends the welcome email in the background.
    """
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'registration'

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with transaction.atomic():
            user = serializer.save()
            log_user_audit(
                user, user, UserAuditActionChoices.REGISTER, request,
                roles=sorted(user.role_names),
            )

        log_domain_event(
            'user_registered',
            entity_type='User',
            entity_id=str(user.pk),
            role=user.primary_role,
        )
        enqueue(send_registration_email, str(user.pk))

        return Response(UserSummarySerializer(user).data, status=status.HTTP_201_CREATED)


class CurrentUserView(APIView):
    """
    GET /api/v1/auth/me/ - Profile and role of the authenticated user.

    Clients use ``role`` (highest of admin > doctor > patient) to pick the
    dashboard to show; the backend stays the authorization authority.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(UserSummarySerializer(request.user).data)


class UserRoleView(APIView):
    """PATCH /api/v1/users/{id}/role/ - Admin changes a user's role."""
    permission_classes = [IsAdmin]

    def patch(self, request, user_id):
        target = get_object_or_404(User, pk=user_id)
        serializer = RoleUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            change_user_role(request.user, target, serializer.validated_data['role'], request=request)
        except DomainError as exc:
            return error_response(exc)

        return Response(UserSummarySerializer(target).data)


class AdminViewSet(viewsets.ViewSet):
    """
    Admin management (Admin only).

    Endpoints:
    - GET /api/v1/admins/ - List admins
    - POST /api/v1/admins/ - Grant admin role ({"user_id": ...})
    - DELETE /api/v1/admins/{user_id}/ - Revoke admin role
    """
    permission_classes = [IsAdmin]

    def list(self, request):
        admins = (
            User.objects.filter(user_roles__role__name=RoleChoices.ADMIN)
            .distinct()
            .order_by('email')
        )
        data = UserSummarySerializer(admins, many=True).data
        return Response({'count': len(data), 'results': data})

    def create(self, request):
        serializer = AdminGrantSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        target = serializer.validated_data['user_id']

        grant_admin(request.user, target, request=request)
        return Response(UserSummarySerializer(target).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, pk=None):
        target = get_object_or_404(User, pk=pk)
        if RoleChoices.ADMIN not in target.role_names:
            return Response({'error': 'User is not an admin'}, status=status.HTTP_404_NOT_FOUND)

        try:
            revoke_admin(request.user, target, request=request)
        except DomainError as exc:
            return error_response(exc)

        return Response(status=status.HTTP_204_NO_CONTENT)
