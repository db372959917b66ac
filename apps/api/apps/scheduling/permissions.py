"""
Scheduling permissions.
"""
from rest_framework import permissions

from apps.authz.models import RoleChoices
from apps.authz.permissions import user_roles


def owns_session(request, session):
    """The session's doctor is the requesting user."""
    return session.doctor.user_id is not None and session.doctor.user_id == request.user.pk


class SessionPermission(permissions.BasePermission):
    """
    - Any authenticated user: read sessions
    - Patient: book slots
    - Doctor: create sessions, manage own sessions and slots
    - Admin: everything else

    Actions that act on one appointment (booking, appointment meeting id,
    status transition) check the slot's patient in the view.
    """
    patient_actions = {'book'}
    open_actions = {'appointment_meeting_id', 'transition'}

    def has_permission(self, request, view):
        roles = user_roles(request)
        if not roles:
            return False

        if view.action in self.patient_actions:
            return RoleChoices.PATIENT in roles

        if request.method in permissions.SAFE_METHODS or view.action in self.open_actions:
            return True

        return bool(roles & {RoleChoices.DOCTOR, RoleChoices.ADMIN})

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS or view.action in self.open_actions | self.patient_actions:
            return True
        if RoleChoices.ADMIN in user_roles(request):
            return True
        return owns_session(request, obj)
