"""
Role-based permissions shared by every app.

Roles: patient, doctor, admin (see RoleChoices). A user with no role row
counts as a patient.
"""
from rest_framework import permissions

from apps.authz.models import RoleChoices
from apps.core.observability.correlation import bind_user


def user_roles(request):
    """Role names of the requesting user (binds them to the log context)."""
    if not request.user or not request.user.is_authenticated:
        return set()
    bind_user(request.user)
    roles = request.user.role_names
    return roles or {RoleChoices.PATIENT}


class HasAnyRole(permissions.BasePermission):
    """Base class: allow users holding any of ``allowed_roles``."""

    allowed_roles = set()
    message = 'You do not have the required role for this action.'

    def has_permission(self, request, view):
        return bool(user_roles(request) & set(self.allowed_roles))


class IsAdmin(HasAnyRole):
    """Only Admin role users."""
    allowed_roles = {RoleChoices.ADMIN}
    message = 'Admin role required.'


class IsDoctor(HasAnyRole):
    allowed_roles = {RoleChoices.DOCTOR}
    message = 'Doctor role required.'


class IsPatient(HasAnyRole):
    allowed_roles = {RoleChoices.PATIENT}
    message = 'Patient role required.'


class IsDoctorOrAdmin(HasAnyRole):
    allowed_roles = {RoleChoices.DOCTOR, RoleChoices.ADMIN}
    message = 'Doctor or admin role required.'


class ReadOnlyOrAdmin(permissions.BasePermission):
    """
    Any authenticated user can read; only Admin can write.

    Used for reference data such as hospitals.
    """

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if request.method in permissions.SAFE_METHODS:
            return True
        return RoleChoices.ADMIN in user_roles(request)
