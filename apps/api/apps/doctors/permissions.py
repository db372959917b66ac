"""
Doctors permissions.
"""
from rest_framework import permissions

from apps.authz.models import RoleChoices
from apps.authz.permissions import user_roles


class DoctorProfilePermission(permissions.BasePermission):
    """
    - Any authenticated user: read
    - Doctor: create own profile, update own profile
    - Admin: full CRUD
    """

    def has_permission(self, request, view):
        roles = user_roles(request)
        if not roles:
            return False

        if request.method in permissions.SAFE_METHODS:
            return True

        if view.action == 'destroy' or view.action == 'bulk_create':
            return RoleChoices.ADMIN in roles

        return bool(roles & {RoleChoices.DOCTOR, RoleChoices.ADMIN})

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        if RoleChoices.ADMIN in user_roles(request):
            return True
        return obj.user_id is not None and obj.user_id == request.user.pk
