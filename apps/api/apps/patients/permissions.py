"""
Patients permissions.
"""
from rest_framework import permissions

from apps.authz.models import RoleChoices
from apps.authz.permissions import user_roles


class PatientProfilePermission(permissions.BasePermission):
    """
    - Patient: create, read and update own profile
    - Doctor: read all profiles
    - Admin: full CRUD
    """

    def has_permission(self, request, view):
        roles = user_roles(request)
        if not roles:
            return False

        if RoleChoices.ADMIN in roles:
            return True

        if view.action == 'destroy':
            return False

        if request.method in permissions.SAFE_METHODS:
            return True

        return RoleChoices.PATIENT in roles

    def has_object_permission(self, request, view, obj):
        roles = user_roles(request)
        if RoleChoices.ADMIN in roles:
            return True
        if request.method in permissions.SAFE_METHODS and RoleChoices.DOCTOR in roles:
            return True
        return obj.user_id is not None and obj.user_id == request.user.pk
