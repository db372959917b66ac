"""
Role management services with audit trail.
"""
from django.db import transaction

from apps.authz.models import RoleChoices, UserAuditLog, UserAuditActionChoices
from apps.core.exceptions import ForbiddenError
from apps.core.observability.events import log_domain_event
from apps.core.utils import request_metadata


def log_user_audit(actor, target, action, request=None, **metadata):
    """Create a UserAuditLog row with request metadata."""
    payload = dict(metadata)
    payload.update(request_metadata(request))
    return UserAuditLog.objects.create(
        actor_user=actor,
        target_user=target,
        action=action,
        metadata=payload,
    )


@transaction.atomic
def change_user_role(actor, target, new_role, request=None):
    """
    Replace the roles of ``target`` with ``new_role``.

    Raises:
        ForbiddenError: when an admin tries to demote themselves
    """
    before = sorted(target.role_names)
    if actor.pk == target.pk and RoleChoices.ADMIN in before and new_role != RoleChoices.ADMIN:
        raise ForbiddenError('Admins cannot remove their own admin role')

    target.set_roles(new_role)

    log_user_audit(
        actor, target, UserAuditActionChoices.CHANGE_ROLE, request,
        before=before, after=[new_role],
    )
    log_domain_event(
        'user_role_changed',
        entity_type='User',
        entity_id=str(target.pk),
        before=before,
        after=[new_role],
    )
    return target


@transaction.atomic
def grant_admin(actor, target, request=None):
    before = sorted(target.role_names)
    target.add_role(RoleChoices.ADMIN)
    log_user_audit(
        actor, target, UserAuditActionChoices.GRANT_ADMIN, request,
        before=before, after=sorted(target.role_names),
    )
    log_domain_event('admin_granted', entity_type='User', entity_id=str(target.pk))
    return target


@transaction.atomic
def revoke_admin(actor, target, request=None):
    """
    Remove the admin role from ``target``.

    Raises:
        ForbiddenError: when an admin tries to revoke their own role
    """
    if actor.pk == target.pk:
        raise ForbiddenError('Admins cannot remove their own admin role')

    before = sorted(target.role_names)
    target.remove_role(RoleChoices.ADMIN)
    log_user_audit(
        actor, target, UserAuditActionChoices.REVOKE_ADMIN, request,
        before=before, after=sorted(target.role_names),
    )
    log_domain_event('admin_revoked', entity_type='User', entity_id=str(target.pk))
    return target
