"""
Authz models: auth_user, auth_role, auth_user_role, user_audit_log
"""
import uuid
from django.db import models
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin


# ============================================================================
# User Management
# ============================================================================

class UserManager(BaseUserManager):
    """Custom user manager for email-based authentication."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email is required')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        return self.create_user(email, password, **extra_fields)


class RoleChoices(models.TextChoices):
    """Platform roles. A user without any role row is a patient."""
    PATIENT = 'patient', 'Patient'
    DOCTOR = 'doctor', 'Doctor'
    ADMIN = 'admin', 'Admin'


# Highest privilege first; used to pick the role reported to clients
ROLE_PRECEDENCE = [RoleChoices.ADMIN, RoleChoices.DOCTOR, RoleChoices.PATIENT]


class User(AbstractBaseUser, PermissionsMixin):
    """
    Account used to sign in to the dashboard and the mobile app.

    Doctor and patient profiles hang off the user (``user.doctor``,
    ``user.patient``); roles live in ``UserRole``.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True, max_length=255)
    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)  # Required for admin access
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        db_table = 'auth_user'
        verbose_name = 'User'
        verbose_name_plural = 'Users'
        indexes = [
            models.Index(fields=['email'], name='idx_user_email'),
            models.Index(fields=['is_active'], name='idx_user_active'),
        ]

    def __str__(self):
        return self.email

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'.strip() or self.email

    @property
    def role_names(self):
        return set(self.user_roles.values_list('role__name', flat=True))

    def has_role(self, role):
        if role == RoleChoices.PATIENT and not self.role_names:
            return True
        return role in self.role_names

    @property
    def primary_role(self):
        for role in ROLE_PRECEDENCE:
            if role in self.role_names:
                return role
        return RoleChoices.PATIENT

    def set_roles(self, *roles):
        """Replace all role rows of this user with ``roles``."""
        self.user_roles.all().delete()
        for name in roles:
            role, _ = Role.objects.get_or_create(name=name)
            UserRole.objects.get_or_create(user=self, role=role)

    def add_role(self, name):
        role, _ = Role.objects.get_or_create(name=name)
        UserRole.objects.get_or_create(user=self, role=role)

    def remove_role(self, name):
        self.user_roles.filter(role__name=name).delete()


class Role(models.Model):
    """System roles (patient|doctor|admin)."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(
        max_length=50,
        unique=True,
        choices=RoleChoices.choices
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'auth_role'
        verbose_name = 'Role'
        verbose_name_plural = 'Roles'

    def __str__(self):
        return self.get_name_display()


class UserRole(models.Model):
    """Many-to-many relationship between users and roles."""
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='user_roles'
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='user_roles'
    )

    class Meta:
        db_table = 'auth_user_role'
        verbose_name = 'User Role'
        verbose_name_plural = 'User Roles'
        unique_together = [('user', 'role')]
        indexes = [
            models.Index(fields=['user'], name='idx_user_role_user'),
            models.Index(fields=['role'], name='idx_user_role_role'),
        ]

    def __str__(self):
        return f"{self.user.email} - {self.role.name}"


# ============================================================================
# User Administration Audit Log
# ============================================================================

class UserAuditActionChoices(models.TextChoices):
    """Actions that can be audited for user administration."""
    REGISTER = 'register', 'Register'
    CHANGE_ROLE = 'change_role', 'Change Role'
    GRANT_ADMIN = 'grant_admin', 'Grant Admin'
    REVOKE_ADMIN = 'revoke_admin', 'Revoke Admin'


class UserAuditLog(models.Model):
    """
    Audit trail for account and role changes.

    metadata holds before/after roles plus IP and user agent.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)

    actor_user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        related_name='admin_actions',
        help_text='User who performed the action (the user itself on registration)'
    )

    target_user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='audit_logs',
        help_text='User who was affected by the action'
    )

    action = models.CharField(
        max_length=20,
        choices=UserAuditActionChoices.choices
    )

    metadata = models.JSONField(
        default=dict,
        help_text='Roles before/after, IP address, user agent, etc.'
    )

    class Meta:
        db_table = 'user_audit_log'
        verbose_name = 'User Audit Log'
        verbose_name_plural = 'User Audit Logs'
        indexes = [
            models.Index(fields=['created_at'], name='idx_user_audit_created'),
            models.Index(fields=['actor_user'], name='idx_user_audit_actor'),
            models.Index(fields=['target_user'], name='idx_user_audit_target'),
            models.Index(fields=['action'], name='idx_user_audit_action'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        actor = self.actor_user.email if self.actor_user else 'system'
        return f"{self.action} on {self.target_user.email} by {actor}"
