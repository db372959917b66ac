"""
Management command to ensure the bootstrap admin exists (for Docker startup).
"""
import os

from django.core.management.base import BaseCommand

from apps.authz.models import User, RoleChoices


class Command(BaseCommand):
    help = 'Create the bootstrap admin user with the admin role if it does not exist'

    def handle(self, *args, **options):
        email = os.environ.get('DJANGO_SUPERUSER_EMAIL', 'admin@jeewaka.lk')
        password = os.environ.get('DJANGO_SUPERUSER_PASSWORD', 'admin123dev')

        user = User.objects.filter(email=email).first()
        if user is None:
            user = User.objects.create_superuser(email=email, password=password)
            self.stdout.write(self.style.SUCCESS(f'Admin "{email}" created successfully'))
        else:
            self.stdout.write(self.style.WARNING(f'Admin "{email}" already exists'))

        if RoleChoices.ADMIN not in user.role_names:
            user.add_role(RoleChoices.ADMIN)
            self.stdout.write(self.style.SUCCESS(f'Admin role assigned to "{email}"'))
