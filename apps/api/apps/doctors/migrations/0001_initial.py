# Initial migration for doctors app: hospital, doctor, doctor_certificate

import uuid
from decimal import Decimal
from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Hospital',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255)),
                ('location', models.CharField(blank=True, max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Hospital',
                'verbose_name_plural': 'Hospitals',
                'db_table': 'hospital',
                'indexes': [models.Index(fields=['name'], name='idx_hospital_name')],
            },
        ),
        migrations.CreateModel(
            name='Doctor',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255)),
                ('email', models.EmailField(max_length=255, unique=True)),
                ('phone', models.CharField(max_length=30)),
                ('gender', models.CharField(blank=True, choices=[('Male', 'Male'), ('Female', 'Female'), ('Other', 'Other')], max_length=10)),
                ('profile_image_url', models.URLField(blank=True, max_length=500)),
                ('date_of_birth', models.DateField(blank=True, null=True)),
                ('specialization', models.CharField(blank=True, max_length=150)),
                ('sub_specializations', models.JSONField(blank=True, default=list)),
                ('registration_number', models.CharField(help_text='Medical council registration number', max_length=100, unique=True)),
                ('qualifications', models.JSONField(blank=True, default=list)),
                ('years_of_experience', models.PositiveIntegerField(default=0)),
                ('languages_spoken', models.JSONField(blank=True, default=list)),
                ('bio', models.TextField(blank=True)),
                ('consultation_fee', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='doctor', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Doctor',
                'verbose_name_plural': 'Doctors',
                'db_table': 'doctor',
                'indexes': [
                    models.Index(fields=['name'], name='idx_doctor_name'),
                    models.Index(fields=['specialization'], name='idx_doctor_specialization'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DoctorCertificate',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('certificates', models.JSONField(default=list, help_text='Certificate document URLs')),
                ('comment_from_admin', models.TextField(blank=True)),
                ('is_verified', models.BooleanField(default=False)),
                ('verified_at', models.DateTimeField(blank=True, null=True)),
                ('submitted_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('doctor', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='certificate', to='doctors.doctor')),
                ('verified_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='doctor_verifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Doctor Certificate',
                'verbose_name_plural': 'Doctor Certificates',
                'db_table': 'doctor_certificate',
                'indexes': [models.Index(fields=['is_verified'], name='idx_certificate_verified')],
            },
        ),
    ]
