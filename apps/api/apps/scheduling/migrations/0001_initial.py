# Initial migration for scheduling app: session, time_slot

import uuid
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('doctors', '0001_initial'),
        ('patients', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Session',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('date', models.DateField()),
                ('type', models.CharField(choices=[('in-person', 'In-person'), ('online', 'Online')], default='in-person', max_length=20)),
                ('fee', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('meeting_link', models.URLField(blank=True, max_length=500)),
                ('meeting_id', models.CharField(blank=True, max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('doctor', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sessions', to='doctors.doctor')),
                ('hospital', models.ForeignKey(blank=True, help_text='Required for in-person sessions', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='sessions', to='doctors.hospital')),
            ],
            options={
                'verbose_name': 'Session',
                'verbose_name_plural': 'Sessions',
                'db_table': 'session',
                'ordering': ['date', 'created_at'],
                'indexes': [
                    models.Index(fields=['doctor', 'date'], name='idx_session_doctor_date'),
                    models.Index(fields=['date'], name='idx_session_date'),
                    models.Index(fields=['hospital'], name='idx_session_hospital'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TimeSlot',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('position', models.PositiveIntegerField(help_text='Slot index inside the session (0-based)')),
                ('start_time', models.TimeField()),
                ('end_time', models.TimeField()),
                ('status', models.CharField(choices=[('available', 'Available'), ('booked', 'Booked')], default='available', max_length=20)),
                ('appointment_status', models.CharField(choices=[('upcoming', 'Upcoming'), ('ongoing', 'Ongoing'), ('completed', 'Completed'), ('cancelled', 'Cancelled'), ('no_show', 'No Show')], default='upcoming', max_length=20)),
                ('meeting_id', models.CharField(blank=True, max_length=255)),
                ('payment_intent_id', models.CharField(blank=True, max_length=255, null=True, unique=True)),
                ('payment_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('payment_currency', models.CharField(blank=True, max_length=3)),
                ('payment_date', models.DateTimeField(blank=True, null=True)),
                ('booked_at', models.DateTimeField(blank=True, null=True)),
                ('status_changed_at', models.DateTimeField(blank=True, null=True)),
                ('cancellation_reason', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('patient', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='appointments', to='patients.patient')),
                ('session', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='time_slots', to='scheduling.session')),
            ],
            options={
                'verbose_name': 'Time Slot',
                'verbose_name_plural': 'Time Slots',
                'db_table': 'time_slot',
                'ordering': ['session', 'position'],
                'indexes': [
                    models.Index(fields=['patient'], name='idx_time_slot_patient'),
                    models.Index(fields=['status'], name='idx_time_slot_status'),
                    models.Index(fields=['appointment_status'], name='idx_time_slot_appt_status'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('session', 'position'), name='uniq_time_slot_position'),
                ],
            },
        ),
    ]
