# Initial migration for assistant app: assistant_session, assistant_message

import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AssistantSession',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('session_type', models.CharField(choices=[('general', 'General'), ('initial_record', 'Initial Medical Record'), ('pre_consultation', 'Pre-consultation'), ('task_guide', 'Task Guide')], default='general', max_length=20)),
                ('system_prompt', models.TextField()),
                ('collected_data', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('last_active_at', models.DateTimeField(auto_now_add=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='assistant_sessions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Assistant Session',
                'verbose_name_plural': 'Assistant Sessions',
                'db_table': 'assistant_session',
                'ordering': ['-last_active_at'],
                'indexes': [
                    models.Index(fields=['owner'], name='idx_assistant_session_owner'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AssistantMessage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('role', models.CharField(choices=[('user', 'User'), ('assistant', 'Assistant')], max_length=10)),
                ('content', models.TextField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('session', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='assistant.assistantsession')),
            ],
            options={
                'db_table': 'assistant_message',
                'ordering': ['created_at', 'id'],
            },
        ),
    ]
