from django.apps import AppConfig


class AssistantConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.assistant'
    verbose_name = 'Medical Assistant'

    def ready(self):
        from apps.assistant import llm
        llm.configure()
