from django.apps import AppConfig


class ExammanagementConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'ExamManagement'
    verbose_name = 'Computer Based Tests'
