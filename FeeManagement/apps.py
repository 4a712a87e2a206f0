from django.apps import AppConfig


class FeemanagementConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'FeeManagement'
    verbose_name = 'Fees and Payments'
