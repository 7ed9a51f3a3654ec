from django.apps import AppConfig


class PhdConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.phd'
    verbose_name = 'PhD Proposals'
