from django.apps import AppConfig


class HandoutsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.handouts'
    verbose_name = 'Course Handouts'
