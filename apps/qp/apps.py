from django.apps import AppConfig


class QpConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.qp'
    verbose_name = 'Question Paper Review'
