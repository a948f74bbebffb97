# ops/apps.py
"""Operations app configuration."""

from django.apps import AppConfig


class OpsConfig(AppConfig):
    """Logging, metrics and the write barrier."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "ops"
    verbose_name = "Operations"
