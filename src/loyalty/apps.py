"""Django app configuration for the loyalty ledger."""

from django.apps import AppConfig


class LoyaltyConfig(AppConfig):
    """Configuration for the loyalty app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "loyalty"
    verbose_name = "Loyalty Ledger"
