"""Django app configuration for wallet synchronization."""

from django.apps import AppConfig


class WalletConfig(AppConfig):
    """Device registrations, pass delivery and update pushes for Apple and Google Wallet."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "wallet"
    verbose_name = "Wallet Sync"
