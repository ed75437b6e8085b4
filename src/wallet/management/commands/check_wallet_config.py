"""Check the wallet credentials and optionally publish campaign classes to Google.

Usage:
    python manage.py check_wallet_config
    python manage.py check_wallet_config --sync-google-classes
"""

import typing as t

from django.core.management.base import BaseCommand, CommandError

from loyalty.exceptions import InvalidTemplateError
from loyalty.models import Campaign
from wallet.apple.signer import ApplePassSigner, ApplePassSignerError
from wallet.config import GoogleWalletConfig, SigningConfig, WalletConfigurationError, google_callback_url
from wallet.google.builder import GooglePassBuilder
from wallet.google.client import GoogleWalletClient, GoogleWalletError
from wallet.google.ids import to_class_id


class Command(BaseCommand):
    help = "Validate Apple/Google Wallet credentials and optionally upsert Google loyalty classes."

    def add_arguments(self, parser: t.Any) -> None:
        """Add CLI arguments."""
        parser.add_argument(
            "--sync-google-classes",
            action="store_true",
            help="Create or update the Google loyalty class of every active campaign.",
        )

    def handle(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Run the checks."""
        apple_ok = self._check_apple()
        google_config = self._check_google()

        if kwargs["sync_google_classes"]:
            if google_config is None:
                raise CommandError("Google Wallet is not configured, cannot sync classes.")
            self._sync_google_classes(google_config)

        if not apple_ok and google_config is None:
            raise CommandError("No wallet platform is configured.")

    def _check_apple(self) -> bool:
        try:
            config = SigningConfig.from_settings()
            ApplePassSigner(config).validate_configuration()
        except (WalletConfigurationError, ApplePassSignerError) as e:
            self.stdout.write(self.style.WARNING(f"Apple Wallet: {e}"))
            return False
        self.stdout.write(self.style.SUCCESS(f"Apple Wallet: ok ({config.pass_type_id})"))
        return True

    def _check_google(self) -> GoogleWalletConfig | None:
        try:
            config = GoogleWalletConfig.from_settings()
        except WalletConfigurationError as e:
            self.stdout.write(self.style.WARNING(f"Google Wallet: {e}"))
            return None
        self.stdout.write(self.style.SUCCESS(f"Google Wallet: ok ({config.service_account_email})"))
        return config

    def _sync_google_classes(self, config: GoogleWalletConfig) -> None:
        builder = GooglePassBuilder(config)
        client = GoogleWalletClient(config)
        failed = 0
        try:
            for campaign in Campaign.objects.filter(is_active=True).order_by("created_at"):
                class_id = to_class_id(config.issuer_id, campaign.pk)
                try:
                    loyalty_class = builder.build_class(
                        class_id,
                        campaign.get_template(),
                        program_name=campaign.name,
                        callback_url=google_callback_url(),
                    )
                    client.upsert_class(loyalty_class)
                except (InvalidTemplateError, GoogleWalletError) as e:
                    failed += 1
                    self.stdout.write(self.style.ERROR(f"{campaign}: {e}"))
                    continue
                self.stdout.write(f"{campaign}: {class_id}")
        finally:
            client.close()

        if failed:
            raise CommandError(f"{failed} class(es) could not be synced.")
