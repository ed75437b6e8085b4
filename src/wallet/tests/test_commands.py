"""Tests for the check_wallet_config management command."""

import typing as t
from io import StringIO
from unittest.mock import patch

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from loyalty.models import Campaign
from wallet.google.client import GoogleWalletError

pytestmark = pytest.mark.django_db


@pytest.fixture
def google_not_configured(settings: t.Any) -> None:
    settings.GOOGLE_WALLET_ISSUER_ID = ""
    settings.GOOGLE_WALLET_SERVICE_ACCOUNT_JSON = ""
    settings.GOOGLE_WALLET_SERVICE_ACCOUNT_FILE = ""


def _run(*args: str) -> str:
    out = StringIO()
    call_command("check_wallet_config", *args, stdout=out)
    return out.getvalue()


class TestCheckWalletConfig:
    def test_apple_configured(self, apple_wallet_configured: None, google_not_configured: None) -> None:
        output = _run()

        assert "Apple Wallet: ok (pass.com.example.loyalty)" in output
        assert "Google Wallet: Google Wallet is not configured" in output

    def test_google_configured(self, apple_wallet_not_configured: None, google_wallet_configured: None) -> None:
        output = _run()

        assert "Google Wallet: ok (wallet@passify-test.iam.gserviceaccount.com)" in output

    def test_nothing_configured(self, apple_wallet_not_configured: None, google_not_configured: None) -> None:
        with pytest.raises(CommandError, match="No wallet platform is configured"):
            _run()

    def test_sync_requires_google(self, apple_wallet_configured: None, google_not_configured: None) -> None:
        with pytest.raises(CommandError, match="cannot sync classes"):
            _run("--sync-google-classes")


class TestSyncGoogleClasses:
    def test_upserts_active_campaigns(
        self, apple_wallet_not_configured: None, google_wallet_configured: None, stamp_campaign: Campaign
    ) -> None:
        Campaign.objects.create(merchant=stamp_campaign.merchant, name="Alt", is_active=False)

        with patch("wallet.management.commands.check_wallet_config.GoogleWalletClient") as MockClient:
            output = _run("--sync-google-classes")

        client = MockClient.return_value
        client.upsert_class.assert_called_once()
        loyalty_class = client.upsert_class.call_args.args[0]
        assert loyalty_class["programName"] == "Kaffee-Stempelkarte"
        assert loyalty_class["callbackOptions"] == {"url": "https://passify.example.com/api/webhooks/google-wallet"}
        assert loyalty_class["id"] in output
        client.close.assert_called_once()

    def test_failures_fail_the_command(
        self, apple_wallet_not_configured: None, google_wallet_configured: None, stamp_campaign: Campaign
    ) -> None:
        with patch("wallet.management.commands.check_wallet_config.GoogleWalletClient") as MockClient:
            MockClient.return_value.upsert_class.side_effect = GoogleWalletError("forbidden", status_code=403)

            with pytest.raises(CommandError, match="1 class"):
                _run("--sync-google-classes")

        MockClient.return_value.close.assert_called_once()
