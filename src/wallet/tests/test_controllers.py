"""Tests for wallet/controllers.py."""

import base64
import io
import json
import typing as t
import zipfile
from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.shortcuts import reverse  # type: ignore[attr-defined]
from django.test.client import Client

from loyalty.models import Campaign, IssuedPass
from wallet.apple.formatting import format_http_date
from wallet.models import DeviceRegistration, PassUpdateLog

pytestmark = pytest.mark.django_db

PASS_TYPE_ID = "pass.com.example.loyalty"
DEVICE_ID = "device-library-0001"


@pytest.fixture
def fake_signature() -> t.Iterator[None]:
    """Skip the openssl call; everything else in the bundle is built for real."""
    with patch("wallet.apple.signer.ApplePassSigner.sign_manifest", return_value=b"signature"):
        yield


def _apple_client(issued_pass: IssuedPass) -> Client:
    return Client(HTTP_AUTHORIZATION=f"ApplePass {issued_pass.auth_token}")


def _registration_url(issued_pass: IssuedPass, pass_type_id: str = PASS_TYPE_ID) -> str:
    return reverse(
        "api:wallet_register_device",
        kwargs={
            "device_library_id": DEVICE_ID,
            "pass_type_id": pass_type_id,
            "serial_number": issued_pass.serial_number,
        },
    )


def _pass_url(issued_pass: IssuedPass) -> str:
    return reverse(
        "api:wallet_get_pass",
        kwargs={"pass_type_id": PASS_TYPE_ID, "serial_number": issued_pass.serial_number},
    )


def _pass_json(content: bytes) -> dict[str, t.Any]:
    with zipfile.ZipFile(io.BytesIO(content)) as zf:
        return t.cast(dict[str, t.Any], json.loads(zf.read("pass.json")))


# --- Apple Wallet web service ---


class TestRegisterDevice:
    """Tests for the device registration endpoint."""

    def test_created_then_refreshed(self, apple_wallet_not_configured: None, apple_pass: IssuedPass) -> None:
        """First registration answers 201, a repeated one 200."""
        client = _apple_client(apple_pass)
        url = _registration_url(apple_pass)

        first = client.post(url, data={"pushToken": "push-1"}, content_type="application/json")
        second = client.post(url, data={"pushToken": "push-2"}, content_type="application/json")

        assert first.status_code == 201
        assert second.status_code == 200
        assert DeviceRegistration.objects.get().push_token == "push-2"

    def test_missing_authorization(self, apple_wallet_not_configured: None, apple_pass: IssuedPass) -> None:
        response = Client().post(
            _registration_url(apple_pass), data={"pushToken": "push-1"}, content_type="application/json"
        )

        assert response.status_code == 401

    def test_wrong_token(self, apple_wallet_not_configured: None, apple_pass: IssuedPass) -> None:
        client = Client(HTTP_AUTHORIZATION="ApplePass not-the-token")

        response = client.post(
            _registration_url(apple_pass), data={"pushToken": "push-1"}, content_type="application/json"
        )

        assert response.status_code == 401
        assert not DeviceRegistration.objects.exists()

    def test_foreign_pass_type(self, apple_wallet_not_configured: None, apple_pass: IssuedPass) -> None:
        response = _apple_client(apple_pass).post(
            _registration_url(apple_pass, "pass.com.other"),
            data={"pushToken": "push-1"},
            content_type="application/json",
        )

        assert response.status_code == 401

    def test_unknown_serial(self, apple_wallet_not_configured: None) -> None:
        url = reverse(
            "api:wallet_register_device",
            kwargs={"device_library_id": DEVICE_ID, "pass_type_id": PASS_TYPE_ID, "serial_number": "PASS-0-NOPE"},
        )

        response = Client(HTTP_AUTHORIZATION="ApplePass anything").post(
            url, data={"pushToken": "push-1"}, content_type="application/json"
        )

        assert response.status_code == 404


class TestUnregisterDevice:
    def test_unregister(self, apple_wallet_not_configured: None, apple_pass: IssuedPass) -> None:
        client = _apple_client(apple_pass)
        url = reverse(
            "api:wallet_unregister_device",
            kwargs={
                "device_library_id": DEVICE_ID,
                "pass_type_id": PASS_TYPE_ID,
                "serial_number": apple_pass.serial_number,
            },
        )
        client.post(_registration_url(apple_pass), data={"pushToken": "push-1"}, content_type="application/json")

        response = client.delete(url)

        assert response.status_code == 200
        assert not DeviceRegistration.objects.exists()
        apple_pass.refresh_from_db()
        assert apple_pass.deleted_at is not None

    def test_unknown_serial(self, apple_wallet_not_configured: None) -> None:
        url = reverse(
            "api:wallet_unregister_device",
            kwargs={"device_library_id": DEVICE_ID, "pass_type_id": PASS_TYPE_ID, "serial_number": "PASS-0-NOPE"},
        )

        response = Client(HTTP_AUTHORIZATION="ApplePass anything").delete(url)

        assert response.status_code == 401


class TestGetSerialNumbers:
    def _url(self, pass_type_id: str = PASS_TYPE_ID) -> str:
        return reverse(
            "api:wallet_get_serial_numbers",
            kwargs={"device_library_id": DEVICE_ID, "pass_type_id": pass_type_id},
        )

    def test_lists_registered_passes(self, apple_wallet_not_configured: None, apple_pass: IssuedPass) -> None:
        _apple_client(apple_pass).post(
            _registration_url(apple_pass), data={"pushToken": "push-1"}, content_type="application/json"
        )

        response = Client().get(self._url())

        assert response.status_code == 200
        data = response.json()
        assert data["serialNumbers"] == [apple_pass.serial_number]
        assert data["lastUpdated"].isdigit()

    def test_nothing_changed_after_tag(self, apple_wallet_not_configured: None, apple_pass: IssuedPass) -> None:
        _apple_client(apple_pass).post(
            _registration_url(apple_pass), data={"pushToken": "push-1"}, content_type="application/json"
        )
        last_updated = Client().get(self._url()).json()["lastUpdated"]

        response = Client().get(self._url(), {"passesUpdatedSince": str(int(last_updated) + 1)})

        assert response.status_code == 204

    def test_unknown_device(self, apple_wallet_not_configured: None) -> None:
        assert Client().get(self._url()).status_code == 204

    def test_foreign_pass_type(self, apple_wallet_not_configured: None) -> None:
        assert Client().get(self._url("pass.com.other")).status_code == 204


class TestGetLatestPass:
    def test_returns_current_pass(
        self, apple_wallet_configured: None, fake_signature: None, apple_pass: IssuedPass
    ) -> None:
        response = _apple_client(apple_pass).get(_pass_url(apple_pass))

        assert response.status_code == 200
        assert response["Content-Type"] == "application/vnd.apple.pkpass"
        assert response["Last-Modified"] == format_http_date(apple_pass.last_updated_at)
        pass_json = _pass_json(response.content)
        assert pass_json["serialNumber"] == apple_pass.serial_number
        assert pass_json["authenticationToken"] == apple_pass.auth_token
        assert pass_json["webServiceURL"] == "https://passify.example.com/api/wallet"
        assert pass_json["storeCard"]["primaryFields"][0]["value"] == "2 von 5"

    def test_not_modified(self, apple_wallet_configured: None, apple_pass: IssuedPass) -> None:
        client = Client(
            HTTP_AUTHORIZATION=f"ApplePass {apple_pass.auth_token}",
            HTTP_IF_MODIFIED_SINCE=format_http_date(apple_pass.last_updated_at + timedelta(seconds=1)),
        )

        response = client.get(_pass_url(apple_pass))

        assert response.status_code == 304
        assert response["Last-Modified"] == format_http_date(apple_pass.last_updated_at)

    def test_wrong_token(self, apple_wallet_configured: None, apple_pass: IssuedPass) -> None:
        response = Client(HTTP_AUTHORIZATION="ApplePass wrong").get(_pass_url(apple_pass))

        assert response.status_code == 401

    def test_missing_authorization(self, apple_wallet_configured: None, apple_pass: IssuedPass) -> None:
        assert Client().get(_pass_url(apple_pass)).status_code == 401

    def test_unknown_serial(self, apple_wallet_configured: None) -> None:
        url = reverse("api:wallet_get_pass", kwargs={"pass_type_id": PASS_TYPE_ID, "serial_number": "PASS-0-NOPE"})

        response = Client(HTTP_AUTHORIZATION="ApplePass anything").get(url)

        assert response.status_code == 404

    def test_signing_not_configured(self, apple_wallet_not_configured: None, apple_pass: IssuedPass) -> None:
        response = _apple_client(apple_pass).get(_pass_url(apple_pass))

        assert response.status_code == 500


def test_device_logs_are_accepted() -> None:
    response = Client().post(
        reverse("api:wallet_log"), data={"logs": ["Could not fetch pass"]}, content_type="application/json"
    )

    assert response.status_code == 200


# --- Pass export and issuance ---


class TestExportPass:
    """Tests for POST /pass/export."""

    DRAFT: dict[str, t.Any] = {
        "meta": {"style": "storeCard"},
        "content": {"organizationName": "Café Mokka", "description": "Vorschau"},
        "fields": {"primaryFields": [{"key": "offer", "label": "Angebot", "value": "Gratis Kaffee"}]},
        "barcode": {"message": "PREVIEW-1"},
    }

    def test_exports_pkpass(
        self, apple_wallet_configured: None, fake_signature: None, merchant_client: Client, sample_logo_bytes: bytes
    ) -> None:
        payload = {"draft": self.DRAFT, "images": {"logo": base64.b64encode(sample_logo_bytes).decode()}}

        response = merchant_client.post(reverse("api:pass_export"), data=payload, content_type="application/json")

        assert response.status_code == 200
        assert response["Content-Disposition"] == 'attachment; filename="pass.pkpass"'
        with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
            assert "logo.png" in zf.namelist()
            pass_json = json.loads(zf.read("pass.json"))
        assert pass_json["barcodes"][0]["message"] == "PREVIEW-1"
        assert pass_json["storeCard"]["primaryFields"][0]["value"] == "Gratis Kaffee"
        assert "webServiceURL" not in pass_json

    def test_invalid_draft(self, apple_wallet_configured: None, merchant_client: Client) -> None:
        draft = {**self.DRAFT, "fields": {"primaryFields": [{"key": "a"}, {"key": "b"}]}}

        response = merchant_client.post(
            reverse("api:pass_export"), data={"draft": draft}, content_type="application/json"
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "fields.primaryFields"

    def test_uploaded_image_must_fit_style(
        self, apple_wallet_configured: None, merchant_client: Client, sample_logo_bytes: bytes
    ) -> None:
        """Store cards have no thumbnail slot, uploaded or referenced."""
        payload = {"draft": self.DRAFT, "images": {"thumbnail": base64.b64encode(sample_logo_bytes).decode()}}

        response = merchant_client.post(reverse("api:pass_export"), data=payload, content_type="application/json")

        assert response.status_code == 400
        assert [error["field"] for error in response.json()["errors"]] == ["images.thumbnail"]

    def test_malformed_design(self, apple_wallet_configured: None, merchant_client: Client) -> None:
        response = merchant_client.post(
            reverse("api:pass_export"),
            data={"draft": {"meta": {"style": "poster"}}},
            content_type="application/json",
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "meta.style"

    def test_requires_api_key(self, apple_wallet_configured: None) -> None:
        response = Client().post(
            reverse("api:pass_export"), data={"draft": self.DRAFT}, content_type="application/json"
        )

        assert response.status_code == 401

    def test_not_configured(self, apple_wallet_not_configured: None, merchant_client: Client) -> None:
        response = merchant_client.post(
            reverse("api:pass_export"), data={"draft": self.DRAFT}, content_type="application/json"
        )

        assert response.status_code == 503


class TestIssueApplePass:
    def test_issues_and_downloads(
        self, apple_wallet_configured: None, fake_signature: None, stamp_campaign: Campaign
    ) -> None:
        response = Client().get(
            reverse("api:pass_issue_apple"),
            {"campaignId": str(stamp_campaign.pk), "customerName": "Anna", "consentMarketing": "true"},
        )

        assert response.status_code == 200
        issued_pass = IssuedPass.objects.get()
        assert issued_pass.customer_name == "Anna"
        assert issued_pass.consent_marketing
        assert issued_pass.current_state["stamps"] == 0
        assert response["Content-Disposition"] == f'attachment; filename="{issued_pass.serial_number}.pkpass"'
        assert _pass_json(response.content)["barcodes"][0]["message"] == str(issued_pass.pk)
        assert PassUpdateLog.objects.filter(
            issued_pass=issued_pass, update_type=PassUpdateLog.UpdateType.PASS_GENERATED
        ).exists()

    def test_unknown_campaign(self, apple_wallet_configured: None) -> None:
        response = Client().get(reverse("api:pass_issue_apple"), {"campaignId": str(uuid4())})

        assert response.status_code == 404

    def test_inactive_campaign(self, apple_wallet_configured: None, stamp_campaign: Campaign) -> None:
        Campaign.objects.filter(pk=stamp_campaign.pk).update(is_active=False)

        response = Client().get(reverse("api:pass_issue_apple"), {"campaignId": str(stamp_campaign.pk)})

        assert response.status_code == 404

    def test_not_configured_issues_nothing(
        self, apple_wallet_not_configured: None, stamp_campaign: Campaign
    ) -> None:
        response = Client().get(reverse("api:pass_issue_apple"), {"campaignId": str(stamp_campaign.pk)})

        assert response.status_code == 503
        assert not IssuedPass.objects.exists()


class TestIssueGooglePass:
    def test_returns_save_link(self, google_wallet_configured: None, stamp_campaign: Campaign) -> None:
        response = Client().get(reverse("api:pass_issue_google"), {"campaignId": str(stamp_campaign.pk)})

        assert response.status_code == 200
        data = response.json()
        issued_pass = IssuedPass.objects.get()
        assert issued_pass.wallet_type == IssuedPass.WalletType.GOOGLE
        assert data["passId"] == str(issued_pass.pk)
        assert data["saveUrl"].startswith("https://pay.google.com/gp/v/save/")
