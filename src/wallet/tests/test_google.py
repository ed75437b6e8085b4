"""Tests for the Google Wallet builder, client and id conventions."""

import typing as t
import uuid
from unittest.mock import MagicMock, patch

import google.auth.jwt
import httpx
import pytest

from loyalty.projector import project
from loyalty.templates import PassTemplate
from wallet.config import GoogleWalletConfig
from wallet.google.builder import DEFAULT_PROGRAM_LOGO, GooglePassBuilder
from wallet.google.client import GoogleWalletClient, GoogleWalletError
from wallet.google.ids import pass_id_from_object_id, to_class_id, to_object_id

GOOGLE_ISSUER_ID = "3388000000012345678"

DESIGN: dict[str, t.Any] = {
    "colors": {"backgroundColor": "rgb(139, 69, 19)"},
    "content": {"organizationName": "Café Mokka"},
    "fields": {
        "headerFields": [{"key": "card", "label": "Karte"}],
        "primaryFields": [{"key": "stamps", "label": "Stempel"}],
        "secondaryFields": [{"key": "progress", "label": "Fortschritt"}],
        "backFields": [{"key": "terms", "label": "Bedingungen", "value": "Jeder {{max_stamps}}. Kaffee gratis"}],
    },
    "barcode": {"altText": "Kundennummer"},
    "images": {"logo": "https://cdn.example.com/logo.png", "strip": "data:image/png;base64,AAAA"},
    "locations": [{"latitude": 52.52, "longitude": 13.405}],
}


@pytest.fixture
def builder(google_config: GoogleWalletConfig) -> GooglePassBuilder:
    return GooglePassBuilder(google_config)


@pytest.fixture
def template() -> PassTemplate:
    return PassTemplate.from_design(DESIGN)


class TestIds:
    def test_object_id_round_trip(self) -> None:
        pass_id = uuid.uuid4()

        object_id = to_object_id(GOOGLE_ISSUER_ID, pass_id)

        assert "-" not in object_id
        assert object_id.startswith(f"{GOOGLE_ISSUER_ID}.")
        assert pass_id_from_object_id(object_id) == str(pass_id)

    def test_unprefixed_object_id(self) -> None:
        assert pass_id_from_object_id("1234_abcd") == "1234-abcd"

    def test_class_id(self) -> None:
        campaign_id = uuid.UUID("12345678-1234-5678-1234-567812345678")

        assert to_class_id("999", campaign_id) == "999.campaign_12345678_1234_5678_1234_567812345678"


class TestBuildClass:
    def test_class_fields(self, builder: GooglePassBuilder, template: PassTemplate) -> None:
        loyalty_class = builder.build_class(
            "999.campaign_1", template, program_name="Kaffee", callback_url="https://x.example/cb"
        )

        assert loyalty_class["id"] == "999.campaign_1"
        assert loyalty_class["issuerName"] == "Café Mokka"
        assert loyalty_class["hexBackgroundColor"] == "#8b4513"
        assert loyalty_class["programLogo"]["sourceUri"]["uri"] == "https://cdn.example.com/logo.png"
        assert loyalty_class["callbackOptions"] == {"url": "https://x.example/cb"}
        assert loyalty_class["locations"][0]["latitude"] == 52.52

    def test_inline_images_are_not_sent(self, builder: GooglePassBuilder) -> None:
        """Google needs public image URLs; inline data falls back to the default logo."""
        template = PassTemplate.from_design({"images": {"logo": "data:image/png;base64,AAAA"}})

        loyalty_class = builder.build_class("999.c", template, program_name="Kaffee")

        assert loyalty_class["programLogo"]["sourceUri"]["uri"] == DEFAULT_PROGRAM_LOGO
        assert "heroImage" not in loyalty_class
        assert "callbackOptions" not in loyalty_class


class TestBuildObject:
    STATE = {"stamps": 2, "max_stamps": 5, "stamp_icon": "☕", "customer_number": "AB12"}

    def test_stamp_card_object(self, builder: GooglePassBuilder, template: PassTemplate) -> None:
        fields = project(template, self.STATE)

        obj = builder.build_object(
            "999.obj", "999.cls", template, fields, self.STATE, barcode_value="pass-id", customer_name="Anna"
        )

        assert obj["state"] == "ACTIVE"
        assert obj["accountId"] == "AB12"
        assert obj["accountName"] == "Anna"
        assert obj["barcode"] == {"type": "QR_CODE", "value": "pass-id", "alternateText": "Kundennummer"}
        assert obj["loyaltyPoints"] == {"label": "Stempel", "balance": {"string": "2/5"}}

        modules = {module["id"]: module for module in obj["textModulesData"]}
        assert modules["visual_stamps"]["body"] == "☕ ☕ ⚪️ ⚪️ ⚪️"
        assert modules["card"]["body"] == "AB12"
        assert modules["terms"]["body"] == "Jeder 5. Kaffee gratis"
        assert "stamps" not in modules
        assert "progress" not in modules

    def test_points_card_changes(self, builder: GooglePassBuilder) -> None:
        template = PassTemplate.from_design({"fields": {"primaryFields": [{"key": "points", "label": "Punkte"}]}})
        state = {"points": 120, "tier": "bronze"}

        changes = builder.build_object_changes(template, project(template, state), state)

        assert changes["loyaltyPoints"] == {"label": "Punkte", "balance": {"int": 120}}
        assert changes["textModulesData"] == [{"id": "points", "header": "Punkte", "body": "120"}]

    def test_default_account_name(self, builder: GooglePassBuilder, template: PassTemplate) -> None:
        obj = builder.build_object("999.obj", "999.cls", template, project(template, {}), {}, barcode_value="x")

        assert obj["accountName"] == "Stammkunde"
        assert "loyaltyPoints" not in obj


class TestSaveLink:
    def test_signed_jwt_carries_class_and_object(
        self, builder: GooglePassBuilder, google_config: GoogleWalletConfig
    ) -> None:
        link = builder.build_save_link({"id": "999.cls"}, {"id": "999.obj"})

        assert link.url == f"https://pay.google.com/gp/v/save/{link.token}"
        claims = google.auth.jwt.decode(link.token, verify=False)
        assert claims["iss"] == google_config.service_account_email
        assert claims["aud"] == "google"
        assert claims["typ"] == "savetowallet"
        assert claims["origins"] == ["https://passify.example.com"]
        assert claims["payload"]["loyaltyObjects"] == [{"id": "999.obj"}]

    def test_unusable_key(self, google_config: GoogleWalletConfig) -> None:
        config = GoogleWalletConfig(
            issuer_id=google_config.issuer_id,
            service_account_info={"client_email": "x@example.com", "private_key": "not a key"},
        )

        with pytest.raises(GoogleWalletError, match="Failed to sign save link"):
            GooglePassBuilder(config).build_save_link({"id": "c"}, {"id": "o"})


class TestGoogleWalletClient:
    def test_unusable_key_is_a_wallet_error(self, google_config: GoogleWalletConfig) -> None:
        config = GoogleWalletConfig(
            issuer_id=google_config.issuer_id,
            service_account_info={"client_email": "x@example.com", "private_key": "not a pem key"},
        )

        with pytest.raises(GoogleWalletError, match="Invalid Google service account credentials"):
            GoogleWalletClient(config).patch_object("999.obj", {})

    @pytest.fixture
    def http_client(self) -> MagicMock:
        return MagicMock(spec=httpx.Client)

    @pytest.fixture
    def client(self, google_config: GoogleWalletConfig, http_client: MagicMock) -> t.Iterator[GoogleWalletClient]:
        wallet_client = GoogleWalletClient(google_config)
        wallet_client._client = http_client
        with patch.object(GoogleWalletClient, "_access_token", return_value="access-token"):
            yield wallet_client

    def test_patch_object_notifies(self, client: GoogleWalletClient, http_client: MagicMock) -> None:
        http_client.request.return_value = httpx.Response(200, json={"id": "999.obj"})

        result = client.patch_object("999.obj", {"loyaltyPoints": {"balance": {"int": 3}}})

        assert result == {"id": "999.obj"}
        method, path = http_client.request.call_args.args
        kwargs = http_client.request.call_args.kwargs
        assert (method, path) == ("PATCH", "/loyaltyObject/999.obj")
        assert kwargs["headers"] == {"Authorization": "Bearer access-token"}
        assert kwargs["json"]["notifyPreference"] == "notifyOnUpdate"

    def test_patch_object_error(self, client: GoogleWalletClient, http_client: MagicMock) -> None:
        http_client.request.return_value = httpx.Response(404, text="not found")

        with pytest.raises(GoogleWalletError) as exc_info:
            client.patch_object("999.obj", {})

        assert exc_info.value.status_code == 404

    def test_request_error(self, client: GoogleWalletClient, http_client: MagicMock) -> None:
        http_client.request.side_effect = httpx.ConnectTimeout("timed out")

        with pytest.raises(GoogleWalletError, match="Request failed"):
            client.patch_object("999.obj", {})

    def test_upsert_creates_missing_class(self, client: GoogleWalletClient, http_client: MagicMock) -> None:
        http_client.request.side_effect = [httpx.Response(404), httpx.Response(200, json={"id": "999.cls"})]

        client.upsert_class({"id": "999.cls"})

        assert [c.args for c in http_client.request.call_args_list] == [
            ("GET", "/loyaltyClass/999.cls"),
            ("POST", "/loyaltyClass"),
        ]

    def test_upsert_replaces_existing_class(self, client: GoogleWalletClient, http_client: MagicMock) -> None:
        http_client.request.side_effect = [httpx.Response(200, json={}), httpx.Response(200, json={"id": "999.cls"})]

        client.upsert_class({"id": "999.cls"})

        assert http_client.request.call_args_list[1].args == ("PUT", "/loyaltyClass/999.cls")

    def test_add_message(self, client: GoogleWalletClient, http_client: MagicMock) -> None:
        http_client.request.return_value = httpx.Response(200, json={})

        client.add_message("999.obj", "Neuigkeiten", "Heute 2 für 1")

        message = http_client.request.call_args.kwargs["json"]["message"]
        assert message == {"header": "Neuigkeiten", "body": "Heute 2 für 1", "messageType": "TEXT_AND_NOTIFY"}
