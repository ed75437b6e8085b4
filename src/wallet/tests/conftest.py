"""Test fixtures for wallet app tests.

This module provides fixtures for testing Apple Wallet pass generation and
Google Wallet objects, including generated certificates written to disk
and mocked signers and platform clients.

Model fixtures (merchant, campaigns, passes) come from src/conftest.py.
"""

import io
import json
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from PIL import Image

from wallet.apple.signer import ApplePassSigner
from wallet.config import GoogleWalletConfig, SigningConfig

PASS_TYPE_ID = "pass.com.example.loyalty"
TEAM_ID = "TEAM123"
GOOGLE_ISSUER_ID = "3388000000012345678"

# --- Mock Certificate Fixtures ---


def _self_signed(private_key: rsa.RSAPrivateKey, *attributes: x509.NameAttribute) -> x509.Certificate:
    subject = issuer = x509.Name(list(attributes))
    now = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=365))
        .sign(private_key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def mock_private_key() -> rsa.RSAPrivateKey:
    """Generate a mock RSA private key for testing."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def mock_certificate(mock_private_key: rsa.RSAPrivateKey) -> x509.Certificate:
    """Generate a mock Pass Type ID certificate for testing."""
    return _self_signed(
        mock_private_key,
        x509.NameAttribute(NameOID.COUNTRY_NAME, "DE"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test Org"),
        x509.NameAttribute(NameOID.COMMON_NAME, f"Pass Type ID: {PASS_TYPE_ID}"),
    )


@pytest.fixture(scope="session")
def mock_wwdr_certificate(mock_private_key: rsa.RSAPrivateKey) -> x509.Certificate:
    """Generate a mock Apple WWDR certificate for testing."""
    return _self_signed(
        mock_private_key,
        x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Apple Inc."),
        x509.NameAttribute(NameOID.COMMON_NAME, "Apple Worldwide Developer Relations Certification Authority"),
    )


@pytest.fixture
def cert_files(
    tmp_path: Path,
    mock_private_key: rsa.RSAPrivateKey,
    mock_certificate: x509.Certificate,
    mock_wwdr_certificate: x509.Certificate,
) -> dict[str, Path]:
    """Write the mock certificates and key as PEM files."""
    paths = {
        "cert": tmp_path / "pass.pem",
        "key": tmp_path / "pass.key",
        "wwdr": tmp_path / "wwdr.pem",
    }
    paths["cert"].write_bytes(mock_certificate.public_bytes(serialization.Encoding.PEM))
    paths["wwdr"].write_bytes(mock_wwdr_certificate.public_bytes(serialization.Encoding.PEM))
    paths["key"].write_bytes(
        mock_private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return paths


@pytest.fixture
def signing_config(cert_files: dict[str, Path]) -> SigningConfig:
    return SigningConfig(
        pass_type_id=PASS_TYPE_ID,
        team_id=TEAM_ID,
        cert_path=str(cert_files["cert"]),
        key_path=str(cert_files["key"]),
        wwdr_cert_path=str(cert_files["wwdr"]),
    )


@pytest.fixture
def mock_signer() -> MagicMock:
    """Create a mocked ApplePassSigner that returns a fixed signature."""
    signer = MagicMock(spec=ApplePassSigner)

    def mock_create_manifest(files: dict[str, bytes]) -> bytes:
        import hashlib

        manifest = {
            filename: hashlib.sha1(content).hexdigest()
            for filename, content in files.items()
            if filename not in ("manifest.json", "signature")
        }
        return json.dumps(manifest).encode("utf-8")

    signer.create_manifest.side_effect = mock_create_manifest
    signer.sign_manifest.return_value = b"mock_signature_bytes"
    return signer


# --- Image Fixtures ---


@pytest.fixture
def sample_logo_bytes() -> bytes:
    """Generate a sample logo PNG for testing (100x100 red square)."""
    img = Image.new("RGB", (100, 100), (255, 0, 0))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def sample_jpeg_bytes() -> bytes:
    img = Image.new("RGB", (20, 10), (0, 0, 255))
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG")
    return buffer.getvalue()


# --- Settings Fixtures ---


@pytest.fixture
def apple_wallet_configured(settings: Any, cert_files: dict[str, Path]) -> None:
    """Configure Apple Wallet settings against the generated certificate files."""
    settings.APPLE_WALLET_PASS_TYPE_ID = PASS_TYPE_ID
    settings.APPLE_WALLET_TEAM_ID = TEAM_ID
    settings.APPLE_WALLET_CERT_PATH = str(cert_files["cert"])
    settings.APPLE_WALLET_KEY_PATH = str(cert_files["key"])
    settings.APPLE_WALLET_WWDR_CERT_PATH = str(cert_files["wwdr"])
    settings.APPLE_WALLET_KEY_PASSWORD = ""
    settings.BASE_URL = "https://passify.example.com"


@pytest.fixture
def apple_wallet_not_configured(settings: Any) -> None:
    """Clear Apple Wallet credentials but keep the pass type id routable."""
    settings.APPLE_WALLET_PASS_TYPE_ID = PASS_TYPE_ID
    settings.APPLE_WALLET_TEAM_ID = ""
    settings.APPLE_WALLET_CERT_PATH = ""
    settings.APPLE_WALLET_KEY_PATH = ""
    settings.APPLE_WALLET_WWDR_CERT_PATH = ""


@pytest.fixture
def google_service_account(mock_private_key: rsa.RSAPrivateKey) -> dict[str, str]:
    pem = mock_private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    return {
        "type": "service_account",
        "client_email": "wallet@passify-test.iam.gserviceaccount.com",
        "private_key": pem,
        "private_key_id": "key-1",
        "token_uri": "https://oauth2.googleapis.com/token",
    }


@pytest.fixture
def google_wallet_configured(settings: Any, google_service_account: dict[str, str]) -> None:
    settings.GOOGLE_WALLET_ISSUER_ID = GOOGLE_ISSUER_ID
    settings.GOOGLE_WALLET_SERVICE_ACCOUNT_JSON = json.dumps(google_service_account)
    settings.GOOGLE_WALLET_SERVICE_ACCOUNT_FILE = ""
    settings.GOOGLE_WALLET_ORIGINS = ["https://passify.example.com"]
    settings.BASE_URL = "https://passify.example.com"


@pytest.fixture
def google_config(google_service_account: dict[str, str]) -> GoogleWalletConfig:
    return GoogleWalletConfig(
        issuer_id=GOOGLE_ISSUER_ID,
        service_account_info=google_service_account,
        origins=("https://passify.example.com",),
    )


# --- Dispatcher Fixtures ---


@pytest.fixture
def mock_apple_push() -> MagicMock:
    return MagicMock()


@pytest.fixture
def mock_google_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def mock_google_renderer() -> MagicMock:
    renderer = MagicMock()
    renderer.object_id.side_effect = lambda issued_pass: f"{GOOGLE_ISSUER_ID}.{str(issued_pass.pk).replace('-', '_')}"
    renderer.object_changes.return_value = {"loyaltyPoints": {"label": "Stempel", "balance": {"string": "3/5"}}}
    return renderer


@pytest.fixture
def dispatcher(
    mock_apple_push: MagicMock, mock_google_client: MagicMock, mock_google_renderer: MagicMock
) -> Iterator[Any]:
    """An UpdateDispatcher wired to mocked platform clients, installed as the singleton."""
    import wallet.dispatcher

    instance = wallet.dispatcher.UpdateDispatcher(
        apple_push=mock_apple_push,
        google_client=mock_google_client,
        google_renderer=mock_google_renderer,
    )
    wallet.dispatcher._dispatcher = instance
    yield instance
    wallet.dispatcher._dispatcher = None
