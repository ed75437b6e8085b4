"""Wallet credentials, composed from settings once and validated up front.

A builder never has to deal with half-configured credentials: either a
complete ``SigningConfig`` / ``GoogleWalletConfig`` exists, or composition
fails with ``WalletConfigurationError`` naming the missing settings.
"""

import json
import typing as t
from dataclasses import dataclass, field
from pathlib import Path

import google.auth.crypt
from django.conf import settings


class WalletConfigurationError(Exception):
    """Raised when wallet credentials are missing or unreadable."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        """Initialize the error.

        Args:
            message: Error message.
            missing: Names of the settings that are not set.
        """
        super().__init__(message)
        self.missing = missing or []


def _require(values: dict[str, t.Any], platform: str) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise WalletConfigurationError(f"{platform} is not configured. Missing: {', '.join(missing)}", missing=missing)


@dataclass(frozen=True)
class SigningConfig:
    """Everything needed to sign Apple passes and push to APNs."""

    pass_type_id: str
    team_id: str
    cert_path: str
    key_path: str
    wwdr_cert_path: str
    key_password: str | None = None
    use_sandbox: bool = False
    signing_timeout: int = 20

    @classmethod
    def from_settings(cls) -> "SigningConfig":
        """Compose the config from Django settings.

        Raises:
            WalletConfigurationError: If a required setting is empty or a
                certificate file does not exist.
        """
        values = {
            "APPLE_WALLET_PASS_TYPE_ID": settings.APPLE_WALLET_PASS_TYPE_ID,
            "APPLE_WALLET_TEAM_ID": settings.APPLE_WALLET_TEAM_ID,
            "APPLE_WALLET_CERT_PATH": settings.APPLE_WALLET_CERT_PATH,
            "APPLE_WALLET_KEY_PATH": settings.APPLE_WALLET_KEY_PATH,
            "APPLE_WALLET_WWDR_CERT_PATH": settings.APPLE_WALLET_WWDR_CERT_PATH,
        }
        _require(values, "Apple Wallet")

        for name in ("APPLE_WALLET_CERT_PATH", "APPLE_WALLET_KEY_PATH", "APPLE_WALLET_WWDR_CERT_PATH"):
            if not Path(values[name]).is_file():
                raise WalletConfigurationError(f"{name} does not point to a file: {values[name]}", missing=[name])

        return cls(
            pass_type_id=values["APPLE_WALLET_PASS_TYPE_ID"],
            team_id=values["APPLE_WALLET_TEAM_ID"],
            cert_path=values["APPLE_WALLET_CERT_PATH"],
            key_path=values["APPLE_WALLET_KEY_PATH"],
            wwdr_cert_path=values["APPLE_WALLET_WWDR_CERT_PATH"],
            key_password=settings.APPLE_WALLET_KEY_PASSWORD or None,
            use_sandbox=settings.APPLE_WALLET_USE_SANDBOX,
            signing_timeout=settings.APPLE_WALLET_SIGNING_TIMEOUT,
        )


@dataclass(frozen=True)
class GoogleWalletConfig:
    """Issuer id and service account credentials for Google Wallet."""

    issuer_id: str
    service_account_info: dict[str, t.Any] = field(repr=False)
    origins: tuple[str, ...] = ()

    @property
    def service_account_email(self) -> str:
        return str(self.service_account_info["client_email"])

    @classmethod
    def from_settings(cls) -> "GoogleWalletConfig":
        """Compose the config from Django settings.

        The service account is read from ``GOOGLE_WALLET_SERVICE_ACCOUNT_JSON``
        when set, otherwise from ``GOOGLE_WALLET_SERVICE_ACCOUNT_FILE``.

        Raises:
            WalletConfigurationError: If the issuer id or the service account is
                missing, not valid JSON, or carries an unusable private key.
        """
        raw_json = settings.GOOGLE_WALLET_SERVICE_ACCOUNT_JSON
        account_file = settings.GOOGLE_WALLET_SERVICE_ACCOUNT_FILE
        _require(
            {
                "GOOGLE_WALLET_ISSUER_ID": settings.GOOGLE_WALLET_ISSUER_ID,
                "GOOGLE_WALLET_SERVICE_ACCOUNT_JSON or GOOGLE_WALLET_SERVICE_ACCOUNT_FILE": raw_json or account_file,
            },
            "Google Wallet",
        )

        try:
            info = json.loads(raw_json) if raw_json else json.loads(Path(account_file).read_text())
        except (OSError, ValueError) as e:
            raise WalletConfigurationError(f"Could not read Google service account: {e}")

        if not isinstance(info, dict) or not info.get("client_email") or not info.get("private_key"):
            raise WalletConfigurationError("Google service account needs client_email and private_key")

        try:
            google.auth.crypt.RSASigner.from_service_account_info(info)
        except (TypeError, ValueError) as e:
            raise WalletConfigurationError(f"Google service account private_key is not a valid RSA key: {e}")

        return cls(
            issuer_id=settings.GOOGLE_WALLET_ISSUER_ID,
            service_account_info=info,
            origins=tuple(origin for origin in settings.GOOGLE_WALLET_ORIGINS if origin),
        )


def web_service_url() -> str | None:
    """URL of the PassKit web service, or None when it cannot be served.

    Apple Wallet refuses plain http, so passes built against an http base URL
    carry no web service and never receive updates.
    """
    base_url = settings.BASE_URL
    if base_url.startswith("https://"):
        return f"{base_url}/api/wallet"
    return None


def google_callback_url() -> str:
    return f"{settings.BASE_URL}/api/webhooks/google-wallet"
