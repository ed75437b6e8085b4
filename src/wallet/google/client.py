"""Google Wallet REST client.

Google passes need no push: the loyalty object is mutated server-side and
the change shows up the next time the user's wallet syncs. Access tokens come
from the issuer service account via google-auth; requests go out with httpx.
"""

import typing as t

import google.auth.exceptions
import google.auth.transport.requests
import httpx
import structlog
from google.oauth2 import service_account

from wallet.config import GoogleWalletConfig

logger = structlog.get_logger(__name__)

API_BASE = "https://walletobjects.googleapis.com/walletobjects/v1"
SCOPES = ["https://www.googleapis.com/auth/wallet_object.issuer"]
REQUEST_TIMEOUT = 15.0


class GoogleWalletError(Exception):
    """Raised when a Google Wallet object cannot be built or updated.

    Attributes:
        status_code: HTTP status code from the Wallet API, if available.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize the error.

        Args:
            message: Error message.
            status_code: HTTP status code from the Wallet API, if available.
        """
        super().__init__(message)
        self.status_code = status_code


class GoogleWalletClient:
    """Creates and mutates loyalty classes and objects."""

    def __init__(self, config: GoogleWalletConfig) -> None:
        """Initialize the client.

        Args:
            config: Validated issuer credentials.
        """
        self.config = config
        self._credentials: service_account.Credentials | None = None
        self._client: httpx.Client | None = None

    def _access_token(self) -> str:
        if self._credentials is None:
            try:
                self._credentials = service_account.Credentials.from_service_account_info(
                    self.config.service_account_info, scopes=SCOPES
                )
            except (TypeError, ValueError) as e:
                raise GoogleWalletError(f"Invalid Google service account credentials: {e}")
        if not self._credentials.valid:
            try:
                self._credentials.refresh(google.auth.transport.requests.Request())
            except google.auth.exceptions.GoogleAuthError as e:
                raise GoogleWalletError(f"Could not obtain Google access token: {e}")
        return str(self._credentials.token)

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(base_url=API_BASE, timeout=REQUEST_TIMEOUT)
        return self._client

    def _request(self, method: str, path: str, **kwargs: t.Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._access_token()}"}
        try:
            return self._get_client().request(method, path, headers=headers, **kwargs)
        except httpx.RequestError as e:
            logger.error("google_wallet_request_error", method=method, path=path, error=str(e))
            raise GoogleWalletError(f"Request failed: {e}")

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        logger.warning("google_wallet_api_error", action=action, status=response.status_code, body=response.text[:500])
        raise GoogleWalletError(
            f"Failed to {action}: {response.status_code} {response.text[:500]}", status_code=response.status_code
        )

    def upsert_class(self, loyalty_class: dict[str, t.Any]) -> dict[str, t.Any]:
        """Create the loyalty class, or replace it when it already exists."""
        class_id = loyalty_class["id"]
        response = self._request("GET", f"/loyaltyClass/{class_id}")
        if response.status_code == 404:
            response = self._request("POST", "/loyaltyClass", json=loyalty_class)
            self._raise_for_status(response, "create loyalty class")
            logger.info("google_wallet_class_created", class_id=class_id)
        else:
            self._raise_for_status(response, "read loyalty class")
            response = self._request("PUT", f"/loyaltyClass/{class_id}", json=loyalty_class)
            self._raise_for_status(response, "update loyalty class")
            logger.info("google_wallet_class_updated", class_id=class_id)
        return t.cast(dict[str, t.Any], response.json())

    def patch_object(self, object_id: str, changes: dict[str, t.Any]) -> dict[str, t.Any]:
        """Patch a loyalty object and ask Google to notify the holder."""
        response = self._request(
            "PATCH",
            f"/loyaltyObject/{object_id}",
            json={**changes, "notifyPreference": "notifyOnUpdate"},
        )
        self._raise_for_status(response, "update loyalty object")
        logger.info("google_wallet_object_updated", object_id=object_id)
        return t.cast(dict[str, t.Any], response.json())

    def add_message(self, object_id: str, header: str, body: str) -> dict[str, t.Any]:
        """Attach a message to a loyalty object, shown as a notification."""
        response = self._request(
            "POST",
            f"/loyaltyObject/{object_id}/addMessage",
            json={"message": {"header": header, "body": body, "messageType": "TEXT_AND_NOTIFY"}},
        )
        self._raise_for_status(response, "add message")
        logger.info("google_wallet_message_added", object_id=object_id)
        return t.cast(dict[str, t.Any], response.json())

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None
