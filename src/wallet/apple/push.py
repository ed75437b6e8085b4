"""Apple Push Notification service client for Wallet pass updates.

Wallet updates are pull based: the push carries an empty JSON payload and
only tells the device that something changed. The device then asks the web
service which passes were updated and downloads them.

Apple requires:
- HTTP/2 connection to api.push.apple.com (production) or api.sandbox.push.apple.com
- Authentication via the Pass Type ID certificate (the one used to sign passes)
- Topic header set to the Pass Type ID
"""

import ssl

import httpx
import structlog

from wallet.config import SigningConfig

logger = structlog.get_logger(__name__)


APNS_PRODUCTION_HOST = "api.push.apple.com"
APNS_SANDBOX_HOST = "api.sandbox.push.apple.com"
APNS_PORT = 443

# Rejections that mean the token will never work again
INVALID_TOKEN_REASONS = frozenset({"BadDeviceToken", "Unregistered", "DeviceTokenNotForTopic"})
GONE_STATUS = 410


def mask_token(token: str) -> str:
    return f"{token[:8]}..."


class ApplePushError(Exception):
    """Raised when a push notification cannot be delivered.

    Attributes:
        status_code: HTTP status code from APNs, if available.
        reason: Error reason from APNs, if available.
    """

    def __init__(self, message: str, status_code: int | None = None, reason: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Error message describing what went wrong.
            status_code: HTTP status code from APNs, if available.
            reason: Error reason from APNs, if available.
        """
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason

    @property
    def is_invalid_token(self) -> bool:
        """Whether APNs rejected the token itself (the registration is stale)."""
        return self.status_code == GONE_STATUS or self.reason in INVALID_TOKEN_REASONS


class ApplePushNotificationClient:
    """Sends silent update pushes over HTTP/2."""

    def __init__(self, config: SigningConfig) -> None:
        """Initialize the push notification client.

        Args:
            config: Signing credentials; the certificate doubles as APNs client cert.
        """
        self.config = config
        self._host = APNS_SANDBOX_HOST if config.use_sandbox else APNS_PRODUCTION_HOST
        self._client: httpx.Client | None = None

    def _get_ssl_context(self) -> ssl.SSLContext:
        """Create an SSL context with client certificate authentication.

        Raises:
            ApplePushError: If the certificate or key cannot be loaded.
        """
        try:
            context = ssl.create_default_context()
            context.minimum_version = ssl.TLSVersion.TLSv1_2
            context.load_cert_chain(
                certfile=self.config.cert_path,
                keyfile=self.config.key_path,
                password=self.config.key_password or None,
            )
            return context
        except (ssl.SSLError, OSError) as e:
            raise ApplePushError(f"SSL configuration failed: {e}")

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                http2=True,
                verify=self._get_ssl_context(),
                timeout=httpx.Timeout(30.0, connect=10.0),
            )
        return self._client

    def send_update_notification(self, push_token: str) -> None:
        """Send a silent push that makes the device re-fetch its passes.

        Args:
            push_token: The device push token from registration.

        Raises:
            ApplePushError: If APNs rejects the notification or is unreachable.
        """
        url = f"https://{self._host}:{APNS_PORT}/3/device/{push_token}"
        headers = {
            "apns-topic": self.config.pass_type_id,
            "apns-push-type": "background",
            "apns-priority": "5",
        }

        try:
            response = self._get_client().post(url, content="{}", headers=headers)
        except httpx.RequestError as e:
            logger.error("push_notification_request_error", push_token=mask_token(push_token), error=str(e))
            raise ApplePushError(f"Request failed: {e}")

        if response.status_code == 200:
            logger.info("push_notification_sent", push_token=mask_token(push_token))
            return

        reason = None
        try:
            reason = response.json().get("reason")
        except ValueError:
            pass

        logger.warning(
            "push_notification_failed",
            push_token=mask_token(push_token),
            status=response.status_code,
            reason=reason,
        )
        raise ApplePushError(
            reason or f"APNs returned status {response.status_code}",
            status_code=response.status_code,
            reason=reason,
        )

    def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "ApplePushNotificationClient":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        """Context manager exit."""
        self.close()
