import secrets
import typing as t

from django.conf import settings
from django.http import HttpRequest
from ninja.security import APIKeyHeader


class MerchantAPIKeyAuth(APIKeyHeader):
    """API key authentication for merchant-facing endpoints.

    POS scanners and admin tooling send ``X-API-Key: <key>``. Keys are listed in
    the ``MERCHANT_API_KEYS`` setting. With no keys configured every request is
    rejected.
    """

    param_name = "X-API-Key"

    def authenticate(self, request: HttpRequest, key: str | None) -> t.Any:
        """Return the matching key, or None to reject the request."""
        if not key:
            return None
        for candidate in settings.MERCHANT_API_KEYS:
            if candidate and secrets.compare_digest(candidate, key):
                return key
        return None
