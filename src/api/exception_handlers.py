"""Exception handlers for the API."""

import traceback
import typing as t
from copy import deepcopy

import orjson
import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja.responses import Response

from loyalty.exceptions import (
    InvalidTemplateError,
    NotEnoughStampsError,
    StampCardNotConfiguredError,
    StateConflictError,
    UnknownPassError,
)
from wallet.config import WalletConfigurationError
from wallet.google.client import GoogleWalletError

logger = structlog.get_logger(__name__)


def handle_general_exception(request: HttpRequest, exc: Exception | t.Type[Exception]) -> Response:
    """Handle a general exception.

    Args:
        request: The incoming HTTP request.
        exc: The exception.

    Returns:
        The response.
    """
    if request.method in ("POST", "PUT", "PATCH") and request.headers.get("Content-Type") == "application/json":
        try:
            json_payload = obfuscate(orjson.loads(request.body))
        except orjson.JSONDecodeError:  # pragma: no cover
            json_payload = None
    else:
        json_payload = None
    logger.exception(
        "INTERNAL_SERVER_ERROR",
        path=f"{request.method} {request.path}",
        headers=obfuscate(dict(request.headers)),
        query=obfuscate(request.GET.dict()),
        json_payload=json_payload,
    )
    data = {"detail": "Internal Server Error."}
    if settings.DEBUG:  # pragma: no cover
        data["traceback"] = traceback.format_exc()
    return Response(status=500, data=data)


def handle_django_validation_error(request: HttpRequest, exc: ValidationError | t.Type[ValidationError]) -> Response:
    """Handle a validation error.

    Args:
        request: The incoming HTTP request.
        exc: The exception.
    """
    logger.error("VALIDATION_ERROR", exc_info=True)
    if hasattr(exc, "error_dict"):
        errors = {k: [ee for e in v for ee in e] for k, v in exc.error_dict.items()}
    else:
        errors = {"__all__": list(exc.messages)}
    return Response(status=400, data={"errors": errors})


def handle_unknown_pass_error(request: HttpRequest, exc: UnknownPassError | t.Type[UnknownPassError]) -> Response:
    """Handle an unknown pass error."""
    return Response(status=404, data={"detail": "Pass not found."})


def handle_not_enough_stamps_error(
    request: HttpRequest, exc: NotEnoughStampsError | t.Type[NotEnoughStampsError]
) -> Response:
    """Handle a premature redeem."""
    return Response(
        status=400,
        data={"detail": "Not enough stamps to redeem.", "current": exc.current, "required": exc.required},
    )


def handle_stamp_card_not_configured_error(
    request: HttpRequest, exc: StampCardNotConfiguredError | t.Type[StampCardNotConfiguredError]
) -> Response:
    """Handle a stamp scan on a card without a stamp target."""
    return Response(status=400, data={"detail": "This card does not collect stamps."})


def handle_state_conflict_error(
    request: HttpRequest, exc: StateConflictError | t.Type[StateConflictError]
) -> Response:
    """Handle a state conflict that could not be resolved by retrying."""
    return Response(status=409, data={"detail": "The pass was updated concurrently. Please retry."})


def handle_invalid_template_error(
    request: HttpRequest, exc: InvalidTemplateError | t.Type[InvalidTemplateError]
) -> Response:
    """Handle a malformed pass design."""
    return Response(status=400, data={"detail": str(exc), "errors": exc.errors})


def handle_wallet_configuration_error(
    request: HttpRequest, exc: WalletConfigurationError | t.Type[WalletConfigurationError]
) -> Response:
    """Handle missing wallet credentials."""
    logger.error("WALLET_NOT_CONFIGURED", error=str(exc))
    return Response(status=503, data={"detail": "Wallet passes are not available right now."})


def handle_google_wallet_error(request: HttpRequest, exc: GoogleWalletError | t.Type[GoogleWalletError]) -> Response:
    """Handle a failed call to the Google Wallet API."""
    logger.error("GOOGLE_WALLET_ERROR", error=str(exc))
    return Response(status=502, data={"detail": "Google Wallet is not reachable right now."})


SENSITIVE_KEYS = {"password", "token", "x-api-key", "authorization", "authentication", "pushtoken"}


def obfuscate(data: t.Any) -> t.Any:
    """Obfuscate sensitive data in payloads and headers."""
    if not isinstance(data, dict):
        return data
    new_data = deepcopy(data)
    for key in data.keys():
        if key.lower() in SENSITIVE_KEYS:
            new_data[key] = "********"
    return new_data
