from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja_extra import NinjaExtraAPI

from common.schema import ResponseOk, VersionResponse
from common.throttling import AnonDefaultThrottle
from loyalty.controllers import CampaignController, ScanController
from loyalty.exceptions import (
    InvalidTemplateError,
    NotEnoughStampsError,
    StampCardNotConfiguredError,
    StateConflictError,
    UnknownPassError,
)
from wallet.controllers import GoogleWalletWebhookController, PassController, apple_router
from wallet.config import WalletConfigurationError
from wallet.google.client import GoogleWalletError

from .exception_handlers import (
    handle_django_validation_error,
    handle_general_exception,
    handle_google_wallet_error,
    handle_invalid_template_error,
    handle_not_enough_stamps_error,
    handle_stamp_card_not_configured_error,
    handle_state_conflict_error,
    handle_unknown_pass_error,
    handle_wallet_configuration_error,
)

api = NinjaExtraAPI(
    title="Passify API",
    docs_url="/docs",
    version=settings.VERSION,
    description=f"Passify API {settings.VERSION}",
    app_name=f"passify-api-{settings.VERSION}",
    urls_namespace="api",
    servers=[
        {"url": settings.SERVICE_URL, "description": settings.SERVICE_DESCRIPTION},
    ],
    throttle=[AnonDefaultThrottle()],
)


@api.get("/version", tags=["Version"], response={200: VersionResponse})
def version(request: HttpRequest) -> tuple[int, VersionResponse]:
    """Get the API version.

    Args:
        request: The incoming HTTP request.

    Returns:
        The response status code and message.
    """
    return 200, VersionResponse(version=settings.VERSION)


@api.get("/healthcheck", tags=["Healthcheck"], response={200: ResponseOk})
def healthcheck(request: HttpRequest) -> tuple[int, ResponseOk]:
    """Check the health of the API."""
    return 200, ResponseOk()


# Apple Wallet web service; Apple derives these paths from webServiceURL
api.add_router("/wallet", apple_router)

api.register_controllers(
    # Loyalty controllers
    ScanController,
    CampaignController,
    # Wallet controllers
    PassController,
    GoogleWalletWebhookController,
)

EXCEPTION_HANDLERS = {
    Exception: handle_general_exception,
    ValidationError: handle_django_validation_error,
    UnknownPassError: handle_unknown_pass_error,
    NotEnoughStampsError: handle_not_enough_stamps_error,
    StampCardNotConfiguredError: handle_stamp_card_not_configured_error,
    StateConflictError: handle_state_conflict_error,
    InvalidTemplateError: handle_invalid_template_error,
    WalletConfigurationError: handle_wallet_configuration_error,
    GoogleWalletError: handle_google_wallet_error,
}

for exc, handler in EXCEPTION_HANDLERS.items():
    api.add_exception_handler(exc, handler)
