"""Wallet API endpoints.

1. Apple Wallet web service (mounted at /api/wallet/v1/...)
   Device registration, the updated-serials listing, pass downloads and
   device logs. Called by Apple Wallet, authenticated with the pass token.
   https://developer.apple.com/documentation/walletpasses/adding-a-web-service-to-update-passes

2. Pass endpoints (at /api/pass/...)
   One-off exports of a design draft and pass issuance for customers.

3. Google Wallet callbacks (at /api/webhooks/google-wallet)
"""

from uuid import UUID

import orjson
import structlog
from django.conf import settings
from django.http import HttpRequest, HttpResponse
from django.shortcuts import get_object_or_404
from ninja import Router
from ninja.errors import HttpError
from ninja_extra import api_controller, route

from common.authentication import MerchantAPIKeyAuth
from common.schema import ResponseOk
from common.throttling import PassExportThrottle
from loyalty.exceptions import InvalidTemplateError
from loyalty.models import Campaign, IssuedPass, generate_serial_number
from loyalty.projector import project
from loyalty.service.issuance import issue_pass
from loyalty.service.state import touch_pass
from loyalty.templates import PassTemplate
from loyalty.validation import validate_draft
from wallet import registry
from wallet.apple.generator import ApplePassGenerator, ApplePassGeneratorError
from wallet.apple.images import ImageReferenceError, decode_base64_image, resolve_images
from wallet.apple.signer import ApplePassSignerError
from wallet.config import SigningConfig, WalletConfigurationError
from wallet.google.ids import pass_id_from_object_id
from wallet.models import PassUpdateLog
from wallet.renderers import get_apple_renderer, get_google_renderer, render_pass
from wallet.schemas import (
    DeviceRegistrationPayload,
    DraftValidationResponse,
    GoogleWalletWebhookResponse,
    LogPayload,
    PassExportPayload,
    SerialNumbersResponse,
)

logger = structlog.get_logger(__name__)

PKPASS_CONTENT_TYPE = ApplePassGenerator.CONTENT_TYPE
GOOGLE_SAVE_EVENTS = frozenset({"save", "insert"})

# Router for Apple Wallet web service callbacks (no API key, uses the pass auth token)
apple_router = Router(tags=["Apple Wallet Web Service"])


def _get_auth_token(request: HttpRequest) -> str | None:
    """Extract the token from ``Authorization: ApplePass <authenticationToken>``."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("ApplePass "):
        return auth_header[len("ApplePass ") :] or None
    return None


def _is_our_pass_type(pass_type_id: str) -> bool:
    if pass_type_id != settings.APPLE_WALLET_PASS_TYPE_ID:
        logger.warning("invalid_pass_type", expected=settings.APPLE_WALLET_PASS_TYPE_ID, received=pass_type_id)
        return False
    return True


def _pkpass_response(content: bytes, filename: str | None = None) -> HttpResponse:
    response = HttpResponse(content, content_type=PKPASS_CONTENT_TYPE)
    if filename:
        response["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response


# -----------------------------------------------------------------------------
# Apple Wallet web service
# -----------------------------------------------------------------------------


@apple_router.post(
    "/v1/devices/{device_library_id}/registrations/{pass_type_id}/{serial_number}",
    response={200: None, 201: None, 401: None, 404: None},
    url_name="wallet_register_device",
)
def register_device(
    request: HttpRequest,
    device_library_id: str,
    pass_type_id: str,
    serial_number: str,
    payload: DeviceRegistrationPayload,
) -> HttpResponse:
    """Register a device to receive update pushes for a pass.

    Returns:
        201: Registration created
        200: Registration existed, push token refreshed
        401: Missing or invalid authorization
        404: Unknown serial number
    """
    auth_token = _get_auth_token(request)
    if not auth_token or not _is_our_pass_type(pass_type_id):
        return HttpResponse(status=401)

    try:
        created = registry.register_device(
            device_library_identifier=device_library_id,
            pass_type_identifier=pass_type_id,
            serial_number=serial_number,
            push_token=payload.pushToken,
            auth_token=auth_token,
        )
    except registry.PassNotFoundError:
        return HttpResponse(status=404)
    except registry.PassAuthenticationError:
        return HttpResponse(status=401)

    return HttpResponse(status=201 if created else 200)


@apple_router.delete(
    "/v1/devices/{device_library_id}/registrations/{pass_type_id}/{serial_number}",
    response={200: None, 401: None},
    url_name="wallet_unregister_device",
)
def unregister_device(
    request: HttpRequest,
    device_library_id: str,
    pass_type_id: str,
    serial_number: str,
) -> HttpResponse:
    """Unregister a device; Apple calls this when the pass is removed.

    Returns:
        200: Unregistered (or was not registered)
        401: Missing or invalid authorization
    """
    auth_token = _get_auth_token(request)
    if not auth_token or not _is_our_pass_type(pass_type_id):
        return HttpResponse(status=401)

    try:
        registry.unregister_device(device_library_id, serial_number, auth_token)
    except (registry.PassNotFoundError, registry.PassAuthenticationError):
        return HttpResponse(status=401)

    return HttpResponse(status=200)


@apple_router.get(
    "/v1/devices/{device_library_id}/registrations/{pass_type_id}",
    response={200: SerialNumbersResponse, 204: None},
    url_name="wallet_get_serial_numbers",
)
def get_serial_numbers(
    request: HttpRequest,
    device_library_id: str,
    pass_type_id: str,
    passesUpdatedSince: str | None = None,
) -> HttpResponse | SerialNumbersResponse:
    """List passes on a device that changed since ``passesUpdatedSince``.

    Returns:
        200: serialNumbers and the new lastUpdated tag
        204: Nothing changed
    """
    if pass_type_id != settings.APPLE_WALLET_PASS_TYPE_ID:
        return HttpResponse(status=204)

    updated = registry.list_updated_serials(device_library_id, pass_type_id, passesUpdatedSince)
    if updated is None:
        return HttpResponse(status=204)

    serial_numbers, last_updated = updated
    return SerialNumbersResponse(serialNumbers=serial_numbers, lastUpdated=last_updated)


@apple_router.get(
    "/v1/passes/{pass_type_id}/{serial_number}",
    url_name="wallet_get_pass",
)
def get_latest_pass(request: HttpRequest, pass_type_id: str, serial_number: str) -> HttpResponse:
    """Download the current version of a pass.

    Returns:
        200: The .pkpass file
        304: Not modified since If-Modified-Since
        401: Missing or invalid authorization
        404: Unknown serial number
        500: The pass could not be built
    """
    auth_token = _get_auth_token(request)
    if not auth_token or not _is_our_pass_type(pass_type_id):
        return HttpResponse(status=401)

    try:
        latest = registry.get_latest_pass(serial_number, auth_token, request.headers.get("If-Modified-Since"))
    except registry.PassNotFoundError:
        return HttpResponse(status=404)
    except registry.PassAuthenticationError:
        return HttpResponse(status=401)
    except (
        WalletConfigurationError,
        ApplePassSignerError,
        ApplePassGeneratorError,
        InvalidTemplateError,
    ) as e:
        logger.error("get_pass_failed", serial=serial_number, error=str(e))
        return HttpResponse(status=500)

    if latest.content is None:
        response = HttpResponse(status=304)
    else:
        response = _pkpass_response(latest.content)
    response["Last-Modified"] = latest.last_modified
    return response


@apple_router.post("/v1/log", response={200: None}, url_name="wallet_log")
def log_errors(request: HttpRequest, payload: LogPayload) -> HttpResponse:
    """Receive error logs from Apple Wallet. Always 200."""
    for log_message in payload.logs:
        logger.info("apple_wallet_device_log", message=log_message)
    return HttpResponse(status=200)


# -----------------------------------------------------------------------------
# Pass export and issuance
# -----------------------------------------------------------------------------


@api_controller("/pass", tags=["Passes"], auth=None)
class PassController:
    @route.post(
        "/export",
        url_name="pass_export",
        auth=MerchantAPIKeyAuth(),
        throttle=PassExportThrottle(),
        response={200: None, 400: DraftValidationResponse},
    )
    def export_pass(self, payload: PassExportPayload) -> HttpResponse | tuple[int, DraftValidationResponse]:
        """Build a signed .pkpass straight from a design draft.

        The pass gets a fresh serial number and no web service, so it never
        receives updates.
        """
        template = PassTemplate.from_design(payload.draft)
        result = validate_draft(template, uploaded_slots=payload.images.keys())
        if not result.valid:
            return 400, DraftValidationResponse(
                errors=[issue.as_dict() for issue in result.errors],
                warnings=[issue.as_dict() for issue in result.warnings],
            )

        uploaded: dict[str, bytes] = {}
        for slot, data in payload.images.items():
            try:
                uploaded[slot] = decode_base64_image(data)
            except ImageReferenceError as e:
                logger.warning("export_image_skipped", slot=slot, error=str(e))

        serial_number = generate_serial_number()
        generator = ApplePassGenerator(SigningConfig.from_settings())
        content = generator.generate_pass(
            template,
            project(template, {}),
            serial_number=serial_number,
            barcode_message=template.barcode.message or serial_number,
            images=resolve_images(template.images, uploaded),
        )
        return _pkpass_response(content, filename="pass.pkpass")

    @route.get("/issue", url_name="pass_issue_apple", response={200: None})
    def issue_apple_pass(
        self,
        campaignId: UUID,
        customerName: str | None = None,
        consentMarketing: bool = False,
    ) -> HttpResponse:
        """Issue a new Apple Wallet pass for a campaign and download it."""
        campaign = get_object_or_404(Campaign, pk=campaignId, is_active=True)
        renderer = get_apple_renderer()

        issued_pass = issue_pass(campaign, IssuedPass.WalletType.APPLE, customerName, consentMarketing)
        content = render_pass(renderer, issued_pass)
        PassUpdateLog.objects.create(
            issued_pass=issued_pass,
            update_type=PassUpdateLog.UpdateType.PASS_GENERATED,
            details={"size": len(content)},
        )
        return _pkpass_response(content, filename=f"{issued_pass.serial_number}.pkpass")

    @route.get("/issue/google", url_name="pass_issue_google", response={200: dict[str, str]})
    def issue_google_pass(
        self,
        campaignId: UUID,
        customerName: str | None = None,
        consentMarketing: bool = False,
    ) -> dict[str, str]:
        """Issue a new Google Wallet pass and return its save link."""
        campaign = get_object_or_404(Campaign, pk=campaignId, is_active=True)
        renderer = get_google_renderer()

        issued_pass = issue_pass(campaign, IssuedPass.WalletType.GOOGLE, customerName, consentMarketing)
        save_link = renderer.save_link(issued_pass)
        PassUpdateLog.objects.create(
            issued_pass=issued_pass,
            update_type=PassUpdateLog.UpdateType.PASS_GENERATED,
            details={"platform": "google"},
        )
        return {"saveUrl": save_link.url, "passId": str(issued_pass.pk)}


# -----------------------------------------------------------------------------
# Google Wallet callbacks
# -----------------------------------------------------------------------------


def _parse_google_callback(body: bytes) -> tuple[str, str]:
    """Extract (event, object id) from either callback shape.

    Raises:
        HttpError: 400 when the body is not a recognizable callback.
    """
    try:
        data = orjson.loads(body or b"{}")
        if isinstance(data, dict) and "signedMessage" in data:
            data = orjson.loads(data["signedMessage"])
    except (orjson.JSONDecodeError, TypeError):
        raise HttpError(400, "Malformed callback body")

    if not isinstance(data, dict):
        raise HttpError(400, "Malformed callback body")

    event = data.get("event") or data.get("eventType")
    object_id = data.get("objectId")
    if not isinstance(event, str) or not isinstance(object_id, str) or not object_id:
        raise HttpError(400, "Callback needs an event and an objectId")
    return event, object_id


@api_controller("/webhooks", tags=["Webhooks"], auth=None)
class GoogleWalletWebhookController:
    @route.get("/google-wallet", url_name="google_wallet_webhook_check", response={200: ResponseOk})
    def check(self) -> ResponseOk:
        """Liveness check for the callback URL."""
        return ResponseOk()

    @route.post("/google-wallet", url_name="google_wallet_webhook", response={200: GoogleWalletWebhookResponse})
    def handle_callback(self, request: HttpRequest) -> GoogleWalletWebhookResponse:
        """Handle a Google Wallet save/delete callback.

        Saving a pass marks it as installed on Android and verified. Other
        events are acknowledged and ignored.
        """
        event, object_id = _parse_google_callback(request.body)
        if event.lower() not in GOOGLE_SAVE_EVENTS:
            logger.info("google_wallet_event_ignored", google_event=event, object_id=object_id)
            return GoogleWalletWebhookResponse(event=event)

        pass_id = pass_id_from_object_id(object_id)
        try:
            UUID(pass_id)
        except ValueError:
            raise HttpError(404, "Pass not found")

        updated = touch_pass(
            pass_id,
            wallet_type=IssuedPass.WalletType.GOOGLE,
            is_installed_on_android=True,
            verification_status=IssuedPass.VerificationStatus.VERIFIED,
        )
        if not updated:
            raise HttpError(404, "Pass not found")

        logger.info("google_wallet_pass_saved", pass_id=pass_id, google_event=event)
        return GoogleWalletWebhookResponse(event=event, passId=pass_id)


