"""Device registry for the Apple PassKit web service.

Implements the state changes behind the four PassKit operations: register,
unregister, list updated serials and fetch the latest pass. Every
authenticated operation resolves the pass through ``authenticate_pass``,
which compares tokens in constant time and takes the same path for unknown
serials and wrong tokens up to the final result.
"""

import secrets
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from django.db import transaction
from django.utils import timezone

from loyalty.models import IssuedPass, generate_auth_token
from wallet.apple.formatting import format_http_date, format_unix_timestamp, parse_http_date
from wallet.apple.push import mask_token
from wallet.models import DeviceRegistration, PassUpdateLog
from wallet.renderers import ApplePassRenderer, get_apple_renderer, render_pass

logger = structlog.get_logger(__name__)

# Compared against when the serial is unknown, so both paths do the same work
_UNKNOWN_PASS_TOKEN = generate_auth_token()


class PassNotFoundError(Exception):
    """Raised when no pass exists for a serial number."""

    pass


class PassAuthenticationError(Exception):
    """Raised when the ApplePass token does not match the pass."""

    pass


def authenticate_pass(serial_number: str, auth_token: str) -> IssuedPass:
    """Resolve a pass by serial number and verify its authentication token.

    Raises:
        PassNotFoundError: If the serial number is unknown.
        PassAuthenticationError: If the token does not match.
    """
    issued_pass = IssuedPass.objects.select_related("campaign").filter(serial_number=serial_number).first()
    expected = issued_pass.auth_token if issued_pass is not None else _UNKNOWN_PASS_TOKEN
    token_matches = secrets.compare_digest(expected.encode(), auth_token.encode())

    if issued_pass is None:
        raise PassNotFoundError(f"Unknown serial number: {serial_number}")
    if not token_matches:
        raise PassAuthenticationError(f"Invalid authentication token for {serial_number}")
    return issued_pass


def register_device(
    device_library_identifier: str,
    pass_type_identifier: str,
    serial_number: str,
    push_token: str,
    auth_token: str,
) -> bool:
    """Register a device for update pushes of a pass.

    Registering again from the same device replaces the push token. The pass is
    marked as verified and installed on iOS.

    Returns:
        True if a new registration was created, False if an existing one was
        refreshed.

    Raises:
        PassNotFoundError: If the serial number is unknown.
        PassAuthenticationError: If the token does not match.
    """
    issued_pass = authenticate_pass(serial_number, auth_token)

    with transaction.atomic():
        _, created = DeviceRegistration.objects.update_or_create(
            device_library_identifier=device_library_identifier,
            issued_pass=issued_pass,
            defaults={"pass_type_identifier": pass_type_identifier, "push_token": push_token},
        )
        IssuedPass.objects.filter(pk=issued_pass.pk).update(
            verification_status=IssuedPass.VerificationStatus.VERIFIED,
            is_installed_on_ios=True,
            deleted_at=None,
        )
        PassUpdateLog.objects.create(
            issued_pass=issued_pass,
            update_type=PassUpdateLog.UpdateType.DEVICE_REGISTERED,
            details={"device": device_library_identifier[:8], "created": created},
        )

    logger.info(
        "device_registered",
        serial=serial_number,
        device=device_library_identifier[:8],
        push_token=mask_token(push_token),
        created=created,
    )
    return created


def unregister_device(device_library_identifier: str, serial_number: str, auth_token: str) -> bool:
    """Remove a device registration and soft-delete the pass.

    Apple calls this when the pass is removed from the wallet. A missing
    registration is not an error.

    Returns:
        True if a registration was deleted.

    Raises:
        PassNotFoundError: If the serial number is unknown.
        PassAuthenticationError: If the token does not match.
    """
    issued_pass = authenticate_pass(serial_number, auth_token)

    with transaction.atomic():
        deleted_count, _ = DeviceRegistration.objects.filter(
            device_library_identifier=device_library_identifier,
            issued_pass=issued_pass,
        ).delete()
        IssuedPass.objects.filter(pk=issued_pass.pk).update(deleted_at=timezone.now(), is_installed_on_ios=False)
        PassUpdateLog.objects.create(
            issued_pass=issued_pass,
            update_type=PassUpdateLog.UpdateType.DEVICE_UNREGISTERED,
            details={"device": device_library_identifier[:8], "deleted": deleted_count},
        )

    logger.info("device_unregistered", serial=serial_number, device=device_library_identifier[:8])
    return deleted_count > 0


def list_updated_serials(
    device_library_identifier: str,
    pass_type_identifier: str,
    passes_updated_since: str | None = None,
) -> tuple[list[str], str] | None:
    """List the serial numbers registered on a device that changed since a tag.

    Args:
        device_library_identifier: The device asking.
        pass_type_identifier: Pass type of the registrations.
        passes_updated_since: The ``lastUpdated`` tag of a previous answer
            (unix seconds). Unparseable values are ignored.

    Returns:
        The serial numbers and the new ``lastUpdated`` tag, or None when
        nothing changed.
    """
    passes = IssuedPass.objects.filter(
        device_registrations__device_library_identifier=device_library_identifier,
        device_registrations__pass_type_identifier=pass_type_identifier,
    )

    if passes_updated_since:
        try:
            since = datetime.fromtimestamp(int(passes_updated_since), tz=UTC)
        except (ValueError, OverflowError, OSError):
            logger.debug("invalid_passes_updated_since", value=passes_updated_since)
        else:
            # Tags have second precision; the tagged second is listed again
            passes = passes.filter(last_updated_at__gte=since)

    rows = list(passes.distinct().order_by("last_updated_at").values_list("serial_number", "last_updated_at"))
    if not rows:
        return None

    serial_numbers = [serial for serial, _ in rows]
    return serial_numbers, format_unix_timestamp(rows[-1][1])


@dataclass(frozen=True)
class LatestPass:
    issued_pass: IssuedPass
    last_modified: str
    content: bytes | None = None

    @property
    def not_modified(self) -> bool:
        return self.content is None


def get_latest_pass(
    serial_number: str,
    auth_token: str,
    if_modified_since: str | None = None,
    renderer: ApplePassRenderer | None = None,
) -> LatestPass:
    """Rebuild a pass with its current state for a device.

    Returns:
        The pass bytes, or no content when the pass has not changed since
        ``if_modified_since``.

    Raises:
        PassNotFoundError: If the serial number is unknown.
        PassAuthenticationError: If the token does not match.
        WalletConfigurationError: If Apple signing is not configured.
        ApplePassSignerError, ApplePassGeneratorError: If the build fails.
    """
    issued_pass = authenticate_pass(serial_number, auth_token)
    last_modified = format_http_date(issued_pass.last_updated_at)

    client_time = parse_http_date(if_modified_since)
    # Last-Modified is truncated to the second, so a change later in that second is newer
    if client_time is not None and issued_pass.last_updated_at < client_time:
        return LatestPass(issued_pass=issued_pass, last_modified=last_modified)

    content = render_pass(renderer or get_apple_renderer(), issued_pass)
    PassUpdateLog.objects.create(
        issued_pass=issued_pass,
        update_type=PassUpdateLog.UpdateType.PASS_FETCHED,
        details={"size": len(content)},
    )
    return LatestPass(issued_pass=issued_pass, last_modified=last_modified, content=content)
