"""Update dispatcher: tell wallets that a pass changed.

Apple passes are pull based. Every registered device gets a silent APNs push
and then downloads the rebuilt pass from the web service. Google passes are
push based: the loyalty object is patched directly and Google syncs it.

Delivery is best effort. A failing device or pass is recorded and reported,
never raised, and every outcome lands in ``PassUpdateLog``.

Network calls to the wallet platforms run on a thread pool of at most
``WALLET_PUSH_BATCH_SIZE`` workers so one slow call does not hold up the
others. Database reads and writes stay on the calling thread.
"""

import functools
import typing as t
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from uuid import UUID

import structlog
from django.conf import settings
from django.db.models import Q, QuerySet
from django.utils import timezone

from loyalty.exceptions import LoyaltyError, UnknownPassError
from loyalty.models import Campaign, IssuedPass
from loyalty.service.state import StateUpdate, mutate_state
from wallet.apple.push import ApplePushError, ApplePushNotificationClient, mask_token
from wallet.config import GoogleWalletConfig, SigningConfig, WalletConfigurationError
from wallet.google.builder import GooglePassBuilder
from wallet.google.client import GoogleWalletClient, GoogleWalletError
from wallet.models import DeviceRegistration, PassUpdateLog
from wallet.renderers import GooglePassRenderer

logger = structlog.get_logger(__name__)

BROADCAST_MESSAGE_HEADER = "Neuigkeiten"


@dataclass
class DispatchResult:
    sent: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class BroadcastResult:
    sent: int = 0
    failed: int = 0
    total: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class WalletCall:
    """A single request to a wallet platform on behalf of a pass.

    ``registration`` is set for APNs pushes and empty for Google messages.
    """

    issued_pass: IssuedPass
    send: t.Callable[[], t.Any]
    registration: DeviceRegistration | None = None
    message: str = ""


def push_batch_size() -> int:
    return max(int(settings.WALLET_PUSH_BATCH_SIZE), 1)


def run_concurrently(calls: list[WalletCall]) -> list[Exception | None]:
    """Make the calls, at most ``WALLET_PUSH_BATCH_SIZE`` at a time.

    Returns:
        What each call raised, or None for a successful call, in call order.
    """

    def attempt(call: WalletCall) -> Exception | None:
        try:
            call.send()
        except Exception as e:
            return e
        return None

    workers = min(push_batch_size(), len(calls))
    if workers <= 1:
        return [attempt(call) for call in calls]
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="wallet-push") as executor:
        return list(executor.map(attempt, calls))


def inactivity_cutoff(inactive_days: int, tz: t.Any, now: datetime | None = None) -> datetime:
    """Local midnight, ``inactive_days`` days ago, in the given time zone."""
    now = now or timezone.now()
    local_day = now.astimezone(tz).date() - timedelta(days=inactive_days)
    return datetime.combine(local_day, time.min, tzinfo=tz)


def broadcast_recipients(campaign: Campaign, inactive_days: int | None = None) -> QuerySet[IssuedPass]:
    """Passes of a campaign that may receive a marketing message.

    Only live passes with marketing consent that were verified or installed
    on a device. With ``inactive_days``, only customers not scanned since
    local midnight that many days ago.
    """
    passes = IssuedPass.objects.filter(
        campaign=campaign,
        deleted_at__isnull=True,
        consent_marketing=True,
    ).filter(
        Q(verification_status=IssuedPass.VerificationStatus.VERIFIED)
        | Q(is_installed_on_ios=True)
        | Q(is_installed_on_android=True)
    )

    if inactive_days is not None:
        cutoff = inactivity_cutoff(inactive_days, campaign.merchant.get_time_zone())
        passes = passes.filter(Q(last_scanned_at__isnull=True) | Q(last_scanned_at__lt=cutoff))

    return passes.order_by("created_at")


class UpdateDispatcher:
    """Fans out change notifications per wallet platform.

    Platform clients are composed from settings on first use, so a deployment
    with only one wallet configured still serves the other.
    """

    def __init__(
        self,
        apple_push: ApplePushNotificationClient | None = None,
        google_client: GoogleWalletClient | None = None,
        google_renderer: GooglePassRenderer | None = None,
    ) -> None:
        self._apple_push = apple_push
        self._google_client = google_client
        self._google_renderer = google_renderer

    @property
    def apple_push(self) -> ApplePushNotificationClient:
        """APNs client.

        Raises:
            WalletConfigurationError: If Apple signing credentials are incomplete.
        """
        if self._apple_push is None:
            self._apple_push = ApplePushNotificationClient(SigningConfig.from_settings())
        return self._apple_push

    def _google_config(self) -> GoogleWalletConfig:
        return GoogleWalletConfig.from_settings()

    @property
    def google_client(self) -> GoogleWalletClient:
        """Google Wallet REST client.

        Raises:
            WalletConfigurationError: If Google credentials are incomplete.
        """
        if self._google_client is None:
            self._google_client = GoogleWalletClient(self._google_config())
        return self._google_client

    @property
    def google_renderer(self) -> GooglePassRenderer:
        if self._google_renderer is None:
            self._google_renderer = GooglePassRenderer(GooglePassBuilder(self._google_config()))
        return self._google_renderer

    # -------------------------------------------------------------------------
    # Single pass
    # -------------------------------------------------------------------------

    def notify_pass_changed(self, pass_id: UUID | str) -> DispatchResult:
        """Notify every wallet holding a pass that it changed.

        Args:
            pass_id: The internal pass id.

        Returns:
            Number of successful deliveries and one error entry per failure.
        """
        issued_pass = IssuedPass.objects.select_related("campaign").filter(pk=pass_id).first()
        if issued_pass is None:
            return DispatchResult(errors=[f"Pass not found: {pass_id}"])

        if issued_pass.wallet_type == IssuedPass.WalletType.GOOGLE:
            return self._update_google_object(issued_pass)
        return self._push_apple_devices(issued_pass)

    def _apple_push_calls(self, issued_pass: IssuedPass) -> list[WalletCall]:
        registrations = list(
            DeviceRegistration.objects.filter(issued_pass=issued_pass).exclude(push_token="").order_by("created_at")
        )
        if not registrations:
            return []

        client = self.apple_push
        return [
            WalletCall(
                issued_pass=issued_pass,
                send=functools.partial(client.send_update_notification, registration.push_token),
                registration=registration,
            )
            for registration in registrations
        ]

    def _push_apple_devices(self, issued_pass: IssuedPass) -> DispatchResult:
        result = DispatchResult()
        try:
            calls = self._apple_push_calls(issued_pass)
        except WalletConfigurationError as e:
            logger.warning("apple_push_not_configured", pass_id=str(issued_pass.pk), error=str(e))
            result.errors.append(str(e))
            return result

        if not calls:
            logger.debug("no_device_registrations", pass_id=str(issued_pass.pk))
            return result

        for call, error in zip(calls, run_concurrently(calls)):
            failure = self._record_outcome(call, error)
            if failure is None:
                result.sent += 1
            else:
                result.errors.append(failure)

        logger.info(
            "apple_pass_update_dispatched",
            pass_id=str(issued_pass.pk),
            sent=result.sent,
            failed=len(result.errors),
        )
        return result

    def _record_outcome(self, call: WalletCall, error: Exception | None) -> str | None:
        """Write the outcome of a call to the update log.

        Returns:
            None on success, otherwise the error entry for the result.
        """
        if call.registration is None:
            return self._record_google_message(call, error)

        token = mask_token(call.registration.push_token)
        if error is None:
            PassUpdateLog.objects.create(
                issued_pass=call.issued_pass,
                update_type=PassUpdateLog.UpdateType.PUSH_SENT,
                details={"token": token},
            )
            return None

        if isinstance(error, ApplePushError):
            reason = error.reason or str(error)
            details: dict[str, t.Any] = {"token": token, "status": error.status_code, "reason": error.reason}
        else:
            logger.error("apple_push_crashed", pass_id=str(call.issued_pass.pk), token=token, exc_info=error)
            reason = str(error)
            details = {"token": token, "error": reason}

        PassUpdateLog.objects.create(
            issued_pass=call.issued_pass,
            update_type=PassUpdateLog.UpdateType.PUSH_FAILED,
            details=details,
        )
        if isinstance(error, ApplePushError) and error.is_invalid_token:
            call.registration.delete()
            logger.info("invalid_push_token_removed", pass_id=str(call.issued_pass.pk), token=token)
        return f"Token {token}: {reason}"

    def _record_google_message(self, call: WalletCall, error: Exception | None) -> str | None:
        if error is None:
            PassUpdateLog.objects.create(
                issued_pass=call.issued_pass,
                update_type=PassUpdateLog.UpdateType.MESSAGE_SENT,
                details={"platform": "google", "message": call.message[:200]},
            )
            return None

        logger.warning("google_message_failed", pass_id=str(call.issued_pass.pk), error=str(error))
        PassUpdateLog.objects.create(
            issued_pass=call.issued_pass,
            update_type=PassUpdateLog.UpdateType.PUSH_FAILED,
            details={"platform": "google", "error": str(error)},
        )
        return str(error)

    def _update_google_object(self, issued_pass: IssuedPass) -> DispatchResult:
        try:
            renderer = self.google_renderer
            changes = renderer.object_changes(issued_pass)
            self.google_client.patch_object(renderer.object_id(issued_pass), changes)
        except (WalletConfigurationError, GoogleWalletError, LoyaltyError) as e:
            logger.warning("google_object_update_failed", pass_id=str(issued_pass.pk), error=str(e))
            PassUpdateLog.objects.create(
                issued_pass=issued_pass,
                update_type=PassUpdateLog.UpdateType.PUSH_FAILED,
                details={"platform": "google", "error": str(e)},
            )
            return DispatchResult(errors=[str(e)])

        PassUpdateLog.objects.create(
            issued_pass=issued_pass,
            update_type=PassUpdateLog.UpdateType.GOOGLE_OBJECT_UPDATED,
        )
        return DispatchResult(sent=1)

    # -------------------------------------------------------------------------
    # Campaign broadcast
    # -------------------------------------------------------------------------

    def broadcast_message(
        self, campaign_id: UUID | str, message: str, inactive_days: int | None = None
    ) -> BroadcastResult:
        """Send a message to every eligible pass of a campaign.

        Apple passes carry the message as news in their state and get an update
        push. Google passes get the message attached to their object. Passes
        are processed in batches of ``WALLET_PUSH_BATCH_SIZE`` whose platform
        calls run concurrently; a failing pass does not stop the broadcast.

        Args:
            campaign_id: The campaign to broadcast to.
            message: The message text.
            inactive_days: Only reach customers without a scan since local
                midnight that many days ago.

        Returns:
            Totals and per-pass errors.
        """
        campaign = Campaign.objects.select_related("merchant").get(pk=campaign_id)
        pass_ids = list(broadcast_recipients(campaign, inactive_days).values_list("pk", flat=True))
        result = BroadcastResult(total=len(pass_ids))
        batch_size = push_batch_size()

        for start in range(0, len(pass_ids), batch_size):
            outcomes = self._deliver_batch(pass_ids[start : start + batch_size], message)
            for pass_id, error in outcomes.items():
                if error is None:
                    result.sent += 1
                else:
                    result.failed += 1
                    result.errors.append(f"{pass_id}: {error}")
            logger.debug("broadcast_batch_processed", campaign_id=str(campaign_id), offset=start)

        logger.info(
            "campaign_broadcast_complete",
            campaign_id=str(campaign_id),
            total=result.total,
            sent=result.sent,
            failed=result.failed,
        )
        return result

    def _deliver_batch(self, pass_ids: list[UUID], message: str) -> dict[UUID, str | None]:
        """Deliver a message to a batch of passes.

        A pass fails when it could not be prepared, or when every call made for
        it failed. An Apple pass without devices counts as delivered: the news
        is in its state for the next fetch.

        Returns:
            The error per pass id, or None when the pass was reached.
        """
        failures: dict[UUID, list[str]] = {pass_id: [] for pass_id in pass_ids}
        delivered: dict[UUID, int] = dict.fromkeys(pass_ids, 0)
        calls: list[WalletCall] = []

        for pass_id in pass_ids:
            try:
                calls.extend(self._message_calls(pass_id, message))
            except (LoyaltyError, WalletConfigurationError, GoogleWalletError) as e:
                logger.warning("broadcast_delivery_failed", pass_id=str(pass_id), error=str(e))
                failures[pass_id].append(str(e))
            except Exception as e:
                logger.exception("broadcast_delivery_crashed", pass_id=str(pass_id))
                failures[pass_id].append(str(e))

        for call, error in zip(calls, run_concurrently(calls)):
            failure = self._record_outcome(call, error)
            if failure is None:
                delivered[call.issued_pass.pk] += 1
            else:
                failures[call.issued_pass.pk].append(failure)

        return {
            pass_id: "; ".join(failures[pass_id]) if failures[pass_id] and not delivered[pass_id] else None
            for pass_id in pass_ids
        }

    def _message_calls(self, pass_id: UUID, message: str) -> list[WalletCall]:
        """Prepare the platform calls that deliver a message to one pass.

        Raises:
            UnknownPassError: If the pass no longer exists.
            WalletConfigurationError: If the pass's wallet is not configured.
        """
        issued_pass = IssuedPass.objects.select_related("campaign").filter(pk=pass_id).first()
        if issued_pass is None:
            raise UnknownPassError(f"Pass not found: {pass_id}")

        if issued_pass.wallet_type == IssuedPass.WalletType.GOOGLE:
            object_id = self.google_renderer.object_id(issued_pass)
            client = self.google_client
            return [
                WalletCall(
                    issued_pass=issued_pass,
                    send=functools.partial(client.add_message, object_id, BROADCAST_MESSAGE_HEADER, message),
                    message=message,
                )
            ]

        sent_at = timezone.now().isoformat()

        def set_news(_: IssuedPass, state: dict[str, t.Any]) -> StateUpdate[None]:
            state["latest_news"] = message
            state["last_message_at"] = sent_at
            return StateUpdate(state=state)

        mutate_state(pass_id, set_news)
        PassUpdateLog.objects.create(
            issued_pass=issued_pass,
            update_type=PassUpdateLog.UpdateType.MESSAGE_SENT,
            details={"platform": "apple", "message": message[:200]},
        )
        return self._apple_push_calls(issued_pass)


_dispatcher: UpdateDispatcher | None = None


def get_update_dispatcher() -> UpdateDispatcher:
    """Get the update dispatcher singleton."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = UpdateDispatcher()
    return _dispatcher
