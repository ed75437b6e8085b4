"""Scan ingestion: apply a point-of-sale scan and propagate it to wallets."""

import typing as t
from dataclasses import dataclass, field
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from loyalty import ledger
from loyalty.ledger import ScanAction, Transition
from loyalty.models import Campaign, IssuedPass, Scan
from loyalty.service.state import StateUpdate, mutate_state
from wallet.dispatcher import DispatchResult, get_update_dispatcher

logger = structlog.get_logger(__name__)


@dataclass
class ScanResult:
    issued_pass: IssuedPass
    transition: Transition
    message: str
    push: DispatchResult = field(default_factory=DispatchResult)

    @property
    def reward_ready(self) -> bool:
        state = self.transition.state
        maximum = state.get("max_stamps")
        return bool(maximum) and int(state.get("stamps") or 0) >= int(maximum)


def compute_transition(
    campaign: Campaign, state: dict[str, t.Any], action: ScanAction, points: int | None = None
) -> Transition:
    """Pick the transition for a campaign concept."""
    now = timezone.now()
    match campaign.concept:
        case Campaign.Concept.STAMP_CARD:
            return ledger.apply_stamp_action(state, action, now, campaign.default_max_stamps)
        case Campaign.Concept.POINTS_CARD:
            return ledger.apply_points_action(state, points)
    return ledger.apply_check_in(state, now)


def apply_scan(pass_id: UUID | str, action: ScanAction = ScanAction.ADD_STAMP, points: int | None = None) -> ScanResult:
    """Apply a scan to a pass, record it and notify the customer's wallet.

    The state change commits before any notification is attempted. A failing
    notification is reported in the result and never undoes the scan.

    Args:
        pass_id: The internal pass id (the barcode content).
        action: The requested scan action.
        points: Points to add on points cards (defaults to 1).

    Returns:
        The scan result with the new state and the notification outcome.

    Raises:
        UnknownPassError: If the pass does not exist.
        NotEnoughStampsError: If a reward is redeemed too early.
        StateConflictError: If concurrent scans keep conflicting.
    """

    def mutator(issued_pass: IssuedPass, state: dict[str, t.Any]) -> StateUpdate[Transition]:
        transition = compute_transition(issued_pass.campaign, state, action, points)
        fields: dict[str, t.Any] = {"last_scanned_at": timezone.now()}
        if issued_pass.wallet_type == IssuedPass.WalletType.GOOGLE and not issued_pass.is_installed_on_android:
            # Google has no registration callback; the first scan proves the install
            fields["is_installed_on_android"] = True
        return StateUpdate(state=transition.state, fields=fields, outcome=transition)

    with transaction.atomic():
        issued_pass, update = mutate_state(pass_id, mutator)
        transition = t.cast(Transition, update.outcome)
        Scan.objects.create(
            issued_pass=issued_pass,
            action_type=transition.action.value,
            delta_value=transition.delta,
            resulting_state=transition.state,
        )

    logger.info(
        "scan_applied",
        pass_id=str(issued_pass.pk),
        action=transition.action.value,
        delta=transition.delta,
    )

    result = ScanResult(
        issued_pass=issued_pass,
        transition=transition,
        message=ledger.success_message(transition),
    )
    result.push = _notify_wallet(issued_pass)
    return result


def _notify_wallet(issued_pass: IssuedPass) -> DispatchResult:
    try:
        return get_update_dispatcher().notify_pass_changed(issued_pass.pk)
    except Exception as e:
        logger.exception("scan_wallet_notification_failed", pass_id=str(issued_pass.pk))
        return DispatchResult(sent=0, errors=[str(e)])
