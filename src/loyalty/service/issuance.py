"""Issuing new passes for a campaign."""

import typing as t

import structlog
from django.conf import settings

from loyalty.models import Campaign, IssuedPass, generate_serial_number

logger = structlog.get_logger(__name__)


def initial_state(campaign: Campaign, serial_number: str) -> dict[str, t.Any]:
    """Build the starting live state for a campaign's concept."""
    state: dict[str, t.Any]
    match campaign.concept:
        case Campaign.Concept.STAMP_CARD:
            state = {"stamps": 0, "max_stamps": campaign.default_max_stamps, "redemptions": 0}
        case Campaign.Concept.POINTS_CARD:
            state = {"points": 0, "tier": "bronze"}
        case Campaign.Concept.MEMBER_CARD:
            state = {"status": "active", "tier": "member"}
        case _:
            state = {"check_ins": 0}

    state["stamp_icon"] = campaign.stamp_icon or settings.LOYALTY_DEFAULT_STAMP_ICON
    state["customer_number"] = serial_number[-4:].upper()
    return state


def issue_pass(
    campaign: Campaign,
    wallet_type: str = IssuedPass.WalletType.APPLE,
    customer_name: str | None = None,
    consent_marketing: bool = False,
) -> IssuedPass:
    """Create a new pass for a campaign.

    The serial number and authentication token are minted here once and never
    reassigned.

    Args:
        campaign: The campaign the pass belongs to.
        wallet_type: Target wallet platform.
        customer_name: Optional name shown on the card.
        consent_marketing: Whether the customer opted into campaign messages.

    Returns:
        The persisted pass.
    """
    serial_number = generate_serial_number()
    issued_pass = IssuedPass.objects.create(
        campaign=campaign,
        serial_number=serial_number,
        wallet_type=wallet_type,
        current_state=initial_state(campaign, serial_number),
        customer_name=customer_name or "",
        consent_marketing=consent_marketing,
    )
    logger.info(
        "pass_issued",
        pass_id=str(issued_pass.pk),
        serial=serial_number,
        campaign_id=str(campaign.pk),
        wallet_type=wallet_type,
    )
    return issued_pass
