"""Celery tasks for wallet pass operations.

These tasks move the slow parts of pass synchronization (APNs pushes, Google
Wallet API calls, campaign broadcasts) off the request path.
"""

import structlog
from celery import shared_task
from django.db.models import Q

from wallet.dispatcher import get_update_dispatcher
from wallet.models import DeviceRegistration

logger = structlog.get_logger(__name__)


@shared_task(
    name="wallet.notify_pass_changed",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def notify_pass_changed(self: object, pass_id: str) -> dict[str, int]:
    """Tell the customer's wallet that a pass changed.

    Args:
        self: Celery task instance (bound task).
        pass_id: The UUID of the pass that was updated.

    Returns:
        Dictionary with 'notifications_sent' and 'errors' counts.
    """
    logger.info("sending_pass_update_notification", pass_id=pass_id)

    result = get_update_dispatcher().notify_pass_changed(pass_id)
    return {"notifications_sent": result.sent, "errors": len(result.errors)}


@shared_task(
    name="wallet.broadcast_campaign_message",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def broadcast_campaign_message(
    self: object, campaign_id: str, message: str, inactive_days: int | None = None
) -> dict[str, int]:
    """Send a message to every eligible pass of a campaign.

    Args:
        self: Celery task instance (bound task).
        campaign_id: The UUID of the campaign.
        message: The message text.
        inactive_days: Only reach customers inactive for that many days.

    Returns:
        Dictionary with 'sent', 'failed' and 'total' counts.
    """
    logger.info("broadcasting_campaign_message", campaign_id=campaign_id, inactive_days=inactive_days)

    try:
        result = get_update_dispatcher().broadcast_message(campaign_id, message, inactive_days)
    except Exception as e:
        logger.error("campaign_broadcast_failed", campaign_id=campaign_id, error=str(e))
        raise

    return {"sent": result.sent, "failed": result.failed, "total": result.total}


@shared_task(name="wallet.cleanup_stale_registrations")
def cleanup_stale_registrations() -> dict[str, int]:
    """Remove device registrations for passes that were deleted from wallets.

    Returns:
        Dictionary with 'deleted' count.
    """
    logger.info("cleaning_up_wallet_registrations")

    stale = DeviceRegistration.objects.filter(Q(issued_pass__deleted_at__isnull=False))
    count = stale.count()

    if count > 0:
        stale.delete()
        logger.info("wallet_registrations_cleaned", deleted=count)

    return {"deleted": count}
