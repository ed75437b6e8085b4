from uuid import UUID

from django.shortcuts import get_object_or_404
from ninja_extra import api_controller, route

from common.authentication import MerchantAPIKeyAuth
from common.throttling import ScanThrottle
from loyalty import schemas
from loyalty.models import Campaign, IssuedPass
from loyalty.service.scan_service import apply_scan
from wallet.tasks import broadcast_campaign_message


@api_controller("/scan", tags=["Scan"], auth=MerchantAPIKeyAuth(), throttle=ScanThrottle())
class ScanController:
    @route.post("", url_name="scan_pass", response={200: schemas.ScanResponse})
    def scan(self, payload: schemas.ScanPayload) -> schemas.ScanResponse:
        """Apply a scan from a point-of-sale scanner.

        The state change is committed before the customer's wallet is notified;
        notification failures show up in ``push.errors`` and never fail the scan.
        """
        result = apply_scan(payload.passId, payload.action, payload.points)
        transition = result.transition
        return schemas.ScanResponse(
            passId=result.issued_pass.pk,
            action=transition.action.value,
            delta=transition.delta,
            newState=transition.state,
            message=result.message,
            celebration=transition.celebration,
            redeemed=transition.redeemed,
            rewardReady=result.reward_ready,
            push=schemas.PushOutcomeSchema(sent=result.push.sent, errors=result.push.errors),
        )

    @route.get("/{pass_id}", url_name="get_pass_state", response={200: schemas.PassStateResponse})
    def get_pass_state(self, pass_id: UUID) -> schemas.PassStateResponse:
        """Return the current state of a pass for display on the scanner."""
        issued_pass = get_object_or_404(IssuedPass.objects.select_related("campaign"), pk=pass_id)
        return schemas.PassStateResponse(
            passId=issued_pass.pk,
            serialNumber=issued_pass.serial_number,
            campaignId=issued_pass.campaign_id,
            campaignName=issued_pass.campaign.name,
            walletType=issued_pass.wallet_type,
            state=issued_pass.state,
            version=issued_pass.version,
            lastUpdatedAt=issued_pass.last_updated_at.isoformat(),
            lastScannedAt=issued_pass.last_scanned_at.isoformat() if issued_pass.last_scanned_at else None,
            isInstalledOnIos=issued_pass.is_installed_on_ios,
            isInstalledOnAndroid=issued_pass.is_installed_on_android,
        )


@api_controller("/campaigns", tags=["Campaigns"], auth=MerchantAPIKeyAuth())
class CampaignController:
    @route.post(
        "/{campaign_id}/message",
        url_name="campaign_broadcast",
        response={202: schemas.BroadcastQueuedResponse},
    )
    def broadcast(
        self, campaign_id: UUID, payload: schemas.BroadcastPayload
    ) -> tuple[int, schemas.BroadcastQueuedResponse]:
        """Queue a message to every eligible pass of the campaign.

        Eligible passes have marketing consent, are still in a wallet and, with
        ``inactiveDays``, have not been scanned since local midnight that many
        days ago.
        """
        campaign = get_object_or_404(Campaign, pk=campaign_id)
        broadcast_campaign_message.delay(str(campaign.pk), payload.message, payload.inactiveDays)
        return 202, schemas.BroadcastQueuedResponse(campaignId=campaign.pk)
