"""Schemas for the scan and campaign endpoints."""

import typing as t
from uuid import UUID

from ninja import Schema
from pydantic import Field

from loyalty.ledger import ScanAction


class ScanPayload(Schema):
    passId: UUID = Field(..., description="Internal pass id, as read from the barcode")
    action: ScanAction = ScanAction.ADD_STAMP
    points: int | None = Field(None, ge=1, description="Points to add on points cards")


class PushOutcomeSchema(Schema):
    sent: int = 0
    errors: list[str] = Field(default_factory=list)


class ScanResponse(Schema):
    success: bool = True
    passId: UUID
    action: str
    delta: int
    newState: dict[str, t.Any]
    message: str
    celebration: bool = False
    redeemed: bool = False
    rewardReady: bool = False
    push: PushOutcomeSchema


class PassStateResponse(Schema):
    passId: UUID
    serialNumber: str
    campaignId: UUID
    campaignName: str
    walletType: str
    state: dict[str, t.Any]
    version: int
    lastUpdatedAt: str
    lastScannedAt: str | None = None
    isInstalledOnIos: bool
    isInstalledOnAndroid: bool


class BroadcastPayload(Schema):
    message: str = Field(..., min_length=1, max_length=500)
    inactiveDays: int | None = Field(None, ge=1, description="Only reach customers without a scan for this many days")


class BroadcastQueuedResponse(Schema):
    queued: bool = True
    campaignId: UUID
