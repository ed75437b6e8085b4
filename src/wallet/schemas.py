"""Schemas for the wallet API endpoints."""

import typing as t

from ninja import Schema
from pydantic import Field


class DeviceRegistrationPayload(Schema):
    """Payload sent by a device when registering for pass updates."""

    pushToken: str = Field(..., description="APNs token for update pushes")


class SerialNumbersResponse(Schema):
    """Serial numbers of passes updated since the device last asked."""

    serialNumbers: list[str] = Field(default_factory=list)
    lastUpdated: str = Field(..., description="Unix timestamp of the most recent update")


class LogPayload(Schema):
    """Error messages reported by Apple Wallet."""

    logs: list[str] = Field(default_factory=list)


class PassExportPayload(Schema):
    """A pass design to export as a one-off .pkpass."""

    draft: dict[str, t.Any]
    images: dict[str, str] = Field(default_factory=dict, description="Slot to base64 data or data URL")


class ValidationIssueSchema(Schema):
    field: str
    message: str
    severity: str


class DraftValidationResponse(Schema):
    errors: list[ValidationIssueSchema] = Field(default_factory=list)
    warnings: list[ValidationIssueSchema] = Field(default_factory=list)


class GoogleWalletWebhookResponse(Schema):
    received: bool = True
    event: str | None = None
    passId: str | None = None
