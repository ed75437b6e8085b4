"""Models for merchants, campaigns and issued loyalty passes.

An issued pass owns its live state as an embedded JSON document because its
shape depends on the campaign concept (stamp card, points card, check-in).
All writes to that state go through ``loyalty.service.state.mutate_state``,
which guards them with the ``version`` column.
"""

import secrets
import string
import time
import typing as t
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from common.models import TimeStampedModel
from loyalty.exceptions import InvalidTemplateError
from loyalty.templates import ImageSlot, PassTemplate

AUTH_TOKEN_LENGTH = 32
SERIAL_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_auth_token() -> str:
    """Generate a secure authentication token for pass web service requests."""
    return secrets.token_urlsafe(AUTH_TOKEN_LENGTH)


def generate_serial_number() -> str:
    """Generate a pass serial number, e.g. ``PASS-1718000000000-X7K2QP``."""
    suffix = "".join(secrets.choice(SERIAL_SUFFIX_ALPHABET) for _ in range(6))
    return f"PASS-{int(time.time() * 1000)}-{suffix}"


def default_time_zone() -> str:
    return str(settings.LOYALTY_TIME_ZONE)


def validate_time_zone(value: str) -> None:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown time zone: {value}")


class Merchant(TimeStampedModel):
    """A business running one or more loyalty campaigns."""

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True)
    time_zone = models.CharField(
        max_length=64,
        default=default_time_zone,
        validators=[validate_time_zone],
        help_text="IANA time zone used for day-based windows such as inactivity targeting.",
    )

    def __str__(self) -> str:
        return self.name

    def get_time_zone(self) -> ZoneInfo:
        return ZoneInfo(self.time_zone)


class Campaign(TimeStampedModel):
    """A merchant's loyalty program and the pass design its cards are issued from."""

    class Concept(models.TextChoices):
        STAMP_CARD = "STAMP_CARD", "Stamp Card"
        POINTS_CARD = "POINTS_CARD", "Points Card"
        MEMBER_CARD = "MEMBER_CARD", "Member Card"
        GENERIC = "GENERIC", "Generic"

    merchant = models.ForeignKey(Merchant, on_delete=models.CASCADE, related_name="campaigns")
    name = models.CharField(max_length=255)
    concept = models.CharField(max_length=20, choices=Concept.choices, default=Concept.STAMP_CARD, db_index=True)
    design = models.JSONField(default=dict, blank=True, help_text="Pass template (camelCase JSON).")
    default_max_stamps = models.PositiveIntegerField(default=10, validators=[MinValueValidator(1)])
    stamp_icon = models.CharField(max_length=16, default="☕️", blank=True)
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:
        return f"{self.merchant} - {self.name}"

    def get_template(self) -> PassTemplate:
        """Parse the stored design.

        Raises:
            InvalidTemplateError: If the design is malformed.
        """
        return PassTemplate.from_design(self.design)

    def clean(self) -> None:
        """Validate the design and keep the pass style stable once passes exist.

        Changing the style of a campaign that already issued passes would break
        every pass already downloaded to a device.
        """
        super().clean()
        try:
            template = self.get_template()
        except InvalidTemplateError as e:
            raise ValidationError({"design": [f"{err['field']}: {err['message']}" for err in e.errors]})

        if self._state.adding:
            return

        previous_design = Campaign.objects.filter(pk=self.pk).values_list("design", flat=True).first()
        if previous_design is None:
            return
        previous_style = PassTemplate.from_design(previous_design).style
        if previous_style != template.style and self.issued_passes.exists():
            raise ValidationError({"design": ["The pass style cannot change after passes have been issued."]})


class CampaignImage(TimeStampedModel):
    """Binary image asset for one image slot of a campaign's pass design."""

    campaign = models.ForeignKey(Campaign, on_delete=models.CASCADE, related_name="images")
    slot = models.CharField(max_length=20, choices=[(slot.value, slot.value) for slot in ImageSlot])
    data = models.BinaryField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["campaign", "slot"], name="unique_campaign_image_slot"),
        ]

    def __str__(self) -> str:
        return f"{self.campaign} [{self.slot}]"


class IssuedPass(TimeStampedModel):
    """A single customer's loyalty card.

    The UUID primary key is the internal pass id encoded in the barcode. The
    serial number identifies the pass towards Apple Wallet. Both are minted
    once and never reused.
    """

    class WalletType(models.TextChoices):
        APPLE = "apple", "Apple Wallet"
        GOOGLE = "google", "Google Wallet"

    class VerificationStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        VERIFIED = "verified", "Verified"

    campaign = models.ForeignKey(Campaign, on_delete=models.PROTECT, related_name="issued_passes")
    serial_number = models.CharField(max_length=64, unique=True, default=generate_serial_number, editable=False)
    auth_token = models.CharField(max_length=64, default=generate_auth_token, editable=False)
    wallet_type = models.CharField(
        max_length=10, choices=WalletType.choices, default=WalletType.APPLE, db_index=True
    )
    current_state = models.JSONField(default=dict, blank=True)
    version = models.PositiveIntegerField(default=0, help_text="Optimistic concurrency counter for current_state.")
    last_updated_at = models.DateTimeField(default=timezone.now, db_index=True)
    last_scanned_at = models.DateTimeField(null=True, blank=True)
    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)
    is_installed_on_ios = models.BooleanField(default=False)
    is_installed_on_android = models.BooleanField(default=False)
    verification_status = models.CharField(
        max_length=10, choices=VerificationStatus.choices, default=VerificationStatus.PENDING
    )
    consent_marketing = models.BooleanField(default=False)
    customer_name = models.CharField(max_length=255, blank=True)

    class Meta:
        verbose_name = "Issued Pass"
        verbose_name_plural = "Issued Passes"
        indexes = [
            models.Index(fields=["campaign", "-last_updated_at"], name="pass_campaign_updated_idx"),
        ]

    def __str__(self) -> str:
        return self.serial_number

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def state(self) -> dict[str, t.Any]:
        return dict(self.current_state or {})


class Scan(TimeStampedModel):
    """Append-only record of a scan applied to a pass."""

    class ActionType(models.TextChoices):
        ADD_STAMP = "ADD_STAMP", "Stamp Added"
        STAMP_COMPLETE = "STAMP_COMPLETE", "Card Completed"
        AUTO_REDEEM = "AUTO_REDEEM", "Auto Redeemed"
        REDEEM_REWARD = "REDEEM_REWARD", "Reward Redeemed"
        ADD_POINTS = "ADD_POINTS", "Points Added"
        CHECK_IN = "CHECK_IN", "Check-In"

    issued_pass = models.ForeignKey(IssuedPass, on_delete=models.CASCADE, related_name="scans")
    action_type = models.CharField(max_length=20, choices=ActionType.choices, db_index=True)
    delta_value = models.IntegerField(default=0)
    resulting_state = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["issued_pass", "-created_at"], name="scan_pass_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.get_action_type_display()} ({self.delta_value:+d})"
