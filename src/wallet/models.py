"""Models for wallet device registrations and the pass update audit trail.

When a customer adds a pass to Apple Wallet, each device registers with the
web service and hands over a push token. The registrations are the source of
truth for which devices must be told that a pass changed.
"""

from django.db import models

from common.models import TimeStampedModel


class DeviceRegistration(TimeStampedModel):
    """A device that wants update pushes for one pass.

    A pass can be registered on several devices (phone and watch), and a device
    holds many passes. Re-registration from the same device replaces the push
    token instead of adding a row.
    """

    device_library_identifier = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Identifier Apple Wallet assigns to the device.",
    )
    pass_type_identifier = models.CharField(max_length=255)
    issued_pass = models.ForeignKey(
        "loyalty.IssuedPass",
        on_delete=models.CASCADE,
        related_name="device_registrations",
    )
    push_token = models.CharField(
        max_length=255,
        blank=True,
        help_text="APNs token used to notify this device.",
    )

    class Meta:
        verbose_name = "Device Registration"
        verbose_name_plural = "Device Registrations"
        constraints = [
            models.UniqueConstraint(
                fields=["device_library_identifier", "issued_pass"],
                name="unique_device_pass_registration",
            )
        ]

    def __str__(self) -> str:
        return f"{self.device_library_identifier[:8]}... -> {self.issued_pass_id}"


class PassUpdateLog(TimeStampedModel):
    """Audit trail of pass lifecycle events.

    Useful when debugging passes that do not update on a device.
    """

    class UpdateType(models.TextChoices):
        PASS_GENERATED = "generated", "Pass Generated"
        PUSH_SENT = "push_sent", "Push Notification Sent"
        PUSH_FAILED = "push_failed", "Push Notification Failed"
        PASS_FETCHED = "fetched", "Pass Fetched by Device"
        DEVICE_REGISTERED = "registered", "Device Registered"
        DEVICE_UNREGISTERED = "unregistered", "Device Unregistered"
        GOOGLE_OBJECT_UPDATED = "google_updated", "Google Object Updated"
        MESSAGE_SENT = "message_sent", "Message Sent"

    issued_pass = models.ForeignKey(
        "loyalty.IssuedPass",
        on_delete=models.CASCADE,
        related_name="update_logs",
        null=True,
        blank=True,
    )
    update_type = models.CharField(max_length=20, choices=UpdateType.choices, db_index=True)
    details = models.JSONField(default=dict, blank=True)

    class Meta:
        verbose_name = "Pass Update Log"
        verbose_name_plural = "Pass Update Logs"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["issued_pass", "-created_at"], name="update_log_pass_created_idx"),
            models.Index(fields=["update_type", "-created_at"], name="update_log_type_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.get_update_type_display()} - {self.created_at}"
