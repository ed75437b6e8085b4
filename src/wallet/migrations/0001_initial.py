import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("loyalty", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="DeviceRegistration",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True)),
                (
                    "device_library_identifier",
                    models.CharField(
                        db_index=True,
                        help_text="Identifier Apple Wallet assigns to the device.",
                        max_length=255,
                    ),
                ),
                ("pass_type_identifier", models.CharField(max_length=255)),
                (
                    "push_token",
                    models.CharField(blank=True, help_text="APNs token used to notify this device.", max_length=255),
                ),
                (
                    "issued_pass",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="device_registrations",
                        to="loyalty.issuedpass",
                    ),
                ),
            ],
            options={
                "verbose_name": "Device Registration",
                "verbose_name_plural": "Device Registrations",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("device_library_identifier", "issued_pass"),
                        name="unique_device_pass_registration",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="PassUpdateLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True)),
                (
                    "update_type",
                    models.CharField(
                        choices=[
                            ("generated", "Pass Generated"),
                            ("push_sent", "Push Notification Sent"),
                            ("push_failed", "Push Notification Failed"),
                            ("fetched", "Pass Fetched by Device"),
                            ("registered", "Device Registered"),
                            ("unregistered", "Device Unregistered"),
                            ("google_updated", "Google Object Updated"),
                            ("message_sent", "Message Sent"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                ("details", models.JSONField(blank=True, default=dict)),
                (
                    "issued_pass",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="update_logs",
                        to="loyalty.issuedpass",
                    ),
                ),
            ],
            options={
                "verbose_name": "Pass Update Log",
                "verbose_name_plural": "Pass Update Logs",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["issued_pass", "-created_at"], name="update_log_pass_created_idx"),
                    models.Index(fields=["update_type", "-created_at"], name="update_log_type_created_idx"),
                ],
            },
        ),
    ]
