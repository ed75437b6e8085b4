import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

import loyalty.models


class Migration(migrations.Migration):
    initial = True

    dependencies: list[tuple[str, str]] = []

    operations = [
        migrations.CreateModel(
            name="Merchant",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True)),
                ("name", models.CharField(max_length=255)),
                ("slug", models.SlugField(max_length=255, unique=True)),
                (
                    "time_zone",
                    models.CharField(
                        default=loyalty.models.default_time_zone,
                        help_text="IANA time zone used for day-based windows such as inactivity targeting.",
                        max_length=64,
                        validators=[loyalty.models.validate_time_zone],
                    ),
                ),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="Campaign",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True)),
                ("name", models.CharField(max_length=255)),
                (
                    "concept",
                    models.CharField(
                        choices=[
                            ("STAMP_CARD", "Stamp Card"),
                            ("POINTS_CARD", "Points Card"),
                            ("MEMBER_CARD", "Member Card"),
                            ("GENERIC", "Generic"),
                        ],
                        db_index=True,
                        default="STAMP_CARD",
                        max_length=20,
                    ),
                ),
                ("design", models.JSONField(blank=True, default=dict, help_text="Pass template (camelCase JSON).")),
                (
                    "default_max_stamps",
                    models.PositiveIntegerField(default=10, validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("stamp_icon", models.CharField(blank=True, default="☕️", max_length=16)),
                ("is_active", models.BooleanField(default=True)),
                (
                    "merchant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="campaigns",
                        to="loyalty.merchant",
                    ),
                ),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="CampaignImage",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True)),
                (
                    "slot",
                    models.CharField(
                        choices=[
                            ("icon", "icon"),
                            ("logo", "logo"),
                            ("strip", "strip"),
                            ("thumbnail", "thumbnail"),
                            ("background", "background"),
                            ("footer", "footer"),
                        ],
                        max_length=20,
                    ),
                ),
                ("data", models.BinaryField()),
                (
                    "campaign",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="images",
                        to="loyalty.campaign",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("campaign", "slot"), name="unique_campaign_image_slot")
                ],
            },
        ),
        migrations.CreateModel(
            name="IssuedPass",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True)),
                (
                    "serial_number",
                    models.CharField(
                        default=loyalty.models.generate_serial_number, editable=False, max_length=64, unique=True
                    ),
                ),
                (
                    "auth_token",
                    models.CharField(default=loyalty.models.generate_auth_token, editable=False, max_length=64),
                ),
                (
                    "wallet_type",
                    models.CharField(
                        choices=[("apple", "Apple Wallet"), ("google", "Google Wallet")],
                        db_index=True,
                        default="apple",
                        max_length=10,
                    ),
                ),
                ("current_state", models.JSONField(blank=True, default=dict)),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=0, help_text="Optimistic concurrency counter for current_state."
                    ),
                ),
                ("last_updated_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("last_scanned_at", models.DateTimeField(blank=True, null=True)),
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("is_installed_on_ios", models.BooleanField(default=False)),
                ("is_installed_on_android", models.BooleanField(default=False)),
                (
                    "verification_status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("verified", "Verified")],
                        default="pending",
                        max_length=10,
                    ),
                ),
                ("consent_marketing", models.BooleanField(default=False)),
                ("customer_name", models.CharField(blank=True, max_length=255)),
                (
                    "campaign",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="issued_passes",
                        to="loyalty.campaign",
                    ),
                ),
            ],
            options={
                "verbose_name": "Issued Pass",
                "verbose_name_plural": "Issued Passes",
                "indexes": [models.Index(fields=["campaign", "-last_updated_at"], name="pass_campaign_updated_idx")],
            },
        ),
        migrations.CreateModel(
            name="Scan",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True)),
                (
                    "action_type",
                    models.CharField(
                        choices=[
                            ("ADD_STAMP", "Stamp Added"),
                            ("STAMP_COMPLETE", "Card Completed"),
                            ("AUTO_REDEEM", "Auto Redeemed"),
                            ("REDEEM_REWARD", "Reward Redeemed"),
                            ("ADD_POINTS", "Points Added"),
                            ("CHECK_IN", "Check-In"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                ("delta_value", models.IntegerField(default=0)),
                ("resulting_state", models.JSONField(blank=True, default=dict)),
                (
                    "issued_pass",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="scans",
                        to="loyalty.issuedpass",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["issued_pass", "-created_at"], name="scan_pass_created_idx")],
            },
        ),
    ]
