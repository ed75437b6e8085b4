"""Tests for wallet/tasks.py."""

from unittest.mock import MagicMock

import pytest
from django.utils import timezone

from loyalty.models import IssuedPass
from wallet.dispatcher import BroadcastResult, DispatchResult, UpdateDispatcher
from wallet.models import DeviceRegistration
from wallet.tasks import broadcast_campaign_message, cleanup_stale_registrations, notify_pass_changed

pytestmark = pytest.mark.django_db


class TestNotifyPassChanged:
    def test_reports_counts(self, dispatcher: UpdateDispatcher, apple_pass: IssuedPass) -> None:
        dispatcher.notify_pass_changed = MagicMock(  # type: ignore[method-assign]
            return_value=DispatchResult(sent=2, errors=["Token abc...: BadDeviceToken"])
        )

        result = notify_pass_changed.delay(str(apple_pass.pk)).get()

        assert result == {"notifications_sent": 2, "errors": 1}
        dispatcher.notify_pass_changed.assert_called_once_with(str(apple_pass.pk))


class TestBroadcastCampaignMessage:
    def test_reports_counts(self, dispatcher: UpdateDispatcher) -> None:
        dispatcher.broadcast_message = MagicMock(  # type: ignore[method-assign]
            return_value=BroadcastResult(sent=3, failed=1, total=4)
        )

        result = broadcast_campaign_message.delay("campaign-id", "Hallo", 7).get()

        assert result == {"sent": 3, "failed": 1, "total": 4}
        dispatcher.broadcast_message.assert_called_once_with("campaign-id", "Hallo", 7)

    def test_failure_propagates(self, dispatcher: UpdateDispatcher) -> None:
        dispatcher.broadcast_message = MagicMock(side_effect=RuntimeError("db down"))  # type: ignore[method-assign]

        with pytest.raises(RuntimeError, match="db down"):
            broadcast_campaign_message.delay("campaign-id", "Hallo").get()


class TestCleanupStaleRegistrations:
    def test_removes_registrations_of_deleted_passes(self, apple_pass: IssuedPass, google_pass: IssuedPass) -> None:
        for issued_pass in (apple_pass, google_pass):
            DeviceRegistration.objects.create(
                device_library_identifier="device-1",
                pass_type_identifier="pass.com.example.loyalty",
                issued_pass=issued_pass,
                push_token="token",
            )
        IssuedPass.objects.filter(pk=apple_pass.pk).update(deleted_at=timezone.now())

        result = cleanup_stale_registrations()

        assert result == {"deleted": 1}
        assert list(DeviceRegistration.objects.values_list("issued_pass_id", flat=True)) == [google_pass.pk]

    def test_nothing_to_clean(self) -> None:
        assert cleanup_stale_registrations() == {"deleted": 0}
