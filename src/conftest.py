"""
Project-wide fixtures: merchants, campaigns and issued passes, plus the
autouse plumbing every test relies on (throttles, eager Celery, clean caches).
"""

import typing as t

import pytest
from django.core.cache import cache
from django.test.client import Client
from pytest import MonkeyPatch

import wallet.dispatcher
from loyalty.models import Campaign, IssuedPass, Merchant

MERCHANT_API_KEY = "test-merchant-key"

STAMP_CARD_DESIGN: dict[str, t.Any] = {
    "meta": {"style": "storeCard"},
    "colors": {"backgroundColor": "#8B4513", "foregroundColor": "#FFFFFF", "labelColor": "#F5DEB3"},
    "content": {"organizationName": "Café Mokka", "description": "Stempelkarte", "logoText": "Café Mokka"},
    "fields": {
        "headerFields": [{"key": "card", "label": "Karte", "value": "0000"}],
        "primaryFields": [{"key": "stamps", "label": "Stempel", "value": ""}],
        "secondaryFields": [{"key": "progress", "label": "Fortschritt", "value": ""}],
        "backFields": [{"key": "terms", "label": "Bedingungen", "value": "Nach {{max_stamps}} Stempeln gratis."}],
    },
    "barcode": {"format": "PKBarcodeFormatQR"},
}

POINTS_CARD_DESIGN: dict[str, t.Any] = {
    "meta": {"style": "storeCard"},
    "content": {"organizationName": "Bäckerei Korn", "description": "Punktekarte"},
    "fields": {
        "primaryFields": [{"key": "points", "label": "Punkte", "value": "0"}],
        "secondaryFields": [{"key": "tier", "label": "Level", "value": ""}],
    },
}


@pytest.fixture(autouse=True)
def increase_rate_limit(monkeypatch: MonkeyPatch) -> None:
    """Increase the rate limits so tests never hit a throttle."""
    monkeypatch.setattr("common.throttling.AnonDefaultThrottle.rate", "1000/min")
    monkeypatch.setattr("common.throttling.PassExportThrottle.rate", "1000/min")
    monkeypatch.setattr("common.throttling.ScanThrottle.rate", "1000/min")


@pytest.fixture(autouse=True)
def clear_cache() -> None:
    """Throttle history lives in the cache; start every test from scratch."""
    cache.clear()


@pytest.fixture(autouse=True)
def enable_celery_eager_mode(settings: t.Any) -> None:
    """Enable Celery eager mode for tests so tasks execute synchronously."""
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True


@pytest.fixture(autouse=True)
def reset_update_dispatcher() -> t.Iterator[None]:
    """The dispatcher singleton caches clients composed from settings."""
    wallet.dispatcher._dispatcher = None
    yield
    wallet.dispatcher._dispatcher = None


@pytest.fixture(autouse=True)
def merchant_api_keys(settings: t.Any) -> None:
    settings.MERCHANT_API_KEYS = [MERCHANT_API_KEY]


@pytest.fixture
def merchant_client() -> Client:
    """API client authenticated with a merchant API key."""
    return Client(HTTP_X_API_KEY=MERCHANT_API_KEY)


@pytest.fixture
def merchant() -> Merchant:
    return Merchant.objects.create(name="Café Mokka", slug="cafe-mokka", time_zone="Europe/Berlin")


@pytest.fixture
def stamp_campaign(merchant: Merchant) -> Campaign:
    return Campaign.objects.create(
        merchant=merchant,
        name="Kaffee-Stempelkarte",
        concept=Campaign.Concept.STAMP_CARD,
        design=STAMP_CARD_DESIGN,
        default_max_stamps=5,
        stamp_icon="☕",
    )


@pytest.fixture
def points_campaign(merchant: Merchant) -> Campaign:
    return Campaign.objects.create(
        merchant=merchant,
        name="Brot-Punkte",
        concept=Campaign.Concept.POINTS_CARD,
        design=POINTS_CARD_DESIGN,
    )


@pytest.fixture
def apple_pass(stamp_campaign: Campaign) -> IssuedPass:
    """An Apple stamp card pass with two stamps."""
    return IssuedPass.objects.create(
        campaign=stamp_campaign,
        wallet_type=IssuedPass.WalletType.APPLE,
        current_state={"stamps": 2, "max_stamps": 5, "redemptions": 0, "stamp_icon": "☕", "customer_number": "AB12"},
        consent_marketing=True,
    )


@pytest.fixture
def google_pass(stamp_campaign: Campaign) -> IssuedPass:
    """A Google stamp card pass with two stamps."""
    return IssuedPass.objects.create(
        campaign=stamp_campaign,
        wallet_type=IssuedPass.WalletType.GOOGLE,
        current_state={"stamps": 2, "max_stamps": 5, "redemptions": 0},
        consent_marketing=True,
    )
