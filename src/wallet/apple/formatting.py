"""Formatting helpers for pass.json values and web service headers."""

import re
from datetime import UTC, datetime
from email.utils import format_datetime, parsedate_to_datetime

from django.utils import timezone

HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
RGB_COLOR_RE = re.compile(r"^rgb\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*\)$")

DEFAULT_COLOR = (0, 0, 0)


def parse_color(value: str | None) -> tuple[int, int, int]:
    """Parse a ``#RRGGBB``, ``#RGB`` or ``rgb(r, g, b)`` color.

    Unparseable values fall back to black.
    """
    if not value:
        return DEFAULT_COLOR
    value = value.strip()

    if match := RGB_COLOR_RE.match(value):
        r, g, b = (min(int(part), 255) for part in match.groups())
        return (r, g, b)

    if match := HEX_COLOR_RE.match(value):
        digits = match.group(1)
        if len(digits) == 3:
            digits = "".join(c * 2 for c in digits)
        return (int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))

    return DEFAULT_COLOR


def to_pass_color(value: str | None) -> str:
    """Convert a color to the ``rgb(r, g, b)`` form Apple Wallet expects."""
    r, g, b = parse_color(value)
    return f"rgb({r}, {g}, {b})"


def to_hex_color(value: str | None) -> str:
    """Convert a color to ``#rrggbb`` (Google Wallet)."""
    r, g, b = parse_color(value)
    return f"#{r:02x}{g:02x}{b:02x}"


def format_http_date(dt: datetime) -> str:
    """Format a datetime as an HTTP date, e.g. ``Wed, 21 Oct 2015 07:28:00 GMT``."""
    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt, timezone.get_default_timezone())
    return format_datetime(dt.astimezone(UTC), usegmt=True)


def parse_http_date(value: str | None) -> datetime | None:
    """Parse an HTTP date header. Returns None when absent or malformed."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if timezone.is_naive(parsed):
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_unix_timestamp(dt: datetime) -> str:
    """Whole seconds since the epoch, as the string Apple's device listing uses."""
    return str(int(dt.timestamp()))
