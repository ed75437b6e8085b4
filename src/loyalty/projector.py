"""State projection: template + live state -> concrete field values.

The projector is pure and platform independent. Both wallet builders render
the same ``ConcreteFields`` so a card shows the same numbers everywhere; only
the presentation differs (icons on Apple, plain text on Google).

Rules are evaluated per field in a fixed order: stamps, points, tier,
customer number and news, then pass-through.
"""

import re
import typing as t
from dataclasses import dataclass

from loyalty.templates import PassTemplate, RenderMode, TemplateField

DEFAULT_STAMP_ICON = "☕️"
DEFAULT_EMPTY_ICON = "⚪️"

ICON_STAMP_KEYS = frozenset({"progress", "progress_visual", "visual"})
TEXT_STAMP_KEYS = frozenset({"stamps", "balance"})
CUSTOMER_NUMBER_KEYS = frozenset({"card", "customer_number"})
NEWS_KEY = "news"
NEWS_LABEL = "Neuigkeiten"

PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass(frozen=True)
class ProjectedField:
    key: str
    label: str
    value: str
    text_alignment: str | None = None
    change_message: str | None = None


@dataclass(frozen=True)
class ConcreteFields:
    """Projected field values, grouped like the template."""

    header: tuple[ProjectedField, ...] = ()
    primary: tuple[ProjectedField, ...] = ()
    secondary: tuple[ProjectedField, ...] = ()
    auxiliary: tuple[ProjectedField, ...] = ()
    back: tuple[ProjectedField, ...] = ()

    def by_group(self) -> dict[str, tuple[ProjectedField, ...]]:
        """Return the groups keyed by their pass.json name."""
        return {
            "headerFields": self.header,
            "primaryFields": self.primary,
            "secondaryFields": self.secondary,
            "auxiliaryFields": self.auxiliary,
            "backFields": self.back,
        }

    def __iter__(self) -> t.Iterator[ProjectedField]:
        for group in self.by_group().values():
            yield from group

    def get(self, key: str) -> ProjectedField | None:
        return next((f for f in self if f.key == key), None)


@dataclass(frozen=True)
class StampProgress:
    current: int
    maximum: int

    @property
    def is_full(self) -> bool:
        return self.current >= self.maximum


def _as_int(value: t.Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def stamp_progress(state: t.Mapping[str, t.Any]) -> StampProgress | None:
    """Read the stamp counters from a live state.

    Returns None when the state has no usable stamp card: no stamp count, or a
    maximum that is missing or not positive.
    """
    current = _as_int(state.get("stamps"))
    maximum = _as_int(state.get("max_stamps"))
    if current is None or maximum is None or maximum <= 0:
        return None
    return StampProgress(current=min(max(current, 0), maximum), maximum=maximum)


def render_stamp_icons(progress: StampProgress, icon: str, empty_icon: str = DEFAULT_EMPTY_ICON) -> str:
    """Render stamps as repeated icons, e.g. ``"☕ ☕ ⚪️ ⚪️"``."""
    icons = [icon] * progress.current + [empty_icon] * (progress.maximum - progress.current)
    return " ".join(icons).strip()


def render_stamp_text(progress: StampProgress) -> str:
    return f"{progress.current} von {progress.maximum}"


def stamp_icon_for(template: PassTemplate, state: t.Mapping[str, t.Any]) -> str:
    """Resolve the filled stamp icon: persisted state, then template, then default."""
    return state.get("stamp_icon") or template.stamps.icon or DEFAULT_STAMP_ICON


def stamp_render_mode(tfield: TemplateField) -> RenderMode | None:
    """Return how a field renders stamps, or None when it is not a stamp field."""
    if tfield.render_mode is not None:
        return tfield.render_mode
    if tfield.key in ICON_STAMP_KEYS:
        return RenderMode.ICON
    if tfield.key in TEXT_STAMP_KEYS:
        return RenderMode.TEXT
    return None


def _substitute_placeholders(value: str, state: t.Mapping[str, t.Any]) -> str:
    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in state and state[name] is not None:
            return str(state[name])
        return match.group(0)

    return PLACEHOLDER_RE.sub(replace, value)


def _project_value(tfield: TemplateField, template: PassTemplate, state: t.Mapping[str, t.Any]) -> str:
    mode = stamp_render_mode(tfield)
    if mode is not None:
        progress = stamp_progress(state)
        if progress is not None:
            if mode is RenderMode.ICON:
                return render_stamp_icons(progress, stamp_icon_for(template, state), template.stamps.empty_icon)
            return render_stamp_text(progress)

    if tfield.key == "points" and state.get("points") is not None:
        return str(state["points"])

    if tfield.key == "tier" and state.get("tier") is not None:
        return str(state["tier"]).upper()

    if tfield.key in CUSTOMER_NUMBER_KEYS and state.get("customer_number"):
        return str(state["customer_number"])

    if tfield.key == NEWS_KEY and state.get("latest_news"):
        return str(state["latest_news"])

    return _substitute_placeholders(str(tfield.value), state)


def _project_group(
    fields: list[TemplateField], template: PassTemplate, state: t.Mapping[str, t.Any]
) -> tuple[ProjectedField, ...]:
    return tuple(
        ProjectedField(
            key=tfield.key,
            label=tfield.label,
            value=_project_value(tfield, template, state),
            text_alignment=tfield.text_alignment.value if tfield.text_alignment else None,
            change_message=tfield.change_message,
        )
        for tfield in fields
    )


def project(template: PassTemplate, state: t.Mapping[str, t.Any]) -> ConcreteFields:
    """Compute the concrete field values of a pass.

    Args:
        template: The pass design.
        state: The pass's live state (stamps, points, tier, news, ...).

    Returns:
        The projected fields, in template order. When the state carries a news
        message and the template has no ``news`` field, a back field is
        appended so the message shows up on the card.
    """
    groups = template.fields
    back = _project_group(groups.back_fields, template, state)

    has_news_field = any(f.key == NEWS_KEY for group in groups.by_group().values() for f in group)
    if state.get("latest_news") and not has_news_field:
        back += (
            ProjectedField(
                key=NEWS_KEY,
                label=NEWS_LABEL,
                value=str(state["latest_news"]),
                change_message="%@",
            ),
        )

    return ConcreteFields(
        header=_project_group(groups.header_fields, template, state),
        primary=_project_group(groups.primary_fields, template, state),
        secondary=_project_group(groups.secondary_fields, template, state),
        auxiliary=_project_group(groups.auxiliary_fields, template, state),
        back=back,
    )
