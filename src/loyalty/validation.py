"""Apple Wallet layout rules for pass drafts.

Apple silently drops fields that exceed a style's limits and rejects some
image combinations outright, so drafts are checked before a pass is exported.
"""

import typing as t
from dataclasses import dataclass, field

from loyalty.templates import SQUARE_BARCODE_FORMATS, ImageSlot, PassStyle, PassTemplate


@dataclass(frozen=True)
class LayoutDefinition:
    """Field limits and allowed images for a pass style."""

    style: PassStyle
    display_name: str
    allowed_images: frozenset[ImageSlot]
    header_fields: int = 3
    primary_fields: int = 1
    secondary_fields: int = 4
    auxiliary_fields: int = 4
    square_barcode_reduces_fields: bool = False
    strip_blocks_background_and_thumbnail: bool = False


LAYOUT_DEFINITIONS: dict[PassStyle, LayoutDefinition] = {
    PassStyle.STORE_CARD: LayoutDefinition(
        style=PassStyle.STORE_CARD,
        display_name="Store Card",
        allowed_images=frozenset({ImageSlot.LOGO, ImageSlot.ICON, ImageSlot.STRIP}),
        square_barcode_reduces_fields=True,
    ),
    PassStyle.COUPON: LayoutDefinition(
        style=PassStyle.COUPON,
        display_name="Coupon",
        allowed_images=frozenset({ImageSlot.LOGO, ImageSlot.ICON, ImageSlot.STRIP}),
        square_barcode_reduces_fields=True,
    ),
    PassStyle.GENERIC: LayoutDefinition(
        style=PassStyle.GENERIC,
        display_name="Generic",
        allowed_images=frozenset({ImageSlot.LOGO, ImageSlot.ICON, ImageSlot.THUMBNAIL}),
        square_barcode_reduces_fields=True,
    ),
    PassStyle.EVENT_TICKET: LayoutDefinition(
        style=PassStyle.EVENT_TICKET,
        display_name="Event Ticket",
        allowed_images=frozenset(
            {ImageSlot.LOGO, ImageSlot.ICON, ImageSlot.STRIP, ImageSlot.THUMBNAIL, ImageSlot.BACKGROUND}
        ),
        strip_blocks_background_and_thumbnail=True,
    ),
    PassStyle.BOARDING_PASS: LayoutDefinition(
        style=PassStyle.BOARDING_PASS,
        display_name="Boarding Pass",
        allowed_images=frozenset({ImageSlot.LOGO, ImageSlot.ICON, ImageSlot.FOOTER}),
        header_fields=2,
        primary_fields=2,
        secondary_fields=5,
        auxiliary_fields=5,
    ),
}

# Combined secondary + auxiliary limit when a square barcode takes up the space
SQUARE_BARCODE_FIELD_LIMIT = 4

HEADER_VALUE_MAX_LENGTH = 10
PRIMARY_VALUE_MAX_LENGTH = 20
LOGO_TEXT_MAX_LENGTH = 20


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str
    severity: str = "error"

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message, "severity": self.severity}


@dataclass
class ValidationResult:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def get_layout_definition(style: PassStyle) -> LayoutDefinition:
    return LAYOUT_DEFINITIONS[style]


def validate_draft(template: PassTemplate, uploaded_slots: t.Iterable[str] = ()) -> ValidationResult:
    """Check a draft against the Apple Wallet layout rules of its style.

    Args:
        template: The pass design to check.
        uploaded_slots: Names of image slots uploaded alongside the draft. They
            are checked together with the images the design references.

    Returns:
        The collected errors (export must be refused) and warnings (text may be
        truncated on device).
    """
    result = ValidationResult()
    layout = get_layout_definition(template.style)

    _validate_field_limits(template, layout, result)
    slots = _collect_image_slots(template, uploaded_slots, result)
    _validate_image_slots(slots, layout, result)

    if layout.strip_blocks_background_and_thumbnail and ImageSlot.STRIP in slots:
        for slot in (ImageSlot.BACKGROUND, ImageSlot.THUMBNAIL):
            if slot in slots:
                result.errors.append(
                    ValidationIssue(f"images.{slot}", f"Bei eventTicket mit Strip ist kein {slot} erlaubt")
                )

    if not template.content.description.strip():
        result.errors.append(ValidationIssue("content.description", "Beschreibung ist erforderlich"))

    _validate_text_lengths(template, result)

    if template.barcode.message is not None and not template.barcode.message:
        result.warnings.append(ValidationIssue("barcode.message", "Barcode-Nachricht ist leer", "warning"))

    return result


def _validate_field_limits(template: PassTemplate, layout: LayoutDefinition, result: ValidationResult) -> None:
    fields = template.fields

    if len(fields.header_fields) > layout.header_fields:
        result.errors.append(
            ValidationIssue("fields.headerFields", f"Max {layout.header_fields} Header-Felder erlaubt")
        )
    if len(fields.primary_fields) > layout.primary_fields:
        result.errors.append(
            ValidationIssue("fields.primaryFields", f"Max {layout.primary_fields} Primary-Feld(er) erlaubt")
        )

    if layout.square_barcode_reduces_fields and template.barcode.format in SQUARE_BARCODE_FORMATS:
        if len(fields.secondary_fields) + len(fields.auxiliary_fields) > SQUARE_BARCODE_FIELD_LIMIT:
            result.errors.append(
                ValidationIssue(
                    "fields.secondaryFields",
                    f"Bei QR-Code: Secondary + Auxiliary zusammen max {SQUARE_BARCODE_FIELD_LIMIT}",
                )
            )
        return

    if len(fields.secondary_fields) > layout.secondary_fields:
        result.errors.append(
            ValidationIssue("fields.secondaryFields", f"Max {layout.secondary_fields} Secondary-Felder erlaubt")
        )
    if len(fields.auxiliary_fields) > layout.auxiliary_fields:
        result.errors.append(
            ValidationIssue("fields.auxiliaryFields", f"Max {layout.auxiliary_fields} Auxiliary-Felder erlaubt")
        )


def _collect_image_slots(
    template: PassTemplate, uploaded_slots: t.Iterable[str], result: ValidationResult
) -> set[ImageSlot]:
    slots = set(template.images)
    for name in uploaded_slots:
        try:
            slots.add(ImageSlot(name))
        except ValueError:
            result.errors.append(ValidationIssue(f"images.{name}", f"Unbekannter Bildtyp: {name}"))
    return slots


def _validate_image_slots(slots: set[ImageSlot], layout: LayoutDefinition, result: ValidationResult) -> None:
    for slot in sorted(slots):
        if slot not in layout.allowed_images:
            result.errors.append(
                ValidationIssue(f"images.{slot}", f"{slot} ist für {layout.display_name} nicht erlaubt")
            )


def _validate_text_lengths(template: PassTemplate, result: ValidationResult) -> None:
    for i, tfield in enumerate(template.fields.primary_fields):
        if len(str(tfield.value)) > PRIMARY_VALUE_MAX_LENGTH:
            result.warnings.append(
                ValidationIssue(
                    f"fields.primaryFields[{i}]",
                    f'Primary-Wert "{tfield.value}" könnte abgeschnitten werden',
                    "warning",
                )
            )
    for i, tfield in enumerate(template.fields.header_fields):
        if len(str(tfield.value)) > HEADER_VALUE_MAX_LENGTH:
            result.warnings.append(
                ValidationIssue(
                    f"fields.headerFields[{i}]",
                    f'Header-Wert "{tfield.value}" könnte abgeschnitten werden',
                    "warning",
                )
            )
    logo_text = template.content.logo_text
    if logo_text and len(logo_text) > LOGO_TEXT_MAX_LENGTH:
        result.warnings.append(ValidationIssue("content.logoText", "Logo-Text könnte abgeschnitten werden", "warning"))
