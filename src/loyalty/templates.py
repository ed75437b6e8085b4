"""Pass template model.

A template is the merchant-authored design of a loyalty card: field slots,
colors, barcode, image references and geofence locations. It is pure data and
is stored as JSON on the campaign (camelCase keys, as produced by the design
editor). Behaviour lives in the projector and the platform builders.
"""

import typing as t
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from loyalty.exceptions import InvalidTemplateError


class PassStyle(StrEnum):
    STORE_CARD = "storeCard"
    COUPON = "coupon"
    EVENT_TICKET = "eventTicket"
    GENERIC = "generic"
    BOARDING_PASS = "boardingPass"


class RenderMode(StrEnum):
    """How a stamp field is rendered."""

    ICON = "icon"
    TEXT = "text"


class TextAlignment(StrEnum):
    LEFT = "PKTextAlignmentLeft"
    CENTER = "PKTextAlignmentCenter"
    RIGHT = "PKTextAlignmentRight"
    NATURAL = "PKTextAlignmentNatural"


class BarcodeFormat(StrEnum):
    QR = "PKBarcodeFormatQR"
    PDF417 = "PKBarcodeFormatPDF417"
    AZTEC = "PKBarcodeFormatAztec"
    CODE128 = "PKBarcodeFormatCode128"


SQUARE_BARCODE_FORMATS = frozenset({BarcodeFormat.QR, BarcodeFormat.AZTEC})


class ImageSlot(StrEnum):
    ICON = "icon"
    LOGO = "logo"
    STRIP = "strip"
    THUMBNAIL = "thumbnail"
    BACKGROUND = "background"
    FOOTER = "footer"


FIELD_GROUPS = ("headerFields", "primaryFields", "secondaryFields", "auxiliaryFields", "backFields")


class TemplateModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class TemplateField(TemplateModel):
    """A single label/value slot on the pass."""

    key: str
    label: str = ""
    value: str | int | float = ""
    text_alignment: TextAlignment | None = None
    change_message: str | None = None
    render_mode: RenderMode | None = None


class FieldGroups(TemplateModel):
    header_fields: list[TemplateField] = Field(default_factory=list)
    primary_fields: list[TemplateField] = Field(default_factory=list)
    secondary_fields: list[TemplateField] = Field(default_factory=list)
    auxiliary_fields: list[TemplateField] = Field(default_factory=list)
    back_fields: list[TemplateField] = Field(default_factory=list)

    def by_group(self) -> dict[str, list[TemplateField]]:
        """Return the field lists keyed by their pass.json group name."""
        return {
            "headerFields": self.header_fields,
            "primaryFields": self.primary_fields,
            "secondaryFields": self.secondary_fields,
            "auxiliaryFields": self.auxiliary_fields,
            "backFields": self.back_fields,
        }


class Colors(TemplateModel):
    background_color: str = "#1A1A1A"
    foreground_color: str = "#FFFFFF"
    label_color: str = "#888888"


class BarcodeSpec(TemplateModel):
    format: BarcodeFormat = BarcodeFormat.QR
    message_encoding: str = "iso-8859-1"
    alt_text: str | None = None
    # Only meaningful for ad-hoc exports; issued passes always encode their id.
    message: str | None = None


class Location(TemplateModel):
    latitude: float
    longitude: float
    relevant_text: str = "Du bist in der Nähe! 🎉"


class Content(TemplateModel):
    description: str = "Loyalty Card"
    organization_name: str = "Passify"
    logo_text: str | None = None
    hide_logo_text: bool = False


class StampStyle(TemplateModel):
    icon: str | None = None
    empty_icon: str = "⚪️"


class TemplateMeta(TemplateModel):
    style: PassStyle = PassStyle.STORE_CARD
    template_id: str | None = None


class PassTemplate(TemplateModel):
    """The complete, platform-independent design of a pass."""

    meta: TemplateMeta = Field(default_factory=TemplateMeta)
    colors: Colors = Field(default_factory=Colors)
    fields: FieldGroups = Field(default_factory=FieldGroups)
    images: dict[ImageSlot, str] = Field(default_factory=dict)
    barcode: BarcodeSpec = Field(default_factory=BarcodeSpec)
    locations: list[Location] = Field(default_factory=list)
    content: Content = Field(default_factory=Content)
    stamps: StampStyle = Field(default_factory=StampStyle)

    @field_validator("images", mode="before")
    @classmethod
    def _unwrap_image_objects(cls, value: t.Any) -> t.Any:
        # The editor stores images either as plain strings or as {"url": ...}
        if not isinstance(value, dict):
            return value
        unwrapped: dict[str, t.Any] = {}
        for slot, ref in value.items():
            if isinstance(ref, dict):
                ref = ref.get("url")
            if ref:
                unwrapped[slot] = ref
        return unwrapped

    @property
    def style(self) -> PassStyle:
        return self.meta.style

    @classmethod
    def from_design(cls, design: dict[str, t.Any] | None) -> "PassTemplate":
        """Parse a stored design document.

        Args:
            design: The JSON design as stored on the campaign.

        Returns:
            The parsed template. An empty design yields the default store card.

        Raises:
            InvalidTemplateError: If the design does not match the template schema.
        """
        try:
            return cls.model_validate(design or {})
        except ValidationError as e:
            errors = [
                {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]} for err in e.errors()
            ]
            raise InvalidTemplateError("Invalid pass design", errors=errors) from e

    def to_design(self) -> dict[str, t.Any]:
        """Serialize back to the stored camelCase JSON form."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
