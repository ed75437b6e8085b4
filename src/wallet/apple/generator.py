"""Apple Wallet pass generator.

A .pkpass file is a ZIP archive containing:
- pass.json: the pass definition
- images: icon, logo, strip, ... as ``{slot}.png`` and ``{slot}@2x.png``
- manifest.json: SHA-1 hashes of all files
- signature: PKCS#7 signature of the manifest
"""

import io
import json
import zipfile
from typing import Any

import structlog

from loyalty.projector import ConcreteFields, ProjectedField
from loyalty.templates import ImageSlot, PassTemplate
from wallet.apple.formatting import to_pass_color
from wallet.apple.images import FALLBACK_ICON_PNG
from wallet.apple.signer import ApplePassSigner, ApplePassSignerError
from wallet.config import SigningConfig

logger = structlog.get_logger(__name__)

BARCODE_MESSAGE_ENCODING = "iso-8859-1"


class ApplePassGeneratorError(Exception):
    """Raised when pass generation fails."""

    pass


def _field_json(pfield: ProjectedField) -> dict[str, Any]:
    data: dict[str, Any] = {"key": pfield.key, "label": pfield.label, "value": pfield.value}
    if pfield.text_alignment:
        data["textAlignment"] = pfield.text_alignment
    if pfield.change_message:
        data["changeMessage"] = pfield.change_message
    return data


class ApplePassGenerator:
    """Generates signed Apple Wallet .pkpass files from a template and projected fields."""

    CONTENT_TYPE = "application/vnd.apple.pkpass"
    FILE_EXTENSION = "pkpass"

    def __init__(self, config: SigningConfig, signer: ApplePassSigner | None = None) -> None:
        """Initialize the generator.

        Args:
            config: Validated signing credentials.
            signer: The signer to use. Defaults to one built from ``config``.
        """
        self.config = config
        self.signer = signer or ApplePassSigner(config)

    def generate_pass(
        self,
        template: PassTemplate,
        fields: ConcreteFields,
        *,
        serial_number: str,
        barcode_message: str,
        auth_token: str | None = None,
        web_service_url: str | None = None,
        images: dict[ImageSlot, bytes] | None = None,
    ) -> bytes:
        """Generate a signed .pkpass bundle.

        Args:
            template: The pass design.
            fields: Field values projected from the pass's live state.
            serial_number: The pass serial number.
            barcode_message: Content of the barcode (the internal pass id).
            auth_token: Token devices present to the web service.
            web_service_url: PassKit web service URL. Ignored unless https.
            images: Resolved PNG images per slot.

        Returns:
            The .pkpass file as bytes.

        Raises:
            ApplePassSignerError: If signing fails.
            ApplePassGeneratorError: If anything else fails.
        """
        try:
            files: dict[str, bytes] = {
                "pass.json": self.build_pass_json(
                    template,
                    fields,
                    serial_number=serial_number,
                    barcode_message=barcode_message,
                    auth_token=auth_token,
                    web_service_url=web_service_url,
                )
            }
            files.update(self._image_files(images or {}))

            manifest = self.signer.create_manifest(files)
            files["manifest.json"] = manifest
            files["signature"] = self.signer.sign_manifest(manifest)

            pkpass_bytes = self._create_pkpass_archive(files)
        except ApplePassSignerError:
            raise
        except Exception as e:
            logger.error("pass_generation_failed", serial=serial_number, error=str(e))
            raise ApplePassGeneratorError(f"Failed to generate pass: {e}") from e

        logger.info("pass_generated", serial=serial_number, style=template.style.value, size=len(pkpass_bytes))
        return pkpass_bytes

    def build_pass_json(
        self,
        template: PassTemplate,
        fields: ConcreteFields,
        *,
        serial_number: str,
        barcode_message: str,
        auth_token: str | None = None,
        web_service_url: str | None = None,
    ) -> bytes:
        """Serialize pass.json."""
        content = template.content
        barcode: dict[str, Any] = {
            "format": template.barcode.format.value,
            "message": barcode_message,
            "messageEncoding": BARCODE_MESSAGE_ENCODING,
        }
        if template.barcode.alt_text:
            barcode["altText"] = template.barcode.alt_text

        pass_json: dict[str, Any] = {
            "formatVersion": 1,
            "passTypeIdentifier": self.config.pass_type_id,
            "teamIdentifier": self.config.team_id,
            "serialNumber": serial_number,
            "organizationName": content.organization_name,
            "description": content.description,
            "backgroundColor": to_pass_color(template.colors.background_color),
            "foregroundColor": to_pass_color(template.colors.foreground_color),
            "labelColor": to_pass_color(template.colors.label_color),
            template.style.value: {
                group: [_field_json(pfield) for pfield in pfields] for group, pfields in fields.by_group().items()
            },
            "barcodes": [barcode],
            # Pre-iOS 9 devices only read the singular key
            "barcode": barcode,
        }

        if content.logo_text and not content.hide_logo_text:
            pass_json["logoText"] = content.logo_text

        if template.locations:
            pass_json["locations"] = [
                {
                    "latitude": location.latitude,
                    "longitude": location.longitude,
                    "relevantText": location.relevant_text,
                }
                for location in template.locations
            ]

        # Apple Wallet only talks to https web services
        if web_service_url and web_service_url.startswith("https://") and auth_token:
            pass_json["webServiceURL"] = web_service_url
            pass_json["authenticationToken"] = auth_token

        return json.dumps(pass_json, indent=2, ensure_ascii=False).encode("utf-8")

    def _image_files(self, images: dict[ImageSlot, bytes]) -> dict[str, bytes]:
        files: dict[str, bytes] = {}
        if ImageSlot.ICON not in images:
            images = {ImageSlot.ICON: FALLBACK_ICON_PNG, **images}
        for slot, data in images.items():
            files[f"{slot.value}.png"] = data
            files[f"{slot.value}@2x.png"] = data
        return files

    def _create_pkpass_archive(self, files: dict[str, bytes]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            for filename, content in files.items():
                zf.writestr(filename, content)
        return buffer.getvalue()
