"""Google Wallet loyalty class/object serialization and save links.

The same projected fields that end up in an Apple pass are mapped onto
Google's loyalty model. Google has no icon-rendered fields, so stamps are
plain text (``"3/10"``) in the loyalty points balance, and the icon string
moves to a separate text module.
"""

import time
import typing as t
from dataclasses import dataclass

import google.auth.crypt
import google.auth.jwt
import structlog

from loyalty.projector import ConcreteFields, render_stamp_icons, stamp_icon_for, stamp_progress, stamp_render_mode
from loyalty.templates import ImageSlot, PassTemplate
from wallet.apple.formatting import to_hex_color
from wallet.config import GoogleWalletConfig
from wallet.google.client import GoogleWalletError

logger = structlog.get_logger(__name__)

SAVE_URL = "https://pay.google.com/gp/v/save/{token}"
DEFAULT_PROGRAM_LOGO = "https://www.gstatic.com/images/branding/product/2x/google_wallet_512dp.png"
DEFAULT_ACCOUNT_NAME = "Stammkunde"
LANGUAGE = "de"

STAMPS_LABEL = "Stempel"
POINTS_LABEL = "Punkte"
VISUAL_STAMPS_MODULE = "visual_stamps"
VISUAL_STAMPS_HEADER = "Deine Karte"


@dataclass(frozen=True)
class SaveLink:
    url: str
    token: str


def _localized(value: str) -> dict[str, t.Any]:
    return {"defaultValue": {"language": LANGUAGE, "value": value}}


def _is_remote(reference: str | None) -> bool:
    return reference is not None and reference.startswith(("http://", "https://"))


class GooglePassBuilder:
    """Builds loyalty classes, objects and signed save-to-wallet links."""

    def __init__(self, config: GoogleWalletConfig) -> None:
        """Initialize the builder.

        Args:
            config: Validated issuer credentials.
        """
        self.config = config

    def build_class(
        self,
        class_id: str,
        template: PassTemplate,
        *,
        program_name: str,
        callback_url: str | None = None,
    ) -> dict[str, t.Any]:
        """Build the loyalty class (the campaign-wide part of the card)."""
        logo = template.images.get(ImageSlot.LOGO)
        loyalty_class: dict[str, t.Any] = {
            "id": class_id,
            "issuerName": template.content.organization_name,
            "programName": program_name,
            "reviewStatus": "UNDER_REVIEW",
            "multipleDevicesAndHoldersAllowedStatus": "MULTIPLE_HOLDERS",
            "hexBackgroundColor": to_hex_color(template.colors.background_color),
            "programLogo": {
                "sourceUri": {"uri": logo if _is_remote(logo) else DEFAULT_PROGRAM_LOGO},
                "contentDescription": _localized(program_name),
            },
            "localizedIssuerName": _localized(template.content.organization_name),
            "localizedProgramName": _localized(program_name),
        }

        strip = template.images.get(ImageSlot.STRIP)
        if _is_remote(strip):
            loyalty_class["heroImage"] = {"sourceUri": {"uri": strip}, "contentDescription": _localized("Banner")}

        if callback_url:
            loyalty_class["callbackOptions"] = {"url": callback_url}

        if template.locations:
            loyalty_class["locations"] = [
                {"kind": "walletobjects#latLongPoint", "latitude": loc.latitude, "longitude": loc.longitude}
                for loc in template.locations
            ]

        return loyalty_class

    def build_object(
        self,
        object_id: str,
        class_id: str,
        template: PassTemplate,
        fields: ConcreteFields,
        state: t.Mapping[str, t.Any],
        *,
        barcode_value: str,
        customer_name: str | None = None,
    ) -> dict[str, t.Any]:
        """Build the loyalty object (one customer's card).

        Args:
            object_id: Full object id (``issuer.suffix``).
            class_id: Full id of the campaign's loyalty class.
            template: The pass design.
            fields: Field values projected from the live state.
            state: The live state, for the loyalty points balance.
            barcode_value: Content of the QR code (the internal pass id).
            customer_name: Shown as account name.
        """
        loyalty_object: dict[str, t.Any] = {
            "id": object_id,
            "classId": class_id,
            "state": "ACTIVE",
            "accountId": str(state.get("customer_number") or ""),
            "accountName": customer_name or DEFAULT_ACCOUNT_NAME,
            "barcode": {"type": "QR_CODE", "value": barcode_value},
        }
        if template.barcode.alt_text:
            loyalty_object["barcode"]["alternateText"] = template.barcode.alt_text

        loyalty_object.update(self.build_object_changes(template, fields, state))
        return loyalty_object

    def build_object_changes(
        self, template: PassTemplate, fields: ConcreteFields, state: t.Mapping[str, t.Any]
    ) -> dict[str, t.Any]:
        """Build the state-dependent part of a loyalty object, as sent in a PATCH."""
        changes: dict[str, t.Any] = {}
        text_modules: list[dict[str, str]] = []

        progress = stamp_progress(state)
        if progress is not None:
            changes["loyaltyPoints"] = {
                "label": STAMPS_LABEL,
                "balance": {"string": f"{progress.current}/{progress.maximum}"},
            }
            text_modules.append(
                {
                    "id": VISUAL_STAMPS_MODULE,
                    "header": VISUAL_STAMPS_HEADER,
                    "body": render_stamp_icons(progress, stamp_icon_for(template, state), template.stamps.empty_icon),
                }
            )
        elif state.get("points") is not None:
            changes["loyaltyPoints"] = {"label": POINTS_LABEL, "balance": {"int": int(state["points"])}}

        stamp_keys = {
            tfield.key
            for group in template.fields.by_group().values()
            for tfield in group
            if stamp_render_mode(tfield) is not None
        }
        for pfield in fields:
            if pfield.key in stamp_keys or not pfield.value:
                continue
            text_modules.append({"id": pfield.key, "header": pfield.label or pfield.key, "body": pfield.value})

        changes["textModulesData"] = text_modules
        return changes

    def build_save_link(self, loyalty_class: dict[str, t.Any], loyalty_object: dict[str, t.Any]) -> SaveLink:
        """Sign a save-to-wallet JWT carrying the class and the object.

        Raises:
            GoogleWalletError: If the service account key cannot sign.
        """
        claims = {
            "iss": self.config.service_account_email,
            "aud": "google",
            "typ": "savetowallet",
            "iat": int(time.time()),
            "origins": list(self.config.origins),
            "payload": {
                "loyaltyClasses": [loyalty_class],
                "loyaltyObjects": [loyalty_object],
            },
        }

        try:
            signer = google.auth.crypt.RSASigner.from_service_account_info(self.config.service_account_info)
            token = google.auth.jwt.encode(signer, claims)
        except (ValueError, KeyError) as e:
            logger.error("google_save_link_signing_failed", object_id=loyalty_object.get("id"), error=str(e))
            raise GoogleWalletError(f"Failed to sign save link: {e}")

        token_str = token.decode("utf-8") if isinstance(token, bytes) else str(token)
        return SaveLink(url=SAVE_URL.format(token=token_str), token=token_str)
