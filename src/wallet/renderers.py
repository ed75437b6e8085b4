"""Platform renderers: template + projected fields -> wallet artifact.

Both platforms render the same ``ConcreteFields``; each renderer only decides
how they are serialized. Callers pick a renderer by the pass's wallet type
and never branch on the platform themselves.
"""

import typing as t
from dataclasses import dataclass

from loyalty.models import IssuedPass
from loyalty.projector import ConcreteFields, project
from loyalty.templates import PassTemplate
from wallet.apple.generator import ApplePassGenerator
from wallet.apple.images import resolve_images
from wallet.config import GoogleWalletConfig, SigningConfig, google_callback_url, web_service_url
from wallet.google.builder import GooglePassBuilder, SaveLink
from wallet.google.ids import to_class_id, to_object_id

ArtifactT = t.TypeVar("ArtifactT", covariant=True)


class PassRenderer(t.Protocol[ArtifactT]):
    """Renders an issued pass for one wallet platform."""

    wallet_type: str

    def render(self, template: PassTemplate, fields: ConcreteFields, issued_pass: IssuedPass) -> ArtifactT:
        """Serialize the projected fields into the platform's artifact."""
        ...


class ApplePassRenderer:
    """Renders signed .pkpass bundles."""

    wallet_type = IssuedPass.WalletType.APPLE

    def __init__(self, generator: ApplePassGenerator) -> None:
        self.generator = generator

    def render(self, template: PassTemplate, fields: ConcreteFields, issued_pass: IssuedPass) -> bytes:
        stored = {image.slot: bytes(image.data) for image in issued_pass.campaign.images.all()}
        return self.generator.generate_pass(
            template,
            fields,
            serial_number=issued_pass.serial_number,
            barcode_message=str(issued_pass.pk),
            auth_token=issued_pass.auth_token,
            web_service_url=web_service_url(),
            images=resolve_images(template.images, stored),
        )


@dataclass(frozen=True)
class GoogleArtifact:
    loyalty_class: dict[str, t.Any]
    loyalty_object: dict[str, t.Any]


class GooglePassRenderer:
    """Renders Google Wallet loyalty class/object pairs."""

    wallet_type = IssuedPass.WalletType.GOOGLE

    def __init__(self, builder: GooglePassBuilder) -> None:
        self.builder = builder

    @property
    def issuer_id(self) -> str:
        return self.builder.config.issuer_id

    def object_id(self, issued_pass: IssuedPass) -> str:
        return to_object_id(self.issuer_id, issued_pass.pk)

    def render(self, template: PassTemplate, fields: ConcreteFields, issued_pass: IssuedPass) -> GoogleArtifact:
        campaign = issued_pass.campaign
        class_id = to_class_id(self.issuer_id, campaign.pk)
        loyalty_class = self.builder.build_class(
            class_id,
            template,
            program_name=campaign.name,
            callback_url=google_callback_url(),
        )
        loyalty_object = self.builder.build_object(
            self.object_id(issued_pass),
            class_id,
            template,
            fields,
            issued_pass.state,
            barcode_value=str(issued_pass.pk),
            customer_name=issued_pass.customer_name,
        )
        return GoogleArtifact(loyalty_class=loyalty_class, loyalty_object=loyalty_object)

    def object_changes(self, issued_pass: IssuedPass) -> dict[str, t.Any]:
        """The state-dependent part of the pass's loyalty object."""
        template, fields = project_issued_pass(issued_pass)
        return self.builder.build_object_changes(template, fields, issued_pass.state)

    def save_link(self, issued_pass: IssuedPass) -> SaveLink:
        artifact = render_pass(self, issued_pass)
        return self.builder.build_save_link(artifact.loyalty_class, artifact.loyalty_object)


def project_issued_pass(issued_pass: IssuedPass) -> tuple[PassTemplate, ConcreteFields]:
    """Load the campaign's template and project the pass's live state onto it.

    Raises:
        InvalidTemplateError: If the campaign design is malformed.
    """
    template = issued_pass.campaign.get_template()
    return template, project(template, issued_pass.state)


def render_pass(renderer: PassRenderer[ArtifactT], issued_pass: IssuedPass) -> ArtifactT:
    """Render an issued pass with its current state."""
    template, fields = project_issued_pass(issued_pass)
    return renderer.render(template, fields, issued_pass)


def get_apple_renderer() -> ApplePassRenderer:
    """Compose the Apple renderer from settings.

    Raises:
        WalletConfigurationError: If signing credentials are incomplete.
    """
    return ApplePassRenderer(ApplePassGenerator(SigningConfig.from_settings()))


def get_google_renderer() -> GooglePassRenderer:
    """Compose the Google renderer from settings.

    Raises:
        WalletConfigurationError: If Google credentials are incomplete.
    """
    return GooglePassRenderer(GooglePassBuilder(GoogleWalletConfig.from_settings()))
