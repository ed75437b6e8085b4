"""Image handling for pass bundles.

Template image slots hold opaque references: a data URL, a bare base64
string or an http(s) URL. They are resolved to PNG bytes here; anything
that cannot be resolved is dropped with a warning so a single broken image
never fails a pass build.
"""

import base64
import binascii
import io

import httpx
import structlog
from PIL import Image, UnidentifiedImageError

from loyalty.templates import ImageSlot

logger = structlog.get_logger(__name__)

# Minimal valid 1x1 PNG, used when a design has no icon (Apple requires one)
FALLBACK_ICON_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR4nGNgYAAAAAMAASsJTYQAAAAASUVORK5CYII="
)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
IMAGE_FETCH_TIMEOUT = 10.0


class ImageReferenceError(Exception):
    """Raised when an image reference cannot be resolved."""

    pass


def decode_base64_image(reference: str) -> bytes:
    """Decode a data URL (``data:image/png;base64,...``) or a bare base64 string.

    Raises:
        ImageReferenceError: If the payload is not valid base64.
    """
    payload = reference.split(",", 1)[1] if reference.startswith("data:") else reference
    try:
        return base64.b64decode(payload.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageReferenceError(f"Invalid base64 image data: {e}")


def fetch_image(url: str, timeout: float = IMAGE_FETCH_TIMEOUT) -> bytes:
    """Download an image.

    Raises:
        ImageReferenceError: On network errors or non-2xx responses.
    """
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise ImageReferenceError(f"Could not fetch image {url}: {e}")
    return response.content


def load_image_reference(reference: str) -> bytes:
    """Resolve an image reference to raw bytes.

    Raises:
        ImageReferenceError: If the reference cannot be resolved.
    """
    if reference.startswith(("http://", "https://")):
        return fetch_image(reference)
    return decode_base64_image(reference)


def ensure_png(image_data: bytes) -> bytes:
    """Return the image as PNG, converting other formats with Pillow.

    Raises:
        ImageReferenceError: If the bytes are not a readable image.
    """
    if image_data.startswith(PNG_SIGNATURE):
        return image_data
    try:
        img: Image.Image = Image.open(io.BytesIO(image_data))
        if img.mode not in ("RGBA", "RGB", "P", "L", "LA"):
            img = img.convert("RGBA")
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
    except (UnidentifiedImageError, OSError) as e:
        raise ImageReferenceError(f"Unreadable image data: {e}")
    return buffer.getvalue()


def resolve_images(
    references: dict[ImageSlot, str], stored: dict[str, bytes] | None = None
) -> dict[ImageSlot, bytes]:
    """Resolve every image slot of a design to PNG bytes.

    Args:
        references: Slot to reference, as stored in the template.
        stored: Slot to binary blob uploaded for the campaign. Takes precedence
            over the template reference of the same slot.

    Returns:
        Slot to PNG bytes, for every slot that could be resolved.
    """
    stored = stored or {}
    images: dict[ImageSlot, bytes] = {}

    for slot in ImageSlot:
        try:
            if slot.value in stored:
                images[slot] = ensure_png(bytes(stored[slot.value]))
            elif slot in references:
                images[slot] = ensure_png(load_image_reference(references[slot]))
        except ImageReferenceError as e:
            logger.warning("pass_image_skipped", slot=slot.value, error=str(e))

    return images
