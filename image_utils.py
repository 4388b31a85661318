import base64
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

from errors import UnsupportedFileTypeError

logger = logging.getLogger(__name__)

MAX_IMAGES = 2
IMAGE_SLOTS = [
    ("Whole plant", "Photograph the entire plant"),
    ("Close-up", "Photograph affected leaves, stems or roots"),
]


@dataclass(frozen=True)
class ImageReference:
    filename: str
    mime_type: str
    data: bytes
    preview: str  # data URL for display

    def base64_data(self) -> str:
        return base64.b64encode(self.data).decode()


def _detect_mime_type(data: bytes) -> Optional[str]:
    """Ask PIL what the bytes are; None if it cannot tell."""
    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
            return Image.MIME.get(img.format) or f"image/{(img.format or 'jpeg').lower()}"
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        logger.warning("Could not decode uploaded image: %s", e)
        return None


def load_image_reference(filename: str, mime_type: Optional[str], data: bytes) -> ImageReference:
    """Validate an uploaded file and build its reference with a preview.

    Raises UnsupportedFileTypeError if the file is not an image, is empty, or
    cannot be decoded.
    """
    if mime_type and not mime_type.startswith("image/"):
        raise UnsupportedFileTypeError()
    if not data:
        raise UnsupportedFileTypeError("The selected file is empty.")

    detected = _detect_mime_type(data)
    if detected is None:
        raise UnsupportedFileTypeError(f"'{filename}' is not a readable image.")

    final_mime = mime_type or detected
    b64_img = base64.b64encode(data).decode()
    return ImageReference(
        filename=filename,
        mime_type=final_mime,
        data=data,
        preview=f"data:{final_mime};base64,{b64_img}",
    )
