from enum import Enum
from typing import Union

from .errors import ValidationError

UNSUPPORTED_FORMAT_MESSAGE = "Only PNG, JPEG, WebP and AVIF images are supported."

# Non-canonical MIME spellings seen from browsers and upload clients
_MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
}


class ImageType(str, Enum):
    JPEG = "image/jpeg"
    PNG = "image/png"
    WEBP = "image/webp"
    AVIF = "image/avif"

    @property
    def pillow_format(self) -> str:
        return self.name


SUPPORTED_TYPES = tuple(t.value for t in ImageType)


def parse_image_type(value: Union[str, ImageType, None]) -> ImageType:
    """Resolve a MIME string (or ImageType) to one of the supported formats."""
    if isinstance(value, ImageType):
        return value
    if not isinstance(value, str):
        raise ValidationError(UNSUPPORTED_FORMAT_MESSAGE)

    mime = value.strip().lower()
    mime = _MIME_ALIASES.get(mime, mime)
    try:
        return ImageType(mime)
    except ValueError:
        raise ValidationError(UNSUPPORTED_FORMAT_MESSAGE) from None
