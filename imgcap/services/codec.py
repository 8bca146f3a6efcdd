"""
Pillow-backed decoder and encoder used by the compressor.

The compressor treats both as black boxes:

- decode(raw_bytes, declared_format) -> DecodedImage
- encode(image, scale, quality, fmt) -> Candidate

A single scalar drives quality and the linear dimension scale of each
candidate, so encode() resizes first and then saves at the mapped quality.
"""

import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image, ImageOps

from .errors import DecodeError, EncodeError
from .formats import ImageType

logger = logging.getLogger(__name__)


def _try_register_avif() -> bool:
    """
    Make sure Pillow can write AVIF.
    Recent Pillow builds ship a native AVIF plugin; older ones need pillow-heif.
    """
    Image.init()
    if "AVIF" in Image.SAVE:
        return True
    try:
        import pillow_heif  # type: ignore

        pillow_heif.register_avif_opener()  # type: ignore
    except Exception:
        return False
    Image.init()
    return "AVIF" in Image.SAVE


_AVIF_REGISTERED: Optional[bool] = None


def ensure_avif_registered() -> bool:
    global _AVIF_REGISTERED
    if _AVIF_REGISTERED is None:
        _AVIF_REGISTERED = _try_register_avif()
        if _AVIF_REGISTERED:
            logger.info("AVIF encoding available")
        else:
            logger.info("AVIF encoding NOT available (Pillow without AVIF, pillow-heif not installed)")
    return bool(_AVIF_REGISTERED)


@dataclass(frozen=True)
class DecodedImage:
    pixels: Image.Image
    width: int
    height: int
    source_format: ImageType


@dataclass(frozen=True)
class Candidate:
    data: bytes
    size: int
    format: ImageType
    scale: float
    quality: float


def decode(raw_bytes: bytes, declared_format: ImageType) -> DecodedImage:
    """
    Decode image bytes and apply EXIF orientation.

    The returned pixel buffer is fully loaded and detached from raw_bytes.
    """
    if not raw_bytes:
        raise DecodeError("Empty image")

    if declared_format is ImageType.AVIF:
        ensure_avif_registered()

    try:
        with Image.open(io.BytesIO(raw_bytes)) as im:
            im.load()
            sniffed = im.format
            pixels = ImageOps.exif_transpose(im)
            if pixels is im:
                pixels = im.copy()
    except Exception as e:
        raise DecodeError(f"Could not decode {declared_format.value} image: {e}") from e

    if sniffed and sniffed.upper() != declared_format.pillow_format:
        logger.debug(f"Declared {declared_format.value} but content looks like {sniffed}")

    width, height = pixels.size
    return DecodedImage(pixels=pixels, width=width, height=height, source_format=declared_format)


def _has_alpha(im: Image.Image) -> bool:
    return im.mode in ("RGBA", "LA", "PA") or (
        im.mode == "P" and "transparency" in (im.info or {})
    )


def _flatten_onto_white(im: Image.Image) -> Image.Image:
    rgba = im.convert("RGBA")
    bg = Image.new("RGB", rgba.size, (255, 255, 255))
    bg.paste(rgba, mask=rgba.split()[-1])
    return bg


def _pillow_quality(quality: float) -> int:
    return max(1, int(round(quality * 100)))


def encode(image: DecodedImage, scale: float, quality: float, fmt: ImageType) -> Candidate:
    """
    Encode `image` resized by `scale` at `quality` (both in [0, 1]).

    PNG is lossless, so quality has no effect there and only scale moves the size.
    """
    if not 0.0 <= scale <= 1.0:
        raise EncodeError(f"scale must be within [0, 1], got {scale}")
    if not 0.0 <= quality <= 1.0:
        raise EncodeError(f"quality must be within [0, 1], got {quality}")
    if fmt is ImageType.AVIF and not ensure_avif_registered():
        raise EncodeError("AVIF encoding not available in this Pillow build")

    im = image.pixels
    new_w = max(1, int(round(image.width * scale)))
    new_h = max(1, int(round(image.height * scale)))

    out = io.BytesIO()
    try:
        if (new_w, new_h) != im.size:
            im = im.resize((new_w, new_h), Image.Resampling.LANCZOS)

        if fmt is ImageType.JPEG:
            rgb = _flatten_onto_white(im) if _has_alpha(im) else im.convert("RGB")
            rgb.save(out, format="JPEG", quality=_pillow_quality(quality), optimize=True)
        elif fmt is ImageType.PNG:
            if im.mode not in ("1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"):
                im = im.convert("RGBA" if _has_alpha(im) else "RGB")
            im.save(out, format="PNG", optimize=True)
        else:
            converted = im.convert("RGBA" if _has_alpha(im) else "RGB")
            converted.save(out, format=fmt.pillow_format, quality=_pillow_quality(quality))
    except Exception as e:
        raise EncodeError(f"Failed to encode {fmt.value} at scale={scale:.4f} quality={quality:.4f}: {e}") from e

    data = out.getvalue()
    return Candidate(data=data, size=len(data), format=fmt, scale=scale, quality=quality)
