"""
imgcap: recompress an image to approximately a target byte size.
"""
from .services.compressor import (
    CompressionRequest,
    CompressionResult,
    compress,
    compress_async,
    compress_image,
    compress_many,
)
from .services.errors import DecodeError, EncodeError, ImgcapError, ValidationError
from .services.formats import ImageType

__all__ = [
    "CompressionRequest",
    "CompressionResult",
    "DecodeError",
    "EncodeError",
    "ImageType",
    "ImgcapError",
    "ValidationError",
    "compress",
    "compress_async",
    "compress_image",
    "compress_many",
]

__version__ = "0.1.0"
