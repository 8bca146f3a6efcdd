"""
Error taxonomy for the compression service.

ValidationError is always raised before any decode/encode work happens.
DecodeError and EncodeError wrap Pillow failures and are never retried.
"""


class ImgcapError(Exception):
    """Base class for all errors raised by imgcap."""


class ValidationError(ImgcapError, ValueError):
    """Bad caller input (unsupported format, target or tolerance too small)."""


class DecodeError(ImgcapError):
    """Input bytes could not be decoded into an image."""


class EncodeError(ImgcapError):
    """The encoder rejected the requested format or parameters."""
