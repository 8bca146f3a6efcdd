import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Sequence

from .services.compressor import DEFAULT_MIN_INTERVAL, DEFAULT_PRECISION

DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:3000",
    "http://127.0.0.1:3000",
)


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _env_list(key: str, default: Sequence[str] | None = None) -> List[str]:
    value = os.getenv(key)
    if not value:
        return list(default or [])
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(slots=True)
class Settings:
    precision: float = field(default_factory=lambda: float(os.getenv("IMGCAP_PRECISION", str(DEFAULT_PRECISION))))
    min_interval: float = field(
        default_factory=lambda: float(os.getenv("IMGCAP_MIN_INTERVAL", str(DEFAULT_MIN_INTERVAL)))
    )
    max_upload_bytes: int = field(
        default_factory=lambda: int(float(os.getenv("IMGCAP_MAX_UPLOAD_MB", "25")) * 1024 * 1024)
    )
    max_concurrency: int = field(default_factory=lambda: int(os.getenv("IMGCAP_MAX_CONCURRENCY", "4")))
    log_level: str = field(default_factory=lambda: os.getenv("IMGCAP_LOG_LEVEL", "INFO").upper())
    cors_origins: List[str] = field(default_factory=lambda: _env_list("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    reload: bool = field(default_factory=lambda: _env_bool("IMGCAP_RELOAD", False))

    def __post_init__(self):
        if not 0.0 < self.precision < 1.0:
            raise ValueError("IMGCAP_PRECISION must be between 0 and 1")
        if not 0.0 < self.min_interval < 1.0:
            raise ValueError("IMGCAP_MIN_INTERVAL must be between 0 and 1")
        if self.max_concurrency < 1:
            raise ValueError("IMGCAP_MAX_CONCURRENCY must be >= 1")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
