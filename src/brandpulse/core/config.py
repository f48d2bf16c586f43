"""
Engine configuration.

Product constants live at module level; EngineConfig bundles the tunables and
can be built from BRANDPULSE_* environment variables.
"""

import os
from dataclasses import dataclass

# Maximum number of provider calls a batch run keeps in flight
CONCURRENCY_LIMIT = 5

# Longest side of the encoded payload, in pixels
MAX_IMAGE_DIMENSION = 1024

# JPEG quality (Pillow scale 1-95) for file intake and live capture
BATCH_JPEG_QUALITY = 70
CAPTURE_JPEG_QUALITY = 80

# Longest side of preview thumbnails
PREVIEW_SIZE = 256

# Keywords shown on a compact card before collapsing into "+N more"
KEYWORD_PREVIEW_LIMIT = 12

DEFAULT_API = "gemini"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class EngineConfig:
    concurrency_limit: int = CONCURRENCY_LIMIT
    max_dimension: int = MAX_IMAGE_DIMENSION
    batch_quality: int = BATCH_JPEG_QUALITY
    capture_quality: int = CAPTURE_JPEG_QUALITY
    preview_size: int = PREVIEW_SIZE
    api_name: str = DEFAULT_API

    def __post_init__(self):
        if self.concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        if self.max_dimension < 1:
            raise ValueError("max_dimension must be at least 1")
        for name in ("batch_quality", "capture_quality"):
            value = getattr(self, name)
            if not 1 <= value <= 95:
                raise ValueError(f"{name} must be between 1 and 95, got {value}")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from BRANDPULSE_* environment variables, falling back to defaults."""
        return cls(
            concurrency_limit=_env_int("BRANDPULSE_CONCURRENCY", CONCURRENCY_LIMIT),
            max_dimension=_env_int("BRANDPULSE_MAX_DIMENSION", MAX_IMAGE_DIMENSION),
            batch_quality=_env_int("BRANDPULSE_BATCH_QUALITY", BATCH_JPEG_QUALITY),
            capture_quality=_env_int("BRANDPULSE_CAPTURE_QUALITY", CAPTURE_JPEG_QUALITY),
            preview_size=_env_int("BRANDPULSE_PREVIEW_SIZE", PREVIEW_SIZE),
            api_name=os.getenv("BRANDPULSE_API", DEFAULT_API).strip().lower(),
        )
