"""Runtime configuration for the image resizer.

All settings are read once from environment variables at import time so
that a deployment can tune the search without code changes. The defaults
match the behaviour of the original resize tool.

Environment variables:
    IMAGE_QUALITY_MIN: Lowest JPEG quality the search may reach (default 10).
    IMAGE_QUALITY_MAX: Highest JPEG quality, also used for the lossy
        baseline (default 100).
    IMAGE_SEARCH_ITERATIONS: Upper bound on quality search attempts
        (default 15).
    IMAGE_DITHER_SPREAD: Amplitude of the ordered dither applied before
        palette mapping, in 8-bit channel units (default 24).
    IMAGE_MAX_PIXELS: Largest decoded image accepted, in pixels
        (default 40 000 000).
    IMAGE_MAX_TARGET_KB: Largest target size a caller may request
        (default 51200, i.e. 50 MiB).
    IMAGE_MAX_UPLOAD_BYTES: Largest upload accepted by the API
        (default 50 MiB).
    LOG_LEVEL: Logging level name for the API process (default 'INFO').
    CORS_ALLOW_ORIGINS: Comma-separated list of allowed origins (default '*').
"""

from __future__ import annotations

import os

QUALITY_MIN: int = int(os.getenv("IMAGE_QUALITY_MIN", "10"))
QUALITY_MAX: int = int(os.getenv("IMAGE_QUALITY_MAX", "100"))
SEARCH_ITERATIONS: int = int(os.getenv("IMAGE_SEARCH_ITERATIONS", "15"))
DITHER_SPREAD: float = float(os.getenv("IMAGE_DITHER_SPREAD", "24"))
MAX_PIXELS: int = int(os.getenv("IMAGE_MAX_PIXELS", "40000000"))
MAX_TARGET_KB: int = int(os.getenv("IMAGE_MAX_TARGET_KB", "51200"))
MAX_UPLOAD_BYTES: int = int(os.getenv("IMAGE_MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ALLOW_ORIGINS: list[str] = [
    origin.strip() for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if origin.strip()
]
