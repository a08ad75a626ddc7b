"""Shared constants used across the launcher."""
from __future__ import annotations

# Application identity
APP_NAME: str = "cloudxfer"
VERSION: str = "10.4.1"

# Release metadata published alongside each build; the first line of the
# body is the latest released version.
VERSION_METADATA_URL: str = (
    "https://cloudxfer.blob.core.windows.net/releases/latest/version-metadata"
)

# Worker pool bounds
MIN_CONCURRENCY: int = 32
MAX_CONCURRENCY: int = 300
CONCURRENCY_PER_CORE: int = 16

# Environment
ENV_PREFIX: str = "CLOUDXFER_"
AUTO_TUNE_VALUE: str = "AUTO"
