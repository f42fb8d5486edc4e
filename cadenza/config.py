"""Configuration constants and environment overrides."""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes returned by the CLI."""

    SUCCESS = 0
    FAILURE = 1


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used across cadenza."""

    REGISTRY_URL = "https://repo.packagist.org"
    SEARCH_URL = "https://packagist.org/search.json"
    OSV_QUERY_URL = "https://api.osv.dev/v1/query"
    ADVISORIES_URL = "https://packagist.org/api/security-advisories/"
    MANIFEST_FILE = "composer.json"
    LOCK_FILE = "composer.lock"
    VENDOR_DIR = "vendor"
    CACHE_DIR = ".cadenza/cache"
    REQUEST_TIMEOUT = 30  # seconds, registry and advisory requests
    DOWNLOAD_TIMEOUT = 300  # seconds, archive downloads
    DOWNLOAD_WORKERS = 8
    LOG_FORMAT = "%(levelname)s: %(message)s"

    ENV_REGISTRY_URL = "CADENZA_REGISTRY_URL"
    ENV_VENDOR_DIR = "CADENZA_VENDOR_DIR"
    ENV_WORKERS = "CADENZA_WORKERS"
    ENV_CACHE_DIR = "CADENZA_CACHE_DIR"
    ENV_CA_BUNDLE = "CADENZA_CA_BUNDLE"


@dataclass
class Settings:
    """Runtime settings resolved from defaults, environment and CLI flags."""

    registry_url: str = Constants.REGISTRY_URL
    vendor_dir: str = Constants.VENDOR_DIR
    cache_dir: str = Constants.CACHE_DIR
    workers: int = Constants.DOWNLOAD_WORKERS

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "Settings":
        """Build settings, letting CADENZA_* environment variables override defaults."""
        env = os.environ if environ is None else environ
        settings = cls()

        if env.get(Constants.ENV_REGISTRY_URL):
            settings.registry_url = env[Constants.ENV_REGISTRY_URL].rstrip("/")
        if env.get(Constants.ENV_VENDOR_DIR):
            settings.vendor_dir = env[Constants.ENV_VENDOR_DIR]
        if env.get(Constants.ENV_CACHE_DIR):
            settings.cache_dir = env[Constants.ENV_CACHE_DIR]

        workers = env.get(Constants.ENV_WORKERS)
        if workers:
            try:
                settings.workers = max(1, int(workers))
            except ValueError:
                logger.warning(f"Ignoring invalid {Constants.ENV_WORKERS}={workers!r}")

        return settings
