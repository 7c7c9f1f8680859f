"""Environment-based configuration for the API service."""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class Settings:
    """API configuration loaded from environment variables."""

    def __init__(self):
        self.api_secret = os.getenv("EE_API_SECRET", "")
        if not self.api_secret:
            raise RuntimeError(
                "EE_API_SECRET environment variable is required. "
                "Generate one with: openssl rand -hex 32"
            )
        # Signed requests older or newer than this are rejected
        self.signature_max_age_seconds = int(os.getenv("EE_SIGNATURE_MAX_AGE", "300"))
        self.host = os.getenv("EE_API_HOST", "0.0.0.0")
        self.port = int(os.getenv("EE_API_PORT", "8000"))
        self.db_path = os.getenv(
            "EE_DATABASE_PATH",
            str(Path.home() / ".engagement-engine" / "engine.db"),
        )
        self.config_path = os.getenv("EE_CONFIG_PATH", "")
        self.instruments_path = os.getenv("EE_INSTRUMENTS_PATH", "")

        # Email sequence hand-off; recorded in memory when unset
        self.sequence_webhook_url = os.getenv("EE_SEQUENCE_WEBHOOK_URL", "")
        self.sequence_webhook_secret = os.getenv("EE_SEQUENCE_WEBHOOK_SECRET", "")

        self.debug = os.getenv("EE_ENV", "production") != "production"


_settings = None


def _get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings():
    """Forget loaded settings so the next access re-reads the environment."""
    global _settings
    _settings = None


class _SettingsProxy:
    """Lazy proxy so settings aren't loaded until first access."""

    def __getattr__(self, name):
        return getattr(_get_settings(), name)


settings = _SettingsProxy()
