"""
Environment-backed settings.

Values are read from the process environment (and a .env file when present).
Secrets that can change at runtime (provider API keys) are NOT read here;
they go through app.services.secrets.SecretsProvider so an override set via
the config endpoint takes effect without a restart.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Config store location
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_PATH = Path(".config") / "app-config.json"


def get_config_path() -> Path:
    """Return the JSON config path (EMAIL_CONFIG_PATH or .config/app-config.json)."""
    raw = os.getenv("EMAIL_CONFIG_PATH", "").strip()
    return Path(raw) if raw else DEFAULT_CONFIG_PATH


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

DEV_SESSION_SECRET = "askedith-secret-key"
SESSION_MAX_AGE = 24 * 60 * 60  # 24 hours


def is_production() -> bool:
    return os.getenv("ENVIRONMENT", "development").lower() == "production"


def get_session_secret() -> str:
    """
    Return SESSION_SECRET. Outside production an unset secret falls back to
    DEV_SESSION_SECRET; in production it is required.
    """
    secret = os.getenv("SESSION_SECRET", "").strip()
    if secret:
        return secret
    if is_production():
        raise ValueError("SESSION_SECRET must be set in environment variables in production")
    return DEV_SESSION_SECRET


SESSION_SECRET = get_session_secret()


# ---------------------------------------------------------------------------
# Outbound email
# ---------------------------------------------------------------------------

NYLAS_API_URI = os.getenv("NYLAS_API_URI", "https://api.us.nylas.com").rstrip("/")
SENDGRID_API_URI = "https://api.sendgrid.com"

DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "noreply@askedith.org")
DEFAULT_FROM_NAME = os.getenv("DEFAULT_FROM_NAME", "AskEdith")

# Grant used by POST /api/direct/set-direct-grant (demo / test path only)
DIRECT_TEST_GRANT_ID = os.getenv(
    "DIRECT_TEST_GRANT_ID", "5bd4e911-f684-4141-bc83-247e2077c9a5"
)
