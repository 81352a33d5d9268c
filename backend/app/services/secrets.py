"""
Secrets provider for outbound email credentials.

Provider clients receive a SecretsProvider at construction time and look up
their key on every send. A key set at runtime (PATCH /api/email/config with an
apiKey) is held as an override for the rest of the process lifetime, so newly
configured credentials take effect without a restart. Nothing here is written
to disk.
"""

import os
from typing import Mapping, Optional

SENDGRID_API_KEY = "SENDGRID_API_KEY"
NYLAS_API_KEY = "NYLAS_API_KEY"
NYLAS_CLIENT_ID = "NYLAS_CLIENT_ID"

# Which secret backs each credentialed provider in the config document
PROVIDER_SECRET_NAMES = {
    "sendgrid": SENDGRID_API_KEY,
    "nylas": NYLAS_API_KEY,
}


class SecretsProvider:
    """Runtime overrides layered over an environment mapping."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = os.environ if environ is None else environ
        self._overrides: dict[str, str] = {}

    def get(self, name: str) -> Optional[str]:
        value = self._overrides.get(name) or self._environ.get(name)
        return value.strip() if value and value.strip() else None

    def set(self, name: str, value: str) -> None:
        self._overrides[name] = value

    def has(self, name: str) -> bool:
        return self.get(name) is not None
