"""
Config Store: the persisted JSON document that selects the active email
provider.

Read path is fail-open: a missing, unreadable or corrupt file yields the
default document (and the error is logged). Write path fails loudly with
PersistenceError so the caller knows the change was not saved.

Updates are shallow merges. The nested ``emailService`` object is merged key
by key, so a partial such as

    {"emailService": {"sendgrid": {"credentialPresent": true}}}

replaces only the ``sendgrid`` section and leaves ``provider`` alone.

A provider section may carry an ``apiKey``. The key is never written to the
file: it is handed to the SecretsProvider and the section is recorded as
``credentialPresent: true``.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from app.errors import ConfigurationError, PersistenceError
from app.models.app_config import CREDENTIALED_PROVIDERS, AppConfig, default_config
from app.services.secrets import PROVIDER_SECRET_NAMES, SecretsProvider

logger = logging.getLogger(__name__)


class ConfigService:
    """Owns the config file, its in-memory cache, and the single-writer lock."""

    def __init__(self, path: Path, secrets: SecretsProvider):
        self._path = Path(path)
        self._secrets = secrets
        self._cache: Optional[AppConfig] = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def get(self) -> AppConfig:
        """Return the cached config, loading (or creating) the file on first use."""
        if self._cache is not None:
            return self._cache
        self._cache = await asyncio.to_thread(self._load)
        return self._cache

    async def update(self, partial: dict) -> AppConfig:
        """
        Merge ``partial`` (camelCase document shape) into the current config,
        persist it, and return the new document.

        Raises:
            ConfigurationError: the merged document is invalid, or selects a
                provider whose credential is not present.
            PersistenceError: the file could not be written.
        """
        async with self._lock:
            current = (await self.get()).to_document()

            partial = dict(partial or {})
            email_partial = dict(partial.pop("emailService", None) or {})
            api_keys = self._extract_api_keys(email_partial)

            merged = {
                **current,
                **partial,
                "emailService": {**current["emailService"], **email_partial},
            }
            try:
                config = AppConfig.model_validate(merged)
            except ValidationError as exc:
                raise ConfigurationError(f"Invalid config update: {exc}") from exc

            _check_provider_invariant(config)

            await asyncio.to_thread(self._write, config)
            self._cache = config

            for provider, api_key in api_keys.items():
                self._secrets.set(PROVIDER_SECRET_NAMES[provider], api_key)
                logger.info(f"Credential for {provider} set for this process")

            return config

    def invalidate(self) -> None:
        self._cache = None

    # ------------------------------------------------------------------
    # File I/O (runs in a worker thread)
    # ------------------------------------------------------------------

    def _load(self) -> AppConfig:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if not self._path.exists():
                config = default_config()
                self._path.write_text(
                    json.dumps(config.to_document(), indent=2), encoding="utf-8"
                )
                logger.info(f"Created default config at {self._path}")
                return config

            return AppConfig.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Error loading config from {self._path}, using defaults: {e}")
            return default_config()

    def _write(self, config: AppConfig) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(config.to_document(), indent=2), encoding="utf-8"
            )
        except OSError as e:
            logger.error(f"Error writing config to {self._path}: {e}")
            raise PersistenceError(f"Failed to write config: {e}") from e

    @staticmethod
    def _extract_api_keys(email_partial: dict) -> dict[str, str]:
        """Pull apiKey out of provider sections, marking them credentialPresent."""
        api_keys: dict[str, str] = {}
        for provider in CREDENTIALED_PROVIDERS:
            section = email_partial.get(provider)
            if not isinstance(section, dict) or "apiKey" not in section:
                continue
            section = dict(section)
            api_key = (section.pop("apiKey") or "").strip()
            if api_key:
                section["credentialPresent"] = True
                api_keys[provider] = api_key
            email_partial[provider] = section
        return api_keys


def _check_provider_invariant(config: AppConfig) -> None:
    service = config.email_service
    status = service.status_for(service.provider)
    if status is not None and not status.credential_present:
        raise ConfigurationError(
            f"Cannot select provider {service.provider!r}: no credential present"
        )
