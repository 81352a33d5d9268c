"""
Minimal Nylas v3 REST client (httpx).

Only the calls the outreach flow needs:
  - check_grant      GET  /v3/grants/{grant_id}
  - send_message     POST /v3/grants/{grant_id}/messages/send
  - build_auth_url   hosted OAuth URL (/v3/connect/auth)
  - exchange_code    POST /v3/connect/token  -> grant_id

All calls authenticate with the application API key (NYLAS_API_KEY), looked
up through the SecretsProvider on every call.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx

from app import settings
from app.errors import AuthError, ConfigurationError, TransportError
from app.services.secrets import NYLAS_API_KEY, NYLAS_CLIENT_ID, SecretsProvider

logger = logging.getLogger(__name__)

# Status codes Nylas uses for an unknown or revoked grant / bad key
_UNAUTHENTICATED_STATUSES = (401, 403, 404)


def short_grant(grant_id: Optional[str]) -> str:
    """Log-safe prefix of a grant id."""
    return f"{grant_id[:8]}…" if grant_id else "<none>"


class NylasClient:
    def __init__(
        self,
        secrets: SecretsProvider,
        api_uri: str = settings.NYLAS_API_URI,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._secrets = secrets
        self._api_uri = api_uri.rstrip("/")
        self._transport = transport

    def is_configured(self) -> bool:
        return self._secrets.has(NYLAS_API_KEY)

    def _client(self) -> httpx.AsyncClient:
        api_key = self._secrets.get(NYLAS_API_KEY)
        if not api_key:
            raise ConfigurationError("Nylas API key not configured")
        return httpx.AsyncClient(
            base_url=self._api_uri,
            headers={"Authorization": f"Bearer {api_key}", "Accept": "application/json"},
            transport=self._transport,
        )

    async def check_grant(self, grant_id: Optional[str]) -> bool:
        """Return True if Nylas reports the grant as valid. Never raises."""
        if not grant_id or not self.is_configured():
            return False

        try:
            async with self._client() as client:
                response = await client.get(f"/v3/grants/{grant_id}")
        except httpx.HTTPError as e:
            logger.warning(f"Nylas grant check failed for {short_grant(grant_id)}: {e}")
            return False

        if response.status_code != 200:
            logger.info(
                f"Nylas grant {short_grant(grant_id)} not valid (HTTP {response.status_code})"
            )
            return False

        try:
            data = (response.json() or {}).get("data") or {}
        except (ValueError, AttributeError) as e:
            logger.warning(f"Unreadable Nylas grant response for {short_grant(grant_id)}: {e}")
            return False
        return data.get("grant_status", "valid") != "invalid"

    async def send_message(self, grant_id: str, payload: dict) -> dict:
        """
        Send a message from the grant's mailbox and return the sent message.

        Raises:
            ConfigurationError: API key missing
            AuthError: grant unknown/revoked or key rejected
            TransportError: any other failure
        """
        try:
            async with self._client() as client:
                response = await client.post(
                    f"/v3/grants/{grant_id}/messages/send", json=payload
                )
        except httpx.HTTPError as e:
            raise TransportError(f"Nylas request failed: {e}") from e

        if response.status_code in _UNAUTHENTICATED_STATUSES:
            raise AuthError("unauthenticated: Nylas rejected the grant")
        if response.status_code >= 400:
            raise TransportError(
                f"Nylas send failed with HTTP {response.status_code}: {response.text[:200]}"
            )
        return (response.json() or {}).get("data") or {}

    def build_auth_url(self, email: str, redirect_uri: str) -> str:
        client_id = self._secrets.get(NYLAS_CLIENT_ID)
        if not client_id:
            raise ConfigurationError("Nylas client id not configured")
        query = urlencode({
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "access_type": "online",
            "login_hint": email,
        })
        return f"{self._api_uri}/v3/connect/auth?{query}"

    async def exchange_code(self, code: str, redirect_uri: str) -> str:
        """Exchange an OAuth authorization code for a grant id."""
        client_id = self._secrets.get(NYLAS_CLIENT_ID)
        api_key = self._secrets.get(NYLAS_API_KEY)
        if not client_id or not api_key:
            raise ConfigurationError("Nylas client id / API key not configured")

        try:
            async with httpx.AsyncClient(
                base_url=self._api_uri, transport=self._transport
            ) as client:
                response = await client.post(
                    "/v3/connect/token",
                    json={
                        "client_id": client_id,
                        "client_secret": api_key,
                        "grant_type": "authorization_code",
                        "code": code,
                        "redirect_uri": redirect_uri,
                    },
                )
        except httpx.HTTPError as e:
            raise TransportError(f"Nylas token exchange failed: {e}") from e

        if response.status_code >= 400:
            raise AuthError(f"Nylas token exchange rejected (HTTP {response.status_code})")

        grant_id = (response.json() or {}).get("grant_id")
        if not grant_id:
            raise AuthError("Nylas token exchange returned no grant_id")
        return grant_id
