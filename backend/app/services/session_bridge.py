"""
Session bridge for the Nylas grant.

The client holds the authoritative copy of the user's grant id (browser
localStorage, or a small JSON file for the CLI). The server keeps an
ephemeral copy in its session, which is lost when the session expires.
SessionBridge.ensure_session() detects that divergence and repairs it:

  1. No grant stored on the client -> ask the server for its current grant.
     If the server has none either, stop: no linked mailbox this session.
  2. Ask the server whether its session holds *this* grant, connected.
  3. Connected -> done.
  4. Otherwise tell the server to adopt the client's grant (restore).
  5. Restore refused (the client grant cannot be verified) -> if the server
     session holds a different, connected grant, the client switches to it.

established_in_server is only ever True for the grant the server session
actually holds, so callers can send with SessionGrant.grant_id.

Repeated calls on a reconciled session cost exactly one status check.

The server side is pluggable:
  HttpGrantServer     talks to /api/nylas/* over HTTP (client-side use)
  SessionGrantServer  works in-process on a request session (server-side use)
"""

import json
import logging
from pathlib import Path
from typing import MutableMapping, Optional, Protocol

import httpx

from app.models.session import SessionGrant
from app.services.nylas_client import NylasClient, short_grant

logger = logging.getLogger(__name__)

# Key used for the grant in client storage and in the server session
GRANT_STORAGE_KEY = "nylas_grant_id"
SESSION_GRANT_KEY = "nylas_grant_id"
SESSION_MOCK_GRANT_KEY = "using_mock_grant"

GRANT_ID_PATH = "/api/nylas/grant-id"
CONNECTION_STATUS_PATH = "/api/nylas/connection-status"
SET_GRANT_ID_PATH = "/api/nylas/set-grant-id"


# ---------------------------------------------------------------------------
# Client-side grant storage
# ---------------------------------------------------------------------------

class GrantStore(Protocol):
    def get_grant_id(self) -> Optional[str]: ...

    def set_grant_id(self, grant_id: str) -> None: ...


class InMemoryGrantStore:
    def __init__(self, grant_id: Optional[str] = None):
        self._grant_id = grant_id or None

    def get_grant_id(self) -> Optional[str]:
        return self._grant_id

    def set_grant_id(self, grant_id: str) -> None:
        self._grant_id = grant_id


class FileGrantStore:
    """
    JSON-file storage, the CLI counterpart of browser localStorage.

    The file holds a flat object; only GRANT_STORAGE_KEY is touched so other
    keys written by other tools survive.
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    def _read(self) -> dict:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable grant store {self._path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get_grant_id(self) -> Optional[str]:
        return self._read().get(GRANT_STORAGE_KEY) or None

    def set_grant_id(self, grant_id: str) -> None:
        data = self._read()
        data[GRANT_STORAGE_KEY] = grant_id
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# Server-side grant state
# ---------------------------------------------------------------------------

class GrantServer(Protocol):
    async def fetch_grant_id(self) -> Optional[str]: ...

    async def is_connected(self, grant_id: str) -> bool: ...

    async def restore(self, grant_id: str) -> bool: ...


class HttpGrantServer:
    """GrantServer over the backend's /api/nylas endpoints."""

    def __init__(self, client: httpx.AsyncClient):
        # The client must keep cookies between calls so the session sticks.
        self._client = client

    async def fetch_grant_id(self) -> Optional[str]:
        response = await self._client.get(GRANT_ID_PATH)
        response.raise_for_status()
        return (response.json() or {}).get("grantId") or None

    async def is_connected(self, grant_id: str) -> bool:
        response = await self._client.get(CONNECTION_STATUS_PATH)
        response.raise_for_status()
        data = response.json() or {}
        # A session holding another grant does not count as connected.
        server_grant = data.get("grantId")
        if server_grant and server_grant != grant_id:
            return False
        return bool(data.get("connected"))

    async def restore(self, grant_id: str) -> bool:
        response = await self._client.post(SET_GRANT_ID_PATH, json={"grantId": grant_id})
        if response.is_error:
            logger.warning(f"Server refused grant {short_grant(grant_id)} (HTTP {response.status_code})")
            return False
        return bool((response.json() or {}).get("success", True))


class SessionGrantServer:
    """GrantServer working directly on a request session mapping."""

    def __init__(self, session: MutableMapping, nylas: NylasClient):
        self._session = session
        self._nylas = nylas

    async def fetch_grant_id(self) -> Optional[str]:
        return self._session.get(SESSION_GRANT_KEY) or None

    async def is_connected(self, grant_id: str) -> bool:
        if not grant_id or self._session.get(SESSION_GRANT_KEY) != grant_id:
            return False
        return await self._nylas.check_grant(grant_id)

    async def restore(self, grant_id: str) -> bool:
        if not await self._nylas.check_grant(grant_id):
            logger.warning(f"Grant {short_grant(grant_id)} could not be verified; not adopted")
            return False
        self._session[SESSION_GRANT_KEY] = grant_id
        logger.info(f"Adopted grant {short_grant(grant_id)} into session")
        return True


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

class SessionBridge:
    def __init__(self, store: GrantStore, server: GrantServer):
        self._store = store
        self._server = server

    async def ensure_session(self) -> SessionGrant:
        """
        Reconcile the client grant with the server session.

        Returns the grant the client now holds and whether the server
        session holds that same grant. Errors from the server are not
        swallowed here.
        """
        grant_id = self._store.get_grant_id()
        if not grant_id:
            grant_id = await self._server.fetch_grant_id()
            if not grant_id:
                logger.debug("No grant on client or server; nothing to reconcile")
                return SessionGrant()
            self._store.set_grant_id(grant_id)

        if await self._server.is_connected(grant_id):
            return SessionGrant(grant_id=grant_id, established_in_server=True)

        logger.info(f"Server session does not hold grant {short_grant(grant_id)}; restoring")
        if await self._server.restore(grant_id):
            return SessionGrant(grant_id=grant_id, established_in_server=True)

        server_grant = await self._server.fetch_grant_id()
        if server_grant and server_grant != grant_id and await self._server.is_connected(server_grant):
            logger.info(
                f"Client grant {short_grant(grant_id)} refused; "
                f"using session grant {short_grant(server_grant)}"
            )
            self._store.set_grant_id(server_grant)
            return SessionGrant(grant_id=server_grant, established_in_server=True)

        return SessionGrant(grant_id=grant_id, established_in_server=False)
