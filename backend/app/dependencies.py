"""
Dependency wiring for the FastAPI app.

Each service is built once per process and handed to routes through
``Depends``. Tests swap them with ``app.dependency_overrides``.
"""

from app import settings
from app.services.config_store import ConfigService
from app.services.dispatcher import EmailDispatcher
from app.services.nylas_client import NylasClient
from app.services.providers import FallbackSender, NylasSender, SendGridSender
from app.services.secrets import SecretsProvider

_secrets: SecretsProvider | None = None
_config_service: ConfigService | None = None
_nylas_client: NylasClient | None = None
_dispatcher: EmailDispatcher | None = None


def get_secrets() -> SecretsProvider:
    global _secrets
    if _secrets is None:
        _secrets = SecretsProvider()
    return _secrets


def get_config_service() -> ConfigService:
    """
    Return the process-wide config service so the cache and write lock are
    shared across requests.
    """
    global _config_service
    if _config_service is None:
        _config_service = ConfigService(settings.get_config_path(), get_secrets())
    return _config_service


def get_nylas_client() -> NylasClient:
    global _nylas_client
    if _nylas_client is None:
        _nylas_client = NylasClient(get_secrets())
    return _nylas_client


def get_dispatcher() -> EmailDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = EmailDispatcher(
            config=get_config_service(),
            sendgrid=SendGridSender(get_secrets()),
            nylas=NylasSender(get_nylas_client()),
            fallback=FallbackSender(),
        )
    return _dispatcher
