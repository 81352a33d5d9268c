"""
Pydantic models for the persisted application config (.config/app-config.json).

The file uses camelCase keys:

  {
    "emailService": {
      "provider": "fallback",
      "sendgrid": {"credentialPresent": false},
      "nylas":    {"credentialPresent": false}
    }
  }

Models are declared with snake_case attributes and camelCase aliases so the
rest of the code stays pythonic while the document on disk keeps its shape.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ProviderName = Literal["sendgrid", "nylas", "fallback"]

# Backends that carry a credential; "fallback" never does.
CREDENTIALED_PROVIDERS = ("sendgrid", "nylas")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProviderStatus(_CamelModel):
    """Whether the app holds a credential for one sending backend."""

    credential_present: bool = False


class EmailServiceConfig(_CamelModel):
    provider: ProviderName = "fallback"
    sendgrid: ProviderStatus = Field(default_factory=ProviderStatus)
    nylas: ProviderStatus = Field(default_factory=ProviderStatus)

    def status_for(self, provider: str) -> ProviderStatus | None:
        if provider not in CREDENTIALED_PROVIDERS:
            return None
        return getattr(self, provider)


class AppConfig(_CamelModel):
    """Top-level config document."""

    email_service: EmailServiceConfig = Field(default_factory=EmailServiceConfig)

    def to_document(self) -> dict:
        """Serialize to the on-disk (camelCase) shape."""
        return self.model_dump(by_alias=True)


def default_config() -> AppConfig:
    return AppConfig()
