"""
Models for grant/session bridging and the /api/nylas + /api/direct endpoints.

JSON bodies use camelCase (grantId, authUrl) to match what the frontend
already sends and reads.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionGrant(BaseModel):
    """Result of a reconciliation: the grant and whether the server holds it."""

    grant_id: Optional[str] = None
    established_in_server: bool = False


class GrantIdResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    grant_id: Optional[str] = Field(default=None, alias="grantId")


class ConnectionStatusResponse(BaseModel):
    """grant_id is the session grant the status refers to."""

    model_config = ConfigDict(populate_by_name=True)

    connected: bool
    grant_id: Optional[str] = Field(default=None, alias="grantId")
    error: Optional[str] = None


class SetGrantIdRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    grant_id: Optional[str] = Field(default=None, alias="grantId")


class AuthUrlRequest(BaseModel):
    email: Optional[str] = None


class ManualExchangeRequest(BaseModel):
    code: Optional[str] = None
