from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import Field

from .base import ApiModel


class CredentialsPayload(ApiModel):
    identifiers: list[str] = Field(default_factory=list)
    config: dict[str, Any] = Field(default_factory=dict)


class VerifiableAddressPayload(ApiModel):
    value: str = Field(..., min_length=3)
    via: str = "email"


class VerifiableAddressView(ApiModel):
    id: UUID
    value: str
    via: str
    verified: bool
    verified_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class IdentityCreateRequest(ApiModel):
    traits: dict[str, Any]
    traits_schema_id: str = "default"
    credentials: dict[str, CredentialsPayload] = Field(default_factory=dict)
    addresses: list[VerifiableAddressPayload] = Field(default_factory=list)


class IdentityUpdateRequest(ApiModel):
    traits: dict[str, Any]
    traits_schema_id: Optional[str] = None
    credentials: Optional[dict[str, CredentialsPayload]] = None
    addresses: Optional[list[VerifiableAddressPayload]] = None


class TraitsUpdateRequest(ApiModel):
    traits: dict[str, Any]


class IdentityResponse(ApiModel):
    id: UUID
    traits: dict[str, Any]
    traits_schema_id: str
    addresses: list[VerifiableAddressView]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class IdentityDeleteResponse(ApiModel):
    ok: bool = True
