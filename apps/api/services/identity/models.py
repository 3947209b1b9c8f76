from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional
from uuid import UUID, uuid4

from .code import new_verify_code
from .credentials import Credentials, CredentialsMap

Traits = dict[str, Any]

DEFAULT_TRAITS_SCHEMA_ID = "default"
ADDRESS_VIA_EMAIL = "email"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _empty_traits() -> Traits:
    return {}


def _empty_credentials() -> CredentialsMap:
    return {}


def _empty_addresses() -> list["VerifiableAddress"]:
    return []


@dataclass
class VerifiableAddress:
    id: UUID
    identity_id: UUID
    value: str
    via: str = ADDRESS_VIA_EMAIL
    verified: bool = False
    verified_at: Optional[datetime] = None
    code: str = ""
    expires_at: Optional[datetime] = None

    def to_dict(self, *, include_code: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": str(self.id),
            "identity_id": str(self.identity_id),
            "value": self.value,
            "via": self.via,
            "verified": self.verified,
            "verified_at": _iso(self.verified_at),
            "expires_at": _iso(self.expires_at),
        }
        if include_code:
            payload["code"] = self.code
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "VerifiableAddress":
        return cls(
            id=UUID(str(payload["id"])),
            identity_id=UUID(str(payload["identity_id"])),
            value=str(payload["value"]),
            via=str(payload.get("via") or ADDRESS_VIA_EMAIL),
            verified=bool(payload.get("verified", False)),
            verified_at=_parse_dt(payload.get("verified_at")),
            code=str(payload.get("code") or ""),
            expires_at=_parse_dt(payload.get("expires_at")),
        )


def new_verifiable_email_address(
    value: str, identity_id: UUID, lifespan: timedelta
) -> VerifiableAddress:
    return VerifiableAddress(
        id=uuid4(),
        identity_id=identity_id,
        value=value.strip().lower(),
        via=ADDRESS_VIA_EMAIL,
        code=new_verify_code(),
        expires_at=_now() + lifespan,
    )


def addresses_equal(
    a: Optional[list[VerifiableAddress]], b: Optional[list[VerifiableAddress]]
) -> bool:
    # None and [] are the same empty collection
    if len(a or []) + len(b or []) == 0:
        return True
    return a == b


@dataclass
class Identity:
    id: UUID = field(default_factory=uuid4)
    traits: Traits = field(default_factory=_empty_traits)
    traits_schema_id: str = DEFAULT_TRAITS_SCHEMA_ID
    credentials: CredentialsMap = field(default_factory=_empty_credentials)
    addresses: Optional[list[VerifiableAddress]] = field(
        default_factory=_empty_addresses
    )
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def snapshot(self) -> "Identity":
        """Return a structurally independent deep copy."""
        return copy.deepcopy(self)

    def restore(self, original: "Identity") -> None:
        """Overwrite every field in place with the values of ``original``."""
        for item in fields(self):
            setattr(self, item.name, getattr(original, item.name))

    def without_credentials(self) -> "Identity":
        public = self.snapshot()
        public.credentials = {}
        return public

    def to_dict(self, *, confidential: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": str(self.id),
            "traits": self.traits,
            "traits_schema_id": self.traits_schema_id,
            "addresses": [
                address.to_dict(include_code=confidential)
                for address in self.addresses or []
            ],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if confidential:
            payload["credentials"] = {
                kind: creds.to_dict() if creds is not None else None
                for kind, creds in self.credentials.items()
            }
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Identity":
        raw_credentials = payload.get("credentials") or {}
        return cls(
            id=UUID(str(payload["id"])),
            traits=dict(payload.get("traits") or {}),
            traits_schema_id=str(
                payload.get("traits_schema_id") or DEFAULT_TRAITS_SCHEMA_ID
            ),
            credentials={
                str(kind): Credentials.from_dict(raw) if raw is not None else None
                for kind, raw in raw_credentials.items()
            },
            addresses=[
                VerifiableAddress.from_dict(raw)
                for raw in payload.get("addresses") or []
            ],
            created_at=_parse_dt(payload.get("created_at")),
            updated_at=_parse_dt(payload.get("updated_at")),
        )
