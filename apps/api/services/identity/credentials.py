from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import Any, Mapping, Optional

CredentialsType = str

CREDENTIALS_TYPE_PASSWORD: CredentialsType = "password"
CREDENTIALS_TYPE_OIDC: CredentialsType = "oidc"
CREDENTIALS_TYPE_CODE: CredentialsType = "code"


def _empty_identifiers() -> list[str]:
    return []


def _empty_config() -> dict[str, Any]:
    return {}


@dataclass
class Credentials:
    """Authentication material of one credentials type.

    ``identifiers`` are the login handles (email, subject, ...) that must be
    unique per type across all identities. ``config`` is type specific, for
    example a password hash or the list of linked OIDC providers.
    """

    type: CredentialsType
    identifiers: list[str] = field(default_factory=_empty_identifiers)
    config: dict[str, Any] = field(default_factory=_empty_config)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "identifiers": list(self.identifiers),
            "config": self.config,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Credentials":
        return cls(
            type=str(payload["type"]),
            identifiers=[str(item) for item in payload.get("identifiers") or []],
            config=dict(payload.get("config") or {}),
        )


CredentialsMap = dict[CredentialsType, Optional[Credentials]]


def _canonical(value: Any) -> str:
    # json keeps true/1/1.0 apart where dict equality would not
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def credentials_equal(
    a: Optional[Mapping[CredentialsType, Optional[Credentials]]],
    b: Optional[Mapping[CredentialsType, Optional[Credentials]]],
) -> bool:
    """Compare two credentials maps independent of key order.

    ``None`` and an empty map are equal. Every type's identifiers and config
    must match exactly for the maps to be equal.
    """
    left = a or {}
    right = b or {}
    if len(left) != len(right):
        return False
    for key, expect in right.items():
        if key not in left:
            return False
        actual = left[key]
        if expect is None or actual is None:
            if expect is not actual:
                return False
            continue
        if expect.type != actual.type:
            return False
        if list(expect.identifiers) != list(actual.identifiers):
            return False
        if _canonical(expect.config) != _canonical(actual.config):
            return False
    return True
