from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, MutableMapping, Optional
from uuid import UUID, uuid4

from fastapi import Request
from starlette.datastructures import URL

from services.errors import BadRequest, FlowExpired
from services.identity.credentials import CredentialsType


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _empty_config() -> dict[str, Any]:
    return {}


def _empty_methods() -> dict[CredentialsType, "RequestMethod"]:
    return {}


@dataclass
class RequestMethod:
    """UI and error state of one login method inside a login request."""

    method: CredentialsType
    config: dict[str, Any] = field(default_factory=_empty_config)
    id: UUID = field(default_factory=uuid4)
    login_request_id: Optional[UUID] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "login_request_id": (
                str(self.login_request_id) if self.login_request_id else None
            ),
            "method": self.method,
            "config": self.config,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "RequestMethod":
        raw_request_id = payload.get("login_request_id")
        return cls(
            id=UUID(str(payload["id"])),
            login_request_id=UUID(str(raw_request_id)) if raw_request_id else None,
            method=str(payload["method"]),
            config=dict(payload.get("config") or {}),
        )


@dataclass
class LoginRequest:
    """A time bounded login flow.

    The methods live in exactly one of two forms: ``methods`` (keyed by
    credentials type) while the request is in use, or ``methods_raw`` (flat
    list of records) while it is being written. ``before_save`` and
    ``after_find`` switch between them.
    """

    id: UUID
    issued_at: datetime
    expires_at: datetime
    request_url: str
    csrf_token: str = ""
    forced: bool = False
    active: Optional[CredentialsType] = None
    methods: Optional[dict[CredentialsType, RequestMethod]] = field(
        default_factory=_empty_methods
    )
    methods_raw: Optional[list[RequestMethod]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def get_id(self) -> UUID:
        return self.id

    def is_forced(self) -> bool:
        return self.forced

    def valid(self, now: Optional[datetime] = None) -> None:
        current = now or _now()
        if self.expires_at < current:
            raise FlowExpired(current - self.expires_at)
        if self.issued_at > current:
            raise BadRequest("The login request was issued in the future.")

    def before_save(self) -> None:
        if self.methods is None:
            return
        self.methods_raw = [
            replace(method, method=key, login_request_id=self.id)
            for key, method in self.methods.items()
        ]
        self.methods = None

    def after_find(self) -> None:
        if self.methods_raw is None:
            return
        methods: dict[CredentialsType, RequestMethod] = {}
        for method in self.methods_raw:
            methods[method.method] = method
        self.methods = methods
        self.methods_raw = None

    def after_create(self) -> None:
        self.after_find()

    def after_update(self) -> None:
        self.after_find()

    def row(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "issued_at": _iso(self.issued_at),
            "expires_at": _iso(self.expires_at),
            "request_url": self.request_url,
            "csrf_token": self.csrf_token,
            "forced": self.forced,
            "active": self.active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_row(
        cls, row: Mapping[str, Any], methods_raw: list[RequestMethod]
    ) -> "LoginRequest":
        issued_at = _parse_dt(row.get("issued_at"))
        expires_at = _parse_dt(row.get("expires_at"))
        if issued_at is None or expires_at is None:
            raise ValueError("login request row is missing timestamps")
        return cls(
            id=UUID(str(row["id"])),
            issued_at=issued_at,
            expires_at=expires_at,
            request_url=str(row.get("request_url") or ""),
            csrf_token=str(row.get("csrf_token") or ""),
            forced=bool(row.get("forced", False)),
            active=row.get("active") or None,
            methods=None,
            methods_raw=methods_raw,
            created_at=_parse_dt(row.get("created_at")),
            updated_at=_parse_dt(row.get("updated_at")),
        )

    def to_public_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": str(self.id),
            "issued_at": _iso(self.issued_at),
            "expires_at": _iso(self.expires_at),
            "request_url": self.request_url,
            "forced": self.forced,
            "methods": {
                key: {"method": method.method, "config": method.config}
                for key, method in (self.methods or {}).items()
            },
        }
        if self.active:
            payload["active"] = self.active
        return payload


def _is_tls(scope: MutableMapping[str, Any]) -> bool:
    extensions = scope.get("extensions") or {}
    return "tls" in extensions


def request_source_url(request: Request) -> str:
    scope = request.scope
    if scope.get("scheme"):
        return str(request.url)
    # transport gave no scheme, infer it from TLS presence
    scheme = "https" if _is_tls(scope) else "http"
    return str(URL(scope={**scope, "scheme": scheme}))


def new_login_request(
    lifespan: timedelta, csrf_token: str, request: Request
) -> LoginRequest:
    now = _now()
    return LoginRequest(
        id=uuid4(),
        issued_at=now,
        expires_at=now + lifespan,
        request_url=request_source_url(request),
        csrf_token=csrf_token,
        methods={},
    )
