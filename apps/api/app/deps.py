from __future__ import annotations

import secrets

from fastapi import HTTPException, Request

from services.context import OperationContext
from services.identity.settings import get_identity_settings


def _extract_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("authorization")
    if auth and auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
        return token or None
    return None


def require_admin(request: Request) -> None:
    settings = get_identity_settings()
    if not settings.admin_token:
        return
    token = _extract_bearer_token(request)
    if not token or not secrets.compare_digest(token, settings.admin_token):
        raise HTTPException(status_code=401, detail="unauthorized")


def operation_context() -> OperationContext:
    settings = get_identity_settings()
    return OperationContext.with_timeout(settings.request_timeout_seconds)
