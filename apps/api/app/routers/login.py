from __future__ import annotations

import secrets
from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Query, Request

from app.schemas.login import LoginRequestResponse
from services import login as login_service
from services.identity.credentials import CREDENTIALS_TYPE_PASSWORD
from services.login import LoginRequest, RequestMethod, new_login_request

router = APIRouter(prefix="/api/self-service/login", tags=["login"])


def _to_login_response(request: LoginRequest) -> LoginRequestResponse:
    return LoginRequestResponse.model_validate(request.to_public_dict())


def _password_method(request: LoginRequest) -> RequestMethod:
    return RequestMethod(
        method=CREDENTIALS_TYPE_PASSWORD,
        login_request_id=request.id,
        config={
            "action": f"/api/self-service/login/methods/password?request={request.id}",
            "method": "POST",
            "fields": [
                {"name": "identifier", "type": "text", "required": True},
                {"name": "password", "type": "password", "required": True},
                {"name": "csrf_token", "type": "hidden", "value": request.csrf_token},
            ],
        },
    )


@router.get("/browser", response_model=LoginRequestResponse)
def init_browser_login(
    raw: Request,
    refresh: bool = Query(False),
) -> LoginRequestResponse:
    settings = login_service.get_login_settings()
    request = new_login_request(
        timedelta(seconds=settings.request_lifespan_seconds),
        secrets.token_urlsafe(32),
        raw,
    )
    request.forced = refresh
    if request.methods is not None:
        request.methods[CREDENTIALS_TYPE_PASSWORD] = _password_method(request)
    login_service.get_login_request_persister().create_login_request(request)
    return _to_login_response(request)


@router.get("/requests/{request_id}", response_model=LoginRequestResponse)
def get_login_request(request_id: UUID) -> LoginRequestResponse:
    request = login_service.get_login_request_persister().get_login_request(request_id)
    request.valid()
    return _to_login_response(request)
