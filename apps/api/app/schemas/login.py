from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from .base import ApiModel


class LoginRequestMethodView(ApiModel):
    method: str
    config: dict[str, Any]


class LoginRequestResponse(ApiModel):
    id: UUID
    issued_at: datetime
    expires_at: datetime
    request_url: str
    forced: bool
    active: Optional[str] = None
    methods: dict[str, LoginRequestMethodView]
