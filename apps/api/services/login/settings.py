from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from services.identity.settings import get_identity_settings, resolve_env_file


class LoginSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LOGIN_",
        extra="ignore",
    )

    redis_url: Optional[str] = None
    request_lifespan_seconds: int = 60 * 60
    storage_grace_seconds: int = 60 * 60 * 24


def _build_login_settings() -> LoginSettings:
    return LoginSettings(_env_file=resolve_env_file())  # pyright: ignore[reportCallIssue]


@lru_cache
def get_login_settings() -> LoginSettings:
    settings = _build_login_settings()
    if not settings.redis_url:
        settings.redis_url = get_identity_settings().redis_url
    return settings
