from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


def resolve_env_file() -> str:
    override = os.getenv("IDENTITY_ENV_FILE")
    if override:
        return override
    cwd = Path.cwd()
    for base in (cwd, *cwd.parents):
        candidate = base / ".env"
        if candidate.is_file():
            return str(candidate)
    return ".env"


class IdentitySettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="IDENTITY_",
        extra="ignore",
    )

    redis_url: str = "redis://localhost:6379/0"
    admin_token: Optional[str] = None
    traits_schema_path: Optional[str] = None
    verification_link_lifespan_seconds: int = 60 * 60 * 24
    request_timeout_seconds: float = 10.0


def _build_identity_settings() -> IdentitySettings:
    return IdentitySettings(_env_file=resolve_env_file())  # pyright: ignore[reportCallIssue]


@lru_cache
def get_identity_settings() -> IdentitySettings:
    return _build_identity_settings()
