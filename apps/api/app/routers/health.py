from __future__ import annotations

from typing import Any, cast

from fastapi import APIRouter, Response, status
from redis.exceptions import RedisError

from services import identity as identity_service

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health() -> dict[str, Any]:
    return {"status": "ok"}


@router.get("/ready")
def ready(response: Response) -> dict[str, Any]:
    pool = identity_service.get_identity_pool()
    try:
        cast(Any, pool.redis).ping()
        redis_check = {"status": "ok"}
    except RedisError as exc:
        redis_check = {"status": "failed", "detail": str(exc)}
    is_ready = redis_check["status"] == "ok"
    if not is_ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "ready" if is_ready else "not_ready",
        "checks": {"redis": redis_check},
    }
