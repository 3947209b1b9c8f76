from __future__ import annotations

from datetime import datetime, timezone
import json
from typing import Any, Mapping, Optional, cast
from uuid import UUID

from redis import Redis, WatchError

from services.errors import Conflict, NotFound
from services.identity.credentials import CredentialsType

from .request import LoginRequest, RequestMethod
from .settings import get_login_settings


_REQUEST_PREFIX = "login:request:"
_MAX_TX_ATTEMPTS = 5


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _request_key(request_id: UUID) -> str:
    return f"{_REQUEST_PREFIX}{request_id}"


def _methods_key(request_id: UUID) -> str:
    return f"{_REQUEST_PREFIX}{request_id}:methods"


class LoginRequestPersister:
    """Stores login requests with one list entry per login method."""

    def __init__(
        self, redis: Optional[Redis] = None, *, grace_seconds: Optional[int] = None
    ) -> None:
        settings = get_login_settings()
        self.grace_seconds = (
            grace_seconds if grace_seconds is not None else settings.storage_grace_seconds
        )
        if redis is not None:
            self.redis = redis
            return
        if settings.redis_url is None:
            raise RuntimeError("LOGIN_REDIS_URL must be set")
        redis_cls = cast(Any, Redis)
        self.redis = cast(Redis, redis_cls.from_url(settings.redis_url))

    def _ttl_seconds(self, expires_at: datetime) -> int:
        remaining = int((expires_at - _now()).total_seconds())
        return max(1, remaining + self.grace_seconds)

    def _write(self, pipe: Any, request: LoginRequest) -> None:
        ttl = self._ttl_seconds(request.expires_at)
        methods_key = _methods_key(request.id)
        pipe.set(_request_key(request.id), json.dumps(request.row()), ex=ttl)
        pipe.delete(methods_key)
        for method in request.methods_raw or []:
            pipe.rpush(methods_key, json.dumps(method.to_dict()))
        pipe.expire(methods_key, ttl)

    def _replace(self, request: LoginRequest, *, must_exist: bool) -> None:
        request_key = _request_key(request.id)
        pipe_any = cast(Any, self.redis).pipeline(transaction=True)
        for _ in range(_MAX_TX_ATTEMPTS):
            try:
                pipe_any.watch(request_key)
                exists = bool(pipe_any.exists(request_key))
                if must_exist and not exists:
                    pipe_any.reset()
                    raise NotFound(f"login request {request.id} not found")
                if not must_exist and exists:
                    pipe_any.reset()
                    raise Conflict(f"login request {request.id} already exists")
                pipe_any.multi()
                self._write(pipe_any, request)
                pipe_any.execute()
                return
            except WatchError:
                pipe_any.reset()
                continue
        raise RuntimeError("failed to store login request")

    def create_login_request(self, request: LoginRequest) -> None:
        now = _now()
        request.created_at = now
        request.updated_at = now
        request.before_save()
        try:
            self._replace(request, must_exist=False)
        finally:
            request.after_create()

    def update_login_request(self, request: LoginRequest) -> None:
        request.updated_at = _now()
        request.before_save()
        try:
            self._replace(request, must_exist=True)
        finally:
            request.after_update()

    def get_login_request(self, request_id: UUID) -> LoginRequest:
        raw = cast(Optional[bytes], self.redis.get(_request_key(request_id)))
        if not raw:
            raise NotFound(f"login request {request_id} not found")
        records = cast(list[bytes], self.redis.lrange(_methods_key(request_id), 0, -1))
        request = LoginRequest.from_row(
            json.loads(raw),
            [RequestMethod.from_dict(json.loads(item)) for item in records],
        )
        request.after_find()
        return request

    def update_login_request_method(
        self,
        request_id: UUID,
        method: CredentialsType,
        config: Mapping[str, Any],
    ) -> None:
        """Replace the config of a single method record, appending it if absent."""
        request_key = _request_key(request_id)
        methods_key = _methods_key(request_id)
        pipe_any = cast(Any, self.redis).pipeline(transaction=True)
        for _ in range(_MAX_TX_ATTEMPTS):
            try:
                pipe_any.watch(request_key, methods_key)
                raw = cast(Optional[bytes], pipe_any.get(request_key))
                if not raw:
                    pipe_any.reset()
                    raise NotFound(f"login request {request_id} not found")
                row = json.loads(raw)
                records = cast(list[bytes], pipe_any.lrange(methods_key, 0, -1))
                index: Optional[int] = None
                record = RequestMethod(
                    method=method, config=dict(config), login_request_id=request_id
                )
                for position, item in enumerate(records):
                    existing = RequestMethod.from_dict(json.loads(item))
                    if existing.method == method:
                        index = position
                        record.id = existing.id
                row["updated_at"] = _now().isoformat()
                expires_at = datetime.fromisoformat(row["expires_at"])
                ttl = self._ttl_seconds(expires_at)

                pipe_any.multi()
                if index is None:
                    pipe_any.rpush(methods_key, json.dumps(record.to_dict()))
                else:
                    pipe_any.lset(methods_key, index, json.dumps(record.to_dict()))
                pipe_any.set(request_key, json.dumps(row), ex=ttl)
                pipe_any.expire(methods_key, ttl)
                pipe_any.execute()
                return
            except WatchError:
                pipe_any.reset()
                continue
        raise RuntimeError("failed to update login request method")


def get_login_request_persister() -> LoginRequestPersister:
    return LoginRequestPersister()
