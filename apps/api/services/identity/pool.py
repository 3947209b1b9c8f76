from __future__ import annotations

from datetime import datetime, timezone
import json
from typing import Any, Iterable, Optional, Protocol, cast
from uuid import UUID

from redis import Redis, WatchError

from services.context import OperationContext
from services.errors import DuplicateIdentity, ConcurrentUpdate, Conflict, NotFound

from .models import Identity, VerifiableAddress
from .settings import get_identity_settings


_RECORD_PREFIX = "identity:record:"
_CREDENTIAL_PREFIX = "identity:credential:"
_ADDRESS_PREFIX = "identity:address:"
_ID_INDEX = "identity:ids"
_MAX_TX_ATTEMPTS = 5


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _record_key(identity_id: UUID) -> str:
    return f"{_RECORD_PREFIX}{identity_id}"


def _credential_keys(identity: Identity) -> list[str]:
    keys: list[str] = []
    for kind, creds in identity.credentials.items():
        if creds is None:
            continue
        for identifier in creds.identifiers:
            keys.append(f"{_CREDENTIAL_PREFIX}{kind}:{identifier}")
    return keys


def _address_keys(identity: Identity) -> list[str]:
    return [f"{_ADDRESS_PREFIX}{address.id}" for address in identity.addresses or []]


def _decode(raw: Optional[bytes]) -> Optional[str]:
    if raw is None:
        return None
    return raw.decode("utf-8")


class IdentityPool(Protocol):
    """Storage operations the identity manager relies on.

    Every method is privileged: it reads or writes credentials without any
    protected field checks.
    """

    def create_identity(self, ctx: OperationContext, identity: Identity) -> None: ...

    def update_identity(self, ctx: OperationContext, identity: Identity) -> None: ...

    def get_identity(self, ctx: OperationContext, identity_id: UUID) -> Identity: ...

    def get_identity_confidential(
        self, ctx: OperationContext, identity_id: UUID
    ) -> Identity: ...

    def update_verifiable_address(
        self, ctx: OperationContext, address: VerifiableAddress
    ) -> None: ...

    def delete_identity(self, ctx: OperationContext, identity_id: UUID) -> None: ...


class RedisIdentityPool:
    def __init__(self, redis: Optional[Redis] = None) -> None:
        if redis is not None:
            self.redis = redis
            return
        settings = get_identity_settings()
        redis_cls = cast(Any, Redis)
        self.redis = cast(Redis, redis_cls.from_url(settings.redis_url))

    def _load(self, reader: Any, identity_id: UUID) -> Optional[Identity]:
        raw = cast(Optional[bytes], reader.get(_record_key(identity_id)))
        if not raw:
            return None
        return Identity.from_dict(json.loads(raw))

    def _claimed_by_other(
        self, pipe: Any, keys: Iterable[str], identity_id: UUID
    ) -> bool:
        for key in keys:
            owner = _decode(cast(Optional[bytes], pipe.get(key)))
            if owner is not None and owner != str(identity_id):
                return True
        return False

    def create_identity(self, ctx: OperationContext, identity: Identity) -> None:
        now = _now()
        stored = identity.snapshot()
        stored.created_at = now
        stored.updated_at = now
        for address in stored.addresses or []:
            address.identity_id = stored.id
        record_key = _record_key(stored.id)
        credential_keys = _credential_keys(stored)
        address_keys = _address_keys(stored)
        payload = json.dumps(stored.to_dict(confidential=True))

        pipe_any = cast(Any, self.redis).pipeline(transaction=True)
        for _ in range(_MAX_TX_ATTEMPTS):
            ctx.raise_if_done()
            try:
                pipe_any.watch(record_key, *credential_keys)
                if pipe_any.exists(record_key):
                    pipe_any.reset()
                    raise Conflict(f"identity {stored.id} already exists")
                if self._claimed_by_other(pipe_any, credential_keys, stored.id):
                    pipe_any.reset()
                    raise DuplicateIdentity()
                pipe_any.multi()
                pipe_any.set(record_key, payload)
                for key in credential_keys:
                    pipe_any.set(key, str(stored.id))
                for key in address_keys:
                    pipe_any.set(key, str(stored.id))
                pipe_any.sadd(_ID_INDEX, str(stored.id))
                pipe_any.execute()
                break
            except WatchError:
                pipe_any.reset()
                continue
        else:
            raise RuntimeError("failed to create identity")

        identity.created_at = stored.created_at
        identity.updated_at = stored.updated_at
        identity.addresses = stored.addresses

    def update_identity(self, ctx: OperationContext, identity: Identity) -> None:
        """Replace the stored identity.

        ``identity.updated_at`` acts as an optimistic lock: when set, it must
        match the stored record or ``ConcurrentUpdate`` is raised.
        """
        now = _now()
        record_key = _record_key(identity.id)
        credential_keys = _credential_keys(identity)

        pipe_any = cast(Any, self.redis).pipeline(transaction=True)
        for _ in range(_MAX_TX_ATTEMPTS):
            ctx.raise_if_done()
            try:
                pipe_any.watch(record_key, *credential_keys)
                current = self._load(pipe_any, identity.id)
                if current is None:
                    pipe_any.reset()
                    raise NotFound(f"identity {identity.id} not found")
                if (
                    identity.updated_at is not None
                    and current.updated_at != identity.updated_at
                ):
                    pipe_any.reset()
                    raise ConcurrentUpdate()
                if self._claimed_by_other(pipe_any, credential_keys, identity.id):
                    pipe_any.reset()
                    raise DuplicateIdentity()

                stored = identity.snapshot()
                stored.created_at = current.created_at
                stored.updated_at = now
                for address in stored.addresses or []:
                    address.identity_id = stored.id
                stale_keys = set(_credential_keys(current)) - set(credential_keys)
                stale_keys |= set(_address_keys(current)) - set(_address_keys(stored))

                pipe_any.multi()
                pipe_any.set(record_key, json.dumps(stored.to_dict(confidential=True)))
                for key in stale_keys:
                    pipe_any.delete(key)
                for key in credential_keys:
                    pipe_any.set(key, str(stored.id))
                for key in _address_keys(stored):
                    pipe_any.set(key, str(stored.id))
                pipe_any.execute()
                break
            except WatchError:
                pipe_any.reset()
                continue
        else:
            raise RuntimeError("failed to update identity")

        identity.created_at = stored.created_at
        identity.updated_at = stored.updated_at

    def get_identity_confidential(
        self, ctx: OperationContext, identity_id: UUID
    ) -> Identity:
        ctx.raise_if_done()
        identity = self._load(self.redis, identity_id)
        if identity is None:
            raise NotFound(f"identity {identity_id} not found")
        return identity

    def get_identity(self, ctx: OperationContext, identity_id: UUID) -> Identity:
        return self.get_identity_confidential(ctx, identity_id).without_credentials()

    def list_identities(
        self, ctx: OperationContext, *, page: int = 0, per_page: int = 100
    ) -> list[Identity]:
        if page < 0 or per_page <= 0:
            raise ValueError("page must be >= 0 and per_page >= 1")
        ctx.raise_if_done()
        members = cast(set[bytes], self.redis.smembers(_ID_INDEX))
        ids = sorted(member.decode("utf-8") for member in members)
        selected = ids[page * per_page : (page + 1) * per_page]
        identities: list[Identity] = []
        for raw_id in selected:
            identity = self._load(self.redis, UUID(raw_id))
            if identity is not None:
                identities.append(identity.without_credentials())
        return identities

    def delete_identity(self, ctx: OperationContext, identity_id: UUID) -> None:
        record_key = _record_key(identity_id)
        pipe_any = cast(Any, self.redis).pipeline(transaction=True)
        for _ in range(_MAX_TX_ATTEMPTS):
            ctx.raise_if_done()
            try:
                pipe_any.watch(record_key)
                current = self._load(pipe_any, identity_id)
                if current is None:
                    pipe_any.reset()
                    raise NotFound(f"identity {identity_id} not found")
                pipe_any.multi()
                pipe_any.delete(record_key)
                for key in _credential_keys(current) + _address_keys(current):
                    pipe_any.delete(key)
                pipe_any.srem(_ID_INDEX, str(identity_id))
                pipe_any.execute()
                return
            except WatchError:
                pipe_any.reset()
                continue
        raise RuntimeError("failed to delete identity")

    def get_verifiable_address(
        self, ctx: OperationContext, address_id: UUID
    ) -> VerifiableAddress:
        ctx.raise_if_done()
        owner = _decode(
            cast(Optional[bytes], self.redis.get(f"{_ADDRESS_PREFIX}{address_id}"))
        )
        if owner is None:
            raise NotFound(f"verifiable address {address_id} not found")
        identity = self._load(self.redis, UUID(owner))
        for address in (identity.addresses or []) if identity else []:
            if address.id == address_id:
                return address
        raise NotFound(f"verifiable address {address_id} not found")

    def update_verifiable_address(
        self, ctx: OperationContext, address: VerifiableAddress
    ) -> None:
        record_key = _record_key(address.identity_id)
        pipe_any = cast(Any, self.redis).pipeline(transaction=True)
        for _ in range(_MAX_TX_ATTEMPTS):
            ctx.raise_if_done()
            try:
                pipe_any.watch(record_key)
                current = self._load(pipe_any, address.identity_id)
                addresses = (current.addresses or []) if current else []
                index = next(
                    (i for i, item in enumerate(addresses) if item.id == address.id),
                    None,
                )
                if current is None or index is None:
                    pipe_any.reset()
                    raise NotFound(f"verifiable address {address.id} not found")
                addresses[index] = address
                current.updated_at = _now()
                pipe_any.multi()
                pipe_any.set(record_key, json.dumps(current.to_dict(confidential=True)))
                pipe_any.execute()
                return
            except WatchError:
                pipe_any.reset()
                continue
        raise RuntimeError("failed to update verifiable address")


def get_identity_pool() -> RedisIdentityPool:
    return RedisIdentityPool()
