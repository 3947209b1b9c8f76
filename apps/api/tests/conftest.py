from __future__ import annotations

from datetime import timedelta
from pathlib import Path
import sys
from typing import Any, Callable, Optional

import fakeredis
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.context import OperationContext  # noqa: E402
from services.identity import settings as identity_settings  # noqa: E402
from services.identity import validation as identity_validation  # noqa: E402
from services.identity.credentials import Credentials  # noqa: E402
from services.identity.manager import IdentityManager  # noqa: E402
from services.identity.models import Identity, new_verifiable_email_address  # noqa: E402
from services.identity.pool import RedisIdentityPool  # noqa: E402
from services.identity.validation import SchemaTraitValidator  # noqa: E402
from services.login import settings as login_settings  # noqa: E402

PROFILE_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "email": {"type": "string", "format": "email"},
        "name": {"type": "string", "minLength": 1},
    },
    "required": ["email"],
}


def new_fake_redis() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(server=fakeredis.FakeServer())


def make_identity(
    email: str = "alice@example.com", *, with_address: bool = True
) -> Identity:
    identity = Identity(
        traits={"email": email, "name": "Alice"},
        credentials={
            "password": Credentials(
                type="password",
                identifiers=[email],
                config={"hashed_password": "pbkdf2_sha256$2000$c2FsdA==$ZGlnZXN0"},
            )
        },
    )
    if with_address:
        identity.addresses = [
            new_verifiable_email_address(email, identity.id, timedelta(hours=1))
        ]
    return identity


class RecordingValidator:
    """Validates like the schema validator and lets a test tamper en route."""

    def __init__(
        self,
        tamper: Optional[Callable[[Identity], None]] = None,
        schema: Optional[dict[str, Any]] = None,
    ) -> None:
        self.inner = SchemaTraitValidator({"default": schema or PROFILE_SCHEMA})
        self.tamper = tamper
        self.seen: list[Identity] = []

    def validate(self, identity: Identity) -> None:
        self.seen.append(identity)
        if self.tamper is not None:
            self.tamper(identity)
        self.inner.validate(identity)


@pytest.fixture(autouse=True)
def _clear_settings_caches() -> Any:
    identity_settings.get_identity_settings.cache_clear()
    identity_validation.get_trait_validator.cache_clear()
    login_settings.get_login_settings.cache_clear()
    yield
    identity_settings.get_identity_settings.cache_clear()
    identity_validation.get_trait_validator.cache_clear()
    login_settings.get_login_settings.cache_clear()


@pytest.fixture
def ctx() -> OperationContext:
    return OperationContext.background()


@pytest.fixture
def pool() -> RedisIdentityPool:
    return RedisIdentityPool(redis=new_fake_redis())


@pytest.fixture
def manager(pool: RedisIdentityPool) -> IdentityManager:
    return IdentityManager(
        pool,
        SchemaTraitValidator({"default": PROFILE_SCHEMA}),
        verification_link_lifespan=timedelta(hours=1),
    )
