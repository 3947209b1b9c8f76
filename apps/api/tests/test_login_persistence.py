from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json
from uuid import uuid4

import pytest

from services.errors import Conflict, NotFound
from services.login.persistence import LoginRequestPersister
from services.login.request import LoginRequest, RequestMethod

from conftest import new_fake_redis


def _login_request() -> LoginRequest:
    now = datetime.now(timezone.utc)
    request = LoginRequest(
        id=uuid4(),
        issued_at=now,
        expires_at=now + timedelta(minutes=30),
        request_url="https://auth.example.com/api/self-service/login/browser",
        csrf_token="csrf-token",
    )
    request.methods = {
        "password": RequestMethod(method="password", config={"action": "/login"}),
        "oidc": RequestMethod(method="oidc", config={"providers": ["github"]}),
    }
    return request


def test_create_and_get_round_trip() -> None:
    persister = LoginRequestPersister(redis=new_fake_redis(), grace_seconds=60)
    request = _login_request()

    persister.create_login_request(request)
    loaded = persister.get_login_request(request.id)

    assert request.methods is not None and request.methods_raw is None
    assert loaded.methods_raw is None
    assert loaded.methods == request.methods
    assert loaded.csrf_token == "csrf-token"
    assert loaded.issued_at == request.issued_at
    assert loaded.created_at is not None


def test_methods_are_stored_as_separate_records() -> None:
    redis = new_fake_redis()
    persister = LoginRequestPersister(redis=redis, grace_seconds=60)
    request = _login_request()

    persister.create_login_request(request)

    row = json.loads(redis.get(f"login:request:{request.id}"))
    records = [
        json.loads(item) for item in redis.lrange(f"login:request:{request.id}:methods", 0, -1)
    ]
    assert "methods" not in row
    assert {record["method"] for record in records} == {"password", "oidc"}
    assert all(record["login_request_id"] == str(request.id) for record in records)
    assert redis.ttl(f"login:request:{request.id}") > 30 * 60


def test_create_twice_conflicts_and_keeps_mapping_form() -> None:
    persister = LoginRequestPersister(redis=new_fake_redis(), grace_seconds=60)
    request = _login_request()
    persister.create_login_request(request)

    with pytest.raises(Conflict):
        persister.create_login_request(request)

    assert request.methods is not None
    assert request.methods_raw is None


def test_update_login_request_replaces_methods() -> None:
    persister = LoginRequestPersister(redis=new_fake_redis(), grace_seconds=60)
    request = _login_request()
    persister.create_login_request(request)

    request.active = "password"
    request.methods = {"password": RequestMethod(method="password", config={"errors": ["bad"]})}
    persister.update_login_request(request)

    loaded = persister.get_login_request(request.id)
    assert loaded.active == "password"
    assert set(loaded.methods or {}) == {"password"}
    assert loaded.methods["password"].config == {"errors": ["bad"]}  # type: ignore[index]


def test_update_single_method_leaves_others() -> None:
    persister = LoginRequestPersister(redis=new_fake_redis(), grace_seconds=60)
    request = _login_request()
    persister.create_login_request(request)
    password_id = request.methods["password"].id  # type: ignore[index]

    persister.update_login_request_method(request.id, "password", {"errors": ["invalid"]})
    persister.update_login_request_method(request.id, "code", {"sent": True})

    loaded = persister.get_login_request(request.id)
    assert loaded.methods is not None
    assert loaded.methods["password"].config == {"errors": ["invalid"]}
    assert loaded.methods["password"].id == password_id
    assert loaded.methods["oidc"].config == {"providers": ["github"]}
    assert loaded.methods["code"].login_request_id == request.id


def test_missing_request_raises_not_found() -> None:
    persister = LoginRequestPersister(redis=new_fake_redis(), grace_seconds=60)

    with pytest.raises(NotFound):
        persister.get_login_request(uuid4())
    with pytest.raises(NotFound):
        persister.update_login_request(_login_request())
    with pytest.raises(NotFound):
        persister.update_login_request_method(uuid4(), "password", {})
