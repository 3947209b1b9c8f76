from __future__ import annotations

from datetime import timedelta
from uuid import UUID

from fastapi.testclient import TestClient
import pytest

import app.deps as deps
import main
from services import identity as identity_service
from services.identity.manager import IdentityManager
from services.identity.pool import RedisIdentityPool
from services.identity.settings import IdentitySettings
from services.identity.validation import SchemaTraitValidator

from conftest import PROFILE_SCHEMA, new_fake_redis


def _patch_manager(monkeypatch: pytest.MonkeyPatch) -> IdentityManager:
    manager = IdentityManager(
        RedisIdentityPool(redis=new_fake_redis()),
        SchemaTraitValidator({"default": PROFILE_SCHEMA}),
        verification_link_lifespan=timedelta(hours=1),
    )
    monkeypatch.setattr(identity_service, "get_identity_manager", lambda: manager)
    return manager


def _create(client: TestClient, email: str = "alice@example.com") -> dict:
    response = client.post(
        "/api/admin/identities",
        json={
            "traits": {"email": email, "name": "Alice"},
            "credentials": {
                "password": {"identifiers": [email], "config": {"hashed_password": "h"}}
            },
            "addresses": [{"value": email}],
        },
    )
    assert response.status_code == 201
    return response.json()


def test_admin_create_and_read_hides_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_manager(monkeypatch)
    client = TestClient(main.app)

    created = _create(client)
    fetched = client.get(f"/api/admin/identities/{created['id']}")

    assert fetched.status_code == 200
    body = fetched.json()
    assert body["traits"]["email"] == "alice@example.com"
    assert "credentials" not in body
    assert body["addresses"][0]["value"] == "alice@example.com"
    assert "code" not in body["addresses"][0]


def test_admin_list_identities_pages(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_manager(monkeypatch)
    client = TestClient(main.app)
    _create(client, "alice@example.com")
    _create(client, "bob@example.com")

    first = client.get("/api/admin/identities", params={"page": 0, "perPage": 1})
    everything = client.get("/api/admin/identities")

    assert first.status_code == 200
    assert len(first.json()) == 1
    emails = sorted(item["traits"]["email"] for item in everything.json())
    assert emails == ["alice@example.com", "bob@example.com"]
    assert all("credentials" not in item for item in everything.json())


def test_admin_create_duplicate_identifier_conflicts(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_manager(monkeypatch)
    client = TestClient(main.app)
    _create(client)

    response = client.post(
        "/api/admin/identities",
        json={
            "traits": {"email": "alice@example.com"},
            "credentials": {"password": {"identifiers": ["alice@example.com"]}},
        },
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "conflict"


def test_admin_validation_errors_are_exposed(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_manager(monkeypatch)
    client = TestClient(main.app)

    response = client.post("/api/admin/identities", json={"traits": {"name": "x"}})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "bad_request"
    assert error["details"][0]["path"] == "$"


def test_traits_update_redacts_validation_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_manager(monkeypatch)
    client = TestClient(main.app)
    created = _create(client)

    response = client.put(
        f"/api/identities/{created['id']}/traits", json={"traits": {"name": "x"}}
    )

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["message"] == "traits do not match the identity schema"
    assert "details" not in error


def test_traits_update_succeeds_and_rejects_credential_payloads(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    manager = _patch_manager(monkeypatch)
    client = TestClient(main.app)
    created = _create(client)

    ok = client.put(
        f"/api/identities/{created['id']}/traits",
        json={"traits": {"email": "alice@example.com", "name": "Bob"}},
    )
    smuggled = client.put(
        f"/api/identities/{created['id']}/traits",
        json={
            "traits": {"email": "alice@example.com"},
            "credentials": {"password": {"identifiers": ["mallory@example.com"]}},
        },
    )

    assert ok.status_code == 200
    assert ok.json()["traits"]["name"] == "Bob"
    assert smuggled.status_code == 422
    stored = manager.pool.get_identity_confidential(
        deps.operation_context(), UUID(ok.json()["id"])
    )
    assert stored.credentials["password"].identifiers == ["alice@example.com"]  # type: ignore[union-attr]


def test_admin_update_and_refresh_address(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_manager(monkeypatch)
    client = TestClient(main.app)
    created = _create(client)
    address_id = created["addresses"][0]["id"]

    updated = client.put(
        f"/api/admin/identities/{created['id']}",
        json={
            "traits": {"email": "alice@example.com", "name": "Alicia"},
            "addresses": [{"value": "alice@example.com"}, {"value": "work@example.com"}],
        },
    )
    refreshed = client.post(
        f"/api/admin/identities/{created['id']}/addresses/{address_id}/refresh"
    )
    missing = client.get("/api/admin/identities/00000000-0000-0000-0000-000000000000")

    assert updated.status_code == 200
    assert [item["value"] for item in updated.json()["addresses"]] == [
        "alice@example.com",
        "work@example.com",
    ]
    assert updated.json()["addresses"][0]["id"] == address_id
    assert refreshed.status_code == 200
    assert refreshed.json()["expiresAt"] is not None
    assert missing.status_code == 404


def test_admin_delete_identity(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_manager(monkeypatch)
    client = TestClient(main.app)
    created = _create(client)

    deleted = client.delete(f"/api/admin/identities/{created['id']}")
    again = client.delete(f"/api/admin/identities/{created['id']}")

    assert deleted.status_code == 200
    assert again.status_code == 404


def test_admin_routes_require_token_when_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_manager(monkeypatch)
    monkeypatch.setattr(
        deps, "get_identity_settings", lambda: IdentitySettings(admin_token="admin-token")
    )
    client = TestClient(main.app)

    denied = client.post("/api/admin/identities", json={"traits": {"email": "a@b.co"}})
    allowed = client.post(
        "/api/admin/identities",
        json={"traits": {"email": "a@b.co"}},
        headers={"Authorization": "Bearer admin-token"},
    )

    assert denied.status_code == 401
    assert allowed.status_code == 201
