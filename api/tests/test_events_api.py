from __future__ import annotations

import os
from typing import Any

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import eventboard.core.security as security
from eventboard.core.config import get_settings
from eventboard.main import app
from eventboard.services.repository import get_repository
from eventboard.services.store import InMemoryEventRepository

TENANT_ONE = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
TENANT_TWO = "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb"

USERS: dict[str, dict[str, Any]] = {
    "member-token": {
        "id": "33333333-3333-3333-3333-333333333333",
        "email": "member@example.org",
        "app_metadata": {"role": "member", "tenant_id": TENANT_ONE},
        "user_metadata": {"name": "Mel Member"},
    },
    "neighbour-token": {
        "id": "55555555-5555-5555-5555-555555555555",
        "email": "neighbour@example.org",
        "app_metadata": {"role": "member", "tenant_id": TENANT_ONE},
        "user_metadata": {},
    },
    "other-tenant-token": {
        "id": "44444444-4444-4444-4444-444444444444",
        "email": "other@example.org",
        "app_metadata": {"role": "admin", "tenant_id": TENANT_TWO},
        "user_metadata": {},
    },
    "no-tenant-token": {
        "id": "66666666-6666-6666-6666-666666666666",
        "app_metadata": {"role": "member"},
        "user_metadata": {},
    },
}


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    os.environ["EB_SUPABASE_URL"] = "https://example.supabase.co"
    os.environ["EB_SUPABASE_ANON_KEY"] = "anon-key"
    get_settings.cache_clear()

    async def _fake_fetch(**kwargs: Any) -> dict[str, Any]:
        user = USERS.get(kwargs["token"])
        if user is None:
            raise HTTPException(status_code=401, detail="invalid bearer token")
        return user

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)

    repository = InMemoryEventRepository(member_names={USERS["member-token"]["id"]: "Mel Member"})
    app.dependency_overrides[get_repository] = lambda: repository

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    os.environ.pop("EB_SUPABASE_URL", None)
    os.environ.pop("EB_SUPABASE_ANON_KEY", None)
    get_settings.cache_clear()


def _create(client: TestClient, token: str = "member-token", **overrides: Any) -> dict[str, Any]:
    body = {"title": "Launch party", "start_date": "2026-03-15T09:00:00Z"}
    body.update(overrides)
    response = client.post("/events", json=body, headers=_auth(token))
    assert response.status_code == 201, response.text
    return response.json()


def test_requests_without_bearer_token_are_unauthorized(client: TestClient) -> None:
    assert client.get("/events").status_code == 401
    assert client.get("/events", headers=_auth("unknown-token")).status_code == 401


def test_user_without_organization_is_forbidden(client: TestClient) -> None:
    response = client.get("/events", headers=_auth("no-tenant-token"))
    assert response.status_code == 403


def test_create_event_is_draft_and_owned_by_caller(client: TestClient) -> None:
    created = _create(client, description="Bring snacks")

    assert created["status"] == "draft"
    assert created["tenant_id"] == TENANT_ONE
    assert created["creator_id"] == USERS["member-token"]["id"]
    assert created["creator_name"] == "Mel Member"
    assert created["description"] == "Bring snacks"


def test_create_event_rejects_status_and_bad_schedule(client: TestClient) -> None:
    with_status = client.post(
        "/events",
        json={"title": "Sneaky", "start_date": "2026-03-15T09:00:00Z", "status": "approved"},
        headers=_auth("member-token"),
    )
    assert with_status.status_code == 400

    bad_schedule = client.post(
        "/events",
        json={"title": "Backwards", "start_date": "2026-03-15T09:00:00Z", "end_date": "2026-03-15T08:00:00Z"},
        headers=_auth("member-token"),
    )
    assert bad_schedule.status_code == 400
    assert bad_schedule.json()["detail"] == "End date must be after start date"

    virtual = client.post(
        "/events",
        json={"title": "Online", "start_date": "2026-03-15T09:00:00Z", "is_virtual": True},
        headers=_auth("member-token"),
    )
    assert virtual.status_code == 400
    assert virtual.json()["detail"] == "Virtual events must have a virtual URL"


def test_list_events_cursor_mode_by_default(client: TestClient) -> None:
    for day in (3, 1, 2):
        _create(client, title=f"Day {day}", start_date=f"2026-03-0{day}T09:00:00Z")
    _create(client, token="other-tenant-token", title="Elsewhere")

    first = client.get("/events", params={"limit": 2}, headers=_auth("member-token"))
    assert first.status_code == 200
    payload = first.json()
    assert [row["title"] for row in payload["data"]] == ["Day 1", "Day 2"]
    assert payload["pagination"]["has_next_page"] is True
    assert payload["pagination"]["has_prev_page"] is False
    assert payload["pagination"]["count"] == 2

    second = client.get(
        "/events",
        params={"limit": 2, "cursor": payload["pagination"]["next_cursor"]},
        headers=_auth("member-token"),
    )
    assert [row["title"] for row in second.json()["data"]] == ["Day 3"]
    assert second.json()["pagination"]["has_prev_page"] is True
    assert second.json()["pagination"]["next_cursor"] is None


def test_list_events_offset_mode_and_filters(client: TestClient) -> None:
    _create(client, title="Python meetup", start_date="2026-03-01T09:00:00Z")
    _create(client, title="Rust meetup", start_date="2026-03-02T09:00:00Z")
    _create(client, title="Board games", start_date="2026-03-03T09:00:00Z")

    response = client.get(
        "/events",
        params={"pagination": "offset", "search": "MEETUP", "sort_by": "title", "sort_order": "DESC", "limit": 1},
        headers=_auth("member-token"),
    )

    assert response.status_code == 200
    payload = response.json()
    assert [row["title"] for row in payload["data"]] == ["Rust meetup"]
    assert payload["pagination"] == {
        "total": 2,
        "page": 1,
        "limit": 1,
        "total_pages": 2,
        "has_next_page": True,
        "has_prev_page": False,
    }


def test_list_events_rejects_bad_cursor_and_parameters(client: TestClient) -> None:
    bad_cursor = client.get("/events", params={"cursor": "garbage"}, headers=_auth("member-token"))
    assert bad_cursor.status_code == 400
    assert bad_cursor.json()["detail"] == "Invalid cursor format"

    assert client.get("/events", params={"limit": 0}, headers=_auth("member-token")).status_code == 400
    assert client.get("/events", params={"limit": 101}, headers=_auth("member-token")).status_code == 400
    assert client.get("/events", params={"sort_by": "tenant_id"}, headers=_auth("member-token")).status_code == 400
    assert client.get("/events", params={"status": "bogus"}, headers=_auth("member-token")).status_code == 400
    inverted = client.get(
        "/events",
        params={"start_date_from": "2026-03-05T00:00:00Z", "start_date_to": "2026-03-01T00:00:00Z"},
        headers=_auth("member-token"),
    )
    assert inverted.status_code == 400


def test_cursor_with_other_sort_field_is_rejected(client: TestClient) -> None:
    _create(client, title="One", start_date="2026-03-01T09:00:00Z")
    _create(client, title="Two", start_date="2026-03-02T09:00:00Z")
    first = client.get("/events", params={"limit": 1}, headers=_auth("member-token")).json()

    response = client.get(
        "/events",
        params={"limit": 1, "sort_by": "title", "cursor": first["pagination"]["next_cursor"]},
        headers=_auth("member-token"),
    )

    assert response.status_code == 400
    assert "not portable" in response.json()["detail"]


def test_get_update_delete_respect_tenant_and_ownership(client: TestClient) -> None:
    created = _create(client)
    event_path = f"/events/{created['id']}"

    assert client.get(event_path, headers=_auth("neighbour-token")).status_code == 200
    assert client.get(event_path, headers=_auth("other-tenant-token")).status_code == 404

    forbidden = client.patch(event_path, json={"title": "Mine now"}, headers=_auth("neighbour-token"))
    assert forbidden.status_code == 403

    status_change = client.patch(event_path, json={"status": "approved"}, headers=_auth("member-token"))
    assert status_change.status_code == 400

    updated = client.patch(event_path, json={"location": "Hall B"}, headers=_auth("member-token"))
    assert updated.status_code == 200
    assert updated.json()["location"] == "Hall B"
    assert updated.json()["title"] == "Launch party"

    assert client.delete(event_path, headers=_auth("neighbour-token")).status_code == 403
    assert client.delete(event_path, headers=_auth("member-token")).status_code == 204
    assert client.get(event_path, headers=_auth("member-token")).status_code == 404


def test_my_events_lists_only_the_callers_events(client: TestClient) -> None:
    _create(client, title="Mine")
    _create(client, token="neighbour-token", title="Theirs")

    response = client.get("/events/mine", headers=_auth("member-token"))

    assert response.status_code == 200
    assert [row["title"] for row in response.json()["data"]] == ["Mine"]
