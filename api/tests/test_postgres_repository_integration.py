from __future__ import annotations

import asyncio
import base64
import json
import os
from collections.abc import Coroutine
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, TypeVar
from uuid import uuid4

import asyncpg  # type: ignore[import-untyped]
import pytest

from eventboard.core.auth import ActingUser, Role
from eventboard.services.cursor import EventSortField
from eventboard.services.errors import BadRequestError, ConflictError, NotFoundError
from eventboard.services.listing import EventDraft, EventFilters, EventListRequest, EventService
from eventboard.services.models import EventStatus
from eventboard.services.moderation import ModerationService
from eventboard.services.notifications import DomainNotification
from eventboard.services.pagination import PaginationMode, SortOrder
from eventboard.services.repository import PostgresEventRepository

T = TypeVar("T")

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "db" / "schema.sql"
TENANT_ONE = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
TENANT_TWO = "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb"
OWNER = ActingUser(id="33333333-3333-3333-3333-333333333333", tenant_id=TENANT_ONE, role=Role.MEMBER)
MODERATOR = ActingUser(id="22222222-2222-2222-2222-222222222222", tenant_id=TENANT_ONE, role=Role.MODERATOR)
OUTSIDER = ActingUser(id="44444444-4444-4444-4444-444444444444", tenant_id=TENANT_TWO, role=Role.MEMBER)
BASE = datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc)


class RecordingPublisher:
    def __init__(self) -> None:
        self.notifications: list[DomainNotification] = []

    def emit(self, notification: DomainNotification) -> None:
        self.notifications.append(notification)


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("EB_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("integration tests require EB_DATABASE_URL or DATABASE_URL")
    return url


@pytest.fixture(autouse=True)
def reset_tables(database_url: str) -> None:
    _run(_reset(database_url))


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


async def _reset(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
        await conn.execute("truncate table events, members")
        await conn.execute(
            "insert into members (id, tenant_id, name, role) values ($1::uuid, $2::uuid, 'Mo Moderator', 'moderator')",
            MODERATOR.id,
            TENANT_ONE,
        )
    finally:
        await conn.close()


def _with_repository(database_url: str, scenario: Any) -> Any:
    async def runner() -> Any:
        repository = PostgresEventRepository(database_url=database_url, min_pool_size=1, max_pool_size=2)
        try:
            return await scenario(repository)
        finally:
            await repository.close()

    return _run(runner())


def test_cursor_walk_and_tenant_isolation(database_url: str) -> None:
    async def scenario(repository: PostgresEventRepository) -> tuple[list[list[str]], list[str], Any]:
        service = EventService(repository)
        created = []
        for offset in (2, 0, 2, 1, 2):
            created.append(await service.create_event(OWNER, EventDraft(title="Talk", start_date=BASE + timedelta(days=offset))))
        await service.create_event(OUTSIDER, EventDraft(title="Elsewhere", start_date=BASE))

        pages: list[list[str]] = []
        cursor = None
        while True:
            page = await service.list_events(
                OWNER,
                EventListRequest(sort_by=EventSortField.START_DATE, sort_order=SortOrder.DESC, cursor=cursor, limit=2),
            )
            pages.append([event.id for event in page.items])
            if not page.has_next_page:
                break
            cursor = page.next_cursor

        expected = [event.id for event in sorted(created, key=lambda event: (event.start_date, event.id), reverse=True)]
        offset_page = await service.list_events(
            OWNER, EventListRequest(mode=PaginationMode.OFFSET, page=2, limit=2, filters=EventFilters(search="TAL"))
        )
        return pages, expected, offset_page

    pages, expected, offset_page = _with_repository(database_url, scenario)

    assert [len(page) for page in pages] == [2, 2, 1]
    assert [event_id for page in pages for event_id in page] == expected
    assert offset_page.total == 5
    assert offset_page.total_pages == 3


def test_moderation_round_trip_persists_audit_fields(database_url: str) -> None:
    async def scenario(repository: PostgresEventRepository) -> Any:
        publisher = RecordingPublisher()
        events = EventService(repository)
        moderation = ModerationService(repository, publisher)
        event = await events.create_event(OWNER, EventDraft(title="Launch", start_date=BASE))

        await moderation.submit(event.id, OWNER)
        rejected = await moderation.reject(event.id, MODERATOR, "needs more detail please")
        reverted = await moderation.revert_to_draft(event.id, OWNER)
        await moderation.submit(event.id, OWNER)
        approved = await moderation.approve(event.id, MODERATOR)
        pending = await moderation.get_pending_events(MODERATOR)
        return rejected, reverted, approved, pending, publisher.notifications

    rejected, reverted, approved, pending, notifications = _with_repository(database_url, scenario)

    assert rejected.moderated_by is not None and rejected.moderated_by.name == "Mo Moderator"
    assert reverted.rejection_reason == "needs more detail please"
    assert approved.status == EventStatus.APPROVED
    assert approved.rejection_reason is None
    assert approved.moderated_by is not None and approved.moderated_by.id == MODERATOR.id
    assert pending.total == 0
    assert len(notifications) == 5


def test_stale_write_is_a_conflict(database_url: str) -> None:
    async def scenario(repository: PostgresEventRepository) -> None:
        events = EventService(repository)
        event = await events.create_event(OWNER, EventDraft(title="Race", start_date=BASE))
        stale = await repository.get(event.id, TENANT_ONE)
        assert stale is not None

        await ModerationService(repository, RecordingPublisher()).submit(event.id, OWNER)

        stale.title = "Overwritten"
        with pytest.raises(ConflictError):
            await repository.save(stale, expected_status=EventStatus.DRAFT)

    _with_repository(database_url, scenario)


def test_malformed_ids_never_reach_other_rows(database_url: str) -> None:
    async def scenario(repository: PostgresEventRepository) -> None:
        assert await repository.get("not-a-uuid", TENANT_ONE) is None
        assert await repository.get(str(uuid4()), "' or 1=1 --") is None
        service = EventService(repository)
        page = await service.list_events(OWNER, EventListRequest(filters=EventFilters(creator_id="nope")))
        assert page.items == []

        token = base64.urlsafe_b64encode(
            json.dumps({"id": "not-a-uuid", "sortValue": "x", "sortField": "title"}).encode("utf-8")
        ).decode("ascii")
        with pytest.raises(BadRequestError):
            await service.list_events(OWNER, EventListRequest(sort_by=EventSortField.TITLE, cursor=token))

    _with_repository(database_url, scenario)


def test_conditional_save_never_recreates_a_deleted_event(database_url: str) -> None:
    async def scenario(repository: PostgresEventRepository) -> None:
        events = EventService(repository)
        event = await events.create_event(OWNER, EventDraft(title="Gone", start_date=BASE))
        snapshot = await repository.get(event.id, TENANT_ONE)
        assert snapshot is not None
        await repository.delete(snapshot)

        with pytest.raises(NotFoundError):
            await repository.save(snapshot, expected_status=EventStatus.DRAFT)
        assert await repository.get(event.id, TENANT_ONE) is None

    _with_repository(database_url, scenario)
