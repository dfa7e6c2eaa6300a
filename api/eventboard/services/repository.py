from __future__ import annotations

from collections.abc import Sequence
from functools import lru_cache
from typing import Any, Protocol
from uuid import UUID

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from eventboard.core.config import get_settings
from eventboard.services.errors import BadRequestError, ConflictError, NotFoundError, RepositoryUnavailableError
from eventboard.services.models import Event, EventStatus, utcnow
from eventboard.services.pagination import EventPredicate, OrderTerm

EVENT_COLUMNS_SQL = """
  e.id::text as id,
  e.tenant_id::text as tenant_id,
  e.creator_id::text as creator_id,
  e.title,
  e.description,
  e.location,
  e.start_date,
  e.end_date,
  e.status,
  e.max_attendees,
  e.is_virtual,
  e.virtual_url,
  e.moderated_by_id::text as moderated_by_id,
  e.rejection_reason,
  e.submitted_at,
  e.approved_at,
  e.rejected_at,
  e.created_at,
  e.updated_at,
  creator.name as creator_name,
  moderator.name as moderator_name
"""

EVENT_JOINS_SQL = """
left join members creator on creator.id = e.creator_id
left join members moderator on moderator.id = e.moderated_by_id
"""

# Keyset comparisons and ORDER BY must agree, so title always uses the C collation.
_COLUMN_BY_ATTRIBUTE = {
    "start_date": "e.start_date",
    "created_at": "e.created_at",
    "updated_at": "e.updated_at",
    "title": 'e.title collate "C"',
    "status": "e.status",
    "submitted_at": "e.submitted_at",
    "id": "e.id",
}

UPSERT_EVENT_SQL = """
insert into events (
  id, tenant_id, creator_id, title, description, location,
  start_date, end_date, status, max_attendees, is_virtual, virtual_url,
  moderated_by_id, rejection_reason, submitted_at, approved_at, rejected_at,
  created_at, updated_at
)
values (
  $1::uuid, $2::uuid, $3::uuid, $4, $5, $6,
  $7, $8, $9, $10, $11, $12,
  $13::uuid, $14, $15, $16, $17,
  $18, $19
)
on conflict (id) do update
set
  title = excluded.title,
  description = excluded.description,
  location = excluded.location,
  start_date = excluded.start_date,
  end_date = excluded.end_date,
  status = excluded.status,
  max_attendees = excluded.max_attendees,
  is_virtual = excluded.is_virtual,
  virtual_url = excluded.virtual_url,
  moderated_by_id = excluded.moderated_by_id,
  rejection_reason = excluded.rejection_reason,
  submitted_at = excluded.submitted_at,
  approved_at = excluded.approved_at,
  rejected_at = excluded.rejected_at,
  updated_at = excluded.updated_at
where events.tenant_id = excluded.tenant_id
  and events.creator_id = excluded.creator_id
returning id::text
"""

# $19 is the status the caller read; created_at is never rewritten.
UPDATE_EVENT_SQL = """
update events
set
  title = $4,
  description = $5,
  location = $6,
  start_date = $7,
  end_date = $8,
  status = $9,
  max_attendees = $10,
  is_virtual = $11,
  virtual_url = $12,
  moderated_by_id = $13::uuid,
  rejection_reason = $14,
  submitted_at = $15,
  approved_at = $16,
  rejected_at = $17,
  updated_at = $18
where id = $1::uuid
  and tenant_id = $2::uuid
  and creator_id = $3::uuid
  and status = $19
returning id::text
"""


class EventRepository(Protocol):
    async def get(self, event_id: str, tenant_id: str) -> Event | None: ...

    async def save(self, event: Event, *, expected_status: EventStatus | None = None) -> Event: ...

    async def delete(self, event: Event) -> None: ...

    async def find_many(
        self,
        predicate: EventPredicate,
        order: Sequence[OrderTerm],
        *,
        skip: int = 0,
        take: int | None = None,
        with_total: bool = False,
    ) -> tuple[list[Event], int | None]: ...

    async def close(self) -> None: ...


class PostgresEventRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def get(self, event_id: str, tenant_id: str) -> Event | None:
        if not _is_uuid(event_id) or not _is_uuid(tenant_id):
            return None
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            select {EVENT_COLUMNS_SQL}
            from events e
            {EVENT_JOINS_SQL}
            where e.id = $1::uuid
              and e.tenant_id = $2::uuid
            """,
            event_id,
            tenant_id,
        )
        return self._event_row_to_model(row) if row else None

    async def save(self, event: Event, *, expected_status: EventStatus | None = None) -> Event:
        """Insert or replace the event.

        With ``expected_status`` the write is update-only and applies only while
        the stored status still matches, so a row deleted or moved since it was
        read is never resurrected or overwritten.
        """
        pool = await self._get_pool()
        event.updated_at = utcnow()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    if expected_status is None:
                        saved_id = await conn.fetchval(UPSERT_EVENT_SQL, *_event_params(event))
                        if saved_id is None:
                            raise ConflictError("Event was modified concurrently; reload and retry")
                    else:
                        saved_id = await conn.fetchval(
                            UPDATE_EVENT_SQL,
                            event.id,
                            event.tenant_id,
                            event.creator_id,
                            *_mutable_event_params(event),
                            event.updated_at,
                            expected_status.value,
                        )
                        if saved_id is None:
                            current = await conn.fetchval(
                                "select status from events where id = $1::uuid and tenant_id = $2::uuid",
                                event.id,
                                event.tenant_id,
                            )
                            if current is None:
                                raise NotFoundError(f"Event with ID '{event.id}' not found")
                            raise ConflictError("Event was modified concurrently; reload and retry")
                    row = await self._fetch_event_row(conn=conn, event_id=event.id, tenant_id=event.tenant_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise BadRequestError("invalid event id or field value") from exc

        if row is None:
            raise ConflictError("Event was modified concurrently; reload and retry")
        return self._event_row_to_model(row)

    async def delete(self, event: Event) -> None:
        if not _is_uuid(event.id) or not _is_uuid(event.tenant_id):
            return
        pool = await self._get_pool()
        await pool.execute(
            """
            delete from events
            where id = $1::uuid
              and tenant_id = $2::uuid
            """,
            event.id,
            event.tenant_id,
        )

    async def find_many(
        self,
        predicate: EventPredicate,
        order: Sequence[OrderTerm],
        *,
        skip: int = 0,
        take: int | None = None,
        with_total: bool = False,
    ) -> tuple[list[Event], int | None]:
        if not _is_uuid(predicate.tenant_id) or (predicate.creator_id is not None and not _is_uuid(predicate.creator_id)):
            return [], (0 if with_total else None)

        pool = await self._get_pool()
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        conditions.append(f"e.tenant_id = {bind(predicate.tenant_id)}::uuid")
        if predicate.status is not None:
            conditions.append(f"e.status = {bind(EventStatus(predicate.status).value)}")
        if predicate.title_contains:
            conditions.append(f"e.title ilike {bind(f'%{_escape_like(predicate.title_contains)}%')}")
        if predicate.start_date_from is not None:
            conditions.append(f"e.start_date >= {bind(predicate.start_date_from)}")
        if predicate.start_date_to is not None:
            conditions.append(f"e.start_date <= {bind(predicate.start_date_to)}")
        if predicate.is_virtual is not None:
            conditions.append(f"e.is_virtual = {bind(predicate.is_virtual)}")
        if predicate.creator_id is not None:
            conditions.append(f"e.creator_id = {bind(predicate.creator_id)}::uuid")

        count_params = list(params)
        count_where_sql = " and ".join(conditions)

        keyset = predicate.keyset
        if keyset is not None:
            if not _is_uuid(keyset.id):
                raise BadRequestError("Invalid cursor format")
            column = _COLUMN_BY_ATTRIBUTE[keyset.attribute]
            comparison = ">" if keyset.order.value == "ASC" else "<"
            value_token = bind(keyset.value)
            id_token = bind(keyset.id)
            conditions.append(
                f"({column} {comparison} {value_token} "
                f"or ({column} = {value_token} and e.id {comparison} {id_token}::uuid))"
            )

        where_sql = " and ".join(conditions)
        order_by_sql = ", ".join(
            f"{_COLUMN_BY_ATTRIBUTE[term.attribute]} {'desc' if term.descending else 'asc'}" for term in order
        ) or "e.id asc"

        window_sql = ""
        if take is not None:
            window_sql += f" limit {bind(max(0, take))}"
        if skip:
            window_sql += f" offset {bind(max(0, skip))}"

        try:
            rows = await pool.fetch(
                f"""
                select {EVENT_COLUMNS_SQL}
                from events e
                {EVENT_JOINS_SQL}
                where {where_sql}
                order by {order_by_sql}
                {window_sql}
                """,
                *params,
            )
            total: int | None = None
            if with_total:
                total = int(
                    await pool.fetchval(
                        f"select count(*) from events e where {count_where_sql}",
                        *count_params,
                    )
                )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise BadRequestError("Invalid cursor format") from exc

        return [self._event_row_to_model(row) for row in rows], total

    async def _fetch_event_row(
        self,
        *,
        conn: asyncpg.Connection,
        event_id: str,
        tenant_id: str,
    ) -> asyncpg.Record | None:
        return await conn.fetchrow(
            f"""
            select {EVENT_COLUMNS_SQL}
            from events e
            {EVENT_JOINS_SQL}
            where e.id = $1::uuid
              and e.tenant_id = $2::uuid
            """,
            event_id,
            tenant_id,
        )

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("EB_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _event_row_to_model(row: asyncpg.Record) -> Event:
        return Event(
            id=row["id"],
            tenant_id=row["tenant_id"],
            creator_id=row["creator_id"],
            title=row["title"],
            description=row["description"],
            location=row["location"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            status=EventStatus(row["status"]),
            max_attendees=row["max_attendees"],
            is_virtual=bool(row["is_virtual"]),
            virtual_url=row["virtual_url"],
            moderated_by_id=row["moderated_by_id"],
            rejection_reason=row["rejection_reason"],
            submitted_at=row["submitted_at"],
            approved_at=row["approved_at"],
            rejected_at=row["rejected_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            creator_name=row["creator_name"],
            moderator_name=row["moderator_name"],
        )


def _mutable_event_params(event: Event) -> tuple[Any, ...]:
    return (
        event.title,
        event.description,
        event.location,
        event.start_date,
        event.end_date,
        event.status.value,
        event.max_attendees,
        event.is_virtual,
        event.virtual_url,
        event.moderated_by_id,
        event.rejection_reason,
        event.submitted_at,
        event.approved_at,
        event.rejected_at,
    )


def _event_params(event: Event) -> tuple[Any, ...]:
    return (
        event.id,
        event.tenant_id,
        event.creator_id,
        *_mutable_event_params(event),
        event.created_at,
        event.updated_at,
    )


def _is_uuid(value: str | None) -> bool:
    if not isinstance(value, str):
        return False
    try:
        UUID(value)
    except ValueError:
        return False
    return True


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@lru_cache
def get_repository() -> EventRepository:
    settings = get_settings()
    if settings.repository_backend == "memory":
        from eventboard.services.store import InMemoryEventRepository

        return InMemoryEventRepository()
    return PostgresEventRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
