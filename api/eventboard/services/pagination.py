"""Cursor (keyset) and offset pagination over the event repository.

Every ordering ends with ``id`` in the same direction as the primary sort
term, which makes the order total and keeps keyset pages free of gaps and
duplicates when the sort field has ties.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from eventboard.services.cursor import (
    DATE_SORT_FIELDS,
    SORT_FIELD_ATTRIBUTES,
    CursorDecodeError,
    EventSortField,
    decode_cursor,
    encode_cursor,
    parse_timestamp,
)
from eventboard.services.errors import BadRequestError
from eventboard.services.models import Event, EventStatus

if TYPE_CHECKING:
    from eventboard.services.repository import EventRepository

ItemT = TypeVar("ItemT")

ORDERABLE_ATTRIBUTES = frozenset(
    {"start_date", "created_at", "updated_at", "title", "status", "submitted_at", "id"}
)


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class PaginationMode(str, Enum):
    CURSOR = "cursor"
    OFFSET = "offset"


@dataclass(frozen=True, slots=True)
class OrderTerm:
    attribute: str
    order: SortOrder = SortOrder.ASC

    def __post_init__(self) -> None:
        if self.attribute not in ORDERABLE_ATTRIBUTES:
            raise ValueError(f"cannot order events by {self.attribute!r}")

    @property
    def descending(self) -> bool:
        return self.order == SortOrder.DESC


@dataclass(frozen=True, slots=True)
class KeysetBound:
    """``(sort_field, id)`` strictly after the cursor row in the requested order."""

    attribute: str
    value: Any
    id: str
    order: SortOrder

    def admits(self, event: Event) -> bool:
        current = comparable_value(getattr(event, self.attribute))
        if current is None:
            return False
        if self.order == SortOrder.ASC:
            return current > self.value or (current == self.value and event.id > self.id)
        return current < self.value or (current == self.value and event.id < self.id)


@dataclass(frozen=True, slots=True)
class EventPredicate:
    """AND-composed filter handed to the repository. `tenant_id` is mandatory."""

    tenant_id: str
    status: EventStatus | None = None
    title_contains: str | None = None
    start_date_from: datetime | None = None
    start_date_to: datetime | None = None
    is_virtual: bool | None = None
    creator_id: str | None = None
    keyset: KeysetBound | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.tenant_id, str) or not self.tenant_id:
            raise ValueError("tenant_id is required for every event query")

    def matches(self, event: Event) -> bool:
        if event.tenant_id != self.tenant_id:
            return False
        if self.status is not None and event.status != self.status:
            return False
        if self.title_contains and self.title_contains.casefold() not in event.title.casefold():
            return False
        if self.start_date_from is not None and event.start_date < self.start_date_from:
            return False
        if self.start_date_to is not None and event.start_date > self.start_date_to:
            return False
        if self.is_virtual is not None and event.is_virtual != self.is_virtual:
            return False
        if self.creator_id is not None and event.creator_id != self.creator_id:
            return False
        if self.keyset is not None and not self.keyset.admits(event):
            return False
        return True

    def with_keyset(self, keyset: KeysetBound | None) -> EventPredicate:
        return EventPredicate(
            tenant_id=self.tenant_id,
            status=self.status,
            title_contains=self.title_contains,
            start_date_from=self.start_date_from,
            start_date_to=self.start_date_to,
            is_virtual=self.is_virtual,
            creator_id=self.creator_id,
            keyset=keyset,
        )


@dataclass(slots=True)
class CursorPage(Generic[ItemT]):
    items: list[ItemT]
    next_cursor: str | None
    prev_cursor: str | None
    has_next_page: bool
    has_prev_page: bool
    count: int


@dataclass(slots=True)
class OffsetPage(Generic[ItemT]):
    items: list[ItemT]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


def build_order(sort_field: EventSortField, sort_order: SortOrder) -> tuple[OrderTerm, ...]:
    order = SortOrder(sort_order)
    return (
        OrderTerm(SORT_FIELD_ATTRIBUTES[EventSortField(sort_field)], order),
        OrderTerm("id", order),
    )


def resolve_keyset(cursor_token: str, *, sort_by: EventSortField, sort_order: SortOrder) -> KeysetBound:
    try:
        cursor = decode_cursor(cursor_token)
    except CursorDecodeError as exc:
        raise BadRequestError("Invalid cursor format") from exc

    sort_by = EventSortField(sort_by)
    if cursor.sort_field != sort_by:
        raise BadRequestError(
            f"Cursor was created with sortBy={cursor.sort_field.value}, but query uses sortBy={sort_by.value}. "
            "Cursors are not portable across different sort configurations."
        )

    return KeysetBound(
        attribute=SORT_FIELD_ATTRIBUTES[sort_by],
        value=_coerce_cursor_value(cursor.sort_value, sort_by),
        id=cursor.id,
        order=SortOrder(sort_order),
    )


def offset_window(page: int, limit: int) -> tuple[int, int]:
    return (page - 1) * limit, limit


def build_cursor_page(
    rows: Sequence[Event],
    *,
    limit: int,
    sort_by: EventSortField,
    incoming_cursor: str | None,
) -> CursorPage[Event]:
    items = list(rows)
    has_next_page = len(items) > limit
    if has_next_page:
        items = items[:limit]

    # prev_cursor only says a cursor came in; it does not prove an earlier page exists.
    return CursorPage(
        items=items,
        next_cursor=encode_cursor(items[-1], sort_by) if has_next_page and items else None,
        prev_cursor=encode_cursor(items[0], sort_by) if incoming_cursor and items else None,
        has_next_page=has_next_page,
        has_prev_page=bool(incoming_cursor),
        count=len(items),
    )


def build_offset_page(items: Sequence[ItemT], *, total: int, page: int, limit: int) -> OffsetPage[ItemT]:
    total_pages = math.ceil(total / limit) if limit else 0
    return OffsetPage(
        items=list(items),
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )


async def paginate_with_cursor(
    repository: EventRepository,
    predicate: EventPredicate,
    *,
    sort_by: EventSortField,
    sort_order: SortOrder,
    cursor: str | None,
    limit: int,
) -> CursorPage[Event]:
    keyset = resolve_keyset(cursor, sort_by=sort_by, sort_order=sort_order) if cursor else None
    rows, _ = await repository.find_many(
        predicate.with_keyset(keyset),
        build_order(sort_by, sort_order),
        take=limit + 1,
    )
    return build_cursor_page(rows, limit=limit, sort_by=sort_by, incoming_cursor=cursor)


async def paginate_with_offset(
    repository: EventRepository,
    predicate: EventPredicate,
    order: Sequence[OrderTerm],
    *,
    page: int,
    limit: int,
) -> OffsetPage[Event]:
    skip, take = offset_window(page, limit)
    rows, total = await repository.find_many(predicate, order, skip=skip, take=take, with_total=True)
    return build_offset_page(rows, total=total or 0, page=page, limit=limit)


def _coerce_cursor_value(value: Any, sort_field: EventSortField) -> Any:
    if sort_field in DATE_SORT_FIELDS:
        if not isinstance(value, str):
            raise BadRequestError("Invalid cursor format")
        try:
            return parse_timestamp(value)
        except ValueError as exc:
            raise BadRequestError("Invalid cursor format") from exc
    if not isinstance(value, str):
        raise BadRequestError("Invalid cursor format")
    return value


def comparable_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value
