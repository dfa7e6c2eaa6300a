from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from eventboard.core.auth import ActingUser
from eventboard.services.cursor import EventSortField
from eventboard.services.errors import BadRequestError, NotFoundError
from eventboard.services.models import Event, EventStatus, as_utc
from eventboard.services.ownership import EventOwnerChecker, OwnerChecker, ensure_owner
from eventboard.services.pagination import (
    CursorPage,
    EventPredicate,
    OffsetPage,
    PaginationMode,
    SortOrder,
    build_order,
    paginate_with_cursor,
    paginate_with_offset,
)
from eventboard.services.repository import EventRepository

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 200

UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "location",
        "start_date",
        "end_date",
        "max_attendees",
        "is_virtual",
        "virtual_url",
    }
)
_NON_NULLABLE_FIELDS = frozenset({"title", "start_date", "is_virtual"})


@dataclass(frozen=True, slots=True)
class EventFilters:
    status: EventStatus | None = None
    search: str | None = None
    start_date_from: datetime | None = None
    start_date_to: datetime | None = None
    is_virtual: bool | None = None
    creator_id: str | None = None


@dataclass(frozen=True, slots=True)
class EventListRequest:
    filters: EventFilters = field(default_factory=EventFilters)
    sort_by: EventSortField = EventSortField.START_DATE
    sort_order: SortOrder = SortOrder.ASC
    mode: PaginationMode = PaginationMode.CURSOR
    cursor: str | None = None
    page: int = 1
    limit: int | None = None

    @property
    def uses_cursor(self) -> bool:
        # An incoming cursor wins over an explicit offset mode.
        return bool(self.cursor) or self.mode == PaginationMode.CURSOR


@dataclass(frozen=True, slots=True)
class EventDraft:
    title: str
    start_date: datetime
    description: str | None = None
    location: str | None = None
    end_date: datetime | None = None
    max_attendees: int | None = None
    is_virtual: bool = False
    virtual_url: str | None = None


class EventService:
    """Tenant-scoped event listing plus owner-checked create, update and delete."""

    def __init__(
        self,
        repository: EventRepository,
        owner_checker: OwnerChecker[Event] | None = None,
        *,
        default_page_limit: int = 20,
        max_page_limit: int = 100,
        search_max_length: int = 100,
        cursor_max_length: int = 500,
    ) -> None:
        self.repository = repository
        self.owner_checker = owner_checker or EventOwnerChecker()
        self.default_page_limit = default_page_limit
        self.max_page_limit = max_page_limit
        self.search_max_length = search_max_length
        self.cursor_max_length = cursor_max_length

    async def list_events(self, actor: ActingUser, request: EventListRequest) -> CursorPage[Event] | OffsetPage[Event]:
        predicate = self.build_predicate(actor, request.filters)
        limit = self._resolve_limit(request.limit)
        sort_by = EventSortField(request.sort_by)
        sort_order = SortOrder(request.sort_order)

        if request.uses_cursor:
            if request.cursor and len(request.cursor) > self.cursor_max_length:
                raise BadRequestError("Invalid cursor format")
            return await paginate_with_cursor(
                self.repository,
                predicate,
                sort_by=sort_by,
                sort_order=sort_order,
                cursor=request.cursor or None,
                limit=limit,
            )

        if request.page < 1:
            raise BadRequestError("page must be >= 1")
        return await paginate_with_offset(
            self.repository,
            predicate,
            build_order(sort_by, sort_order),
            page=request.page,
            limit=limit,
        )

    async def list_my_events(
        self, actor: ActingUser, request: EventListRequest
    ) -> CursorPage[Event] | OffsetPage[Event]:
        filters = request.filters
        mine = EventFilters(
            status=filters.status,
            search=filters.search,
            start_date_from=filters.start_date_from,
            start_date_to=filters.start_date_to,
            is_virtual=filters.is_virtual,
            creator_id=actor.id,
        )
        return await self.list_events(
            actor,
            EventListRequest(
                filters=mine,
                sort_by=request.sort_by,
                sort_order=request.sort_order,
                mode=request.mode,
                cursor=request.cursor,
                page=request.page,
                limit=request.limit,
            ),
        )

    async def get_event(self, event_id: str, actor: ActingUser) -> Event:
        event = await self.repository.get(event_id, actor.tenant_id)
        if event is None:
            raise NotFoundError(f"Event with ID '{event_id}' not found")
        return event

    async def create_event(self, actor: ActingUser, draft: EventDraft) -> Event:
        title = (draft.title or "").strip()
        if not title:
            raise BadRequestError("Event title is required")
        if len(title) > TITLE_MAX_LENGTH:
            raise BadRequestError(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")
        if draft.max_attendees is not None and draft.max_attendees < 1:
            raise BadRequestError("Max attendees must be at least 1")
        _validate_schedule(draft.start_date, draft.end_date)
        _validate_virtual(draft.is_virtual, draft.virtual_url)

        event = Event(
            id=str(uuid4()),
            tenant_id=actor.tenant_id,
            creator_id=actor.id,
            title=title,
            start_date=draft.start_date,
            status=EventStatus.DRAFT,
            description=draft.description,
            location=draft.location,
            end_date=draft.end_date,
            max_attendees=draft.max_attendees,
            is_virtual=draft.is_virtual,
            virtual_url=draft.virtual_url,
        )
        saved = await self.repository.save(event)
        logger.info("event %s created by user %s tenant=%s", saved.id, actor.id, actor.tenant_id)
        return saved

    async def update_event(self, event_id: str, actor: ActingUser, changes: Mapping[str, Any]) -> Event:
        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise BadRequestError(f"fields cannot be updated: {', '.join(unknown)}")
        for name in _NON_NULLABLE_FIELDS & set(changes):
            if changes[name] is None:
                raise BadRequestError(f"{name} cannot be null")

        event = await self.get_event(event_id, actor)
        ensure_owner(self.owner_checker, event, actor, "You can only edit events you created")

        if "title" in changes:
            title = str(changes["title"]).strip()
            if not title:
                raise BadRequestError("Event title is required")
            if len(title) > TITLE_MAX_LENGTH:
                raise BadRequestError(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")
            changes = {**changes, "title": title}
        max_attendees = changes.get("max_attendees")
        if max_attendees is not None and max_attendees < 1:
            raise BadRequestError("Max attendees must be at least 1")

        start_date = as_utc(changes.get("start_date", event.start_date))
        end_date = as_utc(changes.get("end_date", event.end_date))
        _validate_schedule(start_date, end_date)
        _validate_virtual(changes.get("is_virtual", event.is_virtual), changes.get("virtual_url", event.virtual_url))

        for name, value in changes.items():
            setattr(event, name, as_utc(value) if isinstance(value, datetime) else value)

        # A moderation decision landing after the read must not be overwritten.
        saved = await self.repository.save(event, expected_status=event.status)
        logger.info("event %s updated by user %s fields=%s", saved.id, actor.id, ",".join(sorted(changes)))
        return saved

    async def delete_event(self, event_id: str, actor: ActingUser) -> None:
        event = await self.get_event(event_id, actor)
        ensure_owner(self.owner_checker, event, actor, "You can only delete events you created")
        await self.repository.delete(event)
        logger.info("event %s deleted by user %s tenant=%s", event.id, actor.id, actor.tenant_id)

    def build_predicate(self, actor: ActingUser, filters: EventFilters) -> EventPredicate:
        """Compose the caller's filters under the mandatory tenant scope."""
        search = filters.search.strip() if filters.search else None
        if search and len(search) > self.search_max_length:
            raise BadRequestError(f"search cannot exceed {self.search_max_length} characters")

        start_date_from = as_utc(filters.start_date_from)
        start_date_to = as_utc(filters.start_date_to)
        if start_date_from is not None and start_date_to is not None and start_date_from > start_date_to:
            raise BadRequestError("start_date_from must not be after start_date_to")

        return EventPredicate(
            tenant_id=actor.tenant_id,
            status=EventStatus(filters.status) if filters.status is not None else None,
            title_contains=search or None,
            start_date_from=start_date_from,
            start_date_to=start_date_to,
            is_virtual=filters.is_virtual,
            creator_id=filters.creator_id,
        )

    def _resolve_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.default_page_limit
        if limit < 1 or limit > self.max_page_limit:
            raise BadRequestError(f"limit must be between 1 and {self.max_page_limit}")
        return limit


def _validate_schedule(start_date: datetime | None, end_date: datetime | None) -> None:
    if start_date is None:
        raise BadRequestError("Start date is required")
    if end_date is not None and as_utc(end_date) <= as_utc(start_date):
        raise BadRequestError("End date must be after start date")


def _validate_virtual(is_virtual: bool, virtual_url: str | None) -> None:
    if is_virtual and not (virtual_url or "").strip():
        raise BadRequestError("Virtual events must have a virtual URL")
