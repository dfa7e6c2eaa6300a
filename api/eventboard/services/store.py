from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from eventboard.services.errors import ConflictError, NotFoundError
from eventboard.services.models import Event, EventStatus, utcnow
from eventboard.services.pagination import EventPredicate, OrderTerm, comparable_value


class InMemoryEventRepository:
    """Dict-backed repository for local runs and tests.

    Reads and writes hand out copies so callers cannot mutate stored rows.
    """

    def __init__(self, member_names: dict[str, str] | None = None) -> None:
        self.events: dict[str, Event] = {}
        self.member_names: dict[str, str] = dict(member_names or {})

    async def get(self, event_id: str, tenant_id: str) -> Event | None:
        stored = self.events.get(event_id)
        if stored is None or stored.tenant_id != tenant_id:
            return None
        return self._copy_out(stored)

    async def save(self, event: Event, *, expected_status: EventStatus | None = None) -> Event:
        # No await between the check and the write, so this is atomic on the loop.
        existing = self.events.get(event.id)
        if expected_status is not None and (existing is None or existing.tenant_id != event.tenant_id):
            raise NotFoundError(f"Event with ID '{event.id}' not found")
        if existing is not None:
            if existing.tenant_id != event.tenant_id or existing.creator_id != event.creator_id:
                raise ConflictError("Event was modified concurrently; reload and retry")
            if expected_status is not None and existing.status != expected_status:
                raise ConflictError("Event was modified concurrently; reload and retry")

        stored = replace(event, creator_name=None, moderator_name=None)
        if existing is not None:
            stored.created_at = existing.created_at
        stored.updated_at = utcnow()
        self.events[stored.id] = stored
        return self._copy_out(stored)

    async def delete(self, event: Event) -> None:
        stored = self.events.get(event.id)
        if stored is not None and stored.tenant_id == event.tenant_id:
            del self.events[event.id]

    async def find_many(
        self,
        predicate: EventPredicate,
        order: Sequence[OrderTerm],
        *,
        skip: int = 0,
        take: int | None = None,
        with_total: bool = False,
    ) -> tuple[list[Event], int | None]:
        matched = [event for event in self.events.values() if predicate.matches(event)]

        # Stable sorts applied from the last term to the first give a multi-key order.
        # Missing values sort after present ones ascending, before them descending.
        for term in reversed(order or (OrderTerm("id"),)):
            matched.sort(key=lambda event, attr=term.attribute: _sort_key(getattr(event, attr)), reverse=term.descending)

        total: int | None = None
        if with_total:
            base = predicate.with_keyset(None)
            total = sum(1 for event in self.events.values() if base.matches(event))

        start = max(0, skip)
        window = matched[start:] if take is None else matched[start : start + max(0, take)]
        return [self._copy_out(event) for event in window], total

    async def close(self) -> None:
        return None

    def _copy_out(self, event: Event) -> Event:
        return replace(
            event,
            creator_name=self.member_names.get(event.creator_id),
            moderator_name=self.member_names.get(event.moderated_by_id) if event.moderated_by_id else None,
        )


def _sort_key(value: Any) -> tuple[bool, Any]:
    value = comparable_value(value)
    return (value is None, value if value is not None else 0)
