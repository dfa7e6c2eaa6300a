"""Domain model for moderated events.

`tenant_id`, `creator_id` and `id` are fixed at construction. `status` is also
write-once from the outside: moves go through `transitions.apply_transition`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

_WRITE_ONCE_FIELDS = frozenset({"id", "tenant_id", "creator_id", "status"})
_DATETIME_FIELDS = (
    "start_date",
    "end_date",
    "submitted_at",
    "approved_at",
    "rejected_at",
    "created_at",
    "updated_at",
)


class EventStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(slots=True)
class Event:
    id: str
    tenant_id: str
    creator_id: str
    title: str
    start_date: datetime
    status: EventStatus = EventStatus.DRAFT
    description: str | None = None
    location: str | None = None
    end_date: datetime | None = None
    max_attendees: int | None = None
    is_virtual: bool = False
    virtual_url: str | None = None
    moderated_by_id: str | None = None
    rejection_reason: str | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    creator_name: str | None = None
    moderator_name: str | None = None

    def __post_init__(self) -> None:
        for name in _DATETIME_FIELDS:
            setattr(self, name, as_utc(getattr(self, name)))

    def __setattr__(self, name: str, value: object) -> None:
        if name in _WRITE_ONCE_FIELDS:
            try:
                object.__getattribute__(self, name)
            except AttributeError:
                pass
            else:
                raise AttributeError(f"{name} cannot be reassigned")
        if name == "status":
            value = EventStatus(value)
        object.__setattr__(self, name, value)

    def is_owned_by(self, user_id: str) -> bool:
        return self.creator_id == user_id
