"""Moderation lifecycle for events.

    DRAFT ──► SUBMITTED ──► APPROVED ──► CANCELLED | COMPLETED
      ▲           │
      │           ▼
      └──────  REJECTED
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from eventboard.services.errors import BadRequestError
from eventboard.services.models import Event, EventStatus

ALLOWED_TRANSITIONS: Mapping[EventStatus, frozenset[EventStatus]] = MappingProxyType(
    {
        EventStatus.DRAFT: frozenset({EventStatus.SUBMITTED}),
        EventStatus.SUBMITTED: frozenset({EventStatus.APPROVED, EventStatus.REJECTED}),
        EventStatus.APPROVED: frozenset({EventStatus.CANCELLED, EventStatus.COMPLETED}),
        EventStatus.REJECTED: frozenset({EventStatus.DRAFT}),
        EventStatus.CANCELLED: frozenset(),
        EventStatus.COMPLETED: frozenset(),
    }
)

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)

TRANSITION_MESSAGES: Mapping[tuple[EventStatus, EventStatus], str] = MappingProxyType(
    {
        (EventStatus.DRAFT, EventStatus.SUBMITTED): "Event submitted for moderation review",
        (EventStatus.SUBMITTED, EventStatus.APPROVED): "Event approved and now visible to users",
        (EventStatus.SUBMITTED, EventStatus.REJECTED): "Event rejected - please review the feedback and resubmit",
        (EventStatus.REJECTED, EventStatus.DRAFT): "Event moved back to draft for editing",
        (EventStatus.APPROVED, EventStatus.CANCELLED): "Event has been cancelled",
        (EventStatus.APPROVED, EventStatus.COMPLETED): "Event marked as completed",
    }
)


def allowed_targets(status: EventStatus) -> frozenset[EventStatus]:
    return ALLOWED_TRANSITIONS.get(status, frozenset())


def can_transition(from_status: EventStatus, to_status: EventStatus) -> bool:
    return to_status in allowed_targets(from_status)


def transition_message(from_status: EventStatus, to_status: EventStatus) -> str:
    message = TRANSITION_MESSAGES.get((from_status, to_status))
    if message is None:
        return f"Event status: {EventStatus(to_status).value}"
    return message


def apply_transition(event: Event, to_status: EventStatus) -> EventStatus:
    """Move `event` to `to_status` and return the status it left.

    Callers are expected to have produced their own, more specific errors for
    the common invalid cases already; this is the last gate.
    """
    from_status = event.status
    if not can_transition(from_status, to_status):
        raise BadRequestError(
            f"Invalid status transition from {from_status.value} to {EventStatus(to_status).value}"
        )
    object.__setattr__(event, "status", EventStatus(to_status))
    return from_status
