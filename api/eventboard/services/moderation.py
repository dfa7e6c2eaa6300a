from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from eventboard.core.auth import ActingUser
from eventboard.services.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from eventboard.services.models import Event, EventStatus, utcnow
from eventboard.services.notifications import (
    EVENT_APPROVED,
    EVENT_REJECTED,
    EVENT_REVERTED_TO_DRAFT,
    EVENT_SUBMITTED,
    DomainEventPublisher,
    DomainNotification,
)
from eventboard.services.ownership import EventOwnerChecker, OwnerChecker, ensure_owner
from eventboard.services.pagination import (
    EventPredicate,
    OffsetPage,
    OrderTerm,
    SortOrder,
    build_offset_page,
    offset_window,
)
from eventboard.services.repository import EventRepository
from eventboard.services.transitions import apply_transition, can_transition, transition_message

logger = logging.getLogger(__name__)

PENDING_ORDER = (OrderTerm("submitted_at", SortOrder.ASC), OrderTerm("id", SortOrder.ASC))


@dataclass(frozen=True, slots=True)
class ModeratorRef:
    id: str
    name: str | None = None


@dataclass(frozen=True, slots=True)
class ModerationResult:
    id: str
    title: str
    status: EventStatus
    previous_status: EventStatus
    action: str
    message: str
    rejection_reason: str | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    moderated_by: ModeratorRef | None = None

    @classmethod
    def from_event(cls, event: Event, previous_status: EventStatus, action: str) -> ModerationResult:
        moderated_by = None
        if event.moderated_by_id:
            moderated_by = ModeratorRef(id=event.moderated_by_id, name=event.moderator_name)
        return cls(
            id=event.id,
            title=event.title,
            status=event.status,
            previous_status=previous_status,
            action=action,
            message=transition_message(previous_status, event.status),
            rejection_reason=event.rejection_reason,
            submitted_at=event.submitted_at,
            approved_at=event.approved_at,
            rejected_at=event.rejected_at,
            moderated_by=moderated_by,
        )


class ModerationService:
    """Role and ownership checked status transitions for events.

    Every mutation is one read-modify-write: load tenant-scoped, validate, apply
    the transition with its audit fields, save conditioned on the status that
    was read, then emit one notification.
    """

    def __init__(
        self,
        repository: EventRepository,
        publisher: DomainEventPublisher,
        owner_checker: OwnerChecker[Event] | None = None,
        *,
        pending_page_limit: int = 10,
        max_page_limit: int = 100,
    ) -> None:
        self.repository = repository
        self.publisher = publisher
        self.owner_checker = owner_checker or EventOwnerChecker()
        self.pending_page_limit = pending_page_limit
        self.max_page_limit = max_page_limit

    async def submit(self, event_id: str, user: ActingUser) -> ModerationResult:
        event = await self._load(event_id, user.tenant_id)
        ensure_owner(self.owner_checker, event, user, "You can only submit events you created")

        if not can_transition(event.status, EventStatus.SUBMITTED):
            if event.status == EventStatus.SUBMITTED:
                raise ConflictError("Event is already submitted for review")
            raise BadRequestError(
                f"Cannot submit event: Event must be in DRAFT status (current: {event.status.value})"
            )

        previous_status = apply_transition(event, EventStatus.SUBMITTED)
        event.submitted_at = utcnow()
        event.rejection_reason = None
        event.rejected_at = None

        saved = await self._persist(event, previous_status, user)
        self._emit(
            EVENT_SUBMITTED,
            saved,
            user,
            {"title": saved.title, "previous_status": previous_status.value, "creator_id": saved.creator_id},
        )
        return ModerationResult.from_event(saved, previous_status, "submit")

    async def approve(self, event_id: str, moderator: ActingUser) -> ModerationResult:
        self._require_moderator(moderator)
        event = await self._load(event_id, moderator.tenant_id)

        if not can_transition(event.status, EventStatus.APPROVED):
            if event.status == EventStatus.APPROVED:
                raise ConflictError("Event is already approved")
            if event.status == EventStatus.DRAFT:
                raise BadRequestError("Cannot approve event: Event must be submitted for review first")
            raise BadRequestError(
                f"Cannot approve event: Invalid status transition from {event.status.value}"
            )

        previous_status = apply_transition(event, EventStatus.APPROVED)
        event.approved_at = utcnow()
        event.moderated_by_id = moderator.id
        event.rejection_reason = None
        event.rejected_at = None

        saved = await self._persist(event, previous_status, moderator)
        self._emit(
            EVENT_APPROVED,
            saved,
            moderator,
            {
                "title": saved.title,
                "previous_status": previous_status.value,
                "creator_id": saved.creator_id,
                "moderator_id": moderator.id,
            },
        )
        return ModerationResult.from_event(saved, previous_status, "approve")

    async def reject(self, event_id: str, moderator: ActingUser, reason: str) -> ModerationResult:
        self._require_moderator(moderator)
        event = await self._load(event_id, moderator.tenant_id)
        reason = (reason or "").strip()
        if not reason:
            raise BadRequestError("Rejection reason is required")

        if not can_transition(event.status, EventStatus.REJECTED):
            if event.status == EventStatus.REJECTED:
                raise ConflictError("Event is already rejected")
            if event.status == EventStatus.DRAFT:
                raise BadRequestError("Cannot reject event: Event must be submitted for review first")
            if event.status == EventStatus.APPROVED:
                raise BadRequestError("Cannot reject event: Event is already approved")
            raise BadRequestError(
                f"Cannot reject event: Invalid status transition from {event.status.value}"
            )

        previous_status = apply_transition(event, EventStatus.REJECTED)
        event.rejected_at = utcnow()
        event.rejection_reason = reason
        event.moderated_by_id = moderator.id
        event.approved_at = None

        saved = await self._persist(event, previous_status, moderator)
        self._emit(
            EVENT_REJECTED,
            saved,
            moderator,
            {
                "title": saved.title,
                "previous_status": previous_status.value,
                "creator_id": saved.creator_id,
                "moderator_id": moderator.id,
                "reason": reason,
            },
        )
        return ModerationResult.from_event(saved, previous_status, "reject")

    async def revert_to_draft(self, event_id: str, user: ActingUser) -> ModerationResult:
        event = await self._load(event_id, user.tenant_id)
        ensure_owner(self.owner_checker, event, user, "You can only edit events you created")

        if not can_transition(event.status, EventStatus.DRAFT):
            raise BadRequestError(
                f"Cannot revert to draft: Event must be in REJECTED status (current: {event.status.value})"
            )

        # rejection_reason and the other audit fields stay visible while the event is edited.
        previous_status = apply_transition(event, EventStatus.DRAFT)

        saved = await self._persist(event, previous_status, user)
        self._emit(
            EVENT_REVERTED_TO_DRAFT,
            saved,
            user,
            {"title": saved.title, "previous_status": previous_status.value, "creator_id": saved.creator_id},
        )
        return ModerationResult.from_event(saved, previous_status, "revert-to-draft")

    async def get_pending_events(
        self,
        moderator: ActingUser,
        page: int = 1,
        limit: int | None = None,
    ) -> OffsetPage[ModerationResult]:
        self._require_moderator(moderator)
        if page < 1:
            raise BadRequestError("page must be >= 1")
        if limit is None:
            limit = self.pending_page_limit
        if limit < 1 or limit > self.max_page_limit:
            raise BadRequestError(f"limit must be between 1 and {self.max_page_limit}")

        skip, take = offset_window(page, limit)
        rows, total = await self.repository.find_many(
            EventPredicate(tenant_id=moderator.tenant_id, status=EventStatus.SUBMITTED),
            PENDING_ORDER,
            skip=skip,
            take=take,
            with_total=True,
        )
        results = [ModerationResult.from_event(event, event.status, "pending") for event in rows]
        return build_offset_page(results, total=total or 0, page=page, limit=limit)

    async def get_event_moderation_status(self, event_id: str, tenant_id: str) -> ModerationResult:
        event = await self._load(event_id, tenant_id)
        return ModerationResult.from_event(event, event.status, "status")

    async def _load(self, event_id: str, tenant_id: str) -> Event:
        event = await self.repository.get(event_id, tenant_id)
        if event is None:
            raise NotFoundError(f"Event with ID '{event_id}' not found")
        return event

    async def _persist(self, event: Event, previous_status: EventStatus, actor: ActingUser) -> Event:
        saved = await self.repository.save(event, expected_status=previous_status)
        logger.info(
            "event %s moved %s -> %s by user %s tenant=%s",
            saved.id,
            previous_status.value,
            saved.status.value,
            actor.id,
            actor.tenant_id,
        )
        return saved

    def _emit(self, event_name: str, event: Event, actor: ActingUser, payload: dict[str, Any]) -> None:
        try:
            self.publisher.emit(
                DomainNotification(
                    event_name=event_name,
                    aggregate_id=event.id,
                    actor_id=actor.id,
                    tenant_id=event.tenant_id,
                    payload=payload,
                )
            )
        except Exception:
            logger.exception("failed to publish %s for event %s", event_name, event.id)

    @staticmethod
    def _require_moderator(user: ActingUser) -> None:
        if not user.can_moderate:
            raise ForbiddenError("Only moderators and admins can perform this action")
