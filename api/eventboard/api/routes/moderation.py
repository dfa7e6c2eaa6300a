from fastapi import APIRouter, Depends, Query

from eventboard.api.deps import get_moderation_service
from eventboard.api.errors import http_error
from eventboard.core.auth import ActingUser
from eventboard.core.security import get_acting_user
from eventboard.schemas.events import OffsetPaginationOut
from eventboard.schemas.moderation import ModerationOut, PendingEventsOut, RejectEventRequest
from eventboard.services.errors import EventBoardError
from eventboard.services.moderation import ModerationService

router = APIRouter()


@router.get("/pending", response_model=PendingEventsOut)
async def list_pending_events(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    user: ActingUser = Depends(get_acting_user),
    service: ModerationService = Depends(get_moderation_service),
) -> PendingEventsOut:
    try:
        result = await service.get_pending_events(user, page=page, limit=limit)
    except EventBoardError as exc:
        raise http_error(exc) from exc
    return PendingEventsOut(
        data=[ModerationOut.model_validate(item) for item in result.items],
        pagination=OffsetPaginationOut.model_validate(result),
    )


@router.post("/{event_id}/submit", response_model=ModerationOut)
async def submit_event(
    event_id: str,
    user: ActingUser = Depends(get_acting_user),
    service: ModerationService = Depends(get_moderation_service),
) -> ModerationOut:
    try:
        result = await service.submit(event_id, user)
    except EventBoardError as exc:
        raise http_error(exc) from exc
    return ModerationOut.model_validate(result)


@router.post("/{event_id}/approve", response_model=ModerationOut)
async def approve_event(
    event_id: str,
    user: ActingUser = Depends(get_acting_user),
    service: ModerationService = Depends(get_moderation_service),
) -> ModerationOut:
    try:
        result = await service.approve(event_id, user)
    except EventBoardError as exc:
        raise http_error(exc) from exc
    return ModerationOut.model_validate(result)


@router.post("/{event_id}/reject", response_model=ModerationOut)
async def reject_event(
    event_id: str,
    payload: RejectEventRequest,
    user: ActingUser = Depends(get_acting_user),
    service: ModerationService = Depends(get_moderation_service),
) -> ModerationOut:
    try:
        result = await service.reject(event_id, user, payload.reason)
    except EventBoardError as exc:
        raise http_error(exc) from exc
    return ModerationOut.model_validate(result)


@router.post("/{event_id}/revert-to-draft", response_model=ModerationOut)
async def revert_event_to_draft(
    event_id: str,
    user: ActingUser = Depends(get_acting_user),
    service: ModerationService = Depends(get_moderation_service),
) -> ModerationOut:
    try:
        result = await service.revert_to_draft(event_id, user)
    except EventBoardError as exc:
        raise http_error(exc) from exc
    return ModerationOut.model_validate(result)


@router.get("/{event_id}/status", response_model=ModerationOut)
async def get_moderation_status(
    event_id: str,
    user: ActingUser = Depends(get_acting_user),
    service: ModerationService = Depends(get_moderation_service),
) -> ModerationOut:
    try:
        result = await service.get_event_moderation_status(event_id, user.tenant_id)
    except EventBoardError as exc:
        raise http_error(exc) from exc
    return ModerationOut.model_validate(result)
