from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response, status as http_status

from eventboard.api.deps import get_event_service
from eventboard.api.errors import http_error
from eventboard.core.auth import ActingUser
from eventboard.core.security import get_acting_user
from eventboard.schemas.events import (
    CursorPaginationOut,
    EventCreateRequest,
    EventCursorPageOut,
    EventOffsetPageOut,
    EventOut,
    EventUpdateRequest,
    OffsetPaginationOut,
)
from eventboard.services.cursor import EventSortField
from eventboard.services.errors import EventBoardError
from eventboard.services.listing import EventDraft, EventFilters, EventListRequest, EventService
from eventboard.services.models import EventStatus
from eventboard.services.pagination import CursorPage, OffsetPage, PaginationMode, SortOrder

router = APIRouter()

EventPageOut = EventCursorPageOut | EventOffsetPageOut


def list_request_params(
    event_status: EventStatus | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, max_length=100),
    start_date_from: datetime | None = Query(default=None),
    start_date_to: datetime | None = Query(default=None),
    is_virtual: bool | None = Query(default=None),
    created_by_id: str | None = Query(default=None, min_length=1),
    sort_by: EventSortField = Query(default=EventSortField.START_DATE),
    sort_order: SortOrder = Query(default=SortOrder.ASC),
    pagination: PaginationMode = Query(default=PaginationMode.CURSOR),
    cursor: str | None = Query(default=None, max_length=500),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
) -> EventListRequest:
    return EventListRequest(
        filters=EventFilters(
            status=event_status,
            search=search,
            start_date_from=start_date_from,
            start_date_to=start_date_to,
            is_virtual=is_virtual,
            creator_id=created_by_id,
        ),
        sort_by=sort_by,
        sort_order=sort_order,
        mode=pagination,
        cursor=cursor,
        page=page,
        limit=limit,
    )


def _page_out(page: CursorPage | OffsetPage) -> EventPageOut:
    data = [EventOut.model_validate(event) for event in page.items]
    if isinstance(page, CursorPage):
        return EventCursorPageOut(data=data, pagination=CursorPaginationOut.model_validate(page))
    return EventOffsetPageOut(data=data, pagination=OffsetPaginationOut.model_validate(page))


@router.post("", response_model=EventOut, status_code=http_status.HTTP_201_CREATED)
async def create_event(
    payload: EventCreateRequest,
    user: ActingUser = Depends(get_acting_user),
    service: EventService = Depends(get_event_service),
) -> EventOut:
    try:
        event = await service.create_event(user, EventDraft(**payload.model_dump()))
    except EventBoardError as exc:
        raise http_error(exc) from exc
    return EventOut.model_validate(event)


@router.get("", response_model=EventPageOut)
async def list_events(
    request: EventListRequest = Depends(list_request_params),
    user: ActingUser = Depends(get_acting_user),
    service: EventService = Depends(get_event_service),
) -> EventPageOut:
    try:
        page = await service.list_events(user, request)
    except EventBoardError as exc:
        raise http_error(exc) from exc
    return _page_out(page)


@router.get("/mine", response_model=EventPageOut)
async def list_my_events(
    request: EventListRequest = Depends(list_request_params),
    user: ActingUser = Depends(get_acting_user),
    service: EventService = Depends(get_event_service),
) -> EventPageOut:
    try:
        page = await service.list_my_events(user, request)
    except EventBoardError as exc:
        raise http_error(exc) from exc
    return _page_out(page)


@router.get("/{event_id}", response_model=EventOut)
async def get_event(
    event_id: str,
    user: ActingUser = Depends(get_acting_user),
    service: EventService = Depends(get_event_service),
) -> EventOut:
    try:
        event = await service.get_event(event_id, user)
    except EventBoardError as exc:
        raise http_error(exc) from exc
    return EventOut.model_validate(event)


@router.patch("/{event_id}", response_model=EventOut)
async def update_event(
    event_id: str,
    payload: EventUpdateRequest,
    user: ActingUser = Depends(get_acting_user),
    service: EventService = Depends(get_event_service),
) -> EventOut:
    try:
        event = await service.update_event(event_id, user, payload.model_dump(exclude_unset=True))
    except EventBoardError as exc:
        raise http_error(exc) from exc
    return EventOut.model_validate(event)


@router.delete("/{event_id}", status_code=http_status.HTTP_204_NO_CONTENT)
async def delete_event(
    event_id: str,
    user: ActingUser = Depends(get_acting_user),
    service: EventService = Depends(get_event_service),
) -> Response:
    try:
        await service.delete_event(event_id, user)
    except EventBoardError as exc:
        raise http_error(exc) from exc
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)
