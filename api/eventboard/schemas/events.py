from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from eventboard.services.models import EventStatus


class EventCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    location: str | None = Field(default=None, max_length=255)
    start_date: datetime
    end_date: datetime | None = None
    max_attendees: int | None = Field(default=None, ge=1)
    is_virtual: bool = False
    virtual_url: str | None = Field(default=None, max_length=500)


class EventUpdateRequest(BaseModel):
    """Partial update; only fields present in the body are applied."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    location: str | None = Field(default=None, max_length=255)
    start_date: datetime | None = None
    end_date: datetime | None = None
    max_attendees: int | None = Field(default=None, ge=1)
    is_virtual: bool | None = None
    virtual_url: str | None = Field(default=None, max_length=500)


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    creator_id: str
    creator_name: str | None = None
    title: str
    description: str | None = None
    location: str | None = None
    start_date: datetime
    end_date: datetime | None = None
    status: EventStatus
    max_attendees: int | None = None
    is_virtual: bool = False
    virtual_url: str | None = None
    moderated_by_id: str | None = None
    rejection_reason: str | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class CursorPaginationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    next_cursor: str | None = None
    prev_cursor: str | None = None
    has_next_page: bool
    has_prev_page: bool
    count: int


class OffsetPaginationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class EventCursorPageOut(BaseModel):
    data: list[EventOut] = Field(default_factory=list)
    pagination: CursorPaginationOut


class EventOffsetPageOut(BaseModel):
    data: list[EventOut] = Field(default_factory=list)
    pagination: OffsetPaginationOut
