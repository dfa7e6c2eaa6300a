from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from eventboard.schemas.events import OffsetPaginationOut
from eventboard.services.models import EventStatus

ModerationAction = Literal["submit", "approve", "reject", "revert-to-draft", "pending", "status"]


class RejectEventRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    reason: str = Field(min_length=10, max_length=1000)


class ModeratorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str | None = None


class ModerationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    status: EventStatus
    previous_status: EventStatus
    rejection_reason: str | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    moderated_by: ModeratorOut | None = None
    action: ModerationAction
    message: str


class PendingEventsOut(BaseModel):
    data: list[ModerationOut] = Field(default_factory=list)
    pagination: OffsetPaginationOut
