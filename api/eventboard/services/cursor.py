"""Opaque continuation tokens for keyset pagination.

A cursor is URL-safe base64 over compact JSON:
``{"id": "<event id>", "sortValue": <str|int|float>, "sortField": "<whitelisted field>"}``.

Tokens are not signed. Every decoded cursor is applied on top of the
tenant-scoped predicate, so a forged one can only move the window within the
caller's own tenant.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class EventSortField(str, Enum):
    START_DATE = "startDate"
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    TITLE = "title"
    STATUS = "status"


SORT_FIELD_ATTRIBUTES: dict[EventSortField, str] = {
    EventSortField.START_DATE: "start_date",
    EventSortField.CREATED_AT: "created_at",
    EventSortField.UPDATED_AT: "updated_at",
    EventSortField.TITLE: "title",
    EventSortField.STATUS: "status",
}

DATE_SORT_FIELDS = frozenset({EventSortField.START_DATE, EventSortField.CREATED_AT, EventSortField.UPDATED_AT})

SortValue = str | int | float


class CursorDecodeError(ValueError):
    """Raised when a cursor token cannot be turned back into a Cursor."""


@dataclass(frozen=True, slots=True)
class Cursor:
    id: str
    sort_value: SortValue
    sort_field: EventSortField


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_sort_value(value: Any) -> SortValue:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise TypeError(f"unsupported sort value type: {type(value).__name__}")
    return value


def sort_value_for(event: Any, sort_field: EventSortField) -> SortValue:
    return normalize_sort_value(getattr(event, SORT_FIELD_ATTRIBUTES[EventSortField(sort_field)]))


def encode_cursor(event: Any, sort_field: EventSortField) -> str:
    sort_field = EventSortField(sort_field)
    payload = {
        "id": str(event.id),
        "sortValue": sort_value_for(event, sort_field),
        "sortField": sort_field.value,
    }
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(token: str) -> Cursor:
    if not isinstance(token, str) or not token.strip():
        raise CursorDecodeError("cursor is empty")

    stripped = token.strip()
    padded = stripped + "=" * (-len(stripped) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        parsed = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise CursorDecodeError("cursor is not valid base64 JSON") from exc

    if not isinstance(parsed, dict):
        raise CursorDecodeError("cursor payload must be an object")

    cursor_id = parsed.get("id")
    if not isinstance(cursor_id, str) or not cursor_id:
        raise CursorDecodeError("cursor is missing id")

    if "sortValue" not in parsed:
        raise CursorDecodeError("cursor is missing sortValue")
    sort_value = parsed["sortValue"]
    if isinstance(sort_value, bool) or not isinstance(sort_value, (str, int, float)):
        raise CursorDecodeError("cursor sortValue must be a string or number")

    raw_field = parsed.get("sortField")
    if not isinstance(raw_field, str):
        raise CursorDecodeError("cursor is missing sortField")
    try:
        sort_field = EventSortField(raw_field)
    except ValueError as exc:
        raise CursorDecodeError(f"cursor sortField {raw_field!r} is not sortable") from exc

    return Cursor(id=cursor_id, sort_value=sort_value, sort_field=sort_field)
