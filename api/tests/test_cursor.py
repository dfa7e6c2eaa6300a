from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta, timezone

import pytest

from eventboard.services.cursor import (
    CursorDecodeError,
    EventSortField,
    decode_cursor,
    encode_cursor,
    format_timestamp,
    normalize_sort_value,
)
from eventboard.services.models import Event, EventStatus


def _event() -> Event:
    return Event(
        id="0c9f1e4a-5b7d-4c1e-9a3b-2f6d8e0a1b2c",
        tenant_id="t1",
        creator_id="u1",
        title="Café & Code",
        start_date=datetime(2026, 3, 15, 9, 0, 0, 123456, tzinfo=timezone.utc),
        status=EventStatus.SUBMITTED,
        created_at=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone(timedelta(hours=2))),
        updated_at=datetime(2026, 1, 3, 0, 0, tzinfo=timezone.utc),
    )


def _token(payload: object) -> str:
    return base64.urlsafe_b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


@pytest.mark.parametrize("sort_field", list(EventSortField))
def test_decode_returns_what_encode_put_in(sort_field: EventSortField) -> None:
    event = _event()

    cursor = decode_cursor(encode_cursor(event, sort_field))

    assert cursor.id == event.id
    assert cursor.sort_field == sort_field
    assert cursor.sort_value == normalize_sort_value(getattr(event, _attribute(sort_field)))


def test_dates_are_normalized_to_utc_with_z_suffix() -> None:
    event = _event()

    assert decode_cursor(encode_cursor(event, EventSortField.START_DATE)).sort_value == "2026-03-15T09:00:00.123456Z"
    # +02:00 offset is converted, not dropped.
    assert decode_cursor(encode_cursor(event, EventSortField.CREATED_AT)).sort_value == "2026-01-02T01:04:05.000000Z"
    assert format_timestamp(datetime(2026, 1, 1)) == "2026-01-01T00:00:00.000000Z"


def test_status_sort_value_is_the_enum_value() -> None:
    cursor = decode_cursor(encode_cursor(_event(), EventSortField.STATUS))
    assert cursor.sort_value == "submitted"


def test_decode_accepts_missing_padding_and_standard_alphabet() -> None:
    payload = {"id": "abc", "sortValue": "Zürich ~~~ ???", "sortField": "title"}
    raw = json.dumps(payload).encode("utf-8")

    unpadded = base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")
    standard = base64.b64encode(raw).decode("ascii")

    assert decode_cursor(unpadded).sort_value == "Zürich ~~~ ???"
    assert decode_cursor(standard).sort_value == "Zürich ~~~ ???"


def test_decode_accepts_numeric_sort_value() -> None:
    cursor = decode_cursor(_token({"id": "abc", "sortValue": 42, "sortField": "title"}))
    assert cursor.sort_value == 42


@pytest.mark.parametrize(
    "token",
    [
        "",
        "   ",
        "not base64 at all!!",
        base64.urlsafe_b64encode(b"\xff\xfe\xfd").decode("ascii"),
        base64.urlsafe_b64encode(b"{not json").decode("ascii"),
        _token(["id", "sortValue", "sortField"]),
        _token({"sortValue": "x", "sortField": "title"}),
        _token({"id": "", "sortValue": "x", "sortField": "title"}),
        _token({"id": "abc", "sortField": "title"}),
        _token({"id": "abc", "sortValue": None, "sortField": "title"}),
        _token({"id": "abc", "sortValue": True, "sortField": "title"}),
        _token({"id": "abc", "sortValue": {"nested": 1}, "sortField": "title"}),
        _token({"id": "abc", "sortValue": "x"}),
        _token({"id": "abc", "sortValue": "x", "sortField": "tenant_id"}),
        _token({"id": "abc", "sortValue": "x", "sortField": "title; drop table events"}),
    ],
)
def test_decode_rejects_malformed_tokens(token: str) -> None:
    with pytest.raises(CursorDecodeError):
        decode_cursor(token)


def test_cursor_decode_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        decode_cursor("%%%")


def _attribute(sort_field: EventSortField) -> str:
    return {
        EventSortField.START_DATE: "start_date",
        EventSortField.CREATED_AT: "created_at",
        EventSortField.UPDATED_AT: "updated_at",
        EventSortField.TITLE: "title",
        EventSortField.STATUS: "status",
    }[sort_field]
