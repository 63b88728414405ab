"""Tests for store document decoding (bookwatch/dashboard/models.py)."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from bookwatch.dashboard.models import (
    ActivityEntry,
    DocumentDecodeError,
    Profile,
    RawBooking,
    ResolvedBooking,
)


class TestProfile:
    def test_from_document(self):
        profile = Profile.from_document({"name": "Ada", "email": "ada@example.com"})
        assert profile == Profile(name="Ada", email="ada@example.com")

    def test_missing_fields_default_to_empty(self):
        assert Profile.from_document({}) == Profile(name="", email="")

    def test_wrong_type_rejected(self):
        with pytest.raises(DocumentDecodeError):
            Profile.from_document({"name": 42})

    def test_non_mapping_rejected(self):
        with pytest.raises(DocumentDecodeError):
            Profile.from_document(["Ada"])


class TestRawBooking:
    def test_from_document(self, make_booking_doc):
        booking = RawBooking.from_document(make_booking_doc("b1"))
        assert booking.id == "b1"
        assert booking.user_id == "user-1"
        assert booking.date == "2024-06-01"
        assert booking.time == "09:00 AM"
        assert booking.service == "Haircut"
        assert booking.location == "Main Street"
        assert booking.queue_position == 3
        assert booking.estimated_wait == "10 min"

    def test_date_kept_verbatim(self, make_booking_doc):
        stamp = {"seconds": 1717228800, "nanoseconds": 0}
        assert RawBooking.from_document(make_booking_doc("b1", date=stamp)).date == stamp

    def test_optional_fields(self):
        booking = RawBooking.from_document({"id": "b2", "date": "2024-06-01"})
        assert booking.time is None
        assert booking.queue_position is None
        assert booking.service == ""

    @pytest.mark.parametrize("position,expected", [(4.0, 4), ("7", 7), (None, None)])
    def test_queue_position_coercion(self, make_booking_doc, position, expected):
        assert RawBooking.from_document(make_booking_doc("b1", queuePosition=position)).queue_position == expected

    @pytest.mark.parametrize("position", [True, 2.5, "third", "\u00b2", "-"])
    def test_queue_position_rejected(self, make_booking_doc, position):
        with pytest.raises(DocumentDecodeError):
            RawBooking.from_document(make_booking_doc("b1", queuePosition=position))

    @pytest.mark.parametrize("doc_id", [None, "", "   ", True, 1.5])
    def test_invalid_id_rejected(self, make_booking_doc, doc_id):
        with pytest.raises(DocumentDecodeError):
            RawBooking.from_document(make_booking_doc(doc_id))

    def test_time_must_be_string(self, make_booking_doc):
        with pytest.raises(DocumentDecodeError):
            RawBooking.from_document(make_booking_doc("b1", time=900))

    def test_decode_error_is_value_error(self):
        with pytest.raises(ValueError):
            RawBooking.from_document("not a document")


def test_resolved_booking_carries_raw_fields(make_booking_doc):
    raw = RawBooking.from_document(make_booking_doc("b1"))
    instant = datetime(2024, 6, 1, 9, 0).astimezone()
    resolved = ResolvedBooking.from_raw(raw, instant)
    assert resolved.booking_instant == instant
    assert resolved.id == raw.id
    assert resolved.service == raw.service
    assert isinstance(resolved, RawBooking)


class TestActivityEntry:
    def test_from_document(self):
        entry = ActivityEntry.from_document(
            {
                "id": "a1",
                "userId": "user-1",
                "action": "Booked",
                "service": "Haircut",
                "time": "2 hours ago",
                "createdAt": {"seconds": 1717228800, "nanoseconds": 0},
            }
        )
        assert entry.action == "Booked"
        assert entry.created_at == datetime(2024, 6, 1, 8, 0, tzinfo=UTC)

    def test_missing_created_at(self):
        assert ActivityEntry.from_document({"id": "a1"}).created_at is None
