"""Typed records decoded from the remote document store.

Documents arrive as loosely shaped mappings. Each record type exposes a
``from_document`` constructor that checks field types and raises
:class:`DocumentDecodeError` instead of letting malformed payloads leak into
the aggregation pipeline.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

from bookwatch.datetime_utils import coerce_timestamp

_INTEGER_RE = re.compile(r"^-?[0-9]+$")


class DocumentDecodeError(ValueError):
    """Raised when a store document does not match the expected schema."""


def _document_id(document: Mapping[str, Any]) -> str:
    doc_id = document.get("id")
    if isinstance(doc_id, bool) or not isinstance(doc_id, (str, int)):
        raise DocumentDecodeError(f"document id missing or invalid: {doc_id!r}")
    doc_id = str(doc_id).strip()
    if not doc_id:
        raise DocumentDecodeError("document id is empty")
    return doc_id


def _string_field(document: Mapping[str, Any], key: str, default: str = "") -> str:
    value = document.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise DocumentDecodeError(f"field '{key}' must be a string, got {type(value).__name__}")
    return value


def _optional_string_field(document: Mapping[str, Any], key: str) -> str | None:
    value = document.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DocumentDecodeError(f"field '{key}' must be a string, got {type(value).__name__}")
    return value


def _optional_int_field(document: Mapping[str, Any], key: str) -> int | None:
    value = document.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise DocumentDecodeError(f"field '{key}' must be an integer, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    # ASCII digits only; str.isdigit() also accepts superscripts int() rejects
    if isinstance(value, str) and _INTEGER_RE.match(value.strip()):
        return int(value.strip())
    raise DocumentDecodeError(f"field '{key}' must be an integer, got {value!r}")


def _require_mapping(document: Any) -> Mapping[str, Any]:
    if not isinstance(document, Mapping):
        raise DocumentDecodeError(f"document must be an object, got {type(document).__name__}")
    return document


@dataclass(slots=True, frozen=True)
class Profile:
    name: str
    email: str

    @classmethod
    def from_document(cls, document: Any) -> Profile:
        data = _require_mapping(document)
        return cls(name=_string_field(data, "name"), email=_string_field(data, "email"))


@dataclass(slots=True, frozen=True)
class RawBooking:
    """A booking exactly as stored; ``date`` is left for the time resolver to interpret."""

    id: str
    user_id: str
    date: Any
    time: str | None
    service: str
    location: str
    queue_position: int | None
    estimated_wait: str

    @classmethod
    def from_document(cls, document: Any) -> RawBooking:
        data = _require_mapping(document)
        return cls(
            id=_document_id(data),
            user_id=_string_field(data, "userId"),
            date=data.get("date"),
            time=_optional_string_field(data, "time"),
            service=_string_field(data, "service"),
            location=_string_field(data, "location"),
            queue_position=_optional_int_field(data, "queuePosition"),
            estimated_wait=_string_field(data, "estimatedWait"),
        )


@dataclass(slots=True, frozen=True)
class ResolvedBooking(RawBooking):
    """A booking with its date and time merged into one absolute instant."""

    booking_instant: datetime

    @classmethod
    def from_raw(cls, raw: RawBooking, instant: datetime) -> ResolvedBooking:
        values = {item.name: getattr(raw, item.name) for item in fields(RawBooking)}
        return cls(**values, booking_instant=instant)


# A resolved booking known to start after the instant the view was computed.
UpcomingBooking = ResolvedBooking


@dataclass(slots=True, frozen=True)
class ActivityEntry:
    id: str
    user_id: str
    action: str
    service: str
    time: str
    created_at: datetime | None

    @classmethod
    def from_document(cls, document: Any) -> ActivityEntry:
        data = _require_mapping(document)
        return cls(
            id=_document_id(data),
            user_id=_string_field(data, "userId"),
            action=_string_field(data, "action"),
            service=_string_field(data, "service"),
            time=_string_field(data, "time"),
            created_at=coerce_timestamp(data.get("createdAt")),
        )
