"""Live document-store boundary: queries, snapshot callbacks and subscription handles.

A store delivers the *full* matching snapshot on every change. Queries are
limited to what the dashboard needs: equality filters and multi-field
ordering. ``apply_query`` evaluates a query client-side so transports that
only ship whole collections (see ``mqtt_store``) behave like a filtered,
ordered server-side query.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from bookwatch.datetime_utils import coerce_timestamp

LOGGER = logging.getLogger(__name__)

Document = dict[str, Any]
QuerySnapshotCallback = Callable[[list[Document]], None]
DocumentSnapshotCallback = Callable[[Document | None], None]
ErrorCallback = Callable[[Exception], None]


class SubscriptionError(RuntimeError):
    """A live subscription failed to deliver a usable snapshot."""


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op != "==":
            raise ValueError(f"Unsupported filter operator: {self.op!r}")

    def matches(self, document: Mapping[str, Any]) -> bool:
        if self.field not in document:
            return False
        return document[self.field] == self.value


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class Query:
    collection: str
    filters: tuple[FieldFilter, ...] = ()
    order_by: tuple[OrderBy, ...] = ()

    def where(self, field: str, op: str, value: Any) -> Query:
        return Query(self.collection, self.filters + (FieldFilter(field, op, value),), self.order_by)

    def order(self, field: str, *, descending: bool = False) -> Query:
        return Query(self.collection, self.filters, self.order_by + (OrderBy(field, descending),))


def _sort_key(value: Any) -> tuple[int, Any]:
    """Rank values by type first so mixed-type fields still sort deterministically."""
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (2, float(value))
    if isinstance(value, (datetime, Mapping)):
        stamp = coerce_timestamp(value)
        if stamp is not None:
            return (3, stamp.timestamp())
        return (5, repr(value))
    if isinstance(value, str):
        return (4, value)
    return (5, repr(value))


def apply_query(documents: Iterable[Mapping[str, Any]], query: Query) -> list[Document]:
    """Filter and order ``documents`` the way the store would for ``query``.

    Ordering is stable; documents missing an ordering field sort first when
    ascending and last when descending.
    """
    matched = [dict(document) for document in documents if all(f.matches(document) for f in query.filters)]
    # Stable sorts applied from the least to the most significant key
    for order in reversed(query.order_by):
        matched.sort(key=lambda document, name=order.field: _sort_key(document.get(name)), reverse=order.descending)
    return matched


class Subscription:
    """Handle for a live subscription. ``release`` stops delivery and is idempotent."""

    def __init__(self, description: str, on_release: Callable[[], None] | None = None) -> None:
        self.description = description
        self._on_release = on_release
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def release(self) -> None:
        if not self._active:
            return
        self._active = False
        on_release = self._on_release
        self._on_release = None
        if on_release is None:
            return
        try:
            on_release()
        except Exception as exc:
            LOGGER.warning("[store] Failed to release subscription %s: %s", self.description, exc)

    def __repr__(self) -> str:
        state = "active" if self._active else "released"
        return f"Subscription({self.description!r}, {state})"


class LiveDocumentStore:
    """Capability interface for live queries against the remote document store."""

    def watch_query(
        self,
        query: Query,
        on_snapshot: QuerySnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        raise NotImplementedError

    def watch_document(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: DocumentSnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        raise NotImplementedError
