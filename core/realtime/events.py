"""
Typed row-level change events.

Supabase Realtime delivers postgres_changes payloads as loosely shaped
dicts. They are parsed here into exactly one of three variants:

    RowInserted | RowUpdated | RowDeleted

Consumers implement ChangeHandler, which has one method per variant, and
route events through dispatch_change(). A consumer cannot silently ignore
updates or deletes: it has to say what they do.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from typing_extensions import assert_never

from core.exceptions import ChangeEventError


@dataclass(frozen=True)
class RowInserted:
    table: str
    row: dict[str, Any]
    commit_timestamp: Optional[str] = None

    @property
    def row_id(self) -> Optional[str]:
        return _row_id(self.row)


@dataclass(frozen=True)
class RowUpdated:
    table: str
    row: dict[str, Any]
    old_row: dict[str, Any] = field(default_factory=dict)
    commit_timestamp: Optional[str] = None

    @property
    def row_id(self) -> Optional[str]:
        return _row_id(self.row) or _row_id(self.old_row)


@dataclass(frozen=True)
class RowDeleted:
    table: str
    old_row: dict[str, Any]
    commit_timestamp: Optional[str] = None

    @property
    def row_id(self) -> Optional[str]:
        return _row_id(self.old_row)


ChangeEvent = Union[RowInserted, RowUpdated, RowDeleted]


def _row_id(row: dict[str, Any]) -> Optional[str]:
    value = row.get("id") if row else None
    return str(value) if value is not None else None


def parse_change_payload(payload: dict[str, Any]) -> ChangeEvent:
    """
    Turn a Realtime postgres_changes payload into a typed event.

    Accepts both the wire shape ({"data": {"type", "record", "old_record"}})
    and the client-side shape ({"eventType", "new", "old"}).
    """
    data = payload.get("data", payload)
    if not isinstance(data, dict):
        raise ChangeEventError("Change payload has no data", details={"payload": payload})

    event_type = str(data.get("type") or data.get("eventType") or "").upper()
    table = data.get("table") or ""
    new_row = data.get("record") or data.get("new") or {}
    old_row = data.get("old_record") or data.get("old") or {}
    commit_timestamp = data.get("commit_timestamp")

    if event_type == "INSERT":
        return RowInserted(table=table, row=new_row, commit_timestamp=commit_timestamp)
    if event_type == "UPDATE":
        return RowUpdated(
            table=table,
            row=new_row,
            old_row=old_row,
            commit_timestamp=commit_timestamp,
        )
    if event_type == "DELETE":
        return RowDeleted(table=table, old_row=old_row, commit_timestamp=commit_timestamp)

    raise ChangeEventError(
        f"Unknown change event type: {event_type or '<missing>'}",
        event_type=event_type or None,
        details={"table": table},
    )


class ChangeHandler(ABC):
    """Receives every variant of a row-level change."""

    @abstractmethod
    def on_insert(self, event: RowInserted) -> None: ...

    @abstractmethod
    def on_update(self, event: RowUpdated) -> None: ...

    @abstractmethod
    def on_delete(self, event: RowDeleted) -> None: ...


def dispatch_change(event: ChangeEvent, handler: ChangeHandler) -> None:
    """Route an event to the handler method for its variant."""
    if isinstance(event, RowInserted):
        handler.on_insert(event)
    elif isinstance(event, RowUpdated):
        handler.on_update(event)
    elif isinstance(event, RowDeleted):
        handler.on_delete(event)
    else:
        assert_never(event)
