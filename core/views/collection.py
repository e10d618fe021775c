"""
In-memory row collection kept live by loads and change events.

Every write into the collection is stamped with a number from a
per-collection monotonic clock. A load is stamped when it is *issued*,
a streamed change or an authoritative mutation result when it is
*applied*. With per-row versions and tombstones for rows known to be
absent, the newest information always wins:

- a load that completes after a newer change keeps the newer row
- a load never resurrects a row deleted (or filtered out) after it was issued
- an older load completing after a newer load is discarded
- an update whose updated_at is older than the held row's is discarded
"""

from __future__ import annotations

import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)

RowPredicate = Callable[[dict[str, Any]], bool]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as returned by PostgREST. Naive means UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _accept_all(row: dict[str, Any]) -> bool:
    return True


class LiveCollection:
    """Rows keyed by id, in display order, guarded by sequence numbers."""

    def __init__(
        self,
        *,
        key: str = "id",
        predicate: Optional[RowPredicate] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ):
        self.key = key
        self.predicate = predicate or _accept_all
        self.order_by = order_by
        self.descending = descending
        self.limit = limit
        self._rows: dict[str, dict[str, Any]] = {}
        self._order: list[str] = []
        self._versions: dict[str, int] = {}
        self._tombstones: dict[str, int] = {}
        self._clock = itertools.count(1)
        self._last_load = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def rows(self) -> list[dict[str, Any]]:
        """Rows in display order, truncated to the display limit."""
        rows = [self._rows[rid] for rid in self._order]
        if self.order_by:
            present = [r for r in rows if r.get(self.order_by) is not None]
            missing = [r for r in rows if r.get(self.order_by) is None]
            present.sort(key=lambda r: r[self.order_by], reverse=self.descending)
            rows = present + missing
        if self.limit:
            rows = rows[: self.limit]
        return rows

    def get(self, row_id: str) -> Optional[dict[str, Any]]:
        return self._rows.get(str(row_id))

    def version_of(self, row_id: str) -> int:
        return self._versions.get(str(row_id), 0)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, row_id: object) -> bool:
        return str(row_id) in self._rows

    # ------------------------------------------------------------------
    # Sequencing
    # ------------------------------------------------------------------

    def tick(self) -> int:
        return next(self._clock)

    def begin_load(self) -> int:
        """Stamp a load at the moment it is issued."""
        return self.tick()

    def complete_load(self, seq: int, rows: Iterable[dict[str, Any]]) -> bool:
        """
        Replace the collection with a load result issued at `seq`.

        Returns False if a newer load has already been applied.
        """
        if seq <= self._last_load:
            logger.debug(f"Discarding stale load {seq} (last applied {self._last_load})")
            return False

        new_rows: dict[str, dict[str, Any]] = {}
        new_order: list[str] = []
        new_versions: dict[str, int] = {}
        fetched: set[str] = set()

        for row in rows:
            rid = self._id(row)
            if rid is None or rid in fetched:
                continue
            fetched.add(rid)
            if self._tombstones.get(rid, 0) > seq:
                continue
            if self._versions.get(rid, 0) > seq:
                chosen, version = self._rows[rid], self._versions[rid]
            else:
                chosen, version = row, seq
            if not self.predicate(chosen):
                continue
            new_rows[rid] = chosen
            new_order.append(rid)
            new_versions[rid] = version

        # Rows that arrived after the load was issued but are not in it
        newer = [
            rid for rid in self._order
            if rid not in fetched and self._versions.get(rid, 0) > seq
        ]
        for rid in newer:
            new_rows[rid] = self._rows[rid]
            new_versions[rid] = self._versions[rid]

        self._rows = new_rows
        self._order = newer + new_order
        self._versions = new_versions
        self._tombstones = {rid: s for rid, s in self._tombstones.items() if s > seq}
        self._last_load = seq
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, row: dict[str, Any]) -> bool:
        """
        Insert a new row at the front or replace an existing one in place.

        A row that no longer matches the predicate is removed instead.
        Returns True if the collection changed.
        """
        rid = self._id(row)
        if rid is None:
            return False
        seq = self.tick()

        existing = self._rows.get(rid)
        if existing is not None and self._is_older(row, existing):
            logger.debug(f"Discarding stale update for {rid}")
            return False

        merged = {**existing, **row} if existing is not None else dict(row)
        if not self.predicate(merged):
            self._tombstones[rid] = seq
            if existing is not None:
                self._drop(rid)
                return True
            return False

        if existing is None:
            self._order.insert(0, rid)
        self._rows[rid] = merged
        self._versions[rid] = seq
        self._tombstones.pop(rid, None)
        return True

    def remove(self, row_id: Optional[str]) -> bool:
        """Remove a row and remember that it is gone. True if it was present."""
        if row_id is None:
            return False
        rid = str(row_id)
        self._tombstones[rid] = self.tick()
        if rid not in self._rows:
            return False
        self._drop(rid)
        return True

    def clear(self) -> None:
        """Forget everything (tenant switch). The clock keeps running."""
        self._rows.clear()
        self._order.clear()
        self._versions.clear()
        self._tombstones.clear()
        self._last_load = self.tick()

    def refilter(self, predicate: RowPredicate) -> None:
        """Swap the predicate and drop rows that no longer match."""
        self.predicate = predicate
        for rid in [rid for rid in self._order if not predicate(self._rows[rid])]:
            self._tombstones[rid] = self.tick()
            self._drop(rid)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _id(self, row: dict[str, Any]) -> Optional[str]:
        value = row.get(self.key)
        return str(value) if value is not None else None

    def _drop(self, rid: str) -> None:
        self._rows.pop(rid, None)
        self._versions.pop(rid, None)
        self._order.remove(rid)

    @staticmethod
    def _is_older(incoming: dict[str, Any], held: dict[str, Any]) -> bool:
        incoming_at = parse_timestamp(incoming.get("updated_at"))
        held_at = parse_timestamp(held.get("updated_at"))
        if incoming_at is None or held_at is None:
            return False
        return incoming_at < held_at
