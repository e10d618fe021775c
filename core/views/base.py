"""
Tenant-scoped fetch-and-subscribe view.

A view owns one LiveCollection per remote table it shows, loads them for
the active tenant, keeps them live through a single Realtime channel and
tears everything down when the tenant changes or the view is closed.

Lifecycle:
    view = ActivityFeed(db, config, notifier=notifier)
    await view.set_tenant(TenantContext("org-1"))   # load + subscribe
    ...
    await view.set_tenant(TenantContext("org-2"))   # teardown, reload
    await view.close()                               # "unmount"

Responses that arrive after the tenant changed or the view was closed are
dropped: each load captures the view generation when issued and only
applies its result if the generation is unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from core.config.schema import ViewConfig
from core.exceptions import FetchError, SubscriptionError
from core.observability.logging_config import set_log_organization
from core.realtime.events import (
    ChangeEvent,
    ChangeHandler,
    RowDeleted,
    RowInserted,
    RowUpdated,
)
from core.realtime.subscriber import ChangeSubscriber
from core.tenancy import TenantContext
from core.views.collection import LiveCollection, RowPredicate
from core.views.notifications import Notifier

logger = logging.getLogger(__name__)


def view_predicate(config: ViewConfig) -> RowPredicate:
    """Local mirror of a view's server-side filters."""
    filters = dict(config.filters)
    null_columns = list(config.null_columns)

    def predicate(row: dict[str, Any]) -> bool:
        for column, value in filters.items():
            if column in row and row[column] != value:
                return False
        for column in null_columns:
            if row.get(column) is not None:
                return False
        return True

    return predicate


def collection_for(config: ViewConfig) -> LiveCollection:
    return LiveCollection(
        predicate=view_predicate(config),
        order_by=config.order_by,
        descending=config.descending,
        limit=config.limit,
    )


class TenantScopedView(ChangeHandler):
    """
    Base class for live dashboard views.

    Subclasses pass the ViewConfigs of the tables they show; the first
    one is the primary table. Hooks:
        _load_extra()       extra coroutine loaded alongside the tables
        _after_change()     called after a change event was applied
        _reset()            drop derived state when the tenant changes
    """

    name = "view"

    def __init__(
        self,
        db: Any,
        sources: list[ViewConfig],
        *,
        notifier: Optional[Notifier] = None,
        tenant: Optional[TenantContext] = None,
    ):
        if not sources:
            raise ValueError(f"{type(self).__name__} needs at least one table")
        tenant_columns = {source.tenant_column for source in sources}
        if len(tenant_columns) != 1:
            raise ValueError("All tables of a view must share a tenant column")

        self.db = db
        self.notifier = notifier or Notifier()
        self.tenant = tenant or TenantContext.unresolved()
        self.sources: dict[str, ViewConfig] = {s.table: s for s in sources}
        self.collections: dict[str, LiveCollection] = {
            s.table: collection_for(s) for s in sources
        }
        self.primary_table = sources[0].table
        self.subscriber = ChangeSubscriber(
            db,
            self.name,
            list(self.sources),
            self,
            tenant_column=tenant_columns.pop(),
        )
        self.loading = False
        self.loaded = False
        self.last_error: Optional[str] = None
        self._active = False
        self._generation = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def rows(self) -> list[dict[str, Any]]:
        """Rows of the primary table, in display order."""
        return self.collections[self.primary_table].rows

    def rows_of(self, table: str) -> list[dict[str, Any]]:
        return self.collections[table].rows

    @property
    def collection(self) -> LiveCollection:
        return self.collections[self.primary_table]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Load and subscribe for the current tenant ("mount")."""
        self._active = True
        if not self.tenant.is_resolved:
            logger.debug(f"{self.name}: tenant unresolved, waiting")
            return
        generation = self._generation
        await self.load()
        if not self.is_current(generation):
            return
        try:
            await self.subscriber.open(self.tenant)
        except SubscriptionError as e:
            logger.error(f"{self.name}: {e}", extra={"view": self.name})
            self.notifier.error(f"Live updates unavailable for {self.label}")

    async def close(self) -> None:
        """Tear down the channel and ignore in-flight responses ("unmount")."""
        self._active = False
        self._generation += 1
        self.loading = False
        await self.subscriber.close()

    async def set_tenant(self, tenant: TenantContext) -> None:
        """Switch to another tenant: teardown, clear, reload, resubscribe."""
        if tenant == self.tenant and (self.loaded or not tenant.is_resolved):
            return
        await self.subscriber.close()
        self._generation += 1
        for collection in self.collections.values():
            collection.clear()
        self._reset()
        self.loaded = False
        self.loading = False
        self.tenant = tenant
        set_log_organization(tenant.organization_id)
        logger.info(f"{self.name}: tenant set to {tenant}", extra={"view": self.name})
        if self._active or tenant.is_resolved:
            await self.open()

    async def refresh(self) -> bool:
        return await self.load()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> bool:
        """
        Load every table of the view concurrently.

        Returns True if every load succeeded and was applied. Failed loads
        leave their collection untouched and raise a notification.
        """
        if not self.tenant.is_resolved:
            return False

        generation = self._generation
        if not self.loaded:
            self.loading = True
        try:
            results = await asyncio.gather(
                *(self._load_table(table, generation) for table in self.sources),
                self._load_extra_guarded(generation),
            )
        finally:
            if generation == self._generation:
                self.loading = False

        ok = all(results)
        if ok and generation == self._generation:
            self.loaded = True
        return ok

    async def _load_table(self, table: str, generation: int) -> bool:
        collection = self.collections[table]
        seq = collection.begin_load()
        tenant = self.tenant
        try:
            rows = await self.db.select_view(self.sources[table], tenant)
        except FetchError as e:
            if generation != self._generation:
                return False
            self.last_error = str(e)
            logger.error(
                f"{self.name}: load failed: {e}",
                extra={"view": self.name, "table": table},
            )
            self.notifier.error(f"Failed to load {table.replace('_', ' ')}")
            return False

        if generation != self._generation:
            logger.debug(
                f"{self.name}: dropping response for a stale view",
                extra={"view": self.name, "table": table},
            )
            return False
        applied = collection.complete_load(seq, rows)
        logger.info(
            "view_loaded",
            extra={"view": self.name, "table": table, "row_count": len(rows)},
        )
        return applied

    async def _load_extra_guarded(self, generation: int) -> bool:
        try:
            return await self._load_extra(generation)
        except FetchError as e:
            if generation == self._generation:
                self.last_error = str(e)
                logger.error(f"{self.name}: {e}", extra={"view": self.name})
                self.notifier.error(f"Failed to load {self.label} metrics")
            return False

    async def _load_extra(self, generation: int) -> bool:
        return True

    def _reset(self) -> None:
        pass

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    # ------------------------------------------------------------------
    # Change events
    # ------------------------------------------------------------------

    def on_insert(self, event: RowInserted) -> None:
        self._apply(event, lambda c: c.upsert(event.row))

    def on_update(self, event: RowUpdated) -> None:
        self._apply(event, lambda c: c.upsert(event.row))

    def on_delete(self, event: RowDeleted) -> None:
        self._apply(event, lambda c: c.remove(event.row_id))

    def _apply(
        self, event: ChangeEvent, change: Callable[[LiveCollection], bool]
    ) -> None:
        table = event.table or self.primary_table
        collection = self.collections.get(table)
        if collection is None:
            logger.debug(f"{self.name}: no collection for {event.table}")
            return
        if change(collection):
            self._after_change(event)

    def _after_change(self, event: ChangeEvent) -> None:
        pass

    # ------------------------------------------------------------------
    # Local patches from authoritative rows
    # ------------------------------------------------------------------

    def patch_row(self, row: dict[str, Any], table: Optional[str] = None) -> bool:
        """Apply an authoritative post-write row returned by the data layer."""
        return self.collections[table or self.primary_table].upsert(row)

    @property
    def label(self) -> str:
        return self.name.replace("-", " ")
