"""
Row-level change subscriber.

Opens one Supabase Realtime channel per (view, tenant), listening to
INSERT, UPDATE and DELETE on one or more tables filtered by the tenant
column, and routes typed events to a ChangeHandler.

Usage:
    subscriber = ChangeSubscriber(db, "activity-feed", ["autonomous_actions"], view)
    await subscriber.open(tenant)
    ...
    await subscriber.close()
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Sequence

from core.exceptions import ChangeEventError, SubscriptionError
from core.realtime.events import ChangeHandler, dispatch_change, parse_change_payload
from core.tenancy import DEFAULT_TENANT_COLUMN, TenantContext

logger = logging.getLogger(__name__)


class ChangeSubscriber:
    """One live channel for a view, bound to at most one tenant at a time."""

    def __init__(
        self,
        db: Any,
        name: str,
        tables: Sequence[str],
        handler: ChangeHandler,
        *,
        tenant_column: str = DEFAULT_TENANT_COLUMN,
        schema: str = "public",
    ):
        if not tables:
            raise ValueError("ChangeSubscriber needs at least one table")
        self.db = db
        self.name = name
        self.tables = list(tables)
        self.handler = handler
        self.tenant_column = tenant_column
        self.schema = schema
        self._channel: Any = None
        self._tenant: TenantContext = TenantContext.unresolved()

    @property
    def is_open(self) -> bool:
        return self._channel is not None

    @property
    def tenant(self) -> TenantContext:
        return self._tenant

    async def open(self, tenant: TenantContext) -> bool:
        """
        Open the channel for a tenant.

        Returns False without touching the network if the tenant is not
        resolved. An already open channel for another tenant is closed first.
        """
        if not tenant.is_resolved:
            logger.debug(f"Subscriber {self.name}: tenant unresolved, not opening")
            return False
        if self.is_open:
            if self._tenant == tenant:
                return True
            await self.close()

        channel_name = f"{self.name}:{tenant.organization_id}"
        channel = self.db.channel(channel_name)
        callback = functools.partial(self._on_payload, channel)
        for table in self.tables:
            channel.on_postgres_changes(
                "*",
                callback=callback,
                table=table,
                schema=self.schema,
                filter=tenant.tenant_filter(self.tenant_column),
            )
        try:
            await channel.subscribe()
        except Exception as e:
            await self._discard(channel, channel_name)
            raise SubscriptionError(
                f"Failed to subscribe to {channel_name}", channel=channel_name
            ) from e

        self._channel = channel
        self._tenant = tenant
        logger.info(
            f"Subscribed to {', '.join(self.tables)}",
            extra={"view": self.name, "organization_id": tenant.organization_id},
        )
        return True

    async def close(self) -> None:
        """Close the channel. Safe to call when nothing is open."""
        if self._channel is None:
            return
        channel, self._channel = self._channel, None
        tenant, self._tenant = self._tenant, TenantContext.unresolved()
        try:
            await self.db.remove_channel(channel)
        except Exception as e:
            raise SubscriptionError(
                f"Failed to close channel for {self.name}", channel=self.name
            ) from e
        logger.info(
            "Unsubscribed",
            extra={"view": self.name, "organization_id": tenant.organization_id},
        )

    async def _discard(self, channel: Any, channel_name: str) -> None:
        """Release a channel that never finished subscribing."""
        try:
            await self.db.remove_channel(channel)
        except Exception as e:
            logger.warning(
                f"Could not release {channel_name} after failed subscribe: {e}",
                extra={"view": self.name},
            )

    async def resubscribe(self, tenant: TenantContext) -> bool:
        """Close whatever is open and open again for the given tenant."""
        await self.close()
        return await self.open(tenant)

    def _on_payload(self, channel: Any, payload: dict[str, Any]) -> None:
        """Realtime callback: parse, check tenant, dispatch."""
        if channel is not self._channel:
            return
        try:
            event = parse_change_payload(payload)
        except ChangeEventError as e:
            logger.warning(f"Subscriber {self.name}: ignoring payload: {e}")
            return

        row = getattr(event, "row", None) or getattr(event, "old_row", {})
        if not self._tenant.owns(row, self.tenant_column):
            logger.warning(
                "Discarded change event for another tenant",
                extra={"view": self.name, "table": event.table},
            )
            return

        logger.debug(
            "change_event",
            extra={
                "view": self.name,
                "table": event.table,
                "event_type": type(event).__name__,
                "row_id": event.row_id,
            },
        )
        try:
            dispatch_change(event, self.handler)
        except Exception:
            logger.exception(
                f"Subscriber {self.name}: handler failed",
                extra={"table": event.table, "row_id": event.row_id},
            )
