"""
Autonomous activity feed.

Live log of decisions taken by external agents (pricing enforcer, client
filter, ...), newest first, with an agent-type filter, a pending-only
toggle and approve/reject actions.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from core.config.schema import ViewConfig
from core.metrics.aggregator import action_status, is_pending_action, pending_action_count
from core.mutations.dispatcher import MutationDispatcher
from core.tenancy import TenantContext
from core.views.base import TenantScopedView, view_predicate
from core.views.notifications import Notifier

logger = logging.getLogger(__name__)


class ActivityFeed(TenantScopedView):
    name = "activity-feed"

    def __init__(
        self,
        db: Any,
        config: ViewConfig,
        *,
        dispatcher: Optional[MutationDispatcher] = None,
        notifier: Optional[Notifier] = None,
        tenant: Optional[TenantContext] = None,
    ):
        self.base_config = config
        self.agent_type: Optional[str] = None
        self.pending_only = False
        super().__init__(db, [config], notifier=notifier, tenant=tenant)
        self.dispatcher = dispatcher or MutationDispatcher(db, self.notifier)

    @property
    def actions(self) -> list[dict[str, Any]]:
        return self.rows

    @property
    def pending_count(self) -> int:
        return pending_action_count(self.rows)

    def status_of(self, action: dict[str, Any]) -> str:
        return action_status(action)

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    async def set_filters(
        self,
        *,
        agent_type: Optional[str] = None,
        pending_only: bool = False,
    ) -> None:
        """Change the agent filter and pending toggle, then reload."""
        self.agent_type = agent_type
        self.pending_only = pending_only
        self._apply_filters()
        await self.load()

    def _apply_filters(self) -> None:
        filters: dict[str, Any] = {}
        null_columns: list[str] = []
        if self.agent_type:
            filters["agent_type"] = self.agent_type
        if self.pending_only:
            filters["requires_approval"] = True
            null_columns.append("approved_at")

        config = self.base_config.with_filters(filters, null_columns)
        self.sources[config.table] = config
        base = view_predicate(config)
        if self.pending_only:
            self.collection.refilter(lambda row: base(row) and is_pending_action(row))
        else:
            self.collection.refilter(base)
        logger.info(
            f"Feed filters: agent={self.agent_type or 'all'} pending_only={self.pending_only}",
            extra={"view": self.name},
        )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def approve(self, action_id: str) -> Optional[dict]:
        return await self.dispatcher.approve_action(self, action_id)

    async def reject(self, action_id: str) -> Optional[dict]:
        return await self.dispatcher.reject_action(self, action_id)
