"""
Unified agent dashboard.

Shows the agent fleet (agent_states), the most recent execution tasks
and the key metrics of the tenant. Both tables share one live channel;
task changes also trigger a refresh of the metric queries, which run
over the full tables rather than the 50 most recent tasks.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

from core.config.schema import ViewConfig
from core.metrics.aggregator import (
    MetricSummary,
    build_metric_summary,
    hourly_performance,
    task_distribution,
)
from core.realtime.events import ChangeEvent
from core.tenancy import TenantContext
from core.views.base import TenantScopedView
from core.views.notifications import Notifier

logger = logging.getLogger(__name__)


class AgentDashboard(TenantScopedView):
    name = "unified-dashboard"

    def __init__(
        self,
        db: Any,
        agents_config: ViewConfig,
        tasks_config: ViewConfig,
        *,
        notifier: Optional[Notifier] = None,
        tenant: Optional[TenantContext] = None,
    ):
        super().__init__(
            db, [agents_config, tasks_config], notifier=notifier, tenant=tenant
        )
        self.agents_table = agents_config.table
        self.tasks_table = tasks_config.table
        self.metrics = MetricSummary()
        self._refresh_tasks: set[asyncio.Task] = set()
        # Refreshes are numbered when they start; a result older than the
        # one already shown is discarded.
        self._metrics_started = 0
        self._metrics_applied = 0

    @property
    def agents(self) -> list[dict[str, Any]]:
        return self.rows_of(self.agents_table)

    @property
    def tasks(self) -> list[dict[str, Any]]:
        return self.rows_of(self.tasks_table)

    def task_distribution(self) -> list[dict[str, Any]]:
        return task_distribution(self.metrics.tasks)

    def performance(self, now: Optional[datetime] = None) -> list[dict[str, Any]]:
        return hourly_performance(self.tasks, now=now)

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    async def _load_extra(self, generation: int) -> bool:
        return await self._load_metrics(generation)

    async def refresh_metrics(self) -> bool:
        if not self.tenant.is_resolved:
            return False
        return await self._load_extra_guarded(self._generation)

    async def _load_metrics(self, generation: int) -> bool:
        self._metrics_started += 1
        seq = self._metrics_started
        tenant = self.tenant
        results = await asyncio.gather(
            self.db.list_task_statuses(tenant),
            self.db.list_lead_statuses(tenant),
            self.db.list_revenue_amounts(tenant),
            self.db.count_pending_approvals(tenant),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        tasks, leads, revenue, pending = results

        if not self.is_current(generation):
            return False
        if seq < self._metrics_applied:
            logger.debug(
                "metrics_superseded",
                extra={"view": self.name, "organization_id": tenant.organization_id},
            )
            return True
        self._metrics_applied = seq
        self.metrics = build_metric_summary(tasks, leads, revenue, pending)
        logger.info(
            "metrics_refreshed",
            extra={"view": self.name, "row_count": self.metrics.tasks.total},
        )
        return True

    def _reset(self) -> None:
        for task in list(self._refresh_tasks):
            task.cancel()
        self.metrics = MetricSummary()

    def _after_change(self, event: ChangeEvent) -> None:
        if event.table != self.tasks_table:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.refresh_metrics())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def close(self) -> None:
        self._reset()
        await super().close()
