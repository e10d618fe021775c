"""
Content scheduler.

Calendar and week views over the tenant's content queue, per-platform
and per-status counts, and schedule/publish actions.
"""

from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from typing import Any, Optional

from core.config.schema import ContentStatus, Platform, ViewConfig
from core.metrics.aggregator import (
    content_for_date,
    count_content_by_platform,
    count_content_by_status,
    week_days,
)
from core.mutations.dispatcher import MutationDispatcher
from core.tenancy import TenantContext
from core.views.base import TenantScopedView
from core.views.notifications import Notifier


class ContentScheduler(TenantScopedView):
    name = "content-scheduler"

    def __init__(
        self,
        db: Any,
        config: ViewConfig,
        *,
        platforms: Optional[list[Platform]] = None,
        tz: tzinfo = timezone.utc,
        dispatcher: Optional[MutationDispatcher] = None,
        notifier: Optional[Notifier] = None,
        tenant: Optional[TenantContext] = None,
    ):
        super().__init__(db, [config], notifier=notifier, tenant=tenant)
        self.platforms = platforms or []
        self.tz = tz
        self.selected_date: date = datetime.now(tz).date()
        self.dispatcher = dispatcher or MutationDispatcher(db, self.notifier)

    @property
    def items(self) -> list[dict[str, Any]]:
        return self.rows

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------

    def select_date(self, day: date) -> None:
        self.selected_date = day

    def content_for_date(self, day: date) -> list[dict[str, Any]]:
        return content_for_date(self.rows, day, self.tz)

    def week(self) -> list[tuple[date, list[dict[str, Any]]]]:
        """The selected week, Monday first, with each day's content."""
        return [(day, self.content_for_date(day)) for day in week_days(self.selected_date)]

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    def status_counts(self) -> dict[str, int]:
        return count_content_by_status(self.rows)

    @property
    def scheduled_count(self) -> int:
        return self.status_counts()[ContentStatus.SCHEDULED.value]

    @property
    def published_count(self) -> int:
        return self.status_counts()[ContentStatus.PUBLISHED.value]

    def platform_counts(self) -> dict[str, int]:
        return count_content_by_platform(self.rows, [p.id for p in self.platforms])

    def platform_name(self, platform_id: str) -> str:
        for platform in self.platforms:
            if platform.id == (platform_id or "").lower():
                return platform.name
        return platform_id

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def schedule(self, content_id: str, when: datetime) -> Optional[dict]:
        if when.tzinfo is None:
            when = when.replace(tzinfo=self.tz)
        return await self.dispatcher.schedule_content(self, content_id, when)

    async def publish(self, content_id: str) -> Optional[dict]:
        return await self.dispatcher.publish_content(self, content_id)
