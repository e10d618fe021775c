"""
Mutation dispatcher for user-initiated state transitions.

Each action becomes a single targeted write. Local state is only ever
patched from the authoritative row the data layer returns, and success
is only reported when that row shows the intended change.

    dispatcher = MutationDispatcher(db, notifier)
    row = await dispatcher.approve_action(feed, "act-1")
    if row is None:
        ...  # failure already notified, local state untouched
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from core.config.schema import ActionStatus, ContentStatus, LicenseTier
from core.exceptions import MutationError, RowNotFoundError
from core.tenancy import TenantContext
from core.views.collection import parse_timestamp
from core.views.notifications import Notifier

logger = logging.getLogger(__name__)

RowCheck = Callable[[dict[str, Any]], bool]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(when: datetime) -> datetime:
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)


class MutationDispatcher:
    """Translates user actions into remote row updates."""

    def __init__(
        self,
        db: Any,
        notifier: Optional[Notifier] = None,
        *,
        clock: Callable[[], datetime] = _now,
        user_id: Optional[str] = None,
    ):
        self.db = db
        self.notifier = notifier or Notifier()
        self.clock = clock
        self.user_id = user_id

    # ------------------------------------------------------------------
    # Autonomous actions
    # ------------------------------------------------------------------

    async def approve_action(self, view: Any, action_id: str) -> Optional[dict]:
        """Stamp approval and execution; the row leaves pending-only views."""
        now = self.clock().isoformat()
        patch: dict[str, Any] = {"approved_at": now, "executed_at": now}
        if self.user_id:
            patch["approved_by"] = self.user_id
        return await self._dispatch(
            view,
            view.primary_table,
            action_id,
            patch,
            check=lambda row: bool(row.get("approved_at")),
            success="Action approved",
            failure="Failed to approve action",
        )

    async def reject_action(self, view: Any, action_id: str) -> Optional[dict]:
        """Mark the action rejected. The remote row is kept."""
        return await self._dispatch(
            view,
            view.primary_table,
            action_id,
            {"decision": ActionStatus.REJECTED.value},
            check=lambda row: row.get("decision") == ActionStatus.REJECTED.value,
            success="Action dismissed",
            failure="Failed to reject action",
        )

    # ------------------------------------------------------------------
    # Content queue
    # ------------------------------------------------------------------

    async def publish_content(self, view: Any, content_id: str) -> Optional[dict]:
        return await self._dispatch(
            view,
            view.primary_table,
            content_id,
            {
                "status": ContentStatus.PUBLISHED.value,
                "published_at": self.clock().isoformat(),
                "updated_at": self.clock().isoformat(),
            },
            check=lambda row: row.get("status") == ContentStatus.PUBLISHED.value,
            success="Content published!",
            failure="Failed to publish content",
        )

    async def schedule_content(
        self, view: Any, content_id: str, when: datetime
    ) -> Optional[dict]:
        when = _as_utc(when)

        def scheduled_as_requested(row: dict[str, Any]) -> bool:
            return (
                row.get("status") == ContentStatus.SCHEDULED.value
                and parse_timestamp(row.get("scheduled_at")) == when
            )

        return await self._dispatch(
            view,
            view.primary_table,
            content_id,
            {
                "status": ContentStatus.SCHEDULED.value,
                "scheduled_at": when.isoformat(),
                "updated_at": self.clock().isoformat(),
            },
            check=scheduled_as_requested,
            success="Content scheduled!",
            failure="Failed to schedule content",
        )

    # ------------------------------------------------------------------
    # Licensing
    # ------------------------------------------------------------------

    async def add_licensee(
        self,
        view: Any,
        name: str,
        tier: LicenseTier,
        branding: Optional[dict[str, Any]] = None,
    ) -> Optional[dict]:
        """Create a licensee with the tier's limits and fees."""
        tenant: TenantContext = view.tenant
        if not tenant.is_resolved:
            logger.warning("add_licensee called without an active organization")
            return None
        data = {
            "tenant_name": name,
            "license_tier": tier.name.value,
            "seat_limit": tier.seat_limit,
            "sub_org_limit": tier.sub_org_limit,
            "monthly_fee": tier.monthly_fee,
            "per_seat_fee": tier.per_seat_fee,
            "per_sub_org_fee": tier.per_sub_org_fee,
            "active_seats": 0,
            "active_sub_orgs": 0,
            "status": "trial",
            "branding_config": branding or {
                "logo_url": None,
                "primary_color": "#8B5CF6",
                "assistant_name": "AI Assistant",
            },
        }
        try:
            row = await self.db.create_license_tenant(tenant, data)
        except MutationError as e:
            logger.error(f"add_licensee failed: {e}", extra={"table": "license_tenants"})
            self.notifier.error("Failed to add licensee")
            return None
        view.patch_row(row)
        self.notifier.success(f"Licensee {name} added")
        return row

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _dispatch(
        self,
        view: Any,
        table: str,
        row_id: str,
        patch: dict[str, Any],
        *,
        check: RowCheck,
        success: str,
        failure: str,
    ) -> Optional[dict]:
        tenant: TenantContext = view.tenant
        if not tenant.is_resolved:
            logger.warning(f"{table} mutation without an active organization")
            return None

        try:
            row = await self.db.update_row(
                table,
                tenant,
                row_id,
                patch,
                tenant_column=view.sources[table].tenant_column,
            )
        except RowNotFoundError:
            self.notifier.error(f"{failure}: not found")
            return None
        except MutationError as e:
            logger.error(f"{failure}: {e}", extra={"table": table, "row_id": row_id})
            self.notifier.error(failure)
            return None

        if not check(row):
            logger.warning(
                "Write not reflected in returned row",
                extra={"table": table, "row_id": row_id},
            )
            self.notifier.error(f"{failure}: change was not applied")
            return None

        view.patch_row(row, table)
        self.notifier.success(success)
        return row
