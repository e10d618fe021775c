"""
Licensing and white-label admin panel.

Licensees are rows of license_tenants owned by the parent organization
(scoped by parent_org_id rather than organization_id).
"""

from __future__ import annotations

from typing import Any, Optional

from core.config.schema import LicenseTier, ViewConfig
from core.metrics.aggregator import LicenseStats, license_stats, seat_utilization
from core.mutations.dispatcher import MutationDispatcher
from core.tenancy import TenantContext
from core.views.base import TenantScopedView
from core.views.notifications import Notifier


class LicensingPanel(TenantScopedView):
    name = "licensing"

    def __init__(
        self,
        db: Any,
        config: ViewConfig,
        *,
        tiers: Optional[list[LicenseTier]] = None,
        dispatcher: Optional[MutationDispatcher] = None,
        notifier: Optional[Notifier] = None,
        tenant: Optional[TenantContext] = None,
    ):
        super().__init__(db, [config], notifier=notifier, tenant=tenant)
        self.tiers = tiers or []
        self.dispatcher = dispatcher or MutationDispatcher(db, self.notifier)

    @property
    def licensees(self) -> list[dict[str, Any]]:
        return self.rows

    def stats(self) -> LicenseStats:
        return license_stats(self.rows)

    def utilization(self) -> dict[str, float]:
        """Seat utilization per licensee id."""
        return {str(t["id"]): seat_utilization(t) for t in self.rows if "id" in t}

    def tier(self, name: str) -> LicenseTier:
        for tier in self.tiers:
            if tier.name.value == name:
                return tier
        raise KeyError(f"Unknown license tier: {name}")

    async def add_licensee(
        self,
        name: str,
        tier: str = "standard",
        branding: Optional[dict[str, Any]] = None,
    ) -> Optional[dict]:
        return await self.dispatcher.add_licensee(self, name, self.tier(tier), branding)
