"""
Tenant context for Opsboard.

Every view, subscriber and data-layer call takes the active organization
explicitly. There is no global "current organization": a context whose
organization_id is None means the tenant is not resolved yet, and nothing
touches the network until it is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.exceptions import TenantNotResolvedError

DEFAULT_TENANT_COLUMN = "organization_id"


@dataclass(frozen=True)
class TenantContext:
    """The active organization, or None while it is still being resolved."""

    organization_id: Optional[str] = None

    @classmethod
    def unresolved(cls) -> TenantContext:
        return cls(None)

    @property
    def is_resolved(self) -> bool:
        return bool(self.organization_id)

    def require(self) -> str:
        """Return the organization id or raise if the tenant is unresolved."""
        if not self.organization_id:
            raise TenantNotResolvedError("No active organization")
        return self.organization_id

    def tenant_filter(self, column: str = DEFAULT_TENANT_COLUMN) -> str:
        """Realtime filter expression scoping a channel to this tenant."""
        return f"{column}=eq.{self.require()}"

    def owns(self, row: dict, column: str = DEFAULT_TENANT_COLUMN) -> bool:
        """
        True if the row carries this tenant's id.

        Rows without the column are accepted (e.g. partial selects that
        did not request it).
        """
        if column not in row:
            return True
        return str(row[column]) == str(self.organization_id)

    def __str__(self) -> str:
        return self.organization_id or "<unresolved>"
