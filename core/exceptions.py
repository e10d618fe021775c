"""
Errors raised by the Opsboard data layer.

Every error derives from OpsboardError and carries an optional `details`
dict for structured logging. The families are:

    ProfileConfigError       bad or missing profile, raised at startup
    TenantNotResolvedError   an operation needed an organization id
    DataAccessError          PostgREST reads (FetchError) and writes
                             (MutationError, RowNotFoundError)
    ChangeEventError         a realtime payload that is not insert/update/delete
    SubscriptionError        a realtime channel failed to open or close

Views catch these at their boundary and turn them into notifications:

    try:
        rows = await db.select_rows("leads", tenant)
    except FetchError as e:
        notifier.error(f"Failed to load leads: {e}")
"""

from __future__ import annotations

from typing import Optional


class OpsboardError(Exception):
    """Root of the hierarchy; catch it to handle any Opsboard failure."""

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Configuration Errors ──────────────────────────────────────────


class ProfileConfigError(OpsboardError):
    """
    Raised when a dashboard profile's config.yaml is invalid or missing.
    """

    def __init__(
        self,
        message: str,
        *,
        profile_id: Optional[str] = None,
        config_path: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.profile_id = profile_id
        self.config_path = config_path


# ── Tenant Errors ─────────────────────────────────────────────────


class TenantNotResolvedError(OpsboardError):
    """
    Raised when an operation needs an organization id but the
    tenant context has not been resolved yet.
    """


# ── Data Access Errors ────────────────────────────────────────────


class DataAccessError(OpsboardError):
    """
    Raised when a read or write against a remote table fails.
    """

    def __init__(
        self,
        message: str,
        *,
        table: Optional[str] = None,
        organization_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.table = table
        self.organization_id = organization_id


class FetchError(DataAccessError):
    """A query against a remote table failed (network or service error)."""


class MutationError(DataAccessError):
    """An update or insert against a remote table failed."""


class RowNotFoundError(MutationError):
    """
    A targeted write matched no row.

    Either the id does not exist or it belongs to another tenant.
    """

    def __init__(
        self,
        message: str,
        *,
        row_id: Optional[str] = None,
        table: Optional[str] = None,
        organization_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(
            message,
            table=table,
            organization_id=organization_id,
            details=details,
        )
        self.row_id = row_id


# ── Realtime Errors ───────────────────────────────────────────────


class ChangeEventError(OpsboardError):
    """
    Raised when a row-level change payload cannot be parsed into
    one of the known event variants.
    """

    def __init__(
        self,
        message: str,
        *,
        event_type: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.event_type = event_type


class SubscriptionError(OpsboardError):
    """Raised when a Realtime channel cannot be opened or closed."""

    def __init__(
        self,
        message: str,
        *,
        channel: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.channel = channel
