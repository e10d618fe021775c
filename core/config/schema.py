"""
Pydantic configuration schema for Opsboard dashboard profiles.

Each profile is defined by a config.yaml file that conforms to these
models. It names the Supabase credentials to use, how every view queries
its table, the license tier catalog and the content platforms.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ContentStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"


class ActionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_EXECUTED = "auto-executed"
    FLAGGED = "flagged"


class LicenseTierName(str, Enum):
    STANDARD = "standard"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class LicenseStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    TRIAL = "trial"


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class SupabaseSettings(BaseModel):
    """Where the Supabase credentials live."""
    url_env: str = "SUPABASE_URL"
    key_env: str = Field(
        "SUPABASE_SERVICE_KEY",
        description="Env var holding the API key (service role or anon)",
    )
    db_schema: str = Field("public", alias="schema")

    model_config = {"populate_by_name": True}


class ViewConfig(BaseModel):
    """How a view queries its remote table."""
    table: str
    order_by: Optional[str] = None
    descending: bool = True
    limit: Optional[int] = Field(None, ge=1)
    columns: str = "*"
    filters: dict[str, Any] = Field(
        default_factory=dict,
        description="Equality filters applied on top of the tenant scope",
    )
    null_columns: list[str] = Field(
        default_factory=list,
        description="Columns that must be NULL for a row to be in the view",
    )
    tenant_column: str = "organization_id"

    def with_filters(
        self,
        filters: Optional[dict[str, Any]] = None,
        null_columns: Optional[list[str]] = None,
    ) -> ViewConfig:
        """Copy of this config with extra filters merged in."""
        return self.model_copy(update={
            "filters": {**self.filters, **(filters or {})},
            "null_columns": sorted(set(self.null_columns) | set(null_columns or [])),
        })


class LicenseTier(BaseModel):
    """A white-label license tier offered to licensees."""
    name: LicenseTierName
    label: str
    monthly_fee: float = Field(..., ge=0)
    seat_limit: int = Field(..., ge=1)
    sub_org_limit: int = Field(..., ge=0)
    per_seat_fee: float = Field(49, ge=0)
    per_sub_org_fee: float = Field(99, ge=0)
    features: list[str] = Field(default_factory=list)


class Platform(BaseModel):
    """A content publishing platform."""
    id: str = Field(..., pattern=r"^[a-z][a-z0-9_]*$")
    name: str


def _default_views() -> dict[str, ViewConfig]:
    return {
        "agent_states": ViewConfig(table="agent_states", order_by="updated_at"),
        "execution_tasks": ViewConfig(
            table="execution_tasks", order_by="created_at", limit=50
        ),
        "autonomous_actions": ViewConfig(
            table="autonomous_actions", order_by="created_at", limit=100
        ),
        "content_queue": ViewConfig(
            table="content_queue", order_by="scheduled_at", descending=False
        ),
        "license_tenants": ViewConfig(
            table="license_tenants",
            order_by="created_at",
            tenant_column="parent_org_id",
        ),
    }


def _default_tiers() -> list[LicenseTier]:
    return [
        LicenseTier(
            name=LicenseTierName.STANDARD, label="Standard",
            monthly_fee=499, seat_limit=5, sub_org_limit=5,
        ),
        LicenseTier(
            name=LicenseTierName.PROFESSIONAL, label="Professional",
            monthly_fee=897, seat_limit=15, sub_org_limit=10,
        ),
        LicenseTier(
            name=LicenseTierName.ENTERPRISE, label="Enterprise",
            monthly_fee=2497, seat_limit=50, sub_org_limit=25,
        ),
    ]


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

REQUIRED_VIEWS = (
    "agent_states",
    "execution_tasks",
    "autonomous_actions",
    "content_queue",
    "license_tenants",
)


class DashboardConfig(BaseModel):
    """
    Complete configuration for an Opsboard dashboard profile.

    This is the top-level model that gets loaded from config.yaml.
    """
    profile_id: str = Field(
        ..., pattern=r"^[a-z][a-z0-9_]*$",
        description="Unique snake_case identifier for this profile",
    )
    profile_name: str = Field("Opsboard", description="Human-readable name")
    timezone: str = "UTC"
    currency: str = "USD"

    supabase: SupabaseSettings = Field(default_factory=SupabaseSettings)
    views: dict[str, ViewConfig] = Field(default_factory=_default_views)
    license_tiers: list[LicenseTier] = Field(default_factory=_default_tiers)
    platforms: list[Platform] = Field(default_factory=list)
    agent_types: dict[str, str] = Field(
        default_factory=dict,
        description="agent_type -> display label for the activity feed filter",
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("views")
    @classmethod
    def validate_views(cls, v: dict[str, ViewConfig]) -> dict[str, ViewConfig]:
        defaults = _default_views()
        merged = {**defaults, **v}
        missing = [name for name in REQUIRED_VIEWS if name not in merged]
        if missing:
            raise ValueError(f"Missing view configs: {', '.join(missing)}")
        return merged

    @field_validator("license_tiers")
    @classmethod
    def validate_unique_tiers(cls, v: list[LicenseTier]) -> list[LicenseTier]:
        names = [tier.name for tier in v]
        if len(names) != len(set(names)):
            raise ValueError("License tier names must be unique")
        return v

    def view(self, name: str) -> ViewConfig:
        return self.views[name]

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)
