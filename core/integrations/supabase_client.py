"""
Supabase client wrapper for Opsboard.

Provides tenant-scoped reads and writes for the dashboard tables and
owns the async client used by the Realtime change subscriber. Every
query is filtered by the active organization in application code, and
every returned row is re-checked for tenant ownership.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, AsyncClientOptions, acreate_client

from core.config.schema import SupabaseSettings, ViewConfig
from core.exceptions import FetchError, MutationError, RowNotFoundError
from core.tenancy import DEFAULT_TENANT_COLUMN, TenantContext

logger = logging.getLogger(__name__)

_REMOTE_ERRORS = (APIError, httpx.HTTPError, OSError)


class OpsboardDB:
    """
    Database client for Opsboard.

    All queries are scoped to the TenantContext passed in by the caller.
    The service role key bypasses RLS, so the tenant filter is applied
    here on every read and every write.
    """

    def __init__(self, client: AsyncClient):
        self.client = client

    @classmethod
    async def connect(
        cls, settings: Optional[SupabaseSettings] = None
    ) -> OpsboardDB:
        """Create the async Supabase client from environment variables."""
        settings = settings or SupabaseSettings()
        url = os.environ.get(settings.url_env)
        key = os.environ.get(settings.key_env)
        if not url or not key:
            raise EnvironmentError(
                f"{settings.url_env} and {settings.key_env} must be set"
            )
        client = await acreate_client(
            url, key, options=AsyncClientOptions(schema=settings.db_schema)
        )
        return cls(client)

    # ------------------------------------------------------------------
    # Generic tenant-scoped operations
    # ------------------------------------------------------------------

    async def select_rows(
        self,
        table: str,
        tenant: TenantContext,
        *,
        columns: str = "*",
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
        filters: Optional[dict[str, Any]] = None,
        null_columns: Optional[list[str]] = None,
        tenant_column: str = DEFAULT_TENANT_COLUMN,
    ) -> list[dict]:
        """
        Query rows of a table belonging to the tenant.

        Chain: select -> eq(tenant) -> eq(filter)+ -> is_(null)+ -> order -> limit.
        """
        org_id = tenant.require()
        query = (
            self.client.table(table)
            .select(columns)
            .eq(tenant_column, org_id)
        )
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        for column in null_columns or []:
            query = query.is_(column, "null")
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit:
            query = query.limit(limit)

        started = time.monotonic()
        try:
            result = await query.execute()
        except _REMOTE_ERRORS as e:
            logger.error(
                f"Query on {table} failed: {e}",
                extra={"table": table, "organization_id": org_id},
            )
            raise FetchError(
                f"Failed to load {table}", table=table, organization_id=org_id
            ) from e

        rows = self._owned_rows(result.data or [], table, tenant, tenant_column)
        logger.debug(
            "rows_fetched",
            extra={
                "table": table,
                "organization_id": org_id,
                "row_count": len(rows),
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return rows

    async def select_view(
        self, view: ViewConfig, tenant: TenantContext
    ) -> list[dict]:
        """Query rows as described by a view config."""
        return await self.select_rows(
            view.table,
            tenant,
            columns=view.columns,
            order_by=view.order_by,
            descending=view.descending,
            limit=view.limit,
            filters=view.filters,
            null_columns=view.null_columns,
            tenant_column=view.tenant_column,
        )

    async def count_rows(
        self,
        table: str,
        tenant: TenantContext,
        *,
        filters: Optional[dict[str, Any]] = None,
        tenant_column: str = DEFAULT_TENANT_COLUMN,
    ) -> int:
        """Exact row count for the tenant, with optional equality filters."""
        org_id = tenant.require()
        query = (
            self.client.table(table)
            .select("id", count="exact")
            .eq(tenant_column, org_id)
        )
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        try:
            result = await query.execute()
        except _REMOTE_ERRORS as e:
            raise FetchError(
                f"Failed to count {table}", table=table, organization_id=org_id
            ) from e
        return result.count or 0

    async def update_row(
        self,
        table: str,
        tenant: TenantContext,
        row_id: str,
        patch: dict[str, Any],
        *,
        tenant_column: str = DEFAULT_TENANT_COLUMN,
    ) -> dict:
        """
        Update one row by id and return the authoritative post-write row.

        Raises RowNotFoundError if the write matched nothing.
        """
        org_id = tenant.require()
        try:
            result = await (
                self.client.table(table)
                .update(patch)
                .eq("id", row_id)
                .eq(tenant_column, org_id)
                .execute()
            )
        except _REMOTE_ERRORS as e:
            logger.error(
                f"Update on {table} failed: {e}",
                extra={"table": table, "row_id": row_id, "organization_id": org_id},
            )
            raise MutationError(
                f"Failed to update {table}", table=table, organization_id=org_id
            ) from e

        rows = self._owned_rows(result.data or [], table, tenant, tenant_column)
        if not rows:
            raise RowNotFoundError(
                f"No {table} row with id {row_id}",
                row_id=row_id,
                table=table,
                organization_id=org_id,
            )
        logger.info(
            "row_updated",
            extra={"table": table, "row_id": row_id, "organization_id": org_id},
        )
        return rows[0]

    async def insert_row(
        self,
        table: str,
        tenant: TenantContext,
        data: dict[str, Any],
        *,
        tenant_column: str = DEFAULT_TENANT_COLUMN,
    ) -> dict:
        """Insert one row owned by the tenant and return it as stored."""
        org_id = tenant.require()
        payload = {**data, tenant_column: org_id}
        try:
            result = await self.client.table(table).insert(payload).execute()
        except _REMOTE_ERRORS as e:
            logger.error(
                f"Insert on {table} failed: {e}",
                extra={"table": table, "organization_id": org_id},
            )
            raise MutationError(
                f"Failed to insert into {table}", table=table, organization_id=org_id
            ) from e
        if not result.data:
            raise MutationError(
                f"Insert into {table} returned no row",
                table=table,
                organization_id=org_id,
            )
        return result.data[0]

    # ------------------------------------------------------------------
    # Agent dashboard metrics
    # ------------------------------------------------------------------

    async def list_task_statuses(self, tenant: TenantContext) -> list[dict]:
        """Status column of every execution task (no limit, for metrics)."""
        return await self.select_rows("execution_tasks", tenant, columns="status")

    async def list_lead_statuses(self, tenant: TenantContext) -> list[dict]:
        return await self.select_rows("leads", tenant, columns="status")

    async def list_revenue_amounts(self, tenant: TenantContext) -> list[dict]:
        return await self.select_rows("revenue_events", tenant, columns="amount")

    async def count_pending_approvals(self, tenant: TenantContext) -> int:
        return await self.count_rows(
            "approval_requests", tenant, filters={"status": "pending"}
        )

    # ------------------------------------------------------------------
    # License tenants
    # ------------------------------------------------------------------

    async def create_license_tenant(
        self, tenant: TenantContext, data: dict[str, Any]
    ) -> dict:
        return await self.insert_row(
            "license_tenants", tenant, data, tenant_column="parent_org_id"
        )

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    def channel(self, name: str) -> Any:
        """Create a Realtime channel on the underlying client."""
        return self.client.channel(name)

    async def remove_channel(self, channel: Any) -> None:
        await self.client.remove_channel(channel)

    # ------------------------------------------------------------------
    # Utility
    # ------------------------------------------------------------------

    @staticmethod
    def _owned_rows(
        rows: list[dict],
        table: str,
        tenant: TenantContext,
        tenant_column: str,
    ) -> list[dict]:
        """Drop any row that does not belong to the tenant."""
        owned = [row for row in rows if tenant.owns(row, tenant_column)]
        if len(owned) != len(rows):
            logger.warning(
                f"Dropped {len(rows) - len(owned)} foreign rows from {table}",
                extra={"table": table, "organization_id": tenant.organization_id},
            )
        return owned
