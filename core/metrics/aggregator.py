"""
Pure metric derivations for the dashboard views.

Kept free of I/O so they can be unit-tested on plain row dicts and
recomputed on every render. Every function is defined for empty input
and returns zero metrics; no function divides by zero.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

from core.config.schema import ActionStatus, ContentStatus, TaskStatus
from core.views.collection import parse_timestamp

UNTITLED = "Untitled"


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


def safe_rate(part: float, total: float) -> float:
    """Percentage (0-100) of part in total, 0.0 when total is 0."""
    if not total:
        return 0.0
    return (part / total) * 100


def round_half_up(value: float) -> int:
    """Whole units with .5 rounded up (2.5 -> 3), as amounts are displayed."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def sum_field(rows: Iterable[dict[str, Any]], field_name: str) -> float:
    """Arithmetic sum of a field, treating missing or None as 0."""
    total = 0.0
    for row in rows:
        value = row.get(field_name)
        if value is None:
            continue
        try:
            total += float(value)
        except (TypeError, ValueError):
            continue
    return total


def count_by_status(
    rows: Iterable[dict[str, Any]],
    statuses: Optional[Iterable[str]] = None,
    field_name: str = "status",
) -> dict[str, int]:
    """
    Count rows per status value.

    With `statuses`, the result has exactly those keys (zero-filled) and
    rows with other statuses are not counted.
    """
    counts = Counter(str(row.get(field_name)) for row in rows if row.get(field_name) is not None)
    if statuses is None:
        return dict(counts)
    return {status: counts.get(status, 0) for status in statuses}


# ---------------------------------------------------------------------------
# Agent dashboard
# ---------------------------------------------------------------------------


@dataclass
class TaskMetrics:
    total: int = 0
    completed: int = 0
    failed: int = 0
    running: int = 0
    pending: int = 0

    @property
    def success_rate(self) -> float:
        return safe_rate(self.completed, self.total)

    @property
    def error_rate(self) -> float:
        return safe_rate(self.failed, self.total)


@dataclass
class MetricSummary:
    tasks: TaskMetrics = field(default_factory=TaskMetrics)
    total_leads: int = 0
    qualified_leads: int = 0
    total_revenue: float = 0.0
    pending_approvals: int = 0

    @property
    def lead_qualification_rate(self) -> float:
        return safe_rate(self.qualified_leads, self.total_leads)

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["success_rate"] = self.tasks.success_rate
        data["error_rate"] = self.tasks.error_rate
        data["lead_qualification_rate"] = self.lead_qualification_rate
        return data


def summarize_tasks(tasks: Iterable[dict[str, Any]]) -> TaskMetrics:
    """Count execution tasks per status."""
    tasks = list(tasks)
    counts = count_by_status(tasks, [s.value for s in TaskStatus])
    return TaskMetrics(
        total=len(tasks),
        completed=counts[TaskStatus.COMPLETED.value],
        failed=counts[TaskStatus.FAILED.value],
        running=counts[TaskStatus.RUNNING.value],
        pending=counts[TaskStatus.PENDING.value],
    )


def build_metric_summary(
    tasks: Iterable[dict[str, Any]],
    leads: Iterable[dict[str, Any]],
    revenue_events: Iterable[dict[str, Any]],
    pending_approvals: int = 0,
) -> MetricSummary:
    """Reduce the four metric queries into the dashboard's key numbers."""
    leads = list(leads)
    return MetricSummary(
        tasks=summarize_tasks(tasks),
        total_leads=len(leads),
        qualified_leads=sum(1 for lead in leads if lead.get("status") == "qualified"),
        total_revenue=sum_field(revenue_events, "amount"),
        pending_approvals=pending_approvals or 0,
    )


def task_distribution(metrics: TaskMetrics) -> list[dict[str, Any]]:
    """Non-empty status slices, in display order."""
    slices = [
        ("Completed", metrics.completed),
        ("Running", metrics.running),
        ("Pending", metrics.pending),
        ("Failed", metrics.failed),
    ]
    return [{"name": name, "value": value} for name, value in slices if value > 0]


def hourly_performance(
    tasks: Iterable[dict[str, Any]],
    now: Optional[datetime] = None,
    hours: int = 24,
) -> list[dict[str, Any]]:
    """
    Tasks created per hour over the last `hours`, with the share completed.

    Returns one bucket per hour, oldest first:
        {"time": "HH:00", "tasks": int, "success": float}
    """
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    current_hour = now.replace(minute=0, second=0, microsecond=0)
    starts = [current_hour - timedelta(hours=i) for i in range(hours - 1, -1, -1)]
    buckets: dict[datetime, list[dict[str, Any]]] = {start: [] for start in starts}

    for task in tasks:
        created = parse_timestamp(task.get("created_at"))
        if created is None:
            continue
        hour = created.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
        if hour in buckets:
            buckets[hour].append(task)

    series = []
    for start in starts:
        rows = buckets[start]
        completed = sum(1 for r in rows if r.get("status") == TaskStatus.COMPLETED.value)
        series.append({
            "time": start.strftime("%H:%M"),
            "tasks": len(rows),
            "success": safe_rate(completed, len(rows)),
        })
    return series


# ---------------------------------------------------------------------------
# Activity feed
# ---------------------------------------------------------------------------


def action_status(action: dict[str, Any]) -> str:
    """Derive the display status of an autonomous action."""
    if action.get("was_auto_executed"):
        return ActionStatus.AUTO_EXECUTED.value
    if action.get("decision") == ActionStatus.REJECTED.value:
        return ActionStatus.REJECTED.value
    if action.get("requires_approval") and not action.get("approved_at"):
        return ActionStatus.PENDING.value
    if action.get("approved_at"):
        return ActionStatus.APPROVED.value
    return ActionStatus.FLAGGED.value


def is_pending_action(action: dict[str, Any]) -> bool:
    return action_status(action) == ActionStatus.PENDING.value


def pending_action_count(actions: Iterable[dict[str, Any]]) -> int:
    return sum(1 for action in actions if is_pending_action(action))


def humanize_identifier(value: Optional[str]) -> str:
    """'price_floor_enforced' -> 'Price Floor Enforced'."""
    if not value:
        return UNTITLED
    return value.replace("_", " ").title()


# ---------------------------------------------------------------------------
# Content scheduler
# ---------------------------------------------------------------------------


def count_content_by_status(items: Iterable[dict[str, Any]]) -> dict[str, int]:
    return count_by_status(items, [s.value for s in ContentStatus])


def count_content_by_platform(
    items: Iterable[dict[str, Any]],
    platforms: Iterable[str],
) -> dict[str, int]:
    """Items per platform id, case-insensitive, zero-filled."""
    counts = Counter(str(item.get("platform") or "").lower() for item in items)
    return {p: counts.get(p.lower(), 0) for p in platforms}


def content_for_date(
    items: Iterable[dict[str, Any]],
    day: date,
    tz: tzinfo = timezone.utc,
) -> list[dict[str, Any]]:
    """Items whose scheduled_at falls on `day` in the given timezone."""
    result = []
    for item in items:
        scheduled = parse_timestamp(item.get("scheduled_at"))
        if scheduled is not None and scheduled.astimezone(tz).date() == day:
            result.append(item)
    return result


def week_days(selected: date, week_start: int = 0) -> list[date]:
    """The seven days of the week containing `selected` (0 = Monday start)."""
    offset = (selected.weekday() - week_start) % 7
    start = selected - timedelta(days=offset)
    return [start + timedelta(days=i) for i in range(7)]


def content_title(item: dict[str, Any]) -> str:
    return item.get("title") or UNTITLED


# ---------------------------------------------------------------------------
# Licensing
# ---------------------------------------------------------------------------


@dataclass
class LicenseStats:
    total_licensees: int = 0
    total_seats: int = 0
    total_sub_orgs: int = 0
    monthly_recurring: float = 0.0
    avg_revenue_per_license: int = 0
    retention_rate: float = 0.0


def license_stats(tenants: Iterable[dict[str, Any]]) -> LicenseStats:
    """
    Portfolio totals across licensees.

    Retention is the share of licensees that are not suspended.
    """
    tenants = list(tenants)
    if not tenants:
        return LicenseStats()
    monthly = sum_field(tenants, "monthly_fee")
    retained = sum(1 for t in tenants if t.get("status") != "suspended")
    return LicenseStats(
        total_licensees=len(tenants),
        total_seats=int(sum_field(tenants, "active_seats")),
        total_sub_orgs=int(sum_field(tenants, "active_sub_orgs")),
        monthly_recurring=monthly,
        avg_revenue_per_license=round_half_up(monthly / len(tenants)),
        retention_rate=safe_rate(retained, len(tenants)),
    )


def seat_utilization(tenant: dict[str, Any]) -> float:
    """Active seats as a percentage of the seat limit."""
    return safe_rate(tenant.get("active_seats") or 0, tenant.get("seat_limit") or 0)


def sub_org_utilization(tenant: dict[str, Any]) -> float:
    return safe_rate(tenant.get("active_sub_orgs") or 0, tenant.get("sub_org_limit") or 0)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_percent(value: float) -> str:
    """One decimal, as shown next to progress bars: 60.0%."""
    return f"{value:.1f}%"


def format_currency(amount: Optional[float], symbol: str = "$") -> str:
    """Rounded to whole units with thousands separators: $2,497."""
    return f"{symbol}{round_half_up(amount or 0):,}"
