"""
Unit tests for the pure metric derivations.

All inputs are plain row dicts; nothing here touches the database.
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from core.metrics.aggregator import (
    action_status,
    build_metric_summary,
    content_for_date,
    content_title,
    count_by_status,
    count_content_by_platform,
    count_content_by_status,
    format_currency,
    format_percent,
    hourly_performance,
    humanize_identifier,
    is_pending_action,
    license_stats,
    pending_action_count,
    round_half_up,
    safe_rate,
    seat_utilization,
    sub_org_utilization,
    sum_field,
    summarize_tasks,
    task_distribution,
    week_days,
)


def _tasks(**counts):
    rows = []
    for status, n in counts.items():
        rows.extend({"status": status} for _ in range(n))
    return rows


# ─── Primitives ───────────────────────────────────────────────────────


class TestPrimitives:

    def test_safe_rate(self):
        assert safe_rate(3, 4) == 75.0
        assert safe_rate(0, 0) == 0.0
        assert safe_rate(5, 0) == 0.0

    def test_sum_field_skips_missing_and_bad_values(self):
        rows = [{"amount": 10}, {"amount": None}, {}, {"amount": "2.5"}, {"amount": "n/a"}]
        assert sum_field(rows, "amount") == 12.5

    def test_sum_field_empty(self):
        assert sum_field([], "amount") == 0.0

    def test_count_by_status_zero_fills_requested_keys(self):
        rows = [{"status": "a"}, {"status": "a"}, {"status": "z"}]
        assert count_by_status(rows, ["a", "b"]) == {"a": 2, "b": 0}
        assert count_by_status(rows) == {"a": 2, "z": 1}


# ─── Agent dashboard ──────────────────────────────────────────────────


class TestTaskMetrics:

    def test_ten_task_scenario(self):
        """6 completed, 2 failed, 1 running, 1 pending."""
        metrics = summarize_tasks(_tasks(completed=6, failed=2, running=1, pending=1))
        assert metrics.total == 10
        assert format_percent(metrics.success_rate) == "60.0%"
        assert format_percent(metrics.error_rate) == "20.0%"

    def test_empty_tasks(self):
        metrics = summarize_tasks([])
        assert metrics.total == 0
        assert metrics.success_rate == 0.0
        assert metrics.error_rate == 0.0

    def test_unknown_status_counts_toward_total_only(self):
        metrics = summarize_tasks(_tasks(completed=1, cancelled=1))
        assert metrics.total == 2
        assert metrics.success_rate == 50.0

    def test_distribution_skips_empty_slices(self):
        metrics = summarize_tasks(_tasks(completed=3, failed=1))
        assert task_distribution(metrics) == [
            {"name": "Completed", "value": 3},
            {"name": "Failed", "value": 1},
        ]


class TestMetricSummary:

    def test_build_summary(self):
        summary = build_metric_summary(
            tasks=_tasks(completed=2),
            leads=[{"status": "qualified"}, {"status": "new"}, {"status": "qualified"},
                   {"status": "lost"}],
            revenue_events=[{"amount": 1000}, {"amount": 497.5}],
            pending_approvals=3,
        )
        assert summary.total_leads == 4
        assert summary.qualified_leads == 2
        assert summary.lead_qualification_rate == 50.0
        assert summary.total_revenue == 1497.5
        assert summary.pending_approvals == 3

    def test_empty_summary(self):
        summary = build_metric_summary([], [], [], 0)
        data = summary.as_dict()
        assert data["success_rate"] == 0.0
        assert data["lead_qualification_rate"] == 0.0
        assert data["total_revenue"] == 0.0


class TestHourlyPerformance:

    def test_buckets_by_hour(self):
        now = datetime(2026, 3, 10, 14, 30, tzinfo=timezone.utc)
        tasks = [
            {"created_at": "2026-03-10T14:05:00+00:00", "status": "completed"},
            {"created_at": "2026-03-10T14:20:00Z", "status": "failed"},
            {"created_at": "2026-03-10T12:59:00+00:00", "status": "completed"},
            {"created_at": "2026-03-08T12:00:00+00:00", "status": "completed"},
            {"created_at": None, "status": "completed"},
        ]
        series = hourly_performance(tasks, now=now)

        assert len(series) == 24
        assert series[-1] == {"time": "14:00", "tasks": 2, "success": 50.0}
        assert series[-3] == {"time": "12:00", "tasks": 1, "success": 100.0}
        assert sum(point["tasks"] for point in series) == 3

    def test_empty_hours_have_zero_success(self):
        now = datetime(2026, 3, 10, 0, 0, tzinfo=timezone.utc)
        series = hourly_performance([], now=now, hours=3)
        assert [p["time"] for p in series] == ["22:00", "23:00", "00:00"]
        assert all(p["success"] == 0.0 for p in series)


# ─── Activity feed ────────────────────────────────────────────────────


class TestActionStatus:

    def test_auto_executed_wins(self):
        action = {"was_auto_executed": True, "requires_approval": True}
        assert action_status(action) == "auto-executed"

    def test_rejected(self):
        assert action_status({"decision": "rejected", "requires_approval": True}) == "rejected"

    def test_pending(self):
        assert action_status({"requires_approval": True, "approved_at": None}) == "pending"

    def test_approved(self):
        action = {"requires_approval": True, "approved_at": "2026-01-01T00:00:00Z"}
        assert action_status(action) == "approved"

    def test_flagged(self):
        assert action_status({"requires_approval": False}) == "flagged"

    def test_pending_helpers(self):
        actions = [
            {"requires_approval": True},
            {"requires_approval": True, "approved_at": "2026-01-01T00:00:00Z"},
            {"requires_approval": True, "decision": "rejected"},
            {"was_auto_executed": True},
        ]
        assert is_pending_action(actions[0])
        assert pending_action_count(actions) == 1

    def test_humanize_identifier(self):
        assert humanize_identifier("price_floor_enforced") == "Price Floor Enforced"
        assert humanize_identifier(None) == "Untitled"


# ─── Content scheduler ────────────────────────────────────────────────


class TestContentMetrics:

    def test_status_counts_zero_filled(self):
        items = [{"status": "scheduled"}, {"status": "scheduled"}, {"status": "published"}]
        assert count_content_by_status(items) == {"draft": 0, "scheduled": 2, "published": 1}

    def test_platform_counts_case_insensitive(self):
        items = [{"platform": "TikTok"}, {"platform": "tiktok"}, {"platform": None}]
        assert count_content_by_platform(items, ["tiktok", "youtube"]) == {
            "tiktok": 2,
            "youtube": 0,
        }

    def test_content_for_date_respects_timezone(self):
        items = [
            {"id": "late", "scheduled_at": "2026-05-04T23:30:00+00:00"},
            {"id": "noon", "scheduled_at": "2026-05-04T12:00:00+00:00"},
            {"id": "none", "scheduled_at": None},
        ]
        utc_day = content_for_date(items, date(2026, 5, 4))
        assert [i["id"] for i in utc_day] == ["late", "noon"]

        berlin = ZoneInfo("Europe/Berlin")
        assert [i["id"] for i in content_for_date(items, date(2026, 5, 5), berlin)] == ["late"]

    def test_week_days_monday_start(self):
        days = week_days(date(2026, 5, 7))  # Thursday
        assert days[0] == date(2026, 5, 4)
        assert days[-1] == date(2026, 5, 10)
        assert len(days) == 7

    def test_week_days_sunday_start(self):
        days = week_days(date(2026, 5, 7), week_start=6)
        assert days[0] == date(2026, 5, 3)

    def test_content_title(self):
        assert content_title({"title": "Launch"}) == "Launch"
        assert content_title({"title": None}) == "Untitled"


# ─── Licensing ────────────────────────────────────────────────────────


class TestLicenseStats:

    def test_portfolio_totals(self):
        tenants = [
            {"monthly_fee": 499, "active_seats": 3, "active_sub_orgs": 1, "status": "active"},
            {"monthly_fee": 2497, "active_seats": 40, "active_sub_orgs": 20, "status": "active"},
            {"monthly_fee": 897, "active_seats": 0, "active_sub_orgs": 0, "status": "suspended"},
            {"monthly_fee": 499, "active_seats": 1, "active_sub_orgs": 0, "status": "trial"},
        ]
        stats = license_stats(tenants)
        assert stats.total_licensees == 4
        assert stats.total_seats == 44
        assert stats.total_sub_orgs == 21
        assert stats.monthly_recurring == 4392
        assert stats.avg_revenue_per_license == 1098
        assert stats.retention_rate == 75.0

    def test_empty_portfolio(self):
        stats = license_stats([])
        assert stats.total_licensees == 0
        assert stats.avg_revenue_per_license == 0
        assert stats.retention_rate == 0.0

    def test_average_rounds_half_up(self):
        stats = license_stats([{"monthly_fee": 498}, {"monthly_fee": 499}])
        assert stats.avg_revenue_per_license == 499

    def test_utilization(self):
        tenant = {"active_seats": 3, "seat_limit": 5, "active_sub_orgs": 0, "sub_org_limit": 0}
        assert seat_utilization(tenant) == 60.0
        assert sub_org_utilization(tenant) == 0.0


class TestFormatting:

    def test_format_currency(self):
        assert format_currency(2497) == "$2,497"
        assert format_currency(1234567.6) == "$1,234,568"
        assert format_currency(None) == "$0"

    def test_half_units_round_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(2.4) == 2
        assert format_currency(1096.5) == "$1,097"

    def test_format_percent(self):
        assert format_percent(33.333) == "33.3%"
