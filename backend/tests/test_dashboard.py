"""
Test Suite: Dashboard

1. Headline stats and their previous-period values
2. Daily usage buckets
3. Recent activity feed
4. "Generate report" CSV
"""
from datetime import date

import pytest

from conftest import NOW, days_ago

from pathway_admin.services.dashboard_service import (
    DashboardService,
    build_stats_report,
    stats_report_csv,
)
from pathway_admin.services.date_ranges import DateRange


@pytest.fixture
def populated(store, add_user):
    """
    u1: old account, active two days ago, Pro, three dispute candidates
    u2: signed up three days ago, no tier
    u3: signed up ten days ago (previous period), Advantage
    """
    add_user("u1", membershipTier="Pro", updatedAt=days_ago(2), creditReportAnalysis={
        "disputeCandidates": [{"status": "open"}, {"status": "resolved"}, {}],
    })
    add_user("u2", createdAt=days_ago(3))
    add_user("u3", createdAt=days_ago(10), membershipTier="Advantage")
    store.set("letters", "l1", {"userId": "u1", "createdAt": days_ago(1)})
    store.set("letters", "l2", {"userId": "u1", "createdAt": days_ago(9)})
    return store


@pytest.fixture
def service(populated):
    return DashboardService(populated, now=NOW)


class TestStats:

    def test_current_values(self, service):
        stats = service.get_dashboard_stats(DateRange.LAST_7_DAYS)
        assert stats.total_users == 3
        assert stats.active_users == 2
        assert stats.open_disputes == 2
        assert stats.letters_generated == 1

    def test_members_by_tier(self, service):
        members = service.get_dashboard_stats("last_7_days").members_by_tier
        assert members.total == 3
        assert members.by_tier == {"Pro": 1, "free": 1, "Advantage": 1}
        assert members.percentage == 67

    def test_previous_period(self, service):
        prev = service.get_dashboard_stats(DateRange.LAST_7_DAYS).previous_period_stats
        assert prev.total_users == 2
        assert prev.active_users == 1
        assert prev.letters_generated == 1
        # Snapshot metrics compare against themselves
        assert prev.members_by_tier == 67
        assert prev.open_disputes == 2

    def test_active_by_last_activity_only(self, store, add_user):
        # created in the previous window but updated in the current one
        add_user("u", createdAt=days_ago(10), updatedAt=days_ago(2))
        stats = DashboardService(store, now=NOW).get_dashboard_stats(DateRange.LAST_7_DAYS)
        assert stats.total_users == 1
        assert stats.active_users == 1
        assert stats.previous_period_stats.active_users == 0

    def test_previous_active_when_updated_there(self, store, add_user):
        add_user("u", createdAt=days_ago(12), updatedAt=days_ago(9))
        stats = DashboardService(store, now=NOW).get_dashboard_stats(DateRange.LAST_7_DAYS)
        assert stats.active_users == 0
        assert stats.previous_period_stats.active_users == 1

    def test_all_time_counts_everything(self, service):
        stats = service.get_dashboard_stats(DateRange.ALL_TIME)
        assert stats.active_users == 3
        assert stats.letters_generated == 2

    def test_empty_store(self, store):
        stats = DashboardService(store, now=NOW).get_dashboard_stats(DateRange.LAST_30_DAYS)
        assert stats.total_users == 0
        assert stats.members_by_tier.percentage == 0

    def test_letters_fall_back_to_user_documents(self, store, add_user, monkeypatch):
        from pathway_admin.errors import StoreError

        add_user("u1", letters=[{"createdAt": days_ago(1)}, {"createdAt": days_ago(40)}])
        original_query = store.query

        def failing_query(collection, *args, **kwargs):
            if collection == "letters":
                raise StoreError("letters unavailable")
            return original_query(collection, *args, **kwargs)

        monkeypatch.setattr(store, "query", failing_query)
        service = DashboardService(store, now=NOW)
        assert service.get_dashboard_stats(DateRange.LAST_7_DAYS).letters_generated == 1


class TestDailyUsage:

    def test_last_7_days_buckets(self, service):
        usage = service.get_daily_usage(DateRange.LAST_7_DAYS)
        assert [p.label for p in usage.points][:2] == ["Day 1", "Day 2"]
        assert usage.points[0].date.date() == date(2026, 3, 11)
        assert usage.points[-1].date.date() == date(2026, 3, 18)
        values = {p.date.date(): p.value for p in usage.points}
        assert values[date(2026, 3, 15)] == 1  # u2 signup
        assert values[date(2026, 3, 16)] == 1  # u1 activity
        assert usage.total == 2

    def test_last_30_days_labels_are_dates(self, service):
        usage = service.get_daily_usage(DateRange.LAST_30_DAYS)
        assert usage.points[0].label == "Feb 16"

    def test_all_time_is_monthly(self, service):
        usage = service.get_daily_usage(DateRange.ALL_TIME)
        assert len(usage.points) == 12
        assert usage.points[-1].label == "Mar"
        assert usage.points[0].label == "Apr"

    def test_no_first_half_activity_means_no_change(self, service):
        assert service.get_daily_usage(DateRange.LAST_7_DAYS).percentage_change == 0.0


class TestRecentActivities:

    def test_feed_contents(self, service):
        items = service.get_recent_activities(DateRange.LAST_7_DAYS)
        ids = {item.id for item in items}
        assert "user-u2" in ids
        assert "membership-u1" in ids
        assert "letters-2026-03-17" in ids
        assert "dispute-open-u1-0" in ids
        assert "dispute-resolved-u1-1" in ids

    def test_titles(self, service):
        items = {item.id: item for item in service.get_recent_activities(DateRange.LAST_7_DAYS)}
        assert items["user-u2"].title == "New user 'u2' signed up."
        assert items["membership-u1"].title == "Pro membership activated for 'u1'."
        assert items["letters-2026-03-17"].title == "1 new letter generated automatically."
        assert items["dispute-resolved-u1-1"].title == "Dispute #1-1 was resolved"

    def test_newest_first_and_limited(self, service):
        items = service.get_recent_activities(DateRange.LAST_7_DAYS, limit=3)
        assert len(items) == 3
        stamps = [item.timestamp for item in items]
        assert stamps == sorted(stamps, reverse=True)


class TestStatsReport:

    def test_rows_and_deltas(self, service):
        rows = build_stats_report(service.get_dashboard_stats(DateRange.LAST_7_DAYS))
        by_id = {row.id: row for row in rows}
        assert [row.id for row in rows] == [
            "total_users", "active_users", "members_by_tier", "open_disputes", "letters_generated",
        ]
        assert by_id["total_users"].delta == 50.0
        assert by_id["active_users"].delta == 100.0
        assert by_id["members_by_tier"].value == "67%"
        assert by_id["open_disputes"].delta == 0.0

    def test_csv(self, service):
        text = stats_report_csv(service.get_dashboard_stats(DateRange.LAST_7_DAYS), "last_7_days")
        lines = text.splitlines()
        assert lines[0] == "id,label,value,delta,range"
        assert lines[1] == 'total_users,"Total Users",3,50.0,last_7_days'
        assert lines[3] == 'members_by_tier,"Members by Tier",67%,0.0,last_7_days'
