"""
Dashboard Service

Headline stats with previous-period comparison, daily usage and the recent
activity feed. `all_time` on the dashboard means "since 2000-01-01".
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set, Union

from dateutil.relativedelta import relativedelta

from ..errors import StoreError
from ..models.records import as_datetime, first_present, normalize_letter
from .date_ranges import (
    MONTH_ABBR,
    AllTimePolicy,
    DateRange,
    DateWindow,
    coerce_range,
    end_of_day,
    format_month_day,
    format_time_ago,
    now_local,
    previous_period,
    resolve_range,
    start_of_day,
    to_local,
)
from .disputes_service import last_updated_date
from .document_store import DocumentStore, FieldFilter
from .export_service import to_csv
from .metrics import calculate_delta, format_number, percentage
from .user_directory import USERS, UserDirectory

logger = logging.getLogger(__name__)

LETTERS = "letters"

# Tier strings announced in the activity feed (exact match)
ANNOUNCED_TIERS = ("Pro", "Advantage", "VIP")


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class MembersByTier:
    total: int = 0
    by_tier: Dict[str, int] = field(default_factory=dict)
    percentage: int = 0


@dataclass
class PreviousPeriodStats:
    total_users: int
    active_users: int
    members_by_tier: int
    open_disputes: int
    letters_generated: int


@dataclass
class DashboardStats:
    total_users: int
    active_users: int
    members_by_tier: MembersByTier
    open_disputes: int
    letters_generated: int
    previous_period_stats: Optional[PreviousPeriodStats] = None


@dataclass
class UsagePoint:
    label: str
    value: int
    date: datetime


@dataclass
class DailyUsage:
    points: List[UsagePoint]
    total: int
    percentage_change: float


@dataclass
class ActivityItem:
    id: str
    title: str
    time_ago: str
    color_class: str
    timestamp: datetime


@dataclass
class StatRow:
    id: str
    label: str
    value: str
    delta: float


def _range_filters(field_name: str, window: DateWindow) -> List[FieldFilter]:
    return [
        FieldFilter(field_name, ">=", window.start),
        FieldFilter(field_name, "<=", window.end),
    ]


def _handle(email_or_name: Optional[str], default: str) -> str:
    """'jane.doe@example.com' -> 'jane.doe'"""
    value = email_or_name or default
    return value.split("@")[0] or "user"


# =============================================================================
# SERVICE
# =============================================================================

class DashboardService:
    """Computes everything the dashboard page shows."""

    def __init__(self, store: DocumentStore, now: Optional[datetime] = None):
        self.store = store
        self.now = now

    def _window(self, date_range: Union[str, DateRange]) -> DateWindow:
        return resolve_range(date_range, all_time=AllTimePolicy.EPOCH_2000, now=self.now)

    # -------------------------------------------------------------------------
    # Headline counts
    # -------------------------------------------------------------------------

    def get_total_users(self, before: Optional[datetime] = None) -> int:
        """All users, or those created strictly before `before`."""
        if before is None:
            return len(self.store.scan(USERS))
        try:
            return len(self.store.query(USERS, [FieldFilter("createdAt", "<", before)]))
        except StoreError as e:
            logger.warning(f"Total users query failed, counting by scan: {e}")
        count = 0
        for doc in self.store.scan(USERS):
            created = as_datetime(doc.get("createdAt"))
            if created and created < before:
                count += 1
        return count

    def get_active_users(self, window: DateWindow) -> int:
        """
        Users whose last activity (updatedAt, else createdAt) is inside the
        window. Each user is counted once.
        """
        try:
            user_ids: Set[str] = set()
            for field_name in ("updatedAt", "createdAt"):
                try:
                    for doc in self.store.query(USERS, _range_filters(field_name, window)):
                        # createdAt only counts for users that were never updated
                        if field_name == "createdAt" and as_datetime(doc.get("updatedAt")):
                            continue
                        user_ids.add(doc.id)
                except StoreError as e:
                    logger.warning(f"Active users query on {field_name} failed: {e}")

            if not user_ids:
                for doc in self.store.scan(USERS):
                    last_active = as_datetime(doc.get("updatedAt")) or as_datetime(doc.get("createdAt"))
                    if window.contains(last_active):
                        user_ids.add(doc.id)
            return len(user_ids)
        except StoreError as e:
            logger.error(f"Error getting active users: {e}")
            return 0

    def get_members_by_tier(self) -> MembersByTier:
        """Raw tier counts (default 'free') and the share of non-free members."""
        try:
            docs = self.store.scan(USERS)
        except StoreError as e:
            logger.error(f"Error getting users by tier: {e}")
            return MembersByTier()

        by_tier: Dict[str, int] = {}
        members = 0
        for doc in docs:
            tier = first_present(doc.data, "membershipTier", "tier", "membership") or "free"
            tier = str(tier)
            by_tier[tier] = by_tier.get(tier, 0) + 1
            if tier != "free":
                members += 1
        total = len(docs)
        return MembersByTier(total=total, by_tier=by_tier, percentage=percentage(members, total))

    def get_open_disputes(self) -> int:
        """Dispute candidates with no status, 'open' or 'pending'."""
        try:
            users = UserDirectory(self.store, self.now).all()
        except StoreError as e:
            logger.error(f"Error getting open disputes: {e}")
            return 0
        return sum(1 for user in users for dispute in user.dispute_candidates if dispute.is_open)

    def get_letters_generated(self, window: DateWindow) -> int:
        """Letters created in the window, from the letters collection or user documents."""
        try:
            try:
                return len(self.store.query(LETTERS, _range_filters("createdAt", window)))
            except StoreError as e:
                logger.warning(f"Letters collection query failed, checking user documents: {e}")

            total = 0
            for user in UserDirectory(self.store, self.now).all():
                total += sum(1 for letter in user.letters if window.contains(letter.created_at))
            return total
        except StoreError as e:
            logger.error(f"Error getting letters generated: {e}")
            return 0

    def get_dashboard_stats(self, date_range: Union[str, DateRange]) -> DashboardStats:
        """
        Current values plus the previous-period values they are compared to.

        Membership share and open disputes reuse the current values as their
        previous value.
        """
        window = self._window(date_range)
        previous = previous_period(window)

        total_users = self.get_total_users()
        active_users = self.get_active_users(window)
        members_by_tier = self.get_members_by_tier()
        open_disputes = self.get_open_disputes()
        letters_generated = self.get_letters_generated(window)

        return DashboardStats(
            total_users=total_users,
            active_users=active_users,
            members_by_tier=members_by_tier,
            open_disputes=open_disputes,
            letters_generated=letters_generated,
            previous_period_stats=PreviousPeriodStats(
                total_users=self.get_total_users(before=window.start),
                active_users=self.get_active_users(previous),
                members_by_tier=members_by_tier.percentage,
                open_disputes=open_disputes,
                letters_generated=self.get_letters_generated(previous),
            ),
        )

    # -------------------------------------------------------------------------
    # Usage & engagement
    # -------------------------------------------------------------------------

    def get_daily_usage(self, date_range: Union[str, DateRange]) -> DailyUsage:
        """
        Unique active users per day (per month over the last 12 months for
        all_time), with the total and a first-half vs second-half change.
        """
        rng = coerce_range(date_range)
        try:
            docs = self.store.scan(USERS)
        except StoreError as e:
            logger.error(f"Error getting daily active users: {e}")
            return DailyUsage(points=[], total=0, percentage_change=0.0)

        activity = []
        for doc in docs:
            stamps = [ts for ts in (as_datetime(doc.get("updatedAt")), as_datetime(doc.get("createdAt"))) if ts]
            activity.append(stamps)

        buckets = []
        if rng == DateRange.ALL_TIME:
            today = now_local(self.now)
            for i in range(11, -1, -1):
                month = today.replace(day=1) - relativedelta(months=i)
                month_start = start_of_day(month)
                month_end = end_of_day(month + relativedelta(months=1) - relativedelta(days=1))
                buckets.append((MONTH_ABBR[month.month - 1], month_start, month_end))
        else:
            window = self._window(rng)
            day = window.start
            while day <= window.end:
                label = f"Day {len(buckets) + 1}" if rng == DateRange.LAST_7_DAYS else format_month_day(day)
                buckets.append((label, start_of_day(day), end_of_day(day)))
                day = start_of_day(day + relativedelta(days=1))

        points = []
        for label, bucket_start, bucket_end in buckets:
            value = sum(
                1 for stamps in activity
                if any(bucket_start <= to_local(ts) <= bucket_end for ts in stamps)
            )
            points.append(UsagePoint(label=label, value=value, date=bucket_start))

        total = sum(p.value for p in points)
        mid = len(points) // 2
        first_half = sum(p.value for p in points[:mid])
        second_half = sum(p.value for p in points[mid:])
        change = calculate_delta(second_half, first_half) if first_half > 0 else 0.0
        return DailyUsage(points=points, total=total, percentage_change=change)

    # -------------------------------------------------------------------------
    # Recent activity
    # -------------------------------------------------------------------------

    def get_recent_activities(self, date_range: Union[str, DateRange], limit: int = 10) -> List[ActivityItem]:
        """Signups, dispute events, letter batches and plan activations, newest first."""
        rng = coerce_range(date_range)
        window = self._window(rng)
        now = now_local(self.now)
        activities: List[ActivityItem] = []

        # New signups
        try:
            for doc in self.store.query(USERS, _range_filters("createdAt", window),
                                        order_by="createdAt", descending=True, limit=limit):
                created = as_datetime(doc.get("createdAt")) or now
                handle = _handle(doc.get("email") or doc.get("name"), "a user")
                activities.append(ActivityItem(
                    id=f"user-{doc.id}",
                    title=f"New user '{handle}' signed up.",
                    time_ago=format_time_ago(created, self.now),
                    color_class="bg-blue-500",
                    timestamp=created,
                ))
        except StoreError as e:
            logger.warning(f"Error fetching recent users: {e}")

        # Dispute events
        try:
            dispute_window = None if rng == DateRange.ALL_TIME else window
            for user in UserDirectory(self.store, self.now).all():
                for dispute in user.dispute_candidates:
                    status = dispute.status or "open"
                    dispute_id = str(dispute.id or f"{user.id}-{dispute.index}")
                    last_updated = last_updated_date(dispute, user, self.now)
                    if dispute_window and last_updated and not dispute_window.contains(last_updated):
                        continue
                    display_date = last_updated or now
                    is_open = status in ("open", "pending")
                    is_resolved = status in ("resolved", "closed")

                    title = f"Dispute #{dispute_id[-3:]} " + ("was resolved" if is_resolved else "was opened")
                    if dispute.last_payment_date:
                        title += " (Payment done)"
                    elif dispute.last_activity_date:
                        title += " (Activity recorded)"

                    activities.append(ActivityItem(
                        id=f"dispute-{'open' if is_open else 'resolved'}-{dispute_id}",
                        title=title,
                        time_ago=format_time_ago(display_date, self.now),
                        color_class="bg-red-500" if is_open else "bg-emerald-500",
                        timestamp=display_date,
                    ))
        except StoreError as e:
            logger.warning(f"Error fetching disputes: {e}")

        # Letters, grouped per day
        try:
            per_day: Dict[datetime, int] = {}
            for doc in self.store.query(LETTERS, _range_filters("createdAt", window),
                                        order_by="createdAt", descending=True, limit=5):
                letter = normalize_letter(doc.id, doc.data)
                day = start_of_day(to_local(letter.created_at or now))
                per_day[day] = per_day.get(day, 0) + 1
            for day, count in per_day.items():
                activities.append(ActivityItem(
                    id=f"letters-{day.date().isoformat()}",
                    title=f"{count} new letter{'s' if count > 1 else ''} generated automatically.",
                    time_ago=format_time_ago(day, self.now),
                    color_class="bg-purple-500",
                    timestamp=day,
                ))
        except StoreError as e:
            logger.warning(f"Letters collection query failed: {e}")

        # Membership activations
        try:
            for doc in self.store.query(USERS, _range_filters("updatedAt", window),
                                        order_by="updatedAt", descending=True, limit=limit):
                tier = doc.get("membershipTier") or doc.get("tier")
                if tier not in ANNOUNCED_TIERS:
                    continue
                updated = as_datetime(doc.get("updatedAt")) or now
                handle = _handle(doc.get("email") or doc.get("name"), "user")
                activities.append(ActivityItem(
                    id=f"membership-{doc.id}",
                    title=f"{tier} membership activated for '{handle}'.",
                    time_ago=format_time_ago(updated, self.now),
                    color_class="bg-amber-400",
                    timestamp=updated,
                ))
        except StoreError as e:
            logger.warning(f"Membership query failed: {e}")

        activities.sort(key=lambda a: a.timestamp, reverse=True)
        return activities[:limit]


# =============================================================================
# "GENERATE REPORT" CSV
# =============================================================================

def build_stats_report(stats: DashboardStats) -> List[StatRow]:
    """The five headline stats with their deltas vs the previous period."""
    prev = stats.previous_period_stats

    def delta(current, previous_value):
        if prev is None:
            return 0.0
        return calculate_delta(current, previous_value or 0)

    return [
        StatRow("total_users", "Total Users", format_number(stats.total_users),
                delta(stats.total_users, prev and prev.total_users)),
        StatRow("active_users", "Active Users", format_number(stats.active_users),
                delta(stats.active_users, prev and prev.active_users)),
        StatRow("members_by_tier", "Members by Tier", f"{stats.members_by_tier.percentage}%",
                delta(stats.members_by_tier.percentage, prev and prev.members_by_tier)),
        StatRow("open_disputes", "Open Disputes", format_number(stats.open_disputes),
                delta(stats.open_disputes, prev and prev.open_disputes)),
        StatRow("letters_generated", "Letters Generated", format_number(stats.letters_generated),
                delta(stats.letters_generated, prev and prev.letters_generated)),
    ]


def stats_report_csv(stats: DashboardStats, date_range: str) -> str:
    """id,label,value,delta,range - label always quoted, delta to one decimal."""
    rows = [
        [row.id, row.label, row.value, f"{row.delta:.1f}", date_range]
        for row in build_stats_report(stats)
    ]
    return to_csv(["id", "label", "value", "delta", "range"], rows, quoted={1})
