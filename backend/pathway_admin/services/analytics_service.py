"""
Analytics Service

Daily/weekly active users, membership distribution, system engagement, top
articles, and the analytics CSV export.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple, Union

from ..errors import StoreError
from ..models.records import UserRecord, as_datetime, first_present
from .date_ranges import (
    AllTimePolicy,
    DateRange,
    DateWindow,
    coerce_range,
    end_of_day,
    parse_date_string,
    parse_iso_datetime,
    previous_period,
    resolve_range,
    start_of_day,
    to_local,
)
from .document_store import DocumentStore, FieldFilter, collection_path
from .export_service import export_filename, iso_utc, to_csv
from .metrics import calculate_delta, percentage, round_delta, round_half_up
from .user_directory import USERS, UserDirectory

logger = logging.getLogger(__name__)

ARTICLES = "articles"
LETTERS = "letters"
FAVORITES = "favoriteArticles"

FAVORITES_BATCH_SIZE = 10
TOP_ARTICLES = 5

# Weeks shown per range
WEEKS_PER_RANGE = {
    DateRange.LAST_7_DAYS: 1,
    DateRange.LAST_30_DAYS: 4,
    DateRange.THIS_MONTH: 4,
    DateRange.THIS_QUARTER: 12,
}

TIER_DISPLAY = {
    "pro": ("Pro", "#D4A317"),
    "advantage": ("Advantage", "#A0761A"),
    "core": ("Core", "#60460F"),
}
UNKNOWN_TIER_COLOR = "#9CA3AF"


class ExportFormat:
    CSV = "csv"
    PDF = "pdf"


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class ActiveUsersPoint:
    label: str
    value: int
    date: datetime


@dataclass
class DistributionPoint:
    label: str
    value: int
    color: str


@dataclass
class SystemEngagement:
    imports: int = 0
    letters: int = 0
    disputes: int = 0
    total: int = 0
    change: float = 0.0


@dataclass
class TopArticle:
    title: str
    views: int


@dataclass
class ExportFile:
    filename: str
    content: str
    media_type: str = "text/csv"


# =============================================================================
# SERVICE
# =============================================================================

class AnalyticsService:
    """Computes the analytics page cards."""

    def __init__(self, store: DocumentStore, now: Optional[datetime] = None):
        self.store = store
        self.now = now

    def _window(self, date_range, start=None, end=None) -> DateWindow:
        return resolve_range(date_range, start, end, all_time=AllTimePolicy.EPOCH_2000, now=self.now)

    def _users(self) -> List[UserRecord]:
        return UserDirectory(self.store, self.now).all()

    # -------------------------------------------------------------------------
    # Active users
    # -------------------------------------------------------------------------

    def get_daily_active_users(self, date_range: Union[str, DateRange], start=None, end=None) -> List[ActiveUsersPoint]:
        """Users counted once, on the day of their last activity. Labels 'M/D'."""
        try:
            window = self._window(date_range, start, end)
            counts: Dict[date, int] = {}
            for user in self._users():
                if user.last_activity:
                    day = to_local(user.last_activity).date()
                    counts[day] = counts.get(day, 0) + 1

            points = []
            day = window.start.date()
            while start_of_day(day) <= window.end:
                points.append(ActiveUsersPoint(
                    label=f"{day.month}/{day.day}",
                    value=counts.get(day, 0),
                    date=start_of_day(day),
                ))
                day += timedelta(days=1)
            return points
        except StoreError as e:
            logger.error(f"Error getting daily active users: {e}")
            return []

    def get_weekly_active_users(self, date_range: Union[str, DateRange], start=None, end=None) -> List[ActiveUsersPoint]:
        """Monday-aligned weeks ending with the week of the range end, W-1 oldest."""
        try:
            rng = coerce_range(date_range)
            window = self._window(rng, start, end)
            weeks = WEEKS_PER_RANGE.get(rng, 4)

            end_day = window.end.date()
            current_monday = end_day - timedelta(days=end_day.weekday())
            week_starts = [current_monday - timedelta(weeks=i) for i in range(weeks - 1, -1, -1)]

            counts = [0] * weeks
            for user in self._users():
                if not user.last_activity:
                    continue
                activity = to_local(user.last_activity)
                for i, monday in enumerate(week_starts):
                    if start_of_day(monday) <= activity <= end_of_day(monday + timedelta(days=6)):
                        counts[i] += 1

            return [
                ActiveUsersPoint(label=f"W-{i + 1}", value=counts[i], date=start_of_day(monday))
                for i, monday in enumerate(week_starts)
            ]
        except StoreError as e:
            logger.error(f"Error getting weekly active users: {e}")
            return []

    # -------------------------------------------------------------------------
    # Membership
    # -------------------------------------------------------------------------

    def get_membership_distribution(self) -> List[DistributionPoint]:
        """Share per stored tier string (default 'core'), largest first."""
        try:
            docs = self.store.scan(USERS)
        except StoreError as e:
            logger.error(f"Error getting membership distribution: {e}")
            return []

        by_tier: Dict[str, int] = {}
        for doc in docs:
            tier = str(first_present(doc.data, "membershipTier", "tier", "membership") or "core")
            by_tier[tier] = by_tier.get(tier, 0) + 1

        total = len(docs) or 1
        points = []
        for tier, count in by_tier.items():
            label, color = TIER_DISPLAY.get(tier.lower().strip(), (tier, UNKNOWN_TIER_COLOR))
            share = percentage(count, total)
            points.append(DistributionPoint(label=f"{label} ({share}%)", value=share, color=color))
        points.sort(key=lambda p: p.value, reverse=True)
        return points

    # -------------------------------------------------------------------------
    # System engagement
    # -------------------------------------------------------------------------

    def _letters_generated(self, window: DateWindow, users: List[UserRecord]) -> int:
        try:
            return len(self.store.query(LETTERS, [
                FieldFilter("createdAt", ">=", window.start),
                FieldFilter("createdAt", "<=", window.end),
            ]))
        except StoreError as e:
            logger.warning(f"Letters collection query failed, checking user documents: {e}")
        return sum(1 for user in users for letter in user.letters if window.contains(letter.created_at))

    def _engagement_counts(self, window: DateWindow, users: List[UserRecord]) -> Tuple[int, int, int]:
        imports = sum(
            1 for user in users
            if user.credit_report_url and window.contains(user.updated_at)
        )
        letters = self._letters_generated(window, users)

        disputes = 0
        for user in users:
            analysis_updated = None
            if user.credit_report_analysis_updated_at:
                analysis_updated = (parse_iso_datetime(user.credit_report_analysis_updated_at)
                                    or parse_date_string(user.credit_report_analysis_updated_at, self.now))
            for dispute in user.dispute_candidates:
                candidates = list(dispute.timestamps) + [analysis_updated]
                for raw in (dispute.last_payment_date, dispute.last_activity_date):
                    if raw:
                        candidates.append(parse_date_string(raw, self.now))
                if any(window.contains(ts) for ts in candidates if ts):
                    disputes += 1
        return imports, letters, disputes

    def get_system_engagement(self, date_range: Union[str, DateRange], start=None, end=None) -> SystemEngagement:
        """Imports, letters and disputes touched in range, with change vs the previous period."""
        try:
            window = self._window(date_range, start, end)
            previous = previous_period(window)
            users = self._users()

            imports, letters, disputes = self._engagement_counts(window, users)
            prev_imports, prev_letters, prev_disputes = self._engagement_counts(previous, users)

            total = imports + letters + disputes
            prev_total = prev_imports + prev_letters + prev_disputes
            return SystemEngagement(
                imports=imports,
                letters=letters,
                disputes=disputes,
                total=total,
                change=round_delta(calculate_delta(total, prev_total)),
            )
        except StoreError as e:
            logger.error(f"Error getting system engagement: {e}")
            return SystemEngagement()

    # -------------------------------------------------------------------------
    # Content
    # -------------------------------------------------------------------------

    def _favorite_counts(self, window: DateWindow) -> Dict[str, Dict]:
        user_ids = [doc.id for doc in self.store.scan(USERS)]
        counts: Dict[str, Dict] = {}
        for i in range(0, len(user_ids), FAVORITES_BATCH_SIZE):
            batch = user_ids[i:i + FAVORITES_BATCH_SIZE]
            paths = [collection_path(USERS, uid, FAVORITES) for uid in batch]
            try:
                favorites = self.store.scan_many(paths)
            except StoreError as e:
                logger.warning(f"Skipping favourites batch {i // FAVORITES_BATCH_SIZE}: {e}")
                continue
            for docs in favorites.values():
                for doc in docs:
                    created = as_datetime(doc.get("createdAt"))
                    if not window.contains(created):
                        continue
                    article_id = doc.get("articleId") or doc.id
                    title = doc.get("title") or "Untitled Article"
                    entry = counts.setdefault(article_id, {"title": title, "count": 0})
                    entry["title"] = entry["title"] or title
                    entry["count"] += 1
        return counts

    def get_top_articles(self, date_range: Union[str, DateRange], start=None, end=None) -> List[TopArticle]:
        """
        Most-favourited articles in range. When nobody favourited anything,
        the most recent articles created in range, with zero views.
        """
        try:
            window = self._window(date_range, start, end)
            counts = self._favorite_counts(window)
            if counts:
                ranked = sorted(counts.values(), key=lambda e: e["count"], reverse=True)
                return [TopArticle(title=e["title"], views=e["count"]) for e in ranked[:TOP_ARTICLES]]

            docs = self.store.query(
                ARTICLES,
                [FieldFilter("createdAt", ">=", window.start), FieldFilter("createdAt", "<=", window.end)],
                order_by="createdAt",
                descending=True,
                limit=TOP_ARTICLES,
            )
            return [TopArticle(title=doc.get("title") or "Untitled Article", views=0) for doc in docs]
        except StoreError as e:
            logger.error(f"Error getting top articles: {e}")
            return []

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def build_analytics_export(
        self,
        date_range: Union[str, DateRange],
        include_users: bool = True,
        include_disputes: bool = True,
        include_content: bool = True,
        export_format: str = ExportFormat.CSV,
        email: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> Optional[ExportFile]:
        """dataset,id,label,value rows plus range / exported_at metadata rows."""
        rng = coerce_range(date_range)
        if export_format != ExportFormat.CSV:
            logger.info("PDF export requested (not implemented)")
            return None

        rows: List[List] = []
        if include_users:
            dau = self.get_daily_active_users(rng, start, end)
            wau = self.get_weekly_active_users(rng, start, end)
            distribution = self.get_membership_distribution()

            dau_total = sum(p.value for p in dau)
            dau_avg = round_half_up(dau_total / len(dau)) if dau else 0
            rows.append(["users", "dau_total", "Daily Active Users (Total)", dau_total])
            rows.append(["users", "dau_avg", "Daily Active Users (Average)", dau_avg])

            wau_total = sum(p.value for p in wau)
            wau_avg = round_half_up(wau_total / len(wau)) if wau else 0
            rows.append(["users", "wau_total", "Weekly Active Users (Total)", wau_total])
            rows.append(["users", "wau_avg", "Weekly Active Users (Average)", wau_avg])

            for idx, tier in enumerate(distribution):
                rows.append(["membership", f"tier_{idx + 1}", tier.label, tier.value])

        if include_disputes:
            engagement = self.get_system_engagement(rng, start, end)
            rows.append(["engagement", "imports", "Credit Report Imports", engagement.imports])
            rows.append(["engagement", "letters", "Letters Generated", engagement.letters])
            rows.append(["engagement", "disputes", "Disputes Created", engagement.disputes])
            rows.append(["engagement", "total", "Total Actions", engagement.total])

        if include_content:
            for idx, article in enumerate(self.get_top_articles(rng, start, end)):
                rows.append(["content", f"article_{idx + 1}", article.title, article.views])

        rows.append(["", "", "range", rng.value])
        rows.append(["", "", "exported_at", iso_utc(self.now)])

        if email:
            logger.info(f"Would send export to {email} (not implemented)")

        return ExportFile(
            filename=export_filename("analytics-export", rng.value, self.now),
            content=to_csv(["dataset", "id", "label", "value"], rows),
        )
