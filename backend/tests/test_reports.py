"""
Test Suite: Reports

1. Disputes & letters
2. Mailing logs
3. User journeys (stage ladder, monitoring rule)
4. User issues & support
"""
from datetime import timedelta

import pytest

from conftest import NOW, days_ago

from pathway_admin.models.records import normalize_user
from pathway_admin.services.date_ranges import DateRange
from pathway_admin.services.disputes_service import DisputesService, DisputeStatus
from pathway_admin.services.document_store import DocumentSnapshot
from pathway_admin.services.mailing_service import MailingService
from pathway_admin.services.support_service import SupportService, advisor_name
from pathway_admin.services.user_journey_service import (
    JourneyStage,
    UserJourneyService,
    journey_stage,
)


# =============================================================================
# DISPUTES
# =============================================================================

class TestDisputes:

    @pytest.fixture
    def service(self, store, add_user):
        add_user("d1", name="Dana", creditReportAnalysis={"disputeCandidates": [
            {"status": "resolved", "category": "Late Payment", "updatedAt": days_ago(2)},
            {"reason": "Account not mine, reported in error", "lastActivityDate": "01/05/2026"},
            {},
        ]})
        add_user("d2", name="Dev", letters=[{"createdAt": days_ago(3)}],
                 creditReportAnalysis={"disputeCandidates": [{"status": "open"}]})
        return DisputesService(store, now=NOW)

    def test_all_rows_for_all_time(self, service):
        rows = {row.id: row for row in service.get_disputes(DateRange.ALL_TIME)}
        assert set(rows) == {"d1-0", "d1-1", "d1-2", "d2-0"}

    def test_status_derivation(self, service):
        rows = {row.id: row for row in service.get_disputes()}
        assert rows["d1-0"].status == DisputeStatus.RESOLVED
        assert rows["d1-1"].status == DisputeStatus.OPEN
        # any letter on the user marks unresolved disputes as mailed
        assert rows["d2-0"].status == DisputeStatus.MAILED

    def test_fields(self, service):
        rows = {row.id: row for row in service.get_disputes()}
        assert rows["d1-0"].case_id == "D-d1-0"
        assert rows["d1-0"].type == "Late Payment"
        assert rows["d1-0"].last_updated == "2026-03-16"
        assert rows["d1-0"].user == "Dana"
        assert rows["d1-1"].type.endswith("...")
        assert len(rows["d1-1"].type) == 33
        assert rows["d1-1"].last_updated == "2026-01-05"
        assert rows["d1-2"].type == "Dispute"

    def test_undated_disputes_always_included(self, service):
        rows = {row.id: row for row in service.get_disputes(DateRange.LAST_7_DAYS)}
        assert set(rows) == {"d1-0", "d1-2", "d2-0"}
        assert rows["d1-2"].last_updated == "2026-03-18"

    def test_empty_letters_list_is_not_mailed(self, store, add_user):
        add_user("d3", letters=[], generatedLetters=[{"createdAt": days_ago(1)}],
                 creditReportAnalysis={"disputeCandidates": [{"status": "open"}]})
        rows = DisputesService(store, now=NOW).get_disputes()
        assert [(r.id, r.status) for r in rows] == [("d3-0", DisputeStatus.OPEN)]

    def test_newest_first(self, service):
        dates = [row.last_updated for row in service.get_disputes()]
        assert dates == sorted(dates, reverse=True)


# =============================================================================
# MAILING
# =============================================================================

class TestMailingLogs:

    @pytest.fixture
    def service(self, store, add_user):
        add_user("d1", name="Dana")
        add_user("d2", name="Dev", letters=[{"createdAt": days_ago(3), "status": "sent"}])
        store.set("letters", "m1", {"userId": "d1", "createdAt": days_ago(1), "sentAt": days_ago(1),
                                    "channel": "email"})
        store.set("letters", "m2", {"userId": "ghost", "createdAt": days_ago(2), "error": "Address invalid"})
        store.set("letters", "m3", {"userId": "d1", "createdAt": days_ago(20), "type": "email_notice"})
        return MailingService(store, now=NOW)

    def test_all_sources_newest_first(self, service):
        logs = service.get_mailing_logs(DateRange.ALL_TIME)
        assert [log.id for log in logs] == ["m1", "m2", "d2-0", "m3"]

    def test_row_fields(self, service):
        logs = {log.id: log for log in service.get_mailing_logs()}
        assert logs["m1"].user == "Dana"
        assert logs["m1"].channel == "Email"
        assert logs["m1"].status == "sent"
        assert logs["m1"].item == "Letter #m1"
        assert logs["m1"].created_at == "2026-03-17 15:00"
        assert logs["m2"].user == "Unknown User"
        assert logs["m2"].status == "failed"
        assert logs["m2"].error == "Address invalid"
        assert logs["m2"].channel == "Mail"
        assert logs["m3"].item == "Email notice"
        assert logs["m3"].status == "queued"
        assert logs["d2-0"].user == "Dev"
        assert logs["d2-0"].status == "sent"

    def test_range_filter(self, service):
        logs = service.get_mailing_logs(DateRange.LAST_7_DAYS)
        assert [log.id for log in logs] == ["m1", "m2", "d2-0"]

    def test_letters_collection_failure_keeps_embedded(self, service, store, monkeypatch):
        from pathway_admin.errors import StoreError

        def failing_query(*args, **kwargs):
            raise StoreError("unavailable")

        monkeypatch.setattr(store, "query", failing_query)
        logs = service.get_mailing_logs()
        assert [log.id for log in logs] == ["d2-0"]


# =============================================================================
# JOURNEYS
# =============================================================================

def _user(**data):
    return normalize_user(DocumentSnapshot("users", "j", data), NOW)


COMPLETE = {
    "documentsCompleted": True,
    "creditReportUrl": "https://files/report.pdf",
    "membershipTier": "pro",
    "creditReportAnalysis": {"disputeCandidates": [{"status": "open"}]},
}


class TestJourneyStage:

    def test_ladder(self):
        assert journey_stage(_user(), NOW) == JourneyStage.ONBOARDING
        assert journey_stage(_user(documentsCompleted=True), NOW) == JourneyStage.CREDIT_PULL
        assert journey_stage(
            _user(documentsCompleted=True, creditReportUrl="x"), NOW
        ) == JourneyStage.PLAN_ASSIGNED
        assert journey_stage(
            _user(documentsCompleted=True, creditReportUrl="x", tier="core"), NOW
        ) == JourneyStage.DISPUTES_CREATED

    def test_letters_mean_mailing(self):
        user = _user(letters=[{"status": "sent"}], updatedAt=days_ago(90), **COMPLETE)
        assert journey_stage(user, NOW) == JourneyStage.MAILING

    def test_idle_without_letters_is_monitoring(self):
        assert journey_stage(_user(updatedAt=days_ago(45), **COMPLETE), NOW) == JourneyStage.MONITORING

    def test_recently_active_without_letters_is_mailing(self):
        assert journey_stage(_user(updatedAt=days_ago(5), **COMPLETE), NOW) == JourneyStage.MAILING

    def test_incomplete_documents_always_onboarding(self):
        data = dict(COMPLETE, documentsCompleted=False)
        user = _user(letters=[{"status": "sent"}], **data)
        assert journey_stage(user, NOW) == JourneyStage.ONBOARDING

    def test_string_false_documents_is_onboarding(self):
        user = _user(letters=[{"status": "sent"}], **dict(COMPLETE, documentsCompleted="false"))
        assert journey_stage(user, NOW) == JourneyStage.ONBOARDING

    def test_empty_letters_ignore_generated_letters(self):
        user = _user(letters=[], generatedLetters=[{"status": "sent"}], updatedAt=days_ago(5), **COMPLETE)
        assert journey_stage(user, NOW) == JourneyStage.MAILING
        assert user.has_letters is False


class TestUserJourneys:

    @pytest.fixture
    def service(self, store, add_user):
        add_user("j1", updatedAt=days_ago(1))
        add_user("j2", name="", email="", documentsCompleted=True, updatedAt=days_ago(4))
        add_user("j3", membershipTier="advantage", **{k: v for k, v in COMPLETE.items() if k != "membershipTier"})
        return UserJourneyService(store, now=NOW)

    def test_all_time_includes_everyone(self, service):
        journeys = service.get_user_journeys(DateRange.ALL_TIME)
        assert [j.id for j in journeys] == ["j1", "j2", "j3"]

    def test_fields(self, service):
        journeys = {j.id: j for j in service.get_user_journeys()}
        assert journeys["j1"].stage == JourneyStage.ONBOARDING
        assert journeys["j1"].progress == 12
        assert journeys["j1"].last_updated == "2026-03-17"
        assert journeys["j2"].name == "Unknown User"
        assert journeys["j2"].email == "No email"
        assert journeys["j2"].progress == 25
        # created 60 days ago, never updated, no letters
        assert journeys["j3"].stage == JourneyStage.MONITORING
        assert journeys["j3"].progress == 95
        assert journeys["j3"].plan == "Advantage"

    def test_range_filters_on_last_activity(self, service):
        journeys = service.get_user_journeys(DateRange.LAST_7_DAYS)
        assert [j.id for j in journeys] == ["j1", "j2"]


# =============================================================================
# SUPPORT ISSUES
# =============================================================================

class TestSupportIssues:

    @pytest.fixture
    def service(self, store, add_user):
        add_user("d1", name="Dana")
        add_user("d2", name="Dev")
        store.set("chats", "c1", {"userId": "d1", "lastMessageAt": NOW - timedelta(hours=2),
                                  "unreadCount": 2, "advisorId": "advisor_1"})
        store.set("chats/c1/messages", "x", {"text": "Need help with my dispute letter",
                                             "sentAt": NOW - timedelta(hours=2)})
        store.set("chats", "c2", {"userId": "ghost", "lastMessageAt": NOW - timedelta(days=1, hours=3),
                                  "unreadCount": 0, "lastMessage": "Thanks!"})
        store.set("chats", "c3", {"userId": "d2", "lastMessageAt": days_ago(10),
                                  "advisorId": "advisor_senior_team"})
        store.set("scheduled_calls", "k1", {"userId": "d2", "scheduledAt": days_ago(2),
                                            "status": "approved", "topic": "Score review"})
        store.set("scheduled_calls", "k2", {"createdAt": days_ago(3), "status": "completed"})
        return SupportService(store, now=NOW)

    def test_order_and_ids(self, service):
        issues = service.get_support_issues(DateRange.ALL_TIME)
        assert [i.id for i in issues] == ["chat-c1", "chat-c2", "call-k1", "call-k2", "chat-c3"]

    def test_chat_rows(self, service):
        issues = {i.id: i for i in service.get_support_issues()}
        c1, c2, c3 = issues["chat-c1"], issues["chat-c2"], issues["chat-c3"]
        assert (c1.user, c1.status, c1.advisor, c1.channel) == ("Dana", "open", "Sam R.", "Chat")
        assert c1.subject == "Need help with my dispute letter"
        assert c1.last_contact == "2h ago"
        assert (c2.user, c2.status, c2.subject, c2.advisor) == ("Unknown User", "in_progress", "Thanks!", "Alex G.")
        assert c2.last_contact == "Yesterday"
        assert (c3.status, c3.subject) == ("resolved", "Support request")
        assert c3.advisor == "Advisor senior team"

    def test_call_rows(self, service):
        issues = {i.id: i for i in service.get_support_issues()}
        assert (issues["call-k1"].user, issues["call-k1"].status) == ("Dev", "in_progress")
        assert issues["call-k1"].subject == "Score review"
        assert issues["call-k1"].channel == "Phone"
        assert (issues["call-k2"].user, issues["call-k2"].status) == ("Unknown User", "resolved")
        assert issues["call-k2"].subject == "Scheduled call"

    def test_range_filter_keeps_undated_chats(self, service, store):
        store.set("chats", "c4", {"userId": "d1"})
        ids = [i.id for i in service.get_support_issues(DateRange.LAST_7_DAYS)]
        assert "chat-c3" not in ids
        assert "chat-c4" in ids

    def test_advisor_names(self):
        assert advisor_name(None) == "Alex G."
        assert advisor_name("advisor_2") == "Taylor P."
        assert advisor_name("advisor_jo") == "Advisor jo"
