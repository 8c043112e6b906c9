"""
Test Suite: HTTP API

1. Every console route requires an admin token
2. Sign-in errors, sign-out revocation, password change
3. Representative reads, CSV downloads and writes per router
4. Error translation (404 / 422 / 400)
"""
import pytest

from conftest import days_ago

from pathway_admin import config
from pathway_admin.routers.deps import get_mailer
from pathway_admin.services.identity_service import IdentityService


class RecordingMailer:
    def __init__(self):
        self.sent = []

    def send_password_reset(self, email, token):
        self.sent.append((email, token))


@pytest.fixture
def seeded(store, add_user):
    add_user("u1", name="Dana", membershipTier="pro", updatedAt=days_ago(1),
             creditReportAnalysis={"disputeCandidates": [{"status": "open", "category": "Late Payment"}]})
    add_user("u2", name="Dev", createdAt=days_ago(2))
    store.set("letters", "l1", {"userId": "u1", "createdAt": days_ago(1), "sentAt": days_ago(1)})
    store.set("supportThreads", "u1", {"subject": "Billing", "lastMessage": "hi", "lastMessageAt": days_ago(1)})
    return store


class TestAccessControl:

    @pytest.mark.parametrize("path", [
        "/dashboard/stats", "/analytics/membership-distribution", "/reports/disputes",
        "/users", "/content", "/support/tickets", "/auth/me",
    ])
    def test_token_required(self, client, path):
        assert client.get(path).status_code in (401, 403)

    def test_garbage_token(self, client):
        response = client.get("/dashboard/stats", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_non_admin_cannot_sign_in(self, client, db):
        IdentityService(db).create_account("member@example.com", "member123")
        response = client.post("/auth/login", json={"email": "member@example.com", "password": "member123"})
        assert response.status_code == 403

    def test_public_endpoints(self, client):
        assert client.get("/health").json()["status"] == "healthy"
        assert client.get("/").json()["name"] == "Pathway Admin"


class TestAuth:

    def test_me(self, client, auth_headers, admin_credentials):
        body = client.get("/auth/me", headers=auth_headers).json()
        assert body["email"] == admin_credentials["email"]
        assert body["role"] == "superadmin"

    def test_wrong_password(self, client, admin_token, admin_credentials):
        response = client.post("/auth/login", json={"email": admin_credentials["email"], "password": "nope1234"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Incorrect password. Please try again."

    def test_unknown_account(self, client):
        response = client.post("/auth/login", json={"email": "ghost@example.com", "password": "whatever1"})
        assert response.status_code == 401
        assert response.json()["detail"] == "No account found with this email address."

    def test_logout_revokes_token(self, client, auth_headers):
        assert client.post("/auth/logout", headers=auth_headers).status_code == 200
        response = client.get("/auth/me", headers=auth_headers)
        assert response.status_code == 401
        assert response.json()["detail"] == "Session has ended, please sign in again"

    def test_change_password_mismatch(self, client, auth_headers, admin_credentials):
        response = client.post("/auth/change-password", headers=auth_headers, json={
            "current_password": admin_credentials["password"],
            "new_password": "newpass123",
            "confirm_password": "different123",
        })
        assert response.status_code == 422
        assert response.json()["detail"] == "New passwords do not match."

    def test_change_password_wrong_current(self, client, auth_headers):
        response = client.post("/auth/change-password", headers=auth_headers, json={
            "current_password": "wrongpass1",
            "new_password": "newpass123",
            "confirm_password": "newpass123",
        })
        assert response.status_code == 400
        assert response.json()["detail"] == "Current password is incorrect."

    def test_password_reset_unknown_email(self, client):
        response = client.post("/auth/password-reset", json={"email": "ghost@example.com"})
        assert response.status_code == 400

    def test_password_reset_link_is_delivered_and_usable(self, app, client, admin_token, admin_credentials):
        mailer = RecordingMailer()
        app.dependency_overrides[get_mailer] = lambda: mailer

        response = client.post("/auth/password-reset", json={"email": "Admin@Example.com"})
        assert response.status_code == 200
        [(email, token)] = mailer.sent
        assert email == admin_credentials["email"]

        confirm = client.post("/auth/password-reset/confirm", json={"token": token, "new_password": "freshpass123"})
        assert confirm.status_code == 200
        login = client.post("/auth/login", json={"email": email, "password": "freshpass123"})
        assert login.status_code == 200

    def test_password_reset_without_smtp(self, client, admin_token, admin_credentials, monkeypatch):
        monkeypatch.setattr(config, "SMTP_HOST", None)
        response = client.post("/auth/password-reset", json={"email": admin_credentials["email"]})
        assert response.status_code == 400
        assert response.json()["detail"] == "Password reset email is not available. Please contact support."


class TestDashboardApi:

    def test_stats(self, client, auth_headers, seeded):
        body = client.get("/dashboard/stats?range=last_7_days", headers=auth_headers).json()
        assert body["total_users"] == 2
        assert body["open_disputes"] == 1
        assert body["letters_generated"] == 1
        assert body["previous_period_stats"]["total_users"] == 1

    def test_invalid_range_rejected(self, client, auth_headers):
        assert client.get("/dashboard/stats?range=fortnight", headers=auth_headers).status_code == 422

    def test_report_download(self, client, auth_headers, seeded):
        response = client.get("/dashboard/stats/export?range=last_30_days", headers=auth_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == \
            'attachment; filename="dashboard-report-last_30_days-2026-03-18T15-00-00-000Z.csv"'
        assert response.text.splitlines()[0] == "id,label,value,delta,range"

    def test_activities_limit(self, client, auth_headers, seeded):
        response = client.get("/dashboard/activities?limit=2", headers=auth_headers)
        assert len(response.json()) == 2


class TestAnalyticsApi:

    def test_daily_active_users(self, client, auth_headers, seeded):
        points = client.get("/analytics/daily-active-users", headers=auth_headers).json()
        assert points[-1]["label"] == "3/18"
        assert sum(p["value"] for p in points) == 2

    def test_export_csv(self, client, auth_headers, seeded):
        response = client.post("/analytics/export", headers=auth_headers, json={"range": "last_7_days"})
        assert response.status_code == 200
        assert "analytics-export-last_7_days" in response.headers["content-disposition"]

    def test_export_custom_range(self, client, auth_headers, seeded):
        response = client.post("/analytics/export", headers=auth_headers, json={
            "range": "custom", "start": "2026-03-17", "end": "2026-03-17",
        })
        assert response.status_code == 200
        assert "users,dau_total,Daily Active Users (Total),1" in response.text.splitlines()

    def test_export_needs_a_dataset(self, client, auth_headers):
        response = client.post("/analytics/export", headers=auth_headers, json={
            "include_users": False, "include_disputes": False, "include_content": False,
        })
        assert response.status_code == 422

    def test_export_pdf(self, client, auth_headers):
        response = client.post("/analytics/export", headers=auth_headers, json={"format": "pdf"})
        assert response.json() == {"message": "PDF export is not available yet"}


class TestReportsApi:

    def test_disputes(self, client, auth_headers, seeded):
        rows = client.get("/reports/disputes", headers=auth_headers).json()
        assert rows == [{
            "id": "u1-0", "user": "Dana", "case_id": "D-u1-0", "type": "Late Payment",
            "status": "open", "last_updated": "2026-03-18",
        }]

    def test_mailing_logs(self, client, auth_headers, seeded):
        rows = client.get("/reports/mailing-logs", headers=auth_headers).json()
        assert [(r["id"], r["status"], r["user"]) for r in rows] == [("l1", "sent", "Dana")]

    def test_user_journeys(self, client, auth_headers, seeded):
        rows = client.get("/reports/user-journeys", headers=auth_headers).json()
        assert {r["stage"] for r in rows} == {"Onboarding & profile complete"}

    def test_support_issues_empty(self, client, auth_headers, seeded):
        assert client.get("/reports/support-issues", headers=auth_headers).json() == []


class TestUsersApi:

    def test_list(self, client, auth_headers, seeded):
        body = client.get("/users?page_size=1", headers=auth_headers).json()
        assert body["total"] == 2
        assert body["has_more"] is True
        assert body["users"][0]["id"] == "u2"

    def test_status_filter_alias(self, client, auth_headers, seeded):
        body = client.get("/users?status=active", headers=auth_headers).json()
        assert body["total"] == 2

    def test_details_and_404(self, client, auth_headers, seeded):
        assert client.get("/users/u1", headers=auth_headers).json()["tier"] == "Pro"
        assert client.get("/users/nobody", headers=auth_headers).status_code == 404

    def test_create(self, client, auth_headers, store):
        response = client.post("/users", headers=auth_headers, json={
            "name": "New Person", "email": "new@example.com", "password": "secret123", "tier": "Advantage",
        })
        assert response.status_code == 201
        assert store.get("users", response.json()["id"]).get("membershipTier") == "advantage"

    def test_create_rejects_unknown_tier(self, client, auth_headers):
        response = client.post("/users", headers=auth_headers, json={
            "name": "New Person", "email": "new@example.com", "password": "secret123", "tier": "Gold",
        })
        assert response.status_code == 422

    def test_create_weak_password(self, client, auth_headers):
        response = client.post("/users", headers=auth_headers, json={
            "name": "New Person", "email": "new@example.com", "password": "short",
        })
        assert response.status_code == 422
        assert response.json()["detail"] == "Password must be at least 8 characters long"

    def test_update(self, client, auth_headers, seeded):
        response = client.patch("/users/u2", headers=auth_headers, json={"tier": "Pro"})
        assert response.status_code == 200
        assert seeded.get("users", "u2").get("membershipTier") == "pro"
        assert seeded.get("users", "u2").get("name") == "Dev"

    def test_update_missing_user(self, client, auth_headers):
        assert client.patch("/users/nobody", headers=auth_headers, json={"name": "x"}).status_code == 404


class TestContentApi:

    def test_article_lifecycle(self, client, auth_headers):
        created = client.post("/content/articles", headers=auth_headers, json={"title": "Credit 101"})
        assert created.status_code == 201
        article_id = created.json()["id"]

        patch = client.patch(f"/content/articles/{article_id}", headers=auth_headers, json={"visibility": "hidden"})
        assert patch.status_code == 200
        items = client.get("/content/articles", headers=auth_headers).json()
        assert (items[0]["visibility"], items[0]["origin"]) == ("hidden", "persisted")

        assert client.delete(f"/content/articles/{article_id}", headers=auth_headers).status_code == 200
        assert client.get("/content/articles", headers=auth_headers).json() == []

    def test_drafts_listed_with_origin(self, client, auth_headers):
        client.post("/content/drafts", headers=auth_headers, json={"kind": "page", "title": "Terms"})
        items = client.get("/content", headers=auth_headers).json()
        assert [(i["title"], i["origin"], i["type_label"]) for i in items] == [("Terms", "draft", "Static Page")]

    def test_draft_kind_must_be_draftable(self, client, auth_headers):
        response = client.post("/content/drafts", headers=auth_headers, json={"kind": "article", "title": "x"})
        assert response.status_code == 422

    def test_update_missing_article(self, client, auth_headers):
        response = client.patch("/content/articles/nope", headers=auth_headers, json={"title": "x"})
        assert response.status_code == 404


class TestSupportApi:

    def test_tickets_and_reply(self, client, auth_headers, seeded):
        tickets = client.get("/support/tickets", headers=auth_headers).json()
        assert [t["id"] for t in tickets] == ["u1"]

        reply = client.post("/support/tickets/u1/reply", headers=auth_headers, json={"text": "On it"})
        assert reply.status_code == 201
        messages = client.get("/support/tickets/u1/messages", headers=auth_headers).json()
        assert [(m["sender"], m["text"]) for m in messages] == [("admin", "On it")]

    def test_update_metadata(self, client, auth_headers, seeded):
        response = client.patch("/support/tickets/u1", headers=auth_headers, json={"status": "resolved"})
        assert response.status_code == 200
        assert seeded.get("supportThreads", "u1").get("status") == "resolved"

    def test_invalid_status(self, client, auth_headers, seeded):
        response = client.patch("/support/tickets/u1", headers=auth_headers, json={"status": "closed"})
        assert response.status_code == 422

    def test_create_unknown_email(self, client, auth_headers, seeded):
        response = client.post("/support/tickets", headers=auth_headers,
                               json={"user": "ghost@example.com", "subject": "Hello"})
        assert response.status_code == 400
        assert response.json()["detail"] == "User not found with email: ghost@example.com"

    def test_export(self, client, auth_headers, seeded):
        response = client.get("/support/tickets/export", headers=auth_headers)
        assert response.status_code == 200
        assert 'filename="support-tickets-all_time-' in response.headers["content-disposition"]
        assert response.text.splitlines()[1].startswith('u1,"Billing"')
