"""HTTP surface for complaints, comments, notifications and the dashboard."""
import pytest

from extensions import db
from models import Complaint

LEAK = {
    "title": "Leak near park",
    "details": "Water has been leaking near the park gate for three days.",
    "category": "WATER",
    "priority": "HIGH",
}


@pytest.fixture
def assigned(make, people):
    return make.complaint(people["reporter"], assignee=people["staff"], department_id=people["department_id"])


class TestComplaintEndpoints:
    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json() == {"status": "ok"}

    def test_anonymous_caller_gets_json_401(self, client):
        response = client.get("/api/complaints")
        assert response.status_code == 401
        assert response.get_json() == {"error": "Unauthorized"}

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    def test_citizen_submits_and_lists_own_complaints(self, client, make, people):
        make.complaint(people["other"])
        make.login(client, people["reporter"])

        created = client.post("/api/complaints", json=LEAK)
        assert created.status_code == 201
        body = created.get_json()
        assert body["status"] == "PENDING"
        assert body["resolvedAt"] is None
        assert body["user"]["id"] == people["reporter"].id

        listing = client.get("/api/complaints").get_json()
        assert [c["id"] for c in listing["complaints"]] == [body["id"]]
        assert listing["pagination"] == {"page": 1, "perPage": 20, "total": 1, "hasMore": False}

    def test_invalid_intake_reports_fields(self, client, people, make):
        make.login(client, people["reporter"])
        response = client.post("/api/complaints", json={"title": "Hi", "category": "NOISE"})
        assert response.status_code == 400
        assert {"title", "details", "category"} <= set(response.get_json()["fields"])

    def test_citizen_patch_is_forbidden(self, client, make, people, assigned):
        make.login(client, people["reporter"])
        response = client.patch(f"/api/complaints/{assigned}", json={"status": "RESOLVED"})
        assert response.status_code == 403

    def test_staff_patch_on_missing_complaint_is_404(self, client, make, people):
        make.login(client, people["staff"])
        response = client.patch("/api/complaints/nope", json={"status": "RESOLVED"})
        assert response.status_code == 404

    def test_staff_resolves_assigned_complaint(self, client, make, people, assigned):
        make.login(client, people["staff"])
        response = client.patch(f"/api/complaints/{assigned}", json={"status": "resolved"})

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "RESOLVED"
        assert body["resolvedAt"] is not None
        assert body["assignedTo"]["name"] == "Sam Staff"

        activity = client.get(f"/api/complaints/{assigned}/activity").get_json()
        assert [a["action"] for a in activity] == ["STATUS_CHANGED"]

        resolved = client.get("/api/complaints/resolved").get_json()
        assert [c["id"] for c in resolved] == [assigned]

    def test_other_citizen_cannot_view(self, client, make, people, assigned):
        make.login(client, people["other"])
        assert client.get(f"/api/complaints/{assigned}").status_code == 403
        assert client.get("/api/complaints/missing").status_code == 404

    def test_admin_soft_delete_hides_complaint(self, client, app, make, people, assigned):
        make.login(client, people["admin"])
        assert client.delete(f"/api/complaints/{assigned}").status_code == 200
        assert client.get(f"/api/complaints/{assigned}").status_code == 404
        with app.app_context():
            assert db.session.get(Complaint, assigned).deleted_at is not None


class TestCommentEndpoints:
    def test_post_and_page_comments(self, client, make, people, assigned):
        make.login(client, people["reporter"])
        created = client.post(f"/api/complaints/{assigned}/comments", json={"content": "Any news?"})
        assert created.status_code == 201
        assert created.get_json()["author"] == {
            "id": people["reporter"].id,
            "name": "Uma Reporter",
            "role": "USER",
        }

        page = client.get(f"/api/complaints/{assigned}/comments?limit=1").get_json()
        assert [c["content"] for c in page["comments"]] == ["Any news?"]
        assert page["pagination"] == {"total": 1, "limit": 1, "offset": 0, "hasMore": False}

    def test_missing_content_is_400(self, client, make, people, assigned):
        make.login(client, people["reporter"])
        response = client.post(f"/api/complaints/{assigned}/comments", json={})
        assert response.status_code == 400

    def test_stranger_comment_is_403(self, client, make, people, assigned):
        make.login(client, people["other"])
        response = client.post(f"/api/complaints/{assigned}/comments", json={"content": "Hi"})
        assert response.status_code == 403


class TestNotificationEndpoints:
    def test_inbox_flow(self, client, make, people, assigned):
        make.login(client, people["staff"])
        client.patch(f"/api/complaints/{assigned}", json={"status": "IN_PROGRESS"})

        reporter_client = client.application.test_client()
        make.login(reporter_client, people["reporter"])
        inbox = reporter_client.get("/api/notifications").get_json()
        assert [n["type"] for n in inbox] == ["STATUS_UPDATED"]
        assert inbox[0]["complaint"]["id"] == assigned
        assert reporter_client.get("/api/notifications/unread-count").get_json() == {"count": 1}

        notification_id = inbox[0]["id"]
        assert client.patch(f"/api/notifications/{notification_id}/read").status_code == 403

        read = reporter_client.patch(f"/api/notifications/{notification_id}/read")
        assert read.get_json()["isRead"] is True
        assert reporter_client.patch("/api/notifications/read-all").get_json() == {"success": True, "updated": 0}
        assert reporter_client.delete("/api/notifications/delete-all").get_json() == {"success": True, "deleted": 1}


class TestDashboard:
    def test_counts_cover_visible_complaints(self, client, make, people, assigned):
        make.complaint(people["other"], category="ROADS")
        make.login(client, people["staff"])

        stats = client.get("/api/dashboard/stats").get_json()
        assert stats["total"] == 1
        assert stats["byStatus"] == {"PENDING": 1, "IN_PROGRESS": 0, "RESOLVED": 0}
        assert stats["byCategory"]["WATER"] == 1
        assert stats["byCategory"]["ROADS"] == 0
        assert stats["assignedToMe"] == 1
        assert stats["averageResolutionHours"] is None
