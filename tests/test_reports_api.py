"""Tests for the report endpoints: CRUD, access control and lifecycle."""
from uuid import uuid4

import pytest

from ireporter.infrastructure import models

REPORTS = "/api/reports"


def report_payload(**overrides):
    payload = {
        "type": "red-flag",
        "title": "Broken streetlight",
        "comment": "Streetlight on Allen Avenue has been out for weeks",
        "location": "6.6018,3.3515",
        "images": ["uploads/img-1.jpg", "uploads/img-2.jpg"],
        "videos": ["uploads/vid-1.mp4"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create(client):
    """Create a report as the given user; returns the response body."""
    def _create(headers, **overrides):
        response = client.post(f"{REPORTS}/", json=report_payload(**overrides), headers=headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _create


class TestCreateReport:

    def test_create_defaults_to_draft(self, client, alice, create):
        user, headers = alice
        report = create(headers)
        assert report["status"] == "draft"
        assert report["created_by"] == user["id"]
        assert report["created_on"] == report["updated_on"]

    def test_media_round_trip(self, client, alice, create):
        _, headers = alice
        images = ["z.png", "a.png", "m.png"]
        videos = ["2.mp4", "1.mp4"]
        created = create(headers, images=images, videos=videos)

        fetched = client.get(f"{REPORTS}/{created['id']}", headers=headers).json()
        assert fetched["images"] == images
        assert fetched["videos"] == videos

    def test_create_submitted(self, client, alice, create):
        _, headers = alice
        assert create(headers, status="submitted")["status"] == "submitted"

    def test_cannot_create_resolved(self, client, alice):
        _, headers = alice
        response = client.post(f"{REPORTS}/", json=report_payload(status="resolved"), headers=headers)
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationFailed"

    def test_client_owner_ignored(self, client, alice, bob, create):
        alice_user, alice_headers = alice
        bob_user, _ = bob
        report = create(alice_headers, created_by=bob_user["id"])
        assert report["created_by"] == alice_user["id"]

    def test_missing_title(self, client, alice):
        _, headers = alice
        payload = report_payload()
        del payload["title"]
        response = client.post(f"{REPORTS}/", json=payload, headers=headers)
        assert response.status_code == 422

    @pytest.mark.parametrize("field", ["title", "comment"])
    def test_blank_text_rejected(self, client, alice, field):
        _, headers = alice
        response = client.post(f"{REPORTS}/", json=report_payload(**{field: "   "}), headers=headers)
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationFailed"
        assert client.get(f"{REPORTS}/", headers=headers).json() == []

    def test_text_is_trimmed(self, client, alice, create):
        _, headers = alice
        report = create(headers, title="  Broken streetlight  ")
        assert report["title"] == "Broken streetlight"

    def test_unknown_type(self, client, alice):
        _, headers = alice
        response = client.post(f"{REPORTS}/", json=report_payload(type="complaint"), headers=headers)
        assert response.status_code == 422

    def test_type_alias_normalized(self, client, alice, create):
        _, headers = alice
        assert create(headers, type="Red Flag")["type"] == "red-flag"

    def test_free_text_location(self, client, alice, create):
        _, headers = alice
        assert create(headers, location=" 12 Marina Road, Lagos ")["location"] == "12 Marina Road, Lagos"

    def test_out_of_range_coordinates(self, client, alice):
        _, headers = alice
        response = client.post(f"{REPORTS}/", json=report_payload(location="95.0,3.0"), headers=headers)
        assert response.status_code == 422


class TestReadAccess:

    def test_non_owner_forbidden(self, client, alice, bob, create):
        _, alice_headers = alice
        _, bob_headers = bob
        report = create(alice_headers)

        response = client.get(f"{REPORTS}/{report['id']}", headers=bob_headers)
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "Forbidden"
        assert report["title"] not in str(body)

    def test_admin_reads_any(self, client, alice, admin, create):
        _, alice_headers = alice
        _, admin_headers = admin
        report = create(alice_headers)
        assert client.get(f"{REPORTS}/{report['id']}", headers=admin_headers).status_code == 200

    def test_missing_report(self, client, alice):
        _, headers = alice
        response = client.get(f"{REPORTS}/{uuid4()}", headers=headers)
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    def test_list_scoped_to_owner(self, client, alice, bob, admin, create):
        _, alice_headers = alice
        _, bob_headers = bob
        _, admin_headers = admin
        mine = create(alice_headers)
        theirs = create(bob_headers)

        alice_ids = [r["id"] for r in client.get(f"{REPORTS}/", headers=alice_headers).json()]
        assert alice_ids == [mine["id"]]

        admin_ids = {r["id"] for r in client.get(f"{REPORTS}/", headers=admin_headers).json()}
        assert admin_ids == {mine["id"], theirs["id"]}

    def test_list_filters(self, client, alice, create):
        _, headers = alice
        flag = create(headers, title="Ghost workers on payroll")
        create(headers, title="Flooded road", type="intervention", status="submitted")

        by_type = client.get(f"{REPORTS}/", params={"type": "red-flag"}, headers=headers).json()
        assert [r["id"] for r in by_type] == [flag["id"]]

        by_status = client.get(f"{REPORTS}/", params={"status": "draft"}, headers=headers).json()
        assert [r["id"] for r in by_status] == [flag["id"]]

        by_search = client.get(f"{REPORTS}/", params={"search": "payroll"}, headers=headers).json()
        assert [r["id"] for r in by_search] == [flag["id"]]

    def test_pagination_reports_total(self, client, alice, create):
        _, headers = alice
        for i in range(3):
            create(headers, title=f"Report {i}")

        response = client.get(f"{REPORTS}/", params={"limit": 2}, headers=headers)
        assert len(response.json()) == 2
        assert response.headers["x-total-count"] == "3"

        last_page = client.get(f"{REPORTS}/", params={"limit": 2, "offset": 2}, headers=headers)
        assert len(last_page.json()) == 1
        assert last_page.headers["x-total-count"] == "3"

    def test_total_respects_owner_scope(self, client, alice, bob, create):
        alice_user, alice_headers = alice
        _, bob_headers = bob
        create(alice_headers)
        create(bob_headers)
        create(bob_headers)

        assert client.get(f"{REPORTS}/", headers=alice_headers).headers["x-total-count"] == "1"
        own = client.get(f"{REPORTS}/user/{alice_user['id']}", headers=alice_headers)
        assert own.headers["x-total-count"] == "1"

    def test_search_is_literal(self, client, alice, create):
        _, headers = alice
        percent = create(headers, title="Only 50% of funds released")
        create(headers, title="Budget 5000 missing")
        create(headers, title="Road_works stalled")
        create(headers, title="Fund withdrawal")

        by_percent = client.get(f"{REPORTS}/", params={"search": "50%"}, headers=headers).json()
        assert [r["id"] for r in by_percent] == [percent["id"]]

        by_underscore = client.get(f"{REPORTS}/", params={"search": "d_w"}, headers=headers).json()
        assert [r["title"] for r in by_underscore] == ["Road_works stalled"]

    def test_invalid_status_filter(self, client, alice):
        _, headers = alice
        response = client.get(f"{REPORTS}/", params={"status": "closed"}, headers=headers)
        assert response.status_code == 422

    def test_user_reports(self, client, alice, bob, admin, create):
        alice_user, alice_headers = alice
        _, bob_headers = bob
        _, admin_headers = admin
        report = create(alice_headers)
        create(bob_headers)

        own = client.get(f"{REPORTS}/user/{alice_user['id']}", headers=alice_headers)
        assert [r["id"] for r in own.json()] == [report["id"]]

        assert client.get(f"{REPORTS}/user/{alice_user['id']}", headers=bob_headers).status_code == 403

        as_admin = client.get(f"{REPORTS}/user/{alice_user['id']}", headers=admin_headers)
        assert [r["id"] for r in as_admin.json()] == [report["id"]]


class TestUpdateReport:

    def test_owner_edits_draft(self, client, alice, create):
        user, headers = alice
        report = create(headers)
        response = client.patch(
            f"{REPORTS}/{report['id']}",
            json={"title": "Two broken streetlights", "images": ["new.jpg"]},
            headers=headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Two broken streetlights"
        assert data["images"] == ["new.jpg"]
        assert data["videos"] == report["videos"]
        assert data["comment"] == report["comment"]
        assert data["last_modified_by"] == user["id"]
        assert data["created_on"] == report["created_on"]

    def test_put_is_alias_for_patch(self, client, alice, create):
        _, headers = alice
        report = create(headers)
        response = client.put(f"{REPORTS}/{report['id']}", json={"comment": "Updated"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["comment"] == "Updated"

    @pytest.mark.parametrize("field,value", [
        ("created_by", "00000000-0000-0000-0000-000000000000"),
        ("id", "00000000-0000-0000-0000-000000000000"),
        ("created_on", "2020-01-01T00:00:00"),
    ])
    def test_protected_fields_rejected(self, client, alice, create, field, value):
        _, headers = alice
        report = create(headers)
        response = client.patch(f"{REPORTS}/{report['id']}", json={field: value}, headers=headers)
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationFailed"

        fetched = client.get(f"{REPORTS}/{report['id']}", headers=headers).json()
        assert fetched == report

    def test_blank_comment_rejected(self, client, alice, create):
        _, headers = alice
        report = create(headers)
        response = client.patch(f"{REPORTS}/{report['id']}", json={"comment": "  "}, headers=headers)
        assert response.status_code == 422
        assert client.get(f"{REPORTS}/{report['id']}", headers=headers).json()["comment"] == report["comment"]

    def test_null_title_rejected(self, client, alice, create):
        _, headers = alice
        report = create(headers)
        response = client.patch(f"{REPORTS}/{report['id']}", json={"title": None}, headers=headers)
        assert response.status_code == 422

    def test_non_owner_forbidden(self, client, alice, bob, create):
        _, alice_headers = alice
        _, bob_headers = bob
        report = create(alice_headers)
        response = client.patch(f"{REPORTS}/{report['id']}", json={"title": "Hijacked"}, headers=bob_headers)
        assert response.status_code == 403
        assert client.get(f"{REPORTS}/{report['id']}", headers=alice_headers).json()["title"] == report["title"]

    def test_owner_submits_draft(self, client, alice, create):
        _, headers = alice
        report = create(headers)
        response = client.patch(f"{REPORTS}/{report['id']}", json={"status": "submitted"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == "submitted"

        history = client.get(f"{REPORTS}/{report['id']}/history", headers=headers).json()
        assert [(h["old_status"], h["new_status"]) for h in history] == [("draft", "submitted")]

    def test_owner_cannot_edit_after_submission(self, client, alice, create):
        _, headers = alice
        report = create(headers, status="submitted")
        response = client.patch(f"{REPORTS}/{report['id']}", json={"title": "Late edit"}, headers=headers)
        assert response.status_code == 403

    def test_owner_cannot_skip_to_resolved(self, client, alice, create):
        _, headers = alice
        report = create(headers)
        response = client.patch(f"{REPORTS}/{report['id']}", json={"status": "resolved"}, headers=headers)
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransition"
        assert client.get(f"{REPORTS}/{report['id']}", headers=headers).json()["status"] == "draft"

    def test_admin_submits_own_draft(self, client, admin, create):
        _, headers = admin
        report = create(headers)
        response = client.patch(f"{REPORTS}/{report['id']}", json={"status": "submitted"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == "submitted"

        response = client.patch(
            f"{REPORTS}/{report['id']}/status",
            json={"status": "under-investigation"},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "under-investigation"

    def test_admin_submits_own_draft_via_status_endpoint(self, client, admin, create):
        _, headers = admin
        report = create(headers)
        response = client.patch(f"{REPORTS}/{report['id']}/status", json={"status": "submitted"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == "submitted"

    def test_admin_cannot_submit_users_draft(self, client, alice, admin, create):
        _, alice_headers = alice
        _, admin_headers = admin
        report = create(alice_headers)
        response = client.patch(f"{REPORTS}/{report['id']}", json={"status": "submitted"}, headers=admin_headers)
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransition"
        assert client.get(f"{REPORTS}/{report['id']}", headers=alice_headers).json()["status"] == "draft"

    def test_admin_edits_submitted_report(self, client, alice, admin, create):
        _, alice_headers = alice
        admin_user, admin_headers = admin
        report = create(alice_headers, status="submitted")
        response = client.patch(
            f"{REPORTS}/{report['id']}",
            json={"comment": "Clarified by moderator"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["last_modified_by"] == admin_user["id"]
        assert response.json()["status"] == "submitted"

    def test_missing_report(self, client, alice):
        _, headers = alice
        response = client.patch(f"{REPORTS}/{uuid4()}", json={"title": "x"}, headers=headers)
        assert response.status_code == 404


class TestChangeStatus:

    def test_user_cannot_change_status(self, client, alice, create):
        _, headers = alice
        report = create(headers, status="submitted")
        response = client.patch(
            f"{REPORTS}/{report['id']}/status",
            json={"status": "resolved"},
            headers=headers,
        )
        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden"

    def test_legacy_status_spelling(self, client, alice, admin, create):
        _, alice_headers = alice
        _, admin_headers = admin
        report = create(alice_headers, status="submitted")
        response = client.patch(
            f"{REPORTS}/{report['id']}/status",
            json={"status": "under investigation"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "under-investigation"

    @pytest.mark.parametrize("terminal", ["resolved", "rejected"])
    def test_terminal_states_are_final(self, client, alice, admin, create, terminal):
        _, alice_headers = alice
        _, admin_headers = admin
        report = create(alice_headers, status="submitted")
        url = f"{REPORTS}/{report['id']}/status"
        assert client.patch(url, json={"status": terminal}, headers=admin_headers).status_code == 200

        for target in ["draft", "submitted", "under-investigation", "resolved", "rejected"]:
            response = client.patch(url, json={"status": target}, headers=admin_headers)
            assert response.status_code == 409
            assert response.json()["error"] == "InvalidTransition"

        fetched = client.get(f"{REPORTS}/{report['id']}", headers=admin_headers).json()
        assert fetched["status"] == terminal
        history = client.get(f"{REPORTS}/{report['id']}/history", headers=admin_headers).json()
        assert len(history) == 1

    def test_history_records_notes(self, client, alice, admin, create):
        _, alice_headers = alice
        admin_user, admin_headers = admin
        report = create(alice_headers, status="submitted")
        client.patch(
            f"{REPORTS}/{report['id']}/status",
            json={"status": "rejected", "notes": "Duplicate of an earlier report"},
            headers=admin_headers,
        )

        history = client.get(f"{REPORTS}/{report['id']}/history", headers=alice_headers).json()
        assert len(history) == 1
        entry = history[0]
        assert entry["sequence"] == 1
        assert entry["actor_id"] == admin_user["id"]
        assert entry["old_status"] == "submitted"
        assert entry["new_status"] == "rejected"
        assert entry["notes"] == "Duplicate of an earlier report"

    def test_history_hidden_from_non_owner(self, client, alice, bob, create):
        _, alice_headers = alice
        _, bob_headers = bob
        report = create(alice_headers)
        response = client.get(f"{REPORTS}/{report['id']}/history", headers=bob_headers)
        assert response.status_code == 403

    def test_unknown_status(self, client, alice, admin, create):
        _, alice_headers = alice
        _, admin_headers = admin
        report = create(alice_headers, status="submitted")
        response = client.patch(
            f"{REPORTS}/{report['id']}/status",
            json={"status": "archived"},
            headers=admin_headers,
        )
        assert response.status_code == 422


class TestDeleteReport:

    def test_owner_deletes_draft(self, client, alice, create):
        _, headers = alice
        report = create(headers)
        response = client.delete(f"{REPORTS}/{report['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json() == {"success": True, "report_id": report["id"]}
        assert client.get(f"{REPORTS}/{report['id']}", headers=headers).status_code == 404

    def test_owner_cannot_delete_submitted(self, client, alice, create):
        _, headers = alice
        report = create(headers, status="submitted")
        assert client.delete(f"{REPORTS}/{report['id']}", headers=headers).status_code == 403

    def test_non_owner_forbidden(self, client, alice, bob, create):
        _, alice_headers = alice
        _, bob_headers = bob
        report = create(alice_headers)
        assert client.delete(f"{REPORTS}/{report['id']}", headers=bob_headers).status_code == 403
        assert client.get(f"{REPORTS}/{report['id']}", headers=alice_headers).status_code == 200

    def test_admin_deletes_with_history(self, client, alice, admin, create, test_db):
        _, alice_headers = alice
        _, admin_headers = admin
        report = create(alice_headers, status="submitted")
        client.patch(f"{REPORTS}/{report['id']}/status", json={"status": "rejected"}, headers=admin_headers)

        assert client.delete(f"{REPORTS}/{report['id']}", headers=admin_headers).status_code == 200
        assert test_db.query(models.ReportAuditEntry).count() == 0

    def test_delete_missing(self, client, alice):
        _, headers = alice
        response = client.delete(f"{REPORTS}/{uuid4()}", headers=headers)
        assert response.status_code == 404


class TestStats:

    def test_stats_scoped_to_caller(self, client, alice, bob, admin, create):
        _, alice_headers = alice
        _, bob_headers = bob
        _, admin_headers = admin
        report = create(alice_headers, status="submitted")
        create(alice_headers, type="intervention")
        create(bob_headers)
        client.patch(f"{REPORTS}/{report['id']}/status", json={"status": "resolved"}, headers=admin_headers)

        mine = client.get(f"{REPORTS}/stats", headers=alice_headers).json()
        assert mine["total"] == 2
        assert mine["red_flags"] == 1
        assert mine["interventions"] == 1
        assert mine["by_status"]["resolved"] == 1
        assert mine["by_status"]["draft"] == 1
        assert mine["resolution_rate"] == 50.0

        everyone = client.get(f"{REPORTS}/stats", headers=admin_headers).json()
        assert everyone["total"] == 3

    def test_empty_stats(self, client, alice):
        _, headers = alice
        stats = client.get(f"{REPORTS}/stats", headers=headers).json()
        assert stats["total"] == 0
        assert stats["resolution_rate"] == 0.0


class TestLifecycleScenario:
    """Owner drafts, a stranger is kept out, an admin walks the report to resolution."""

    def test_full_lifecycle(self, client, alice, bob, admin):
        _, a_headers = alice
        _, b_headers = bob
        _, admin_headers = admin

        created = client.post(
            f"{REPORTS}/",
            json=report_payload(type="red-flag", title="Broken streetlight", status="draft"),
            headers=a_headers,
        )
        assert created.status_code == 201
        report_id = created.json()["id"]
        url = f"{REPORTS}/{report_id}"

        response = client.get(url, headers=b_headers)
        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden"

        response = client.get(url, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["title"] == "Broken streetlight"

        response = client.patch(f"{url}/status", json={"status": "resolved"}, headers=admin_headers)
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransition"
        assert client.get(url, headers=a_headers).json()["status"] == "draft"

        response = client.patch(
            url,
            json={"comment": "Still broken after a week", "status": "submitted"},
            headers=a_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "submitted"

        for target in ["under-investigation", "resolved"]:
            response = client.patch(f"{url}/status", json={"status": target}, headers=admin_headers)
            assert response.status_code == 200, response.text
            assert response.json()["status"] == target

        for target in ["draft", "submitted", "under-investigation", "rejected"]:
            response = client.patch(f"{url}/status", json={"status": target}, headers=admin_headers)
            assert response.status_code == 409
            assert response.json()["error"] == "InvalidTransition"

        history = client.get(f"{url}/history", headers=a_headers).json()
        assert [(h["old_status"], h["new_status"]) for h in history] == [
            ("draft", "submitted"),
            ("submitted", "under-investigation"),
            ("under-investigation", "resolved"),
        ]
        assert [h["sequence"] for h in history] == [1, 2, 3]
