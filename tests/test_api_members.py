"""
HTTP tests for member and promotion endpoints.
"""

import pytest
from sqlalchemy.exc import OperationalError

from app.models.enums import MemberRole

ANSWERS = {"motivation": "Help new members", "availability": "weekends"}


def _enroll(client, name="Ada Lovelace", email="ada@example.org", **extra):
    return client.post("/api/v1/members", json={"name": name, "email": email, **extra})


def _evidence(client, member_id, kind, **payload):
    return client.post(f"/api/v1/members/{member_id}/promotion/evidence", json={"kind": kind, **payload})


def _ready(client, member_id):
    _evidence(client, member_id, "meeting_completed")
    _evidence(client, member_id, "assessment_score", score=88)
    return _evidence(client, member_id, "survey_submitted", answers=ANSWERS)


# ── Members ──────────────────────────────────────────────────────────────


def test_enroll_allocates_member_number(client):
    res = _enroll(client, email="ADA@Example.org ")
    assert res.status_code == 201
    body = res.get_json()
    assert body["member_number"] == "UGS0000001"
    assert body["email"] == "ada@example.org"
    assert body["role"] == "regular"

    second = _enroll(client, name="Grace Hopper", email="grace@example.org").get_json()
    assert second["member_number"] == "UGS0000002"


def test_enroll_duplicate_email(client):
    _enroll(client)
    res = _enroll(client, name="Someone Else")
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"


def test_enroll_missing_name(client):
    res = client.post("/api/v1/members", json={"email": "x@example.org"})
    assert res.status_code == 400
    body = res.get_json()
    assert body["code"] == "ERR_VALIDATION_REQUIRED"
    assert body["details"] == {"field": "name"}


def test_enroll_unknown_role(client):
    res = _enroll(client, role="superuser")
    assert res.status_code == 422
    assert res.get_json()["code"] == "ERR_VALIDATION_CONSTRAINT"


def test_enroll_role_is_case_insensitive(client):
    res = _enroll(client, role="ELEVATED")
    assert res.status_code == 201
    assert res.get_json()["role"] == "elevated"


def test_body_must_be_json_object(client):
    res = client.post("/api/v1/members", json=["ada"])
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"


def test_non_json_content_type_is_rejected(client):
    res = client.post("/api/v1/members", data="name=ada", content_type="text/plain")
    assert res.status_code == 415


def test_get_member_and_not_found(client):
    member_id = _enroll(client).get_json()["id"]
    assert client.get(f"/api/v1/members/{member_id}").get_json()["id"] == member_id

    res = client.get("/api/v1/members/999")
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_allocate_endpoint_is_idempotent(client, make_member):
    member = make_member()
    first = client.post(f"/api/v1/members/{member.id}/member-number")
    second = client.post(f"/api/v1/members/{member.id}/member-number")
    assert first.status_code == 200
    assert first.get_json() == second.get_json() == {"member_id": member.id, "member_number": "UGS0000001"}


def test_allocate_endpoint_reports_exhausted_range(client, services, make_member, monkeypatch):
    make_member(member_number="UGS99")
    member = make_member()
    monkeypatch.setattr(services.allocator, "width", 2)

    res = client.post(f"/api/v1/members/{member.id}/member-number")

    assert res.status_code == 409
    body = res.get_json()
    assert body["code"] == "ERR_CONFLICT_EXHAUSTED"
    assert body["details"] == {"field": "member_number"}


def test_database_failure_is_json_500(client, services, make_member, monkeypatch):
    member = make_member()

    def unavailable(member_id):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(services.allocator, "allocate", unavailable)
    res = client.post(f"/api/v1/members/{member.id}/member-number")

    assert res.status_code == 500
    assert res.get_json()["code"] == "ERR_DATABASE"


def test_member_summary(client):
    member_id = _enroll(client).get_json()["id"]
    body = client.get(f"/api/v1/members/{member_id}/summary").get_json()
    assert body["member_number"] == "UGS0000001"
    assert body["eligibility"]["pending_actions"] == ["attend_meeting", "pass_assessment", "submit_survey"]


# ── Promotion ────────────────────────────────────────────────────────────


def test_evidence_returns_state_without_submitting(client, make_member):
    member = make_member()
    res = _ready(client, member.id)
    assert res.status_code == 200
    body = res.get_json()
    assert body["phase"] == "ready"
    assert body["can_submit"] is True
    assert body["applied_at"] is None


def test_unknown_evidence_kind(client, make_member):
    member = make_member()
    res = _evidence(client, member.id, "coffee_with_lead")
    assert res.status_code == 400
    assert res.get_json()["details"] == {"field": "kind"}


def test_score_is_required_for_assessment(client, make_member):
    member = make_member()
    res = _evidence(client, member.id, "assessment_score")
    assert res.status_code == 400


def test_invalid_score(client, make_member):
    member = make_member()
    res = _evidence(client, member.id, "assessment_score", score=140)
    assert res.status_code == 422


def test_submit_flow(client, clock, make_member):
    member = make_member()
    _ready(client, member.id)

    res = client.post(f"/api/v1/members/{member.id}/promotion/submit")
    assert res.status_code == 201
    application = res.get_json()
    assert application["status"] == "pending"
    assert application["applied_at"].startswith("2026-03-02T09:00:00")

    again = client.post(f"/api/v1/members/{member.id}/promotion/submit")
    assert again.status_code == 409
    assert again.get_json()["details"] == {"precondition": "applied_at is null"}


def test_submit_incomplete_lists_missing_items(client, make_member):
    member = make_member()
    _evidence(client, member.id, "meeting_completed")

    res = client.post(f"/api/v1/members/{member.id}/promotion/submit")

    assert res.status_code == 409
    body = res.get_json()
    assert body["code"] == "ERR_INVALID_TRANSITION"
    assert body["details"]["missing"] == ["assessment", "survey"]


def test_reject_then_approve(client, clock, make_member):
    member = make_member()
    _ready(client, member.id)
    application_id = client.post(f"/api/v1/members/{member.id}/promotion/submit").get_json()["id"]

    missing_reason = client.post(f"/api/v1/promotions/{application_id}/reject", json={})
    assert missing_reason.status_code == 400

    rejected = client.post(
        f"/api/v1/promotions/{application_id}/reject",
        json={"reason": "Survey too short"},
        headers={"X-Operator": "ops@example.org"},
    ).get_json()
    assert rejected["status"] == "draft"
    assert rejected["applied_at"] is None
    assert rejected["reviewed_by"] == "ops@example.org"

    client.post(f"/api/v1/members/{member.id}/promotion/submit")
    approved = client.post(f"/api/v1/promotions/{application_id}/approve", json={"operator": "lead"})
    assert approved.status_code == 200
    assert approved.get_json()["status"] == "approved"

    state = client.get(f"/api/v1/members/{member.id}/promotion").get_json()
    assert state["phase"] == "onboarding"


def test_full_promotion_to_elevated(client, clock, make_member):
    member = make_member()
    _ready(client, member.id)
    application_id = client.post(f"/api/v1/members/{member.id}/promotion/submit").get_json()["id"]
    client.post(f"/api/v1/promotions/{application_id}/approve")

    _evidence(client, member.id, "contact_confirmed")
    _evidence(client, member.id, "compliance_score", score=91)
    state = _evidence(client, member.id, "onboarding_progress", progress=1.0).get_json()

    assert state["phase"] == "promoted"
    assert client.get(f"/api/v1/members/{member.id}").get_json()["role"] == MemberRole.ELEVATED.value


@pytest.mark.parametrize("path", [
    "/api/v1/promotions/9/approve",
    "/api/v1/members/9/promotion",
])
def test_promotion_not_found(client, path):
    res = client.post(path) if path.endswith("approve") else client.get(path)
    assert res.status_code == 404
