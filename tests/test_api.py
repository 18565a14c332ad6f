from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from toolkit.config import get_settings
from toolkit.main import app
from toolkit.models import CatalogEntry
from toolkit.services.errors import ExternalStoreError, SummaryGenerationError


@pytest.fixture(autouse=True)
def _fixed_cycle(monkeypatch):
    monkeypatch.setattr(get_settings(), "renewal_cycle_year", 2026)
    monkeypatch.setattr(get_settings(), "submitter_email_domain", None)


def _submit(client, app_id, email="a@school.edu", recommendation="renew"):
    response = client.post(
        "/renewal-assessments",
        json={
            "app_id": str(app_id),
            "submitter_email": email,
            "recommendation": recommendation,
            "justification": "We use it every week.",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


def _decision_for(client, app_id):
    response = client.get("/renewal-decisions", params={"app_id": str(app_id)})
    assert response.status_code == 200
    return response.json()[0]


def test_health_check_is_not_prefixed():
    assert TestClient(app).get("/health").json() == {"status": "ok"}


def test_trigger_sync_and_read_runs(client, sheet):
    sheet.records = [{"productId": "P-1", "product": "Kami"}, {"product": "Seesaw"}, {"productId": "P-3"}]

    response = client.post("/sync", json={"direction": "pull", "triggered_by": "dashboard"})

    assert response.status_code == 201
    run = response.json()
    assert run["status"] == "completed"
    assert run["outcome"] == "success_with_warnings"
    assert run["records_synced"] == 2
    assert run["records_failed"] == 1
    assert run["failures"][0]["identity"] == "id:P-3"

    listed = client.get("/sync/runs").json()
    assert [item["id"] for item in listed] == [run["id"]]
    assert client.get(f"/sync/runs/{run['id']}").json()["triggered_by"] == "dashboard"
    assert len(client.get("/catalog").json()) == 2


def test_failed_sync_is_reported_on_the_run(client, sheet):
    sheet.fetch_error = ExternalStoreError("Apps Script GET request failed with 502: Bad Gateway")

    response = client.post("/sync", json={"direction": "pull"})

    assert response.status_code == 201
    assert response.json()["status"] == "failed"
    assert response.json()["outcome"] == "failed"
    assert "Bad Gateway" in response.json()["error_message"]


def test_unknown_sync_run_returns_not_found(client):
    response = client.get(f"/sync/runs/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"
    assert response.json()["retryable"] is False


def test_check_and_remove_duplicates(client, db_session):
    base = datetime(2025, 1, 1, tzinfo=timezone.utc)
    db_session.add_all(
        [
            CatalogEntry(product="Kami", created_at=base),
            CatalogEntry(product="kami", created_at=base + timedelta(days=1)),
            CatalogEntry(product="Seesaw", created_at=base),
        ]
    )
    db_session.commit()

    check = client.get("/duplicates").json()
    assert check["totalApps"] == 3
    assert check["duplicateGroups"] == 1
    assert check["totalDuplicates"] == 1
    assert check["duplicates"][0]["identity_key"] == "name:kami"
    assert check["duplicates"][0]["count"] == 2

    removal = client.post("/duplicates/remove").json()
    assert removal["removed_count"] == 1
    assert removal["groups_processed"] == 1
    assert client.get("/duplicates").json()["duplicateGroups"] == 0


def test_catalog_create_conflict_and_delete(client):
    created = client.post("/catalog", json={"product": "Kami", "product_id": "P-1", "annual_cost": 100})
    assert created.status_code == 201
    entry_id = created.json()["id"]

    duplicate = client.post("/catalog", json={"product": "Kami Notes", "product_id": "P-1"})
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "conflict"

    forbidden = client.delete(f"/catalog/{entry_id}", params={"actor_role": "staff"})
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "authorization_error"

    assert client.delete(f"/catalog/{entry_id}", params={"actor_role": "admin"}).status_code == 204
    assert client.get(f"/catalog/{entry_id}").status_code == 404


def test_assessment_to_implementation_over_http(client, summary_generator):
    entry = client.post("/catalog", json={"product": "Kami", "annual_cost": 1200, "licenses": 150}).json()
    _submit(client, entry["id"])
    _submit(client, entry["id"], email="b@school.edu", recommendation="renew_with_changes")

    decision = _decision_for(client, entry["id"])
    assert decision["status"] == "collecting"
    assert decision["total_submissions"] == 2

    aggregate = client.get(f"/renewal-decisions/{decision['id']}/aggregate").json()
    assert aggregate["total"] == 2
    assert aggregate["counts"]["renew_with_changes"] == 1

    summarized = client.post(
        f"/renewal-decisions/{decision['id']}/summary",
        json={"actor_role": "assessor", "expected_version": decision["version"]},
    )
    assert summarized.status_code == 200, summarized.text
    assert summarized.json()["status"] == "assessor_review"
    assert summarized.json()["ai_summary"] == summary_generator.text

    version = summarized.json()["version"]
    for body in (
        {"action": "assessor_review", "actor_role": "assessor", "recommendation": "renew_with_changes", "comment": "Trim seats"},
        {"action": "director_decision", "actor_role": "approver", "final_decision": "renew_with_changes", "new_licenses": 90},
        {"action": "implement", "actor_role": "approver", "implementation_notes": "Signed"},
    ):
        response = client.post(
            f"/renewal-decisions/{decision['id']}/advance",
            json={**body, "expected_version": version},
        )
        assert response.status_code == 200, response.text
        version = response.json()["version"]

    assert response.json()["status"] == "implemented"
    assert client.get(f"/catalog/{entry['id']}").json()["licenses"] == 90


def test_advance_errors_use_shared_format(client):
    entry = client.post("/catalog", json={"product": "Kami"}).json()
    _submit(client, entry["id"])
    decision = _decision_for(client, entry["id"])

    forbidden = client.post(
        f"/renewal-decisions/{decision['id']}/advance",
        json={"action": "director_decision", "actor_role": "staff", "final_decision": "renew"},
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "authorization_error"

    invalid = client.post(
        f"/renewal-decisions/{decision['id']}/advance",
        json={"action": "implement", "actor_role": "approver", "implementation_notes": "Too soon"},
    )
    assert invalid.status_code == 409
    assert invalid.json()["error"] == "invalid_state"

    stale = client.post(
        f"/renewal-decisions/{decision['id']}/advance",
        json={"action": "skip_summary", "actor_role": "assessor", "expected_version": decision["version"] + 5},
    )
    assert stale.status_code == 409
    assert stale.json() == {
        "error": "stale_state",
        "detail": stale.json()["detail"],
        "retryable": True,
    }

    missing = client.post(
        f"/renewal-decisions/{uuid.uuid4()}/advance",
        json={"action": "skip_summary", "actor_role": "assessor"},
    )
    assert missing.status_code == 404


def test_request_model_errors_use_shared_format(client):
    entry = client.post("/catalog", json={"product": "Kami"}).json()
    _submit(client, entry["id"])
    decision = _decision_for(client, entry["id"])

    response = client.post(
        f"/renewal-decisions/{decision['id']}/advance",
        json={"action": "teleport", "actor_role": "janitor"},
    )

    assert response.status_code == 422
    body = response.json()
    assert set(body) == {"error", "detail", "retryable"}
    assert body["error"] == "validation_error"
    assert body["retryable"] is False
    assert "action" in body["detail"]
    assert "actor_role" in body["detail"]


def test_summary_failure_is_retryable(client, summary_generator):
    summary_generator.error = SummaryGenerationError("Summary generation is not configured.")
    entry = client.post("/catalog", json={"product": "Kami"}).json()
    _submit(client, entry["id"])
    decision = _decision_for(client, entry["id"])

    response = client.post(f"/renewal-decisions/{decision['id']}/summary", json={"actor_role": "assessor"})

    assert response.status_code == 503
    assert response.json()["error"] == "transient_io"
    assert response.json()["retryable"] is True
    assert client.get(f"/renewal-decisions/{decision['id']}").json()["status"] == "collecting"


def test_assessment_review_endpoints(client):
    entry = client.post("/catalog", json={"product": "Kami"}).json()
    assessment = _submit(client, entry["id"])

    bad = client.post(
        "/renewal-assessments",
        json={
            "app_id": entry["id"],
            "submitter_email": "a@school.edu",
            "recommendation": "keep",
            "justification": "x",
        },
    )
    assert bad.status_code == 422
    assert bad.json()["error"] == "validation_error"

    updated = client.patch(
        f"/renewal-assessments/{assessment['id']}/status",
        json={"status": "in_review", "actor_role": "assessor", "reviewed_by": "Dana"},
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "in_review"

    listed = client.get("/renewal-assessments", params={"status_filter": "in_review"}).json()
    assert [item["id"] for item in listed] == [assessment["id"]]
