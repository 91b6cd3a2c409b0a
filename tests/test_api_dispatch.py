"""
HTTP-level tests for the two action endpoints.

    POST /api/v1/staff-actions
    POST /api/v1/github-integration

Covers the response envelope, authentication, action dispatch and the
signed webhook path.
"""

import hashlib
import hmac
import json

from pmo_platform.core.exceptions import GitHubError
from pmo_platform.models import db
from pmo_platform.models.artifact import Artifact, Signoff
from pmo_platform.models.project import Project
from pmo_platform.models.ticket import Ticket

STAFF_URL = "/api/v1/staff-actions"
GITHUB_URL = "/api/v1/github-integration"
WEBHOOK_SECRET = "test-webhook-secret"


def _signed(body: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, dict]:
    raw = json.dumps(body).encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()
    return raw, {"X-Hub-Signature-256": f"sha256={digest}", "X-GitHub-Event": body.get("webhookEvent", "")}


def _webhook_body(issue_number=1, repo_id=424242, event="issues"):
    return {
        "action": "webhook",
        "webhookEvent": event,
        "webhookPayload": {
            "action": "opened",
            "issue": {
                "number": issue_number,
                "title": "Search is slow",
                "body": "p95 above 2s",
                "state": "open",
                "labels": [{"name": "status:in-progress"}],
            },
            "repository": {"id": repo_id},
        },
    }


# ═════════════════════════════════════════════════════════════════════════════
# Envelope and infrastructure
# ═════════════════════════════════════════════════════════════════════════════


def test_health(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.get_json() == {"status": "ok", "app": "PMO Platform"}


def test_request_id_is_echoed(client, auth_headers, project):
    res = client.post(
        STAFF_URL,
        json={"action": "transition_project", "projectId": project.id, "targetStatus": "scoping"},
        headers={**auth_headers(), "X-Request-ID": "req-abc"},
    )
    assert res.status_code == 200
    assert res.headers["X-Request-ID"] == "req-abc"
    assert res.get_json()["requestId"] == "req-abc"


def test_success_envelope(client, auth_headers, project):
    res = client.post(
        STAFF_URL,
        json={"action": "transition_project", "projectId": project.id, "targetStatus": "scoping"},
        headers=auth_headers(),
    )
    body = res.get_json()
    assert body["success"] is True
    assert body["data"] == {
        "transitioned": True,
        "projectId": project.id,
        "previousStatus": "draft",
        "newStatus": "scoping",
    }
    assert body["requestId"]


def test_missing_token_is_401(client, project):
    res = client.post(STAFF_URL, json={"action": "transition_project", "projectId": project.id})
    assert res.status_code == 401
    body = res.get_json()
    assert body["success"] is False
    assert body["error"]["code"] == "AUTHENTICATION_ERROR"


def test_garbage_token_is_401(client):
    res = client.post(
        STAFF_URL, json={"action": "bulk_assign"}, headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert res.status_code == 401


def test_get_is_405(client, auth_headers):
    res = client.get(STAFF_URL, headers=auth_headers())
    assert res.status_code == 405
    assert res.get_json()["error"]["code"] == "METHOD_NOT_ALLOWED"


def test_unknown_action(client, auth_headers):
    res = client.post(STAFF_URL, json={"action": "launch_rocket"}, headers=auth_headers())
    assert res.status_code == 400
    error = res.get_json()["error"]
    assert error["message"] == "Unknown action: launch_rocket"
    assert "approve_artifact" in error["details"]["allowed"]


def test_non_json_body(client, auth_headers):
    res = client.post(STAFF_URL, data="nope", headers=auth_headers(), content_type="text/plain")
    assert res.status_code == 400
    assert res.get_json()["error"]["code"] == "VALIDATION_ERROR"


def test_missing_fields(client, auth_headers):
    res = client.post(STAFF_URL, json={"action": "assign_ticket"}, headers=auth_headers())
    assert res.status_code == 400
    assert res.get_json()["error"]["details"]["missing"] == ["ticketId", "assigneeId"]


def test_invalid_transition_carries_allowed(client, auth_headers, project):
    res = client.post(
        STAFF_URL,
        json={"action": "transition_project", "projectId": project.id, "targetStatus": "poc_phase"},
        headers=auth_headers(role="super_admin"),
    )
    assert res.status_code == 400
    error = res.get_json()["error"]
    assert error["code"] == "INVALID_TRANSITION"
    assert error["details"]["allowed"] == ["scoping", "cancelled"]


def test_role_denial_is_403(client, auth_headers):
    proj = Project(code="P-403", name="x", status="sow_draft")
    db.session.add(proj)
    db.session.commit()

    res = client.post(
        STAFF_URL,
        json={"action": "transition_project", "projectId": proj.id, "targetStatus": "sow_review"},
        headers=auth_headers("u-dev", "developer"),
    )
    assert res.status_code == 403
    assert res.get_json()["error"]["code"] == "AUTHORIZATION_ERROR"


def test_unknown_project_is_404(client, auth_headers):
    res = client.post(
        STAFF_URL,
        json={"action": "transition_project", "projectId": "nope", "targetStatus": "scoping"},
        headers=auth_headers(),
    )
    assert res.status_code == 404


def test_cors_preflight(client):
    res = client.options(
        STAFF_URL,
        headers={
            "Origin": "https://app.example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Authorization, Content-Type",
        },
    )

    assert res.status_code == 200
    assert res.headers["Access-Control-Allow-Origin"] in ("*", "https://app.example.com")
    assert "POST" in res.headers["Access-Control-Allow-Methods"]
    assert "authorization" in res.headers["Access-Control-Allow-Headers"].lower()


# ═════════════════════════════════════════════════════════════════════════════
# Sign-off over HTTP
# ═════════════════════════════════════════════════════════════════════════════


def test_signoff_flow_over_http(client, auth_headers, project):
    artifact = Artifact(project_id=project.id, title="SOW", type="sow", content="Fixed price")
    db.session.add(artifact)
    db.session.commit()

    res = client.post(
        STAFF_URL,
        json={
            "action": "create_signoff_request",
            "artifactId": artifact.id,
            "approverIds": ["u-client"],
            "dueDate": "2026-12-01",
        },
        headers=auth_headers(),
    )
    assert res.status_code == 200
    signoff_id = res.get_json()["data"]["signoffs"][0]["id"]
    assert db.session.get(Signoff, signoff_id).due_date.isoformat() == "2026-12-01"

    res = client.post(
        STAFF_URL,
        json={"action": "approve_artifact", "signoffId": signoff_id, "comments": "ok"},
        headers={
            **auth_headers("u-client", "client_stakeholder"),
            "X-Forwarded-For": "203.0.113.9, 10.0.0.1",
            "User-Agent": "pytest-browser",
        },
    )
    assert res.status_code == 200
    assert res.get_json()["data"]["artifactStatus"] == "approved"
    signoff = db.session.get(Signoff, signoff_id)
    assert signoff.ip_address == "203.0.113.9"
    assert signoff.user_agent == "pytest-browser"


def test_reject_without_comments_is_400(client, auth_headers, project):
    artifact = Artifact(project_id=project.id, title="SOW", type="sow")
    db.session.add(artifact)
    db.session.commit()
    res = client.post(
        STAFF_URL,
        json={"action": "create_signoff_request", "artifactId": artifact.id, "approverIds": ["u-c"]},
        headers=auth_headers(),
    )
    signoff_id = res.get_json()["data"]["signoffs"][0]["id"]

    res = client.post(
        STAFF_URL,
        json={"action": "reject_artifact", "signoffId": signoff_id},
        headers=auth_headers("u-c", "client_stakeholder"),
    )
    assert res.status_code == 400
    assert res.get_json()["error"]["message"] == "comments are required for rejection"


def test_repeat_approval_is_409(client, auth_headers, project):
    artifact = Artifact(project_id=project.id, title="SOW", type="sow", content="Fixed price")
    db.session.add(artifact)
    db.session.commit()
    res = client.post(
        STAFF_URL,
        json={"action": "create_signoff_request", "artifactId": artifact.id, "approverIds": ["u-c"]},
        headers=auth_headers(),
    )
    signoff_id = res.get_json()["data"]["signoffs"][0]["id"]
    approve = {"action": "approve_artifact", "signoffId": signoff_id}

    first = client.post(STAFF_URL, json=approve, headers=auth_headers("u-c", "client_stakeholder"))
    second = client.post(
        STAFF_URL, json=approve, headers={**auth_headers("u-c", "client_stakeholder"), "X-Request-ID": "req-409"},
    )

    assert first.status_code == 200
    assert second.status_code == 409
    body = second.get_json()
    assert body["success"] is False
    assert body["error"]["code"] == "CONFLICT"
    assert body["requestId"] == "req-409"
    assert db.session.get(Signoff, signoff_id).status == "approved"


# ═════════════════════════════════════════════════════════════════════════════
# GitHub integration endpoint
# ═════════════════════════════════════════════════════════════════════════════


def test_github_action_requires_token(client, connected_project):
    res = client.post(GITHUB_URL, json={"action": "sync_from_github", "projectId": connected_project.id})
    assert res.status_code == 401


def test_sync_to_github_over_http(client, auth_headers, connected_project, fake_github):
    ticket = Ticket(project_id=connected_project.id, title="Add Apple Pay")
    db.session.add(ticket)
    db.session.commit()

    res = client.post(GITHUB_URL, json={"action": "sync_to_github", "ticketId": ticket.id}, headers=auth_headers())

    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["created"] is True
    assert data["issue"]["number"] == 1


def test_github_failure_is_502(client, auth_headers, connected_project, fake_github):
    fake_github.fail_on["list_issues"] = GitHubError(
        "Request timed out after 15s", details={"retryable": True},
    )
    res = client.post(
        GITHUB_URL, json={"action": "sync_from_github", "projectId": connected_project.id}, headers=auth_headers(),
    )
    assert res.status_code == 502
    error = res.get_json()["error"]
    assert error["code"] == "GITHUB_ERROR"
    assert error["details"]["retryable"] is True


def test_store_token_then_sync_uses_it(client, auth_headers, connected_project, fake_github):
    ticket = Ticket(project_id=connected_project.id, title="Add Apple Pay")
    db.session.add(ticket)
    db.session.commit()

    res = client.post(GITHUB_URL, json={"action": "store_token", "githubToken": "ghp_pm"}, headers=auth_headers())
    assert res.status_code == 200
    assert res.get_json()["data"] == {"tokenConfigured": True}

    res = client.post(GITHUB_URL, json={"action": "sync_to_github", "ticketId": ticket.id}, headers=auth_headers())
    assert res.status_code == 200
    assert fake_github.tokens == ["ghp_pm"]


def test_store_token_requires_field(client, auth_headers):
    res = client.post(GITHUB_URL, json={"action": "store_token"}, headers=auth_headers())
    assert res.status_code == 400
    assert res.get_json()["error"]["details"]["missing"] == ["githubToken"]


def test_webhook_valid_signature(client, connected_project):
    raw, headers = _signed(_webhook_body())

    res = client.post(GITHUB_URL, data=raw, headers=headers, content_type="application/json")

    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["processed"] is True
    ticket = db.session.get(Ticket, data["ticketId"])
    assert ticket.status == "in_progress"
    assert ticket.project_id == connected_project.id


def test_webhook_bad_signature(client, connected_project):
    raw, headers = _signed(_webhook_body(), secret="wrong-secret")

    res = client.post(GITHUB_URL, data=raw, headers=headers, content_type="application/json")

    assert res.status_code == 401
    assert Ticket.query.count() == 0


def test_webhook_missing_signature(client, connected_project):
    res = client.post(GITHUB_URL, json=_webhook_body())
    assert res.status_code == 401
    assert res.get_json()["error"]["message"] == "Missing webhook signature"


def test_webhook_unknown_repository_is_ignored(client, connected_project):
    raw, headers = _signed(_webhook_body(repo_id=1))

    res = client.post(GITHUB_URL, data=raw, headers=headers, content_type="application/json")

    assert res.status_code == 200
    assert res.get_json()["data"] == {"ignored": True, "reason": "No matching project"}


def test_webhook_ping_is_acknowledged(client):
    body = {"action": "webhook", "webhookEvent": "ping", "webhookPayload": {"zen": "Speak like a human."}}
    raw, headers = _signed(body)

    res = client.post(GITHUB_URL, data=raw, headers=headers, content_type="application/json")

    assert res.status_code == 200
    assert res.get_json()["data"] == {"ignored": True, "event": "ping"}
