"""Tests for the project lifecycle state machine (lifecycle_service)."""

from datetime import datetime, timezone

import pytest

from pmo_platform.core.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
)
from pmo_platform.models import db
from pmo_platform.models.audit import AuditLog
from pmo_platform.models.project import (
    PROJECT_STATUSES,
    PROJECT_TRANSITIONS,
    TERMINAL_STATUSES,
    Project,
)
from pmo_platform.services.lifecycle_service import transition_project


def _make_project(status="draft", code="LC-1"):
    project = Project(code=code, name="Lifecycle test", status=status)
    db.session.add(project)
    db.session.commit()
    return project


def test_draft_to_poc_phase_lists_allowed_successors(make_principal):
    project = _make_project()

    with pytest.raises(InvalidTransitionError) as exc:
        transition_project(project.id, "poc_phase", make_principal(role="super_admin"))

    assert exc.value.allowed == ["scoping", "cancelled"]
    assert exc.value.details["allowed"] == ["scoping", "cancelled"]
    assert exc.value.code == "INVALID_TRANSITION"
    assert "scoping, cancelled" in exc.value.message
    assert db.session.get(Project, project.id).status == "draft"


def test_transition_without_role_requirement(make_principal):
    project = _make_project()

    result = transition_project(project.id, "scoping", make_principal("u-dev", "developer"))

    assert result == {
        "transitioned": True,
        "projectId": project.id,
        "previousStatus": "draft",
        "newStatus": "scoping",
    }
    assert db.session.get(Project, project.id).status == "scoping"


def test_role_gate_rejects_wrong_role(make_principal):
    project = _make_project(status="sow_draft")

    with pytest.raises(AuthorizationError):
        transition_project(project.id, "sow_review", make_principal("u-dev", "developer"))
    assert db.session.get(Project, project.id).status == "sow_draft"


def test_role_gate_accepts_elevated_role(make_principal):
    project = _make_project(status="uat_phase")

    result = transition_project(project.id, "sign_off", make_principal("u-admin", "org_admin"))

    assert result["newStatus"] == "sign_off"


def test_sign_off_requires_client_stakeholder(make_principal):
    project = _make_project(status="uat_phase")

    with pytest.raises(AuthorizationError):
        transition_project(project.id, "sign_off", make_principal("u-pm", "project_manager"))

    result = transition_project(project.id, "sign_off", make_principal("u-client", "client_stakeholder"))
    assert result["newStatus"] == "sign_off"


def test_completed_stamps_actual_end_date(make_principal):
    project = _make_project(status="sign_off")

    transition_project(project.id, "completed", make_principal("u-client", "client_stakeholder"))

    refreshed = db.session.get(Project, project.id)
    assert refreshed.status == "completed"
    assert refreshed.actual_end_date == datetime.now(timezone.utc).date()


@pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES))
def test_terminal_statuses_admit_no_successor(terminal, make_principal):
    project = _make_project(status=terminal)

    for target in PROJECT_STATUSES:
        with pytest.raises(InvalidTransitionError) as exc:
            transition_project(project.id, target, make_principal(role="super_admin"))
        assert exc.value.allowed == []


@pytest.mark.parametrize("current", PROJECT_STATUSES)
def test_never_moves_outside_allowed_successors(current, make_principal):
    admin = make_principal(role="super_admin")
    for i, target in enumerate(PROJECT_STATUSES):
        project = _make_project(status=current, code=f"P-{current}-{i}")
        if target in PROJECT_TRANSITIONS[current]:
            transition_project(project.id, target, admin)
            assert db.session.get(Project, project.id).status == target
        else:
            with pytest.raises(InvalidTransitionError):
                transition_project(project.id, target, admin)
            assert db.session.get(Project, project.id).status == current


def test_transition_writes_audit_row(make_principal):
    project = _make_project()
    actor = make_principal("u-pm", "project_manager")

    transition_project(project.id, "scoping", actor)

    log = AuditLog.query.filter_by(entity_id=project.id, action="project.transition").one()
    assert log.actor_id == "u-pm"
    assert log.actor_role == "project_manager"
    assert log.diff == {"old": {"status": "draft"}, "new": {"status": "scoping"}}
    assert log.timestamp is not None


def test_unknown_project_is_not_found(make_principal):
    with pytest.raises(NotFoundError):
        transition_project("does-not-exist", "scoping", make_principal())
