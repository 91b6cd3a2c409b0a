"""
Shared pytest fixtures for the PMO Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - auth_headers: builds a Bearer header for a given profile/role
    - fake_github: stateful stand-in for the GitHub gateway singleton
    - project / connected_project: pre-created Project rows
"""

import pytest

from pmo_platform import create_app
from pmo_platform.core.exceptions import GitHubError
from pmo_platform.core.principal import Principal
from pmo_platform.models import db as _db
from pmo_platform.models.project import Project
from pmo_platform.services import github_sync_service
from pmo_platform.services.jwt_service import generate_access_token

REPO_OWNER = "acme"
REPO_NAME = "webshop"
REPO_ID = 424242


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def auth_headers():
    """Return a factory: auth_headers(user_id, role) → request headers."""

    def _build(user_id="u-pm", role="project_manager", full_name=None):
        token = generate_access_token(
            user_id, role,
            email=f"{user_id}@example.com",
            full_name=full_name or user_id,
            org_id="org-1",
        )
        return {"Authorization": f"Bearer {token}"}

    return _build


@pytest.fixture()
def make_principal():
    """Return a factory: make_principal(user_id, role) → Principal."""

    def _build(user_id="u-pm", role="project_manager", full_name=None):
        return Principal(
            id=user_id,
            role=role,
            email=f"{user_id}@example.com",
            full_name=full_name or user_id,
            org_id="org-1",
        )

    return _build


# ── GitHub fake ──────────────────────────────────────────────────────────


class FakeGitHub:
    """In-memory GitHub with the gateway's method surface.

    ``fail_on`` maps an operation name to the exception it should raise,
    e.g. ``fake.fail_on["update_issue"] = GitHubError("boom")``.
    """

    def __init__(self):
        self.repos = {}
        self.issues = {}
        self.calls = []
        self.fail_on = {}
        self.tokens = []
        self._next_number = {}

    def add_repo(self, owner=REPO_OWNER, name=REPO_NAME, repo_id=REPO_ID, private=False):
        self.repos[(owner, name)] = {
            "id": repo_id,
            "name": name,
            "full_name": f"{owner}/{name}",
            "private": private,
            "html_url": f"https://github.com/{owner}/{name}",
        }

    def add_issue(self, number, title="Issue", body=None, labels=(), state="open",
                  state_reason=None, owner=REPO_OWNER, name=REPO_NAME, pull_request=False):
        issue = {
            "id": 900000 + number,
            "number": number,
            "title": title,
            "body": body,
            "labels": [{"name": n} for n in labels],
            "state": state,
            "state_reason": state_reason,
            "html_url": f"https://github.com/{owner}/{name}/issues/{number}",
        }
        if pull_request:
            issue["pull_request"] = {"url": "https://api.github.com/pulls/1"}
        self.issues[(owner, name, number)] = issue
        self._next_number[(owner, name)] = max(self._next_number.get((owner, name), 1), number + 1)
        return issue

    def with_token(self, token):
        self.tokens.append(token)
        return self

    def _record(self, op, *args):
        self.calls.append((op, *args))
        if op in self.fail_on:
            raise self.fail_on[op]

    def _not_found(self, endpoint):
        return GitHubError("Not Found", details={"status": 404, "endpoint": endpoint, "retryable": False})

    def get_repo(self, owner, repo):
        self._record("get_repo", owner, repo)
        if (owner, repo) not in self.repos:
            raise self._not_found(f"/repos/{owner}/{repo}")
        return dict(self.repos[(owner, repo)])

    def create_issue(self, owner, repo, payload):
        self._record("create_issue", owner, repo, payload)
        number = self._next_number.get((owner, repo), 1)
        issue = self.add_issue(
            number,
            title=payload["title"],
            body=payload.get("body"),
            labels=payload.get("labels", []),
            owner=owner,
            name=repo,
        )
        return dict(issue)

    def update_issue(self, owner, repo, number, payload):
        self._record("update_issue", owner, repo, number, payload)
        issue = self.issues.get((owner, repo, number))
        if issue is None:
            raise self._not_found(f"/repos/{owner}/{repo}/issues/{number}")
        for key, value in payload.items():
            if key == "labels":
                issue["labels"] = [{"name": n} for n in value]
            else:
                issue[key] = value
        return dict(issue)

    def list_issues(self, owner, repo, state="all"):
        self._record("list_issues", owner, repo, state)
        return [
            dict(issue) for (o, r, _), issue in sorted(self.issues.items(), key=lambda kv: kv[0][2])
            if (o, r) == (owner, repo)
        ]

    def calls_of(self, op):
        return [c for c in self.calls if c[0] == op]


@pytest.fixture()
def fake_github(monkeypatch):
    """Replace the gateway singleton used by the sync service."""
    fake = FakeGitHub()
    fake.add_repo()
    monkeypatch.setattr(github_sync_service, "github_gateway", fake)
    return fake


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project():
    """A draft project without a GitHub link."""
    proj = Project(code="PRJ-1", name="Webshop relaunch")
    _db.session.add(proj)
    _db.session.commit()
    return proj


@pytest.fixture()
def connected_project():
    """A project linked to acme/webshop."""
    proj = Project(
        code="PRJ-GH",
        name="Webshop relaunch",
        status="development",
        github_repo_url=f"https://github.com/{REPO_OWNER}/{REPO_NAME}",
        github_repo_id=REPO_ID,
    )
    _db.session.add(proj)
    _db.session.commit()
    return proj
