"""
GitHub Sync Service — bidirectional ticket ↔ issue synchronisation.

Transaction pattern:
  Services own the commit. Every GitHub call goes through
  ``github_gateway``, authenticated as the caller when they stored a token
  (``store_github_token``); the service turns its result into Ticket and
  GitHubSync rows.

Idempotency:
  A GitHubSync row is looked up before every create, in both directions.
  The lookup and the insert are not atomic, so the unique constraints on
  ``github_syncs`` are the real guard: an IntegrityError on insert means
  another request created the mapping first, and the loser re-reads it and
  updates instead.

Webhooks:
  The webhook action carries no user session. ``verify_webhook_signature``
  must pass before ``handle_webhook`` is called.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
from datetime import datetime, timezone

from cryptography.fernet import InvalidToken
from sqlalchemy.exc import IntegrityError

from pmo_platform.core.exceptions import (
    AuthenticationError,
    NotFoundError,
    PlatformError,
    ValidationError,
)
from pmo_platform.integrations.github_gateway import github_gateway
from pmo_platform.models import db
from pmo_platform.models.audit import write_audit
from pmo_platform.models.github_sync import ENTITY_ISSUE, GitHubSync
from pmo_platform.models.profile import Profile
from pmo_platform.models.project import Project
from pmo_platform.models.ticket import Ticket
from pmo_platform.services import sync_mapper
from pmo_platform.services.role_authority import check_role
from pmo_platform.utils.crypto import decrypt_secret, encrypt_secret

logger = logging.getLogger(__name__)

CONNECT_ROLES = ("project_manager", "tech_lead")
DISCONNECT_ROLES = ("project_manager",)

# https://github.com/owner/repo, git@github.com:owner/repo.git
_REPO_URL_RE = re.compile(r"github\.com[/:]([\w-]+)/([\w.-]+?)(?:\.git)?$")

SIGNATURE_PREFIX = "sha256="


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


def parse_repo_url(url: str) -> tuple[str, str]:
    """Split a GitHub repository URL into ``(owner, repo)``.

    Raises:
        ValidationError: URL does not point at a GitHub repository.
    """
    match = _REPO_URL_RE.search((url or "").strip().rstrip("/"))
    if not match:
        raise ValidationError("Invalid GitHub repository URL", details={"repoUrl": url})
    return match.group(1), match.group(2)


def _get_project(project_id: str) -> Project:
    if not project_id:
        raise ValidationError("projectId is required")
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def _require_repo(project: Project) -> tuple[str, str]:
    if not project.github_repo_url or project.github_repo_id is None:
        raise ValidationError(
            "No repository connected to this project",
            details={"projectId": project.id},
        )
    return parse_repo_url(project.github_repo_url)


def _mark_error(record: GitHubSync, exc: PlatformError) -> None:
    record.sync_status = "error"
    record.error_message = exc.message[:2000]
    db.session.commit()


def _apply_issue_fields(ticket: Ticket, fields: dict, issue_number: int) -> None:
    ticket.title = fields["title"]
    ticket.description = fields["description"]
    ticket.status = fields["status"]
    ticket.priority = fields["priority"]
    ticket.labels = fields["labels"]
    ticket.github_issue_number = issue_number
    ticket.github_synced_at = _utcnow()


def _find_by_issue(repo_id: int, issue_number: int) -> GitHubSync | None:
    return GitHubSync.query.filter_by(
        github_repo_id=repo_id,
        github_entity_type=ENTITY_ISSUE,
        github_entity_id=issue_number,
    ).first()


def _find_by_ticket(ticket_id: str) -> GitHubSync | None:
    return GitHubSync.query.filter_by(
        ticket_id=ticket_id, github_entity_type=ENTITY_ISSUE,
    ).first()


def _gateway_for(principal):
    """Gateway authenticated with the caller's stored GitHub token.

    Callers without a stored token, and system paths (webhooks) that pass
    ``principal=None``, use the service token from ``GITHUB_TOKEN``.

    Raises:
        AuthenticationError: The stored token cannot be decrypted with the
            current ENCRYPTION_KEY.
    """
    if principal is None:
        return github_gateway
    profile = db.session.get(Profile, principal.id)
    if profile is None or not profile.github_token_encrypted:
        return github_gateway
    try:
        token = decrypt_secret(profile.github_token_encrypted)
    except InvalidToken:
        raise AuthenticationError(
            "Stored GitHub token could not be decrypted; store it again",
            details={"userId": principal.id},
        )
    return github_gateway.with_token(token)


def store_github_token(principal, token: str | None) -> dict:
    """Store (or with an empty *token*, clear) the caller's GitHub token.

    The token is encrypted before it reaches the database and never appears
    in the audit row or the logs.
    """
    if token is not None and not isinstance(token, str):
        raise ValidationError("githubToken must be a string")
    profile = db.session.get(Profile, principal.id)
    if profile is None:
        profile = Profile(id=principal.id, email=principal.email, full_name=principal.full_name)
        db.session.add(profile)

    token = (token or "").strip()
    old = {"configured": profile.has_github_token}
    profile.github_token_encrypted = encrypt_secret(token) if token else None
    write_audit(
        entity_type="profile",
        entity_id=principal.id,
        action="profile.github_token",
        principal=principal,
        old=old,
        new={"configured": bool(token)},
    )
    db.session.commit()

    logger.info(
        "GitHub token %s", "stored" if token else "cleared",
        extra={"user_id": principal.id, "action": "store_token"},
    )
    return {"tokenConfigured": bool(token)}


def verify_webhook_signature(secret: str | None, body: bytes, signature: str | None) -> None:
    """Check ``X-Hub-Signature-256`` (HMAC-SHA256 of the raw body).

    Raises:
        AuthenticationError: Secret not configured, header missing or
            signature mismatch.
    """
    if not secret:
        raise AuthenticationError("Webhook secret not configured")
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        raise AuthenticationError("Missing webhook signature")
    expected = hmac.new(secret.encode("utf-8"), body or b"", hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature[len(SIGNATURE_PREFIX):]):
        raise AuthenticationError("Invalid webhook signature")


# ═════════════════════════════════════════════════════════════════════════════
# Repository link
# ═════════════════════════════════════════════════════════════════════════════


def connect_repo(project_id: str, repo_url: str, principal) -> dict:
    """Link a project to a GitHub repository after verifying access to it."""
    if not project_id or not repo_url:
        raise ValidationError("projectId and repoUrl are required")
    check_role(principal.role, CONNECT_ROLES, "connect a GitHub repository")

    project = _get_project(project_id)
    owner, repo = parse_repo_url(repo_url)
    logger.info(
        "Connecting GitHub repository %s/%s", owner, repo,
        extra={"project_id": project.id, "user_id": principal.id, "action": "connect_repo"},
    )

    info = _gateway_for(principal).get_repo(owner, repo)

    old = {"github_repo_url": project.github_repo_url, "github_repo_id": project.github_repo_id}
    project.github_repo_url = info.get("html_url") or f"https://github.com/{owner}/{repo}"
    project.github_repo_id = info["id"]
    write_audit(
        entity_type="project",
        entity_id=project.id,
        action="project.connect_repo",
        principal=principal,
        old=old,
        new={"github_repo_url": project.github_repo_url, "github_repo_id": project.github_repo_id},
    )
    db.session.commit()

    return {
        "connected": True,
        "repository": {
            "id": info["id"],
            "name": info.get("full_name") or f"{owner}/{repo}",
            "url": project.github_repo_url,
            "private": bool(info.get("private", False)),
        },
    }


def disconnect_repo(project_id: str, principal) -> dict:
    """Remove the repository link; mapping rows are kept as ``disconnected``."""
    check_role(principal.role, DISCONNECT_ROLES, "disconnect a GitHub repository")
    project = _get_project(project_id)

    old = {"github_repo_url": project.github_repo_url, "github_repo_id": project.github_repo_id}
    project.github_repo_url = None
    project.github_repo_id = None

    records = GitHubSync.query.filter_by(project_id=project.id).all()
    for record in records:
        record.sync_status = "disconnected"

    write_audit(
        entity_type="project",
        entity_id=project.id,
        action="project.disconnect_repo",
        principal=principal,
        old=old,
        new={"github_repo_url": None, "github_repo_id": None, "disconnected_records": len(records)},
    )
    db.session.commit()

    logger.info(
        "GitHub repository disconnected (%d sync records)", len(records),
        extra={"project_id": project.id, "user_id": principal.id, "action": "disconnect_repo"},
    )
    return {"disconnected": True, "syncRecords": len(records)}


# ═════════════════════════════════════════════════════════════════════════════
# Outbound: ticket → issue
# ═════════════════════════════════════════════════════════════════════════════


def _link_outbound(record: GitHubSync | None, ticket: Ticket, project: Project, issue_number: int) -> GitHubSync:
    """Point the ticket's mapping row at *issue_number*, inserting it if needed."""
    if record is not None:
        record.project_id = project.id
        record.github_repo_id = project.github_repo_id
        record.github_entity_id = issue_number
        db.session.flush()
        return record

    try:
        with db.session.begin_nested():
            record = GitHubSync(
                project_id=project.id,
                github_repo_id=project.github_repo_id,
                github_entity_type=ENTITY_ISSUE,
                github_entity_id=issue_number,
                ticket_id=ticket.id,
                direction="outbound",
            )
            db.session.add(record)
    except IntegrityError:
        logger.info(
            "Sync record created concurrently, re-reading",
            extra={"ticket_id": ticket.id, "issue_number": issue_number},
        )
        record = _find_by_ticket(ticket.id)
        if record is None:
            record = _find_by_issue(project.github_repo_id, issue_number)
            if record is None:
                raise
            if record.ticket_id and record.ticket_id != ticket.id:
                _absorb_duplicate(record, ticket)
        record.github_repo_id = project.github_repo_id
        record.github_entity_id = issue_number
        record.ticket_id = ticket.id
    return record


def _absorb_duplicate(record: GitHubSync, ticket: Ticket) -> None:
    """Re-point *record* at *ticket* and drop the ticket a webhook created for the same issue."""
    duplicate = db.session.get(Ticket, record.ticket_id)
    logger.warning(
        "Issue #%s was mirrored into a second ticket %s, merging",
        record.github_entity_id, record.ticket_id,
        extra={"ticket_id": ticket.id, "issue_number": record.github_entity_id},
    )
    record.ticket_id = ticket.id
    record.direction = "bilateral"
    db.session.flush()
    if duplicate is not None:
        write_audit(
            entity_type="ticket",
            entity_id=ticket.id,
            action="ticket.merge_duplicate",
            principal=None,
            old={"ticket_id": duplicate.id},
            new={"ticket_id": ticket.id, "github_issue_number": record.github_entity_id},
        )
        db.session.delete(duplicate)
        db.session.flush()


def sync_ticket_to_github(ticket_id: str, principal=None) -> dict:
    """Create or update the GitHub issue mirroring *ticket_id*.

    An existing mapping row for the project's current repository means
    update; anything else means create. Re-running the sync therefore never
    opens a second issue. GitHub is called with *principal*'s stored token
    when there is one.

    Returns:
        ``{synced, created, issue: {number, url, state}}``
    """
    if not ticket_id:
        raise ValidationError("ticketId is required")
    ticket = db.session.get(Ticket, ticket_id)
    if not ticket:
        raise NotFoundError(resource="Ticket", resource_id=ticket_id)
    project = ticket.project
    owner, repo = _require_repo(project)

    gh = _gateway_for(principal)
    record = _find_by_ticket(ticket.id)
    payload = sync_mapper.build_issue_payload(ticket)
    extra = {"ticket_id": ticket.id, "project_id": project.id, "action": "sync_to_github"}

    if record is not None and record.github_repo_id == project.github_repo_id:
        logger.info("Updating GitHub issue #%s", record.github_entity_id, extra=extra)
        try:
            issue = gh.update_issue(owner, repo, record.github_entity_id, payload)
        except PlatformError as exc:
            _mark_error(record, exc)
            raise
        created = False
    else:
        logger.info("Creating GitHub issue in %s/%s", owner, repo, extra=extra)
        create_payload = {k: payload[k] for k in ("title", "body", "labels")}
        try:
            issue = gh.create_issue(owner, repo, create_payload)
        except PlatformError as exc:
            if record is not None:
                _mark_error(record, exc)
            raise
        created = True
        record = _link_outbound(record, ticket, project, issue["number"])

        # Issues are always created open; close right away for done/cancelled
        if payload["state"] == "closed":
            close_payload = {"state": "closed"}
            if payload.get("state_reason"):
                close_payload["state_reason"] = payload["state_reason"]
            try:
                issue = gh.update_issue(owner, repo, issue["number"], close_payload)
            except PlatformError as exc:
                ticket.github_issue_number = record.github_entity_id
                _mark_error(record, exc)
                raise

    record.mark_synced()
    if record.direction == "inbound":
        record.direction = "bilateral"
    ticket.github_issue_number = issue["number"]
    ticket.github_synced_at = _utcnow()
    db.session.commit()

    logger.info("Ticket synced to GitHub issue #%s", issue["number"],
                extra={**extra, "issue_number": issue["number"]})
    return {
        "synced": True,
        "created": created,
        "issue": {
            "number": issue["number"],
            "url": issue.get("html_url") or f"{project.github_repo_url}/issues/{issue['number']}",
            "state": issue.get("state", payload["state"]),
        },
    }


# ═════════════════════════════════════════════════════════════════════════════
# Inbound: issue → ticket
# ═════════════════════════════════════════════════════════════════════════════


def _ticket_from_footer(issue: dict, project_id: str) -> Ticket | None:
    """Ticket named in the issue body's sync footer, if it is still unmapped.

    An outbound create can land the webhook before the mapping row commits;
    the footer is the only link back to the ticket at that point.
    """
    ticket_id = sync_mapper.footer_ticket_id(issue.get("body"))
    if not ticket_id:
        return None
    ticket = db.session.get(Ticket, ticket_id)
    if ticket is None or ticket.project_id != project_id:
        return None
    if _find_by_ticket(ticket.id) is not None:
        return None
    return ticket


def _link_footer_ticket(ticket: Ticket, issue: dict, fields: dict, project_id: str, repo_id: int) -> dict:
    number = issue["number"]
    try:
        with db.session.begin_nested():
            record = GitHubSync(
                project_id=project_id,
                github_repo_id=repo_id,
                github_entity_type=ENTITY_ISSUE,
                github_entity_id=number,
                ticket_id=ticket.id,
                direction="bilateral",
            )
            db.session.add(record)
            _apply_issue_fields(ticket, fields, number)
            record.mark_synced()
    except IntegrityError:
        logger.info(
            "Sync record created concurrently, re-reading",
            extra={"project_id": project_id, "ticket_id": ticket.id, "issue_number": number},
        )
        record = _find_by_ticket(ticket.id) or _find_by_issue(repo_id, number)
        if record is None or record.ticket_id != ticket.id:
            raise
        _apply_issue_fields(ticket, fields, number)
        record.mark_synced()
    db.session.flush()
    logger.info(
        "Linked GitHub issue #%s to ticket from its footer", number,
        extra={"project_id": project_id, "ticket_id": ticket.id, "issue_number": number},
    )
    return {"ticketId": ticket.id, "created": False}


def _sync_issue(issue: dict, project_id: str, repo_id: int) -> dict:
    """Upsert the ticket mirroring *issue*. Flushes, never commits."""
    number = issue.get("number") if isinstance(issue, dict) else None
    if number is None:
        raise ValidationError("Issue payload has no number")
    fields = sync_mapper.ticket_fields_from_issue(issue)

    record = _find_by_issue(repo_id, number)
    if record is not None and record.ticket_id:
        ticket = db.session.get(Ticket, record.ticket_id)
        if ticket is not None:
            _apply_issue_fields(ticket, fields, number)
            record.mark_synced()
            if record.direction == "outbound":
                record.direction = "bilateral"
            db.session.flush()
            return {"ticketId": ticket.id, "created": False}

    if record is None:
        ticket = _ticket_from_footer(issue, project_id)
        if ticket is not None:
            return _link_footer_ticket(ticket, issue, fields, project_id, repo_id)

    try:
        with db.session.begin_nested():
            ticket = Ticket(project_id=project_id)
            _apply_issue_fields(ticket, fields, number)
            db.session.add(ticket)
            db.session.flush()
            if record is not None:
                # Mapping survived but lost its ticket: relink
                record.ticket_id = ticket.id
                record.project_id = project_id
                record.mark_synced()
            else:
                db.session.add(GitHubSync(
                    project_id=project_id,
                    github_repo_id=repo_id,
                    github_entity_type=ENTITY_ISSUE,
                    github_entity_id=number,
                    ticket_id=ticket.id,
                    direction="inbound",
                ))
    except IntegrityError:
        logger.info(
            "Sync record created concurrently, re-reading",
            extra={"project_id": project_id, "issue_number": number},
        )
        record = _find_by_issue(repo_id, number)
        ticket = db.session.get(Ticket, record.ticket_id) if record and record.ticket_id else None
        if ticket is None:
            raise
        _apply_issue_fields(ticket, fields, number)
        record.mark_synced()
        db.session.flush()
        return {"ticketId": ticket.id, "created": False}

    return {"ticketId": ticket.id, "created": True}


def sync_issue_to_ticket(issue: dict, project_id: str, repo_id: int) -> dict:
    """Create or update the ticket mirroring a GitHub issue.

    Returns:
        ``{ticketId, created}``
    """
    result = _sync_issue(issue, project_id, repo_id)
    db.session.commit()
    logger.info(
        "GitHub issue #%s synced to ticket", issue.get("number"),
        extra={"project_id": project_id, "ticket_id": result["ticketId"], "issue_number": issue.get("number")},
    )
    return result


def pull_issues(project_id: str, principal) -> dict:
    """Pull every issue of the project's repository into tickets.

    Each issue runs in its own savepoint: a failing issue is logged and
    reported under ``skipped`` while the rest of the batch is kept.
    """
    project = _get_project(project_id)
    owner, repo = _require_repo(project)
    repo_id = project.github_repo_id
    logger.info(
        "Syncing issues from GitHub %s/%s", owner, repo,
        extra={"project_id": project.id, "user_id": principal.id, "action": "sync_from_github"},
    )

    issues = _gateway_for(principal).list_issues(owner, repo, state="all")

    results = []
    skipped = []
    for issue in issues:
        # Pull requests are returned by the issues endpoint too
        if "pull_request" in issue:
            continue
        number = issue.get("number")
        try:
            with db.session.begin_nested():
                result = _sync_issue(issue, project.id, repo_id)
        except Exception as exc:
            logger.warning(
                "Failed to sync issue #%s: %s", number, exc,
                extra={"project_id": project.id, "issue_number": number},
            )
            skipped.append({"issueNumber": number, "error": str(exc)})
            continue
        results.append({"issueNumber": number, **result})

    db.session.commit()

    created = sum(1 for r in results if r["created"])
    logger.info(
        "GitHub pull finished: %d processed, %d created, %d skipped",
        len(results), created, len(skipped),
        extra={"project_id": project.id, "action": "sync_from_github"},
    )
    return {
        "synced": True,
        "issuesProcessed": len(results),
        "created": created,
        "updated": len(results) - created,
        "skipped": skipped,
        "results": results,
    }


def handle_webhook(event: str, payload: dict) -> dict:
    """Apply one verified GitHub webhook delivery.

    Only ``issues`` events mutate anything; every other event (``ping``
    included) is acknowledged and ignored.
    """
    if not event or not isinstance(payload, dict):
        raise ValidationError("webhookEvent and webhookPayload are required")

    if event != "issues":
        logger.info("Ignoring unhandled webhook event %s", event, extra={"action": "webhook"})
        return {"ignored": True, "event": event}

    issue = payload.get("issue")
    repo_id = (payload.get("repository") or {}).get("id")
    if not isinstance(issue, dict) or repo_id is None:
        raise ValidationError("issues event requires issue and repository")

    project = Project.query.filter_by(github_repo_id=repo_id).first()
    if project is None:
        logger.warning("No project found for repository %s", repo_id, extra={"action": "webhook"})
        return {"ignored": True, "reason": "No matching project"}

    result = sync_issue_to_ticket(issue, project.id, repo_id)
    return {
        "processed": True,
        "action": payload.get("action"),
        "ticketId": result["ticketId"],
        "created": result["created"],
    }
