"""
Ticket ↔ GitHub issue translation. Pure functions, no I/O.

Status and priority travel as labels (``status:in-progress``,
``priority:high``); the originating ticket id travels in a footer appended
to the issue body. Five statuses round-trip exactly through their label.
``cancelled`` has no label: it leaves as a closed issue with
``state_reason = not_planned`` and comes back from that state only.
"""

import re

STATUS_LABEL_PREFIX = "status:"
PRIORITY_LABEL_PREFIX = "priority:"

STATUS_TO_LABEL = {
    "open": "status:open",
    "in_progress": "status:in-progress",
    "blocked": "status:blocked",
    "review": "status:review",
    "done": "status:done",
}
LABEL_TO_STATUS = {label: status for status, label in STATUS_TO_LABEL.items()}

PRIORITIES = ("low", "medium", "high", "critical")
DEFAULT_PRIORITY = "medium"

CLOSED_STATUSES = frozenset({"done", "cancelled"})

SYNC_FOOTER_TEMPLATE = "\n\n---\n*Synced from PMO Platform - Ticket ID: {ticket_id}*"
_SYNC_FOOTER_RE = re.compile(r"\n\n---\n\*Synced from PMO Platform.*\*$", re.DOTALL)
_FOOTER_TICKET_ID_RE = re.compile(r"\n\n---\n\*Synced from PMO Platform - Ticket ID: ([\w-]+)\*\s*$")


def _label_names(labels) -> list[str]:
    """Normalise GitHub label objects (``{"name": ...}``) and plain strings."""
    names = []
    for label in labels or []:
        if isinstance(label, dict):
            name = label.get("name")
        else:
            name = label
        if name:
            names.append(str(name))
    return names


# ── Status ───────────────────────────────────────────────────────────────────

def status_to_label(status):
    """Return the ``status:`` label for *status*, or None (cancelled, unknown)."""
    return STATUS_TO_LABEL.get(status)


def labels_to_status(labels):
    """Return the ticket status encoded in *labels*; the first ``status:`` label wins."""
    for name in _label_names(labels):
        if name.startswith(STATUS_LABEL_PREFIX):
            return LABEL_TO_STATUS.get(name)
    return None


def issue_state_for(status) -> str:
    return "closed" if status in CLOSED_STATUSES else "open"


def state_reason_for(status):
    if status == "cancelled":
        return "not_planned"
    if status == "done":
        return "completed"
    return None


def resolve_inbound_status(issue: dict) -> str:
    """Ticket status for an incoming issue.

    The status label decides when present. Without one, an open issue is
    ``open`` and a closed one is ``done``, unless GitHub reports it closed as
    not planned, which is how a cancelled ticket leaves the platform.
    """
    status = labels_to_status(issue.get("labels"))
    if status:
        return status
    if issue.get("state") == "closed":
        return "cancelled" if issue.get("state_reason") == "not_planned" else "done"
    return "open"


# ── Priority ─────────────────────────────────────────────────────────────────

def priority_to_label(priority) -> str:
    if priority not in PRIORITIES:
        priority = DEFAULT_PRIORITY
    return f"{PRIORITY_LABEL_PREFIX}{priority}"


def labels_to_priority(labels) -> str:
    for name in _label_names(labels):
        if name.startswith(PRIORITY_LABEL_PREFIX):
            value = name[len(PRIORITY_LABEL_PREFIX):]
            return value if value in PRIORITIES else DEFAULT_PRIORITY
    return DEFAULT_PRIORITY


# ── Labels ───────────────────────────────────────────────────────────────────

def free_text_labels(labels) -> list[str]:
    """Drop the ``status:`` / ``priority:`` labels, keep everything else in order."""
    return [
        name for name in _label_names(labels)
        if not name.startswith(STATUS_LABEL_PREFIX) and not name.startswith(PRIORITY_LABEL_PREFIX)
    ]


def build_issue_labels(ticket) -> list[str]:
    """Labels for the outbound issue: status, priority, then the ticket's own labels."""
    labels = []
    status_label = status_to_label(ticket.status)
    if status_label:
        labels.append(status_label)
    labels.append(priority_to_label(ticket.priority))
    for name in free_text_labels(ticket.labels):
        if name not in labels:
            labels.append(name)
    return labels


# ── Body ─────────────────────────────────────────────────────────────────────

def build_issue_body(description, ticket_id) -> str:
    return f"{description or ''}{SYNC_FOOTER_TEMPLATE.format(ticket_id=ticket_id)}"


def strip_sync_footer(body) -> str:
    """Remove the sync footer so round trips never accumulate footers."""
    if not body:
        return ""
    return _SYNC_FOOTER_RE.sub("", body)


def footer_ticket_id(body):
    """Ticket id carried in the sync footer of *body*, or None."""
    match = _FOOTER_TICKET_ID_RE.search(body or "")
    return match.group(1) if match else None


def build_issue_payload(ticket) -> dict:
    """Full create/update payload for the outbound issue."""
    payload = {
        "title": ticket.title,
        "body": build_issue_body(ticket.description, ticket.id),
        "labels": build_issue_labels(ticket),
        "state": issue_state_for(ticket.status),
    }
    reason = state_reason_for(ticket.status)
    if reason:
        payload["state_reason"] = reason
    return payload


def ticket_fields_from_issue(issue: dict) -> dict:
    """Ticket column values derived from an incoming issue."""
    return {
        "title": issue.get("title") or f"GitHub issue #{issue.get('number')}",
        "description": strip_sync_footer(issue.get("body")),
        "status": resolve_inbound_status(issue),
        "priority": labels_to_priority(issue.get("labels")),
        "labels": free_text_labels(issue.get("labels")),
    }
