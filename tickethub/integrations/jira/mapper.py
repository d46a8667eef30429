from typing import Any, Optional

from tickethub.domain.schemas import ExternalComment, ExternalTicket, TicketPriority, TicketStatus

# Checked in order: terminal states first, so "Done (verified)" stays closed.
STATUS_RULES: list[tuple[TicketStatus, tuple[str, ...]]] = [
    (TicketStatus.CLOSED, ("done", "closed")),
    (TicketStatus.RESOLVED, ("resolved", "fixed", "verified", "complete", "deployed")),
    (TicketStatus.IN_PROGRESS, (
        "in progress", "in review", "in development", "in test", "testing", "review",
        "code review", "developing", "active", "committed", "ready for test",
        "ready for review", "waiting", "on hold", "blocked", "pending",
        "awaiting", "selected", "implementing",
    )),
    (TicketStatus.OPEN, (
        "open", "to do", "new", "backlog", "created", "reopened", "todo",
        "draft", "not started", "ready", "planned", "proposed", "assigned",
    )),
]

PRIORITY_RULES: list[tuple[TicketPriority, tuple[str, ...]]] = [
    (TicketPriority.CRITICAL, ("critical", "blocker", "highest")),
    (TicketPriority.HIGH, ("high", "major")),
    (TicketPriority.MEDIUM, ("medium", "normal")),
    (TicketPriority.LOW, ("low", "minor", "trivial")),
]


def map_status(jira_status: str) -> TicketStatus:
    s = (jira_status or "").lower()
    for status, keywords in STATUS_RULES:
        if any(k in s for k in keywords):
            return status
    return TicketStatus.UNKNOWN


def map_priority(jira_priority: Optional[str]) -> TicketPriority:
    if not jira_priority:
        return TicketPriority.NONE
    p = jira_priority.lower()
    for priority, keywords in PRIORITY_RULES:
        if any(k in p for k in keywords):
            return priority
    return TicketPriority.NONE


def _apply_marks(text: str, marks: list[dict]) -> str:
    for mark in marks:
        kind = mark.get("type")
        if kind == "strong":
            text = f"**{text}**"
        elif kind == "em":
            text = f"*{text}*"
        elif kind == "code":
            text = f"`{text}`"
        elif kind == "link":
            href = (mark.get("attrs") or {}).get("href", "")
            text = f"[{text}]({href})"
    return text


def adf_to_markdown(node: Any) -> str:
    """Render an Atlassian Document Format node as markdown.

    REST v2 hands back plain strings, which pass through untouched. Node types
    without a rule contribute their children's text only.
    """
    if not node:
        return ""
    if isinstance(node, str):
        return node

    kind = node.get("type")
    attrs = node.get("attrs") or {}
    if kind == "text":
        return _apply_marks(node.get("text") or "", node.get("marks") or [])

    children = "".join(adf_to_markdown(child) for child in node.get("content") or [])

    if kind == "paragraph":
        return children + "\n\n"
    if kind == "heading":
        return "#" * int(attrs.get("level") or 1) + " " + children + "\n\n"
    if kind in ("bulletList", "orderedList"):
        return children + "\n"
    if kind == "listItem":
        return "- " + children.strip() + "\n"
    if kind == "codeBlock":
        return "```\n" + children + "\n```\n\n"
    if kind == "blockquote":
        return "> " + "\n> ".join(children.strip().split("\n")) + "\n\n"
    if kind == "hardBreak":
        return "\n"
    if kind == "rule":
        return "---\n\n"
    if kind == "mention":
        return "@" + (attrs.get("text") or "unknown")
    return children


def _display_name(user: Optional[dict]) -> Optional[str]:
    if not user:
        return None
    return user.get("displayName") or None


def map_jira_issue(issue: dict[str, Any], base_url: str) -> ExternalTicket:
    fields = issue.get("fields") or {}
    key = issue["key"]

    assignee = _display_name(fields.get("assignee"))
    creator = _display_name(fields.get("creator"))
    participants: list[str] = []
    for name in (assignee, creator):
        if name and name not in participants:
            participants.append(name)

    return ExternalTicket(
        external_id=key,
        external_url=f"{base_url.rstrip('/')}/browse/{key}",
        title=fields.get("summary") or "",
        description=adf_to_markdown(fields.get("description")).strip(),
        status=map_status((fields.get("status") or {}).get("name") or ""),
        priority=map_priority((fields.get("priority") or {}).get("name")),
        assignee=assignee,
        creator=creator,
        participants=participants,
        external_tags=list(fields.get("labels") or []),
    )


def map_jira_comment(comment: dict[str, Any]) -> ExternalComment:
    created = comment.get("created")
    return ExternalComment(
        external_id=str(comment.get("id", "")),
        author=_display_name(comment.get("author")) or "Unknown",
        body=adf_to_markdown(comment.get("body")).strip(),
        created_at=created,
        updated_at=comment.get("updated") or created,
    )
