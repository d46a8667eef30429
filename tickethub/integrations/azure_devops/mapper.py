import html
import re
from typing import Any, Optional

from tickethub.domain.schemas import ExternalComment, ExternalTicket, TicketPriority, TicketStatus

STATUS_RULES: list[tuple[TicketStatus, tuple[str, ...]]] = [
    (TicketStatus.CLOSED, ("done", "closed", "removed")),
    (TicketStatus.RESOLVED, ("resolved", "verified", "complete", "deployed")),
    (TicketStatus.IN_PROGRESS, (
        "active", "in progress", "committed", "in review", "testing",
        "ready for test", "blocked", "on hold", "implementing", "developing",
    )),
    (TicketStatus.OPEN, ("new", "to do", "proposed", "open", "draft", "planned", "assigned")),
]

PRIORITY_SCALE = {
    1: TicketPriority.CRITICAL,
    2: TicketPriority.HIGH,
    3: TicketPriority.MEDIUM,
    4: TicketPriority.LOW,
}

_I = re.IGNORECASE
_IS = re.IGNORECASE | re.DOTALL

# (pattern, replacement) applied in order; anything left in <...> is dropped afterwards
HTML_RULES: list[tuple[re.Pattern, Any]] = [
    (re.compile(r"<br\s*/?>", _I), "\n"),
    (re.compile(r"<hr\s*/?>", _I), "\n---\n\n"),
    (re.compile(r"<blockquote[^>]*>(.*?)</blockquote>", _IS),
     lambda m: "> " + "\n> ".join(m.group(1).strip().split("\n")) + "\n\n"),
    (re.compile(r"</p>", _I), "\n\n"),
    (re.compile(r"</div>", _I), "\n"),
    (re.compile(r"</h[1-6]>", _I), "\n\n"),
    (re.compile(r"<h([1-6])[^>]*>", _I), lambda m: "#" * int(m.group(1)) + " "),
    (re.compile(r"<strong[^>]*>(.*?)</strong>", _I), r"**\1**"),
    (re.compile(r"<b(?:\s[^>]*)?>(.*?)</b>", _I), r"**\1**"),
    (re.compile(r"<em[^>]*>(.*?)</em>", _I), r"*\1*"),
    (re.compile(r"<i(?:\s[^>]*)?>(.*?)</i>", _I), r"*\1*"),
    (re.compile(r"<code[^>]*>(.*?)</code>", _I), r"`\1`"),
    (re.compile(r"<a\s[^>]*href=\"([^\"]*)\"[^>]*>(.*?)</a>", _I), r"[\2](\1)"),
    (re.compile(r"<li[^>]*>", _I), "- "),
    (re.compile(r"</li>", _I), "\n"),
    (re.compile(r"<[^>]+>"), ""),
]


def map_status(ado_state: str) -> TicketStatus:
    s = (ado_state or "").lower()
    for status, keywords in STATUS_RULES:
        if any(k in s for k in keywords):
            return status
    return TicketStatus.UNKNOWN


def map_priority(ado_priority: Optional[Any]) -> TicketPriority:
    try:
        return PRIORITY_SCALE.get(int(ado_priority), TicketPriority.NONE)
    except (TypeError, ValueError):
        return TicketPriority.NONE


def html_to_markdown(source: str) -> str:
    if not source:
        return ""
    text = source
    for pattern, replacement in HTML_RULES:
        text = pattern.sub(replacement, text)
    text = html.unescape(text).replace("\xa0", " ")
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def _display_name(identity: Any) -> Optional[str]:
    if not identity:
        return None
    if isinstance(identity, str):
        return identity
    return identity.get("displayName") or identity.get("uniqueName") or None


def map_azure_work_item(work_item: dict[str, Any], project_url: str) -> ExternalTicket:
    fields = work_item.get("fields") or {}
    wid = work_item["id"]

    assignee = _display_name(fields.get("System.AssignedTo"))
    creator = _display_name(fields.get("System.CreatedBy"))
    participants: list[str] = []
    for name in (assignee, creator):
        if name and name not in participants:
            participants.append(name)

    tags = [t.strip() for t in (fields.get("System.Tags") or "").split(";")]

    return ExternalTicket(
        external_id=str(wid),
        external_url=f"{project_url}/_workitems/edit/{wid}",
        title=fields.get("System.Title") or "",
        description=html_to_markdown(fields.get("System.Description") or ""),
        status=map_status(fields.get("System.State") or ""),
        priority=map_priority(fields.get("Microsoft.VSTS.Common.Priority")),
        assignee=assignee,
        creator=creator,
        participants=participants,
        external_tags=[t for t in tags if t],
    )


def map_azure_comment(comment: dict[str, Any]) -> ExternalComment:
    created = comment.get("createdDate")
    return ExternalComment(
        external_id=str(comment.get("id", "")),
        author=_display_name(comment.get("createdBy")) or "Unknown",
        body=html_to_markdown(comment.get("text") or ""),
        created_at=created,
        updated_at=comment.get("modifiedDate") or created,
    )
