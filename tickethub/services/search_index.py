"""Full-text index over tickets.

``ticket_fts`` is an FTS5 table keyed by ticket id (rowid). Every row is derived
from the ticket, its notes and comments, and its external and local tags, so
the whole table can be dropped and rebuilt at any time.
"""
import re
import logging
from typing import Optional

from sqlalchemy import func, or_, text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from tickethub.domain.models import LocalTag, Ticket, TicketComment, TicketLocalTag, TicketNote
from tickethub.domain.schemas import SearchHit

logger = logging.getLogger("search_index")

MIN_QUERY_LENGTH = 2
SEARCH_LIMIT = 20

# characters with a meaning in FTS5 query syntax
_FTS_SPECIAL = re.compile(r"[\"“”(){}\[\]^~:!@#$%&\\*]")

_SEARCH_SQL = text(
    "SELECT ticket_fts.rowid AS ticket_id, t.external_id AS external_id, t.title AS title, "
    "snippet(ticket_fts, 2, '<mark>', '</mark>', '...', 32) AS snippet, ticket_fts.rank AS rank "
    "FROM ticket_fts JOIN ticket t ON t.id = ticket_fts.rowid "
    "WHERE ticket_fts MATCH :match ORDER BY ticket_fts.rank LIMIT :limit"
)


def build_match_query(raw: str) -> Optional[str]:
    """Turn user input into an FTS5 expression: ``"t1"* OR "t2"*``.

    OR favours recall; bm25 ranking already puts documents matching more
    terms first. Returns None when fewer than two characters survive
    sanitizing.
    """
    cleaned = _FTS_SPECIAL.sub("", raw or "").strip()
    if len(cleaned) < MIN_QUERY_LENGTH:
        return None
    terms = cleaned.split()
    if not terms:
        return None
    return " OR ".join(f'"{t}"*' for t in terms)


def _write_entry(session: Session, ticket: Ticket) -> None:
    notes = session.exec(select(TicketNote.content).where(TicketNote.ticket_id == ticket.id)).all()
    comments = session.exec(select(TicketComment.body).where(TicketComment.ticket_id == ticket.id)).all()
    local_tags = session.exec(
        select(LocalTag.name)
        .join(TicketLocalTag, TicketLocalTag.tag_id == LocalTag.id)
        .where(TicketLocalTag.ticket_id == ticket.id)
    ).all()
    tags = [*(ticket.external_tags or []), *local_tags]

    session.execute(text("DELETE FROM ticket_fts WHERE rowid = :id"), {"id": ticket.id})
    session.execute(
        text(
            "INSERT INTO ticket_fts (rowid, external_id, title, description, notes, comments, tags) "
            "VALUES (:id, :external_id, :title, :description, :notes, :comments, :tags)"
        ),
        {
            "id": ticket.id,
            "external_id": ticket.external_id,
            "title": ticket.title,
            "description": ticket.description,
            "notes": " ".join(notes),
            "comments": " ".join(comments),
            "tags": " ".join(tags),
        },
    )


def update_index(session: Session, ticket_id: int) -> None:
    ticket = session.get(Ticket, ticket_id)
    if not ticket:
        return
    _write_entry(session, ticket)
    session.commit()


def update_index_many(session: Session, ticket_ids) -> None:
    for ticket_id in ticket_ids:
        ticket = session.get(Ticket, ticket_id)
        if ticket:
            _write_entry(session, ticket)
    session.commit()


def remove_entry(session: Session, ticket_id: int) -> None:
    session.execute(text("DELETE FROM ticket_fts WHERE rowid = :id"), {"id": ticket_id})


def rebuild_index(session: Session) -> int:
    session.execute(text("DELETE FROM ticket_fts"))
    tickets = session.exec(select(Ticket)).all()
    for ticket in tickets:
        _write_entry(session, ticket)
    session.commit()
    logger.info("Search index rebuilt: %s tickets indexed", len(tickets))
    return len(tickets)


def ensure_index(session: Session) -> Optional[int]:
    """Rebuild the index when it is empty but tickets exist (new or damaged store)."""
    ticket_count = session.exec(select(func.count()).select_from(Ticket)).one()
    if ticket_count == 0:
        return None
    try:
        indexed = session.execute(text("SELECT COUNT(*) FROM ticket_fts")).scalar_one()
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning("Search index not readable, searches will use the substring fallback: %s", e)
        return None
    if indexed > 0:
        return None
    logger.info("Search index is empty but %s tickets exist, rebuilding", ticket_count)
    return rebuild_index(session)


def match_ticket_ids(session: Session, match: str) -> list[int]:
    """Ticket ids matching an FTS expression, best rank first. Raises on index errors."""
    rows = session.execute(
        text("SELECT rowid FROM ticket_fts WHERE ticket_fts MATCH :match ORDER BY rank"),
        {"match": match},
    ).all()
    return [row[0] for row in rows]


def substring_filter(raw: str):
    term = raw.strip()
    return or_(
        Ticket.title.icontains(term, autoescape=True),
        Ticket.description.icontains(term, autoescape=True),
        Ticket.external_id.icontains(term, autoescape=True),
    )


def search(session: Session, raw: str, limit: int = SEARCH_LIMIT) -> list[SearchHit]:
    q = (raw or "").strip()
    if len(q) < MIN_QUERY_LENGTH:
        return []

    match = build_match_query(q)
    if match:
        try:
            rows = session.execute(_SEARCH_SQL, {"match": match, "limit": limit}).mappings().all()
            return [SearchHit(**row) for row in rows]
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("Index query failed for %r, falling back to substring match: %s", q, e)

    tickets = session.exec(select(Ticket).where(substring_filter(q)).limit(limit)).all()
    return [
        SearchHit(
            ticket_id=t.id,
            external_id=t.external_id,
            title=t.title,
            snippet=(t.description or "")[:100],
            rank=0,
        )
        for t in tickets
    ]
