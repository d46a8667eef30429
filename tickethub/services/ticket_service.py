import math
import logging
from enum import Enum
from typing import Optional

from sqlalchemy import case, delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from tickethub.domain.errors import InvalidRequestError, NotFoundError
from tickethub.domain.models import Folder, Ticket, TicketCategory, TicketComment, TicketLocalTag, utcnow
from tickethub.domain.schemas import (
    CommentRead, SortOrder, TicketDetail, TicketListParams, TicketPage, TicketRead,
)
from tickethub.integrations.registry import get_provider_client, map_ticket, provider_config
from tickethub.services import search_index
from tickethub.services.folder_service import get_descendant_ids
from tickethub.services.provider_service import get_provider

logger = logging.getLogger("ticket_service")

SORT_FIELDS = {
    "title": Ticket.title,
    "status": Ticket.status,
    "priority": Ticket.priority,
    "created_at": Ticket.created_at,
    "updated_at": Ticket.updated_at,
    "synced_at": Ticket.synced_at,
    "external_id": Ticket.external_id,
}

UNFILED = "unfiled"


def _normalize(v):
    # accepts Enum members (schemas) or plain strings
    return v.value if isinstance(v, Enum) else v


async def import_ticket(session: Session, provider_id: int, external_id: str) -> Ticket:
    """Fetch a ticket from its provider and upsert it by (provider_id, external_id).

    Mapped fields are overwritten, never merged, and the comment set is
    replaced wholesale. The search entry is rebuilt last, once the ticket and
    its comments are committed.
    """
    provider = get_provider(session, provider_id)
    config = provider_config(provider)

    async with get_provider_client(config) as client:
        raw_ticket = await client.fetch_ticket(external_id)
        raw_comments = await client.fetch_comments(external_id)
        external = map_ticket(config.type, raw_ticket, raw_comments, client.web_url)

    fields = external.model_dump(mode="json", exclude={"comments"})
    now = utcnow()

    ticket = session.exec(
        select(Ticket).where(Ticket.provider_id == provider_id, Ticket.external_id == external.external_id)
    ).first()
    if ticket:
        for k, v in fields.items():
            setattr(ticket, k, v)
        ticket.synced_at = now
        ticket.updated_at = now
    else:
        ticket = Ticket(provider_id=provider_id, provider_type=config.type.value, synced_at=now, **fields)
    session.add(ticket)
    session.flush()

    session.execute(delete(TicketComment).where(TicketComment.ticket_id == ticket.id))
    for comment in external.comments:
        session.add(TicketComment(ticket_id=ticket.id, **comment.model_dump()))
    session.commit()

    search_index.update_index(session, ticket.id)
    session.refresh(ticket)
    logger.info("Imported %s from provider %s (ticket_id=%s)", ticket.external_id, provider_id, ticket.id)
    return ticket


async def refresh_ticket(session: Session, ticket_id: int) -> Ticket:
    ticket = require_ticket(session, ticket_id)
    return await import_ticket(session, ticket.provider_id, ticket.external_id)


def get_ticket(session: Session, ticket_id: int) -> Ticket | None:
    return session.get(Ticket, ticket_id)


def require_ticket(session: Session, ticket_id: int) -> Ticket:
    ticket = session.get(Ticket, ticket_id)
    if not ticket:
        raise NotFoundError("Ticket", ticket_id)
    return ticket


def get_ticket_comments(session: Session, ticket_id: int) -> list[TicketComment]:
    return session.exec(
        select(TicketComment)
        .where(TicketComment.ticket_id == ticket_id)
        .order_by(TicketComment.created_at.asc(), TicketComment.id.asc())
    ).all()


def get_ticket_detail(session: Session, ticket_id: int) -> TicketDetail:
    ticket = require_ticket(session, ticket_id)
    comments = get_ticket_comments(session, ticket_id)
    return TicketDetail(
        **TicketRead.model_validate(ticket).model_dump(),
        comments=[CommentRead.model_validate(c) for c in comments],
    )


def _folder_condition(session: Session, folder_id: str):
    if folder_id == UNFILED:
        return Ticket.folder_id.is_(None)
    try:
        root = int(folder_id)
    except ValueError:
        raise InvalidRequestError(f"Invalid folder_id: {folder_id!r}")
    return Ticket.folder_id.in_([root, *get_descendant_ids(session, root)])


def list_tickets(session: Session, params: TicketListParams) -> TicketPage:
    conditions = []
    ranked_ids: Optional[list[int]] = None

    match = search_index.build_match_query(params.q) if params.q else None
    if match:
        try:
            ranked_ids = search_index.match_ticket_ids(session, match)
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("Index query failed for %r, filtering by substring: %s", params.q, e)
            conditions.append(search_index.substring_filter(params.q))
        if ranked_ids is not None:
            conditions.append(Ticket.id.in_(ranked_ids))

    if params.status:
        conditions.append(Ticket.status == _normalize(params.status))
    if params.priority:
        conditions.append(Ticket.priority == _normalize(params.priority))
    if params.provider_type:
        conditions.append(Ticket.provider_type == _normalize(params.provider_type))
    if params.assignee:
        conditions.append(Ticket.assignee == params.assignee)
    if params.category_id:
        conditions.append(Ticket.id.in_(
            select(TicketCategory.ticket_id).where(TicketCategory.category_id == params.category_id)
        ))
    if params.tag_id:
        conditions.append(Ticket.id.in_(
            select(TicketLocalTag.ticket_id).where(TicketLocalTag.tag_id == params.tag_id)
        ))
    if params.folder_id:
        conditions.append(_folder_condition(session, params.folder_id))

    total = session.exec(select(func.count()).select_from(Ticket).where(*conditions)).one()

    stmt = select(Ticket).where(*conditions)
    if ranked_ids:
        # relevance wins over the requested sort
        stmt = stmt.order_by(case({tid: pos for pos, tid in enumerate(ranked_ids)}, value=Ticket.id))
    elif params.sort_by in SORT_FIELDS:
        column = SORT_FIELDS[params.sort_by]
        stmt = stmt.order_by(column.asc() if params.sort_order == SortOrder.ASC else column.desc(), Ticket.id)
    else:
        stmt = stmt.order_by(Ticket.updated_at.desc(), Ticket.id)

    offset = (params.page - 1) * params.per_page
    rows = session.exec(stmt.offset(offset).limit(params.per_page)).all()

    return TicketPage(
        data=[TicketRead.model_validate(t) for t in rows],
        total=total,
        page=params.page,
        per_page=params.per_page,
        total_pages=math.ceil(total / params.per_page),
    )


def delete_ticket(session: Session, ticket_id: int) -> None:
    ticket = require_ticket(session, ticket_id)
    external_id = ticket.external_id
    # the index row is not covered by foreign keys
    search_index.remove_entry(session, ticket_id)
    session.delete(ticket)
    session.commit()
    logger.info("Deleted ticket %s (%s)", ticket_id, external_id)


def toggle_pin(session: Session, ticket_id: int, pinned: bool) -> Ticket:
    ticket = require_ticket(session, ticket_id)
    ticket.is_pinned = pinned
    session.add(ticket)
    session.commit()
    session.refresh(ticket)
    return ticket


def list_pinned(session: Session) -> list[Ticket]:
    return session.exec(
        select(Ticket).where(Ticket.is_pinned == True).order_by(Ticket.updated_at.desc())  # noqa: E712
    ).all()


def set_ticket_folder(session: Session, ticket_id: int, folder_id: Optional[int]) -> Ticket:
    ticket = require_ticket(session, ticket_id)
    if folder_id is not None and not session.get(Folder, folder_id):
        raise InvalidRequestError("Folder not found")
    ticket.folder_id = folder_id
    session.add(ticket)
    session.commit()
    session.refresh(ticket)
    return ticket
