from sqlmodel import Session, select

from tickethub.domain.errors import NotFoundError
from tickethub.domain.models import LocalTag, TicketLocalTag
from tickethub.services import search_index
from tickethub.services.ticket_service import require_ticket


def get_tag(session: Session, tag_id: int) -> LocalTag:
    tag = session.get(LocalTag, tag_id)
    if not tag:
        raise NotFoundError("Tag", tag_id)
    return tag


def _tagged_ticket_ids(session: Session, tag_id: int) -> list[int]:
    return session.exec(select(TicketLocalTag.ticket_id).where(TicketLocalTag.tag_id == tag_id)).all()


def list_tags(session: Session) -> list[LocalTag]:
    return session.exec(select(LocalTag).order_by(LocalTag.name)).all()


def create_tag(session: Session, name: str, color: str = "#8b5cf6") -> LocalTag:
    tag = LocalTag(name=name, color=color)
    session.add(tag)
    session.commit()
    session.refresh(tag)
    return tag


def update_tag(session: Session, tag_id: int, name: str, color: str) -> LocalTag:
    tag = get_tag(session, tag_id)
    renamed = tag.name != name
    tag.name = name
    tag.color = color
    session.add(tag)
    session.commit()
    if renamed:
        search_index.update_index_many(session, _tagged_ticket_ids(session, tag_id))
    session.refresh(tag)
    return tag


def delete_tag(session: Session, tag_id: int) -> None:
    tag = get_tag(session, tag_id)
    affected = _tagged_ticket_ids(session, tag_id)
    session.delete(tag)
    session.commit()
    search_index.update_index_many(session, affected)


def assign_tag(session: Session, ticket_id: int, tag_id: int) -> None:
    require_ticket(session, ticket_id)
    get_tag(session, tag_id)
    if not session.get(TicketLocalTag, (ticket_id, tag_id)):
        session.add(TicketLocalTag(ticket_id=ticket_id, tag_id=tag_id))
        session.commit()
    search_index.update_index(session, ticket_id)


def remove_tag(session: Session, ticket_id: int, tag_id: int) -> None:
    link = session.get(TicketLocalTag, (ticket_id, tag_id))
    if link:
        session.delete(link)
        session.commit()
    search_index.update_index(session, ticket_id)


def list_ticket_tags(session: Session, ticket_id: int) -> list[LocalTag]:
    return session.exec(
        select(LocalTag)
        .join(TicketLocalTag, TicketLocalTag.tag_id == LocalTag.id)
        .where(TicketLocalTag.ticket_id == ticket_id)
        .order_by(LocalTag.name)
    ).all()
