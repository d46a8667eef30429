from sqlmodel import Session, select

from tickethub.domain.errors import NotFoundError
from tickethub.domain.models import TicketNote, utcnow
from tickethub.services import search_index
from tickethub.services.ticket_service import require_ticket


def list_notes(session: Session, ticket_id: int) -> list[TicketNote]:
    return session.exec(
        select(TicketNote).where(TicketNote.ticket_id == ticket_id).order_by(TicketNote.created_at.desc())
    ).all()


def get_note(session: Session, note_id: int) -> TicketNote:
    note = session.get(TicketNote, note_id)
    if not note:
        raise NotFoundError("Note", note_id)
    return note


def create_note(session: Session, ticket_id: int, content: str) -> TicketNote:
    require_ticket(session, ticket_id)
    note = TicketNote(ticket_id=ticket_id, content=content)
    session.add(note)
    session.commit()
    search_index.update_index(session, ticket_id)
    session.refresh(note)
    return note


def update_note(session: Session, note_id: int, content: str) -> TicketNote:
    note = get_note(session, note_id)
    note.content = content
    note.updated_at = utcnow()
    session.add(note)
    session.commit()
    search_index.update_index(session, note.ticket_id)
    session.refresh(note)
    return note


def delete_note(session: Session, note_id: int) -> None:
    note = get_note(session, note_id)
    ticket_id = note.ticket_id
    session.delete(note)
    session.commit()
    search_index.update_index(session, ticket_id)
