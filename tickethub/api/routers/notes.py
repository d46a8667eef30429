from fastapi import APIRouter, Depends
from sqlmodel import Session

from tickethub.api.deps import SessionDep
from tickethub.domain.models import TicketNote
from tickethub.domain.schemas import NoteWrite
from tickethub.services import note_service
from tickethub.services.ticket_service import require_ticket

router = APIRouter(tags=["Notes"])


@router.get("/tickets/{ticket_id}/notes", response_model=list[TicketNote])
def get_notes(ticket_id: int, session: Session = Depends(SessionDep)):
    require_ticket(session, ticket_id)
    return note_service.list_notes(session, ticket_id)


@router.post("/tickets/{ticket_id}/notes", response_model=TicketNote)
def post_note(ticket_id: int, payload: NoteWrite, session: Session = Depends(SessionDep)):
    return note_service.create_note(session, ticket_id, payload.content)


@router.put("/notes/{note_id}", response_model=TicketNote)
def put_note(note_id: int, payload: NoteWrite, session: Session = Depends(SessionDep)):
    return note_service.update_note(session, note_id, payload.content)


@router.delete("/notes/{note_id}")
def remove_note(note_id: int, session: Session = Depends(SessionDep)):
    note_service.delete_note(session, note_id)
    return {"success": True}
