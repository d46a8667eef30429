from fastapi import APIRouter, Depends
from sqlmodel import Session

from tickethub.api.deps import SessionDep
from tickethub.domain.schemas import (
    CategoryAssign, FolderAssign, PinUpdate, TagAssign, TicketDetail, TicketImport,
    TicketListParams, TicketPage, TicketRead,
)
from tickethub.domain.models import Category, LocalTag
from tickethub.services import category_service, tag_service, ticket_service

router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.get("", response_model=TicketPage)
def get_tickets(params: TicketListParams = Depends(), session: Session = Depends(SessionDep)):
    return ticket_service.list_tickets(session, params)


@router.get("/pinned", response_model=list[TicketRead])
def get_pinned(session: Session = Depends(SessionDep)):
    return ticket_service.list_pinned(session)


@router.post("/import", response_model=TicketRead)
async def post_import(payload: TicketImport, session: Session = Depends(SessionDep)):
    return await ticket_service.import_ticket(session, payload.provider_id, payload.external_id.strip())


@router.get("/{ticket_id}", response_model=TicketDetail)
def get_one_ticket(ticket_id: int, session: Session = Depends(SessionDep)):
    return ticket_service.get_ticket_detail(session, ticket_id)


@router.post("/{ticket_id}/refresh", response_model=TicketRead)
async def post_refresh(ticket_id: int, session: Session = Depends(SessionDep)):
    return await ticket_service.refresh_ticket(session, ticket_id)


@router.delete("/{ticket_id}")
def remove_ticket(ticket_id: int, session: Session = Depends(SessionDep)):
    ticket_service.delete_ticket(session, ticket_id)
    return {"success": True}


@router.patch("/{ticket_id}/pin", response_model=TicketRead)
def patch_pin(ticket_id: int, payload: PinUpdate, session: Session = Depends(SessionDep)):
    return ticket_service.toggle_pin(session, ticket_id, payload.is_pinned)


@router.patch("/{ticket_id}/folder", response_model=TicketRead)
def patch_folder(ticket_id: int, payload: FolderAssign, session: Session = Depends(SessionDep)):
    return ticket_service.set_ticket_folder(session, ticket_id, payload.folder_id)


@router.get("/{ticket_id}/tags", response_model=list[LocalTag])
def get_ticket_tags(ticket_id: int, session: Session = Depends(SessionDep)):
    ticket_service.require_ticket(session, ticket_id)
    return tag_service.list_ticket_tags(session, ticket_id)


@router.post("/{ticket_id}/tags", response_model=list[LocalTag])
def post_ticket_tag(ticket_id: int, payload: TagAssign, session: Session = Depends(SessionDep)):
    tag_service.assign_tag(session, ticket_id, payload.tag_id)
    return tag_service.list_ticket_tags(session, ticket_id)


@router.delete("/{ticket_id}/tags/{tag_id}", response_model=list[LocalTag])
def remove_ticket_tag(ticket_id: int, tag_id: int, session: Session = Depends(SessionDep)):
    tag_service.remove_tag(session, ticket_id, tag_id)
    return tag_service.list_ticket_tags(session, ticket_id)


@router.get("/{ticket_id}/categories", response_model=list[Category])
def get_ticket_categories(ticket_id: int, session: Session = Depends(SessionDep)):
    ticket_service.require_ticket(session, ticket_id)
    return category_service.list_ticket_categories(session, ticket_id)


@router.post("/{ticket_id}/categories", response_model=list[Category])
def post_ticket_category(ticket_id: int, payload: CategoryAssign, session: Session = Depends(SessionDep)):
    category_service.assign_category(session, ticket_id, payload.category_id)
    return category_service.list_ticket_categories(session, ticket_id)


@router.delete("/{ticket_id}/categories/{category_id}", response_model=list[Category])
def remove_ticket_category(ticket_id: int, category_id: int, session: Session = Depends(SessionDep)):
    category_service.remove_category(session, ticket_id, category_id)
    return category_service.list_ticket_categories(session, ticket_id)
