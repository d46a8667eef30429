from fastapi import APIRouter, Depends
from sqlmodel import Session

from tickethub.api.deps import SessionDep
from tickethub.domain.schemas import DashboardStats, RecentActivity, TicketRead
from tickethub.services import dashboard_service
from tickethub.services.ticket_service import list_pinned

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/stats", response_model=DashboardStats)
def get_stats(session: Session = Depends(SessionDep)):
    return dashboard_service.get_stats(session)


@router.get("/recent", response_model=list[RecentActivity])
def get_recent(session: Session = Depends(SessionDep)):
    return dashboard_service.recent_activity(session)


@router.get("/pinned", response_model=list[TicketRead])
def get_pinned(session: Session = Depends(SessionDep)):
    return list_pinned(session)
