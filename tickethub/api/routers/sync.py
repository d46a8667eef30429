from fastapi import APIRouter, Depends
from sqlmodel import Session

from tickethub.api.deps import OrchestratorDep, SessionDep
from tickethub.domain.schemas import FetchMyTicketsRequest, FetchMyTicketsResult, RebuildResult, RefreshResult
from tickethub.services import search_index
from tickethub.services.sync_service import SyncOrchestrator

router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post("/refresh-all", response_model=RefreshResult)
async def post_refresh_all(
    session: Session = Depends(SessionDep),
    sync: SyncOrchestrator = Depends(OrchestratorDep),
):
    return await sync.refresh_all(session)


@router.post("/fetch-my-tickets", response_model=FetchMyTicketsResult)
async def post_fetch_my_tickets(
    payload: FetchMyTicketsRequest,
    session: Session = Depends(SessionDep),
    sync: SyncOrchestrator = Depends(OrchestratorDep),
):
    return await sync.fetch_my_tickets(session, payload)


@router.post("/rebuild-index", response_model=RebuildResult)
def post_rebuild_index(session: Session = Depends(SessionDep)):
    return RebuildResult(rebuilt=search_index.rebuild_index(session))
