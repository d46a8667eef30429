from fastapi import Request
from sqlmodel import Session

from tickethub.db.engine import engine
from tickethub.services.sync_service import SyncOrchestrator


def SessionDep():
    with Session(engine) as session:
        yield session


def OrchestratorDep(request: Request) -> SyncOrchestrator:
    return request.app.state.sync
