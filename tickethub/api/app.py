import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from tickethub.db.engine import engine, init_db
from tickethub.domain.errors import InvalidRequestError, NotFoundError, TicketHubError, UpstreamApiError
from tickethub.api.routers.categories import router as categories_router
from tickethub.api.routers.dashboard import router as dashboard_router
from tickethub.api.routers.folders import router as folders_router
from tickethub.api.routers.notes import router as notes_router
from tickethub.api.routers.search import router as search_router
from tickethub.api.routers.settings import router as settings_router
from tickethub.api.routers.sync import router as sync_router
from tickethub.api.routers.tags import router as tags_router
from tickethub.api.routers.tickets import router as tickets_router
from tickethub.mcp.server import mcp
from tickethub.services import search_index
from tickethub.services.sync_service import SyncOrchestrator

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("tickethub")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_db()
    with Session(engine) as session:
        search_index.ensure_index(session)

    app.state.sync = SyncOrchestrator(engine)
    app.state.sync.start()

    # MCP session manager
    async with mcp.session_manager.run():
        try:
            yield
        finally:
            # Shutdown
            app.state.sync.stop()


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found(_: Request, exc: NotFoundError):
        return _error(404, exc)

    @app.exception_handler(InvalidRequestError)
    async def invalid_request(_: Request, exc: InvalidRequestError):
        return _error(400, exc)

    @app.exception_handler(UpstreamApiError)
    async def upstream_error(_: Request, exc: UpstreamApiError):
        logger.warning("Upstream failure: %s", exc)
        return _error(502, exc)

    @app.exception_handler(TicketHubError)
    async def ticket_hub_error(_: Request, exc: TicketHubError):
        logger.exception("Unhandled ticket hub error")
        return _error(500, exc)


def create_app() -> FastAPI:
    app = FastAPI(title="TicketHub", lifespan=lifespan)
    register_exception_handlers(app)

    @app.get("/api/health", tags=["Health"])
    def health():
        return {"status": "ok"}

    for router in (
        tickets_router,
        folders_router,
        search_router,
        sync_router,
        notes_router,
        tags_router,
        categories_router,
        settings_router,
        dashboard_router,
    ):
        app.include_router(router, prefix="/api")

    # MCP on http://localhost:8000/mcp
    app.mount("/mcp", mcp.streamable_http_app())

    return app


app = create_app()
