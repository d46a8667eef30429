import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from tickethub.domain.errors import InvalidRequestError
from tickethub.domain.models import Ticket
from tickethub.domain.schemas import (
    FetchMyTicketsRequest, FetchMyTicketsResult, ProviderType, RefreshResult,
)
from tickethub.integrations.base import ProviderClient
from tickethub.services import category_service, settings_service, tag_service, ticket_service
from tickethub.services.provider_service import get_provider

logger = logging.getLogger("sync_service")

SYNC_JOB_ID = "refresh_all_tickets"

JIRA_OPEN_FILTER = " AND status NOT IN (Done, Closed, Resolved)"
AZURE_OPEN_FILTER = " AND [System.State] NOT IN ('Closed','Done','Resolved','Removed')"


def build_jira_queries(request: FetchMyTicketsRequest) -> tuple[list[str], list[str]]:
    """JQL for a fetch-my-tickets request, as (required, optional) query lists.

    "Request participants" only exists on Service Management projects, so it
    runs on its own and may fail without sinking the rest.
    """
    status_filter = "" if request.include_closed else JIRA_OPEN_FILTER
    required, optional = [], []

    conditions = []
    if request.assigned:
        conditions.append("assignee = currentUser()")
    if request.watched:
        conditions.append("watcher = currentUser()")
    if conditions:
        required.append(f"({' OR '.join(conditions)}){status_filter}")

    if request.participant:
        optional.append(f'"Request participants" = currentUser(){status_filter}')
    return required, optional


def build_azure_queries(request: FetchMyTicketsRequest) -> tuple[list[str], list[str]]:
    # no WIQL field for "followed"; created-by stands in for watched
    conditions = []
    if request.assigned:
        conditions.append("[System.AssignedTo] = @Me")
    if request.watched:
        conditions.append("[System.CreatedBy] = @Me")
    if request.participant:
        conditions.append("[System.ChangedBy] = @Me")
    if not conditions:
        return [], []

    wiql = f"SELECT [System.Id] FROM WorkItems WHERE ({' OR '.join(conditions)})"
    if not request.include_closed:
        wiql += AZURE_OPEN_FILTER
    return [wiql], []


QUERY_BUILDERS = {
    ProviderType.JIRA: build_jira_queries,
    ProviderType.AZURE_DEVOPS: build_azure_queries,
}


async def collect_ids(client: ProviderClient, query: str) -> list[str]:
    """Run a saved query, following page tokens until the provider has no more."""
    ids: list[str] = []
    page_token: Optional[str] = None
    while True:
        page = await client.search_by_query(query, page_token)
        ids.extend(page.ids)
        if not page.next_page_token or page.next_page_token == page_token:
            return ids
        page_token = page.next_page_token


class SyncOrchestrator:
    """Bulk refresh and saved-query import, plus the periodic refresh timer.

    Imports are awaited one ticket at a time. A manual refresh can overlap the
    scheduled one; both go through the same upsert so the overlap only costs
    duplicate fetches.
    """

    def __init__(self, engine: Engine, scheduler: Optional[AsyncIOScheduler] = None):
        self.engine = engine
        self.scheduler = scheduler or AsyncIOScheduler()
        self.interval_minutes = 0
        self._stopping = False

    async def refresh_all(self, session: Session) -> RefreshResult:
        targets = session.exec(select(Ticket.id, Ticket.provider_id, Ticket.external_id)).all()
        result = RefreshResult()

        for ticket_id, provider_id, external_id in targets:
            try:
                await ticket_service.import_ticket(session, provider_id, external_id)
                result.success += 1
            except Exception as e:
                session.rollback()
                logger.error("Failed to refresh ticket %s (%s): %s", ticket_id, external_id, e)
                result.failed += 1

        logger.info("Refresh finished: %s succeeded, %s failed", result.success, result.failed)
        return result

    async def fetch_my_tickets(self, session: Session, request: FetchMyTicketsRequest) -> FetchMyTicketsResult:
        if not request.has_query():
            raise InvalidRequestError("custom_query or one of assigned/watched/participant is required")

        provider = get_provider(session, request.provider_id)
        config = ticket_service.provider_config(provider)
        required, optional = QUERY_BUILDERS[config.type](request)
        if request.custom_query and request.custom_query.strip():
            required.append(request.custom_query.strip())

        found: list[str] = []
        async with ticket_service.get_provider_client(config) as client:
            for query in required:
                found.extend(await collect_ids(client, query))
            for query in optional:
                try:
                    found.extend(await collect_ids(client, query))
                except Exception as e:
                    logger.warning("Optional query skipped for provider %s (%s): %s", provider.id, query, e)

        external_ids = list(dict.fromkeys(found))
        result = FetchMyTicketsResult(total=len(external_ids))

        for external_id in external_ids:
            existed = session.exec(
                select(Ticket.id).where(Ticket.provider_id == provider.id, Ticket.external_id == external_id)
            ).first()
            try:
                ticket = await ticket_service.import_ticket(session, provider.id, external_id)
                self._organize(session, ticket.id, request)
            except Exception as e:
                session.rollback()
                logger.error("Failed to import %s from provider %s: %s", external_id, provider.id, e)
                result.failed += 1
                continue
            if existed is None:
                result.imported += 1
            else:
                result.updated += 1

        logger.info(
            "Fetched my tickets from provider %s: %s new, %s updated, %s failed of %s",
            provider.id, result.imported, result.updated, result.failed, result.total,
        )
        return result

    def _organize(self, session: Session, ticket_id: int, request: FetchMyTicketsRequest) -> None:
        if request.folder_id is not None:
            ticket_service.set_ticket_folder(session, ticket_id, request.folder_id)
        for tag_id in request.tag_ids:
            tag_service.assign_tag(session, ticket_id, tag_id)
        for category_id in request.category_ids:
            category_service.assign_category(session, ticket_id, category_id)

    # --- periodic refresh -----------------------------------------------------

    async def _scheduled_refresh(self) -> None:
        logger.info("Running periodic sync...")
        try:
            with Session(self.engine) as session:
                await self.refresh_all(session)
        except Exception as e:
            logger.exception("Periodic sync failed: %s", e)

    def start(self) -> int:
        """(Re)schedule refresh_all from the persisted interval. Returns the interval in minutes."""
        with Session(self.engine) as session:
            self.interval_minutes = settings_service.get_sync_interval_minutes(session)

        if self.scheduler.get_job(SYNC_JOB_ID):
            self.scheduler.remove_job(SYNC_JOB_ID)
        if self.interval_minutes <= 0:
            logger.info("Periodic sync disabled")
            return self.interval_minutes

        self.scheduler.add_job(
            self._scheduled_refresh,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=SYNC_JOB_ID,
            name="Refresh all tickets",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if not self.scheduler.running:
            self._stopping = False
            self.scheduler.start()
        logger.info("Periodic sync started: every %s minutes", self.interval_minutes)
        return self.interval_minutes

    def stop(self) -> None:
        # the job goes first: AsyncIOScheduler may finish shutting down on a later loop tick
        if self.scheduler.get_job(SYNC_JOB_ID):
            self.scheduler.remove_job(SYNC_JOB_ID)
        if self.scheduler.running and not self._stopping:
            self._stopping = True
            self.scheduler.shutdown(wait=False)
            logger.info("Periodic sync stopped")
