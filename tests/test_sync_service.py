import asyncio

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import select

from tickethub.domain.errors import InvalidRequestError
from tickethub.domain.models import Ticket
from tickethub.domain.schemas import FetchMyTicketsRequest
from tickethub.services import category_service, folder_service, settings_service, tag_service
from tickethub.services.sync_service import (
    JIRA_OPEN_FILTER, SYNC_JOB_ID, SyncOrchestrator, build_azure_queries, build_jira_queries,
)

ASSIGNED_JQL = f"(assignee = currentUser()){JIRA_OPEN_FILTER}"
PARTICIPANT_JQL = f'"Request participants" = currentUser(){JIRA_OPEN_FILTER}'


class TestQueryBuilders:
    def test_jira_conditions_are_ored(self):
        request = FetchMyTicketsRequest(provider_id=1, assigned=True, watched=True)
        required, optional = build_jira_queries(request)
        assert required == [
            "(assignee = currentUser() OR watcher = currentUser()) AND status NOT IN (Done, Closed, Resolved)"
        ]
        assert optional == []

    def test_jira_participant_runs_alone(self):
        request = FetchMyTicketsRequest(provider_id=1, participant=True, include_closed=True)
        required, optional = build_jira_queries(request)
        assert required == []
        assert optional == ['"Request participants" = currentUser()']

    def test_azure_wiql(self):
        request = FetchMyTicketsRequest(provider_id=1, assigned=True, participant=True)
        [wiql], optional = build_azure_queries(request)
        assert wiql == (
            "SELECT [System.Id] FROM WorkItems WHERE ([System.AssignedTo] = @Me OR [System.ChangedBy] = @Me)"
            " AND [System.State] NOT IN ('Closed','Done','Resolved','Removed')"
        )
        assert optional == []

    def test_request_needs_a_query(self):
        with pytest.raises(ValueError):
            FetchMyTicketsRequest(provider_id=1)
        assert FetchMyTicketsRequest(provider_id=1, custom_query="project = X").has_query()


class TestFetchMyTickets:
    @pytest.mark.asyncio
    async def test_ids_are_deduplicated_across_pages(self, engine, session, provider, tracker):
        for key in ("P-1", "P-2", "P-3"):
            tracker.add_issue(key)
        tracker.query_pages[ASSIGNED_JQL] = [["P-1", "P-2"], ["P-2", "P-3"]]
        sync = SyncOrchestrator(engine)
        request = FetchMyTicketsRequest(provider_id=provider.id, assigned=True)

        first = await sync.fetch_my_tickets(session, request)
        second = await sync.fetch_my_tickets(session, request)

        assert (first.total, first.imported, first.updated, first.failed) == (3, 3, 0, 0)
        assert (second.total, second.imported, second.updated, second.failed) == (3, 0, 3, 0)
        assert len(session.exec(select(Ticket)).all()) == 3

    @pytest.mark.asyncio
    async def test_failed_participant_query_is_skipped(self, engine, session, provider, tracker):
        tracker.add_issue("P-1")
        tracker.query_pages[ASSIGNED_JQL] = [["P-1"]]
        tracker.failing_queries.add(PARTICIPANT_JQL)
        sync = SyncOrchestrator(engine)

        result = await sync.fetch_my_tickets(
            session, FetchMyTicketsRequest(provider_id=provider.id, assigned=True, participant=True)
        )

        assert PARTICIPANT_JQL in tracker.queries
        assert (result.total, result.imported) == (1, 1)

    @pytest.mark.asyncio
    async def test_import_failures_are_counted(self, engine, session, provider, tracker):
        tracker.add_issue("P-1")
        tracker.query_pages["project = OPS"] = [["P-1", "P-404"]]
        sync = SyncOrchestrator(engine)

        result = await sync.fetch_my_tickets(
            session, FetchMyTicketsRequest(provider_id=provider.id, custom_query="project = OPS")
        )

        assert (result.total, result.imported, result.failed) == (2, 1, 1)

    @pytest.mark.asyncio
    async def test_imported_tickets_are_organized(self, engine, session, provider, tracker):
        tracker.add_issue("P-1")
        tracker.query_pages["project = OPS"] = [["P-1"]]
        folder_id = folder_service.create_folder(session, "Mine").id
        tag_id = tag_service.create_tag(session, "mine").id
        category_id = category_service.create_category(session, "Ops").id
        sync = SyncOrchestrator(engine)

        await sync.fetch_my_tickets(
            session,
            FetchMyTicketsRequest(
                provider_id=provider.id,
                custom_query="project = OPS",
                folder_id=folder_id,
                tag_ids=[tag_id],
                category_ids=[category_id],
            ),
        )

        ticket = session.exec(select(Ticket)).one()
        assert ticket.folder_id == folder_id
        assert [t.id for t in tag_service.list_ticket_tags(session, ticket.id)] == [tag_id]
        assert [c.id for c in category_service.list_ticket_categories(session, ticket.id)] == [category_id]

    @pytest.mark.asyncio
    async def test_request_without_query_is_rejected(self, engine, session, provider, tracker):
        request = FetchMyTicketsRequest.model_construct(provider_id=provider.id)
        with pytest.raises(InvalidRequestError):
            await SyncOrchestrator(engine).fetch_my_tickets(session, request)
        assert tracker.queries == []


class TestRefreshAll:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_the_batch(self, engine, session, provider, tracker):
        sync = SyncOrchestrator(engine)
        for key in ("T-1", "T-2", "T-3"):
            tracker.add_issue(key)
        tracker.query_pages["project = T"] = [["T-1", "T-2", "T-3"]]
        await sync.fetch_my_tickets(session, FetchMyTicketsRequest(provider_id=provider.id, custom_query="project = T"))

        tracker.failing.add("T-2")
        for key in ("T-1", "T-3"):
            tracker.add_issue(key, summary="Renamed upstream")

        result = await sync.refresh_all(session)

        assert (result.success, result.failed) == (2, 1)
        titles = {t.external_id: t.title for t in session.exec(select(Ticket)).all()}
        assert titles == {"T-1": "Renamed upstream", "T-2": "Printer on fire", "T-3": "Renamed upstream"}


class TestPeriodicSync:
    @pytest.mark.asyncio
    async def test_default_interval_schedules_job(self, engine):
        sync = SyncOrchestrator(engine, scheduler=AsyncIOScheduler())
        assert sync.start() == settings_service.DEFAULT_SYNC_INTERVAL_MINUTES
        job = sync.scheduler.get_job(SYNC_JOB_ID)
        assert job is not None
        assert job.trigger.interval.total_seconds() == 30 * 60

        sync.stop()
        assert sync.scheduler.get_job(SYNC_JOB_ID) is None
        # the shutdown itself can land on the next loop iteration
        await asyncio.sleep(0)
        assert not sync.scheduler.running

    @pytest.mark.asyncio
    async def test_stop_twice_is_harmless(self, engine):
        sync = SyncOrchestrator(engine, scheduler=AsyncIOScheduler())
        sync.start()
        sync.stop()
        sync.stop()
        assert sync.scheduler.get_job(SYNC_JOB_ID) is None
        await asyncio.sleep(0)
        assert not sync.scheduler.running

    @pytest.mark.asyncio
    async def test_interval_change_reschedules(self, engine, session):
        sync = SyncOrchestrator(engine, scheduler=AsyncIOScheduler())
        try:
            sync.start()
            settings_service.set_setting(session, settings_service.SYNC_INTERVAL_KEY, "5")
            assert sync.start() == 5
            assert sync.scheduler.get_job(SYNC_JOB_ID).trigger.interval.total_seconds() == 5 * 60

            settings_service.set_setting(session, settings_service.SYNC_INTERVAL_KEY, "0")
            assert sync.start() == 0
            assert sync.scheduler.get_job(SYNC_JOB_ID) is None
        finally:
            sync.stop()

    def test_disabled_never_starts_scheduler(self, engine, session):
        settings_service.set_setting(session, settings_service.SYNC_INTERVAL_KEY, "-1")
        sync = SyncOrchestrator(engine, scheduler=AsyncIOScheduler())
        assert sync.start() == -1
        assert not sync.scheduler.running
        sync.stop()
