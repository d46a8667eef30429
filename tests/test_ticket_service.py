from datetime import timezone

import pytest
from sqlmodel import select

from tickethub.domain.errors import InvalidRequestError, NotFoundError, UpstreamApiError
from tickethub.domain.models import Folder, Ticket, TicketCategory, TicketComment, TicketLocalTag, utcnow
from tickethub.domain.schemas import SortOrder, TicketListParams, TicketStatus
from tickethub.services import category_service, folder_service, search_index, tag_service, ticket_service
from tests.conftest import jira_comment


class TestImportTicket:
    @pytest.mark.asyncio
    async def test_import_is_idempotent_and_overwrites(self, session, provider, tracker):
        tracker.add_issue("PROJ-1", summary="First title", comments=[jira_comment("1", "one"), jira_comment("2", "two")])
        first = await ticket_service.import_ticket(session, provider.id, "PROJ-1")

        tracker.add_issue("PROJ-1", summary="Second title", status="Done", comments=[jira_comment("3", "three")])
        second = await ticket_service.import_ticket(session, provider.id, "PROJ-1")

        assert second.id == first.id
        assert session.exec(select(Ticket)).all() == [second]
        assert second.title == "Second title"
        assert second.status == TicketStatus.CLOSED.value
        assert second.external_url == "https://jira.example.com/browse/PROJ-1"

        comments = session.exec(select(TicketComment).where(TicketComment.ticket_id == second.id)).all()
        assert [c.external_id for c in comments] == ["3"]

    @pytest.mark.asyncio
    async def test_import_indexes_ticket(self, session, provider, tracker):
        tracker.add_issue("PROJ-2", summary="Payment gateway timeout", labels=["billing"])
        ticket = await ticket_service.import_ticket(session, provider.id, "PROJ-2")

        hits = search_index.search(session, "gateway")
        assert [h.ticket_id for h in hits] == [ticket.id]
        assert [h.ticket_id for h in search_index.search(session, "billing")] == [ticket.id]

    @pytest.mark.asyncio
    async def test_import_stamps_sync_time_in_utc(self, session, provider, tracker):
        before = utcnow()
        tracker.add_issue("PROJ-4")
        ticket = await ticket_service.import_ticket(session, provider.id, "PROJ-4")

        # sqlite hands datetimes back without tzinfo
        assert ticket.synced_at.replace(tzinfo=None) >= before.replace(tzinfo=None)
        assert Ticket(external_id="PROJ-5", title="x").created_at.tzinfo is timezone.utc

    @pytest.mark.asyncio
    async def test_upstream_error_propagates(self, session, provider, tracker):
        with pytest.raises(UpstreamApiError):
            await ticket_service.import_ticket(session, provider.id, "NOPE-1")
        assert session.exec(select(Ticket)).all() == []

    @pytest.mark.asyncio
    async def test_unknown_provider(self, session, tracker):
        with pytest.raises(NotFoundError):
            await ticket_service.import_ticket(session, 999, "PROJ-1")

    @pytest.mark.asyncio
    async def test_refresh_reimports(self, session, provider, tracker):
        tracker.add_issue("PROJ-3", summary="Old")
        ticket = await ticket_service.import_ticket(session, provider.id, "PROJ-3")
        tracker.add_issue("PROJ-3", summary="New")

        refreshed = await ticket_service.refresh_ticket(session, ticket.id)

        assert refreshed.id == ticket.id
        assert refreshed.title == "New"


class TestListTickets:
    def test_filters_and_pagination(self, session, make_ticket):
        make_ticket("A-1", status="open", priority="high", assignee="Ann")
        make_ticket("A-2", status="closed", priority="low", assignee="Bob")
        make_ticket("A-3", status="open", priority="low", assignee="Ann")

        page = ticket_service.list_tickets(session, TicketListParams(status="open", per_page=1))
        assert page.total == 2
        assert page.total_pages == 2
        assert len(page.data) == 1

        page = ticket_service.list_tickets(session, TicketListParams(assignee="Ann", priority="low"))
        assert [t.external_id for t in page.data] == ["A-3"]

    def test_sort_allow_list(self, session, make_ticket):
        make_ticket("S-1", title="banana")
        make_ticket("S-2", title="apple")
        make_ticket("S-3", title="cherry")

        page = ticket_service.list_tickets(session, TicketListParams(sort_by="title", sort_order=SortOrder.ASC))
        assert [t.title for t in page.data] == ["apple", "banana", "cherry"]

        # unknown field falls back to updated_at desc
        page = ticket_service.list_tickets(session, TicketListParams(sort_by="title; DROP TABLE ticket"))
        assert page.total == 3

    def test_folder_includes_descendants(self, session, make_ticket):
        root = folder_service.create_folder(session, "Root")
        child = folder_service.create_folder(session, "Child", parent_id=root.id)
        make_ticket("F-1", folder_id=root.id)
        make_ticket("F-2", folder_id=child.id)
        make_ticket("F-3")

        in_root = ticket_service.list_tickets(session, TicketListParams(folder_id=str(root.id)))
        in_child = ticket_service.list_tickets(session, TicketListParams(folder_id=str(child.id)))
        unfiled = ticket_service.list_tickets(session, TicketListParams(folder_id="unfiled"))

        assert {t.external_id for t in in_root.data} == {"F-1", "F-2"}
        assert [t.external_id for t in in_child.data] == ["F-2"]
        assert [t.external_id for t in unfiled.data] == ["F-3"]

        with pytest.raises(InvalidRequestError):
            ticket_service.list_tickets(session, TicketListParams(folder_id="somewhere"))

    def test_tag_and_category_membership(self, session, make_ticket):
        t1 = make_ticket("M-1")
        make_ticket("M-2")
        tag = tag_service.create_tag(session, "vip")
        category = category_service.create_category(session, "Support")
        tag_service.assign_tag(session, t1.id, tag.id)
        category_service.assign_category(session, t1.id, category.id)

        by_tag = ticket_service.list_tickets(session, TicketListParams(tag_id=tag.id))
        by_category = ticket_service.list_tickets(session, TicketListParams(category_id=category.id))

        assert [t.external_id for t in by_tag.data] == ["M-1"]
        assert [t.external_id for t in by_category.data] == ["M-1"]

    def test_text_query_filters_to_matches(self, session, make_ticket):
        make_ticket("Q-1", title="database backup", description="nightly job")
        make_ticket("Q-2", title="printer", description="paper jam")
        make_ticket("Q-3", title="database", description="database database backup restore")

        page = ticket_service.list_tickets(session, TicketListParams(q="database", sort_by="title"))

        assert {t.external_id for t in page.data} == {"Q-1", "Q-3"}
        assert page.total == 2

    def test_rank_overrides_requested_sort(self, session, make_ticket):
        make_ticket("Q-1", title="aaa zeta")
        make_ticket("Q-2", title="zzz zeta", description="zeta zeta zeta zeta zeta")
        make_ticket("Q-3", title="printer", description="paper jam")
        make_ticket("Q-4", title="laptop", description="broken hinge")

        params = TicketListParams(q="zeta", sort_by="title", sort_order=SortOrder.ASC)
        page = ticket_service.list_tickets(session, params)

        # title order would put Q-1 first
        assert [t.external_id for t in page.data] == ["Q-2", "Q-1"]

    def test_short_query_adds_no_filter(self, session, make_ticket):
        make_ticket("Q-1")
        make_ticket("Q-2")
        page = ticket_service.list_tickets(session, TicketListParams(q="a"))
        assert page.total == 2

    def test_text_query_survives_broken_index(self, session, make_ticket):
        make_ticket("Q-1", title="VPN disconnects")
        make_ticket("Q-2", title="Laptop battery")
        session.connection().exec_driver_sql("DROP TABLE ticket_fts")
        session.commit()

        page = ticket_service.list_tickets(session, TicketListParams(q="vpn"))

        assert [t.external_id for t in page.data] == ["Q-1"]


class TestTicketMutations:
    def test_delete_cascades(self, session, make_ticket):
        ticket = make_ticket("D-1", title="doomed")
        tag = tag_service.create_tag(session, "temp")
        category = category_service.create_category(session, "Temp")
        tag_service.assign_tag(session, ticket.id, tag.id)
        category_service.assign_category(session, ticket.id, category.id)
        session.add(TicketComment(ticket_id=ticket.id, external_id="c1", body="hello"))
        session.commit()

        ticket_id = ticket.id
        ticket_service.delete_ticket(session, ticket_id)

        assert session.exec(select(TicketComment)).all() == []
        assert session.exec(select(TicketLocalTag)).all() == []
        assert session.exec(select(TicketCategory)).all() == []
        assert search_index.search(session, "doomed") == []
        with pytest.raises(NotFoundError):
            ticket_service.delete_ticket(session, ticket_id)

    def test_toggle_pin(self, session, make_ticket):
        ticket = make_ticket("P-1")
        assert ticket_service.toggle_pin(session, ticket.id, True).is_pinned is True
        assert [t.id for t in ticket_service.list_pinned(session)] == [ticket.id]
        assert ticket_service.toggle_pin(session, ticket.id, False).is_pinned is False
        assert ticket_service.list_pinned(session) == []

    def test_set_folder(self, session, make_ticket):
        ticket = make_ticket("P-2")
        folder = session.get(Folder, folder_service.create_folder(session, "Inbox").id)

        assert ticket_service.set_ticket_folder(session, ticket.id, folder.id).folder_id == folder.id
        with pytest.raises(InvalidRequestError):
            ticket_service.set_ticket_folder(session, ticket.id, 12345)
        assert ticket_service.set_ticket_folder(session, ticket.id, None).folder_id is None
