from typing import Optional

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session

from tickethub.db.engine import create_db_engine, init_db
from tickethub.domain.errors import UpstreamApiError
from tickethub.domain.models import IntegrationProvider, Ticket
from tickethub.domain.schemas import SearchPage
from tickethub.services import search_index, ticket_service

JIRA_URL = "https://jira.example.com"


def jira_issue(
    key: str,
    summary: str = "Printer on fire",
    status: str = "To Do",
    priority: Optional[str] = "High",
    labels=(),
    description=None,
) -> dict:
    return {
        "key": key,
        "fields": {
            "summary": summary,
            "description": description,
            "status": {"name": status},
            "priority": {"name": priority} if priority else None,
            "assignee": {"displayName": "Ann Lee"},
            "creator": {"displayName": "Bob Stone"},
            "labels": list(labels),
        },
    }


def jira_comment(comment_id: str, body: str, created: str = "2024-03-01T10:00:00.000+0000") -> dict:
    return {"id": comment_id, "author": {"displayName": "Ann Lee"}, "body": body, "created": created}


class FakeTracker:
    """In-memory stand-in for a Jira instance, shared by every client it hands out."""

    def __init__(self):
        self.issues: dict[str, dict] = {}
        self.comments: dict[str, list[dict]] = {}
        self.failing: set[str] = set()
        self.query_pages: dict[str, list[list[str]]] = {}
        self.failing_queries: set[str] = set()
        self.queries: list[str] = []
        self.offline = False

    def add_issue(self, key: str, comments=(), **fields) -> dict:
        self.issues[key] = jira_issue(key, **fields)
        self.comments[key] = list(comments)
        return self.issues[key]


class FakeProviderClient:
    web_url = JIRA_URL

    def __init__(self, tracker: FakeTracker, config):
        self.tracker = tracker
        self.config = config

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        pass

    async def fetch_ticket(self, external_id):
        if self.tracker.offline:
            raise httpx.ConnectError("Connection refused")
        if external_id in self.tracker.failing or external_id not in self.tracker.issues:
            raise UpstreamApiError("Jira", f"getIssue {external_id}", 404, "Not Found", "Issue does not exist")
        return self.tracker.issues[external_id]

    async def fetch_comments(self, external_id):
        return self.tracker.comments.get(external_id, [])

    async def search_by_query(self, saved_query, page_token=None):
        self.tracker.queries.append(saved_query)
        if saved_query in self.tracker.failing_queries:
            raise UpstreamApiError("Jira", "searchIssues", 400, "Bad Request", "Field does not exist")
        pages = self.tracker.query_pages.get(saved_query, [[]])
        index = int(page_token or 0)
        next_token = str(index + 1) if index + 1 < len(pages) else None
        return SearchPage(ids=pages[index], next_page_token=next_token)

    async def test_connection(self):
        return True


@pytest.fixture
def engine():
    db_engine = create_db_engine("sqlite://", poolclass=StaticPool)
    init_db(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def provider(session) -> IntegrationProvider:
    p = IntegrationProvider(name="Work Jira", type="jira", base_url=JIRA_URL, pat_token="secret", username="ann")
    session.add(p)
    session.commit()
    session.refresh(p)
    return p


@pytest.fixture
def tracker(monkeypatch) -> FakeTracker:
    t = FakeTracker()
    monkeypatch.setattr(
        ticket_service,
        "get_provider_client",
        lambda config, transport=None: FakeProviderClient(t, config),
    )
    return t


@pytest.fixture
def make_ticket(session):
    """Insert a ticket row directly (no provider round-trip) and index it."""

    def _make(external_id: str, **fields) -> Ticket:
        values = {
            "provider_id": 1,
            "provider_type": "jira",
            "title": f"Ticket {external_id}",
            "description": "",
            "status": "open",
            "priority": "medium",
        }
        values.update(fields)
        ticket = Ticket(external_id=external_id, **values)
        session.add(ticket)
        session.commit()
        search_index.update_index(session, ticket.id)
        session.refresh(ticket)
        return ticket

    return _make
