from __future__ import annotations

import json
from typing import Optional, Any

import httpx
from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult, TextContent
from sqlmodel import Session

from tickethub.db.engine import engine
from tickethub.domain.errors import TicketHubError
from tickethub.domain.schemas import ProviderType, TicketListParams, TicketPriority, TicketStatus
from tickethub.services import folder_service, search_index, ticket_service


# Streamable HTTP + stateless + JSON response
mcp = FastMCP(
    name="TicketHub",
    stateless_http=True,
    json_response=True,
    instructions=(
        "MCP server over the local ticket store: list, read, search and import "
        "Jira / Azure DevOps tickets and browse the folder tree."
    ),
)

mcp.settings.streamable_http_path = "/"


def _session() -> Session:
    return Session(engine)


def _error_result(structured: dict[str, Any]) -> CallToolResult:
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(structured, ensure_ascii=False))],
        structuredContent=structured,
        isError=True,
    )


@mcp.tool()
def list_tickets(
    page: int = 1,
    per_page: int = 20,
    status: Optional[TicketStatus] = None,
    priority: Optional[TicketPriority] = None,
    provider_type: Optional[ProviderType] = None,
    folder_id: Optional[str] = None,
    q: Optional[str] = None,
) -> dict[str, Any]:
    """List stored tickets (filterable, paginated)."""
    params = TicketListParams(
        page=page,
        per_page=per_page,
        status=status,
        priority=priority,
        provider_type=provider_type,
        folder_id=folder_id,
        q=q,
    )
    with _session() as s:
        return ticket_service.list_tickets(s, params).model_dump(mode="json")


@mcp.tool()
def get_ticket(ticket_id: int) -> dict[str, Any]:
    """Get a ticket with its comments."""
    with _session() as s:
        try:
            return ticket_service.get_ticket_detail(s, ticket_id).model_dump(mode="json")
        except TicketHubError as e:
            return {"error": str(e), "ticket_id": ticket_id}


@mcp.tool()
def search_tickets(query: str, limit: int = search_index.SEARCH_LIMIT) -> list[dict[str, Any]]:
    """Full-text search over titles, descriptions, notes, comments and tags."""
    with _session() as s:
        return [hit.model_dump() for hit in search_index.search(s, query, limit)]


@mcp.tool()
async def import_ticket(provider_id: int, external_id: str) -> CallToolResult:
    """Import (or re-sync) a ticket from a configured provider, e.g. PROJ-123."""
    with _session() as s:
        try:
            ticket = await ticket_service.import_ticket(s, provider_id, external_id.strip())
        except (TicketHubError, httpx.HTTPError) as e:
            return _error_result({"provider_id": provider_id, "external_id": external_id, "error": str(e)})

        structured = {"ticket_id": ticket.id, "external_id": ticket.external_id, "title": ticket.title}
        return CallToolResult(
            content=[TextContent(type="text", text=json.dumps(structured, ensure_ascii=False))],
            structuredContent=structured,
        )


@mcp.tool()
def folder_tree() -> dict[str, Any]:
    """Folder hierarchy with direct and recursive ticket counts."""
    with _session() as s:
        return folder_service.get_tree(s).model_dump()
