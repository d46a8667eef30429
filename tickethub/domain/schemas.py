from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    UNKNOWN = "unknown"


class TicketPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class ProviderType(str, Enum):
    JIRA = "jira"
    AZURE_DEVOPS = "azure-devops"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


# --- Provider payloads, normalized ---------------------------------------------

class ExternalComment(BaseModel):
    external_id: str
    author: str
    body: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ExternalTicket(BaseModel):
    external_id: str
    external_url: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    assignee: Optional[str] = None
    creator: Optional[str] = None
    participants: list[str] = Field(default_factory=list)
    external_tags: list[str] = Field(default_factory=list)
    comments: list[ExternalComment] = Field(default_factory=list)


class ProviderConfig(BaseModel):
    """What a provider client needs to talk to one tracker instance."""

    type: ProviderType
    base_url: str = ""
    pat_token: str
    username: Optional[str] = None
    extra_config: dict[str, str] = Field(default_factory=dict)

    @property
    def skip_ssl(self) -> bool:
        return self.extra_config.get("skip_ssl", "").lower() == "true"

    @property
    def proxy(self) -> Optional[str]:
        return self.extra_config.get("proxy") or None


class SearchPage(BaseModel):
    ids: list[str]
    next_page_token: Optional[str] = None


# --- Tickets ------------------------------------------------------------------

class TicketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    provider_id: int
    provider_type: ProviderType
    external_id: str
    external_url: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    assignee: Optional[str] = None
    creator: Optional[str] = None
    participants: list[str] = Field(default_factory=list)
    external_tags: list[str] = Field(default_factory=list)
    is_pinned: bool = False
    folder_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    synced_at: Optional[datetime] = None


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: int
    external_id: str
    author: str
    body: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class TicketDetail(TicketRead):
    comments: list[CommentRead] = Field(default_factory=list)


class TicketListParams(BaseModel):
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=50, ge=1, le=500)
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    provider_type: Optional[ProviderType] = None
    assignee: Optional[str] = None
    category_id: Optional[int] = None
    tag_id: Optional[int] = None
    # numeric folder id, or "unfiled" for tickets without a folder
    folder_id: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: SortOrder = SortOrder.DESC
    q: Optional[str] = None


class TicketPage(BaseModel):
    data: list[TicketRead]
    total: int
    page: int
    per_page: int
    total_pages: int


class TicketImport(BaseModel):
    provider_id: int
    external_id: str = Field(min_length=1)


class PinUpdate(BaseModel):
    is_pinned: bool


class FolderAssign(BaseModel):
    folder_id: Optional[int] = None


# --- Search -------------------------------------------------------------------

class SearchHit(BaseModel):
    ticket_id: int
    external_id: str
    title: str
    snippet: Optional[str] = None
    rank: float = 0.0


class RebuildResult(BaseModel):
    rebuilt: int


# --- Folders ------------------------------------------------------------------

class FolderCreate(BaseModel):
    name: str = Field(min_length=1)
    parent_id: Optional[int] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    sort_order: int = 0


class FolderUpdate(BaseModel):
    name: str = Field(min_length=1)
    color: Optional[str] = None
    icon: Optional[str] = None
    sort_order: Optional[int] = None


class FolderMove(BaseModel):
    parent_id: Optional[int] = None
    sort_order: int = 0


class FolderTreeNode(BaseModel):
    id: int
    name: str
    parent_id: Optional[int] = None
    sort_order: int = 0
    color: Optional[str] = None
    icon: Optional[str] = None
    ticket_count: int = 0
    total_ticket_count: int = 0
    children: list[FolderTreeNode] = Field(default_factory=list)


class FolderTree(BaseModel):
    tree: list[FolderTreeNode]
    unfiled_count: int


# --- Notes, tags, categories --------------------------------------------------

class NoteWrite(BaseModel):
    content: str = Field(min_length=1)


class TagCreate(BaseModel):
    name: str = Field(min_length=1)
    color: str = "#8b5cf6"


class TagAssign(BaseModel):
    tag_id: int


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    color: str = "#6366f1"
    icon: Optional[str] = None
    sort_order: int = 0


class CategoryAssign(BaseModel):
    category_id: int


# --- Providers and settings ---------------------------------------------------

class ProviderCreate(BaseModel):
    name: str = Field(min_length=1)
    type: ProviderType
    base_url: str = ""
    pat_token: str = Field(min_length=1)
    username: Optional[str] = None
    extra_config: dict[str, str] = Field(default_factory=dict)


class ProviderRead(BaseModel):
    id: int
    name: str
    type: ProviderType
    base_url: str
    pat_token: str
    username: Optional[str] = None
    extra_config: dict[str, str] = Field(default_factory=dict)


class ConnectionTestResult(BaseModel):
    success: bool
    error: Optional[str] = None


class SettingUpdate(BaseModel):
    value: str


# --- Sync ---------------------------------------------------------------------

class RefreshResult(BaseModel):
    success: int = 0
    failed: int = 0


class FetchMyTicketsRequest(BaseModel):
    provider_id: int
    assigned: bool = False
    watched: bool = False
    participant: bool = False
    include_closed: bool = False
    custom_query: Optional[str] = None
    folder_id: Optional[int] = None
    tag_ids: list[int] = Field(default_factory=list)
    category_ids: list[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def _needs_a_query(self):
        if not self.has_query():
            raise ValueError("custom_query or one of assigned/watched/participant is required")
        return self

    def has_query(self) -> bool:
        return bool((self.custom_query or "").strip()) or self.assigned or self.watched or self.participant


class FetchMyTicketsResult(BaseModel):
    imported: int = 0
    updated: int = 0
    failed: int = 0
    total: int = 0


# --- Dashboard ----------------------------------------------------------------

class CategoryCount(BaseModel):
    id: int
    name: str
    color: Optional[str] = None
    count: int


class DashboardStats(BaseModel):
    total_tickets: int
    by_status: dict[str, int]
    by_source: dict[str, int]
    by_priority: dict[str, int]
    by_category: list[CategoryCount]


class RecentActivity(BaseModel):
    ticket_id: int
    ticket_title: str
    external_id: str
    action: str = "imported"
    timestamp: Optional[datetime] = None
