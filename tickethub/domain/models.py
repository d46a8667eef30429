from __future__ import annotations

from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import JSON, Column, ForeignKey, Integer, UniqueConstraint
from sqlmodel import SQLModel, Field


def _fk(target: str, ondelete: str, nullable: bool = False) -> Column:
    return Column(Integer, ForeignKey(target, ondelete=ondelete), nullable=nullable, index=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IntegrationProvider(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    type: str = Field(index=True)
    base_url: str = ""
    pat_token: str
    username: Optional[str] = None
    extra_config: dict = Field(default_factory=dict, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Folder(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    # children go with their parent; tickets are detached explicitly
    parent_id: Optional[int] = Field(default=None, sa_column=_fk("folder.id", "CASCADE", nullable=True))
    sort_order: int = 0
    color: Optional[str] = None
    icon: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Ticket(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("provider_id", "external_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)

    provider_id: int = Field(index=True)
    provider_type: str = Field(index=True)
    external_id: str = Field(index=True)
    external_url: str = ""

    title: str
    description: str = ""

    status: str = Field(default="unknown", index=True)
    priority: str = Field(default="none", index=True)

    assignee: Optional[str] = Field(default=None, index=True)
    creator: Optional[str] = None
    participants: list = Field(default_factory=list, sa_column=Column(JSON))
    external_tags: list = Field(default_factory=list, sa_column=Column(JSON))

    is_pinned: bool = Field(default=False, index=True)
    folder_id: Optional[int] = Field(default=None, sa_column=_fk("folder.id", "SET NULL", nullable=True))

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow, index=True)
    synced_at: Optional[datetime] = Field(default=None, index=True)


class TicketComment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    ticket_id: int = Field(sa_column=_fk("ticket.id", "CASCADE"))
    external_id: str
    author: str = "Unknown"
    body: str = ""
    # provider timestamps, ISO-8601 as received
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class TicketNote(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    ticket_id: int = Field(sa_column=_fk("ticket.id", "CASCADE"))
    content: str

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class LocalTag(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    color: str = "#8b5cf6"


class TicketLocalTag(SQLModel, table=True):
    ticket_id: int = Field(sa_column=Column(Integer, ForeignKey("ticket.id", ondelete="CASCADE"), primary_key=True))
    tag_id: int = Field(sa_column=Column(Integer, ForeignKey("localtag.id", ondelete="CASCADE"), primary_key=True))


class Category(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    color: str = "#6366f1"
    icon: Optional[str] = None
    sort_order: int = 0


class TicketCategory(SQLModel, table=True):
    ticket_id: int = Field(sa_column=Column(Integer, ForeignKey("ticket.id", ondelete="CASCADE"), primary_key=True))
    category_id: int = Field(sa_column=Column(Integer, ForeignKey("category.id", ondelete="CASCADE"), primary_key=True))


class AppSetting(SQLModel, table=True):
    key: str = Field(primary_key=True)
    value: str
