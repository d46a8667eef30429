from sqlalchemy import func
from sqlmodel import Session, select

from tickethub.domain.models import Category, Ticket, TicketCategory
from tickethub.domain.schemas import CategoryCount, DashboardStats, RecentActivity


def _counts_by(session: Session, column) -> dict[str, int]:
    rows = session.exec(select(column, func.count()).group_by(column)).all()
    return {key: count for key, count in rows}


def get_stats(session: Session) -> DashboardStats:
    total = session.exec(select(func.count()).select_from(Ticket)).one()
    per_category = session.exec(
        select(Category.id, Category.name, Category.color, func.count(TicketCategory.ticket_id).label("n"))
        .join(TicketCategory, TicketCategory.category_id == Category.id, isouter=True)
        .group_by(Category.id)
        .order_by(func.count(TicketCategory.ticket_id).desc(), Category.name)
    ).all()

    return DashboardStats(
        total_tickets=total,
        by_status=_counts_by(session, Ticket.status),
        by_source=_counts_by(session, Ticket.provider_type),
        by_priority=_counts_by(session, Ticket.priority),
        by_category=[CategoryCount(id=i, name=n, color=c, count=k) for i, n, c, k in per_category],
    )


def recent_activity(session: Session, limit: int = 20) -> list[RecentActivity]:
    tickets = session.exec(select(Ticket).order_by(Ticket.synced_at.desc()).limit(limit)).all()
    return [
        RecentActivity(ticket_id=t.id, ticket_title=t.title, external_id=t.external_id, timestamp=t.synced_at)
        for t in tickets
    ]
