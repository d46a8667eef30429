from typing import Optional

from sqlmodel import Session, select

from tickethub.domain.errors import NotFoundError
from tickethub.domain.models import Category, TicketCategory
from tickethub.services.ticket_service import require_ticket


def get_category(session: Session, category_id: int) -> Category:
    category = session.get(Category, category_id)
    if not category:
        raise NotFoundError("Category", category_id)
    return category


def create_category(
    session: Session,
    name: str,
    color: str = "#6366f1",
    icon: Optional[str] = None,
    sort_order: int = 0,
) -> Category:
    category = Category(name=name, color=color, icon=icon, sort_order=sort_order)
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


def list_categories(session: Session) -> list[Category]:
    return session.exec(select(Category).order_by(Category.sort_order, Category.name)).all()


def update_category(session: Session, category_id: int, **fields) -> Category:
    category = get_category(session, category_id)
    for k, v in fields.items():
        if hasattr(category, k):
            setattr(category, k, v)
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


def delete_category(session: Session, category_id: int) -> None:
    category = get_category(session, category_id)
    session.delete(category)
    session.commit()


def assign_category(session: Session, ticket_id: int, category_id: int) -> None:
    require_ticket(session, ticket_id)
    get_category(session, category_id)
    if not session.get(TicketCategory, (ticket_id, category_id)):
        session.add(TicketCategory(ticket_id=ticket_id, category_id=category_id))
        session.commit()


def remove_category(session: Session, ticket_id: int, category_id: int) -> None:
    link = session.get(TicketCategory, (ticket_id, category_id))
    if link:
        session.delete(link)
        session.commit()


def list_ticket_categories(session: Session, ticket_id: int) -> list[Category]:
    return session.exec(
        select(Category)
        .join(TicketCategory, TicketCategory.category_id == Category.id)
        .where(TicketCategory.ticket_id == ticket_id)
        .order_by(Category.sort_order, Category.name)
    ).all()
