import logging
from typing import Optional

from sqlalchemy import func, update
from sqlmodel import Session, select

from tickethub.domain.errors import InvalidRequestError, NotFoundError
from tickethub.domain.models import Folder, Ticket, utcnow
from tickethub.domain.schemas import FolderTree, FolderTreeNode

logger = logging.getLogger("folder_service")


def get_folder(session: Session, folder_id: int) -> Folder:
    folder = session.get(Folder, folder_id)
    if not folder:
        raise NotFoundError("Folder", folder_id)
    return folder


def get_descendant_ids(session: Session, folder_id: int) -> list[int]:
    """Every folder below ``folder_id``, at any depth (the folder itself excluded)."""
    result: list[int] = []
    seen = {folder_id}
    stack = [folder_id]
    while stack:
        current = stack.pop()
        children = session.exec(select(Folder.id).where(Folder.parent_id == current)).all()
        for child_id in children:
            if child_id in seen:
                continue
            seen.add(child_id)
            result.append(child_id)
            stack.append(child_id)
    return result


def is_ancestor(session: Session, folder_id: int, target_id: Optional[int]) -> bool:
    """True when ``folder_id`` is ``target_id`` or one of its ancestors."""
    visited = set()
    current = target_id
    while current is not None and current not in visited:
        if current == folder_id:
            return True
        visited.add(current)
        current = session.exec(select(Folder.parent_id).where(Folder.id == current)).first()
    return False


def create_folder(
    session: Session,
    name: str,
    parent_id: Optional[int] = None,
    color: Optional[str] = None,
    icon: Optional[str] = None,
    sort_order: int = 0,
) -> Folder:
    if parent_id is not None and not session.get(Folder, parent_id):
        raise InvalidRequestError("Parent folder not found")

    folder = Folder(name=name, parent_id=parent_id, color=color, icon=icon, sort_order=sort_order)
    session.add(folder)
    session.commit()
    session.refresh(folder)
    return folder


def update_folder(
    session: Session,
    folder_id: int,
    name: str,
    color: Optional[str] = None,
    icon: Optional[str] = None,
    sort_order: Optional[int] = None,
) -> Folder:
    folder = get_folder(session, folder_id)
    folder.name = name
    folder.color = color
    folder.icon = icon
    if sort_order is not None:
        folder.sort_order = sort_order
    folder.updated_at = utcnow()
    session.add(folder)
    session.commit()
    session.refresh(folder)
    return folder


def move_folder(session: Session, folder_id: int, new_parent_id: Optional[int], sort_order: int = 0) -> Folder:
    folder = get_folder(session, folder_id)

    if new_parent_id is not None:
        if new_parent_id == folder_id:
            raise InvalidRequestError("Cannot move folder into itself")
        if not session.get(Folder, new_parent_id):
            raise InvalidRequestError("Target parent folder not found")
        if is_ancestor(session, folder_id, new_parent_id):
            raise InvalidRequestError("Cannot move folder into its own descendant")

    folder.parent_id = new_parent_id
    folder.sort_order = sort_order
    folder.updated_at = utcnow()
    session.add(folder)
    session.commit()
    session.refresh(folder)
    return folder


def delete_folder(session: Session, folder_id: int) -> list[int]:
    """Delete a folder and its subtree; their tickets become unfiled.

    Child folders go through the ON DELETE CASCADE of ``parent_id``. Tickets of
    the whole subtree are detached up front instead of relying on chained
    foreign-key actions.
    """
    get_folder(session, folder_id)
    affected = [folder_id, *get_descendant_ids(session, folder_id)]

    session.execute(update(Ticket).where(Ticket.folder_id.in_(affected)).values(folder_id=None))
    session.execute(Folder.__table__.delete().where(Folder.id == folder_id))
    session.commit()
    session.expire_all()
    logger.info("Deleted folder %s with %s descendants", folder_id, len(affected) - 1)
    return affected


def get_tree(session: Session) -> FolderTree:
    folders = session.exec(select(Folder).order_by(Folder.sort_order, Folder.name)).all()
    counts = dict(
        session.exec(
            select(Ticket.folder_id, func.count()).where(Ticket.folder_id.is_not(None)).group_by(Ticket.folder_id)
        ).all()
    )
    unfiled = session.exec(select(func.count()).select_from(Ticket).where(Ticket.folder_id.is_(None))).one()

    nodes: dict[int, FolderTreeNode] = {
        f.id: FolderTreeNode(
            id=f.id,
            name=f.name,
            parent_id=f.parent_id,
            sort_order=f.sort_order,
            color=f.color,
            icon=f.icon,
            ticket_count=counts.get(f.id, 0),
        )
        for f in folders
    }

    roots: list[FolderTreeNode] = []
    for node in nodes.values():
        parent = nodes.get(node.parent_id) if node.parent_id is not None else None
        if parent is not None:
            parent.children.append(node)
        else:
            roots.append(node)

    # post-order without recursion: a node is summed once all its children are
    stack: list[tuple[FolderTreeNode, bool]] = [(root, False) for root in roots]
    while stack:
        node, children_done = stack.pop()
        if children_done:
            node.total_ticket_count = node.ticket_count + sum(c.total_ticket_count for c in node.children)
        else:
            stack.append((node, True))
            stack.extend((child, False) for child in node.children)

    return FolderTree(tree=roots, unfiled_count=unfiled)
