from fastapi import APIRouter, Depends
from sqlmodel import Session

from tickethub.api.deps import SessionDep
from tickethub.domain.models import Folder
from tickethub.domain.schemas import FolderCreate, FolderMove, FolderTree, FolderUpdate
from tickethub.services import folder_service

router = APIRouter(prefix="/folders", tags=["Folders"])


@router.get("/tree", response_model=FolderTree)
def get_tree(session: Session = Depends(SessionDep)):
    return folder_service.get_tree(session)


@router.post("", response_model=Folder)
def post_folder(payload: FolderCreate, session: Session = Depends(SessionDep)):
    return folder_service.create_folder(session, **payload.model_dump())


@router.put("/{folder_id}", response_model=Folder)
def put_folder(folder_id: int, payload: FolderUpdate, session: Session = Depends(SessionDep)):
    return folder_service.update_folder(session, folder_id, **payload.model_dump())


@router.patch("/{folder_id}/move", response_model=Folder)
def patch_move(folder_id: int, payload: FolderMove, session: Session = Depends(SessionDep)):
    return folder_service.move_folder(session, folder_id, payload.parent_id, payload.sort_order)


@router.delete("/{folder_id}")
def remove_folder(folder_id: int, session: Session = Depends(SessionDep)):
    affected = folder_service.delete_folder(session, folder_id)
    return {"success": True, "deleted_folder_ids": affected}
