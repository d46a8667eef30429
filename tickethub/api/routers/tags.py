from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from tickethub.api.deps import SessionDep
from tickethub.domain.models import LocalTag
from tickethub.domain.schemas import TagCreate
from tickethub.services import tag_service

router = APIRouter(prefix="/tags", tags=["Tags"])


@router.get("", response_model=list[LocalTag])
def get_tags(session: Session = Depends(SessionDep)):
    return tag_service.list_tags(session)


@router.post("", response_model=LocalTag)
def post_tag(payload: TagCreate, session: Session = Depends(SessionDep)):
    try:
        return tag_service.create_tag(session, payload.name, payload.color)
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail=f"Tag already exists: {payload.name}")


@router.put("/{tag_id}", response_model=LocalTag)
def put_tag(tag_id: int, payload: TagCreate, session: Session = Depends(SessionDep)):
    try:
        return tag_service.update_tag(session, tag_id, payload.name, payload.color)
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail=f"Tag already exists: {payload.name}")


@router.delete("/{tag_id}")
def remove_tag(tag_id: int, session: Session = Depends(SessionDep)):
    tag_service.delete_tag(session, tag_id)
    return {"success": True}
