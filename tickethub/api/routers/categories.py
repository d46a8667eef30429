from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from tickethub.api.deps import SessionDep
from tickethub.domain.models import Category
from tickethub.domain.schemas import CategoryCreate
from tickethub.services import category_service

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.post("", response_model=Category)
def post_category(payload: CategoryCreate, session: Session = Depends(SessionDep)):
    try:
        return category_service.create_category(session, **payload.model_dump())
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail=f"Category already exists: {payload.name}")


@router.get("", response_model=list[Category])
def get_categories(session: Session = Depends(SessionDep)):
    return category_service.list_categories(session)


@router.put("/{category_id}", response_model=Category)
def put_category(category_id: int, payload: CategoryCreate, session: Session = Depends(SessionDep)):
    try:
        return category_service.update_category(session, category_id, **payload.model_dump())
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail=f"Category already exists: {payload.name}")


@router.delete("/{category_id}")
def remove_category(category_id: int, session: Session = Depends(SessionDep)):
    category_service.delete_category(session, category_id)
    return {"success": True}
