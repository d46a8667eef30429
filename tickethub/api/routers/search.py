from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from tickethub.api.deps import SessionDep
from tickethub.domain.schemas import SearchHit
from tickethub.services import search_index

router = APIRouter(prefix="/search", tags=["Search"])


@router.get("", response_model=list[SearchHit])
def get_search(
    q: str = Query(default=""),
    limit: int = Query(default=search_index.SEARCH_LIMIT, ge=1, le=100),
    session: Session = Depends(SessionDep),
):
    return search_index.search(session, q, limit)
