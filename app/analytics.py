"""Dashboard and activity log routes for the Contacts API."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from . import crud, queries, schemas, stats
from .database import get_db

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/dashboard", response_model=schemas.Envelope[schemas.Dashboard])
def dashboard(db: Session = Depends(get_db)):
    """
    Summary counts, category breakdown, the last seven days of contact
    creation, and the five newest contacts and activity entries.
    """
    return {"data": stats.dashboard(db)}


@router.get("/activities", response_model=schemas.ActivityPage)
def list_activities(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    action: Optional[str] = Query(None),
    entity_id: Optional[int] = Query(None, alias="entityId"),
    db: Session = Depends(get_db),
):
    """
    Retrieve the activity log, newest first.

    Args:
        page (int): Page number, starting at 1.
        limit (int): Entries per page.
        action (str | None): Only entries with this action.
        entity_id (int | None): Only entries about this contact.

    Returns:
        ActivityPage: Activity entries and pagination info.
    """
    items, total = crud.list_activities(
        db, page=page, limit=limit, action=action, entity_id=entity_id
    )
    return {
        "data": items,
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": queries.page_count(total, limit),
        },
    }
