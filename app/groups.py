"""Group management routes for the Contacts API."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from . import crud, schemas
from .database import get_db

router = APIRouter(prefix="/groups", tags=["groups"])


@router.get("", response_model=schemas.Envelope[List[schemas.GroupOut]])
def list_groups(db: Session = Depends(get_db)):
    """Return all groups sorted by name."""
    return {"data": crud.list_groups(db)}


@router.post("", response_model=schemas.Envelope[schemas.GroupOut], status_code=201)
def create_group(group_in: schemas.GroupCreate, db: Session = Depends(get_db)):
    """
    Create a new group.

    Args:
        group_in (GroupCreate): Group input data.
        db (Session): Database session.

    Raises:
        ConflictError: If a group with this name already exists.

    Returns:
        Envelope[GroupOut]: Created group.
    """
    group = crud.create_group(db, group_in)
    return {"data": group, "message": "Group created successfully"}


@router.get("/{group_id}", response_model=schemas.Envelope[schemas.GroupOut])
def get_group(group_id: int, db: Session = Depends(get_db)):
    return {"data": crud.require_group(db, group_id)}


@router.put("/{group_id}", response_model=schemas.Envelope[schemas.GroupOut])
def update_group(
    group_id: int,
    changes: schemas.GroupUpdate,
    db: Session = Depends(get_db),
):
    """Partially update a group; the contact count is not writable."""
    group = crud.require_group(db, group_id)
    group = crud.update_group(db, group, changes)
    return {"data": group, "message": "Group updated successfully"}


@router.delete("/{group_id}", response_model=schemas.Envelope[dict])
def delete_group(group_id: int, db: Session = Depends(get_db)):
    """
    Delete a group after removing it from every contact that references it.

    Raises:
        NotFoundError: If the group does not exist.
    """
    group = crud.require_group(db, group_id)
    detached = crud.delete_group(db, group)
    return {
        "data": {"detachedContacts": detached},
        "message": "Group deleted successfully",
    }
