"""CRUD operations for contacts, groups and the activity log.

This module contains database interaction logic, isolated from FastAPI
route handlers. Every mutation commits its primary write together with
the derived updates (group contact counts, link rows) in one
transaction, then publishes an activity event.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .activity import (
    BULK_ACTIVITY,
    ActivityAction,
    ActivityEvent,
    RequestContext,
    activity_bus,
)
from .errors import ConflictError, InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)


def _publish(db: Session, action: ActivityAction, entity_id, entity_name, changes, context):
    activity_bus.publish(
        db,
        ActivityEvent(
            action=action,
            entity_id=entity_id,
            entity_name=entity_name,
            changes=jsonable_encoder(changes),
            context=context or RequestContext(),
        ),
    )


def _unique(values: Iterable) -> list:
    return list(dict.fromkeys(values))


def _adjust_group_counts(db: Session, group_ids: Iterable[int], delta: int):
    """Add ``delta`` to each group's contact count, never going below zero."""
    group_ids = list(group_ids)
    if not group_ids or not delta:
        return
    new_count = models.Group.contact_count + delta
    db.execute(
        update(models.Group)
        .where(models.Group.id.in_(group_ids))
        .values(contact_count=case((new_count < 0, 0), else_=new_count))
        .execution_options(synchronize_session=False)
    )


def _require_groups(db: Session, group_ids: List[int]):
    if not group_ids:
        return
    found = set(db.scalars(select(models.Group.id).where(models.Group.id.in_(group_ids))))
    missing = [group_id for group_id in group_ids if group_id not in found]
    if missing:
        raise InvalidRequestError(
            "Unknown group id(s): " + ", ".join(str(group_id) for group_id in missing)
        )


# --------------------------------------------------------------------------
# Contacts
# --------------------------------------------------------------------------


def create_contact(
    db: Session,
    contact_in: schemas.ContactCreate,
    context: Optional[RequestContext] = None,
) -> models.Contact:
    """
    Create a new contact and bump the count of every group it references.

    Args:
        db (Session): Database session.
        contact_in (ContactCreate): Validated contact data.
        context (RequestContext | None): Caller description for the audit log.

    Raises:
        InvalidRequestError: If a referenced group does not exist.

    Returns:
        Contact: Newly created contact.
    """
    data = contact_in.model_dump(exclude={"tags", "groups"})
    group_ids = _unique(contact_in.groups)
    _require_groups(db, group_ids)

    contact = models.Contact(**data)
    contact.tags = contact_in.tags
    contact.groups = group_ids
    db.add(contact)
    _adjust_group_counts(db, group_ids, 1)
    db.commit()
    db.refresh(contact)
    logger.info("Created contact %s", contact.id)

    _publish(db, ActivityAction.CREATE_CONTACT, contact.id, contact.name, {}, context)
    return contact


def get_contact(db: Session, contact_id: int) -> models.Contact | None:
    """
    Retrieve a single contact.

    Args:
        db (Session): Database session.
        contact_id (int): Contact identifier.

    Returns:
        Contact | None: Contact if found, otherwise ``None``.
    """
    return db.get(models.Contact, contact_id)


def require_contact(db: Session, contact_id: int) -> models.Contact:
    contact = get_contact(db, contact_id)
    if contact is None:
        raise NotFoundError("Contact not found")
    return contact


def get_contact_activities(db: Session, contact_id: int, limit: int = 10):
    """Most recent activity entries referring to a contact."""
    return db.scalars(
        select(models.ActivityLog)
        .where(models.ActivityLog.entity_id == contact_id)
        .order_by(models.ActivityLog.timestamp.desc(), models.ActivityLog.id.desc())
        .limit(limit)
    ).all()


def update_contact(
    db: Session,
    contact: models.Contact,
    changes: schemas.ContactUpdate,
    context: Optional[RequestContext] = None,
) -> models.Contact:
    """
    Apply a partial update to a contact.

    Only fields present in ``changes`` are written. Every submitted field is
    recorded in the activity entry as ``{old, new}``, whether or not its
    value differs. Group counts follow additions to and removals from the
    ``groups`` list.

    Args:
        db (Session): Database session.
        contact (Contact): Contact instance.
        changes (ContactUpdate): Fields to update.
        context (RequestContext | None): Caller description for the audit log.

    Returns:
        Contact: Updated contact.
    """
    before = schemas.ContactOut.model_validate(contact).model_dump(by_alias=True, mode="json")
    submitted = changes.model_dump(by_alias=True, mode="json", exclude_unset=True)
    values = changes.model_dump(exclude_unset=True)

    if "groups" in values:
        old_groups = list(contact.groups)
        new_groups = _unique(values.pop("groups"))
        added = [group_id for group_id in new_groups if group_id not in old_groups]
        removed = [group_id for group_id in old_groups if group_id not in new_groups]
        _require_groups(db, added)
        contact.groups = new_groups
        _adjust_group_counts(db, added, 1)
        _adjust_group_counts(db, removed, -1)
    if "tags" in values:
        contact.tags = values.pop("tags")

    for key, value in values.items():
        setattr(contact, key, value)
    contact.updated_at = models.utcnow()

    db.add(contact)
    db.commit()
    db.refresh(contact)

    diff = {key: {"old": before.get(key), "new": value} for key, value in submitted.items()}
    _publish(db, ActivityAction.UPDATE_CONTACT, contact.id, contact.name, diff, context)
    return contact


def delete_contact(
    db: Session, contact: models.Contact, context: Optional[RequestContext] = None
):
    """
    Delete a contact and release its group memberships.

    Args:
        db (Session): Database session.
        contact (Contact): Contact to delete.
        context (RequestContext | None): Caller description for the audit log.
    """
    contact_id, name = contact.id, contact.name
    _adjust_group_counts(db, list(contact.groups), -1)
    db.delete(contact)
    db.commit()
    logger.info("Deleted contact %s", contact_id)

    _publish(db, ActivityAction.DELETE_CONTACT, contact_id, name, {}, context)
    return None


def toggle_star(
    db: Session, contact: models.Contact, context: Optional[RequestContext] = None
) -> bool:
    """Flip the ``starred`` flag and return its new value."""
    starred = not contact.starred
    contact.starred = starred
    contact.updated_at = models.utcnow()
    db.commit()

    action = ActivityAction.STARRED if starred else ActivityAction.UNSTARRED
    _publish(db, action, contact.id, contact.name, {"starred": starred}, context)
    return starred


def add_contact_to_group(
    db: Session,
    contact: models.Contact,
    group_id: int,
    context: Optional[RequestContext] = None,
) -> models.Contact:
    """Reference a group from a contact; already-present references are left alone."""
    group = require_group(db, group_id)
    if group_id not in list(contact.groups):
        contact.groups.append(group_id)
        _adjust_group_counts(db, [group_id], 1)
        contact.updated_at = models.utcnow()
        db.commit()
        db.refresh(contact)
        _publish(
            db,
            ActivityAction.ADD_TO_GROUP,
            contact.id,
            contact.name,
            {"group": {"id": group_id, "name": group.name}},
            context,
        )
    return contact


def remove_contact_from_group(
    db: Session,
    contact: models.Contact,
    group_id: int,
    context: Optional[RequestContext] = None,
) -> models.Contact:
    """Drop a group reference from a contact."""
    if group_id not in list(contact.groups):
        raise NotFoundError("Contact is not in this group")
    group = db.get(models.Group, group_id)
    contact.groups = [gid for gid in contact.groups if gid != group_id]
    _adjust_group_counts(db, [group_id], -1)
    contact.updated_at = models.utcnow()
    db.commit()
    db.refresh(contact)
    _publish(
        db,
        ActivityAction.REMOVE_FROM_GROUP,
        contact.id,
        contact.name,
        {"group": {"id": group_id, "name": group.name if group else None}},
        context,
    )
    return contact


def _bulk_set(db: Session, contact_ids: List[int], values: dict) -> int:
    result = db.execute(
        update(models.Contact)
        .where(models.Contact.id.in_(contact_ids))
        .values(**values, updated_at=models.utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def _bulk_delete(db: Session, contact_ids: List[int]) -> int:
    memberships = db.execute(
        select(models.ContactGroupLink.group_id, func.count())
        .where(models.ContactGroupLink.contact_id.in_(contact_ids))
        .group_by(models.ContactGroupLink.group_id)
    ).all()
    for group_id, references in memberships:
        _adjust_group_counts(db, [group_id], -references)

    db.execute(
        delete(models.ContactTag)
        .where(models.ContactTag.contact_id.in_(contact_ids))
        .execution_options(synchronize_session=False)
    )
    db.execute(
        delete(models.ContactGroupLink)
        .where(models.ContactGroupLink.contact_id.in_(contact_ids))
        .execution_options(synchronize_session=False)
    )
    result = db.execute(
        delete(models.Contact)
        .where(models.Contact.id.in_(contact_ids))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def bulk_action(
    db: Session,
    request: schemas.BulkActionRequest,
    context: Optional[RequestContext] = None,
) -> dict:
    """
    Apply one action to a set of contacts in a single transaction.

    Args:
        db (Session): Database session.
        request (BulkActionRequest): Action, target ids and optional data.
        context (RequestContext | None): Caller description for the audit log.

    Raises:
        InvalidRequestError: If the action's data is missing or invalid.

    Returns:
        dict: Summary of the operation, also stored as the activity changes.
    """
    action = schemas.BulkAction(request.action)
    contact_ids = _unique(request.contact_ids)
    data = request.data or {}
    summary = {"action": action.value, "affectedContacts": len(contact_ids)}

    if action is schemas.BulkAction.DELETE:
        summary["deletedCount"] = _bulk_delete(db, contact_ids)

    elif action is schemas.BulkAction.UPDATE:
        try:
            updates = schemas.ContactBulkUpdate.model_validate(data)
        except ValidationError as exc:
            raise InvalidRequestError("Invalid update data", errors=_error_list(exc))
        values = updates.model_dump(exclude_unset=True)
        if not values:
            raise InvalidRequestError("Update data is required")
        summary["modifiedCount"] = _bulk_set(db, contact_ids, values)
        summary["updates"] = updates.model_dump(by_alias=True, mode="json", exclude_unset=True)

    elif action in (schemas.BulkAction.STAR, schemas.BulkAction.UNSTAR):
        starred = action is schemas.BulkAction.STAR
        summary["modifiedCount"] = _bulk_set(db, contact_ids, {"starred": starred})

    elif action is schemas.BulkAction.CHANGE_STATUS:
        status = data.get("status")
        if not status:
            raise InvalidRequestError("Status is required")
        try:
            status = schemas.ContactStatus(status).value
        except (TypeError, ValueError):
            raise InvalidRequestError(f"Invalid status '{status}'")
        summary["modifiedCount"] = _bulk_set(db, contact_ids, {"status": status})
        summary["newStatus"] = status

    db.commit()
    logger.info("Bulk %s on %d contact(s)", action.value, len(contact_ids))

    _publish(db, BULK_ACTIVITY[action], None, "Multiple Contacts", summary, context)
    return summary


def _error_list(exc: ValidationError) -> list:
    return [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]


def record_export(
    db: Session, export_format: str, count: int, context: Optional[RequestContext] = None
):
    _publish(
        db,
        ActivityAction.EXPORT,
        None,
        "All Contacts",
        {"format": export_format, "count": count},
        context,
    )


# --------------------------------------------------------------------------
# Groups
# --------------------------------------------------------------------------


def list_groups(db: Session) -> List[models.Group]:
    return list(db.scalars(select(models.Group).order_by(models.Group.name.asc())).all())


def get_group(db: Session, group_id: int) -> models.Group | None:
    return db.get(models.Group, group_id)


def require_group(db: Session, group_id: int) -> models.Group:
    group = get_group(db, group_id)
    if group is None:
        raise NotFoundError("Group not found")
    return group


def _group_name_taken(db: Session, name: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(models.Group.id).where(models.Group.name == name)
    if exclude_id is not None:
        stmt = stmt.where(models.Group.id != exclude_id)
    return db.scalar(stmt) is not None


def create_group(db: Session, group_in: schemas.GroupCreate) -> models.Group:
    """
    Create and persist a new group.

    Args:
        db (Session): Database session.
        group_in (GroupCreate): Incoming group data.

    Raises:
        ConflictError: If a group with the same name already exists.

    Returns:
        Group: Newly created group instance.
    """
    if _group_name_taken(db, group_in.name):
        raise ConflictError(f'Group "{group_in.name}" already exists')

    group = models.Group(
        name=group_in.name,
        description=group_in.description or "",
        color=group_in.color or "#667eea",
        icon=group_in.icon or "👥",
        is_private=group_in.is_private,
    )
    db.add(group)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f'Group "{group_in.name}" already exists')
    db.refresh(group)
    logger.info("Created group %s (%s)", group.id, group.name)
    return group


def update_group(db: Session, group: models.Group, changes: schemas.GroupUpdate) -> models.Group:
    values = {
        key: value
        for key, value in changes.model_dump(exclude_unset=True).items()
        if value is not None
    }
    if "name" in values and _group_name_taken(db, values["name"], exclude_id=group.id):
        raise ConflictError(f'Group "{values["name"]}" already exists')

    for key, value in values.items():
        setattr(group, key, value)
    group.updated_at = models.utcnow()
    db.add(group)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Group name already exists")
    db.refresh(group)
    return group


def delete_group(db: Session, group: models.Group) -> int:
    """
    Detach a group from every contact, then delete it.

    Returns:
        int: Number of contacts the group was removed from.
    """
    group_id = group.id
    result = db.execute(
        delete(models.ContactGroupLink)
        .where(models.ContactGroupLink.group_id == group_id)
        .execution_options(synchronize_session=False)
    )
    db.delete(group)
    db.commit()
    logger.info("Deleted group %s, detached from %d contact(s)", group_id, result.rowcount)
    return result.rowcount


# --------------------------------------------------------------------------
# Activity log
# --------------------------------------------------------------------------


def list_activities(
    db: Session,
    page: int = 1,
    limit: int = 20,
    action: Optional[str] = None,
    entity_id: Optional[int] = None,
) -> Tuple[List[models.ActivityLog], int]:
    clauses = []
    if action:
        clauses.append(models.ActivityLog.action == action)
    if entity_id is not None:
        clauses.append(models.ActivityLog.entity_id == entity_id)

    total = db.scalar(select(func.count()).select_from(models.ActivityLog).where(*clauses))
    items = db.scalars(
        select(models.ActivityLog)
        .where(*clauses)
        .order_by(models.ActivityLog.timestamp.desc(), models.ActivityLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(items), total or 0
