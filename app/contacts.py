"""Contact management routes for the Contacts API."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse
from fastapi_limiter.depends import RateLimiter
from sqlalchemy.orm import Session

from . import crud, export, queries, schemas
from .activity import RequestContext, get_request_context
from .core import get_settings
from .database import get_db
from .errors import InvalidRequestError

router = APIRouter(prefix="/contacts", tags=["contacts"])
settings = get_settings()

export_limiter = RateLimiter(
    times=settings.EXPORT_RATE_LIMIT_TIMES,
    seconds=settings.EXPORT_RATE_LIMIT_SECONDS,
)


@router.get("", response_model=schemas.ContactPage)
def list_contacts(
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    group: Optional[int] = Query(None),
    tag: Optional[str] = Query(None),
    starred: Optional[bool] = Query(None),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """
    Retrieve a filtered, sorted page of contacts.

    Filters combine with AND; ``search`` matches name, email, phone or
    message. The ``filters`` block lists every category, tag and status
    in use, regardless of the current filters.

    Returns:
        ContactPage: Contacts, pagination info and facet values.
    """
    query = queries.ContactQuery(
        search=search,
        category=category,
        status=status,
        group=group,
        tag=tag,
        starred=starred,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    contacts, total = queries.find_contacts(db, query)
    return {
        "success": True,
        "data": contacts,
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": queries.page_count(total, limit),
        },
        "filters": queries.get_facets(db),
    }


@router.post("", response_model=schemas.Envelope[schemas.ContactOut], status_code=201)
def create_contact(
    contact_in: schemas.ContactCreate,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """
    Create a new contact.

    Args:
        contact_in (ContactCreate): Contact input data.
        db (Session): Database session.
        context (RequestContext): Caller description for the audit log.

    Returns:
        Envelope[ContactOut]: Created contact.
    """
    contact = crud.create_contact(db, contact_in, context)
    return {"data": contact, "message": "Contact created successfully"}


@router.post("/bulk/actions", response_model=schemas.Envelope[dict])
def bulk_actions(
    request: schemas.BulkActionRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """
    Apply ``delete``, ``update``, ``star``, ``unstar`` or ``change-status``
    to several contacts at once.
    """
    summary = crud.bulk_action(db, request, context)
    return {
        "data": summary,
        "message": f"Bulk action '{summary['action']}' completed successfully",
    }


@router.get("/export/{export_format}", dependencies=[Depends(export_limiter)])
def export_contacts(
    export_format: str,
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """
    Download the matching contacts as a CSV or JSON attachment.

    Args:
        export_format (str): ``csv`` or ``json``.
        search (str | None): Case-insensitive name filter.
        category (str | None): Exact category filter.
        status (str | None): Exact status filter.

    Raises:
        InvalidRequestError: If the format is not supported.
    """
    if export_format not in export.EXPORT_FORMATS:
        raise InvalidRequestError("Invalid format")

    contacts = queries.find_for_export(db, queries.export_filters(search, category, status))
    headers = export.attachment_headers(export_format)
    if export_format == "csv":
        rows = [export.csv_row(contact) for contact in contacts]
        crud.record_export(db, export_format, len(rows), context)
        return StreamingResponse(
            export.iter_csv(rows), media_type=export.MEDIA_TYPES["csv"], headers=headers
        )

    records = export.to_records(contacts)
    crud.record_export(db, export_format, len(records), context)
    return Response(
        export.render_json(records), media_type=export.MEDIA_TYPES["json"], headers=headers
    )


@router.get("/{contact_id}", response_model=schemas.ContactDetail)
def get_contact(contact_id: int, db: Session = Depends(get_db)):
    """
    Retrieve a single contact with its ten most recent activity entries.

    Raises:
        NotFoundError: If contact is not found.
    """
    contact = crud.require_contact(db, contact_id)
    return {
        "data": contact,
        "activities": crud.get_contact_activities(db, contact_id),
    }


@router.put("/{contact_id}", response_model=schemas.Envelope[schemas.ContactOut])
def update_contact(
    contact_id: int,
    changes: schemas.ContactUpdate,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """
    Partially update an existing contact.

    Only fields provided in the request will be updated.

    Args:
        contact_id (int): Contact identifier.
        changes (ContactUpdate): Fields to update.
        db (Session): Database session.

    Raises:
        NotFoundError: If contact is not found.

    Returns:
        Envelope[ContactOut]: Updated contact.
    """
    contact = crud.require_contact(db, contact_id)
    contact = crud.update_contact(db, contact, changes, context)
    return {"data": contact, "message": "Contact updated successfully"}


@router.delete("/{contact_id}", response_model=schemas.Envelope[None])
def remove_contact(
    contact_id: int,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    contact = crud.require_contact(db, contact_id)
    crud.delete_contact(db, contact, context)
    return {"data": None, "message": "Contact deleted successfully"}


@router.post("/{contact_id}/star", response_model=schemas.Envelope[dict])
def star_contact(
    contact_id: int,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Toggle the starred flag of a contact."""
    contact = crud.require_contact(db, contact_id)
    starred = crud.toggle_star(db, contact, context)
    return {
        "data": {"starred": starred},
        "message": f"Contact {'starred' if starred else 'unstarred'} successfully",
    }


@router.post(
    "/{contact_id}/groups/{group_id}",
    response_model=schemas.Envelope[schemas.ContactOut],
)
def add_to_group(
    contact_id: int,
    group_id: int,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    contact = crud.require_contact(db, contact_id)
    contact = crud.add_contact_to_group(db, contact, group_id, context)
    return {"data": contact, "message": "Contact added to group"}


@router.delete(
    "/{contact_id}/groups/{group_id}",
    response_model=schemas.Envelope[schemas.ContactOut],
)
def remove_from_group(
    contact_id: int,
    group_id: int,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    contact = crud.require_contact(db, contact_id)
    contact = crud.remove_contact_from_group(db, contact, group_id, context)
    return {"data": contact, "message": "Contact removed from group"}
