"""Read-side queries over contacts: filtering, sorting, pagination and facets."""

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy import distinct, func, or_, select
from sqlalchemy.orm import Session

from . import models

SORTABLE_COLUMNS = {
    "createdAt": models.Contact.created_at,
    "updatedAt": models.Contact.updated_at,
    "name": models.Contact.name,
    "email": models.Contact.email,
    "phone": models.Contact.phone,
    "category": models.Contact.category,
    "status": models.Contact.status,
    "source": models.Contact.source,
    "starred": models.Contact.starred,
    "lastContacted": models.Contact.last_contacted,
}


@dataclass
class ContactQuery:
    """Parameters of a contact list request.

    Every filter is optional; present filters are combined with AND.
    """

    search: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    group: Optional[int] = None
    tag: Optional[str] = None
    starred: Optional[bool] = None
    sort_by: str = "createdAt"
    sort_order: str = "desc"
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_clause(term: str, *columns):
    """Case-insensitive substring match of ``term`` against any of ``columns``."""
    pattern = _like_pattern(term)
    return or_(*(column.ilike(pattern, escape="\\") for column in columns))


def build_filters(query: ContactQuery) -> list:
    """Translate a :class:`ContactQuery` into SQLAlchemy WHERE clauses."""
    Contact = models.Contact
    clauses = []

    term = (query.search or "").strip()
    if term:
        clauses.append(
            search_clause(term, Contact.name, Contact.email, Contact.phone, Contact.message)
        )
    if query.category:
        clauses.append(Contact.category == query.category)
    if query.status:
        clauses.append(Contact.status == query.status)
    if query.group is not None:
        clauses.append(
            Contact.group_links.any(models.ContactGroupLink.group_id == query.group)
        )
    if query.tag:
        clauses.append(Contact.tag_links.any(models.ContactTag.tag == query.tag))
    if query.starred is not None:
        clauses.append(Contact.starred == query.starred)
    return clauses


def order_by(sort_by: str, sort_order: str) -> list:
    """ORDER BY terms for a sort key; unknown keys fall back to insertion order."""
    descending = sort_order == "desc"
    terms = []
    column = SORTABLE_COLUMNS.get(sort_by)
    if column is not None:
        terms.append(column.desc() if descending else column.asc())
    pk = models.Contact.id
    terms.append(pk.desc() if descending else pk.asc())
    return terms


def find_contacts(db: Session, query: ContactQuery) -> Tuple[List[models.Contact], int]:
    """
    Return one page of contacts matching ``query`` and the unpaginated total.

    Args:
        db (Session): Database session.
        query (ContactQuery): Filters, sort and page window.

    Returns:
        tuple[list[Contact], int]: Page of contacts and total match count.
    """
    clauses = build_filters(query)

    total = db.scalar(
        select(func.count()).select_from(models.Contact).where(*clauses)
    )
    stmt = (
        select(models.Contact)
        .where(*clauses)
        .order_by(*order_by(query.sort_by, query.sort_order))
        .offset(query.offset)
        .limit(query.limit)
    )
    return list(db.scalars(stmt).all()), total or 0


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def get_facets(db: Session) -> dict:
    """Distinct categories, tags and statuses across all contacts."""
    categories = db.scalars(
        select(distinct(models.Contact.category)).order_by(models.Contact.category)
    ).all()
    tags = db.scalars(
        select(distinct(models.ContactTag.tag)).order_by(models.ContactTag.tag)
    ).all()
    statuses = db.scalars(
        select(distinct(models.Contact.status)).order_by(models.Contact.status)
    ).all()
    return {
        "categories": list(categories),
        "tags": list(tags),
        "statuses": list(statuses),
    }


def export_filters(
    search: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
) -> list:
    """WHERE clauses for the export endpoint; ``search`` looks at names only."""
    Contact = models.Contact
    clauses = []
    term = (search or "").strip()
    if term:
        clauses.append(search_clause(term, Contact.name))
    if category:
        clauses.append(Contact.category == category)
    if status:
        clauses.append(Contact.status == status)
    return clauses


def find_for_export(db: Session, clauses: list) -> List[models.Contact]:
    stmt = select(models.Contact).where(*clauses).order_by(models.Contact.id)
    return list(db.scalars(stmt).all())
