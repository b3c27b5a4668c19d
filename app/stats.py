"""Dashboard aggregates computed on demand from the entity tables."""

from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from . import models

LATEST_LIMIT = 5


def summary(db: Session) -> dict:
    Contact = models.Contact

    def count(*where):
        return db.scalar(select(func.count()).select_from(Contact).where(*where))

    return {
        "total_contacts": count(),
        "active_contacts": count(Contact.status == "Active"),
        "starred_contacts": count(Contact.starred.is_(True)),
        "total_groups": db.scalar(select(func.count()).select_from(models.Group)),
    }


def category_stats(db: Session) -> list:
    """Contacts per category, largest first."""
    count = func.count(models.Contact.id).label("count")
    rows = db.execute(
        select(models.Contact.category, count)
        .group_by(models.Contact.category)
        .order_by(count.desc(), models.Contact.category)
    ).all()
    return [{"category": category, "count": total} for category, total in rows]


def weekly_stats(db: Session, days: int = 7) -> list:
    """Contacts created per calendar day over the last ``days`` days, oldest first."""
    since = models.utcnow() - timedelta(days=days)
    day = func.date(models.Contact.created_at).label("day")
    rows = db.execute(
        select(day, func.count(models.Contact.id))
        .where(models.Contact.created_at >= since)
        .group_by(day)
        .order_by(day)
    ).all()
    return [{"date": str(value), "count": total} for value, total in rows]


def latest_contacts(db: Session, limit: int = LATEST_LIMIT) -> list:
    return list(
        db.scalars(
            select(models.Contact)
            .order_by(models.Contact.created_at.desc(), models.Contact.id.desc())
            .limit(limit)
        ).all()
    )


def recent_activities(db: Session, limit: int = LATEST_LIMIT) -> list:
    return list(
        db.scalars(
            select(models.ActivityLog)
            .order_by(models.ActivityLog.timestamp.desc(), models.ActivityLog.id.desc())
            .limit(limit)
        ).all()
    )


def dashboard(db: Session) -> dict:
    """
    Collect every dashboard aggregate.

    Any failing aggregate fails the whole dashboard; there is no
    per-metric fallback.
    """
    return {
        "summary": summary(db),
        "category_stats": category_stats(db),
        "weekly_stats": weekly_stats(db),
        "latest_contacts": latest_contacts(db),
        "recent_activities": recent_activities(db),
    }
