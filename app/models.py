"""Database models for the Contacts API.

This module defines SQLAlchemy ORM models used by the application.
Ordered list attributes of a contact (``tags`` and ``groups``) are stored
as child rows carrying a ``position`` column and exposed on
:class:`Contact` as plain lists through association proxies.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.ext.associationproxy import association_proxy
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import relationship, validates

from .database import Base


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in every table."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Contact(Base):
    """
    SQLAlchemy model representing a person record.

    ``category``, ``status`` and ``source`` hold values of the enums in
    :mod:`app.schemas`; validation happens before anything is persisted.
    """

    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=False)
    message = Column(Text, nullable=False, default="")
    category = Column(String(20), nullable=False, default="Personal", index=True)
    status = Column(String(20), nullable=False, default="Active", index=True)
    source = Column(String(20), nullable=False, default="Manual")
    starred = Column(Boolean, nullable=False, default=False, index=True)
    last_contacted = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    custom_fields = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    tag_links = relationship(
        "ContactTag",
        order_by="ContactTag.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    group_links = relationship(
        "ContactGroupLink",
        order_by="ContactGroupLink.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    #: Tag strings in insertion order
    tags = association_proxy("tag_links", "tag", creator=lambda tag: ContactTag(tag=tag))

    #: Identifiers of referenced groups in insertion order
    groups = association_proxy(
        "group_links", "group_id", creator=lambda group_id: ContactGroupLink(group_id=group_id)
    )

    @property
    def group_details(self):
        """Referenced :class:`Group` rows, in the same order as ``groups``."""
        return [link.group for link in self.group_links if link.group is not None]

    def __repr__(self):
        return f"<Contact(id={self.id}, email={self.email})>"


class ContactTag(Base):
    """One entry of a contact's tag list."""

    __tablename__ = "contact_tags"
    __table_args__ = (Index("ix_contact_tags_contact_position", "contact_id", "position"),)

    id = Column(Integer, primary_key=True)
    contact_id = Column(
        Integer, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    position = Column(Integer, nullable=False)
    tag = Column(String(100), nullable=False, index=True)


class ContactGroupLink(Base):
    """One entry of a contact's group list."""

    __tablename__ = "contact_groups"
    __table_args__ = (
        Index("ix_contact_groups_contact_position", "contact_id", "position"),
    )

    id = Column(Integer, primary_key=True)
    contact_id = Column(
        Integer, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    group_id = Column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False)

    group = relationship("Group", lazy="selectin")


class Group(Base):
    """
    SQLAlchemy model representing a named collection of contacts.

    ``contact_count`` is maintained by the contact operations and is
    never allowed to go below zero.
    """

    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False, default="")
    color = Column(String(20), nullable=False, default="#667eea")
    icon = Column(String(20), nullable=False, default="👥")
    contact_count = Column(Integer, nullable=False, default=0)
    is_private = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @validates("contact_count")
    def _clamp_contact_count(self, key, value):
        return max(value or 0, 0)


class ActivityLog(Base):
    """
    Append-only audit record of a mutating action.

    ``entity_id`` weakly references a contact; log entries outlive the
    contact they describe.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_entity_timestamp", "entity_id", "timestamp"),
        Index("ix_activity_logs_action_timestamp", "action", "timestamp"),
    )

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(40), nullable=False)
    entity_type = Column(String(40), nullable=False, default="Contact")
    entity_id = Column(Integer, nullable=True)
    entity_name = Column(String(200), nullable=True)
    changes = Column(JSON, nullable=False, default=dict)
    performed_by = Column(String(100), nullable=False, default="System")
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self):
        return f"<ActivityLog(action={self.action}, entity_id={self.entity_id})>"
