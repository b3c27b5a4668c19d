import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

T = TypeVar("T")


class Category(str, Enum):
    PERSONAL = "Personal"
    BUSINESS = "Business"
    FAMILY = "Family"
    FRIENDS = "Friends"
    WORK = "Work"
    OTHER = "Other"


class ContactStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    ARCHIVED = "Archived"


class Source(str, Enum):
    MANUAL = "Manual"
    IMPORT = "Import"
    WEBSITE = "Website"
    REFERRAL = "Referral"


class BulkAction(str, Enum):
    """Actions accepted by the bulk endpoint."""

    DELETE = "delete"
    UPDATE = "update"
    STAR = "star"
    UNSTAR = "unstar"
    CHANGE_STATUS = "change-status"


class CamelModel(BaseModel):
    """Base for wire schemas: snake_case in Python, camelCase in JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=True,
    )


def _required_text(value: Any, message: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(message)
    return str(value).strip()


def _normalize_email(value: Any) -> str:
    email = _required_text(value, "Email is required").lower()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Please enter a valid email")
    return email


def _reject_null_fields(data: Any, fields) -> Any:
    """Refuse explicit nulls for ``fields``, given by name or by camelCase alias."""
    if isinstance(data, dict):
        for field in fields:
            for key in (field, to_camel(field)):
                if key in data and data[key] is None:
                    raise ValueError(f"{to_camel(field)} cannot be null")
    return data


def _normalize_tags(value: Any) -> List[str]:
    """Accept a list or a comma-separated string; trim and drop empty entries."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(tag).strip() for tag in value if str(tag).strip()]


class ContactBase(CamelModel):
    """Shared fields for contact input schemas."""

    name: str
    email: str
    phone: str
    message: str = ""
    category: Category = Field(Category.PERSONAL, validate_default=True)
    tags: List[str] = Field(default_factory=list)
    groups: List[int] = Field(default_factory=list)
    status: ContactStatus = Field(ContactStatus.ACTIVE, validate_default=True)
    source: Source = Field(Source.MANUAL, validate_default=True)
    starred: bool = False
    last_contacted: Optional[datetime] = None
    notes: Optional[str] = None
    custom_fields: Dict[str, str] = Field(default_factory=dict)

    @field_validator("name", mode="before")
    @classmethod
    def _check_name(cls, v):
        return _required_text(v, "Name is required")

    @field_validator("phone", mode="before")
    @classmethod
    def _check_phone(cls, v):
        return _required_text(v, "Phone is required")

    @field_validator("email", mode="before")
    @classmethod
    def _check_email(cls, v):
        return _normalize_email(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _check_tags(cls, v):
        return _normalize_tags(v)

    @field_validator("message", mode="before")
    @classmethod
    def _trim_message(cls, v):
        return (v or "").strip()

    @field_validator("notes", mode="before")
    @classmethod
    def _trim_notes(cls, v):
        return v.strip() if isinstance(v, str) else v


class ContactCreate(ContactBase):
    """Schema for creating new contact."""

    pass


class ContactUpdate(CamelModel):
    """Schema for updating contact (all fields optional).

    Fields that are mandatory on a contact may be omitted but not nulled.
    """

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    message: Optional[str] = None
    category: Optional[Category] = None
    tags: Optional[List[str]] = None
    groups: Optional[List[int]] = None
    status: Optional[ContactStatus] = None
    source: Optional[Source] = None
    starred: Optional[bool] = None
    last_contacted: Optional[datetime] = None
    notes: Optional[str] = None
    custom_fields: Optional[Dict[str, str]] = None

    @model_validator(mode="before")
    @classmethod
    def _reject_nulls(cls, data):
        return _reject_null_fields(
            data,
            (
                "name",
                "email",
                "phone",
                "category",
                "groups",
                "status",
                "source",
                "starred",
                "custom_fields",
            ),
        )

    @field_validator("name", mode="before")
    @classmethod
    def _check_name(cls, v):
        return _required_text(v, "Name is required")

    @field_validator("phone", mode="before")
    @classmethod
    def _check_phone(cls, v):
        return _required_text(v, "Phone is required")

    @field_validator("email", mode="before")
    @classmethod
    def _check_email(cls, v):
        return _normalize_email(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _check_tags(cls, v):
        return _normalize_tags(v)

    @field_validator("message", mode="before")
    @classmethod
    def _trim_message(cls, v):
        return (v or "").strip()


class ContactBulkUpdate(CamelModel):
    """Fields a bulk ``update`` action may set on every selected contact."""

    model_config = ConfigDict(extra="forbid")

    message: Optional[str] = None
    category: Optional[Category] = None
    status: Optional[ContactStatus] = None
    source: Optional[Source] = None
    starred: Optional[bool] = None
    last_contacted: Optional[datetime] = None
    notes: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _reject_nulls(cls, data):
        return _reject_null_fields(data, ("message", "category", "status", "source", "starred"))


class GroupSummary(CamelModel):
    """Display fields of a group a contact belongs to."""

    id: int
    name: str
    color: str
    icon: str


class ContactOut(CamelModel):
    """Schema for returning contact with ID."""

    id: int
    name: str
    email: str
    phone: str
    message: str = ""
    category: str
    tags: List[str] = Field(default_factory=list)
    groups: List[int] = Field(default_factory=list)
    group_details: List[GroupSummary] = Field(default_factory=list)
    status: str
    source: str
    starred: bool
    last_contacted: Optional[datetime] = None
    notes: Optional[str] = None
    custom_fields: Dict[str, str] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @field_validator("tags", "groups", mode="before")
    @classmethod
    def _as_list(cls, v):
        return list(v or [])


class BulkActionRequest(CamelModel):
    """Payload of ``POST /contacts/bulk/actions``."""

    action: BulkAction
    contact_ids: List[int]
    data: Optional[Dict[str, Any]] = None


class GroupCreate(CamelModel):
    """Payload for creating a group."""

    name: str
    description: Optional[str] = ""
    color: Optional[str] = None
    icon: Optional[str] = None
    is_private: bool = False

    @field_validator("name", mode="before")
    @classmethod
    def _check_name(cls, v):
        return _required_text(v, "Group name is required")

    @field_validator("description", mode="before")
    @classmethod
    def _trim_description(cls, v):
        return (v or "").strip()


class GroupUpdate(CamelModel):
    """Schema for updating a group (all fields optional)."""

    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    is_private: Optional[bool] = None

    @field_validator("name", mode="before")
    @classmethod
    def _check_name(cls, v):
        return _required_text(v, "Group name is required")


class GroupOut(CamelModel):
    id: int
    name: str
    description: str = ""
    color: str
    icon: str
    contact_count: int
    is_private: bool
    created_at: datetime
    updated_at: datetime


class ActivityOut(CamelModel):
    id: int
    action: str
    entity_type: str
    entity_id: Optional[int] = None
    entity_name: Optional[str] = None
    changes: Dict[str, Any] = Field(default_factory=dict)
    performed_by: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class Facets(BaseModel):
    """Distinct values currently in use, for filter controls."""

    categories: List[str]
    tags: List[str]
    statuses: List[str]


class Envelope(BaseModel, Generic[T]):
    """Standard response wrapper used by every JSON endpoint."""

    success: bool = True
    data: T
    message: Optional[str] = None


class ContactPage(BaseModel):
    success: bool = True
    data: List[ContactOut]
    pagination: Pagination
    filters: Facets


class ContactDetail(BaseModel):
    success: bool = True
    data: ContactOut
    activities: List[ActivityOut]


class ActivityPage(BaseModel):
    success: bool = True
    data: List[ActivityOut]
    pagination: Pagination


class LatestContact(CamelModel):
    id: int
    name: str
    email: str
    category: str
    created_at: datetime


class DashboardSummary(CamelModel):
    total_contacts: int
    active_contacts: int
    starred_contacts: int
    total_groups: int


class CategoryCount(BaseModel):
    category: str
    count: int


class DailyCount(BaseModel):
    date: str
    count: int


class Dashboard(CamelModel):
    summary: DashboardSummary
    category_stats: List[CategoryCount]
    weekly_stats: List[DailyCount]
    latest_contacts: List[LatestContact]
    recent_activities: List[ActivityOut]
