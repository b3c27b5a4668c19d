"""Rendering of contact sets as downloadable CSV or JSON."""

import csv
import io
import json
from typing import Iterable, Iterator, List

from . import models, schemas

EXPORT_FORMATS = ("csv", "json")

CSV_COLUMNS = ["Name", "Email", "Phone", "Category", "Status", "Tags", "Created"]

CREATED_FORMAT = "%Y-%m-%d %H:%M:%S"

MEDIA_TYPES = {"csv": "text/csv", "json": "application/json"}


def csv_row(contact: models.Contact) -> dict:
    return {
        "Name": contact.name,
        "Email": contact.email,
        "Phone": contact.phone,
        "Category": contact.category,
        "Status": contact.status,
        "Tags": ", ".join(contact.tags),
        "Created": contact.created_at.strftime(CREATED_FORMAT) if contact.created_at else "",
    }


def iter_csv(rows: Iterable[dict]) -> Iterator[str]:
    """Yield the CSV document line by line, header first.

    ``rows`` are dicts produced by :func:`csv_row`, built while the database
    session is still open.
    """
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS)

    def flush() -> str:
        chunk = buffer.getvalue()
        buffer.seek(0)
        buffer.truncate(0)
        return chunk

    writer.writeheader()
    yield flush()
    for row in rows:
        writer.writerow(row)
        yield flush()


def to_records(contacts: Iterable[models.Contact]) -> List[dict]:
    return [
        schemas.ContactOut.model_validate(contact).model_dump(by_alias=True, mode="json")
        for contact in contacts
    ]


def render_json(records: List[dict]) -> str:
    return json.dumps(records, ensure_ascii=False)


def attachment_headers(export_format: str) -> dict:
    return {"Content-Disposition": f"attachment; filename=contacts.{export_format}"}
