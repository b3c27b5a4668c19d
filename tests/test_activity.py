import pytest
from fastapi import status

from app import models
from app.activity import (
    BULK_ACTIVITY,
    ActivityAction,
    ActivityBus,
    ActivityEvent,
    activity_bus,
)
from app.schemas import BulkAction


def test_bus_isolates_failing_subscriber():
    bus = ActivityBus()
    seen = []

    @bus.subscribe
    def broken(db, event):
        raise RuntimeError("disk full")

    @bus.subscribe
    def recorder(db, event):
        seen.append(event.action)

    bus.publish(None, ActivityEvent(ActivityAction.EXPORT, None, "All Contacts"))
    assert seen == [ActivityAction.EXPORT]


def test_every_bulk_action_has_a_log_action():
    assert set(BULK_ACTIVITY) == set(BulkAction)
    assert BULK_ACTIVITY[BulkAction.CHANGE_STATUS] is ActivityAction.BULK_CHANGE_STATUS


@pytest.fixture()
def failing_subscriber():
    def explode(db, event):
        raise RuntimeError("audit store offline")

    activity_bus.subscribe(explode)
    yield explode
    activity_bus.unsubscribe(explode)


def test_mutation_succeeds_when_logging_fails(client, db_session, failing_subscriber):
    resp = client.post(
        "/api/contacts",
        json={"name": "Gil", "email": "gil@x.com", "phone": "555"},
    )
    assert resp.status_code == status.HTTP_201_CREATED
    # the persisting subscriber still ran
    assert db_session.query(models.ActivityLog).count() == 1
