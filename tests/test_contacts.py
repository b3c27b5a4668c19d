from fastapi import status

from app import crud, models
from app.schemas import ContactCreate


def test_create_contact_normalizes_fields(client):
    resp = client.post(
        "/api/contacts",
        json={
            "name": "  Ann Lee ",
            "email": "  Ann.Lee@Example.COM ",
            "phone": " 555-0100 ",
            "tags": "vip, , lead ,",
        },
    )
    assert resp.status_code == status.HTTP_201_CREATED
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Contact created successfully"

    data = body["data"]
    assert data["name"] == "Ann Lee"
    assert data["email"] == "ann.lee@example.com"
    assert data["phone"] == "555-0100"
    assert data["tags"] == ["vip", "lead"]
    assert data["category"] == "Personal"
    assert data["status"] == "Active"
    assert data["source"] == "Manual"
    assert data["starred"] is False
    assert data["createdAt"] and data["updatedAt"]


def test_create_contact_rejects_bad_email(client):
    resp = client.post(
        "/api/contacts",
        json={"name": "Bob", "email": "not-an-email", "phone": "1"},
    )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    body = resp.json()
    assert body["success"] is False
    assert [e["field"] for e in body["errors"]] == ["email"]


def test_create_contact_requires_name_and_phone(client):
    resp = client.post(
        "/api/contacts",
        json={"name": "   ", "email": "a@b.co", "phone": ""},
    )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    fields = {e["field"] for e in resp.json()["errors"]}
    assert fields == {"name", "phone"}


def test_create_contact_rejects_unknown_category(client):
    resp = client.post(
        "/api/contacts",
        json={"name": "Bob", "email": "bob@x.com", "phone": "1", "category": "Enemies"},
    )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["errors"][0]["field"] == "category"


def test_create_contact_rejects_unknown_group(client):
    resp = client.post(
        "/api/contacts",
        json={"name": "Bob", "email": "bob@x.com", "phone": "1", "groups": [999]},
    )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert "999" in resp.json()["error"]


def test_get_contact_includes_activities(client, make_contact):
    contact = make_contact(name="Cara")
    resp = client.get(f"/api/contacts/{contact['id']}")
    assert resp.status_code == status.HTTP_200_OK
    body = resp.json()
    assert body["data"]["name"] == "Cara"
    assert [a["action"] for a in body["activities"]] == ["CREATE_CONTACT"]
    assert body["activities"][0]["performedBy"] == "User"
    assert body["activities"][0]["ipAddress"] == "testclient"


def test_missing_contact_is_404(client):
    for resp in (
        client.get("/api/contacts/4242"),
        client.put("/api/contacts/4242", json={"name": "x"}),
        client.delete("/api/contacts/4242"),
        client.post("/api/contacts/4242/star"),
    ):
        assert resp.status_code == status.HTTP_404_NOT_FOUND
        assert resp.json() == {"success": False, "error": "Contact not found"}


def test_update_records_every_submitted_field(client, db_session, make_contact):
    contact = make_contact(name="Dan", phone="555-1111")
    resp = client.put(
        f"/api/contacts/{contact['id']}",
        json={"name": "Daniel", "phone": "555-1111", "email": "DANIEL@X.COM"},
    )
    assert resp.status_code == status.HTTP_200_OK
    data = resp.json()["data"]
    assert data["name"] == "Daniel"
    assert data["email"] == "daniel@x.com"

    entry = (
        db_session.query(models.ActivityLog)
        .filter_by(action="UPDATE_CONTACT", entity_id=contact["id"])
        .one()
    )
    assert entry.changes["name"] == {"old": "Dan", "new": "Daniel"}
    assert entry.changes["phone"] == {"old": "555-1111", "new": "555-1111"}
    assert entry.changes["email"]["new"] == "daniel@x.com"
    assert set(entry.changes) == {"name", "phone", "email"}


def test_update_rejects_null_required_field(client, make_contact):
    contact = make_contact()
    resp = client.put(f"/api/contacts/{contact['id']}", json={"email": None})
    assert resp.status_code == status.HTTP_400_BAD_REQUEST


def test_update_rejects_null_groups(client, make_group, make_contact):
    work = make_group("Work")
    contact = make_contact(groups=[work["id"]])
    resp = client.put(f"/api/contacts/{contact['id']}", json={"groups": None})
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert client.get(f"/api/contacts/{contact['id']}").json()["data"]["groups"] == [work["id"]]


def test_null_custom_fields_never_reach_storage(client, make_contact):
    contact = make_contact(customFields={"team": "blue"})
    for key in ("customFields", "custom_fields"):
        resp = client.put(f"/api/contacts/{contact['id']}", json={key: None})
        assert resp.status_code == status.HTTP_400_BAD_REQUEST

    listed = client.get("/api/contacts")
    assert listed.status_code == status.HTTP_200_OK
    assert listed.json()["data"][0]["customFields"] == {"team": "blue"}
    assert client.get("/api/contacts/export/json").status_code == status.HTTP_200_OK


def test_update_leaves_unsent_fields(client, make_contact):
    contact = make_contact(tags=["a", "b"], notes="keep me")
    resp = client.put(f"/api/contacts/{contact['id']}", json={"status": "Inactive"})
    data = resp.json()["data"]
    assert data["status"] == "Inactive"
    assert data["tags"] == ["a", "b"]
    assert data["notes"] == "keep me"


def test_star_toggles_back_and_forth(client, db_session, make_contact):
    contact = make_contact()
    first = client.post(f"/api/contacts/{contact['id']}/star").json()
    second = client.post(f"/api/contacts/{contact['id']}/star").json()
    assert first["data"] == {"starred": True}
    assert first["message"] == "Contact starred successfully"
    assert second["data"] == {"starred": False}

    actions = [
        a.action
        for a in db_session.query(models.ActivityLog)
        .filter_by(entity_id=contact["id"])
        .order_by(models.ActivityLog.id)
    ]
    assert actions == ["CREATE_CONTACT", "STARRED", "UNSTARRED"]


def test_delete_contact(client, db_session, make_contact):
    contact = make_contact(name="Eve")
    resp = client.delete(f"/api/contacts/{contact['id']}")
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["message"] == "Contact deleted successfully"
    assert client.get(f"/api/contacts/{contact['id']}").status_code == 404

    entry = db_session.query(models.ActivityLog).filter_by(action="DELETE_CONTACT").one()
    assert entry.entity_name == "Eve"


def test_crud_create_keeps_tag_order(db_session):
    contact = crud.create_contact(
        db_session,
        ContactCreate(name="Fay", email="fay@x.io", phone="1", tags=["z", "a", "m"]),
    )
    db_session.expire_all()
    assert list(db_session.get(models.Contact, contact.id).tags) == ["z", "a", "m"]
