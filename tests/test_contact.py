from bson import ObjectId

MESSAGE = {"name": "Visitor", "email": "visitor@x.com", "message": "Hi there", "username": "alice"}


def _submit(client, **overrides):
    resp = client.post("/api/contact", json={**MESSAGE, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()["contactId"]


def test_submission_lands_in_owner_inbox(client, mongo, register):
    alice = register()
    bob = register("bob")
    contact_id = _submit(client)

    stored = mongo["contact"].find_one({"_id": ObjectId(contact_id)})
    assert stored["status"] == "new"
    assert stored["userId"] == ObjectId(alice["id"])

    inbox = client.get("/api/contact", headers=alice["headers"]).json()
    assert [c["id"] for c in inbox["contacts"]] == [contact_id]
    assert client.get("/api/contact", headers=bob["headers"]).json()["contacts"] == []


def test_submission_validation(client, mongo, register):
    register()
    assert client.post("/api/contact", json={**MESSAGE, "email": "not-an-email"}).status_code == 400
    assert client.post("/api/contact", json={**MESSAGE, "message": ""}).status_code == 400
    assert client.post("/api/contact", json={**MESSAGE, "username": "ghost"}).status_code == 404
    assert mongo["contact"].count_documents({}) == 0


def test_status_transitions(client, mongo, register):
    alice = register()
    contact_id = _submit(client)

    for status in ("read", "replied"):
        resp = client.patch(f"/api/contact/{contact_id}/status", headers=alice["headers"], json={"status": status})
        assert resp.status_code == 200
        assert resp.json()["contact"]["status"] == status

    rejected = client.patch(f"/api/contact/{contact_id}/status", headers=alice["headers"], json={"status": "archived"})
    assert rejected.status_code == 400
    assert rejected.json()["message"] == "Invalid status"
    assert mongo["contact"].find_one({"_id": ObjectId(contact_id)})["status"] == "replied"


def test_status_change_is_owner_only(client, mongo, register):
    register()
    bob = register("bob")
    contact_id = _submit(client)

    assert client.patch(f"/api/contact/{contact_id}/status", headers=bob["headers"], json={"status": "read"}).status_code == 403
    assert client.patch(f"/api/analytics/contacts/{contact_id}/status", headers=bob["headers"], json={"status": "read"}).status_code == 403
    assert mongo["contact"].find_one({})["status"] == "new"


def test_admin_status_route(client, mongo, register):
    alice = register()
    contact_id = _submit(client)
    resp = client.patch(f"/api/analytics/contacts/{contact_id}/status", headers=alice["headers"], json={"status": "read"})
    assert resp.status_code == 200
    assert mongo["contact"].find_one({})["status"] == "read"


def test_inbox_filters_by_status(client, register):
    alice = register()
    first = _submit(client)
    _submit(client, name="Other")
    client.patch(f"/api/contact/{first}/status", headers=alice["headers"], json={"status": "read"})

    read = client.get("/api/contact", headers=alice["headers"], params={"status": "read"}).json()
    assert [c["id"] for c in read["contacts"]] == [first]
    assert client.get("/api/contact", headers=alice["headers"]).json()["pagination"]["totalContacts"] == 2
