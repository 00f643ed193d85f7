from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from propdesk.main import create_app
from propdesk.services import partners


@pytest.fixture
def client():
    return TestClient(create_app())


def _h(principal) -> dict:
    return {"X-User-Ref": principal.ref}


def _mk_property(client, admin) -> dict:
    owner = client.post("/api/properties/owners", json={"name": "Olive"}, headers=_h(admin)).json()
    r = client.post(
        "/api/properties",
        json={"owner_id": owner["id"], "name": "Cove 5", "address": "5 Cove Ln"},
        headers=_h(admin),
    )
    assert r.status_code == 200, r.text
    return r.json()


def test_health(client):
    assert client.get("/api/health").json()["ok"] is True


def test_unauthenticated_requests_are_rejected(client):
    assert client.get("/api/properties").status_code == 401
    assert client.get("/api/properties", headers={"X-User-Ref": "user:404"}).status_code == 401


def test_property_task_flow_and_activity(client, admin):
    prop = _mk_property(client, admin)

    r = client.post("/api/tasks", json={"property_id": prop["id"], "title": "Replace filter"}, headers=_h(admin))
    assert r.status_code == 200, r.text
    task = r.json()
    assert task["status"] == "pending"

    r = client.post(f"/api/tasks/{task['id']}/status", json={"status": "in_progress"}, headers=_h(admin))
    assert r.json()["status"] == "in_progress"

    r = client.get(f"/api/properties/{prop['id']}/activity", headers=_h(admin))
    assert [(e["entity"], e["action"]) for e in r.json()] == [
        ("Task", "update"),
        ("Task", "create"),
        ("Property", "create"),
    ]


def test_store_errors_map_to_status_codes(client, admin):
    r = client.post("/api/properties", json={"owner_id": 99, "name": "x", "address": "y"}, headers=_h(admin))
    assert r.status_code == 409
    body = r.json()
    assert (body["code"], body["field"]) == ("REFERENTIAL_INTEGRITY", "owner_id")

    assert client.get("/api/properties/123", headers=_h(admin)).status_code == 404

    prop = _mk_property(client, admin)
    task = client.post("/api/tasks", json={"property_id": prop["id"], "title": "t"}, headers=_h(admin)).json()
    r = client.post(f"/api/tasks/{task['id']}/status", json={"status": "approved"}, headers=_h(admin))
    assert r.status_code == 422
    assert r.json()["code"] == "INVALID_TRANSITION"


def test_partner_portal_permissions(client, db, admin):
    prop = _mk_property(client, admin)
    partner = partners.add_partner(db, actor=admin, payload={"name": "Fixit"})
    other = partners.add_partner(db, actor=admin, payload={"name": "Other"})
    mine = client.post(
        "/api/tasks",
        json={"property_id": prop["id"], "title": "Mine", "assignee_kind": "partner", "assignee_id": partner.id},
        headers=_h(admin),
    ).json()
    client.post(
        "/api/tasks",
        json={"property_id": prop["id"], "title": "Theirs", "assignee_kind": "partner", "assignee_id": other.id},
        headers=_h(admin),
    )

    as_partner = {"X-User-Ref": f"partner:{partner.id}"}
    listed = client.get("/api/tasks", headers=as_partner).json()
    assert [t["title"] for t in listed] == ["Mine"]

    assert client.post("/api/properties/owners", json={"name": "Nope"}, headers=as_partner).status_code == 403

    r = client.post(f"/api/tasks/{mine['id']}/status", json={"status": "completed"}, headers=as_partner)
    assert r.status_code == 200
    r = client.post(f"/api/tasks/{mine['id']}/status", json={"status": "approved"}, headers=as_partner)
    assert r.status_code == 403
    assert r.json()["code"] == "FORBIDDEN"


def test_login_issues_token(client, admin):
    r = client.post("/api/auth/login", json={"email": admin.email})
    assert r.status_code == 200
    token = r.json()["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["ref"] == admin.ref

    client.cookies.clear()
    bad = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401


def test_bank_statement_csv_upload(client, admin):
    csv_text = "date,description,amount\n2026-02-01,Deposit,500\n2026-02-03,Fee,-3.5\n"
    r = client.post(
        "/api/financial/bank-statements/csv?bank_name=First%20Bank",
        content=csv_text,
        headers={**_h(admin), "Content-Type": "text/csv"},
    )
    assert r.status_code == 200, r.text
    assert len(r.json()["lines"]) == 2

    r = client.get("/api/financial/bank-statements/unreconciled", headers=_h(admin))
    assert len(r.json()) == 2
