import pytest

from hrm_api.extensions import db
from hrm_api.models.user import User


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def _register(client, email="owner@acme.com", company="Acme"):
    r = client.post("/api/v1/auth/register", json={
        "fullName": "Olive Owner", "email": email, "password": "secret123", "company": company,
    })
    assert r.status_code == 201, r.get_json()
    return r.get_json()["data"]


def _login(client, email, password="secret123"):
    r = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.get_json()
    return r.get_json()["data"]["access"]


@pytest.fixture
def onboarded(client):
    """A registered owner whose company has a plan, one department and one employee."""
    owner = _register(client)
    h = _auth(owner["access"])
    assert client.post("/api/v1/company/plan", json={"plan": "pro"}, headers=h).status_code == 200

    r = client.post("/api/v1/departments", json={"name": "Engineering"}, headers=h)
    assert r.status_code == 201, r.get_json()
    dept = r.get_json()["data"]

    r = client.post("/api/v1/employees", headers=h, json={
        "firstName": "Eve", "lastName": "Stone", "email": "eve@acme.com",
        "departmentId": dept["id"], "position": "Engineer", "dateOfBirth": "1995-05-05",
        "password": "secret123",
    })
    assert r.status_code == 201, r.get_json()
    return {"admin": h, "dept": dept, "eve": r.get_json()["data"]}


def test_health(client):
    r = client.get("/api/v1/health")
    assert r.status_code == 200
    assert r.get_json() == {"success": True, "data": {"status": "ok"}}


def test_register_login_me(client):
    data = _register(client)
    assert data["user"]["role"] == "admin"
    assert data["user"]["company"]["has_plan"] is False

    token = _login(client, "OWNER@acme.com")
    r = client.get("/api/v1/auth/me", headers=_auth(token))
    assert r.status_code == 200
    assert r.get_json()["data"]["email"] == "owner@acme.com"


def test_auth_failures(app):
    fresh = app.test_client()
    _register(fresh)
    assert fresh.post("/api/v1/auth/login", json={"email": "owner@acme.com", "password": "nope"}).status_code == 401
    assert fresh.post("/api/v1/auth/register", json={
        "fullName": "Again", "email": "owner@acme.com", "password": "secret123",
    }).status_code == 409

    anon = app.test_client()
    r = anon.get("/api/v1/employees")
    assert r.status_code == 401
    assert r.get_json()["success"] is False


def test_validation_errors_are_400(client):
    r = client.post("/api/v1/auth/register", json={"fullName": "X", "email": "not-an-email", "password": "1"})
    assert r.status_code == 400
    body = r.get_json()
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert {e["field"] for e in body["error"]["errors"]} >= {"email", "password"}


def test_onboarding_gate(client):
    owner = _register(client)
    h = _auth(owner["access"])

    r = client.get("/api/v1/departments", headers=h)
    assert r.status_code == 403
    assert r.get_json()["error"]["code"] == "ONBOARDING_REQUIRED"

    r = client.get("/api/v1/company/verify", headers=h)
    assert r.get_json()["data"]["has_plan"] is False

    assert client.post("/api/v1/company/plan", json={"plan": "gold"}, headers=h).status_code == 400
    assert client.post("/api/v1/company/plan", json={"plan": "free"}, headers=h).status_code == 200
    assert client.get("/api/v1/departments", headers=h).status_code == 200


def test_company_can_be_created_after_signup(client):
    r = client.post("/api/v1/auth/register", json={
        "fullName": "Solo", "email": "solo@solo.com", "password": "secret123",
    })
    h = _auth(r.get_json()["data"]["access"])
    assert client.get("/api/v1/company/verify", headers=h).status_code == 400

    r = client.post("/api/v1/company/create", headers=h, json={
        "name": "Solo Ltd", "domain": "solo.com", "timezone": "Europe/Berlin",
    })
    assert r.status_code == 201
    assert r.get_json()["data"]["timezone"] == "Europe/Berlin"

    r = client.post("/api/v1/company/create", headers=h, json={"name": "Solo Ltd", "timezone": "Mars/Base"})
    assert r.status_code == 400


def test_employee_day_and_leave_round(client, onboarded):
    admin = onboarded["admin"]
    eve = _auth(_login(client, "eve@acme.com"))

    r = client.post("/api/v1/attendance/check-in", headers=eve, json={"platform": "web"})
    assert r.status_code == 201
    assert r.get_json()["data"]["device"]["platform"] == "web"
    assert client.post("/api/v1/attendance/check-in", headers=eve).status_code == 409
    assert client.get("/api/v1/attendance/my-attendance", headers=eve).status_code == 200

    r = client.post("/api/v1/leaves", headers=eve, json={
        "leaveType": "vacation", "startDate": "2030-01-10", "endDate": "2030-01-12", "reason": "ski trip",
    })
    assert r.status_code == 201, r.get_json()
    leave = r.get_json()["data"]
    assert leave["days"] == 3 and leave["status"] == "pending"

    r = client.post("/api/v1/leaves", headers=eve, json={
        "leaveType": "sick", "startDate": "2030-01-12", "endDate": "2030-01-13", "reason": "flu",
    })
    assert r.status_code == 409

    # employees cannot decide on leaves
    r = client.put(f"/api/v1/leaves/{leave['id']}/status", headers=eve, json={"status": "approved"})
    assert r.status_code == 403

    r = client.put(f"/api/v1/leaves/{leave['id']}/status", headers=admin, json={"status": "approved"})
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "approved"

    r = client.put(f"/api/v1/leaves/{leave['id']}/status", headers=admin,
                   json={"status": "rejected", "rejectionReason": "late"})
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "INVALID_TRANSITION"

    r = client.put(f"/api/v1/leaves/{leave['id']}/cancel", headers=eve)
    assert r.status_code == 404

    r = client.get("/api/v1/leaves/team-calendar?startDate=2030-01-01&endDate=2030-01-31", headers=admin)
    assert [x["id"] for x in r.get_json()["data"]] == [leave["id"]]


def test_department_snapshot_and_counts(client, onboarded):
    admin = onboarded["admin"]
    dept_id = onboarded["dept"]["id"]

    r = client.get(f"/api/v1/departments/{dept_id}", headers=admin)
    assert r.get_json()["data"]["employee_count"] == 1

    r = client.get(f"/api/v1/attendance/department/{dept_id}?date=2024-03-04", headers=admin)
    assert r.status_code == 200
    rows = r.get_json()["data"]
    assert len(rows) == 1 and rows[0]["status"] == "absent" and rows[0]["attendance"] is None

    r = client.delete(f"/api/v1/employees/{onboarded['eve']['id']}", headers=admin)
    assert r.status_code == 200
    r = client.get(f"/api/v1/departments/{dept_id}", headers=admin)
    assert r.get_json()["data"]["employee_count"] == 0


def test_tenants_cannot_see_each_other(app, onboarded):
    other = app.test_client()
    data = _register(other, email="boss@globex.com", company="Globex")
    h = _auth(data["access"])
    assert other.post("/api/v1/company/plan", json={"plan": "free"}, headers=h).status_code == 200

    eve_id = onboarded["eve"]["id"]
    assert other.get(f"/api/v1/employees/{eve_id}", headers=h).status_code == 404
    assert other.get(f"/api/v1/attendance/employee/{eve_id}", headers=h).status_code == 404
    assert other.get(f"/api/v1/departments/{onboarded['dept']['id']}", headers=h).status_code == 404

    r = other.get("/api/v1/employees", headers=h)
    assert r.get_json()["data"] == []
    assert r.get_json()["meta"]["total"] == 0


def _root(client):
    root = User(email="root@platform.com", full_name="Root", role="super-admin")
    root.set_password("secret123")
    db.session.add(root)
    db.session.commit()
    return _auth(_login(client, "root@platform.com"))


def test_super_admin_listing_is_restricted(client, onboarded):
    assert client.get("/api/v1/super-admin/companies", headers=onboarded["admin"]).status_code == 403
    assert client.get("/api/v1/super-admin/stats", headers=onboarded["admin"]).status_code == 403

    r = client.get("/api/v1/super-admin/companies", headers=_root(client))
    assert r.status_code == 200
    assert [c["name"] for c in r.get_json()["data"]] == ["Acme"]


def test_super_admin_manages_tenants(client, onboarded):
    root = _root(client)
    admin = onboarded["admin"]
    acme_id = client.get("/api/v1/company/verify", headers=admin).get_json()["data"]["company"]["id"]

    r = client.post("/api/v1/super-admin/companies", headers=root,
                    json={"name": "Initech", "domain": "initech.com", "plan": "pro"})
    assert r.status_code == 201, r.get_json()
    initech = r.get_json()["data"]
    assert initech["is_active"] is True and initech["plan"] == "pro"
    assert client.post("/api/v1/super-admin/companies", headers=root, json={"name": "acme"}).status_code == 409

    r = client.patch(f"/api/v1/super-admin/companies/{initech['id']}", headers=root, json={"size": "11-50"})
    assert r.get_json()["data"]["size"] == "11-50"
    assert client.get(f"/api/v1/super-admin/companies/{initech['id']}", headers=root).status_code == 200

    # a suspended tenant is locked out of the main application
    r = client.put(f"/api/v1/super-admin/companies/{acme_id}/suspend", headers=root)
    assert r.get_json()["data"]["is_active"] is False
    r = client.get("/api/v1/departments", headers=admin)
    assert r.status_code == 403
    assert r.get_json()["error"]["code"] == "COMPANY_SUSPENDED"

    stats = client.get("/api/v1/super-admin/stats", headers=root).get_json()["data"]
    assert (stats["total"], stats["active"], stats["suspended"]) == (2, 1, 1)
    assert stats["plans"] == {"pro": 2}

    assert client.put(f"/api/v1/super-admin/companies/{acme_id}/reactivate", headers=root).status_code == 200
    assert client.get("/api/v1/departments", headers=admin).status_code == 200

    # tenants with people in them are suspended, not deleted
    assert client.delete(f"/api/v1/super-admin/companies/{acme_id}", headers=root).status_code == 409
    assert client.delete(f"/api/v1/super-admin/companies/{initech['id']}", headers=root).status_code == 200
    assert client.get(f"/api/v1/super-admin/companies/{initech['id']}", headers=root).status_code == 404


def test_password_reset(client, onboarded, sent):
    r = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@acme.com"})
    assert r.status_code == 200
    assert sent == []

    r = client.post("/api/v1/auth/forgot-password", json={"email": "eve@acme.com"})
    assert r.status_code == 200
    event, _, payload = sent[-1]
    assert event == "auth.password_reset"

    # the reset token is not a login
    assert client.get("/api/v1/auth/me", headers=_auth(payload["token"])).status_code == 401

    r = client.post("/api/v1/auth/reset-password", json={"token": payload["token"], "password": "n3w-secret"})
    assert r.status_code == 200
    # a used link cannot set the password a second time
    r = client.post("/api/v1/auth/reset-password", json={"token": payload["token"], "password": "0ther-secret"})
    assert r.status_code == 400
    assert client.post("/api/v1/auth/reset-password", json={"token": "garbage", "password": "n3w-secret"}).status_code == 400
    _login(client, "eve@acme.com", "n3w-secret")
    r = client.post("/api/v1/auth/login", json={"email": "eve@acme.com", "password": "0ther-secret"})
    assert r.status_code == 401


def test_logout_clears_cookie(client):
    _register(client)
    r = client.post("/api/v1/auth/logout")
    assert r.status_code == 200
    assert any(h.startswith("token=;") for h in r.headers.getlist("Set-Cookie"))
