import base64

import pytest

from civicdesk.audit_events import list_audit_events

PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\n" + b"0" * 16).decode()


def _register_body(sector_id, **over):
    body = {
        "email": "Resident@Example.com",
        "password": "secret123",
        "fullName": "Ayesha Khan",
        "phoneCountryCode": "+92",
        "phoneNumber": "3001234567",
        "houseNo": "7",
        "streetNo": "2",
        "subSectorId": sector_id,
    }
    body.update(over)
    return body


def _login(client, email, password="secret123", path="/auth/login"):
    return client.post(path, json={"email": email, "password": password})


def test_register_auto_approves_and_lowercases_email(client, factory):
    r = client.post("/auth/register", json=_register_body(factory.sub_sector_id("B")))
    assert r.status_code == 201
    body = r.get_json()
    assert body["email"] == "resident@example.com"
    assert body["approvalStatus"] == "approved"
    assert body["role"] == "user"
    assert body["subSector"]["code"] == "B"
    assert "passwordHash" not in body
    assert list_audit_events("user_registered")


def test_register_pending_when_auto_approve_off(app, client, factory, monkeypatch):
    monkeypatch.setitem(app.config, "REGISTRATION_AUTO_APPROVE", False)
    r = client.post("/auth/register", json=_register_body(factory.sub_sector_id()))
    assert r.status_code == 201
    assert r.get_json()["approvalStatus"] == "pending"
    login = _login(client, "resident@example.com")
    assert login.status_code == 403
    assert login.get_json()["code"] == "not_approved"


def test_register_stores_id_card_images(client, factory):
    body = _register_body(factory.sub_sector_id(), idCardFront=PNG_DATA_URL, idCardBack=PNG_DATA_URL)
    r = client.post("/auth/register", json=body)
    assert r.status_code == 201
    front = r.get_json()["idCardFront"]
    assert front.startswith("/uploads/idcards/") and front.endswith(".png")
    assert client.get(front).status_code == 200


def test_register_rejects_bad_id_card_data_url(client, factory):
    body = _register_body(factory.sub_sector_id(), idCardFront="data:text/plain;base64,aGVsbG8=")
    r = client.post("/auth/register", json=body)
    assert r.status_code == 409


def test_register_validation_and_duplicates(client, factory):
    sid = factory.sub_sector_id()
    r = client.post("/auth/register", json=_register_body(sid, email="not-an-email", password="123"))
    assert r.status_code == 422
    fields = {e["field"] for e in r.get_json()["errors"]}
    assert {"email", "password"} <= fields

    assert client.post("/auth/register", json=_register_body(sid)).status_code == 201
    dup = client.post("/auth/register", json=_register_body(sid, email="RESIDENT@example.com"))
    assert dup.status_code == 409
    assert dup.get_json()["detail"] == "Email already registered"


def test_register_unknown_sub_sector(client):
    r = client.post("/auth/register", json=_register_body(99999))
    assert r.status_code == 409
    assert r.get_json()["detail"] == "Invalid sub sector"


def test_login_returns_token_pair(client, factory):
    u = factory.user(email="ali@example.com")
    r = _login(client, "ALI@example.com")
    assert r.status_code == 200
    body = r.get_json()
    assert body["tokenType"] == "Bearer"
    assert body["expiresIn"] > 0
    assert body["user"]["id"] == u.id
    assert body["accessToken"] != body["refreshToken"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['accessToken']}"})
    assert me.status_code == 200
    assert me.get_json()["email"] == "ali@example.com"


def test_login_wrong_password(client, factory):
    factory.user(email="ali@example.com")
    r = _login(client, "ali@example.com", password="nope-nope")
    assert r.status_code == 401
    assert r.get_json()["code"] == "invalid_credentials"
    assert r.headers["Content-Type"].startswith("application/problem+json")


def test_login_missing_fields(client):
    r = client.post("/auth/login", json={"email": ""})
    assert r.status_code == 422


@pytest.mark.parametrize(
    "path,role,detail",
    [
        ("/auth/login", "admin", "App access only for user role"),
        ("/auth/admin-login", "user", "Admin access only"),
    ],
)
def test_login_role_gates(client, factory, path, role, detail):
    factory.user(email="x@example.com", role=role)
    r = _login(client, "x@example.com", path=path)
    assert r.status_code == 403
    assert r.get_json()["detail"] == detail


def test_admin_login(client, factory):
    factory.user(email="boss@example.com", role="admin")
    r = _login(client, "boss@example.com", path="/auth/admin-login")
    assert r.status_code == 200
    assert r.get_json()["user"]["role"] == "admin"


def test_login_deactivated(client, factory):
    factory.user(email="gone@example.com", account="deactivated")
    r = _login(client, "gone@example.com")
    assert r.status_code == 403
    assert r.get_json()["code"] == "account_deactivated"


def test_login_rate_limit_locks_after_failures(app, client, factory, monkeypatch):
    monkeypatch.setitem(app.config, "AUTH_RATE_LIMIT", {"window_sec": 60, "max_failures": 3, "lock_sec": 120})
    factory.user(email="ali@example.com")
    assert _login(client, "ali@example.com", "bad-pass").status_code == 401
    assert _login(client, "ali@example.com", "bad-pass").status_code == 401
    locked = _login(client, "ali@example.com", "bad-pass")
    assert locked.status_code == 429
    assert locked.headers["Retry-After"] == "120"
    # correct password is refused while the lock holds
    still = _login(client, "ali@example.com")
    assert still.status_code == 429
    assert 0 < int(still.headers["Retry-After"]) <= 120
    assert list_audit_events("login_locked")


def test_refresh_rotates_and_revokes_previous(client, factory):
    factory.user(email="ali@example.com")
    first = _login(client, "ali@example.com").get_json()
    r = client.post("/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert r.status_code == 200
    second = r.get_json()
    assert second["refreshToken"] != first["refreshToken"]

    stale = client.post("/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert stale.status_code == 401
    assert client.post("/auth/refresh", json={"refreshToken": second["refreshToken"]}).status_code == 200


def test_refresh_rejects_access_token_and_garbage(client, factory):
    factory.user(email="ali@example.com")
    tokens = _login(client, "ali@example.com").get_json()
    wrong = client.post("/auth/refresh", json={"refreshToken": tokens["accessToken"]})
    assert wrong.status_code == 400
    assert wrong.get_json()["code"] == "wrong_token_type"
    assert client.post("/auth/refresh", json={"refreshToken": "a.b.c"}).status_code == 401
    assert client.post("/auth/refresh", json={}).status_code == 422


def test_logout_clears_refresh_token(client, factory):
    factory.user(email="ali@example.com")
    tokens = _login(client, "ali@example.com").get_json()
    r = client.post("/auth/logout", json={"refreshToken": tokens["refreshToken"]})
    assert r.status_code == 200
    assert r.get_json() == {"ok": True}
    assert client.post("/auth/refresh", json={"refreshToken": tokens["refreshToken"]}).status_code == 401


def test_me_requires_valid_bearer(client):
    assert client.get("/auth/me").status_code == 401
    r = client.get("/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401
    assert r.headers["WWW-Authenticate"] == "Bearer"
