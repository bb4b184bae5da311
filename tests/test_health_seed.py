from sqlalchemy import func, select

from civicdesk.models import RequestType, SubSector, User
from civicdesk.seed import DEFAULT_REQUEST_TYPES, seed_defaults


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.get_json() == {"status": "ok"}
    assert "X-Request-Duration-ms" in r.headers


def test_health_checks_database(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.get_json()["database"] == "ok"


def test_seed_defaults_is_idempotent(db):
    seed_defaults(db, admin_email="Root@Example.com", admin_password="pw123456")
    seed_defaults(db, admin_email="other@example.com", admin_password="pw123456")
    assert db.execute(select(func.count(SubSector.id))).scalar_one() == 10
    assert db.execute(select(func.count(RequestType.id))).scalar_one() == len(DEFAULT_REQUEST_TYPES)
    admins = db.execute(select(User).where(User.role == "admin")).scalars().all()
    assert [a.email for a in admins] == ["root@example.com"]


def test_seeded_admin_can_log_in(client, db):
    seed_defaults(db, admin_email="root@example.com", admin_password="pw123456")
    r = client.post("/auth/admin-login", json={"email": "root@example.com", "password": "pw123456"})
    assert r.status_code == 200
    assert r.get_json()["user"]["fullName"] == "Admin"
