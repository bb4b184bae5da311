import os
import sys

import pytest

# Path setup before any project imports to satisfy E402
ROOT = os.path.dirname(__file__)
PARENT = os.path.abspath(os.path.join(ROOT, ".."))
if PARENT not in sys.path:  # pragma: no cover - environment dependent
    sys.path.insert(0, PARENT)


def _lazy_imports():  # isolate heavy imports & satisfy lint ordering
    from civicdesk.app_factory import create_app  # noqa: E402
    from civicdesk.db import create_all  # noqa: E402

    return create_app, create_all


@pytest.fixture(scope="session")
def app_session(tmp_path_factory):
    create_app, create_all = _lazy_imports()
    db_file = tmp_path_factory.mktemp("db") / "test_app.db"
    uploads = tmp_path_factory.mktemp("uploads")
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test",
            "database_url": f"sqlite:///{db_file}",
            "upload_dir": str(uploads),
            "seed_defaults": False,
            "admin_timezone": "Asia/Karachi",
            "FORCE_DB_REINIT": True,
        }
    )
    with app.app_context():
        create_all()
    return app


@pytest.fixture
def app(app_session):
    """Empty every table, re-seed the ten default sub-sectors and reset in-memory state."""
    from civicdesk.audit_events import clear_audit_events
    from civicdesk.auth import reset_rate_limits
    from civicdesk.db import get_new_session
    from civicdesk.metrics import reset_metrics
    from civicdesk.models import Base
    from civicdesk.seed import seed_sub_sectors

    db = get_new_session()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        seed_sub_sectors(db)
        db.commit()
    finally:
        db.close()
    reset_rate_limits()
    clear_audit_events()
    reset_metrics()
    return app_session


@pytest.fixture
def client(app):
    c = app.test_client()
    c.environ_base = {}
    return c


@pytest.fixture
def db(app):
    from civicdesk.db import get_new_session

    s = get_new_session()
    yield s
    s.close()


class Factory:
    """Inserts rows directly so tests can set up state without going through the API."""

    def __init__(self, db):
        self.db = db
        self._n = 0

    def _next(self) -> int:
        self._n += 1
        return self._n

    def sub_sector_id(self, code: str = "A") -> int:
        from sqlalchemy import select

        from civicdesk.models import SubSector

        return self.db.execute(select(SubSector.id).where(SubSector.code == code)).scalar_one()

    def user(self, *, role="user", approval="approved", account="active", email=None, password="secret123", **kw):
        from werkzeug.security import generate_password_hash

        from civicdesk.models import User

        u = User(
            email=email or f"user{self._next()}@example.com",
            password_hash=generate_password_hash(password),
            full_name=kw.pop("full_name", "Test Resident"),
            phone_country_code="+92",
            phone_number="3001234567",
            house_no=kw.pop("house_no", "12"),
            street_no=kw.pop("street_no", "4"),
            sub_sector_id=kw.pop("sub_sector_id", None) or self.sub_sector_id(),
            role=role,
            approval_status=approval,
            account_status=account,
            **kw,
        )
        self.db.add(u)
        self.db.commit()
        return u

    def request_type(self, *, name=None, slug=None, **kw):
        from civicdesk.models import RequestType

        n = self._next()
        t = RequestType(
            name=name or f"Type {n}",
            slug=slug or f"type_{n}",
            display_order=kw.pop("display_order", n),
            duplicate_restriction_period=kw.pop("duplicate_restriction_period", "none"),
            under_construction=False,
            **kw,
        )
        self.db.add(t)
        self.db.commit()
        return t

    def option(self, request_type, *, label="Water Tanker", kind="form", config=None, **kw):
        from civicdesk.models import ServiceOption

        o = ServiceOption(
            request_type_id=request_type.id,
            label=label,
            slug=kw.pop("slug", None),
            option_kind=kind,
            config=config,
            request_number_prefix=kw.pop("prefix", None),
            request_number_padding=kw.pop("padding", 4),
            request_number_next=kw.pop("next_value", 1),
            display_order=kw.pop("display_order", 0),
            **kw,
        )
        self.db.add(o)
        self.db.commit()
        return o

    def request(self, *, user, request_type, option=None, status="pending", created_at=None, **kw):
        from civicdesk.models import Request, utcnow

        when = created_at or utcnow()
        r = Request(
            request_type_id=request_type.id,
            service_option_id=option.id if option is not None else None,
            request_number=kw.pop("request_number", None),
            description=kw.pop("description", ""),
            house_no=kw.pop("house_no", user.house_no),
            street_no=kw.pop("street_no", user.street_no),
            sub_sector_id=kw.pop("sub_sector_id", user.sub_sector_id),
            status=status,
            user_id=user.id,
            created_at=when,
            updated_at=when,
            **kw,
        )
        self.db.add(r)
        self.db.commit()
        return r


@pytest.fixture
def factory(db):
    return Factory(db)
