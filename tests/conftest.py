from collections import defaultdict
from datetime import date, timedelta

import pytest

from app.tcms import auth as auth_module
from app.tcms import create_app
from app.tcms.accounts import create_account
from app.tcms.db import session_scope
from app.tcms.models import Base, User
from app.tcms.modules.academics.service import create_class, create_fee_structure, create_program
from app.tcms.modules.students.service import register_student
from app.tcms.rbac import ensure_roles_and_permissions

PASSWORD = "password123"

# one account per staff role: <role>@example.com
STAFF = {
    "admin": "Ada Admin",
    "secretary": "Sam Secretary",
    "trainer": "Tom Trainer",
    "finance": "Fay Finance",
    "it": "Ian Tech",
}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)
    # local storage writes under ./storage
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(auth_module, "_login_attempts", defaultdict(list))

    flask_app = create_app()
    Base.metadata.create_all(bind=flask_app.extensions["sqlalchemy_engine"])

    with session_scope(flask_app) as s:
        ensure_roles_and_permissions(s)
        for role, name in STAFF.items():
            create_account(
                s,
                {"email": f"{role}@example.com", "full_name": name, "password": PASSWORD, "roles": [role]},
                None,
            )
    return flask_app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def login(client):
    def _login(email="admin@example.com", password=PASSWORD):
        return client.post("/auth/login", data={"email": email, "password": password}, follow_redirects=False)

    return _login


@pytest.fixture()
def db(app):
    """
    Plain session outside any app context, so test-client requests still get
    their own context. Commit when a request must see the data.
    """
    s = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def staff(db):
    def _get(role="admin") -> User:
        return db.query(User).filter(User.email == f"{role}@example.com").one()

    return _get


@pytest.fixture()
def make_program(db, staff):
    def _make(**overrides):
        payload = {
            "name": "Software Development",
            "start_date": date.today() - timedelta(days=30),
            "end_date": date.today() + timedelta(days=150),
            "eligible_levels": ["L3", "L4", "L5"],
        }
        payload.update(overrides)
        return create_program(db, payload, staff("admin"))

    return _make


@pytest.fixture()
def make_class(db, staff):
    def _make(program=None, **overrides):
        payload = {
            "name": "L4 Morning",
            "level": "L4",
            "shift": "morning",
            "max_capacity": "2",
            "program_id": program.id if program else None,
        }
        payload.update(overrides)
        return create_class(db, payload, staff("admin"))

    return _make


@pytest.fixture()
def make_fee(db, staff):
    def _make(program, level=None, registration="10000", internship="50000"):
        return create_fee_structure(
            db,
            {
                "name": f"{program.name} {level or 'all levels'}",
                "program_id": program.id,
                "level": level,
                "registration_fee": registration,
                "internship_fee": internship,
            },
            staff("admin"),
        )

    return _make


@pytest.fixture()
def make_student(db, staff):
    counter = {"n": 0}

    def _make(klass=None, level="L4", shift="morning", **overrides):
        counter["n"] += 1
        payload = {
            "full_name": f"Student {counter['n']}",
            "email": f"student{counter['n']}@example.com",
            "phone": "0788000000",
            "school_name": "Kigali High",
            "level": level,
            "preferred_shift": shift,
            "has_whatsapp": True,
            "class_id": klass.id if klass else "",
        }
        payload.update(overrides)
        student, _password = register_student(db, payload, staff("admin"), prefix="EDT")
        return student

    return _make
