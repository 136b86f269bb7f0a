from datetime import date

from app.tcms.admin import dashboard_stats
from app.tcms.models import AuditEvent


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_public_index_for_anonymous(client):
    r = client.get("/")
    assert r.status_code == 200
    assert b"Training Center Management" in r.data


def test_login_and_admin_access(client, login):
    # Anonymous should be redirected to login
    r = client.get("/admin/")
    assert r.status_code in (302, 403)

    r = login()
    assert r.status_code == 302

    r = client.get("/admin/")
    assert r.status_code == 200
    assert b"Active students" in r.data

    # logged-in users skip the public landing page
    r = client.get("/")
    assert r.status_code == 302


def test_login_respects_local_next(client):
    r = client.post(
        "/auth/login",
        data={"email": "admin@example.com", "password": "password123", "next": "/admin/students"},
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/admin/students")

    client.get("/auth/logout")
    r = client.post(
        "/auth/login",
        data={"email": "admin@example.com", "password": "password123", "next": "//evil.example.com/"},
    )
    assert r.status_code == 302
    assert "evil.example.com" not in r.headers["Location"]


def test_bad_credentials_are_audited(app, client, login, db):
    r = login(password="wrong-password")
    assert r.status_code == 302
    r = client.get("/admin/")
    assert r.status_code in (302, 403)

    ev = db.query(AuditEvent).filter(AuditEvent.action == "auth.login_failed").one()
    assert ev.entity_id == "admin@example.com"
    assert ev.actor_user_id is None


def test_login_rate_limit(client, login):
    for _ in range(5):
        login(password="wrong-password")

    # correct password is still refused once the limit is hit
    r = client.post(
        "/auth/login",
        data={"email": "admin@example.com", "password": "password123"},
        follow_redirects=True,
    )
    assert b"Too many login attempts" in r.data
    assert client.get("/admin/").status_code in (302, 403)


def test_logout_clears_session(client, login):
    login()
    assert client.get("/admin/").status_code == 200
    r = client.get("/auth/logout")
    assert r.status_code == 302
    assert client.get("/admin/").status_code in (302, 403)


def test_admin_pages_require_login(client):
    for path in (
        "/admin/students",
        "/admin/classes",
        "/admin/payments",
        "/admin/payroll",
        "/admin/certificates",
        "/admin/equipment",
        "/admin/materials",
        "/admin/wifi",
        "/admin/audit",
    ):
        r = client.get(path)
        assert r.status_code in (302, 403), path


def test_role_without_permission_gets_403(client, login):
    login("trainer@example.com")
    r = client.get("/admin/payments")
    assert r.status_code == 403
    assert b"Access denied" in r.data
    assert b"finance.view" in r.data

    # trainers do see classes and attendance
    assert client.get("/admin/classes").status_code == 200
    assert client.get("/admin/attendance").status_code == 200


def test_every_staff_role_reaches_dashboard(client, login):
    for role in ("admin", "secretary", "trainer", "finance", "it"):
        client.get("/auth/logout")
        login(f"{role}@example.com")
        r = client.get("/admin/")
        assert r.status_code == 200, role


def test_dashboard_stats_follow_permissions(db, staff, make_program, make_class, make_student):
    program = make_program()
    klass = make_class(program)
    make_student(klass)
    db.flush()

    admin_stats = dashboard_stats(db, staff("admin"), today=date.today())
    assert admin_stats["active_students"] == 1
    assert admin_stats["active_classes"] == 1
    assert admin_stats["active_programs"] == 1
    assert admin_stats["attendance_rate"] == 0
    assert "collected_this_month" in admin_stats

    it_stats = dashboard_stats(db, staff("it"))
    assert it_stats == {}

    finance_stats = dashboard_stats(db, staff("finance"))
    assert set(finance_stats) == {"active_students", "collected_this_month"}
