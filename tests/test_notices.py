from datetime import date

from app.tcms.modules.notices.models import Notice
from app.tcms.modules.notices.service import (
    create_notice,
    set_notice_active,
    update_notice,
    validate_notice_payload,
    visible_notices,
)


def _notice(db, staff, title, roles=(), notice_type="general", **extra):
    payload = {"title": title, "content": f"{title} body", "notice_type": notice_type, "target_roles": list(roles)}
    payload.update(extra)
    return create_notice(db, payload, staff("secretary"))


def test_validate_notice_payload():
    errors = validate_notice_payload(
        {"title": "", "content": "", "notice_type": "gossip", "target_roles": ["janitor"]}
    )
    assert errors == [
        "Title is required.",
        "Content is required.",
        "Notice type must be one of: general, announcement, holiday, urgent, event",
        "Invalid role(s): janitor",
    ]
    holiday = {"title": "Closed", "content": "Office closed", "notice_type": "holiday"}
    assert validate_notice_payload(holiday) == ["Holiday notices need a holiday date."]
    assert validate_notice_payload(dict(holiday, holiday_date="01/07/2026")) == ["Holiday date must be YYYY-MM-DD."]
    assert validate_notice_payload(dict(holiday, holiday_date="2026-07-01")) == []


def test_holiday_flag_follows_type(db, staff):
    notice = _notice(db, staff, "Heroes Day", notice_type="holiday", holiday_date="2026-02-01")
    assert notice.is_holiday is True
    assert notice.holiday_date == date(2026, 2, 1)

    update_notice(
        db, notice, {"title": "Heroes Day", "content": "moved", "notice_type": "general", "holiday_date": "2026-02-01"},
        staff("secretary"),
    )
    assert notice.is_holiday is False
    assert notice.holiday_date is None


def test_visible_notices_by_role(db, staff):
    _notice(db, staff, "Everyone")
    _notice(db, staff, "Trainers only", roles=["trainer", "trainer"])
    _notice(db, staff, "Finance only", roles=["finance"])
    hidden = _notice(db, staff, "Withdrawn")
    set_notice_active(db, hidden, False, staff("secretary"))
    db.flush()

    titles = {n.title for n in visible_notices(db, staff("trainer"))}
    assert titles == {"Everyone", "Trainers only"}
    assert {n.title for n in visible_notices(db, staff("finance"))} == {"Everyone", "Finance only"}
    assert len(visible_notices(db, staff("it"), limit=5)) == 1
    assert visible_notices(db, None) == []

    stored = db.query(Notice).filter(Notice.title == "Trainers only").one()
    assert stored.target_roles == ["trainer"]


def test_notice_routes(client, login, db, staff):
    login("secretary@example.com")
    r = client.post(
        "/admin/notices/new",
        data={"title": "Exam week", "content": "Exams start Monday", "notice_type": "urgent", "target_roles": ["student"]},
        follow_redirects=True,
    )
    assert b"Notice &#39;Exam week&#39; published." in r.data

    r = client.post(
        "/admin/notices/new",
        data={"title": "Holiday", "content": "Closed", "notice_type": "holiday"},
        follow_redirects=True,
    )
    assert b"Holiday notices need a holiday date." in r.data
    assert db.query(Notice).count() == 1

    # staff outside the target audience do not see it
    client.get("/auth/logout")
    login("trainer@example.com")
    r = client.get("/admin/notices")
    assert r.status_code == 200
    assert b"Exam week" not in r.data
    assert client.get("/admin/notices/new").status_code == 403

    client.get("/auth/logout")
    login("secretary@example.com")
    notice = db.query(Notice).one()
    r = client.post(f"/admin/notices/{notice.id}/toggle", follow_redirects=True)
    assert b"Notice deactivated." in r.data
    r = client.post(f"/admin/notices/{notice.id}/delete", follow_redirects=True)
    assert b"Notice deleted." in r.data
    db.expire_all()
    assert db.query(Notice).count() == 0
