from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from app.tcms.modules.attendance.models import Attendance
from app.tcms.modules.attendance.service import (
    attendance_rate,
    class_history,
    recent_attendance_rate,
    record_class_attendance,
)


def test_attendance_rate_rounds():
    rows = [SimpleNamespace(is_present=p) for p in (True, True, False)]
    assert attendance_rate(rows) == 67
    assert attendance_rate([]) == 0
    # exact halves round up: 1 of 8 is 12.5%, 5 of 8 is 62.5%
    assert attendance_rate([SimpleNamespace(is_present=i == 0) for i in range(8)]) == 13
    assert attendance_rate([SimpleNamespace(is_present=i < 5) for i in range(8)]) == 63


def test_record_class_attendance_upserts(db, staff, make_class, make_student):
    klass = make_class(max_capacity="3")
    a = make_student(klass)
    b = make_student(klass)
    db.flush()
    today = date.today()

    rows = record_class_attendance(db, klass, today, {a.id}, staff("trainer"))
    assert len(rows) == 2
    assert {r.student_id: r.is_present for r in rows} == {a.id: True, b.id: False}

    # same day again updates in place
    record_class_attendance(db, klass, today, {a.id, b.id}, staff("trainer"))
    saved = db.query(Attendance).filter(Attendance.class_id == klass.id).all()
    assert len(saved) == 2
    assert all(r.is_present for r in saved)

    record_class_attendance(db, klass, today - timedelta(days=1), set(), staff("trainer"))
    history = class_history(db, klass)
    assert [h["date"] for h in history] == [today, today - timedelta(days=1)]
    assert history[0] == {"date": today, "present": 2, "total": 2, "rate": 100}
    assert history[1]["rate"] == 0

    assert recent_attendance_rate(db, days=7, today=today) == 50


def test_record_attendance_rejects_future_and_empty_class(db, staff, make_class, make_student):
    empty = make_class(name="Empty")
    db.flush()
    with pytest.raises(ValueError, match="no active students"):
        record_class_attendance(db, empty, date.today(), set(), staff("admin"))

    klass = make_class(name="Full")
    make_student(klass)
    db.flush()
    with pytest.raises(ValueError, match="future date"):
        record_class_attendance(db, klass, date.today() + timedelta(days=1), set(), staff("admin"))


def test_trainer_records_own_class_only(client, login, db, staff, make_class, make_student):
    mine = make_class(name="Trainer Own Class", trainer_user_id=str(staff("trainer").id))
    other = make_class(name="Foreign Class")
    student = make_student(mine)
    make_student(other)
    db.commit()

    login("trainer@example.com")
    r = client.get("/admin/attendance")
    assert b"Trainer Own Class" in r.data
    assert b"Foreign Class" not in r.data
    assert client.get(f"/admin/attendance/classes/{other.id}").status_code == 404

    r = client.post(
        f"/admin/attendance/classes/{mine.id}",
        data={"date": date.today().isoformat(), "present": [str(student.id)]},
        follow_redirects=True,
    )
    assert r.status_code == 200
    assert b"Attendance saved for 1 student(s)." in r.data

    row = db.query(Attendance).filter(Attendance.student_id == student.id).one()
    assert row.is_present is True
    assert row.recorded_by_user_id == staff("trainer").id


def test_attendance_post_needs_valid_date(client, login, db, make_class, make_student):
    klass = make_class()
    make_student(klass)
    db.commit()
    login("secretary@example.com")
    r = client.post(f"/admin/attendance/classes/{klass.id}", data={"date": "yesterday"}, follow_redirects=True)
    assert b"A valid date is required." in r.data
    assert db.query(Attendance).count() == 0
