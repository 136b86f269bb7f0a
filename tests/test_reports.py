from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from app.tcms.admin import report_period, report_stats
from app.tcms.modules.attendance.service import record_class_attendance
from app.tcms.modules.finance.service import record_payment

TODAY = date(2026, 5, 14)


@pytest.mark.parametrize(
    "preset, expected",
    [
        ("today", (TODAY, TODAY)),
        ("week", (date(2026, 5, 7), TODAY)),
        ("month", (date(2026, 5, 1), date(2026, 5, 31))),
        ("quarter", (date(2026, 4, 1), date(2026, 6, 30))),
        ("year", (date(2026, 1, 1), date(2026, 12, 31))),
    ],
)
def test_report_period_presets(preset, expected):
    assert report_period(preset, today=TODAY) == expected


def test_report_period_edges():
    assert report_period("month", today=date(2028, 2, 10)) == (date(2028, 2, 1), date(2028, 2, 29))
    assert report_period("quarter", today=date(2026, 12, 31)) == (date(2026, 10, 1), date(2026, 12, 31))
    assert report_period("custom", date(2026, 1, 5), date(2026, 1, 9)) == (date(2026, 1, 5), date(2026, 1, 9))

    with pytest.raises(ValueError, match="start and an end"):
        report_period("custom", date(2026, 1, 5), None)
    with pytest.raises(ValueError, match="End date"):
        report_period("custom", date(2026, 1, 9), date(2026, 1, 5))
    with pytest.raises(ValueError, match="Period must be one of"):
        report_period("fortnight")


def test_report_stats_counts_only_the_period(db, staff, make_program, make_class, make_student):
    make_program()
    klass = make_class(max_capacity="5")
    a = make_student(klass)
    b = make_student(klass)
    make_student(level="L5")
    db.flush()

    def pay(student, amount, status):
        return record_payment(
            db,
            {
                "student_id": str(student.id),
                "amount": amount,
                "payment_type": "internship",
                "payment_method": "cash",
                "status": status,
            },
            staff("finance"),
        )

    pay(a, "30000", "paid")
    pay(b, "10000", "pending")
    old = pay(b, "99999", "paid")
    old.created_at = datetime.now() - timedelta(days=60)

    today = date.today()
    record_class_attendance(db, klass, today, {a.id}, staff("trainer"))
    record_class_attendance(db, klass, today - timedelta(days=60), {a.id, b.id}, staff("trainer"))
    db.flush()

    report = report_stats(db, today - timedelta(days=1), today + timedelta(days=1))
    assert report["students"] == 3
    assert report["classes"] == 1
    assert report["programs"] == 1
    assert report["payments"]["count"] == 2
    assert report["payments"]["total_revenue"] == Decimal("40000")
    assert report["payments"]["collection_rate"] == 75
    assert report["attendance_records"] == 2
    assert report["attendance_rate"] == 50
    assert report["students_by_level"] == {"L3": 0, "L4": 2, "L5": 1}


def test_reports_route(client, login, db, make_student):
    make_student()
    db.commit()

    login("finance@example.com")
    r = client.get("/admin/reports?period=quarter")
    assert r.status_code == 200
    assert b"Students by level" in r.data
    assert b'<option value="quarter" selected>' in r.data

    r = client.get("/admin/reports?period=custom&start=2026-03-10&end=2026-03-01")
    assert r.status_code == 200
    assert b"End date must be on or after the start date." in r.data

    r = client.get("/admin/reports?period=custom&start=2026-03-01&end=2026-03-10")
    assert b"2026-03-01 to 2026-03-10" in r.data


def test_reports_hidden_from_roles_without_access(client, login):
    login("trainer@example.com")
    assert client.get("/admin/reports").status_code == 403
    r = client.get("/admin/")
    assert b">Reports<" not in r.data

    client.get("/auth/logout")
    login("admin@example.com")
    r = client.get("/admin/")
    assert b">Reports<" in r.data
