from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.tcms.models import AuditEvent
from app.tcms.modules.payroll.models import LeaveRequest, PayrollEntry, SalaryAdvance
from app.tcms.modules.payroll.service import (
    compute_payable,
    forward_advance,
    generate_payroll,
    request_advance,
    request_leave,
    review_advance,
    review_leave,
    salary_overview,
    set_payroll_status,
    set_salary,
    validate_advance_request,
    validate_leave_payload,
    validate_salary_payload,
)


def _period():
    today = date.today()
    return today.replace(day=1), today + timedelta(days=1)


def _approved_advance(db, staff, role, amount):
    advance = request_advance(db, {"amount": amount, "reason": "School fees"}, staff(role))
    review_advance(db, advance, "approved", staff("admin"))
    return advance


def test_validate_salary_payload(db, staff, make_student):
    student = make_student()
    db.flush()
    assert validate_salary_payload(db, {"employee_user_id": str(student.user_id), "amount": "1000"}) == [
        "Salaries can only be set for staff accounts."
    ]
    errors = validate_salary_payload(
        db, {"employee_user_id": "", "amount": "0", "payment_period": "yearly"}
    )
    assert errors == [
        "Employee is required.",
        "Amount must be greater than zero.",
        "Payment period must be one of: monthly, weekly, biweekly",
    ]
    assert validate_salary_payload(db, {"employee_user_id": str(staff("trainer").id), "amount": "250000"}) == []


def test_set_salary_updates_single_row(db, staff):
    trainer = staff("trainer")
    first = set_salary(db, {"employee_user_id": str(trainer.id), "amount": "200000"}, staff("finance"))
    second = set_salary(
        db, {"employee_user_id": str(trainer.id), "amount": "250000", "payment_period": "biweekly"}, staff("finance")
    )
    assert first.id == second.id
    assert second.amount == Decimal("250000")
    assert second.payment_period == "biweekly"
    assert db.query(AuditEvent).filter(AuditEvent.action == "salary.set").count() == 2


def test_advance_request_limited_by_remaining_salary(db, staff):
    trainer = staff("trainer")
    assert validate_advance_request(db, trainer.id, {"amount": "0", "reason": ""}) == [
        "Amount must be greater than zero.",
        "Reason is required.",
    ]
    # without a salary there is nothing to compare against
    assert validate_advance_request(db, trainer.id, {"amount": "999999", "reason": "Rent"}) == []

    set_salary(db, {"employee_user_id": str(trainer.id), "amount": "100000"}, staff("finance"))
    _approved_advance(db, staff, "trainer", "60000")

    errors = validate_advance_request(db, trainer.id, {"amount": "50000", "reason": "Rent"})
    assert errors == ["Amount exceeds the remaining salary (40,000)."]
    with pytest.raises(ValueError, match="exceeds the remaining salary"):
        request_advance(db, {"amount": "50000", "reason": "Rent"}, trainer)

    overview = salary_overview(db, trainer.id)
    assert overview["approved_undeducted"] == Decimal("60000")
    assert overview["remaining"] == Decimal("40000")


def test_forward_then_review_advance(db, staff):
    advance = request_advance(db, {"amount": "20000", "reason": "Medical bill"}, staff("it"))
    assert advance.status == "pending"

    forward_advance(db, advance, staff("finance"), "Looks reasonable")
    assert advance.forwarded_to_admin is True
    assert advance.forwarded_by_user_id == staff("finance").id
    with pytest.raises(ValueError, match="already forwarded"):
        forward_advance(db, advance, staff("finance"))

    with pytest.raises(ValueError, match="approved or rejected"):
        review_advance(db, advance, "maybe", staff("admin"))
    review_advance(db, advance, "rejected", staff("admin"), "Budget is closed")
    assert advance.status == "rejected"
    assert advance.review_comment == "Budget is closed"

    with pytest.raises(ValueError, match="already rejected"):
        review_advance(db, advance, "approved", staff("admin"))
    with pytest.raises(ValueError, match="Only pending requests"):
        forward_advance(db, advance, staff("finance"))


def test_compute_payable_floors_at_zero():
    assert compute_payable(Decimal("100"), Decimal("30")) == Decimal("70")
    assert compute_payable(Decimal("100"), Decimal("130")) == Decimal("0")


def test_generate_payroll_deducts_advances_once(db, staff):
    trainer, it = staff("trainer"), staff("it")
    set_salary(db, {"employee_user_id": str(trainer.id), "amount": "100000"}, staff("finance"))
    set_salary(db, {"employee_user_id": str(it.id), "amount": "80000"}, staff("finance"))
    advance = _approved_advance(db, staff, "trainer", "30000")
    pending = request_advance(db, {"amount": "5000", "reason": "Transport"}, trainer)

    start, end = _period()
    run = generate_payroll(db, start, end, staff("finance"))
    assert len(run.created) == 2
    assert run.skipped == 0
    assert run.total_payable == Decimal("150000")

    entry = next(e for e in run.created if e.employee_user_id == trainer.id)
    assert entry.base_salary == Decimal("100000")
    assert entry.advances_deducted == Decimal("30000")
    assert entry.total_payable == Decimal("70000")
    assert entry.status == "pending"
    assert advance.deducted_in_payroll_id == entry.id
    assert pending.deducted_in_payroll_id is None

    again = generate_payroll(db, start, end, staff("finance"))
    assert again.created == []
    assert again.skipped == 2
    assert db.query(PayrollEntry).count() == 2


def test_generate_payroll_rejects_inverted_period(db, staff):
    start, end = _period()
    with pytest.raises(ValueError, match="on or after the start"):
        generate_payroll(db, end, start - timedelta(days=1), staff("finance"))


def test_payroll_status_transitions_and_cancel_releases_advances(db, staff):
    trainer = staff("trainer")
    set_salary(db, {"employee_user_id": str(trainer.id), "amount": "100000"}, staff("finance"))
    advance = _approved_advance(db, staff, "trainer", "10000")
    start, end = _period()
    entry = generate_payroll(db, start, end, staff("finance")).created[0]

    with pytest.raises(ValueError, match="from pending to paid"):
        set_payroll_status(db, entry, "paid", staff("finance"))

    set_payroll_status(db, entry, "processed", staff("finance"))
    assert entry.processed_by_user_id == staff("finance").id
    assert entry.processed_at is not None

    set_payroll_status(db, entry, "cancelled", staff("finance"), notes="Wrong period")
    assert entry.notes == "Wrong period"
    assert advance.deducted_in_payroll_id is None
    with pytest.raises(ValueError, match="from cancelled"):
        set_payroll_status(db, entry, "processed", staff("finance"))

    # cancelled entries do not block a new run; the released advance is claimed again
    rerun = generate_payroll(db, start, end, staff("finance"))
    assert len(rerun.created) == 1
    assert rerun.created[0].advances_deducted == Decimal("10000")
    assert advance.deducted_in_payroll_id == rerun.created[0].id


def test_paid_entry_gets_payment_date(db, staff):
    trainer = staff("trainer")
    set_salary(db, {"employee_user_id": str(trainer.id), "amount": "50000"}, staff("finance"))
    start, end = _period()
    entry = generate_payroll(db, start, end, staff("finance")).created[0]
    set_payroll_status(db, entry, "processed", staff("finance"))
    set_payroll_status(db, entry, "paid", staff("finance"), payment_date=date(2026, 3, 31))
    assert entry.payment_date == date(2026, 3, 31)


def test_leave_request_and_review(db, staff):
    assert validate_leave_payload({"leave_date": "tomorrow", "return_date": "", "reason": "x"}) == [
        "Dates must be YYYY-MM-DD."
    ]
    assert validate_leave_payload({"leave_date": "2026-05-10", "return_date": "2026-05-01", "reason": ""}) == [
        "Return date must be on or after the leave date.",
        "Reason is required.",
    ]

    leave = request_leave(
        db, {"leave_date": "2026-05-01", "return_date": "2026-05-03", "reason": "Family event"}, staff("trainer")
    )
    assert leave.status == "pending"
    review_leave(db, leave, "approved", staff("secretary"), "Enjoy")
    assert leave.status == "approved"
    assert leave.reviewed_by_user_id == staff("secretary").id
    with pytest.raises(ValueError, match="already approved"):
        review_leave(db, leave, "rejected", staff("secretary"))


def test_payroll_generate_route(client, login, db, staff):
    set_salary(db, {"employee_user_id": str(staff("trainer").id), "amount": "120000"}, staff("finance"))
    db.commit()
    login("finance@example.com")
    start, end = _period()
    form = {"period_start": start.isoformat(), "period_end": end.isoformat()}

    r = client.post("/admin/payroll/generate", data=form, follow_redirects=True)
    assert r.status_code == 200
    assert b"Generated 1 payroll entry." in r.data

    r = client.post("/admin/payroll/generate", data=form, follow_redirects=True)
    assert b"Generated 0 payroll entries; skipped 1 already generated for this period." in r.data

    r = client.post("/admin/payroll/generate", data={"period_start": "x", "period_end": ""}, follow_redirects=True)
    assert b"Dates must be YYYY-MM-DD." in r.data

    entry = db.query(PayrollEntry).one()
    r = client.post(f"/admin/payroll/{entry.id}/status", data={"status": "processed"}, follow_redirects=True)
    assert b"Payroll entry marked processed." in r.data


def test_staff_request_advance_and_finance_forwards(client, login, db, staff):
    set_salary(db, {"employee_user_id": str(staff("trainer").id), "amount": "100000"}, staff("finance"))
    db.commit()

    login("trainer@example.com")
    r = client.get("/admin/me/salary")
    assert r.status_code == 200
    assert b"100,000" in r.data

    r = client.post(
        "/admin/me/salary/advances", data={"amount": "25000", "reason": "Rent"}, follow_redirects=True
    )
    assert b"Advance request submitted." in r.data
    advance = db.query(SalaryAdvance).one()

    # staff cannot forward or approve their own request
    assert client.post(f"/admin/advances/{advance.id}/forward").status_code == 403

    client.get("/auth/logout")
    login("finance@example.com")
    r = client.post(f"/admin/advances/{advance.id}/forward", data={"comment": "ok"}, follow_redirects=True)
    assert b"Request forwarded to the administrator." in r.data
    assert client.post(f"/admin/advances/{advance.id}/review", data={"decision": "approved"}).status_code == 403

    client.get("/auth/logout")
    login()
    r = client.post(f"/admin/advances/{advance.id}/review", data={"decision": "approved"}, follow_redirects=True)
    assert b"Advance approved." in r.data
    db.expire_all()
    assert db.get(SalaryAdvance, advance.id).status == "approved"


def test_leave_routes(client, login, db):
    login("trainer@example.com")
    r = client.post(
        "/admin/leave",
        data={"leave_date": "2026-07-01", "return_date": "2026-07-02", "reason": "Wedding"},
        follow_redirects=True,
    )
    assert b"Leave request submitted." in r.data
    leave = db.query(LeaveRequest).one()
    assert client.get("/admin/leave/review").status_code == 403

    client.get("/auth/logout")
    login("secretary@example.com")
    r = client.get("/admin/leave/review")
    assert r.status_code == 200
    r = client.post(f"/admin/leave/{leave.id}/review", data={"decision": "rejected"}, follow_redirects=True)
    assert b"Leave request rejected." in r.data


def test_finance_reaches_salaries_and_own_leave(client, login):
    login("finance@example.com")
    assert client.get("/admin/salaries").status_code == 200
    assert client.get("/admin/leave").status_code == 200
