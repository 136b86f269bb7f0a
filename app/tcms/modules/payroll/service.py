"""
Salaries, salary advances, payroll runs and leave requests.

Advance lifecycle: pending -> (optionally forwarded by finance) -> approved/rejected.
An approved advance stays "undeducted" until a payroll entry claims it via
deducted_in_payroll_id; cancelling that entry releases it again.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING

from app.tcms.audit import record_event
from app.tcms.constants import REVIEW_APPROVED, REVIEW_PENDING, REVIEW_REJECTED, STAFF_ROLES
from app.tcms.modules.payroll.models import PAYMENT_PERIODS, PAYROLL_TRANSITIONS
from app.tcms.utils import clean_str, parse_date, parse_decimal, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tcms.models import User
    from app.tcms.modules.payroll.models import LeaveRequest, PayrollEntry, Salary, SalaryAdvance

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


# ---------- Salaries ----------


def validate_salary_payload(s: "Session", payload: dict) -> list[str]:
    from app.tcms.models import User

    errors = []
    try:
        employee_id = parse_int(payload.get("employee_user_id") or None)
    except ValueError:
        employee_id = None
    employee = s.get(User, employee_id) if employee_id else None
    if not employee:
        errors.append("Employee is required.")
    elif not (employee.role_keys & STAFF_ROLES):
        errors.append("Salaries can only be set for staff accounts.")
    try:
        amount = parse_decimal(payload.get("amount"))
    except ValueError:
        errors.append("Amount must be a number.")
    else:
        if amount is None or amount <= 0:
            errors.append("Amount must be greater than zero.")
    if (payload.get("payment_period") or "monthly") not in PAYMENT_PERIODS:
        errors.append(f"Payment period must be one of: {', '.join(PAYMENT_PERIODS)}")
    return errors


def set_salary(s: "Session", payload: dict, user: "User") -> "Salary":
    """Create or update the single salary row for an employee."""
    from app.tcms.modules.payroll.models import Salary

    employee_id = parse_int(payload["employee_user_id"])
    amount = parse_decimal(payload["amount"])
    period = payload.get("payment_period") or "monthly"
    now = datetime.utcnow()

    salary = s.query(Salary).filter(Salary.employee_user_id == employee_id).one_or_none()
    before = None
    if salary is None:
        salary = Salary(employee_user_id=employee_id, amount=amount, payment_period=period, created_at=now)
        s.add(salary)
    else:
        before = salary.amount
        salary.amount = amount
        salary.payment_period = period
    salary.updated_at = now
    s.flush()

    record_event(
        s,
        actor=user,
        action="salary.set",
        entity_type="Salary",
        entity_id=str(salary.id),
        metadata={"employee_user_id": employee_id, "before": before, "after": amount, "payment_period": period},
    )
    s.flush()
    return salary


def salary_for(s: "Session", employee_id: int) -> "Salary | None":
    from app.tcms.modules.payroll.models import Salary

    return s.query(Salary).filter(Salary.employee_user_id == employee_id).one_or_none()


# ---------- Advances ----------


def undeducted_approved_advances(
    s: "Session", employee_id: int, created_before: datetime | None = None
) -> list["SalaryAdvance"]:
    from app.tcms.modules.payroll.models import SalaryAdvance

    q = s.query(SalaryAdvance).filter(
        SalaryAdvance.employee_user_id == employee_id,
        SalaryAdvance.status == REVIEW_APPROVED,
        SalaryAdvance.deducted_in_payroll_id.is_(None),
    )
    if created_before is not None:
        q = q.filter(SalaryAdvance.created_at < created_before)
    return q.order_by(SalaryAdvance.created_at.asc()).all()


def _sum_amounts(rows: Iterable) -> Decimal:
    return sum((Decimal(r.amount or 0) for r in rows), ZERO)


def remaining_salary(base: Decimal | None, approved_undeducted: Decimal) -> Decimal:
    return max(ZERO, Decimal(base or 0) - approved_undeducted)


def salary_overview(s: "Session", employee_id: int) -> dict:
    """Numbers for the "My salary" page."""
    from app.tcms.modules.payroll.models import SalaryAdvance

    salary = salary_for(s, employee_id)
    advances = (
        s.query(SalaryAdvance)
        .filter(SalaryAdvance.employee_user_id == employee_id)
        .order_by(SalaryAdvance.created_at.desc())
        .all()
    )
    approved_open = _sum_amounts(a for a in advances if a.status == REVIEW_APPROVED and a.deducted_in_payroll_id is None)
    pending = _sum_amounts(a for a in advances if a.status == REVIEW_PENDING)
    base = salary.amount if salary else None
    return {
        "salary": salary,
        "base": base,
        "advances": advances,
        "approved_undeducted": approved_open,
        "pending_total": pending,
        "remaining": remaining_salary(base, approved_open),
    }


def validate_advance_request(s: "Session", employee_id: int, payload: dict) -> list[str]:
    errors = []
    try:
        amount = parse_decimal(payload.get("amount"))
    except ValueError:
        return ["Amount must be a number."]
    if amount is None or amount <= 0:
        errors.append("Amount must be greater than zero.")
    if not (payload.get("reason") or "").strip():
        errors.append("Reason is required.")
    if errors:
        return errors

    salary = salary_for(s, employee_id)
    if salary is not None:
        available = remaining_salary(salary.amount, _sum_amounts(undeducted_approved_advances(s, employee_id)))
        if amount > available:
            errors.append(f"Amount exceeds the remaining salary ({available:,.0f}).")
    return errors


def request_advance(s: "Session", payload: dict, user: "User") -> "SalaryAdvance":
    from app.tcms.modules.payroll.models import SalaryAdvance

    errors = validate_advance_request(s, user.id, payload)
    if errors:
        raise ValueError(" ".join(errors))
    advance = SalaryAdvance(
        employee_user_id=user.id,
        amount=parse_decimal(payload["amount"]),
        reason=payload["reason"].strip(),
        status=REVIEW_PENDING,
        created_at=datetime.utcnow(),
    )
    s.add(advance)
    s.flush()
    record_event(
        s,
        actor=user,
        action="salary_advance.request",
        entity_type="SalaryAdvance",
        entity_id=str(advance.id),
        metadata={"amount": advance.amount},
    )
    s.flush()
    return advance


def forward_advance(s: "Session", advance: "SalaryAdvance", user: "User", comment: str | None = None) -> "SalaryAdvance":
    if advance.status != REVIEW_PENDING:
        raise ValueError(f"Only pending requests can be forwarded (status: {advance.status}).")
    if advance.forwarded_to_admin:
        raise ValueError("Request was already forwarded.")
    advance.forwarded_to_admin = True
    advance.forwarded_by_user_id = user.id
    advance.forwarded_at = datetime.utcnow()
    advance.forward_comment = clean_str(comment)
    record_event(
        s,
        actor=user,
        action="salary_advance.forward",
        entity_type="SalaryAdvance",
        entity_id=str(advance.id),
        reason=advance.forward_comment,
    )
    s.flush()
    return advance


def review_advance(
    s: "Session", advance: "SalaryAdvance", decision: str, user: "User", comment: str | None = None
) -> "SalaryAdvance":
    if decision not in (REVIEW_APPROVED, REVIEW_REJECTED):
        raise ValueError("Decision must be approved or rejected.")
    if advance.status != REVIEW_PENDING:
        raise ValueError(f"Request was already {advance.status}.")
    advance.status = decision
    advance.reviewed_by_user_id = user.id
    advance.reviewed_at = datetime.utcnow()
    advance.review_comment = clean_str(comment)
    record_event(
        s,
        actor=user,
        action=f"salary_advance.{decision}",
        entity_type="SalaryAdvance",
        entity_id=str(advance.id),
        reason=advance.review_comment,
        metadata={"amount": advance.amount, "employee_user_id": advance.employee_user_id},
    )
    s.flush()
    return advance


# ---------- Payroll generation ----------


def compute_payable(base: Decimal, advances: Decimal) -> Decimal:
    """Payable is floored at zero; an oversized advance never produces a negative entry."""
    return max(ZERO, Decimal(base) - Decimal(advances))


@dataclass
class PayrollRun:
    period_start: date
    period_end: date
    created: list = field(default_factory=list)
    skipped: int = 0

    @property
    def total_payable(self) -> Decimal:
        return sum((Decimal(e.total_payable) for e in self.created), ZERO)


def validate_period(start: date | None, end: date | None) -> list[str]:
    errors = []
    if not start or not end:
        errors.append("Period start and end are required.")
    elif end < start:
        errors.append("Period end must be on or after the start.")
    return errors


def generate_payroll(s: "Session", period_start: date, period_end: date, user: "User | None") -> PayrollRun:
    """
    One pending entry per salaried employee lacking a non-cancelled entry for
    exactly this period. Approved, undeducted advances created on or before
    period_end are claimed by the new entry. Caller commits.
    """
    from app.tcms.modules.payroll.models import PayrollEntry, Salary

    errors = validate_period(period_start, period_end)
    if errors:
        raise ValueError(" ".join(errors))

    already = {
        row[0]
        for row in s.query(PayrollEntry.employee_user_id)
        .filter(
            PayrollEntry.period_start == period_start,
            PayrollEntry.period_end == period_end,
            PayrollEntry.status != "cancelled",
        )
        .all()
    }
    cutoff = datetime.combine(period_end, time.max)
    run = PayrollRun(period_start=period_start, period_end=period_end)

    for salary in s.query(Salary).order_by(Salary.employee_user_id.asc()).all():
        if salary.employee_user_id in already:
            run.skipped += 1
            continue
        advances = undeducted_approved_advances(s, salary.employee_user_id, created_before=cutoff)
        deducted = _sum_amounts(advances)
        entry = PayrollEntry(
            employee_user_id=salary.employee_user_id,
            period_start=period_start,
            period_end=period_end,
            base_salary=salary.amount,
            advances_deducted=deducted,
            total_payable=compute_payable(salary.amount, deducted),
            status="pending",
            created_at=datetime.utcnow(),
        )
        s.add(entry)
        s.flush()
        for adv in advances:
            adv.payroll_entry = entry
            adv.deducted_in_payroll_id = entry.id
        run.created.append(entry)

    record_event(
        s,
        actor=user,
        action="payroll.generate",
        entity_type="PayrollEntry",
        entity_id=f"{period_start.isoformat()}..{period_end.isoformat()}",
        metadata={"created": len(run.created), "skipped": run.skipped, "total_payable": run.total_payable},
    )
    logger.info(
        "Payroll %s..%s: created=%s skipped=%s", period_start, period_end, len(run.created), run.skipped
    )
    s.flush()
    return run


def set_payroll_status(
    s: "Session",
    entry: "PayrollEntry",
    new_status: str,
    user: "User",
    payment_date: date | None = None,
    notes: str | None = None,
) -> "PayrollEntry":
    allowed = PAYROLL_TRANSITIONS.get(entry.status, ())
    if new_status not in allowed:
        raise ValueError(f"Cannot move payroll entry from {entry.status} to {new_status}.")

    old = entry.status
    entry.status = new_status
    if notes:
        entry.notes = notes.strip()
    if new_status == "processed":
        entry.processed_by_user_id = user.id
        entry.processed_at = datetime.utcnow()
    elif new_status == "paid":
        entry.payment_date = payment_date or date.today()
        if entry.processed_at is None:
            entry.processed_by_user_id = user.id
            entry.processed_at = datetime.utcnow()
    elif new_status == "cancelled":
        for adv in list(entry.advances):
            adv.deducted_in_payroll_id = None
            adv.payroll_entry = None

    record_event(
        s,
        actor=user,
        action=f"payroll.{new_status}",
        entity_type="PayrollEntry",
        entity_id=str(entry.id),
        metadata={"from": old, "to": new_status},
    )
    s.flush()
    return entry


# ---------- Leave ----------


def validate_leave_payload(payload: dict) -> list[str]:
    errors = []
    try:
        leave = parse_date(payload.get("leave_date"))
        back = parse_date(payload.get("return_date"))
    except ValueError:
        return ["Dates must be YYYY-MM-DD."]
    if not leave or not back:
        errors.append("Leave date and return date are required.")
    elif back < leave:
        errors.append("Return date must be on or after the leave date.")
    if not (payload.get("reason") or "").strip():
        errors.append("Reason is required.")
    return errors


def request_leave(s: "Session", payload: dict, user: "User") -> "LeaveRequest":
    from app.tcms.modules.payroll.models import LeaveRequest

    leave = LeaveRequest(
        trainer_user_id=user.id,
        leave_date=parse_date(payload["leave_date"]),
        return_date=parse_date(payload["return_date"]),
        reason=payload["reason"].strip(),
        status=REVIEW_PENDING,
        created_at=datetime.utcnow(),
    )
    s.add(leave)
    s.flush()
    record_event(
        s,
        actor=user,
        action="leave.request",
        entity_type="LeaveRequest",
        entity_id=str(leave.id),
        metadata={"leave_date": leave.leave_date, "return_date": leave.return_date},
    )
    s.flush()
    return leave


def review_leave(
    s: "Session", leave: "LeaveRequest", decision: str, user: "User", comment: str | None = None
) -> "LeaveRequest":
    if decision not in (REVIEW_APPROVED, REVIEW_REJECTED):
        raise ValueError("Decision must be approved or rejected.")
    if leave.status != REVIEW_PENDING:
        raise ValueError(f"Leave request was already {leave.status}.")
    leave.status = decision
    leave.reviewed_by_user_id = user.id
    leave.reviewed_at = datetime.utcnow()
    leave.review_comment = clean_str(comment)
    record_event(
        s,
        actor=user,
        action=f"leave.{decision}",
        entity_type="LeaveRequest",
        entity_id=str(leave.id),
        reason=leave.review_comment,
    )
    s.flush()
    return leave
