from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from werkzeug.utils import secure_filename

from app.tcms.audit import record_event
from app.tcms.modules.finance.models import EXPENSE_CATEGORIES, PAYMENT_METHODS, PAYMENT_STATUSES, PAYMENT_TYPES
from app.tcms.pagination import search_filter
from app.tcms.storage import StorageError, build_storage_key
from app.tcms.utils import clean_str, parse_date, parse_decimal, parse_int, percent

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tcms.models import User
    from app.tcms.modules.finance.models import Expense, Payment
    from app.tcms.modules.students.models import Student


logger = logging.getLogger(__name__)

ZERO = Decimal("0")
COLLECTED_STATUSES = ("paid", "partial")


# ---------- Payments ----------


def validate_payment_payload(s: "Session", payload: dict) -> list[str]:
    from app.tcms.modules.students.models import Student

    errors = []
    try:
        student_id = parse_int(payload.get("student_id") or None)
    except ValueError:
        student_id = None
    if not student_id:
        errors.append("Student is required.")
    elif not s.get(Student, student_id):
        errors.append("Student not found.")
    try:
        amount = parse_decimal(payload.get("amount"))
    except ValueError:
        errors.append("Amount must be a number.")
    else:
        if amount is None or amount <= 0:
            errors.append("Amount must be greater than zero.")
    if payload.get("status") not in PAYMENT_STATUSES:
        errors.append(f"Status must be one of: {', '.join(PAYMENT_STATUSES)}")
    if payload.get("payment_method") not in PAYMENT_METHODS:
        errors.append(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
    if payload.get("payment_type") not in PAYMENT_TYPES:
        errors.append(f"Payment type must be one of: {', '.join(PAYMENT_TYPES)}")
    return errors


def record_payment(s: "Session", payload: dict, user: "User") -> "Payment":
    from app.tcms.modules.finance.models import Payment
    from app.tcms.modules.students.models import Student

    now = datetime.utcnow()
    payment = Payment(
        student_id=parse_int(payload["student_id"]),
        amount=parse_decimal(payload["amount"]),
        payment_type=payload["payment_type"],
        payment_method=payload["payment_method"],
        status=payload["status"],
        notes=clean_str(payload.get("notes")),
        recorded_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(payment)
    s.flush()

    if payment.status == "paid" and payment.payment_type == "registration":
        student = s.get(Student, payment.student_id)
        if student and not student.registration_fee_paid:
            student.registration_fee_paid = True
            student.updated_at = now

    record_event(
        s,
        actor=user,
        action="payment.record",
        entity_type="Payment",
        entity_id=str(payment.id),
        metadata={
            "student_id": payment.student_id,
            "amount": payment.amount,
            "status": payment.status,
            "payment_type": payment.payment_type,
            "payment_method": payment.payment_method,
        },
    )
    s.flush()
    return payment


def update_payment_status(s: "Session", payment: "Payment", status: str, user: "User") -> "Payment":
    if status not in PAYMENT_STATUSES:
        raise ValueError(f"Status must be one of: {', '.join(PAYMENT_STATUSES)}")
    old = payment.status
    payment.status = status
    payment.updated_at = datetime.utcnow()
    if status == "paid" and payment.payment_type == "registration":
        payment.student.registration_fee_paid = True
    record_event(
        s,
        actor=user,
        action="payment.status",
        entity_type="Payment",
        entity_id=str(payment.id),
        metadata={"from": old, "to": status},
    )
    s.flush()
    return payment


def query_payments(s: "Session", filters: dict) -> list["Payment"]:
    """Apply list filters: q, status, method, type, date_from, date_to (inclusive)."""
    from app.tcms.modules.finance.models import Payment

    q = s.query(Payment)
    if filters.get("status"):
        q = q.filter(Payment.status == filters["status"])
    if filters.get("method"):
        q = q.filter(Payment.payment_method == filters["method"])
    if filters.get("type"):
        q = q.filter(Payment.payment_type == filters["type"])
    if filters.get("date_from"):
        q = q.filter(Payment.created_at >= datetime.combine(filters["date_from"], time.min))
    if filters.get("date_to"):
        q = q.filter(Payment.created_at < datetime.combine(filters["date_to"] + timedelta(days=1), time.min))
    rows = q.order_by(Payment.created_at.desc(), Payment.id.desc()).all()
    return search_filter(rows, filters.get("q"), "student.user.profile.full_name", "student.registration_number")


def payment_stats(payments: Iterable["Payment"]) -> dict:
    """Totals for the payments dashboard; collection rate is paid / total revenue."""
    stats = {
        "total_revenue": ZERO,
        "count": 0,
        "by_status": {st: {"amount": ZERO, "count": 0} for st in PAYMENT_STATUSES},
        "by_method": {m: ZERO for m in PAYMENT_METHODS},
        "by_type": {t: ZERO for t in PAYMENT_TYPES},
    }
    for p in payments:
        amount = Decimal(p.amount or 0)
        stats["total_revenue"] += amount
        stats["count"] += 1
        bucket = stats["by_status"].setdefault(p.status, {"amount": ZERO, "count": 0})
        bucket["amount"] += amount
        bucket["count"] += 1
        stats["by_method"][p.payment_method] = stats["by_method"].get(p.payment_method, ZERO) + amount
        stats["by_type"][p.payment_type] = stats["by_type"].get(p.payment_type, ZERO) + amount

    stats["paid_amount"] = stats["by_status"]["paid"]["amount"]
    stats["pending_amount"] = stats["by_status"]["pending"]["amount"]
    stats["partial_amount"] = stats["by_status"]["partial"]["amount"]
    stats["collection_rate"] = percent(stats["paid_amount"], stats["total_revenue"])
    return stats


def collected_since(s: "Session", since: date) -> Decimal:
    """Sum of paid payments created on/after `since` (dashboard: this month)."""
    from app.tcms.modules.finance.models import Payment

    rows = (
        s.query(Payment.amount)
        .filter(Payment.status == "paid", Payment.created_at >= datetime.combine(since, time.min))
        .all()
    )
    return sum((Decimal(r[0] or 0) for r in rows), ZERO)


def finance_summary(s: "Session", start: date, end: date) -> dict:
    """Revenue (paid + partial) minus expenses over [start, end]."""
    from app.tcms.modules.finance.models import Expense, Payment

    if end < start:
        raise ValueError("End date must be on or after the start date.")
    lo = datetime.combine(start, time.min)
    hi = datetime.combine(end + timedelta(days=1), time.min)
    payments = (
        s.query(Payment)
        .filter(Payment.status.in_(COLLECTED_STATUSES), Payment.created_at >= lo, Payment.created_at < hi)
        .all()
    )
    expenses = s.query(Expense).filter(Expense.expense_date >= start, Expense.expense_date <= end).all()

    revenue = sum((Decimal(p.amount) for p in payments), ZERO)
    spent = sum((Decimal(e.amount) for e in expenses), ZERO)
    by_category: dict[str, Decimal] = {}
    for e in expenses:
        by_category[e.category] = by_category.get(e.category, ZERO) + Decimal(e.amount)
    return {
        "start": start,
        "end": end,
        "revenue": revenue,
        "expenses": spent,
        "net_income": revenue - spent,
        "payment_count": len(payments),
        "expense_count": len(expenses),
        "expenses_by_category": by_category,
    }


def student_balance(s: "Session", student: "Student") -> tuple[Decimal, Decimal, Decimal]:
    """(due, paid, balance) using the fee structure for the student's program and level."""
    from app.tcms.modules.academics.service import fee_for, fees_due
    from app.tcms.modules.finance.models import Payment

    program_id = student.training_class.program_id if student.training_class else None
    due = fees_due(fee_for(s, program_id, student.level))
    rows = (
        s.query(Payment.amount)
        .filter(Payment.student_id == student.id, Payment.status.in_(COLLECTED_STATUSES))
        .all()
    )
    paid = sum((Decimal(r[0] or 0) for r in rows), ZERO)
    return due, paid, due - paid


# ---------- Expenses ----------


def validate_expense_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("description") or "").strip():
        errors.append("Description is required.")
    if payload.get("category") not in EXPENSE_CATEGORIES:
        errors.append(f"Category must be one of: {', '.join(EXPENSE_CATEGORIES)}")
    try:
        amount = parse_decimal(payload.get("amount"))
    except ValueError:
        errors.append("Amount must be a number.")
    else:
        if amount is None or amount <= 0:
            errors.append("Amount must be greater than zero.")
    if payload.get("payment_method") not in PAYMENT_METHODS:
        errors.append(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
    try:
        if not parse_date(payload.get("expense_date")):
            errors.append("Expense date is required.")
    except ValueError:
        errors.append("Expense date must be YYYY-MM-DD.")
    return errors


def record_expense(
    s: "Session",
    payload: dict,
    user: "User",
    receipt: tuple[bytes, str, str] | None = None,
) -> "Expense":
    """`receipt` is (file_bytes, filename, content_type) when a file was attached."""
    from flask import current_app

    from app.tcms.modules.finance.models import Expense
    from app.tcms.storage import storage_from_config

    expense = Expense(
        description=payload["description"].strip(),
        category=payload["category"],
        amount=parse_decimal(payload["amount"]),
        payment_method=payload["payment_method"],
        expense_date=parse_date(payload["expense_date"]),
        notes=clean_str(payload.get("notes")),
        recorded_by_user_id=user.id,
    )
    s.add(expense)
    s.flush()

    if receipt is not None:
        file_bytes, filename, content_type = receipt
        key = build_storage_key("expenses", f"expense-{expense.id}", filename)
        storage_from_config(current_app.config).put_bytes(key, file_bytes, content_type=content_type)
        expense.receipt_storage_key = key
        expense.receipt_filename = secure_filename(filename) or "receipt.bin"

    record_event(
        s,
        actor=user,
        action="expense.record",
        entity_type="Expense",
        entity_id=str(expense.id),
        metadata={
            "amount": expense.amount,
            "category": expense.category,
            "receipt_sha256": hashlib.sha256(receipt[0]).hexdigest() if receipt else None,
        },
    )
    s.flush()
    return expense


def delete_expense(s: "Session", expense: "Expense", user: "User", reason: str | None = None) -> str | None:
    """
    Delete the expense row. Returns the receipt's storage key so the caller can
    remove the file once the deletion has been committed.
    """
    receipt_key = expense.receipt_storage_key
    record_event(
        s,
        actor=user,
        action="expense.delete",
        entity_type="Expense",
        entity_id=str(expense.id),
        reason=reason,
        metadata={"amount": expense.amount, "description": expense.description},
    )
    s.delete(expense)
    s.flush()
    return receipt_key


def discard_receipt(storage, key: str | None) -> None:
    """Best-effort removal of an orphaned receipt file."""
    if not key:
        return
    try:
        storage.delete(key)
    except StorageError as e:
        logger.warning("Could not delete receipt %s: %s", key, e)
