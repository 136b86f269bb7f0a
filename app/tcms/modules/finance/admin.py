from __future__ import annotations

import csv
import io
from datetime import date

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, send_file, url_for

from app.tcms.audit import record_event
from app.tcms.db import db_session
from app.tcms.modules.finance.models import (
    EXPENSE_CATEGORIES,
    PAYMENT_METHODS,
    PAYMENT_STATUSES,
    PAYMENT_TYPES,
    Expense,
    Payment,
)
from app.tcms.modules.finance.service import (
    delete_expense,
    discard_receipt,
    finance_summary,
    payment_stats,
    query_payments,
    record_expense,
    record_payment,
    student_balance,
    update_payment_status,
    validate_expense_payload,
    validate_payment_payload,
)
from app.tcms.modules.students.models import Student
from app.tcms.modules.students.service import student_for_user
from app.tcms.pagination import page_size, page_url_builder, paginate, parse_page_arg
from app.tcms.rbac import require_permission
from app.tcms.storage import StorageError, storage_from_config
from app.tcms.utils import current_user, parse_date_arg

bp = Blueprint("finance", __name__)

MAX_RECEIPT_BYTES = 10 * 1024 * 1024


def _payment_filters() -> dict:
    return {
        "q": (request.args.get("q") or "").strip(),
        "status": (request.args.get("status") or "").strip(),
        "method": (request.args.get("method") or "").strip(),
        "type": (request.args.get("type") or "").strip(),
        "date_from": parse_date_arg("date_from"),
        "date_to": parse_date_arg("date_to"),
    }


# ---------- Payments ----------
@bp.get("/payments")
@require_permission("finance.view")
def payments_list():
    s = db_session()
    filters = _payment_filters()
    rows = query_payments(s, filters)
    page = paginate(rows, parse_page_arg(), page_size())
    return render_template(
        "admin/finance/payments_list.html",
        page=page,
        filters=filters,
        stats=payment_stats(rows),
        statuses=PAYMENT_STATUSES,
        methods=PAYMENT_METHODS,
        types=PAYMENT_TYPES,
        build_url=page_url_builder("finance.payments_list"),
    )


@bp.get("/payments/new")
@require_permission("finance.record")
def payment_new_get():
    s = db_session()
    students = (
        s.query(Student).filter(Student.is_active.is_(True)).order_by(Student.registration_number.asc()).all()
    )
    return render_template(
        "admin/finance/payment_new.html",
        students=students,
        selected_student_id=request.args.get("student_id", type=int),
        statuses=PAYMENT_STATUSES,
        methods=PAYMENT_METHODS,
        types=PAYMENT_TYPES,
    )


@bp.post("/payments/new")
@require_permission("finance.record")
def payment_new_post():
    s = db_session()
    payload = {
        "student_id": request.form.get("student_id"),
        "amount": request.form.get("amount"),
        "payment_type": request.form.get("payment_type"),
        "payment_method": request.form.get("payment_method"),
        "status": request.form.get("status"),
        "notes": request.form.get("notes"),
    }
    errors = validate_payment_payload(s, payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("finance.payment_new_get", student_id=payload["student_id"] or None))
    payment = record_payment(s, payload, current_user())
    s.commit()
    flash(f"Payment of {payment.amount} recorded.", "success")
    return redirect(url_for("finance.payments_list"))


@bp.post("/payments/<int:payment_id>/status")
@require_permission("finance.record")
def payment_status_post(payment_id: int):
    s = db_session()
    payment = s.get(Payment, payment_id)
    if not payment:
        abort(404)
    try:
        update_payment_status(s, payment, (request.form.get("status") or "").strip(), current_user())
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("finance.payments_list"))
    s.commit()
    flash("Payment status updated.", "success")
    return redirect(url_for("finance.payments_list"))


@bp.get("/payments/export")
@require_permission("finance.export")
def payments_export():
    s = db_session()
    u = current_user()
    filters = _payment_filters()
    rows = query_payments(s, filters)

    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(["Date", "Registration #", "Student", "Type", "Method", "Status", "Amount", "Notes"])
    for p in rows:
        w.writerow(
            [
                p.created_at.date().isoformat(),
                p.student.registration_number,
                p.student.full_name,
                p.payment_type,
                p.payment_method,
                p.status,
                f"{p.amount:.2f}",
                p.notes or "",
            ]
        )

    record_event(
        s,
        actor=u,
        action="payment.export",
        entity_type="Payment",
        entity_id="export",
        metadata={"filters": filters, "row_count": len(rows)},
    )
    s.commit()

    data = out.getvalue().encode("utf-8")
    filename = f"payments_export_{date.today().strftime('%Y%m%d')}.csv"
    return send_file(
        io.BytesIO(data),
        mimetype="text/csv",
        as_attachment=True,
        download_name=filename,
        max_age=0,
    )


# ---------- Summary ----------
@bp.get("/finance/summary")
@require_permission("finance.view")
def finance_summary_view():
    s = db_session()
    today = date.today()
    start = parse_date_arg("start") or today.replace(day=1)
    end = parse_date_arg("end") or today
    try:
        summary = finance_summary(s, start, end)
    except ValueError as e:
        flash(str(e), "danger")
        summary = finance_summary(s, end, end)
    return render_template("admin/finance/summary.html", summary=summary)


# ---------- Expenses ----------
@bp.get("/expenses")
@require_permission("finance.view")
def expenses_list():
    s = db_session()
    category_filter = (request.args.get("category") or "").strip()
    date_from = parse_date_arg("date_from")
    date_to = parse_date_arg("date_to")

    q = s.query(Expense)
    if category_filter:
        q = q.filter(Expense.category == category_filter)
    if date_from:
        q = q.filter(Expense.expense_date >= date_from)
    if date_to:
        q = q.filter(Expense.expense_date <= date_to)
    page = paginate(q.order_by(Expense.expense_date.desc(), Expense.id.desc()), parse_page_arg(), page_size())
    return render_template(
        "admin/finance/expenses_list.html",
        page=page,
        category_filter=category_filter,
        date_from=date_from,
        date_to=date_to,
        categories=EXPENSE_CATEGORIES,
        build_url=page_url_builder("finance.expenses_list"),
    )


@bp.get("/expenses/new")
@require_permission("finance.record")
def expense_new_get():
    return render_template(
        "admin/finance/expense_new.html", categories=EXPENSE_CATEGORIES, methods=PAYMENT_METHODS, today=date.today()
    )


@bp.post("/expenses/new")
@require_permission("finance.record")
def expense_new_post():
    s = db_session()
    payload = {
        "description": request.form.get("description"),
        "category": request.form.get("category"),
        "amount": request.form.get("amount"),
        "payment_method": request.form.get("payment_method"),
        "expense_date": request.form.get("expense_date"),
        "notes": request.form.get("notes"),
    }
    errors = validate_expense_payload(payload)

    receipt = None
    f = request.files.get("receipt")
    if f and f.filename:
        file_bytes = f.read()
        if len(file_bytes) > MAX_RECEIPT_BYTES:
            errors.append("Receipt too large (max 10MB).")
        else:
            receipt = (file_bytes, f.filename, f.mimetype or "application/octet-stream")

    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("finance.expense_new_get"))

    record_expense(s, payload, current_user(), receipt=receipt)
    s.commit()
    flash("Expense recorded.", "success")
    return redirect(url_for("finance.expenses_list"))


@bp.get("/expenses/<int:expense_id>/receipt")
@require_permission("finance.view")
def expense_receipt(expense_id: int):
    s = db_session()
    expense = s.get(Expense, expense_id)
    if not expense or not expense.receipt_storage_key:
        abort(404)
    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(expense.receipt_storage_key)
    except StorageError:
        abort(404)
    return send_file(fobj, as_attachment=True, download_name=expense.receipt_filename or "receipt", max_age=0)


@bp.post("/expenses/<int:expense_id>/delete")
@require_permission("finance.record")
def expense_delete(expense_id: int):
    s = db_session()
    expense = s.get(Expense, expense_id)
    if not expense:
        abort(404)
    receipt_key = delete_expense(s, expense, current_user(), reason=(request.form.get("reason") or "").strip() or None)
    s.commit()
    # file goes only after the row deletion is committed
    discard_receipt(storage_from_config(current_app.config), receipt_key)
    flash("Expense deleted.", "success")
    return redirect(url_for("finance.expenses_list"))


# ---------- Student self-service ----------
@bp.get("/me/payments")
@require_permission("self.payments")
def my_payments():
    s = db_session()
    student = student_for_user(s, current_user())
    if not student:
        flash("No student record is linked to your account.", "warning")
        return redirect(url_for("admin.index"))
    payments = s.query(Payment).filter(Payment.student_id == student.id).order_by(Payment.created_at.desc()).all()
    due, paid, balance = student_balance(s, student)
    return render_template(
        "admin/finance/my_payments.html",
        student=student,
        payments=payments,
        due=due,
        paid=paid,
        balance=balance,
    )
