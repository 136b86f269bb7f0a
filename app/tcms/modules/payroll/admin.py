from __future__ import annotations

from datetime import date

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.tcms.accounts import staff_users
from app.tcms.constants import REVIEW_PENDING, REVIEW_STATUSES
from app.tcms.db import db_session
from app.tcms.modules.payroll.models import (
    PAYMENT_PERIODS,
    PAYROLL_STATUSES,
    PAYROLL_TRANSITIONS,
    LeaveRequest,
    PayrollEntry,
    Salary,
    SalaryAdvance,
)
from app.tcms.modules.payroll.service import (
    forward_advance,
    generate_payroll,
    request_advance,
    request_leave,
    review_advance,
    review_leave,
    salary_overview,
    set_payroll_status,
    set_salary,
    validate_leave_payload,
    validate_period,
    validate_salary_payload,
)
from app.tcms.pagination import page_size, page_url_builder, paginate, parse_page_arg
from app.tcms.rbac import require_permission
from app.tcms.utils import current_user, parse_date, parse_date_arg

bp = Blueprint("payroll", __name__)


# ---------- Salaries ----------
@bp.get("/salaries")
@require_permission("payroll.view")
def salaries_list():
    s = db_session()
    salaries = s.query(Salary).order_by(Salary.employee_user_id.asc()).all()
    return render_template(
        "admin/payroll/salaries.html",
        salaries=salaries,
        employees=staff_users(s),
        periods=PAYMENT_PERIODS,
    )


@bp.post("/salaries")
@require_permission("payroll.edit")
def salaries_post():
    s = db_session()
    payload = {
        "employee_user_id": request.form.get("employee_user_id"),
        "amount": request.form.get("amount"),
        "payment_period": request.form.get("payment_period") or "monthly",
    }
    errors = validate_salary_payload(s, payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("payroll.salaries_list"))
    set_salary(s, payload, current_user())
    s.commit()
    flash("Salary saved.", "success")
    return redirect(url_for("payroll.salaries_list"))


# ---------- Payroll runs ----------
@bp.get("/payroll")
@require_permission("payroll.view")
def payroll_list():
    s = db_session()
    status_filter = (request.args.get("status") or "").strip()
    period_start = parse_date_arg("period_start")
    period_end = parse_date_arg("period_end")

    q = s.query(PayrollEntry)
    if status_filter:
        q = q.filter(PayrollEntry.status == status_filter)
    if period_start:
        q = q.filter(PayrollEntry.period_start >= period_start)
    if period_end:
        q = q.filter(PayrollEntry.period_end <= period_end)
    page = paginate(
        q.order_by(PayrollEntry.period_start.desc(), PayrollEntry.id.asc()), parse_page_arg(), page_size()
    )
    today = date.today()
    return render_template(
        "admin/payroll/list.html",
        page=page,
        status_filter=status_filter,
        period_start=period_start,
        period_end=period_end,
        statuses=PAYROLL_STATUSES,
        transitions=PAYROLL_TRANSITIONS,
        default_start=today.replace(day=1),
        default_end=today,
        build_url=page_url_builder("payroll.payroll_list"),
    )


@bp.post("/payroll/generate")
@require_permission("payroll.edit")
def payroll_generate():
    s = db_session()
    try:
        start = parse_date(request.form.get("period_start"))
        end = parse_date(request.form.get("period_end"))
    except ValueError:
        flash("Dates must be YYYY-MM-DD.", "danger")
        return redirect(url_for("payroll.payroll_list"))
    errors = validate_period(start, end)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("payroll.payroll_list"))

    run = generate_payroll(s, start, end, current_user())
    s.commit()
    msg = f"Generated {len(run.created)} payroll entr{'y' if len(run.created) == 1 else 'ies'}"
    if run.skipped:
        msg += f"; skipped {run.skipped} already generated for this period"
    flash(msg + ".", "success" if run.created else "info")
    return redirect(url_for("payroll.payroll_list", period_start=start.isoformat(), period_end=end.isoformat()))


@bp.post("/payroll/<int:entry_id>/status")
@require_permission("payroll.edit")
def payroll_status_post(entry_id: int):
    s = db_session()
    entry = s.get(PayrollEntry, entry_id)
    if not entry:
        abort(404)
    try:
        payment_date = parse_date(request.form.get("payment_date"))
        set_payroll_status(
            s,
            entry,
            (request.form.get("status") or "").strip(),
            current_user(),
            payment_date=payment_date,
            notes=request.form.get("notes"),
        )
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("payroll.payroll_list"))
    s.commit()
    flash(f"Payroll entry marked {entry.status}.", "success")
    return redirect(url_for("payroll.payroll_list"))


# ---------- Advances ----------
@bp.get("/advances")
@require_permission("payroll.view")
def advances_list():
    s = db_session()
    status_filter = (request.args.get("status") or REVIEW_PENDING).strip()
    q = s.query(SalaryAdvance)
    if status_filter in REVIEW_STATUSES:
        q = q.filter(SalaryAdvance.status == status_filter)
    page = paginate(q.order_by(SalaryAdvance.created_at.desc()), parse_page_arg(), page_size())
    return render_template(
        "admin/payroll/advances.html",
        page=page,
        status_filter=status_filter,
        statuses=REVIEW_STATUSES,
        build_url=page_url_builder("payroll.advances_list"),
    )


@bp.post("/advances/<int:advance_id>/forward")
@require_permission("advances.forward")
def advance_forward(advance_id: int):
    s = db_session()
    advance = s.get(SalaryAdvance, advance_id)
    if not advance:
        abort(404)
    try:
        forward_advance(s, advance, current_user(), request.form.get("comment"))
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("payroll.advances_list"))
    s.commit()
    flash("Request forwarded to the administrator.", "success")
    return redirect(url_for("payroll.advances_list"))


@bp.post("/advances/<int:advance_id>/review")
@require_permission("advances.approve")
def advance_review(advance_id: int):
    s = db_session()
    advance = s.get(SalaryAdvance, advance_id)
    if not advance:
        abort(404)
    try:
        review_advance(
            s, advance, (request.form.get("decision") or "").strip(), current_user(), request.form.get("comment")
        )
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("payroll.advances_list"))
    s.commit()
    flash(f"Advance {advance.status}.", "success")
    return redirect(url_for("payroll.advances_list"))


# ---------- My salary ----------
@bp.get("/me/salary")
@require_permission("self.salary")
def my_salary():
    s = db_session()
    u = current_user()
    entries = (
        s.query(PayrollEntry)
        .filter(PayrollEntry.employee_user_id == u.id)
        .order_by(PayrollEntry.period_start.desc())
        .limit(24)
        .all()
    )
    return render_template("admin/payroll/my_salary.html", overview=salary_overview(s, u.id), entries=entries)


@bp.post("/me/salary/advances")
@require_permission("self.salary")
def my_advance_post():
    s = db_session()
    payload = {"amount": request.form.get("amount"), "reason": request.form.get("reason")}
    try:
        request_advance(s, payload, current_user())
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("payroll.my_salary"))
    s.commit()
    flash("Advance request submitted.", "success")
    return redirect(url_for("payroll.my_salary"))


# ---------- Leave ----------
@bp.get("/leave")
@require_permission("leave.request")
def leave_mine():
    s = db_session()
    u = current_user()
    requests_ = (
        s.query(LeaveRequest)
        .filter(LeaveRequest.trainer_user_id == u.id)
        .order_by(LeaveRequest.created_at.desc())
        .all()
    )
    return render_template("admin/payroll/leave_mine.html", leave_requests=requests_)


@bp.post("/leave")
@require_permission("leave.request")
def leave_post():
    s = db_session()
    payload = {
        "leave_date": request.form.get("leave_date"),
        "return_date": request.form.get("return_date"),
        "reason": request.form.get("reason"),
    }
    errors = validate_leave_payload(payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("payroll.leave_mine"))
    request_leave(s, payload, current_user())
    s.commit()
    flash("Leave request submitted.", "success")
    return redirect(url_for("payroll.leave_mine"))


@bp.get("/leave/review")
@require_permission("leave.review")
def leave_review_list():
    s = db_session()
    status_filter = (request.args.get("status") or REVIEW_PENDING).strip()
    q = s.query(LeaveRequest)
    if status_filter in REVIEW_STATUSES:
        q = q.filter(LeaveRequest.status == status_filter)
    page = paginate(q.order_by(LeaveRequest.leave_date.asc()), parse_page_arg(), page_size())
    return render_template(
        "admin/payroll/leave_review.html",
        page=page,
        status_filter=status_filter,
        statuses=REVIEW_STATUSES,
        build_url=page_url_builder("payroll.leave_review_list"),
    )


@bp.post("/leave/<int:leave_id>/review")
@require_permission("leave.review")
def leave_review_post(leave_id: int):
    s = db_session()
    leave = s.get(LeaveRequest, leave_id)
    if not leave:
        abort(404)
    try:
        review_leave(s, leave, (request.form.get("decision") or "").strip(), current_user(), request.form.get("comment"))
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("payroll.leave_review_list"))
    s.commit()
    flash(f"Leave request {leave.status}.", "success")
    return redirect(url_for("payroll.leave_review_list"))
