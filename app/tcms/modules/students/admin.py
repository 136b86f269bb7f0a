from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, url_for

from app.tcms.constants import LEVELS, SHIFTS
from app.tcms.db import db_session
from app.tcms.modules.academics.models import TrainingClass
from app.tcms.modules.academics.service import available_classes
from app.tcms.modules.attendance.models import Attendance
from app.tcms.modules.attendance.service import attendance_rate
from app.tcms.modules.finance.models import Payment
from app.tcms.modules.finance.service import student_balance
from app.tcms.modules.students.models import Student
from app.tcms.modules.students.service import (
    register_student,
    set_student_active,
    transfer_student,
    update_student,
    validate_academic_step,
    validate_account_step,
    validate_class_step,
    validate_student_update,
)
from app.tcms.pagination import page_size, page_url_builder, paginate, parse_page_arg, search_filter
from app.tcms.rbac import require_permission
from app.tcms.utils import current_user, form_bool, parse_int

bp = Blueprint("students", __name__)

WIZARD_STEPS = ("account", "academic", "class", "confirm")
_WIZARD_FIELDS = (
    "full_name",
    "email",
    "phone",
    "school_name",
    "level",
    "preferred_shift",
    "has_whatsapp",
    "alternative_whatsapp",
    "class_id",
)


def _wizard_payload() -> dict:
    payload = {k: (request.form.get(k) or "").strip() for k in _WIZARD_FIELDS}
    payload["email"] = payload["email"].lower()
    payload["has_whatsapp"] = form_bool("has_whatsapp")
    return payload


def _step_errors(s, step: str, payload: dict) -> list[str]:
    if step == "account":
        return validate_account_step(s, payload)
    if step == "academic":
        return validate_academic_step(payload)
    if step == "class":
        return validate_class_step(s, payload)
    return []


def _render_wizard(step: str, payload: dict):
    s = db_session()
    classes = []
    if step in ("class", "confirm"):
        classes = available_classes(s, payload.get("level"), payload.get("preferred_shift"))
    try:
        class_id = parse_int(payload.get("class_id") or None)
    except ValueError:
        class_id = None
    chosen = s.get(TrainingClass, class_id) if class_id else None
    return render_template(
        "admin/students/register.html",
        step=step,
        steps=WIZARD_STEPS,
        payload=payload,
        classes=classes,
        chosen_class=chosen,
        levels=LEVELS,
        shifts=SHIFTS,
    )


# ---------- List ----------
@bp.get("/students")
@require_permission("students.view")
def students_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    level_filter = (request.args.get("level") or "").strip()
    class_filter = request.args.get("class_id", type=int)
    status_filter = (request.args.get("status") or "active").strip()

    q = s.query(Student)
    if level_filter:
        q = q.filter(Student.level == level_filter)
    if class_filter:
        q = q.filter(Student.class_id == class_filter)
    if status_filter == "active":
        q = q.filter(Student.is_active.is_(True))
    elif status_filter == "inactive":
        q = q.filter(Student.is_active.is_(False))

    rows = search_filter(
        q.order_by(Student.created_at.desc()).all(),
        search,
        "user.profile.full_name",
        "registration_number",
        "school_name",
        "user.email",
    )
    page = paginate(rows, parse_page_arg(), page_size())

    return render_template(
        "admin/students/list.html",
        page=page,
        search=search,
        level_filter=level_filter,
        class_filter=class_filter,
        status_filter=status_filter,
        levels=LEVELS,
        classes=s.query(TrainingClass).order_by(TrainingClass.name.asc()).all(),
        build_url=page_url_builder("students.students_list"),
    )


# ---------- Registration wizard ----------
@bp.get("/students/register")
@require_permission("students.create")
def student_register_get():
    return _render_wizard("account", {k: "" for k in _WIZARD_FIELDS})


@bp.post("/students/register")
@require_permission("students.create")
def student_register_post():
    s = db_session()
    payload = _wizard_payload()
    step = request.form.get("step") or "account"
    if step not in WIZARD_STEPS:
        abort(400)

    if request.form.get("back"):
        idx = max(0, WIZARD_STEPS.index(step) - 1)
        return _render_wizard(WIZARD_STEPS[idx], payload)

    # every step up to the current one is re-checked (hidden fields can be edited)
    for done in WIZARD_STEPS[: WIZARD_STEPS.index(step) + 1]:
        errors = _step_errors(s, done, payload)
        if errors:
            for err in errors:
                flash(err, "danger")
            return _render_wizard(done, payload)

    if step != "confirm":
        return _render_wizard(WIZARD_STEPS[WIZARD_STEPS.index(step) + 1], payload)

    try:
        student, password = register_student(
            s, payload, current_user(), prefix=current_app.config.get("REGISTRATION_PREFIX") or "EDT"
        )
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return _render_wizard("confirm", payload)
    s.commit()
    flash(f"Student {student.registration_number} registered.", "success")
    # credentials are shown on this response only
    return render_template("admin/students/registered.html", student=student, password=password)


# ---------- Detail ----------
@bp.get("/students/<int:student_id>")
@require_permission("students.view")
def student_detail(student_id: int):
    s = db_session()
    student = s.get(Student, student_id)
    if not student:
        abort(404)
    payments = (
        s.query(Payment).filter(Payment.student_id == student.id).order_by(Payment.created_at.desc()).all()
    )
    attendance_rows = s.query(Attendance).filter(Attendance.student_id == student.id).all()
    due, paid, balance = student_balance(s, student)
    transfer_options = [
        c
        for c in s.query(TrainingClass)
        .filter(TrainingClass.is_active.is_(True), TrainingClass.level == student.level)
        .order_by(TrainingClass.name.asc())
        .all()
        if c.id != student.class_id and c.seats_left > 0
    ]
    return render_template(
        "admin/students/detail.html",
        student=student,
        payments=payments,
        attendance_rate=attendance_rate(attendance_rows),
        attendance_count=len(attendance_rows),
        due=due,
        paid=paid,
        balance=balance,
        transfer_options=transfer_options,
        shifts=SHIFTS,
    )


# ---------- Edit ----------
@bp.post("/students/<int:student_id>/edit")
@require_permission("students.edit")
def student_edit_post(student_id: int):
    s = db_session()
    student = s.get(Student, student_id)
    if not student:
        abort(404)
    payload = {
        "full_name": request.form.get("full_name"),
        "phone": request.form.get("phone"),
        "school_name": request.form.get("school_name"),
        "preferred_shift": request.form.get("preferred_shift"),
        "has_whatsapp": form_bool("has_whatsapp"),
        "alternative_whatsapp": request.form.get("alternative_whatsapp"),
        "logbook_submitted": form_bool("logbook_submitted"),
    }
    errors = validate_student_update(payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("students.student_detail", student_id=student_id))
    update_student(s, student, payload, current_user())
    s.commit()
    flash("Student updated.", "success")
    return redirect(url_for("students.student_detail", student_id=student_id))


@bp.post("/students/<int:student_id>/transfer")
@require_permission("students.edit")
def student_transfer_post(student_id: int):
    s = db_session()
    student = s.get(Student, student_id)
    if not student:
        abort(404)
    try:
        new_class_id = parse_int(request.form.get("class_id") or None)
        transfer_student(s, student, new_class_id, current_user())
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("students.student_detail", student_id=student_id))
    s.commit()
    flash("Student transferred.", "success")
    return redirect(url_for("students.student_detail", student_id=student_id))


@bp.post("/students/<int:student_id>/toggle")
@require_permission("students.edit")
def student_toggle(student_id: int):
    s = db_session()
    student = s.get(Student, student_id)
    if not student:
        abort(404)
    reason = (request.form.get("reason") or "").strip() or None
    set_student_active(s, student, not student.is_active, current_user(), reason=reason)
    s.commit()
    flash(f"Student {'reactivated' if student.is_active else 'deactivated'}.", "success")
    return redirect(url_for("students.student_detail", student_id=student_id))
