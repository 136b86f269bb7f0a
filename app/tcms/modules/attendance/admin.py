from __future__ import annotations

from datetime import date

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.tcms.constants import ROLE_ADMIN, ROLE_SECRETARY
from app.tcms.db import db_session
from app.tcms.modules.academics.models import TrainingClass
from app.tcms.modules.attendance.models import Attendance
from app.tcms.modules.attendance.service import class_history, record_class_attendance
from app.tcms.modules.students.models import Student
from app.tcms.rbac import require_permission, user_role_keys
from app.tcms.utils import current_user, parse_date

bp = Blueprint("attendance", __name__)


def _visible_classes(s):
    """Trainers only see their own classes."""
    u = current_user()
    q = s.query(TrainingClass).filter(TrainingClass.is_active.is_(True))
    if not user_role_keys(u) & {ROLE_ADMIN, ROLE_SECRETARY}:
        q = q.filter(TrainingClass.trainer_user_id == u.id)
    return q.order_by(TrainingClass.name.asc()).all()


def _load_class(class_id: int) -> TrainingClass:
    s = db_session()
    klass = s.get(TrainingClass, class_id)
    if not klass or klass not in _visible_classes(s):
        abort(404)
    return klass


@bp.get("/attendance")
@require_permission("attendance.view")
def attendance_index():
    s = db_session()
    return render_template("admin/attendance/index.html", classes=_visible_classes(s))


@bp.get("/attendance/classes/<int:class_id>")
@require_permission("attendance.view")
def attendance_class(class_id: int):
    s = db_session()
    klass = _load_class(class_id)
    try:
        on_date = parse_date(request.args.get("date")) or date.today()
    except ValueError:
        on_date = date.today()

    students = (
        s.query(Student)
        .filter(Student.class_id == klass.id, Student.is_active.is_(True))
        .order_by(Student.registration_number.asc())
        .all()
    )
    marked = {
        a.student_id: a.is_present
        for a in s.query(Attendance).filter(Attendance.class_id == klass.id, Attendance.date == on_date).all()
    }
    return render_template(
        "admin/attendance/class.html",
        klass=klass,
        on_date=on_date,
        students=students,
        marked=marked,
        history=class_history(s, klass),
    )


@bp.post("/attendance/classes/<int:class_id>")
@require_permission("attendance.record")
def attendance_class_post(class_id: int):
    s = db_session()
    klass = _load_class(class_id)
    try:
        on_date = parse_date(request.form.get("date"))
    except ValueError:
        on_date = None
    if not on_date:
        flash("A valid date is required.", "danger")
        return redirect(url_for("attendance.attendance_class", class_id=class_id))

    present_ids = {int(v) for v in request.form.getlist("present") if v.isdigit()}
    try:
        rows = record_class_attendance(s, klass, on_date, present_ids, current_user())
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("attendance.attendance_class", class_id=class_id, date=on_date.isoformat()))
    s.commit()
    flash(f"Attendance saved for {len(rows)} student(s).", "success")
    return redirect(url_for("attendance.attendance_class", class_id=class_id, date=on_date.isoformat()))
