from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.tcms.accounts import users_with_role
from app.tcms.constants import LEVELS, ROLE_TRAINER, SHIFTS
from app.tcms.db import db_session
from app.tcms.modules.academics.models import FeeStructure, Program, TrainingClass
from app.tcms.modules.academics.service import (
    create_class,
    create_fee_structure,
    create_program,
    set_class_active,
    set_fee_active,
    set_program_active,
    update_class,
    update_fee_structure,
    update_program,
    validate_class_payload,
    validate_fee_payload,
    validate_program_payload,
)
from app.tcms.pagination import page_size, page_url_builder, paginate, parse_page_arg, search_filter
from app.tcms.rbac import require_permission
from app.tcms.utils import current_user

bp = Blueprint("academics", __name__)


def _program_payload() -> dict:
    return {
        "name": request.form.get("name"),
        "description": request.form.get("description"),
        "start_date": request.form.get("start_date"),
        "end_date": request.form.get("end_date"),
        "eligible_levels": request.form.getlist("eligible_levels"),
    }


def _class_payload() -> dict:
    return {
        "name": request.form.get("name"),
        "level": request.form.get("level"),
        "shift": request.form.get("shift"),
        "max_capacity": request.form.get("max_capacity"),
        "program_id": request.form.get("program_id"),
        "trainer_user_id": request.form.get("trainer_user_id"),
    }


def _fee_payload() -> dict:
    return {
        "name": request.form.get("name"),
        "program_id": request.form.get("program_id"),
        "level": request.form.get("level"),
        "registration_fee": request.form.get("registration_fee"),
        "internship_fee": request.form.get("internship_fee"),
    }


# ---------- Programs ----------
@bp.get("/programs")
@require_permission("programs.view")
def programs_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    status_filter = (request.args.get("status") or "").strip()

    q = s.query(Program)
    if status_filter == "active":
        q = q.filter(Program.is_active.is_(True))
    elif status_filter == "inactive":
        q = q.filter(Program.is_active.is_(False))
    rows = search_filter(q.order_by(Program.start_date.desc()).all(), search, "name", "description")
    page = paginate(rows, parse_page_arg(), page_size())

    return render_template(
        "admin/academics/programs_list.html",
        page=page,
        search=search,
        status_filter=status_filter,
        build_url=page_url_builder("academics.programs_list"),
    )


@bp.get("/programs/new")
@require_permission("programs.edit")
def program_new_get():
    return render_template("admin/academics/program_form.html", program=None, levels=LEVELS)


@bp.post("/programs/new")
@require_permission("programs.edit")
def program_new_post():
    s = db_session()
    payload = _program_payload()
    errors = validate_program_payload(payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("academics.program_new_get"))

    program = create_program(s, payload, current_user())
    s.commit()
    flash(f"Program {program.name} created.", "success")
    return redirect(url_for("academics.programs_list"))


@bp.get("/programs/<int:program_id>/edit")
@require_permission("programs.edit")
def program_edit_get(program_id: int):
    s = db_session()
    program = s.get(Program, program_id)
    if not program:
        abort(404)
    return render_template("admin/academics/program_form.html", program=program, levels=LEVELS)


@bp.post("/programs/<int:program_id>/edit")
@require_permission("programs.edit")
def program_edit_post(program_id: int):
    s = db_session()
    program = s.get(Program, program_id)
    if not program:
        abort(404)
    payload = _program_payload()
    errors = validate_program_payload(payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("academics.program_edit_get", program_id=program_id))
    try:
        update_program(s, program, payload, current_user())
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("academics.program_edit_get", program_id=program_id))
    s.commit()
    flash("Program updated.", "success")
    return redirect(url_for("academics.programs_list"))


@bp.post("/programs/<int:program_id>/toggle")
@require_permission("programs.edit")
def program_toggle(program_id: int):
    s = db_session()
    program = s.get(Program, program_id)
    if not program:
        abort(404)
    set_program_active(s, program, not program.is_active, current_user())
    s.commit()
    flash(f"Program {'activated' if program.is_active else 'deactivated'}.", "success")
    return redirect(url_for("academics.programs_list"))


# ---------- Classes ----------
@bp.get("/classes")
@require_permission("classes.view")
def classes_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    level_filter = (request.args.get("level") or "").strip()
    shift_filter = (request.args.get("shift") or "").strip()
    program_filter = request.args.get("program_id", type=int)

    q = s.query(TrainingClass)
    if level_filter:
        q = q.filter(TrainingClass.level == level_filter)
    if shift_filter:
        q = q.filter(TrainingClass.shift == shift_filter)
    if program_filter:
        q = q.filter(TrainingClass.program_id == program_filter)
    rows = search_filter(q.order_by(TrainingClass.name.asc()).all(), search, "name", "program.name")
    page = paginate(rows, parse_page_arg(), page_size())

    return render_template(
        "admin/academics/classes_list.html",
        page=page,
        search=search,
        level_filter=level_filter,
        shift_filter=shift_filter,
        program_filter=program_filter,
        programs=s.query(Program).order_by(Program.name.asc()).all(),
        levels=LEVELS,
        shifts=SHIFTS,
        build_url=page_url_builder("academics.classes_list"),
    )


def _class_form(klass: TrainingClass | None):
    s = db_session()
    return render_template(
        "admin/academics/class_form.html",
        klass=klass,
        programs=s.query(Program).filter(Program.is_active.is_(True)).order_by(Program.name.asc()).all(),
        trainers=users_with_role(s, ROLE_TRAINER),
        levels=LEVELS,
        shifts=SHIFTS,
    )


@bp.get("/classes/new")
@require_permission("classes.edit")
def class_new_get():
    return _class_form(None)


@bp.post("/classes/new")
@require_permission("classes.edit")
def class_new_post():
    s = db_session()
    payload = _class_payload()
    errors = validate_class_payload(s, payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("academics.class_new_get"))

    klass = create_class(s, payload, current_user())
    s.commit()
    flash(f"Class {klass.name} created.", "success")
    return redirect(url_for("academics.classes_list"))


@bp.get("/classes/<int:class_id>")
@require_permission("classes.view")
def class_detail(class_id: int):
    s = db_session()
    klass = s.get(TrainingClass, class_id)
    if not klass:
        abort(404)
    students = sorted((st for st in klass.students if st.is_active), key=lambda st: st.registration_number)
    return render_template("admin/academics/class_detail.html", klass=klass, students=students)


@bp.get("/classes/<int:class_id>/edit")
@require_permission("classes.edit")
def class_edit_get(class_id: int):
    s = db_session()
    klass = s.get(TrainingClass, class_id)
    if not klass:
        abort(404)
    return _class_form(klass)


@bp.post("/classes/<int:class_id>/edit")
@require_permission("classes.edit")
def class_edit_post(class_id: int):
    s = db_session()
    klass = s.get(TrainingClass, class_id)
    if not klass:
        abort(404)
    payload = _class_payload()
    errors = validate_class_payload(s, payload, existing=klass)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("academics.class_edit_get", class_id=class_id))
    try:
        update_class(s, klass, payload, current_user())
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("academics.class_edit_get", class_id=class_id))
    s.commit()
    flash("Class updated.", "success")
    return redirect(url_for("academics.class_detail", class_id=class_id))


@bp.post("/classes/<int:class_id>/toggle")
@require_permission("classes.edit")
def class_toggle(class_id: int):
    s = db_session()
    klass = s.get(TrainingClass, class_id)
    if not klass:
        abort(404)
    try:
        set_class_active(s, klass, not klass.is_active, current_user())
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("academics.class_detail", class_id=class_id))
    s.commit()
    flash(f"Class {'activated' if klass.is_active else 'deactivated'}.", "success")
    return redirect(url_for("academics.classes_list"))


# ---------- Fee structures ----------
@bp.get("/fees")
@require_permission("fees.view")
def fees_list():
    s = db_session()
    program_filter = request.args.get("program_id", type=int)
    q = s.query(FeeStructure)
    if program_filter:
        q = q.filter(FeeStructure.program_id == program_filter)
    page = paginate(q.order_by(FeeStructure.id.desc()), parse_page_arg(), page_size())
    return render_template(
        "admin/academics/fees_list.html",
        page=page,
        program_filter=program_filter,
        programs=s.query(Program).order_by(Program.name.asc()).all(),
        build_url=page_url_builder("academics.fees_list"),
    )


def _fee_form(fee: FeeStructure | None):
    s = db_session()
    return render_template(
        "admin/academics/fee_form.html",
        fee=fee,
        programs=s.query(Program).order_by(Program.name.asc()).all(),
        levels=LEVELS,
    )


@bp.get("/fees/new")
@require_permission("fees.edit")
def fee_new_get():
    return _fee_form(None)


@bp.post("/fees/new")
@require_permission("fees.edit")
def fee_new_post():
    s = db_session()
    payload = _fee_payload()
    errors = validate_fee_payload(s, payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("academics.fee_new_get"))
    fee = create_fee_structure(s, payload, current_user())
    s.commit()
    flash(f"Fee structure {fee.name} created.", "success")
    return redirect(url_for("academics.fees_list"))


@bp.get("/fees/<int:fee_id>/edit")
@require_permission("fees.edit")
def fee_edit_get(fee_id: int):
    s = db_session()
    fee = s.get(FeeStructure, fee_id)
    if not fee:
        abort(404)
    return _fee_form(fee)


@bp.post("/fees/<int:fee_id>/edit")
@require_permission("fees.edit")
def fee_edit_post(fee_id: int):
    s = db_session()
    fee = s.get(FeeStructure, fee_id)
    if not fee:
        abort(404)
    payload = _fee_payload()
    errors = validate_fee_payload(s, payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("academics.fee_edit_get", fee_id=fee_id))
    update_fee_structure(s, fee, payload, current_user())
    s.commit()
    flash("Fee structure updated.", "success")
    return redirect(url_for("academics.fees_list"))


@bp.post("/fees/<int:fee_id>/toggle")
@require_permission("fees.edit")
def fee_toggle(fee_id: int):
    s = db_session()
    fee = s.get(FeeStructure, fee_id)
    if not fee:
        abort(404)
    set_fee_active(s, fee, not fee.is_active, current_user())
    s.commit()
    flash("Fee structure updated.", "success")
    return redirect(url_for("academics.fees_list"))
