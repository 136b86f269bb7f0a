"""Equipment register screens for IT staff and administrators."""
from __future__ import annotations

from datetime import date

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.tcms.accounts import staff_users
from app.tcms.db import db_session
from app.tcms.models import User
from app.tcms.modules.equipment.models import EQUIPMENT_STATUSES, Equipment
from app.tcms.modules.equipment.service import (
    WARRANTY_WARNING_DAYS,
    assign_equipment,
    change_status,
    create_equipment,
    filter_equipment,
    update_equipment,
    validate_equipment_payload,
)
from app.tcms.pagination import page_size, page_url_builder, paginate, parse_page_arg
from app.tcms.rbac import require_permission
from app.tcms.utils import current_user, parse_int

bp = Blueprint("equipment", __name__)

FORM_FIELDS = (
    "code",
    "name",
    "status",
    "category",
    "model",
    "serial_number",
    "location",
    "purchase_date",
    "purchase_cost",
    "warranty_expiry",
    "description",
    "notes",
)


def _equipment_or_404(s, equipment_id: int) -> Equipment:
    equipment = s.get(Equipment, equipment_id)
    if equipment is None:
        abort(404)
    return equipment


def _to_detail(equipment_id: int):
    return redirect(url_for("equipment.equipment_detail", equipment_id=equipment_id))


def _choices(s, column) -> list[str]:
    # distinct non-empty values, for the filter dropdowns
    return sorted(v for (v,) in s.query(column).distinct() if v)


@bp.get("/equipment")
@require_permission("equipment.view")
def equipment_list():
    s = db_session()
    filters = {k: (request.args.get(k) or "").strip() for k in ("q", "status", "category", "location")}
    filters["warranty_expiring"] = request.args.get("warranty_expiring") == "1"
    rows = filter_equipment(s.query(Equipment), filters).order_by(Equipment.code.asc())
    return render_template(
        "admin/equipment/list.html",
        page=paginate(rows, parse_page_arg(), page_size()),
        filters=filters,
        statuses=EQUIPMENT_STATUSES,
        categories=_choices(s, Equipment.category),
        locations=_choices(s, Equipment.location),
        warning_days=WARRANTY_WARNING_DAYS,
        today=date.today(),
        build_url=page_url_builder("equipment.equipment_list"),
    )


@bp.get("/equipment/new")
@require_permission("equipment.edit")
def equipment_new_get():
    return render_template("admin/equipment/form.html", equipment=None, statuses=EQUIPMENT_STATUSES)


@bp.post("/equipment/new")
@require_permission("equipment.edit")
def equipment_new_post():
    s = db_session()
    payload = {k: request.form.get(k) for k in FORM_FIELDS}
    errors = validate_equipment_payload(payload)
    if not errors:
        try:
            equipment = create_equipment(s, payload, current_user())
        except ValueError as e:
            s.rollback()
            errors = [str(e)]
    if errors:
        for msg in errors:
            flash(msg, "danger")
        return redirect(url_for("equipment.equipment_new_get"))
    s.commit()
    flash(f"Equipment {equipment.code} created.", "success")
    return _to_detail(equipment.id)


@bp.get("/equipment/<int:equipment_id>")
@require_permission("equipment.view")
def equipment_detail(equipment_id: int):
    s = db_session()
    return render_template(
        "admin/equipment/detail.html",
        equipment=_equipment_or_404(s, equipment_id),
        statuses=EQUIPMENT_STATUSES,
        users=staff_users(s),
        today=date.today(),
    )


@bp.get("/equipment/<int:equipment_id>/edit")
@require_permission("equipment.edit")
def equipment_edit_get(equipment_id: int):
    equipment = _equipment_or_404(db_session(), equipment_id)
    return render_template("admin/equipment/form.html", equipment=equipment, statuses=EQUIPMENT_STATUSES)


@bp.post("/equipment/<int:equipment_id>/edit")
@require_permission("equipment.edit")
def equipment_edit_post(equipment_id: int):
    s = db_session()
    equipment = _equipment_or_404(s, equipment_id)
    payload = {k: request.form.get(k) for k in FORM_FIELDS}
    errors = validate_equipment_payload(payload)
    if not errors:
        try:
            update_equipment(s, equipment, payload, current_user(), reason=request.form.get("reason"))
        except ValueError as e:
            s.rollback()
            errors = [str(e)]
    if errors:
        for msg in errors:
            flash(msg, "danger")
        return redirect(url_for("equipment.equipment_edit_get", equipment_id=equipment_id))
    s.commit()
    flash("Equipment updated.", "success")
    return _to_detail(equipment_id)


@bp.post("/equipment/<int:equipment_id>/assign")
@require_permission("equipment.edit")
def equipment_assign(equipment_id: int):
    s = db_session()
    equipment = _equipment_or_404(s, equipment_id)
    try:
        user_id = parse_int(request.form.get("user_id") or None)
        assignee = s.get(User, user_id) if user_id else None
        if user_id and assignee is None:
            raise ValueError("User not found.")
        assign_equipment(s, equipment, assignee, current_user())
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
    else:
        s.commit()
        flash("Assignment updated.", "success")
    return _to_detail(equipment_id)


@bp.post("/equipment/<int:equipment_id>/status")
@require_permission("equipment.edit")
def equipment_status(equipment_id: int):
    s = db_session()
    equipment = _equipment_or_404(s, equipment_id)
    new_status = (request.form.get("status") or "").strip()
    try:
        change_status(s, equipment, new_status, current_user(), notes=request.form.get("notes"))
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
    else:
        s.commit()
        flash(f"Status changed to {new_status}.", "success")
    return _to_detail(equipment_id)
