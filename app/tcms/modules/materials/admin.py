from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.tcms.accounts import staff_users
from app.tcms.db import db_session
from app.tcms.modules.materials.models import MATERIAL_TYPES, TRANSACTION_TYPES, MaterialItem, MaterialTransaction
from app.tcms.modules.materials.service import (
    create_item,
    inventory_stats,
    outstanding_issue_count,
    record_transaction,
    return_transaction,
    set_item_active,
    update_item,
    validate_item_payload,
)
from app.tcms.pagination import page_size, page_url_builder, paginate, parse_page_arg, search_filter
from app.tcms.rbac import require_permission
from app.tcms.utils import current_user

bp = Blueprint("materials", __name__)


def _item_payload() -> dict:
    return {
        "code": request.form.get("code"),
        "name": request.form.get("name"),
        "type": request.form.get("type"),
        "category": request.form.get("category"),
        "unit": request.form.get("unit"),
        "current_quantity": request.form.get("current_quantity"),
        "minimum_quantity": request.form.get("minimum_quantity"),
        "unit_cost": request.form.get("unit_cost"),
        "supplier": request.form.get("supplier"),
        "location": request.form.get("location"),
        "barcode": request.form.get("barcode"),
        "description": request.form.get("description"),
    }


# ---------- Inventory ----------
@bp.get("/materials")
@require_permission("materials.view")
def materials_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    type_filter = (request.args.get("type") or "").strip()
    category_filter = (request.args.get("category") or "").strip()
    low_stock = request.args.get("low_stock") == "1"

    all_items = s.query(MaterialItem).order_by(MaterialItem.name.asc()).all()
    rows = [i for i in all_items if i.is_active]
    if type_filter:
        rows = [i for i in rows if i.type == type_filter]
    if category_filter:
        rows = [i for i in rows if i.category == category_filter]
    if low_stock:
        rows = [i for i in rows if i.is_low_stock]
    rows = search_filter(rows, search, "name", "code", "barcode", "supplier")
    page = paginate(rows, parse_page_arg(), page_size())

    return render_template(
        "admin/materials/list.html",
        page=page,
        search=search,
        type_filter=type_filter,
        category_filter=category_filter,
        low_stock=low_stock,
        types=MATERIAL_TYPES,
        categories=sorted({i.category for i in all_items if i.category}),
        stats=inventory_stats(all_items, outstanding_issue_count(s)),
        build_url=page_url_builder("materials.materials_list"),
    )


@bp.get("/materials/new")
@require_permission("materials.edit")
def material_new_get():
    return render_template("admin/materials/form.html", item=None, types=MATERIAL_TYPES)


@bp.post("/materials/new")
@require_permission("materials.edit")
def material_new_post():
    s = db_session()
    payload = _item_payload()
    errors = validate_item_payload(payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("materials.material_new_get"))
    try:
        item = create_item(s, payload, current_user())
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("materials.material_new_get"))
    s.commit()
    flash(f"Item {item.code} created.", "success")
    return redirect(url_for("materials.material_detail", item_id=item.id))


@bp.get("/materials/<int:item_id>")
@require_permission("materials.view")
def material_detail(item_id: int):
    s = db_session()
    item = s.get(MaterialItem, item_id)
    if not item:
        abort(404)
    return render_template(
        "admin/materials/detail.html",
        item=item,
        transactions=item.transactions,
        transaction_types=TRANSACTION_TYPES,
        users=staff_users(s),
    )


@bp.get("/materials/<int:item_id>/edit")
@require_permission("materials.edit")
def material_edit_get(item_id: int):
    s = db_session()
    item = s.get(MaterialItem, item_id)
    if not item:
        abort(404)
    return render_template("admin/materials/form.html", item=item, types=MATERIAL_TYPES)


@bp.post("/materials/<int:item_id>/edit")
@require_permission("materials.edit")
def material_edit_post(item_id: int):
    s = db_session()
    item = s.get(MaterialItem, item_id)
    if not item:
        abort(404)
    payload = _item_payload()
    errors = validate_item_payload(payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("materials.material_edit_get", item_id=item_id))
    update_item(s, item, payload, current_user(), reason=(request.form.get("reason") or "").strip() or None)
    s.commit()
    flash("Item updated.", "success")
    return redirect(url_for("materials.material_detail", item_id=item_id))


@bp.post("/materials/<int:item_id>/toggle")
@require_permission("materials.edit")
def material_toggle(item_id: int):
    s = db_session()
    item = s.get(MaterialItem, item_id)
    if not item:
        abort(404)
    set_item_active(s, item, not item.is_active, current_user())
    s.commit()
    flash(f"Item {'activated' if item.is_active else 'deactivated'}.", "success")
    return redirect(url_for("materials.materials_list"))


# ---------- Transactions ----------
@bp.post("/materials/<int:item_id>/transactions")
@require_permission("materials.edit")
def material_transaction_post(item_id: int):
    s = db_session()
    item = s.get(MaterialItem, item_id)
    if not item:
        abort(404)
    payload = {
        "transaction_type": request.form.get("transaction_type"),
        "quantity": request.form.get("quantity"),
        "unit_cost": request.form.get("unit_cost"),
        "recipient_user_id": request.form.get("recipient_user_id"),
        "recipient_name": request.form.get("recipient_name"),
        "purpose": request.form.get("purpose"),
        "transaction_date": request.form.get("transaction_date"),
        "notes": request.form.get("notes"),
    }
    try:
        tx = record_transaction(s, item, payload, current_user())
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("materials.material_detail", item_id=item_id))
    s.commit()
    flash(f"Recorded {tx.transaction_type} of {tx.quantity} {item.unit}.", "success")
    return redirect(url_for("materials.material_detail", item_id=item_id))


@bp.post("/materials/transactions/<int:tx_id>/return")
@require_permission("materials.edit")
def material_transaction_return(tx_id: int):
    s = db_session()
    tx = s.get(MaterialTransaction, tx_id)
    if not tx:
        abort(404)
    try:
        return_transaction(s, tx, current_user())
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("materials.material_detail", item_id=tx.material_id))
    s.commit()
    flash("Items returned to stock.", "success")
    return redirect(url_for("materials.material_detail", item_id=tx.material_id))


@bp.get("/materials/issued")
@require_permission("materials.view")
def materials_issued():
    s = db_session()
    rows = (
        s.query(MaterialTransaction)
        .filter(MaterialTransaction.transaction_type == "out", MaterialTransaction.is_returned.is_(False))
        .order_by(MaterialTransaction.transaction_date.desc())
        .all()
    )
    page = paginate(rows, parse_page_arg(), page_size())
    return render_template(
        "admin/materials/issued.html", page=page, build_url=page_url_builder("materials.materials_issued")
    )
