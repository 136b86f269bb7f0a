from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.tcms.constants import ROLE_LABELS, ROLES
from app.tcms.db import db_session
from app.tcms.modules.notices.models import NOTICE_TYPES, Notice
from app.tcms.modules.notices.service import (
    create_notice,
    delete_notice,
    set_notice_active,
    update_notice,
    validate_notice_payload,
    visible_notices,
)
from app.tcms.pagination import page_size, page_url_builder, paginate, parse_page_arg, search_filter
from app.tcms.rbac import require_permission, user_has_permission
from app.tcms.utils import current_user, form_bool

bp = Blueprint("notices", __name__)


def _payload() -> dict:
    return {
        "title": request.form.get("title"),
        "content": request.form.get("content"),
        "notice_type": request.form.get("notice_type"),
        "target_roles": request.form.getlist("target_roles"),
        "is_holiday": form_bool("is_holiday"),
        "holiday_date": request.form.get("holiday_date"),
    }


def _form(notice: Notice | None):
    return render_template(
        "admin/notices/form.html",
        notice=notice,
        notice_types=NOTICE_TYPES,
        roles=ROLES,
        role_labels=ROLE_LABELS,
    )


@bp.get("/notices")
@require_permission("notices.view")
def notices_list():
    s = db_session()
    u = current_user()
    search = (request.args.get("q") or "").strip()
    type_filter = (request.args.get("type") or "").strip()

    if user_has_permission(u, "notices.edit"):
        rows = s.query(Notice).order_by(Notice.created_at.desc()).all()
    else:
        rows = visible_notices(s, u)
    if type_filter:
        rows = [n for n in rows if n.notice_type == type_filter]
    rows = search_filter(rows, search, "title", "content")
    page = paginate(rows, parse_page_arg(), page_size())
    return render_template(
        "admin/notices/list.html",
        page=page,
        search=search,
        type_filter=type_filter,
        notice_types=NOTICE_TYPES,
        role_labels=ROLE_LABELS,
        build_url=page_url_builder("notices.notices_list"),
    )


@bp.get("/notices/new")
@require_permission("notices.edit")
def notice_new_get():
    return _form(None)


@bp.post("/notices/new")
@require_permission("notices.edit")
def notice_new_post():
    s = db_session()
    payload = _payload()
    errors = validate_notice_payload(payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("notices.notice_new_get"))
    notice = create_notice(s, payload, current_user())
    s.commit()
    flash(f"Notice '{notice.title}' published.", "success")
    return redirect(url_for("notices.notices_list"))


@bp.get("/notices/<int:notice_id>/edit")
@require_permission("notices.edit")
def notice_edit_get(notice_id: int):
    s = db_session()
    notice = s.get(Notice, notice_id)
    if not notice:
        abort(404)
    return _form(notice)


@bp.post("/notices/<int:notice_id>/edit")
@require_permission("notices.edit")
def notice_edit_post(notice_id: int):
    s = db_session()
    notice = s.get(Notice, notice_id)
    if not notice:
        abort(404)
    payload = _payload()
    errors = validate_notice_payload(payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("notices.notice_edit_get", notice_id=notice_id))
    update_notice(s, notice, payload, current_user())
    s.commit()
    flash("Notice updated.", "success")
    return redirect(url_for("notices.notices_list"))


@bp.post("/notices/<int:notice_id>/toggle")
@require_permission("notices.edit")
def notice_toggle(notice_id: int):
    s = db_session()
    notice = s.get(Notice, notice_id)
    if not notice:
        abort(404)
    set_notice_active(s, notice, not notice.is_active, current_user())
    s.commit()
    flash(f"Notice {'activated' if notice.is_active else 'deactivated'}.", "success")
    return redirect(url_for("notices.notices_list"))


@bp.post("/notices/<int:notice_id>/delete")
@require_permission("notices.edit")
def notice_delete(notice_id: int):
    s = db_session()
    notice = s.get(Notice, notice_id)
    if not notice:
        abort(404)
    delete_notice(s, notice, current_user())
    s.commit()
    flash("Notice deleted.", "success")
    return redirect(url_for("notices.notices_list"))
