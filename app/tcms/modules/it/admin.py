from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.tcms.constants import ROLE_LABELS, ROLES
from app.tcms.db import db_session
from app.tcms.modules.it.models import WifiNetwork
from app.tcms.modules.it.service import (
    create_network,
    networks_for_user,
    set_network_active,
    update_network,
    validate_network_payload,
)
from app.tcms.rbac import require_permission, user_has_permission
from app.tcms.utils import current_user

bp = Blueprint("it", __name__)


def _payload() -> dict:
    return {
        "name": request.form.get("name"),
        "password": request.form.get("password"),
        "description": request.form.get("description"),
        "assigned_roles": request.form.getlist("assigned_roles"),
    }


def _form(network: WifiNetwork | None):
    return render_template("admin/it/wifi_form.html", network=network, roles=ROLES, role_labels=ROLE_LABELS)


@bp.get("/wifi")
@require_permission("wifi.view")
def wifi_list():
    s = db_session()
    u = current_user()
    manage = user_has_permission(u, "wifi.edit")
    if manage:
        networks = s.query(WifiNetwork).order_by(WifiNetwork.name.asc()).all()
    else:
        networks = networks_for_user(s, u)
    return render_template("admin/it/wifi_list.html", networks=networks, manage=manage, role_labels=ROLE_LABELS)


@bp.get("/wifi/new")
@require_permission("wifi.edit")
def wifi_new_get():
    return _form(None)


@bp.post("/wifi/new")
@require_permission("wifi.edit")
def wifi_new_post():
    s = db_session()
    payload = _payload()
    errors = validate_network_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("it.wifi_new_get"))
    network = create_network(s, payload, current_user())
    s.commit()
    flash(f"Network {network.name} added.", "success")
    return redirect(url_for("it.wifi_list"))


@bp.get("/wifi/<int:network_id>/edit")
@require_permission("wifi.edit")
def wifi_edit_get(network_id: int):
    s = db_session()
    network = s.get(WifiNetwork, network_id)
    if not network:
        abort(404)
    return _form(network)


@bp.post("/wifi/<int:network_id>/edit")
@require_permission("wifi.edit")
def wifi_edit_post(network_id: int):
    s = db_session()
    network = s.get(WifiNetwork, network_id)
    if not network:
        abort(404)
    payload = _payload()
    errors = validate_network_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("it.wifi_edit_get", network_id=network_id))
    update_network(s, network, payload, current_user())
    s.commit()
    flash("Network updated.", "success")
    return redirect(url_for("it.wifi_list"))


@bp.post("/wifi/<int:network_id>/toggle")
@require_permission("wifi.edit")
def wifi_toggle(network_id: int):
    s = db_session()
    network = s.get(WifiNetwork, network_id)
    if not network:
        abort(404)
    set_network_active(s, network, not network.is_active, current_user())
    s.commit()
    flash(f"Network {'activated' if network.is_active else 'deactivated'}.", "success")
    return redirect(url_for("it.wifi_list"))
