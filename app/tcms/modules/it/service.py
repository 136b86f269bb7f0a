from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.tcms.audit import record_event
from app.tcms.constants import ROLES
from app.tcms.utils import clean_str

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tcms.models import User
    from app.tcms.modules.it.models import WifiNetwork


def validate_network_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("name") or "").strip():
        errors.append("Network name is required.")
    if not (payload.get("password") or "").strip():
        errors.append("Password is required.")
    bad = [r for r in payload.get("assigned_roles") or [] if r not in ROLES]
    if bad:
        errors.append(f"Invalid role(s): {', '.join(bad)}")
    return errors


def _apply(network: "WifiNetwork", payload: dict) -> None:
    network.name = payload["name"].strip()
    network.password = payload["password"].strip()
    network.description = clean_str(payload.get("description"))
    network.assigned_roles = sorted(set(payload.get("assigned_roles") or []))
    network.updated_at = datetime.utcnow()


def create_network(s: "Session", payload: dict, user: "User") -> "WifiNetwork":
    from app.tcms.modules.it.models import WifiNetwork

    network = WifiNetwork(is_active=True, created_by_user_id=user.id, created_at=datetime.utcnow())
    _apply(network, payload)
    s.add(network)
    s.flush()
    # never put the password in the audit log
    record_event(
        s,
        actor=user,
        action="wifi.create",
        entity_type="WifiNetwork",
        entity_id=str(network.id),
        metadata={"name": network.name, "assigned_roles": network.assigned_roles},
    )
    s.flush()
    return network


def update_network(s: "Session", network: "WifiNetwork", payload: dict, user: "User") -> "WifiNetwork":
    password_changed = payload["password"].strip() != network.password
    _apply(network, payload)
    record_event(
        s,
        actor=user,
        action="wifi.edit",
        entity_type="WifiNetwork",
        entity_id=str(network.id),
        metadata={"assigned_roles": network.assigned_roles, "password_changed": password_changed},
    )
    s.flush()
    return network


def set_network_active(s: "Session", network: "WifiNetwork", active: bool, user: "User") -> None:
    network.is_active = active
    network.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="wifi.activate" if active else "wifi.deactivate",
        entity_type="WifiNetwork",
        entity_id=str(network.id),
    )
    s.flush()


def networks_for_user(s: "Session", user: "User | None") -> list["WifiNetwork"]:
    """Active networks assigned to at least one of the user's roles."""
    from app.tcms.modules.it.models import WifiNetwork

    if user is None:
        return []
    role_keys = user.role_keys
    rows = s.query(WifiNetwork).filter(WifiNetwork.is_active.is_(True)).order_by(WifiNetwork.name.asc()).all()
    return [n for n in rows if set(n.assigned_roles or []) & role_keys]
