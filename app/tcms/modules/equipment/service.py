from __future__ import annotations

import secrets
import string
import time
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from app.tcms.audit import record_event
from app.tcms.modules.equipment.models import EQUIPMENT_STATUSES
from app.tcms.utils import clean_str, parse_date, parse_decimal

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.tcms.models import User
    from app.tcms.modules.equipment.models import Equipment


WARRANTY_WARNING_DAYS = 30
_BASE36 = string.digits + string.ascii_uppercase


def to_base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def generate_code(prefix: str, now_ms: int | None = None) -> str:
    """<PREFIX>-<base36 ms timestamp>-<6 random base36 chars>"""
    ts = now_ms if now_ms is not None else int(time.time() * 1000)
    rand = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{prefix}-{to_base36(ts)}-{rand}"


def validate_equipment_payload(payload: dict) -> list[str]:
    """Validate equipment creation/update payload. Returns list of errors."""
    errors = []
    if not (payload.get("name") or "").strip():
        errors.append("Equipment name is required.")
    status = (payload.get("status") or "active").strip()
    if status not in EQUIPMENT_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(EQUIPMENT_STATUSES)}")
    try:
        cost = parse_decimal(payload.get("purchase_cost"))
    except ValueError:
        errors.append("Purchase cost must be a number.")
    else:
        if cost is not None and cost < 0:
            errors.append("Purchase cost cannot be negative.")
    for field in ("purchase_date", "warranty_expiry"):
        try:
            parse_date(payload.get(field))
        except ValueError:
            errors.append(f"{field.replace('_', ' ').capitalize()} must be YYYY-MM-DD.")
    return errors


def create_equipment(s: "Session", payload: dict, user: "User") -> "Equipment":
    from app.tcms.modules.equipment.models import Equipment

    code = (payload.get("code") or "").strip() or generate_code("EQP")
    if s.query(Equipment.id).filter(Equipment.code == code).first():
        raise ValueError(f"Equipment code {code} already exists.")

    now = datetime.utcnow()
    equipment = Equipment(
        code=code,
        name=payload["name"].strip(),
        status=(payload.get("status") or "active").strip(),
        category=clean_str(payload.get("category")),
        model=clean_str(payload.get("model")),
        serial_number=clean_str(payload.get("serial_number")),
        location=clean_str(payload.get("location")),
        purchase_date=parse_date(payload.get("purchase_date")),
        purchase_cost=parse_decimal(payload.get("purchase_cost")),
        warranty_expiry=parse_date(payload.get("warranty_expiry")),
        description=clean_str(payload.get("description")),
        notes=clean_str(payload.get("notes")),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
        updated_by_user_id=user.id,
    )
    s.add(equipment)
    s.flush()

    record_event(
        s,
        actor=user,
        action="equipment.create",
        entity_type="Equipment",
        entity_id=str(equipment.id),
        metadata={"code": equipment.code, "name": equipment.name, "status": equipment.status},
    )
    s.flush()
    return equipment


def update_equipment(s: "Session", equipment: "Equipment", payload: dict, user: "User", reason: str | None = None) -> "Equipment":
    """Code is read-only after creation. Reason for change is required."""
    if not (reason or "").strip():
        raise ValueError("Reason for change is required.")

    changes = {}

    def _set(attr: str, val):
        if val != getattr(equipment, attr):
            changes[attr] = {"old": getattr(equipment, attr), "new": val}
            setattr(equipment, attr, val)

    _set("name", payload["name"].strip())
    _set("status", (payload.get("status") or equipment.status).strip())
    _set("category", clean_str(payload.get("category")))
    _set("model", clean_str(payload.get("model")))
    _set("serial_number", clean_str(payload.get("serial_number")))
    _set("location", clean_str(payload.get("location")))
    _set("purchase_date", parse_date(payload.get("purchase_date")))
    _set("purchase_cost", parse_decimal(payload.get("purchase_cost")))
    _set("warranty_expiry", parse_date(payload.get("warranty_expiry")))
    _set("description", clean_str(payload.get("description")))
    _set("notes", clean_str(payload.get("notes")))

    equipment.updated_at = datetime.utcnow()
    equipment.updated_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="equipment.update",
        entity_type="Equipment",
        entity_id=str(equipment.id),
        reason=reason.strip(),
        metadata={"changes": changes},
    )
    s.flush()
    return equipment


def assign_equipment(s: "Session", equipment: "Equipment", assignee: "User | None", user: "User") -> "Equipment":
    """Assign to a user, or unassign with assignee=None."""
    if assignee is not None and not assignee.is_active:
        raise ValueError("Cannot assign equipment to an inactive user.")
    if assignee is not None and equipment.status in ("retired", "lost"):
        raise ValueError(f"Cannot assign {equipment.status} equipment.")
    old = equipment.assigned_to_user_id
    equipment.assigned_to = assignee
    equipment.assigned_to_user_id = assignee.id if assignee else None
    equipment.updated_at = datetime.utcnow()
    equipment.updated_by_user_id = user.id
    record_event(
        s,
        actor=user,
        action="equipment.assign" if assignee else "equipment.unassign",
        entity_type="Equipment",
        entity_id=str(equipment.id),
        metadata={"from_user_id": old, "to_user_id": equipment.assigned_to_user_id},
    )
    s.flush()
    return equipment


def change_status(s: "Session", equipment: "Equipment", status: str, user: "User", notes: str | None = None) -> "Equipment":
    if status not in EQUIPMENT_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(EQUIPMENT_STATUSES)}")
    old = equipment.status
    equipment.status = status
    if notes and notes.strip():
        stamp = date.today().isoformat()
        entry = f"[{stamp}] {old} -> {status}: {notes.strip()}"
        equipment.notes = f"{equipment.notes}\n{entry}" if equipment.notes else entry
    equipment.updated_at = datetime.utcnow()
    equipment.updated_by_user_id = user.id
    record_event(
        s,
        actor=user,
        action="equipment.status",
        entity_type="Equipment",
        entity_id=str(equipment.id),
        reason=clean_str(notes),
        metadata={"from": old, "to": status},
    )
    s.flush()
    return equipment


def filter_equipment(q: "Query", filters: dict, today: date | None = None) -> "Query":
    from app.tcms.modules.equipment.models import Equipment

    search = filters.get("q")
    if search:
        like = f"%{search}%"
        q = q.filter(
            (Equipment.code.ilike(like))
            | (Equipment.name.ilike(like))
            | (Equipment.serial_number.ilike(like))
            | (Equipment.model.ilike(like))
        )
    if filters.get("status"):
        q = q.filter(Equipment.status == filters["status"])
    if filters.get("category"):
        q = q.filter(Equipment.category == filters["category"])
    if filters.get("location"):
        q = q.filter(Equipment.location == filters["location"])
    if filters.get("warranty_expiring"):
        today = today or date.today()
        q = q.filter(
            Equipment.warranty_expiry.isnot(None),
            Equipment.warranty_expiry >= today,
            Equipment.warranty_expiry <= today + timedelta(days=WARRANTY_WARNING_DAYS),
        )
    return q
