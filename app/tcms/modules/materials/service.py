"""
Materials inventory and stock movements.

Stock is only ever changed through a MaterialTransaction so the ledger and
current_quantity stay in step; no movement may drive stock below zero.
"""
from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from app.tcms.audit import record_event
from app.tcms.modules.equipment.service import generate_code
from app.tcms.modules.materials.models import MATERIAL_TYPES, TRANSACTION_TYPES
from app.tcms.utils import clean_str, parse_date, parse_decimal, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tcms.models import User
    from app.tcms.modules.materials.models import MaterialItem, MaterialTransaction


def validate_item_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("name") or "").strip():
        errors.append("Item name is required.")
    if payload.get("type") not in MATERIAL_TYPES:
        errors.append(f"Type must be one of: {', '.join(MATERIAL_TYPES)}")
    for field, label in (("current_quantity", "Quantity"), ("minimum_quantity", "Minimum quantity")):
        try:
            value = parse_int(payload.get(field))
        except ValueError:
            errors.append(f"{label} must be a whole number.")
            continue
        if value is not None and value < 0:
            errors.append(f"{label} cannot be negative.")
    try:
        cost = parse_decimal(payload.get("unit_cost"))
    except ValueError:
        errors.append("Unit cost must be a number.")
    else:
        if cost is not None and cost < 0:
            errors.append("Unit cost cannot be negative.")
    return errors


def create_item(s: "Session", payload: dict, user: "User | None") -> "MaterialItem":
    from app.tcms.modules.materials.models import MaterialItem

    code = (payload.get("code") or "").strip() or generate_code("ITM")
    if s.query(MaterialItem.id).filter(MaterialItem.code == code).first():
        raise ValueError(f"Item code {code} already exists.")

    now = datetime.utcnow()
    item = MaterialItem(
        code=code,
        name=payload["name"].strip(),
        type=payload["type"],
        category=clean_str(payload.get("category")),
        unit=clean_str(payload.get("unit")) or "pcs",
        current_quantity=parse_int(payload.get("current_quantity")) or 0,
        minimum_quantity=parse_int(payload.get("minimum_quantity")) or 0,
        unit_cost=parse_decimal(payload.get("unit_cost")) or Decimal("0"),
        supplier=clean_str(payload.get("supplier")),
        location=clean_str(payload.get("location")),
        barcode=clean_str(payload.get("barcode")),
        description=clean_str(payload.get("description")),
        is_active=True,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id if user else None,
    )
    s.add(item)
    s.flush()

    record_event(
        s,
        actor=user,
        action="material.create",
        entity_type="MaterialItem",
        entity_id=str(item.id),
        metadata={"code": item.code, "name": item.name, "current_quantity": item.current_quantity},
    )
    s.flush()
    return item


def update_item(s: "Session", item: "MaterialItem", payload: dict, user: "User", reason: str | None = None) -> "MaterialItem":
    """Quantity is not editable here; use a stock adjustment."""
    changes = {}

    def _set(attr: str, val):
        if val != getattr(item, attr):
            changes[attr] = {"old": getattr(item, attr), "new": val}
            setattr(item, attr, val)

    _set("name", payload["name"].strip())
    _set("type", payload["type"])
    _set("category", clean_str(payload.get("category")))
    _set("unit", clean_str(payload.get("unit")) or "pcs")
    _set("minimum_quantity", parse_int(payload.get("minimum_quantity")) or 0)
    _set("unit_cost", parse_decimal(payload.get("unit_cost")) or Decimal("0"))
    _set("supplier", clean_str(payload.get("supplier")))
    _set("location", clean_str(payload.get("location")))
    _set("barcode", clean_str(payload.get("barcode")))
    _set("description", clean_str(payload.get("description")))
    item.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="material.edit",
        entity_type="MaterialItem",
        entity_id=str(item.id),
        reason=reason,
        metadata={"changes": changes},
    )
    s.flush()
    return item


def set_item_active(s: "Session", item: "MaterialItem", active: bool, user: "User") -> None:
    item.is_active = active
    item.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="material.activate" if active else "material.deactivate",
        entity_type="MaterialItem",
        entity_id=str(item.id),
    )
    s.flush()


# ---------- Transactions ----------


def apply_movement(current: int, transaction_type: str, quantity: int) -> int:
    """New stock level for a movement; raises ValueError when the rule is broken."""
    if transaction_type not in TRANSACTION_TYPES:
        raise ValueError(f"Transaction type must be one of: {', '.join(TRANSACTION_TYPES)}")
    if transaction_type == "in":
        if quantity <= 0:
            raise ValueError("Quantity must be greater than zero.")
        return current + quantity
    if transaction_type == "out":
        if quantity <= 0:
            raise ValueError("Quantity must be greater than zero.")
        if quantity > current:
            raise ValueError(f"Only {current} in stock.")
        return current - quantity
    # adjustment: signed delta
    if quantity == 0:
        raise ValueError("Adjustment cannot be zero.")
    if current + quantity < 0:
        raise ValueError(f"Adjustment would leave negative stock ({current + quantity}).")
    return current + quantity


def record_transaction(s: "Session", item: "MaterialItem", payload: dict, user: "User") -> "MaterialTransaction":
    from app.tcms.models import User
    from app.tcms.modules.materials.models import MaterialTransaction

    if not item.is_active:
        raise ValueError(f"Item {item.code} is inactive.")
    ttype = (payload.get("transaction_type") or "").strip()
    quantity = parse_int(payload.get("quantity"))
    if quantity is None:
        raise ValueError("Quantity is required.")

    recipient_id = parse_int(payload.get("recipient_user_id") or None)
    recipient_name = clean_str(payload.get("recipient_name"))
    if ttype == "out":
        if not recipient_id and not recipient_name:
            raise ValueError("A recipient is required when issuing items.")
        if recipient_id and not s.get(User, recipient_id):
            raise ValueError("Recipient not found.")

    new_qty = apply_movement(item.current_quantity, ttype, quantity)

    unit_cost = parse_decimal(payload.get("unit_cost"))
    if unit_cost is None:
        unit_cost = Decimal(item.unit_cost or 0)
    if unit_cost < 0:
        raise ValueError("Unit cost cannot be negative.")

    tx = MaterialTransaction(
        material_id=item.id,
        transaction_type=ttype,
        quantity=quantity,
        unit_cost=unit_cost,
        total_cost=Decimal(abs(quantity)) * unit_cost,
        recipient_user_id=recipient_id if ttype == "out" else None,
        recipient_name=recipient_name if ttype == "out" else None,
        purpose=clean_str(payload.get("purpose")),
        transaction_date=parse_date(payload.get("transaction_date")) or date.today(),
        notes=clean_str(payload.get("notes")),
        recorded_by_user_id=user.id,
        created_at=datetime.utcnow(),
    )
    s.add(tx)
    old_qty = item.current_quantity
    item.current_quantity = new_qty
    item.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action=f"material.stock_{ttype}",
        entity_type="MaterialTransaction",
        entity_id=str(tx.id),
        metadata={"material_id": item.id, "quantity": quantity, "before": old_qty, "after": new_qty},
    )
    s.flush()
    return tx


def return_transaction(s: "Session", tx: "MaterialTransaction", user: "User") -> "MaterialTransaction":
    if tx.transaction_type != "out":
        raise ValueError("Only issued (out) items can be returned.")
    if tx.is_returned:
        raise ValueError("Items were already returned.")
    item = tx.material
    item.current_quantity += tx.quantity
    item.updated_at = datetime.utcnow()
    tx.is_returned = True
    tx.returned_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="material.return",
        entity_type="MaterialTransaction",
        entity_id=str(tx.id),
        metadata={"material_id": item.id, "quantity": tx.quantity, "after": item.current_quantity},
    )
    s.flush()
    return tx


def inventory_stats(items: Iterable["MaterialItem"], outstanding_issues: int) -> dict:
    items = [i for i in items if i.is_active]
    return {
        "item_count": len(items),
        "low_stock": sum(1 for i in items if i.is_low_stock),
        "outstanding_issues": outstanding_issues,
        "total_value": sum((i.stock_value for i in items), Decimal("0")),
    }


def outstanding_issue_count(s: "Session") -> int:
    from app.tcms.modules.materials.models import MaterialTransaction

    return (
        s.query(MaterialTransaction)
        .filter(MaterialTransaction.transaction_type == "out", MaterialTransaction.is_returned.is_(False))
        .count()
    )
