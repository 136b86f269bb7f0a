from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.tcms.modules.materials.models import MaterialItem, MaterialTransaction
from app.tcms.modules.materials.service import (
    apply_movement,
    create_item,
    inventory_stats,
    outstanding_issue_count,
    record_transaction,
    return_transaction,
    set_item_active,
    validate_item_payload,
)


def _item(db, staff, name="Printer paper", **overrides):
    payload = {
        "name": name,
        "type": "consumable",
        "unit": "ream",
        "current_quantity": "10",
        "minimum_quantity": "3",
        "unit_cost": "4500",
    }
    payload.update(overrides)
    return create_item(db, payload, staff("it"))


def test_apply_movement_rules():
    assert apply_movement(5, "in", 3) == 8
    assert apply_movement(5, "out", 5) == 0
    assert apply_movement(5, "adjustment", -2) == 3

    with pytest.raises(ValueError, match="Quantity must be greater than zero."):
        apply_movement(5, "in", 0)
    with pytest.raises(ValueError, match="Only 5 in stock."):
        apply_movement(5, "out", 6)
    with pytest.raises(ValueError, match="Adjustment cannot be zero."):
        apply_movement(5, "adjustment", 0)
    with pytest.raises(ValueError, match=r"negative stock \(-1\)"):
        apply_movement(5, "adjustment", -6)
    with pytest.raises(ValueError, match="Transaction type must be one of"):
        apply_movement(5, "teleport", 1)


def test_validate_item_payload():
    assert validate_item_payload({"name": "Markers", "type": "consumable"}) == []
    errors = validate_item_payload(
        {"name": "", "type": "food", "current_quantity": "-1", "minimum_quantity": "lots", "unit_cost": "-3"}
    )
    assert errors == [
        "Item name is required.",
        "Type must be one of: consumable, non_consumable, equipment",
        "Quantity cannot be negative.",
        "Minimum quantity must be a whole number.",
        "Unit cost cannot be negative.",
    ]


def test_create_item_generates_code(db, staff):
    item = _item(db, staff)
    assert item.code.startswith("ITM-")
    assert item.current_quantity == 10
    assert item.stock_value == Decimal("45000")

    _item(db, staff, name="Toner", code="TON-1")
    with pytest.raises(ValueError, match="TON-1 already exists"):
        _item(db, staff, name="Toner again", code="TON-1")


def test_issue_and_return(db, staff):
    item = _item(db, staff)
    with pytest.raises(ValueError, match="A recipient is required"):
        record_transaction(db, item, {"transaction_type": "out", "quantity": "2"}, staff("it"))
    with pytest.raises(ValueError, match="Recipient not found."):
        record_transaction(db, item, {"transaction_type": "out", "quantity": "2", "recipient_user_id": "999"}, staff("it"))

    tx = record_transaction(
        db,
        item,
        {"transaction_type": "out", "quantity": "4", "recipient_user_id": str(staff("trainer").id), "purpose": "Exams"},
        staff("it"),
    )
    assert item.current_quantity == 6
    assert tx.total_cost == Decimal("18000")
    assert tx.recipient_label == "Tom Trainer"
    assert outstanding_issue_count(db) == 1

    return_transaction(db, tx, staff("it"))
    assert item.current_quantity == 10
    assert tx.is_returned is True
    assert outstanding_issue_count(db) == 0
    with pytest.raises(ValueError, match="already returned"):
        return_transaction(db, tx, staff("it"))

    restock = record_transaction(db, item, {"transaction_type": "in", "quantity": "5", "unit_cost": "5000"}, staff("it"))
    assert item.current_quantity == 15
    assert restock.recipient_user_id is None
    assert restock.total_cost == Decimal("25000")
    with pytest.raises(ValueError, match="Only issued"):
        return_transaction(db, restock, staff("it"))


def test_failed_movement_leaves_stock_untouched(db, staff):
    item = _item(db, staff, current_quantity="2")
    with pytest.raises(ValueError, match="Only 2 in stock."):
        record_transaction(db, item, {"transaction_type": "out", "quantity": "3", "recipient_name": "Lab"}, staff("it"))
    assert item.current_quantity == 2
    assert db.query(MaterialTransaction).count() == 0


def test_inactive_item_rejects_movements(db, staff):
    item = _item(db, staff, code="OLD-1")
    set_item_active(db, item, False, staff("it"))
    with pytest.raises(ValueError, match="Item OLD-1 is inactive."):
        record_transaction(db, item, {"transaction_type": "in", "quantity": "1"}, staff("it"))


def test_inventory_stats():
    def row(qty, minimum, cost, active=True):
        return SimpleNamespace(
            is_active=active,
            is_low_stock=qty <= minimum,
            stock_value=Decimal(qty) * Decimal(cost),
        )

    stats = inventory_stats([row(10, 3, "100"), row(2, 5, "50"), row(100, 0, "1", active=False)], outstanding_issues=4)
    assert stats == {"item_count": 2, "low_stock": 1, "outstanding_issues": 4, "total_value": Decimal("1100")}


def test_material_routes(client, login, db, staff):
    login("it@example.com")
    r = client.post(
        "/admin/materials/new",
        data={"name": "Whiteboard markers", "type": "consumable", "code": "MRK-1", "current_quantity": "20", "unit": "box"},
        follow_redirects=True,
    )
    assert b"Item MRK-1 created." in r.data
    item = db.query(MaterialItem).filter(MaterialItem.code == "MRK-1").one()

    r = client.post(
        f"/admin/materials/{item.id}/transactions",
        data={"transaction_type": "out", "quantity": "5", "recipient_name": "Room 4"},
        follow_redirects=True,
    )
    assert b"Recorded out of 5 box." in r.data

    r = client.post(
        f"/admin/materials/{item.id}/transactions",
        data={"transaction_type": "out", "quantity": "50", "recipient_name": "Room 4"},
        follow_redirects=True,
    )
    assert b"Only 15 in stock." in r.data

    tx = db.query(MaterialTransaction).one()
    r = client.post(f"/admin/materials/transactions/{tx.id}/return", follow_redirects=True)
    assert b"Items returned to stock." in r.data

    db.expire_all()
    assert db.get(MaterialItem, item.id).current_quantity == 20

    assert client.get("/admin/materials/issued").status_code == 200
    r = client.get("/admin/materials?q=marker")
    assert b"MRK-1" in r.data


def test_trainer_views_but_cannot_edit_materials(client, login):
    login("trainer@example.com")
    assert client.get("/admin/materials").status_code == 200
    assert client.get("/admin/materials/new").status_code == 403
