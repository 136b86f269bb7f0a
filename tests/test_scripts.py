from datetime import date, datetime

import pytest
from openpyxl import Workbook
from werkzeug.security import check_password_hash

from app.tcms.db import build_engine
from app.tcms.models import Base, User
from app.tcms.modules.equipment.models import Equipment
from app.tcms.modules.materials.models import MaterialItem
from scripts import init_db, release
from scripts.generate_payroll import month_bounds
from scripts.import_inventory import EQUIPMENT_HEADERS, MATERIAL_HEADERS, import_workbook, map_headers
from scripts.start import gunicorn_argv


def _workbook(path):
    wb = Workbook()
    ws = wb.active
    ws.title = "Materials"
    ws.append(["Code", "Name", "Type", "Qty", "Minimum", "Unit Cost"])
    ws.append(["PAP-1", "Printer paper", "Consumable", 10, 2, 4500])
    ws.append([None, "Projector lamp", "non-consumable", 1, 0, None])
    ws.append([None, "Cake", "food", 3, 0, None])
    ws.append([None, None, None, None, None, None])

    eq = wb.create_sheet("EQUIPMENT")
    eq.append(["Asset Code", "Equipment", "Status", "Purchase Date", "Warranty"])
    eq.append(["EQ-1", "Laptop", "Active", datetime(2025, 1, 10), date(2027, 1, 10)])
    eq.append(["EQ-2", "Camera", "broken", None, None])
    wb.save(path)
    return path


def test_map_headers_first_match_wins():
    cols = map_headers(["Item Code", None, "Qty", "Stock", "Vendor"], MATERIAL_HEADERS)
    assert cols == {"code": 0, "current_quantity": 2, "supplier": 4}
    assert map_headers(["Serial No", "Cost"], EQUIPMENT_HEADERS) == {"serial_number": 0, "purchase_cost": 1}


def test_import_workbook_is_idempotent(tmp_path, db, staff):
    path = _workbook(tmp_path / "inventory.xlsx")

    results = import_workbook(str(path), db, staff("admin"))
    assert results["materials"]["created"] == 2
    assert results["materials"]["errors"] == [
        "Materials row 4: Type must be one of: consumable, non_consumable, equipment"
    ]
    assert results["equipment"]["created"] == 1
    assert len(results["equipment"]["errors"]) == 1
    assert results["equipment"]["errors"][0].startswith("Equipment row 3: Invalid status.")

    paper = db.query(MaterialItem).filter(MaterialItem.code == "PAP-1").one()
    assert paper.current_quantity == 10
    assert paper.minimum_quantity == 2
    lamp = db.query(MaterialItem).filter(MaterialItem.name == "Projector lamp").one()
    assert lamp.type == "non_consumable"
    assert lamp.code.startswith("ITM-")

    laptop = db.query(Equipment).filter(Equipment.code == "EQ-1").one()
    assert laptop.purchase_date == date(2025, 1, 10)
    assert laptop.warranty_expiry == date(2027, 1, 10)

    again = import_workbook(str(path), db, staff("admin"))
    assert again["materials"]["created"] == 0
    assert again["materials"]["skipped"] == 2
    assert again["equipment"]["skipped"] == 1


def test_month_bounds():
    assert month_bounds(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_bounds(date(2026, 12, 31)) == (date(2026, 12, 1), date(2026, 12, 31))


def test_gunicorn_argv():
    argv = gunicorn_argv("9000", "3")
    assert argv[:6] == ["gunicorn", "app.wsgi:app", "--bind", "0.0.0.0:9000", "--workers", "3"]


def test_seed_only_is_idempotent(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path/'seed.db'}"
    engine = build_engine(db_url)
    Base.metadata.create_all(bind=engine)
    engine.dispose()

    monkeypatch.setenv("ADMIN_EMAIL", "Boss@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "first-password")
    init_db.seed_only(database_url=db_url)
    monkeypatch.setenv("ADMIN_PASSWORD", "second-password")
    init_db.seed_only(database_url=db_url)

    engine = build_engine(db_url)
    with engine.connect() as conn:
        rows = conn.execute(User.__table__.select()).all()
    engine.dispose()
    assert len(rows) == 1
    assert rows[0].email == "boss@example.com"
    assert check_password_hash(rows[0].password_hash, "first-password")


def test_release_guards(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        release.run_release()

    monkeypatch.setenv("DATABASE_URL", "sqlite:///prod.db")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError, match="Refusing to run release on sqlite"):
        release.run_release()
