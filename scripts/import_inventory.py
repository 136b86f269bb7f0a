#!/usr/bin/env python3
"""
Import materials and equipment from an Excel workbook.

Usage:
    python scripts/import_inventory.py inventory.xlsx

Sheets (matched by name, case-insensitive):
    - "Materials": name, type, category, unit, quantity, minimum, unit cost, supplier, location, barcode
    - "Equipment": code, name, status, category, model, serial, location, purchase date, purchase cost, warranty

Idempotent: rows whose code (or material name when no code) already exists are skipped.
"""
from __future__ import annotations

import os
import sys
from datetime import date, datetime
from pathlib import Path

# Ensure repo root is on sys.path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from openpyxl import load_workbook
from sqlalchemy.orm import Session

from app.tcms.models import User
from app.tcms.modules.equipment.models import Equipment
from app.tcms.modules.equipment.service import create_equipment, validate_equipment_payload
from app.tcms.modules.materials.models import MaterialItem
from app.tcms.modules.materials.service import create_item, validate_item_payload
from scripts._db_utils import script_session

MATERIAL_HEADERS = {
    "code": ["code", "item code"],
    "name": ["name", "item", "description"],
    "type": ["type"],
    "category": ["category"],
    "unit": ["unit", "uom"],
    "current_quantity": ["quantity", "qty", "current quantity", "stock"],
    "minimum_quantity": ["minimum", "min", "minimum quantity", "reorder level"],
    "unit_cost": ["unit cost", "cost", "price"],
    "supplier": ["supplier", "vendor"],
    "location": ["location"],
    "barcode": ["barcode"],
}

EQUIPMENT_HEADERS = {
    "code": ["code", "equipment code", "asset code"],
    "name": ["name", "equipment", "description"],
    "status": ["status"],
    "category": ["category"],
    "model": ["model"],
    "serial_number": ["serial", "serial number", "serial no"],
    "location": ["location"],
    "purchase_date": ["purchase date", "purchased"],
    "purchase_cost": ["purchase cost", "cost"],
    "warranty_expiry": ["warranty", "warranty expiry"],
}


def _cell_text(val) -> str:
    if val is None:
        return ""
    if isinstance(val, datetime):
        return val.date().isoformat()
    if isinstance(val, date):
        return val.isoformat()
    if isinstance(val, float) and val.is_integer():
        return str(int(val))
    return str(val).strip()


def map_headers(headers: list, mappings: dict[str, list[str]]) -> dict[str, int]:
    col_map: dict[str, int] = {}
    for i, h in enumerate(headers):
        if h is None:
            continue
        h_lower = str(h).strip().lower()
        for field, options in mappings.items():
            if h_lower in options and field not in col_map:
                col_map[field] = i
                break
    return col_map


def sheet_rows(ws, mappings: dict[str, list[str]]) -> list[tuple[int, dict]]:
    """(row number, payload) for every non-empty row; the first row is the header."""
    headers = [cell.value for cell in ws[1]]
    col_map = map_headers(headers, mappings)
    out = []
    for row in ws.iter_rows(min_row=2):
        vals = [cell.value for cell in row]
        payload = {field: _cell_text(vals[idx]) if idx < len(vals) else "" for field, idx in col_map.items()}
        if any(payload.values()):
            out.append((row[0].row, payload))
    return out


def import_materials(s: Session, rows: list[tuple[int, dict]], user: User) -> dict:
    created, skipped, errors = 0, 0, []
    for row_no, payload in rows:
        payload.setdefault("type", "consumable")
        payload["type"] = (payload.get("type") or "consumable").lower().replace("-", "_").replace(" ", "_")
        code = payload.get("code")
        existing = (
            s.query(MaterialItem).filter(MaterialItem.code == code).one_or_none()
            if code
            else s.query(MaterialItem).filter(MaterialItem.name == payload.get("name")).first()
        )
        if existing:
            skipped += 1
            continue
        problems = validate_item_payload(payload)
        if problems:
            errors.append(f"Materials row {row_no}: {' '.join(problems)}")
            continue
        create_item(s, payload, user)
        created += 1
    return {"created": created, "skipped": skipped, "errors": errors}


def import_equipment(s: Session, rows: list[tuple[int, dict]], user: User) -> dict:
    created, skipped, errors = 0, 0, []
    for row_no, payload in rows:
        payload["status"] = (payload.get("status") or "active").lower()
        code = payload.get("code")
        if code and s.query(Equipment.id).filter(Equipment.code == code).first():
            skipped += 1
            continue
        problems = validate_equipment_payload(payload)
        if problems:
            errors.append(f"Equipment row {row_no}: {' '.join(problems)}")
            continue
        create_equipment(s, payload, user)
        created += 1
    return {"created": created, "skipped": skipped, "errors": errors}


def import_workbook(filepath: str, s: Session, user: User) -> dict[str, dict]:
    wb = load_workbook(filepath, data_only=True)
    sheets = {ws.title.strip().lower(): ws for ws in wb.worksheets}
    results: dict[str, dict] = {}
    if "materials" in sheets:
        results["materials"] = import_materials(s, sheet_rows(sheets["materials"], MATERIAL_HEADERS), user)
    if "equipment" in sheets:
        results["equipment"] = import_equipment(s, sheet_rows(sheets["equipment"], EQUIPMENT_HEADERS), user)
    s.flush()
    return results


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python scripts/import_inventory.py <workbook.xlsx>")
        sys.exit(2)
    filepath = sys.argv[1]
    if not os.path.exists(filepath):
        print(f"ERROR: File not found: {filepath}")
        sys.exit(1)

    database_url = os.environ.get("DATABASE_URL") or "sqlite:///tcms.db"
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@tcms.local").strip().lower()

    with script_session(database_url) as s:
        admin_user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not admin_user:
            print(f"ERROR: Admin user '{admin_email}' not found. Run scripts/init_db.py first.")
            sys.exit(1)

        print(f"Importing inventory from: {filepath}")
        results = import_workbook(filepath, s, admin_user)
        if not results:
            print("  No 'Materials' or 'Equipment' sheet found.")
        for kind, result in results.items():
            print(f"  {kind.capitalize()}: created={result['created']}, skipped={result['skipped']}")
            for err in result["errors"][:10]:
                print(f"    {err}")


if __name__ == "__main__":
    main()
