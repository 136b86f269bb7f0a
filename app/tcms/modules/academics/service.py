from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from app.tcms.audit import record_event
from app.tcms.constants import LEVELS, ROLE_TRAINER, SHIFTS
from app.tcms.utils import clean_str, parse_date, parse_decimal, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tcms.models import User
    from app.tcms.modules.academics.models import FeeStructure, Program, TrainingClass

logger = logging.getLogger(__name__)


# ---------- Programs ----------


def validate_program_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("name") or "").strip():
        errors.append("Program name is required.")
    start = end = None
    try:
        start = parse_date(payload.get("start_date"))
        end = parse_date(payload.get("end_date"))
    except ValueError:
        errors.append("Dates must be YYYY-MM-DD.")
    else:
        if not start:
            errors.append("Start date is required.")
        if not end:
            errors.append("End date is required.")
        if start and end and end < start:
            errors.append("End date must be on or after the start date.")
    levels = payload.get("eligible_levels") or []
    if not levels:
        errors.append("Select at least one eligible level.")
    bad = [lv for lv in levels if lv not in LEVELS]
    if bad:
        errors.append(f"Invalid level(s): {', '.join(bad)}")
    return errors


def create_program(s: "Session", payload: dict, user: "User") -> "Program":
    from app.tcms.modules.academics.models import Program

    now = datetime.utcnow()
    program = Program(
        name=payload["name"].strip(),
        description=clean_str(payload.get("description")),
        start_date=parse_date(payload.get("start_date")),
        end_date=parse_date(payload.get("end_date")),
        eligible_levels=sorted(set(payload.get("eligible_levels") or [])),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(program)
    s.flush()
    record_event(
        s,
        actor=user,
        action="program.create",
        entity_type="Program",
        entity_id=str(program.id),
        metadata={"name": program.name, "eligible_levels": program.eligible_levels},
    )
    s.flush()
    return program


def update_program(s: "Session", program: "Program", payload: dict, user: "User") -> "Program":
    new_levels = sorted(set(payload.get("eligible_levels") or []))
    # classes already attached must stay eligible
    stranded = sorted({c.level for c in program.classes if c.is_active and c.level not in new_levels})
    if stranded:
        raise ValueError(f"Active classes use level(s) {', '.join(stranded)}; keep them eligible.")

    changes = {}

    def _set(attr: str, val):
        if val != getattr(program, attr):
            changes[attr] = {"old": getattr(program, attr), "new": val}
            setattr(program, attr, val)

    _set("name", payload["name"].strip())
    _set("description", clean_str(payload.get("description")))
    _set("start_date", parse_date(payload.get("start_date")))
    _set("end_date", parse_date(payload.get("end_date")))
    _set("eligible_levels", new_levels)
    program.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="program.edit",
        entity_type="Program",
        entity_id=str(program.id),
        metadata={"changes": changes},
    )
    s.flush()
    return program


def set_program_active(s: "Session", program: "Program", active: bool, user: "User") -> None:
    program.is_active = active
    program.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="program.activate" if active else "program.deactivate",
        entity_type="Program",
        entity_id=str(program.id),
    )
    s.flush()


# ---------- Classes ----------


def validate_class_payload(s: "Session", payload: dict, existing: "TrainingClass | None" = None) -> list[str]:
    from app.tcms.models import User
    from app.tcms.modules.academics.models import Program

    errors = []
    if not (payload.get("name") or "").strip():
        errors.append("Class name is required.")
    level = (payload.get("level") or "").strip()
    if level not in LEVELS:
        errors.append(f"Level must be one of: {', '.join(LEVELS)}")
    shift = (payload.get("shift") or "").strip()
    if shift not in SHIFTS:
        errors.append(f"Shift must be one of: {', '.join(SHIFTS)}")

    try:
        capacity = parse_int(payload.get("max_capacity"))
    except ValueError:
        capacity = None
        errors.append("Max capacity must be a whole number.")
    else:
        if capacity is None or capacity < 1:
            errors.append("Max capacity must be at least 1.")
        elif existing is not None and capacity < (existing.current_enrollment or 0):
            errors.append(
                f"Max capacity cannot be below current enrollment ({existing.current_enrollment})."
            )

    try:
        program_id = parse_int(payload.get("program_id") or None)
    except ValueError:
        program_id = None
        errors.append("Invalid program.")
    if program_id:
        program = s.get(Program, program_id)
        if not program:
            errors.append("Program not found.")
        elif level in LEVELS and level not in (program.eligible_levels or []):
            errors.append(f"Level {level} is not eligible for program {program.name}.")

    try:
        trainer_id = parse_int(payload.get("trainer_user_id") or None)
    except ValueError:
        trainer_id = None
        errors.append("Invalid trainer.")
    if trainer_id:
        trainer = s.get(User, trainer_id)
        if not trainer or ROLE_TRAINER not in trainer.role_keys:
            errors.append("Selected trainer does not hold the trainer role.")
    return errors


def create_class(s: "Session", payload: dict, user: "User") -> "TrainingClass":
    from app.tcms.modules.academics.models import TrainingClass

    now = datetime.utcnow()
    klass = TrainingClass(
        name=payload["name"].strip(),
        level=payload["level"].strip(),
        shift=payload["shift"].strip(),
        max_capacity=parse_int(payload.get("max_capacity")),
        current_enrollment=0,
        program_id=parse_int(payload.get("program_id") or None),
        trainer_user_id=parse_int(payload.get("trainer_user_id") or None),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(klass)
    s.flush()
    record_event(
        s,
        actor=user,
        action="class.create",
        entity_type="TrainingClass",
        entity_id=str(klass.id),
        metadata={"name": klass.name, "level": klass.level, "shift": klass.shift, "max_capacity": klass.max_capacity},
    )
    s.flush()
    return klass


def update_class(s: "Session", klass: "TrainingClass", payload: dict, user: "User") -> "TrainingClass":
    changes = {}

    def _set(attr: str, val):
        if val != getattr(klass, attr):
            changes[attr] = {"old": getattr(klass, attr), "new": val}
            setattr(klass, attr, val)

    new_level = payload["level"].strip()
    if new_level != klass.level and (klass.current_enrollment or 0) > 0:
        raise ValueError("Cannot change the level of a class with enrolled students.")

    _set("name", payload["name"].strip())
    _set("level", new_level)
    _set("shift", payload["shift"].strip())
    _set("max_capacity", parse_int(payload.get("max_capacity")))
    _set("program_id", parse_int(payload.get("program_id") or None))
    _set("trainer_user_id", parse_int(payload.get("trainer_user_id") or None))
    klass.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="class.edit",
        entity_type="TrainingClass",
        entity_id=str(klass.id),
        metadata={"changes": changes},
    )
    s.flush()
    return klass


def set_class_active(s: "Session", klass: "TrainingClass", active: bool, user: "User") -> None:
    if not active and (klass.current_enrollment or 0) > 0:
        raise ValueError("Transfer enrolled students before deactivating the class.")
    klass.is_active = active
    klass.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="class.activate" if active else "class.deactivate",
        entity_type="TrainingClass",
        entity_id=str(klass.id),
    )
    s.flush()


def available_classes(s: "Session", level: str | None, shift: str | None) -> list["TrainingClass"]:
    """Active classes with a free seat matching level and shift (registration picker)."""
    from app.tcms.modules.academics.models import TrainingClass

    q = s.query(TrainingClass).filter(
        TrainingClass.is_active.is_(True),
        TrainingClass.current_enrollment < TrainingClass.max_capacity,
    )
    if level:
        q = q.filter(TrainingClass.level == level)
    if shift:
        q = q.filter(TrainingClass.shift == shift)
    return q.order_by(TrainingClass.name.asc()).all()


def reserve_seat(klass: "TrainingClass", level: str) -> None:
    """Increment enrollment; the class must be active, same level, not full."""
    if not klass.is_active:
        raise ValueError(f"Class {klass.name} is not active.")
    if klass.level != level:
        raise ValueError(f"Class {klass.name} is for level {klass.level}, not {level}.")
    if (klass.current_enrollment or 0) >= klass.max_capacity:
        raise ValueError(f"Class {klass.name} is full ({klass.max_capacity} seats).")
    klass.current_enrollment = (klass.current_enrollment or 0) + 1


def release_seat(klass: "TrainingClass") -> None:
    klass.current_enrollment = max(0, (klass.current_enrollment or 0) - 1)


# ---------- Fee structures ----------


def validate_fee_payload(s: "Session", payload: dict) -> list[str]:
    from app.tcms.modules.academics.models import Program

    errors = []
    if not (payload.get("name") or "").strip():
        errors.append("Fee structure name is required.")
    level = (payload.get("level") or "").strip()
    if level and level not in LEVELS:
        errors.append(f"Level must be one of: {', '.join(LEVELS)}")
    for field, label in (("registration_fee", "Registration fee"), ("internship_fee", "Internship fee")):
        try:
            amount = parse_decimal(payload.get(field))
        except ValueError:
            errors.append(f"{label} must be a number.")
            continue
        if amount is None:
            errors.append(f"{label} is required.")
        elif amount < 0:
            errors.append(f"{label} cannot be negative.")
    try:
        program_id = parse_int(payload.get("program_id") or None)
    except ValueError:
        errors.append("Invalid program.")
    else:
        if program_id and not s.get(Program, program_id):
            errors.append("Program not found.")
    return errors


def create_fee_structure(s: "Session", payload: dict, user: "User") -> "FeeStructure":
    from app.tcms.modules.academics.models import FeeStructure

    fee = FeeStructure(
        name=payload["name"].strip(),
        program_id=parse_int(payload.get("program_id") or None),
        level=clean_str(payload.get("level")),
        registration_fee=parse_decimal(payload.get("registration_fee")),
        internship_fee=parse_decimal(payload.get("internship_fee")),
        is_active=True,
    )
    s.add(fee)
    s.flush()
    record_event(
        s,
        actor=user,
        action="fee_structure.create",
        entity_type="FeeStructure",
        entity_id=str(fee.id),
        metadata={"name": fee.name, "total": fee.total},
    )
    s.flush()
    return fee


def update_fee_structure(s: "Session", fee: "FeeStructure", payload: dict, user: "User") -> "FeeStructure":
    before = {"registration_fee": fee.registration_fee, "internship_fee": fee.internship_fee}
    fee.name = payload["name"].strip()
    fee.program_id = parse_int(payload.get("program_id") or None)
    fee.level = clean_str(payload.get("level"))
    fee.registration_fee = parse_decimal(payload.get("registration_fee"))
    fee.internship_fee = parse_decimal(payload.get("internship_fee"))
    record_event(
        s,
        actor=user,
        action="fee_structure.edit",
        entity_type="FeeStructure",
        entity_id=str(fee.id),
        metadata={"before": before, "after": {"registration_fee": fee.registration_fee, "internship_fee": fee.internship_fee}},
    )
    s.flush()
    return fee


def set_fee_active(s: "Session", fee: "FeeStructure", active: bool, user: "User") -> None:
    fee.is_active = active
    record_event(
        s,
        actor=user,
        action="fee_structure.activate" if active else "fee_structure.deactivate",
        entity_type="FeeStructure",
        entity_id=str(fee.id),
    )
    s.flush()


def pick_fee_structure(candidates: list["FeeStructure"], level: str | None) -> "FeeStructure | None":
    """An exact level match beats a level-less (any level) structure."""
    exact = [f for f in candidates if f.is_active and f.level == level]
    if exact:
        return exact[0]
    generic = [f for f in candidates if f.is_active and not f.level]
    return generic[0] if generic else None


def fee_for(s: "Session", program_id: int | None, level: str | None) -> "FeeStructure | None":
    from app.tcms.modules.academics.models import FeeStructure

    if not program_id:
        return None
    candidates = (
        s.query(FeeStructure)
        .filter(FeeStructure.program_id == program_id, FeeStructure.is_active.is_(True))
        .order_by(FeeStructure.id.asc())
        .all()
    )
    return pick_fee_structure(candidates, level)


def fees_due(fee: "FeeStructure | None") -> Decimal:
    return fee.total if fee else Decimal("0")
