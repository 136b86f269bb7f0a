"""
Student registration and lifecycle.

Registration creates the login account (role=student), the Student record and
reserves a class seat in the caller's transaction; commit/rollback is the
caller's job so a failure anywhere leaves nothing behind.
"""
from __future__ import annotations

import logging
import secrets
from datetime import date, datetime
from typing import TYPE_CHECKING

from app.tcms.accounts import create_account, generate_password, is_valid_email
from app.tcms.audit import record_event
from app.tcms.constants import LEVELS, ROLE_STUDENT, SHIFTS
from app.tcms.modules.academics.service import release_seat, reserve_seat
from app.tcms.utils import clean_str, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tcms.models import User
    from app.tcms.modules.students.models import Student

logger = logging.getLogger(__name__)

REGISTRATION_NUMBER_ATTEMPTS = 20


def format_registration_number(prefix: str, year: int, suffix: int) -> str:
    return f"{prefix}{year}{suffix:04d}"


def generate_registration_number(s: "Session", prefix: str, year: int | None = None) -> str:
    """<PREFIX><year><4 random digits>, re-drawn on collision."""
    from app.tcms.modules.students.models import Student

    year = year or date.today().year
    for _ in range(REGISTRATION_NUMBER_ATTEMPTS):
        candidate = format_registration_number(prefix, year, secrets.randbelow(10000))
        exists = s.query(Student.id).filter(Student.registration_number == candidate).first()
        if not exists:
            return candidate
    raise RuntimeError(f"Could not allocate a registration number for {prefix}{year} after {REGISTRATION_NUMBER_ATTEMPTS} tries")


# ---------- Registration wizard steps ----------


def validate_account_step(s: "Session", payload: dict) -> list[str]:
    from app.tcms.models import User

    errors = []
    if not (payload.get("full_name") or "").strip():
        errors.append("Full name is required.")
    email = (payload.get("email") or "").strip().lower()
    if not email:
        errors.append("Email is required.")
    elif not is_valid_email(email):
        errors.append("Invalid email format.")
    elif s.query(User.id).filter(User.email == email).first():
        errors.append("An account with this email already exists.")
    if not (payload.get("phone") or "").strip():
        errors.append("Phone number is required.")
    return errors


def validate_academic_step(payload: dict) -> list[str]:
    errors = []
    if payload.get("level") not in LEVELS:
        errors.append(f"Level must be one of: {', '.join(LEVELS)}")
    if payload.get("preferred_shift") not in SHIFTS:
        errors.append(f"Shift must be one of: {', '.join(SHIFTS)}")
    return errors


def validate_class_step(s: "Session", payload: dict) -> list[str]:
    from app.tcms.modules.academics.models import TrainingClass

    try:
        class_id = parse_int(payload.get("class_id") or None)
    except ValueError:
        return ["Invalid class."]
    if not class_id:
        return []
    klass = s.get(TrainingClass, class_id)
    if not klass:
        return ["Class not found."]
    errors = []
    if not klass.is_active:
        errors.append(f"Class {klass.name} is not active.")
    if klass.level != payload.get("level"):
        errors.append(f"Class {klass.name} is for level {klass.level}.")
    if klass.seats_left <= 0:
        errors.append(f"Class {klass.name} is full.")
    return errors


def validate_registration_payload(s: "Session", payload: dict) -> list[str]:
    return validate_account_step(s, payload) + validate_academic_step(payload) + validate_class_step(s, payload)


def register_student(s: "Session", payload: dict, actor: "User", *, prefix: str) -> tuple["Student", str]:
    """
    Returns (student, generated_password). The password is only returned here
    so the confirmation page can show it once; it is never persisted in clear.
    """
    from app.tcms.modules.academics.models import TrainingClass
    from app.tcms.modules.students.models import Student

    errors = validate_registration_payload(s, payload)
    if errors:
        raise ValueError(" ".join(errors))

    password = generate_password(8)
    user = create_account(
        s,
        {
            "email": payload["email"],
            "full_name": payload["full_name"],
            "phone": payload.get("phone"),
            "password": password,
            "roles": [ROLE_STUDENT],
        },
        actor,
    )

    klass = None
    class_id = parse_int(payload.get("class_id") or None)
    if class_id:
        klass = s.get(TrainingClass, class_id)
        reserve_seat(klass, payload["level"])

    now = datetime.utcnow()
    student = Student(
        user_id=user.id,
        registration_number=generate_registration_number(s, prefix),
        school_name=clean_str(payload.get("school_name")),
        level=payload["level"],
        preferred_shift=payload["preferred_shift"],
        class_id=klass.id if klass else None,
        has_whatsapp=bool(payload.get("has_whatsapp")),
        alternative_whatsapp=clean_str(payload.get("alternative_whatsapp")),
        registration_fee_paid=False,
        logbook_submitted=False,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    student.user = user
    s.add(student)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="student.register",
        entity_type="Student",
        entity_id=str(student.id),
        metadata={
            "registration_number": student.registration_number,
            "level": student.level,
            "class_id": student.class_id,
        },
    )
    logger.info("Registered student %s (user_id=%s)", student.registration_number, user.id)
    s.flush()
    return student, password


# ---------- Edit / transfer / deactivate ----------


def validate_student_update(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("full_name") or "").strip():
        errors.append("Full name is required.")
    if payload.get("preferred_shift") not in SHIFTS:
        errors.append(f"Shift must be one of: {', '.join(SHIFTS)}")
    return errors


def update_student(s: "Session", student: "Student", payload: dict, actor: "User") -> "Student":
    changes = {}

    def _set(obj, attr: str, val):
        if val != getattr(obj, attr):
            changes[attr] = {"old": getattr(obj, attr), "new": val}
            setattr(obj, attr, val)

    profile = student.user.profile
    if profile is not None:
        _set(profile, "full_name", payload["full_name"].strip())
        _set(profile, "phone", clean_str(payload.get("phone")))
        profile.updated_at = datetime.utcnow()
    _set(student, "school_name", clean_str(payload.get("school_name")))
    _set(student, "preferred_shift", payload["preferred_shift"])
    _set(student, "has_whatsapp", bool(payload.get("has_whatsapp")))
    _set(student, "alternative_whatsapp", clean_str(payload.get("alternative_whatsapp")))
    _set(student, "logbook_submitted", bool(payload.get("logbook_submitted")))
    student.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=actor,
        action="student.edit",
        entity_type="Student",
        entity_id=str(student.id),
        metadata={"changes": changes},
    )
    s.flush()
    return student


def transfer_student(s: "Session", student: "Student", new_class_id: int | None, actor: "User") -> "Student":
    """Move to another class (or none). Seat counts on both sides stay consistent."""
    from app.tcms.modules.academics.models import TrainingClass

    if not student.is_active:
        raise ValueError("Reactivate the student before transferring.")
    old_id = student.class_id
    if new_class_id == old_id:
        raise ValueError("Student is already in that class.")

    new_class = None
    if new_class_id:
        new_class = s.get(TrainingClass, new_class_id)
        if not new_class:
            raise ValueError("Class not found.")
        reserve_seat(new_class, student.level)
    if student.training_class is not None:
        release_seat(student.training_class)

    student.training_class = new_class
    student.class_id = new_class.id if new_class else None
    student.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=actor,
        action="student.transfer",
        entity_type="Student",
        entity_id=str(student.id),
        metadata={"from_class_id": old_id, "to_class_id": student.class_id},
    )
    s.flush()
    return student


def set_student_active(s: "Session", student: "Student", active: bool, actor: "User", reason: str | None = None) -> "Student":
    if active == student.is_active:
        return student
    if active:
        # rejoin the old class only if it still has room
        klass = student.training_class
        if klass is not None:
            try:
                reserve_seat(klass, student.level)
            except ValueError:
                student.training_class = None
                student.class_id = None
    else:
        if student.training_class is not None:
            release_seat(student.training_class)
    student.is_active = active
    student.user.is_active = active
    student.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=actor,
        action="student.reactivate" if active else "student.deactivate",
        entity_type="Student",
        entity_id=str(student.id),
        reason=reason,
    )
    s.flush()
    return student


def student_for_user(s: "Session", user: "User") -> "Student | None":
    from app.tcms.modules.students.models import Student

    return s.query(Student).filter(Student.user_id == user.id).one_or_none()
