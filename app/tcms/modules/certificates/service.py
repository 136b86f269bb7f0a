"""
Certificate templates, eligibility and issuance.

A student qualifies once their program has ended and nothing is owed:
active, in a class with a program, program end_date <= today, a fee
structure applies, and balance <= 0.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import TYPE_CHECKING

from app.tcms.audit import record_event
from app.tcms.modules.certificates.models import BORDER_STYLES, FONT_FAMILIES
from app.tcms.utils import clean_str

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tcms.models import User
    from app.tcms.modules.certificates.models import CertificateTemplate, IssuedCertificate
    from app.tcms.modules.students.models import Student

_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")

SAMPLE_CONTEXT = {
    "student_name": "Jane Doe",
    "program_name": "Software Development Internship",
    "registration_number": "EDT20260001",
    "start_date": "2026-01-05",
    "end_date": "2026-06-30",
}


def validate_template_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("name") or "").strip():
        errors.append("Template name is required.")
    if not (payload.get("message") or "").strip():
        errors.append("Certificate message is required.")
    for field, label in (("background_color", "Background color"), ("text_color", "Text color")):
        if not _COLOR_RE.match(payload.get(field) or ""):
            errors.append(f"{label} must be a hex color like #1a2b3c.")
    if payload.get("border_style") not in BORDER_STYLES:
        errors.append(f"Border style must be one of: {', '.join(BORDER_STYLES)}")
    if payload.get("font_family") not in FONT_FAMILIES:
        errors.append(f"Font must be one of: {', '.join(FONT_FAMILIES)}")
    return errors


def _apply_template_fields(tpl: "CertificateTemplate", payload: dict) -> dict:
    changes = {}

    def _set(attr: str, val):
        if val != getattr(tpl, attr):
            changes[attr] = {"old": getattr(tpl, attr), "new": val}
            setattr(tpl, attr, val)

    _set("name", payload["name"].strip())
    _set("message", payload["message"].strip())
    _set("logo_url", clean_str(payload.get("logo_url")))
    _set("background_color", payload["background_color"].lower())
    _set("text_color", payload["text_color"].lower())
    _set("border_style", payload["border_style"])
    _set("font_family", payload["font_family"])
    _set("include_dates", bool(payload.get("include_dates")))
    _set("include_registration_number", bool(payload.get("include_registration_number")))
    _set("additional_text", clean_str(payload.get("additional_text")))
    return changes


def create_template(s: "Session", payload: dict, user: "User") -> "CertificateTemplate":
    from app.tcms.modules.certificates.models import CertificateTemplate

    tpl = CertificateTemplate(is_active=True, created_by_user_id=user.id, created_at=datetime.utcnow())
    _apply_template_fields(tpl, payload)
    tpl.updated_at = datetime.utcnow()
    s.add(tpl)
    s.flush()
    record_event(
        s,
        actor=user,
        action="certificate_template.create",
        entity_type="CertificateTemplate",
        entity_id=str(tpl.id),
        metadata={"name": tpl.name},
    )
    s.flush()
    return tpl


def update_template(s: "Session", tpl: "CertificateTemplate", payload: dict, user: "User") -> "CertificateTemplate":
    changes = _apply_template_fields(tpl, payload)
    tpl.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="certificate_template.edit",
        entity_type="CertificateTemplate",
        entity_id=str(tpl.id),
        metadata={"changes": changes},
    )
    s.flush()
    return tpl


def set_template_active(s: "Session", tpl: "CertificateTemplate", active: bool, user: "User") -> None:
    tpl.is_active = active
    tpl.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="certificate_template.activate" if active else "certificate_template.deactivate",
        entity_type="CertificateTemplate",
        entity_id=str(tpl.id),
    )
    s.flush()


def render_message(message: str, context: dict) -> str:
    """Fill {placeholders}; unknown names are left untouched."""

    def _sub(m: re.Match) -> str:
        key = m.group(1)
        if key in context and context[key] is not None:
            return str(context[key])
        return m.group(0)

    return _PLACEHOLDER_RE.sub(_sub, message or "")


def certificate_context(student: "Student") -> dict:
    klass = student.training_class
    program = klass.program if klass else None
    return {
        "student_name": student.full_name,
        "program_name": program.name if program else "",
        "registration_number": student.registration_number,
        "start_date": program.start_date.isoformat() if program else "",
        "end_date": program.end_date.isoformat() if program else "",
    }


def certificate_eligibility(s: "Session", student: "Student", today: date | None = None) -> tuple[bool, list[str]]:
    from app.tcms.modules.academics.service import fee_for
    from app.tcms.modules.finance.service import student_balance

    today = today or date.today()
    reasons = []
    if not student.is_active:
        reasons.append("Student is not active.")
    klass = student.training_class
    program = klass.program if klass else None
    if klass is None:
        reasons.append("Student is not assigned to a class.")
    elif program is None:
        reasons.append("Student's class is not linked to a program.")
    else:
        if program.end_date > today:
            reasons.append(f"Program {program.name} ends on {program.end_date.isoformat()}.")
        if fee_for(s, program.id, student.level) is None:
            reasons.append("No fee structure applies to this student.")
        else:
            _, _, balance = student_balance(s, student)
            if balance > 0:
                reasons.append(f"Outstanding balance of {balance:,.0f}.")
    return (not reasons), reasons


def format_certificate_number(issued_at: datetime, cert_id: int) -> str:
    return f"CERT-{issued_at.year}-{cert_id:06d}"


def issue_certificate(
    s: "Session", student: "Student", template: "CertificateTemplate", user: "User"
) -> tuple["IssuedCertificate", bool]:
    """Returns (certificate, created). Re-issuing for the same template returns the existing one."""
    from app.tcms.modules.certificates.models import IssuedCertificate

    existing = (
        s.query(IssuedCertificate)
        .filter(IssuedCertificate.student_id == student.id, IssuedCertificate.template_id == template.id)
        .one_or_none()
    )
    if existing is not None:
        return existing, False

    if not template.is_active:
        raise ValueError(f"Template {template.name} is not active.")
    eligible, reasons = certificate_eligibility(s, student)
    if not eligible:
        raise ValueError("Student is not eligible: " + " ".join(reasons))

    now = datetime.utcnow()
    cert = IssuedCertificate(student_id=student.id, template_id=template.id, issued_by_user_id=user.id, issued_at=now)
    s.add(cert)
    s.flush()
    cert.certificate_number = format_certificate_number(now, cert.id)

    record_event(
        s,
        actor=user,
        action="certificate.issue",
        entity_type="IssuedCertificate",
        entity_id=str(cert.id),
        metadata={
            "certificate_number": cert.certificate_number,
            "student_id": student.id,
            "template_id": template.id,
        },
    )
    s.flush()
    return cert, True
