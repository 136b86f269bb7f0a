from datetime import date, datetime, timedelta

import pytest

from app.tcms.modules.certificates.models import IssuedCertificate
from app.tcms.modules.certificates.service import (
    certificate_eligibility,
    create_template,
    format_certificate_number,
    issue_certificate,
    render_message,
    set_template_active,
    validate_template_payload,
)
from app.tcms.modules.finance.service import record_payment
from app.tcms.modules.students.service import set_student_active


def _template_payload(**overrides):
    payload = {
        "name": "Completion",
        "message": "This certifies that {student_name} completed {program_name}.",
        "background_color": "#FFFFFF",
        "text_color": "#1f2937",
        "border_style": "classic",
        "font_family": "serif",
        "include_dates": True,
        "include_registration_number": True,
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def graduate(db, staff, make_program, make_class, make_fee, make_student):
    """A student whose program has ended and whose fees are settled."""
    program = make_program(
        name="Networking",
        start_date=date.today() - timedelta(days=200),
        end_date=date.today() - timedelta(days=1),
    )
    make_fee(program, registration="10000", internship="50000")
    klass = make_class(program)
    student = make_student(klass, full_name="Grace Uwase")
    db.flush()
    record_payment(
        db,
        {
            "student_id": str(student.id),
            "amount": "60000",
            "payment_type": "internship",
            "payment_method": "cash",
            "status": "paid",
        },
        staff("finance"),
    )
    return student


def test_render_message_fills_known_placeholders():
    text = render_message("{student_name} finished {program_name} ({unknown})", {"student_name": "Ana", "program_name": None})
    assert text == "Ana finished {program_name} ({unknown})"
    assert render_message(None, {}) == ""


def test_validate_template_payload():
    assert validate_template_payload(_template_payload()) == []
    errors = validate_template_payload(
        _template_payload(name="", message=" ", background_color="white", border_style="dotted", font_family="mono")
    )
    assert errors == [
        "Template name is required.",
        "Certificate message is required.",
        "Background color must be a hex color like #1a2b3c.",
        "Border style must be one of: classic, modern, elegant, simple",
        "Font must be one of: serif, sans-serif, cursive",
    ]


def test_create_template_normalizes_colors(db, staff):
    tpl = create_template(db, _template_payload(), staff("admin"))
    assert tpl.background_color == "#ffffff"
    assert tpl.is_active is True


def test_certificate_number_format():
    assert format_certificate_number(datetime(2026, 4, 1), 42) == "CERT-2026-000042"


def test_eligibility_reasons(db, staff, make_program, make_class, make_student):
    loose = make_student()
    db.flush()
    ok, reasons = certificate_eligibility(db, loose)
    assert ok is False
    assert reasons == ["Student is not assigned to a class."]

    program = make_program(name="Web Design")
    klass = make_class(program)
    running = make_student(klass)
    db.flush()
    ok, reasons = certificate_eligibility(db, running)
    assert reasons == [
        f"Program Web Design ends on {program.end_date.isoformat()}.",
        "No fee structure applies to this student.",
    ]

    set_student_active(db, running, False, staff("admin"))
    _, reasons = certificate_eligibility(db, running)
    assert reasons[0] == "Student is not active."


def test_eligibility_requires_zero_balance(db, staff, make_program, make_class, make_fee, make_student):
    program = make_program(start_date=date(2025, 1, 6), end_date=date(2025, 6, 30))
    make_fee(program)
    student = make_student(make_class(program))
    db.flush()
    ok, reasons = certificate_eligibility(db, student)
    assert ok is False
    assert reasons == ["Outstanding balance of 60,000."]


def test_issue_certificate_is_idempotent(db, staff, graduate):
    tpl = create_template(db, _template_payload(), staff("admin"))
    assert certificate_eligibility(db, graduate) == (True, [])

    cert, created = issue_certificate(db, graduate, tpl, staff("secretary"))
    assert created is True
    assert cert.certificate_number == f"CERT-{cert.issued_at.year}-{cert.id:06d}"

    again, created = issue_certificate(db, graduate, tpl, staff("secretary"))
    assert created is False
    assert again.id == cert.id
    assert db.query(IssuedCertificate).count() == 1


def test_inactive_template_cannot_issue(db, staff, graduate):
    tpl = create_template(db, _template_payload(), staff("admin"))
    set_template_active(db, tpl, False, staff("admin"))
    with pytest.raises(ValueError, match="Template Completion is not active."):
        issue_certificate(db, graduate, tpl, staff("admin"))


def test_ineligible_student_is_refused(db, staff, make_student):
    tpl = create_template(db, _template_payload(), staff("admin"))
    student = make_student()
    db.flush()
    with pytest.raises(ValueError, match="not eligible: Student is not assigned to a class."):
        issue_certificate(db, student, tpl, staff("admin"))


def test_template_routes_are_admin_only(client, login, db, staff):
    login("secretary@example.com")
    assert client.get("/admin/certificates").status_code == 200
    assert client.get("/admin/certificates/templates").status_code == 403

    client.get("/auth/logout")
    login()
    r = client.post(
        "/admin/certificates/templates/new",
        data=_template_payload(name="Gold", include_dates="1", include_registration_number=""),
        follow_redirects=True,
    )
    assert b"Template Gold created." in r.data

    tpl = create_template(db, _template_payload(name="Silver"), staff("admin"))
    db.commit()
    r = client.get(f"/admin/certificates/templates/{tpl.id}/preview")
    assert r.status_code == 200
    assert b"This certifies that Jane Doe completed" in r.data

    r = client.post(f"/admin/certificates/templates/{tpl.id}/toggle", follow_redirects=True)
    assert b"Template deactivated." in r.data


def test_issue_and_view_routes(client, login, db, staff, graduate):
    tpl = create_template(db, _template_payload(), staff("admin"))
    db.commit()
    login("secretary@example.com")

    r = client.get(f"/admin/certificates/issue?student_id={graduate.id}")
    assert r.status_code == 200

    form = {"student_id": str(graduate.id), "template_id": str(tpl.id)}
    r = client.post("/admin/certificates/issue", data=form, follow_redirects=True)
    assert r.status_code == 200
    assert b"issued." in r.data
    assert b"This certifies that Grace Uwase completed Networking." in r.data

    r = client.post("/admin/certificates/issue", data=form, follow_redirects=True)
    assert b"was already issued." in r.data

    r = client.post("/admin/certificates/issue", data={"student_id": "", "template_id": ""}, follow_redirects=True)
    assert b"Select a student and a template." in r.data
