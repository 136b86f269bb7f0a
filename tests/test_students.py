import re

import pytest
from werkzeug.security import check_password_hash

from app.tcms.models import AuditEvent, User
from app.tcms.modules.academics.models import TrainingClass
from app.tcms.modules.students.models import Student
from app.tcms.modules.students.service import (
    format_registration_number,
    generate_registration_number,
    register_student,
    set_student_active,
    student_for_user,
    transfer_student,
    validate_account_step,
    validate_academic_step,
    validate_class_step,
)


def _payload(**overrides):
    payload = {
        "full_name": "Aline Mukamana",
        "email": "aline@example.com",
        "phone": "0788123456",
        "school_name": "GS Remera",
        "level": "L4",
        "preferred_shift": "morning",
        "has_whatsapp": True,
        "alternative_whatsapp": "",
        "class_id": "",
    }
    payload.update(overrides)
    return payload


def test_registration_number_format():
    assert format_registration_number("EDT", 2026, 42) == "EDT20260042"
    assert format_registration_number("EDT", 2026, 9999) == "EDT20269999"


def test_generate_registration_number_is_unique(db, make_student):
    student = make_student()
    db.flush()
    assert re.fullmatch(r"EDT\d{4}\d{4}", student.registration_number)
    number = generate_registration_number(db, "EDT", year=2030)
    assert number.startswith("EDT2030")
    assert len(number) == 11
    assert number != student.registration_number


def test_wizard_step_validation(db, make_class):
    errors = validate_account_step(db, _payload(full_name="", email="admin@example.com", phone=""))
    assert errors == ["Full name is required.", "An account with this email already exists.", "Phone number is required."]
    assert validate_account_step(db, _payload(email="not-an-email")) == ["Invalid email format."]

    assert validate_academic_step(_payload(level="L9", preferred_shift="evening")) == [
        "Level must be one of: L3, L4, L5",
        "Shift must be one of: morning, afternoon",
    ]

    klass = make_class(level="L5", name="L5 Morning")
    db.flush()
    assert validate_class_step(db, _payload(class_id="")) == []
    assert validate_class_step(db, _payload(class_id="999")) == ["Class not found."]
    assert validate_class_step(db, _payload(class_id=str(klass.id))) == ["Class L5 Morning is for level L5."]


def test_register_student_creates_login_and_takes_seat(db, staff, make_class):
    klass = make_class()
    db.flush()
    student, password = register_student(db, _payload(class_id=str(klass.id)), staff("secretary"), prefix="EDT")

    assert student.registration_number.startswith("EDT")
    assert student.class_id == klass.id
    assert klass.current_enrollment == 1
    assert student.user.role_keys == {"student"}
    assert student.full_name == "Aline Mukamana"
    assert len(password) == 8
    assert check_password_hash(student.user.password_hash, password)
    assert student_for_user(db, student.user).id == student.id

    ev = db.query(AuditEvent).filter(AuditEvent.action == "student.register").one()
    assert ev.actor_user_email == "secretary@example.com"
    # the generated password never reaches the audit log
    assert password not in (ev.metadata_json or "")


def test_register_student_rejects_full_class(db, staff, make_class, make_student):
    klass = make_class(max_capacity="1")
    make_student(klass)
    db.flush()
    with pytest.raises(ValueError, match="is full"):
        register_student(db, _payload(class_id=str(klass.id)), staff("admin"), prefix="EDT")
    db.rollback()
    assert db.query(User).filter(User.email == "aline@example.com").one_or_none() is None


def test_transfer_keeps_seat_counts(db, staff, make_class, make_student):
    a = make_class(name="A", max_capacity="2")
    b = make_class(name="B", shift="afternoon", max_capacity="1")
    l3 = make_class(name="C", level="L3")
    student = make_student(a)
    db.flush()

    transfer_student(db, student, b.id, staff("admin"))
    assert (a.current_enrollment, b.current_enrollment) == (0, 1)
    assert student.class_id == b.id

    with pytest.raises(ValueError, match="already in that class"):
        transfer_student(db, student, b.id, staff("admin"))
    with pytest.raises(ValueError, match="is for level L3"):
        transfer_student(db, student, l3.id, staff("admin"))

    other = make_student(a)
    with pytest.raises(ValueError, match="is full"):
        transfer_student(db, other, b.id, staff("admin"))

    transfer_student(db, student, None, staff("admin"))
    assert b.current_enrollment == 0
    assert student.class_id is None


def test_deactivate_and_reactivate_student(db, staff, make_class, make_student):
    klass = make_class(max_capacity="1")
    student = make_student(klass)
    db.flush()

    set_student_active(db, student, False, staff("admin"), reason="Dropped out")
    assert klass.current_enrollment == 0
    assert student.user.is_active is False

    with pytest.raises(ValueError, match="Reactivate"):
        transfer_student(db, student, None, staff("admin"))

    # seat taken meanwhile: student comes back without a class
    make_student(klass)
    set_student_active(db, student, True, staff("admin"))
    assert student.is_active is True
    assert student.class_id is None
    assert klass.current_enrollment == 1


def test_registration_wizard_end_to_end(client, login, db, make_class):
    klass = make_class(name="Wizard Class")
    db.commit()
    login("secretary@example.com")

    r = client.get("/admin/students/register")
    assert r.status_code == 200
    assert b'name="step" value="account"' in r.data

    data = _payload(has_whatsapp="1")
    r = client.post("/admin/students/register", data=dict(data, step="account"))
    assert b'name="step" value="academic"' in r.data

    r = client.post("/admin/students/register", data=dict(data, step="academic"))
    assert b'name="step" value="class"' in r.data
    assert b"Wizard Class" in r.data

    # back goes one step without validating
    r = client.post("/admin/students/register", data=dict(data, step="class", back="1"))
    assert b'name="step" value="academic"' in r.data

    r = client.post("/admin/students/register", data=dict(data, step="class", class_id=str(klass.id)))
    assert b'name="step" value="confirm"' in r.data

    r = client.post("/admin/students/register", data=dict(data, step="confirm", class_id=str(klass.id)))
    assert r.status_code == 200
    assert b"Temporary password" in r.data

    db.expire_all()
    student = db.query(Student).join(Student.user).filter(User.email == "aline@example.com").one()
    assert student.class_id == klass.id
    assert student.has_whatsapp is True
    assert db.get(TrainingClass, klass.id).current_enrollment == 1


def test_registration_wizard_revalidates_earlier_steps(client, login, db):
    login("secretary@example.com")
    # tampered hidden field on the last step sends the user back to the account step
    r = client.post("/admin/students/register", data=_payload(email="admin@example.com", step="confirm"))
    assert b'name="step" value="account"' in r.data
    assert b"An account with this email already exists." in r.data
    assert db.query(Student).count() == 0


def test_student_detail_edit_and_transfer_routes(client, login, db, make_class, make_student):
    a = make_class(name="Alpha")
    b = make_class(name="Beta")
    student = make_student(a)
    db.commit()
    login("secretary@example.com")

    r = client.get(f"/admin/students/{student.id}")
    assert r.status_code == 200
    assert student.registration_number.encode() in r.data

    r = client.post(
        f"/admin/students/{student.id}/edit",
        data={"full_name": "Renamed Student", "preferred_shift": "afternoon", "logbook_submitted": "1"},
    )
    assert r.status_code == 302

    client.post(f"/admin/students/{student.id}/transfer", data={"class_id": str(b.id)})

    db.expire_all()
    student = db.get(Student, student.id)
    assert student.full_name == "Renamed Student"
    assert student.preferred_shift == "afternoon"
    assert student.logbook_submitted is True
    assert student.class_id == b.id
    assert db.get(TrainingClass, a.id).current_enrollment == 0

    r = client.get("/admin/students?q=renamed")
    assert b"Renamed Student" in r.data


def test_trainer_cannot_register_students(client, login):
    login("trainer@example.com")
    assert client.get("/admin/students").status_code == 200
    assert client.get("/admin/students/register").status_code == 403


def test_registration_wizard_survives_garbled_class_id(client, login, db):
    login("secretary@example.com")
    r = client.post("/admin/students/register", data=_payload(step="class", class_id="abc"))
    assert r.status_code == 200
    assert b'name="step" value="class"' in r.data
    assert b"Invalid class." in r.data

    r = client.post("/admin/students/register", data=_payload(step="confirm", class_id="abc", back="1"))
    assert r.status_code == 200
    assert db.query(Student).count() == 0
