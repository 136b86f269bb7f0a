from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.tcms.modules.academics.models import Program, TrainingClass
from app.tcms.modules.academics.service import (
    available_classes,
    fee_for,
    fees_due,
    pick_fee_structure,
    release_seat,
    reserve_seat,
    set_class_active,
    update_class,
    update_program,
    validate_class_payload,
    validate_fee_payload,
    validate_program_payload,
)


def _fee(level, active=True, reg="1000", intern="5000"):
    return SimpleNamespace(level=level, is_active=active, registration_fee=Decimal(reg), internship_fee=Decimal(intern))


def test_validate_program_payload():
    errors = validate_program_payload(
        {"name": "", "start_date": "2026-06-01", "end_date": "2026-01-01", "eligible_levels": []}
    )
    assert "Program name is required." in errors
    assert "End date must be on or after the start date." in errors
    assert "Select at least one eligible level." in errors

    assert validate_program_payload({"name": "X", "start_date": "bad", "end_date": "", "eligible_levels": ["L3"]}) == [
        "Dates must be YYYY-MM-DD."
    ]
    assert "Invalid level(s): L9" in validate_program_payload(
        {"name": "X", "start_date": "2026-01-01", "end_date": "2026-02-01", "eligible_levels": ["L9"]}
    )


def test_pick_fee_structure_prefers_exact_level():
    generic = _fee(None)
    l4 = _fee("L4")
    inactive_l5 = _fee("L5", active=False)
    assert pick_fee_structure([generic, l4], "L4") is l4
    assert pick_fee_structure([generic, l4], "L3") is generic
    assert pick_fee_structure([inactive_l5], "L5") is None
    assert pick_fee_structure([], "L4") is None


def test_fee_for_and_fees_due(db, make_program, make_fee):
    program = make_program()
    generic = make_fee(program, registration="10000", internship="40000")
    l5 = make_fee(program, level="L5", registration="15000", internship="60000")
    db.flush()

    assert fee_for(db, program.id, "L5").id == l5.id
    assert fee_for(db, program.id, "L3").id == generic.id
    assert fee_for(db, None, "L3") is None
    assert fees_due(fee_for(db, program.id, "L5")) == Decimal("75000")
    assert fees_due(None) == Decimal("0")


def test_validate_fee_payload(db):
    errors = validate_fee_payload(
        db,
        {"name": "", "level": "L7", "registration_fee": "-1", "internship_fee": "abc"},
    )
    assert "Fee structure name is required." in errors
    assert "Level must be one of: L3, L4, L5" in errors
    assert "Registration fee cannot be negative." in errors
    assert "Internship fee must be a number." in errors
    assert validate_fee_payload(
        db, {"name": "Fees", "registration_fee": "1", "internship_fee": "1", "program_id": "two"}
    ) == ["Invalid program."]


def test_reserve_seat_rules():
    klass = TrainingClass(name="L4 Morning", level="L4", shift="morning", max_capacity=1, current_enrollment=0, is_active=True)
    with pytest.raises(ValueError, match="is for level L4, not L3"):
        reserve_seat(klass, "L3")

    reserve_seat(klass, "L4")
    assert klass.current_enrollment == 1
    assert klass.seats_left == 0
    with pytest.raises(ValueError, match="is full"):
        reserve_seat(klass, "L4")

    release_seat(klass)
    release_seat(klass)
    assert klass.current_enrollment == 0

    klass.is_active = False
    with pytest.raises(ValueError, match="is not active"):
        reserve_seat(klass, "L4")


def test_validate_class_payload(db, staff, make_program, make_class, make_student):
    program = make_program(eligible_levels=["L3"])
    db.flush()
    errors = validate_class_payload(
        db,
        {
            "name": "Bad",
            "level": "L4",
            "shift": "night",
            "max_capacity": "0",
            "program_id": str(program.id),
            "trainer_user_id": str(staff("finance").id),
        },
    )
    assert "Shift must be one of: morning, afternoon" in errors
    assert "Max capacity must be at least 1." in errors
    assert f"Level L4 is not eligible for program {program.name}." in errors
    assert "Selected trainer does not hold the trainer role." in errors

    ok = {
        "name": "L3 Morning",
        "level": "L3",
        "shift": "morning",
        "max_capacity": "20",
        "program_id": str(program.id),
        "trainer_user_id": str(staff("trainer").id),
    }
    assert validate_class_payload(db, ok) == []

    klass = make_class(level="L3", name="L3 Morning", max_capacity="3")
    make_student(klass, level="L3")
    make_student(klass, level="L3")
    db.flush()
    errors = validate_class_payload(db, dict(ok, max_capacity="1"), existing=klass)
    assert errors == ["Max capacity cannot be below current enrollment (2)."]

    errors = validate_class_payload(db, dict(ok, program_id="abc", trainer_user_id="x1"))
    assert errors == ["Invalid program.", "Invalid trainer."]


def test_enrolled_class_keeps_level_and_stays_active(db, staff, make_class, make_student):
    klass = make_class()
    make_student(klass)
    db.flush()
    payload = {"name": klass.name, "level": "L5", "shift": "morning", "max_capacity": "2"}
    with pytest.raises(ValueError, match="Cannot change the level"):
        update_class(db, klass, payload, staff("admin"))
    with pytest.raises(ValueError, match="Transfer enrolled students"):
        set_class_active(db, klass, False, staff("admin"))


def test_update_program_keeps_levels_of_active_classes(db, staff, make_program, make_class):
    program = make_program()
    make_class(program, level="L4")
    db.flush()
    db.expire_all()
    program = db.get(Program, program.id)
    payload = {
        "name": program.name,
        "start_date": program.start_date,
        "end_date": program.end_date,
        "eligible_levels": ["L3", "L5"],
    }
    with pytest.raises(ValueError, match="L4"):
        update_program(db, program, payload, staff("admin"))

    update_program(db, program, dict(payload, eligible_levels=["L4", "L5"], name="Renamed"), staff("admin"))
    assert program.eligible_levels == ["L4", "L5"]
    assert program.name == "Renamed"


def test_available_classes_filters_level_shift_and_capacity(db, make_class, make_student):
    morning = make_class(name="A L4 Morning", max_capacity="1")
    afternoon = make_class(name="B L4 Afternoon", shift="afternoon")
    make_class(name="C L3 Morning", level="L3")
    make_student(morning)
    db.flush()

    assert [c.name for c in available_classes(db, "L4", None)] == [afternoon.name]
    assert available_classes(db, "L4", "morning") == []
    assert len(available_classes(db, None, None)) == 2


def test_program_and_class_routes(client, login, db, staff):
    login("secretary@example.com")
    # secretaries view programs but cannot create them
    assert client.get("/admin/programs").status_code == 200
    assert client.get("/admin/programs/new").status_code == 403

    client.get("/auth/logout")
    login()
    r = client.post(
        "/admin/programs/new",
        data={
            "name": "Networking",
            "start_date": "2026-01-05",
            "end_date": "2026-06-30",
            "eligible_levels": ["L4", "L5"],
        },
    )
    assert r.status_code == 302
    program = db.query(Program).filter(Program.name == "Networking").one()
    assert program.eligible_levels == ["L4", "L5"]
    assert program.start_date == date(2026, 1, 5)

    r = client.post(
        "/admin/classes/new",
        data={
            "name": "Net L3",
            "level": "L3",
            "shift": "morning",
            "max_capacity": "10",
            "program_id": str(program.id),
        },
        follow_redirects=True,
    )
    assert b"Level L3 is not eligible for program Networking." in r.data

    r = client.post(
        "/admin/classes/new",
        data={
            "name": "Net L4",
            "level": "L4",
            "shift": "afternoon",
            "max_capacity": "10",
            "program_id": str(program.id),
            "trainer_user_id": str(staff("trainer").id),
        },
    )
    assert r.status_code == 302
    klass = db.query(TrainingClass).filter(TrainingClass.name == "Net L4").one()
    assert klass.trainer_user_id == staff("trainer").id

    r = client.get(f"/admin/classes/{klass.id}")
    assert r.status_code == 200
    assert b"Net L4" in r.data

    r = client.get("/admin/classes?level=L4")
    assert b"Net L4" in r.data


def test_fee_routes(client, login, db, make_program):
    program = make_program(name="Web Design")
    db.commit()
    login("finance@example.com")
    r = client.post(
        "/admin/fees/new",
        data={
            "name": "Web Design L4",
            "program_id": str(program.id),
            "level": "L4",
            "registration_fee": "10,000",
            "internship_fee": "45000",
        },
    )
    assert r.status_code == 302
    fee = fee_for(db, program.id, "L4")
    assert fee.total == Decimal("55000")

    r = client.get("/admin/fees")
    assert r.status_code == 200
    assert b"Web Design L4" in r.data
