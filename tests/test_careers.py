import io
import re
from datetime import date, timedelta

import pytest

from app.tcms.modules.careers.models import JobApplication, JobPosting
from app.tcms.modules.careers.service import (
    application_by_key,
    create_posting,
    delete_posting,
    is_open,
    open_postings,
    review_application,
    set_posting_active,
    submit_application,
    validate_application_payload,
    validate_posting_payload,
    withdraw_application,
)


def _posting(db, staff, title="Junior Trainer", **overrides):
    payload = {
        "title": title,
        "department": "Training",
        "location": "Kigali",
        "employment_type": "full-time",
        "description": "Teach L4 software classes.",
        "skills": "python, teaching , ,git",
    }
    payload.update(overrides)
    return create_posting(db, payload, staff("secretary"))


def _applicant(**overrides):
    payload = {
        "first_name": "Eric",
        "last_name": "Mugisha",
        "email": "Eric.Mugisha@example.com",
        "phone": "0788000111",
        "highest_degree": "BSc Computer Science",
        "experience_years": "3",
        "cover_letter": "I enjoy teaching.",
    }
    payload.update(overrides)
    return payload


def test_validate_posting_payload():
    assert validate_posting_payload({"title": "", "description": "", "employment_type": "gig"}) == [
        "Title is required.",
        "Description is required.",
        "Employment type must be one of: full-time, part-time, contract, internship",
    ]
    assert "Deadline must be YYYY-MM-DD." in validate_posting_payload(
        {"title": "T", "description": "D", "employment_type": "contract", "application_deadline": "soon"}
    )


def test_posting_open_window(db, staff):
    job = _posting(db, staff)
    assert job.skills == ["python", "teaching", "git"]
    expired = _posting(db, staff, title="Old", application_deadline=(date.today() - timedelta(days=1)).isoformat())
    hidden = _posting(db, staff, title="Hidden")
    set_posting_active(db, hidden, False, staff("secretary"))
    db.flush()

    assert is_open(job) is True
    assert is_open(expired) is False
    assert is_open(expired, today=date.today() - timedelta(days=5)) is True
    assert [j.title for j in open_postings(db)] == ["Junior Trainer"]


def test_application_validation(db, staff, app):
    job = _posting(db, staff)
    db.flush()
    errors = validate_application_payload(db, job, _applicant(first_name="", email="nope", experience_years="-1"))
    assert errors == ["First name is required.", "Invalid email format.", "Experience cannot be negative."]
    assert "Experience must be a whole number of years." in validate_application_payload(
        db, job, _applicant(experience_years="a few")
    )

    with app.app_context():
        submit_application(db, job, _applicant())
    assert validate_application_payload(db, job, _applicant(email="eric.mugisha@example.com")) == [
        "An application with this email already exists for this position."
    ]

    set_posting_active(db, job, False, staff("secretary"))
    assert "This position is no longer accepting applications." in validate_application_payload(
        db, job, _applicant(email="other@example.com")
    )


def test_submit_withdraw_and_reapply(db, staff, app):
    job = _posting(db, staff)
    db.flush()
    with app.app_context():
        application = submit_application(db, job, _applicant())
    assert application.email == "eric.mugisha@example.com"
    assert application.status == "pending"
    assert re.fullmatch(r"[A-Z0-9]{12}", application.application_key)

    assert application_by_key(db, application.application_key.lower()).id == application.id
    assert application_by_key(db, "short") is None

    withdraw_application(db, application)
    assert application.status == "withdrawn"
    with pytest.raises(ValueError, match="can no longer be withdrawn"):
        withdraw_application(db, application)

    # a withdrawn application does not block a fresh one
    assert validate_application_payload(db, job, _applicant()) == []


def test_review_transitions(db, staff, app):
    job = _posting(db, staff)
    db.flush()
    with app.app_context():
        application = submit_application(db, job, _applicant())

    review_application(db, application, "under_review", staff("admin"), "Shortlisted")
    assert application.admin_notes == "Shortlisted"
    review_application(db, application, "accepted", staff("admin"))
    assert application.status == "accepted"
    assert application.admin_notes == "Shortlisted"
    assert application.reviewed_by_user_id == staff("admin").id

    with pytest.raises(ValueError, match="from accepted to rejected"):
        review_application(db, application, "rejected", staff("admin"))
    with pytest.raises(ValueError, match="can no longer be withdrawn"):
        withdraw_application(db, application)


def test_delete_posting_deactivates_when_applied(db, staff, app):
    empty = _posting(db, staff, title="Empty")
    busy = _posting(db, staff, title="Busy")
    db.flush()
    with app.app_context():
        submit_application(db, busy, _applicant())

    assert delete_posting(db, empty, staff("secretary")) is True
    assert delete_posting(db, busy, staff("secretary")) is False
    db.flush()
    assert db.query(JobPosting).count() == 1
    assert busy.is_active is False


def test_public_apply_with_cv_and_status(client, login, db, staff):
    job = _posting(db, staff, title="Finance Officer")
    db.commit()

    r = client.get("/careers")
    assert r.status_code == 200
    assert b"Finance Officer" in r.data

    r = client.post(
        f"/careers/{job.id}/apply",
        data=dict(_applicant(), cv=(io.BytesIO(b"fake exe"), "cv.exe")),
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert b"CV must be a PDF or Word document." in r.data
    assert db.query(JobApplication).count() == 0

    r = client.post(
        f"/careers/{job.id}/apply",
        data=dict(_applicant(), cv=(io.BytesIO(b"%PDF-1.4 my cv"), "My CV.pdf")),
        content_type="multipart/form-data",
    )
    assert r.status_code == 200
    assert b"Application received" in r.data
    application = db.query(JobApplication).one()
    assert application.cv_filename == "My_CV.pdf"
    assert application.application_key.encode() in r.data

    r = client.get(f"/careers/status?key={application.application_key}")
    assert b"pending" in r.data
    r = client.get("/careers/status?key=ZZZZZZZZZZZZ")
    assert b"No application found for that key." in r.data

    r = client.post("/careers/status/withdraw", data={"key": application.application_key}, follow_redirects=True)
    assert b"Your application has been withdrawn." in r.data
    db.expire_all()
    assert db.get(JobApplication, application.id).status == "withdrawn"

    # staff can download the stored CV
    assert login("secretary@example.com").status_code == 302
    r = client.get(f"/admin/careers/applications/{application.id}/cv")
    assert r.status_code == 200
    assert r.data == b"%PDF-1.4 my cv"


def test_closed_posting_is_hidden(client, db, staff):
    job = _posting(db, staff, title="Closed Role")
    set_posting_active(db, job, False, staff("secretary"))
    db.commit()
    assert client.get(f"/careers/{job.id}").status_code == 404
    r = client.post(f"/careers/{job.id}/apply", data=_applicant(), follow_redirects=True)
    assert r.status_code == 200
    assert b"This position is no longer accepting applications." in r.data


def test_admin_review_and_delete_routes(client, login, db, staff, app):
    job = _posting(db, staff, title="IT Support")
    with app.app_context():
        application = submit_application(db, job, _applicant())
    db.commit()

    login("secretary@example.com")
    assert client.get("/admin/careers/postings").status_code == 200
    r = client.get(f"/admin/careers/applications/{application.id}")
    assert r.status_code == 200
    assert b"Eric" in r.data
    # secretaries manage postings but only the administrator decides
    assert client.post(
        f"/admin/careers/applications/{application.id}/review", data={"status": "accepted"}
    ).status_code == 403

    client.get("/auth/logout")
    login()
    r = client.post(
        f"/admin/careers/applications/{application.id}/review",
        data={"status": "under_review", "admin_notes": "Call Monday"},
        follow_redirects=True,
    )
    assert b"Application marked under review." in r.data

    r = client.post(f"/admin/careers/postings/{job.id}/delete", follow_redirects=True)
    assert b"it was deactivated instead." in r.data
