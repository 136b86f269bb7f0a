from __future__ import annotations

import logging
import secrets
import string
from datetime import date, datetime
from typing import TYPE_CHECKING

from werkzeug.utils import secure_filename

from app.tcms.accounts import is_valid_email
from app.tcms.audit import record_event
from app.tcms.modules.careers.models import APPLICATION_TRANSITIONS, EMPLOYMENT_TYPES, WITHDRAWABLE_STATUSES
from app.tcms.storage import build_storage_key
from app.tcms.utils import clean_str, parse_csv_list, parse_date, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tcms.models import User
    from app.tcms.modules.careers.models import JobApplication, JobPosting

logger = logging.getLogger(__name__)

APPLICATION_KEY_LENGTH = 12
_KEY_ALPHABET = string.ascii_uppercase + string.digits


# ---------- Postings ----------


def validate_posting_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("title") or "").strip():
        errors.append("Title is required.")
    if not (payload.get("description") or "").strip():
        errors.append("Description is required.")
    if payload.get("employment_type") not in EMPLOYMENT_TYPES:
        errors.append(f"Employment type must be one of: {', '.join(EMPLOYMENT_TYPES)}")
    try:
        parse_date(payload.get("application_deadline"))
    except ValueError:
        errors.append("Deadline must be YYYY-MM-DD.")
    return errors


def _apply_posting(job: "JobPosting", payload: dict) -> None:
    job.title = payload["title"].strip()
    job.department = clean_str(payload.get("department"))
    job.location = clean_str(payload.get("location"))
    job.employment_type = payload["employment_type"]
    job.description = payload["description"].strip()
    job.requirements = clean_str(payload.get("requirements"))
    job.responsibilities = clean_str(payload.get("responsibilities"))
    job.skills = parse_csv_list(payload.get("skills"))
    job.salary_range = clean_str(payload.get("salary_range"))
    job.application_deadline = parse_date(payload.get("application_deadline"))
    job.updated_at = datetime.utcnow()


def create_posting(s: "Session", payload: dict, user: "User") -> "JobPosting":
    from app.tcms.modules.careers.models import JobPosting

    job = JobPosting(is_active=True, posted_by_user_id=user.id, created_at=datetime.utcnow())
    _apply_posting(job, payload)
    s.add(job)
    s.flush()
    record_event(
        s,
        actor=user,
        action="job_posting.create",
        entity_type="JobPosting",
        entity_id=str(job.id),
        metadata={"title": job.title},
    )
    s.flush()
    return job


def update_posting(s: "Session", job: "JobPosting", payload: dict, user: "User") -> "JobPosting":
    _apply_posting(job, payload)
    record_event(s, actor=user, action="job_posting.edit", entity_type="JobPosting", entity_id=str(job.id))
    s.flush()
    return job


def set_posting_active(s: "Session", job: "JobPosting", active: bool, user: "User") -> None:
    job.is_active = active
    job.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="job_posting.activate" if active else "job_posting.deactivate",
        entity_type="JobPosting",
        entity_id=str(job.id),
    )
    s.flush()


def delete_posting(s: "Session", job: "JobPosting", user: "User") -> bool:
    """Returns True when deleted, False when it had applications and was deactivated instead."""
    from app.tcms.modules.careers.models import JobApplication

    has_apps = s.query(JobApplication.id).filter(JobApplication.job_id == job.id).first() is not None
    if has_apps:
        set_posting_active(s, job, False, user)
        return False
    record_event(
        s,
        actor=user,
        action="job_posting.delete",
        entity_type="JobPosting",
        entity_id=str(job.id),
        metadata={"title": job.title},
    )
    s.delete(job)
    s.flush()
    return True


def is_open(job: "JobPosting", today: date | None = None) -> bool:
    today = today or date.today()
    return job.is_active and (job.application_deadline is None or job.application_deadline >= today)


def open_postings(s: "Session", today: date | None = None) -> list["JobPosting"]:
    from app.tcms.modules.careers.models import JobPosting

    today = today or date.today()
    return (
        s.query(JobPosting)
        .filter(
            JobPosting.is_active.is_(True),
            (JobPosting.application_deadline.is_(None)) | (JobPosting.application_deadline >= today),
        )
        .order_by(JobPosting.created_at.desc())
        .all()
    )


# ---------- Applications ----------


def generate_application_key(s: "Session") -> str:
    from app.tcms.modules.careers.models import JobApplication

    while True:
        key = "".join(secrets.choice(_KEY_ALPHABET) for _ in range(APPLICATION_KEY_LENGTH))
        if not s.query(JobApplication.id).filter(JobApplication.application_key == key).first():
            return key


def validate_application_payload(s: "Session", job: "JobPosting", payload: dict) -> list[str]:
    from app.tcms.modules.careers.models import JobApplication

    errors = []
    if not is_open(job):
        errors.append("This position is no longer accepting applications.")
    for field, label in (("first_name", "First name"), ("last_name", "Last name"), ("highest_degree", "Highest degree")):
        if not (payload.get(field) or "").strip():
            errors.append(f"{label} is required.")
    email = (payload.get("email") or "").strip().lower()
    if not email:
        errors.append("Email is required.")
    elif not is_valid_email(email):
        errors.append("Invalid email format.")
    else:
        dup = (
            s.query(JobApplication.id)
            .filter(
                JobApplication.job_id == job.id,
                JobApplication.email == email,
                JobApplication.status != "withdrawn",
            )
            .first()
        )
        if dup:
            errors.append("An application with this email already exists for this position.")
    try:
        years = parse_int(payload.get("experience_years"))
    except ValueError:
        errors.append("Experience must be a whole number of years.")
    else:
        if years is None:
            errors.append("Experience is required.")
        elif years < 0:
            errors.append("Experience cannot be negative.")
    return errors


def submit_application(
    s: "Session",
    job: "JobPosting",
    payload: dict,
    cv: tuple[bytes, str, str] | None = None,
) -> "JobApplication":
    """Public submission. `cv` is (file_bytes, filename, content_type) when attached."""
    from flask import current_app

    from app.tcms.modules.careers.models import JobApplication
    from app.tcms.storage import storage_from_config

    errors = validate_application_payload(s, job, payload)
    if errors:
        raise ValueError(" ".join(errors))

    now = datetime.utcnow()
    app_row = JobApplication(
        job_id=job.id,
        first_name=payload["first_name"].strip(),
        last_name=payload["last_name"].strip(),
        email=payload["email"].strip().lower(),
        phone=clean_str(payload.get("phone")),
        highest_degree=payload["highest_degree"].strip(),
        experience_years=parse_int(payload["experience_years"]),
        cover_letter=clean_str(payload.get("cover_letter")),
        application_key=generate_application_key(s),
        status="pending",
        created_at=now,
        updated_at=now,
    )
    if cv is not None:
        file_bytes, filename, content_type = cv
        key = build_storage_key("job_applications", app_row.application_key, filename)
        storage_from_config(current_app.config).put_bytes(key, file_bytes, content_type=content_type)
        app_row.cv_storage_key = key
        app_row.cv_filename = secure_filename(filename) or "cv.bin"
    s.add(app_row)
    s.flush()

    record_event(
        s,
        actor=None,
        action="job_application.submit",
        entity_type="JobApplication",
        entity_id=str(app_row.id),
        metadata={"job_id": job.id, "email": app_row.email, "has_cv": bool(app_row.cv_storage_key)},
    )
    logger.info("Application %s submitted for job %s", app_row.application_key, job.id)
    s.flush()
    return app_row


def application_by_key(s: "Session", key: str | None) -> "JobApplication | None":
    from app.tcms.modules.careers.models import JobApplication

    key = (key or "").strip().upper()
    if len(key) != APPLICATION_KEY_LENGTH:
        return None
    return s.query(JobApplication).filter(JobApplication.application_key == key).one_or_none()


def withdraw_application(s: "Session", app_row: "JobApplication") -> "JobApplication":
    if app_row.status not in WITHDRAWABLE_STATUSES:
        raise ValueError(f"Application can no longer be withdrawn (status: {app_row.status}).")
    app_row.status = "withdrawn"
    app_row.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=None,
        action="job_application.withdraw",
        entity_type="JobApplication",
        entity_id=str(app_row.id),
    )
    s.flush()
    return app_row


def review_application(
    s: "Session", app_row: "JobApplication", new_status: str, user: "User", notes: str | None = None
) -> "JobApplication":
    allowed = APPLICATION_TRANSITIONS.get(app_row.status, ())
    if new_status not in allowed:
        raise ValueError(f"Cannot move application from {app_row.status} to {new_status}.")
    old = app_row.status
    app_row.status = new_status
    app_row.admin_notes = clean_str(notes) or app_row.admin_notes
    app_row.reviewed_by_user_id = user.id
    app_row.reviewed_at = datetime.utcnow()
    app_row.updated_at = app_row.reviewed_at
    record_event(
        s,
        actor=user,
        action="job_application.review",
        entity_type="JobApplication",
        entity_id=str(app_row.id),
        metadata={"from": old, "to": new_status},
    )
    s.flush()
    return app_row
