"""Public careers pages: open postings, apply, status lookup and withdrawal by key."""
from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.tcms.db import db_session
from app.tcms.modules.careers.models import JobPosting
from app.tcms.modules.careers.service import (
    application_by_key,
    is_open,
    open_postings,
    submit_application,
    withdraw_application,
)

bp = Blueprint("careers_public", __name__)

MAX_CV_BYTES = 5 * 1024 * 1024
ALLOWED_CV_EXTENSIONS = (".pdf", ".doc", ".docx")


@bp.get("/careers")
def careers_index():
    s = db_session()
    return render_template("public/careers/index.html", jobs=open_postings(s))


@bp.get("/careers/<int:job_id>")
def careers_job(job_id: int):
    s = db_session()
    job = s.get(JobPosting, job_id)
    if not job or not is_open(job):
        abort(404)
    return render_template("public/careers/job.html", job=job)


@bp.post("/careers/<int:job_id>/apply")
def careers_apply(job_id: int):
    s = db_session()
    job = s.get(JobPosting, job_id)
    if not job:
        abort(404)
    payload = {
        "first_name": request.form.get("first_name"),
        "last_name": request.form.get("last_name"),
        "email": request.form.get("email"),
        "phone": request.form.get("phone"),
        "highest_degree": request.form.get("highest_degree"),
        "experience_years": request.form.get("experience_years"),
        "cover_letter": request.form.get("cover_letter"),
    }

    cv = None
    f = request.files.get("cv")
    if f and f.filename:
        if not f.filename.lower().endswith(ALLOWED_CV_EXTENSIONS):
            flash("CV must be a PDF or Word document.", "danger")
            return redirect(url_for("careers_public.careers_job", job_id=job_id))
        data = f.read()
        if len(data) > MAX_CV_BYTES:
            flash("CV too large (max 5MB).", "danger")
            return redirect(url_for("careers_public.careers_job", job_id=job_id))
        cv = (data, f.filename, f.mimetype or "application/octet-stream")

    try:
        app_row = submit_application(s, job, payload, cv=cv)
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        if not is_open(job):
            return redirect(url_for("careers_public.careers_index"))
        return redirect(url_for("careers_public.careers_job", job_id=job_id))
    s.commit()
    return render_template("public/careers/submitted.html", application=app_row, job=job)


@bp.get("/careers/status")
def careers_status():
    s = db_session()
    key = (request.args.get("key") or "").strip()
    application = application_by_key(s, key) if key else None
    if key and application is None:
        flash("No application found for that key.", "danger")
    return render_template("public/careers/status.html", key=key, application=application)


@bp.post("/careers/status/withdraw")
def careers_withdraw():
    s = db_session()
    key = (request.form.get("key") or "").strip()
    application = application_by_key(s, key)
    if application is None:
        flash("No application found for that key.", "danger")
        return redirect(url_for("careers_public.careers_status"))
    try:
        withdraw_application(s, application)
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("careers_public.careers_status", key=key))
    s.commit()
    flash("Your application has been withdrawn.", "success")
    return redirect(url_for("careers_public.careers_status", key=key))
