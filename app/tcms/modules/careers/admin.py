from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, send_file, url_for

from app.tcms.db import db_session
from app.tcms.modules.careers.models import (
    APPLICATION_STATUSES,
    APPLICATION_TRANSITIONS,
    EMPLOYMENT_TYPES,
    JobApplication,
    JobPosting,
)
from app.tcms.modules.careers.service import (
    create_posting,
    delete_posting,
    review_application,
    set_posting_active,
    update_posting,
    validate_posting_payload,
)
from app.tcms.pagination import page_size, page_url_builder, paginate, parse_page_arg, search_filter
from app.tcms.rbac import require_permission
from app.tcms.storage import StorageError, storage_from_config
from app.tcms.utils import current_user

bp = Blueprint("careers", __name__)


def _posting_payload() -> dict:
    return {
        "title": request.form.get("title"),
        "department": request.form.get("department"),
        "location": request.form.get("location"),
        "employment_type": request.form.get("employment_type"),
        "description": request.form.get("description"),
        "requirements": request.form.get("requirements"),
        "responsibilities": request.form.get("responsibilities"),
        "skills": request.form.get("skills"),
        "salary_range": request.form.get("salary_range"),
        "application_deadline": request.form.get("application_deadline"),
    }


def _posting_form(job: JobPosting | None):
    return render_template("admin/careers/posting_form.html", job=job, employment_types=EMPLOYMENT_TYPES)


# ---------- Postings ----------
@bp.get("/careers/postings")
@require_permission("careers.view")
def postings_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    rows = search_filter(
        s.query(JobPosting).order_by(JobPosting.created_at.desc()).all(), search, "title", "department", "location"
    )
    page = paginate(rows, parse_page_arg(), page_size())
    return render_template(
        "admin/careers/postings_list.html",
        page=page,
        search=search,
        build_url=page_url_builder("careers.postings_list"),
    )


@bp.get("/careers/postings/new")
@require_permission("careers.edit")
def posting_new_get():
    return _posting_form(None)


@bp.post("/careers/postings/new")
@require_permission("careers.edit")
def posting_new_post():
    s = db_session()
    payload = _posting_payload()
    errors = validate_posting_payload(payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("careers.posting_new_get"))
    job = create_posting(s, payload, current_user())
    s.commit()
    flash(f"Posting '{job.title}' created.", "success")
    return redirect(url_for("careers.postings_list"))


@bp.get("/careers/postings/<int:job_id>/edit")
@require_permission("careers.edit")
def posting_edit_get(job_id: int):
    s = db_session()
    job = s.get(JobPosting, job_id)
    if not job:
        abort(404)
    return _posting_form(job)


@bp.post("/careers/postings/<int:job_id>/edit")
@require_permission("careers.edit")
def posting_edit_post(job_id: int):
    s = db_session()
    job = s.get(JobPosting, job_id)
    if not job:
        abort(404)
    payload = _posting_payload()
    errors = validate_posting_payload(payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("careers.posting_edit_get", job_id=job_id))
    update_posting(s, job, payload, current_user())
    s.commit()
    flash("Posting updated.", "success")
    return redirect(url_for("careers.postings_list"))


@bp.post("/careers/postings/<int:job_id>/toggle")
@require_permission("careers.edit")
def posting_toggle(job_id: int):
    s = db_session()
    job = s.get(JobPosting, job_id)
    if not job:
        abort(404)
    set_posting_active(s, job, not job.is_active, current_user())
    s.commit()
    flash(f"Posting {'activated' if job.is_active else 'deactivated'}.", "success")
    return redirect(url_for("careers.postings_list"))


@bp.post("/careers/postings/<int:job_id>/delete")
@require_permission("careers.edit")
def posting_delete(job_id: int):
    s = db_session()
    job = s.get(JobPosting, job_id)
    if not job:
        abort(404)
    deleted = delete_posting(s, job, current_user())
    s.commit()
    if deleted:
        flash("Posting deleted.", "success")
    else:
        flash("Posting has applications; it was deactivated instead.", "warning")
    return redirect(url_for("careers.postings_list"))


# ---------- Applications ----------
@bp.get("/careers/applications")
@require_permission("careers.view")
def applications_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    status_filter = (request.args.get("status") or "").strip()
    job_filter = request.args.get("job_id", type=int)

    q = s.query(JobApplication)
    if status_filter:
        q = q.filter(JobApplication.status == status_filter)
    if job_filter:
        q = q.filter(JobApplication.job_id == job_filter)
    rows = search_filter(
        q.order_by(JobApplication.created_at.desc()).all(), search, "first_name", "last_name", "email"
    )
    page = paginate(rows, parse_page_arg(), page_size())
    return render_template(
        "admin/careers/applications_list.html",
        page=page,
        search=search,
        status_filter=status_filter,
        job_filter=job_filter,
        statuses=APPLICATION_STATUSES,
        jobs=s.query(JobPosting).order_by(JobPosting.title.asc()).all(),
        build_url=page_url_builder("careers.applications_list"),
    )


@bp.get("/careers/applications/<int:application_id>")
@require_permission("careers.view")
def application_detail(application_id: int):
    s = db_session()
    app_row = s.get(JobApplication, application_id)
    if not app_row:
        abort(404)
    return render_template(
        "admin/careers/application_detail.html",
        application=app_row,
        next_statuses=APPLICATION_TRANSITIONS.get(app_row.status, ()),
    )


@bp.post("/careers/applications/<int:application_id>/review")
@require_permission("careers.review")
def application_review(application_id: int):
    s = db_session()
    app_row = s.get(JobApplication, application_id)
    if not app_row:
        abort(404)
    try:
        review_application(
            s, app_row, (request.form.get("status") or "").strip(), current_user(), request.form.get("admin_notes")
        )
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("careers.application_detail", application_id=application_id))
    s.commit()
    flash(f"Application marked {app_row.status.replace('_', ' ')}.", "success")
    return redirect(url_for("careers.application_detail", application_id=application_id))


@bp.get("/careers/applications/<int:application_id>/cv")
@require_permission("careers.view")
def application_cv(application_id: int):
    s = db_session()
    app_row = s.get(JobApplication, application_id)
    if not app_row or not app_row.cv_storage_key:
        abort(404)
    try:
        fobj = storage_from_config(current_app.config).open(app_row.cv_storage_key)
    except StorageError:
        abort(404)
    return send_file(fobj, as_attachment=True, download_name=app_row.cv_filename or "cv", max_age=0)
