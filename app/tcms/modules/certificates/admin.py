from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.tcms.db import db_session
from app.tcms.modules.certificates.models import BORDER_STYLES, FONT_FAMILIES, CertificateTemplate, IssuedCertificate
from app.tcms.modules.certificates.service import (
    SAMPLE_CONTEXT,
    certificate_context,
    certificate_eligibility,
    create_template,
    issue_certificate,
    render_message,
    set_template_active,
    update_template,
    validate_template_payload,
)
from app.tcms.modules.students.models import Student
from app.tcms.pagination import page_size, page_url_builder, paginate, parse_page_arg, search_filter
from app.tcms.rbac import require_permission
from app.tcms.utils import current_user, form_bool, parse_int

bp = Blueprint("certificates", __name__)


def _template_payload() -> dict:
    return {
        "name": request.form.get("name"),
        "message": request.form.get("message"),
        "logo_url": request.form.get("logo_url"),
        "background_color": (request.form.get("background_color") or "").strip(),
        "text_color": (request.form.get("text_color") or "").strip(),
        "border_style": request.form.get("border_style"),
        "font_family": request.form.get("font_family"),
        "include_dates": form_bool("include_dates"),
        "include_registration_number": form_bool("include_registration_number"),
        "additional_text": request.form.get("additional_text"),
    }


def _template_form(tpl: CertificateTemplate | None):
    return render_template(
        "admin/certificates/template_form.html",
        tpl=tpl,
        border_styles=BORDER_STYLES,
        font_families=FONT_FAMILIES,
    )


# ---------- Issued ----------
@bp.get("/certificates")
@require_permission("certificates.view")
def certificates_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    rows = s.query(IssuedCertificate).order_by(IssuedCertificate.issued_at.desc()).all()
    rows = search_filter(rows, search, "certificate_number", "student.registration_number", "student.user.profile.full_name")
    page = paginate(rows, parse_page_arg(), page_size())
    return render_template(
        "admin/certificates/list.html",
        page=page,
        search=search,
        build_url=page_url_builder("certificates.certificates_list"),
    )


@bp.get("/certificates/issue")
@require_permission("certificates.issue")
def certificate_issue_get():
    s = db_session()
    student_id = request.args.get("student_id", type=int)
    student = s.get(Student, student_id) if student_id else None
    eligibility = certificate_eligibility(s, student) if student else None
    return render_template(
        "admin/certificates/issue.html",
        student=student,
        eligibility=eligibility,
        students=s.query(Student).filter(Student.is_active.is_(True)).order_by(Student.registration_number.asc()).all(),
        templates=s.query(CertificateTemplate).filter(CertificateTemplate.is_active.is_(True)).order_by(CertificateTemplate.name.asc()).all(),
    )


@bp.post("/certificates/issue")
@require_permission("certificates.issue")
def certificate_issue_post():
    s = db_session()
    try:
        student = s.get(Student, parse_int(request.form.get("student_id") or None) or 0)
        template = s.get(CertificateTemplate, parse_int(request.form.get("template_id") or None) or 0)
    except ValueError:
        student = template = None
    if not student or not template:
        flash("Select a student and a template.", "danger")
        return redirect(url_for("certificates.certificate_issue_get"))

    try:
        cert, created = issue_certificate(s, student, template, current_user())
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("certificates.certificate_issue_get", student_id=student.id))
    s.commit()
    if created:
        flash(f"Certificate {cert.certificate_number} issued.", "success")
    else:
        flash(f"Certificate {cert.certificate_number} was already issued.", "info")
    return redirect(url_for("certificates.certificate_view", cert_id=cert.id))


@bp.get("/certificates/<int:cert_id>")
@require_permission("certificates.view")
def certificate_view(cert_id: int):
    s = db_session()
    cert = s.get(IssuedCertificate, cert_id)
    if not cert:
        abort(404)
    context = certificate_context(cert.student)
    return render_template(
        "admin/certificates/view.html",
        cert=cert,
        tpl=cert.template,
        context=context,
        body=render_message(cert.template.message, context),
    )


# ---------- Templates ----------
@bp.get("/certificates/templates")
@require_permission("certificates.templates")
def templates_list():
    s = db_session()
    templates = s.query(CertificateTemplate).order_by(CertificateTemplate.created_at.desc()).all()
    return render_template("admin/certificates/templates.html", templates=templates)


@bp.get("/certificates/templates/new")
@require_permission("certificates.templates")
def template_new_get():
    return _template_form(None)


@bp.post("/certificates/templates/new")
@require_permission("certificates.templates")
def template_new_post():
    s = db_session()
    payload = _template_payload()
    errors = validate_template_payload(payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("certificates.template_new_get"))
    tpl = create_template(s, payload, current_user())
    s.commit()
    flash(f"Template {tpl.name} created.", "success")
    return redirect(url_for("certificates.template_preview", template_id=tpl.id))


@bp.get("/certificates/templates/<int:template_id>/edit")
@require_permission("certificates.templates")
def template_edit_get(template_id: int):
    s = db_session()
    tpl = s.get(CertificateTemplate, template_id)
    if not tpl:
        abort(404)
    return _template_form(tpl)


@bp.post("/certificates/templates/<int:template_id>/edit")
@require_permission("certificates.templates")
def template_edit_post(template_id: int):
    s = db_session()
    tpl = s.get(CertificateTemplate, template_id)
    if not tpl:
        abort(404)
    payload = _template_payload()
    errors = validate_template_payload(payload)
    if errors:
        for err in errors:
            flash(err, "danger")
        return redirect(url_for("certificates.template_edit_get", template_id=template_id))
    update_template(s, tpl, payload, current_user())
    s.commit()
    flash("Template updated.", "success")
    return redirect(url_for("certificates.template_preview", template_id=tpl.id))


@bp.get("/certificates/templates/<int:template_id>/preview")
@require_permission("certificates.templates")
def template_preview(template_id: int):
    s = db_session()
    tpl = s.get(CertificateTemplate, template_id)
    if not tpl:
        abort(404)
    return render_template(
        "admin/certificates/view.html",
        cert=None,
        tpl=tpl,
        context=SAMPLE_CONTEXT,
        body=render_message(tpl.message, SAMPLE_CONTEXT),
    )


@bp.post("/certificates/templates/<int:template_id>/toggle")
@require_permission("certificates.templates")
def template_toggle(template_id: int):
    s = db_session()
    tpl = s.get(CertificateTemplate, template_id)
    if not tpl:
        abort(404)
    set_template_active(s, tpl, not tpl.is_active, current_user())
    s.commit()
    flash(f"Template {'activated' if tpl.is_active else 'deactivated'}.", "success")
    return redirect(url_for("certificates.templates_list"))
