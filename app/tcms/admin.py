"""
Dashboard home, period reports, the signed-in user's own profile, account
management and the audit trail. Feature screens live in their module blueprints.
"""
from datetime import date, datetime, time, timedelta

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for
from sqlalchemy import func

from app.tcms.accounts import create_account, reset_password, set_account_access, update_profile
from app.tcms.constants import LEVELS, ROLE_LABELS, ROLES
from app.tcms.db import db_session
from app.tcms.models import AuditEvent, User
from app.tcms.pagination import page_size, page_url_builder, paginate, parse_page_arg, search_filter
from app.tcms.rbac import require_permission, user_has_permission
from app.tcms.utils import current_user, parse_date, parse_date_arg

bp = Blueprint("admin", __name__)

AUDIT_LIMIT = 200


def dashboard_stats(s, user: User, today: date | None = None) -> dict:
    """Counters shown on the dashboard, limited to what the user may see."""
    from app.tcms.modules.academics.models import Program, TrainingClass
    from app.tcms.modules.attendance.service import recent_attendance_rate
    from app.tcms.modules.finance.service import collected_since
    from app.tcms.modules.students.models import Student

    today = today or date.today()
    counters = (
        ("students.view", "active_students", Student),
        ("classes.view", "active_classes", TrainingClass),
        ("programs.view", "active_programs", Program),
    )
    stats: dict = {}
    for perm, key, model in counters:
        if user_has_permission(user, perm):
            stats[key] = s.query(model).filter(model.is_active.is_(True)).count()
    if user_has_permission(user, "attendance.view"):
        stats["attendance_rate"] = recent_attendance_rate(s, days=7, today=today)
    if user_has_permission(user, "finance.view"):
        stats["collected_this_month"] = collected_since(s, today.replace(day=1))
    return stats


REPORT_PRESETS = ("today", "week", "month", "quarter", "year", "custom")


def report_period(
    preset: str, start: date | None = None, end: date | None = None, today: date | None = None
) -> tuple[date, date]:
    """Inclusive (start, end) for a report preset; "week" is the last seven days."""
    today = today or date.today()
    if preset == "today":
        return today, today
    if preset == "week":
        return today - timedelta(days=7), today
    if preset == "month":
        first = today.replace(day=1)
        return first, _month_end(first)
    if preset == "quarter":
        first = today.replace(month=(today.month - 1) // 3 * 3 + 1, day=1)
        return first, _month_end(first.replace(month=first.month + 2))
    if preset == "year":
        return today.replace(month=1, day=1), today.replace(month=12, day=31)
    if preset == "custom":
        if not start or not end:
            raise ValueError("Custom reports need a start and an end date.")
        if end < start:
            raise ValueError("End date must be on or after the start date.")
        return start, end
    raise ValueError(f"Period must be one of: {', '.join(REPORT_PRESETS)}")


def _month_end(first: date) -> date:
    following = (first.replace(day=28) + timedelta(days=4)).replace(day=1)
    return following - timedelta(days=1)


def report_stats(s, start: date, end: date) -> dict:
    from app.tcms.modules.academics.models import Program, TrainingClass
    from app.tcms.modules.attendance.models import Attendance
    from app.tcms.modules.attendance.service import attendance_rate
    from app.tcms.modules.finance.models import Payment
    from app.tcms.modules.finance.service import payment_stats
    from app.tcms.modules.students.models import Student

    payments = (
        s.query(Payment)
        .filter(
            Payment.created_at >= datetime.combine(start, time.min),
            Payment.created_at < datetime.combine(end + timedelta(days=1), time.min),
        )
        .all()
    )
    attendance = s.query(Attendance).filter(Attendance.date >= start, Attendance.date <= end).all()

    by_level = {level: 0 for level in LEVELS}
    rows = (
        s.query(Student.level, func.count(Student.id))
        .filter(Student.is_active.is_(True))
        .group_by(Student.level)
        .all()
    )
    for level, count in rows:
        by_level[level] = count

    return {
        "start": start,
        "end": end,
        "students": s.query(Student).filter(Student.is_active.is_(True)).count(),
        "classes": s.query(TrainingClass).filter(TrainingClass.is_active.is_(True)).count(),
        "programs": s.query(Program).count(),
        "payments": payment_stats(payments),
        "attendance_records": len(attendance),
        "attendance_rate": attendance_rate(attendance),
        "students_by_level": by_level,
    }


def _get_user_or_404(s, user_id: int) -> User:
    user = s.get(User, user_id)
    if user is None:
        abort(404)
    return user


@bp.get("/")
@require_permission("admin.view")
def index():
    from app.tcms.modules.notices.service import visible_notices

    s = db_session()
    u = current_user()
    return render_template("admin/index.html", stats=dashboard_stats(s, u), notices=visible_notices(s, u, limit=5))


@bp.get("/reports")
@require_permission("reports.view")
def reports():
    s = db_session()
    preset = (request.args.get("period") or "month").strip()
    start_arg, end_arg = parse_date_arg("start"), parse_date_arg("end")
    try:
        start, end = report_period(preset, start_arg, end_arg)
    except ValueError as e:
        flash(str(e), "danger")
        preset = "month"
        start, end = report_period(preset)
    return render_template(
        "admin/reports.html",
        report=report_stats(s, start, end),
        preset=preset,
        presets=REPORT_PRESETS,
    )


@bp.get("/me")
@require_permission("admin.view")
def me():
    u = current_user()
    return render_template(
        "admin/me.html",
        user=u,
        role_keys=sorted(u.role_keys),
        perm_keys=sorted({p.key for r in u.roles for p in r.permissions}),
        role_labels=ROLE_LABELS,
    )


@bp.post("/me")
@require_permission("admin.view")
def me_update():
    s = db_session()
    try:
        update_profile(s, current_user(), request.form)
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
    else:
        s.commit()
        flash("Profile updated.", "success")
    return redirect(url_for("admin.me"))


def _audit_filters() -> tuple[dict, list[str]]:
    raw = {k: (request.args.get(k) or "").strip() for k in ("action", "actor_email", "date_from", "date_to")}
    filters: dict = {"action": raw["action"], "actor_email": raw["actor_email"].lower()}
    problems = []
    for key in ("date_from", "date_to"):
        try:
            filters[key] = parse_date(raw[key])
        except ValueError:
            filters[key] = None
            problems.append(f"{key} must be YYYY-MM-DD")
    return filters, problems


def filter_audit_events(q, filters: dict):
    if filters.get("action"):
        q = q.filter(AuditEvent.action.like(f"%{filters['action']}%"))
    if filters.get("actor_email"):
        q = q.filter(AuditEvent.actor_user_email.like(f"%{filters['actor_email']}%"))
    if filters.get("date_from"):
        q = q.filter(AuditEvent.created_at >= datetime.combine(filters["date_from"], time.min))
    if filters.get("date_to"):
        # inclusive of the whole end day
        q = q.filter(AuditEvent.created_at < datetime.combine(filters["date_to"] + timedelta(days=1), time.min))
    return q


@bp.get("/audit")
@require_permission("admin.edit")
def audit_list():
    s = db_session()
    filters, problems = _audit_filters()
    for msg in problems:
        flash(msg, "danger")
    events = (
        filter_audit_events(s.query(AuditEvent), filters)
        .order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
        .limit(AUDIT_LIMIT)
        .all()
    )
    return render_template(
        "admin/audit/list.html",
        events=events,
        action=filters["action"],
        actor_email=(request.args.get("actor_email") or "").strip(),
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )


# --- accounts (admin only) -------------------------------------------------


@bp.get("/accounts")
@require_permission("admin.edit")
def accounts_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    role_filter = (request.args.get("role") or "").strip()
    users = s.query(User).order_by(User.email.asc()).all()
    if role_filter:
        users = [u for u in users if role_filter in u.role_keys]
    rows = search_filter(users, search, "email", "profile.full_name", "profile.phone")
    return render_template(
        "admin/accounts/list.html",
        page=paginate(rows, parse_page_arg(), page_size()),
        search=search,
        role_filter=role_filter,
        roles=ROLES,
        role_labels=ROLE_LABELS,
        build_url=page_url_builder("admin.accounts_list"),
    )


@bp.get("/accounts/new")
@require_permission("admin.edit")
def accounts_new_get():
    return render_template("admin/accounts/new.html", roles=ROLES, role_labels=ROLE_LABELS)


@bp.post("/accounts/new")
@require_permission("admin.edit")
def accounts_new_post():
    s = db_session()
    payload = {k: request.form.get(k) for k in ("email", "full_name", "phone")}
    payload["password"] = request.form.get("password") or ""
    payload["password_confirm"] = request.form.get("password_confirm") or ""
    payload["roles"] = request.form.getlist("roles")
    try:
        user = create_account(s, payload, current_user())
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("admin.accounts_new_get"))
    s.commit()
    flash(f"Account created for {user.email}.", "success")
    return redirect(url_for("admin.accounts_list"))


@bp.get("/accounts/<int:user_id>")
@require_permission("admin.edit")
def accounts_detail(user_id: int):
    account = _get_user_or_404(db_session(), user_id)
    return render_template("admin/accounts/detail.html", account=account, roles=ROLES, role_labels=ROLE_LABELS)


@bp.post("/accounts/<int:user_id>/update")
@require_permission("admin.edit")
def accounts_update(user_id: int):
    s = db_session()
    account = _get_user_or_404(s, user_id)
    try:
        set_account_access(
            s, account, current_user(), request.form.getlist("roles"), request.form.get("is_active") == "1"
        )
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
    else:
        s.commit()
        flash(f"Account updated for {account.email}.", "success")
    return redirect(url_for("admin.accounts_detail", user_id=user_id))


@bp.post("/accounts/<int:user_id>/reset-password")
@require_permission("admin.edit")
def accounts_reset_password(user_id: int):
    s = db_session()
    account = _get_user_or_404(s, user_id)
    errors = reset_password(
        s, account, current_user(), request.form.get("password") or "", request.form.get("password_confirm") or ""
    )
    if errors:
        for msg in errors:
            flash(msg, "danger")
    else:
        s.commit()
        flash(f"Password reset for {account.email}.", "success")
    return redirect(url_for("admin.accounts_detail", user_id=user_id))
