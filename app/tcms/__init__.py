import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, flash, g, redirect, render_template, request, session, url_for

from app.tcms.admin import bp as admin_bp
from app.tcms.auth import bp as auth_bp, load_current_user
from app.tcms.config import load_config
from app.tcms.db import ENGINE_KEY, init_db, teardown_db_session
from app.tcms.modules.academics.admin import bp as academics_bp
from app.tcms.modules.attendance.admin import bp as attendance_bp
from app.tcms.modules.careers.admin import bp as careers_bp
from app.tcms.modules.careers.public import bp as careers_public_bp
from app.tcms.modules.certificates.admin import bp as certificates_bp
from app.tcms.modules.equipment.admin import bp as equipment_bp
from app.tcms.modules.finance.admin import bp as finance_bp
from app.tcms.modules.it.admin import bp as it_bp
from app.tcms.modules.materials.admin import bp as materials_bp
from app.tcms.modules.notices.admin import bp as notices_bp
from app.tcms.modules.payroll.admin import bp as payroll_bp
from app.tcms.modules.students.admin import bp as students_bp
from app.tcms.routes import bp as routes_bp
from app.tcms.security import ensure_csrf_token, validate_csrf

logger = logging.getLogger(__name__)

# Mounted under /admin; each one guards its own views with require_permission.
DASHBOARD_BLUEPRINTS = (
    admin_bp,
    academics_bp,
    students_bp,
    attendance_bp,
    finance_bp,
    payroll_bp,
    certificates_bp,
    notices_bp,
    careers_bp,
    equipment_bp,
    materials_bp,
    it_bp,
)

UNGUARDED_PREFIXES = ("/static/", "/health", "/healthz")
UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def _is_production(app: Flask) -> bool:
    return (app.config.get("ENV") or "").strip().lower() in ("prod", "production")


def _check_production_settings(app: Flask) -> None:
    db_url = str(app.config.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is required in production.")
    if db_url.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if str(app.config.get("SECRET_KEY") or "") in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")


def _check_storage(app: Flask) -> None:
    """Log, but do not abort on, an unusable S3 configuration."""
    if app.config.get("STORAGE_BACKEND") != "s3":
        return
    required = ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
    missing = [k for k in required if not app.config.get(k)]
    if missing:
        app.logger.error("Uploads disabled: missing S3 settings %s", ", ".join(missing))
        return

    from app.tcms.storage import StorageError, storage_from_config

    storage = storage_from_config(app.config)
    try:
        storage.check_bucket()
    except StorageError as e:
        app.logger.error("Uploads disabled: %s", e)
    else:
        app.logger.info("S3 bucket '%s' reachable", app.config["S3_BUCKET"])


def _install_template_helpers(app: Flask) -> None:
    from app.tcms.rbac import user_has_permission
    from app.tcms.utils import format_money

    currency = app.config.get("CURRENCY") or "RWF"

    @app.context_processor
    def _template_globals() -> dict:
        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        return {"csrf_token": ensure_csrf_token(), "has_perm": has_perm, "currency": currency}

    @app.template_filter("dateformat")
    def _dateformat(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        return value.strftime(format) if hasattr(value, "strftime") else str(value)

    @app.template_filter("money")
    def _money(value) -> str:
        return format_money(value, currency)


def _install_request_hooks(app: Flask) -> None:
    @app.before_request
    def _session_and_csrf():
        if request.path.startswith(UNGUARDED_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if not app.config.get("CSRF_ENABLED", True) or request.method not in UNSAFE_METHODS:
            return None
        # login and logout forms are exempt
        if (request.endpoint or "").startswith("auth."):
            return None
        if not validate_csrf(request):
            return render_template("errors/400.html", message="CSRF token missing or invalid."), 400
        return None

    @app.before_request
    def _current_user():
        if request.path.startswith(UNGUARDED_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    app.teardown_appcontext(teardown_db_session)


def _install_error_pages(app: Flask) -> None:
    @app.errorhandler(403)
    def _forbidden(e):
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("403 %s: missing %s (request_id=%s)", request.path, missing, g.get("request_id"))
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(404)
    def _not_found(e):
        return render_template("errors/404.html"), 404

    @app.errorhandler(413)
    def _too_large(e):
        limit_mb = (app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        flash(f"File too large. Maximum size is {limit_mb}MB.", "danger")
        back = request.referrer
        if back and back.startswith(request.host_url):
            return redirect(back)
        return redirect(url_for("routes.index"))

    @app.errorhandler(500)
    def _server_error(e):
        app.logger.exception("500 on %s (request_id=%s)", request.path, g.get("request_id"))
        return render_template("errors/500.html"), 500


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config.update(PERMANENT_SESSION_LIFETIME=timedelta(hours=8), SESSION_REFRESH_EACH_REQUEST=True)

    level = app.config.get("LOG_LEVEL") or "INFO"
    logging.basicConfig(level=level)
    app.logger.setLevel(level)

    if _is_production(app):
        _check_production_settings(app)

    init_db(app)
    if hasattr(os, "register_at_fork"):
        # gunicorn forks after import; children must not share pooled sockets
        def _dispose_engine_in_child():
            engine = app.extensions.get(ENGINE_KEY)
            if engine is not None:
                engine.dispose()

        os.register_at_fork(after_in_child=_dispose_engine_in_child)

    _check_storage(app)
    _install_template_helpers(app)
    _install_request_hooks(app)
    _install_error_pages(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    for bp in DASHBOARD_BLUEPRINTS:
        app.register_blueprint(bp, url_prefix="/admin")
    app.register_blueprint(careers_public_bp)

    logger.info("TCMS app created (env=%s)", app.config.get("ENV"))
    return app
