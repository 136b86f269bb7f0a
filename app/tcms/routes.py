from flask import Blueprint, g, redirect, render_template, url_for

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    # signed-in staff and students go straight to their dashboard
    if getattr(g, "current_user", None) is not None:
        return redirect(url_for("admin.index"))
    return render_template("public/index.html")


@bp.get("/health")
def health():
    return {"ok": True, "service": "tcms"}


@bp.get("/healthz")
def healthz():
    """Liveness probe; answers without touching the database."""
    return "ok", 200
