from __future__ import annotations

import time
import uuid
from collections import defaultdict

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash

from app.tcms.audit import record_event
from app.tcms.db import db_session
from app.tcms.models import User

bp = Blueprint("auth", __name__)

# client ip -> monotonic timestamps of recent attempts (per worker process)
_login_attempts: dict[str, list[float]] = defaultdict(list)
MAX_LOGIN_ATTEMPTS = 5
LOGIN_WINDOW_SECONDS = 300


def _throttled(ip: str) -> bool:
    horizon = time.monotonic() - LOGIN_WINDOW_SECONDS
    recent = [t for t in _login_attempts[ip] if t > horizon]
    _login_attempts[ip] = recent
    return len(recent) >= MAX_LOGIN_ATTEMPTS


def _authenticate(s: Session, email: str, password: str) -> User | None:
    user = s.query(User).filter(User.email == email).one_or_none()
    if user is None or not user.is_active:
        return None
    if not check_password_hash(user.password_hash, password):
        return None
    return user


def _local_target(nxt: str) -> str | None:
    # only same-site paths, never //host or absolute URLs
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None


def load_current_user() -> None:
    """
    Resolve ``g.current_user`` from the session cookie and tag the request
    with a ``request_id`` used by audit rows and log lines.
    """
    g.request_id = g.get("request_id") or uuid.uuid4().hex
    g.current_user = None

    user_id = session.get("user_id")
    if not user_id:
        return
    user = db_session().get(User, int(user_id))
    if user is None or not user.is_active:
        # account removed or deactivated since the cookie was issued
        session.pop("user_id", None)
        return
    g.current_user = user


@bp.get("/login")
def login_get():
    return render_template("auth/login.html", next=(request.args.get("next") or "").strip())


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _throttled(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))
    _login_attempts[ip].append(time.monotonic())

    s = db_session()
    user = _authenticate(s, email, password)
    if user is None:
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email, "ip": ip},
        )
        s.commit()
        current_app.logger.info("Rejected login for %s from %s", email, ip)
        flash("Invalid credentials.", "danger")
        return redirect(url_for("auth.login_get"))

    session["user_id"] = user.id
    _login_attempts.pop(ip, None)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return redirect(_local_target((request.form.get("next") or "").strip()) or url_for("admin.index"))


@bp.get("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user is not None:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return redirect(url_for("routes.index"))
