"""
Account creation shared by user management and student registration.

Creates the auth identity (User), its display Profile and role links in one go.
"""
from __future__ import annotations

import re
import secrets
import string
from datetime import datetime
from typing import TYPE_CHECKING

from werkzeug.security import generate_password_hash

from app.tcms.audit import record_event
from app.tcms.constants import ROLES
from app.tcms.models import Profile, Role, User

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_PASSWORD_ALPHABET = string.ascii_letters + string.digits

MIN_PASSWORD_LENGTH = 8


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ""))


def generate_password(length: int = 8) -> str:
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))


def validate_password(password: str, confirm: str | None = None) -> list[str]:
    errors = []
    if not password:
        errors.append("Password is required.")
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    elif confirm is not None and password != confirm:
        errors.append("Passwords do not match.")
    return errors


def validate_account_payload(s: "Session", payload: dict) -> list[str]:
    errors = []
    email = (payload.get("email") or "").strip().lower()
    if not email:
        errors.append("Email is required.")
    elif not is_valid_email(email):
        errors.append("Invalid email format.")
    elif s.query(User).filter(User.email == email).one_or_none():
        errors.append("An account with this email already exists.")

    if not (payload.get("full_name") or "").strip():
        errors.append("Full name is required.")

    errors.extend(validate_password(payload.get("password") or "", payload.get("password_confirm")))

    role_keys = payload.get("roles") or []
    if not role_keys:
        errors.append("At least one role is required.")
    for key in role_keys:
        if key not in ROLES:
            errors.append(f"Invalid role: {key}. Must be one of: {', '.join(ROLES)}")
    return errors


def create_account(s: "Session", payload: dict, actor: User | None) -> User:
    """
    Create User + Profile + role links. Raises ValueError with the joined
    validation messages when the payload is invalid.
    """
    errors = validate_account_payload(s, payload)
    if errors:
        raise ValueError(" ".join(errors))

    email = payload["email"].strip().lower()
    now = datetime.utcnow()
    user = User(email=email, password_hash=generate_password_hash(payload["password"]), is_active=True)
    user.profile = Profile(
        full_name=payload["full_name"].strip(),
        email=email,
        phone=(payload.get("phone") or "").strip() or None,
        created_at=now,
        updated_at=now,
    )
    roles = s.query(Role).filter(Role.key.in_(payload["roles"])).all()
    if len(roles) != len(set(payload["roles"])):
        raise ValueError("Roles are not seeded; run scripts/init_db.py.")
    user.roles.extend(roles)
    s.add(user)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="user.create",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": email, "roles": sorted(r.key for r in user.roles)},
    )
    s.flush()
    return user


def users_with_role(s: "Session", role_key: str) -> list[User]:
    return (
        s.query(User)
        .join(User.roles)
        .filter(Role.key == role_key, User.is_active.is_(True))
        .order_by(User.email.asc())
        .all()
    )


def staff_users(s: "Session") -> list[User]:
    """Active users holding at least one non-student role."""
    from app.tcms.constants import STAFF_ROLES

    return (
        s.query(User)
        .join(User.roles)
        .filter(Role.key.in_(STAFF_ROLES), User.is_active.is_(True))
        .distinct()
        .order_by(User.email.asc())
        .all()
    )


def update_profile(s: "Session", user: User, payload: dict) -> None:
    """Self-service profile edit. Raises ValueError on the first invalid field."""
    full_name = (payload.get("full_name") or "").strip()
    if not full_name:
        raise ValueError("Full name is required.")
    avatar_url = (payload.get("avatar_url") or "").strip() or None
    if avatar_url and not avatar_url.startswith(("http://", "https://")):
        raise ValueError("Avatar URL must start with http:// or https://.")

    profile = user.profile
    profile.full_name = full_name
    profile.phone = (payload.get("phone") or "").strip() or None
    profile.avatar_url = avatar_url
    profile.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="user.update_profile",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"full_name": full_name, "phone": profile.phone},
    )
    s.flush()


def set_account_access(s: "Session", target: User, actor: User, role_keys: list[str], is_active: bool) -> None:
    """Replace a user's roles and active flag. Admins cannot change their own access."""
    if target.id == actor.id:
        raise ValueError("You cannot modify your own account from this page.")
    keys = sorted({k for k in role_keys if k in ROLES})
    if not keys:
        raise ValueError("At least one role is required.")

    before = {"is_active": target.is_active, "roles": sorted(target.role_keys)}
    target.is_active = is_active
    target.roles[:] = s.query(Role).filter(Role.key.in_(keys)).all()
    record_event(
        s,
        actor=actor,
        action="user.update",
        entity_type="User",
        entity_id=str(target.id),
        metadata={"before": before, "after": {"is_active": is_active, "roles": keys}},
    )
    s.flush()


def reset_password(s: "Session", target: User, actor: User, password: str, confirm: str) -> list[str]:
    """Returns validation errors; on success the new hash is set and audited (never the password)."""
    errors = validate_password(password, confirm)
    if errors:
        return errors
    target.password_hash = generate_password_hash(password)
    record_event(
        s,
        actor=actor,
        action="user.password_reset",
        entity_type="User",
        entity_id=str(target.id),
        metadata={"target_email": target.email},
    )
    s.flush()
    return []
