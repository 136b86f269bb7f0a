from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.tcms.audit import record_event
from app.tcms.constants import ROLES
from app.tcms.modules.notices.models import NOTICE_TYPES
from app.tcms.utils import parse_date

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tcms.models import User
    from app.tcms.modules.notices.models import Notice


def validate_notice_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("title") or "").strip():
        errors.append("Title is required.")
    if not (payload.get("content") or "").strip():
        errors.append("Content is required.")
    notice_type = payload.get("notice_type")
    if notice_type not in NOTICE_TYPES:
        errors.append(f"Notice type must be one of: {', '.join(NOTICE_TYPES)}")
    bad = [r for r in payload.get("target_roles") or [] if r not in ROLES]
    if bad:
        errors.append(f"Invalid role(s): {', '.join(bad)}")
    try:
        holiday_date = parse_date(payload.get("holiday_date"))
    except ValueError:
        errors.append("Holiday date must be YYYY-MM-DD.")
    else:
        if (notice_type == "holiday" or payload.get("is_holiday")) and not holiday_date:
            errors.append("Holiday notices need a holiday date.")
    return errors


def _apply(notice: "Notice", payload: dict) -> None:
    is_holiday = payload["notice_type"] == "holiday" or bool(payload.get("is_holiday"))
    notice.title = payload["title"].strip()
    notice.content = payload["content"].strip()
    notice.notice_type = payload["notice_type"]
    notice.target_roles = sorted(set(payload.get("target_roles") or []))
    notice.is_holiday = is_holiday
    notice.holiday_date = parse_date(payload.get("holiday_date")) if is_holiday else None
    notice.updated_at = datetime.utcnow()


def create_notice(s: "Session", payload: dict, user: "User") -> "Notice":
    from app.tcms.modules.notices.models import Notice

    notice = Notice(is_active=True, created_by_user_id=user.id, created_at=datetime.utcnow())
    _apply(notice, payload)
    s.add(notice)
    s.flush()
    record_event(
        s,
        actor=user,
        action="notice.create",
        entity_type="Notice",
        entity_id=str(notice.id),
        metadata={"title": notice.title, "notice_type": notice.notice_type, "target_roles": notice.target_roles},
    )
    s.flush()
    return notice


def update_notice(s: "Session", notice: "Notice", payload: dict, user: "User") -> "Notice":
    _apply(notice, payload)
    record_event(s, actor=user, action="notice.edit", entity_type="Notice", entity_id=str(notice.id))
    s.flush()
    return notice


def set_notice_active(s: "Session", notice: "Notice", active: bool, user: "User") -> None:
    notice.is_active = active
    notice.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="notice.activate" if active else "notice.deactivate",
        entity_type="Notice",
        entity_id=str(notice.id),
    )
    s.flush()


def delete_notice(s: "Session", notice: "Notice", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="notice.delete",
        entity_type="Notice",
        entity_id=str(notice.id),
        metadata={"title": notice.title},
    )
    s.delete(notice)
    s.flush()


def is_visible_to(notice: "Notice", role_keys: set[str]) -> bool:
    if not notice.is_active:
        return False
    targets = set(notice.target_roles or [])
    return not targets or bool(targets & role_keys)


def visible_notices(s: "Session", user: "User | None", limit: int | None = None) -> list["Notice"]:
    """Active notices for everyone or for one of the user's roles, newest first."""
    from app.tcms.modules.notices.models import Notice

    if user is None:
        return []
    role_keys = user.role_keys
    # target_roles is JSON; filter in Python so SQLite and Postgres behave the same
    rows = (
        s.query(Notice)
        .filter(Notice.is_active.is_(True))
        .order_by(Notice.created_at.desc(), Notice.id.desc())
        .all()
    )
    out = [n for n in rows if is_visible_to(n, role_keys)]
    return out[:limit] if limit else out
