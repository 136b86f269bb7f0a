from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from app.tcms.audit import record_event
from app.tcms.utils import percent

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tcms.models import User
    from app.tcms.modules.academics.models import TrainingClass
    from app.tcms.modules.attendance.models import Attendance


def attendance_rate(rows: Iterable["Attendance"]) -> int:
    """Rounded present percentage; 0 when there are no rows."""
    rows = list(rows)
    if not rows:
        return 0
    present = sum(1 for r in rows if r.is_present)
    return percent(present, len(rows))


def recent_attendance_rate(s: "Session", days: int = 7, today: date | None = None) -> int:
    from app.tcms.modules.attendance.models import Attendance

    today = today or date.today()
    since = today - timedelta(days=days - 1)
    rows = s.query(Attendance).filter(Attendance.date >= since, Attendance.date <= today).all()
    return attendance_rate(rows)


def record_class_attendance(
    s: "Session",
    klass: "TrainingClass",
    on_date: date,
    present_ids: set[int],
    user: "User",
) -> list["Attendance"]:
    """
    Mark every active student of the class present/absent for `on_date`.
    Existing rows for the same (student, class, date) are updated in place.
    """
    from app.tcms.modules.attendance.models import Attendance
    from app.tcms.modules.students.models import Student

    if on_date > date.today():
        raise ValueError("Cannot record attendance for a future date.")

    students = (
        s.query(Student)
        .filter(Student.class_id == klass.id, Student.is_active.is_(True))
        .order_by(Student.registration_number.asc())
        .all()
    )
    if not students:
        raise ValueError(f"Class {klass.name} has no active students.")

    existing = {
        a.student_id: a
        for a in s.query(Attendance).filter(Attendance.class_id == klass.id, Attendance.date == on_date).all()
    }
    now = datetime.utcnow()
    rows = []
    created = updated = 0
    for st in students:
        row = existing.get(st.id)
        if row is None:
            row = Attendance(student_id=st.id, class_id=klass.id, date=on_date, created_at=now)
            s.add(row)
            created += 1
        else:
            updated += 1
        row.is_present = st.id in present_ids
        row.recorded_by_user_id = user.id
        row.updated_at = now
        rows.append(row)
    s.flush()

    record_event(
        s,
        actor=user,
        action="attendance.record",
        entity_type="TrainingClass",
        entity_id=str(klass.id),
        metadata={
            "date": on_date.isoformat(),
            "present": sum(1 for r in rows if r.is_present),
            "total": len(rows),
            "created": created,
            "updated": updated,
        },
    )
    s.flush()
    return rows


def class_history(s: "Session", klass: "TrainingClass") -> list[dict]:
    """Per-date summary for a class, newest first."""
    from app.tcms.modules.attendance.models import Attendance

    by_date: dict[date, list] = defaultdict(list)
    for row in s.query(Attendance).filter(Attendance.class_id == klass.id).all():
        by_date[row.date].append(row)
    out = []
    for d in sorted(by_date, reverse=True):
        rows = by_date[d]
        out.append(
            {
                "date": d,
                "present": sum(1 for r in rows if r.is_present),
                "total": len(rows),
                "rate": attendance_rate(rows),
            }
        )
    return out
