from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for
from sqlalchemy.orm import Session

from app.tcms.constants import (
    ROLE_ADMIN,
    ROLE_FINANCE,
    ROLE_IT,
    ROLE_LABELS,
    ROLE_SECRETARY,
    ROLE_STUDENT,
    ROLE_TRAINER,
    ROLES,
)
from app.tcms.models import Permission, Role, User

# key -> display name
PERMISSIONS: dict[str, str] = {
    "admin.view": "Dashboard: view shell",
    "admin.edit": "Accounts and activity log",
    "reports.view": "Reports: period statistics",
    "programs.view": "Programs: view",
    "programs.edit": "Programs: create/edit",
    "classes.view": "Classes: view",
    "classes.edit": "Classes: create/edit",
    "fees.view": "Fee structures: view",
    "fees.edit": "Fee structures: create/edit",
    "students.view": "Students: view",
    "students.create": "Students: register",
    "students.edit": "Students: edit/transfer",
    "attendance.view": "Attendance: view",
    "attendance.record": "Attendance: record",
    "finance.view": "Finance: view payments and stats",
    "finance.record": "Finance: record payments and expenses",
    "finance.export": "Finance: export",
    "self.payments": "My payments",
    "self.salary": "My salary and advances",
    "payroll.view": "Payroll: view",
    "payroll.edit": "Payroll: salaries and generation",
    "advances.forward": "Salary advances: forward to admin",
    "advances.approve": "Salary advances: approve/reject",
    "leave.request": "Leave: request",
    "leave.review": "Leave: review",
    "certificates.view": "Certificates: view",
    "certificates.issue": "Certificates: issue",
    "certificates.templates": "Certificates: design templates",
    "notices.view": "Notices: view",
    "notices.edit": "Notices: create/edit",
    "careers.view": "Careers: view postings and applications",
    "careers.edit": "Careers: manage postings",
    "careers.review": "Careers: review applications",
    "equipment.view": "Equipment: view",
    "equipment.edit": "Equipment: create/edit",
    "materials.view": "Materials: view",
    "materials.edit": "Materials: inventory and transactions",
    "wifi.view": "Wi-Fi networks: view assigned",
    "wifi.edit": "Wi-Fi networks: manage",
}

_STAFF_SELF = ("admin.view", "notices.view", "self.salary", "leave.request", "wifi.view")

ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    ROLE_ADMIN: tuple(PERMISSIONS),
    ROLE_SECRETARY: _STAFF_SELF
    + (
        "programs.view",
        "classes.view",
        "classes.edit",
        "fees.view",
        "students.view",
        "students.create",
        "students.edit",
        "attendance.view",
        "attendance.record",
        "notices.edit",
        "leave.review",
        "certificates.view",
        "certificates.issue",
        "careers.view",
        "careers.edit",
    ),
    ROLE_TRAINER: _STAFF_SELF
    + (
        "programs.view",
        "classes.view",
        "students.view",
        "attendance.view",
        "attendance.record",
        "materials.view",
    ),
    ROLE_FINANCE: _STAFF_SELF
    + (
        "reports.view",
        "students.view",
        "fees.view",
        "fees.edit",
        "finance.view",
        "finance.record",
        "finance.export",
        "payroll.view",
        "payroll.edit",
        "advances.forward",
    ),
    ROLE_STUDENT: ("admin.view", "notices.view", "self.payments", "wifi.view"),
    ROLE_IT: _STAFF_SELF
    + (
        "equipment.view",
        "equipment.edit",
        "materials.view",
        "materials.edit",
        "wifi.edit",
    ),
}


def ensure_roles_and_permissions(s: Session) -> dict[str, Role]:
    """
    Idempotently seed the permission catalog and role->permission mapping.
    Returns roles by key.
    """
    perms = {p.key: p for p in s.query(Permission).all()}
    for key, name in PERMISSIONS.items():
        if key not in perms:
            p = Permission(key=key, name=name)
            s.add(p)
            perms[key] = p

    roles = {r.key: r for r in s.query(Role).all()}
    for key in ROLES:
        role = roles.get(key)
        if role is None:
            role = Role(key=key, name=ROLE_LABELS[key])
            s.add(role)
            roles[key] = role
        for perm_key in ROLE_PERMISSIONS[key]:
            p = perms[perm_key]
            if p not in role.permissions:
                role.permissions.append(p)
    s.flush()
    return roles


def user_role_keys(user: User | None) -> set[str]:
    if not user:
        return set()
    return {r.key for r in user.roles}


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated -> login page.
            if not user or not user.is_active:
                nxt = request.full_path or request.path
                # Avoid trailing '?' from full_path when there is no query string.
                if nxt.endswith("?"):
                    nxt = nxt[:-1]
                return redirect(url_for("auth.login_get", next=nxt))
            # Authenticated but unauthorized -> access denied.
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
