"""
Platform tables: accounts, roles/permissions and the audit trail.

Feature tables live in ``app.tcms.modules.<name>.models``; they are imported at
the bottom of this file so ``Base.metadata`` always holds the full schema.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def _timestamp():
    return mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class User(Base):
    """Login identity for staff and students; names and phone live on Profile."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = _timestamp()

    roles: Mapped[list[Role]] = relationship(secondary="user_roles", back_populates="users", lazy="selectin")
    profile: Mapped[Profile | None] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def display_name(self) -> str:
        return (self.profile.full_name if self.profile else None) or self.email

    @property
    def role_keys(self) -> set[str]:
        return {role.key for role in self.roles}


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = _timestamp()
    updated_at: Mapped[datetime] = _timestamp()

    user: Mapped[User] = relationship(back_populates="profile")


class Role(Base):
    """One of the six training-center roles (admin, secretary, trainer, finance, it, student)."""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = _timestamp()

    users: Mapped[list[User]] = relationship(secondary="user_roles", back_populates="roles", lazy="selectin")
    permissions: Mapped[list[Permission]] = relationship(
        secondary="role_permissions", back_populates="roles", lazy="selectin"
    )


class Permission(Base):
    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)  # "<area>.<verb>"
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = _timestamp()

    roles: Mapped[list[Role]] = relationship(secondary="role_permissions", back_populates="permissions", lazy="selectin")


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)


class RolePermission(Base):
    __tablename__ = "role_permissions"

    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)
    permission_id: Mapped[int] = mapped_column(ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True)


class AuditEvent(Base):
    """
    Who did what to which record. Written by ``app.tcms.audit.record_event``
    only; feature tables never hold a foreign key to it.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = _timestamp()
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # email is copied so the row survives the account being deleted
    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # "payroll.generate"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)


from app.tcms.modules.academics.models import FeeStructure, Program, TrainingClass  # noqa: E402,F401
from app.tcms.modules.attendance.models import Attendance  # noqa: E402,F401
from app.tcms.modules.careers.models import JobApplication, JobPosting  # noqa: E402,F401
from app.tcms.modules.certificates.models import CertificateTemplate, IssuedCertificate  # noqa: E402,F401
from app.tcms.modules.equipment.models import Equipment  # noqa: E402,F401
from app.tcms.modules.finance.models import Expense, Payment  # noqa: E402,F401
from app.tcms.modules.it.models import WifiNetwork  # noqa: E402,F401
from app.tcms.modules.materials.models import MaterialItem, MaterialTransaction  # noqa: E402,F401
from app.tcms.modules.notices.models import Notice  # noqa: E402,F401
from app.tcms.modules.payroll.models import LeaveRequest, PayrollEntry, Salary, SalaryAdvance  # noqa: E402,F401
from app.tcms.modules.students.models import Student  # noqa: E402,F401
