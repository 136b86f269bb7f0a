from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.tcms.models import Base, User

PAYMENT_PERIODS = ("monthly", "weekly", "biweekly")
PAYROLL_STATUSES = ("pending", "processed", "paid", "cancelled")

# allowed next states; anything absent is terminal
PAYROLL_TRANSITIONS = {
    "pending": ("processed", "cancelled"),
    "processed": ("paid", "cancelled"),
}


class Salary(Base):
    __tablename__ = "salaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_period: Mapped[str] = mapped_column(String(16), nullable=False, default="monthly")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)

    employee: Mapped[User] = relationship(lazy="selectin")


class PayrollEntry(Base):
    __tablename__ = "payroll"
    __table_args__ = (Index("idx_payroll_period", "period_start", "period_end"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    period_start: Mapped[dt.date] = mapped_column(Date, nullable=False)
    period_end: Mapped[dt.date] = mapped_column(Date, nullable=False)
    base_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    advances_deducted: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_payable: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    processed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    processed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    payment_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)

    employee: Mapped[User] = relationship(foreign_keys=[employee_user_id], lazy="selectin")
    processed_by: Mapped[User | None] = relationship(foreign_keys=[processed_by_user_id], lazy="selectin")
    advances: Mapped[list["SalaryAdvance"]] = relationship(back_populates="payroll_entry", lazy="selectin")


class SalaryAdvance(Base):
    __tablename__ = "salary_advances"
    __table_args__ = (Index("idx_salary_advances_employee_status", "employee_user_id", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    forwarded_to_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    forwarded_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    forwarded_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    forward_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    reviewed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    review_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    deducted_in_payroll_id: Mapped[int | None] = mapped_column(ForeignKey("payroll.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)

    employee: Mapped[User] = relationship(foreign_keys=[employee_user_id], lazy="selectin")
    forwarded_by: Mapped[User | None] = relationship(foreign_keys=[forwarded_by_user_id], lazy="selectin")
    reviewed_by: Mapped[User | None] = relationship(foreign_keys=[reviewed_by_user_id], lazy="selectin")
    payroll_entry: Mapped[PayrollEntry | None] = relationship(back_populates="advances", lazy="selectin")


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    trainer_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    leave_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    return_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    reviewed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    review_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)

    requester: Mapped[User] = relationship(foreign_keys=[trainer_user_id], lazy="selectin")
    reviewed_by: Mapped[User | None] = relationship(foreign_keys=[reviewed_by_user_id], lazy="selectin")

    @property
    def days(self) -> int:
        return (self.return_date - self.leave_date).days
