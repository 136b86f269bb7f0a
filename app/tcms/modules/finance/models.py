from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.tcms.models import Base, User
from app.tcms.modules.students.models import Student

PAYMENT_STATUSES = ("pending", "paid", "partial")
PAYMENT_METHODS = ("cash", "bank_transfer", "mobile_money", "check", "credit_card", "other")
PAYMENT_TYPES = ("registration", "internship", "other")

EXPENSE_CATEGORIES = (
    "office_supplies",
    "utilities",
    "rent",
    "equipment",
    "software",
    "training",
    "marketing",
    "maintenance",
    "travel",
    "other",
)


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        Index("idx_payments_student", "student_id"),
        Index("idx_payments_status_created", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_type: Mapped[str] = mapped_column(String(32), nullable=False, default="registration")
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False, default="cash")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)

    student: Mapped[Student] = relationship(lazy="selectin")
    recorded_by: Mapped[User | None] = relationship(lazy="selectin")


class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (Index("idx_expenses_date", "expense_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    description: Mapped[str] = mapped_column(String(512), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="other")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False, default="cash")
    expense_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    receipt_storage_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    receipt_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)

    recorded_by: Mapped[User | None] = relationship(lazy="selectin")
