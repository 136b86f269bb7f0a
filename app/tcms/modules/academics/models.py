from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.tcms.models import Base, User

if TYPE_CHECKING:
    from app.tcms.modules.students.models import Student


class Program(Base):
    __tablename__ = "programs"
    __table_args__ = (Index("idx_programs_active", "is_active"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    eligible_levels: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # ["L3", "L4"]
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    classes: Mapped[list["TrainingClass"]] = relationship(back_populates="program", lazy="selectin")


class TrainingClass(Base):
    __tablename__ = "classes"
    __table_args__ = (
        Index("idx_classes_level_shift", "level", "shift"),
        Index("idx_classes_program", "program_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    level: Mapped[str] = mapped_column(String(8), nullable=False)  # L3, L4, L5
    shift: Mapped[str] = mapped_column(String(16), nullable=False)  # morning, afternoon
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    current_enrollment: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    program_id: Mapped[int | None] = mapped_column(ForeignKey("programs.id", ondelete="SET NULL"), nullable=True)
    trainer_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    program: Mapped[Program | None] = relationship(back_populates="classes", lazy="selectin")
    trainer: Mapped[User | None] = relationship(lazy="selectin")
    students: Mapped[list["Student"]] = relationship(back_populates="training_class", lazy="select")

    @property
    def seats_left(self) -> int:
        return max(0, self.max_capacity - (self.current_enrollment or 0))


class FeeStructure(Base):
    __tablename__ = "fee_structures"
    __table_args__ = (Index("idx_fee_structures_program_level", "program_id", "level"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    program_id: Mapped[int | None] = mapped_column(ForeignKey("programs.id", ondelete="CASCADE"), nullable=True)
    level: Mapped[str | None] = mapped_column(String(8), nullable=True)  # None = any level
    registration_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    internship_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    program: Mapped[Program | None] = relationship(lazy="selectin")

    @property
    def total(self) -> Decimal:
        return Decimal(self.registration_fee or 0) + Decimal(self.internship_fee or 0)
