from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.tcms.models import Base, User
from app.tcms.modules.academics.models import TrainingClass


class Student(Base):
    """Trainee record; the login identity is the linked User (role=student)."""

    __tablename__ = "students"
    __table_args__ = (
        Index("idx_students_class", "class_id"),
        Index("idx_students_level_shift", "level", "preferred_shift"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    registration_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # EDT20260042

    school_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    level: Mapped[str] = mapped_column(String(8), nullable=False)
    preferred_shift: Mapped[str] = mapped_column(String(16), nullable=False)
    class_id: Mapped[int | None] = mapped_column(ForeignKey("classes.id", ondelete="SET NULL"), nullable=True)

    has_whatsapp: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    alternative_whatsapp: Mapped[str | None] = mapped_column(String(64), nullable=True)
    registration_fee_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    logbook_submitted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped[User] = relationship(lazy="selectin")
    training_class: Mapped[TrainingClass | None] = relationship(back_populates="students", lazy="selectin")

    @property
    def full_name(self) -> str:
        return self.user.display_name if self.user else self.registration_number

    @property
    def email(self) -> str | None:
        return self.user.email if self.user else None

    @property
    def phone(self) -> str | None:
        return self.user.profile.phone if self.user and self.user.profile else None
