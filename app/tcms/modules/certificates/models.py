from __future__ import annotations

import datetime as dt

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.tcms.models import Base, User
from app.tcms.modules.students.models import Student

BORDER_STYLES = ("classic", "modern", "elegant", "simple")
FONT_FAMILIES = ("serif", "sans-serif", "cursive")


class CertificateTemplate(Base):
    __tablename__ = "certificate_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    logo_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    background_color: Mapped[str] = mapped_column(String(7), nullable=False, default="#ffffff")
    text_color: Mapped[str] = mapped_column(String(7), nullable=False, default="#1f2937")
    border_style: Mapped[str] = mapped_column(String(16), nullable=False, default="classic")
    font_family: Mapped[str] = mapped_column(String(16), nullable=False, default="serif")
    include_dates: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    include_registration_number: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    additional_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)


class IssuedCertificate(Base):
    __tablename__ = "issued_certificates"
    __table_args__ = (UniqueConstraint("student_id", "template_id", name="uq_issued_certificates_student_template"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    certificate_number: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)  # CERT-2026-000042
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    template_id: Mapped[int] = mapped_column(ForeignKey("certificate_templates.id", ondelete="RESTRICT"), nullable=False)
    issued_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    issued_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)

    student: Mapped[Student] = relationship(lazy="selectin")
    template: Mapped[CertificateTemplate] = relationship(lazy="selectin")
    issued_by: Mapped[User | None] = relationship(lazy="selectin")
