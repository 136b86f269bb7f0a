from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.tcms.models import Base, User

MATERIAL_TYPES = ("consumable", "non_consumable", "equipment")
TRANSACTION_TYPES = ("in", "out", "adjustment")


class MaterialItem(Base):
    __tablename__ = "materials_inventory"
    __table_args__ = (
        Index("idx_materials_type_category", "type", "category"),
        Index("idx_materials_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # ITM-...
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="consumable")
    category: Mapped[str | None] = mapped_column(String(128), nullable=True)
    unit: Mapped[str] = mapped_column(String(32), nullable=False, default="pcs")

    current_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    minimum_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    supplier: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    barcode: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    transactions: Mapped[list["MaterialTransaction"]] = relationship(
        back_populates="material",
        cascade="all, delete-orphan",
        lazy="select",
        order_by="MaterialTransaction.created_at.desc()",
    )

    @property
    def is_low_stock(self) -> bool:
        return self.current_quantity <= self.minimum_quantity

    @property
    def stock_value(self) -> Decimal:
        return Decimal(self.current_quantity) * Decimal(self.unit_cost or 0)


class MaterialTransaction(Base):
    __tablename__ = "material_transactions"
    __table_args__ = (
        Index("idx_material_transactions_material", "material_id"),
        Index("idx_material_transactions_type_returned", "transaction_type", "is_returned"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    material_id: Mapped[int] = mapped_column(ForeignKey("materials_inventory.id", ondelete="CASCADE"), nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(16), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)  # signed for adjustments
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    recipient_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    recipient_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    purpose: Mapped[str | None] = mapped_column(String(512), nullable=True)
    transaction_date: Mapped[dt.date] = mapped_column(Date, nullable=False, default=dt.date.today)

    is_returned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    returned_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)

    material: Mapped[MaterialItem] = relationship(back_populates="transactions", lazy="selectin")
    recipient: Mapped[User | None] = relationship(foreign_keys=[recipient_user_id], lazy="selectin")
    recorded_by: Mapped[User | None] = relationship(foreign_keys=[recorded_by_user_id], lazy="selectin")

    @property
    def recipient_label(self) -> str:
        if self.recipient is not None:
            return self.recipient.display_name
        return self.recipient_name or ""
