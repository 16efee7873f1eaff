"""Charge and payment ledgers that bills draw from and are settled by."""
from __future__ import annotations

import enum
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Index, Numeric, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..extensions import db
from .base import OwnerScopedMixin, TimestampMixin, enum_values

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .billing import Bill
    from .property import Tenant


class ChargeStatus(str, enum.Enum):
    """Whether a charge still awaits inclusion in a bill."""

    PENDING = "pending"
    BILLED = "billed"


class ChargeType(OwnerScopedMixin, TimestampMixin, db.Model):
    """Owner-defined category such as Electricity or Laundry."""

    __tablename__ = "charge_types"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(128), nullable=False)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<ChargeType {self.name}>"


class Charge(OwnerScopedMixin, TimestampMixin, db.Model):
    """A discrete billable amount owed by a tenant."""

    __tablename__ = "charges"
    __table_args__ = (
        Index("ix_charges_tenant_status", "tenant_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    charge_type_id: Mapped[int | None] = mapped_column(
        db.Integer,
        db.ForeignKey("charge_types.id", ondelete="SET NULL"),
        nullable=True,
    )
    bill_id: Mapped[int | None] = mapped_column(
        db.Integer,
        db.ForeignKey("bills.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    for_period: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    status: Mapped[ChargeStatus] = mapped_column(
        db.Enum(ChargeStatus, native_enum=False, validate_strings=True, values_callable=enum_values, name="charge_status"),
        nullable=False,
        default=ChargeStatus.PENDING,
        server_default=text("'pending'"),
    )

    tenant: Mapped["Tenant"] = relationship("Tenant")
    charge_type: Mapped[ChargeType | None] = relationship("ChargeType")
    bill: Mapped["Bill | None"] = relationship("Bill", foreign_keys=[bill_id])

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Charge {self.id} {self.amount} {self.status.value}>"


class Payment(OwnerScopedMixin, TimestampMixin, db.Model):
    """Money received from a tenant, usually applied against one bill."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    bill_id: Mapped[int | None] = mapped_column(
        db.Integer,
        db.ForeignKey("bills.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        # Moves must reconcile the bill the payment leaves
        active_history=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(db.Date, nullable=False, default=date.today)
    payment_method: Mapped[str | None] = mapped_column(db.String(32), nullable=True)
    reference: Mapped[str | None] = mapped_column(db.String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    tenant: Mapped["Tenant"] = relationship("Tenant")
    bill: Mapped["Bill | None"] = relationship("Bill", foreign_keys=[bill_id])

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Payment {self.id} bill={self.bill_id} {self.amount}>"
