"""Bills and the generation log written by each auto-billing run."""
from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import Index, Numeric, UniqueConstraint, event, inspect, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..extensions import db
from .base import OwnerScopedMixin, TimestampMixin, enum_values

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .property import Property, Tenant


class BillStatus(str, enum.Enum):
    """Lifecycle states for a bill.

    ``overdue`` is only ever set by the overdue sweep; a payment-driven
    recompute always lands on pending, partial or paid.
    """

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Bill(OwnerScopedMixin, TimestampMixin, db.Model):
    """One invoice for one tenant for one billing period."""

    __tablename__ = "bills"
    __table_args__ = (
        UniqueConstraint("owner_id", "bill_number", name="uq_bills_owner_number"),
        Index("ix_bills_tenant", "tenant_id"),
        Index("ix_bills_status", "status"),
        Index("ix_bills_due_date", "due_date"),
        Index("ix_bills_for_month", "for_month"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    property_id: Mapped[int] = mapped_column(
        db.Integer,
        db.ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    bill_number: Mapped[str] = mapped_column(db.String(64), nullable=False)

    bill_date: Mapped[date] = mapped_column(db.Date, nullable=False)
    due_date: Mapped[date] = mapped_column(db.Date, nullable=False)
    period_start: Mapped[date] = mapped_column(db.Date, nullable=False)
    period_end: Mapped[date] = mapped_column(db.Date, nullable=False)
    for_month: Mapped[str] = mapped_column(db.String(32), nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, server_default=text("0"))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0, server_default=text("0"))
    late_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0, server_default=text("0"))
    previous_balance: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0, server_default=text("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, server_default=text("0"))
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0, server_default=text("0"))
    balance_due: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, server_default=text("0"))

    status: Mapped[BillStatus] = mapped_column(
        db.Enum(BillStatus, native_enum=False, validate_strings=True, values_callable=enum_values, name="bill_status"),
        nullable=False,
        default=BillStatus.PENDING,
        server_default=text("'pending'"),
    )
    # Display-only snapshot taken at generation time
    line_items: Mapped[list[dict[str, Any]]] = mapped_column(db.JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    is_auto_generated: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False, server_default=text("0"))
    generated_at: Mapped[datetime | None] = mapped_column(db.DateTime, nullable=True)

    sent_via_email: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False, server_default=text("0"))
    sent_via_whatsapp: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False, server_default=text("0"))
    last_reminder_sent: Mapped[datetime | None] = mapped_column(db.DateTime, nullable=True)

    tenant: Mapped["Tenant"] = relationship("Tenant")
    property: Mapped["Property"] = relationship("Property")

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Bill {self.bill_number} {self.status.value} {self.balance_due}>"


class BillGenerationLog(OwnerScopedMixin, db.Model):
    """Audit record of one auto-billing run for one owner."""

    __tablename__ = "bill_generation_logs"
    __table_args__ = (Index("ix_bill_generation_logs_month", "for_month"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    for_month: Mapped[str] = mapped_column(db.String(32), nullable=False)
    bills_generated: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0, server_default=text("0"))
    bills_failed: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0, server_default=text("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default=text("0"))
    error_details: Mapped[list[dict[str, Any]] | None] = mapped_column(db.JSON, nullable=True)
    started_at: Mapped[datetime] = mapped_column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(db.DateTime, nullable=True)

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<BillGenerationLog owner={self.owner_id} {self.for_month} ok={self.bills_generated} failed={self.bills_failed}>"


@event.listens_for(BillGenerationLog, "before_update")
def _block_finalized_log_update(mapper, connection, target):
    """A finalized run log is an immutable audit trail."""
    history = inspect(target).attrs.completed_at.history
    previous = history.deleted or history.unchanged
    if previous and previous[0] is not None:
        raise ValueError("Bill generation logs cannot be modified once completed.")
