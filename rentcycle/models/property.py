"""Properties and the tenants who occupy them."""
from __future__ import annotations

import enum
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Index, Numeric, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..extensions import db
from .base import OwnerScopedMixin, TimestampMixin, enum_values

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .owner import Owner


class TenantStatus(str, enum.Enum):
    """Occupancy states; only active tenants are billed."""

    ACTIVE = "active"
    NOTICE_PERIOD = "notice_period"
    MOVED_OUT = "moved_out"


class Property(OwnerScopedMixin, TimestampMixin, db.Model):
    """A building or PG managed by an owner."""

    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    owner: Mapped["Owner"] = relationship("Owner", back_populates="properties")
    tenants: Mapped[list["Tenant"]] = relationship("Tenant", back_populates="property")

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Property {self.id} {self.name}>"


class Tenant(OwnerScopedMixin, TimestampMixin, db.Model):
    """A resident billed monthly for rent and any pending charges."""

    __tablename__ = "tenants"
    __table_args__ = (Index("ix_tenants_owner_status", "owner_id", "status"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    property_id: Mapped[int] = mapped_column(
        db.Integer,
        db.ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(db.String(32), nullable=True)
    email: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    monthly_rent: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    security_deposit: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    status: Mapped[TenantStatus] = mapped_column(
        db.Enum(TenantStatus, native_enum=False, validate_strings=True, values_callable=enum_values, name="tenant_status"),
        nullable=False,
        default=TenantStatus.ACTIVE,
        server_default=text("'active'"),
    )

    owner: Mapped["Owner"] = relationship("Owner", back_populates="tenants")
    property: Mapped[Property] = relationship("Property", back_populates="tenants")

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Tenant {self.id} {self.name} {self.status.value}>"
