"""Owner accounts and their embedded auto-billing configuration."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional
from uuid import uuid4

from sqlalchemy import Index, UniqueConstraint, event, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..extensions import db
from .base import TimestampMixin

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .property import Property, Tenant


class Owner(TimestampMixin, db.Model):
    """A property owner; every bill, tenant and ledger row hangs off one."""

    __tablename__ = "owners"
    __table_args__ = (
        UniqueConstraint("public_id", name="uq_owners_public_id"),
        UniqueConstraint("email", name="uq_owners_email"),
        Index("ix_owners_is_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    public_id: Mapped[str] = mapped_column(
        db.String(36), nullable=False, default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    email: Mapped[str] = mapped_column(db.String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(db.Boolean, nullable=False, server_default=text("1"))

    config: Mapped["OwnerConfig | None"] = relationship(
        "OwnerConfig", back_populates="owner", uselist=False
    )
    properties: Mapped[list["Property"]] = relationship(
        "Property", back_populates="owner", passive_deletes=True
    )
    tenants: Mapped[list["Tenant"]] = relationship(
        "Tenant", back_populates="owner", passive_deletes=True
    )

    def __repr__(self) -> str:  # pragma: no cover - repr helper
        return f"<Owner {self.id} {self.email}>"


@event.listens_for(Owner, "before_delete")
def _block_hard_delete(mapper, connection, target):
    """Bills are a financial record; owners are switched off with ``is_active`` instead."""
    raise ValueError("Owners cannot be hard-deleted; set is_active to False instead.")


class OwnerConfig(TimestampMixin, db.Model):
    """Per-owner settings row carrying the auto-billing JSON blob."""

    __tablename__ = "owner_configs"
    __table_args__ = (UniqueConstraint("owner_id", name="uq_owner_configs_owner"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[int] = mapped_column(
        db.Integer,
        db.ForeignKey("owners.id", ondelete="CASCADE"),
        nullable=False,
    )
    auto_billing_settings: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    owner: Mapped[Owner] = relationship("Owner", back_populates="config")

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<OwnerConfig owner={self.owner_id}>"


class InvalidBillingSettings(ValueError):
    """Raised when a stored auto-billing blob cannot be interpreted."""


@dataclass(frozen=True)
class AutoBillingSettings:
    """Typed view over the ``auto_billing_settings`` blob."""

    enabled: bool = False
    billing_day: int = 1
    due_day_offset: int = 10
    include_pending_charges: bool = True
    auto_send_notification: bool = True
    last_generated_month: Optional[str] = None

    @classmethod
    def from_mapping(
        cls,
        raw: Mapping[str, Any] | None,
        defaults: Mapping[str, Any] | None = None,
    ) -> "AutoBillingSettings":
        """Merge ``raw`` over ``defaults`` and validate the result."""
        merged: dict[str, Any] = dict(defaults or {})
        merged.update(raw or {})
        try:
            billing_day = int(merged.get("billing_day", 1))
            due_day_offset = int(merged.get("due_day_offset", 10))
        except (TypeError, ValueError) as exc:
            raise InvalidBillingSettings(f"Non-integer billing schedule: {exc}") from exc
        if not 1 <= billing_day <= 31:
            raise InvalidBillingSettings(f"billing_day must be 1-31, got {billing_day}")

        last_month = merged.get("last_generated_month")
        return cls(
            enabled=bool(merged.get("enabled", False)),
            billing_day=billing_day,
            due_day_offset=due_day_offset,
            include_pending_charges=bool(merged.get("include_pending_charges", True)),
            auto_send_notification=bool(merged.get("auto_send_notification", True)),
            last_generated_month=str(last_month) if last_month else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
