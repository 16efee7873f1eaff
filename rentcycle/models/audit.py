"""Audit trail of system-initiated operations."""
from __future__ import annotations

from typing import Any

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column

from ..extensions import db
from .base import TimestampMixin


class AuditEvent(TimestampMixin, db.Model):
    """One structured event describing who did what to which entity."""

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_entity", "entity_type", "entity_id"),
        Index("ix_audit_events_owner", "owner_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[int | None] = mapped_column(
        db.Integer,
        db.ForeignKey("owners.id", ondelete="SET NULL"),
        nullable=True,
    )
    entity_type: Mapped[str] = mapped_column(db.String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(db.String(64), nullable=False)
    action: Mapped[str] = mapped_column(db.String(32), nullable=False)
    actor_id: Mapped[str] = mapped_column(db.String(64), nullable=False)
    actor_type: Mapped[str] = mapped_column(db.String(32), nullable=False)
    # ``metadata`` is reserved on declarative classes
    event_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", db.JSON, nullable=True)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<AuditEvent {self.entity_type}:{self.entity_id} {self.action}>"
