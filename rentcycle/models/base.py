"""Shared model mixins for owner scoping and auditing."""
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from ..extensions import db


class TimestampMixin:
    """Adds immutable creation and managed update timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        db.DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        db.DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )


class OwnerScopedMixin:
    """Binds every billing record to the owner whose portfolio it belongs to."""

    @declared_attr.directive
    def owner_id(cls) -> Mapped[int]:  # noqa: D401 - SQLAlchemy pattern
        return mapped_column(
            db.Integer,
            db.ForeignKey("owners.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )

    @classmethod
    def scoped_to_owner(cls, owner_id: int, *columns):
        """``select`` of ``columns`` (default: the entity) limited to one owner's rows."""
        return select(*(columns or (cls,))).where(cls.owner_id == owner_id)


def enum_values(enum_cls) -> list[str]:
    """Persist ``str`` enums by value so rows match the lowercase server defaults."""
    return [member.value for member in enum_cls]
