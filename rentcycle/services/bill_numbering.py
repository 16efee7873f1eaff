"""Sequential, human-readable bill numbers per owner and calendar year."""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Bill


def _prefix() -> str:
    return current_app.config.get("BILL_NUMBER_PREFIX", "INV")


def format_bill_number(year: int, sequence: int, prefix: str = "INV") -> str:
    return f"{prefix}-{year}-{sequence:04d}"


def next_bill_number(owner_id: int, year: int) -> str:
    """Return ``INV-{year}-{count + 1:04d}`` from the owner's bills dated in ``year``.

    Read-count-then-insert: two concurrent generations for the same owner and
    year can compute the same number. The ``(owner_id, bill_number)`` unique
    constraint turns that into a per-tenant insert failure.
    """
    bill_count = db.session.execute(
        Bill.scoped_to_owner(owner_id, func.count(Bill.id)).where(
            Bill.bill_date >= date(year, 1, 1),
            Bill.bill_date < date(year + 1, 1, 1),
        )
    ).scalar_one()
    return format_bill_number(year, (bill_count or 0) + 1, _prefix())


def fallback_bill_number(now: Optional[datetime] = None) -> str:
    """Timestamp-based number used only when the sequence lookup itself fails."""
    now = now or datetime.utcnow()
    return f"{_prefix()}-{int(now.timestamp() * 1000)}"
