"""Daily sweep flagging unpaid bills whose due date has passed."""
from __future__ import annotations

from datetime import date
from typing import Optional

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Bill, BillStatus

SWEEPABLE_STATUSES = (BillStatus.PENDING, BillStatus.PARTIAL)


def mark_overdue_bills(today: Optional[date] = None) -> int:
    """Set ``overdue`` on pending/partial bills past due with a balance; returns rows changed."""
    today = today or date.today()
    result = db.session.execute(
        update(Bill)
        .where(
            Bill.status.in_(SWEEPABLE_STATUSES),
            Bill.due_date < today,
            Bill.balance_due > 0,
        )
        .values(status=BillStatus.OVERDUE)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    updated = result.rowcount or 0
    current_app.logger.info("Marked %s bills overdue as of %s", updated, today.isoformat())
    return updated
