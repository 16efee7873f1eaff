"""Keeps each bill's paid amount, balance and status in step with its payments.

Any ORM insert, update or delete of a ``Payment`` marks the bill(s) it points
at (before and after the change) for reconciliation. Once the flush has
written the payment rows, each marked bill is locked, its payments summed and
the derived fields written back in the same transaction.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from itertools import chain
from typing import Optional, Set

from sqlalchemy import event, func, inspect, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session

from ..extensions import db
from ..models import Bill, BillStatus, Payment
from ..utils import to_decimal

ZERO = Decimal("0")
_TOUCHED_BILLS_KEY = "rentcycle.bills_to_reconcile"
_RECONCILED_FIELDS = ["paid_amount", "balance_due", "status", "updated_at"]

bills_table = Bill.__table__
payments_table = Payment.__table__


@dataclass(frozen=True)
class BillReconciliation:
    bill_id: int
    total_amount: Decimal
    paid_amount: Decimal
    balance_due: Decimal
    status: BillStatus


def derive_status(paid_amount: Decimal, total_amount: Decimal) -> BillStatus:
    """Status implied by payments alone; an overdue flag never survives a recompute."""
    if paid_amount >= total_amount:
        return BillStatus.PAID
    if paid_amount > 0:
        return BillStatus.PARTIAL
    return BillStatus.PENDING


def balance_for(total_amount: Decimal, paid_amount: Decimal) -> Decimal:
    return max(ZERO, total_amount - paid_amount)


def _reconcile_on_connection(connection: Connection, bill_id: int) -> Optional[BillReconciliation]:
    # Row lock serializes concurrent payment writes against the same bill
    row = connection.execute(
        select(bills_table.c.total_amount, bills_table.c.status).where(bills_table.c.id == bill_id).with_for_update()
    ).first()
    if row is None:
        return None

    total_amount = to_decimal(row.total_amount) or ZERO
    paid_sum = connection.execute(
        select(func.coalesce(func.sum(payments_table.c.amount), 0)).where(payments_table.c.bill_id == bill_id)
    ).scalar()
    paid_amount = to_decimal(paid_sum) or ZERO
    balance_due = balance_for(total_amount, paid_amount)
    # Cancelled is terminal; amounts still track the ledger
    status = BillStatus.CANCELLED if row.status == BillStatus.CANCELLED else derive_status(paid_amount, total_amount)

    connection.execute(
        update(bills_table)
        .where(bills_table.c.id == bill_id)
        .values(paid_amount=paid_amount, balance_due=balance_due, status=status, updated_at=func.now())
    )
    return BillReconciliation(bill_id, total_amount, paid_amount, balance_due, status)


def _expire_cached_bill(session: Session, bill_id: int) -> None:
    cached = session.identity_map.get(session.identity_key(Bill, bill_id))
    if cached is not None:
        session.expire(cached, _RECONCILED_FIELDS)


def reconcile_bill(bill_id: int, *, commit: bool = True) -> Optional[BillReconciliation]:
    """Recompute one bill from its payments; ``None`` when the bill does not exist."""
    session = db.session()
    session.flush()
    result = _reconcile_on_connection(session.connection(), bill_id)
    _expire_cached_bill(session, bill_id)
    if commit:
        session.commit()
    return result


def _payment_bill_ids(payment: Payment) -> Set[int]:
    history = inspect(payment).attrs.bill_id.history
    return {bill_id for bill_id in chain(history.added, history.unchanged, history.deleted) if bill_id is not None}


@event.listens_for(Session, "before_flush")
def _load_payment_links(session: Session, flush_context, instances) -> None:
    # A deleted payment whose link expired would otherwise report no bill
    for obj in session.deleted:
        if isinstance(obj, Payment) and "bill_id" in inspect(obj).unloaded:
            obj.bill_id


@event.listens_for(Session, "after_flush")
def _collect_touched_bills(session: Session, flush_context) -> None:
    touched: Set[int] = set()
    for obj in chain(session.new, session.dirty, session.deleted):
        if isinstance(obj, Payment):
            touched |= _payment_bill_ids(obj)
    if touched:
        session.info.setdefault(_TOUCHED_BILLS_KEY, set()).update(touched)


@event.listens_for(Session, "after_flush_postexec")
def _reconcile_touched_bills(session: Session, flush_context) -> None:
    touched = session.info.pop(_TOUCHED_BILLS_KEY, None)
    if not touched:
        return
    connection = session.connection()
    # Fixed lock order across bills
    for bill_id in sorted(touched):
        _reconcile_on_connection(connection, bill_id)
        _expire_cached_bill(session, bill_id)


@event.listens_for(Session, "after_soft_rollback")
def _discard_touched_bills(session: Session, previous_transaction) -> None:
    session.info.pop(_TOUCHED_BILLS_KEY, None)
