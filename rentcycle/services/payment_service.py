"""Payment ledger writes; bill reconciliation follows from the session flush."""
from __future__ import annotations

from datetime import date
from typing import Any, Optional

from ..extensions import db
from ..models import Bill, Payment
from ..utils import to_decimal


class PaymentLinkError(ValueError):
    """Raised when a payment would reference a missing or foreign bill."""


def _linked_bill(tenant_id: int, bill_id: Optional[int]) -> Bill:
    bill = db.session.get(Bill, bill_id) if bill_id is not None else None
    if bill is None:
        raise PaymentLinkError("Payment must be linked to a bill. Create a bill first, then record the payment.")
    if bill.tenant_id != tenant_id:
        raise PaymentLinkError("Invalid bill_id. The bill does not exist or belongs to a different tenant.")
    return bill


def _amount(value: Any):
    amount = to_decimal(value)
    if amount is None:
        raise ValueError("Payment amount must be numeric.")
    return amount


def record_payment(
    *,
    tenant_id: int,
    bill_id: int,
    amount: Any,
    payment_date: Optional[date] = None,
    payment_method: Optional[str] = None,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
    commit: bool = True,
) -> Payment:
    """Record money received against one of the tenant's bills."""
    bill = _linked_bill(tenant_id, bill_id)
    payment = Payment(
        owner_id=bill.owner_id,
        tenant_id=tenant_id,
        bill_id=bill.id,
        amount=_amount(amount),
        payment_date=payment_date or date.today(),
        payment_method=payment_method,
        reference=reference,
        notes=notes,
    )
    db.session.add(payment)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return payment


def update_payment(
    payment: Payment,
    *,
    amount: Any = None,
    bill_id: Optional[int] = None,
    commit: bool = True,
) -> Payment:
    """Change a payment's amount and/or move it to another of the tenant's bills."""
    if amount is not None:
        payment.amount = _amount(amount)
    if bill_id is not None and bill_id != payment.bill_id:
        payment.bill_id = _linked_bill(payment.tenant_id, bill_id).id
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return payment


def delete_payment(payment: Payment, *, commit: bool = True) -> None:
    db.session.delete(payment)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
