"""Monthly auto-billing: one bill per active tenant per enabled owner.

Each owner run is isolated from the others and each tenant from its
neighbours. A tenant that cannot be billed is recorded in the run's
``BillGenerationLog`` and skipped; only a failure to list an owner's tenants
skips the owner as a whole.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import (
    AutoBillingSettings,
    Bill,
    BillGenerationLog,
    BillStatus,
    Charge,
    ChargeStatus,
    ChargeType,
    InvalidBillingSettings,
    Owner,
    OwnerConfig,
    Tenant,
    TenantStatus,
)
from ..utils import positive_amount, to_decimal
from .audit_service import record_audit_event
from .bill_numbering import fallback_bill_number, next_bill_number

INVALID_RENT_ERROR = "Missing or invalid monthly rent"
ZERO = Decimal("0")


@dataclass(frozen=True)
class TenantBillingResult:
    """Outcome of billing one tenant: a bill id or an error message."""

    tenant_id: int
    bill_id: Optional[int] = None
    amount: Decimal = ZERO
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, tenant_id: int, error: str) -> "TenantBillingResult":
        return cls(tenant_id=tenant_id, error=error)


@dataclass
class OwnerBillingReport:
    owner_id: int
    for_month: str
    log_id: Optional[int] = None
    results: List[TenantBillingResult] = field(default_factory=list)

    @property
    def bills_generated(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def bills_failed(self) -> int:
        return sum(1 for result in self.results if not result.ok)

    @property
    def total_amount(self) -> Decimal:
        return sum((result.amount for result in self.results if result.ok), ZERO)

    @property
    def errors(self) -> List[Dict[str, Any]]:
        return [{"tenant_id": result.tenant_id, "error": result.error} for result in self.results if not result.ok]


@dataclass
class BillingRunSummary:
    run_date: date
    for_month: str
    owners_processed: int = 0
    reports: List[OwnerBillingReport] = field(default_factory=list)

    @property
    def bills_generated(self) -> int:
        return sum(report.bills_generated for report in self.reports)

    def as_payload(self) -> Dict[str, int]:
        return {"billsGenerated": self.bills_generated, "ownersProcessed": self.owners_processed}


def period_label(day: date) -> str:
    """Human label for the billing period, e.g. ``"January 2025"``."""
    return f"{calendar.month_name[day.month]} {day.year}"


def billing_period(day: date) -> Tuple[date, date]:
    last_day = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last_day)


def _settings_for(config: OwnerConfig) -> Optional[AutoBillingSettings]:
    defaults = current_app.config.get("AUTO_BILLING_DEFAULTS") or {}
    try:
        return AutoBillingSettings.from_mapping(config.auto_billing_settings, defaults)
    except InvalidBillingSettings as exc:
        current_app.logger.warning("Skipping owner %s with malformed billing settings: %s", config.owner_id, exc)
        return None


def generate_bills(run_date: Optional[date] = None) -> BillingRunSummary:
    """Run auto-billing for every eligible owner.

    Exceptions outside the per-owner and per-tenant guards propagate; the
    caller reports the invocation as failed and the generation logs remain
    the record of what was persisted.
    """
    run_date = run_date or date.today()
    label = period_label(run_date)
    summary = BillingRunSummary(run_date=run_date, for_month=label)
    current_app.logger.info("Auto-billing started for %s (day %s)", label, run_date.day)

    configs = db.session.execute(
        select(OwnerConfig)
        .join(Owner, Owner.id == OwnerConfig.owner_id)
        .where(Owner.is_active)
        .order_by(OwnerConfig.owner_id)
    ).scalars().all()
    eligible: List[Tuple[int, int, AutoBillingSettings]] = []
    for config in configs:
        settings = _settings_for(config)
        if settings is None or not settings.enabled or run_date.day != settings.billing_day:
            continue
        if settings.last_generated_month == label:
            current_app.logger.debug("Owner %s already billed for %s", config.owner_id, label)
            continue
        eligible.append((config.id, config.owner_id, settings))

    for config_id, owner_id, settings in eligible:
        summary.owners_processed += 1
        report = generate_bills_for_owner(owner_id, config_id, settings, run_date)
        if report is not None:
            summary.reports.append(report)

    current_app.logger.info(
        "Auto-billing complete: %s bills for %s owners", summary.bills_generated, summary.owners_processed
    )
    return summary


def generate_bills_for_owner(
    owner_id: int,
    config_id: int,
    settings: AutoBillingSettings,
    run_date: date,
) -> Optional[OwnerBillingReport]:
    """Bill every active tenant of one owner; ``None`` when the owner was skipped."""
    label = period_label(run_date)
    current_app.logger.info("Processing owner %s for %s", owner_id, label)

    try:
        log_entry = BillGenerationLog(owner_id=owner_id, for_month=label)
        db.session.add(log_entry)
        db.session.commit()
        log_id = log_entry.id
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not open generation log for owner %s", owner_id)
        return None

    try:
        tenants = _active_tenants(owner_id)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Error fetching tenants for owner %s", owner_id)
        return None

    report = OwnerBillingReport(owner_id=owner_id, for_month=label, log_id=log_id)
    for tenant in tenants:
        try:
            result = _bill_tenant(owner_id, tenant, settings, run_date)
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception("Error processing tenant %s", tenant.id)
            result = TenantBillingResult.failure(tenant.id, str(exc) or "Unknown error")
        report.results.append(result)

    _finalize_run(report, config_id)
    _emit_run_audit(report)

    current_app.logger.info(
        "Owner %s billing complete: %s generated, %s failed",
        owner_id,
        report.bills_generated,
        report.bills_failed,
    )
    return report


def _active_tenants(owner_id: int) -> Sequence[Any]:
    return db.session.execute(
        Tenant.scoped_to_owner(owner_id, Tenant.id, Tenant.name, Tenant.property_id, Tenant.monthly_rent)
        .where(Tenant.status == TenantStatus.ACTIVE)
        .order_by(Tenant.id)
    ).all()


def _pending_charges(tenant_id: int) -> Sequence[Any]:
    return db.session.execute(
        select(Charge.id, Charge.amount, Charge.for_period, ChargeType.name.label("type_name"))
        .outerjoin(ChargeType, Charge.charge_type_id == ChargeType.id)
        .where(
            Charge.tenant_id == tenant_id,
            Charge.status == ChargeStatus.PENDING,
            Charge.bill_id.is_(None),
        )
        .order_by(Charge.id)
    ).all()


def previous_balance(tenant_id: int) -> Decimal:
    """Sum of every outstanding balance on the tenant's unpaid bills."""
    balances = db.session.execute(
        select(Bill.balance_due).where(
            Bill.tenant_id == tenant_id,
            Bill.balance_due > 0,
            Bill.status != BillStatus.PAID,
        )
    ).scalars()
    return sum((to_decimal(balance) or ZERO for balance in balances), ZERO)


def build_line_items(
    monthly_rent: Decimal,
    label: str,
    charges: Sequence[Any] = (),
) -> List[Dict[str, Any]]:
    """Rent first, then each pending charge with a valid positive amount."""
    items: List[Dict[str, Any]] = [
        {"type": "Rent", "description": f"Monthly Rent - {label}", "amount": float(monthly_rent)}
    ]
    for charge in charges:
        amount = positive_amount(charge.amount)
        if amount is None:
            current_app.logger.debug("Skipping charge %s with invalid amount %r", charge.id, charge.amount)
            continue
        items.append(
            {
                "type": charge.type_name or "Charge",
                "description": charge.for_period or label,
                "amount": float(amount),
            }
        )
    return items


def _bill_number(owner_id: int, year: int) -> str:
    try:
        return next_bill_number(owner_id, year)
    except SQLAlchemyError:
        db.session.rollback()
        number = fallback_bill_number()
        current_app.logger.warning("Bill numbering failed for owner %s; using %s", owner_id, number, exc_info=True)
        return number


def _bill_tenant(owner_id: int, tenant: Any, settings: AutoBillingSettings, run_date: date) -> TenantBillingResult:
    label = period_label(run_date)
    monthly_rent = positive_amount(tenant.monthly_rent)
    if monthly_rent is None:
        current_app.logger.warning(
            "Tenant %s (%s) has invalid monthly rent %r, skipping", tenant.id, tenant.name, tenant.monthly_rent
        )
        return TenantBillingResult.failure(tenant.id, INVALID_RENT_ERROR)

    charges: Sequence[Any] = _pending_charges(tenant.id) if settings.include_pending_charges else ()
    line_items = build_line_items(monthly_rent, label, charges)
    subtotal = monthly_rent + sum(
        (amount for amount in (positive_amount(charge.amount) for charge in charges) if amount is not None),
        ZERO,
    )
    carried = previous_balance(tenant.id)
    total_amount = subtotal + carried
    period_start, period_end = billing_period(run_date)

    bill = Bill(
        owner_id=owner_id,
        tenant_id=tenant.id,
        property_id=tenant.property_id,
        bill_number=_bill_number(owner_id, run_date.year),
        bill_date=run_date,
        due_date=run_date + timedelta(days=settings.due_day_offset),
        period_start=period_start,
        period_end=period_end,
        for_month=label,
        subtotal=subtotal,
        previous_balance=carried,
        total_amount=total_amount,
        paid_amount=ZERO,
        balance_due=total_amount,
        status=BillStatus.PENDING,
        line_items=line_items,
        is_auto_generated=True,
        generated_at=datetime.utcnow(),
    )
    db.session.add(bill)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        message = str(getattr(exc, "orig", None) or exc)
        current_app.logger.error("Error creating bill for tenant %s: %s", tenant.id, message)
        return TenantBillingResult.failure(tenant.id, message)

    bill_id = bill.id
    if charges:
        _link_charges(tenant.id, bill_id, [charge.id for charge in charges])

    current_app.logger.debug("Generated bill %s for tenant %s: %s", bill_id, tenant.name, total_amount)
    return TenantBillingResult(tenant_id=tenant.id, bill_id=bill_id, amount=total_amount)


def _link_charges(tenant_id: int, bill_id: int, charge_ids: List[int]) -> None:
    """Point the consumed charges at their bill; failures leave the bill intact."""
    try:
        db.session.execute(
            update(Charge)
            .where(
                Charge.id.in_(charge_ids),
                Charge.tenant_id == tenant_id,
                Charge.status == ChargeStatus.PENDING,
                Charge.bill_id.is_(None),
            )
            .values(bill_id=bill_id)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Failed to link charges to bill %s for tenant %s", bill_id, tenant_id, exc_info=True)


def _finalize_run(report: OwnerBillingReport, config_id: int) -> None:
    """Close the generation log and set the period latch in one transaction."""
    log_entry = db.session.get(BillGenerationLog, report.log_id)
    log_entry.bills_generated = report.bills_generated
    log_entry.bills_failed = report.bills_failed
    log_entry.total_amount = report.total_amount
    log_entry.error_details = report.errors or None
    log_entry.completed_at = datetime.utcnow()

    config = db.session.get(OwnerConfig, config_id)
    config.auto_billing_settings = {
        **(config.auto_billing_settings or {}),
        "last_generated_month": report.for_month,
    }
    db.session.commit()


def _emit_run_audit(report: OwnerBillingReport) -> None:
    try:
        record_audit_event(
            entity_type="bill",
            entity_id=report.log_id or "batch",
            action="create",
            owner_id=report.owner_id,
            metadata={
                "operation": "auto_billing",
                "for_month": report.for_month,
                "bills_generated": report.bills_generated,
                "bills_failed": report.bills_failed,
                "total_amount": float(report.total_amount),
            },
        )
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Audit event for owner %s run was not recorded", report.owner_id, exc_info=True)
