"""Tests for the monthly auto-billing run."""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from rentcycle.extensions import db
from rentcycle.models import (
    AuditEvent,
    Bill,
    BillGenerationLog,
    BillStatus,
    Charge,
    OwnerConfig,
    TenantStatus,
)
from rentcycle.services import bill_generation
from rentcycle.services.bill_generation import (
    INVALID_RENT_ERROR,
    billing_period,
    build_line_items,
    generate_bills,
    period_label,
    previous_balance,
)

RUN_DATE = date(2026, 10, 1)


def _bills_for(tenant_id):
    return db.session.execute(select(Bill).where(Bill.tenant_id == tenant_id).order_by(Bill.id)).scalars().all()


def _logs_for(owner_id):
    return db.session.execute(
        select(BillGenerationLog).where(BillGenerationLog.owner_id == owner_id)
    ).scalars().all()


class TestPeriodHelpers:
    """Period labels and date ranges"""

    def test_period_label_uses_full_month_name(self):
        assert period_label(date(2025, 1, 15)) == "January 2025"

    def test_billing_period_covers_whole_month(self):
        assert billing_period(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))
        assert billing_period(date(2026, 12, 1)) == (date(2026, 12, 1), date(2026, 12, 31))

    def test_line_items_skip_invalid_charges(self, app):
        class _Charge:
            def __init__(self, id, amount, type_name=None, for_period=None):
                self.id = id
                self.amount = amount
                self.type_name = type_name
                self.for_period = for_period

        items = build_line_items(
            Decimal("8000"),
            "October 2026",
            [_Charge(1, Decimal("1200"), "Electricity", "Sept usage"), _Charge(2, None), _Charge(3, Decimal("-5"))],
        )

        assert items == [
            {"type": "Rent", "description": "Monthly Rent - October 2026", "amount": 8000.0},
            {"type": "Electricity", "description": "Sept usage", "amount": 1200.0},
        ]


class TestGenerateBills:
    """End-to-end behaviour of a billing run"""

    def test_bill_includes_rent_charges_and_carried_balance(self, factory):
        owner = factory.owner()
        tenant = factory.tenant(owner, rent="8000")
        factory.charge(tenant, "1200")
        factory.bill(tenant, total="500")

        summary = generate_bills(RUN_DATE)

        assert summary.as_payload() == {"billsGenerated": 1, "ownersProcessed": 1}
        bill = _bills_for(tenant.id)[-1]
        assert bill.subtotal == Decimal("9200")
        assert bill.previous_balance == Decimal("500")
        assert bill.total_amount == Decimal("9700")
        assert bill.balance_due == Decimal("9700")
        assert bill.paid_amount == Decimal("0")
        assert bill.status == BillStatus.PENDING
        assert bill.is_auto_generated is True
        assert bill.for_month == "October 2026"
        assert bill.due_date == date(2026, 10, 11)
        assert (bill.period_start, bill.period_end) == (date(2026, 10, 1), date(2026, 10, 31))
        assert [item["type"] for item in bill.line_items] == ["Rent", "Electricity"]

    def test_invalid_rent_is_recorded_and_skipped(self, factory):
        owner = factory.owner()
        good = factory.tenant(owner, rent="5000")
        missing = factory.tenant(owner, rent=None)
        zero = factory.tenant(owner, rent="0")

        summary = generate_bills(RUN_DATE)

        assert summary.bills_generated == 1
        assert len(_bills_for(good.id)) == 1
        assert _bills_for(missing.id) == []
        assert _bills_for(zero.id) == []

        (log,) = _logs_for(owner.id)
        assert log.bills_generated == 1
        assert log.bills_failed == 2
        assert log.total_amount == Decimal("5000")
        assert log.is_complete
        assert sorted(entry["tenant_id"] for entry in log.error_details) == sorted([missing.id, zero.id])
        assert {entry["error"] for entry in log.error_details} == {INVALID_RENT_ERROR}

    def test_only_active_tenants_are_billed(self, factory):
        owner = factory.owner()
        active = factory.tenant(owner)
        leaving = factory.tenant(owner, status=TenantStatus.NOTICE_PERIOD)
        gone = factory.tenant(owner, status=TenantStatus.MOVED_OUT)

        generate_bills(RUN_DATE)

        assert len(_bills_for(active.id)) == 1
        assert _bills_for(leaving.id) == []
        assert _bills_for(gone.id) == []

    def test_second_run_in_same_period_is_a_no_op(self, factory):
        owner = factory.owner()
        tenant = factory.tenant(owner)

        first = generate_bills(RUN_DATE)
        second = generate_bills(RUN_DATE)

        assert first.bills_generated == 1
        assert second.as_payload() == {"billsGenerated": 0, "ownersProcessed": 0}
        assert len(_bills_for(tenant.id)) == 1
        assert len(_logs_for(owner.id)) == 1

    def test_latch_is_set_after_run(self, factory):
        owner = factory.owner()
        factory.tenant(owner)

        generate_bills(RUN_DATE)

        config = db.session.execute(select(OwnerConfig).filter_by(owner_id=owner.id)).scalar_one()
        assert config.auto_billing_settings["last_generated_month"] == "October 2026"
        assert config.auto_billing_settings["billing_day"] == 1

    def test_disabled_owner_and_other_billing_days_are_skipped(self, factory):
        disabled = factory.owner(enabled=False)
        later = factory.owner(billing_day=5)
        t1 = factory.tenant(disabled)
        t2 = factory.tenant(later)

        summary = generate_bills(RUN_DATE)

        assert summary.owners_processed == 0
        assert _bills_for(t1.id) == []
        assert _bills_for(t2.id) == []
        assert _logs_for(disabled.id) == []

    def test_deactivated_owner_is_not_billed(self, factory):
        owner = factory.owner()
        tenant = factory.tenant(owner)
        owner.is_active = False
        db.session.commit()

        summary = generate_bills(RUN_DATE)

        assert summary.owners_processed == 0
        assert _bills_for(tenant.id) == []
        assert _logs_for(owner.id) == []

    def test_billing_day_past_month_end_never_fires(self, factory):
        owner = factory.owner(billing_day=31)
        tenant = factory.tenant(owner)

        generate_bills(date(2026, 11, 30))

        assert _bills_for(tenant.id) == []

    def test_malformed_settings_skip_only_that_owner(self, factory):
        broken = factory.owner(billing_day="first")
        healthy = factory.owner()
        factory.tenant(broken)
        tenant = factory.tenant(healthy)

        summary = generate_bills(RUN_DATE)

        assert summary.owners_processed == 1
        assert len(_bills_for(tenant.id)) == 1

    def test_consumed_charges_are_not_billed_again(self, factory):
        owner = factory.owner()
        tenant = factory.tenant(owner, rent="8000")
        charge = factory.charge(tenant, "1200")

        generate_bills(RUN_DATE)
        generate_bills(date(2026, 11, 1))

        october, november = _bills_for(tenant.id)
        assert db.session.get(Charge, charge.id).bill_id == october.id
        assert [item["type"] for item in november.line_items] == ["Rent"]
        assert november.subtotal == Decimal("8000")
        # October's unpaid balance rolls into November
        assert november.previous_balance == Decimal("9200")
        assert november.total_amount == Decimal("17200")

    def test_pending_charges_ignored_when_disabled(self, factory):
        owner = factory.owner(include_pending_charges=False)
        tenant = factory.tenant(owner, rent="8000")
        charge = factory.charge(tenant, "1200")

        generate_bills(RUN_DATE)

        (bill,) = _bills_for(tenant.id)
        assert bill.subtotal == Decimal("8000")
        assert db.session.get(Charge, charge.id).bill_id is None

    def test_invalid_charge_is_left_out_of_the_total(self, factory):
        owner = factory.owner()
        tenant = factory.tenant(owner, rent="3000")
        factory.charge(tenant, None, type_name=None)
        factory.charge(tenant, "250", type_name=None)

        generate_bills(RUN_DATE)

        (bill,) = _bills_for(tenant.id)
        assert bill.subtotal == Decimal("3250")
        assert bill.line_items[1] == {"type": "Charge", "description": "October 2026", "amount": 250.0}

    def test_paid_and_zero_balances_are_not_carried(self, factory):
        owner = factory.owner()
        tenant = factory.tenant(owner)
        factory.bill(tenant, total="700", balance="0", status=BillStatus.PAID)
        factory.bill(tenant, total="300", balance="300", status=BillStatus.OVERDUE)
        factory.bill(tenant, total="200", balance="200", status=BillStatus.PARTIAL)

        assert previous_balance(tenant.id) == Decimal("500")

    def test_bill_numbers_are_sequential_per_owner_and_year(self, factory):
        owner = factory.owner()
        first = factory.tenant(owner)
        second = factory.tenant(owner)
        other_owner = factory.owner()
        third = factory.tenant(other_owner)

        generate_bills(RUN_DATE)

        assert _bills_for(first.id)[0].bill_number == "INV-2026-0001"
        assert _bills_for(second.id)[0].bill_number == "INV-2026-0002"
        assert _bills_for(third.id)[0].bill_number == "INV-2026-0001"

    def test_number_collision_fails_only_that_tenant(self, factory):
        owner = factory.owner()
        tenant = factory.tenant(owner)
        # Dated last year so it is not counted, but it already holds this year's first number
        factory.bill(tenant, bill_date=date(2025, 12, 1), bill_number="INV-2026-0001", balance="0", status=BillStatus.PAID)

        summary = generate_bills(RUN_DATE)

        assert summary.bills_generated == 0
        (report,) = summary.reports
        assert report.bills_failed == 1
        assert "UNIQUE" in report.errors[0]["error"].upper()
        (log,) = _logs_for(owner.id)
        assert log.bills_failed == 1
        assert log.completed_at is not None

    def test_numbering_failure_falls_back_to_timestamp(self, factory, monkeypatch):
        owner = factory.owner()
        tenant = factory.tenant(owner)

        def _broken(owner_id, year):
            raise OperationalError("SELECT count(*)", {}, Exception("database is locked"))

        monkeypatch.setattr(bill_generation, "next_bill_number", _broken)

        generate_bills(RUN_DATE)

        (bill,) = _bills_for(tenant.id)
        prefix, timestamp = bill.bill_number.split("-")
        assert prefix == "INV"
        assert timestamp.isdigit() and len(timestamp) >= 13

    def test_tenant_listing_failure_skips_owner_without_latch(self, factory, monkeypatch):
        owner = factory.owner()
        tenant = factory.tenant(owner)

        def _broken(owner_id):
            raise OperationalError("SELECT tenants", {}, Exception("connection lost"))

        monkeypatch.setattr(bill_generation, "_active_tenants", _broken)

        summary = generate_bills(RUN_DATE)

        assert summary.owners_processed == 1
        assert summary.reports == []
        assert _bills_for(tenant.id) == []
        (log,) = _logs_for(owner.id)
        assert not log.is_complete
        config = db.session.execute(select(OwnerConfig).filter_by(owner_id=owner.id)).scalar_one()
        assert "last_generated_month" not in config.auto_billing_settings

    def test_unexpected_tenant_error_does_not_stop_the_run(self, factory, monkeypatch):
        owner = factory.owner()
        first = factory.tenant(owner)
        second = factory.tenant(owner)
        real_previous_balance = bill_generation.previous_balance

        def _flaky(tenant_id):
            if tenant_id == first.id:
                raise RuntimeError("boom")
            return real_previous_balance(tenant_id)

        monkeypatch.setattr(bill_generation, "previous_balance", _flaky)

        summary = generate_bills(RUN_DATE)

        (report,) = summary.reports
        assert report.bills_generated == 1
        assert report.errors == [{"tenant_id": first.id, "error": "boom"}]
        assert len(_bills_for(second.id)) == 1

    def test_run_emits_audit_event(self, factory):
        owner = factory.owner()
        factory.tenant(owner, rent="4000")
        factory.tenant(owner, rent=None)

        summary = generate_bills(RUN_DATE)

        (event,) = db.session.execute(select(AuditEvent).filter_by(owner_id=owner.id)).scalars().all()
        assert event.entity_type == "bill"
        assert event.entity_id == str(summary.reports[0].log_id)
        assert event.action == "create"
        assert event.actor_id == "system"
        assert event.actor_type == "system"
        assert event.event_metadata == {
            "operation": "auto_billing",
            "for_month": "October 2026",
            "bills_generated": 1,
            "bills_failed": 1,
            "total_amount": 4000.0,
        }


class TestGenerationLog:
    """Finalized logs are immutable"""

    def test_completed_log_cannot_be_modified(self, factory):
        owner = factory.owner()
        factory.tenant(owner)
        generate_bills(RUN_DATE)

        (log,) = _logs_for(owner.id)
        log.bills_generated = 99
        with pytest.raises(ValueError):
            db.session.commit()
        db.session.rollback()
