"""Shared fixtures: an in-memory app per test plus small model factories."""
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest

from rentcycle import create_app
from rentcycle.config import TestingConfig
from rentcycle.extensions import db
from rentcycle.models import (
    Bill,
    BillStatus,
    Charge,
    ChargeType,
    Owner,
    OwnerConfig,
    Property,
    Tenant,
    TenantStatus,
)

CRON_HEADERS = {"Authorization": f"Bearer {TestingConfig.CRON_SECRET}"}


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def session(app):
    return db.session


class Factory:
    """Builds committed rows with sensible defaults."""

    def __init__(self):
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def owner(self, *, billing_day=1, enabled=True, **settings) -> Owner:
        n = self._next()
        owner = Owner(name=f"Owner {n}", email=f"owner{n}@example.com")
        db.session.add(owner)
        db.session.flush()
        blob = {"enabled": enabled, "billing_day": billing_day, "due_day_offset": 10}
        blob.update(settings)
        db.session.add(OwnerConfig(owner_id=owner.id, auto_billing_settings=blob))
        db.session.commit()
        return owner

    def property(self, owner: Owner) -> Property:
        prop = Property(owner_id=owner.id, name=f"Property {self._next()}")
        db.session.add(prop)
        db.session.commit()
        return prop

    def tenant(self, owner: Owner, prop: Property | None = None, *, rent="8000", status=TenantStatus.ACTIVE) -> Tenant:
        prop = prop or self.property(owner)
        tenant = Tenant(
            owner_id=owner.id,
            property_id=prop.id,
            name=f"Tenant {self._next()}",
            monthly_rent=Decimal(rent) if rent is not None else None,
            status=status,
        )
        db.session.add(tenant)
        db.session.commit()
        return tenant

    def charge(self, tenant: Tenant, amount="1200", *, type_name="Electricity", for_period="October 2026") -> Charge:
        charge_type = ChargeType(owner_id=tenant.owner_id, name=type_name) if type_name else None
        if charge_type is not None:
            db.session.add(charge_type)
            db.session.flush()
        charge = Charge(
            owner_id=tenant.owner_id,
            tenant_id=tenant.id,
            charge_type_id=charge_type.id if charge_type else None,
            amount=Decimal(amount) if amount is not None else None,
            for_period=for_period,
        )
        db.session.add(charge)
        db.session.commit()
        return charge

    def bill(
        self,
        tenant: Tenant,
        *,
        total="1000",
        balance=None,
        status=BillStatus.PENDING,
        bill_date: date = date(2026, 9, 1),
        due_in_days: int = 10,
        bill_number: str | None = None,
    ) -> Bill:
        total_amount = Decimal(total)
        bill = Bill(
            owner_id=tenant.owner_id,
            tenant_id=tenant.id,
            property_id=tenant.property_id,
            bill_number=bill_number or f"MANUAL-{self._next()}",
            bill_date=bill_date,
            due_date=bill_date + timedelta(days=due_in_days),
            period_start=bill_date.replace(day=1),
            period_end=bill_date.replace(day=28),
            for_month=f"{bill_date:%B %Y}",
            subtotal=total_amount,
            total_amount=total_amount,
            paid_amount=Decimal("0"),
            balance_due=Decimal(balance) if balance is not None else total_amount,
            status=status,
            line_items=[{"type": "Rent", "description": "Manual", "amount": float(total_amount)}],
        )
        db.session.add(bill)
        db.session.commit()
        return bill


@pytest.fixture
def factory(app):
    return Factory()


@pytest.fixture
def cron_headers():
    return dict(CRON_HEADERS)
