"""Database models package with owner-scoped billing entities."""
from .audit import AuditEvent
from .billing import Bill, BillGenerationLog, BillStatus
from .ledger import Charge, ChargeStatus, ChargeType, Payment
from .owner import AutoBillingSettings, InvalidBillingSettings, Owner, OwnerConfig
from .property import Property, Tenant, TenantStatus

__all__ = [
    "Owner",
    "OwnerConfig",
    "AutoBillingSettings",
    "InvalidBillingSettings",
    "Property",
    "Tenant",
    "TenantStatus",
    "ChargeType",
    "Charge",
    "ChargeStatus",
    "Payment",
    "Bill",
    "BillStatus",
    "BillGenerationLog",
    "AuditEvent",
]
