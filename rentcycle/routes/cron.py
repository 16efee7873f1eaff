"""Scheduler-facing endpoints for billing runs and the overdue sweep."""
from __future__ import annotations

from flask import Blueprint, current_app

from ..extensions import db
from ..services.bill_generation import generate_bills
from ..services.overdue_service import mark_overdue_bills
from ..utils.api_response import api_success, internal_error
from ..utils.auth import cron_secret_required
from ..utils.rate_limit import cron_rate_limit, limiter

cron_bp = Blueprint("cron", __name__, url_prefix="/api/cron")


@cron_bp.route("/generate-bills", methods=["GET", "POST"])
@limiter.shared_limit(cron_rate_limit, scope="cron")
@cron_secret_required
def generate_monthly_bills():
    try:
        summary = generate_bills()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Auto-billing run failed")
        return internal_error("Internal server error")

    return api_success(
        summary.as_payload(),
        message=f"Generated {summary.bills_generated} bills for {summary.owners_processed} owners",
    )


@cron_bp.route("/mark-overdue", methods=["GET", "POST"])
@limiter.shared_limit(cron_rate_limit, scope="cron")
@cron_secret_required
def mark_overdue():
    try:
        updated = mark_overdue_bills()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Overdue sweep failed")
        return internal_error("Internal server error")

    return api_success({"billsMarkedOverdue": updated}, message=f"Marked {updated} bills overdue")
