"""``flask billing ...`` commands for running billing jobs from a shell or system cron."""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

import click
from flask import Flask

from .services.bill_generation import generate_bills
from .services.bill_reconciliation import reconcile_bill
from .services.overdue_service import mark_overdue_bills


def _parse_run_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise click.BadParameter("Use YYYY-MM-DD.") from exc


def register_cli(app: Flask) -> None:
    @app.cli.group("billing")
    def billing():
        """Auto-billing jobs."""

    @billing.command("generate")
    @click.option("--date", "run_date", help="Run as if today were YYYY-MM-DD.")
    def generate_command(run_date: Optional[str]):
        summary = generate_bills(_parse_run_date(run_date))
        click.echo(f"Generated {summary.bills_generated} bills for {summary.owners_processed} owners ({summary.for_month})")
        for report in summary.reports:
            click.echo(
                f"  owner {report.owner_id}: {report.bills_generated} generated, "
                f"{report.bills_failed} failed, total {report.total_amount}"
            )

    @billing.command("mark-overdue")
    @click.option("--date", "as_of", help="Treat YYYY-MM-DD as today.")
    def mark_overdue_command(as_of: Optional[str]):
        updated = mark_overdue_bills(_parse_run_date(as_of))
        click.echo(f"Marked {updated} bills overdue")

    @billing.command("reconcile")
    @click.argument("bill_id", type=int)
    def reconcile_command(bill_id: int):
        result = reconcile_bill(bill_id)
        if result is None:
            raise click.ClickException(f"Bill {bill_id} not found")
        click.echo(
            f"Bill {bill_id}: paid {result.paid_amount} of {result.total_amount}, "
            f"balance {result.balance_due}, status {result.status.value}"
        )
