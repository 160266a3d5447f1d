"""
Monthly invoice schedule.

A contract is billed once per calendar month that overlaps its
[start_date, end_date] range. Every invoice is due on the contract's start
day-of-month, clamped to the last day of shorter months (a lease starting on
the 31st is due Feb 28/29, Apr 30, ...).
"""

import logging
from copy import deepcopy
from datetime import date
from typing import List

from dateutil.relativedelta import relativedelta

from .datatypes import Contract, Invoice, PENDING
from .money import settle

logger = logging.getLogger(__name__)


def period_of(d: date) -> str:
    """Billing period token for the month containing d, e.g. "2024-08"."""
    return f"{d.year:04d}-{d.month:02d}"


def parse_period(period: str) -> date:
    """First day of the month named by a period token."""
    year, month = period.split('-')
    return date(int(year), int(month), 1)


def billing_periods(start_date: date, end_date: date) -> List[str]:
    """Period tokens from start_date's month to end_date's month, inclusive."""
    periods = []
    current = start_date.replace(day=1)
    last = end_date.replace(day=1)

    # start after end yields nothing
    while current <= last and start_date <= end_date:
        periods.append(period_of(current))
        current = current + relativedelta(months=1)
    return periods


def due_date_for(period: str, day_of_month: int) -> date:
    # relativedelta(day=N) clamps to the month's last day
    return parse_period(period) + relativedelta(day=day_of_month)


def invoice_id(contract_id: str, period: str) -> str:
    return f"invoice-{contract_id}-{period}"


def build_invoice(contract: Contract, period: str) -> Invoice:
    """
    Fresh invoice with no payments for one period of the contract's current
    terms. It is settled on creation, so a zero total starts out PAID.
    """
    total = contract.monthly_total
    invoice = Invoice(
        id=invoice_id(contract.id, period),
        contract_id=contract.id,
        unit_id=contract.unit_id,
        tenant_name=contract.tenant_name,
        period=period,
        due_date=due_date_for(period, contract.start_date.day),
        base_rent=contract.monthly_rent,
        additional_charges=deepcopy(contract.additional_charges),
        total_amount=total,
        balance=total,
        status=PENDING,
        payments=[],
        reminder_sent=False,
    )
    return settle(invoice)


def generate_invoices(contract: Contract) -> List[Invoice]:
    """One invoice per billing period of the contract, ordered by period."""
    periods = billing_periods(contract.start_date, contract.end_date)
    invoices = [build_invoice(contract, period) for period in periods]
    if invoices:
        logger.debug(f"Generated {len(invoices)} invoices for {contract.id}: "
                     f"{periods[0]} .. {periods[-1]} at {contract.monthly_total}")
    else:
        logger.debug(f"No billing periods for {contract.id} ({contract.start_date} > {contract.end_date})")
    return invoices
