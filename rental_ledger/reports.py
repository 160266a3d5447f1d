"""
Read-side views over the ledger: payment report, upcoming invoices and
rent reminder texts. Nothing here mutates records.
"""

import logging
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional

import pandas as pd

from .datatypes import Booking, Contract, Invoice, PENDING, PARTIAL

logger = logging.getLogger(__name__)

COLUMNS = ['Date', 'Type', 'Description', 'Amount']

RENT = 'Monthly rent'
DEPOSIT = 'Deposit'
SHORT_STAY = 'Short stay'


def payment_report(contracts: Iterable[Contract], invoices: Iterable[Invoice],
                   bookings: Iterable[Booking], start: Optional[date] = None,
                   end: Optional[date] = None, unit_id: Optional[str] = None) -> pd.DataFrame:
    """
    Every payment and credit note received in [start, end], oldest first.

    Either bound may be omitted; unit_id narrows the report to one unit.
    """
    def wanted(record_unit, paid_on):
        if unit_id and record_unit != unit_id:
            return False
        if start and paid_on < start:
            return False
        if end and paid_on > end:
            return False
        return True

    rows = []
    for inv in invoices:
        for p in inv.payments:
            if wanted(inv.unit_id, p.date):
                rows.append(_row(p.date, RENT, f"Payment from {inv.tenant_name} (period {inv.period})", p.amount))

    for c in contracts:
        for p in c.deposit_payments:
            if wanted(c.unit_id, p.date):
                rows.append(_row(p.date, DEPOSIT, f"Deposit from {c.tenant_name}", p.amount))

    for b in bookings:
        for p in b.payments:
            if wanted(b.unit_id, p.date):
                rows.append(_row(p.date, SHORT_STAY,
                                 f"Payment from {b.guest_name} ({b.start_date} - {b.end_date})", p.amount))

    df = pd.DataFrame(rows, columns=COLUMNS)
    if not df.empty:
        df = df.sort_values('Date', kind='stable').reset_index(drop=True)
    logger.debug(f"Payment report: {len(df)} rows")
    return df


def _row(paid_on, kind, description, amount):
    return {'Date': paid_on, 'Type': kind, 'Description': description, 'Amount': amount}


def write_report_csv(df: pd.DataFrame, csv_path: Path) -> None:
    logger.info(f"Writing {len(df)} report rows to {csv_path}")
    out = df.copy()
    out['Date'] = out['Date'].map(_format_date)
    out['Amount'] = out['Amount'].map(_format_money)
    out.to_csv(csv_path, index=False, columns=COLUMNS)


def report_total(df: pd.DataFrame):
    return sum(df['Amount'], start=0) if not df.empty else 0


def upcoming_invoices(invoices: Iterable[Invoice]) -> List[Invoice]:
    """Invoices still owing something, earliest due date first."""
    open_ = [inv for inv in invoices if inv.status in (PENDING, PARTIAL)]
    return sorted(open_, key=lambda inv: (inv.due_date, inv.tenant_name))


def reminder_message(invoice: Invoice, signature: str = 'The management') -> str:
    """Plain-text rent reminder for a tenant, ready to paste into a chat."""
    lines = [
        f"Hello {invoice.tenant_name},",
        f"This is a reminder that your rent for period {invoice.period} is due on "
        f"{_format_date(invoice.due_date)}.",
        "",
        f"Total due: {_format_money(invoice.total_amount)}",
    ]
    if invoice.balance != invoice.total_amount:
        lines.append(f"Outstanding balance: {_format_money(invoice.balance)}")
    lines.append("Breakdown:")
    lines.append(f"- Rent: {_format_money(invoice.base_rent)}")
    for name, amount in invoice.additional_charges.items():
        lines.append(f"- {name.capitalize()}: {_format_money(amount)}")
    lines.append("")
    lines.append("Please let us know if you need any further information.")
    lines.append(f"- {signature}")
    return "\n".join(lines)


def _format_date(date_obj):
    if date_obj is None:
        return None
    return date_obj.strftime('%Y-%m-%d')


def _format_money(amount):
    """Format money amount with $ prefix, sign in front"""
    if amount < 0:
        return f'-${-amount:,.2f}'
    return f'${amount:,.2f}'
