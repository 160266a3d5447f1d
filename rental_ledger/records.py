"""Conversion between ledger dataclasses and plain dicts for document storage."""

import logging
from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from .datatypes import (
    AdditionalCharges, Booking, Contract, DailyRates, GlobalSettings, Invoice,
    Payment, Unit,
)
from .errors import StorageError

logger = logging.getLogger(__name__)


def dump_record(record) -> dict:
    """Plain dict of a record: dates as ISO strings, money as strings."""
    return _plain(asdict(record))


def _plain(value):
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def load_record(collection: str, data: dict):
    loader = _LOADERS.get(collection)
    if loader is None:
        raise StorageError(f"Unknown collection {collection!r}")
    try:
        return loader(data)
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        raise StorageError(f"Corrupt {collection} record {data.get('id')!r}: {e}") from e


def _parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _parse_money(value) -> Decimal:
    if value is None or value == '':
        return Decimal('0')
    return Decimal(str(value))


def _load_charges(data) -> AdditionalCharges:
    data = data or {}
    return AdditionalCharges(
        internet=_parse_money(data.get('internet')),
        furniture=_parse_money(data.get('furniture')),
        other=_parse_money(data.get('other')),
    )


def _load_payment(data) -> Payment:
    return Payment(
        id=data.get('id'),
        amount=_parse_money(data['amount']),
        date=_parse_date(data['date']),
        payer_name=str(data.get('payer_name', '')),
        method=data.get('method', 'transfer'),
        note=data.get('note') or '',
    )


def _load_payments(items):
    return [_load_payment(p) for p in (items or [])]


def _load_unit(data) -> Unit:
    return Unit(id=data['id'], name=data['name'], type=data['type'])


def _load_contract(data) -> Contract:
    return Contract(
        id=data['id'],
        unit_id=data['unit_id'],
        tenant_name=data['tenant_name'],
        start_date=_parse_date(data['start_date']),
        end_date=_parse_date(data['end_date']),
        monthly_rent=_parse_money(data['monthly_rent']),
        additional_charges=_load_charges(data.get('additional_charges')),
        deposit_installments=int(data.get('deposit_installments', 1)),
        deposit_amount=_parse_money(data.get('deposit_amount')),
        deposit_balance=_parse_money(data.get('deposit_balance')),
        deposit_status=data.get('deposit_status', 'pending'),
        deposit_payments=_load_payments(data.get('deposit_payments')),
    )


def _load_invoice(data) -> Invoice:
    return Invoice(
        id=data['id'],
        contract_id=data['contract_id'],
        unit_id=data['unit_id'],
        tenant_name=data['tenant_name'],
        period=str(data['period']),
        due_date=_parse_date(data['due_date']),
        base_rent=_parse_money(data['base_rent']),
        additional_charges=_load_charges(data.get('additional_charges')),
        total_amount=_parse_money(data['total_amount']),
        balance=_parse_money(data['balance']),
        status=data.get('status', 'pending'),
        payments=_load_payments(data.get('payments')),
        reminder_sent=bool(data.get('reminder_sent', False)),
    )


def _load_booking(data) -> Booking:
    return Booking(
        id=data['id'],
        unit_id=data['unit_id'],
        guest_name=data['guest_name'],
        start_date=_parse_date(data['start_date']),
        end_date=_parse_date(data['end_date']),
        guest_count=int(data['guest_count']),
        total_amount=_parse_money(data['total_amount']),
        deposit=_parse_money(data.get('deposit')),
        balance=_parse_money(data['balance']),
        status=data.get('status', 'pending'),
        payments=_load_payments(data.get('payments')),
    )


def load_settings(data) -> GlobalSettings:
    rates = data['daily_rates']
    return GlobalSettings(
        id=data.get('id', 'global'),
        additional_charges=_load_charges(data.get('additional_charges')),
        daily_rates=DailyRates(
            p1=_parse_money(rates['p1']),
            p2=_parse_money(rates['p2']),
            p3=_parse_money(rates['p3']),
            p4=_parse_money(rates['p4']),
        ),
        booking_deposit_percentage=_parse_money(data['booking_deposit_percentage']),
    )


_LOADERS = {
    'units': _load_unit,
    'contracts': _load_contract,
    'invoices': _load_invoice,
    'bookings': _load_booking,
    'settings': load_settings,
}
