"""
Billing service: the operations the presentation layer calls.

Every mutation validates its input first, then runs under the lock of the
aggregate it touches (a contract with its invoices, a booking, or the
settings), and persists its result with a single store batch. A failed
batch leaves the store as it was and is reported as a StorageError, never
retried.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from . import config
from .datatypes import (
    AdditionalCharges, Booking, Contract, DailyRates, GlobalSettings, Invoice, Money, Payment,
    APARTMENT_DAILY, MONTHLY_UNIT_TYPES, PAYMENT_METHODS, PENDING,
)
from .errors import NotFoundError, StorageError, ValidationError
from .money import settle, settle_deposit
from .pricer import Quote, nights_between, price
from .reconciler import ReconcilePlan, reconcile
from .schedule import generate_invoices
from .storage import Delete, Put, Store, read_backup, record_counts, write_backup

logger = logging.getLogger(__name__)

EDITABLE_CONTRACT_FIELDS = frozenset([
    'unit_id', 'tenant_name', 'start_date', 'end_date', 'monthly_rent',
    'additional_charges', 'deposit_installments',
])

_KIND_BY_COLLECTION = {
    'contracts': 'Contract',
    'invoices': 'Invoice',
    'bookings': 'Booking',
}


class BillingService:

    def __init__(self, store: Store, default_settings: Optional[GlobalSettings] = None, units=None):
        self.store = store
        self._locks: Dict[tuple, threading.RLock] = {}
        self._locks_guard = threading.Lock()

        if not self.store.get_all('units'):
            catalogue = units if units is not None else config.load_units()
            self._commit([Put('units', u) for u in catalogue])
            logger.info(f"Seeded {len(catalogue)} units")

        self._default_settings = default_settings
        self._settings = self._load_settings()

    # ------------------------------------------------------------------ reads

    @property
    def settings(self) -> GlobalSettings:
        return deepcopy(self._settings)

    def units(self):
        return sorted(self.store.get_all('units'), key=lambda u: u.id)

    def contracts(self) -> List[Contract]:
        return sorted(self.store.get_all('contracts'), key=lambda c: (c.start_date, c.id))

    def invoices(self, contract_id: Optional[str] = None) -> List[Invoice]:
        invoices = self.store.get_all('invoices')
        if contract_id is not None:
            invoices = [i for i in invoices if i.contract_id == contract_id]
        return sorted(invoices, key=lambda i: (i.period, i.contract_id))

    def bookings(self) -> List[Booking]:
        return sorted(self.store.get_all('bookings'), key=lambda b: (b.start_date, b.id))

    def get_contract(self, contract_id: str) -> Contract:
        return self._require('contracts', contract_id)

    def get_invoice(self, invoice_id: str) -> Invoice:
        return self._require('invoices', invoice_id)

    def get_booking(self, booking_id: str) -> Booking:
        return self._require('bookings', booking_id)

    # -------------------------------------------------------------- contracts

    def create_contract(self, unit_id: str, tenant_name: str, start_date, end_date, monthly_rent,
                        additional_charges: Optional[AdditionalCharges] = None,
                        deposit_installments: int = 1) -> Contract:
        if additional_charges is None:
            additional_charges = self._settings.additional_charges

        contract = Contract(
            id=_new_id('contract'),
            unit_id=unit_id,
            tenant_name=_required_text(tenant_name, 'tenant name'),
            start_date=_as_date(start_date, 'start date'),
            end_date=_as_date(end_date, 'end date'),
            monthly_rent=_as_money(monthly_rent, 'monthly rent'),
            additional_charges=_as_charges(additional_charges),
            deposit_installments=_as_installments(deposit_installments),
        )
        self._validate_contract(contract)

        # deposit target is one month's rent
        contract.deposit_amount = contract.monthly_rent
        contract.deposit_payments = []
        settle_deposit(contract)

        invoices = generate_invoices(contract)
        with self._lock('contract', contract.id):
            self._commit([Put('contracts', contract)] + [Put('invoices', inv) for inv in invoices])

        logger.info(f"Created contract {contract.id} for {contract.tenant_name} on {contract.unit_id}: "
                    f"{contract.start_date} .. {contract.end_date}, {len(invoices)} invoices")
        return contract

    def update_contract(self, contract_id: str, **changes) -> ReconcilePlan:
        unknown = set(changes) - EDITABLE_CONTRACT_FIELDS
        if unknown:
            raise ValidationError(f"Cannot edit contract field(s): {', '.join(sorted(unknown))}")

        normalized = _normalize_contract_changes(changes)

        with self._lock('contract', contract_id):
            old = self._require('contracts', contract_id)
            new = replace(old, **normalized)
            self._validate_contract(new)

            existing = self.invoices(contract_id)
            plan = reconcile(old, new, existing)
            if plan.is_noop:
                logger.info(f"Contract {contract_id} unchanged, nothing to write")
                return plan

            ops = []
            if plan.contract_changed:
                ops.append(Put('contracts', plan.contract))
            ops += [Put('invoices', inv) for inv in plan.updated + plan.create]
            ops += [Delete('invoices', inv.id) for inv in plan.delete]
            self._commit(ops)

        logger.info(f"Updated contract {contract_id}: {len(plan.updated)} invoices re-priced, "
                    f"{len(plan.create)} created, {len(plan.delete)} deleted")
        return plan

    def delete_contract(self, contract_id: str) -> None:
        with self._lock('contract', contract_id):
            self._require('contracts', contract_id)
            invoices = self.invoices(contract_id)
            self._commit([Delete('contracts', contract_id)] +
                         [Delete('invoices', inv.id) for inv in invoices])
            self._forget_lock('contract', contract_id)
        logger.info(f"Deleted contract {contract_id} and {len(invoices)} invoices")

    # --------------------------------------------------------------- payments

    def record_invoice_payment(self, invoice_id: str, payment: Payment) -> Invoice:
        payment = _new_payment(payment)
        owner = self._require('invoices', invoice_id).contract_id

        with self._lock('contract', owner):
            invoice = self._require('invoices', invoice_id)
            invoice = replace(invoice, payments=invoice.payments + [payment])
            settle(invoice)
            self._commit([Put('invoices', invoice)])

        logger.info(f"Payment {payment.amount} on invoice {invoice_id} ({invoice.period}): "
                    f"balance {invoice.balance}, {invoice.status}")
        return invoice

    def record_deposit_payment(self, contract_id: str, payment: Payment) -> Contract:
        payment = _new_payment(payment)

        with self._lock('contract', contract_id):
            contract = self._require('contracts', contract_id)
            contract = replace(contract, deposit_payments=contract.deposit_payments + [payment])
            settle_deposit(contract)
            self._commit([Put('contracts', contract)])

        logger.info(f"Deposit payment {payment.amount} on {contract_id}: "
                    f"balance {contract.deposit_balance}, {contract.deposit_status}")
        return contract

    def record_booking_payment(self, booking_id: str, payment: Payment) -> Booking:
        payment = _new_payment(payment)

        with self._lock('booking', booking_id):
            booking = self._require('bookings', booking_id)
            booking = replace(booking, payments=booking.payments + [payment])
            settle(booking)
            self._commit([Put('bookings', booking)])

        logger.info(f"Payment {payment.amount} on booking {booking_id}: "
                    f"balance {booking.balance}, {booking.status}")
        return booking

    def mark_reminder_sent(self, invoice_id: str) -> Invoice:
        owner = self._require('invoices', invoice_id).contract_id
        with self._lock('contract', owner):
            invoice = self._require('invoices', invoice_id)
            if not invoice.reminder_sent:
                invoice.reminder_sent = True
                self._commit([Put('invoices', invoice)])
        logger.info(f"Reminder sent for invoice {invoice_id}")
        return invoice

    # --------------------------------------------------------------- bookings

    def quote_booking(self, start_date, end_date, guest_count: int) -> Quote:
        s = self._settings
        return price(_as_date(start_date, 'start date'), _as_date(end_date, 'end date'),
                     _as_guest_count(guest_count), s.daily_rates, s.booking_deposit_percentage)

    def create_booking(self, unit_id: str, guest_name: str, start_date, end_date, guest_count: int,
                       total_amount=None, deposit=None) -> Booking:
        guest_name = _required_text(guest_name, 'guest name')
        start_date = _as_date(start_date, 'start date')
        end_date = _as_date(end_date, 'end date')
        guest_count = _as_guest_count(guest_count)
        if nights_between(start_date, end_date) <= 0:
            raise ValidationError(f"Booking must cover at least one night ({start_date} .. {end_date})")
        self._require_unit(unit_id, (APARTMENT_DAILY,))

        quote = self.quote_booking(start_date, end_date, guest_count)
        total = quote.total_amount if total_amount is None else _as_money(total_amount, 'total amount')
        deposit = quote.suggested_deposit if deposit is None else _as_money(deposit, 'deposit')
        if total <= 0:
            raise ValidationError(f"Booking total must be positive, got {total}")
        if deposit < 0:
            raise ValidationError(f"Deposit cannot be negative, got {deposit}")

        booking = Booking(
            id=_new_id('booking'),
            unit_id=unit_id,
            guest_name=guest_name,
            start_date=start_date,
            end_date=end_date,
            guest_count=guest_count,
            total_amount=total,
            deposit=deposit,
            balance=total,
            status=PENDING,
            payments=[],
        )
        with self._lock('booking', booking.id):
            self._commit([Put('bookings', booking)])

        logger.info(f"Created booking {booking.id} for {guest_name} on {unit_id}: "
                    f"{quote.nights} nights, total {total}, deposit {deposit}")
        return booking

    def delete_booking(self, booking_id: str) -> None:
        with self._lock('booking', booking_id):
            self._require('bookings', booking_id)
            self._commit([Delete('bookings', booking_id)])
            self._forget_lock('booking', booking_id)
        logger.info(f"Deleted booking {booking_id}")

    # --------------------------------------------------------------- settings

    def save_settings(self, settings: GlobalSettings) -> GlobalSettings:
        settings = _as_settings(settings)
        _validate_settings(settings)
        with self._lock('settings', 'global'):
            self._commit([Put('settings', settings)])
            self._settings = settings
        logger.info("Saved global settings")
        return self.settings

    # ---------------------------------------------------------------- backups

    def backup(self, path) -> Dict[str, int]:
        """Write every record to a backup file; returns the record count per collection."""
        return write_backup(self.store, path)

    def restore(self, path) -> Dict[str, int]:
        """
        Replace all data with a backup file's content.

        The file is fully validated first; a bad file leaves everything as it was.
        """
        records = read_backup(path)
        with self._lock('settings', 'global'):
            self._commit_replace(records)
            self._settings = self._load_settings()
        return record_counts(records)

    # ---------------------------------------------------------------- helpers

    @contextmanager
    def _lock(self, kind: str, key: str):
        with self._locks_guard:
            lock = self._locks.setdefault((kind, key), threading.RLock())
        with lock:
            try:
                yield
            except NotFoundError as e:
                # ids are never reused, so a missing aggregate needs no lock
                if e.record_id == key:
                    self._forget_lock(kind, key)
                raise

    def _forget_lock(self, kind: str, key: str):
        # called while holding the lock; waiters re-check the record and find it gone
        with self._locks_guard:
            self._locks.pop((kind, key), None)

    def _load_settings(self) -> GlobalSettings:
        stored = self.store.get_by_id('settings', 'global')
        if stored is not None:
            return stored
        logger.debug("No saved settings, using defaults")
        if self._default_settings:
            return deepcopy(self._default_settings)
        return config.load_default_settings()

    def _commit_replace(self, records) -> None:
        try:
            self.store.replace_all(records)
        except StorageError as e:
            logger.error(f"Restore failed, nothing replaced: {e}")
            raise

    def _commit(self, operations) -> None:
        try:
            self.store.batch(operations)
        except StorageError as e:
            logger.error(f"Batch of {len(operations)} operations failed, nothing applied: {e}")
            raise

    def _require(self, collection: str, record_id: str):
        record = self.store.get_by_id(collection, record_id)
        if record is None:
            raise NotFoundError(_KIND_BY_COLLECTION[collection], record_id)
        return record

    def _require_unit(self, unit_id: str, allowed_types):
        unit = self.store.get_by_id('units', unit_id)
        if unit is None:
            raise ValidationError(f"Unknown unit {unit_id!r}")
        if unit.type not in allowed_types:
            raise ValidationError(f"Unit {unit_id} ({unit.type}) cannot be used here")
        return unit

    def _validate_contract(self, contract: Contract):
        if not contract.tenant_name:
            raise ValidationError("Tenant name is required")
        if contract.start_date > contract.end_date:
            raise ValidationError(f"End date {contract.end_date} is before start date {contract.start_date}")
        if contract.monthly_rent < 0:
            raise ValidationError(f"Monthly rent cannot be negative, got {contract.monthly_rent}")
        for name, amount in contract.additional_charges.items():
            if amount < 0:
                raise ValidationError(f"Charge {name!r} cannot be negative, got {amount}")
        self._require_unit(contract.unit_id, MONTHLY_UNIT_TYPES)


# -------------------- module helpers --------------------

def _new_id(kind: str) -> str:
    return f"{kind}-{uuid.uuid4().hex[:12]}"


def _as_money(value, what: str) -> Money:
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{what.capitalize()} is required")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{what.capitalize()} is not a valid amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"{what.capitalize()} is not a valid amount: {value!r}")
    return amount


def _as_date(value, what: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"{what.capitalize()} must be a date, got {value!r}")


def _required_text(value, what: str) -> str:
    text = (value or '').strip()
    if not text:
        raise ValidationError(f"{what.capitalize()} is required")
    return text


def _as_charges(charges) -> AdditionalCharges:
    if isinstance(charges, dict):
        unknown = set(charges) - {'internet', 'furniture', 'other'}
        if unknown:
            raise ValidationError(f"Unknown charge(s): {', '.join(sorted(unknown))}")
        charges = AdditionalCharges(**charges)
    return AdditionalCharges(
        internet=_as_money(charges.internet, 'internet charge'),
        furniture=_as_money(charges.furniture, 'furniture charge'),
        other=_as_money(charges.other, 'other charge'),
    )


def _as_guest_count(value) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ValidationError(f"Guest count must be at least 1, got {value!r}")
    return value


def _as_installments(value) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ValidationError(f"Deposit installments must be a positive integer, got {value!r}")
    return value


def _normalize_contract_changes(changes: dict) -> dict:
    out = {}
    for key, value in changes.items():
        if key == 'tenant_name':
            out[key] = _required_text(value, 'tenant name')
        elif key in ('start_date', 'end_date'):
            out[key] = _as_date(value, key.replace('_', ' '))
        elif key == 'monthly_rent':
            out[key] = _as_money(value, 'monthly rent')
        elif key == 'additional_charges':
            out[key] = _as_charges(value)
        elif key == 'deposit_installments':
            out[key] = _as_installments(value)
        else:
            out[key] = value
    return out


def _new_payment(payment: Payment) -> Payment:
    """Validated copy of a caller's payment with a fresh id."""
    if not isinstance(payment, Payment):
        raise ValidationError(f"Expected a Payment, got {type(payment).__name__}")
    amount = _as_money(payment.amount, 'payment amount')
    if amount == 0:
        raise ValidationError("Payment amount cannot be zero")
    if payment.method not in PAYMENT_METHODS:
        raise ValidationError(f"Unknown payment method {payment.method!r}")
    return replace(
        payment,
        id=_new_id('payment'),
        amount=amount,
        date=_as_date(payment.date, 'payment date'),
        payer_name=_required_text(payment.payer_name, 'payer name'),
        note=(payment.note or '').strip(),
    )


def _as_settings(settings: GlobalSettings) -> GlobalSettings:
    rates = settings.daily_rates
    return GlobalSettings(
        id='global',
        additional_charges=_as_charges(settings.additional_charges),
        daily_rates=DailyRates(
            p1=_as_money(rates.p1, 'rate p1'),
            p2=_as_money(rates.p2, 'rate p2'),
            p3=_as_money(rates.p3, 'rate p3'),
            p4=_as_money(rates.p4, 'rate p4'),
        ),
        booking_deposit_percentage=_as_money(settings.booking_deposit_percentage,
                                             'booking deposit percentage'),
    )


def _validate_settings(settings: GlobalSettings):
    for name, amount in settings.additional_charges.items():
        if amount < 0:
            raise ValidationError(f"Default charge {name!r} cannot be negative, got {amount}")
    rates = settings.daily_rates
    for tier in ('p1', 'p2', 'p3', 'p4'):
        if getattr(rates, tier) <= 0:
            raise ValidationError(f"Nightly rate {tier} must be positive, got {getattr(rates, tier)}")
    pct = settings.booking_deposit_percentage
    if pct < 0 or pct > 100:
        raise ValidationError(f"Booking deposit percentage must be between 0 and 100, got {pct}")
