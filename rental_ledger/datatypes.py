from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional
from datetime import date

Money = Decimal       # whole-record amounts, no float rounding

# Ledger status shared by invoices, deposits and bookings.
# Always derived from the payment list, see money.apply_payments.
PENDING = 'pending'
PARTIAL = 'partial'
PAID = 'paid'
STATUSES = (PENDING, PARTIAL, PAID)

# Unit categories
APARTMENT_MONTHLY = 'apartment_monthly'
APARTMENT_DAILY = 'apartment_daily'
COMMERCIAL_MONTHLY = 'commercial_monthly'
UNIT_TYPES = (APARTMENT_MONTHLY, APARTMENT_DAILY, COMMERCIAL_MONTHLY)
MONTHLY_UNIT_TYPES = (APARTMENT_MONTHLY, COMMERCIAL_MONTHLY)

# Payment methods
CASH = 'cash'
TRANSFER = 'transfer'
PAYMENT_METHODS = (CASH, TRANSFER)


@dataclass
class Unit:
    id: str
    name: str                    # "Departamento 1"
    type: str                    # one of UNIT_TYPES


@dataclass
class AdditionalCharges:
    internet: Money = Money(0)
    furniture: Money = Money(0)
    other: Money = Money(0)

    def total(self) -> Money:
        return self.internet + self.furniture + self.other

    def items(self):
        return [('internet', self.internet), ('furniture', self.furniture), ('other', self.other)]


@dataclass(frozen=True)
class Payment:
    amount: Money               # positive = received, negative = credit note
    date: date
    payer_name: str
    method: str = TRANSFER      # "cash" | "transfer"
    note: str = ''
    id: Optional[str] = None    # assigned by the billing service


@dataclass
class Contract:
    id: str
    unit_id: str
    tenant_name: str
    start_date: date
    end_date: date              # inclusive
    monthly_rent: Money
    additional_charges: AdditionalCharges = field(default_factory=AdditionalCharges)
    deposit_installments: int = 1   # informational only
    deposit_amount: Money = Money(0)
    deposit_balance: Money = Money(0)
    deposit_status: str = PENDING
    deposit_payments: List[Payment] = field(default_factory=list)

    @property
    def monthly_total(self) -> Money:
        return self.monthly_rent + self.additional_charges.total()


@dataclass
class Invoice:
    id: str
    contract_id: str
    unit_id: str
    tenant_name: str            # cached from the contract, refreshed on every edit
    period: str                 # "2024-08"
    due_date: date
    base_rent: Money
    additional_charges: AdditionalCharges
    total_amount: Money
    balance: Money
    status: str = PENDING
    payments: List[Payment] = field(default_factory=list)
    reminder_sent: bool = False


@dataclass
class Booking:
    id: str
    unit_id: str
    guest_name: str
    start_date: date
    end_date: date              # check-out day
    guest_count: int
    total_amount: Money
    deposit: Money
    balance: Money
    status: str = PENDING
    payments: List[Payment] = field(default_factory=list)


@dataclass
class DailyRates:
    p1: Money
    p2: Money
    p3: Money
    p4: Money                   # 4 or more guests

    def for_guests(self, guest_count: int) -> Money:
        if guest_count == 1:
            return self.p1
        if guest_count == 2:
            return self.p2
        if guest_count == 3:
            return self.p3
        return self.p4


@dataclass
class GlobalSettings:
    additional_charges: AdditionalCharges
    daily_rates: DailyRates
    booking_deposit_percentage: Money
    id: str = 'global'
