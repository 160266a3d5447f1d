"""
Money ledger: fold a payment list into paid total, balance and status.

Status is never stored as a transition. Every mutation re-derives it from
the full payment list, so any state can follow any other (a credit note can
take a partial invoice back to pending).
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from .datatypes import Money, Payment, Contract, PENDING, PARTIAL, PAID


@dataclass(frozen=True)
class LedgerState:
    paid_amount: Money          # sum of positive entries
    credited_amount: Money      # sum of |negative entries|
    balance: Money              # may go below zero on overpayment
    status: str

    @property
    def net_paid(self) -> Money:
        return self.paid_amount - self.credited_amount


def apply_payments(total_due: Money, payments: Iterable[Payment]) -> LedgerState:
    paid = Money(0)
    credited = Money(0)
    for p in payments:
        if p.amount > 0:
            paid += p.amount
        elif p.amount < 0:
            credited += -p.amount

    balance = total_due - paid + credited
    if balance <= 0:
        status = PAID
    elif paid - credited > 0:
        status = PARTIAL
    else:
        status = PENDING
    return LedgerState(paid_amount=paid, credited_amount=credited, balance=balance, status=status)


def settle(record):
    """Recompute balance/status of an Invoice or Booking in place and return it."""
    state = apply_payments(record.total_amount, record.payments)
    record.balance = state.balance
    record.status = state.status
    return record


def settle_deposit(contract: Contract) -> Contract:
    state = apply_payments(contract.deposit_amount, contract.deposit_payments)
    contract.deposit_balance = state.balance
    contract.deposit_status = state.status
    return contract


def _r(x):  # round to whole currency units HALF_UP
    return Decimal(x).quantize(Decimal('1'), ROUND_HALF_UP)
