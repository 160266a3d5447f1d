"""Suggested price and deposit for a short-stay booking."""

import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from .datatypes import DailyRates, Money
from .money import _r


@dataclass(frozen=True)
class Quote:
    nights: int
    total_amount: Money
    suggested_deposit: Money


def nights_between(start_date: date, end_date: date) -> int:
    return math.ceil((end_date - start_date).total_seconds() / 86400)


def price(start_date: date, end_date: date, guest_count: int,
          rates: DailyRates, deposit_percent) -> Quote:
    """
    Price a stay from the nightly rate table.

    Suggestions only: the booking may be created with other amounts.
    A stay with no nights is priced at zero; callers reject it.
    """
    nights = nights_between(start_date, end_date)
    if nights <= 0:
        return Quote(nights=nights, total_amount=Money(0), suggested_deposit=Money(0))

    total = rates.for_guests(guest_count) * nights
    deposit = _r(total * Decimal(str(deposit_percent)) / Decimal(100))
    return Quote(nights=nights, total_amount=total, suggested_deposit=deposit)
