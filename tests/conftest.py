from datetime import date
from decimal import Decimal

import pytest

from rental_ledger import config
from rental_ledger.billing import BillingService
from rental_ledger.datatypes import (
    AdditionalCharges, Contract, DailyRates, GlobalSettings, Payment, PENDING,
)
from rental_ledger.storage import MemoryStore


def pay(amount, on=date(2024, 1, 20), payer='Ana Diaz', method='transfer', note=''):
    """Shorthand for a caller-side payment entry."""
    return Payment(amount=Decimal(str(amount)), date=on, payer_name=payer, method=method, note=note)


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    config.clear_cache()
    yield
    config.clear_cache()


@pytest.fixture()
def settings():
    return GlobalSettings(
        additional_charges=AdditionalCharges(internet=Decimal('30'), furniture=Decimal('50'), other=Decimal('15')),
        daily_rates=DailyRates(p1=Decimal('100'), p2=Decimal('150'), p3=Decimal('200'), p4=Decimal('220')),
        booking_deposit_percentage=Decimal('30'),
    )


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def service(store, settings):
    return BillingService(store, default_settings=settings)


@pytest.fixture()
def make_contract():
    """Factory for a stored-looking contract with a fresh, unpaid deposit."""
    def _make(start=date(2024, 1, 15), end=date(2024, 3, 15), rent='1000', charges=None,
              contract_id='contract-1', tenant='Ana Diaz', unit_id='am-1'):
        rent = Decimal(rent)
        return Contract(
            id=contract_id,
            unit_id=unit_id,
            tenant_name=tenant,
            start_date=start,
            end_date=end,
            monthly_rent=rent,
            additional_charges=charges or AdditionalCharges(),
            deposit_amount=rent,
            deposit_balance=rent,
            deposit_status=PENDING,
            deposit_payments=[],
        )
    return _make
