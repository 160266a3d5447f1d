"""
Tests for folding payment lists into balance and status.
"""
from datetime import date
from decimal import Decimal

from rental_ledger.datatypes import AdditionalCharges, Invoice, PENDING, PARTIAL, PAID
from rental_ledger.money import apply_payments, settle, settle_deposit

from conftest import pay


class TestApplyPayments:

    def test_no_payments_is_pending(self):
        """An untouched ledger owes its whole total"""
        state = apply_payments(Decimal('1000'), [])
        assert state.balance == Decimal('1000')
        assert state.paid_amount == Decimal('0')
        assert state.status == PENDING

    def test_partial_payment(self):
        """Paying 400 of 1000 leaves 600 and a partial status"""
        state = apply_payments(Decimal('1000'), [pay(400)])
        assert state.balance == Decimal('600')
        assert state.status == PARTIAL

    def test_credit_note_returns_to_pending(self):
        """A credit note that cancels the only payment brings the ledger back to pending"""
        state = apply_payments(Decimal('1000'), [pay(400), pay(-400)])
        assert state.paid_amount == Decimal('400')
        assert state.credited_amount == Decimal('400')
        assert state.net_paid == Decimal('0')
        assert state.balance == Decimal('1000')
        assert state.status == PENDING

    def test_exact_payment_is_paid(self):
        state = apply_payments(Decimal('1000'), [pay(600), pay(400)])
        assert state.balance == Decimal('0')
        assert state.status == PAID

    def test_overpayment_goes_negative_and_stays_paid(self):
        """Callers must not assume balance >= 0"""
        state = apply_payments(Decimal('1000'), [pay(1200)])
        assert state.balance == Decimal('-200')
        assert state.status == PAID

    def test_credit_without_payment_is_pending(self):
        """A lone credit note raises the balance but nothing has been paid"""
        state = apply_payments(Decimal('1000'), [pay(-100)])
        assert state.balance == Decimal('1100')
        assert state.status == PENDING

    def test_paid_iff_balance_not_positive(self):
        """Status is PAID exactly when the balance has reached zero or below"""
        cases = [
            [], [pay(1)], [pay(999)], [pay(1000)], [pay(1001)],
            [pay(1000), pay(-1)], [pay(500), pay(500), pay(-500)], [pay(-50), pay(1050)],
        ]
        for payments in cases:
            state = apply_payments(Decimal('1000'), payments)
            assert (state.status == PAID) == (state.balance <= 0), payments

    def test_order_does_not_matter(self):
        payments = [pay(300), pay(-100), pay(500)]
        forward = apply_payments(Decimal('1000'), payments)
        backward = apply_payments(Decimal('1000'), list(reversed(payments)))
        assert forward == backward
        assert forward.balance == Decimal('300')
        assert forward.status == PARTIAL


class TestSettle:

    def test_settle_invoice_in_place(self):
        """settle() rewrites balance and status from the invoice's own payments"""
        inv = Invoice(
            id='invoice-x', contract_id='c', unit_id='am-1', tenant_name='Ana',
            period='2024-01', due_date=date(2024, 1, 15), base_rent=Decimal('1000'),
            additional_charges=AdditionalCharges(), total_amount=Decimal('1000'),
            balance=Decimal('1000'), payments=[pay(250)],
        )
        assert settle(inv) is inv
        assert inv.balance == Decimal('750')
        assert inv.status == PARTIAL

    def test_settle_deposit(self, make_contract):
        """The deposit sub-ledger uses the same formula against its target"""
        contract = make_contract(rent='800')
        contract.deposit_payments = [pay(800)]
        settle_deposit(contract)
        assert contract.deposit_balance == Decimal('0')
        assert contract.deposit_status == PAID
