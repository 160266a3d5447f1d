"""
Tests for reconciling a contract's invoices after an edit.
"""
import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from rental_ledger.datatypes import AdditionalCharges, PENDING, PARTIAL, PAID
from rental_ledger.money import settle, settle_deposit
from rental_ledger.reconciler import reconcile
from rental_ledger.schedule import generate_invoices

from conftest import pay


@pytest.fixture()
def lease(make_contract):
    """Jan..Mar 2024 lease at 1000/month with its generated invoices"""
    contract = make_contract()
    return contract, generate_invoices(contract)


def _by_period(invoices):
    return {inv.period: inv for inv in invoices}


class TestIdempotence:

    def test_reconcile_against_itself_is_noop(self, lease):
        contract, invoices = lease
        plan = reconcile(contract, replace(contract), invoices)

        assert plan.create == []
        assert plan.delete == []
        assert plan.updated == []
        assert plan.is_noop
        assert plan.contract == contract
        assert [inv.period for inv in plan.keep] == ['2024-01', '2024-02', '2024-03']

    def test_noop_with_payments(self, lease):
        """Partially and fully paid invoices are unchanged by an identity edit"""
        contract, invoices = lease
        invoices[0].payments = [pay(1000)]
        invoices[1].payments = [pay(300)]
        for inv in invoices:
            settle(inv)
        contract.deposit_payments = [pay(200)]
        settle_deposit(contract)

        plan = reconcile(contract, replace(contract), invoices)

        assert plan.is_noop
        kept = _by_period(plan.keep)
        assert kept['2024-01'].status == PAID
        assert kept['2024-02'].balance == Decimal('700')
        assert plan.contract.deposit_balance == Decimal('800')


class TestDateChanges:

    def test_extend_by_one_month(self, lease):
        """Extending the end date adds exactly one pending invoice for the new month"""
        contract, invoices = lease
        plan = reconcile(contract, replace(contract, end_date=date(2024, 4, 15)), invoices)

        assert len(plan.create) == 1
        new = plan.create[0]
        assert new.period == '2024-04'
        assert new.status == PENDING
        assert new.due_date == date(2024, 4, 15)
        assert new.total_amount == Decimal('1000')
        assert plan.delete == []
        assert [inv.period for inv in plan.invoices()] == ['2024-01', '2024-02', '2024-03', '2024-04']

    def test_shorten_deletes_paid_trailing_invoice(self, lease, caplog):
        """Dropped periods are deleted even when already paid, with a warning"""
        contract, invoices = lease
        march = invoices[2]
        march.payments = [pay(1000)]
        settle(march)
        assert march.status == PAID

        with caplog.at_level(logging.WARNING, logger='rental_ledger.reconciler'):
            plan = reconcile(contract, replace(contract, end_date=date(2024, 2, 15)), invoices)

        assert [inv.period for inv in plan.delete] == ['2024-03']
        assert plan.create == []
        assert [inv.period for inv in plan.keep] == ['2024-01', '2024-02']
        assert 'PAID' in caplog.text

    def test_move_start_later(self, lease):
        """Moving the start forward drops leading months and relabels due dates"""
        contract, invoices = lease
        plan = reconcile(contract, replace(contract, start_date=date(2024, 2, 5)), invoices)

        assert [inv.period for inv in plan.delete] == ['2024-01']
        kept = _by_period(plan.keep)
        assert kept['2024-02'].due_date == date(2024, 2, 5)
        assert kept['2024-03'].due_date == date(2024, 3, 5)
        assert len(plan.updated) == 2

    def test_no_duplicate_periods(self, lease):
        """A second invoice for the same period is deleted rather than kept"""
        contract, invoices = lease
        duplicate = replace(invoices[0], id='invoice-duplicate')
        plan = reconcile(contract, replace(contract), invoices + [duplicate])

        periods = [inv.period for inv in plan.invoices()]
        assert len(periods) == len(set(periods))
        assert [inv.id for inv in plan.delete] == ['invoice-duplicate']

    def test_other_contracts_are_ignored(self, lease, make_contract):
        contract, invoices = lease
        other = generate_invoices(make_contract(contract_id='contract-2', start=date(2023, 1, 1)))
        plan = reconcile(contract, replace(contract, end_date=date(2024, 1, 31)), invoices + other)

        assert {inv.contract_id for inv in plan.keep + plan.create + plan.delete} == {'contract-1'}


class TestTermChanges:

    def test_rent_change_reprices_unpaid_and_freezes_paid(self, lease):
        contract, invoices = lease
        invoices[0].payments = [pay(1000)]      # paid
        invoices[1].payments = [pay(400)]       # partial
        for inv in invoices:
            settle(inv)

        new_charges = AdditionalCharges(internet=Decimal('50'))
        edited = replace(contract, monthly_rent=Decimal('1200'), additional_charges=new_charges,
                         tenant_name='Ana Maria Diaz')
        plan = reconcile(contract, edited, invoices)
        kept = _by_period(plan.keep)

        jan = kept['2024-01']
        assert jan.total_amount == Decimal('1000')
        assert jan.base_rent == Decimal('1000')
        assert jan.status == PAID
        assert jan.tenant_name == 'Ana Maria Diaz'

        feb = kept['2024-02']
        assert feb.base_rent == Decimal('1200')
        assert feb.additional_charges == new_charges
        assert feb.total_amount == Decimal('1250')
        assert feb.balance == Decimal('850')
        assert feb.status == PARTIAL
        assert len(feb.payments) == 1

        mar = kept['2024-03']
        assert mar.total_amount == Decimal('1250')
        assert mar.balance == Decimal('1250')
        assert mar.status == PENDING

        assert len(plan.updated) == 3

    def test_rent_cut_can_settle_a_partial_invoice(self, lease):
        """Lowering the rent below what was already paid flips the invoice to PAID"""
        contract, invoices = lease
        invoices[1].payments = [pay(800)]
        settle(invoices[1])

        plan = reconcile(contract, replace(contract, monthly_rent=Decimal('700')), invoices)
        feb = _by_period(plan.keep)['2024-02']
        assert feb.balance == Decimal('-100')
        assert feb.status == PAID

    def test_unit_change_follows_to_kept_invoices(self, lease):
        """Paid and unpaid invoices both move to the new unit along with created ones"""
        contract, invoices = lease
        invoices[0].payments = [pay(1000)]
        settle(invoices[0])

        plan = reconcile(contract, replace(contract, unit_id='am-2', end_date=date(2024, 4, 15)), invoices)

        assert {inv.unit_id for inv in plan.invoices()} == {'am-2'}
        assert len(plan.updated) == 3
        assert _by_period(plan.keep)['2024-01'].status == PAID

    def test_input_invoices_are_not_mutated(self, lease):
        contract, invoices = lease
        reconcile(contract, replace(contract, monthly_rent=Decimal('1500'), tenant_name='Bob'), invoices)
        assert all(inv.total_amount == Decimal('1000') for inv in invoices)
        assert all(inv.tenant_name == 'Ana Diaz' for inv in invoices)


class TestDeposit:

    def test_paid_deposit_never_reopens(self, lease):
        contract, invoices = lease
        contract.deposit_payments = [pay(1000)]
        settle_deposit(contract)

        plan = reconcile(contract, replace(contract, monthly_rent=Decimal('1500')), invoices)

        assert plan.contract.deposit_status == PAID
        assert plan.contract.deposit_amount == Decimal('1000')
        assert plan.contract.deposit_balance == Decimal('0')

    def test_open_deposit_follows_rent(self, lease):
        """A partially paid deposit is retargeted to the new rent, keeping its payments"""
        contract, invoices = lease
        contract.deposit_payments = [pay(400)]
        settle_deposit(contract)

        plan = reconcile(contract, replace(contract, monthly_rent=Decimal('1500')), invoices)

        assert plan.contract.deposit_amount == Decimal('1500')
        assert plan.contract.deposit_balance == Decimal('1100')
        assert plan.contract.deposit_status == PARTIAL
        assert plan.contract.deposit_payments == contract.deposit_payments

    def test_rent_cut_can_settle_deposit(self, lease):
        contract, invoices = lease
        contract.deposit_payments = [pay(600)]
        settle_deposit(contract)

        plan = reconcile(contract, replace(contract, monthly_rent=Decimal('600')), invoices)
        assert plan.contract.deposit_status == PAID

    def test_edit_request_cannot_rewrite_deposit(self, lease):
        """Deposit fields on the edited contract are ignored when the rent is unchanged"""
        contract, invoices = lease
        tampered = replace(contract, tenant_name='Bob', deposit_amount=Decimal('1'),
                           deposit_balance=Decimal('0'), deposit_status=PAID, deposit_payments=[pay(1)])
        plan = reconcile(contract, tampered, invoices)

        assert plan.contract.deposit_amount == Decimal('1000')
        assert plan.contract.deposit_balance == Decimal('1000')
        assert plan.contract.deposit_status == PENDING
        assert plan.contract.deposit_payments == []
        assert plan.contract.tenant_name == 'Bob'
