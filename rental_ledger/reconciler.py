"""
Contract reconciliation.

When a lease is edited, its invoice set is diffed against the months the
edited contract now covers:

  * invoices for months still covered are kept; the unit, tenant name and
    due date are always refreshed, unpaid ones are re-priced and re-settled over the
    payments they already carry, paid ones keep their frozen totals
  * invoices for months no longer covered are deleted, paid ones included
  * months without an invoice get a fresh pending one

The deposit follows a rent change only while it is not yet fully paid.
"""

import logging
from copy import deepcopy
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List

from .datatypes import Contract, Invoice, PAID
from .money import settle, settle_deposit
from .schedule import billing_periods, build_invoice, due_date_for

logger = logging.getLogger(__name__)


@dataclass
class ReconcilePlan:
    contract: Contract
    keep: List[Invoice] = field(default_factory=list)
    create: List[Invoice] = field(default_factory=list)
    delete: List[Invoice] = field(default_factory=list)
    updated: List[Invoice] = field(default_factory=list)   # subset of keep that changed
    contract_changed: bool = True

    @property
    def is_noop(self) -> bool:
        return not (self.contract_changed or self.create or self.delete or self.updated)

    def invoices(self) -> List[Invoice]:
        """The contract's invoice set after the plan is applied, by period."""
        return sorted(self.keep + self.create, key=lambda inv: inv.period)


def reconcile(old_contract: Contract, new_contract: Contract,
              existing_invoices: Iterable[Invoice]) -> ReconcilePlan:
    contract = _carry_deposit(old_contract, new_contract)

    wanted = billing_periods(contract.start_date, contract.end_date)
    wanted_set = set(wanted)
    due_day = contract.start_date.day

    plan = ReconcilePlan(contract=contract, contract_changed=contract != old_contract)
    seen: Dict[str, Invoice] = {}

    for inv in existing_invoices:
        if inv.contract_id != contract.id:
            continue

        if inv.period not in wanted_set or inv.period in seen:
            if inv.status == PAID:
                logger.warning(f"Deleting PAID invoice {inv.id} ({inv.period}): "
                               f"period no longer covered by {contract.id}")
            plan.delete.append(inv)
            continue

        updated = _refresh(inv, contract, due_day)
        seen[inv.period] = updated
        plan.keep.append(updated)
        if updated != inv:
            plan.updated.append(updated)

    for period in wanted:
        if period not in seen:
            plan.create.append(build_invoice(contract, period))

    logger.debug(f"Reconciled {contract.id}: keep={len(plan.keep)} (changed {len(plan.updated)}) "
                 f"create={len(plan.create)} delete={len(plan.delete)}")
    return plan


def _refresh(inv: Invoice, contract: Contract, due_day: int) -> Invoice:
    """Copy of a kept invoice brought in line with the contract's terms."""
    updated = replace(
        inv,
        unit_id=contract.unit_id,
        tenant_name=contract.tenant_name,
        due_date=due_date_for(inv.period, due_day),
        payments=list(inv.payments),
    )
    if inv.status != PAID:
        updated.base_rent = contract.monthly_rent
        updated.additional_charges = deepcopy(contract.additional_charges)
        updated.total_amount = contract.monthly_total
        settle(updated)
    return updated


def _carry_deposit(old: Contract, new: Contract) -> Contract:
    """
    The edited contract with its deposit sub-ledger taken from the stored one.

    Deposit fields on the edit request are ignored: the deposit only moves
    through payments, or through a rent change while it is still open.
    """
    contract = replace(
        new,
        id=old.id,
        deposit_amount=old.deposit_amount,
        deposit_balance=old.deposit_balance,
        deposit_status=old.deposit_status,
        deposit_payments=list(old.deposit_payments),
    )
    if old.deposit_status != PAID and old.monthly_rent != new.monthly_rent:
        contract.deposit_amount = new.monthly_rent
        settle_deposit(contract)
        logger.info(f"Deposit for {old.id} retargeted {old.deposit_amount} -> {contract.deposit_amount} "
                    f"(balance {contract.deposit_balance}, {contract.deposit_status})")
    return contract
