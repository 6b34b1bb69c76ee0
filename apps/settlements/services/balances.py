"""
Balance aggregation.

Reduces expenses into a signed net balance per member:
``sum(amounts paid) - sum(shares owed)``. Positive means the group owes
the member money, negative means the member owes the group.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Tuple

ZERO = Decimal('0.00')

Balances = Dict[Any, Decimal]


@dataclass(frozen=True)
class BeneficiaryShare:
    user_id: Any
    share: Decimal


@dataclass(frozen=True)
class ExpenseSnapshot:
    """Immutable copy of an expense and its shares, detached from the ORM."""

    id: Any
    group_id: Any
    paid_by_id: Any
    amount: Decimal
    beneficiaries: Tuple[BeneficiaryShare, ...] = ()
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, expense) -> 'ExpenseSnapshot':
        """Snapshot an Expense row (beneficiaries in submitted order)."""
        beneficiaries = sorted(expense.beneficiaries.all(), key=lambda b: b.position)
        return cls(
            id=expense.id,
            group_id=expense.group_id,
            paid_by_id=expense.paid_by_id,
            amount=expense.amount,
            beneficiaries=tuple(
                BeneficiaryShare(user_id=b.user_id, share=b.share)
                for b in beneficiaries
            ),
            created_at=expense.created_at,
        )

    @property
    def shares_total(self) -> Decimal:
        return sum((b.share for b in self.beneficiaries), ZERO)


def apply_expense(balances: Balances, expense: ExpenseSnapshot, is_addition: bool = True) -> Balances:
    """
    Add (or, with ``is_addition=False``, remove) one expense's effect.

    Mutates and returns ``balances``. Editing an expense is expressed as
    ``apply_expense(b, old, False)`` followed by ``apply_expense(b, new, True)``.
    """
    sign = 1 if is_addition else -1

    balances[expense.paid_by_id] = balances.get(expense.paid_by_id, ZERO) + sign * expense.amount
    for beneficiary in expense.beneficiaries:
        balances[beneficiary.user_id] = balances.get(beneficiary.user_id, ZERO) - sign * beneficiary.share

    return balances


def aggregate_balances(expenses: Iterable[ExpenseSnapshot]) -> Balances:
    """Net balance per member over ``expenses``; every member touched appears."""
    balances: Balances = {}
    for expense in expenses:
        apply_expense(balances, expense, is_addition=True)
    return balances


def nonzero(balances: Balances) -> Balances:
    return {member_id: amount for member_id, amount in balances.items() if amount != ZERO}
