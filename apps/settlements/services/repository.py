"""
Persistence boundary of the settlement engine.

The engine only talks to a ``SettlementRepository``; the Django
implementation below is the production one, tests substitute an
in-memory fake. Every read happens inside ``guard(group_id)``, which is
what serializes recomputations of the same group.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator, List

from django.db import transaction
from django.utils import timezone

from apps.groups.models import Group
from apps.settlements.models import (
    Expense,
    MemberBalance,
    Settlement,
    SettlementStatus,
)

from .balances import Balances, ExpenseSnapshot, ZERO
from .exceptions import GroupNotFoundError
from .reconciliation import ReconciliationPlan, SettlementRow

logger = logging.getLogger(__name__)


class SettlementRepository(ABC):
    """Ledger reads and settlement writes for one group at a time."""

    @abstractmethod
    def guard(self, group_id: Any):
        """
        Context manager: one transaction holding the group's exclusive lock.

        Commits on normal exit, rolls back if the block raises.
        """

    @abstractmethod
    def list_expenses(self, group_id: Any) -> List[ExpenseSnapshot]:
        ...

    @abstractmethod
    def list_settlements(self, group_id: Any) -> List[SettlementRow]:
        ...

    @abstractmethod
    def load_balances(self, group_id: Any) -> Balances:
        ...

    @abstractmethod
    def save_balances(self, group_id: Any, balances: Balances) -> None:
        ...

    @abstractmethod
    def apply_plan(self, group_id: Any, plan: ReconciliationPlan) -> None:
        ...


class DjangoSettlementRepository(SettlementRepository):
    """
    ORM-backed repository.

    ``guard`` opens ``transaction.atomic()`` and locks the group row with
    SELECT ... FOR UPDATE; the read methods additionally lock the group's
    expense, settlement and balance rows. A second recomputation of the
    same group blocks on the group row until the first one commits.
    Nested inside an outer atomic block (the expense services), the guard
    becomes a savepoint and the locks live until the outer commit.
    """

    @contextmanager
    def guard(self, group_id: Any) -> Iterator[None]:
        with transaction.atomic():
            locked = list(
                Group.objects
                .select_for_update()
                .filter(id=group_id)
                .values_list('id', flat=True)
            )
            if not locked:
                raise GroupNotFoundError(f"Group with ID {group_id} not found")
            yield

    def list_expenses(self, group_id: Any) -> List[ExpenseSnapshot]:
        expenses = (
            Expense.objects
            .select_for_update()
            .filter(group_id=group_id)
            .prefetch_related('beneficiaries')
            .order_by('created_at', 'id')
        )
        return [ExpenseSnapshot.from_model(expense) for expense in expenses]

    def list_settlements(self, group_id: Any) -> List[SettlementRow]:
        settlements = (
            Settlement.objects
            .select_for_update()
            .filter(group_id=group_id)
            .order_by('created_at', 'id')
        )
        return [SettlementRow.from_model(settlement) for settlement in settlements]

    def load_balances(self, group_id: Any) -> Balances:
        rows = (
            MemberBalance.objects
            .select_for_update()
            .filter(group_id=group_id)
            .values_list('user_id', 'amount')
        )
        return {user_id: amount for user_id, amount in rows}

    def save_balances(self, group_id: Any, balances: Balances) -> None:
        existing = {
            str(row.user_id): row
            for row in MemberBalance.objects.select_for_update().filter(group_id=group_id)
        }
        wanted = {str(user_id): (user_id, amount) for user_id, amount in balances.items() if amount != ZERO}

        stale = [row.id for key, row in existing.items() if key not in wanted]
        changed = []
        created = []
        for key, (user_id, amount) in wanted.items():
            row = existing.get(key)
            if row is None:
                created.append(MemberBalance(group_id=group_id, user_id=user_id, amount=amount))
            elif row.amount != amount:
                row.amount = amount
                row.updated_at = timezone.now()
                changed.append(row)

        if stale:
            MemberBalance.objects.filter(id__in=stale).delete()
        if changed:
            MemberBalance.objects.bulk_update(changed, ['amount', 'updated_at'])
        if created:
            MemberBalance.objects.bulk_create(created)

    def apply_plan(self, group_id: Any, plan: ReconciliationPlan) -> None:
        if plan.deletes:
            # Status filter keeps paid history safe even if a plan is stale
            Settlement.objects.filter(
                group_id=group_id,
                id__in=plan.deletes,
                status=SettlementStatus.PENDING,
            ).delete()

        if plan.updates:
            now = timezone.now()
            rows = {
                row.id: row for row in Settlement.objects.filter(
                    group_id=group_id,
                    id__in=[update.settlement_id for update in plan.updates],
                    status=SettlementStatus.PENDING,
                )
            }
            for update in plan.updates:
                row = rows[update.settlement_id]
                row.amount = update.new_amount
                row.updated_at = now
            Settlement.objects.bulk_update(rows.values(), ['amount', 'updated_at'])

        if plan.inserts:
            Settlement.objects.bulk_create([
                Settlement(
                    group_id=group_id,
                    debtor_id=transfer.debtor_id,
                    creditor_id=transfer.creditor_id,
                    amount=transfer.amount,
                    status=SettlementStatus.PENDING,
                )
                for transfer in plan.inserts
            ])

        logger.debug("Applied settlement plan for group %s: %s", group_id, plan.summary())
