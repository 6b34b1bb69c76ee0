"""
Settlement engine: the single entry point that keeps a group's pending
settlements in line with its expense ledger.

Two trigger modes share one pipeline (lock, balances, net, reconcile, write):

* full: balances are aggregated from every expense of the group;
* incremental: the cached member balances are adjusted by one expense
  snapshot (added, removed, or both for an edit).

Both modes persist the resulting balances and reconcile against the same
pending rows, so they converge on the identical pending set.
"""

import logging
from typing import Any, Callable, Optional

from .balances import Balances, ExpenseSnapshot, aggregate_balances, apply_expense, nonzero
from .cancellation import CancellationToken
from .exceptions import (
    ExpenseGroupMismatchError,
    RecalculationCancelledError,
    SettlementsServiceError,
)
from .netting import net_balances
from .reconciliation import ReconciliationPlan, reconcile
from .repository import DjangoSettlementRepository, SettlementRepository

logger = logging.getLogger(__name__)


class SettlementEngine:

    def __init__(self, repository: Optional[SettlementRepository] = None):
        self.repository = repository or DjangoSettlementRepository()

    def recalculate_settlements(
        self,
        group_id: Any,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ReconciliationPlan:
        """Rebuild balances from the whole ledger and reconcile settlements."""
        def compute():
            return aggregate_balances(self.repository.list_expenses(group_id))

        return self._run(group_id, 'full', compute, cancel_token)

    def recalculate_settlements_for_expense_change(
        self,
        expense,
        group_id: Any,
        is_addition: bool,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ReconciliationPlan:
        """
        Apply one expense added to (or removed from) the ledger.

        Args:
            expense: Expense instance or ExpenseSnapshot. For a removal, pass
                the snapshot taken before the row was deleted.
            group_id: Group the expense belongs to.
            is_addition: True when the expense was added, False when removed.
            cancel_token: Optional CancellationToken.

        Raises:
            ExpenseGroupMismatchError: If the expense belongs to another group.
        """
        snapshot = _as_snapshot(expense)
        _check_group(snapshot, group_id)

        def compute():
            balances = self.repository.load_balances(group_id)
            return apply_expense(balances, snapshot, is_addition=is_addition)

        mode = 'incremental add' if is_addition else 'incremental remove'
        return self._run(group_id, mode, compute, cancel_token)

    def recalculate_settlements_for_expense_edit(
        self,
        before,
        after,
        group_id: Any,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ReconciliationPlan:
        """Replace ``before`` with ``after`` in one guarded recompute."""
        before = _as_snapshot(before)
        after = _as_snapshot(after)
        _check_group(before, group_id)
        _check_group(after, group_id)

        def compute():
            balances = self.repository.load_balances(group_id)
            apply_expense(balances, before, is_addition=False)
            return apply_expense(balances, after, is_addition=True)

        return self._run(group_id, 'incremental edit', compute, cancel_token)

    def _run(
        self,
        group_id: Any,
        mode: str,
        compute: Callable[[], Balances],
        cancel_token: Optional[CancellationToken],
    ) -> ReconciliationPlan:
        token = cancel_token or CancellationToken()
        logger.info("Recalculating settlements for group %s (%s)", group_id, mode)

        try:
            with self.repository.guard(group_id):
                token.raise_if_cancelled()
                balances = nonzero(compute())

                token.raise_if_cancelled()
                transfers = net_balances(balances)
                plan = reconcile(transfers, self.repository.list_settlements(group_id))

                token.raise_if_cancelled()
                self.repository.save_balances(group_id, balances)
                if not plan.is_empty:
                    self.repository.apply_plan(group_id, plan)

                # Last chance to abort before commit
                token.raise_if_cancelled()
        except RecalculationCancelledError:
            logger.warning("Settlement recalculation for group %s (%s) cancelled", group_id, mode)
            raise
        except SettlementsServiceError as e:
            logger.error("Settlement recalculation for group %s (%s) failed: %s", group_id, mode, e)
            raise
        except Exception:
            logger.exception("Settlement recalculation for group %s (%s) failed", group_id, mode)
            raise

        logger.info(
            "Settlements for group %s (%s): %d transfers, %s",
            group_id, mode, len(transfers), plan.summary(),
        )
        return plan


def _as_snapshot(expense) -> ExpenseSnapshot:
    if isinstance(expense, ExpenseSnapshot):
        return expense
    return ExpenseSnapshot.from_model(expense)


def _check_group(snapshot: ExpenseSnapshot, group_id: Any) -> None:
    if str(snapshot.group_id) != str(group_id):
        raise ExpenseGroupMismatchError(
            f"Expense {snapshot.id} belongs to group {snapshot.group_id}, not {group_id}"
        )


def recalculate_settlements(group_id, cancel_token=None) -> ReconciliationPlan:
    return SettlementEngine().recalculate_settlements(group_id, cancel_token=cancel_token)


def recalculate_settlements_for_expense_change(expense, group_id, is_addition, cancel_token=None) -> ReconciliationPlan:
    return SettlementEngine().recalculate_settlements_for_expense_change(
        expense, group_id, is_addition, cancel_token=cancel_token,
    )


def recalculate_settlements_for_expense_edit(before, after, group_id, cancel_token=None) -> ReconciliationPlan:
    return SettlementEngine().recalculate_settlements_for_expense_edit(
        before, after, group_id, cancel_token=cancel_token,
    )
