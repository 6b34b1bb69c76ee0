"""
Settlement reconciliation.

Diffs freshly computed transfers against the persisted settlement rows of
a group and produces the minimal set of writes:

* a transfer with no pending row for its (debtor, creditor) pair -> insert
* a pending row whose amount changed -> update the amount
* a pending row whose pair is no longer owed -> delete
* paid rows -> never touched

After the plan is applied, the group's pending settlements equal the
transfer list exactly and every paid row is unchanged.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Tuple

from apps.settlements.models import SettlementStatus

from .netting import Transfer


@dataclass(frozen=True)
class SettlementRow:
    """Read model of a persisted settlement."""

    id: Any
    debtor_id: Any
    creditor_id: Any
    amount: Decimal
    status: str = SettlementStatus.PENDING

    @property
    def pair(self):
        return (str(self.debtor_id), str(self.creditor_id))

    @property
    def is_pending(self):
        return self.status == SettlementStatus.PENDING

    @classmethod
    def from_model(cls, settlement) -> 'SettlementRow':
        return cls(
            id=settlement.id,
            debtor_id=settlement.debtor_id,
            creditor_id=settlement.creditor_id,
            amount=settlement.amount,
            status=settlement.status,
        )


@dataclass(frozen=True)
class AmountUpdate:
    settlement_id: Any
    old_amount: Decimal
    new_amount: Decimal


@dataclass
class ReconciliationPlan:
    inserts: List[Transfer] = field(default_factory=list)
    updates: List[AmountUpdate] = field(default_factory=list)
    deletes: List[Any] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.updates or self.deletes)

    @property
    def write_count(self) -> int:
        return len(self.inserts) + len(self.updates) + len(self.deletes)

    def summary(self) -> Dict[str, int]:
        return {
            'inserted': len(self.inserts),
            'updated': len(self.updates),
            'deleted': len(self.deletes),
        }


def reconcile(transfers: Iterable[Transfer], existing: Iterable[SettlementRow]) -> ReconciliationPlan:
    """Plan the writes that turn ``existing`` into ``transfers``."""
    pending: Dict[Tuple[str, str], SettlementRow] = {}
    for row in existing:
        if row.is_pending:
            pending[row.pair] = row

    plan = ReconciliationPlan()
    wanted = set()

    for transfer in transfers:
        wanted.add(transfer.pair)
        row = pending.get(transfer.pair)

        if row is None:
            plan.inserts.append(transfer)
        elif row.amount != transfer.amount:
            plan.updates.append(AmountUpdate(
                settlement_id=row.id,
                old_amount=row.amount,
                new_amount=transfer.amount,
            ))

    for pair, row in pending.items():
        if pair not in wanted:
            plan.deletes.append(row.id)

    return plan
