"""
Debt netting.

Turns net balances into directed transfers (debtor -> creditor) that zero
every member out. Greedy matching: the most indebted member pays the
largest creditor first. At most ``members - 1`` transfers are produced;
this is not always the theoretical minimum but it is deterministic.

Tie-break: equal balances are ordered by ``str(member_id)`` ascending so
the exact transfer list is reproducible.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List

from .balances import Balances, ZERO
from .exceptions import UnbalancedLedgerError
from .splitting import quantize_amount


@dataclass(frozen=True)
class Transfer:
    debtor_id: Any
    creditor_id: Any
    amount: Decimal

    @property
    def pair(self):
        return (str(self.debtor_id), str(self.creditor_id))


def net_balances(balances: Balances) -> List[Transfer]:
    """
    Compute settlement transfers for ``balances``.

    Raises:
        UnbalancedLedgerError: If total credit != total debt, which means
            some expense's shares did not sum to its amount.
    """
    total = sum(balances.values(), ZERO)
    if total != ZERO:
        raise UnbalancedLedgerError(f"Balances do not net to zero (off by {total})")

    # [member_id, remaining amount owed / to receive], both as positives
    debtors = sorted(
        ([member_id, -amount] for member_id, amount in balances.items() if amount < ZERO),
        key=lambda entry: (-entry[1], str(entry[0])),
    )
    creditors = sorted(
        ([member_id, amount] for member_id, amount in balances.items() if amount > ZERO),
        key=lambda entry: (-entry[1], str(entry[0])),
    )

    transfers = []
    c = 0
    for debtor in debtors:
        while debtor[1] > ZERO:
            creditor = creditors[c]
            amount = min(debtor[1], creditor[1])
            transfers.append(Transfer(
                debtor_id=debtor[0],
                creditor_id=creditor[0],
                amount=quantize_amount(amount),
            ))
            debtor[1] -= amount
            creditor[1] -= amount
            if creditor[1] == ZERO:
                c += 1

    return transfers
