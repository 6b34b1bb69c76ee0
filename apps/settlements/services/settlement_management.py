"""
Settlement store service.

Read access to a group's settlements and the one state change a user can
make on them: confirming a payment. Pending rows are otherwise owned by
the settlement engine.
"""

import logging
from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from django.db import transaction
from django.db.models import QuerySet, Sum

from apps.accounts.models import User
from apps.settlements.models import Settlement, SettlementStatus

from .access import get_member_group
from .balances import aggregate_balances, ExpenseSnapshot, ZERO
from .exceptions import (
    InsufficientPermissionsError,
    SettlementAlreadyPaidError,
    SettlementNotFoundError,
)

logger = logging.getLogger(__name__)


@transaction.atomic
def mark_settlement_paid(*, group_id: UUID, settlement_id: UUID, user: User) -> Settlement:
    """
    Confirm that a settlement has been paid.

    Allowed for the debtor, the creditor and group admins. Does not trigger
    a recomputation: the paid row is kept as history and the pending set
    is left as it was.

    Raises:
        GroupNotFoundError: If group doesn't exist
        NotGroupMemberError: If user is not a member
        SettlementNotFoundError: If the settlement is not in the group
        InsufficientPermissionsError: If user is not debtor, creditor or admin
        SettlementAlreadyPaidError: If the settlement is already paid
    """
    group = get_member_group(group_id=group_id, user=user, lock=True)

    try:
        settlement = (
            Settlement.objects
            .select_for_update()
            .get(id=settlement_id, group=group)
        )
    except Settlement.DoesNotExist:
        raise SettlementNotFoundError(f"Settlement with ID {settlement_id} not found")

    if user.id not in (settlement.debtor_id, settlement.creditor_id) and not group.is_admin(user):
        raise InsufficientPermissionsError(
            "Only the debtor, the creditor or a group admin can confirm a payment"
        )

    if settlement.is_paid:
        raise SettlementAlreadyPaidError("Settlement is already paid")

    settlement.mark_paid(paid_by_user=user)

    logger.info(
        "Settlement %s (%s) in group %s marked paid by %s",
        settlement.id, settlement.amount, group.id, user.email,
    )
    return settlement


def get_settlement_by_id(*, group_id: UUID, settlement_id: UUID, user: User) -> Settlement:
    group = get_member_group(group_id=group_id, user=user)
    try:
        return (
            Settlement.objects
            .select_related('debtor', 'creditor', 'paid_by')
            .get(id=settlement_id, group=group)
        )
    except Settlement.DoesNotExist:
        raise SettlementNotFoundError(f"Settlement with ID {settlement_id} not found")


def get_group_settlements(*, group_id: UUID, user: User, status: Optional[str] = None) -> QuerySet:
    """All settlements of a group, optionally filtered by status (members only)."""
    group = get_member_group(group_id=group_id, user=user)
    queryset = (
        Settlement.objects
        .filter(group=group)
        .select_related('debtor', 'creditor', 'paid_by')
        .order_by('status', '-amount', 'created_at')
    )
    if status:
        queryset = queryset.filter(status=status)
    return queryset


def get_user_settlements(*, group_id: UUID, user: User) -> QuerySet:
    """Pending settlements the user has to pay."""
    group = get_member_group(group_id=group_id, user=user)
    return (
        Settlement.objects
        .filter(group=group, debtor=user, status=SettlementStatus.PENDING)
        .select_related('creditor')
        .order_by('-amount')
    )


def get_user_credits(*, group_id: UUID, user: User) -> Decimal:
    """Total of pending settlements owed to the user."""
    group = get_member_group(group_id=group_id, user=user)
    total = (
        Settlement.objects
        .filter(group=group, creditor=user, status=SettlementStatus.PENDING)
        .aggregate(total=Sum('amount'))['total']
    )
    return total or ZERO


def get_group_balances(*, group_id: UUID, user: User) -> Dict[UUID, Decimal]:
    """
    Net balance per member, computed from the ledger.

    Members without expenses are reported with a zero balance.
    """
    group = get_member_group(group_id=group_id, user=user)
    expenses = group.expenses.prefetch_related('beneficiaries')

    balances = {membership.user_id: ZERO for membership in group.memberships.all()}
    balances.update(aggregate_balances(ExpenseSnapshot.from_model(e) for e in expenses))
    return balances
