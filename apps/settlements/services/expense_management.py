"""
Expense ledger service.

Every mutation writes the ledger and recomputes the group's settlements in
the same transaction: a failed recompute rolls the expense write back too.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from django.db import transaction
from django.db.models import QuerySet

from apps.accounts.models import User
from apps.settlements.models import Expense, ExpenseBeneficiary

from .access import get_member_group
from .balances import BeneficiaryShare, ExpenseSnapshot
from .engine import SettlementEngine
from .exceptions import (
    ExpenseNotFoundError,
    InsufficientPermissionsError,
    NotGroupMemberError,
)
from .splitting import build_explicit_shares, quantize_amount, split_evenly

logger = logging.getLogger(__name__)


@transaction.atomic
def create_expense(
    *,
    group_id: UUID,
    user: User,
    title: str,
    amount: Decimal,
    beneficiaries: List[Dict[str, Any]],
    paid_by_id: Optional[UUID] = None,
    is_even_split: bool = True,
    phone_number: str = '',
    bank_account: str = '',
    engine: Optional[SettlementEngine] = None
) -> Expense:
    """
    Record an expense and update the group's settlements.

    Args:
        group_id: UUID of the group
        user: Member recording the expense
        title: Short description
        amount: Total paid
        beneficiaries: List of {'user_id': UUID, 'share': Decimal | None}
            in submitted order. Shares are ignored for even splits.
        paid_by_id: Payer (defaults to ``user``)
        is_even_split: Split evenly or use the given shares
        phone_number: Optional reimbursement phone number
        bank_account: Optional reimbursement bank account
        engine: SettlementEngine override

    Returns:
        Created Expense instance

    Raises:
        GroupNotFoundError: If group doesn't exist
        NotGroupMemberError: If user, payer or a beneficiary is not a member
        InvalidSplitError: If the shares cannot represent the amount
    """
    group = get_member_group(group_id=group_id, user=user, lock=True)
    paid_by_id = paid_by_id or user.id

    shares = _compute_shares(amount, beneficiaries, is_even_split)
    _ensure_members(group, [paid_by_id] + [member_id for member_id, _ in shares])

    expense = Expense.objects.create(
        group=group,
        paid_by_id=paid_by_id,
        title=title,
        amount=quantize_amount(amount),
        is_even_split=is_even_split,
        phone_number=phone_number,
        bank_account=bank_account,
    )
    _write_shares(expense, shares)

    engine = engine or SettlementEngine()
    engine.recalculate_settlements_for_expense_change(
        _snapshot(expense, shares), group.id, is_addition=True,
    )

    logger.info(
        "Expense %s (%s) recorded in group %s by %s",
        expense.id, expense.amount, group.id, user.email,
    )
    return expense


@transaction.atomic
def update_expense(
    *,
    group_id: UUID,
    expense_id: UUID,
    user: User,
    title: Optional[str] = None,
    amount: Optional[Decimal] = None,
    beneficiaries: Optional[List[Dict[str, Any]]] = None,
    paid_by_id: Optional[UUID] = None,
    is_even_split: Optional[bool] = None,
    phone_number: Optional[str] = None,
    bank_account: Optional[str] = None,
    engine: Optional[SettlementEngine] = None
) -> Expense:
    """
    Edit an expense (payer or group admin).

    Changing the amount, payer, split mode or beneficiaries recomputes the
    group's settlements; text-only edits do not.

    Raises:
        GroupNotFoundError: If group doesn't exist
        ExpenseNotFoundError: If the expense is not in the group
        InsufficientPermissionsError: If user is neither payer nor admin
        NotGroupMemberError: If the new payer or a beneficiary is not a member
        InvalidSplitError: If the shares cannot represent the amount
    """
    group = get_member_group(group_id=group_id, user=user, lock=True)
    expense = _get_locked_expense(group, expense_id)
    _ensure_can_modify(group, expense, user)

    before = ExpenseSnapshot.from_model(expense)

    update_fields = ['updated_at']
    for field, value in (
        ('title', title),
        ('phone_number', phone_number),
        ('bank_account', bank_account),
    ):
        if value is not None:
            setattr(expense, field, value)
            update_fields.append(field)

    ledger_changed = any(
        value is not None for value in (amount, beneficiaries, paid_by_id, is_even_split)
    )
    if not ledger_changed:
        expense.save(update_fields=update_fields)
        logger.info("Expense %s details updated by %s", expense.id, user.email)
        return expense

    if amount is not None:
        expense.amount = quantize_amount(amount)
    if is_even_split is not None:
        expense.is_even_split = is_even_split
    if paid_by_id is not None:
        expense.paid_by_id = paid_by_id
    update_fields += ['amount', 'is_even_split', 'paid_by']

    if beneficiaries is None:
        # Keep the current members; their old shares only matter for uneven splits
        beneficiaries = [
            {'user_id': b.user_id, 'share': b.share} for b in before.beneficiaries
        ]
    shares = _compute_shares(expense.amount, beneficiaries, expense.is_even_split)
    _ensure_members(group, [expense.paid_by_id] + [member_id for member_id, _ in shares])

    expense.save(update_fields=update_fields)
    expense.beneficiaries.all().delete()
    _write_shares(expense, shares)

    engine = engine or SettlementEngine()
    engine.recalculate_settlements_for_expense_edit(
        before, _snapshot(expense, shares), group.id,
    )

    logger.info("Expense %s updated by %s", expense.id, user.email)
    return expense


@transaction.atomic
def delete_expense(
    *,
    group_id: UUID,
    expense_id: UUID,
    user: User,
    engine: Optional[SettlementEngine] = None
) -> None:
    """
    Delete an expense (payer or group admin) and drop its effect on settlements.

    Paid settlements stay as they are.

    Raises:
        GroupNotFoundError: If group doesn't exist
        ExpenseNotFoundError: If the expense is not in the group
        InsufficientPermissionsError: If user is neither payer nor admin
    """
    group = get_member_group(group_id=group_id, user=user, lock=True)
    expense = _get_locked_expense(group, expense_id)
    _ensure_can_modify(group, expense, user)

    snapshot = ExpenseSnapshot.from_model(expense)
    expense.delete()

    engine = engine or SettlementEngine()
    engine.recalculate_settlements_for_expense_change(snapshot, group.id, is_addition=False)

    logger.info("Expense %s deleted from group %s by %s", snapshot.id, group.id, user.email)


def get_expense_by_id(*, group_id: UUID, expense_id: UUID, user: User) -> Expense:
    """
    Raises:
        GroupNotFoundError: If group doesn't exist
        NotGroupMemberError: If user is not a member
        ExpenseNotFoundError: If the expense is not in the group
    """
    group = get_member_group(group_id=group_id, user=user)
    try:
        return (
            Expense.objects
            .select_related('paid_by', 'group')
            .prefetch_related('beneficiaries__user')
            .get(id=expense_id, group=group)
        )
    except Expense.DoesNotExist:
        raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")


def get_group_expenses(*, group_id: UUID, user: User) -> QuerySet:
    """All expenses of a group, newest first (members only)."""
    group = get_member_group(group_id=group_id, user=user)
    return (
        Expense.objects
        .filter(group=group)
        .select_related('paid_by')
        .prefetch_related('beneficiaries__user')
        .order_by('-created_at')
    )


def _compute_shares(amount, beneficiaries, is_even_split):
    member_ids = [entry['user_id'] for entry in beneficiaries]
    if is_even_split:
        return split_evenly(amount, member_ids)
    return build_explicit_shares(
        amount,
        [(entry['user_id'], entry.get('share')) for entry in beneficiaries],
    )


def _ensure_members(group, user_ids):
    if not group.has_members(user_ids):
        raise NotGroupMemberError("Payer and beneficiaries must be members of the group")


def _ensure_can_modify(group, expense, user):
    if expense.paid_by_id != user.id and not group.is_admin(user):
        raise InsufficientPermissionsError("Only the payer or a group admin can modify this expense")


def _get_locked_expense(group, expense_id):
    try:
        return (
            Expense.objects
            .select_for_update()
            .get(id=expense_id, group=group)
        )
    except Expense.DoesNotExist:
        raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")


def _write_shares(expense, shares):
    ExpenseBeneficiary.objects.bulk_create([
        ExpenseBeneficiary(expense=expense, user_id=member_id, share=share, position=position)
        for position, (member_id, share) in enumerate(shares)
    ])


def _snapshot(expense, shares):
    return ExpenseSnapshot(
        id=expense.id,
        group_id=expense.group_id,
        paid_by_id=expense.paid_by_id,
        amount=expense.amount,
        beneficiaries=tuple(
            BeneficiaryShare(user_id=member_id, share=share)
            for member_id, share in shares
        ),
        created_at=expense.created_at,
    )
