import uuid
from decimal import Decimal
from io import StringIO

import pytest

from django.core.management import CommandError, call_command
from django.db import DatabaseError

from apps.settlements.models import Expense, MemberBalance, Settlement, SettlementStatus
from apps.settlements.services import (
    SettlementEngine,
    create_expense,
    update_expense,
    delete_expense,
    get_group_expenses,
    mark_settlement_paid,
    get_user_settlements,
    get_user_credits,
    get_group_balances,
    recalculate_settlements,
    # Exceptions
    ExpenseNotFoundError,
    GroupNotFoundError,
    InsufficientPermissionsError,
    InvalidSplitError,
    NotGroupMemberError,
    SettlementAlreadyPaidError,
)
from apps.settlements.services.repository import DjangoSettlementRepository


def pending(group):
    return {
        (s.debtor_id, s.creditor_id): s.amount
        for s in Settlement.objects.filter(group=group, status=SettlementStatus.PENDING)
    }


def even(*users):
    return [{'user_id': user.id} for user in users]


def dinner(group, payer, *beneficiaries, amount='90.00', **kwargs):
    return create_expense(
        group_id=group.id,
        user=payer,
        title='Dinner',
        amount=Decimal(amount),
        beneficiaries=even(*beneficiaries),
        **kwargs
    )


# =============================================================================
# Expense ledger + recomputation
# =============================================================================

@pytest.mark.django_db
class TestCreateExpense:

    def test_three_way_split_creates_two_settlements(self, group, alice, bob, carol):
        expense = dinner(group, alice, alice, bob, carol)

        assert expense.shares_total() == Decimal('90.00')
        assert pending(group) == {
            (bob.id, alice.id): Decimal('30.00'),
            (carol.id, alice.id): Decimal('30.00'),
        }
        assert MemberBalance.objects.get(group=group, user=alice).amount == Decimal('60.00')

    def test_second_expense_merges_into_existing_rows(self, group, alice, bob, carol):
        dinner(group, alice, alice, bob, carol)
        first_ids = set(Settlement.objects.values_list('id', flat=True))

        dinner(group, alice, alice, bob, carol)

        assert pending(group) == {
            (bob.id, alice.id): Decimal('60.00'),
            (carol.id, alice.id): Decimal('60.00'),
        }
        assert set(Settlement.objects.values_list('id', flat=True)) == first_ids

    def test_even_split_remainder_on_last_beneficiary(self, group, alice, bob, carol):
        expense = dinner(group, alice, bob, carol, alice, amount='100.00')

        shares = [(b.user_id, b.share) for b in expense.beneficiaries.all()]
        assert shares == [
            (bob.id, Decimal('33.33')),
            (carol.id, Decimal('33.33')),
            (alice.id, Decimal('33.34')),
        ]

    def test_uneven_split(self, group, alice, bob, carol):
        create_expense(
            group_id=group.id,
            user=bob,
            title='Groceries',
            amount=Decimal('50.00'),
            is_even_split=False,
            beneficiaries=[
                {'user_id': alice.id, 'share': Decimal('20.00')},
                {'user_id': carol.id, 'share': Decimal('30.00')},
            ],
        )

        assert pending(group) == {
            (carol.id, bob.id): Decimal('30.00'),
            (alice.id, bob.id): Decimal('20.00'),
        }

    def test_payer_on_behalf_of_another_member(self, group, alice, bob):
        expense = dinner(group, alice, alice, bob, amount='20.00', paid_by_id=bob.id)

        assert expense.paid_by == bob
        assert pending(group) == {(alice.id, bob.id): Decimal('10.00')}

    def test_invalid_split_creates_nothing(self, group, alice, bob):
        with pytest.raises(InvalidSplitError):
            create_expense(
                group_id=group.id,
                user=alice,
                title='Groceries',
                amount=Decimal('50.00'),
                is_even_split=False,
                beneficiaries=[
                    {'user_id': alice.id, 'share': Decimal('20.00')},
                    {'user_id': bob.id, 'share': Decimal('20.00')},
                ],
            )

        assert not Expense.objects.exists()
        assert not Settlement.objects.exists()

    def test_non_member_beneficiary_rejected(self, group, alice, outsider):
        with pytest.raises(NotGroupMemberError):
            dinner(group, alice, alice, outsider)

        assert not Expense.objects.exists()

    def test_non_member_cannot_record(self, group, alice, outsider):
        with pytest.raises(NotGroupMemberError):
            dinner(group, outsider, alice)

    def test_unknown_group(self, db, alice):
        with pytest.raises(GroupNotFoundError):
            create_expense(
                group_id=uuid.uuid4(),
                user=alice,
                title='Dinner',
                amount=Decimal('10.00'),
                beneficiaries=[{'user_id': alice.id}],
            )

    def test_failed_recompute_rolls_back_expense(self, group, alice, bob):
        class FailingRepository(DjangoSettlementRepository):
            def apply_plan(self, group_id, plan):
                super().apply_plan(group_id, plan)
                raise DatabaseError('connection lost')

        with pytest.raises(DatabaseError):
            dinner(group, alice, alice, bob, engine=SettlementEngine(FailingRepository()))

        assert not Expense.objects.exists()
        assert not Settlement.objects.exists()
        assert not MemberBalance.objects.exists()


@pytest.mark.django_db
class TestUpdateExpense:

    def test_amount_change_updates_settlements(self, group, alice, bob, carol):
        expense = dinner(group, alice, alice, bob, carol)

        update_expense(group_id=group.id, expense_id=expense.id, user=alice, amount=Decimal('30.00'))

        assert pending(group) == {
            (bob.id, alice.id): Decimal('10.00'),
            (carol.id, alice.id): Decimal('10.00'),
        }

    def test_beneficiary_change(self, group, alice, bob, carol):
        expense = dinner(group, alice, alice, bob, carol)

        update_expense(
            group_id=group.id,
            expense_id=expense.id,
            user=alice,
            beneficiaries=even(bob, carol),
        )

        assert pending(group) == {
            (bob.id, alice.id): Decimal('45.00'),
            (carol.id, alice.id): Decimal('45.00'),
        }
        assert [b.user_id for b in expense.beneficiaries.all()] == [bob.id, carol.id]

    def test_title_only_edit_leaves_settlements(self, group, alice, bob):
        expense = dinner(group, alice, alice, bob)
        before = {s.id: s.updated_at for s in Settlement.objects.all()}

        updated = update_expense(group_id=group.id, expense_id=expense.id, user=alice, title='Brunch')

        assert updated.title == 'Brunch'
        assert {s.id: s.updated_at for s in Settlement.objects.all()} == before

    def test_admin_can_edit_others_expense(self, group, alice, bob, carol):
        expense = dinner(group, bob, alice, bob, amount='20.00')

        update_expense(group_id=group.id, expense_id=expense.id, user=carol, amount=Decimal('40.00'))

        assert pending(group) == {(alice.id, bob.id): Decimal('20.00')}

    def test_member_cannot_edit_others_expense(self, group, alice, bob):
        expense = dinner(group, alice, alice, bob)

        with pytest.raises(InsufficientPermissionsError):
            update_expense(group_id=group.id, expense_id=expense.id, user=bob, amount=Decimal('1.00'))

        assert pending(group) == {(bob.id, alice.id): Decimal('45.00')}

    def test_full_recompute_agrees_after_edits(self, group, alice, bob, carol):
        expense = dinner(group, alice, alice, bob, carol)
        dinner(group, bob, alice, carol, amount='15.00')
        update_expense(group_id=group.id, expense_id=expense.id, user=alice, amount=Decimal('60.00'))

        plan = recalculate_settlements(group.id)

        assert plan.is_empty


@pytest.mark.django_db
class TestDeleteExpense:

    def test_deleting_only_expense_clears_settlements(self, group, alice, bob, carol):
        expense = dinner(group, alice, alice, bob, carol)

        delete_expense(group_id=group.id, expense_id=expense.id, user=alice)

        assert not Expense.objects.exists()
        assert pending(group) == {}
        assert not MemberBalance.objects.filter(group=group).exists()

    def test_paid_settlements_kept_after_delete(self, group, alice, bob, carol):
        expense = dinner(group, alice, alice, bob, carol)
        settlement = Settlement.objects.get(debtor=bob)
        mark_settlement_paid(group_id=group.id, settlement_id=settlement.id, user=bob)

        delete_expense(group_id=group.id, expense_id=expense.id, user=alice)

        settlement.refresh_from_db()
        assert settlement.status == SettlementStatus.PAID
        assert settlement.amount == Decimal('30.00')
        assert pending(group) == {}

    def test_unknown_expense(self, group, alice, other_group, outsider):
        foreign = dinner(other_group, outsider, outsider, amount='10.00')

        with pytest.raises(ExpenseNotFoundError):
            delete_expense(group_id=group.id, expense_id=foreign.id, user=alice)

    def test_member_cannot_delete_others_expense(self, group, alice, bob):
        expense = dinner(group, alice, alice, bob)

        with pytest.raises(InsufficientPermissionsError):
            delete_expense(group_id=group.id, expense_id=expense.id, user=bob)

        assert Expense.objects.filter(id=expense.id).exists()


# =============================================================================
# Settlement store
# =============================================================================

@pytest.mark.django_db
class TestMarkSettlementPaid:

    def test_debtor_confirms_payment(self, group, alice, bob):
        dinner(group, alice, alice, bob)
        settlement = Settlement.objects.get()

        paid = mark_settlement_paid(group_id=group.id, settlement_id=settlement.id, user=bob)

        assert paid.status == SettlementStatus.PAID
        assert paid.paid_by == bob
        assert paid.paid_at is not None

    def test_new_pending_row_can_coexist_with_paid_row(self, group, alice, bob):
        dinner(group, alice, alice, bob)
        settlement = Settlement.objects.get()
        mark_settlement_paid(group_id=group.id, settlement_id=settlement.id, user=alice)

        dinner(group, alice, alice, bob)

        assert Settlement.objects.filter(debtor=bob, creditor=alice).count() == 2
        assert pending(group) == {(bob.id, alice.id): Decimal('90.00')}

    def test_already_paid(self, group, alice, bob):
        dinner(group, alice, alice, bob)
        settlement = Settlement.objects.get()
        mark_settlement_paid(group_id=group.id, settlement_id=settlement.id, user=bob)

        with pytest.raises(SettlementAlreadyPaidError):
            mark_settlement_paid(group_id=group.id, settlement_id=settlement.id, user=bob)

    def test_uninvolved_member_cannot_confirm(self, group, alice, bob, carol):
        dinner(group, carol, carol, alice, amount='20.00')
        settlement = Settlement.objects.get()

        with pytest.raises(InsufficientPermissionsError):
            mark_settlement_paid(group_id=group.id, settlement_id=settlement.id, user=bob)

    def test_admin_can_confirm(self, group, alice, bob, carol):
        dinner(group, alice, alice, bob)
        settlement = Settlement.objects.get()

        paid = mark_settlement_paid(group_id=group.id, settlement_id=settlement.id, user=carol)

        assert paid.paid_by == carol


@pytest.mark.django_db
class TestSettlementQueries:

    def test_user_settlements_and_credits(self, group, alice, bob, carol):
        dinner(group, alice, alice, bob, carol)

        owed_by_bob = list(get_user_settlements(group_id=group.id, user=bob))

        assert [(s.creditor_id, s.amount) for s in owed_by_bob] == [(alice.id, Decimal('30.00'))]
        assert get_user_credits(group_id=group.id, user=alice) == Decimal('60.00')
        assert get_user_credits(group_id=group.id, user=bob) == Decimal('0.00')

    def test_group_balances(self, group, alice, bob, carol):
        dinner(group, alice, alice, bob, carol)
        dinner(group, bob, alice, amount='10.00')

        balances = get_group_balances(group_id=group.id, user=carol)

        assert balances == {
            alice.id: Decimal('50.00'),
            bob.id: Decimal('-20.00'),
            carol.id: Decimal('-30.00'),
        }
        assert sum(balances.values()) == 0

    def test_group_expenses_for_members_only(self, group, alice, bob, outsider):
        dinner(group, alice, alice, bob)

        assert get_group_expenses(group_id=group.id, user=bob).count() == 1
        with pytest.raises(NotGroupMemberError):
            get_group_expenses(group_id=group.id, user=outsider)


# =============================================================================
# Full recompute entry points
# =============================================================================

@pytest.mark.django_db
class TestRecalculateSettlements:

    def test_rebuilds_lost_rows(self, group, alice, bob, carol):
        dinner(group, alice, alice, bob, carol)
        Settlement.objects.all().delete()
        MemberBalance.objects.all().delete()

        plan = recalculate_settlements(group.id)

        assert plan.summary() == {'inserted': 2, 'updated': 0, 'deleted': 0}
        assert pending(group) == {
            (bob.id, alice.id): Decimal('30.00'),
            (carol.id, alice.id): Decimal('30.00'),
        }
        assert MemberBalance.objects.filter(group=group).count() == 3

    def test_second_run_writes_nothing(self, group, alice, bob, carol):
        dinner(group, alice, alice, bob, carol)
        stamps = {s.id: s.updated_at for s in Settlement.objects.all()}

        assert recalculate_settlements(group.id).is_empty
        assert {s.id: s.updated_at for s in Settlement.objects.all()} == stamps

    def test_management_command(self, group, alice, bob):
        dinner(group, alice, alice, bob)
        Settlement.objects.all().delete()
        out = StringIO()

        call_command('recalculate_settlements', '--dry-run', stdout=out)

        assert 'dry-run' in out.getvalue()
        assert not Settlement.objects.exists()

        call_command('recalculate_settlements', '--group', str(group.id), stdout=StringIO())

        assert pending(group) == {(bob.id, alice.id): Decimal('45.00')}

    def test_management_command_unknown_group(self, group):
        with pytest.raises(CommandError, match='Unknown group'):
            call_command('recalculate_settlements', '--group', str(uuid.uuid4()), stdout=StringIO())

    def test_management_command_malformed_group_id(self, group):
        with pytest.raises(CommandError, match='Invalid group id'):
            call_command('recalculate_settlements', '--group', 'not-a-uuid', stdout=StringIO())
