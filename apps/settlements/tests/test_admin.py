from decimal import Decimal

import pytest
from django.test import Client
from django.urls import reverse

from apps.accounts.models import User
from apps.settlements.models import MemberBalance, Settlement, SettlementStatus
from apps.settlements.services import create_expense


@pytest.fixture
def superuser_client(db):
    """Django test client logged in as a superuser."""
    user = User.objects.create_superuser(email='root@example.com', password='TestPass123!')
    client = Client()
    client.force_login(user)
    return client


@pytest.fixture
def dinner(group, alice, bob):
    """Alice paid 90.00 for herself and Bob."""
    return create_expense(
        group_id=group.id,
        user=alice,
        title='Dinner',
        amount=Decimal('90.00'),
        beneficiaries=[{'user_id': alice.id}, {'user_id': bob.id}],
    )


@pytest.mark.django_db
class TestLedgerAdminIsReadOnly:

    def test_member_balance_cannot_be_deleted(self, superuser_client, group, bob, dinner):
        row = MemberBalance.objects.get(group=group, user=bob)
        url = reverse('admin:settlements_memberbalance_delete', args=[row.pk])

        assert superuser_client.get(url).status_code == 403
        assert superuser_client.post(url, {'post': 'yes'}).status_code == 403
        assert MemberBalance.objects.filter(pk=row.pk).exists()

    def test_member_balance_cannot_be_edited(self, superuser_client, group, bob, dinner):
        row = MemberBalance.objects.get(group=group, user=bob)
        url = reverse('admin:settlements_memberbalance_change', args=[row.pk])

        response = superuser_client.post(url, {'amount': '0.00'})

        assert response.status_code == 403
        row.refresh_from_db()
        assert row.amount == Decimal('-45.00')

    def test_cache_survives_admin_visit(self, superuser_client, group, alice, bob, dinner):
        row = MemberBalance.objects.get(group=group, user=bob)
        superuser_client.post(
            reverse('admin:settlements_memberbalance_delete', args=[row.pk]), {'post': 'yes'},
        )

        create_expense(
            group_id=group.id,
            user=alice,
            title='Taxi',
            amount=Decimal('20.00'),
            beneficiaries=[{'user_id': alice.id}, {'user_id': bob.id}],
        )

        assert Settlement.objects.get(group=group, status=SettlementStatus.PENDING).amount == Decimal('55.00')

    def test_expense_shares_inline_has_no_delete_checkbox(self, superuser_client, dinner):
        response = superuser_client.get(reverse('admin:settlements_expense_change', args=[dinner.pk]))

        assert response.status_code == 200
        assert b'-DELETE' not in response.content


@pytest.mark.django_db
class TestSettlementAdmin:

    def test_paid_settlement_cannot_be_deleted(self, superuser_client, group, bob, dinner):
        settlement = Settlement.objects.get(group=group, debtor=bob)
        settlement.mark_paid(paid_by_user=bob)

        response = superuser_client.post(
            reverse('admin:settlements_settlement_delete', args=[settlement.pk]), {'post': 'yes'},
        )

        assert response.status_code == 403
        assert Settlement.objects.filter(pk=settlement.pk, status=SettlementStatus.PAID).exists()

    def test_mark_as_paid_action(self, superuser_client, group, bob, dinner):
        settlement = Settlement.objects.get(group=group, debtor=bob)

        response = superuser_client.post(reverse('admin:settlements_settlement_changelist'), {
            'action': 'mark_as_paid',
            '_selected_action': [str(settlement.pk)],
        })

        assert response.status_code == 302
        settlement.refresh_from_db()
        assert settlement.is_paid
        assert settlement.paid_by.email == 'root@example.com'
