from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone
from decimal import Decimal
import uuid


class SettlementStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PAID = 'paid', 'Paid'


class Expense(models.Model):
    """A payment made by one member on behalf of part of the group."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    group = models.ForeignKey(
        'groups.Group',
        on_delete=models.CASCADE,
        related_name='expenses'
    )

    # Member who advanced the money
    paid_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='expenses_paid'
    )

    title = models.CharField(max_length=200)
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    is_even_split = models.BooleanField(default=True)

    # Where the payer wants to be reimbursed
    phone_number = models.CharField(max_length=32, blank=True)
    bank_account = models.CharField(max_length=64, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'expenses'
        indexes = [
            models.Index(fields=['group', 'created_at'], name='expenses_group_i_2b7e5a_idx'),
            models.Index(fields=['paid_by', 'created_at'], name='expenses_paid_by_9c1d3f_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.title} - {self.amount} ({self.group.name})"

    def shares_total(self):
        """Sum of beneficiary shares; equals ``amount`` for valid ledger rows."""
        return sum(
            (b.share for b in self.beneficiaries.all()),
            Decimal('0.00')
        )


class ExpenseBeneficiary(models.Model):
    """Portion of an expense attributed to one member."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    expense = models.ForeignKey(
        Expense,
        on_delete=models.CASCADE,
        related_name='beneficiaries'
    )
    user = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='expense_shares'
    )
    share = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    # Submitted order; the even-split remainder lands on the last position
    position = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'expense_beneficiaries'
        unique_together = [['expense', 'user']]
        ordering = ['position']

    def __str__(self):
        return f"{self.user.get_display_name()} owes {self.share} of {self.expense.title}"


class Settlement(models.Model):
    """Directed pairwise debt derived from the group's expenses."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    group = models.ForeignKey(
        'groups.Group',
        on_delete=models.CASCADE,
        related_name='settlements'
    )
    debtor = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='settlement_debts'
    )
    creditor = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='settlement_credits'
    )
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )

    status = models.CharField(
        max_length=20,
        choices=SettlementStatus.choices,
        default=SettlementStatus.PENDING
    )

    # Payment confirmation
    paid_at = models.DateTimeField(null=True, blank=True)
    paid_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='confirmed_settlements'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'settlements'
        constraints = [
            # Paid rows are history; only the open debt per pair is unique
            models.UniqueConstraint(
                fields=['group', 'debtor', 'creditor'],
                condition=models.Q(status='pending'),
                name='unique_pending_settlement_per_pair',
            ),
        ]
        indexes = [
            models.Index(fields=['group', 'status'], name='settlement_group_i_4e8a2c_idx'),
            models.Index(fields=['debtor', 'status'], name='settlement_debtor_6f1b9d_idx'),
            models.Index(fields=['creditor', 'status'], name='settlement_credito_0c5e7b_idx'),
        ]
        ordering = ['created_at']

    def __str__(self):
        return (
            f"{self.debtor.get_display_name()} owes "
            f"{self.creditor.get_display_name()} {self.amount} ({self.status})"
        )

    @property
    def is_paid(self):
        return self.status == SettlementStatus.PAID

    def mark_paid(self, paid_by_user=None):
        """Mark settlement as paid."""
        self.status = SettlementStatus.PAID
        self.paid_at = timezone.now()
        self.paid_by = paid_by_user
        self.save(update_fields=['status', 'paid_at', 'paid_by', 'updated_at'])


class MemberBalance(models.Model):
    """
    Cached net balance of a member within a group.

    Written by every settlement recomputation under the group lock and read
    by the incremental trigger, so an expense change can be applied without
    re-reading the whole ledger. A full recomputation rebuilds it from the
    ledger. Members with a zero balance have no row.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    group = models.ForeignKey(
        'groups.Group',
        on_delete=models.CASCADE,
        related_name='member_balances'
    )
    user = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='group_balances'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'member_balances'
        unique_together = [['group', 'user']]

    def __str__(self):
        return f"{self.user.get_display_name()}: {self.amount} in {self.group.name}"
