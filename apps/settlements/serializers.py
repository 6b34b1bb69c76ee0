from decimal import Decimal

from rest_framework import serializers

from .models import Expense, ExpenseBeneficiary, Settlement, SettlementStatus
from apps.accounts.models import User


# =============================================================================
# Input Serializers
# =============================================================================

class BeneficiaryInputSerializer(serializers.Serializer):
    """One beneficiary of an expense; ``share`` only for uneven splits."""

    user_id = serializers.UUIDField()
    share = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('0.00'),
        required=False,
        allow_null=True
    )


class ExpenseInputSerializer(serializers.Serializer):
    """
    Validate expense create/update payloads.

    Fields:
        title (str): Short description
        amount (Decimal): Total paid, at least 0.01
        paid_by (UUID): Payer, defaults to the current user
        is_even_split (bool): Split evenly among beneficiaries
        beneficiaries (list): [{'user_id': UUID, 'share': Decimal}], in order
        phone_number (str): Optional reimbursement phone number
        bank_account (str): Optional reimbursement bank account
    """

    title = serializers.CharField(max_length=200)
    amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('0.01')
    )
    paid_by = serializers.UUIDField(required=False)
    is_even_split = serializers.BooleanField(default=True)
    beneficiaries = BeneficiaryInputSerializer(many=True, allow_empty=False)
    phone_number = serializers.CharField(max_length=32, required=False, allow_blank=True)
    bank_account = serializers.CharField(max_length=64, required=False, allow_blank=True)

    def validate_beneficiaries(self, value):
        user_ids = [str(entry['user_id']) for entry in value]
        if len(user_ids) != len(set(user_ids)):
            raise serializers.ValidationError('Each beneficiary can only be listed once')
        return value

    def validate(self, attrs):
        """Uneven splits need an explicit share for every beneficiary."""
        is_even_split = attrs.get('is_even_split', True)
        beneficiaries = attrs.get('beneficiaries')

        if beneficiaries is not None and not is_even_split:
            if any(entry.get('share') is None for entry in beneficiaries):
                raise serializers.ValidationError({
                    'beneficiaries': 'Every beneficiary needs a share when the expense is not evenly split'
                })
            amount = attrs.get('amount')
            total = sum(entry['share'] for entry in beneficiaries)
            if amount is not None and total != amount:
                raise serializers.ValidationError({
                    'beneficiaries': f'Shares sum to {total}, expected {amount}'
                })

        return attrs


class SettlementFilterSerializer(serializers.Serializer):
    """
    Validate query parameters for settlement filtering.

    Query Parameters:
        status (str): pending or paid
    """

    status = serializers.ChoiceField(
        choices=SettlementStatus.choices,
        required=False
    )


# =============================================================================
# Output Serializers
# =============================================================================

class UserMinimalSerializer(serializers.ModelSerializer):
    """Minimal user info for nested serialization."""

    display_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'display_name']
        read_only_fields = fields

    def get_display_name(self, obj):
        return obj.get_display_name()


class ExpenseBeneficiarySerializer(serializers.ModelSerializer):
    user = UserMinimalSerializer(read_only=True)

    class Meta:
        model = ExpenseBeneficiary
        fields = ['user', 'share', 'position']
        read_only_fields = fields


class ExpenseSerializer(serializers.ModelSerializer):
    """Main serializer for expenses."""

    paid_by = UserMinimalSerializer(read_only=True)
    beneficiaries = ExpenseBeneficiarySerializer(many=True, read_only=True)

    class Meta:
        model = Expense
        fields = [
            'id',
            'group',
            'title',
            'amount',
            'paid_by',
            'is_even_split',
            'phone_number',
            'bank_account',
            'beneficiaries',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class SettlementSerializer(serializers.ModelSerializer):
    """Serializer for settlements."""

    debtor = UserMinimalSerializer(read_only=True)
    creditor = UserMinimalSerializer(read_only=True)
    paid_by = UserMinimalSerializer(read_only=True)

    class Meta:
        model = Settlement
        fields = [
            'id',
            'group',
            'debtor',
            'creditor',
            'amount',
            'status',
            'paid_at',
            'paid_by',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class MemberBalanceSerializer(serializers.Serializer):
    user_id = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class CreditsSerializer(serializers.Serializer):
    total_credits = serializers.DecimalField(max_digits=12, decimal_places=2)


class RecalculationResultSerializer(serializers.Serializer):
    inserted = serializers.IntegerField()
    updated = serializers.IntegerField()
    deleted = serializers.IntegerField()
