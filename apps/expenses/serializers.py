from decimal import Decimal

from rest_framework import serializers

from apps.groups.serializers import UserMinimalSerializer

from .models import (
    Expense,
    ExpenseCategory,
    ExpenseSplit,
    Payment,
    PaymentStatus,
    SplitType,
)
from .services import SplitParticipant


# =============================================================================
# Input Serializers
# =============================================================================

class ExpenseFilterSerializer(serializers.Serializer):
    """
    Validate query parameters for expense listing.

    Query Parameters:
        group (UUID): Only expenses of this group
        category (str): Only expenses in this category
    """

    group = serializers.UUIDField(required=False)
    category = serializers.ChoiceField(choices=ExpenseCategory.choices, required=False)


class PaymentFilterSerializer(serializers.Serializer):
    """
    Validate query parameters for payment listing.

    Query Parameters:
        group (UUID): Only payments of this group
        status (str): Only payments with this status
    """

    group = serializers.UUIDField(required=False)
    status = serializers.ChoiceField(choices=PaymentStatus.choices, required=False)


class SplitParticipantInputSerializer(serializers.Serializer):
    """
    One participant of an expense.

    Which of ``percentage``, ``shares`` and ``amount`` is needed depends
    on the split type; the split calculator rejects missing values.
    """

    user_id = serializers.UUIDField()
    percentage = serializers.DecimalField(
        max_digits=5,
        decimal_places=2,
        required=False,
        min_value=Decimal('0.00'),
        max_value=Decimal('100.00'),
    )
    shares = serializers.IntegerField(required=False, min_value=0)
    amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        min_value=Decimal('0.00'),
    )


def to_split_participants(rows):
    """Turn validated participant rows into SplitParticipant values."""
    if rows is None:
        return None
    return [
        SplitParticipant(
            user_id=row['user_id'],
            percentage=row.get('percentage'),
            shares=row.get('shares'),
            amount=row.get('amount'),
        )
        for row in rows
    ]


class ExpenseWriteSerializer(serializers.Serializer):
    """
    Validate input for creating or editing an expense.

    Amounts are read as Decimal and never pass through a float.
    """

    group = serializers.UUIDField()
    title = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True)
    category = serializers.ChoiceField(
        choices=ExpenseCategory.choices,
        required=False,
        default=ExpenseCategory.OTHER
    )
    total_amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('0.01'),
    )
    currency = serializers.CharField(max_length=3, required=False)
    split_type = serializers.ChoiceField(choices=SplitType.choices, required=False)
    paid_by = serializers.UUIDField(required=False)
    date = serializers.DateTimeField(required=False)
    participants = SplitParticipantInputSerializer(many=True, required=False)

    def validate_participants(self, value):
        if not value:
            raise serializers.ValidationError('At least one participant is required')
        return value


class ExpenseUpdateSerializer(ExpenseWriteSerializer):
    """All fields optional; the group of an expense cannot change."""

    group = None
    title = serializers.CharField(max_length=200, required=False)
    category = serializers.ChoiceField(choices=ExpenseCategory.choices, required=False)
    total_amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('0.01'),
        required=False,
    )
    currency = None


class PaymentCreateSerializer(serializers.Serializer):
    """Validate input for recording a payment."""

    group = serializers.UUIDField()
    from_user = serializers.UUIDField()
    to_user = serializers.UUIDField()
    amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('0.01'),
    )
    currency = serializers.CharField(max_length=3, required=False)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    payment_method = serializers.CharField(
        max_length=50,
        required=False,
        allow_blank=True,
        default=''
    )
    status = serializers.ChoiceField(
        choices=[PaymentStatus.PENDING, PaymentStatus.COMPLETED],
        required=False,
        default=PaymentStatus.PENDING
    )

    def validate(self, attrs):
        if attrs['from_user'] == attrs['to_user']:
            raise serializers.ValidationError({
                'to_user': 'A payment needs two different members'
            })
        return attrs


class PaymentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=PaymentStatus.choices)


# =============================================================================
# Output Serializers
# =============================================================================

class ExpenseSplitSerializer(serializers.ModelSerializer):
    """One participant's share of an expense."""

    user = UserMinimalSerializer(read_only=True)

    class Meta:
        model = ExpenseSplit
        fields = ['id', 'user', 'amount', 'percentage', 'shares']
        read_only_fields = fields


class ExpenseSerializer(serializers.ModelSerializer):
    """Full expense with its splits."""

    paid_by = UserMinimalSerializer(read_only=True)
    splits = ExpenseSplitSerializer(many=True, read_only=True)

    class Meta:
        model = Expense
        fields = [
            'id',
            'group',
            'title',
            'description',
            'category',
            'total_amount',
            'currency',
            'split_type',
            'paid_by',
            'date',
            'splits',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class ExpenseListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for list views."""

    paid_by = UserMinimalSerializer(read_only=True)

    class Meta:
        model = Expense
        fields = [
            'id',
            'group',
            'title',
            'category',
            'total_amount',
            'currency',
            'split_type',
            'paid_by',
            'date',
        ]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    from_user = UserMinimalSerializer(read_only=True)
    to_user = UserMinimalSerializer(read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id',
            'group',
            'from_user',
            'to_user',
            'amount',
            'currency',
            'description',
            'payment_method',
            'status',
            'completed_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class BalanceEntrySerializer(serializers.Serializer):
    user = UserMinimalSerializer()
    balance = serializers.DecimalField(max_digits=12, decimal_places=2)


class DebtSerializer(serializers.Serializer):
    """One settlement transfer: ``from_user`` pays ``to_user``."""

    from_user = UserMinimalSerializer()
    to_user = UserMinimalSerializer()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class GroupBalanceSummarySerializer(serializers.Serializer):
    group_id = serializers.UUIDField()
    currency = serializers.CharField()
    total_expenses = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_members = serializers.IntegerField()
    total_owed = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_owing = serializers.DecimalField(max_digits=14, decimal_places=2)
    balances = BalanceEntrySerializer(many=True)
    simplified_debts = DebtSerializer(many=True)


class UserNetBalanceSerializer(serializers.Serializer):
    total_owed = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_owing = serializers.DecimalField(max_digits=14, decimal_places=2)
    net_balance = serializers.DecimalField(max_digits=14, decimal_places=2)
    group_count = serializers.IntegerField()


class PaymentStatsSerializer(serializers.Serializer):
    total_payments = serializers.IntegerField()
    pending_payments = serializers.IntegerField()
    completed_payments = serializers.IntegerField()
    cancelled_payments = serializers.IntegerField()
    total_completed_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_pending_amount = serializers.DecimalField(max_digits=14, decimal_places=2)


class DiscrepancySerializer(serializers.Serializer):
    user_id = serializers.UUIDField()
    stored_balance = serializers.DecimalField(max_digits=14, decimal_places=2)
    recomputed_balance = serializers.DecimalField(max_digits=14, decimal_places=2)


class ConsistencyReportSerializer(serializers.Serializer):
    group_id = serializers.UUIDField()
    consistent = serializers.BooleanField()
    discrepancies = DiscrepancySerializer(many=True)
    recomputed_total = serializers.DecimalField(max_digits=14, decimal_places=2)
    stored_total = serializers.DecimalField(max_digits=14, decimal_places=2)
    expense_count = serializers.IntegerField()
    payment_count = serializers.IntegerField()
    checked_at = serializers.DateTimeField()
    repaired = serializers.BooleanField()


class CategorySerializer(serializers.Serializer):
    value = serializers.CharField()
    label = serializers.CharField()
