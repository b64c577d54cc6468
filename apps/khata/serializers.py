from decimal import Decimal
from rest_framework import serializers

from .models import KhataCustomer, KhataTransaction, TransactionType
from .services import FILTER_TYPES, SORT_ORDERS, balance_direction


# =============================================================================
# Input Serializers
# =============================================================================

class CustomerFilterSerializer(serializers.Serializer):
    """
    Query parameters for the customer list.

    ?search=ravi&filter=get&sort=highest-amount
    """

    search = serializers.CharField(required=False, allow_blank=True)
    filter = serializers.ChoiceField(choices=FILTER_TYPES, required=False, default='all')
    sort = serializers.ChoiceField(
        choices=list(SORT_ORDERS),
        required=False,
        default='most-recent'
    )


class CustomerWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class CustomerUpdateSerializer(CustomerWriteSerializer):
    name = serializers.CharField(max_length=200, required=False)


class TransactionFilterSerializer(serializers.Serializer):
    customer = serializers.UUIDField(required=False)
    type = serializers.ChoiceField(choices=TransactionType.choices, required=False)


class TransactionWriteSerializer(serializers.Serializer):
    """Validate input for recording a give/get entry."""

    customer = serializers.UUIDField()
    type = serializers.ChoiceField(choices=TransactionType.choices)
    amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('0.01'),
    )
    currency = serializers.CharField(max_length=3, required=False)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    transaction_date = serializers.DateTimeField(required=False)


class TransactionUpdateSerializer(TransactionWriteSerializer):
    """All fields optional; an entry cannot move to another customer."""

    customer = None
    type = serializers.ChoiceField(choices=TransactionType.choices, required=False)
    amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('0.01'),
        required=False,
    )
    description = serializers.CharField(required=False, allow_blank=True)


# =============================================================================
# Output Serializers
# =============================================================================

class KhataCustomerSerializer(serializers.ModelSerializer):
    """Customer with its current balance and direction."""

    balance = serializers.DecimalField(
        source='current_balance',
        max_digits=12,
        decimal_places=2,
        read_only=True
    )
    direction = serializers.SerializerMethodField()

    class Meta:
        model = KhataCustomer
        fields = [
            'id',
            'name',
            'email',
            'phone',
            'address',
            'notes',
            'balance',
            'direction',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_direction(self, obj):
        return balance_direction(obj.current_balance)


class KhataTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = KhataTransaction
        fields = [
            'id',
            'customer',
            'type',
            'amount',
            'currency',
            'description',
            'transaction_date',
            'balance',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class FinancialSummarySerializer(serializers.Serializer):
    total_give = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_get = serializers.DecimalField(max_digits=14, decimal_places=2)
    customer_count = serializers.IntegerField()
