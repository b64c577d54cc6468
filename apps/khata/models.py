# ==========================================
# apps/khata/models.py
# ==========================================

from django.conf import settings
from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone
from decimal import Decimal
import uuid


def default_khata_currency():
    return settings.KHATA_DEFAULT_CURRENCY


class TransactionType(models.TextChoices):
    GIVE = 'give', 'You gave'
    GET = 'get', 'You got'


class BalanceDirection(models.TextChoices):
    GIVE = 'give', 'You will give'
    GET = 'get', 'You will get'
    SETTLED = 'settled', 'Settled'


class KhataCustomer(models.Model):
    """A contact in one user's khata book."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    owner = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='khata_customers'
    )
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    address = models.TextField(blank=True)
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'khata_customers'
        indexes = [
            models.Index(fields=['owner', 'name'], name='khata_customer_owner_idx'),
        ]
        ordering = ['-updated_at']

    def __str__(self):
        return self.name


class KhataTransaction(models.Model):
    """
    One give/get entry against a customer.

    ``balance`` is the running balance after this entry, counted in
    chronological order (transaction_date, created_at, id). ``give``
    raises it and ``get`` lowers it, so a positive balance means the
    customer owes the owner.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    customer = models.ForeignKey(
        KhataCustomer,
        on_delete=models.CASCADE,
        related_name='transactions'
    )
    type = models.CharField(max_length=10, choices=TransactionType.choices)
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    currency = models.CharField(max_length=3, default=default_khata_currency)
    description = models.TextField(blank=True)
    transaction_date = models.DateTimeField(default=timezone.now)

    # Maintained by apps.khata.services.ledger
    balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00')
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'khata_transactions'
        indexes = [
            models.Index(
                fields=['customer', 'transaction_date'],
                name='khata_txn_customer_date_idx'
            ),
        ]
        ordering = ['-transaction_date', '-created_at']

    def __str__(self):
        return f"{self.get_type_display()} {self.amount} {self.currency} ({self.customer})"
