# ==========================================
# apps/expenses/models.py
# ==========================================

from django.conf import settings
from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal
import uuid


def default_ledger_currency():
    return settings.LEDGER_DEFAULT_CURRENCY


class SplitType(models.TextChoices):
    EQUAL = 'equal', 'Equal'
    PERCENTAGE = 'percentage', 'Percentage'
    SHARES = 'shares', 'Shares'
    EXACT = 'exact', 'Exact'


class ExpenseCategory(models.TextChoices):
    FOOD = 'Food', 'Food'
    TRANSPORT = 'Transport', 'Transport'
    ACCOMMODATION = 'Accommodation', 'Accommodation'
    ENTERTAINMENT = 'Entertainment', 'Entertainment'
    SHOPPING = 'Shopping', 'Shopping'
    UTILITIES = 'Utilities', 'Utilities'
    HEALTHCARE = 'Healthcare', 'Healthcare'
    EDUCATION = 'Education', 'Education'
    TRAVEL = 'Travel', 'Travel'
    OTHER = 'Other', 'Other'


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class Expense(models.Model):
    """Shared expense paid by one member and split among participants."""
    
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    
    group = models.ForeignKey(
        'groups.Group',
        on_delete=models.CASCADE,
        related_name='expenses'
    )
    paid_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='expenses_paid'
    )
    
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    category = models.CharField(
        max_length=30,
        choices=ExpenseCategory.choices,
        default=ExpenseCategory.OTHER
    )
    
    # Financial details
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    currency = models.CharField(max_length=3, default=default_ledger_currency)
    split_type = models.CharField(
        max_length=20,
        choices=SplitType.choices,
        default=SplitType.EQUAL
    )
    
    date = models.DateTimeField()
    
    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    
    class Meta:
        db_table = 'expenses'
        indexes = [
            models.Index(fields=['group', 'date'], name='expenses_group_date_idx'),
            models.Index(fields=['paid_by'], name='expenses_paid_by_idx'),
            models.Index(fields=['date'], name='expenses_date_idx'),
        ]
        ordering = ['-date', '-created_at']
    
    def __str__(self):
        return f"{self.title} - {self.total_amount} {self.currency} ({self.group.name})"
    
    def split_total(self):
        """Sum of the stored split amounts."""
        return sum(
            (split.amount for split in self.splits.all()),
            Decimal('0.00')
        )


class ExpenseSplit(models.Model):
    """One participant's share of one expense."""
    
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    
    expense = models.ForeignKey(
        Expense,
        on_delete=models.CASCADE,
        related_name='splits'
    )
    user = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='expense_splits'
    )
    
    # Amount owed; percentage/shares only record how it was derived
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True
    )
    shares = models.PositiveIntegerField(null=True, blank=True)
    
    created_at = models.DateTimeField(auto_now_add=True)
    
    class Meta:
        db_table = 'expense_splits'
        unique_together = [['expense', 'user']]
        indexes = [
            models.Index(fields=['user'], name='expense_splits_user_idx'),
        ]
        ordering = ['created_at']
    
    def __str__(self):
        return f"{self.user.get_display_name()} owes {self.amount} for {self.expense.title}"


class Payment(models.Model):
    """Settlement transfer between two members of a group."""
    
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    
    group = models.ForeignKey(
        'groups.Group',
        on_delete=models.CASCADE,
        related_name='payments'
    )
    from_user = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='payments_sent'
    )
    to_user = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='payments_received'
    )
    
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    currency = models.CharField(max_length=3, default=default_ledger_currency)
    description = models.TextField(blank=True)
    payment_method = models.CharField(max_length=50, blank=True)
    
    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    
    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    
    class Meta:
        db_table = 'payments'
        indexes = [
            models.Index(fields=['group', 'status'], name='payments_group_status_idx'),
            models.Index(fields=['from_user'], name='payments_from_user_idx'),
            models.Index(fields=['to_user'], name='payments_to_user_idx'),
        ]
        ordering = ['-created_at']
    
    def __str__(self):
        return f"{self.from_user} -> {self.to_user}: {self.amount} {self.currency} ({self.status})"
    
    @property
    def affects_balances(self):
        return self.status == PaymentStatus.COMPLETED


class Balance(models.Model):
    """
    Running balance of one member in one group.

    Positive means the member is owed money, negative means they owe.
    For a fixed group the balances always sum to zero.
    """
    
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    
    group = models.ForeignKey(
        'groups.Group',
        on_delete=models.CASCADE,
        related_name='balances'
    )
    user = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='group_balances'
    )
    balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00')
    )
    
    updated_at = models.DateTimeField(auto_now=True)
    
    class Meta:
        db_table = 'user_balances'
        constraints = [
            models.UniqueConstraint(
                fields=['group', 'user'],
                name='unique_user_group_balance'
            ),
        ]
        indexes = [
            models.Index(fields=['user'], name='user_balances_user_idx'),
        ]
        ordering = ['-balance']
    
    def __str__(self):
        return f"{self.user} in {self.group}: {self.balance}"
