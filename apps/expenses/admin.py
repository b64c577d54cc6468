# ==========================================
# apps/expenses/admin.py
# ==========================================

from django.contrib import admin
from apps.expenses.models import Expense, ExpenseSplit, Payment, Balance


class ExpenseSplitInline(admin.TabularInline):
    """Splits are derived by the split calculator and shown read-only."""
    model = ExpenseSplit
    extra = 0
    fields = ['user', 'amount', 'percentage', 'shares']
    readonly_fields = fields
    can_delete = False


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    """Admin interface for Expenses."""

    list_display = [
        'title',
        'group',
        'paid_by',
        'total_amount',
        'currency',
        'split_type',
        'category',
        'date'
    ]
    list_filter = ['split_type', 'category', 'currency', 'date']
    search_fields = ['title', 'description', 'group__name', 'paid_by__email']
    readonly_fields = ['total_amount', 'split_type', 'paid_by', 'group', 'created_at', 'updated_at']
    inlines = [ExpenseSplitInline]
    date_hierarchy = 'date'
    ordering = ['-date']


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """Admin interface for Payments."""

    list_display = ['from_user', 'to_user', 'group', 'amount', 'currency', 'status', 'created_at']
    list_filter = ['status', 'currency', 'created_at']
    search_fields = ['from_user__email', 'to_user__email', 'group__name']
    readonly_fields = ['amount', 'status', 'completed_at', 'created_at', 'updated_at']
    ordering = ['-created_at']


@admin.register(Balance)
class BalanceAdmin(admin.ModelAdmin):
    """
    Balances change only through the ledger services.
    Use the audit_group_balances command to repair drift.
    """

    list_display = ['user', 'group', 'balance', 'updated_at']
    search_fields = ['user__email', 'group__name']
    readonly_fields = ['group', 'user', 'balance', 'updated_at']
    ordering = ['group', '-balance']

    def has_add_permission(self, request):
        return False
