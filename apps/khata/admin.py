# ==========================================
# apps/khata/admin.py
# ==========================================

from django.contrib import admin
from apps.khata.models import KhataCustomer, KhataTransaction


class KhataTransactionInline(admin.TabularInline):
    """Entries are edited through the khata API so running balances stay in step."""
    model = KhataTransaction
    extra = 0
    fields = ['transaction_date', 'type', 'amount', 'currency', 'balance']
    readonly_fields = fields
    can_delete = False
    ordering = ['transaction_date', 'created_at']


@admin.register(KhataCustomer)
class KhataCustomerAdmin(admin.ModelAdmin):
    list_display = ['name', 'owner', 'phone', 'email', 'updated_at']
    search_fields = ['name', 'email', 'phone', 'owner__email']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [KhataTransactionInline]


@admin.register(KhataTransaction)
class KhataTransactionAdmin(admin.ModelAdmin):
    list_display = ['customer', 'type', 'amount', 'currency', 'balance', 'transaction_date']
    list_filter = ['type', 'currency', 'transaction_date']
    search_fields = ['customer__name', 'description']
    readonly_fields = ['customer', 'type', 'amount', 'balance', 'transaction_date', 'created_at', 'updated_at']
    date_hierarchy = 'transaction_date'
    ordering = ['-transaction_date']
