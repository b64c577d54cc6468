from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'expenses'

# Router for ViewSets
router = DefaultRouter()
router.register(r'expenses', views.ExpenseViewSet, basename='expense')
router.register(r'payments', views.PaymentViewSet, basename='payment')

urlpatterns = [
    # Expense ViewSet routes
    # GET    /api/ledger/expenses/              - List expenses (?group=&category=)
    # POST   /api/ledger/expenses/              - Create expense
    # GET    /api/ledger/expenses/{id}/         - Expense with splits
    # PUT    /api/ledger/expenses/{id}/         - Edit expense (payer/admin)
    # PATCH  /api/ledger/expenses/{id}/         - Edit expense (payer/admin)
    # DELETE /api/ledger/expenses/{id}/         - Delete expense (payer/admin)

    # Payment ViewSet routes
    # GET    /api/ledger/payments/              - List payments (?group=&status=)
    # POST   /api/ledger/payments/              - Record payment
    # GET    /api/ledger/payments/{id}/         - Get payment
    # PATCH  /api/ledger/payments/{id}/         - Change status
    # POST   /api/ledger/payments/{id}/status/  - Change status
    # DELETE /api/ledger/payments/{id}/         - Delete pending payment

    # Group balances
    path('groups/<uuid:group_id>/balances/', views.group_balances, name='group-balances'),
    path('groups/<uuid:group_id>/debts/', views.group_simplified_debts, name='group-debts'),
    path('groups/<uuid:group_id>/summary/', views.group_balance_summary, name='group-summary'),
    path('groups/<uuid:group_id>/payment-stats/', views.group_payment_stats, name='group-payment-stats'),
    path('groups/<uuid:group_id>/validate/', views.validate_group_balances, name='group-validate'),
    path('groups/<uuid:group_id>/recalculate/', views.recalculate_group_balances, name='group-recalculate'),

    # Current user
    path('balances/me/', views.my_net_balance, name='my-net-balance'),
    path('categories/', views.expense_categories, name='categories'),

    # Include router URLs
    path('', include(router.urls)),
]
