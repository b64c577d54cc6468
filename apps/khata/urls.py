from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'khata'

router = DefaultRouter()
router.register(r'customers', views.KhataCustomerViewSet, basename='customer')
router.register(r'transactions', views.KhataTransactionViewSet, basename='transaction')

urlpatterns = [
    # Customer ViewSet routes
    # GET    /api/khata/customers/                    - List (?search=&filter=&sort=)
    # POST   /api/khata/customers/                    - Add customer
    # GET    /api/khata/customers/{id}/               - Customer with balance
    # PUT    /api/khata/customers/{id}/               - Edit customer
    # PATCH  /api/khata/customers/{id}/               - Edit customer
    # DELETE /api/khata/customers/{id}/               - Delete customer
    # GET    /api/khata/customers/{id}/transactions/  - Entries, latest first

    # Transaction ViewSet routes
    # GET    /api/khata/transactions/                 - List (?customer=&type=)
    # POST   /api/khata/transactions/                 - Record give/get
    # GET    /api/khata/transactions/{id}/            - Get entry
    # PATCH  /api/khata/transactions/{id}/            - Edit entry
    # DELETE /api/khata/transactions/{id}/            - Delete entry

    path('summary/', views.financial_summary, name='summary'),

    path('', include(router.urls)),
]
