import logging

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from apps.expenses.services.exceptions import ConcurrencyConflictError
from apps.expenses.views import RETRY_MESSAGE, LedgerPagination

from .models import KhataTransaction
from .serializers import (
    CustomerFilterSerializer,
    CustomerUpdateSerializer,
    CustomerWriteSerializer,
    FinancialSummarySerializer,
    KhataCustomerSerializer,
    KhataTransactionSerializer,
    TransactionFilterSerializer,
    TransactionUpdateSerializer,
    TransactionWriteSerializer,
)
from .services import (
    create_customer,
    update_customer,
    delete_customer,
    get_customer,
    get_customers,
    get_financial_summary,
    create_transaction,
    update_transaction,
    delete_transaction,
    get_customer_transactions,
    # Exceptions
    KhataServiceError,
    CustomerNotFoundError,
    TransactionNotFoundError,
    KhataValidationError,
)

logger = logging.getLogger(__name__)


def khata_error_response(exc):
    """Translate a khata service error into an API response."""
    if isinstance(exc, KhataValidationError):
        return Response(
            {'error': str(exc), 'field': exc.field},
            status=status.HTTP_400_BAD_REQUEST
        )
    if isinstance(exc, (CustomerNotFoundError, TransactionNotFoundError)):
        return Response({'error': str(exc)}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, ConcurrencyConflictError):
        logger.error("Khata concurrency failure: %s", exc)
        return Response({'error': RETRY_MESSAGE}, status=status.HTTP_503_SERVICE_UNAVAILABLE)

    logger.error("Unhandled khata error: %s", exc)
    return Response({'error': str(exc)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class KhataCustomerViewSet(viewsets.ModelViewSet):
    """
    ViewSet for khata customers.

    list: Own customers with balances (search, filter, sort)
    create: Add a customer
    retrieve: Customer with current balance
    update / partial_update: Edit contact details
    destroy: Delete a customer and their transactions
    transactions: The customer's entries, latest first
    """

    serializer_class = KhataCustomerSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = LedgerPagination
    lookup_value_regex = '[0-9a-f-]{36}'

    def get_queryset(self):
        if self.action == 'list':
            filter_serializer = CustomerFilterSerializer(data=self.request.query_params)
            filter_serializer.is_valid(raise_exception=True)
            params = filter_serializer.validated_data
            return get_customers(
                owner=self.request.user,
                search=params.get('search'),
                filter_type=params['filter'],
                sort_type=params['sort'],
            )
        return get_customers(owner=self.request.user)

    def get_serializer_class(self):
        if self.action == 'create':
            return CustomerWriteSerializer
        if self.action in ['update', 'partial_update']:
            return CustomerUpdateSerializer
        return KhataCustomerSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        customer = create_customer(owner=request.user, **serializer.validated_data)

        customer = get_customer(customer_id=customer.id, owner=request.user)
        return Response(KhataCustomerSerializer(customer).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        customer = self.get_object()
        serializer = self.get_serializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)

        try:
            update_customer(
                customer_id=customer.id,
                owner=request.user,
                **serializer.validated_data
            )
        except KhataServiceError as e:
            return khata_error_response(e)

        customer = get_customer(customer_id=customer.id, owner=request.user)
        return Response(KhataCustomerSerializer(customer).data)

    def destroy(self, request, *args, **kwargs):
        customer = self.get_object()
        try:
            delete_customer(customer_id=customer.id, owner=request.user)
        except KhataServiceError as e:
            return khata_error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['get'])
    def transactions(self, request, pk=None):
        """
        GET /api/khata/customers/{id}/transactions/
        """
        try:
            transactions = get_customer_transactions(customer_id=pk, owner=request.user)
        except KhataServiceError as e:
            return khata_error_response(e)

        page = self.paginate_queryset(transactions)
        if page is not None:
            serializer = KhataTransactionSerializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        return Response(KhataTransactionSerializer(transactions, many=True).data)


class KhataTransactionViewSet(viewsets.ModelViewSet):
    """
    ViewSet for give/get entries.

    Every write recomputes the customer's running balances.
    """

    serializer_class = KhataTransactionSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = LedgerPagination
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']

    def get_queryset(self):
        queryset = (
            KhataTransaction.objects
            .filter(customer__owner=self.request.user)
            .select_related('customer')
            .order_by('-transaction_date', '-created_at', '-id')
        )

        if self.action == 'list':
            filter_serializer = TransactionFilterSerializer(data=self.request.query_params)
            filter_serializer.is_valid(raise_exception=True)
            params = filter_serializer.validated_data

            if 'customer' in params:
                queryset = queryset.filter(customer_id=params['customer'])
            if 'type' in params:
                queryset = queryset.filter(type=params['type'])

        return queryset

    def get_serializer_class(self):
        if self.action == 'create':
            return TransactionWriteSerializer
        if self.action == 'partial_update':
            return TransactionUpdateSerializer
        return KhataTransactionSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            txn = create_transaction(
                customer_id=data['customer'],
                owner=request.user,
                type=data['type'],
                amount=data['amount'],
                currency=data.get('currency'),
                description=data['description'],
                transaction_date=data.get('transaction_date'),
            )
        except (KhataServiceError, ConcurrencyConflictError) as e:
            return khata_error_response(e)

        return Response(KhataTransactionSerializer(txn).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        txn = self.get_object()
        serializer = self.get_serializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            txn = update_transaction(
                transaction_id=txn.id,
                owner=request.user,
                type=data.get('type'),
                amount=data.get('amount'),
                currency=data.get('currency'),
                description=data.get('description'),
                transaction_date=data.get('transaction_date'),
            )
        except (KhataServiceError, ConcurrencyConflictError) as e:
            return khata_error_response(e)

        return Response(KhataTransactionSerializer(txn).data)

    def destroy(self, request, *args, **kwargs):
        txn = self.get_object()
        try:
            delete_transaction(transaction_id=txn.id, owner=request.user)
        except (KhataServiceError, ConcurrencyConflictError) as e:
            return khata_error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema(
    responses={200: FinancialSummarySerializer},
    description="What the user will give and get across all khata customers.",
    tags=['khata'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def financial_summary(request):
    summary = get_financial_summary(owner=request.user)
    return Response(FinancialSummarySerializer(summary).data)
