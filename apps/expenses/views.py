import logging

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from apps.groups.models import Group

from .models import Expense, Payment
from .permissions import IsGroupMemberForLedger
from .serializers import (
    CategorySerializer,
    ConsistencyReportSerializer,
    DebtSerializer,
    BalanceEntrySerializer,
    ExpenseFilterSerializer,
    ExpenseListSerializer,
    ExpenseSerializer,
    ExpenseUpdateSerializer,
    ExpenseWriteSerializer,
    GroupBalanceSummarySerializer,
    PaymentCreateSerializer,
    PaymentFilterSerializer,
    PaymentSerializer,
    PaymentStatsSerializer,
    PaymentStatusSerializer,
    UserNetBalanceSerializer,
    to_split_participants,
)
from .services import (
    create_expense,
    update_expense,
    delete_expense,
    get_expense_by_id,
    get_expense_categories,
    create_payment,
    update_payment_status,
    delete_payment,
    get_payment_by_id,
    get_group_payment_stats,
    get_group_balances,
    get_user_net_balance,
    get_simplified_debts,
    get_group_balance_summary,
    validate_group_balance_consistency,
    repair_group_balances,
    # Exceptions
    LedgerServiceError,
    SplitValidationError,
    NotGroupMemberError,
    InsufficientPermissionsError,
    GroupNotFoundError,
    ExpenseNotFoundError,
    PaymentNotFoundError,
    InvalidPaymentTransitionError,
    PaymentNotDeletableError,
    ConsistencyError,
    ConcurrencyConflictError,
)

logger = logging.getLogger(__name__)

RETRY_MESSAGE = 'The ledger could not complete this request. Please retry.'


def ledger_error_response(exc):
    """Translate a ledger service error into an API response."""
    if isinstance(exc, SplitValidationError):
        return Response(
            {'error': str(exc), 'field': exc.field, 'rule': exc.rule},
            status=status.HTTP_400_BAD_REQUEST
        )
    if isinstance(exc, NotGroupMemberError):
        return Response(
            {'error': str(exc), 'field': exc.field},
            status=status.HTTP_403_FORBIDDEN
        )
    if isinstance(exc, InsufficientPermissionsError):
        return Response({'error': str(exc)}, status=status.HTTP_403_FORBIDDEN)
    if isinstance(exc, (GroupNotFoundError, ExpenseNotFoundError, PaymentNotFoundError)):
        return Response({'error': str(exc)}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, (InvalidPaymentTransitionError, PaymentNotDeletableError)):
        return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, ConsistencyError):
        logger.error("Ledger consistency failure: %s", exc)
        return Response({'error': RETRY_MESSAGE}, status=status.HTTP_409_CONFLICT)
    if isinstance(exc, ConcurrencyConflictError):
        logger.error("Ledger concurrency failure: %s", exc)
        return Response({'error': RETRY_MESSAGE}, status=status.HTTP_503_SERVICE_UNAVAILABLE)

    logger.error("Unhandled ledger error: %s", exc)
    return Response({'error': RETRY_MESSAGE}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class LedgerPagination(PageNumberPagination):
    """Custom pagination for expenses and payments."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class ExpenseViewSet(viewsets.ModelViewSet):
    """
    ViewSet for expenses.

    Writes go through the expense services, which keep balances in step.

    list: Expenses in the user's groups, newest first (filter by group, category)
    create: Record an expense and split it
    retrieve: Expense with its splits
    update / partial_update: Edit an expense (payer or admin)
    destroy: Delete an expense (payer or admin)
    """

    serializer_class = ExpenseSerializer
    permission_classes = [IsAuthenticated, IsGroupMemberForLedger]
    pagination_class = LedgerPagination

    def get_queryset(self):
        """Only expenses of groups the user belongs to."""
        queryset = (
            Expense.objects
            .filter(group__memberships__user=self.request.user)
            .select_related('group', 'paid_by')
            .prefetch_related('splits__user')
            .order_by('-date', '-created_at')
        )

        if self.action == 'list':
            filter_serializer = ExpenseFilterSerializer(data=self.request.query_params)
            filter_serializer.is_valid(raise_exception=True)
            params = filter_serializer.validated_data

            if 'group' in params:
                queryset = queryset.filter(group_id=params['group'])
            if 'category' in params:
                queryset = queryset.filter(category=params['category'])

        return queryset

    def get_serializer_class(self):
        if self.action == 'list':
            return ExpenseListSerializer
        if self.action == 'create':
            return ExpenseWriteSerializer
        if self.action in ['update', 'partial_update']:
            return ExpenseUpdateSerializer
        return ExpenseSerializer

    def create(self, request, *args, **kwargs):
        """Record an expense."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            expense = create_expense(
                group_id=data['group'],
                user=request.user,
                title=data['title'],
                total_amount=data['total_amount'],
                paid_by_id=data.get('paid_by'),
                currency=data.get('currency'),
                split_type=data.get('split_type'),
                participants=to_split_participants(data.get('participants')),
                description=data.get('description', ''),
                category=data['category'],
                date=data.get('date'),
            )
        except LedgerServiceError as e:
            return ledger_error_response(e)

        expense = get_expense_by_id(expense_id=expense.id)
        return Response(ExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        """Edit an expense; balances follow the new amounts."""
        kwargs.pop('partial', False)
        expense = self.get_object()
        serializer = self.get_serializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            update_expense(
                expense_id=expense.id,
                user=request.user,
                title=data.get('title'),
                description=data.get('description'),
                category=data.get('category'),
                date=data.get('date'),
                total_amount=data.get('total_amount'),
                paid_by_id=data.get('paid_by'),
                split_type=data.get('split_type'),
                participants=to_split_participants(data.get('participants')),
            )
        except LedgerServiceError as e:
            return ledger_error_response(e)

        expense = get_expense_by_id(expense_id=expense.id)
        return Response(ExpenseSerializer(expense).data)

    def destroy(self, request, *args, **kwargs):
        """Delete an expense and reverse its balance effect."""
        expense = self.get_object()
        try:
            delete_expense(expense_id=expense.id, user=request.user)
        except LedgerServiceError as e:
            return ledger_error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


class PaymentViewSet(viewsets.ModelViewSet):
    """
    ViewSet for settlement payments.

    list: Payments in the user's groups (filter by group, status)
    create: Record a payment (pending or already completed)
    retrieve: Get a payment
    destroy: Delete a pending payment
    update_status: Complete or cancel a payment
    """

    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated, IsGroupMemberForLedger]
    pagination_class = LedgerPagination
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']

    def get_queryset(self):
        queryset = (
            Payment.objects
            .filter(group__memberships__user=self.request.user)
            .select_related('group', 'from_user', 'to_user')
            .order_by('-created_at')
        )

        if self.action == 'list':
            filter_serializer = PaymentFilterSerializer(data=self.request.query_params)
            filter_serializer.is_valid(raise_exception=True)
            params = filter_serializer.validated_data

            if 'group' in params:
                queryset = queryset.filter(group_id=params['group'])
            if 'status' in params:
                queryset = queryset.filter(status=params['status'])

        return queryset

    def get_serializer_class(self):
        if self.action == 'create':
            return PaymentCreateSerializer
        if self.action == 'update_status':
            return PaymentStatusSerializer
        return PaymentSerializer

    def create(self, request, *args, **kwargs):
        """Record a payment."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            payment = create_payment(
                group_id=data['group'],
                user=request.user,
                from_user_id=data['from_user'],
                to_user_id=data['to_user'],
                amount=data['amount'],
                currency=data.get('currency'),
                description=data['description'],
                payment_method=data['payment_method'],
                status=data['status'],
            )
        except LedgerServiceError as e:
            return ledger_error_response(e)

        payment = get_payment_by_id(payment_id=payment.id)
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        return self.update_status(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        """Delete a pending payment."""
        payment = self.get_object()
        try:
            delete_payment(payment_id=payment.id, user=request.user)
        except LedgerServiceError as e:
            return ledger_error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'], url_path='status')
    def update_status(self, request, pk=None):
        """
        Move a payment to a new status.

        POST /api/ledger/payments/{id}/status/
        Body: {"status": "completed"}
        """
        payment = self.get_object()
        serializer = PaymentStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            payment = update_payment_status(
                payment_id=payment.id,
                user=request.user,
                status=serializer.validated_data['status'],
            )
        except LedgerServiceError as e:
            return ledger_error_response(e)

        payment = get_payment_by_id(payment_id=payment.id)
        return Response(PaymentSerializer(payment).data)


def _member_group_or_error(request, group_id):
    group = get_object_or_404(Group, id=group_id)
    if not group.has_member(request.user):
        return None, Response(
            {'error': 'You must be a member of this group.'},
            status=status.HTTP_403_FORBIDDEN
        )
    return group, None


@extend_schema(
    responses={200: BalanceEntrySerializer(many=True)},
    description="Current balance of every member of a group.",
    tags=['balances'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def group_balances(request, group_id):
    group, error = _member_group_or_error(request, group_id)
    if error:
        return error

    balances = get_group_balances(group_id=group.id)
    return Response(BalanceEntrySerializer(balances, many=True).data)


@extend_schema(
    responses={200: DebtSerializer(many=True)},
    description="Simplified settlement transfers for a group.",
    tags=['balances'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def group_simplified_debts(request, group_id):
    group, error = _member_group_or_error(request, group_id)
    if error:
        return error

    try:
        debts = get_simplified_debts(group_id=group.id)
    except LedgerServiceError as e:
        return ledger_error_response(e)
    return Response(DebtSerializer(debts, many=True).data)


@extend_schema(
    responses={200: GroupBalanceSummarySerializer},
    description="Balances, settlement plan and totals of a group.",
    tags=['balances'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def group_balance_summary(request, group_id):
    group, error = _member_group_or_error(request, group_id)
    if error:
        return error

    try:
        summary = get_group_balance_summary(group_id=group.id)
    except LedgerServiceError as e:
        return ledger_error_response(e)
    return Response(GroupBalanceSummarySerializer(summary).data)


@extend_schema(
    responses={200: PaymentStatsSerializer},
    description="Payment counts per status and totals for a group.",
    tags=['payments'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def group_payment_stats(request, group_id):
    group, error = _member_group_or_error(request, group_id)
    if error:
        return error

    stats = get_group_payment_stats(group_id=group.id)
    return Response(PaymentStatsSerializer(stats).data)


@extend_schema(
    responses={200: ConsistencyReportSerializer},
    description="Replay the group's history and compare it to stored balances.",
    tags=['balances'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def validate_group_balances(request, group_id):
    group, error = _member_group_or_error(request, group_id)
    if error:
        return error

    report = validate_group_balance_consistency(group_id=group.id)
    return Response(ConsistencyReportSerializer(report).data)


@extend_schema(
    request=None,
    responses={200: ConsistencyReportSerializer},
    description="Overwrite stored balances with the replayed ones (admin only).",
    tags=['balances'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def recalculate_group_balances(request, group_id):
    group, error = _member_group_or_error(request, group_id)
    if error:
        return error

    try:
        report = repair_group_balances(group_id=group.id, user=request.user)
    except LedgerServiceError as e:
        return ledger_error_response(e)
    return Response(ConsistencyReportSerializer(report).data)


@extend_schema(
    responses={200: UserNetBalanceSerializer},
    description="The current user's position across all groups.",
    tags=['balances'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_net_balance(request):
    summary = get_user_net_balance(user=request.user)
    return Response(UserNetBalanceSerializer(summary).data)


@extend_schema(
    responses={200: CategorySerializer(many=True)},
    description="Expense categories.",
    tags=['expenses'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def expense_categories(request):
    return Response(CategorySerializer(get_expense_categories(), many=True).data)
