from rest_framework import viewsets, status
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from drf_spectacular.utils import extend_schema

from .models import Expense, Settlement
from .permissions import IsGroupAdminForRoute
from .serializers import (
    ExpenseInputSerializer,
    ExpenseSerializer,
    SettlementSerializer,
    SettlementFilterSerializer,
    MemberBalanceSerializer,
    CreditsSerializer,
    RecalculationResultSerializer,
)

from apps.settlements.services import (
    create_expense,
    update_expense,
    delete_expense,
    get_expense_by_id,
    get_group_expenses,
    mark_settlement_paid,
    get_settlement_by_id,
    get_group_settlements,
    get_user_settlements,
    get_user_credits,
    get_group_balances,
    recalculate_settlements,
    # Exceptions
    SettlementsServiceError,
    GroupNotFoundError,
    ExpenseNotFoundError,
    SettlementNotFoundError,
    NotGroupMemberError,
    InsufficientPermissionsError,
    SettlementAlreadyPaidError,
    RecalculationCancelledError,
    UnbalancedLedgerError,
)


ERROR_STATUS_CODES = (
    ((GroupNotFoundError, ExpenseNotFoundError, SettlementNotFoundError), status.HTTP_404_NOT_FOUND),
    ((NotGroupMemberError, InsufficientPermissionsError), status.HTTP_403_FORBIDDEN),
    ((SettlementAlreadyPaidError, RecalculationCancelledError), status.HTTP_409_CONFLICT),
    # Corrupt stored shares, not a client mistake
    ((UnbalancedLedgerError,), status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def error_response(exc: SettlementsServiceError) -> Response:
    """Translate a service error into an HTTP response."""
    for error_classes, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_classes):
            return Response({'error': str(exc)}, status=status_code)
    return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)


class ExpensePagination(PageNumberPagination):
    """Custom pagination for expenses."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class ExpenseViewSet(viewsets.GenericViewSet):
    """
    Expenses of one group.

    All business logic is handled by services; every write recomputes
    the group's settlements before responding.

    list: Get the group's expenses (members)
    create: Record an expense (members)
    retrieve: Get one expense (members)
    update: Edit an expense (payer or admin)
    partial_update: Partially edit an expense (payer or admin)
    destroy: Delete an expense (payer or admin)
    """

    queryset = Expense.objects.all()
    serializer_class = ExpenseSerializer
    permission_classes = [IsAuthenticated]
    lookup_value_regex = '[0-9a-f-]{36}'
    pagination_class = ExpensePagination

    def list(self, request, group_id=None):
        try:
            expenses = get_group_expenses(group_id=group_id, user=request.user)
        except SettlementsServiceError as e:
            return error_response(e)

        page = self.paginate_queryset(expenses)
        serializer = ExpenseSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @extend_schema(request=ExpenseInputSerializer, responses={201: ExpenseSerializer})
    def create(self, request, group_id=None):
        serializer = ExpenseInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            expense = create_expense(
                group_id=group_id,
                user=request.user,
                title=data['title'],
                amount=data['amount'],
                beneficiaries=data['beneficiaries'],
                paid_by_id=data.get('paid_by'),
                is_even_split=data['is_even_split'],
                phone_number=data.get('phone_number', ''),
                bank_account=data.get('bank_account', ''),
            )
        except SettlementsServiceError as e:
            return error_response(e)

        return Response(ExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, group_id=None, pk=None):
        try:
            expense = get_expense_by_id(group_id=group_id, expense_id=pk, user=request.user)
        except SettlementsServiceError as e:
            return error_response(e)

        return Response(ExpenseSerializer(expense).data)

    @extend_schema(request=ExpenseInputSerializer, responses={200: ExpenseSerializer})
    def update(self, request, group_id=None, pk=None, partial=False):
        serializer = ExpenseInputSerializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            expense = update_expense(
                group_id=group_id,
                expense_id=pk,
                user=request.user,
                title=data.get('title'),
                amount=data.get('amount'),
                beneficiaries=data.get('beneficiaries'),
                paid_by_id=data.get('paid_by'),
                is_even_split=data.get('is_even_split'),
                phone_number=data.get('phone_number'),
                bank_account=data.get('bank_account'),
            )
        except SettlementsServiceError as e:
            return error_response(e)

        return Response(ExpenseSerializer(expense).data)

    @extend_schema(request=ExpenseInputSerializer, responses={200: ExpenseSerializer})
    def partial_update(self, request, group_id=None, pk=None):
        return self.update(request, group_id=group_id, pk=pk, partial=True)

    def destroy(self, request, group_id=None, pk=None):
        try:
            delete_expense(group_id=group_id, expense_id=pk, user=request.user)
        except SettlementsServiceError as e:
            return error_response(e)

        return Response(status=status.HTTP_204_NO_CONTENT)


class SettlementViewSet(viewsets.GenericViewSet):
    """
    Settlements of one group (read-only apart from confirming payments).

    list: Get the group's settlements, filterable by ?status=
    retrieve: Get one settlement
    """

    queryset = Settlement.objects.all()
    serializer_class = SettlementSerializer
    permission_classes = [IsAuthenticated]
    lookup_value_regex = '[0-9a-f-]{36}'

    def list(self, request, group_id=None):
        filter_serializer = SettlementFilterSerializer(data=request.query_params)
        filter_serializer.is_valid(raise_exception=True)

        try:
            settlements = get_group_settlements(
                group_id=group_id,
                user=request.user,
                status=filter_serializer.validated_data.get('status'),
            )
        except SettlementsServiceError as e:
            return error_response(e)

        return Response(SettlementSerializer(settlements, many=True).data)

    def retrieve(self, request, group_id=None, pk=None):
        try:
            settlement = get_settlement_by_id(group_id=group_id, settlement_id=pk, user=request.user)
        except SettlementsServiceError as e:
            return error_response(e)

        return Response(SettlementSerializer(settlement).data)

    @extend_schema(request=None, responses={200: SettlementSerializer})
    @action(detail=True, methods=['post'])
    def mark_paid(self, request, group_id=None, pk=None):
        """
        Confirm a settlement has been paid (debtor, creditor or admin).

        POST /api/groups/{group_id}/settlements/{id}/mark_paid/
        """
        try:
            settlement = mark_settlement_paid(group_id=group_id, settlement_id=pk, user=request.user)
        except SettlementsServiceError as e:
            return error_response(e)

        return Response(SettlementSerializer(settlement).data)

    @action(detail=False, methods=['get'])
    def mine(self, request, group_id=None):
        """
        Pending settlements the current user has to pay.

        GET /api/groups/{group_id}/settlements/mine/
        """
        try:
            settlements = get_user_settlements(group_id=group_id, user=request.user)
        except SettlementsServiceError as e:
            return error_response(e)

        return Response(SettlementSerializer(settlements, many=True).data)

    @extend_schema(request=None, responses={200: RecalculationResultSerializer})
    @action(detail=False, methods=['post'], permission_classes=[IsAuthenticated, IsGroupAdminForRoute])
    def recalculate(self, request, group_id=None):
        """
        Rebuild the group's settlements from the whole ledger (admin only).

        POST /api/groups/{group_id}/settlements/recalculate/
        """
        try:
            plan = recalculate_settlements(group_id)
        except SettlementsServiceError as e:
            return error_response(e)

        return Response(RecalculationResultSerializer(plan.summary()).data)


@extend_schema(
    responses={200: CreditsSerializer},
    description="Total of pending settlements owed to the current user in a group.",
    tags=['settlements'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_credits(request, group_id):
    """Get the sum of pending amounts owed to the current user."""
    try:
        total = get_user_credits(group_id=group_id, user=request.user)
    except SettlementsServiceError as e:
        return error_response(e)

    return Response(CreditsSerializer({'total_credits': total}).data)


@extend_schema(
    responses={200: MemberBalanceSerializer(many=True)},
    description="Net balance per member: paid minus owed. Positive means the group owes the member.",
    tags=['settlements'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def group_balances(request, group_id):
    """Get live net balances of all group members."""
    try:
        balances = get_group_balances(group_id=group_id, user=request.user)
    except SettlementsServiceError as e:
        return error_response(e)

    rows = [{'user_id': user_id, 'amount': amount} for user_id, amount in balances.items()]
    return Response(MemberBalanceSerializer(rows, many=True).data)
