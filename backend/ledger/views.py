# ledger/views.py
"""
Thin views that delegate to the commands layer.

Views handle: HTTP parsing, authentication, response formatting.
Commands handle: business logic, validation, events.

CRITICAL: All mutations (create, update, delete) MUST go through commands
so balances stay consistent and events are emitted. Views never call
.save() on models.
"""

import logging
import time

from django.conf import settings
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import resolve_actor, require
from projections.ledger import ledger_summary, beneficiary_ledger
from .errors import ErrorCode, StoreUnavailable
from .models import (
    AdminBalance,
    Project,
    Transaction,
    ExpenseType,
    LedgerEntry,
    DeferredPayment,
)
from .serializers import (
    ProjectSerializer,
    ProjectCreateSerializer,
    ProjectUpdateSerializer,
    ProjectBalanceSerializer,
    TransactionSerializer,
    TransactionCreateSerializer,
    TransactionQuerySerializer,
    ExpenseTypeSerializer,
    ExpenseTypeCreateSerializer,
    ExpenseTypeUpdateSerializer,
    LedgerEntrySerializer,
    LedgerEntryQuerySerializer,
    DeferredPaymentSerializer,
    DeferredPaymentCreateSerializer,
    InstallmentPaySerializer,
    TransferReceivablesSerializer,
    AdminDepositSerializer,
)
from .commands import (
    deposit_admin_funds,
    create_project,
    update_project,
    delete_project,
    create_expense_type,
    update_expense_type,
    reclassify_all,
    apply_transaction,
    delete_transaction,
    create_deferred_payment,
    pay_installment,
    delete_deferred_payment,
    transfer_installment_to_ledger,
    transfer_receivables_to_ledger,
)


logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.DUPLICATE_NAME: status.HTTP_409_CONFLICT,
    ErrorCode.INSUFFICIENT_FUNDS: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INSUFFICIENT_PROJECT_BALANCE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_AMOUNT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(result) -> Response:
    return Response(
        {"detail": result.error, "code": result.code},
        status=ERROR_STATUS.get(result.code, status.HTTP_400_BAD_REQUEST),
    )


def run_command(command, *args, **kwargs):
    """
    Run a command, retrying StoreUnavailable with exponential backoff.

    Returns the CommandResult, or a 503 Response once retries are exhausted.
    """
    attempts = max(1, getattr(settings, "STORE_RETRY_ATTEMPTS", 3))
    base_delay = getattr(settings, "STORE_RETRY_BASE_DELAY", 0.05)

    for attempt in range(attempts):
        try:
            return command(*args, **kwargs)
        except StoreUnavailable as exc:
            if attempt == attempts - 1:
                logger.error(
                    "Store unavailable, giving up",
                    extra={"command": command.__name__, "attempts": attempts, "error": str(exc)},
                )
                return Response(
                    {"detail": "The data store is temporarily unavailable. Please retry.",
                     "code": ErrorCode.STORE_UNAVAILABLE},
                    status=status.HTTP_503_SERVICE_UNAVAILABLE,
                )
            time.sleep(base_delay * (2 ** attempt))


def command_response(command, *args, serializer_class=None, success_status=status.HTTP_200_OK, **kwargs):
    """Run a command and map its CommandResult to an HTTP response."""
    result = run_command(command, *args, **kwargs)
    if isinstance(result, Response):
        return result
    if not result.success:
        return error_response(result)
    data = serializer_class(result.data).data if serializer_class else result.data
    return Response(data, status=success_status)


def _updated_balances(data) -> dict:
    project = data.get("project")
    return {
        "admin_balance": str(data["admin_balance"]),
        "project": ProjectBalanceSerializer(project).data if project is not None else None,
    }


# =============================================================================
# Admin Pool
# =============================================================================

class AdminBalanceView(APIView):
    """
    GET /api/ledger/admin-balance/ -> current admin pool
    POST /api/ledger/admin-balance/ -> deposit external funds
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "reports.view")
        return Response({"balance": str(AdminBalance.current_balance())})

    def post(self, request):
        actor = resolve_actor(request)
        serializer = AdminDepositSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = run_command(deposit_admin_funds, actor, **serializer.validated_data)
        if isinstance(result, Response):
            return result
        if not result.success:
            return error_response(result)
        return Response({"balance": str(result.data.balance)}, status=status.HTTP_201_CREATED)


# =============================================================================
# Project Views
# =============================================================================

class ProjectListCreateView(APIView):
    """
    GET /api/ledger/projects/ -> list projects
    POST /api/ledger/projects/ -> create project
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "projects.view")

        projects = Project.objects.all()
        status_filter = request.query_params.get("status")
        if status_filter:
            projects = projects.filter(status=status_filter)
        return Response(ProjectSerializer(projects, many=True).data)

    def post(self, request):
        actor = resolve_actor(request)
        serializer = ProjectCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return command_response(
            create_project, actor, **serializer.validated_data,
            serializer_class=ProjectSerializer,
            success_status=status.HTTP_201_CREATED,
        )


class ProjectDetailView(APIView):
    """
    GET /api/ledger/projects/<pk>/ -> retrieve project
    PATCH /api/ledger/projects/<pk>/ -> rename / change status
    DELETE /api/ledger/projects/<pk>/ -> delete (only when unreferenced)
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "projects.view")
        project = get_object_or_404(Project, pk=pk)
        return Response(ProjectSerializer(project).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = ProjectUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        return command_response(
            update_project, actor, pk, **serializer.validated_data,
            serializer_class=ProjectSerializer,
        )

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = run_command(delete_project, actor, pk)
        if isinstance(result, Response):
            return result
        if not result.success:
            return error_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Transaction Views
# =============================================================================

class TransactionListCreateView(APIView):
    """
    GET /api/ledger/transactions/?project_id=&type= -> list transactions
    POST /api/ledger/transactions/ -> validate and apply a transaction
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "transactions.view")

        query = TransactionQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        filters = query.validated_data

        transactions = Transaction.objects.select_related("project", "created_by")
        if filters.get("project_id") is not None:
            transactions = transactions.filter(project_id=filters["project_id"])
        if filters.get("type"):
            transactions = transactions.filter(type=filters["type"])
        return Response(TransactionSerializer(transactions, many=True).data)

    def post(self, request):
        actor = resolve_actor(request)
        serializer = TransactionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = run_command(apply_transaction, actor, **serializer.validated_data)
        if isinstance(result, Response):
            return result
        if not result.success:
            return error_response(result)

        return Response(
            {
                "transaction": TransactionSerializer(result.data["transaction"]).data,
                "updated_balances": _updated_balances(result.data),
            },
            status=status.HTTP_201_CREATED,
        )


class TransactionDetailView(APIView):
    """
    GET /api/ledger/transactions/<pk>/ -> retrieve transaction
    DELETE /api/ledger/transactions/<pk>/ -> reverse balances and delete
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "transactions.view")
        txn = get_object_or_404(Transaction.objects.select_related("project", "created_by"), pk=pk)
        return Response(TransactionSerializer(txn).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = run_command(delete_transaction, actor, pk)
        if isinstance(result, Response):
            return result
        if not result.success:
            return error_response(result)
        return Response({"success": True, "updated_balances": _updated_balances(result.data)})


# =============================================================================
# Expense Types & Ledger Entries
# =============================================================================

class ExpenseTypeListCreateView(APIView):
    """
    GET /api/ledger/expense-types/ -> list expense types
    POST /api/ledger/expense-types/ -> create expense type
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "ledger.view")
        expense_types = ExpenseType.objects.all()
        if request.query_params.get("active") == "true":
            expense_types = expense_types.filter(is_active=True)
        return Response(ExpenseTypeSerializer(expense_types, many=True).data)

    def post(self, request):
        actor = resolve_actor(request)
        serializer = ExpenseTypeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return command_response(
            create_expense_type, actor, **serializer.validated_data,
            serializer_class=ExpenseTypeSerializer,
            success_status=status.HTTP_201_CREATED,
        )


class ExpenseTypeDetailView(APIView):
    """PATCH /api/ledger/expense-types/<pk>/ -> rename / (de)activate"""
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = ExpenseTypeUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        return command_response(
            update_expense_type, actor, pk, **serializer.validated_data,
            serializer_class=ExpenseTypeSerializer,
        )


class LedgerEntryListView(APIView):
    """GET /api/ledger/entries/?entry_type= -> list ledger entries"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "ledger.view")
        query = LedgerEntryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        filters = query.validated_data

        entries = LedgerEntry.objects.select_related("expense_type", "project")
        if filters.get("entry_type"):
            entries = entries.filter(entry_type=filters["entry_type"])
        if filters.get("project_id") is not None:
            entries = entries.filter(project_id=filters["project_id"])
        return Response(LedgerEntrySerializer(entries, many=True).data)


class LedgerSummaryView(APIView):
    """GET /api/ledger/summary/ -> classified/general buckets and grandTotal"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "ledger.view")

        summary = ledger_summary()
        for bucket in ("classified", "general_expense"):
            summary[bucket] = {
                "total": str(summary[bucket]["total"]),
                "count": summary[bucket]["count"],
                "entries": LedgerEntrySerializer(summary[bucket]["entries"], many=True).data,
            }
        summary["grandTotal"] = str(summary["grandTotal"])
        summary["transferred_installments"]["total"] = str(summary["transferred_installments"]["total"])
        return Response(summary)


class BeneficiaryLedgerView(APIView):
    """GET /api/ledger/beneficiaries/<name>/ -> running balance of transferred installments"""
    permission_classes = [IsAuthenticated]

    def get(self, request, name):
        actor = resolve_actor(request)
        require(actor, "deferred.view")

        ledger = beneficiary_ledger(name)
        return Response({
            "beneficiary_name": ledger["beneficiary_name"],
            "total": str(ledger["total"]),
            "count": ledger["count"],
            "entries": [
                {**LedgerEntrySerializer(row["entry"]).data, "running_balance": str(row["running_balance"])}
                for row in ledger["rows"]
            ],
        })


class ReclassifyTransactionsView(APIView):
    """POST /api/ledger/reclassify-transactions/ -> re-evaluate every expense transaction"""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        actor = resolve_actor(request)
        result = run_command(reclassify_all, actor)
        if isinstance(result, Response):
            return result
        if not result.success:
            return error_response(result)
        return Response({"summary": result.data})


# =============================================================================
# Deferred Payments
# =============================================================================

class DeferredPaymentListCreateView(APIView):
    """
    GET /api/ledger/deferred-payments/ -> list deferred payments
    POST /api/ledger/deferred-payments/ -> create deferred payment
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "deferred.view")
        payments = DeferredPayment.objects.select_related("project").prefetch_related("installments")
        status_filter = request.query_params.get("status")
        if status_filter:
            payments = payments.filter(status=status_filter)
        return Response(DeferredPaymentSerializer(payments, many=True).data)

    def post(self, request):
        actor = resolve_actor(request)
        serializer = DeferredPaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return command_response(
            create_deferred_payment, actor, **serializer.validated_data,
            serializer_class=DeferredPaymentSerializer,
            success_status=status.HTTP_201_CREATED,
        )


class DeferredPaymentDetailView(APIView):
    """
    GET /api/ledger/deferred-payments/<pk>/ -> retrieve with installments
    DELETE /api/ledger/deferred-payments/<pk>/ -> delete when nothing was transferred
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "deferred.view")
        payment = get_object_or_404(DeferredPayment.objects.prefetch_related("installments"), pk=pk)
        return Response(DeferredPaymentSerializer(payment).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = run_command(delete_deferred_payment, actor, pk)
        if isinstance(result, Response):
            return result
        if not result.success:
            return error_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class DeferredPaymentPayView(APIView):
    """POST /api/ledger/deferred-payments/<pk>/pay/ -> record an installment"""
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        serializer = InstallmentPaySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return command_response(
            pay_installment, actor, pk, serializer.validated_data["amount"],
            serializer_class=DeferredPaymentSerializer,
        )


class InstallmentTransferView(APIView):
    """POST /api/ledger/installments/<pk>/transfer/ -> post one installment to the ledger"""
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        result = run_command(transfer_installment_to_ledger, actor, pk)
        if isinstance(result, Response):
            return result
        if not result.success:
            return error_response(result)
        entry = result.data["entry"]
        return Response({
            "created": result.data["created"],
            "entry": LedgerEntrySerializer(entry).data if entry else None,
        })


class TransferReceivablesView(APIView):
    """POST /api/ledger/transfer-receivables/ {receivable_ids} -> post untransferred installments"""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        actor = resolve_actor(request)
        serializer = TransferReceivablesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return command_response(
            transfer_receivables_to_ledger, actor, serializer.validated_data["receivable_ids"],
        )
