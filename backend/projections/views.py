# projections/views.py
"""
API views for reports.

These views only read: dashboard totals are aggregated from the write
models, and balance verification replays the event stream and compares
it with the cached balances.
"""

from django.core.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import resolve_actor, require
from ledger.serializers import TransactionSerializer
from projections.balances import BalanceProjection
from projections.ledger import dashboard


class DashboardView(APIView):
    """
    GET /api/reports/dashboard/

    Returns total income, total expenses, net profit, the admin pool,
    the active project count and the five most recent transactions.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "reports.view")

        data = dashboard()
        return Response({
            "total_income": str(data["total_income"]),
            "total_expenses": str(data["total_expenses"]),
            "net_profit": str(data["net_profit"]),
            "admin_balance": str(data["admin_balance"]),
            "active_projects": data["active_projects"],
            "total_projects": data["total_projects"],
            "recent_transactions": TransactionSerializer(data["recent_transactions"], many=True).data,
        })


class BalanceVerifyView(APIView):
    """
    GET /api/reports/balances/verify/

    Replays balance events and reports every cached balance that diverges.
    Administrators only.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        if not actor.is_admin:
            raise PermissionDenied("Administrators only.")

        report = BalanceProjection().verify_all_balances()
        report["status"] = "ok" if not report["mismatches"] else "mismatch"
        return Response(report)
