# projections/urls.py
"""
URL configuration for the reports API.

Endpoints:
- /reports/dashboard/ - Dashboard totals and recent transactions
- /reports/balances/verify/ - Replay events and verify cached balances (admin)
"""

from django.urls import path

from .views import DashboardView, BalanceVerifyView

app_name = "projections"

urlpatterns = [
    path("dashboard/", DashboardView.as_view(), name="dashboard"),
    path("balances/verify/", BalanceVerifyView.as_view(), name="balances-verify"),
]
