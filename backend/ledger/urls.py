# ledger/urls.py
from django.urls import path

from . import views


urlpatterns = [
    # Admin pool
    path("admin-balance/", views.AdminBalanceView.as_view(), name="admin-balance"),

    # Projects
    path("projects/", views.ProjectListCreateView.as_view(), name="project-list"),
    path("projects/<int:pk>/", views.ProjectDetailView.as_view(), name="project-detail"),

    # Transactions
    path("transactions/", views.TransactionListCreateView.as_view(), name="transaction-list"),
    path("transactions/<int:pk>/", views.TransactionDetailView.as_view(), name="transaction-detail"),

    # Expense types & ledger
    path("expense-types/", views.ExpenseTypeListCreateView.as_view(), name="expense-type-list"),
    path("expense-types/<int:pk>/", views.ExpenseTypeDetailView.as_view(), name="expense-type-detail"),
    path("entries/", views.LedgerEntryListView.as_view(), name="ledger-entry-list"),
    path("summary/", views.LedgerSummaryView.as_view(), name="ledger-summary"),
    path("beneficiaries/<str:name>/", views.BeneficiaryLedgerView.as_view(), name="beneficiary-ledger"),
    path("reclassify-transactions/", views.ReclassifyTransactionsView.as_view(), name="reclassify-transactions"),

    # Deferred payments
    path("deferred-payments/", views.DeferredPaymentListCreateView.as_view(), name="deferred-payment-list"),
    path("deferred-payments/<int:pk>/", views.DeferredPaymentDetailView.as_view(), name="deferred-payment-detail"),
    path("deferred-payments/<int:pk>/pay/", views.DeferredPaymentPayView.as_view(), name="deferred-payment-pay"),
    path("installments/<int:pk>/transfer/", views.InstallmentTransferView.as_view(), name="installment-transfer"),
    path("transfer-receivables/", views.TransferReceivablesView.as_view(), name="transfer-receivables"),
]
