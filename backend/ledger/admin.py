# ledger/admin.py
"""
Django admin configuration for ledger models.

All ledger models are command-owned write models. The admin interface is
for viewing only; mutations MUST go through ledger/commands.py so balances
stay consistent and events are emitted.
"""

from django.contrib import admin

from .models import (
    AdminBalance,
    Project,
    Transaction,
    ExpenseType,
    LedgerEntry,
    DeferredPayment,
    DeferredPaymentInstallment,
)


class ReadOnlyModelAdmin(admin.ModelAdmin):
    """Base admin class for command-owned models."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class ReadOnlyInline(admin.TabularInline):
    extra = 0

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class InstallmentInline(ReadOnlyInline):
    model = DeferredPaymentInstallment
    fields = ["amount", "paid_at", "transferred_at"]
    readonly_fields = fields


@admin.register(AdminBalance)
class AdminBalanceAdmin(ReadOnlyModelAdmin):
    list_display = ["balance", "opening_balance", "updated_at"]


@admin.register(Project)
class ProjectAdmin(ReadOnlyModelAdmin):
    list_display = ["name", "status", "balance", "total_income", "total_expenses", "net_profit"]
    list_filter = ["status"]
    search_fields = ["name"]


@admin.register(Transaction)
class TransactionAdmin(ReadOnlyModelAdmin):
    list_display = ["date", "type", "amount", "project", "expense_type", "created_by"]
    list_filter = ["type", "project"]
    search_fields = ["description", "expense_type"]
    date_hierarchy = "date"


@admin.register(ExpenseType)
class ExpenseTypeAdmin(ReadOnlyModelAdmin):
    list_display = ["name", "is_active", "updated_at"]
    list_filter = ["is_active"]


@admin.register(LedgerEntry)
class LedgerEntryAdmin(ReadOnlyModelAdmin):
    list_display = ["date", "entry_type", "amount", "expense_type", "project"]
    list_filter = ["entry_type", "expense_type"]


@admin.register(DeferredPayment)
class DeferredPaymentAdmin(ReadOnlyModelAdmin):
    list_display = ["beneficiary_name", "total_amount", "paid_amount", "remaining_amount", "status"]
    list_filter = ["status"]
    search_fields = ["beneficiary_name"]
    inlines = [InstallmentInline]
