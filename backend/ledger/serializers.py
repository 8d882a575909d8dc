# ledger/serializers.py
"""
Serializers for the ledger API.

Note: These serializers are used for:
1. Input validation
2. Output formatting

The actual business logic happens in commands.py; amount rules
(positive, within remaining balance) are enforced there so they map to
INVALID_AMOUNT rather than a generic validation error.
"""

from rest_framework import serializers

from .models import (
    Project,
    Transaction,
    ExpenseType,
    LedgerEntry,
    DeferredPayment,
    DeferredPaymentInstallment,
)


def _money_field(**kwargs):
    return serializers.DecimalField(max_digits=15, decimal_places=2, **kwargs)


# =============================================================================
# Project Serializers
# =============================================================================

class ProjectSerializer(serializers.ModelSerializer):
    class Meta:
        model = Project
        fields = [
            "id", "public_id", "name", "description", "status",
            "balance", "total_income", "total_expenses", "net_profit",
            "created_by", "created_at", "updated_at",
        ]
        read_only_fields = fields


class ProjectCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    status = serializers.ChoiceField(choices=Project.Status.choices, default=Project.Status.ACTIVE)


class ProjectUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=Project.Status.choices, required=False)


class ProjectBalanceSerializer(serializers.ModelSerializer):
    """Balance snapshot returned after a transaction is applied or deleted."""

    class Meta:
        model = Project
        fields = ["id", "name", "balance", "total_income", "total_expenses", "net_profit"]
        read_only_fields = fields


# =============================================================================
# Transaction Serializers
# =============================================================================

class TransactionSerializer(serializers.ModelSerializer):
    project_name = serializers.CharField(source="project.name", read_only=True, default=None)
    created_by_name = serializers.CharField(source="created_by.name", read_only=True, default=None)

    class Meta:
        model = Transaction
        fields = [
            "id", "public_id", "date", "description", "type", "amount",
            "project", "project_name", "expense_type",
            "created_by", "created_by_name", "created_at",
        ]
        read_only_fields = fields


class TransactionCreateSerializer(serializers.Serializer):
    date = serializers.DateField()
    description = serializers.CharField()
    type = serializers.ChoiceField(choices=Transaction.Type.choices)
    amount = _money_field()
    project_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    expense_type = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")


class TransactionQuerySerializer(serializers.Serializer):
    project_id = serializers.IntegerField(required=False, allow_null=True)
    type = serializers.ChoiceField(choices=Transaction.Type.choices, required=False, allow_blank=True)


# =============================================================================
# Expense Type & Ledger Entry Serializers
# =============================================================================

class ExpenseTypeSerializer(serializers.ModelSerializer):
    class Meta:
        model = ExpenseType
        fields = ["id", "public_id", "name", "description", "is_active", "created_at", "updated_at"]
        read_only_fields = fields


class ExpenseTypeCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, default="")


class ExpenseTypeUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    is_active = serializers.BooleanField(required=False)


class LedgerEntrySerializer(serializers.ModelSerializer):
    expense_type_name = serializers.CharField(source="expense_type.name", read_only=True, default=None)
    project_name = serializers.CharField(source="project.name", read_only=True, default=None)

    class Meta:
        model = LedgerEntry
        fields = [
            "id", "public_id", "date", "transaction", "installment",
            "expense_type", "expense_type_name", "amount", "description",
            "project", "project_name", "entry_type", "created_at",
        ]
        read_only_fields = fields


class LedgerEntryQuerySerializer(serializers.Serializer):
    project_id = serializers.IntegerField(required=False, allow_null=True)
    entry_type = serializers.ChoiceField(choices=LedgerEntry.EntryType.choices, required=False, allow_blank=True)


# =============================================================================
# Deferred Payment Serializers
# =============================================================================

class DeferredPaymentInstallmentSerializer(serializers.ModelSerializer):
    is_transferred = serializers.BooleanField(read_only=True)

    class Meta:
        model = DeferredPaymentInstallment
        fields = ["id", "public_id", "amount", "paid_at", "transferred_at", "is_transferred"]
        read_only_fields = fields


class DeferredPaymentSerializer(serializers.ModelSerializer):
    project_name = serializers.CharField(source="project.name", read_only=True, default=None)
    installments = DeferredPaymentInstallmentSerializer(many=True, read_only=True)

    class Meta:
        model = DeferredPayment
        fields = [
            "id", "public_id", "beneficiary_name", "total_amount", "paid_amount",
            "remaining_amount", "status", "project", "project_name", "due_date",
            "description", "installments", "created_at", "updated_at",
        ]
        read_only_fields = fields


class DeferredPaymentCreateSerializer(serializers.Serializer):
    beneficiary_name = serializers.CharField(max_length=200)
    total_amount = _money_field()
    project_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    due_date = serializers.DateField(required=False, allow_null=True, default=None)
    description = serializers.CharField(required=False, allow_blank=True, default="")


class InstallmentPaySerializer(serializers.Serializer):
    amount = _money_field()


class TransferReceivablesSerializer(serializers.Serializer):
    receivable_ids = serializers.ListField(
        child=serializers.IntegerField(),
        allow_empty=False,
    )


class AdminDepositSerializer(serializers.Serializer):
    amount = _money_field()
    description = serializers.CharField(required=False, allow_blank=True, default="")
