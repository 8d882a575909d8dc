# tests/test_balances.py
"""
Tests for the balance accessor: applying and deleting transactions.

Tests cover:
- Income moves money from the admin pool into a project
- Expenses draw from the project, or from the pool when project-less
- Failures leave every balance untouched
- Deletion reverses the exact balance effect
"""

import pytest
from datetime import date
from decimal import Decimal

from django.core.exceptions import PermissionDenied

from events.models import BusinessEvent
from events.types import EventTypes
from ledger.commands import apply_transaction, delete_transaction, deposit_admin_funds
from ledger.errors import ErrorCode
from ledger.models import AdminBalance, LedgerEntry, Project, Transaction


def _pool():
    return AdminBalance.objects.get(pk=AdminBalance.SINGLETON_ID).balance


def _income(actor, project, amount, **kwargs):
    return apply_transaction(
        actor,
        date=kwargs.pop("date", date(2024, 3, 1)),
        description=kwargs.pop("description", "تمويل المشروع"),
        type=Transaction.Type.INCOME,
        amount=amount,
        project_id=project.pk if project else None,
        **kwargs,
    )


def _expense(actor, project, amount, **kwargs):
    return apply_transaction(
        actor,
        date=kwargs.pop("date", date(2024, 3, 2)),
        description=kwargs.pop("description", "شراء مواد"),
        type=Transaction.Type.EXPENSE,
        amount=amount,
        project_id=project.pk if project else None,
        **kwargs,
    )


# =============================================================================
# Admin Pool
# =============================================================================

@pytest.mark.django_db
class TestAdminPool:

    def test_deposit_increases_pool_and_emits_event(self, admin_actor):
        result = deposit_admin_funds(admin_actor, "2500.50", description="دفعة عميل")

        assert result.success
        assert _pool() == Decimal("2500.50")
        assert result.event.event_type == EventTypes.ADMIN_FUNDS_DEPOSITED
        assert result.event.data["balance_after"] == "2500.50"

    def test_deposit_requires_funds_permission(self, manager_actor):
        with pytest.raises(PermissionDenied):
            deposit_admin_funds(manager_actor, Decimal("100"))

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), "abc", None])
    def test_deposit_rejects_invalid_amount(self, admin_actor, amount):
        result = deposit_admin_funds(admin_actor, amount)

        assert not result.success
        assert result.code == ErrorCode.INVALID_AMOUNT
        assert not AdminBalance.objects.exists()

    def test_current_balance_uses_initial_setting_before_first_write(self, db, settings):
        settings.INITIAL_ADMIN_BALANCE = Decimal("750")

        assert AdminBalance.current_balance() == Decimal("750")
        assert not AdminBalance.objects.exists()


# =============================================================================
# Apply Transaction
# =============================================================================

@pytest.mark.django_db
class TestApplyTransaction:

    def test_income_moves_funds_from_pool_to_project(self, admin_actor, funded_pool, project):
        result = _income(admin_actor, project, Decimal("200000"))

        assert result.success, result.error
        project.refresh_from_db()
        assert _pool() == Decimal("800000.00")
        assert project.balance == Decimal("200000.00")
        assert project.total_income == Decimal("200000.00")
        assert project.net_profit == Decimal("200000.00")
        assert result.data["admin_balance"] == Decimal("800000.00")
        assert result.data["project"].balance == Decimal("200000.00")

    def test_income_exceeding_pool_fails_without_side_effects(self, admin_actor, funded_pool, project):
        before = BusinessEvent.objects.count()

        result = _income(admin_actor, project, Decimal("1000000.01"))

        assert not result.success
        assert result.code == ErrorCode.INSUFFICIENT_FUNDS
        project.refresh_from_db()
        assert _pool() == Decimal("1000000.00")
        assert project.balance == Decimal("0.00")
        assert not Transaction.objects.exists()
        assert BusinessEvent.objects.count() == before

    def test_income_requires_project(self, admin_actor, funded_pool):
        result = _income(admin_actor, None, Decimal("100"))

        assert not result.success
        assert result.code == ErrorCode.VALIDATION_ERROR
        assert _pool() == Decimal("1000000.00")

    def test_expense_draws_from_project(self, admin_actor, funded_pool, project):
        _income(admin_actor, project, Decimal("1000"))

        result = _expense(admin_actor, project, Decimal("400"))

        assert result.success, result.error
        project.refresh_from_db()
        assert project.balance == Decimal("600.00")
        assert project.total_expenses == Decimal("400.00")
        assert project.net_profit == Decimal("600.00")
        assert _pool() == Decimal("999000.00")

    def test_expense_exceeding_project_balance_fails(self, admin_actor, funded_pool, project):
        _income(admin_actor, project, Decimal("100"))

        result = _expense(admin_actor, project, Decimal("100.01"))

        assert not result.success
        assert result.code == ErrorCode.INSUFFICIENT_PROJECT_BALANCE
        project.refresh_from_db()
        assert project.balance == Decimal("100.00")
        assert Transaction.objects.filter(type=Transaction.Type.EXPENSE).count() == 0
        assert not LedgerEntry.objects.exists()

    def test_projectless_expense_draws_from_pool(self, admin_actor, funded_pool):
        result = _expense(admin_actor, None, Decimal("250"))

        assert result.success, result.error
        assert _pool() == Decimal("999750.00")
        assert result.data["project"] is None

    def test_projectless_expense_exceeding_pool_fails(self, admin_actor):
        result = _expense(admin_actor, None, Decimal("1"))

        assert not result.success
        assert result.code == ErrorCode.INSUFFICIENT_FUNDS

    def test_expense_posts_ledger_entry(self, admin_actor, funded_pool, project):
        _income(admin_actor, project, Decimal("500"))

        result = _expense(admin_actor, project, Decimal("120"))

        entry = LedgerEntry.objects.get(transaction=result.data["transaction"])
        assert entry.amount == Decimal("120.00")
        assert entry.project_id == project.pk
        assert BusinessEvent.objects.filter(event_type=EventTypes.LEDGER_ENTRY_POSTED).count() == 1

    def test_income_does_not_post_ledger_entry(self, admin_actor, funded_pool, project):
        _income(admin_actor, project, Decimal("500"))

        assert not LedgerEntry.objects.exists()

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10"), "not-a-number"])
    def test_invalid_amount_rejected(self, admin_actor, funded_pool, project, amount):
        result = _income(admin_actor, project, amount)

        assert not result.success
        assert result.code == ErrorCode.INVALID_AMOUNT

    def test_unknown_project_is_not_found(self, admin_actor, funded_pool):
        result = apply_transaction(
            admin_actor,
            date=date(2024, 3, 1),
            description="x",
            type=Transaction.Type.INCOME,
            amount=Decimal("1"),
            project_id=999999,
        )

        assert not result.success
        assert result.code == ErrorCode.NOT_FOUND

    def test_invalid_date_rejected(self, admin_actor, funded_pool, project):
        result = _income(admin_actor, project, Decimal("10"), date="2024-13-45")

        assert not result.success
        assert result.code == ErrorCode.VALIDATION_ERROR

    def test_amount_is_rounded_to_cents(self, admin_actor, funded_pool, project):
        result = _income(admin_actor, project, "10.005")

        assert result.success
        assert result.data["transaction"].amount == Decimal("10.01")

    def test_regular_user_can_record_transactions(self, admin_actor, user_actor, funded_pool, project):
        result = _income(user_actor, project, Decimal("50"))

        assert result.success
        assert result.data["transaction"].created_by == user_actor.user


# =============================================================================
# Delete Transaction
# =============================================================================

@pytest.mark.django_db
class TestDeleteTransaction:

    def test_reference_scenario(self, admin_actor, funded_pool, project):
        income = _income(admin_actor, project, Decimal("200000"))
        assert _pool() == Decimal("800000.00")

        expense = _expense(admin_actor, project, Decimal("50000"))
        project.refresh_from_db()
        assert project.balance == Decimal("150000.00")

        result = delete_transaction(admin_actor, expense.data["transaction"].pk)

        assert result.success, result.error
        project.refresh_from_db()
        assert project.balance == Decimal("200000.00")
        assert project.total_expenses == Decimal("0.00")
        assert _pool() == Decimal("800000.00")
        assert Transaction.objects.filter(pk=income.data["transaction"].pk).exists()

    def test_deleting_income_returns_funds_to_pool(self, admin_actor, funded_pool, project):
        income = _income(admin_actor, project, Decimal("300"))

        result = delete_transaction(admin_actor, income.data["transaction"].pk)

        assert result.success
        project.refresh_from_db()
        assert project.balance == Decimal("0.00")
        assert project.total_income == Decimal("0.00")
        assert _pool() == Decimal("1000000.00")

    def test_cannot_delete_spent_income(self, admin_actor, funded_pool, project):
        income = _income(admin_actor, project, Decimal("300"))
        _expense(admin_actor, project, Decimal("200"))

        result = delete_transaction(admin_actor, income.data["transaction"].pk)

        assert not result.success
        assert result.code == ErrorCode.INSUFFICIENT_PROJECT_BALANCE
        project.refresh_from_db()
        assert project.balance == Decimal("100.00")
        assert Transaction.objects.count() == 2

    def test_deleting_projectless_expense_refunds_pool(self, admin_actor, funded_pool):
        expense = _expense(admin_actor, None, Decimal("75"))

        delete_transaction(admin_actor, expense.data["transaction"].pk)

        assert _pool() == Decimal("1000000.00")

    def test_delete_removes_ledger_entry(self, admin_actor, funded_pool, project):
        _income(admin_actor, project, Decimal("300"))
        expense = _expense(admin_actor, project, Decimal("30"))
        entry_id = LedgerEntry.objects.get(transaction=expense.data["transaction"]).public_id

        result = delete_transaction(admin_actor, expense.data["transaction"].pk)

        assert not LedgerEntry.objects.exists()
        assert result.event.data["ledger_entry_public_id"] == str(entry_id)

    def test_unknown_transaction_is_not_found(self, admin_actor):
        result = delete_transaction(admin_actor, 424242)

        assert not result.success
        assert result.code == ErrorCode.NOT_FOUND

    def test_only_creator_or_admin_can_delete(self, admin_actor, manager_actor, funded_pool, project):
        admin_income = _income(admin_actor, project, Decimal("100"))
        manager_income = _income(manager_actor, project, Decimal("100"))

        with pytest.raises(PermissionDenied):
            delete_transaction(manager_actor, admin_income.data["transaction"].pk)

        assert delete_transaction(manager_actor, manager_income.data["transaction"].pk).success
        assert delete_transaction(admin_actor, admin_income.data["transaction"].pk).success

    def test_regular_user_cannot_delete(self, admin_actor, user_actor, funded_pool, project):
        income = _income(user_actor, project, Decimal("100"))

        with pytest.raises(PermissionDenied):
            delete_transaction(user_actor, income.data["transaction"].pk)


# =============================================================================
# Conservation
# =============================================================================

@pytest.mark.django_db
def test_pool_and_projects_conserve_funds(admin_actor, funded_pool, project, second_project):
    _income(admin_actor, project, Decimal("40000"))
    _income(admin_actor, second_project, Decimal("25000"))
    _expense(admin_actor, project, Decimal("1500.25"))
    _expense(admin_actor, second_project, Decimal("999.75"))
    _expense(admin_actor, None, Decimal("500"))

    total_expenses = sum(
        Transaction.objects.filter(type=Transaction.Type.EXPENSE).values_list("amount", flat=True),
        Decimal("0"),
    )
    project_balances = sum(Project.objects.values_list("balance", flat=True), Decimal("0"))

    assert _pool() + project_balances == Decimal("1000000.00") - total_expenses
    for p in Project.objects.all():
        assert p.balance >= 0
        assert p.net_profit == p.total_income - p.total_expenses
