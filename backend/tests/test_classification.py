# tests/test_classification.py
"""
Tests for expense classification and reclassification.
"""

import pytest
from datetime import date
from decimal import Decimal

from django.core.exceptions import PermissionDenied

from events.models import BusinessEvent
from events.types import EventTypes
from ledger.commands import (
    apply_transaction,
    classify_transaction,
    create_expense_type,
    reclassify_all,
    update_expense_type,
)
from ledger.errors import ErrorCode
from ledger.models import LedgerEntry, Transaction


@pytest.fixture
def funded_project(admin_actor, funded_pool, project):
    result = apply_transaction(
        admin_actor,
        date=date(2024, 1, 10),
        description="تمويل",
        type=Transaction.Type.INCOME,
        amount=Decimal("10000"),
        project_id=project.pk,
    )
    assert result.success, result.error
    return project


def _expense(actor, project, expense_type, amount=Decimal("500")):
    result = apply_transaction(
        actor,
        date=date(2024, 1, 15),
        description="مصروف",
        type=Transaction.Type.EXPENSE,
        amount=amount,
        project_id=project.pk,
        expense_type=expense_type,
    )
    assert result.success, result.error
    return result.data["transaction"]


@pytest.mark.django_db
class TestClassifyOnApply:

    def test_matching_active_type_is_classified(self, admin_actor, funded_project, materials_type):
        txn = _expense(admin_actor, funded_project, "مواد بناء")

        entry = LedgerEntry.objects.get(transaction=txn)
        assert entry.entry_type == LedgerEntry.EntryType.CLASSIFIED
        assert entry.expense_type == materials_type

    def test_unknown_type_is_general_expense(self, admin_actor, funded_project, materials_type):
        txn = _expense(admin_actor, funded_project, "مصروف عام")

        entry = LedgerEntry.objects.get(transaction=txn)
        assert entry.entry_type == LedgerEntry.EntryType.GENERAL_EXPENSE
        assert entry.expense_type is None

    def test_blank_type_is_general_expense(self, admin_actor, funded_project):
        txn = _expense(admin_actor, funded_project, "")

        assert LedgerEntry.objects.get(transaction=txn).entry_type == LedgerEntry.EntryType.GENERAL_EXPENSE

    def test_inactive_type_is_not_matched(self, admin_actor, funded_project, materials_type):
        update_expense_type(admin_actor, materials_type.pk, is_active=False)

        txn = _expense(admin_actor, funded_project, "مواد بناء")

        assert LedgerEntry.objects.get(transaction=txn).entry_type == LedgerEntry.EntryType.GENERAL_EXPENSE

    def test_classify_is_an_upsert(self, admin_actor, funded_project, materials_type):
        txn = _expense(admin_actor, funded_project, "مواد بناء")

        classify_transaction(txn)
        classify_transaction(txn)

        assert LedgerEntry.objects.filter(transaction=txn).count() == 1

    def test_income_cannot_be_classified(self, admin_actor, funded_project):
        income = Transaction.objects.get(type=Transaction.Type.INCOME)

        with pytest.raises(ValueError):
            classify_transaction(income)


@pytest.mark.django_db
class TestReclassifyAll:

    def test_new_type_reclassifies_general_expense(self, admin_actor, funded_project):
        txn = _expense(admin_actor, funded_project, "مصروف عام")
        before = LedgerEntry.objects.get(transaction=txn)
        assert before.entry_type == LedgerEntry.EntryType.GENERAL_EXPENSE

        created = create_expense_type(admin_actor, "مصروف عام")
        result = reclassify_all(admin_actor)

        assert result.success
        assert result.data == {"reclassified": 1, "created": 0, "checked": 1}
        after = LedgerEntry.objects.get(transaction=txn)
        assert after.pk == before.pk
        assert after.entry_type == LedgerEntry.EntryType.CLASSIFIED
        assert after.expense_type == created.data
        assert after.amount == before.amount
        assert after.date == before.date
        assert result.event.event_type == EventTypes.LEDGER_RECLASSIFIED

    def test_nothing_to_change_emits_no_event(self, admin_actor, funded_project, materials_type):
        _expense(admin_actor, funded_project, "مواد بناء")
        before = BusinessEvent.objects.count()

        result = reclassify_all(admin_actor)

        assert result.data["reclassified"] == 0
        assert result.event is None
        assert BusinessEvent.objects.count() == before

    def test_renamed_type_keeps_classification(self, admin_actor, funded_project, materials_type):
        txn = _expense(admin_actor, funded_project, "مواد بناء")
        update_expense_type(admin_actor, materials_type.pk, name="مواد")

        result = reclassify_all(admin_actor)

        assert result.data["reclassified"] == 0
        entry = LedgerEntry.objects.get(transaction=txn)
        assert entry.entry_type == LedgerEntry.EntryType.CLASSIFIED
        assert entry.expense_type_id == materials_type.pk

    def test_deactivated_type_falls_back_to_general(self, admin_actor, funded_project, materials_type):
        txn = _expense(admin_actor, funded_project, "مواد بناء")
        update_expense_type(admin_actor, materials_type.pk, is_active=False)

        result = reclassify_all(admin_actor)

        assert result.data["reclassified"] == 1
        entry = LedgerEntry.objects.get(transaction=txn)
        assert entry.entry_type == LedgerEntry.EntryType.GENERAL_EXPENSE
        assert entry.expense_type is None

    def test_missing_entry_is_created(self, admin_actor, funded_project, materials_type):
        txn = _expense(admin_actor, funded_project, "مواد بناء")
        LedgerEntry.objects.filter(transaction=txn).delete()

        result = reclassify_all(admin_actor)

        assert result.data["created"] == 1
        assert LedgerEntry.objects.filter(transaction=txn).count() == 1

    def test_requires_ledger_manage(self, user_actor):
        with pytest.raises(PermissionDenied):
            reclassify_all(user_actor)


@pytest.mark.django_db
class TestExpenseTypes:

    def test_duplicate_name_rejected(self, admin_actor, materials_type):
        result = create_expense_type(admin_actor, "مواد بناء")

        assert not result.success
        assert result.code == ErrorCode.DUPLICATE_NAME

    def test_update_unknown_type_is_not_found(self, admin_actor):
        result = update_expense_type(admin_actor, 9999, name="x")

        assert result.code == ErrorCode.NOT_FOUND

    def test_update_records_changes(self, admin_actor, materials_type):
        result = update_expense_type(admin_actor, materials_type.pk, description="حديد فقط")

        assert result.event.data["changes"] == {
            "description": {"old": "حديد وإسمنت", "new": "حديد فقط"},
        }
