# tests/test_deferred_payments.py
"""
Tests for deferred payments, installments and the ledger transfer.

Tests cover:
- paid + remaining == total, completed exactly when remaining is zero
- Installments never exceed the remaining amount
- Transfers are idempotent: one deferred entry per installment
- A batch transfer with an unknown id writes nothing
"""

import pytest
from decimal import Decimal

from django.core.exceptions import PermissionDenied
from django.db import IntegrityError, transaction
from django.utils import timezone

from events.models import BusinessEvent
from events.types import EventTypes
from ledger.commands import (
    create_deferred_payment,
    delete_deferred_payment,
    pay_installment,
    transfer_installment_to_ledger,
    transfer_receivables_to_ledger,
)
from ledger.errors import ErrorCode
from ledger.models import (
    AdminBalance,
    DeferredPayment,
    DeferredPaymentInstallment,
    LedgerEntry,
)


@pytest.fixture
def payment(admin_actor, project):
    result = create_deferred_payment(
        admin_actor,
        beneficiary_name="شركة الرافدين",
        total_amount=Decimal("5000"),
        project_id=project.pk,
        due_date="2024-06-30",
    )
    assert result.success, result.error
    return result.data


@pytest.mark.django_db
class TestCreateDeferredPayment:

    def test_starts_pending_with_full_remaining(self, payment):
        assert payment.paid_amount == Decimal("0.00")
        assert payment.remaining_amount == Decimal("5000.00")
        assert payment.status == DeferredPayment.Status.PENDING
        assert str(payment.due_date) == "2024-06-30"

    def test_requires_beneficiary(self, admin_actor):
        result = create_deferred_payment(admin_actor, beneficiary_name="  ", total_amount=Decimal("10"))

        assert not result.success
        assert result.code == ErrorCode.VALIDATION_ERROR

    def test_rejects_non_positive_total(self, admin_actor):
        result = create_deferred_payment(admin_actor, beneficiary_name="x", total_amount=Decimal("0"))

        assert result.code == ErrorCode.INVALID_AMOUNT

    def test_unknown_project_is_not_found(self, admin_actor):
        result = create_deferred_payment(
            admin_actor, beneficiary_name="x", total_amount=Decimal("10"), project_id=31337,
        )

        assert result.code == ErrorCode.NOT_FOUND

    def test_regular_user_cannot_create(self, user_actor):
        with pytest.raises(PermissionDenied):
            create_deferred_payment(user_actor, beneficiary_name="x", total_amount=Decimal("10"))


@pytest.mark.django_db
class TestPayInstallment:

    def test_reference_scenario(self, admin_actor, payment):
        first = pay_installment(admin_actor, payment.pk, Decimal("3000"))

        assert first.success, first.error
        assert first.data.paid_amount == Decimal("3000.00")
        assert first.data.remaining_amount == Decimal("2000.00")
        assert first.data.status == DeferredPayment.Status.PENDING

        second = pay_installment(admin_actor, payment.pk, Decimal("2000"))

        assert second.data.paid_amount == Decimal("5000.00")
        assert second.data.remaining_amount == Decimal("0.00")
        assert second.data.status == DeferredPayment.Status.COMPLETED
        assert payment.installments.count() == 2

        transfer_receivables_to_ledger(admin_actor, [payment.pk])
        transfer_receivables_to_ledger(admin_actor, [payment.pk])

        assert LedgerEntry.objects.filter(entry_type=LedgerEntry.EntryType.DEFERRED).count() == 2

    def test_overpayment_rejected(self, admin_actor, payment):
        result = pay_installment(admin_actor, payment.pk, Decimal("5000.01"))

        assert not result.success
        assert result.code == ErrorCode.INVALID_AMOUNT
        payment.refresh_from_db()
        assert payment.paid_amount == Decimal("0.00")
        assert not payment.installments.exists()

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), "abc"])
    def test_invalid_amount_rejected(self, admin_actor, payment, amount):
        result = pay_installment(admin_actor, payment.pk, amount)

        assert result.code == ErrorCode.INVALID_AMOUNT

    def test_completed_payment_accepts_no_more(self, admin_actor, payment):
        pay_installment(admin_actor, payment.pk, Decimal("5000"))

        result = pay_installment(admin_actor, payment.pk, Decimal("1"))

        assert result.code == ErrorCode.INVALID_AMOUNT

    def test_unknown_payment_is_not_found(self, admin_actor):
        assert pay_installment(admin_actor, 777, Decimal("1")).code == ErrorCode.NOT_FOUND

    def test_paying_does_not_touch_ledger_or_pool(self, admin_actor, funded_pool, payment):
        pay_installment(admin_actor, payment.pk, Decimal("1000"))

        assert not LedgerEntry.objects.exists()
        assert AdminBalance.current_balance() == Decimal("1000000.00")

    def test_emits_installment_event(self, admin_actor, payment):
        result = pay_installment(admin_actor, payment.pk, Decimal("1200"))

        assert result.event.event_type == EventTypes.DEFERRED_PAYMENT_INSTALLMENT_PAID
        assert result.event.data["remaining_amount"] == "3800.00"
        assert result.event.data["status"] == DeferredPayment.Status.PENDING

    def test_status_must_agree_with_remaining(self, payment):
        with pytest.raises(IntegrityError), transaction.atomic():
            DeferredPayment.objects.filter(pk=payment.pk).update(status=DeferredPayment.Status.COMPLETED)

        payment.refresh_from_db()
        assert payment.status == DeferredPayment.Status.PENDING


@pytest.mark.django_db
class TestTransfer:

    def test_single_transfer_posts_deferred_entry(self, admin_actor, payment, project):
        pay_installment(admin_actor, payment.pk, Decimal("1500"))
        installment = payment.installments.get()

        result = transfer_installment_to_ledger(admin_actor, installment.pk)

        assert result.success
        assert result.data["created"] == 1
        entry = result.data["entry"]
        assert entry.entry_type == LedgerEntry.EntryType.DEFERRED
        assert entry.amount == Decimal("1500.00")
        assert entry.project_id == project.pk
        assert entry.installment_id == installment.pk
        assert entry.date == timezone.localdate(installment.paid_at)
        assert entry.description == "دفعة آجلة - شركة الرافدين"
        installment.refresh_from_db()
        assert installment.is_transferred

    def test_second_transfer_is_a_no_op(self, admin_actor, payment):
        pay_installment(admin_actor, payment.pk, Decimal("1500"))
        installment = payment.installments.get()
        transfer_installment_to_ledger(admin_actor, installment.pk)
        before = BusinessEvent.objects.count()

        result = transfer_installment_to_ledger(admin_actor, installment.pk)

        assert result.success
        assert result.data == {"created": 0, "entry": None}
        assert LedgerEntry.objects.count() == 1
        assert BusinessEvent.objects.count() == before

    def test_batch_reports_created_and_skipped(self, admin_actor, payment):
        pay_installment(admin_actor, payment.pk, Decimal("1000"))
        first = transfer_receivables_to_ledger(admin_actor, [payment.pk])
        pay_installment(admin_actor, payment.pk, Decimal("500"))

        second = transfer_receivables_to_ledger(admin_actor, [payment.pk])

        assert first.data == {"created": 1, "skipped": 0}
        assert second.data == {"created": 1, "skipped": 1}
        assert BusinessEvent.objects.filter(event_type=EventTypes.INSTALLMENT_TRANSFERRED).count() == 2

    def test_unknown_id_fails_whole_batch(self, admin_actor, payment):
        pay_installment(admin_actor, payment.pk, Decimal("1000"))

        result = transfer_receivables_to_ledger(admin_actor, [payment.pk, 987654])

        assert not result.success
        assert result.code == ErrorCode.NOT_FOUND
        assert not LedgerEntry.objects.exists()
        assert not DeferredPaymentInstallment.objects.filter(transferred_at__isnull=False).exists()

    def test_unknown_installment_is_not_found(self, admin_actor):
        assert transfer_installment_to_ledger(admin_actor, 4242).code == ErrorCode.NOT_FOUND

    def test_transfer_does_not_touch_pool(self, admin_actor, funded_pool, payment):
        pay_installment(admin_actor, payment.pk, Decimal("1000"))

        transfer_receivables_to_ledger(admin_actor, [payment.pk])

        assert AdminBalance.current_balance() == Decimal("1000000.00")


@pytest.mark.django_db
class TestDeleteDeferredPayment:

    def test_delete_untransferred_removes_installments(self, admin_actor, payment):
        pay_installment(admin_actor, payment.pk, Decimal("1000"))

        result = delete_deferred_payment(admin_actor, payment.pk)

        assert result.success
        assert not DeferredPayment.objects.exists()
        assert not DeferredPaymentInstallment.objects.exists()

    def test_cannot_delete_after_transfer(self, admin_actor, payment):
        pay_installment(admin_actor, payment.pk, Decimal("1000"))
        transfer_receivables_to_ledger(admin_actor, [payment.pk])

        result = delete_deferred_payment(admin_actor, payment.pk)

        assert not result.success
        assert DeferredPayment.objects.filter(pk=payment.pk).exists()
        assert LedgerEntry.objects.count() == 1

    def test_unknown_payment_is_not_found(self, admin_actor):
        assert delete_deferred_payment(admin_actor, 5150).code == ErrorCode.NOT_FOUND
