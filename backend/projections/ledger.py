# projections/ledger.py
"""
Read-side queries over the ledger.

Everything here is computed on read from the write models; nothing is
cached, so results reflect the last committed command.

- ledger_summary(): classified vs general_expense buckets and grandTotal
- beneficiary_ledger(): a beneficiary's transferred installments with a
  running balance folded in date order
- dashboard(): totals for the landing page
"""

from decimal import Decimal
from typing import Any, Dict

from django.db.models import Count, Q, Sum

from ledger.models import (
    AdminBalance,
    LedgerEntry,
    Project,
    Transaction,
)


ZERO = Decimal("0.00")

RECENT_TRANSACTIONS = 5


def _bucket(entries: list) -> Dict[str, Any]:
    return {
        "total": sum((e.amount for e in entries), ZERO),
        "count": len(entries),
        "entries": entries,
    }


def ledger_summary() -> Dict[str, Any]:
    """
    Expense ledger summary.

    Deferred entries (transferred installments) are reported inside the
    general_expense bucket, so

        grandTotal == classified.total + general_expense.total
                   == sum(expense transactions) + sum(transferred installments)

    transferred_installments repeats the deferred share for display.
    """
    entries = list(
        LedgerEntry.objects.select_related("expense_type", "project").order_by("date", "id")
    )
    classified = [e for e in entries if e.entry_type == LedgerEntry.EntryType.CLASSIFIED]
    general = [e for e in entries if e.entry_type != LedgerEntry.EntryType.CLASSIFIED]
    deferred = [e for e in general if e.entry_type == LedgerEntry.EntryType.DEFERRED]

    classified_bucket = _bucket(classified)
    general_bucket = _bucket(general)
    return {
        "classified": classified_bucket,
        "general_expense": general_bucket,
        "grandTotal": classified_bucket["total"] + general_bucket["total"],
        "transferred_installments": {
            "total": sum((e.amount for e in deferred), ZERO),
            "count": len(deferred),
        },
    }


def beneficiary_ledger(beneficiary_name: str) -> Dict[str, Any]:
    """
    Ledger of one beneficiary's transferred installments.

    The running balance is recomputed on every read by folding amounts in
    (date, id) order.
    """
    entries = (
        LedgerEntry.objects.filter(
            entry_type=LedgerEntry.EntryType.DEFERRED,
            installment__deferred_payment__beneficiary_name=beneficiary_name,
        )
        .select_related("project", "installment")
        .order_by("date", "id")
    )

    rows = []
    running = ZERO
    for entry in entries:
        running += entry.amount
        rows.append({"entry": entry, "running_balance": running})

    return {
        "beneficiary_name": beneficiary_name,
        "total": running,
        "count": len(rows),
        "rows": rows,
    }


def dashboard() -> Dict[str, Any]:
    totals = Transaction.objects.aggregate(
        total_income=Sum("amount", filter=Q(type=Transaction.Type.INCOME)),
        total_expenses=Sum("amount", filter=Q(type=Transaction.Type.EXPENSE)),
    )
    total_income = totals["total_income"] or ZERO
    total_expenses = totals["total_expenses"] or ZERO

    projects = Project.objects.aggregate(
        active=Count("id", filter=Q(status=Project.Status.ACTIVE)),
        total=Count("id"),
    )

    recent = list(
        Transaction.objects.select_related("project", "created_by")
        .order_by("-date", "-created_at")[:RECENT_TRANSACTIONS]
    )

    return {
        "total_income": total_income,
        "total_expenses": total_expenses,
        "net_profit": total_income - total_expenses,
        "admin_balance": AdminBalance.current_balance(),
        "active_projects": projects["active"],
        "total_projects": projects["total"],
        "recent_transactions": recent,
    }
