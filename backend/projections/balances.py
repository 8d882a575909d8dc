# projections/balances.py
"""
Balance projection.

Replays admin_funds.deposited, transaction.created and transaction.deleted
to compute what the admin pool and every project balance should be, then:

- verify_all_balances(): reports rows whose cached values diverge
- rebuild(): writes the replayed values back into the cached rows

Each transaction event carries the exact admin_delta/project_delta the
command applied, so the replay does not re-derive business rules.
"""

from decimal import Decimal
from typing import Any, Dict, List
import logging

from django.db import transaction
from django.db.models import Q, Sum

from events.models import BusinessEvent
from events.types import EventTypes
from ledger.models import AdminBalance, Project, Transaction
from projections.base import BaseProjection, projection_registry
from projections.write_barrier import projection_writes_allowed


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _empty_project() -> Dict[str, Decimal]:
    return {"balance": ZERO, "total_income": ZERO, "total_expenses": ZERO}


class BalanceProjection(BaseProjection):
    """Cached admin pool and project balances, derived from the event stream."""

    @property
    def name(self) -> str:
        return "balances"

    @property
    def consumes(self) -> List[str]:
        return list(EventTypes.BALANCE_EVENTS)

    def initial_state(self) -> Dict[str, Any]:
        return {"admin_delta": ZERO, "projects": {}}

    def handle(self, state: Dict[str, Any], event: BusinessEvent) -> None:
        data = event.data

        if event.event_type == EventTypes.ADMIN_FUNDS_DEPOSITED:
            state["admin_delta"] += Decimal(data["amount"])
            return

        state["admin_delta"] += Decimal(data["admin_delta"])

        project_id = data.get("project_public_id")
        if not project_id:
            return

        amount = Decimal(data["amount"])
        sign = 1 if event.event_type == EventTypes.TRANSACTION_CREATED else -1
        project = state["projects"].setdefault(project_id, _empty_project())
        project["balance"] += Decimal(data["project_delta"])
        if data["type"] == Transaction.Type.INCOME:
            project["total_income"] += sign * amount
        else:
            project["total_expenses"] += sign * amount

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_all_balances(self) -> Dict[str, Any]:
        """
        Verify all cached balances by replaying events.

        Also checks every project's balance against the sum of its current
        transactions (income - expense).

        Returns:
            {
                "total": 4,
                "verified": 4,
                "mismatches": [],
                "events_processed": 12,
            }
        """
        state, processed = self.replay()
        mismatches = []
        total = 0

        pool = AdminBalance.objects.filter(pk=AdminBalance.SINGLETON_ID).first()
        if pool is not None:
            total += 1
            expected = pool.opening_balance + state["admin_delta"]
            if pool.balance != expected:
                mismatches.append({
                    "kind": "admin_balance",
                    "field": "balance",
                    "expected": str(expected),
                    "actual": str(pool.balance),
                })
        elif state["admin_delta"] != ZERO:
            mismatches.append({
                "kind": "admin_balance",
                "field": "balance",
                "expected": f"opening + {state['admin_delta']}",
                "actual": None,
            })

        sums = Project.objects.annotate(
            income_sum=Sum("transactions__amount", filter=Q(transactions__type=Transaction.Type.INCOME)),
            expense_sum=Sum("transactions__amount", filter=Q(transactions__type=Transaction.Type.EXPENSE)),
        )
        for project in sums:
            total += 1
            expected = state["projects"].get(str(project.public_id), _empty_project())
            expected = {**expected, "net_profit": expected["total_income"] - expected["total_expenses"]}
            for field, value in expected.items():
                actual = getattr(project, field)
                if actual != value:
                    mismatches.append({
                        "kind": "project",
                        "project_id": project.pk,
                        "project": project.name,
                        "field": field,
                        "expected": str(value),
                        "actual": str(actual),
                    })

            from_transactions = (project.income_sum or ZERO) - (project.expense_sum or ZERO)
            if project.balance != from_transactions:
                mismatches.append({
                    "kind": "project_transactions",
                    "project_id": project.pk,
                    "project": project.name,
                    "field": "balance",
                    "expected": str(from_transactions),
                    "actual": str(project.balance),
                })

        failed = {
            "admin" if m["kind"] == "admin_balance" else m["project_id"]
            for m in mismatches
        }
        result = {
            "total": total,
            "verified": max(0, total - len(failed)),
            "mismatches": mismatches,
            "events_processed": processed,
        }
        if mismatches:
            logger.warning("Balance verification found mismatches", extra={"mismatches": len(mismatches)})
        return result

    # ------------------------------------------------------------------
    # Rebuild
    # ------------------------------------------------------------------

    @transaction.atomic
    def rebuild(self) -> Dict[str, Any]:
        """
        Overwrite cached balances with the replayed values.

        Returns:
            {"updated": n, "events_processed": m}
        """
        state, processed = self.replay()
        updated = 0

        with projection_writes_allowed():
            pool = AdminBalance.locked()
            expected = pool.opening_balance + state["admin_delta"]
            if pool.balance != expected:
                pool.balance = expected
                pool.save(update_fields=["balance", "updated_at"])
                updated += 1

            for project in Project.objects.select_for_update():
                values = state["projects"].get(str(project.public_id), _empty_project())
                values = {**values, "net_profit": values["total_income"] - values["total_expenses"]}
                changed = [f for f, v in values.items() if getattr(project, f) != v]
                if not changed:
                    continue
                for field in changed:
                    setattr(project, field, values[field])
                project.save(update_fields=[*changed, "updated_at"])
                updated += 1

        logger.info(
            "Balances rebuilt from events",
            extra={"updated": updated, "events_processed": processed},
        )
        return {"updated": updated, "events_processed": processed}


projection_registry.register(BalanceProjection())
