# ledger/commands.py
"""
Command layer for ledger operations.

Commands are the single point where money moves.
Views call commands; commands enforce rules and emit events.

Pattern:
1. Validate permissions (require)
2. Lock the rows involved (select_for_update)
3. Apply business policies (can_*)
4. Mutate the write models under command_writes_allowed()
5. Emit event (emit_event)
6. Return CommandResult

Every command runs in one database transaction: a policy failure returns
before any mutation, and an exception after a mutation rolls everything
back. ALL balance changes MUST go through these commands.
"""

import logging
import uuid
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_date

from accounts.authz import ActorContext, require
from events.emitter import emit_event
from events.types import (
    EventTypes,
    AdminFundsDepositedData,
    ProjectCreatedData,
    ProjectUpdatedData,
    ProjectDeletedData,
    TransactionCreatedData,
    TransactionDeletedData,
    ExpenseTypeCreatedData,
    ExpenseTypeUpdatedData,
    LedgerEntryPostedData,
    LedgerReclassifiedData,
    DeferredPaymentCreatedData,
    InstallmentPaidData,
    DeferredPaymentDeletedData,
    InstallmentTransferredData,
)
from ledger.errors import CommandResult, ErrorCode, store_guard
from ledger.models import (
    AdminBalance,
    Project,
    Transaction,
    ExpenseType,
    LedgerEntry,
    DeferredPayment,
    DeferredPaymentInstallment,
)
from ledger.policies import (
    is_positive_amount,
    can_fund_income,
    can_spend_from_pool,
    can_spend_from_project,
    can_reverse_income,
    assert_can_delete_transaction,
    can_delete_project,
    can_pay_installment,
    can_delete_deferred_payment,
)
from projections.write_barrier import command_writes_allowed


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("9999999999999.99")


def _to_amount(value) -> Optional[Decimal]:
    """Parse a money amount; None when it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _invalid_amount(value) -> Optional[CommandResult]:
    amount = _to_amount(value)
    if amount is None:
        return CommandResult.fail("Amount must be a number.", code=ErrorCode.INVALID_AMOUNT)
    allowed, reason = is_positive_amount(amount)
    if not allowed:
        return CommandResult.fail(reason, code=ErrorCode.INVALID_AMOUNT)
    if amount > MAX_AMOUNT:
        return CommandResult.fail(f"Amount must not exceed {MAX_AMOUNT}.", code=ErrorCode.INVALID_AMOUNT)
    return None


def _to_date(value):
    """Parse an ISO date string; None when malformed or impossible."""
    if isinstance(value, str):
        try:
            return parse_date(value)
        except ValueError:
            return None
    return value


def _key(prefix: str, *parts) -> str:
    return ":".join([prefix, *(str(p) for p in parts)])


def _lock_project(project_id) -> Optional[Project]:
    """Lock a project by pk or public_id."""
    qs = Project.objects.select_for_update()
    try:
        if isinstance(project_id, uuid.UUID):
            return qs.get(public_id=project_id)
        return qs.get(pk=int(project_id))
    except (Project.DoesNotExist, ValueError, TypeError):
        return None


def _changes(instance, updates: dict) -> dict:
    changes = {}
    for field, new in updates.items():
        if new is None:
            continue
        old = getattr(instance, field)
        if old != new:
            changes[field] = {"old": old, "new": new}
    return changes


# =============================================================================
# Admin Pool Commands
# =============================================================================

@store_guard
@transaction.atomic
def deposit_admin_funds(actor: ActorContext, amount, description: str = "") -> CommandResult:
    """
    Add external income to the admin pool.

    Returns:
        CommandResult with the AdminBalance row
    """
    require(actor, "funds.manage")

    failure = _invalid_amount(amount)
    if failure:
        return failure
    amount = _to_amount(amount)

    pool = AdminBalance.locked()
    with command_writes_allowed():
        pool.balance += amount
        pool.save(update_fields=["balance", "updated_at"])

    deposit_id = uuid.uuid4()
    event = emit_event(
        actor,
        EventTypes.ADMIN_FUNDS_DEPOSITED,
        aggregate_type="AdminBalance",
        aggregate_id=AdminBalance.SINGLETON_ID,
        data=AdminFundsDepositedData(
            deposit_public_id=str(deposit_id),
            amount=str(amount),
            balance_after=str(pool.balance),
            description=description or "",
        ),
        idempotency_key=_key("admin_funds.deposited", deposit_id),
    )

    logger.info(
        "Admin funds deposited",
        extra={"amount": str(amount), "balance_after": str(pool.balance), "user_id": actor.user.id},
    )
    return CommandResult.ok(pool, event=event)


# =============================================================================
# Project Commands
# =============================================================================

@store_guard
@transaction.atomic
def create_project(
    actor: ActorContext,
    name: str,
    description: str = "",
    status: str = Project.Status.ACTIVE,
) -> CommandResult:
    """Create a project with a zero balance."""
    require(actor, "projects.manage")

    name = (name or "").strip()
    if not name:
        return CommandResult.fail("Project name is required.")
    if status not in Project.Status.values:
        return CommandResult.fail(f"Invalid project status '{status}'.")
    if Project.objects.filter(name=name).exists():
        return CommandResult.fail(f"Project '{name}' already exists.", code=ErrorCode.DUPLICATE_NAME)

    with command_writes_allowed():
        project = Project.objects.create(
            name=name,
            description=description or "",
            status=status,
            created_by=actor.user,
        )

    event = emit_event(
        actor,
        EventTypes.PROJECT_CREATED,
        aggregate_type="Project",
        aggregate_id=project.public_id,
        data=ProjectCreatedData(
            project_public_id=str(project.public_id),
            name=project.name,
            status=project.status,
            description=project.description,
        ),
        idempotency_key=_key("project.created", project.public_id),
    )
    return CommandResult.ok(project, event=event)


@store_guard
@transaction.atomic
def update_project(
    actor: ActorContext,
    project_id,
    name: str = None,
    description: str = None,
    status: str = None,
) -> CommandResult:
    """Rename, describe or change the status of a project. Balances are untouched."""
    require(actor, "projects.manage")

    project = _lock_project(project_id)
    if project is None:
        return CommandResult.fail("Project not found.", code=ErrorCode.NOT_FOUND)

    if name is not None:
        name = name.strip()
        if not name:
            return CommandResult.fail("Project name is required.")
        if Project.objects.filter(name=name).exclude(pk=project.pk).exists():
            return CommandResult.fail(f"Project '{name}' already exists.", code=ErrorCode.DUPLICATE_NAME)
    if status is not None and status not in Project.Status.values:
        return CommandResult.fail(f"Invalid project status '{status}'.")

    changes = _changes(project, {"name": name, "description": description, "status": status})
    if not changes:
        return CommandResult.ok(project)

    with command_writes_allowed():
        for field, change in changes.items():
            setattr(project, field, change["new"])
        project.save(update_fields=[*changes.keys(), "updated_at"])

    event = emit_event(
        actor,
        EventTypes.PROJECT_UPDATED,
        aggregate_type="Project",
        aggregate_id=project.public_id,
        data=ProjectUpdatedData(
            project_public_id=str(project.public_id),
            changes=changes,
        ),
        idempotency_key=_key("project.updated", project.public_id, uuid.uuid4()),
    )
    return CommandResult.ok(project, event=event)


@store_guard
@transaction.atomic
def delete_project(actor: ActorContext, project_id) -> CommandResult:
    """Delete a project that no transaction or deferred payment references."""
    require(actor, "projects.manage")

    project = _lock_project(project_id)
    if project is None:
        return CommandResult.fail("Project not found.", code=ErrorCode.NOT_FOUND)

    allowed, reason = can_delete_project(project)
    if not allowed:
        return CommandResult.fail(reason)

    public_id, name = project.public_id, project.name
    with command_writes_allowed():
        project.delete()

    event = emit_event(
        actor,
        EventTypes.PROJECT_DELETED,
        aggregate_type="Project",
        aggregate_id=public_id,
        data=ProjectDeletedData(project_public_id=str(public_id), name=name),
        idempotency_key=_key("project.deleted", public_id),
    )
    return CommandResult.ok({"project_public_id": str(public_id)}, event=event)


# =============================================================================
# Expense Type Commands
# =============================================================================

@store_guard
@transaction.atomic
def create_expense_type(actor: ActorContext, name: str, description: str = "") -> CommandResult:
    require(actor, "ledger.manage")

    name = (name or "").strip()
    if not name:
        return CommandResult.fail("Expense type name is required.")
    if ExpenseType.objects.filter(name=name).exists():
        return CommandResult.fail(f"Expense type '{name}' already exists.", code=ErrorCode.DUPLICATE_NAME)

    with command_writes_allowed():
        expense_type = ExpenseType.objects.create(name=name, description=description or "")

    event = emit_event(
        actor,
        EventTypes.EXPENSE_TYPE_CREATED,
        aggregate_type="ExpenseType",
        aggregate_id=expense_type.public_id,
        data=ExpenseTypeCreatedData(
            expense_type_public_id=str(expense_type.public_id),
            name=expense_type.name,
            description=expense_type.description,
        ),
        idempotency_key=_key("expense_type.created", expense_type.public_id),
    )
    return CommandResult.ok(expense_type, event=event)


@store_guard
@transaction.atomic
def update_expense_type(
    actor: ActorContext,
    expense_type_id: int,
    name: str = None,
    description: str = None,
    is_active: bool = None,
) -> CommandResult:
    """
    Rename, describe or (de)activate an expense type.

    Ledger entries keep pointing at the type; run reclassify_all afterwards
    to re-evaluate transactions against the new definitions.
    """
    require(actor, "ledger.manage")

    try:
        expense_type = ExpenseType.objects.select_for_update().get(pk=expense_type_id)
    except ExpenseType.DoesNotExist:
        return CommandResult.fail("Expense type not found.", code=ErrorCode.NOT_FOUND)

    if name is not None:
        name = name.strip()
        if not name:
            return CommandResult.fail("Expense type name is required.")
        if ExpenseType.objects.filter(name=name).exclude(pk=expense_type.pk).exists():
            return CommandResult.fail(f"Expense type '{name}' already exists.", code=ErrorCode.DUPLICATE_NAME)

    changes = _changes(
        expense_type,
        {"name": name, "description": description, "is_active": is_active},
    )
    if not changes:
        return CommandResult.ok(expense_type)

    with command_writes_allowed():
        for field, change in changes.items():
            setattr(expense_type, field, change["new"])
        expense_type.save(update_fields=[*changes.keys(), "updated_at"])

    event = emit_event(
        actor,
        EventTypes.EXPENSE_TYPE_UPDATED,
        aggregate_type="ExpenseType",
        aggregate_id=expense_type.public_id,
        data=ExpenseTypeUpdatedData(
            expense_type_public_id=str(expense_type.public_id),
            changes=changes,
        ),
        idempotency_key=_key("expense_type.updated", expense_type.public_id, uuid.uuid4()),
    )
    return CommandResult.ok(expense_type, event=event)


# =============================================================================
# Classification
# =============================================================================

def _resolve_classification(txn: Transaction, current: Optional[LedgerEntry], active_types: dict = None):
    """
    Decide (entry_type, expense_type) for an expense transaction.

    Order: active type matching the transaction's expense type name, then
    the entry's current type while it is still active (keeps renamed
    types), then general_expense.
    """
    name = (txn.expense_type or "").strip()
    if name:
        if active_types is not None:
            match = active_types.get(name)
        else:
            match = ExpenseType.objects.filter(name=name, is_active=True).first()
        if match is not None:
            return LedgerEntry.EntryType.CLASSIFIED, match

    if current is not None and current.expense_type_id is not None:
        if current.expense_type.is_active:
            return LedgerEntry.EntryType.CLASSIFIED, current.expense_type

    return LedgerEntry.EntryType.GENERAL_EXPENSE, None


def classify_transaction(txn: Transaction) -> LedgerEntry:
    """
    Upsert the ledger entry of an expense transaction.

    Keyed by transaction: calling it again updates entry_type/expense_type
    of the existing entry and never creates a second one. project, amount
    and date of an existing entry are left unchanged. Must run inside the
    caller's atomic block.
    """
    if txn.type != Transaction.Type.EXPENSE:
        raise ValueError("Only expense transactions are posted to the ledger.")

    entry = (
        LedgerEntry.objects.select_for_update(of=("self",))
        .select_related("expense_type")
        .filter(transaction=txn)
        .first()
    )
    entry_type, expense_type = _resolve_classification(txn, entry)

    with command_writes_allowed():
        if entry is None:
            return LedgerEntry.objects.create(
                date=txn.date,
                transaction=txn,
                expense_type=expense_type,
                amount=txn.amount,
                description=txn.description,
                project=txn.project,
                entry_type=entry_type,
            )

        if entry.entry_type != entry_type or entry.expense_type_id != getattr(expense_type, "id", None):
            entry.entry_type = entry_type
            entry.expense_type = expense_type
            entry.save(update_fields=["entry_type", "expense_type", "updated_at"])
    return entry


@store_guard
@transaction.atomic
def reclassify_all(actor: ActorContext) -> CommandResult:
    """
    Re-evaluate every expense transaction against the current expense types.

    Stale entries get their entry_type/expense_type replaced; missing entries
    are created. Runs as one atomic batch.

    Returns:
        CommandResult with {"reclassified": n, "created": m, "checked": k}
    """
    require(actor, "ledger.manage")

    active_types = {et.name: et for et in ExpenseType.objects.filter(is_active=True)}
    entries = {
        entry.transaction_id: entry
        for entry in LedgerEntry.objects.select_for_update(of=("self",))
        .select_related("expense_type")
        .filter(transaction__isnull=False)
    }

    changed = []
    created = 0
    checked = 0
    expenses = Transaction.objects.filter(type=Transaction.Type.EXPENSE).select_related("project")

    with command_writes_allowed():
        for txn in expenses.iterator():
            checked += 1
            entry = entries.get(txn.id)

            entry_type, expense_type = _resolve_classification(txn, entry, active_types)

            if entry is None:
                LedgerEntry.objects.create(
                    date=txn.date,
                    transaction=txn,
                    expense_type=expense_type,
                    amount=txn.amount,
                    description=txn.description,
                    project=txn.project,
                    entry_type=entry_type,
                )
                created += 1
                continue

            new_type_id = expense_type.id if expense_type else None
            if entry.entry_type == entry_type and entry.expense_type_id == new_type_id:
                continue

            changed.append({
                "entry_public_id": str(entry.public_id),
                "old_entry_type": entry.entry_type,
                "new_entry_type": entry_type,
                "old_expense_type_public_id": (
                    str(entry.expense_type.public_id) if entry.expense_type_id else None
                ),
                "new_expense_type_public_id": str(expense_type.public_id) if expense_type else None,
            })
            entry.entry_type = entry_type
            entry.expense_type = expense_type
            entry.save(update_fields=["entry_type", "expense_type", "updated_at"])

    summary = {"reclassified": len(changed), "created": created, "checked": checked}

    event = None
    if changed or created:
        batch_id = uuid.uuid4()
        event = emit_event(
            actor,
            EventTypes.LEDGER_RECLASSIFIED,
            aggregate_type="Ledger",
            aggregate_id="expense-ledger",
            data=LedgerReclassifiedData(
                batch_public_id=str(batch_id),
                reclassified=len(changed),
                created=created,
                entries=changed,
            ),
            idempotency_key=_key("ledger.reclassified", batch_id),
        )

    logger.info("Ledger reclassified", extra=summary)
    return CommandResult.ok(summary, event=event)


# =============================================================================
# Transaction Commands (Balance Accessor)
# =============================================================================

@store_guard
@transaction.atomic
def apply_transaction(
    actor: ActorContext,
    date,
    description: str,
    type: str,
    amount,
    project_id=None,
    expense_type: str = "",
) -> CommandResult:
    """
    Validate and apply an income or expense transaction.

    - income:  admin pool -amount, project +amount (INSUFFICIENT_FUNDS)
    - expense with project: project -amount (INSUFFICIENT_PROJECT_BALANCE)
    - expense without project: admin pool -amount (INSUFFICIENT_FUNDS)

    Expenses are classified into the ledger in the same transaction.

    Returns:
        CommandResult with {"transaction", "admin_balance", "project"}
    """
    require(actor, "transactions.create")

    if type not in Transaction.Type.values:
        return CommandResult.fail(f"Invalid transaction type '{type}'.")
    failure = _invalid_amount(amount)
    if failure:
        return failure
    amount = _to_amount(amount)
    if not (description or "").strip():
        return CommandResult.fail("Description is required.")
    date = _to_date(date)
    if date is None:
        return CommandResult.fail("A valid date is required.")

    # Lock order: admin pool, then project.
    pool = AdminBalance.locked()

    project = None
    if project_id not in (None, ""):
        project = _lock_project(project_id)
        if project is None:
            return CommandResult.fail("Project not found.", code=ErrorCode.NOT_FOUND)
    elif type == Transaction.Type.INCOME:
        return CommandResult.fail("Income transactions require a project.")

    admin_delta = ZERO
    project_delta = ZERO
    if type == Transaction.Type.INCOME:
        allowed, reason = can_fund_income(pool, amount)
        if not allowed:
            return CommandResult.fail(reason, code=ErrorCode.INSUFFICIENT_FUNDS)
        admin_delta, project_delta = -amount, amount
    elif project is not None:
        allowed, reason = can_spend_from_project(project, amount)
        if not allowed:
            return CommandResult.fail(reason, code=ErrorCode.INSUFFICIENT_PROJECT_BALANCE)
        project_delta = -amount
    else:
        allowed, reason = can_spend_from_pool(pool, amount)
        if not allowed:
            return CommandResult.fail(reason, code=ErrorCode.INSUFFICIENT_FUNDS)
        admin_delta = -amount

    with command_writes_allowed():
        if admin_delta:
            pool.balance += admin_delta
            pool.save(update_fields=["balance", "updated_at"])
        if project is not None:
            if type == Transaction.Type.INCOME:
                project.apply_delta(income=amount)
            else:
                project.apply_delta(expense=amount)
            project.save(update_fields=[
                "balance", "total_income", "total_expenses", "net_profit", "updated_at",
            ])

        txn = Transaction.objects.create(
            date=date,
            description=description.strip(),
            type=type,
            amount=amount,
            project=project,
            expense_type=(expense_type or "").strip(),
            created_by=actor.user,
        )

    event = emit_event(
        actor,
        EventTypes.TRANSACTION_CREATED,
        aggregate_type="Transaction",
        aggregate_id=txn.public_id,
        data=TransactionCreatedData(
            transaction_public_id=str(txn.public_id),
            date=str(txn.date),
            type=txn.type,
            amount=str(amount),
            description=txn.description,
            admin_delta=str(admin_delta),
            project_delta=str(project_delta),
            project_public_id=str(project.public_id) if project else None,
            expense_type=txn.expense_type,
        ),
        idempotency_key=_key("transaction.created", txn.public_id),
    )

    if txn.type == Transaction.Type.EXPENSE:
        entry = classify_transaction(txn)
        emit_event(
            actor,
            EventTypes.LEDGER_ENTRY_POSTED,
            aggregate_type="LedgerEntry",
            aggregate_id=entry.public_id,
            data=LedgerEntryPostedData(
                entry_public_id=str(entry.public_id),
                source="transaction",
                source_public_id=str(txn.public_id),
                entry_type=entry.entry_type,
                amount=str(entry.amount),
                date=str(entry.date),
                expense_type_public_id=(
                    str(entry.expense_type.public_id) if entry.expense_type_id else None
                ),
                project_public_id=str(project.public_id) if project else None,
            ),
            idempotency_key=_key("ledger_entry.posted", entry.public_id),
        )

    logger.info(
        "Transaction applied",
        extra={
            "transaction_id": str(txn.public_id),
            "type": txn.type,
            "amount": str(amount),
            "project_id": project.pk if project else None,
            "user_id": actor.user.id,
        },
    )
    return CommandResult.ok(
        {"transaction": txn, "admin_balance": pool.balance, "project": project},
        event=event,
    )


@store_guard
@transaction.atomic
def delete_transaction(actor: ActorContext, transaction_id: int) -> CommandResult:
    """
    Delete a transaction after reversing its balance effect exactly.

    The ledger entry is removed first, then the transaction row. Deleting
    an income the project has already spent fails with
    INSUFFICIENT_PROJECT_BALANCE.
    """
    require(actor, "transactions.delete")

    pool = AdminBalance.locked()
    try:
        txn = Transaction.objects.select_for_update().get(pk=transaction_id)
    except (Transaction.DoesNotExist, ValueError, TypeError):
        return CommandResult.fail("Transaction not found.", code=ErrorCode.NOT_FOUND)

    assert_can_delete_transaction(actor, txn)

    project = _lock_project(txn.project_id) if txn.project_id else None
    amount = txn.amount

    admin_delta = ZERO
    project_delta = ZERO
    if txn.type == Transaction.Type.INCOME:
        allowed, reason = can_reverse_income(project, amount)
        if not allowed:
            return CommandResult.fail(reason, code=ErrorCode.INSUFFICIENT_PROJECT_BALANCE)
        admin_delta, project_delta = amount, -amount
    elif project is not None:
        project_delta = amount
    else:
        admin_delta = amount

    entry = LedgerEntry.objects.filter(transaction=txn).first()
    entry_public_id = str(entry.public_id) if entry else None
    txn_public_id = txn.public_id

    with command_writes_allowed():
        if admin_delta:
            pool.balance += admin_delta
            pool.save(update_fields=["balance", "updated_at"])
        if project is not None:
            if txn.type == Transaction.Type.INCOME:
                project.apply_delta(income=-amount)
            else:
                project.apply_delta(expense=-amount)
            project.save(update_fields=[
                "balance", "total_income", "total_expenses", "net_profit", "updated_at",
            ])
        if entry is not None:
            entry.delete()
        txn.delete()

    event = emit_event(
        actor,
        EventTypes.TRANSACTION_DELETED,
        aggregate_type="Transaction",
        aggregate_id=txn_public_id,
        data=TransactionDeletedData(
            transaction_public_id=str(txn_public_id),
            type=txn.type,
            amount=str(amount),
            admin_delta=str(admin_delta),
            project_delta=str(project_delta),
            project_public_id=str(project.public_id) if project else None,
            ledger_entry_public_id=entry_public_id,
        ),
        idempotency_key=_key("transaction.deleted", txn_public_id),
    )

    logger.info(
        "Transaction deleted",
        extra={"transaction_id": str(txn_public_id), "type": txn.type, "amount": str(amount)},
    )
    return CommandResult.ok(
        {"transaction_public_id": str(txn_public_id), "admin_balance": pool.balance, "project": project},
        event=event,
    )


# =============================================================================
# Deferred Payment Commands
# =============================================================================

@store_guard
@transaction.atomic
def create_deferred_payment(
    actor: ActorContext,
    beneficiary_name: str,
    total_amount,
    project_id=None,
    due_date=None,
    description: str = "",
) -> CommandResult:
    """Register an amount owed to a beneficiary: paid=0, remaining=total, pending."""
    require(actor, "deferred.manage")

    beneficiary_name = (beneficiary_name or "").strip()
    if not beneficiary_name:
        return CommandResult.fail("Beneficiary name is required.")
    failure = _invalid_amount(total_amount)
    if failure:
        return failure
    total_amount = _to_amount(total_amount)
    due_date = _to_date(due_date) if due_date else None

    project = None
    if project_id not in (None, ""):
        project = _lock_project(project_id)
        if project is None:
            return CommandResult.fail("Project not found.", code=ErrorCode.NOT_FOUND)

    with command_writes_allowed():
        payment = DeferredPayment.objects.create(
            beneficiary_name=beneficiary_name,
            total_amount=total_amount,
            paid_amount=ZERO,
            remaining_amount=total_amount,
            status=DeferredPayment.Status.PENDING,
            project=project,
            due_date=due_date,
            description=description or "",
            created_by=actor.user,
        )

    event = emit_event(
        actor,
        EventTypes.DEFERRED_PAYMENT_CREATED,
        aggregate_type="DeferredPayment",
        aggregate_id=payment.public_id,
        data=DeferredPaymentCreatedData(
            deferred_payment_public_id=str(payment.public_id),
            beneficiary_name=beneficiary_name,
            total_amount=str(total_amount),
            project_public_id=str(project.public_id) if project else None,
            due_date=str(due_date) if due_date else None,
            description=payment.description,
        ),
        idempotency_key=_key("deferred_payment.created", payment.public_id),
    )
    return CommandResult.ok(payment, event=event)


@store_guard
@transaction.atomic
def pay_installment(actor: ActorContext, deferred_payment_id: int, amount) -> CommandResult:
    """
    Record an installment against a deferred payment.

    Does not touch balances or the ledger; the installment waits in the
    untransferred state until transfer_installment_to_ledger posts it.

    Returns:
        CommandResult with the updated DeferredPayment
    """
    require(actor, "deferred.manage")

    try:
        payment = DeferredPayment.objects.select_for_update().get(pk=deferred_payment_id)
    except (DeferredPayment.DoesNotExist, ValueError, TypeError):
        return CommandResult.fail("Deferred payment not found.", code=ErrorCode.NOT_FOUND)

    parsed = _to_amount(amount)
    if parsed is None:
        return CommandResult.fail("Amount must be a number.", code=ErrorCode.INVALID_AMOUNT)
    allowed, reason = can_pay_installment(payment, parsed)
    if not allowed:
        return CommandResult.fail(reason, code=ErrorCode.INVALID_AMOUNT)
    amount = parsed

    paid_at = timezone.now()
    with command_writes_allowed():
        payment.paid_amount += amount
        payment.remaining_amount -= amount
        payment.status = (
            DeferredPayment.Status.COMPLETED
            if payment.remaining_amount == 0
            else DeferredPayment.Status.PENDING
        )
        payment.save(update_fields=["paid_amount", "remaining_amount", "status", "updated_at"])

        installment = DeferredPaymentInstallment.objects.create(
            deferred_payment=payment,
            amount=amount,
            paid_at=paid_at,
        )

    event = emit_event(
        actor,
        EventTypes.DEFERRED_PAYMENT_INSTALLMENT_PAID,
        aggregate_type="DeferredPayment",
        aggregate_id=payment.public_id,
        data=InstallmentPaidData(
            deferred_payment_public_id=str(payment.public_id),
            installment_public_id=str(installment.public_id),
            amount=str(amount),
            paid_amount=str(payment.paid_amount),
            remaining_amount=str(payment.remaining_amount),
            status=payment.status,
            paid_at=paid_at.isoformat(),
        ),
        idempotency_key=_key("deferred_payment.installment_paid", installment.public_id),
    )

    logger.info(
        "Installment paid",
        extra={
            "deferred_payment_id": payment.pk,
            "amount": str(amount),
            "remaining_amount": str(payment.remaining_amount),
        },
    )
    return CommandResult.ok(payment, event=event)


@store_guard
@transaction.atomic
def delete_deferred_payment(actor: ActorContext, deferred_payment_id: int) -> CommandResult:
    """Delete a deferred payment (and its installments) when nothing was transferred."""
    require(actor, "deferred.manage")

    try:
        payment = DeferredPayment.objects.select_for_update().get(pk=deferred_payment_id)
    except (DeferredPayment.DoesNotExist, ValueError, TypeError):
        return CommandResult.fail("Deferred payment not found.", code=ErrorCode.NOT_FOUND)

    allowed, reason = can_delete_deferred_payment(payment)
    if not allowed:
        return CommandResult.fail(reason)

    data = DeferredPaymentDeletedData(
        deferred_payment_public_id=str(payment.public_id),
        beneficiary_name=payment.beneficiary_name,
        total_amount=str(payment.total_amount),
        paid_amount=str(payment.paid_amount),
    )
    public_id = payment.public_id
    with command_writes_allowed():
        payment.delete()

    event = emit_event(
        actor,
        EventTypes.DEFERRED_PAYMENT_DELETED,
        aggregate_type="DeferredPayment",
        aggregate_id=public_id,
        data=data,
        idempotency_key=_key("deferred_payment.deleted", public_id),
    )
    return CommandResult.ok({"deferred_payment_public_id": str(public_id)}, event=event)


# =============================================================================
# Transfer Coordinator
# =============================================================================

def _transfer_locked(actor: ActorContext, installment: DeferredPaymentInstallment) -> Optional[LedgerEntry]:
    """Post one locked installment; None when it was already transferred."""
    if installment.is_transferred:
        return None

    payment = installment.deferred_payment
    transferred_at = timezone.now()
    description = f"دفعة آجلة - {payment.beneficiary_name}"
    if payment.description:
        description = f"{description}: {payment.description}"

    with command_writes_allowed():
        entry = LedgerEntry.objects.create(
            date=timezone.localdate(installment.paid_at),
            installment=installment,
            amount=installment.amount,
            description=description,
            project=payment.project,
            entry_type=LedgerEntry.EntryType.DEFERRED,
        )
        installment.transferred_at = transferred_at
        installment.save(update_fields=["transferred_at"])

    emit_event(
        actor,
        EventTypes.INSTALLMENT_TRANSFERRED,
        aggregate_type="DeferredPayment",
        aggregate_id=payment.public_id,
        data=InstallmentTransferredData(
            installment_public_id=str(installment.public_id),
            deferred_payment_public_id=str(payment.public_id),
            entry_public_id=str(entry.public_id),
            beneficiary_name=payment.beneficiary_name,
            amount=str(installment.amount),
            transferred_at=transferred_at.isoformat(),
        ),
        idempotency_key=_key("installment.transferred", installment.public_id),
    )
    return entry


@store_guard
@transaction.atomic
def transfer_installment_to_ledger(actor: ActorContext, installment_id: int) -> CommandResult:
    """
    Post a single installment to the ledger as a deferred entry.

    An already-transferred installment is a successful no-op.

    Returns:
        CommandResult with {"created": 0|1, "entry": LedgerEntry|None}
    """
    require(actor, "deferred.manage")

    try:
        installment = (
            DeferredPaymentInstallment.objects.select_for_update(of=("self",))
            .select_related("deferred_payment__project")
            .get(pk=installment_id)
        )
    except (DeferredPaymentInstallment.DoesNotExist, ValueError, TypeError):
        return CommandResult.fail("Installment not found.", code=ErrorCode.NOT_FOUND)

    entry = _transfer_locked(actor, installment)
    if entry is None:
        logger.info(
            "Installment already transferred",
            extra={"installment_id": installment.pk, "code": ErrorCode.ALREADY_TRANSFERRED},
        )
    return CommandResult.ok({"created": 1 if entry else 0, "entry": entry})


@store_guard
@transaction.atomic
def transfer_receivables_to_ledger(actor: ActorContext, receivable_ids: Iterable[int]) -> CommandResult:
    """
    Post the untransferred installments of the given deferred payments.

    All-or-nothing: an unknown id fails the whole batch before anything is
    written. Installments already transferred are skipped.

    Returns:
        CommandResult with {"created": n, "skipped": m}
    """
    require(actor, "deferred.manage")

    ids = sorted({int(pk) for pk in receivable_ids})
    payments = list(DeferredPayment.objects.select_for_update().filter(pk__in=ids))
    if len(payments) != len(ids):
        missing = sorted(set(ids) - {p.pk for p in payments})
        return CommandResult.fail(
            f"Deferred payments not found: {missing}",
            code=ErrorCode.NOT_FOUND,
        )

    installments = (
        DeferredPaymentInstallment.objects.select_for_update(of=("self",))
        .select_related("deferred_payment__project")
        .filter(deferred_payment_id__in=ids)
        .order_by("deferred_payment_id", "paid_at", "id")
    )

    created = 0
    skipped = 0
    for installment in installments:
        if _transfer_locked(actor, installment) is None:
            skipped += 1
        else:
            created += 1

    logger.info(
        "Receivables transferred to ledger",
        extra={"deferred_payment_ids": ids, "created": created, "skipped": skipped},
    )
    return CommandResult.ok({"created": created, "skipped": skipped})
