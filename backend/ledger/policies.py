# ledger/policies.py
"""
Business policy functions for ledger operations.

Policies answer: "Is this action allowed given the current state?"
They do NOT perform the action; that's the command's job.

Usage:
    from ledger.policies import can_spend_from_project

    allowed, reason = can_spend_from_project(project, amount)
    if not allowed:
        return CommandResult.fail(reason, code=ErrorCode.INSUFFICIENT_PROJECT_BALANCE)

Policies are pure functions returning (bool, str) and are evaluated on
rows already locked by the calling command.
"""

from decimal import Decimal

from django.core.exceptions import PermissionDenied


class PolicyViolation(Exception):
    """Raised when a business policy is violated."""
    pass


# =============================================================================
# Amount Policies
# =============================================================================

def is_positive_amount(amount) -> tuple[bool, str]:
    if amount is None:
        return False, "Amount is required."
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    if not amount.is_finite() or amount <= 0:
        return False, "Amount must be greater than zero."
    return True, ""


# =============================================================================
# Balance Policies
# =============================================================================

def can_fund_income(pool, amount: Decimal) -> tuple[bool, str]:
    """Income moves money from the admin pool into a project."""
    if pool.balance < amount:
        return False, (
            f"Insufficient admin funds: available {pool.balance}, requested {amount}."
        )
    return True, ""


def can_spend_from_pool(pool, amount: Decimal) -> tuple[bool, str]:
    """Expenses without a project are paid from the admin pool."""
    if pool.balance < amount:
        return False, (
            f"Insufficient admin funds: available {pool.balance}, requested {amount}."
        )
    return True, ""


def can_spend_from_project(project, amount: Decimal) -> tuple[bool, str]:
    if project.balance < amount:
        return False, (
            f"Insufficient balance in project '{project.name}': "
            f"available {project.balance}, requested {amount}."
        )
    return True, ""


def can_reverse_income(project, amount: Decimal) -> tuple[bool, str]:
    """An income can only be withdrawn while the project still holds it."""
    if project.balance < amount:
        return False, (
            f"Cannot delete income: project '{project.name}' has already spent it "
            f"(balance {project.balance}, income {amount})."
        )
    return True, ""


# =============================================================================
# Transaction Policies
# =============================================================================

def can_delete_transaction(actor, txn) -> tuple[bool, str]:
    """Only the creator or an admin may delete a transaction."""
    if actor.is_admin:
        return True, ""
    if txn.created_by_id is not None and txn.created_by_id == actor.user.id:
        return True, ""
    return False, "Only the creator or an administrator can delete this transaction."


def assert_can_delete_transaction(actor, txn) -> None:
    allowed, reason = can_delete_transaction(actor, txn)
    if not allowed:
        raise PermissionDenied(reason)


# =============================================================================
# Project Policies
# =============================================================================

def can_delete_project(project) -> tuple[bool, str]:
    if project.transactions.exists():
        return False, "Cannot delete a project that has transactions."
    if project.deferred_payments.exists():
        return False, "Cannot delete a project that has deferred payments."
    return True, ""


# =============================================================================
# Deferred Payment Policies
# =============================================================================

def can_pay_installment(payment, amount: Decimal) -> tuple[bool, str]:
    allowed, reason = is_positive_amount(amount)
    if not allowed:
        return False, reason
    if amount > payment.remaining_amount:
        return False, (
            f"Installment {amount} exceeds the remaining amount {payment.remaining_amount}."
        )
    return True, ""


def can_delete_deferred_payment(payment) -> tuple[bool, str]:
    if payment.installments.filter(transferred_at__isnull=False).exists():
        return False, "Cannot delete a deferred payment with installments already transferred to the ledger."
    return True, ""
