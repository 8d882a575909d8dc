# events/types.py
"""
Event type definitions.

This module defines THE CANONICAL SCHEMA for all event payloads.
These dataclasses are the contract: every emission is validated against
them (see validate_event_payload) before it reaches the event store.

Naming Convention: {aggregate}.{past_tense_verb}
Examples:
- transaction.created
- deferred_payment.installment_paid
- installment.transferred

Events are a stable API:
- Adding optional fields with defaults is safe
- Removing, renaming or retyping fields breaks balance replay
  (projections.balances) and requires a schema_version bump
"""

from dataclasses import dataclass, asdict, field, fields as dataclass_fields, MISSING
from typing import Optional, List, Dict, Any, Union, get_type_hints, get_origin, get_args
from decimal import Decimal, InvalidOperation
from datetime import date, datetime


# =============================================================================
# Event Validation
# =============================================================================

class InvalidEventPayload(Exception):
    """
    Raised when an event payload fails validation.
    """
    def __init__(self, event_type: str, errors: List[str]):
        self.event_type = event_type
        self.errors = errors
        error_list = "\n  - ".join(errors)
        super().__init__(
            f"Invalid payload for event '{event_type}':\n  - {error_list}"
        )


def _is_optional_type(type_hint) -> bool:
    origin = get_origin(type_hint)
    if origin is Union:
        return type(None) in get_args(type_hint)
    return False


def _get_inner_type(type_hint):
    origin = get_origin(type_hint)
    if origin is Union:
        non_none_args = [a for a in get_args(type_hint) if a is not type(None)]
        if len(non_none_args) == 1:
            return non_none_args[0]
    return type_hint


DECIMAL_FIELDS = {
    "amount",
    "admin_delta",
    "project_delta",
    "balance_after",
    "total_amount",
    "paid_amount",
    "remaining_amount",
}

DATE_FIELDS = {"date", "due_date"}
DATETIME_FIELDS = {"paid_at", "transferred_at"}


def validate_event_payload(event_type: str, data: Dict[str, Any]) -> None:
    """
    Validate that a data dict matches the expected schema for an event type.

    Checks:
    1. Required fields are present (fields without defaults)
    2. No unexpected fields are provided (strict schema)
    3. Field types are correct (basic type checking)
    4. Money fields are decimal strings, enum fields hold known values

    Raises:
        InvalidEventPayload: If validation fails
        ValueError: If event_type has no registered schema
    """
    data_class = EVENT_DATA_CLASSES.get(event_type)
    if data_class is None:
        raise ValueError(
            f"No schema registered for event type '{event_type}'. "
            f"Add a dataclass to EVENT_DATA_CLASSES."
        )

    errors = []
    dc_fields = {f.name: f for f in dataclass_fields(data_class)}
    type_hints = get_type_hints(data_class)

    for field_name, field_info in dc_fields.items():
        required = (
            field_info.default is MISSING and
            field_info.default_factory is MISSING
        )
        if required and field_name not in data:
            errors.append(f"Missing required field: '{field_name}'")

    unexpected = set(data.keys()) - set(dc_fields.keys())
    if unexpected:
        errors.append(
            f"Unexpected fields: {sorted(unexpected)}. "
            f"Expected: {sorted(dc_fields.keys())}"
        )

    for field_name, value in data.items():
        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue

        if value is None:
            if not _is_optional_type(type_hint):
                errors.append(f"Field '{field_name}' cannot be None (type: {type_hint})")
            continue

        check_type = _get_inner_type(type_hint)
        origin = get_origin(check_type)

        if origin is list or check_type is list:
            if not isinstance(value, list):
                errors.append(f"Field '{field_name}' must be a list, got {type(value).__name__}")
        elif origin is dict or check_type is dict:
            if not isinstance(value, dict):
                errors.append(f"Field '{field_name}' must be a dict, got {type(value).__name__}")
        elif check_type is str:
            if not isinstance(value, str):
                errors.append(f"Field '{field_name}' must be a string, got {type(value).__name__}")
        elif check_type is int:
            if not isinstance(value, int) or isinstance(value, bool):
                errors.append(f"Field '{field_name}' must be an int, got {type(value).__name__}")
        elif check_type is bool:
            if not isinstance(value, bool):
                errors.append(f"Field '{field_name}' must be a bool, got {type(value).__name__}")

    # Domain-specific validation for common semantics
    from ledger.models import Transaction, LedgerEntry, DeferredPayment, Project

    enum_fields = {
        "type": set(Transaction.Type.values),
        "entry_type": set(LedgerEntry.EntryType.values),
        "old_entry_type": set(LedgerEntry.EntryType.values),
        "new_entry_type": set(LedgerEntry.EntryType.values),
        "status": set(DeferredPayment.Status.values) | set(Project.Status.values),
    }

    def _validate_scalar(name: str, value: Any) -> None:
        if value is None or isinstance(value, (dict, list)):
            return
        if name in enum_fields and value not in enum_fields[name]:
            errors.append(
                f"Field '{name}' must be one of {sorted(enum_fields[name])}, got {value!r}"
            )
        if name in DECIMAL_FIELDS:
            if not isinstance(value, str):
                errors.append(f"Field '{name}' must be a decimal string, got {type(value).__name__}")
            else:
                try:
                    Decimal(value)
                except InvalidOperation:
                    errors.append(f"Field '{name}' must be a decimal string, got {value!r}")
        if name in DATE_FIELDS:
            try:
                date.fromisoformat(value)
            except (TypeError, ValueError):
                errors.append(f"Field '{name}' must be an ISO date string, got {value!r}")
        if name in DATETIME_FIELDS:
            try:
                datetime.fromisoformat(value)
            except (TypeError, ValueError):
                errors.append(f"Field '{name}' must be an ISO datetime string, got {value!r}")

    def _walk(name: str, value: Any) -> None:
        _validate_scalar(name, value)
        if isinstance(value, dict):
            for k, v in value.items():
                _walk(k, v)
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, dict):
                    _walk(name, item)

    for field_name, value in data.items():
        if field_name == "changes":
            continue  # free-form {"field": {"old": x, "new": y}}
        _walk(field_name, value)

    if errors:
        raise InvalidEventPayload(event_type, errors)


# =============================================================================
# Base Event Classes
# =============================================================================

@dataclass
class BaseEventData:
    """Base class for all event data."""

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON storage."""
        result = {}
        for key, value in asdict(self).items():
            if isinstance(value, Decimal):
                result[key] = str(value)
            elif isinstance(value, (date, datetime)):
                result[key] = value.isoformat()
            else:
                result[key] = value
        return result


# =============================================================================
# Admin Pool Events
# =============================================================================

@dataclass
class AdminFundsDepositedData(BaseEventData):
    """Data for admin_funds.deposited event (external income into the pool)."""
    deposit_public_id: str
    amount: str
    balance_after: str
    description: str = ""


# =============================================================================
# Project Events
# =============================================================================

@dataclass
class ProjectCreatedData(BaseEventData):
    """Data for project.created event."""
    project_public_id: str
    name: str
    status: str
    description: str = ""


@dataclass
class ProjectUpdatedData(BaseEventData):
    """Data for project.updated event."""
    project_public_id: str
    changes: Dict[str, Dict[str, Any]]  # {"field": {"old": x, "new": y}}


@dataclass
class ProjectDeletedData(BaseEventData):
    """Data for project.deleted event."""
    project_public_id: str
    name: str


# =============================================================================
# Transaction Events
# =============================================================================

@dataclass
class TransactionCreatedData(BaseEventData):
    """
    Data for transaction.created event.

    admin_delta and project_delta are the exact balance movements applied,
    so the event stream alone is enough to rebuild every balance.
    """
    transaction_public_id: str
    date: str
    type: str
    amount: str
    description: str
    admin_delta: str
    project_delta: str
    project_public_id: Optional[str] = None
    expense_type: str = ""


@dataclass
class TransactionDeletedData(BaseEventData):
    """Data for transaction.deleted event (deltas are the reversal applied)."""
    transaction_public_id: str
    type: str
    amount: str
    admin_delta: str
    project_delta: str
    project_public_id: Optional[str] = None
    ledger_entry_public_id: Optional[str] = None


# =============================================================================
# Expense Type & Ledger Events
# =============================================================================

@dataclass
class ExpenseTypeCreatedData(BaseEventData):
    """Data for expense_type.created event."""
    expense_type_public_id: str
    name: str
    description: str = ""


@dataclass
class ExpenseTypeUpdatedData(BaseEventData):
    """Data for expense_type.updated event (rename, describe, (de)activate)."""
    expense_type_public_id: str
    changes: Dict[str, Dict[str, Any]]


@dataclass
class LedgerEntryPostedData(BaseEventData):
    """Data for ledger_entry.posted event."""
    entry_public_id: str
    source: str  # "transaction" | "installment"
    source_public_id: str
    entry_type: str
    amount: str
    date: str
    expense_type_public_id: Optional[str] = None
    project_public_id: Optional[str] = None


@dataclass
class LedgerReclassifiedData(BaseEventData):
    """
    Data for ledger.reclassified event.

    One event per reclassification batch; entries lists every entry that
    changed: {"entry_public_id", "old_entry_type", "new_entry_type",
    "old_expense_type_public_id", "new_expense_type_public_id"}.
    """
    batch_public_id: str
    reclassified: int
    created: int
    entries: List[dict] = field(default_factory=list)


# =============================================================================
# Deferred Payment Events
# =============================================================================

@dataclass
class DeferredPaymentCreatedData(BaseEventData):
    """Data for deferred_payment.created event."""
    deferred_payment_public_id: str
    beneficiary_name: str
    total_amount: str
    project_public_id: Optional[str] = None
    due_date: Optional[str] = None
    description: str = ""


@dataclass
class InstallmentPaidData(BaseEventData):
    """Data for deferred_payment.installment_paid event."""
    deferred_payment_public_id: str
    installment_public_id: str
    amount: str
    paid_amount: str
    remaining_amount: str
    status: str
    paid_at: str


@dataclass
class DeferredPaymentDeletedData(BaseEventData):
    """Data for deferred_payment.deleted event."""
    deferred_payment_public_id: str
    beneficiary_name: str
    total_amount: str
    paid_amount: str


@dataclass
class InstallmentTransferredData(BaseEventData):
    """Data for installment.transferred event (installment posted to the ledger)."""
    installment_public_id: str
    deferred_payment_public_id: str
    entry_public_id: str
    beneficiary_name: str
    amount: str
    transferred_at: str


# =============================================================================
# User & Settings Events
# =============================================================================

@dataclass
class UserCreatedData(BaseEventData):
    """Data for user.created event."""
    user_public_id: str
    username: str
    name: str
    role: str
    email: str = ""


@dataclass
class UserUpdatedData(BaseEventData):
    """Data for user.updated event."""
    user_public_id: str
    changes: Dict[str, Dict[str, Any]]


@dataclass
class SettingChangedData(BaseEventData):
    """Data for setting.changed event."""
    key: str
    new_value: str
    old_value: Optional[str] = None


# =============================================================================
# Event Type Registry
# =============================================================================

class EventTypes:
    """
    Registry of all event types.

    Naming convention: {aggregate}.{past_tense_verb}
    """

    ADMIN_FUNDS_DEPOSITED = "admin_funds.deposited"

    PROJECT_CREATED = "project.created"
    PROJECT_UPDATED = "project.updated"
    PROJECT_DELETED = "project.deleted"

    TRANSACTION_CREATED = "transaction.created"
    TRANSACTION_DELETED = "transaction.deleted"

    EXPENSE_TYPE_CREATED = "expense_type.created"
    EXPENSE_TYPE_UPDATED = "expense_type.updated"

    LEDGER_ENTRY_POSTED = "ledger_entry.posted"
    LEDGER_RECLASSIFIED = "ledger.reclassified"

    DEFERRED_PAYMENT_CREATED = "deferred_payment.created"
    DEFERRED_PAYMENT_INSTALLMENT_PAID = "deferred_payment.installment_paid"
    DEFERRED_PAYMENT_DELETED = "deferred_payment.deleted"
    INSTALLMENT_TRANSFERRED = "installment.transferred"

    USER_CREATED = "user.created"
    USER_UPDATED = "user.updated"
    SETTING_CHANGED = "setting.changed"

    # Events that move money between the admin pool and projects
    BALANCE_EVENTS = (
        ADMIN_FUNDS_DEPOSITED,
        TRANSACTION_CREATED,
        TRANSACTION_DELETED,
    )


EVENT_DATA_CLASSES = {
    EventTypes.ADMIN_FUNDS_DEPOSITED: AdminFundsDepositedData,
    EventTypes.PROJECT_CREATED: ProjectCreatedData,
    EventTypes.PROJECT_UPDATED: ProjectUpdatedData,
    EventTypes.PROJECT_DELETED: ProjectDeletedData,
    EventTypes.TRANSACTION_CREATED: TransactionCreatedData,
    EventTypes.TRANSACTION_DELETED: TransactionDeletedData,
    EventTypes.EXPENSE_TYPE_CREATED: ExpenseTypeCreatedData,
    EventTypes.EXPENSE_TYPE_UPDATED: ExpenseTypeUpdatedData,
    EventTypes.LEDGER_ENTRY_POSTED: LedgerEntryPostedData,
    EventTypes.LEDGER_RECLASSIFIED: LedgerReclassifiedData,
    EventTypes.DEFERRED_PAYMENT_CREATED: DeferredPaymentCreatedData,
    EventTypes.DEFERRED_PAYMENT_INSTALLMENT_PAID: InstallmentPaidData,
    EventTypes.DEFERRED_PAYMENT_DELETED: DeferredPaymentDeletedData,
    EventTypes.INSTALLMENT_TRANSFERRED: InstallmentTransferredData,
    EventTypes.USER_CREATED: UserCreatedData,
    EventTypes.USER_UPDATED: UserUpdatedData,
    EventTypes.SETTING_CHANGED: SettingChangedData,
}
