# events/__init__.py
"""
Events app - Append-only audit trail for Mizan.

This app provides:
- BusinessEvent: Immutable event records with a global stream sequence
- Emitter functions: emit_event, emit_event_no_actor
- Event type definitions with CANONICAL SCHEMAS
- Payload validation at emission time

The event schemas in events/types.py are THE CONTRACT.
All events are validated against these schemas at emission time.

Usage:
    from events.emitter import emit_event
    from events.types import EventTypes, TransactionCreatedData, InvalidEventPayload

    emit_event(
        actor,
        EventTypes.TRANSACTION_CREATED,
        aggregate_type="Transaction",
        aggregate_id=txn.public_id,
        data=TransactionCreatedData(
            transaction_public_id=str(txn.public_id),
            date="2024-03-01",
            type="income",
            amount="200000.00",
            description="تمويل المشروع",
            admin_delta="-200000.00",
            project_delta="200000.00",
            project_public_id=str(project.public_id),
        ),
        idempotency_key=f"transaction.created:{txn.public_id}",
    )

Handling validation errors:
    try:
        emit_event(...)
    except InvalidEventPayload as e:
        # e.event_type - the event type that failed
        # e.errors - list of validation error messages
        logger.error(f"Invalid event payload: {e}")
"""
