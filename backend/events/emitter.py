# events/emitter.py
"""
Event emission functions.

This module provides the primary interface for emitting business events.
All events MUST be emitted through these functions to ensure:
1. Payload validation against canonical schemas (events/types.py)
2. Idempotency handling
3. Proper sequencing
4. Audit trail (caused_by_user, metadata)

IMPORTANT: Events are validated at emission time.
==============================================
If you get an InvalidEventPayload error, it means the data dict
does not match the schema defined in events/types.py. Fix the
data being passed, don't disable validation.
"""

from __future__ import annotations

import logging
from typing import Optional, Any, Dict, Union
from datetime import datetime

from django.db import IntegrityError, transaction
from django.utils import timezone
from django.conf import settings

from events.models import BusinessEvent
from events.types import validate_event_payload, BaseEventData
from events.serialization import compute_payload_hash


logger = logging.getLogger(__name__)


def _emit_event_core(
    *,
    user,
    event_type: str,
    aggregate_type: str,
    aggregate_id: Any,
    data: Union[Dict[str, Any], BaseEventData],
    occurred_at: Optional[datetime],
    idempotency_key: str,
    metadata: Optional[Dict[str, Any]],
    origin: str,
) -> BusinessEvent:
    """
    Core event emission logic.

    Validates the payload, handles idempotency and persists the event.

    Returns:
        The created (or existing, if idempotent) BusinessEvent

    Raises:
        InvalidEventPayload: If data doesn't match the schema
        ValueError: If idempotency_key is missing
    """
    if not idempotency_key or not str(idempotency_key).strip():
        raise ValueError("idempotency_key is required")

    if isinstance(data, BaseEventData):
        data = data.to_dict()

    if not getattr(settings, "DISABLE_EVENT_VALIDATION", False):
        validate_event_payload(event_type, data)

    if occurred_at is None:
        occurred_at = timezone.now()

    # Quick idempotency check (common case)
    existing = BusinessEvent.objects.filter(idempotency_key=idempotency_key).first()
    if existing:
        return existing

    payload_hash = compute_payload_hash(data)

    # Retry when two writers collide on the per-aggregate sequence; an
    # idempotency collision returns the row that won.
    for attempt in range(3):
        try:
            with transaction.atomic():
                event = BusinessEvent.objects.create(
                    event_type=event_type,
                    aggregate_type=aggregate_type,
                    aggregate_id=str(aggregate_id),
                    data=data,
                    metadata=metadata or {},
                    caused_by_user=user,
                    occurred_at=occurred_at,
                    idempotency_key=idempotency_key,
                    payload_hash=payload_hash,
                    origin=origin,
                )
            logger.debug(
                "Event emitted",
                extra={
                    "event_type": event_type,
                    "aggregate_type": aggregate_type,
                    "aggregate_id": str(aggregate_id),
                    "stream_sequence": event.stream_sequence,
                },
            )
            return event
        except IntegrityError:
            existing = BusinessEvent.objects.filter(idempotency_key=idempotency_key).first()
            if existing:
                return existing

            if attempt == 2:
                raise

    raise RuntimeError("Failed to emit event after retries")


def emit_event(
    actor,
    event_type: str,
    aggregate_type: str,
    aggregate_id: Any,
    data: Union[Dict[str, Any], BaseEventData],
    *,
    idempotency_key: str,
    occurred_at: Optional[datetime] = None,
    metadata: Optional[Dict[str, Any]] = None,
    origin: str = BusinessEvent.EventOrigin.HUMAN,
) -> BusinessEvent:
    """
    Emit a business event on behalf of an actor.

    The data parameter MUST conform to the schema defined in events/types.py,
    either as a dict or as a BaseEventData instance.

    Example:
        emit_event(
            actor,
            EventTypes.PROJECT_CREATED,
            aggregate_type="Project",
            aggregate_id=project.public_id,
            data=ProjectCreatedData(
                project_public_id=str(project.public_id),
                name="مشروع الجسر",
                status="active",
            ),
            idempotency_key=f"project.created:{project.public_id}",
        )

    Raises:
        InvalidEventPayload: If data doesn't match the event type schema
    """
    return _emit_event_core(
        user=actor.user if actor is not None else None,
        event_type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        data=data,
        occurred_at=occurred_at,
        idempotency_key=idempotency_key,
        metadata=metadata,
        origin=origin,
    )


def emit_event_no_actor(
    event_type: str,
    aggregate_type: str,
    aggregate_id: Any,
    data: Union[Dict[str, Any], BaseEventData],
    *,
    idempotency_key: str,
    user=None,
    occurred_at: Optional[datetime] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> BusinessEvent:
    """
    Emit an event without an actor context (management commands, seeding).

    Payload validation is still enforced.
    """
    return _emit_event_core(
        user=user,
        event_type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        data=data,
        occurred_at=occurred_at,
        idempotency_key=idempotency_key,
        metadata=metadata,
        origin=BusinessEvent.EventOrigin.SYSTEM,
    )


def get_aggregate_events(aggregate_type: str, aggregate_id: Any) -> list[BusinessEvent]:
    """
    Aggregate stream ordering.

    Use per-aggregate sequence so rebuilds are deterministic within the
    aggregate, independent of other aggregates' interleaving.
    """
    return list(
        BusinessEvent.objects.filter(
            aggregate_type=aggregate_type,
            aggregate_id=str(aggregate_id),
        ).order_by("sequence")
    )


def get_events_by_type(
    event_types: list[str],
    since_sequence: int = 0,
    limit: Optional[int] = None,
) -> list[BusinessEvent]:
    """Global stream ordering, filtered by type."""
    qs = BusinessEvent.objects.filter(
        event_type__in=event_types,
        stream_sequence__gt=since_sequence,
    ).order_by("stream_sequence")
    if limit is not None:
        qs = qs[:limit]
    return list(qs)
