# events/models.py
"""
Event Store models.

BusinessEvent is the append-only record of every balance-affecting and
administrative action. Events are immutable once created: the cached
balances in the ledger app can always be rebuilt and verified by replaying
this stream (see projections.balances).
"""

import uuid
from django.db import models, transaction, IntegrityError
from django.conf import settings
from django.db.models import F
from django.utils import timezone


class EventCounter(models.Model):
    """Single-row counter allocating the global stream sequence."""

    name = models.CharField(max_length=50, unique=True, default="global")
    last_sequence = models.BigIntegerField(default=0)

    class Meta:
        verbose_name = "Event Counter"

    def __str__(self):
        return f"{self.name}: {self.last_sequence}"


class BusinessEvent(models.Model):
    """
    Immutable event record.
    """

    class EventOrigin(models.TextChoices):
        HUMAN = "human", "Human (Dashboard)"
        API = "api", "External API"
        SYSTEM = "system", "Internal System Process"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Event type name (e.g., 'transaction.created')",
    )

    aggregate_type = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Entity type (e.g., 'Transaction', 'DeferredPayment')",
    )

    aggregate_id = models.CharField(
        max_length=64,
        db_index=True,
    )

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        editable=False,
        help_text="Unique idempotency key",
    )

    # Sequence number for ordering events within an aggregate
    sequence = models.PositiveIntegerField(
        default=0,
        editable=False,
    )

    # Global monotonic sequence (event stream cursor)
    stream_sequence = models.BigIntegerField(
        unique=True,
        editable=False,
    )

    data = models.JSONField(default=dict)

    metadata = models.JSONField(default=dict, blank=True)

    schema_version = models.PositiveSmallIntegerField(default=1)

    payload_hash = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="SHA-256 of the canonical JSON payload",
    )

    caused_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="caused_events",
    )

    origin = models.CharField(
        max_length=20,
        choices=EventOrigin.choices,
        default=EventOrigin.HUMAN,
    )

    recorded_at = models.DateTimeField(auto_now_add=True, db_index=True)

    occurred_at = models.DateTimeField(db_index=True, default=timezone.now)

    class Meta:
        ordering = ["stream_sequence"]
        indexes = [
            models.Index(fields=["aggregate_type", "aggregate_id", "sequence"], name="events_aggregate_seq_idx"),
            models.Index(fields=["event_type", "occurred_at"], name="events_type_occurred_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["aggregate_type", "aggregate_id", "sequence"],
                name="uniq_event_aggregate_sequence",
            ),
        ]

    def __str__(self):
        return f"{self.event_type} [{self.aggregate_type}#{self.aggregate_id}] @{self.occurred_at}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Events are immutable and cannot be modified.")

        if not self.idempotency_key or not self.idempotency_key.strip():
            raise ValueError("idempotency_key is required")

        with transaction.atomic():
            try:
                counter, _ = EventCounter.objects.select_for_update().get_or_create(name="global")
            except IntegrityError:
                counter = EventCounter.objects.select_for_update().get(name="global")

            counter.last_sequence = F("last_sequence") + 1
            counter.save(update_fields=["last_sequence"])
            counter.refresh_from_db(fields=["last_sequence"])
            self.stream_sequence = counter.last_sequence

            if self.sequence == 0:
                last_event = BusinessEvent.objects.filter(
                    aggregate_type=self.aggregate_type,
                    aggregate_id=self.aggregate_id,
                ).order_by("-sequence").first()
                self.sequence = (last_event.sequence + 1) if last_event else 1

            super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Events are immutable and cannot be deleted.")

    def verify_payload_integrity(self) -> bool:
        """True when the stored payload still matches its hash (or no hash is set)."""
        if not self.payload_hash:
            return True

        from events.serialization import compute_payload_hash

        return compute_payload_hash(self.data) == self.payload_hash
