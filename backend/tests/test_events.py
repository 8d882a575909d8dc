# tests/test_events.py
"""
Tests for the events module.

Tests cover:
- Event immutability
- Idempotency key handling
- Event sequencing
- Payload validation against the event dataclasses
- Stream integrity verification
"""

import pytest
from uuid import uuid4

from events.emitter import (
    emit_event,
    emit_event_no_actor,
    get_aggregate_events,
    get_events_by_type,
)
from events.models import BusinessEvent
from events.serialization import canonical_json, compute_payload_hash
from events.types import (
    EventTypes,
    InvalidEventPayload,
    ProjectCreatedData,
    SettingChangedData,
    validate_event_payload,
)
from events.verification import full_integrity_check


def _setting_event(actor, key="currency", value="د.ع", idempotency_key=None):
    return emit_event(
        actor,
        EventTypes.SETTING_CHANGED,
        aggregate_type="Setting",
        aggregate_id=key,
        data=SettingChangedData(key=key, new_value=value),
        idempotency_key=idempotency_key or f"test:setting:{uuid4()}",
    )


# =============================================================================
# Event Immutability Tests
# =============================================================================

@pytest.mark.django_db
class TestEventImmutability:

    def test_cannot_modify_existing_event(self, admin_actor):
        event = _setting_event(admin_actor)
        event.data["new_value"] = "$"

        with pytest.raises(ValueError, match="immutable"):
            event.save()

    def test_cannot_delete_event(self, admin_actor):
        event = _setting_event(admin_actor)

        with pytest.raises(ValueError, match="immutable"):
            event.delete()

    def test_idempotency_key_required(self, admin_actor):
        with pytest.raises(ValueError, match="idempotency_key"):
            _setting_event(admin_actor, idempotency_key=" ")


# =============================================================================
# Idempotency & Sequencing Tests
# =============================================================================

@pytest.mark.django_db
class TestIdempotencyAndSequencing:

    def test_duplicate_idempotency_key_returns_existing_event(self, admin_actor):
        key = f"test:idempotent:{uuid4()}"

        first = _setting_event(admin_actor, idempotency_key=key)
        second = _setting_event(admin_actor, value="$", idempotency_key=key)

        assert first.id == second.id
        assert BusinessEvent.objects.filter(idempotency_key=key).count() == 1

    def test_stream_sequence_is_gapless(self, admin_actor):
        events = [_setting_event(admin_actor) for _ in range(3)]

        sequences = [e.stream_sequence for e in events]
        assert sequences == list(range(sequences[0], sequences[0] + 3))

    def test_aggregate_sequence_increments_per_aggregate(self, admin_actor):
        a1 = _setting_event(admin_actor, key="currency")
        b1 = _setting_event(admin_actor, key="language", value="ar")
        a2 = _setting_event(admin_actor, key="currency", value="IQD")

        assert (a1.sequence, a2.sequence, b1.sequence) == (1, 2, 1)
        assert [e.id for e in get_aggregate_events("Setting", "currency")] == [a1.id, a2.id]

    def test_events_by_type_since_sequence(self, admin_actor):
        first = _setting_event(admin_actor)
        second = _setting_event(admin_actor)

        events = get_events_by_type([EventTypes.SETTING_CHANGED], since_sequence=first.stream_sequence)

        assert [e.id for e in events] == [second.id]

    def test_system_events_have_no_user(self, db):
        event = emit_event_no_actor(
            EventTypes.SETTING_CHANGED,
            aggregate_type="Setting",
            aggregate_id="language",
            data={"key": "language", "new_value": "ar", "old_value": None},
            idempotency_key=f"test:system:{uuid4()}",
        )

        assert event.caused_by_user is None
        assert event.origin == BusinessEvent.EventOrigin.SYSTEM

    def test_actor_is_recorded(self, admin_actor):
        event = _setting_event(admin_actor)

        assert event.caused_by_user == admin_actor.user
        assert event.origin == BusinessEvent.EventOrigin.HUMAN


# =============================================================================
# Payload Validation Tests
# =============================================================================

class TestPayloadValidation:

    def _txn_payload(self, **overrides):
        payload = {
            "transaction_public_id": str(uuid4()),
            "date": "2024-03-01",
            "type": "income",
            "amount": "100.00",
            "description": "تمويل",
            "admin_delta": "-100.00",
            "project_delta": "100.00",
            "project_public_id": str(uuid4()),
            "expense_type": "",
        }
        payload.update(overrides)
        return payload

    def test_valid_payload_passes(self):
        validate_event_payload(EventTypes.TRANSACTION_CREATED, self._txn_payload())

    def test_missing_required_field(self):
        payload = self._txn_payload()
        del payload["amount"]

        with pytest.raises(InvalidEventPayload, match="Missing required field: 'amount'"):
            validate_event_payload(EventTypes.TRANSACTION_CREATED, payload)

    def test_unexpected_field(self):
        with pytest.raises(InvalidEventPayload, match="Unexpected fields"):
            validate_event_payload(EventTypes.TRANSACTION_CREATED, self._txn_payload(extra="x"))

    def test_amount_must_be_decimal_string(self):
        with pytest.raises(InvalidEventPayload, match="decimal string"):
            validate_event_payload(EventTypes.TRANSACTION_CREATED, self._txn_payload(amount=100))

    def test_unknown_transaction_type(self):
        with pytest.raises(InvalidEventPayload, match="'type' must be one of"):
            validate_event_payload(EventTypes.TRANSACTION_CREATED, self._txn_payload(type="transfer"))

    def test_date_must_be_iso(self):
        with pytest.raises(InvalidEventPayload, match="ISO date"):
            validate_event_payload(EventTypes.TRANSACTION_CREATED, self._txn_payload(date="01/03/2024"))

    def test_non_optional_field_cannot_be_none(self):
        with pytest.raises(InvalidEventPayload, match="cannot be None"):
            validate_event_payload(EventTypes.TRANSACTION_CREATED, self._txn_payload(description=None))

    def test_nested_entry_types_are_checked(self):
        payload = {
            "batch_public_id": str(uuid4()),
            "reclassified": 1,
            "created": 0,
            "entries": [{"entry_public_id": str(uuid4()), "old_entry_type": "general_expense", "new_entry_type": "bogus"}],
        }

        with pytest.raises(InvalidEventPayload, match="new_entry_type"):
            validate_event_payload(EventTypes.LEDGER_RECLASSIFIED, payload)

    def test_unknown_event_type(self):
        with pytest.raises(ValueError, match="No schema registered"):
            validate_event_payload("unknown.happened", {})

    def test_dataclass_to_dict(self):
        data = ProjectCreatedData(project_public_id="p-1", name="مشروع", status="active")

        assert data.to_dict() == {
            "project_public_id": "p-1",
            "name": "مشروع",
            "status": "active",
            "description": "",
        }

    @pytest.mark.django_db
    def test_emit_rejects_invalid_payload(self, admin_actor):
        with pytest.raises(InvalidEventPayload):
            emit_event(
                admin_actor,
                EventTypes.SETTING_CHANGED,
                aggregate_type="Setting",
                aggregate_id="currency",
                data={"key": "currency"},
                idempotency_key=f"test:{uuid4()}",
            )
        assert not BusinessEvent.objects.exists()


# =============================================================================
# Integrity Tests
# =============================================================================

def test_canonical_json_is_order_independent():
    assert canonical_json({"b": 1, "a": "ع"}) == '{"a":"ع","b":1}'
    assert compute_payload_hash({"a": 1, "b": 2}) == compute_payload_hash({"b": 2, "a": 1})


@pytest.mark.django_db
class TestIntegrityCheck:

    def test_clean_stream_is_valid(self, admin_actor):
        _setting_event(admin_actor)
        _setting_event(admin_actor)

        result = full_integrity_check()

        assert result["is_valid"]
        assert result["total_events"] == result["verified_events"] == 2

    def test_tampered_payload_is_reported(self, admin_actor):
        event = _setting_event(admin_actor)
        BusinessEvent.objects.filter(pk=event.pk).update(data={**event.data, "new_value": "€"})

        result = full_integrity_check()

        assert not result["is_valid"]
        assert result["payload_errors"][0]["event_id"] == str(event.id)

    def test_sequence_gap_is_reported(self, admin_actor):
        _setting_event(admin_actor)
        gap_event = _setting_event(admin_actor)
        BusinessEvent.objects.filter(pk=gap_event.pk).update(stream_sequence=gap_event.stream_sequence + 5)

        result = full_integrity_check()

        assert not result["is_valid"]
        assert result["sequence_gaps"][0]["missing_count"] == 5
