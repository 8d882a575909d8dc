# events/serializers.py
"""
Serializers for the activity/audit API.
"""

from rest_framework import serializers

from events.models import BusinessEvent


class BusinessEventListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for event listing."""

    caused_by_username = serializers.CharField(
        source="caused_by_user.username",
        read_only=True,
        default=None,
    )
    caused_by_name = serializers.CharField(
        source="caused_by_user.name",
        read_only=True,
        default=None,
    )

    class Meta:
        model = BusinessEvent
        fields = [
            "id",
            "event_type",
            "aggregate_type",
            "aggregate_id",
            "sequence",
            "stream_sequence",
            "occurred_at",
            "recorded_at",
            "caused_by_username",
            "caused_by_name",
            "origin",
        ]


class BusinessEventDetailSerializer(BusinessEventListSerializer):
    """Full serializer for single event detail."""

    payload_valid = serializers.SerializerMethodField()

    class Meta(BusinessEventListSerializer.Meta):
        fields = BusinessEventListSerializer.Meta.fields + [
            "idempotency_key",
            "data",
            "metadata",
            "schema_version",
            "payload_hash",
            "payload_valid",
        ]

    def get_payload_valid(self, obj):
        return obj.verify_payload_integrity()
