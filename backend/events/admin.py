# events/admin.py
"""
Django admin configuration for the event store.

Events are read-only in admin (they're immutable).
"""

from django.contrib import admin
from django.utils.html import format_html
import json

from .models import BusinessEvent


@admin.register(BusinessEvent)
class BusinessEventAdmin(admin.ModelAdmin):
    """
    Admin interface for BusinessEvents.
    Read-only since events are immutable.
    """

    list_display = [
        "stream_sequence", "event_type", "aggregate_display",
        "caused_by_user", "occurred_at",
    ]
    list_filter = ["event_type", "aggregate_type", "origin", "occurred_at"]
    search_fields = ["event_type", "aggregate_id", "caused_by_user__username"]
    date_hierarchy = "occurred_at"
    list_select_related = ["caused_by_user"]
    ordering = ["-stream_sequence"]

    readonly_fields = [
        "id", "event_type", "aggregate_type", "aggregate_id",
        "sequence", "stream_sequence", "idempotency_key", "data_formatted",
        "metadata_formatted", "schema_version", "payload_hash",
        "caused_by_user", "origin", "occurred_at", "recorded_at",
    ]

    fieldsets = (
        ("Event Identity", {
            "fields": ("id", "event_type", "schema_version", "idempotency_key"),
        }),
        ("Aggregate", {
            "fields": ("aggregate_type", "aggregate_id", "sequence", "stream_sequence"),
        }),
        ("Payload", {
            "fields": ("data_formatted", "payload_hash"),
        }),
        ("Context", {
            "fields": ("caused_by_user", "origin"),
        }),
        ("Metadata", {
            "fields": ("metadata_formatted",),
            "classes": ("collapse",),
        }),
        ("Timestamp", {
            "fields": ("occurred_at", "recorded_at"),
        }),
    )

    @admin.display(description="Aggregate")
    def aggregate_display(self, obj):
        return f"{obj.aggregate_type}#{obj.aggregate_id}"

    @admin.display(description="Data")
    def data_formatted(self, obj):
        return format_html(
            "<pre style='white-space: pre-wrap; max-width: 600px;'>{}</pre>",
            json.dumps(obj.data, indent=2, ensure_ascii=False, default=str),
        )

    @admin.display(description="Metadata")
    def metadata_formatted(self, obj):
        return format_html(
            "<pre style='white-space: pre-wrap; max-width: 600px;'>{}</pre>",
            json.dumps(obj.metadata, indent=2, ensure_ascii=False, default=str),
        )

    def has_add_permission(self, request):
        return False  # Events created through commands only

    def has_change_permission(self, request, obj=None):
        return False  # Events are immutable

    def has_delete_permission(self, request, obj=None):
        return False  # Events are immutable
