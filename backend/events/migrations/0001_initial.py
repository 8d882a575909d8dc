import django.db.models.deletion
import django.utils.timezone
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="EventCounter",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(default="global", max_length=50, unique=True)),
                ("last_sequence", models.BigIntegerField(default=0)),
            ],
            options={
                "verbose_name": "Event Counter",
            },
        ),
        migrations.CreateModel(
            name="BusinessEvent",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("event_type", models.CharField(db_index=True, help_text="Event type name (e.g., 'transaction.created')", max_length=100)),
                ("aggregate_type", models.CharField(db_index=True, help_text="Entity type (e.g., 'Transaction', 'DeferredPayment')", max_length=50)),
                ("aggregate_id", models.CharField(db_index=True, max_length=64)),
                ("idempotency_key", models.CharField(editable=False, help_text="Unique idempotency key", max_length=255, unique=True)),
                ("sequence", models.PositiveIntegerField(default=0, editable=False)),
                ("stream_sequence", models.BigIntegerField(editable=False, unique=True)),
                ("data", models.JSONField(default=dict)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("schema_version", models.PositiveSmallIntegerField(default=1)),
                ("payload_hash", models.CharField(blank=True, default="", help_text="SHA-256 of the canonical JSON payload", max_length=64)),
                ("origin", models.CharField(choices=[("human", "Human (Dashboard)"), ("api", "External API"), ("system", "Internal System Process")], default="human", max_length=20)),
                ("recorded_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("occurred_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("caused_by_user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="caused_events", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["stream_sequence"],
                "indexes": [
                    models.Index(fields=["aggregate_type", "aggregate_id", "sequence"], name="events_aggregate_seq_idx"),
                    models.Index(fields=["event_type", "occurred_at"], name="events_type_occurred_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("aggregate_type", "aggregate_id", "sequence"), name="uniq_event_aggregate_sequence"),
                ],
            },
        ),
    ]
