import django.db.models.deletion
import uuid
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="AdminBalance",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=15)),
                ("opening_balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Balance the pool started with, before any event", max_digits=15)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Admin Balance",
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("balance__gte", 0)), name="chk_admin_balance_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ExpenseType",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("name", models.CharField(max_length=200, unique=True)),
                ("description", models.TextField(blank=True, default="")),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Project",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("name", models.CharField(max_length=200, unique=True)),
                ("description", models.TextField(blank=True, default="")),
                ("status", models.CharField(choices=[("active", "نشط"), ("completed", "مكتمل"), ("paused", "متوقف")], default="active", max_length=20)),
                ("balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=15)),
                ("total_income", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=15)),
                ("total_expenses", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=15)),
                ("net_profit", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=15)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="created_projects", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["name"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("balance__gte", 0)), name="chk_project_balance_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DeferredPayment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("beneficiary_name", models.CharField(db_index=True, max_length=200)),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=15)),
                ("paid_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=15)),
                ("remaining_amount", models.DecimalField(decimal_places=2, max_digits=15)),
                ("status", models.CharField(choices=[("pending", "قيد السداد"), ("completed", "مكتمل")], default="pending", max_length=20)),
                ("due_date", models.DateField(blank=True, null=True)),
                ("description", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="deferred_payments", to=settings.AUTH_USER_MODEL)),
                ("project", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="deferred_payments", to="ledger.project")),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("total_amount__gt", 0)), name="chk_deferred_total_positive"),
                    models.CheckConstraint(condition=models.Q(("paid_amount__gte", 0), ("remaining_amount__gte", 0)), name="chk_deferred_amounts_non_negative"),
                    models.CheckConstraint(condition=models.Q(("total_amount", models.F("paid_amount") + models.F("remaining_amount"))), name="chk_deferred_paid_plus_remaining"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DeferredPaymentInstallment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=15)),
                ("paid_at", models.DateTimeField()),
                ("transferred_at", models.DateTimeField(blank=True, null=True)),
                ("deferred_payment", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="installments", to="ledger.deferredpayment")),
            ],
            options={
                "ordering": ["paid_at", "id"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="chk_installment_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Transaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("date", models.DateField()),
                ("description", models.TextField()),
                ("type", models.CharField(choices=[("income", "إيراد"), ("expense", "مصروف")], max_length=10)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=15)),
                ("expense_type", models.CharField(blank=True, default="", help_text="Free-text expense type name, matched against ExpenseType.name", max_length=200)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="transactions", to=settings.AUTH_USER_MODEL)),
                ("project", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="transactions", to="ledger.project")),
            ],
            options={
                "ordering": ["-date", "-created_at"],
                "indexes": [
                    models.Index(fields=["project", "type"], name="ledger_txn_project_type_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="chk_transaction_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("date", models.DateField()),
                ("amount", models.DecimalField(decimal_places=2, max_digits=15)),
                ("description", models.TextField(blank=True, default="")),
                ("entry_type", models.CharField(choices=[("classified", "مصنف"), ("general_expense", "متفرق"), ("deferred", "دفعة آجلة")], max_length=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("expense_type", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entries", to="ledger.expensetype")),
                ("installment", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entry", to="ledger.deferredpaymentinstallment")),
                ("project", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entries", to="ledger.project")),
                ("transaction", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entry", to="ledger.transaction")),
            ],
            options={
                "verbose_name_plural": "Ledger entries",
                "ordering": ["date", "id"],
                "indexes": [
                    models.Index(fields=["entry_type", "date"], name="ledger_entry_type_date_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(models.Q(("installment__isnull", True), ("transaction__isnull", False)), models.Q(("installment__isnull", False), ("transaction__isnull", True)), _connector="OR"), name="chk_ledger_entry_single_source"),
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="chk_ledger_entry_amount_positive"),
                ],
            },
        ),
    ]
