# ledger/models.py
"""
Ledger WRITE MODELS for Mizan.

These rows hold the authoritative balances and ledger entries. They are
owned by the command layer (ledger/commands.py):

DO NOT:
- Call .save() / .create() directly (use commands)
- Call .update() / .delete() on querysets (use commands)

Every mutation happens inside a command's atomic block, under
select_for_update on the rows it touches, and emits a BusinessEvent. The
event stream can rebuild and verify the cached balances (projections.balances).

Models:
- AdminBalance: singleton pool of undistributed admin funds
- Project: per-project cached balance and income/expense totals
- Transaction: immutable income/expense movement
- ExpenseType: named expense category used for classification
- LedgerEntry: one classified/general/deferred posting per source
- DeferredPayment: amount owed to a beneficiary, paid in installments
- DeferredPaymentInstallment: a single timestamped installment payment
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from projections.write_barrier import command_writes_allowed, guard_write


MONEY = dict(max_digits=15, decimal_places=2)


class CommandWriteQuerySet(models.QuerySet):
    """QuerySet whose bulk writes honour the write barrier."""

    def update(self, **kwargs):
        guard_write(self.model.__name__, "update")
        return super().update(**kwargs)

    def delete(self):
        guard_write(self.model.__name__, "delete")
        return super().delete()

    def bulk_create(self, objs, *args, **kwargs):
        guard_write(self.model.__name__, "bulk_create")
        return super().bulk_create(objs, *args, **kwargs)


class CommandOwnedModel(models.Model):
    objects = CommandWriteQuerySet.as_manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        guard_write(self.__class__.__name__, "save")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        guard_write(self.__class__.__name__, "delete")
        return super().delete(*args, **kwargs)


class AdminBalance(CommandOwnedModel):
    """
    Singleton pool of admin funds not yet distributed to projects.

    Income transactions move money from here into a project; project-less
    expenses and deposits are paid from / into it. Never negative.
    """

    SINGLETON_ID = 1

    balance = models.DecimalField(**MONEY, default=Decimal("0.00"))
    opening_balance = models.DecimalField(
        **MONEY,
        default=Decimal("0.00"),
        help_text="Balance the pool started with, before any event",
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Admin Balance"
        constraints = [
            models.CheckConstraint(
                condition=Q(balance__gte=0),
                name="chk_admin_balance_non_negative",
            ),
        ]

    def __str__(self):
        return f"Admin pool: {self.balance}"

    @classmethod
    def locked(cls) -> "AdminBalance":
        """Fetch (creating on first use) the pool row under select_for_update."""
        initial = Decimal(getattr(settings, "INITIAL_ADMIN_BALANCE", Decimal("0")))
        with command_writes_allowed():
            pool, _ = cls.objects.select_for_update().get_or_create(
                pk=cls.SINGLETON_ID,
                defaults={"balance": initial, "opening_balance": initial},
            )
        return pool

    @classmethod
    def current_balance(cls) -> Decimal:
        """Read-only view of the pool; never creates the row."""
        pool = cls.objects.filter(pk=cls.SINGLETON_ID).first()
        if pool is None:
            return Decimal(getattr(settings, "INITIAL_ADMIN_BALANCE", Decimal("0")))
        return pool.balance


class Project(CommandOwnedModel):
    """
    A project receiving income from the admin pool and paying expenses.

    balance == sum(income) - sum(expense) over the project's transactions,
    and net_profit == total_income - total_expenses, at every commit.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", "نشط"
        COMPLETED = "completed", "مكتمل"
        PAUSED = "paused", "متوقف"

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=200, unique=True)
    description = models.TextField(blank=True, default="")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)

    balance = models.DecimalField(**MONEY, default=Decimal("0.00"))
    total_income = models.DecimalField(**MONEY, default=Decimal("0.00"))
    total_expenses = models.DecimalField(**MONEY, default=Decimal("0.00"))
    net_profit = models.DecimalField(**MONEY, default=Decimal("0.00"))

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="created_projects",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(
                condition=Q(balance__gte=0),
                name="chk_project_balance_non_negative",
            ),
        ]

    def __str__(self):
        return self.name

    def apply_delta(self, *, income: Decimal = Decimal("0"), expense: Decimal = Decimal("0")) -> None:
        """Adjust cached totals in memory; callers save under a row lock."""
        self.total_income += income
        self.total_expenses += expense
        self.balance += income - expense
        self.net_profit = self.total_income - self.total_expenses


class Transaction(CommandOwnedModel):
    """
    Income or expense movement. Immutable once committed; a correction is
    a delete followed by a new transaction.
    """

    class Type(models.TextChoices):
        INCOME = "income", "إيراد"
        EXPENSE = "expense", "مصروف"

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    date = models.DateField()
    description = models.TextField()
    type = models.CharField(max_length=10, choices=Type.choices)
    amount = models.DecimalField(**MONEY)
    project = models.ForeignKey(
        Project,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    expense_type = models.CharField(
        max_length=200,
        blank=True,
        default="",
        help_text="Free-text expense type name, matched against ExpenseType.name",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="transactions",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-date", "-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="chk_transaction_amount_positive",
            ),
        ]
        indexes = [
            models.Index(fields=["project", "type"], name="ledger_txn_project_type_idx"),
        ]

    def __str__(self):
        return f"{self.get_type_display()} {self.amount} ({self.date})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Transactions are immutable; delete and re-create instead.")
        super().save(*args, **kwargs)


class ExpenseType(CommandOwnedModel):
    """Named expense category. Deactivated, never deleted while referenced."""

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=200, unique=True)
    description = models.TextField(blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class DeferredPayment(CommandOwnedModel):
    """
    Amount owed to a beneficiary and paid off in installments.

    paid_amount + remaining_amount == total_amount; status is completed
    exactly when remaining_amount is zero.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "قيد السداد"
        COMPLETED = "completed", "مكتمل"

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    beneficiary_name = models.CharField(max_length=200, db_index=True)
    total_amount = models.DecimalField(**MONEY)
    paid_amount = models.DecimalField(**MONEY, default=Decimal("0.00"))
    remaining_amount = models.DecimalField(**MONEY)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    project = models.ForeignKey(
        Project,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="deferred_payments",
    )
    due_date = models.DateField(null=True, blank=True)
    description = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="deferred_payments",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(total_amount__gt=0),
                name="chk_deferred_total_positive",
            ),
            models.CheckConstraint(
                condition=Q(paid_amount__gte=0) & Q(remaining_amount__gte=0),
                name="chk_deferred_amounts_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(total_amount=F("paid_amount") + F("remaining_amount")),
                name="chk_deferred_paid_plus_remaining",
            ),
            models.CheckConstraint(
                condition=(
                    Q(status="completed", remaining_amount=0)
                    | Q(status="pending", remaining_amount__gt=0)
                ),
                name="chk_deferred_status_matches_remaining",
            ),
        ]

    def __str__(self):
        return f"{self.beneficiary_name}: {self.paid_amount}/{self.total_amount}"


class DeferredPaymentInstallment(CommandOwnedModel):
    """
    One installment paid against a deferred payment.

    transferred_at moves from NULL to a timestamp exactly once, when the
    installment is posted to the ledger as a deferred entry.
    """

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    deferred_payment = models.ForeignKey(
        DeferredPayment,
        on_delete=models.CASCADE,
        related_name="installments",
    )
    amount = models.DecimalField(**MONEY)
    paid_at = models.DateTimeField()
    transferred_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["paid_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="chk_installment_amount_positive",
            ),
        ]

    def __str__(self):
        return f"{self.deferred_payment.beneficiary_name} {self.amount} @ {self.paid_at:%Y-%m-%d}"

    @property
    def is_transferred(self) -> bool:
        return self.transferred_at is not None


class LedgerEntry(CommandOwnedModel):
    """
    Expense ledger posting.

    Exactly one entry exists per posted source: an expense transaction
    (classified or general_expense) or a transferred installment (deferred).
    The unique one-to-one source columns make posting idempotent.
    """

    class EntryType(models.TextChoices):
        CLASSIFIED = "classified", "مصنف"
        GENERAL_EXPENSE = "general_expense", "متفرق"
        DEFERRED = "deferred", "دفعة آجلة"

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    date = models.DateField()
    transaction = models.OneToOneField(
        Transaction,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="ledger_entry",
    )
    installment = models.OneToOneField(
        DeferredPaymentInstallment,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="ledger_entry",
    )
    expense_type = models.ForeignKey(
        ExpenseType,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )
    amount = models.DecimalField(**MONEY)
    description = models.TextField(blank=True, default="")
    project = models.ForeignKey(
        Project,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )
    entry_type = models.CharField(max_length=20, choices=EntryType.choices)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["date", "id"]
        verbose_name_plural = "Ledger entries"
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(transaction__isnull=False, installment__isnull=True)
                    | Q(transaction__isnull=True, installment__isnull=False)
                ),
                name="chk_ledger_entry_single_source",
            ),
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="chk_ledger_entry_amount_positive",
            ),
        ]
        indexes = [
            models.Index(fields=["entry_type", "date"], name="ledger_entry_type_date_idx"),
        ]

    def __str__(self):
        return f"{self.get_entry_type_display()} {self.amount} ({self.date})"
