from django.contrib.auth.models import AbstractUser, UserManager as DjangoUserManager
from django.db import models
import uuid


class UserManager(DjangoUserManager):
    use_in_migrations = True

    def create_superuser(self, username, email=None, password=None, **extra_fields):
        extra_fields.setdefault("role", User.Role.ADMIN)
        return super().create_superuser(username, email, password, **extra_fields)


class User(AbstractUser):
    """
    Dashboard user.

    `role` selects the default permission set (see accounts.permissions);
    `permissions` holds explicit extra grants. ADMIN implicitly holds every
    permission. `is_active` doubles as the account's enabled flag.
    """

    class Role(models.TextChoices):
        ADMIN = "admin", "مدير النظام"
        MANAGER = "manager", "مدير"
        USER = "user", "مستخدم"

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    name = models.CharField(max_length=150)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.USER)
    permissions = models.JSONField(default=list, blank=True)

    REQUIRED_FIELDS = ["email", "name"]

    objects = UserManager()

    def __str__(self):
        return self.username

    @property
    def is_admin(self) -> bool:
        return self.role == self.Role.ADMIN


class AppSetting(models.Model):
    """
    Key/value settings store.

    Only the keys enumerated in `Key` are accepted; values are validated by
    accounts.commands.set_setting before they reach this table.
    """

    class Key(models.TextChoices):
        COMPANY_NAME = "companyName", "اسم الشركة"
        CURRENCY = "currency", "العملة"
        DATE_FORMAT = "dateFormat", "صيغة التاريخ"
        LANGUAGE = "language", "اللغة"

    key = models.CharField(max_length=50, choices=Key.choices, unique=True)
    value = models.CharField(max_length=255)
    description = models.CharField(max_length=255, blank=True, default="")
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["key"]

    def __str__(self):
        return f"{self.key}={self.value}"
