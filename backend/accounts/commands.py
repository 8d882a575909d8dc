# accounts/commands.py
"""
Command layer for users and settings.

ALL security-relevant mutations MUST go through these commands:
- User creation/updates (role, permissions, active flag)
- Password changes
- Settings changes

This ensures:
1. Consistent validation
2. Audit trail via events
3. Single point of enforcement
"""

import logging
import uuid

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db import transaction

from accounts.authz import ActorContext, require
from accounts.models import AppSetting
from accounts.permissions import ALL_PERMISSIONS
from events.emitter import emit_event
from events.types import (
    EventTypes,
    UserCreatedData,
    UserUpdatedData,
    SettingChangedData,
)
from ledger.errors import CommandResult, ErrorCode, store_guard


logger = logging.getLogger(__name__)

User = get_user_model()


DATE_FORMATS = ("DD/MM/YYYY", "MM/DD/YYYY", "YYYY-MM-DD", "DD-MM-YYYY")
LANGUAGES = ("ar", "en")


def _validate_setting(key: str, value: str) -> str:
    """Return an error message, or "" when the value is acceptable for key."""
    if key not in AppSetting.Key.values:
        return f"Unknown setting '{key}'."
    if not value:
        return "Value is required."
    if key == AppSetting.Key.COMPANY_NAME and len(value) > 200:
        return "Company name is too long."
    if key == AppSetting.Key.CURRENCY and len(value) > 10:
        return "Currency symbol is too long."
    if key == AppSetting.Key.DATE_FORMAT and value not in DATE_FORMATS:
        return f"Date format must be one of {', '.join(DATE_FORMATS)}."
    if key == AppSetting.Key.LANGUAGE and value not in LANGUAGES:
        return f"Language must be one of {', '.join(LANGUAGES)}."
    return ""


def _invalid_permissions(permissions) -> list:
    return sorted(set(permissions or []) - ALL_PERMISSIONS)


# =============================================================================
# User Commands
# =============================================================================

@store_guard
@transaction.atomic
def create_user(
    actor: ActorContext,
    username: str,
    password: str,
    name: str,
    email: str = "",
    role: str = User.Role.USER,
    permissions: list = None,
) -> CommandResult:
    """
    Create a dashboard user.

    Returns:
        CommandResult with the created User
    """
    require(actor, "users.manage")

    username = (username or "").strip()
    if not username:
        return CommandResult.fail("Username is required.")
    if User.objects.filter(username=username).exists():
        return CommandResult.fail(f"Username '{username}' already exists.", code=ErrorCode.DUPLICATE_NAME)
    if role not in User.Role.values:
        return CommandResult.fail(f"Invalid role '{role}'.")
    invalid = _invalid_permissions(permissions)
    if invalid:
        return CommandResult.fail(f"Unknown permissions: {invalid}")

    try:
        validate_password(password)
    except ValidationError as exc:
        return CommandResult.fail(" ".join(exc.messages))

    user = User.objects.create_user(
        username=username,
        email=email or "",
        password=password,
        name=name,
        role=role,
        permissions=sorted(set(permissions or [])),
    )

    event = emit_event(
        actor,
        EventTypes.USER_CREATED,
        aggregate_type="User",
        aggregate_id=user.public_id,
        data=UserCreatedData(
            user_public_id=str(user.public_id),
            username=user.username,
            name=user.name,
            role=user.role,
            email=user.email,
        ),
        idempotency_key=f"user.created:{user.public_id}",
    )

    logger.info("User created", extra={"user_id": user.id, "role": user.role})
    return CommandResult.ok(user, event=event)


@store_guard
@transaction.atomic
def update_user(actor: ActorContext, user_id: int, **updates) -> CommandResult:
    """
    Update a user's profile, role, permissions or active flag.

    Users can update their own name and email; everything else, and
    other users, requires users.manage.

    Returns:
        CommandResult with the updated User
    """
    try:
        target = User.objects.select_for_update().get(pk=user_id)
    except User.DoesNotExist:
        return CommandResult.fail("User not found.", code=ErrorCode.NOT_FOUND)

    profile_fields = {"name", "email"}
    admin_fields = {"role", "permissions", "is_active"}

    is_self = actor.user.id == target.id
    if not is_self or set(updates) & admin_fields:
        require(actor, "users.manage")

    if "role" in updates and updates["role"] not in User.Role.values:
        return CommandResult.fail(f"Invalid role '{updates['role']}'.")
    if "permissions" in updates:
        invalid = _invalid_permissions(updates["permissions"])
        if invalid:
            return CommandResult.fail(f"Unknown permissions: {invalid}")
        updates["permissions"] = sorted(set(updates["permissions"]))
    if is_self and updates.get("is_active") is False:
        return CommandResult.fail("You cannot deactivate your own account.")

    changes = {}
    for field, value in updates.items():
        if field not in profile_fields | admin_fields:
            continue
        old = getattr(target, field)
        if old != value:
            changes[field] = {"old": old, "new": value}
            setattr(target, field, value)

    if not changes:
        return CommandResult.ok(target)

    target.save(update_fields=list(changes.keys()))

    event = emit_event(
        actor,
        EventTypes.USER_UPDATED,
        aggregate_type="User",
        aggregate_id=target.public_id,
        data=UserUpdatedData(user_public_id=str(target.public_id), changes=changes),
        idempotency_key=f"user.updated:{target.public_id}:{uuid.uuid4()}",
    )
    return CommandResult.ok(target, event=event)


@store_guard
@transaction.atomic
def set_user_password(actor: ActorContext, user_id: int, new_password: str) -> CommandResult:
    """Change a password (self, or any user with users.manage)."""
    try:
        target = User.objects.select_for_update().get(pk=user_id)
    except User.DoesNotExist:
        return CommandResult.fail("User not found.", code=ErrorCode.NOT_FOUND)

    if actor.user.id != target.id:
        require(actor, "users.manage")

    try:
        validate_password(new_password, user=target)
    except ValidationError as exc:
        return CommandResult.fail(" ".join(exc.messages))

    target.set_password(new_password)
    target.save(update_fields=["password"])

    event = emit_event(
        actor,
        EventTypes.USER_UPDATED,
        aggregate_type="User",
        aggregate_id=target.public_id,
        data=UserUpdatedData(
            user_public_id=str(target.public_id),
            changes={"password": {"old": "***", "new": "***"}},
        ),
        idempotency_key=f"user.password_changed:{target.public_id}:{uuid.uuid4()}",
    )
    return CommandResult.ok(target, event=event)


# =============================================================================
# Settings Commands
# =============================================================================

@store_guard
@transaction.atomic
def set_setting(actor: ActorContext, key: str, value: str) -> CommandResult:
    """
    Set one of the enumerated settings.

    Returns:
        CommandResult with the AppSetting row
    """
    require(actor, "settings.manage")

    value = (value or "").strip()
    error = _validate_setting(key, value)
    if error:
        code = ErrorCode.NOT_FOUND if key not in AppSetting.Key.values else ErrorCode.VALIDATION_ERROR
        return CommandResult.fail(error, code=code)

    setting = AppSetting.objects.select_for_update().filter(key=key).first()
    old_value = setting.value if setting else None
    if setting is None:
        setting = AppSetting(key=key, description=AppSetting.Key(key).label)
    elif old_value == value:
        return CommandResult.ok(setting)

    setting.value = value
    setting.save()

    event = emit_event(
        actor,
        EventTypes.SETTING_CHANGED,
        aggregate_type="Setting",
        aggregate_id=key,
        data=SettingChangedData(key=key, new_value=value, old_value=old_value),
        idempotency_key=f"setting.changed:{key}:{uuid.uuid4()}",
    )
    return CommandResult.ok(setting, event=event)
