# accounts/authz.py
"""
Authorization utilities.

Provides:
- ActorContext: Immutable context for the current request
- resolve_actor: Extract actor context from request
- require: Check permissions and raise if not granted

Permissions are checked:
1. By role (ADMIN: implicit allow)
2. MANAGER/USER: role defaults plus explicit grants
"""

from dataclasses import dataclass
from typing import FrozenSet
from django.core.exceptions import PermissionDenied
from rest_framework.exceptions import NotAuthenticated

from accounts.models import User
from accounts.permissions import effective_permissions


@dataclass(frozen=True)
class ActorContext:
    """
    Immutable context for the current actor.

    This is passed to commands and policies to provide context
    about who is performing an action.

    Attributes:
        user: The authenticated user
        perms: Effective permission codes (role defaults + explicit grants)
    """
    user: User
    perms: FrozenSet[str]

    def has(self, code: str) -> bool:
        if not self.user.is_active:
            return False
        if self.user.role == User.Role.ADMIN:
            return True
        return code in self.perms

    @property
    def is_admin(self) -> bool:
        return self.user.role == User.Role.ADMIN

    @property
    def role(self) -> str:
        return self.user.role


def actor_for(user: User) -> ActorContext:
    """Build an ActorContext for a user (fresh permission lookup)."""
    return ActorContext(user=user, perms=effective_permissions(user))


def resolve_actor(request) -> ActorContext:
    """
    Extract ActorContext from the current request.

    The user row is reloaded so that role and permission changes take
    effect on the next request.

    Raises:
        NotAuthenticated: If user is not authenticated
        PermissionDenied: If the user account is disabled
    """
    user = getattr(request, "user", None)

    if not user or not user.is_authenticated:
        raise NotAuthenticated("Authentication required.")

    user = User.objects.get(pk=user.pk)
    if not user.is_active:
        raise PermissionDenied("This account is disabled.")

    return actor_for(user)


def require(actor: ActorContext, code: str) -> None:
    """
    Require that the actor has a specific permission.

    Raises:
        PermissionDenied: If permission is not granted

    Example:
        require(actor, "transactions.create")
    """
    if not actor.has(code):
        raise PermissionDenied(f"Permission denied: {code}")
