# accounts/permissions.py
"""
Permission codes and role defaults.

ADMIN holds every permission implicitly (see ActorContext.has), so its
entry here only documents the full set.
"""

ALL_PERMISSIONS = frozenset({
    "transactions.view",
    "transactions.create",
    "transactions.delete",
    "projects.view",
    "projects.manage",
    "ledger.view",
    "ledger.manage",
    "deferred.view",
    "deferred.manage",
    "funds.manage",
    "users.manage",
    "settings.manage",
    "reports.view",
})

ROLE_DEFAULTS = {
    "admin": ALL_PERMISSIONS,
    "manager": ALL_PERMISSIONS - {"users.manage", "settings.manage", "funds.manage"},
    "user": frozenset({
        "transactions.view",
        "transactions.create",
        "projects.view",
        "ledger.view",
        "deferred.view",
        "reports.view",
    }),
}


def effective_permissions(user) -> frozenset:
    """Role defaults plus the user's explicit grants."""
    explicit = frozenset(code for code in (user.permissions or []) if code in ALL_PERMISSIONS)
    return ROLE_DEFAULTS.get(user.role, frozenset()) | explicit
