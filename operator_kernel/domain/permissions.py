"""
Role-based permission matrix for the back office.

Permissions use ``resource:action`` names.  ADMIN holds the wildcard.

Example:
    has_permission(Role.ACCOUNTANT, "operator:approve")  # True
    has_permission(Role.SELLER, "operator:lock")         # False
"""

from operator_kernel.domain.values import Role

WILDCARD = "*"

PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.ADMIN: frozenset({WILDCARD}),
    Role.SELLER: frozenset({
        "request:view",
        "request:create",
        "request:edit_own",
        "operator:view",
    }),
    Role.OPERATOR: frozenset({
        "request:view",
        "operator:view",
        "operator:claim",
        "operator:edit_claimed",
        "operator:archive",
    }),
    Role.ACCOUNTANT: frozenset({
        "request:view",
        "operator:view",
        "operator:approve",
        "operator:lock",
        "operator:archive",
        "revenue:view",
        "revenue:manage",
        "expense:view",
        "expense:manage",
        "supplier:view",
        "supplier:manage",
    }),
}


def has_permission(role: Role, permission: str) -> bool:
    """True if ``role`` grants ``permission`` (ADMIN always does)."""
    granted = PERMISSIONS.get(role)
    if not granted:
        return False
    return WILDCARD in granted or permission in granted


def get_permissions(role: Role) -> frozenset[str]:
    """All permissions of a role (empty for unknown roles)."""
    return PERMISSIONS.get(role, frozenset())
