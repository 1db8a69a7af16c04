"""Authorization checks used by protected routes.

Role checks are flat: an account passes only if its own role is listed.
No tier implies another, so owner does not pass a route that allows only
admin. Every route enumerates every role it accepts.
"""

from collections.abc import Collection
from typing import Any

from gatehouse.auth.roles import Role, parse_role


def is_authenticated(principal: Any) -> bool:
    """True when a session resolved to an account (or account id)."""
    return principal is not None


def validate_allowed_roles(allowed_roles: Collection[Role]) -> frozenset[Role]:
    """Freeze an allow-list, rejecting anything that is not a Role member."""
    invalid = [r for r in allowed_roles if not isinstance(r, Role)]
    if invalid:
        raise TypeError(f"Allowed roles must be Role members, got {invalid!r}")
    if not allowed_roles:
        raise ValueError("Allowed roles must not be empty")
    return frozenset(allowed_roles)


def has_role(account: Any, allowed_roles: Collection[Role]) -> bool:
    """Plain membership test of the account's role in the allow-list.

    Raises ValueError if the account carries a role string outside the
    closed Role set, and TypeError if the allow-list holds non-Role values.
    """
    allowed = validate_allowed_roles(allowed_roles)
    return parse_role(account.role) in allowed
