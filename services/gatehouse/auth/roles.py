"""Site roles.

Roles exist as code, not database rows. The set is closed and ordered:
ROLE_PRECEDENCE lists them highest first. Access checks never infer a
hierarchy from that order; it is only used to pick one role out of many
guild memberships and to sort listings.
"""

from enum import StrEnum


class Role(StrEnum):
    """Internal permission tier stored on every account."""

    OWNER = "owner"
    ADMIN = "admin"
    STAFF = "staff"
    APPLICATIONS = "applications"
    MEMBER = "member"


ROLE_PRECEDENCE: tuple[Role, ...] = (
    Role.OWNER,
    Role.ADMIN,
    Role.STAFF,
    Role.APPLICATIONS,
    Role.MEMBER,
)

DEFAULT_ROLE = Role.MEMBER

ROLE_DESCRIPTIONS: dict[Role, str] = {
    Role.OWNER: "Community owner",
    Role.ADMIN: "Manages staff and site settings",
    Role.STAFF: "Community staff",
    Role.APPLICATIONS: "Reviews membership applications",
    Role.MEMBER: "Signed-in member with no staff duties",
}


def parse_role(value: str | Role) -> Role:
    """Convert a stored value to a Role. Unknown strings raise ValueError."""
    if isinstance(value, Role):
        return value
    return Role(value)


def precedence(role: Role) -> int:
    """Sort key: 0 for owner, increasing towards member."""
    return ROLE_PRECEDENCE.index(role)
