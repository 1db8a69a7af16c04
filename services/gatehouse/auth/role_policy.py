"""Guild-roles-to-site-role mapper.

Each site tier is bound to at most one Discord role ID. The highest tier
present in the member's guild roles wins; nothing matching means member.
The permanent-owner override is applied on top as a separate, logged step.
"""

from collections.abc import Iterable

from gatehouse.auth.roles import DEFAULT_ROLE, Role
from gatehouse.config import RoleTiersConfig
from gatehouse.logging_config import get_logger

logger = get_logger(__name__)


def tier_table(tiers: RoleTiersConfig) -> list[tuple[Role, str]]:
    """Configured (role, group id) pairs, highest precedence first.

    Tiers with an empty group id are left out entirely.
    """
    pairs = [
        (Role.OWNER, tiers.owner_group_id),
        (Role.ADMIN, tiers.admin_group_id),
        (Role.STAFF, tiers.staff_group_id),
        (Role.APPLICATIONS, tiers.applications_group_id),
    ]
    return [(role, group_id) for role, group_id in pairs if group_id]


def map_groups_to_role(group_ids: Iterable[str], tiers: RoleTiersConfig) -> Role:
    """Return the highest tier whose group ID is present, else member."""
    present = frozenset(group_ids)
    for role, group_id in tier_table(tiers):
        if group_id in present:
            logger.debug("Role tier matched", role=str(role), group_id=group_id)
            return role
    return DEFAULT_ROLE


def apply_permanent_owner_override(
    role: Role,
    external_id: str,
    permanent_owner_id: str,
) -> Role:
    """Escalate the permanent owner from member to owner.

    Guards against total lockout when the guild integration is down or
    misconfigured. Only a member result is escalated.
    """
    if role is Role.MEMBER and permanent_owner_id and external_id == permanent_owner_id:
        logger.info("Permanent owner override applied", external_id=external_id)
        return Role.OWNER
    return role


def map_role(
    group_ids: Iterable[str],
    external_id: str,
    tiers: RoleTiersConfig,
    permanent_owner_id: str = "",
) -> Role:
    """Map a guild membership snapshot to exactly one site role.

    Args:
        group_ids: Discord role IDs the member currently holds.
        external_id: Discord user ID of the member.
        tiers: Group ID per site tier.
        permanent_owner_id: Discord user ID that is always entitled to owner.

    Returns:
        The resulting Role.
    """
    role = map_groups_to_role(group_ids, tiers)
    return apply_permanent_owner_override(role, external_id, permanent_owner_id)
