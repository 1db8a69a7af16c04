"""Login service: from Discord callback to a reconciled account.

Handles the business logic of every login:
1. Exchange the authorization code for a verified Discord profile
2. Fetch the member's guild roles (best-effort, empty on failure)
3. Map guild roles to one site role
4. Upsert the local account

Each stage awaits the previous one; there is no parallelism inside a
login. Concurrent logins for the same brand-new Discord user are resolved
by the accounts table's unique constraint: the loser of the insert race
re-reads the winner's row and updates it instead.

Role policy for returning accounts: the freshly computed role always
replaces the stored one. Guild membership is the source of truth, and
the permanent-owner override is part of the policy output, so it is
re-asserted on every login.
"""

from dataclasses import dataclass

from gatehouse.auth.discord import DiscordConnector
from gatehouse.auth.errors import AccountConflict, StorageError
from gatehouse.auth.groups import GroupResolver
from gatehouse.auth.identity import ExternalProfile, IdentityProvider
from gatehouse.auth.role_policy import map_role
from gatehouse.auth.roles import Role
from gatehouse.config import RoleTiersConfig, Settings
from gatehouse.db.account_store import AccountStore
from gatehouse.db.models import Account
from gatehouse.logging_config import get_logger

logger = get_logger(__name__)


async def reconcile_account(
    store: AccountStore,
    profile: ExternalProfile,
    role: Role,
) -> Account:
    """Find-or-create the account for a profile and apply the fresh state.

    Args:
        store: Account persistence for the current request.
        profile: Verified profile from the identity provider.
        role: Role computed from the member's current guild roles.

    Returns:
        The created or updated Account.

    Raises:
        StorageError: on any persistence failure other than the
            duplicate-create race, which is recovered here.
    """
    account = await store.get_by_external_id(profile.external_id)

    if account is None:
        try:
            account = await store.create(
                external_id=profile.external_id,
                display_name=profile.display_name,
                avatar_ref=profile.avatar_ref,
                role=role,
            )
        except AccountConflict:
            # A concurrent login created the row between our read and insert.
            logger.info(
                "Concurrent first login detected, updating existing account",
                external_id=profile.external_id,
            )
            account = await store.get_by_external_id(profile.external_id)
            if account is None:
                raise StorageError(
                    f"Account for {profile.external_id} conflicted but could not be read"
                ) from None
        else:
            logger.info(
                "Account created",
                account_id=account.id,
                external_id=profile.external_id,
                role=str(role),
            )
            return account

    previous_role = account.role
    account = await store.update_login(
        account,
        display_name=profile.display_name,
        avatar_ref=profile.avatar_ref,
        role=role,
    )
    if previous_role != role:
        logger.info(
            "Account role changed",
            account_id=account.id,
            external_id=profile.external_id,
            previous_role=str(previous_role),
            role=str(role),
        )
    return account


@dataclass
class LoginPipeline:
    """The collaborators of one login, built once at startup."""

    identity_provider: IdentityProvider
    group_resolver: GroupResolver
    tiers: RoleTiersConfig
    permanent_owner_id: str = ""

    async def handle_callback(self, store: AccountStore, code: str) -> Account:
        """Run a full login for an authorization code.

        Raises:
            ProviderError: the code exchange failed. Nothing is written.
            StorageError: the account could not be persisted. Changes
                are rolled back.
        """
        profile = await self.identity_provider.exchange_code(code)

        groups = await self.group_resolver.fetch_groups(profile.external_id)
        role = map_role(groups, profile.external_id, self.tiers, self.permanent_owner_id)

        logger.info(
            "Login: role resolved",
            provider=self.identity_provider.name,
            external_id=profile.external_id,
            group_count=len(groups),
            role=str(role),
        )

        try:
            account = await reconcile_account(store, profile, role)
            await store.commit()
        except StorageError:
            await store.rollback()
            raise

        return account


def build_login_pipeline(config: Settings) -> LoginPipeline:
    """Wire the production login pipeline from settings."""
    return LoginPipeline(
        identity_provider=DiscordConnector(config.discord),
        group_resolver=GroupResolver(
            config.directory,
            api_base_url=config.discord.api_base_url,
            timeout_seconds=config.discord.http_timeout_seconds,
        ),
        tiers=config.roles,
        permanent_owner_id=config.auth.permanent_owner_id,
    )
