"""Tests for the login pipeline and account reconciliation."""

import asyncio

import httpx
import pytest
from conftest import InMemoryAccountStore

from gatehouse.auth.errors import ProviderError, StorageError
from gatehouse.auth.groups import GroupResolver
from gatehouse.auth.identity import ExternalProfile
from gatehouse.auth.roles import Role
from gatehouse.config import DirectoryConfig, RoleTiersConfig
from gatehouse.services.login_service import LoginPipeline, reconcile_account

OWNER_GROUP = "1000000000000000001"
ADMIN_GROUP = "1000000000000000002"
STAFF_GROUP = "1000000000000000003"
PERMANENT_OWNER = "80351110224678912"
OTHER_USER = "11111111111111111"


@pytest.fixture
def tiers() -> RoleTiersConfig:
    return RoleTiersConfig(
        owner_group_id=OWNER_GROUP,
        admin_group_id=ADMIN_GROUP,
        staff_group_id=STAFF_GROUP,
    )


@pytest.fixture
def pipeline(identity_provider, group_resolver, tiers) -> LoginPipeline:
    return LoginPipeline(
        identity_provider=identity_provider,
        group_resolver=group_resolver,
        tiers=tiers,
    )


class RacingAccountStore(InMemoryAccountStore):
    """Simulates another login inserting the row right after our first read."""

    def __init__(self, reread_finds_nothing: bool = False) -> None:
        super().__init__()
        self.reread_finds_nothing = reread_finds_nothing
        self._reads = 0

    async def get_by_external_id(self, external_id: str):
        self._reads += 1
        if self._reads == 1:
            self.insert(external_id, "someone#0001", role=Role.MEMBER)
            return None
        if self.reread_finds_nothing:
            return None
        return await super().get_by_external_id(external_id)


def _unavailable_directory() -> GroupResolver:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream connect error")

    return GroupResolver(
        DirectoryConfig(guild_id="613425648685547541", bot_token="bot-secret"),
        api_base_url="https://discord.test/api/v10",
        timeout_seconds=1.0,
        transport=httpx.MockTransport(handler),
    )


class TestHandleCallback:
    async def test_new_account_is_created(self, pipeline, account_store, group_resolver):
        group_resolver.groups = frozenset({STAFF_GROUP})

        account = await pipeline.handle_callback(account_store, "good")

        assert len(account_store.rows) == 1
        assert account.external_id == PERMANENT_OWNER
        assert account.display_name == "nelly#1337"
        assert account.role is Role.STAFF
        assert account_store.commits == 1
        assert group_resolver.lookups == [PERMANENT_OWNER]

    async def test_returning_account_is_updated_in_place(
        self, pipeline, account_store, group_resolver
    ):
        existing = account_store.insert(PERMANENT_OWNER, "old-name", None, Role.MEMBER)
        group_resolver.groups = frozenset({ADMIN_GROUP})

        account = await pipeline.handle_callback(account_store, "good")

        assert account.id == existing.id
        assert len(account_store.rows) == 1
        assert account.display_name == "nelly#1337"
        assert account.avatar_ref == "8342729096ea3675442027381ff50dfe"
        assert account.role is Role.ADMIN

    async def test_repeated_login_is_idempotent(self, pipeline, account_store, group_resolver):
        group_resolver.groups = frozenset({STAFF_GROUP})

        first = await pipeline.handle_callback(account_store, "good")
        second = await pipeline.handle_callback(account_store, "good")

        assert first.id == second.id
        assert len(account_store.rows) == 1
        assert second.role is Role.STAFF

    async def test_fresh_role_replaces_stored_role(self, pipeline, account_store, group_resolver):
        account_store.insert(PERMANENT_OWNER, "nelly#1337", None, Role.ADMIN)
        group_resolver.groups = frozenset()

        account = await pipeline.handle_callback(account_store, "good")

        assert account.role is Role.MEMBER

    async def test_permanent_owner_is_reasserted(self, identity_provider, account_store, tiers):
        account_store.insert(PERMANENT_OWNER, "nelly#1337", None, Role.MEMBER)
        pipeline = LoginPipeline(
            identity_provider=identity_provider,
            group_resolver=_unavailable_directory(),
            tiers=tiers,
            permanent_owner_id=PERMANENT_OWNER,
        )

        account = await pipeline.handle_callback(account_store, "good")

        assert account.role is Role.OWNER

    async def test_directory_outage_still_logs_in_as_member(
        self, account_store, tiers
    ):
        identity_provider = _FixedProvider(ExternalProfile(external_id=OTHER_USER, username="x"))
        pipeline = LoginPipeline(
            identity_provider=identity_provider,
            group_resolver=_unavailable_directory(),
            tiers=tiers,
            permanent_owner_id=PERMANENT_OWNER,
        )

        account = await pipeline.handle_callback(account_store, "good")

        assert account.role is Role.MEMBER
        assert account_store.commits == 1

    async def test_provider_failure_writes_nothing(self, pipeline, account_store, group_resolver):
        with pytest.raises(ProviderError):
            await pipeline.handle_callback(account_store, "bad")

        assert account_store.rows == {}
        assert account_store.commits == 0
        assert group_resolver.lookups == []

    @pytest.mark.parametrize("operation", ["read", "create", "commit"])
    async def test_storage_failure_rolls_back(self, pipeline, account_store, operation):
        account_store.fail_on = operation

        with pytest.raises(StorageError):
            await pipeline.handle_callback(account_store, "good")

        assert account_store.rollbacks == 1
        assert account_store.commits == 0

    async def test_concurrent_first_logins_converge(self, pipeline, account_store, group_resolver):
        group_resolver.groups = frozenset({STAFF_GROUP})

        first, second = await asyncio.gather(
            pipeline.handle_callback(account_store, "good"),
            pipeline.handle_callback(account_store, "good"),
        )

        assert len(account_store.rows) == 1
        assert first.id == second.id
        assert account_store.conflicts == 1
        assert first.role is Role.STAFF


class _FixedProvider:
    def __init__(self, profile: ExternalProfile) -> None:
        self.profile = profile

    @property
    def name(self) -> str:
        return "discord"

    async def exchange_code(self, code: str) -> ExternalProfile:
        return self.profile


class TestReconcileAccount:
    async def test_conflict_is_recovered_as_update(self, profile):
        store = RacingAccountStore()

        account = await reconcile_account(store, profile, Role.ADMIN)

        assert store.conflicts == 1
        assert len(store.rows) == 1
        assert account.display_name == "nelly#1337"
        assert account.role is Role.ADMIN

    async def test_conflict_without_winner_raises(self, profile):
        store = RacingAccountStore(reread_finds_nothing=True)

        with pytest.raises(StorageError):
            await reconcile_account(store, profile, Role.MEMBER)

    async def test_update_failure_propagates(self, account_store, profile):
        account_store.insert(profile.external_id, "nelly#1337")
        account_store.fail_on = "update"

        with pytest.raises(StorageError):
            await reconcile_account(account_store, profile, Role.MEMBER)
