"""
Top-level test configuration for Gatehouse.
"""

import asyncio
import os

import pytest

# Ensure test-friendly defaults
os.environ.setdefault("GATEHOUSE_JSON_LOGS", "false")
os.environ.setdefault("GATEHOUSE_LOG_LEVEL", "DEBUG")

from gatehouse.auth.errors import AccountConflict, ProviderError, StorageError  # noqa: E402
from gatehouse.auth.identity import (  # noqa: E402
    AuthorizationRequest,
    ExternalProfile,
    IdentityProvider,
)
from gatehouse.auth.roles import Role  # noqa: E402
from gatehouse.db.models import Account, utc_now  # noqa: E402


class InMemoryAccountStore:
    """AccountStore double with a unique index on external_id.

    Every call yields to the event loop first so concurrent logins
    interleave the way they would against a real database.
    """

    def __init__(self) -> None:
        self.rows: dict[int, Account] = {}
        self.commits = 0
        self.rollbacks = 0
        self.conflicts = 0
        self.fail_on: str | None = None
        self._next_id = 1

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise StorageError(f"simulated {operation} failure")

    async def get_by_external_id(self, external_id: str) -> Account | None:
        await asyncio.sleep(0)
        self._maybe_fail("read")
        return next((a for a in self.rows.values() if a.external_id == external_id), None)

    async def get_by_id(self, account_id: int) -> Account | None:
        await asyncio.sleep(0)
        self._maybe_fail("read")
        return self.rows.get(account_id)

    async def create(
        self,
        *,
        external_id: str,
        display_name: str,
        avatar_ref: str | None,
        role: Role,
    ) -> Account:
        await asyncio.sleep(0)
        self._maybe_fail("create")
        if any(a.external_id == external_id for a in self.rows.values()):
            self.conflicts += 1
            raise AccountConflict(external_id)
        return self.insert(external_id, display_name, avatar_ref, role)

    def insert(
        self,
        external_id: str,
        display_name: str,
        avatar_ref: str | None = None,
        role: Role = Role.MEMBER,
    ) -> Account:
        now = utc_now()
        account = Account(
            id=self._next_id,
            external_id=external_id,
            display_name=display_name,
            avatar_ref=avatar_ref,
            role=role,
            created_at=now,
            updated_at=now,
        )
        self.rows[account.id] = account
        self._next_id += 1
        return account

    async def update_login(
        self,
        account: Account,
        *,
        display_name: str,
        avatar_ref: str | None,
        role: Role,
    ) -> Account:
        await asyncio.sleep(0)
        self._maybe_fail("update")
        account.display_name = display_name
        account.avatar_ref = avatar_ref
        account.role = role
        account.updated_at = utc_now()
        return account

    async def commit(self) -> None:
        self._maybe_fail("commit")
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    async def list_staff(self) -> list[Account]:
        return [a for a in self.rows.values() if a.role is not Role.MEMBER]

    async def list_accounts(self) -> list[Account]:
        return sorted(self.rows.values(), key=lambda a: a.id, reverse=True)


class FakeIdentityProvider(IdentityProvider):
    """Returns a fixed profile, or raises ProviderError for code 'bad'."""

    def __init__(self, profile: ExternalProfile) -> None:
        self.profile = profile
        self.codes: list[str] = []

    @property
    def name(self) -> str:
        return "discord"

    def build_authorization_request(self, state: str) -> AuthorizationRequest:
        return AuthorizationRequest(
            authorize_url=f"https://discord.test/oauth2/authorize?state={state}",
            state=state,
        )

    async def exchange_code(self, code: str) -> ExternalProfile:
        await asyncio.sleep(0)
        self.codes.append(code)
        if code == "bad":
            raise ProviderError("invalid_grant")
        return self.profile


class StaticGroupResolver:
    """Group resolver double returning a fixed snapshot."""

    def __init__(self, groups: set[str] | None = None) -> None:
        self.groups = frozenset(groups or ())
        self.lookups: list[str] = []

    async def fetch_groups(self, external_id: str) -> frozenset[str]:
        await asyncio.sleep(0)
        self.lookups.append(external_id)
        return self.groups


@pytest.fixture
def account_store() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def profile() -> ExternalProfile:
    return ExternalProfile(
        external_id="80351110224678912",
        username="nelly",
        discriminator="1337",
        avatar_ref="8342729096ea3675442027381ff50dfe",
    )


@pytest.fixture
def identity_provider(profile: ExternalProfile) -> FakeIdentityProvider:
    return FakeIdentityProvider(profile)


@pytest.fixture
def group_resolver() -> StaticGroupResolver:
    """Empty snapshot by default; tests assign .groups as needed."""
    return StaticGroupResolver()
