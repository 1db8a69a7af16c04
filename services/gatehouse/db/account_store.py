"""Account persistence.

The login reconciler talks to an AccountStore rather than to a database
handle. SqlAccountStore is the production implementation over the
request's AsyncSession; it turns SQLAlchemy failures into the login
error taxonomy (AccountConflict for a duplicate external_id, StorageError
for everything else).
"""

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.auth.errors import AccountConflict, StorageError
from gatehouse.auth.roles import Role, precedence
from gatehouse.db.models import Account, utc_now
from gatehouse.logging_config import get_logger

logger = get_logger(__name__)


class AccountStore(Protocol):
    """Exact-match access to the accounts table."""

    async def get_by_external_id(self, external_id: str) -> Account | None: ...

    async def get_by_id(self, account_id: int) -> Account | None: ...

    async def create(
        self,
        *,
        external_id: str,
        display_name: str,
        avatar_ref: str | None,
        role: Role,
    ) -> Account:
        """Insert a new account. Raises AccountConflict if external_id exists."""
        ...

    async def update_login(
        self,
        account: Account,
        *,
        display_name: str,
        avatar_ref: str | None,
        role: Role,
    ) -> Account: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


class SqlAccountStore:
    """AccountStore backed by an async SQLAlchemy session."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get_by_external_id(self, external_id: str) -> Account | None:
        try:
            result = await self._db.execute(
                select(Account).where(Account.external_id == external_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load account {external_id}") from e

    async def get_by_id(self, account_id: int) -> Account | None:
        try:
            return await self._db.get(Account, account_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load account id {account_id}") from e

    async def create(
        self,
        *,
        external_id: str,
        display_name: str,
        avatar_ref: str | None,
        role: Role,
    ) -> Account:
        account = Account(
            external_id=external_id,
            display_name=display_name,
            avatar_ref=avatar_ref,
            role=role,
        )
        # Savepoint so a unique violation leaves the outer transaction usable
        # for the follow-up read.
        try:
            async with self._db.begin_nested():
                self._db.add(account)
                await self._db.flush()
        except IntegrityError as e:
            logger.info("Account insert conflicted", external_id=external_id)
            raise AccountConflict(external_id) from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create account {external_id}") from e
        return account

    async def update_login(
        self,
        account: Account,
        *,
        display_name: str,
        avatar_ref: str | None,
        role: Role,
    ) -> Account:
        account.display_name = display_name
        account.avatar_ref = avatar_ref
        account.role = role
        account.updated_at = utc_now()
        try:
            await self._db.flush()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update account {account.external_id}") from e
        return account

    async def commit(self) -> None:
        try:
            await self._db.commit()
        except SQLAlchemyError as e:
            raise StorageError("Failed to commit account changes") from e

    async def rollback(self) -> None:
        await self._db.rollback()

    async def list_staff(self) -> list[Account]:
        """Accounts above member, highest role first."""
        result = await self._db.execute(select(Account).where(Account.role != Role.MEMBER))
        accounts = list(result.scalars().all())
        accounts.sort(key=lambda a: (precedence(a.role), a.display_name.lower()))
        return accounts

    async def list_accounts(self) -> list[Account]:
        """All accounts, newest first."""
        result = await self._db.execute(
            select(Account).order_by(Account.created_at.desc(), Account.id.desc())
        )
        return list(result.scalars().all())
