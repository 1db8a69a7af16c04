"""Account listings.

    GET /staff            public staff roster (everyone above member)
    GET /admin/accounts   every account, owner and admin only
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from gatehouse.api.dependencies import get_account_store, require_role
from gatehouse.api.routers.auth import AccountInfo
from gatehouse.auth.roles import ROLE_DESCRIPTIONS, Role
from gatehouse.db.account_store import SqlAccountStore
from gatehouse.db.models import Account

router = APIRouter(tags=["accounts"])


class StaffEntry(BaseModel):
    display_name: str
    role: Role
    description: str


@router.get("/staff", response_model=list[StaffEntry])
async def list_staff(
    store: SqlAccountStore = Depends(get_account_store),
) -> list[StaffEntry]:
    """Staff roster, highest role first."""
    accounts = await store.list_staff()
    return [
        StaffEntry(display_name=a.display_name, role=a.role, description=ROLE_DESCRIPTIONS[a.role])
        for a in accounts
    ]


@router.get("/admin/accounts", response_model=list[AccountInfo])
async def list_accounts(
    store: SqlAccountStore = Depends(get_account_store),
    _admin: Account = Depends(require_role({Role.OWNER, Role.ADMIN})),
) -> list[AccountInfo]:
    """All accounts, newest first."""
    accounts = await store.list_accounts()
    return [AccountInfo.from_account(a) for a in accounts]
