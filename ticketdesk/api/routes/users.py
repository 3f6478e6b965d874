# ticketdesk/api/routes/users.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from ticketdesk.api.deps import CurrentUser, DBDep, require_admin
from ticketdesk.schemas.users import SetRoleRequest, UserOut
from ticketdesk.services import users as directory

router = APIRouter()


@router.get("", response_model=list[UserOut], dependencies=[Depends(require_admin())])
async def list_users(db: DBDep, current: CurrentUser):
    return await directory.fetch_all(db, current)


@router.put("/{user_id}/role", response_model=UserOut, dependencies=[Depends(require_admin())])
async def set_role(user_id: int, payload: SetRoleRequest, db: DBDep, current: CurrentUser):
    return await directory.set_role(db, current, user_id, payload.role)
