from fastapi import APIRouter, status

from ticketdesk.api.deps import CurrentUser, DBDep, SettingsDep
from ticketdesk.schemas.comments import CommentCreate, CommentOut
from ticketdesk.services import comments as svc

router = APIRouter()

@router.post("/{ticket_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def add_comment(ticket_id: int, payload: CommentCreate, db: DBDep, settings: SettingsDep, current: CurrentUser):
    return await svc.add_comment(db, settings, current, ticket_id, payload)

@router.get("/{ticket_id}/comments", response_model=list[CommentOut])
async def list_comments(ticket_id: int, db: DBDep, settings: SettingsDep, current: CurrentUser):
    return await svc.list_comments(db, settings, current, ticket_id)
