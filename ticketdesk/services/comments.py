# ticketdesk/services/comments.py
from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from ticketdesk.core.config import Settings
from ticketdesk.db.models import Comment, User
from ticketdesk.schemas.comments import CommentCreate
from ticketdesk.services.policy import Operation
from ticketdesk.services.tickets import get_ticket_for

log = logging.getLogger(__name__)


async def add_comment(
    db: AsyncSession, settings: Settings, actor: User, ticket_id: int, payload: CommentCreate
) -> Comment:
    t = await get_ticket_for(db, settings, actor, ticket_id, Operation.comment)

    c = Comment(ticket_id=t.id, author_id=actor.id, text=payload.text)
    db.add(c)
    await db.commit()
    log.info("comment_added", extra={"ticket_id": t.id, "comment_id": c.id, "author_id": actor.id})

    res = await db.execute(
        select(Comment)
        .options(joinedload(Comment.author))
        .where(Comment.id == c.id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one()


async def list_comments(db: AsyncSession, settings: Settings, actor: User, ticket_id: int) -> Sequence[Comment]:
    t = await get_ticket_for(db, settings, actor, ticket_id, Operation.comment)
    q = (
        select(Comment)
        .options(joinedload(Comment.author))
        .where(Comment.ticket_id == t.id)
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    return (await db.execute(q)).scalars().all()
