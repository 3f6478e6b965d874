from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ticketdesk.schemas.users import UserBrief

class CommentCreate(BaseModel):
    text: str = Field(min_length=1, max_length=10_000)

    @field_validator("text", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

class CommentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: int
    author_id: int
    author: UserBrief
    text: str
    created_at: datetime
