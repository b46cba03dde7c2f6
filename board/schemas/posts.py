from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PostIn(BaseModel):
    content: str
    username: Optional[str] = None
    parent_id: Optional[int] = None


class PostOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    content: str
    username: str = Field(validation_alias=AliasChoices('username', 'name'))
    created_at: datetime
    parent_id: Optional[int] = None
    likes: int = 0

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None


class PostIdIn(BaseModel):
    id: int


class LikeIn(BaseModel):
    current_likes: int


class SubmitOut(BaseModel):
    post: Optional[PostOut] = None


class EventType(str, Enum):
    INSERT = 'INSERT'
    UPDATE = 'UPDATE'
    DELETE = 'DELETE'
    ALL = '*'


def _now():
    return datetime.now(timezone.utc)


class ChangeEvent(BaseModel):
    """A row-level notification delivered by the change feed"""
    event: EventType
    table: str = 'posts'
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None
    commit_timestamp: datetime = Field(default_factory=_now)

    @property
    def record_id(self) -> Optional[int]:
        row = self.new or self.old or {}
        return row.get('id')
