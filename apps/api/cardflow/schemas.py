from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, StrictInt, field_validator


class CardMoveIn(BaseModel):
  cardId: str = Field(min_length=1, max_length=36)
  sourceListId: str = Field(min_length=1, max_length=36)
  targetListId: str = Field(min_length=1, max_length=36)
  newIndex: StrictInt


class CardBoardMoveIn(BaseModel):
  cardId: str = Field(min_length=1, max_length=36)
  targetBoardId: str = Field(min_length=1, max_length=36)
  targetListId: str = Field(min_length=1, max_length=36)
  newIndex: StrictInt


class CommentCreateIn(BaseModel):
  body: str = Field(min_length=1, max_length=20000)

  @field_validator("body")
  @classmethod
  def _not_blank(cls, v: str) -> str:
    if not v.strip():
      raise ValueError("Comment must not be blank")
    return v


class CommentUpdateIn(CommentCreateIn):
  pass


class ActivityOut(BaseModel):
  id: str
  cardId: str
  userId: str | None
  kind: Literal["ACTION", "COMMENT"]
  category: Literal["MOVE", "ASSIGNMENT", "COMMENT", "MENTION"] | None = None
  description: str
  createdAt: datetime
  updatedAt: datetime | None = None


class AssigneeIn(BaseModel):
  userId: str = Field(min_length=1, max_length=36)
  workloadHours: float | None = Field(default=None, ge=0, le=10000)


class AssigneeOut(BaseModel):
  cardId: str
  userId: str
  assignedBy: str | None
  workloadHours: float | None
  displayOrder: int
  assignedAt: datetime


class NotificationOut(BaseModel):
  id: str
  activityId: str
  cardId: str
  kind: Literal["ACTION", "COMMENT"]
  category: Literal["MOVE", "ASSIGNMENT", "COMMENT", "MENTION"] | None = None
  description: str
  actorId: str | None
  createdAt: datetime
  readAt: datetime | None = None


class UnreadCountOut(BaseModel):
  unreadCount: int


class NotificationPreferencesOut(BaseModel):
  mentions: bool = True
  assignments: bool = True
  comments: bool = True
  moves: bool = True


class NotificationPreferencesIn(BaseModel):
  mentions: bool | None = None
  assignments: bool | None = None
  comments: bool | None = None
  moves: bool | None = None
