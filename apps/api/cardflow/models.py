from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Enum, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


JsonDict = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
  pass


class ActivityKind(str, enum.Enum):
  ACTION = "ACTION"
  COMMENT = "COMMENT"


class ActivityCategory(str, enum.Enum):
  MOVE = "MOVE"
  ASSIGNMENT = "ASSIGNMENT"
  COMMENT = "COMMENT"
  MENTION = "MENTION"


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  role: Mapped[str] = mapped_column(String, nullable=False, default="member")
  notification_prefs: Mapped[dict[str, Any]] = mapped_column(JsonDict, nullable=False, default=dict)
  active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class ApiToken(Base):
  __tablename__ = "api_tokens"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  token_hash: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Board(Base):
  __tablename__ = "boards"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  name: Mapped[str] = mapped_column(String, nullable=False)
  owner_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class BoardMember(Base):
  __tablename__ = "board_members"
  __table_args__ = (UniqueConstraint("board_id", "user_id", name="ux_board_member_board_user"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id", ondelete="CASCADE"), nullable=False)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  role: Mapped[str] = mapped_column(String, nullable=False, default="member")  # viewer | member | admin
  can_view: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  can_create_cards: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  can_edit_cards: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  can_move_cards: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  can_delete_cards: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  can_manage_labels: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class BoardList(Base):
  __tablename__ = "lists"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Card(Base):
  __tablename__ = "cards"
  __table_args__ = (Index("ix_cards_list_position", "list_id", "position"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  list_id: Mapped[str] = mapped_column(String(36), ForeignKey("lists.id", ondelete="CASCADE"), nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  project_id: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class CardAssignment(Base):
  __tablename__ = "card_assignments"
  __table_args__ = (UniqueConstraint("card_id", "user_id", name="ux_card_assignments_card_user"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  card_id: Mapped[str] = mapped_column(String(36), ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  assigned_by: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
  workload_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
  display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Label(Base):
  __tablename__ = "labels"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  color: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class CardLabel(Base):
  __tablename__ = "card_labels"
  __table_args__ = (UniqueConstraint("card_id", "label_id", name="ux_card_labels_card_label"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  card_id: Mapped[str] = mapped_column(String(36), ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True)
  label_id: Mapped[str] = mapped_column(String(36), ForeignKey("labels.id", ondelete="CASCADE"), nullable=False, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class CardActivity(Base):
  __tablename__ = "card_activity"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  card_id: Mapped[str] = mapped_column(String(36), ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True)
  user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
  kind: Mapped[ActivityKind] = mapped_column(Enum(ActivityKind, native_enum=False, length=16), nullable=False)
  category: Mapped[ActivityCategory | None] = mapped_column(Enum(ActivityCategory, native_enum=False, length=16), nullable=True)
  description: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Notification(Base):
  __tablename__ = "notifications"
  __table_args__ = (UniqueConstraint("user_id", "activity_id", name="ux_notifications_user_activity"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  activity_id: Mapped[str] = mapped_column(String(36), ForeignKey("card_activity.id", ondelete="CASCADE"), nullable=False)
  # Category the user was notified under; a mention inside a comment is MENTION.
  category: Mapped[ActivityCategory | None] = mapped_column(Enum(ActivityCategory, native_enum=False, length=16), nullable=True)
  read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
