from __future__ import annotations

import enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.errors import PermissionDeniedError
from cardflow.models import Board, BoardMember


class PermissionAction(str, enum.Enum):
  VIEW_BOARD = "can_view"
  CREATE_CARDS = "can_create_cards"
  EDIT_CARDS = "can_edit_cards"
  MOVE_CARDS = "can_move_cards"
  DELETE_CARDS = "can_delete_cards"
  MANAGE_LABELS = "can_manage_labels"


_ROLE_FLAGS: dict[str, set[PermissionAction]] = {
  "viewer": {PermissionAction.VIEW_BOARD},
  "member": {
    PermissionAction.VIEW_BOARD,
    PermissionAction.CREATE_CARDS,
    PermissionAction.EDIT_CARDS,
    PermissionAction.MOVE_CARDS,
  },
  "admin": set(PermissionAction),
}


def member_flags_for_role(role: str) -> dict[str, bool]:
  """Column values for a new BoardMember row with the given role."""
  granted = _ROLE_FLAGS.get(role, _ROLE_FLAGS["viewer"])
  return {a.value: (a in granted) for a in PermissionAction}


async def has_permission(db: AsyncSession, user_id: str, board_id: str, action: PermissionAction) -> bool:
  bres = await db.execute(select(Board.owner_id).where(Board.id == board_id))
  owner_id = bres.scalar_one_or_none()
  if owner_id is None:
    return False
  if owner_id == user_id:
    return True
  mres = await db.execute(select(BoardMember).where(BoardMember.board_id == board_id, BoardMember.user_id == user_id))
  m = mres.scalar_one_or_none()
  if not m:
    return False
  return bool(getattr(m, action.value, False))


async def require_permission(db: AsyncSession, user_id: str, board_id: str, action: PermissionAction) -> None:
  if not await has_permission(db, user_id, board_id, action):
    raise PermissionDeniedError(f"Missing permission {action.value} on board")


async def board_member_ids(db: AsyncSession, board_id: str) -> set[str]:
  """Users that belong to the board: explicit members plus the owner."""
  res = await db.execute(select(BoardMember.user_id).where(BoardMember.board_id == board_id))
  ids = {row.user_id for row in res.all()}
  ores = await db.execute(select(Board.owner_id).where(Board.id == board_id))
  owner_id = ores.scalar_one_or_none()
  if owner_id:
    ids.add(owner_id)
  return ids
