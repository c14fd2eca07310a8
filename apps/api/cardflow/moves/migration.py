from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.models import CardAssignment, CardLabel, Label
from cardflow.permissions import board_member_ids


@dataclass(frozen=True)
class MigrationResult:
  removed_assignee_ids: tuple[str, ...] = ()
  removed_label_ids: tuple[str, ...] = ()


async def prune_for_board(db: AsyncSession, *, card_id: str, target_board_id: str) -> MigrationResult:
  """
  Drop the card's assignments and labels that are not valid on `target_board_id`.

  Runs inside the caller's move transaction; nothing is committed here.
  """
  members = await board_member_ids(db, target_board_id)
  lres = await db.execute(select(Label.id).where(Label.board_id == target_board_id))
  board_labels = {row.id for row in lres.all()}

  ares = await db.execute(select(CardAssignment.user_id).where(CardAssignment.card_id == card_id))
  stale_users = sorted(row.user_id for row in ares.all() if row.user_id not in members)
  if stale_users:
    await db.execute(delete(CardAssignment).where(CardAssignment.card_id == card_id, CardAssignment.user_id.in_(stale_users)))

  cres = await db.execute(select(CardLabel.label_id).where(CardLabel.card_id == card_id))
  stale_labels = sorted(row.label_id for row in cres.all() if row.label_id not in board_labels)
  if stale_labels:
    await db.execute(delete(CardLabel).where(CardLabel.card_id == card_id, CardLabel.label_id.in_(stale_labels)))

  if stale_users:
    await renumber_assignees(db, card_id)
  return MigrationResult(removed_assignee_ids=tuple(stale_users), removed_label_ids=tuple(stale_labels))


async def renumber_assignees(db: AsyncSession, card_id: str) -> None:
  """Rewrite assignee display order to 0..N-1, keeping the current order."""
  res = await db.execute(
    select(CardAssignment)
    .where(CardAssignment.card_id == card_id)
    .order_by(CardAssignment.display_order.asc(), CardAssignment.assigned_at.asc())
  )
  for idx, a in enumerate(res.scalars().all()):
    if a.display_order != idx:
      a.display_order = idx
