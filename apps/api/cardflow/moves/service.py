from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import DBAPIError, IntegrityError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.config import settings
from cardflow.db import dialect_name
from cardflow.errors import InvalidArgumentError, NotFoundError, TransientStorageError
from cardflow.models import Board, BoardList, Card
from cardflow.moves.migration import MigrationResult, prune_for_board
from cardflow.moves.positions import PositionPlan, Slot, plan_removal, plan_reorder, plan_transfer
from cardflow.permissions import PermissionAction, require_permission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MoveOutcome:
  """What a committed move changed; consumed by the side-effect fan-out."""

  card_id: str
  actor_id: str
  source_board_id: str
  target_board_id: str
  source_list_id: str
  target_list_id: str
  from_index: int
  to_index: int
  noop: bool = False
  migration: MigrationResult = MigrationResult()

  @property
  def moved_between_lists(self) -> bool:
    return self.source_list_id != self.target_list_id

  @property
  def moved_to_another_board(self) -> bool:
    return self.source_board_id != self.target_board_id


@dataclass(frozen=True)
class CardRemoval:
  card_id: str
  actor_id: str
  board_id: str
  list_id: str
  position: int


async def _get_card(db: AsyncSession, card_id: str) -> Card:
  res = await db.execute(select(Card).where(Card.id == card_id))
  card = res.scalar_one_or_none()
  if not card:
    raise NotFoundError("Card not found")
  return card


async def _get_list(db: AsyncSession, list_id: str, *, label: str = "List") -> BoardList:
  res = await db.execute(select(BoardList).where(BoardList.id == list_id))
  lst = res.scalar_one_or_none()
  if not lst:
    raise NotFoundError(f"{label} not found")
  return lst


async def _set_lock_timeout(db: AsyncSession) -> None:
  if dialect_name(db) != "postgresql" or settings.db_lock_timeout_ms <= 0:
    return
  await db.execute(text(f"SET LOCAL lock_timeout = {int(settings.db_lock_timeout_ms)}"))


async def _lock_lists(db: AsyncSession, list_ids: set[str]) -> None:
  # Ascending id order so two movers touching the same pair of lists cannot deadlock.
  await db.execute(select(BoardList.id).where(BoardList.id.in_(sorted(list_ids))).order_by(BoardList.id.asc()).with_for_update())


async def _lock_card(db: AsyncSession, card_id: str) -> Card:
  res = await db.execute(
    select(Card).where(Card.id == card_id).with_for_update().execution_options(populate_existing=True)
  )
  card = res.scalar_one_or_none()
  if not card:
    raise NotFoundError("Card not found")
  return card


async def _lock_slots(db: AsyncSession, list_id: str) -> list[Slot]:
  res = await db.execute(
    select(Card.id, Card.position)
    .where(Card.list_id == list_id)
    .order_by(Card.position.asc(), Card.id.asc())
    .with_for_update()
  )
  return [Slot(card_id=row.id, position=row.position) for row in res.all()]


async def _write_positions(db: AsyncSession, positions: dict[str, int]) -> None:
  if not positions:
    return
  await db.execute(update(Card), [{"id": cid, "position": pos} for cid, pos in positions.items()])


async def _rollback(db: AsyncSession, exc: Exception) -> Exception:
  """Roll back and return the error the caller should see."""
  await db.rollback()
  if isinstance(exc, PoolTimeoutError) or (isinstance(exc, DBAPIError) and not isinstance(exc, IntegrityError)):
    logger.warning("move transaction aborted by storage: %s", exc.__class__.__name__)
    return TransientStorageError("Storage unavailable; retry the operation")
  return exc


async def _apply_plan(db: AsyncSession, card: Card, plan: PositionPlan, target_list_id: str) -> None:
  await _write_positions(db, plan.shifts)
  await _write_positions(db, plan.target_shifts)
  card.list_id = target_list_id
  card.position = plan.to_index
  await db.flush()


async def move_within_or_across_list(
  db: AsyncSession,
  *,
  card_id: str,
  source_list_id: str,
  target_list_id: str,
  new_index: int,
  actor_id: str,
) -> MoveOutcome:
  """
  Move a card inside its list or to another list on the same board.

  The whole relocation is one transaction: list rows, the card and the cards
  of both lists are locked before positions are read, so concurrent movers
  are serialized and the ordering stays dense.
  """
  if new_index < 0:
    raise InvalidArgumentError("newIndex must be >= 0")
  try:
    await _set_lock_timeout(db)
    card = await _get_card(db, card_id)
    src = await _get_list(db, source_list_id, label="Source list")
    dst = await _get_list(db, target_list_id, label="Target list")
    if src.board_id != dst.board_id:
      raise InvalidArgumentError("Target list is on another board; use the move-to-board operation")
    await require_permission(db, actor_id, src.board_id, PermissionAction.MOVE_CARDS)

    await _lock_lists(db, {src.id, dst.id})
    card = await _lock_card(db, card_id)
    if card.list_id != src.id:
      raise InvalidArgumentError("Card is not in sourceListId")

    if src.id == dst.id:
      plan = plan_reorder(await _lock_slots(db, src.id), card.id, new_index)
    else:
      source_slots = await _lock_slots(db, src.id)
      target_slots = await _lock_slots(db, dst.id)
      plan = plan_transfer(source_slots, target_slots, card.id, new_index)

    outcome = MoveOutcome(
      card_id=card.id,
      actor_id=actor_id,
      source_board_id=src.board_id,
      target_board_id=dst.board_id,
      source_list_id=src.id,
      target_list_id=dst.id,
      from_index=plan.from_index,
      to_index=plan.to_index,
      noop=plan.is_noop,
    )
    if plan.is_noop:
      await db.commit()
      return outcome

    await _apply_plan(db, card, plan, dst.id)
    await db.commit()
  except Exception as exc:
    err = await _rollback(db, exc)
    if err is exc:
      raise
    raise err from exc

  logger.info("card %s moved %s[%s] -> %s[%s] by %s", card_id, src.id, plan.from_index, dst.id, plan.to_index, actor_id)
  return outcome


async def move_across_boards(
  db: AsyncSession,
  *,
  card_id: str,
  target_board_id: str,
  target_list_id: str,
  new_index: int,
  actor_id: str,
) -> MoveOutcome:
  """
  Move a card to a list on another board.

  Assignees that are not members of the destination board and labels that do
  not belong to it are removed in the same transaction as the position change.
  """
  if new_index < 0:
    raise InvalidArgumentError("newIndex must be >= 0")
  try:
    await _set_lock_timeout(db)
    card = await _get_card(db, card_id)
    src = await _get_list(db, card.list_id, label="Source list")
    bres = await db.execute(select(Board.id).where(Board.id == target_board_id))
    if bres.scalar_one_or_none() is None:
      raise NotFoundError("Target board not found")
    if src.board_id == target_board_id:
      raise InvalidArgumentError("Card is already on the target board; use the list move operation")
    await require_permission(db, actor_id, target_board_id, PermissionAction.MOVE_CARDS)
    await require_permission(db, actor_id, src.board_id, PermissionAction.MOVE_CARDS)
    dst = await _get_list(db, target_list_id, label="Target list")
    if dst.board_id != target_board_id:
      raise NotFoundError("Target list not found on the target board")

    await _lock_lists(db, {src.id, dst.id})
    card = await _lock_card(db, card_id)
    if card.list_id != src.id:
      raise TransientStorageError("Card was moved concurrently; retry the move")

    migration = await prune_for_board(db, card_id=card.id, target_board_id=target_board_id)
    source_slots = await _lock_slots(db, src.id)
    target_slots = await _lock_slots(db, dst.id)
    plan = plan_transfer(source_slots, target_slots, card.id, new_index)
    await _apply_plan(db, card, plan, dst.id)
    await db.commit()
  except Exception as exc:
    err = await _rollback(db, exc)
    if err is exc:
      raise
    raise err from exc

  logger.info(
    "card %s moved to board %s list %s[%s] by %s (dropped %d assignees, %d labels)",
    card_id,
    target_board_id,
    dst.id,
    plan.to_index,
    actor_id,
    len(migration.removed_assignee_ids),
    len(migration.removed_label_ids),
  )
  return MoveOutcome(
    card_id=card_id,
    actor_id=actor_id,
    source_board_id=src.board_id,
    target_board_id=target_board_id,
    source_list_id=src.id,
    target_list_id=dst.id,
    from_index=plan.from_index,
    to_index=plan.to_index,
    migration=migration,
  )


async def delete_card(db: AsyncSession, *, card_id: str, actor_id: str) -> CardRemoval:
  """Delete a card and close the gap it leaves in its list."""
  try:
    await _set_lock_timeout(db)
    card = await _get_card(db, card_id)
    lst = await _get_list(db, card.list_id)
    await require_permission(db, actor_id, lst.board_id, PermissionAction.DELETE_CARDS)

    await _lock_lists(db, {lst.id})
    card = await _lock_card(db, card_id)
    if card.list_id != lst.id:
      raise TransientStorageError("Card was moved concurrently; retry the delete")
    plan = plan_removal(await _lock_slots(db, lst.id), card.id)
    await db.execute(delete(Card).where(Card.id == card.id))
    await _write_positions(db, plan.shifts)
    await db.commit()
  except Exception as exc:
    err = await _rollback(db, exc)
    if err is exc:
      raise
    raise err from exc

  logger.info("card %s deleted from list %s by %s", card_id, lst.id, actor_id)
  return CardRemoval(card_id=card_id, actor_id=actor_id, board_id=lst.board_id, list_id=lst.id, position=plan.from_index)
