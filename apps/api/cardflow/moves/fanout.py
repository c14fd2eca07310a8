from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardflow.activity import write_activity
from cardflow.db import SessionLocal
from cardflow.live.broker import LiveEvent, LiveEventPublisher, board_topic, broker
from cardflow.models import ActivityCategory, ActivityKind, Board, BoardList, CardAssignment
from cardflow.moves.service import CardRemoval, MoveOutcome
from cardflow.notifications.events import notify_activity_recipients, publish_safely

logger = logging.getLogger(__name__)


@dataclass
class FanOutResult:
  activity_id: str | None = None
  notified_user_ids: list[str] = field(default_factory=list)
  published_topics: list[str] = field(default_factory=list)


async def _names(db: AsyncSession, model, ids: set[str], attr: str) -> dict[str, str]:
  res = await db.execute(select(model.id, getattr(model, attr)).where(model.id.in_(sorted(ids))))
  return {row[0]: row[1] for row in res.all()}


def _describe(outcome: MoveOutcome, lists: dict[str, str], boards: dict[str, str]) -> str:
  if outcome.moved_to_another_board:
    src = boards.get(outcome.source_board_id, "")
    dst = boards.get(outcome.target_board_id, "")
    return f'moved this card from board "{src}" to board "{dst}"'
  src = lists.get(outcome.source_list_id, "")
  dst = lists.get(outcome.target_list_id, "")
  return f'moved this card from "{src}" to "{dst}"'


async def _record_move(session_factory: async_sessionmaker[AsyncSession], outcome: MoveOutcome) -> tuple[str, list[str]]:
  async with session_factory() as db:
    lists = await _names(db, BoardList, {outcome.source_list_id, outcome.target_list_id}, "title")
    boards = await _names(db, Board, {outcome.source_board_id, outcome.target_board_id}, "name")
    entry = await write_activity(
      db,
      card_id=outcome.card_id,
      actor_id=outcome.actor_id,
      kind=ActivityKind.ACTION,
      category=ActivityCategory.MOVE,
      description=_describe(outcome, lists, boards),
    )
    activity_id = entry.id
    await db.commit()
    # Assignees after the move: cross-board pruning has already happened.
    ares = await db.execute(
      select(CardAssignment.user_id)
      .where(CardAssignment.card_id == outcome.card_id)
      .order_by(CardAssignment.display_order.asc())
    )
    assignees = [row.user_id for row in ares.all()]
  return activity_id, assignees


def move_event(outcome: MoveOutcome) -> LiveEvent:
  return LiveEvent(
    type="card:moved",
    data={
      "cardId": outcome.card_id,
      "sourceListId": outcome.source_list_id,
      "targetListId": outcome.target_list_id,
      "sourceBoardId": outcome.source_board_id,
      "targetBoardId": outcome.target_board_id,
      "newIndex": outcome.to_index,
      "movedBetweenLists": outcome.moved_between_lists,
      "movedToAnotherBoard": outcome.moved_to_another_board,
    },
  )


async def dispatch_move_side_effects(
  outcome: MoveOutcome,
  *,
  session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
  publisher: LiveEventPublisher = broker,
) -> FanOutResult:
  """
  Run everything that follows a committed move.

  The move itself is durable by now, so nothing here raises: a failed
  activity write, notification or publish is logged and the rest still runs.
  """
  result = FanOutResult()
  if outcome.noop:
    return result

  if outcome.moved_between_lists:
    assignees: list[str] = []
    try:
      result.activity_id, assignees = await _record_move(session_factory, outcome)
    except Exception:
      logger.exception("recording move activity for card %s failed", outcome.card_id)
    if result.activity_id:
      result.notified_user_ids = await notify_activity_recipients(
        session_factory,
        publisher,
        activity_id=result.activity_id,
        card_id=outcome.card_id,
        recipient_ids=assignees,
      )

  event = move_event(outcome)
  topics = [board_topic(outcome.source_board_id)]
  if outcome.moved_to_another_board:
    topics.append(board_topic(outcome.target_board_id))
  for topic in topics:
    if await publish_safely(publisher, topic, event):
      result.published_topics.append(topic)
  return result


async def dispatch_removal_side_effects(removal: CardRemoval, *, publisher: LiveEventPublisher = broker) -> bool:
  return await publish_safely(
    publisher,
    board_topic(removal.board_id),
    LiveEvent(type="card:deleted", data={"cardId": removal.card_id, "listId": removal.list_id}),
  )
