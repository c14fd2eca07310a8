from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.activity import write_activity
from cardflow.db import SessionLocal
from cardflow.deps import get_current_user, get_db, load_card_board
from cardflow.errors import ConflictError
from cardflow.live.broker import LiveEvent, board_topic, broker
from cardflow.models import ActivityCategory, ActivityKind, CardAssignment, User
from cardflow.moves.fanout import dispatch_move_side_effects, dispatch_removal_side_effects
from cardflow.moves.migration import renumber_assignees
from cardflow.moves.service import delete_card, move_across_boards, move_within_or_across_list
from cardflow.notifications.events import notify_activity_recipients, publish_safely
from cardflow.permissions import PermissionAction, board_member_ids, require_permission
from cardflow.schemas import AssigneeIn, AssigneeOut, CardBoardMoveIn, CardMoveIn

router = APIRouter(tags=["cards"])


def _assignee_out(a: CardAssignment) -> AssigneeOut:
  return AssigneeOut(
    cardId=a.card_id,
    userId=a.user_id,
    assignedBy=a.assigned_by,
    workloadHours=a.workload_hours,
    displayOrder=a.display_order,
    assignedAt=a.assigned_at,
  )


@router.patch("/cards/move", status_code=status.HTTP_204_NO_CONTENT)
async def move_card(payload: CardMoveIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> Response:
  outcome = await move_within_or_across_list(
    db,
    card_id=payload.cardId,
    source_list_id=payload.sourceListId,
    target_list_id=payload.targetListId,
    new_index=payload.newIndex,
    actor_id=user.id,
  )
  await dispatch_move_side_effects(outcome)
  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/cards/move-to-board", status_code=status.HTTP_204_NO_CONTENT)
async def move_card_to_board(
  payload: CardBoardMoveIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> Response:
  outcome = await move_across_boards(
    db,
    card_id=payload.cardId,
    target_board_id=payload.targetBoardId,
    target_list_id=payload.targetListId,
    new_index=payload.newIndex,
    actor_id=user.id,
  )
  await dispatch_move_side_effects(outcome)
  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/cards/{card_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_card(card_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> Response:
  removal = await delete_card(db, card_id=card_id, actor_id=user.id)
  await dispatch_removal_side_effects(removal)
  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/cards/{card_id}/assignees", response_model=list[AssigneeOut])
async def list_assignees(card_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[AssigneeOut]:
  _, board_id = await load_card_board(db, card_id)
  await require_permission(db, user.id, board_id, PermissionAction.VIEW_BOARD)
  res = await db.execute(
    select(CardAssignment).where(CardAssignment.card_id == card_id).order_by(CardAssignment.display_order.asc())
  )
  return [_assignee_out(a) for a in res.scalars().all()]


@router.post("/cards/{card_id}/assignees", response_model=AssigneeOut)
async def add_assignee(
  card_id: str,
  payload: AssigneeIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> AssigneeOut:
  _, board_id = await load_card_board(db, card_id)
  await require_permission(db, user.id, board_id, PermissionAction.EDIT_CARDS)
  if payload.userId not in await board_member_ids(db, board_id):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Assignee must be a board member")
  ures = await db.execute(select(User).where(User.id == payload.userId))
  assignee = ures.scalar_one()

  eres = await db.execute(
    select(CardAssignment.id).where(CardAssignment.card_id == card_id, CardAssignment.user_id == payload.userId)
  )
  if eres.scalar_one_or_none():
    raise ConflictError("User already assigned")
  cres = await db.execute(select(func.count(CardAssignment.id)).where(CardAssignment.card_id == card_id))
  a = CardAssignment(
    card_id=card_id,
    user_id=payload.userId,
    assigned_by=user.id,
    workload_hours=payload.workloadHours,
    display_order=int(cres.scalar_one() or 0),
  )
  db.add(a)
  description = "joined this card" if payload.userId == user.id else f"assigned {assignee.name} to this card"
  entry = await write_activity(
    db,
    card_id=card_id,
    actor_id=user.id,
    kind=ActivityKind.ACTION,
    category=ActivityCategory.ASSIGNMENT,
    description=description,
  )
  try:
    await db.commit()
  except IntegrityError:
    await db.rollback()
    raise ConflictError("User already assigned")

  await notify_activity_recipients(SessionLocal, broker, activity_id=entry.id, card_id=card_id, recipient_ids=[payload.userId])
  await publish_safely(
    broker,
    board_topic(board_id),
    LiveEvent(type="activity:created", data={"activityId": entry.id, "cardId": card_id}),
  )
  return _assignee_out(a)


@router.delete("/cards/{card_id}/assignees/{user_id}")
async def remove_assignee(
  card_id: str,
  user_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  _, board_id = await load_card_board(db, card_id)
  await require_permission(db, user.id, board_id, PermissionAction.EDIT_CARDS)
  ares = await db.execute(
    select(CardAssignment.id).where(CardAssignment.card_id == card_id, CardAssignment.user_id == user_id)
  )
  if not ares.scalar_one_or_none():
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found")
  await db.execute(delete(CardAssignment).where(CardAssignment.card_id == card_id, CardAssignment.user_id == user_id))
  await renumber_assignees(db, card_id)
  await db.commit()
  return {"ok": True}
