from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.activity import list_activities, mentioned_user_ids, write_activity
from cardflow.db import SessionLocal
from cardflow.deps import get_current_user, get_db, load_card_board
from cardflow.live.broker import LiveEvent, board_topic, broker
from cardflow.models import ActivityCategory, ActivityKind, CardActivity, CardAssignment, Notification, User, utcnow
from cardflow.notifications.events import notify_activity_recipients, publish_safely
from cardflow.permissions import PermissionAction, board_member_ids, require_permission
from cardflow.schemas import ActivityOut, CommentCreateIn, CommentUpdateIn

router = APIRouter(tags=["activities"])


def _activity_out(a: CardActivity) -> ActivityOut:
  return ActivityOut(
    id=a.id,
    cardId=a.card_id,
    userId=a.user_id,
    kind=ActivityKind(a.kind).value,
    category=ActivityCategory(a.category).value if a.category else None,
    description=a.description,
    createdAt=a.created_at,
    updatedAt=a.updated_at,
  )


async def _own_comment(db: AsyncSession, activity_id: str, user: User) -> tuple[CardActivity, str]:
  res = await db.execute(select(CardActivity).where(CardActivity.id == activity_id))
  a = res.scalar_one_or_none()
  if not a:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Activity not found")
  _, board_id = await load_card_board(db, a.card_id)
  await require_permission(db, user.id, board_id, PermissionAction.VIEW_BOARD)
  if a.kind != ActivityKind.COMMENT:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Action entries cannot be changed")
  if a.user_id != user.id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author can change a comment")
  return a, board_id


@router.get("/cards/{card_id}/activities", response_model=list[ActivityOut])
async def get_card_activities(
  card_id: str,
  limit: int = Query(default=100, ge=1, le=500),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[ActivityOut]:
  _, board_id = await load_card_board(db, card_id)
  await require_permission(db, user.id, board_id, PermissionAction.VIEW_BOARD)
  return [_activity_out(a) for a in await list_activities(db, card_id, limit=limit)]


@router.post("/cards/{card_id}/comments", response_model=ActivityOut)
async def create_comment(
  card_id: str,
  payload: CommentCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ActivityOut:
  _, board_id = await load_card_board(db, card_id)
  await require_permission(db, user.id, board_id, PermissionAction.VIEW_BOARD)
  members = await board_member_ids(db, board_id)
  mentioned = [uid for uid in mentioned_user_ids(payload.body) if uid in members and uid != user.id]
  ares = await db.execute(select(CardAssignment.user_id).where(CardAssignment.card_id == card_id).order_by(CardAssignment.display_order.asc()))
  watchers = [row.user_id for row in ares.all() if row.user_id not in mentioned]

  entry = await write_activity(
    db,
    card_id=card_id,
    actor_id=user.id,
    kind=ActivityKind.COMMENT,
    category=ActivityCategory.COMMENT,
    description=payload.body,
  )
  await db.commit()

  await notify_activity_recipients(
    SessionLocal,
    broker,
    activity_id=entry.id,
    card_id=card_id,
    recipient_ids=mentioned,
    category=ActivityCategory.MENTION,
  )
  await notify_activity_recipients(SessionLocal, broker, activity_id=entry.id, card_id=card_id, recipient_ids=watchers)
  await publish_safely(
    broker,
    board_topic(board_id),
    LiveEvent(type="activity:created", data={"activityId": entry.id, "cardId": card_id}),
  )
  return _activity_out(entry)


@router.patch("/activities/{activity_id}", response_model=ActivityOut)
async def update_comment(
  activity_id: str,
  payload: CommentUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ActivityOut:
  a, board_id = await _own_comment(db, activity_id, user)
  a.description = payload.body
  a.updated_at = utcnow()
  await db.commit()
  await publish_safely(
    broker,
    board_topic(board_id),
    LiveEvent(type="activity:updated", data={"activityId": a.id, "cardId": a.card_id}),
  )
  return _activity_out(a)


@router.delete("/activities/{activity_id}")
async def delete_comment(activity_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  a, board_id = await _own_comment(db, activity_id, user)
  card_id = a.card_id
  await db.execute(delete(Notification).where(Notification.activity_id == activity_id))
  await db.execute(delete(CardActivity).where(CardActivity.id == activity_id))
  await db.commit()
  await publish_safely(
    broker,
    board_topic(board_id),
    LiveEvent(type="activity:deleted", data={"activityId": activity_id, "cardId": card_id}),
  )
  return {"ok": True}
