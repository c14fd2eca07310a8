from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.deps import get_current_user, get_db
from cardflow.live.broker import LiveEvent, broker, user_topic
from cardflow.models import ActivityCategory, ActivityKind, CardActivity, Notification, User, utcnow
from cardflow.notifications.events import PREF_KEYS, default_prefs, publish_safely, unread_count
from cardflow.schemas import NotificationOut, NotificationPreferencesIn, NotificationPreferencesOut, UnreadCountOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationOut])
async def list_notifications(
  unreadOnly: bool = False,
  limit: int = Query(default=50, ge=1, le=200),
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[NotificationOut]:
  stmt = (
    select(Notification, CardActivity)
    .join(CardActivity, CardActivity.id == Notification.activity_id)
    .where(Notification.user_id == actor.id)
  )
  if unreadOnly:
    stmt = stmt.where(Notification.read_at.is_(None))
  res = await db.execute(stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit))
  out: list[NotificationOut] = []
  for n, a in res.all():
    category = n.category or a.category
    out.append(
      NotificationOut(
        id=n.id,
        activityId=a.id,
        cardId=a.card_id,
        kind=ActivityKind(a.kind).value,
        category=ActivityCategory(category).value if category else None,
        description=a.description,
        actorId=a.user_id,
        createdAt=n.created_at,
        readAt=n.read_at,
      )
    )
  return out


@router.get("/unread-count", response_model=UnreadCountOut)
async def get_unread_count(actor: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> UnreadCountOut:
  return UnreadCountOut(unreadCount=await unread_count(db, actor.id))


@router.post("/read-all", response_model=UnreadCountOut)
async def mark_all_read(actor: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> UnreadCountOut:
  await db.execute(
    update(Notification).where(Notification.user_id == actor.id, Notification.read_at.is_(None)).values(read_at=utcnow())
  )
  await db.commit()
  await publish_safely(broker, user_topic(actor.id), LiveEvent(type="notification:read_all", data={"unreadCount": 0}))
  return UnreadCountOut(unreadCount=0)


@router.post("/{notification_id}/read", response_model=UnreadCountOut)
async def mark_read(
  notification_id: str,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> UnreadCountOut:
  res = await db.execute(select(Notification).where(Notification.id == notification_id, Notification.user_id == actor.id))
  n = res.scalar_one_or_none()
  if not n:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
  if n.read_at is None:
    n.read_at = utcnow()
  await db.flush()
  unread = await unread_count(db, actor.id)
  await db.commit()
  await publish_safely(
    broker,
    user_topic(actor.id),
    LiveEvent(type="notification:read", data={"notificationId": n.id, "unreadCount": unread}),
  )
  return UnreadCountOut(unreadCount=unread)


@router.get("/preferences", response_model=NotificationPreferencesOut)
async def get_notification_preferences(
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> NotificationPreferencesOut:
  res = await db.execute(select(User).where(User.id == actor.id))
  u = res.scalar_one()
  prefs = default_prefs()
  prefs.update(u.notification_prefs or {})
  return NotificationPreferencesOut(**{k: bool(prefs.get(k, True)) for k in PREF_KEYS})


@router.patch("/preferences", response_model=NotificationPreferencesOut)
async def update_notification_preferences(
  payload: NotificationPreferencesIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> NotificationPreferencesOut:
  res = await db.execute(select(User).where(User.id == actor.id))
  u = res.scalar_one()

  prefs = default_prefs()
  prefs.update(u.notification_prefs or {})
  for key in PREF_KEYS:
    if key in payload.model_fields_set:
      val = getattr(payload, key)
      if val is not None:
        prefs[key] = bool(val)
  u.notification_prefs = prefs
  await db.commit()
  return await get_notification_preferences(actor=actor, db=db)
