from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardflow.db import dialect_name
from cardflow.live.broker import LiveEvent, LiveEventPublisher, user_topic
from cardflow.models import ActivityCategory, CardActivity, Notification, User, new_id, utcnow

logger = logging.getLogger(__name__)

PREF_KEYS = ("mentions", "assignments", "comments", "moves")

_CATEGORY_PREF_KEY = {
  ActivityCategory.MENTION: "mentions",
  ActivityCategory.ASSIGNMENT: "assignments",
  ActivityCategory.COMMENT: "comments",
  ActivityCategory.MOVE: "moves",
}


def default_prefs() -> dict[str, bool]:
  return {k: True for k in PREF_KEYS}


def pref_key_for_category(category: ActivityCategory | None) -> str | None:
  if category is None:
    return None
  return _CATEGORY_PREF_KEY.get(ActivityCategory(category))


async def get_preference(db: AsyncSession, user_id: str, category: ActivityCategory | None) -> bool:
  """Whether `user_id` wants in-app notifications for `category`. Missing entries mean yes."""
  ures = await db.execute(select(User).where(User.id == user_id))
  user = ures.scalar_one_or_none()
  if not user or not bool(user.active):
    return False
  key = pref_key_for_category(category)
  if key is None:
    return True
  prefs = default_prefs()
  prefs.update(user.notification_prefs or {})
  return bool(prefs.get(key, True))


def _insert_for(db: AsyncSession):
  return pg_insert if dialect_name(db) == "postgresql" else sqlite_insert


async def create_notification(
  db: AsyncSession,
  *,
  user_id: str,
  activity_id: str,
  category: ActivityCategory | None = None,
) -> str | None:
  """
  Create the (user, activity) notification.

  Returns the new notification id, or None when nothing was written: the user
  is the activity's author, opted out of the category, or already has one.
  `category` defaults to the activity's own category.
  """
  ares = await db.execute(select(CardActivity).where(CardActivity.id == activity_id))
  activity = ares.scalar_one_or_none()
  if activity is None:
    return None
  if activity.user_id is not None and activity.user_id == user_id:
    return None
  category = category or activity.category
  if not await get_preference(db, user_id, category):
    logger.info("user %s muted %s notifications; skipping activity %s", user_id, category, activity_id)
    return None

  insert = _insert_for(db)
  stmt = (
    insert(Notification)
    .values(id=new_id(), user_id=user_id, activity_id=activity_id, category=category, created_at=utcnow())
    .on_conflict_do_nothing(index_elements=["user_id", "activity_id"])
    .returning(Notification.id)
  )
  res = await db.execute(stmt)
  return res.scalar_one_or_none()


async def unread_count(db: AsyncSession, user_id: str) -> int:
  res = await db.execute(select(func.count(Notification.id)).where(Notification.user_id == user_id, Notification.read_at.is_(None)))
  return int(res.scalar_one() or 0)


async def publish_safely(publisher: LiveEventPublisher, topic: str, event: LiveEvent) -> bool:
  try:
    await publisher.publish(topic, event)
    return True
  except Exception:
    logger.exception("failed to publish %s to %s", event.type, topic)
    return False


async def notify_activity_recipients(
  session_factory: async_sessionmaker[AsyncSession],
  publisher: LiveEventPublisher,
  *,
  activity_id: str,
  card_id: str,
  recipient_ids: Iterable[str],
  category: ActivityCategory | None = None,
) -> list[str]:
  """
  Create one notification per recipient, each in its own transaction.

  A failure for one recipient is logged and skipped. Returns the users that
  actually received a new notification.
  """
  delivered: list[str] = []
  seen: set[str] = set()
  for uid in recipient_ids:
    if uid in seen:
      continue
    seen.add(uid)
    try:
      async with session_factory() as db:
        notification_id = await create_notification(db, user_id=uid, activity_id=activity_id, category=category)
        if notification_id is None:
          continue
        unread = await unread_count(db, uid)
        await db.commit()
    except Exception:
      logger.exception("notification for user %s on card %s failed", uid, card_id)
      continue
    delivered.append(uid)
    await publish_safely(
      publisher,
      user_topic(uid),
      LiveEvent(
        type="notification:new",
        data={"notificationId": notification_id, "activityId": activity_id, "cardId": card_id, "unreadCount": unread},
      ),
    )
  return delivered
