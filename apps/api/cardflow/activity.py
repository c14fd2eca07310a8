from __future__ import annotations

import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.models import ActivityCategory, ActivityKind, CardActivity

# Rich-text mentions are stored as @[Display Name](user-id).
_MENTION_RE = re.compile(r"@\[([^\]]{1,120})\]\(([A-Za-z0-9-]{1,36})\)")


def mentioned_user_ids(text: str) -> list[str]:
  out: list[str] = []
  for m in _MENTION_RE.finditer(text or ""):
    uid = m.group(2)
    if uid not in out:
      out.append(uid)
  return out


async def write_activity(
  db: AsyncSession,
  *,
  card_id: str,
  actor_id: str | None,
  kind: ActivityKind,
  description: str,
  category: ActivityCategory | None = None,
) -> CardActivity:
  entry = CardActivity(
    card_id=card_id,
    user_id=actor_id,
    kind=kind,
    category=category,
    description=description,
  )
  db.add(entry)
  await db.flush()
  return entry


async def list_activities(db: AsyncSession, card_id: str, *, limit: int = 100) -> list[CardActivity]:
  res = await db.execute(
    select(CardActivity)
    .where(CardActivity.card_id == card_id)
    .order_by(CardActivity.created_at.desc(), CardActivity.id.desc())
    .limit(limit)
  )
  return list(res.scalars().all())
