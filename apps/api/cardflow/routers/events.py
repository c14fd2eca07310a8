from __future__ import annotations

import asyncio
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.config import settings
from cardflow.deps import get_current_user, get_db
from cardflow.live.broker import Subscription, board_topic, broker, user_topic
from cardflow.models import User
from cardflow.permissions import PermissionAction, require_permission

router = APIRouter(tags=["events"])


async def _sse(request: Request, sub: Subscription) -> AsyncIterator[str]:
  try:
    yield ": connected\n\n"
    while True:
      if await request.is_disconnected():
        break
      try:
        _, event = await asyncio.wait_for(sub.queue.get(), timeout=max(1, settings.sse_heartbeat_seconds))
      except asyncio.TimeoutError:
        yield ": heartbeat\n\n"
        continue
      yield f"event: {event.type}\ndata: {event.to_json()}\n\n"
  finally:
    broker.unsubscribe(sub)


@router.get("/events")
async def stream_events(
  request: Request,
  boardId: list[str] = Query(default=[]),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> StreamingResponse:
  for bid in boardId:
    await require_permission(db, user.id, bid, PermissionAction.VIEW_BOARD)
  # Hand the connection back to the pool; the stream may stay open for hours.
  await db.close()
  topics = {board_topic(bid) for bid in boardId}
  topics.add(user_topic(user.id))
  sub = broker.subscribe(topics)
  return StreamingResponse(
    _sse(request, sub),
    media_type="text/event-stream",
    headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
  )
