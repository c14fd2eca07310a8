from __future__ import annotations

from typing import AsyncIterator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.db import SessionLocal
from cardflow.models import ApiToken, BoardList, Card, User
from cardflow.security import api_token_hash


async def get_db() -> AsyncIterator[AsyncSession]:
  async with SessionLocal() as session:
    yield session


def _bearer_token(request: Request) -> str | None:
  auth = request.headers.get("authorization")
  if not auth or not auth.lower().startswith("bearer "):
    return None
  return auth.split(" ", 1)[1].strip() or None


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
  token = _bearer_token(request)
  if not token:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
  tres = await db.execute(select(ApiToken).where(ApiToken.token_hash == api_token_hash(token), ApiToken.revoked_at.is_(None)))
  t = tres.scalar_one_or_none()
  if not t:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
  ures = await db.execute(select(User).where(User.id == t.user_id))
  u = ures.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
  if not bool(u.active):
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User disabled")
  return u


async def load_card_board(db: AsyncSession, card_id: str) -> tuple[Card, str]:
  """The card and the id of the board it currently lives on."""
  res = await db.execute(select(Card, BoardList.board_id).join(BoardList, BoardList.id == Card.list_id).where(Card.id == card_id))
  row = res.one_or_none()
  if not row:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Card not found")
  return row[0], row[1]
