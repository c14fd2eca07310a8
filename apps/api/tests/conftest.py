from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

# Local SQLite file unless a *_test Postgres database is provided.
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{ROOT / 'cardflow_test.db'}")

from cardflow.config import settings
from cardflow.db import SessionLocal, engine
from cardflow.main import app
from cardflow.models import (
  ApiToken,
  Base,
  Board,
  BoardList,
  BoardMember,
  Card,
  CardActivity,
  CardAssignment,
  CardLabel,
  Label,
  Notification,
  User,
)
from cardflow.permissions import member_flags_for_role
from cardflow.seed import issue_api_token


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    await db.execute(delete(Notification))
    await db.execute(delete(CardActivity))
    await db.execute(delete(CardLabel))
    await db.execute(delete(Label))
    await db.execute(delete(CardAssignment))
    await db.execute(delete(Card))
    await db.execute(delete(BoardList))
    await db.execute(delete(BoardMember))
    await db.execute(delete(Board))
    await db.execute(delete(ApiToken))
    await db.execute(delete(User))
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests() -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. cardflow_test)."
    )
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


@dataclass(frozen=True)
class Actor:
  id: str
  name: str
  token: str

  @property
  def headers(self) -> dict[str, str]:
    return {"Authorization": f"Bearer {self.token}"}


async def make_user(name: str, *, prefs: dict | None = None, active: bool = True) -> Actor:
  async with SessionLocal() as db:
    u = User(email=f"{name.lower()}@cardflow.test", name=name, notification_prefs=prefs or {}, active=active)
    db.add(u)
    await db.flush()
    token = await issue_api_token(db, u, name="test")
    await db.commit()
    return Actor(id=u.id, name=name, token=token)


async def make_board(owner: Actor, name: str, members: dict[str, str] | None = None) -> str:
  """`members` maps user id -> role (viewer, member, admin)."""
  async with SessionLocal() as db:
    b = Board(name=name, owner_id=owner.id)
    db.add(b)
    await db.flush()
    for uid, role in (members or {}).items():
      db.add(BoardMember(board_id=b.id, user_id=uid, role=role, **member_flags_for_role(role)))
    await db.commit()
    return b.id


async def make_list(board_id: str, title: str, position: int = 0) -> str:
  async with SessionLocal() as db:
    lst = BoardList(board_id=board_id, title=title, position=position)
    db.add(lst)
    await db.commit()
    return lst.id


async def make_cards(list_id: str, titles: list[str]) -> list[str]:
  async with SessionLocal() as db:
    cards = [Card(list_id=list_id, title=t, position=idx) for idx, t in enumerate(titles)]
    db.add_all(cards)
    await db.commit()
    return [c.id for c in cards]


async def assign(card_id: str, *user_ids: str) -> None:
  async with SessionLocal() as db:
    for idx, uid in enumerate(user_ids):
      db.add(CardAssignment(card_id=card_id, user_id=uid, display_order=idx))
    await db.commit()


async def make_label(board_id: str, name: str) -> str:
  async with SessionLocal() as db:
    lbl = Label(board_id=board_id, name=name)
    db.add(lbl)
    await db.commit()
    return lbl.id


async def attach_label(card_id: str, label_id: str) -> None:
  async with SessionLocal() as db:
    db.add(CardLabel(card_id=card_id, label_id=label_id))
    await db.commit()


async def list_titles(list_id: str) -> list[str]:
  """Card titles in position order; also asserts the positions are dense."""
  async with SessionLocal() as db:
    res = await db.execute(select(Card.title, Card.position).where(Card.list_id == list_id).order_by(Card.position.asc()))
    rows = res.all()
  assert [r.position for r in rows] == list(range(len(rows)))
  return [r.title for r in rows]


async def activities_for(card_id: str) -> list[CardActivity]:
  async with SessionLocal() as db:
    res = await db.execute(select(CardActivity).where(CardActivity.card_id == card_id).order_by(CardActivity.created_at.asc()))
    return list(res.scalars().all())


async def notifications_for(user_id: str) -> list[Notification]:
  async with SessionLocal() as db:
    res = await db.execute(select(Notification).where(Notification.user_id == user_id))
    return list(res.scalars().all())


def drain(sub) -> list:
  out = []
  while not sub.queue.empty():
    out.append(sub.queue.get_nowait())
  return out
