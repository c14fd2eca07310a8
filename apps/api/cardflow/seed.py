from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.db import SessionLocal
from cardflow.models import ApiToken, Board, BoardList, BoardMember, Card, User
from cardflow.permissions import member_flags_for_role
from cardflow.security import api_token_hash, api_token_new

logger = logging.getLogger(__name__)

DEMO_LISTS = ("To Do", "Doing", "Done")


async def issue_api_token(db: AsyncSession, user: User, name: str = "seed") -> str:
  token = api_token_new()
  db.add(ApiToken(user_id=user.id, name=name, token_hash=api_token_hash(token)))
  await db.flush()
  return token


async def _ensure_user(db: AsyncSession, email: str, name: str, role: str) -> tuple[User, bool]:
  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if u:
    return u, False
  u = User(email=email, name=name, role=role, notification_prefs={})
  db.add(u)
  await db.flush()
  return u, True


async def _seed_demo_board(db: AsyncSession, *, owner: User, member: User) -> Board:
  board_name = "Cardflow Demo"
  bres = await db.execute(select(Board).where(Board.name == board_name, Board.owner_id == owner.id))
  board = bres.scalar_one_or_none()
  if board:
    return board
  board = Board(name=board_name, owner_id=owner.id)
  db.add(board)
  await db.flush()
  db.add(BoardMember(board_id=board.id, user_id=member.id, role="member", **member_flags_for_role("member")))
  for idx, title in enumerate(DEMO_LISTS):
    lst = BoardList(board_id=board.id, title=title, position=idx)
    db.add(lst)
    await db.flush()
    if idx == 0:
      for pos, card_title in enumerate(("Drag me", "Assign me", "Comment on me")):
        db.add(Card(list_id=lst.id, title=card_title, position=pos))
  logger.info("seeded demo board %s", board.id)
  return board


async def seed() -> None:
  async with SessionLocal() as db:
    boot_lines: list[str] = []
    admin, created = await _ensure_user(db, "admin@cardflow.local", "Admin", "admin")
    if created:
      boot_lines.append(f"admin@cardflow.local token={await issue_api_token(db, admin)}")
    member, created = await _ensure_user(db, "member@cardflow.local", "Member", "member")
    if created:
      boot_lines.append(f"member@cardflow.local token={await issue_api_token(db, member)}")

    if os.getenv("SEED_DEMO_BOARD", "").strip().lower() in ("1", "true", "yes", "y"):
      await _seed_demo_board(db, owner=admin, member=member)
    await db.commit()

  if boot_lines:
    out_dir = Path(os.getenv("BOOTSTRAP_CREDENTIALS_DIR", "data"))
    out_dir.mkdir(parents=True, exist_ok=True)
    out_file = out_dir / "bootstrap_tokens.txt"
    stamp = datetime.now(timezone.utc).isoformat()
    out_file.write_text(f"[{stamp}]\n" + "\n".join(boot_lines) + "\n", encoding="utf-8")
    print("Cardflow seed tokens created:")
    for ln in boot_lines:
      print(f"  {ln}")
    print(f"Saved to {out_file}")


def main() -> None:
  logging.basicConfig(level=logging.INFO)
  asyncio.run(seed())


if __name__ == "__main__":
  main()
