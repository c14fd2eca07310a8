from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from cardflow.db import SessionLocal
from cardflow.live.broker import board_topic, broker
from cardflow.models import Card, CardAssignment, CardLabel
from conftest import (
  activities_for,
  assign,
  attach_label,
  drain,
  list_titles,
  make_board,
  make_cards,
  make_label,
  make_list,
  make_user,
  notifications_for,
)


async def _card_state(card_id: str) -> tuple[Card, list[CardAssignment], list[str]]:
  async with SessionLocal() as db:
    card = (await db.execute(select(Card).where(Card.id == card_id))).scalar_one()
    ares = await db.execute(
      select(CardAssignment).where(CardAssignment.card_id == card_id).order_by(CardAssignment.display_order.asc())
    )
    lres = await db.execute(select(CardLabel.label_id).where(CardLabel.card_id == card_id))
    return card, list(ares.scalars().all()), sorted(r.label_id for r in lres.all())


@pytest.mark.anyio
async def test_move_to_board_drops_non_member_assignees(client: AsyncClient) -> None:
  owner = await make_user("Owner")
  outsider = await make_user("Outsider")
  board1 = await make_board(owner, "Board 1", {outsider.id: "member"})
  board2 = await make_board(owner, "Board 2")
  list_a = await make_list(board1, "A")
  list_x = await make_list(board2, "X")
  (c,) = await make_cards(list_a, ["C"])
  await assign(c, outsider.id)

  res = await client.patch(
    "/cards/move-to-board",
    json={"cardId": c, "targetBoardId": board2, "targetListId": list_x, "newIndex": 0},
    headers=owner.headers,
  )
  assert res.status_code == 204, res.text

  card, assignees, _ = await _card_state(c)
  assert card.list_id == list_x
  assert card.position == 0
  assert assignees == []
  assert await list_titles(list_a) == []
  assert await list_titles(list_x) == ["C"]
  # The dropped assignee is not told about a card they no longer see.
  assert await notifications_for(outsider.id) == []

  entries = await activities_for(c)
  assert [e.description for e in entries] == ['moved this card from board "Board 1" to board "Board 2"']


@pytest.mark.anyio
async def test_move_to_board_keeps_members_and_renumbers(client: AsyncClient) -> None:
  owner = await make_user("Owner")
  shared = await make_user("Shared")
  gone = await make_user("Gone")
  later = await make_user("Later")
  board1 = await make_board(owner, "Board 1", {shared.id: "member", gone.id: "member", later.id: "member"})
  board2 = await make_board(owner, "Board 2", {shared.id: "member", later.id: "member"})
  list_a = await make_list(board1, "A")
  list_x = await make_list(board2, "X")
  await make_cards(list_x, ["X0", "X1"])
  (c,) = await make_cards(list_a, ["C"])
  await assign(c, gone.id, shared.id, later.id)

  res = await client.patch(
    "/cards/move-to-board",
    json={"cardId": c, "targetBoardId": board2, "targetListId": list_x, "newIndex": 1},
    headers=owner.headers,
  )
  assert res.status_code == 204, res.text

  _, assignees, _ = await _card_state(c)
  assert [(a.user_id, a.display_order) for a in assignees] == [(shared.id, 0), (later.id, 1)]
  assert await list_titles(list_x) == ["X0", "C", "X1"]
  assert len(await notifications_for(shared.id)) == 1
  assert len(await notifications_for(later.id)) == 1
  assert await notifications_for(gone.id) == []


@pytest.mark.anyio
async def test_move_to_board_drops_foreign_labels(client: AsyncClient) -> None:
  owner = await make_user("Owner")
  board1 = await make_board(owner, "Board 1")
  board2 = await make_board(owner, "Board 2")
  list_a = await make_list(board1, "A")
  list_x = await make_list(board2, "X")
  (c,) = await make_cards(list_a, ["C"])
  old_label = await make_label(board1, "urgent")
  await attach_label(c, old_label)

  res = await client.patch(
    "/cards/move-to-board",
    json={"cardId": c, "targetBoardId": board2, "targetListId": list_x, "newIndex": 0},
    headers=owner.headers,
  )
  assert res.status_code == 204, res.text
  _, _, labels = await _card_state(c)
  assert labels == []


@pytest.mark.anyio
async def test_move_to_board_publishes_to_both_boards(client: AsyncClient) -> None:
  owner = await make_user("Owner")
  board1 = await make_board(owner, "Board 1")
  board2 = await make_board(owner, "Board 2")
  list_a = await make_list(board1, "A")
  list_x = await make_list(board2, "X")
  (c,) = await make_cards(list_a, ["C"])

  src_sub = broker.subscribe({board_topic(board1)})
  dst_sub = broker.subscribe({board_topic(board2)})
  try:
    res = await client.patch(
      "/cards/move-to-board",
      json={"cardId": c, "targetBoardId": board2, "targetListId": list_x, "newIndex": 0},
      headers=owner.headers,
    )
    assert res.status_code == 204, res.text
    src_events = drain(src_sub)
    dst_events = drain(dst_sub)
  finally:
    broker.unsubscribe(src_sub)
    broker.unsubscribe(dst_sub)

  assert [e.type for _, e in src_events] == ["card:moved"]
  assert [e.type for _, e in dst_events] == ["card:moved"]
  data = dst_events[0][1].data
  assert data["cardId"] == c
  assert data["sourceListId"] == list_a
  assert data["targetListId"] == list_x
  assert data["targetBoardId"] == board2
  assert data["sourceBoardId"] == board1
  assert data["newIndex"] == 0
  assert data["movedToAnotherBoard"] is True


@pytest.mark.anyio
async def test_move_to_same_board_is_400(client: AsyncClient) -> None:
  owner = await make_user("Owner")
  board1 = await make_board(owner, "Board 1")
  list_a = await make_list(board1, "A")
  list_b = await make_list(board1, "B", 1)
  (c,) = await make_cards(list_a, ["C"])

  res = await client.patch(
    "/cards/move-to-board",
    json={"cardId": c, "targetBoardId": board1, "targetListId": list_b, "newIndex": 0},
    headers=owner.headers,
  )
  assert res.status_code == 400, res.text
  assert await list_titles(list_a) == ["C"]


@pytest.mark.anyio
async def test_move_to_board_requires_destination_permission(client: AsyncClient) -> None:
  owner = await make_user("Owner")
  mover = await make_user("Mover")
  board1 = await make_board(mover, "Mine")
  board2 = await make_board(owner, "Theirs", {mover.id: "viewer"})
  list_a = await make_list(board1, "A")
  list_x = await make_list(board2, "X")
  (c,) = await make_cards(list_a, ["C"])

  res = await client.patch(
    "/cards/move-to-board",
    json={"cardId": c, "targetBoardId": board2, "targetListId": list_x, "newIndex": 0},
    headers=mover.headers,
  )
  assert res.status_code == 403, res.text
  assert await list_titles(list_a) == ["C"]
  assert await list_titles(list_x) == []


@pytest.mark.anyio
async def test_move_to_board_requires_source_permission(client: AsyncClient) -> None:
  owner = await make_user("Owner")
  mover = await make_user("Mover")
  board1 = await make_board(owner, "Theirs", {mover.id: "viewer"})
  board2 = await make_board(mover, "Mine")
  list_a = await make_list(board1, "A")
  list_x = await make_list(board2, "X")
  (c,) = await make_cards(list_a, ["C"])

  res = await client.patch(
    "/cards/move-to-board",
    json={"cardId": c, "targetBoardId": board2, "targetListId": list_x, "newIndex": 0},
    headers=mover.headers,
  )
  assert res.status_code == 403, res.text
  assert await list_titles(list_a) == ["C"]


@pytest.mark.anyio
async def test_move_to_board_missing_targets_are_404(client: AsyncClient) -> None:
  owner = await make_user("Owner")
  board1 = await make_board(owner, "Board 1")
  board2 = await make_board(owner, "Board 2")
  list_a = await make_list(board1, "A")
  other = await make_list(board1, "Other", 1)
  (c,) = await make_cards(list_a, ["C"])

  cases = [
    {"cardId": "missing", "targetBoardId": board2, "targetListId": other, "newIndex": 0},
    {"cardId": c, "targetBoardId": "missing", "targetListId": other, "newIndex": 0},
    {"cardId": c, "targetBoardId": board2, "targetListId": "missing", "newIndex": 0},
    # List exists but belongs to another board.
    {"cardId": c, "targetBoardId": board2, "targetListId": other, "newIndex": 0},
  ]
  for body in cases:
    res = await client.patch("/cards/move-to-board", json=body, headers=owner.headers)
    assert res.status_code == 404, (body, res.text)
  assert await list_titles(list_a) == ["C"]


@pytest.mark.anyio
async def test_move_to_board_malformed_is_400(client: AsyncClient) -> None:
  owner = await make_user("Owner")
  res = await client.patch("/cards/move-to-board", json={"cardId": "x"}, headers=owner.headers)
  assert res.status_code == 400, res.text
  res = await client.patch(
    "/cards/move-to-board",
    json={"cardId": "x", "targetBoardId": "b", "targetListId": "l", "newIndex": "0"},
    headers=owner.headers,
  )
  assert res.status_code == 400, res.text
