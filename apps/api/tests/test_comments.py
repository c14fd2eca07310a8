from __future__ import annotations

import pytest
from httpx import AsyncClient

from cardflow.activity import mentioned_user_ids
from cardflow.live.broker import board_topic, broker
from cardflow.models import ActivityCategory
from conftest import assign, drain, make_board, make_cards, make_list, make_user, notifications_for


@pytest.mark.anyio
async def test_mention_parsing() -> None:
  body = "ping @[Ann Lee](a1b2) and @[Bo](c3d4), again @[Ann Lee](a1b2); not @Ann or @[x](bad id)"
  assert mentioned_user_ids(body) == ["a1b2", "c3d4"]
  assert mentioned_user_ids("") == []


@pytest.mark.anyio
async def test_comment_mentions_and_assignee_notifications(client: AsyncClient) -> None:
  author = await make_user("Author")
  mentioned = await make_user("Mentioned", prefs={"comments": False})
  watcher = await make_user("Watcher")
  outsider = await make_user("Outsider")
  board = await make_board(author, "Board", {mentioned.id: "member", watcher.id: "member"})
  todo = await make_list(board, "To Do")
  (c,) = await make_cards(todo, ["C"])
  await assign(c, mentioned.id, watcher.id)

  body = f"@[Mentioned]({mentioned.id}) and @[Outsider]({outsider.id}) please look"
  sub = broker.subscribe({board_topic(board)})
  try:
    res = await client.post(f"/cards/{c}/comments", json={"body": body}, headers=author.headers)
    assert res.status_code == 200, res.text
    got = drain(sub)
  finally:
    broker.unsubscribe(sub)
  created = res.json()
  assert created["kind"] == "COMMENT"
  assert created["description"] == body
  assert [e.type for _, e in got] == ["activity:created"]

  # Muting comments does not mute mentions.
  m_notes = await notifications_for(mentioned.id)
  assert [n.category for n in m_notes] == [ActivityCategory.MENTION]
  w_notes = await notifications_for(watcher.id)
  assert [n.category for n in w_notes] == [ActivityCategory.COMMENT]
  assert await notifications_for(outsider.id) == []
  assert await notifications_for(author.id) == []


@pytest.mark.anyio
async def test_comment_edit_and_delete_are_author_only(client: AsyncClient) -> None:
  author = await make_user("Author")
  other = await make_user("Other")
  board = await make_board(author, "Board", {other.id: "member"})
  todo = await make_list(board, "To Do")
  (c,) = await make_cards(todo, ["C"])

  res = await client.post(f"/cards/{c}/comments", json={"body": "first"}, headers=author.headers)
  assert res.status_code == 200, res.text
  activity_id = res.json()["id"]

  res = await client.patch(f"/activities/{activity_id}", json={"body": "hijack"}, headers=other.headers)
  assert res.status_code == 403, res.text
  res = await client.delete(f"/activities/{activity_id}", headers=other.headers)
  assert res.status_code == 403, res.text

  res = await client.patch(f"/activities/{activity_id}", json={"body": "edited"}, headers=author.headers)
  assert res.status_code == 200, res.text
  assert res.json()["description"] == "edited"
  assert res.json()["updatedAt"] is not None

  res = await client.delete(f"/activities/{activity_id}", headers=author.headers)
  assert res.status_code == 200, res.text
  res = await client.get(f"/cards/{c}/activities", headers=author.headers)
  assert res.json() == []
  res = await client.delete(f"/activities/{activity_id}", headers=author.headers)
  assert res.status_code == 404, res.text


@pytest.mark.anyio
async def test_action_entries_are_immutable(client: AsyncClient) -> None:
  owner = await make_user("Owner")
  board = await make_board(owner, "Board")
  todo = await make_list(board, "To Do")
  done = await make_list(board, "Done", 1)
  (c,) = await make_cards(todo, ["C"])
  res = await client.patch(
    "/cards/move",
    json={"cardId": c, "sourceListId": todo, "targetListId": done, "newIndex": 0},
    headers=owner.headers,
  )
  assert res.status_code == 204, res.text

  res = await client.get(f"/cards/{c}/activities", headers=owner.headers)
  assert res.status_code == 200, res.text
  (entry,) = res.json()
  assert entry["kind"] == "ACTION"
  assert entry["category"] == "MOVE"
  assert (await client.patch(f"/activities/{entry['id']}", json={"body": "x"}, headers=owner.headers)).status_code == 400
  assert (await client.delete(f"/activities/{entry['id']}", headers=owner.headers)).status_code == 400


@pytest.mark.anyio
async def test_activities_newest_first_and_visibility(client: AsyncClient) -> None:
  owner = await make_user("Owner")
  stranger = await make_user("Stranger")
  board = await make_board(owner, "Board")
  todo = await make_list(board, "To Do")
  (c,) = await make_cards(todo, ["C"])
  for body in ("one", "two", "three"):
    res = await client.post(f"/cards/{c}/comments", json={"body": body}, headers=owner.headers)
    assert res.status_code == 200, res.text

  res = await client.get(f"/cards/{c}/activities", headers=owner.headers)
  assert [a["description"] for a in res.json()] == ["three", "two", "one"]
  assert (await client.get(f"/cards/{c}/activities", headers=stranger.headers)).status_code == 403
  assert (await client.post(f"/cards/{c}/comments", json={"body": "hi"}, headers=stranger.headers)).status_code == 403
  assert (await client.post(f"/cards/{c}/comments", json={"body": "   "}, headers=owner.headers)).status_code == 422
