from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable


@dataclass(frozen=True)
class Slot:
  card_id: str
  position: int


@dataclass(frozen=True)
class PositionPlan:
  """
  Position changes for one move or removal.

  `shifts` are the neighbours in the source container whose position changes,
  `target_shifts` the ones in the destination container (cross-container moves
  only). The moved card itself is described by `from_index`/`to_index`.
  """

  card_id: str
  from_index: int
  to_index: int
  cross_container: bool = False
  shifts: dict[str, int] = field(default_factory=dict)
  target_shifts: dict[str, int] = field(default_factory=dict)

  @property
  def is_noop(self) -> bool:
    return not self.cross_container and self.from_index == self.to_index and not self.shifts

  @property
  def write_count(self) -> int:
    if self.is_noop:
      return 0
    moved = 1 if (self.cross_container or self.from_index != self.to_index) else 0
    return len(self.shifts) + len(self.target_shifts) + moved


def ordered_ids(slots: Iterable[Slot]) -> list[str]:
  # Ties on a corrupted position break on id so the result is deterministic.
  return [s.card_id for s in sorted(slots, key=lambda s: (s.position, s.card_id))]


def clamp_index(index: int, count: int) -> int:
  return max(0, min(int(index), count))


def is_dense(positions: Iterable[int]) -> bool:
  ps = sorted(positions)
  return ps == list(range(len(ps)))


def _diff(slots: Iterable[Slot], order: list[str]) -> dict[str, int]:
  old = {s.card_id: s.position for s in slots}
  return {cid: idx for idx, cid in enumerate(order) if cid in old and old[cid] != idx}


def _current(slots: list[Slot], card_id: str) -> int:
  for s in slots:
    if s.card_id == card_id:
      return s.position
  raise ValueError(f"card {card_id} is not in this container")


def plan_reorder(slots: list[Slot], card_id: str, to_index: int) -> PositionPlan:
  """Move `card_id` to `to_index` inside the same container."""
  current = _current(slots, card_id)
  order = ordered_ids(slots)
  order.remove(card_id)
  target = clamp_index(to_index, len(order))
  order.insert(target, card_id)
  shifts = _diff([s for s in slots if s.card_id != card_id], order)
  return PositionPlan(card_id=card_id, from_index=current, to_index=target, shifts=shifts)


def plan_transfer(source: list[Slot], target: list[Slot], card_id: str, to_index: int) -> PositionPlan:
  """Move `card_id` out of `source` and into `target` at `to_index`."""
  current = _current(source, card_id)
  src_order = ordered_ids(source)
  src_order.remove(card_id)
  dst_slots = [s for s in target if s.card_id != card_id]
  dst_order = ordered_ids(dst_slots)
  dest = clamp_index(to_index, len(dst_order))
  dst_order.insert(dest, card_id)
  return PositionPlan(
    card_id=card_id,
    from_index=current,
    to_index=dest,
    cross_container=True,
    shifts=_diff([s for s in source if s.card_id != card_id], src_order),
    target_shifts=_diff(dst_slots, dst_order),
  )


def plan_removal(slots: list[Slot], card_id: str) -> PositionPlan:
  """Close the gap left by deleting `card_id`."""
  current = _current(slots, card_id)
  order = ordered_ids(slots)
  order.remove(card_id)
  shifts = _diff([s for s in slots if s.card_id != card_id], order)
  return PositionPlan(card_id=card_id, from_index=current, to_index=-1, shifts=shifts)
