"""Deterministic slot assignment for announcements contending for one window.

Candidates are ordered by content priority (``priority_level`` ascending, 0 is
most urgent) and, on a tie, by author role rank descending. The sorted batch
is laid out on consecutive slots starting at the window start. Only the
candidate being scheduled has ``id=None``; every other candidate whose slot
moved yields a :class:`ScheduleAdjustment` for the caller to persist.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.services.roles import LOWEST_PRIORITY_LEVEL, role_to_priority

SLOT_INTERVAL = timedelta(minutes=5)


def truncate_to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


@dataclass(frozen=True)
class ConflictRecord:
    """A live scheduled announcement as reported by the conflict probe."""

    id: int
    scheduled_at: datetime | None
    priority_level: int | None = None
    author_role: str | None = None
    title: str | None = None


@dataclass(frozen=True)
class ScheduleCandidate:
    id: int | None
    priority_level: int
    author_role_priority: int
    scheduled_at: datetime | None


@dataclass(frozen=True)
class ScheduleAdjustment:
    id: int
    new_time: datetime


@dataclass(frozen=True)
class SlotAssignment:
    candidate: ScheduleCandidate
    slot: datetime


@dataclass(frozen=True)
class OrderingResult:
    assignments: list[SlotAssignment]
    new_item_slot: datetime
    adjustments: list[ScheduleAdjustment]


def candidate_from_conflict(
    record: ConflictRecord,
    role_priority: Callable[[str | None], int] = role_to_priority,
) -> ScheduleCandidate:
    priority_level = record.priority_level if record.priority_level is not None else LOWEST_PRIORITY_LEVEL
    return ScheduleCandidate(
        id=record.id,
        priority_level=priority_level,
        author_role_priority=role_priority(record.author_role),
        scheduled_at=record.scheduled_at,
    )


class PriorityOrderer:
    def __init__(self, slot_interval: timedelta = SLOT_INTERVAL) -> None:
        if slot_interval <= timedelta(0):
            raise ValueError(f"Slot interval must be positive, got {slot_interval}")
        self.slot_interval = slot_interval

    @staticmethod
    def sort_key(candidate: ScheduleCandidate) -> tuple[int, int]:
        return candidate.priority_level, -candidate.author_role_priority

    def order(self, candidates: Iterable[ScheduleCandidate]) -> list[ScheduleCandidate]:
        # sorted() is stable, so full ties keep their input order.
        return sorted(candidates, key=self.sort_key)

    def assign(self, window_start: datetime, candidates: Sequence[ScheduleCandidate]) -> OrderingResult:
        new_items = [item for item in candidates if item.id is None]
        if len(new_items) != 1:
            raise ValueError(f"Expected exactly one unscheduled candidate, got {len(new_items)}")

        cursor = truncate_to_minute(window_start)
        assignments: list[SlotAssignment] = []
        adjustments: list[ScheduleAdjustment] = []
        new_item_slot = cursor

        for candidate in self.order(candidates):
            assignments.append(SlotAssignment(candidate=candidate, slot=cursor))
            if candidate.id is None:
                new_item_slot = cursor
            elif candidate.scheduled_at is None or truncate_to_minute(candidate.scheduled_at) != cursor:
                adjustments.append(ScheduleAdjustment(id=candidate.id, new_time=cursor))
            cursor = cursor + self.slot_interval

        return OrderingResult(assignments=assignments, new_item_slot=new_item_slot, adjustments=adjustments)

    def reflow(
        self,
        window_start: datetime,
        conflicts: Iterable[ConflictRecord],
        *,
        priority_level: int,
        role_priority: int,
        role_lookup: Callable[[str | None], int] = role_to_priority,
    ) -> OrderingResult:
        """Order existing conflicts together with the new item and lay them out from ``window_start``."""
        start = truncate_to_minute(window_start)
        candidates = [candidate_from_conflict(record, role_lookup) for record in conflicts]
        candidates.append(
            ScheduleCandidate(
                id=None,
                priority_level=priority_level,
                author_role_priority=role_priority,
                scheduled_at=start,
            )
        )
        return self.assign(start, candidates)
