from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging

from app.core.exceptions import SchedulingExhaustedError
from app.services.priority_orderer import (
    SLOT_INTERVAL,
    ConflictRecord,
    PriorityOrderer,
    ScheduleAdjustment,
    truncate_to_minute,
)
from app.services.roles import role_to_priority

logger = logging.getLogger(__name__)

# 180 windows of 5 minutes cover the next 15 hours.
DEFAULT_MAX_ITERATIONS = 180

ConflictProbe = Callable[[datetime, datetime], Sequence[ConflictRecord]]


@dataclass(frozen=True)
class ScheduleResolution:
    scheduled_at: datetime
    auto_adjusted: bool
    adjustments: list[ScheduleAdjustment] = field(default_factory=list)


def _describe_window(slot_interval: timedelta, iterations: int) -> str:
    total_minutes = int(slot_interval.total_seconds() // 60) * iterations
    hours, minutes = divmod(total_minutes, 60)
    if hours and minutes:
        return f"{hours} hours {minutes} minutes"
    if hours:
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} minutes"


class SlotResolver:
    """Places an announcement on the slot grid, relative to its desired time.

    ``find_conflicts(start, end)`` must return every live announcement whose
    ``scheduled_at`` lies in ``[start, end)``. Errors raised by the probe are
    propagated unchanged so the caller's transaction can roll back.
    """

    def __init__(
        self,
        find_conflicts: ConflictProbe,
        *,
        slot_interval: timedelta = SLOT_INTERVAL,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        role_priority: Callable[[str | None], int] = role_to_priority,
    ) -> None:
        if slot_interval <= timedelta(0):
            raise ValueError(f"Slot interval must be positive, got {slot_interval}")
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")
        self.find_conflicts = find_conflicts
        self.slot_interval = slot_interval
        self.max_iterations = max_iterations
        self.role_priority = role_priority
        self.orderer = PriorityOrderer(slot_interval)

    def seek_forward(self, desired_time: datetime) -> ScheduleResolution:
        desired = truncate_to_minute(desired_time)
        candidate = desired

        for _ in range(self.max_iterations):
            window_end = candidate + self.slot_interval
            if not self.find_conflicts(candidate, window_end):
                if candidate != desired:
                    logger.info("Moved schedule from %s to next free slot %s", desired.isoformat(), candidate.isoformat())
                return ScheduleResolution(scheduled_at=candidate, auto_adjusted=candidate != desired)
            candidate = window_end

        window = _describe_window(self.slot_interval, self.max_iterations)
        raise SchedulingExhaustedError(
            f"Unable to find an available time slot within the next {window}. "
            "Please choose a different scheduled time.",
            desired_time=desired,
            searched_slots=self.max_iterations,
        )

    def reflow(self, desired_time: datetime, *, priority_level: int, role_priority: int) -> ScheduleResolution:
        desired = truncate_to_minute(desired_time)
        conflicts = self.find_conflicts(desired, desired + self.slot_interval)
        if not conflicts:
            return ScheduleResolution(scheduled_at=desired, auto_adjusted=False)

        result = self.orderer.reflow(
            desired,
            conflicts,
            priority_level=priority_level,
            role_priority=role_priority,
            role_lookup=self.role_priority,
        )
        auto_adjusted = result.new_item_slot != desired or bool(result.adjustments)
        logger.info(
            "Reflowed %d conflicting announcement(s) at %s; new item placed at %s",
            len(result.adjustments),
            desired.isoformat(),
            result.new_item_slot.isoformat(),
        )
        return ScheduleResolution(
            scheduled_at=result.new_item_slot,
            auto_adjusted=auto_adjusted,
            adjustments=result.adjustments,
        )

    def resolve(
        self,
        desired_time: datetime,
        *,
        requester_role_priority: int,
        priority_level: int,
        is_privileged_scheduler: bool,
    ) -> ScheduleResolution:
        if is_privileged_scheduler:
            return self.reflow(desired_time, priority_level=priority_level, role_priority=requester_role_priority)
        return self.seek_forward(desired_time)


def resolve_schedule(
    find_conflicts: ConflictProbe,
    desired_time: datetime,
    requester_role_priority: int,
    new_item_priority_level: int,
    is_privileged_scheduler: bool,
    **options,
) -> ScheduleResolution:
    resolver = SlotResolver(find_conflicts, **options)
    return resolver.resolve(
        desired_time,
        requester_role_priority=requester_role_priority,
        priority_level=new_item_priority_level,
        is_privileged_scheduler=is_privileged_scheduler,
    )
