"""Busy intervals, candidate slots, and the buffer-padded overlap test."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable


class IntervalSource(str, Enum):
    EXTERNAL_CALENDAR = 'external-calendar'
    INTERNAL_BOOKING = 'internal-booking'


@dataclass(frozen=True)
class OccupiedInterval:
    """A span during which the single bookable resource is unavailable.

    ``title`` and ``id`` are diagnostic only and never take part in conflict checks.
    """

    start: datetime
    end: datetime
    source: IntervalSource
    title: str | None = None
    id: str | None = None

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError('Occupied interval must end after it starts.')


@dataclass(frozen=True)
class CandidateSlot:
    start: datetime
    end: datetime
    time: str
    label: str


def overlaps_with_buffer(
    slot_start: datetime,
    slot_end: datetime,
    interval: OccupiedInterval,
    buffer_minutes: int,
) -> bool:
    buffer = timedelta(minutes=buffer_minutes)
    return slot_start < interval.end + buffer and slot_end > interval.start - buffer


def find_conflicts(
    slot_start: datetime,
    slot_end: datetime,
    occupied: Iterable[OccupiedInterval],
    buffer_minutes: int = 30,
) -> list[OccupiedInterval]:
    return [
        interval
        for interval in occupied
        if overlaps_with_buffer(slot_start, slot_end, interval, buffer_minutes)
    ]


def is_slot_conflicting(
    slot_start: datetime,
    slot_end: datetime,
    occupied: Iterable[OccupiedInterval],
    buffer_minutes: int = 30,
) -> bool:
    # Both comparisons are strict: a slot starting exactly at end + buffer is free.
    return any(overlaps_with_buffer(slot_start, slot_end, interval, buffer_minutes) for interval in occupied)
