from dataclasses import dataclass, field
from datetime import time

from detailing.core import config
from detailing.scheduling.timezone import parse_canonical_time


@dataclass(frozen=True)
class SchedulingPolicy:
    """Business-hours rules the slot generator and submission check are evaluated against."""

    time_zone: str = config.SERVICE_TIME_ZONE
    open_time: time = time(8, 0)
    close_time: time = time(18, 0)
    slot_increment_minutes: int = 30
    buffer_minutes: int = 30
    default_duration_minutes: int = 60
    excluded_weekdays: frozenset[int] = field(default_factory=lambda: frozenset({0, 6}))

    def __post_init__(self) -> None:
        if self.close_time <= self.open_time:
            raise ValueError('close_time must be after open_time.')
        if self.slot_increment_minutes <= 0:
            raise ValueError('slot_increment_minutes must be positive.')
        if self.buffer_minutes < 0:
            raise ValueError('buffer_minutes cannot be negative.')

    @property
    def business_minutes(self) -> int:
        return (self.close_time.hour * 60 + self.close_time.minute) - (self.open_time.hour * 60 + self.open_time.minute)

    def is_excluded_weekday(self, weekday: int) -> bool:
        return weekday in self.excluded_weekdays

    @classmethod
    def from_config(cls) -> 'SchedulingPolicy':
        open_time = parse_canonical_time(config.BUSINESS_OPEN_TIME)
        close_time = parse_canonical_time(config.BUSINESS_CLOSE_TIME)
        if open_time is None or close_time is None:
            raise ValueError('BUSINESS_OPEN_TIME and BUSINESS_CLOSE_TIME must be HH:MM.')

        return cls(
            time_zone=config.SERVICE_TIME_ZONE,
            open_time=open_time,
            close_time=close_time,
            slot_increment_minutes=config.SLOT_INCREMENT_MINUTES,
            buffer_minutes=config.CONFLICT_BUFFER_MINUTES,
            default_duration_minutes=config.DEFAULT_SERVICE_DURATION_MINUTES,
            excluded_weekdays=frozenset(config.EXCLUDED_WEEKDAYS),
        )
