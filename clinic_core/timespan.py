from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from .errors import ValidationError


@dataclass(frozen=True)
class TimeSpan:
    """
    Intervallo semiaperto [start, start + durata).
    Due intervalli che si toccano solo agli estremi non si sovrappongono.
    """

    start: datetime
    duration_minutes: int

    def __post_init__(self) -> None:
        if isinstance(self.duration_minutes, bool) or not isinstance(self.duration_minutes, int):
            raise ValidationError("Duration must be an integer number of minutes.")
        if self.duration_minutes <= 0:
            raise ValidationError("Duration must be greater than zero.")

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)


def overlaps(a: TimeSpan, b: TimeSpan) -> bool:
    return a.start < b.end and b.start < a.end
