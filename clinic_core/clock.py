from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Orologio di sistema in ora locale dello studio (naive, come i timestamp salvati)."""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock:
    """Orologio fisso per i test."""

    def __init__(self, current: datetime) -> None:
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current
