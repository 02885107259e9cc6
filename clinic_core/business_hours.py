from __future__ import annotations

import math
from datetime import datetime

from .timespan import TimeSpan

DEFAULT_START_HOUR = 8
DEFAULT_END_HOUR = 18


def ceiling_end_hour(span: TimeSpan) -> int:
    """
    Ora di fine dell'intervallo, arrotondata per eccesso se non cade all'ora esatta.
    Contata dalla mezzanotte del giorno di inizio: oltre la mezzanotte
    restituisce 24 o più invece di ripartire da 0.
    """
    day_start = datetime.combine(span.start.date(), datetime.min.time(), tzinfo=span.start.tzinfo)
    return math.ceil((span.end - day_start).total_seconds() / 3600)


def is_within_business_hours(
    span: TimeSpan,
    start_hour: int = DEFAULT_START_HOUR,
    end_hour: int = DEFAULT_END_HOUR,
) -> bool:
    """
    Con (8, 18): 09:00-10:00 è valido; 17:30-18:30 no (eccesso 19 > 18).
    Fine esattamente alle end_hour:00 è ancora valida, 18:01 no.
    """
    return span.start.hour >= start_hour and ceiling_end_hour(span) <= end_hour
