from __future__ import annotations

from typing import Iterable, Protocol

from .models import Appointment, AppointmentStatus
from .store import RecordStore
from .timespan import TimeSpan, overlaps


class Commitment(Protocol):
    id: str
    status: AppointmentStatus

    @property
    def span(self) -> TimeSpan: ...


def find_conflicts(
    candidate: TimeSpan,
    commitments: Iterable[Commitment],
    exclude_id: str | None = None,
) -> list[Commitment]:
    return [
        c
        for c in commitments
        if c.status != AppointmentStatus.CANCELLED and c.id != exclude_id and overlaps(candidate, c.span)
    ]


def has_conflict(
    candidate: TimeSpan,
    commitments: Iterable[Commitment],
    exclude_id: str | None = None,
) -> bool:
    """Controllo di esistenza: si ferma alla prima sovrapposizione."""
    return any(
        c.status != AppointmentStatus.CANCELLED and c.id != exclude_id and overlaps(candidate, c.span)
        for c in commitments
    )


class ConflictResolver:
    """
    Scansione lineare degli appuntamenti attivi del medico. Per medico sono
    giorni/settimane di prenotazioni, niente indice a intervalli.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def has_conflict(self, doctor_id: str, span: TimeSpan, exclude_id: str | None = None) -> bool:
        return has_conflict(span, self.store.active_commitments(doctor_id, exclude_id), exclude_id)

    def conflicts_for(self, doctor_id: str, span: TimeSpan, exclude_id: str | None = None) -> list[Appointment]:
        return find_conflicts(span, self.store.active_commitments(doctor_id, exclude_id), exclude_id)
