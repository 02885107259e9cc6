from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.orm import Session

from .models import AuditLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEntry:
    actor_id: str
    entity_type: str
    entity_id: str
    action: str
    timestamp: datetime
    changes: dict[str, Any] = field(default_factory=dict)


class AuditSink(Protocol):
    def write(self, entry: AuditEntry) -> None: ...


class SessionAuditSink:
    """
    Scrive l'audit nella transazione del chiamante, dentro un SAVEPOINT:
    se l'insert fallisce si annulla solo quello, la modifica principale resta.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def write(self, entry: AuditEntry) -> None:
        with self.session.begin_nested():
            self.session.add(
                AuditLog(
                    actor_id=entry.actor_id,
                    entity_type=entry.entity_type,
                    entity_id=str(entry.entity_id),
                    action=entry.action,
                    changes=json.dumps(entry.changes, default=str),
                    created_at=entry.timestamp,
                )
            )


class MemoryAuditSink:
    """Tiene le voci in una lista (per i test)."""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    def write(self, entry: AuditEntry) -> None:
        self.entries.append(entry)


def emit_audit(sink: AuditSink, entry: AuditEntry) -> bool:
    """Best-effort: un errore di audit viene loggato, mai propagato al chiamante."""
    try:
        sink.write(entry)
    except Exception:
        logger.exception(
            "Failed to write audit log: %s %s %s by %s",
            entry.action,
            entry.entity_type,
            entry.entity_id,
            entry.actor_id,
        )
        return False
    return True
