from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from .actors import Actor
from .audit import AuditEntry, AuditSink, emit_audit
from .clock import Clock
from .config import Settings
from .errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .models import CompletionEvent
from .store import RecordStore

logger = logging.getLogger(__name__)


class Undoable(Protocol):
    undone: bool
    completed_at: datetime


@dataclass(frozen=True)
class UndoDecision:
    audit_required: bool
    reason: str | None = None


def authorize_undo(
    completion: Undoable,
    actor: Actor,
    owner_user_id: str | None,
    now: datetime,
    reason: str | None = None,
    window_minutes: int = 5,
) -> UndoDecision:
    """
    Paziente proprietario: consentito entro la finestra (esattamente
    ``window_minutes`` passa ancora), nessun audit.
    Staff: sempre consentito con motivo non vuoto, con audit.
    Altri: vietato. Un completamento si annulla al massimo una volta.
    """
    if completion.undone:
        raise ConflictError("Completion event has already been undone")

    if actor.is_patient:
        if owner_user_id is None or owner_user_id != actor.user_id:
            raise ForbiddenError("You can only undo your own completion events")
        minutes_diff = (now - completion.completed_at).total_seconds() / 60
        if minutes_diff > window_minutes:
            raise ForbiddenError(f"You can only undo completion events within {window_minutes} minutes")
        return UndoDecision(audit_required=False)

    if actor.is_staff:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Reason is required for staff/admin undo")
        return UndoDecision(audit_required=True, reason=reason)

    raise ForbiddenError("Access denied")


def _check_scale(name: str, value: int | None, low: int, high: int) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise ValidationError(f"{name} must be between {low} and {high}")


class CompletionService:
    def __init__(
        self,
        store: RecordStore,
        audit: AuditSink,
        clock: Clock,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.audit = audit
        self.clock = clock
        self.settings = settings or Settings()

    def record_completion(
        self,
        actor: Actor,
        patient_id: str,
        plan_exercise_id: int | None,
        pain_level: int | None = None,
        satisfaction: int | None = None,
        notes: str | None = None,
    ) -> CompletionEvent:
        """Lato paziente: segna come fatto un esercizio del proprio piano."""
        if not plan_exercise_id:
            raise ValidationError("Therapy plan exercise ID is required")

        patient = self.store.get_patient(patient_id)
        if patient is None:
            raise NotFoundError("Patient not found")
        if actor.is_patient:
            if patient.user_id != actor.user_id:
                raise ForbiddenError("You can only create completion events for yourself")
        elif not actor.is_staff:
            raise ForbiddenError("Access denied")

        plan_exercise = self.store.get_plan_exercise(plan_exercise_id)
        if plan_exercise is None or plan_exercise.archived:
            raise NotFoundError("Therapy plan exercise not found or archived")
        if plan_exercise.therapy_plan.patient_id != patient_id:
            raise ForbiddenError("Therapy plan exercise does not belong to this patient")

        _check_scale("Pain level", pain_level, 0, 10)
        _check_scale("Satisfaction", satisfaction, 1, 5)

        completion = self.store.add(
            CompletionEvent(
                plan_exercise_id=plan_exercise.id,
                completed_at=self.clock.now(),
                pain_level=pain_level,
                satisfaction=satisfaction,
                notes=notes,
                undone=False,
            )
        )
        logger.info("Completion %s recorded for plan exercise %s", completion.id, plan_exercise.id)
        return completion

    def undo(self, actor: Actor, completion_id: int, reason: str | None = None) -> CompletionEvent:
        # letto una volta: lo stesso istante decide la finestra e va in undone_at
        now = self.clock.now()

        completion = self.store.get_completion(completion_id, lock=True)
        if completion is None:
            raise NotFoundError("Completion event not found")

        owner_user_id = completion.plan_exercise.therapy_plan.patient.user_id
        decision = authorize_undo(
            completion,
            actor,
            owner_user_id,
            now,
            reason=reason,
            window_minutes=self.settings.patient_undo_window_minutes,
        )

        completion.undone = True
        completion.undone_at = now
        completion.undone_by = actor.user_id
        completion.undone_reason = decision.reason
        self.store.flush()

        if decision.audit_required:
            emit_audit(
                self.audit,
                AuditEntry(
                    actor_id=actor.user_id,
                    entity_type="CompletionEvent",
                    entity_id=str(completion.id),
                    action="UNDO",
                    timestamp=now,
                    changes={"reason": decision.reason, "undoneAt": now.isoformat()},
                ),
            )
        logger.info("Completion %s undone by %s (%s)", completion.id, actor.user_id, actor.role)
        return completion
