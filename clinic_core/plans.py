from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, NamedTuple, Union

from .actors import Actor
from .clock import Clock
from .errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .models import Role, TherapyPlan, TherapyPlanExercise, TherapyPlanVersion
from .store import RecordStore

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("position", "reps", "sets", "duration", "frequency", "notes")
_INT_FIELDS = ("reps", "sets", "duration")


# =========================
# Modifiche
# =========================
@dataclass(frozen=True)
class AddExercise:
    exercise_id: int
    position: int = 0
    reps: int | None = None
    sets: int | None = None
    duration: int | None = None
    frequency: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class UpdateExercise:
    """``changes`` contiene solo i campi da impostare; None svuota il campo (non position)."""

    exercise_id: int
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ArchiveExercise:
    exercise_id: int


PlanMutation = Union[AddExercise, UpdateExercise, ArchiveExercise]


class VersionBump(NamedTuple):
    version: int
    record: TherapyPlanVersion
    plan_exercise: TherapyPlanExercise


def _check_params(values: dict[str, Any]) -> None:
    for name in _INT_FIELDS:
        value = values.get(name)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value <= 0):
            raise ValidationError(f"{name} must be a positive integer")
    if "position" not in values:
        return
    position = values["position"]
    if isinstance(position, bool) or not isinstance(position, int) or position < 0:
        raise ValidationError("position must be a non-negative integer")


class PlanVersionManager:
    """
    Ogni modifica strutturale degli esercizi di un piano (aggiunta, parametri,
    archiviazione) incrementa ``TherapyPlan.version`` di uno e aggiunge una
    riga ``TherapyPlanVersion``. Tutto viene scritto con un unico flush nella
    transazione del chiamante: o passano tutte e tre le scritture o nessuna.
    La riga del piano è bloccata prima, così modifiche concorrenti dello stesso
    piano sono serializzate; il vincolo unique (piano, versione) fa da rete.
    """

    def __init__(self, store: RecordStore, clock: Clock) -> None:
        self.store = store
        self.clock = clock

    def _require_editor(self, actor: Actor, plan: TherapyPlan) -> None:
        if actor.role is Role.ADMIN:
            return
        if actor.role is Role.PHYSIOTHERAPIST and plan.doctor.user_id == actor.user_id:
            return
        raise ForbiddenError("You can only edit therapy plans for your own patients")

    def _get_plan(self, plan_id: int, lock: bool = False) -> TherapyPlan:
        plan = self.store.get_plan(plan_id, lock=lock)
        if plan is None:
            raise NotFoundError("Therapy plan not found")
        return plan

    def create_plan(
        self,
        actor: Actor,
        patient_id: str,
        doctor_id: str,
        name: str,
        start_date: date,
        description: str | None = None,
    ) -> TherapyPlan:
        if not patient_id or not doctor_id or not (name or "").strip() or start_date is None:
            raise ValidationError("Patient ID, doctor ID, name, and start date are required")
        if self.store.get_patient(patient_id) is None:
            raise NotFoundError("Patient not found")
        doctor = self.store.get_doctor(doctor_id)
        if doctor is None:
            raise NotFoundError("Doctor not found")
        if not (actor.role is Role.ADMIN or (actor.role is Role.PHYSIOTHERAPIST and doctor.user_id == actor.user_id)):
            raise ForbiddenError("You can only create therapy plans for your own patients")

        plan = self.store.add(
            TherapyPlan(
                patient_id=patient_id,
                doctor_id=doctor_id,
                name=name.strip(),
                description=description,
                start_date=start_date,
                version=1,
            )
        )
        logger.info("Therapy plan %s created for patient %s", plan.id, patient_id)
        return plan

    def mutate(self, plan_id: int, mutation: PlanMutation, actor: Actor) -> VersionBump:
        plan = self._get_plan(plan_id, lock=True)
        self._require_editor(actor, plan)

        if isinstance(mutation, AddExercise):
            plan_exercise, summary = self._add(plan, mutation)
        elif isinstance(mutation, UpdateExercise):
            plan_exercise, summary = self._update(plan, mutation)
        elif isinstance(mutation, ArchiveExercise):
            plan_exercise, summary = self._archive(plan, mutation)
        else:
            raise ValidationError(f"Unsupported plan mutation: {type(mutation).__name__}")

        new_version = plan.version + 1
        plan.version = new_version
        record = self.store.stage(
            TherapyPlanVersion(
                therapy_plan_id=plan.id,
                version=new_version,
                summary=summary,
                author_id=actor.user_id,
                created_at=self.clock.now(),
            )
        )
        self.store.flush()

        logger.info("Therapy plan %s bumped to v%s: %s", plan.id, new_version, summary)
        return VersionBump(new_version, record, plan_exercise)

    def _add(self, plan: TherapyPlan, mutation: AddExercise) -> tuple[TherapyPlanExercise, str]:
        exercise = self.store.get_exercise(mutation.exercise_id)
        if exercise is None or exercise.archived:
            raise NotFoundError("Exercise not found or archived")
        if self.store.find_plan_exercise(plan.id, exercise.id) is not None:
            raise ConflictError(f'Exercise "{exercise.name}" is already in this plan')
        _check_params(
            {
                "position": mutation.position or 0,
                "reps": mutation.reps,
                "sets": mutation.sets,
                "duration": mutation.duration,
            }
        )

        plan_exercise = self.store.stage(
            TherapyPlanExercise(
                therapy_plan_id=plan.id,
                exercise=exercise,
                position=mutation.position or 0,
                reps=mutation.reps,
                sets=mutation.sets,
                duration=mutation.duration,
                frequency=mutation.frequency,
                notes=mutation.notes,
                archived=False,
            )
        )
        return plan_exercise, f'Exercise "{exercise.name}" added to plan'

    def _update(self, plan: TherapyPlan, mutation: UpdateExercise) -> tuple[TherapyPlanExercise, str]:
        plan_exercise = self._find_assignment(plan, mutation.exercise_id)

        unknown = sorted(set(mutation.changes) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(unknown)}")
        _check_params(mutation.changes)

        changed = [
            name
            for name in EDITABLE_FIELDS
            if name in mutation.changes and getattr(plan_exercise, name) != mutation.changes[name]
        ]
        if not changed:
            raise ValidationError("No changes to apply")
        for name in changed:
            setattr(plan_exercise, name, mutation.changes[name])

        return plan_exercise, f'Exercise "{plan_exercise.exercise.name}" updated in plan: {", ".join(changed)}'

    def _archive(self, plan: TherapyPlan, mutation: ArchiveExercise) -> tuple[TherapyPlanExercise, str]:
        plan_exercise = self._find_assignment(plan, mutation.exercise_id)
        plan_exercise.archived = True
        return plan_exercise, f'Exercise "{plan_exercise.exercise.name}" archived from plan'

    def _find_assignment(self, plan: TherapyPlan, exercise_id: int) -> TherapyPlanExercise:
        plan_exercise = self.store.find_plan_exercise(plan.id, exercise_id)
        if plan_exercise is None:
            raise NotFoundError("Exercise not found in this therapy plan")
        return plan_exercise

    # =========================
    # Letture (non toccano la versione)
    # =========================
    def list_exercises(self, plan_id: int, include_archived: bool = False) -> list[TherapyPlanExercise]:
        self._get_plan(plan_id)
        return self.store.plan_exercises(plan_id, include_archived=include_archived)

    def history(self, plan_id: int) -> list[TherapyPlanVersion]:
        self._get_plan(plan_id)
        return self.store.plan_history(plan_id)
