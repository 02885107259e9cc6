from __future__ import annotations

from typing import TypeVar

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from .db import Base
from .models import (
    Appointment,
    AppointmentStatus,
    CompletionEvent,
    Doctor,
    Exercise,
    Invoice,
    Patient,
    TherapyPlan,
    TherapyPlanExercise,
    TherapyPlanVersion,
)

T = TypeVar("T", bound=Base)


class RecordStore:
    """
    Accesso in lettura/scrittura ai record, legato a una sessione (una
    transazione). I lock di riga (``with_for_update``) serializzano per medico
    e per piano; SQLite li ignora e serializza da solo le scritture.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, obj: T) -> T:
        self.session.add(obj)
        self.session.flush()
        return obj

    def stage(self, obj: T) -> T:
        """Aggiunge senza flush: scritto al prossimo flush, insieme al resto."""
        self.session.add(obj)
        return obj

    def flush(self) -> None:
        self.session.flush()

    # =========================
    # Agenda
    # =========================
    def get_doctor(self, doctor_id: str, lock: bool = False) -> Doctor | None:
        if not lock:
            return self.session.get(Doctor, doctor_id)
        q = select(Doctor).where(Doctor.id == doctor_id).with_for_update()
        return self.session.scalars(q).first()

    def get_patient(self, patient_id: str) -> Patient | None:
        return self.session.get(Patient, patient_id)

    def get_appointment(self, appointment_id: str) -> Appointment | None:
        return self.session.get(Appointment, appointment_id)

    def active_commitments(self, doctor_id: str, exclude_id: str | None = None) -> list[Appointment]:
        """Appuntamenti non annullati del medico; la sovrapposizione si verifica in codice."""
        conditions = [
            Appointment.doctor_id == doctor_id,
            Appointment.status != AppointmentStatus.CANCELLED,
        ]
        if exclude_id is not None:
            conditions.append(Appointment.id != exclude_id)
        q = select(Appointment).where(and_(*conditions)).order_by(Appointment.start.asc())
        return list(self.session.scalars(q))

    # =========================
    # Piani terapeutici
    # =========================
    def get_plan(self, plan_id: int, lock: bool = False) -> TherapyPlan | None:
        if not lock:
            return self.session.get(TherapyPlan, plan_id)
        q = select(TherapyPlan).where(TherapyPlan.id == plan_id).with_for_update()
        return self.session.scalars(q).first()

    def get_exercise(self, exercise_id: int) -> Exercise | None:
        return self.session.get(Exercise, exercise_id)

    def get_plan_exercise(self, plan_exercise_id: int) -> TherapyPlanExercise | None:
        return self.session.get(TherapyPlanExercise, plan_exercise_id)

    def find_plan_exercise(self, plan_id: int, exercise_id: int) -> TherapyPlanExercise | None:
        """Assegnazione attiva (non archiviata) di un esercizio del catalogo nel piano."""
        q = select(TherapyPlanExercise).where(
            and_(
                TherapyPlanExercise.therapy_plan_id == plan_id,
                TherapyPlanExercise.exercise_id == exercise_id,
                TherapyPlanExercise.archived.is_(False),
            )
        )
        return self.session.scalars(q).first()

    def plan_exercises(self, plan_id: int, include_archived: bool = False) -> list[TherapyPlanExercise]:
        q = select(TherapyPlanExercise).where(TherapyPlanExercise.therapy_plan_id == plan_id)
        if not include_archived:
            q = q.where(TherapyPlanExercise.archived.is_(False))
        q = q.order_by(TherapyPlanExercise.position.asc(), TherapyPlanExercise.id.asc())
        return list(self.session.scalars(q))

    def plan_history(self, plan_id: int) -> list[TherapyPlanVersion]:
        q = (
            select(TherapyPlanVersion)
            .where(TherapyPlanVersion.therapy_plan_id == plan_id)
            .order_by(TherapyPlanVersion.version.asc())
        )
        return list(self.session.scalars(q))

    # =========================
    # Completamenti / fatture
    # =========================
    def get_completion(self, completion_id: int, lock: bool = False) -> CompletionEvent | None:
        if not lock:
            return self.session.get(CompletionEvent, completion_id)
        q = select(CompletionEvent).where(CompletionEvent.id == completion_id).with_for_update()
        return self.session.scalars(q).first()

    def get_invoice(self, invoice_id: int) -> Invoice | None:
        return self.session.get(Invoice, invoice_id)
