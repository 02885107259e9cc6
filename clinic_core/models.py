from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .timespan import TimeSpan


def new_uuid() -> str:
    return str(uuid.uuid4())


class Role(enum.Enum):
    ADMIN = "ADMIN"
    PHYSIOTHERAPIST = "PHYSIOTHERAPIST"
    RECEPTIONIST = "RECEPTIONIST"
    PATIENT = "PATIENT"


STAFF_ROLES = frozenset({Role.ADMIN, Role.PHYSIOTHERAPIST, Role.RECEPTIONIST})


class AppointmentStatus(enum.Enum):
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    RESCHEDULED = "RESCHEDULED"


TERMINAL_APPOINTMENT_STATUSES = frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED})


class TherapyPlanStatus(enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class InvoiceStatus(enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class Doctor(Base):
    __tablename__ = "doctors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    first_name: Mapped[str] = mapped_column(String(80), nullable=False)
    last_name: Mapped[str] = mapped_column(String(80), nullable=False)
    specialization: Mapped[str | None] = mapped_column(String(120), nullable=True)
    # account che agisce come questo medico (subject del token)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, unique=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    appointments: Mapped[list["Appointment"]] = relationship(back_populates="doctor")
    therapy_plans: Mapped[list["TherapyPlan"]] = relationship(back_populates="doctor")

    def __repr__(self) -> str:
        return f"Doctor({self.first_name} {self.last_name})"


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    first_name: Mapped[str] = mapped_column(String(80), nullable=False)
    last_name: Mapped[str] = mapped_column(String(80), nullable=False)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, unique=True)

    appointments: Mapped[list["Appointment"]] = relationship(back_populates="patient")
    therapy_plans: Mapped[list["TherapyPlan"]] = relationship(back_populates="patient")

    def __repr__(self) -> str:
        return f"Patient({self.first_name} {self.last_name})"


class Appointment(Base):
    """Slot prenotato di un medico. Mai cancellato: l'annullamento è un cambio di stato."""

    __tablename__ = "appointments"
    __table_args__ = (Index("ix_appointments_doctor_status", "doctor_id", "status"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id"), nullable=False)
    doctor_id: Mapped[str] = mapped_column(ForeignKey("doctors.id"), nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)

    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus), default=AppointmentStatus.SCHEDULED, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    patient: Mapped["Patient"] = relationship(back_populates="appointments")
    doctor: Mapped["Doctor"] = relationship(back_populates="appointments")

    @property
    def span(self) -> TimeSpan:
        return TimeSpan(self.start, self.duration_minutes)


class Exercise(Base):
    __tablename__ = "exercises"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class TherapyPlan(Base):
    __tablename__ = "therapy_plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id"), nullable=False)
    doctor_id: Mapped[str] = mapped_column(ForeignKey("doctors.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[TherapyPlanStatus] = mapped_column(
        Enum(TherapyPlanStatus), default=TherapyPlanStatus.ACTIVE, nullable=False
    )
    # versione strutturale degli esercizi, incrementata solo da PlanVersionManager
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    patient: Mapped["Patient"] = relationship(back_populates="therapy_plans")
    doctor: Mapped["Doctor"] = relationship(back_populates="therapy_plans")
    exercises: Mapped[list["TherapyPlanExercise"]] = relationship(
        back_populates="therapy_plan", order_by="TherapyPlanExercise.position"
    )
    versions: Mapped[list["TherapyPlanVersion"]] = relationship(
        back_populates="therapy_plan", order_by="TherapyPlanVersion.version"
    )


class TherapyPlanExercise(Base):
    __tablename__ = "therapy_plan_exercises"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    therapy_plan_id: Mapped[int] = mapped_column(ForeignKey("therapy_plans.id"), nullable=False)
    exercise_id: Mapped[int] = mapped_column(ForeignKey("exercises.id"), nullable=False)

    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sets: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    frequency: Mapped[str | None] = mapped_column(String(80), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    therapy_plan: Mapped["TherapyPlan"] = relationship(back_populates="exercises")
    exercise: Mapped["Exercise"] = relationship()
    completions: Mapped[list["CompletionEvent"]] = relationship(back_populates="plan_exercise")


class TherapyPlanVersion(Base):
    """Storico append-only: una riga per ogni incremento di versione, mai riscritta."""

    __tablename__ = "therapy_plan_versions"
    __table_args__ = (UniqueConstraint("therapy_plan_id", "version", name="uq_plan_version"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    therapy_plan_id: Mapped[int] = mapped_column(ForeignKey("therapy_plans.id"), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    therapy_plan: Mapped["TherapyPlan"] = relationship(back_populates="versions")


class CompletionEvent(Base):
    __tablename__ = "completion_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plan_exercise_id: Mapped[int] = mapped_column(ForeignKey("therapy_plan_exercises.id"), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    pain_level: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 0-10
    satisfaction: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 1-5
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    undone: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    undone_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    undone_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    undone_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    plan_exercise: Mapped["TherapyPlanExercise"] = relationship(back_populates="completions")


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id"), nullable=False)
    appointment_id: Mapped[str | None] = mapped_column(ForeignKey("appointments.id"), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus), default=InvoiceStatus.PENDING, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(40), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    changes: Mapped[str] = mapped_column(Text, nullable=False)  # JSON
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
