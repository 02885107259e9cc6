from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, Iterator

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .actors import Actor
from .appointments import AppointmentLifecycle, to_local_naive
from .audit import SessionAuditSink
from .auth_security import actor_from_token
from .clock import Clock, SystemClock
from .completions import CompletionService
from .config import Settings, configure_logging, load_settings
from .conflicts import ConflictResolver
from .db import init_db, make_engine, make_session_factory, session_scope
from .errors import ClinicError, ForbiddenError, NotFoundError
from .invoices import InvoiceService
from .models import Appointment, AppointmentStatus, CompletionEvent, TherapyPlan, TherapyPlanExercise
from .plans import AddExercise, ArchiveExercise, PlanVersionManager, UpdateExercise
from .store import RecordStore
from .timespan import TimeSpan

_settings = load_settings()
engine = make_engine(_settings.database_url)
SessionLocal = make_session_factory(engine)

bearer_scheme = HTTPBearer(auto_error=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db(engine)
    yield


app = FastAPI(title="Clinic Rule Engine API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(ClinicError)
async def clinic_error_handler(request: Request, exc: ClinicError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})


# Dipendenze (sovrascrivibili nei test)

def get_settings() -> Settings:
    return _settings


def get_clock() -> Clock:
    return SystemClock()


def get_session() -> Iterator[Session]:
    with session_scope(SessionLocal) as s:
        yield s


def get_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> Actor:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    # protezione extra: elimina spazi / virgolette accidentali
    token = credentials.credentials.strip().strip('"').strip("'")
    actor = actor_from_token(token, settings)
    if actor is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return actor


def get_lifecycle(
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> AppointmentLifecycle:
    return AppointmentLifecycle(RecordStore(session), SessionAuditSink(session), clock, settings)


def get_plan_manager(session: Session = Depends(get_session), clock: Clock = Depends(get_clock)) -> PlanVersionManager:
    return PlanVersionManager(RecordStore(session), clock)


def get_completion_service(
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> CompletionService:
    return CompletionService(RecordStore(session), SessionAuditSink(session), clock, settings)


def get_invoice_service(session: Session = Depends(get_session), clock: Clock = Depends(get_clock)) -> InvoiceService:
    return InvoiceService(RecordStore(session), SessionAuditSink(session), clock)


# Schemi

class AppointmentCreateIn(BaseModel):
    patient_id: str
    doctor_id: str
    start: datetime
    duration_minutes: int | None = Field(default=None, gt=0)
    status: AppointmentStatus | None = None
    notes: str | None = None


class AppointmentUpdateIn(BaseModel):
    start: datetime | None = None
    duration_minutes: int | None = Field(default=None, gt=0)
    status: AppointmentStatus | None = None
    notes: str | None = None


class ReasonIn(BaseModel):
    reason: str | None = None


class TherapyPlanCreateIn(BaseModel):
    patient_id: str
    doctor_id: str
    name: str
    start_date: date
    description: str | None = None


class PlanExerciseAddIn(BaseModel):
    exercise_id: int
    position: int = Field(default=0, ge=0)
    reps: int | None = None
    sets: int | None = None
    duration: int | None = None
    frequency: str | None = None
    notes: str | None = None


class PlanExerciseUpdateIn(BaseModel):
    position: int | None = None
    reps: int | None = None
    sets: int | None = None
    duration: int | None = None
    frequency: str | None = None
    notes: str | None = None


class CompletionIn(BaseModel):
    plan_exercise_id: int
    pain_level: int | None = None
    satisfaction: int | None = None
    notes: str | None = None


# Serializzazione

def _appointment_out(a: Appointment) -> dict[str, Any]:
    return {
        "id": a.id,
        "doctor_id": a.doctor_id,
        "patient_id": a.patient_id,
        "start": a.start.isoformat(),
        "end": a.span.end.isoformat(),
        "duration_minutes": a.duration_minutes,
        "status": a.status.value,
        "notes": a.notes,
    }


def _plan_out(p: TherapyPlan) -> dict[str, Any]:
    return {
        "id": p.id,
        "patient_id": p.patient_id,
        "doctor_id": p.doctor_id,
        "name": p.name,
        "description": p.description,
        "start_date": p.start_date.isoformat(),
        "status": p.status.value,
        "version": p.version,
    }


def _plan_exercise_out(pe: TherapyPlanExercise) -> dict[str, Any]:
    return {
        "id": pe.id,
        "exercise_id": pe.exercise_id,
        "position": pe.position,
        "reps": pe.reps,
        "sets": pe.sets,
        "duration": pe.duration,
        "frequency": pe.frequency,
        "notes": pe.notes,
        "archived": pe.archived,
    }


def _completion_out(c: CompletionEvent) -> dict[str, Any]:
    return {
        "id": c.id,
        "plan_exercise_id": c.plan_exercise_id,
        "completed_at": c.completed_at.isoformat(),
        "pain_level": c.pain_level,
        "satisfaction": c.satisfaction,
        "notes": c.notes,
        "undone": c.undone,
        "undone_at": c.undone_at.isoformat() if c.undone_at else None,
    }


# Appuntamenti

@app.post("/api/appointments", status_code=status.HTTP_201_CREATED)
def api_create_appointment(
    payload: AppointmentCreateIn,
    actor: Actor = Depends(get_actor),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> dict[str, Any]:
    a = lifecycle.create(
        actor,
        doctor_id=payload.doctor_id,
        patient_id=payload.patient_id,
        start=payload.start,
        duration_minutes=payload.duration_minutes,
        status=payload.status,
        notes=payload.notes,
    )
    return {"ok": True, "appointment": _appointment_out(a)}


@app.patch("/api/appointments/{appointment_id}")
def api_update_appointment(
    appointment_id: str,
    payload: AppointmentUpdateIn,
    actor: Actor = Depends(get_actor),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> dict[str, Any]:
    a = lifecycle.update(
        actor,
        appointment_id,
        start=payload.start,
        duration_minutes=payload.duration_minutes,
        status=payload.status,
        notes=payload.notes,
    )
    return {"ok": True, "appointment": _appointment_out(a)}


@app.delete("/api/appointments/{appointment_id}")
def api_cancel_appointment(
    appointment_id: str,
    payload: ReasonIn | None = None,
    actor: Actor = Depends(get_actor),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> dict[str, Any]:
    a = lifecycle.cancel(actor, appointment_id, reason=payload.reason if payload else None)
    return {"ok": True, "appointment": _appointment_out(a), "message": "Appointment cancelled"}


@app.get("/api/doctors/{doctor_id}/conflicts")
def api_doctor_conflicts(
    doctor_id: str,
    start: datetime,
    duration_minutes: int | None = Query(default=None, gt=0),
    exclude_id: str | None = None,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> list[dict]:
    if not actor.is_staff:
        raise ForbiddenError("Only staff can view doctor schedules")
    store = RecordStore(session)
    if store.get_doctor(doctor_id) is None:
        raise NotFoundError("Doctor not found")
    span = TimeSpan(to_local_naive(start), duration_minutes or settings.default_appointment_minutes)
    return [_appointment_out(a) for a in ConflictResolver(store).conflicts_for(doctor_id, span, exclude_id=exclude_id)]


# Piani terapeutici

@app.post("/api/therapy-plans", status_code=status.HTTP_201_CREATED)
def api_create_plan(
    payload: TherapyPlanCreateIn,
    actor: Actor = Depends(get_actor),
    plans: PlanVersionManager = Depends(get_plan_manager),
) -> dict[str, Any]:
    p = plans.create_plan(
        actor,
        patient_id=payload.patient_id,
        doctor_id=payload.doctor_id,
        name=payload.name,
        start_date=payload.start_date,
        description=payload.description,
    )
    return {"ok": True, "plan": _plan_out(p)}


@app.get("/api/therapy-plans/{plan_id}/exercises")
def api_plan_exercises(
    plan_id: int,
    include_archived: bool = False,
    actor: Actor = Depends(get_actor),
    plans: PlanVersionManager = Depends(get_plan_manager),
) -> list[dict]:
    return [_plan_exercise_out(pe) for pe in plans.list_exercises(plan_id, include_archived=include_archived)]


@app.post("/api/therapy-plans/{plan_id}/exercises", status_code=status.HTTP_201_CREATED)
def api_add_plan_exercise(
    plan_id: int,
    payload: PlanExerciseAddIn,
    actor: Actor = Depends(get_actor),
    plans: PlanVersionManager = Depends(get_plan_manager),
) -> dict[str, Any]:
    bump = plans.mutate(plan_id, AddExercise(**payload.model_dump()), actor)
    return {"ok": True, "version": bump.version, "summary": bump.record.summary, "plan_exercise": _plan_exercise_out(bump.plan_exercise)}


@app.patch("/api/therapy-plans/{plan_id}/exercises/{exercise_id}")
def api_update_plan_exercise(
    plan_id: int,
    exercise_id: int,
    payload: PlanExerciseUpdateIn,
    actor: Actor = Depends(get_actor),
    plans: PlanVersionManager = Depends(get_plan_manager),
) -> dict[str, Any]:
    # solo i campi inviati; null esplicito svuota il campo (position escluso)
    changes = payload.model_dump(exclude_unset=True)
    bump = plans.mutate(plan_id, UpdateExercise(exercise_id, changes), actor)
    return {"ok": True, "version": bump.version, "summary": bump.record.summary, "plan_exercise": _plan_exercise_out(bump.plan_exercise)}


@app.delete("/api/therapy-plans/{plan_id}/exercises/{exercise_id}")
def api_archive_plan_exercise(
    plan_id: int,
    exercise_id: int,
    actor: Actor = Depends(get_actor),
    plans: PlanVersionManager = Depends(get_plan_manager),
) -> dict[str, Any]:
    bump = plans.mutate(plan_id, ArchiveExercise(exercise_id), actor)
    return {"ok": True, "version": bump.version, "summary": bump.record.summary, "plan_exercise": _plan_exercise_out(bump.plan_exercise)}


@app.get("/api/therapy-plans/{plan_id}/versions")
def api_plan_versions(
    plan_id: int,
    actor: Actor = Depends(get_actor),
    plans: PlanVersionManager = Depends(get_plan_manager),
) -> list[dict]:
    return [
        {
            "version": r.version,
            "summary": r.summary,
            "author_id": r.author_id,
            "created_at": r.created_at.isoformat(),
        }
        for r in plans.history(plan_id)
    ]


# Esercizi completati

@app.post("/api/patients/{patient_id}/complete", status_code=status.HTTP_201_CREATED)
def api_record_completion(
    patient_id: str,
    payload: CompletionIn,
    actor: Actor = Depends(get_actor),
    completions: CompletionService = Depends(get_completion_service),
) -> dict[str, Any]:
    c = completions.record_completion(
        actor,
        patient_id,
        payload.plan_exercise_id,
        pain_level=payload.pain_level,
        satisfaction=payload.satisfaction,
        notes=payload.notes,
    )
    return {"ok": True, "completion": _completion_out(c)}


@app.post("/api/completion-events/{completion_id}/undo")
def api_undo_completion(
    completion_id: int,
    payload: ReasonIn | None = None,
    actor: Actor = Depends(get_actor),
    completions: CompletionService = Depends(get_completion_service),
) -> dict[str, Any]:
    c = completions.undo(actor, completion_id, reason=payload.reason if payload else None)
    return {"ok": True, "completion": _completion_out(c)}


# Fatture

@app.post("/api/invoices/{invoice_id}/void")
def api_void_invoice(
    invoice_id: int,
    payload: ReasonIn,
    actor: Actor = Depends(get_actor),
    invoices: InvoiceService = Depends(get_invoice_service),
) -> dict[str, Any]:
    inv = invoices.void(actor, invoice_id, payload.reason)
    return {"ok": True, "invoice": {"id": inv.id, "status": inv.status.value, "notes": inv.notes}}
