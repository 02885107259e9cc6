from __future__ import annotations

import logging
from datetime import datetime

from .actors import Actor
from .audit import AuditEntry, AuditSink, emit_audit
from .business_hours import is_within_business_hours
from .clock import Clock
from .config import Settings
from .conflicts import ConflictResolver
from .errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .models import TERMINAL_APPOINTMENT_STATUSES, Appointment, AppointmentStatus, Role
from .store import RecordStore
from .timespan import TimeSpan

logger = logging.getLogger(__name__)

NO_REASON = "No reason provided"


def to_local_naive(value: datetime) -> datetime:
    """
    Orari salvati e clock sono naive, in ora locale della clinica.
    Un orario con offset (es. "...T12:00:00Z") viene convertito in ora locale.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class AppointmentLifecycle:
    """
    Use case sugli appuntamenti di un medico:
    - create: orario di apertura, poi conflitti del medico, poi salvataggio
    - update: stessi controlli sul nuovo intervallo, escluso l'appuntamento stesso
    - cancel: cambio stato + audit best-effort

    La riga del medico viene bloccata prima del controllo conflitti: due
    prenotazioni per lo stesso medico non passano entrambe il read-then-write.
    """

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
        self.resolver = ConflictResolver(store)

    # =========================
    # Controlli
    # =========================
    def _require_staff(self, actor: Actor, action: str) -> None:
        if not actor.is_staff:
            logger.warning("Actor %s (%s) denied: %s", actor.user_id, actor.role, action)
            raise ForbiddenError(f"Only staff can {action}")

    def _require_own_schedule(self, actor: Actor, appointment: Appointment, action: str) -> None:
        # il fisioterapista gestisce solo gli appuntamenti del proprio profilo medico
        if actor.role is Role.PHYSIOTHERAPIST and appointment.doctor.user_id != actor.user_id:
            raise ForbiddenError(f"You can only {action} your own appointments")

    def _valid_span(self, start: datetime, duration_minutes: int) -> TimeSpan:
        span = TimeSpan(to_local_naive(start), duration_minutes)
        if not is_within_business_hours(
            span, self.settings.business_start_hour, self.settings.business_end_hour
        ):
            raise ValidationError("Outside business hours")
        return span

    def _get(self, appointment_id: str) -> Appointment:
        appointment = self.store.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment not found")
        return appointment

    # =========================
    # Use case
    # =========================
    def create(
        self,
        actor: Actor,
        doctor_id: str | None,
        patient_id: str | None,
        start: datetime | None,
        duration_minutes: int | None = None,
        status: AppointmentStatus | None = None,
        notes: str | None = None,
    ) -> Appointment:
        self._require_staff(actor, "create appointments")

        if not patient_id or not doctor_id or start is None:
            raise ValidationError("Patient ID, doctor ID, and start time are required")

        status = status or AppointmentStatus.SCHEDULED
        if status is AppointmentStatus.CANCELLED:
            raise ValidationError("An appointment cannot be created as cancelled")

        span = self._valid_span(start, duration_minutes or self.settings.default_appointment_minutes)

        if self.store.get_patient(patient_id) is None:
            raise NotFoundError("Patient not found")
        doctor = self.store.get_doctor(doctor_id, lock=True)
        if doctor is None:
            raise NotFoundError("Doctor not found")

        if self.resolver.has_conflict(doctor.id, span):
            logger.warning("Booking rejected, doctor %s busy at %s", doctor.id, span.start.isoformat())
            raise ConflictError("Doctor has a conflicting appointment")

        appointment = self.store.add(
            Appointment(
                patient_id=patient_id,
                doctor_id=doctor.id,
                created_by=actor.user_id,
                start=span.start,
                duration_minutes=span.duration_minutes,
                status=status,
                notes=notes,
            )
        )
        logger.info(
            "Appointment %s booked: doctor %s, %s-%s",
            appointment.id,
            doctor.id,
            span.start.isoformat(),
            span.end.isoformat(),
        )
        return appointment

    def update(
        self,
        actor: Actor,
        appointment_id: str,
        start: datetime | None = None,
        duration_minutes: int | None = None,
        status: AppointmentStatus | None = None,
        notes: str | None = None,
    ) -> Appointment:
        """Sposta/modifica sul posto (stesso id)."""
        self._require_staff(actor, "update appointments")
        appointment = self._get(appointment_id)
        self._require_own_schedule(actor, appointment, "update")

        if appointment.status in TERMINAL_APPOINTMENT_STATUSES:
            raise ConflictError(f"Appointment is {appointment.status.value.lower()} and cannot be changed")
        if status is AppointmentStatus.CANCELLED:
            raise ValidationError("Use cancel to cancel an appointment")

        span = self._valid_span(
            start if start is not None else appointment.start,
            duration_minutes if duration_minutes is not None else appointment.duration_minutes,
        )

        self.store.get_doctor(appointment.doctor_id, lock=True)
        if self.resolver.has_conflict(appointment.doctor_id, span, exclude_id=appointment.id):
            logger.warning(
                "Reschedule of %s rejected, doctor %s busy at %s",
                appointment.id,
                appointment.doctor_id,
                span.start.isoformat(),
            )
            raise ConflictError("Doctor has a conflicting appointment")

        appointment.start = span.start
        appointment.duration_minutes = span.duration_minutes
        if status is not None:
            appointment.status = status
        if notes is not None:
            appointment.notes = notes
        self.store.flush()

        logger.info("Appointment %s updated: %s, status %s", appointment.id, span.start.isoformat(), appointment.status.value)
        return appointment

    def cancel(self, actor: Actor, appointment_id: str, reason: str | None = None) -> Appointment:
        """
        Libera lo slot senza controlli su orari/conflitti. L'audit è
        best-effort: se fallisce l'annullamento resta valido.
        """
        self._require_staff(actor, "cancel appointments")
        appointment = self._get(appointment_id)
        self._require_own_schedule(actor, appointment, "cancel")

        if appointment.status is AppointmentStatus.CANCELLED:
            raise ConflictError("Appointment is already cancelled")
        if appointment.status is AppointmentStatus.COMPLETED:
            raise ConflictError("A completed appointment cannot be cancelled")

        reason = (reason or "").strip() or None
        previous = appointment.status
        appointment.status = AppointmentStatus.CANCELLED
        if reason:
            appointment.notes = f"{appointment.notes or ''}\nCancelled: {reason}".strip()
        self.store.flush()

        emit_audit(
            self.audit,
            AuditEntry(
                actor_id=actor.user_id,
                entity_type="Appointment",
                entity_id=appointment.id,
                action="CANCEL",
                timestamp=self.clock.now(),
                changes={
                    "status": previous.value,
                    "newStatus": AppointmentStatus.CANCELLED.value,
                    "reason": reason or NO_REASON,
                },
            ),
        )
        logger.info("Appointment %s cancelled by %s", appointment.id, actor.user_id)
        return appointment
