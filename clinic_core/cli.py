from __future__ import annotations

import argparse
import sys
from datetime import datetime

from sqlalchemy import select

from .actors import Actor
from .appointments import AppointmentLifecycle
from .audit import SessionAuditSink
from .clock import SystemClock
from .completions import CompletionService
from .config import Settings, configure_logging, load_settings
from .db import init_db, make_engine, make_session_factory, session_scope
from .errors import ClinicError
from .models import Doctor, Patient, Role
from .plans import PlanVersionManager
from .seed import seed_base
from .store import RecordStore

# i comandi girano come operatore dello studio
OPERATOR = Actor(user_id="cli-operator", role=Role.ADMIN)


def _parse_start(raw: str) -> datetime:
    try:
        return datetime.fromisoformat(raw)  # formato: 2026-01-14T10:30
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid ISO datetime: {raw!r}") from None


def cmd_init(args: argparse.Namespace, settings: Settings, factory) -> None:
    with session_scope(factory) as s:
        seed_base(s)
        for d in s.scalars(select(Doctor).order_by(Doctor.last_name)):
            print(f"doctor  {d.id} | {d.last_name} {d.first_name} | {d.specialization or '-'}")
        for p in s.scalars(select(Patient).order_by(Patient.last_name)):
            print(f"patient {p.id} | {p.last_name} {p.first_name}")
    print("DB initialized and seed completed.")


def cmd_book(args: argparse.Namespace, settings: Settings, factory) -> None:
    with session_scope(factory) as s:
        lifecycle = AppointmentLifecycle(RecordStore(s), SessionAuditSink(s), SystemClock(), settings)
        a = lifecycle.create(
            OPERATOR,
            doctor_id=args.doctor_id,
            patient_id=args.patient_id,
            start=args.start,
            duration_minutes=args.duration,
            notes=args.notes,
        )
        print(f"Appointment booked: {a.id} ({a.start:%d/%m/%Y %H:%M}, {a.duration_minutes} min)")


def cmd_reschedule(args: argparse.Namespace, settings: Settings, factory) -> None:
    with session_scope(factory) as s:
        lifecycle = AppointmentLifecycle(RecordStore(s), SessionAuditSink(s), SystemClock(), settings)
        a = lifecycle.update(OPERATOR, args.appointment_id, start=args.start, duration_minutes=args.duration)
        print(f"Appointment {a.id} moved to {a.start:%d/%m/%Y %H:%M} ({a.duration_minutes} min)")


def cmd_cancel(args: argparse.Namespace, settings: Settings, factory) -> None:
    with session_scope(factory) as s:
        lifecycle = AppointmentLifecycle(RecordStore(s), SessionAuditSink(s), SystemClock(), settings)
        lifecycle.cancel(OPERATOR, args.appointment_id, reason=args.reason)
        print("Cancelled.")


def cmd_plan_history(args: argparse.Namespace, settings: Settings, factory) -> None:
    with session_scope(factory) as s:
        plans = PlanVersionManager(RecordStore(s), SystemClock())
        history = plans.history(args.plan_id)
        if not history:
            print("No structural changes yet (version 1).")
            return
        for r in history:
            print(f"v{r.version} | {r.created_at:%d/%m/%Y %H:%M} | {r.author_id} | {r.summary}")


def cmd_undo(args: argparse.Namespace, settings: Settings, factory) -> None:
    with session_scope(factory) as s:
        completions = CompletionService(RecordStore(s), SessionAuditSink(s), SystemClock(), settings)
        c = completions.undo(OPERATOR, args.completion_id, reason=args.reason)
        print(f"Completion {c.id} undone.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="clinic-core", description="Clinic rule engine: operator commands")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Create the DB and load the seed")
    p_init.set_defaults(func=cmd_init)

    p_book = sub.add_parser("book", help="Book an appointment")
    p_book.add_argument("--doctor-id", required=True)
    p_book.add_argument("--patient-id", required=True)
    p_book.add_argument("--start", required=True, type=_parse_start, help="ISO datetime e.g. 2026-01-14T10:30")
    p_book.add_argument("--duration", type=int, default=None, help="Minutes (default from settings)")
    p_book.add_argument("--notes", default=None)
    p_book.set_defaults(func=cmd_book)

    p_res = sub.add_parser("reschedule", help="Move an appointment")
    p_res.add_argument("--appointment-id", required=True)
    p_res.add_argument("--start", type=_parse_start, default=None)
    p_res.add_argument("--duration", type=int, default=None)
    p_res.set_defaults(func=cmd_reschedule)

    p_cancel = sub.add_parser("cancel", help="Cancel an appointment")
    p_cancel.add_argument("--appointment-id", required=True)
    p_cancel.add_argument("--reason", default=None)
    p_cancel.set_defaults(func=cmd_cancel)

    p_hist = sub.add_parser("plan-history", help="Version history of a therapy plan")
    p_hist.add_argument("--plan-id", type=int, required=True)
    p_hist.set_defaults(func=cmd_plan_history)

    p_undo = sub.add_parser("undo", help="Undo an exercise completion (staff, reason required)")
    p_undo.add_argument("--completion-id", type=int, required=True)
    p_undo.add_argument("--reason", required=True)
    p_undo.set_defaults(func=cmd_undo)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging()

    settings = load_settings()
    engine = make_engine(settings.database_url)
    init_db(engine)  # crea le tabelle se mancano
    factory = make_session_factory(engine)

    try:
        args.func(args, settings, factory)
    except ClinicError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
