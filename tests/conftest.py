"""
Fixture condivise: record store SQLite in memoria, orologio fisso, medici,
pazienti ed esercizi per entrambi i lati dei controlli di proprietà, attori per ruolo.
"""
from datetime import date, datetime

import pytest

from clinic_core.actors import Actor
from clinic_core.audit import MemoryAuditSink
from clinic_core.clock import FixedClock
from clinic_core.db import init_db, make_engine, make_session_factory
from clinic_core.models import Doctor, Exercise, Patient, Role, TherapyPlan
from clinic_core.store import RecordStore

# a Monday
NOW = datetime(2026, 3, 2, 9, 0)


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def engine():
    engine = make_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def store(session):
    return RecordStore(session)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def audit_sink():
    return MemoryAuditSink()


# ============================================================================
# Records
# ============================================================================

@pytest.fixture
def doctor(store):
    return store.add(Doctor(first_name="Mario", last_name="Rossi", specialization="Physiotherapy", user_id="u-doc"))


@pytest.fixture
def other_doctor(store):
    return store.add(Doctor(first_name="Laura", last_name="Bianchi", specialization="Rehab", user_id="u-doc2"))


@pytest.fixture
def patient(store):
    return store.add(Patient(first_name="Anna", last_name="Verdi", user_id="u-pat"))


@pytest.fixture
def other_patient(store):
    return store.add(Patient(first_name="Paolo", last_name="Neri", user_id="u-pat2"))


@pytest.fixture
def exercise(store):
    return store.add(Exercise(name="Squat"))


@pytest.fixture
def plan(store, doctor, patient):
    return store.add(
        TherapyPlan(patient_id=patient.id, doctor_id=doctor.id, name="Knee rehab", start_date=date(2026, 3, 1))
    )


# ============================================================================
# Actors
# ============================================================================

@pytest.fixture
def admin():
    return Actor("u-admin", Role.ADMIN)


@pytest.fixture
def receptionist():
    return Actor("u-desk", Role.RECEPTIONIST)


@pytest.fixture
def physio():
    """Acts as ``doctor``."""
    return Actor("u-doc", Role.PHYSIOTHERAPIST)


@pytest.fixture
def other_physio():
    return Actor("u-doc2", Role.PHYSIOTHERAPIST)


@pytest.fixture
def patient_actor():
    """Acts as ``patient``."""
    return Actor("u-pat", Role.PATIENT)


@pytest.fixture
def stranger():
    return Actor("u-nobody", None)
