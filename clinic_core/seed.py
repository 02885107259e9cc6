from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import Doctor, Exercise, Patient

DOCTORS = [
    ("Mario", "Rossi", "Physiotherapy", "u-mrossi"),
    ("Laura", "Bianchi", "Sports rehabilitation", "u-lbianchi"),
]

PATIENTS = [
    ("Anna", "Verdi", "anna.verdi@example.com", "u-averdi"),
    ("Paolo", "Neri", "paolo.neri@example.com", "u-pneri"),
]

EXERCISES = [
    ("Squat", "Bodyweight squat, controlled descent"),
    ("Glute bridge", "Supine hip extension"),
    ("Plank", "Forearm plank hold"),
    ("Calf raise", "Standing bilateral calf raise"),
]


def seed_base(s: Session) -> None:
    """
    Popola dati minimi (idempotente):
    - medici
    - pazienti
    - catalogo esercizi
    """
    for first, last, spec, user_id in DOCTORS:
        if s.execute(select(Doctor).where(Doctor.user_id == user_id)).scalar_one_or_none() is None:
            s.add(Doctor(first_name=first, last_name=last, specialization=spec, user_id=user_id))

    for first, last, email, user_id in PATIENTS:
        if s.execute(select(Patient).where(Patient.user_id == user_id)).scalar_one_or_none() is None:
            s.add(Patient(first_name=first, last_name=last, email=email, user_id=user_id))

    for name, description in EXERCISES:
        if s.execute(select(Exercise).where(Exercise.name == name)).scalar_one_or_none() is None:
            s.add(Exercise(name=name, description=description))

    s.flush()
