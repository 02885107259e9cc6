from __future__ import annotations

from dataclasses import dataclass

from .models import STAFF_ROLES, Role


@dataclass(frozen=True)
class Actor:
    """Chi fa la richiesta. ``role`` è None se il ruolo nel token non è riconosciuto."""

    user_id: str
    role: Role | None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_patient(self) -> bool:
        return self.role is Role.PATIENT

    @classmethod
    def from_claims(cls, user_id: str, role: str | None) -> "Actor":
        try:
            parsed = Role(role) if role else None
        except ValueError:
            parsed = None
        return cls(user_id=user_id, role=parsed)
