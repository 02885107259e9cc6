from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from .actors import Actor
from .config import Settings
from .models import Role

JWT_ALG = "HS256"


def create_access_token(
    subject: str,
    role: Role | str,
    settings: Settings,
    extra: dict[str, Any] | None = None,
) -> str:
    """
    subject: user_id con cui agisce l'utente (confrontato con Doctor/Patient.user_id).
    Usa datetime timezone-aware per evitare offset/bug su timestamp.
    """
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=settings.jwt_expire_minutes)

    payload: dict[str, Any] = {
        "sub": subject,
        "role": role.value if isinstance(role, Role) else role,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    if extra:
        payload.update(extra)

    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALG)


def decode_token(token: str, settings: Settings) -> dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALG])


def actor_from_token(token: str, settings: Settings) -> Actor | None:
    try:
        payload = decode_token(token, settings)
    except JWTError:
        return None
    subject = payload.get("sub")
    if not subject:
        return None
    return Actor.from_claims(str(subject), payload.get("role"))
