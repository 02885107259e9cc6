"""
Errori del motore di regole.

Tutti recuperabili dal chiamante. ``status_code`` è il codice HTTP
usato dall'adapter API; la CLI stampa solo il messaggio.
"""
from __future__ import annotations


class ClinicError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ClinicError):
    """Input mancante o non valido."""

    status_code = 400


class NotFoundError(ClinicError):
    """L'entità richiesta non esiste."""

    status_code = 404


class ConflictError(ClinicError):
    """Sovrapposizione in agenda, o record già annullato/stornato."""

    status_code = 409


class ForbiddenError(ClinicError):
    """Ruolo, proprietà o finestra temporale non rispettati."""

    status_code = 403
