from __future__ import annotations

import logging

from .actors import Actor
from .audit import AuditEntry, AuditSink, emit_audit
from .clock import Clock
from .errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .models import Invoice, InvoiceStatus, Role
from .store import RecordStore

logger = logging.getLogger(__name__)

VOIDING_ROLES = frozenset({Role.ADMIN, Role.RECEPTIONIST})


class InvoiceService:
    """Solo storno; importi e stampa sono altrove."""

    def __init__(self, store: RecordStore, audit: AuditSink, clock: Clock) -> None:
        self.store = store
        self.audit = audit
        self.clock = clock

    def void(self, actor: Actor, invoice_id: int, reason: str | None) -> Invoice:
        if actor.role not in VOIDING_ROLES:
            raise ForbiddenError("Only admin and receptionist can void invoices")

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Reason is required for voiding an invoice")

        invoice = self.store.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        if invoice.status is InvoiceStatus.CANCELLED:
            raise ConflictError("Invoice is already voided")

        previous = invoice.status
        invoice.status = InvoiceStatus.CANCELLED
        invoice.notes = f"{invoice.notes or ''}\nVoided: {reason}".strip()
        self.store.flush()

        emit_audit(
            self.audit,
            AuditEntry(
                actor_id=actor.user_id,
                entity_type="Invoice",
                entity_id=str(invoice.id),
                action="VOID",
                timestamp=self.clock.now(),
                changes={"status": previous.value, "newStatus": InvoiceStatus.CANCELLED.value, "reason": reason},
            ),
        )
        logger.info("Invoice %s voided by %s", invoice.id, actor.user_id)
        return invoice
