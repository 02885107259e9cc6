from decimal import Decimal

import pytest

from clinic_core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from clinic_core.invoices import InvoiceService
from clinic_core.models import Invoice, InvoiceStatus


@pytest.fixture
def invoices(store, audit_sink, clock):
    return InvoiceService(store, audit_sink, clock)


@pytest.fixture
def invoice(store, patient):
    return store.add(Invoice(patient_id=patient.id, amount=Decimal("80.00"), notes="Session 1"))


def test_void_invoice(invoices, invoice, receptionist, audit_sink):
    voided = invoices.void(receptionist, invoice.id, "duplicate")

    assert voided.status is InvoiceStatus.CANCELLED
    assert voided.notes == "Session 1\nVoided: duplicate"
    assert audit_sink.entries[0].changes == {"status": "PENDING", "newStatus": "CANCELLED", "reason": "duplicate"}


@pytest.mark.parametrize("actor_fixture", ["physio", "patient_actor", "stranger"])
def test_only_admin_and_reception_void(invoices, invoice, actor_fixture, request):
    with pytest.raises(ForbiddenError):
        invoices.void(request.getfixturevalue(actor_fixture), invoice.id, "duplicate")


def test_void_requires_reason(invoices, invoice, admin):
    with pytest.raises(ValidationError):
        invoices.void(admin, invoice.id, " ")


def test_void_missing_invoice(invoices, admin):
    with pytest.raises(NotFoundError):
        invoices.void(admin, 999, "duplicate")


def test_double_void(invoices, invoice, admin, audit_sink):
    invoices.void(admin, invoice.id, "duplicate")
    with pytest.raises(ConflictError):
        invoices.void(admin, invoice.id, "again")
    assert len(audit_sink.entries) == 1
