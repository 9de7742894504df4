from dataclasses import FrozenInstanceError
from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.sunat_client.exceptions import SunatValidationError
from app.sunat_client.models import (
    CDR,
    Company,
    CreateDocumentRequest,
    Document,
    DocumentStatus,
    DocumentType,
    Tax,
    TaxType,
    VoidDocumentRequest,
    parse_date,
)


def test_document_type_capabilities():
    assert DocumentType.BOLETA.requires_ticket is True
    assert DocumentType.FACTURA.requires_ticket is False
    assert DocumentType.NOTA_CREDITO.is_note and DocumentType.NOTA_DEBITO.is_note
    assert not DocumentType.FACTURA.is_note
    assert DocumentType.FACTURA.schema == "Invoice"
    assert DocumentType.BOLETA.schema == "Invoice"
    assert DocumentType.NOTA_CREDITO.schema == "CreditNote"
    assert DocumentType.NOTA_DEBITO.schema == "DebitNote"


def test_document_type_parse_rejects_unknown_code():
    assert DocumentType.parse("07") is DocumentType.NOTA_CREDITO
    with pytest.raises(SunatValidationError, match="no soportado"):
        DocumentType.parse("99")


def test_tax_scheme_ids():
    assert TaxType.IGV.scheme_id == "1000"
    assert TaxType.ISC.scheme_id == "2000"
    assert TaxType.ICBP.scheme_id == "7152"
    assert Tax(type="OTROS", code="O", rate=0).scheme_id == "9999"


@pytest.mark.parametrize(
    "code,accepted",
    [("0", True), ("4001", True), ("2017", False), ("0100", False), ("", False), ("abc", False)],
)
def test_cdr_accepted(code, accepted):
    assert CDR(response_code=code, description="x").accepted is accepted


def test_parse_date_invalid_format():
    assert parse_date("", "issue_date") is None
    assert parse_date("2024-03-15", "issue_date").day == 15
    with pytest.raises(SunatValidationError, match="issue_date"):
        parse_date("15/03/2024", "issue_date")


def test_company_is_frozen_and_requires_number():
    company = Company.from_dict({"document_number": "20123456789", "name": "X"})
    assert company.document_type == "6"
    with pytest.raises(FrozenInstanceError):
        company.name = "Y"
    with pytest.raises(SunatValidationError):
        Company.from_dict({"name": "sin numero"})


def test_create_request_from_dict():
    request = CreateDocumentRequest.from_dict({
        "type": "03",
        "serie": "B001",
        "number": "10",
        "issue_date": "2024-03-15",
        "currency_code": "PEN",
        "customer": {"document_type": "1", "document_number": "12345678", "name": "JUAN PEREZ"},
        "lines": [{
            "quantity": 1, "unit_code": "NIU", "description": "Item", "unit_price": 50,
            "taxes": [{"type": "IGV", "code": "S", "rate": 18}],
        }],
        "payment_terms": {"payment_means_code": "Contado"},
    })
    assert request.type is DocumentType.BOLETA
    assert request.lines[0].taxes[0].rate == 18.0
    assert request.payment_terms.payment_means_code == "Contado"
    assert request.payment_terms.due_date is None


def test_void_request_from_dict():
    request = VoidDocumentRequest.from_dict({
        "document_type": "01", "serie": "F001", "number": "1",
        "void_date": "2024-03-16", "reason": "Error en RUC",
    })
    assert request.document_type is DocumentType.FACTURA
    assert request.reason == "Error en RUC"


def test_document_dict_round_trip_keeps_state():
    data = {
        "id": "abc",
        "serie": "F001",
        "number": "5",
        "type": "01",
        "issue_date": "2024-03-15",
        "currency_code": "USD",
        "issuer": {"document_type": "6", "document_number": "20123456789", "name": "EMISOR"},
        "customer": {"document_type": "6", "document_number": "20987654321", "name": "CLIENTE"},
        "lines": [],
        "status": "pending",
        "sunat_status": "1710000000001",
        "cdr": {"response_code": "0", "description": "Aceptada"},
    }
    doc = Document.from_dict(data)
    assert doc.status is DocumentStatus.PENDING
    again = Document.from_dict(doc.to_dict())
    assert again.sunat_status == "1710000000001"
    assert again.cdr.accepted
    assert again.issue_date == doc.issue_date
    assert again.to_dict()["type"] == "01"


def test_document_dict_round_trip_keeps_timestamps():
    data = {
        "serie": "B001",
        "number": "9",
        "type": "03",
        "issue_date": "2024-03-15",
        "currency_code": "PEN",
        "issuer": {"document_number": "20123456789", "name": "EMISOR"},
        "customer": {"document_number": "10456789012", "name": "CLIENTE"},
        "created_at": "2024-03-15T08:30:00.123456",
        "updated_at": "2024-03-15T09:00:00",
    }
    doc = Document.from_dict(data)

    assert doc.id == "B001-9"
    assert doc.created_at.isoformat() == "2024-03-15T08:30:00.123456"
    again = Document.from_dict(doc.to_dict())
    assert again.created_at == doc.created_at
    assert again.updated_at == doc.updated_at

    data["created_at"] = "ayer"
    with pytest.raises(SunatValidationError, match="Marca de tiempo"):
        Document.from_dict(data)
