"""
Modelos de datos para comprobantes electrónicos SUNAT
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List

from .exceptions import SunatValidationError

DATE_FORMAT = "%Y-%m-%d"


class DocumentType(str, Enum):
    """Tipo de comprobante (catálogo 01)"""
    FACTURA = "01"
    BOLETA = "03"
    NOTA_CREDITO = "07"
    NOTA_DEBITO = "08"

    @property
    def requires_ticket(self) -> bool:
        """La boleta se envía por resumen (sendSummary) y se sigue por ticket."""
        return self is DocumentType.BOLETA

    @property
    def is_note(self) -> bool:
        return self in (DocumentType.NOTA_CREDITO, DocumentType.NOTA_DEBITO)

    @property
    def schema(self) -> str:
        if self is DocumentType.NOTA_CREDITO:
            return "CreditNote"
        if self is DocumentType.NOTA_DEBITO:
            return "DebitNote"
        return "Invoice"

    @classmethod
    def parse(cls, value: Any) -> "DocumentType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip())
        except ValueError:
            raise SunatValidationError(f"Tipo de documento no soportado: {value!r}")


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class TaxType(str, Enum):
    IGV = "IGV"    # Impuesto General a las Ventas
    ISC = "ISC"    # Impuesto Selectivo al Consumo
    ICBP = "ICBP"  # Impuesto a las Bolsas de Plástico

    @property
    def scheme_id(self) -> str:
        return TAX_SCHEME_IDS.get(self.value, "9999")


TAX_SCHEME_IDS = {
    "IGV": "1000",
    "ISC": "2000",
    "ICBP": "7152",
}

SIGNATURE_MODE_XMLDSIG = "xmldsig"
SIGNATURE_MODE_UNSIGNED = "unsigned-test"


def parse_date(value: Optional[str], field_name: str) -> Optional[datetime]:
    """Parsea una fecha YYYY-MM-DD; None o vacío devuelve None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.strptime(str(value)[:10], DATE_FORMAT)
    except ValueError as e:
        raise SunatValidationError(f"Formato de fecha inválido en {field_name}: {value!r}") from e


def _format_date(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(DATE_FORMAT) if value else None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Lee created_at / updated_at en formato ISO 8601."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise SunatValidationError(f"Marca de tiempo inválida: {value!r}") from e


@dataclass
class Tax:
    type: str
    code: str
    rate: float
    amount: float = 0.0

    @property
    def scheme_id(self) -> str:
        return TAX_SCHEME_IDS.get(str(self.type), "9999")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tax":
        return cls(
            type=str(data.get("type", "")),
            code=str(data.get("code", "")),
            rate=float(data.get("rate", 0)),
            amount=float(data.get("amount", 0)),
        )


@dataclass(frozen=True)
class Company:
    """Emisor o cliente. El emisor es configuración inmutable del proceso."""
    document_type: str
    document_number: str
    name: str
    trade_name: str = ""
    address: str = ""
    district: str = ""
    province: str = ""
    department: str = ""
    country: str = "PE"
    email: str = ""
    phone: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Company":
        known = {k: str(v) for k, v in (data or {}).items() if k in cls.__dataclass_fields__ and v is not None}
        if not known.get("document_number"):
            raise SunatValidationError("Empresa sin número de documento")
        known.setdefault("document_type", "6")
        known.setdefault("name", "")
        return cls(**known)


@dataclass
class PaymentTerms:
    payment_means_code: str
    due_date: Optional[datetime] = None
    amount: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["PaymentTerms"]:
        if data is None:
            return None
        return cls(
            payment_means_code=str(data.get("payment_means_code") or ""),
            due_date=parse_date(data.get("due_date"), "payment_terms.due_date"),
            amount=float(data.get("amount") or 0),
        )


@dataclass
class RelatedDocument:
    document_type: str
    serie: str
    number: str

    @property
    def reference_id(self) -> str:
        return f"{self.serie}-{self.number}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RelatedDocument":
        return cls(
            document_type=str(data.get("document_type", "")),
            serie=str(data.get("serie", "")),
            number=str(data.get("number", "")),
        )


@dataclass
class CDR:
    """Constancia de Recepción"""
    response_code: str
    description: str
    notes: Optional[str] = None

    @property
    def accepted(self) -> bool:
        # 0 = aceptado; 4000+ = aceptado con observaciones; 100-3999 = rechazo/excepción
        code = (self.response_code or "").strip()
        if not code.isdigit():
            return False
        value = int(code)
        return value == 0 or value >= 4000

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["CDR"]:
        if not data:
            return None
        return cls(
            response_code=str(data.get("response_code", "")),
            description=str(data.get("description", "")),
            notes=data.get("notes"),
        )


@dataclass
class DocumentLine:
    id: str
    quantity: float
    unit_code: str
    description: str
    unit_price: float
    total_price: float
    taxable_amount: float
    taxes: List[Tax] = field(default_factory=list)
    product_code: str = ""

    @property
    def total_tax_rate(self) -> float:
        return sum(tax.rate for tax in self.taxes)

    @property
    def total_tax_amount(self) -> float:
        return sum(tax.amount for tax in self.taxes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentLine":
        return cls(
            id=str(data.get("id", "")),
            quantity=float(data.get("quantity", 0)),
            unit_code=str(data.get("unit_code", "")),
            description=str(data.get("description", "")),
            unit_price=float(data.get("unit_price", 0)),
            total_price=float(data.get("total_price", 0)),
            taxable_amount=float(data.get("taxable_amount", 0)),
            taxes=[Tax.from_dict(t) for t in data.get("taxes") or []],
            product_code=str(data.get("product_code") or ""),
        )


@dataclass
class Document:
    """Comprobante electrónico con totales calculados"""
    id: str
    serie: str
    number: str
    type: DocumentType
    issue_date: datetime
    currency_code: str
    issuer: Company
    customer: Company
    lines: List[DocumentLine] = field(default_factory=list)
    sub_total: float = 0.0
    total_taxes: float = 0.0
    total_amount: float = 0.0
    due_date: Optional[datetime] = None
    payment_terms: Optional[PaymentTerms] = None
    related_documents: List[RelatedDocument] = field(default_factory=list)
    status: DocumentStatus = DocumentStatus.DRAFT
    sunat_status: str = ""
    cdr: Optional[CDR] = None
    signature_mode: Optional[str] = None
    last_error: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        now = datetime.now()
        if self.created_at is None:
            self.created_at = now
        if self.updated_at is None:
            self.updated_at = now

    def touch(self) -> None:
        self.updated_at = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["status"] = self.status.value
        data["issue_date"] = _format_date(self.issue_date)
        data["due_date"] = _format_date(self.due_date)
        if self.payment_terms is not None:
            data["payment_terms"]["due_date"] = _format_date(self.payment_terms.due_date)
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        issue_date = parse_date(data.get("issue_date"), "issue_date")
        if issue_date is None:
            raise SunatValidationError("Falta issue_date")
        return cls(
            id=str(data.get("id") or f"{data.get('serie')}-{data.get('number')}"),
            serie=str(data.get("serie", "")),
            number=str(data.get("number", "")),
            type=DocumentType.parse(data.get("type")),
            issue_date=issue_date,
            due_date=parse_date(data.get("due_date"), "due_date"),
            currency_code=str(data.get("currency_code", "")),
            issuer=Company.from_dict(data.get("issuer") or {}),
            customer=Company.from_dict(data.get("customer") or {}),
            lines=[DocumentLine.from_dict(line) for line in data.get("lines") or []],
            sub_total=float(data.get("sub_total", 0)),
            total_taxes=float(data.get("total_taxes", 0)),
            total_amount=float(data.get("total_amount", 0)),
            payment_terms=PaymentTerms.from_dict(data.get("payment_terms")),
            related_documents=[RelatedDocument.from_dict(r) for r in data.get("related_documents") or []],
            status=DocumentStatus(data.get("status") or DocumentStatus.DRAFT.value),
            sunat_status=str(data.get("sunat_status") or ""),
            cdr=CDR.from_dict(data.get("cdr")),
            signature_mode=data.get("signature_mode"),
            last_error=str(data.get("last_error") or ""),
            created_at=_parse_timestamp(data.get("created_at")),
            updated_at=_parse_timestamp(data.get("updated_at")),
        )


@dataclass
class CreateDocumentLineRequest:
    quantity: float
    unit_code: str
    description: str
    unit_price: float
    taxes: List[Tax] = field(default_factory=list)
    product_code: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CreateDocumentLineRequest":
        return cls(
            quantity=float(data.get("quantity", 0)),
            unit_code=str(data.get("unit_code", "")),
            description=str(data.get("description", "")),
            unit_price=float(data.get("unit_price", 0)),
            taxes=[Tax.from_dict(t) for t in data.get("taxes") or []],
            product_code=str(data.get("product_code") or ""),
        )


@dataclass
class CreateDocumentRequest:
    """Solicitud de creación ya validada por la capa HTTP"""
    type: DocumentType
    serie: str
    number: str
    issue_date: str
    currency_code: str
    customer: Company
    lines: List[CreateDocumentLineRequest]
    payment_terms: Optional[PaymentTerms] = None
    due_date: str = ""
    related_documents: List[RelatedDocument] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CreateDocumentRequest":
        return cls(
            type=DocumentType.parse(data.get("type")),
            serie=str(data.get("serie", "")),
            number=str(data.get("number", "")),
            issue_date=str(data.get("issue_date", "")),
            due_date=str(data.get("due_date") or ""),
            currency_code=str(data.get("currency_code", "")),
            customer=Company.from_dict(data.get("customer") or {}),
            lines=[CreateDocumentLineRequest.from_dict(line) for line in data.get("lines") or []],
            payment_terms=PaymentTerms.from_dict(data.get("payment_terms")),
            related_documents=[RelatedDocument.from_dict(r) for r in data.get("related_documents") or []],
        )


@dataclass
class VoidDocumentRequest:
    document_type: DocumentType
    serie: str
    number: str
    void_date: str
    reason: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VoidDocumentRequest":
        return cls(
            document_type=DocumentType.parse(data.get("document_type")),
            serie=str(data.get("serie", "")),
            number=str(data.get("number", "")),
            void_date=str(data.get("void_date", "")),
            reason=str(data.get("reason", "")),
        )
