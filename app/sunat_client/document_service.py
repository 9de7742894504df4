"""
Orquestador de emisión de comprobantes SUNAT

Flujo: crear (draft) -> preparar (XML, firma, ZIP) -> enviar.

Máquina de estados:
- draft -> pending   (Boleta: sendSummary, ticket en sunat_status)
- draft -> accepted  (Factura/Notas: sendBill con CDR de aceptación)
- draft -> rejected  (Fault, HTTP no 2xx, sin conexión, respuesta ilegible o CDR de rechazo)
- draft -> draft     (timeout)
"""
import logging
from dataclasses import dataclass
from typing import Optional

from .cdr import parse_application_response, status_description
from .exceptions import (
    SunatNotImplementedError,
    SunatRejectionError,
    SunatResponseError,
    SunatSignatureError,
    SunatSoapFault,
    SunatTransportError,
    SunatValidationError,
)
from .models import (
    CDR,
    Company,
    CreateDocumentRequest,
    Document,
    DocumentLine,
    DocumentStatus,
    SIGNATURE_MODE_UNSIGNED,
    Tax,
    VoidDocumentRequest,
    parse_date,
)
from .packager import build_file_name, zip_document
from .soap_client import SunatSoapClient
from .xml_generator import build_document_xml, serialize_document
from .xml_signer import assert_no_dummy_signature

logger = logging.getLogger(__name__)


@dataclass
class PreparedDocument:
    """Artefactos listos para enviar"""
    xml_file_name: str
    zip_file_name: str
    unsigned_xml: bytes
    signed_xml: bytes
    zip_bytes: bytes


@dataclass
class SubmissionResult:
    document: Document
    prepared: PreparedDocument
    ticket: Optional[str] = None
    cdr_zip: Optional[bytes] = None


class TicketSubmission:
    """Envío asíncrono: sendSummary -> pending + ticket"""

    def submit(self, client: SunatSoapClient, doc: Document, prepared: PreparedDocument) -> SubmissionResult:
        response = client.send_summary(prepared.zip_file_name, prepared.zip_bytes)
        doc.status = DocumentStatus.PENDING
        doc.sunat_status = response.ticket
        doc.touch()
        logger.info(f"Documento {doc.id} pendiente, ticket {response.ticket}")
        return SubmissionResult(document=doc, prepared=prepared, ticket=response.ticket)


class BillSubmission:
    """Envío síncrono: sendBill -> CDR -> accepted / rejected"""

    def submit(self, client: SunatSoapClient, doc: Document, prepared: PreparedDocument) -> SubmissionResult:
        response = client.send_bill(prepared.zip_file_name, prepared.zip_bytes)
        cdr = parse_application_response(response.application_response)
        doc.cdr = cdr
        doc.touch()
        if not cdr.accepted:
            doc.status = DocumentStatus.REJECTED
            doc.last_error = f"{cdr.response_code} - {cdr.description}"
            raise SunatRejectionError(
                f"SUNAT rechazó {doc.serie}-{doc.number}: {cdr.response_code} - {cdr.description}",
                cdr,
            )
        doc.status = DocumentStatus.ACCEPTED
        logger.info(f"Documento {doc.id} aceptado: {cdr.response_code} - {cdr.description}")
        return SubmissionResult(document=doc, prepared=prepared, cdr_zip=response.application_response)


TICKET_SUBMISSION = TicketSubmission()
BILL_SUBMISSION = BillSubmission()


class DocumentService:
    """
    Servicio de comprobantes.

    El emisor se inyecta una sola vez y no cambia durante la vida del proceso.
    """

    def __init__(self, soap_client: SunatSoapClient, issuer: Company, signer):
        self.soap_client = soap_client
        self.issuer = issuer
        self.signer = signer

    # ---------------------------------------------------------------------
    # Creación
    # ---------------------------------------------------------------------
    def create_document(self, request: CreateDocumentRequest) -> Document:
        """
        Crea un documento en estado draft con totales calculados.

        Raises:
            SunatValidationError: Si las fechas tienen formato inválido
        """
        issue_date = parse_date(request.issue_date, "issue_date")
        if issue_date is None:
            raise SunatValidationError("Falta issue_date")
        due_date = parse_date(request.due_date, "due_date")

        lines = []
        sub_total = 0.0
        total_taxes = 0.0
        for index, line_req in enumerate(request.lines, start=1):
            total_price = line_req.quantity * line_req.unit_price
            taxable_amount = total_price
            taxes = [
                Tax(
                    type=tax.type,
                    code=tax.code,
                    rate=tax.rate,
                    amount=taxable_amount * tax.rate / 100,
                )
                for tax in line_req.taxes
            ]
            line = DocumentLine(
                id=str(index),
                quantity=line_req.quantity,
                unit_code=line_req.unit_code,
                description=line_req.description,
                unit_price=line_req.unit_price,
                total_price=total_price,
                taxable_amount=taxable_amount,
                taxes=taxes,
                product_code=line_req.product_code,
            )
            lines.append(line)
            sub_total += total_price
            total_taxes += line.total_tax_amount

        doc = Document(
            id=f"{request.serie}-{request.number}",
            serie=request.serie,
            number=request.number,
            type=request.type,
            issue_date=issue_date,
            due_date=due_date,
            currency_code=request.currency_code,
            issuer=self.issuer,
            customer=request.customer,
            lines=lines,
            sub_total=sub_total,
            total_taxes=total_taxes,
            total_amount=sub_total + total_taxes,
            payment_terms=request.payment_terms,
            related_documents=list(request.related_documents),
            status=DocumentStatus.DRAFT,
        )
        logger.info(
            f"Documento creado {doc.id}: {doc.type.value} {doc.serie}-{doc.number} "
            f"total {doc.total_amount:.2f} {doc.currency_code}"
        )
        return doc

    # ---------------------------------------------------------------------
    # Preparación (XML -> firma -> ZIP)
    # ---------------------------------------------------------------------
    def prepare(self, doc: Document) -> PreparedDocument:
        """
        Genera, firma y empaqueta el documento. No cambia el estado.

        Raises:
            SunatValidationError: Datos incompletos para el esquema
            SunatSignatureError: Fallo de firma
        """
        root = build_document_xml(doc, self.issuer)
        unsigned_xml = serialize_document(root)
        signed_xml = self.signer.sign(unsigned_xml)
        doc.signature_mode = self.signer.signature_mode

        type_code = doc.type.value
        xml_file_name = build_file_name(self.issuer.document_number, type_code, doc.serie, doc.number, "xml")
        zip_file_name = build_file_name(self.issuer.document_number, type_code, doc.serie, doc.number, "zip")
        zip_bytes = zip_document(xml_file_name, signed_xml)
        logger.info(f"Documento {doc.id} preparado: {zip_file_name} ({len(zip_bytes)} bytes)")
        return PreparedDocument(
            xml_file_name=xml_file_name,
            zip_file_name=zip_file_name,
            unsigned_xml=unsigned_xml,
            signed_xml=signed_xml,
            zip_bytes=zip_bytes,
        )

    def _guard_production(self, doc: Document, prepared: PreparedDocument) -> None:
        if not self.soap_client.config.is_production:
            return
        if doc.signature_mode == SIGNATURE_MODE_UNSIGNED:
            raise SunatSignatureError(
                f"Documento {doc.serie}-{doc.number} firmado en modo unsigned-test: "
                f"no se puede enviar a producción"
            )
        assert_no_dummy_signature(prepared.signed_xml)

    def _mark_rejected(self, doc: Document, reason: str) -> None:
        doc.status = DocumentStatus.REJECTED
        doc.last_error = reason
        doc.touch()

    # ---------------------------------------------------------------------
    # Envío
    # ---------------------------------------------------------------------
    def send_document(self, doc: Document) -> SubmissionResult:
        """
        Prepara y envía el documento a SUNAT.

        Returns:
            SubmissionResult con el documento actualizado y los artefactos

        Raises:
            SunatValidationError: Documento no enviable o datos inválidos (antes de la red)
            SunatSignatureError: Fallo de firma o firma no productiva hacia producción
            SunatTransportError: Timeout, conexión o HTTP no 2xx
            SunatSoapFault: Fault devuelto por SUNAT
            SunatResponseError: Respuesta o CDR ilegible
            SunatRejectionError: CDR con código de rechazo
        """
        if doc.status != DocumentStatus.DRAFT:
            raise SunatValidationError(
                f"Documento {doc.id} en estado {doc.status.value}: solo se envían documentos draft"
            )

        prepared = self.prepare(doc)
        self._guard_production(doc, prepared)

        strategy = TICKET_SUBMISSION if doc.type.requires_ticket else BILL_SUBMISSION
        try:
            return strategy.submit(self.soap_client, doc, prepared)
        except SunatTransportError as e:
            if e.timeout:
                logger.warning(f"Documento {doc.id} sin respuesta de SUNAT (timeout), queda en {doc.status.value}: {e}")
            else:
                self._mark_rejected(doc, e.message)
                logger.error(f"Documento {doc.id} rechazado por error de transporte: {e.message}")
            raise
        except SunatSoapFault as e:
            self._mark_rejected(doc, e.fault_string or e.message)
            logger.error(f"Documento {doc.id} rechazado: {e.message}")
            raise
        except SunatResponseError as e:
            self._mark_rejected(doc, e.message)
            logger.error(f"Documento {doc.id} con respuesta ilegible: {e.message}")
            raise
        except SunatRejectionError as e:
            logger.error(f"Documento {doc.id} rechazado por CDR: {e.message}")
            raise

    # ---------------------------------------------------------------------
    # Consulta / baja
    # ---------------------------------------------------------------------
    def check_status(self, ticket: str) -> CDR:
        """
        Consulta el estado de un ticket. Solo lectura: no modifica documentos.

        Returns:
            CDR del ticket; si aún no hay CDR (ej. 98 en proceso) se devuelve
            el statusCode con su descripción
        """
        status = self.soap_client.get_status(ticket)
        logger.info(f"Ticket {ticket}: statusCode {status.status_code} ({status_description(status.status_code)})")
        if status.content:
            return parse_application_response(status.content)
        return CDR(
            response_code=status.status_code,
            description=status.error or status_description(status.status_code),
        )

    def void_document(self, request: VoidDocumentRequest) -> None:
        """Comunicación de baja: no implementada."""
        raise SunatNotImplementedError(
            f"Comunicación de baja no implementada ({request.serie}-{request.number})"
        )
