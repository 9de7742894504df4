"""
Cliente SOAP 1.1 para el servicio billService de SUNAT (u OSE)

Operaciones:
- sendBill(fileName, contentFile)     -> applicationResponse (CDR zip, síncrono)
- sendSummary(fileName, contentFile)  -> ticket (asíncrono)
- getStatus(ticket)                   -> status(statusCode, content, error)

Autenticación: WS-Security UsernameToken con clave en texto plano.
Sin reintentos: cada llamada queda acotada por (connect, read) timeout.
"""
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests
from lxml import etree
from requests import Session
from requests.adapters import HTTPAdapter
from zeep.transports import Transport

from .config import SunatConfig
from .exceptions import (
    SunatResponseError,
    SunatSizeLimitError,
    SunatSoapFault,
    SunatTransportError,
    SunatValidationError,
)

logger = logging.getLogger(__name__)

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
WSSE_NS = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd"
SERVICE_NS = "http://service.sunat.gob.pe"

SOAP_HEADERS = {
    "Content-Type": "text/xml; charset=utf-8",
    "SOAPAction": '""',
}


@dataclass
class BillResponse:
    """Respuesta de sendBill: CDR (zip) ya decodificado de base64"""
    application_response: bytes


@dataclass
class SummaryResponse:
    """Respuesta de sendSummary"""
    ticket: str


@dataclass
class StatusResponse:
    """Respuesta de getStatus"""
    status_code: str
    content: Optional[bytes] = None
    error: Optional[str] = None


def build_envelope(operation: str, username: str, password: str, **fields: str) -> bytes:
    """
    Construye el sobre SOAP 1.1 con WS-Security UsernameToken.

    Args:
        operation: sendBill, sendSummary o getStatus
        username: Usuario SOL (RUC + usuario)
        password: Clave SOL
        **fields: Hijos de ser:<operation> en orden (fileName, contentFile / ticket)

    Returns:
        Sobre serializado con declaración XML
    """
    nsmap = {"soapenv": SOAP_ENV_NS, "ser": SERVICE_NS, "wsse": WSSE_NS}
    envelope = etree.Element(f"{{{SOAP_ENV_NS}}}Envelope", nsmap=nsmap)

    header = etree.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Header")
    security = etree.SubElement(header, f"{{{WSSE_NS}}}Security")
    token = etree.SubElement(security, f"{{{WSSE_NS}}}UsernameToken")
    etree.SubElement(token, f"{{{WSSE_NS}}}Username").text = username
    etree.SubElement(token, f"{{{WSSE_NS}}}Password").text = password

    body = etree.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Body")
    op = etree.SubElement(body, f"{{{SERVICE_NS}}}{operation}")
    for name, value in fields.items():
        etree.SubElement(op, name).text = value

    return etree.tostring(envelope, xml_declaration=True, encoding="UTF-8")


# ---------------------------------------------------------------------
# Decodificadores de sobre (en orden; gana el primero que encaja)
# ---------------------------------------------------------------------
def _namespaced_body(root: etree._Element) -> Optional[etree._Element]:
    if root.tag != f"{{{SOAP_ENV_NS}}}Envelope":
        return None
    return root.find(f"{{{SOAP_ENV_NS}}}Body")


def _bare_body(root: etree._Element) -> Optional[etree._Element]:
    if root.tag != "Envelope":
        return None
    return root.find("Body")


ENVELOPE_DECODERS: List[Callable[[etree._Element], Optional[etree._Element]]] = [
    _namespaced_body,
    _bare_body,
]


def _local_name(element: etree._Element) -> str:
    return etree.QName(element).localname


def _find_text(node: etree._Element, local_name: str) -> Optional[str]:
    nodes = node.xpath(f'.//*[local-name()="{local_name}"]')
    if nodes and nodes[0].text is not None:
        return nodes[0].text.strip()
    return None


def extract_body(content: bytes) -> etree._Element:
    """
    Decodifica el sobre y devuelve el Body, verificando Fault una sola vez.

    Raises:
        SunatResponseError: Si no es XML o ningún decodificador reconoce el sobre
        SunatSoapFault: Si el Body contiene un Fault
    """
    try:
        root = etree.fromstring(content)
    except etree.XMLSyntaxError as e:
        raise SunatResponseError(f"Respuesta SOAP no es XML válido: {e}") from e

    body = None
    for decoder in ENVELOPE_DECODERS:
        body = decoder(root)
        if body is not None:
            break
    if body is None:
        raise SunatResponseError(
            f"Respuesta SOAP sin Envelope/Body reconocible (raíz: {root.tag})"
        )

    for child in body:
        if isinstance(child.tag, str) and _local_name(child) == "Fault":
            fault_code = _find_text(child, "faultcode") or ""
            fault_string = _find_text(child, "faultstring") or ""
            detail_nodes = child.xpath('./*[local-name()="detail"]')
            detail = None
            if detail_nodes:
                detail = "".join(detail_nodes[0].itertext()).strip() or None
            raise SunatSoapFault(fault_code, fault_string, detail)
    return body


def _require_element(body: etree._Element, local_name: str) -> etree._Element:
    nodes = body.xpath(f'.//*[local-name()="{local_name}"]')
    if not nodes:
        raise SunatResponseError(f"Respuesta SOAP sin elemento {local_name}")
    return nodes[0]


def _decode_base64(value: str, field_name: str) -> bytes:
    try:
        return base64.b64decode(value.strip(), validate=False)
    except (binascii.Error, ValueError) as e:
        raise SunatResponseError(f"{field_name} no es Base64 válido: {e}") from e


class SunatSoapClient:
    """Cliente SOAP 1.1 (document/literal) para billService, sin reintentos."""

    def __init__(self, config: SunatConfig):
        self.config = config
        if not config.username or not config.password:
            logger.warning("Credenciales SOL no configuradas (SUNAT_USERNAME / SUNAT_PASSWORD)")
        self.transport = self._create_transport()

    def _create_transport(self) -> Transport:
        """Crea el transporte Zeep con una requests.Session de larga vida."""
        session = Session()
        session.verify = True
        # max_retries=0: un único intento por llamada
        session.mount("https://", HTTPAdapter(max_retries=0))
        session.mount("http://", HTTPAdapter(max_retries=0))
        return Transport(
            session=session,
            timeout=self.config.timeout,
            operation_timeout=self.config.read_timeout,
        )

    def close(self) -> None:
        self.transport.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ---------------------------------------------------------------------
    # Size validation
    # ---------------------------------------------------------------------
    def _validate_size(self, operation: str, content: str) -> None:
        size = len(content)
        limit = self.config.max_content_bytes
        if limit and size > limit:
            raise SunatSizeLimitError(operation, size, limit)

    # ---------------------------------------------------------------------
    # HTTP
    # ---------------------------------------------------------------------
    def _post(self, operation: str, envelope: bytes) -> etree._Element:
        url = self.config.bill_service_url
        logger.info(f"Enviando SOAP {operation} a endpoint: {url}")
        session = self.transport.session
        try:
            resp = session.post(
                url,
                data=envelope,
                headers=SOAP_HEADERS,
                timeout=self.config.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout en {operation}: {e}")
            raise SunatTransportError(f"Timeout en {operation}: {e}", timeout=True) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Error de conexión en {operation}: {e}")
            raise SunatTransportError(f"Error de conexión en {operation}: {e}") from e

        if not 200 <= resp.status_code < 300:
            snippet = resp.content[:500].decode("utf-8", errors="replace")
            logger.error(f"HTTP {resp.status_code} en {operation}")
            raise SunatTransportError(
                f"Error HTTP {resp.status_code} en {operation}: {snippet}",
                http_status=resp.status_code,
            )

        body = extract_body(resp.content)
        logger.debug(f"Respuesta {operation} recibida ({len(resp.content)} bytes)")
        return body

    def _credentials(self):
        if not self.config.username or not self.config.password:
            raise SunatTransportError("Faltan credenciales SOL para WS-Security")
        return self.config.username, self.config.password

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    def send_bill(self, file_name: str, zip_bytes: bytes) -> BillResponse:
        """
        Envío síncrono de Factura / Nota (sendBill).

        Args:
            file_name: Nombre del ZIP ({ruc}-{tipo}-{serie}-{numero}.zip)
            zip_bytes: ZIP con el XML firmado

        Returns:
            BillResponse con el CDR (zip)
        """
        content = base64.b64encode(zip_bytes).decode("ascii")
        self._validate_size("sendBill", content)
        username, password = self._credentials()
        envelope = build_envelope(
            "sendBill", username, password, fileName=file_name, contentFile=content
        )
        body = self._post("sendBill", envelope)
        application = _require_element(body, "applicationResponse")
        if not (application.text or "").strip():
            raise SunatResponseError("applicationResponse vacío")
        return BillResponse(application_response=_decode_base64(application.text, "applicationResponse"))

    def send_summary(self, file_name: str, zip_bytes: bytes) -> SummaryResponse:
        """Envío asíncrono (sendSummary). Devuelve el ticket para getStatus."""
        content = base64.b64encode(zip_bytes).decode("ascii")
        self._validate_size("sendSummary", content)
        username, password = self._credentials()
        envelope = build_envelope(
            "sendSummary", username, password, fileName=file_name, contentFile=content
        )
        body = self._post("sendSummary", envelope)
        ticket = (_require_element(body, "ticket").text or "").strip()
        if not ticket:
            raise SunatResponseError("sendSummary devolvió ticket vacío")
        logger.info(f"Ticket recibido: {ticket}")
        return SummaryResponse(ticket=ticket)

    def get_status(self, ticket: str) -> StatusResponse:
        """Consulta el estado de un ticket (getStatus)."""
        if not ticket or not ticket.strip():
            raise SunatValidationError("ticket no puede estar vacío")
        username, password = self._credentials()
        envelope = build_envelope("getStatus", username, password, ticket=ticket.strip())
        body = self._post("getStatus", envelope)
        status = _require_element(body, "status")

        status_code = _find_text(status, "statusCode")
        if status_code is None:
            raise SunatResponseError("getStatus sin statusCode")
        content_text = _find_text(status, "content")
        content = _decode_base64(content_text, "content") if content_text else None
        return StatusResponse(
            status_code=status_code,
            content=content,
            error=_find_text(status, "error"),
        )
