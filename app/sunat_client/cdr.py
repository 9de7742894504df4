"""
Interpretación de la Constancia de Recepción (CDR)

El CDR llega como ZIP (base64 en applicationResponse/content) con un
ApplicationResponse UBL "R-{RUC}-{TIPO}-{SERIE}-{NUMERO}.xml".
"""
import logging
from typing import List, Optional

from lxml import etree

from .exceptions import SunatResponseError
from .models import CDR
from .packager import unzip_single

logger = logging.getLogger(__name__)

# Códigos de getStatus
STATUS_DESCRIPTIONS = {
    "0": "Procesó correctamente",
    "98": "En proceso",
    "99": "Proceso con errores",
}


def status_description(code: Optional[str]) -> str:
    """Descripción de un statusCode de getStatus."""
    key = (code or "").strip()
    return STATUS_DESCRIPTIONS.get(key, f"Código de estado desconocido: {key or '(vacío)'}")


def _texts(root: etree._Element, xpath_expr: str) -> List[str]:
    return [n.text.strip() for n in root.xpath(xpath_expr) if n.text and n.text.strip()]


def parse_application_response_xml(xml_bytes: bytes) -> CDR:
    """
    Lee ResponseCode/Description de un ApplicationResponse.

    Raises:
        SunatResponseError: Si el XML es inválido o falta ResponseCode
    """
    try:
        root = etree.fromstring(xml_bytes)
    except etree.XMLSyntaxError as e:
        raise SunatResponseError(f"CDR no es XML válido: {e}") from e

    # Busca por local-name para tolerar prefijos
    response = root.xpath(
        '//*[local-name()="DocumentResponse"]/*[local-name()="Response"]'
    )
    if not response:
        raise SunatResponseError("CDR sin cac:DocumentResponse/cac:Response")

    codes = _texts(response[0], './*[local-name()="ResponseCode"]')
    if not codes:
        raise SunatResponseError("CDR sin cbc:ResponseCode")
    descriptions = _texts(response[0], './*[local-name()="Description"]')
    notes = _texts(root, '/*/*[local-name()="Note"]')

    cdr = CDR(
        response_code=codes[0],
        description=descriptions[0] if descriptions else "",
        notes="\n".join(notes) if notes else None,
    )
    logger.info(f"CDR: código {cdr.response_code} - {cdr.description}")
    return cdr


def parse_application_response(zip_bytes: bytes) -> CDR:
    """
    Descomprime y parsea el CDR.

    Args:
        zip_bytes: ZIP devuelto por sendBill o getStatus

    Returns:
        CDR con código, descripción y observaciones

    Raises:
        SunatResponseError: Si el ZIP o el XML no son válidos
    """
    name, xml_bytes = unzip_single(zip_bytes)
    logger.debug(f"CDR extraído: {name} ({len(xml_bytes)} bytes)")
    return parse_application_response_xml(xml_bytes)
