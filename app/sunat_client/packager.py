"""
Empaquetado ZIP de comprobantes según convención SUNAT

Nombre de archivo: {RUC}-{TIPO}-{SERIE}-{NUMERO}.xml / .zip
"""
import logging
import zipfile
from io import BytesIO
from typing import Optional, Tuple

from .exceptions import SunatResponseError

logger = logging.getLogger(__name__)


def build_file_name(
    issuer_ruc: str,
    type_code: str,
    serie: str,
    number: str,
    extension: str,
    suffix: Optional[str] = None,
) -> str:
    """
    Construye el nombre de archivo SUNAT.

    Args:
        issuer_ruc: RUC del emisor
        type_code: Código de tipo de documento (01, 03, 07, 08)
        serie: Serie (F001, B001, ...)
        number: Correlativo
        extension: "xml" o "zip"
        suffix: Sufijo opcional (ej. "signed" para artifacts locales)

    Returns:
        Nombre de archivo, ej. "20123456789-01-F001-123.zip"
    """
    base = f"{issuer_ruc}-{type_code}-{serie}-{number}"
    if suffix:
        base = f"{base}-{suffix}"
    return f"{base}.{extension.lstrip('.')}"


def zip_document(file_name: str, xml_bytes: bytes) -> bytes:
    """
    Crea un ZIP en memoria con una única entrada.

    El contenido se guarda sin modificar (la firma depende de cada byte).
    """
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(file_name, xml_bytes)
    data = buffer.getvalue()
    logger.debug(f"ZIP generado: {file_name} ({len(xml_bytes)} bytes XML -> {len(data)} bytes ZIP)")
    return data


def unzip_single(zip_bytes: bytes) -> Tuple[str, bytes]:
    """
    Extrae la primera entrada XML de un ZIP (CDR de SUNAT).

    Returns:
        Tupla (nombre, contenido)

    Raises:
        SunatResponseError: Si el ZIP es inválido o no contiene XML
    """
    try:
        with zipfile.ZipFile(BytesIO(zip_bytes), "r") as zf:
            names = [n for n in zf.namelist() if n.lower().endswith(".xml")]
            if not names:
                raise SunatResponseError(
                    f"ZIP no contiene archivos XML. Archivos encontrados: {zf.namelist()}"
                )
            return names[0], zf.read(names[0])
    except zipfile.BadZipFile as e:
        raise SunatResponseError(f"Contenido no es un ZIP válido: {e}") from e
