"""
Firma digital XML para comprobantes SUNAT

Requisitos:
- XML Digital Signature Enveloped dentro de ext:UBLExtensions/ext:UBLExtension/ext:ExtensionContent
- Certificado X.509 en KeyInfo
- RSA-SHA256 / digest SHA-256
- C14N inclusivo (REC-xml-c14n-20010315)
- ds:Signature con Id="SignatureST" (referenciado por cac:Signature)
"""
import base64
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from lxml import etree
from signxml import XMLSigner, methods, SignatureMethod, DigestAlgorithm, CanonicalizationMethod

from .exceptions import SunatSignatureError
from .models import SIGNATURE_MODE_UNSIGNED, SIGNATURE_MODE_XMLDSIG
from .xml_generator import EXT_NS, DS_NS

if TYPE_CHECKING:
    from .config import SunatConfig

logger = logging.getLogger(__name__)

SIGNATURE_ELEMENT_ID = "SignatureST"
DUMMY_SIGNATURE_MARKER = "DUMMY-UNSIGNED-TEST-MODE"
C14N_INCLUSIVE = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"


def _parse(xml_bytes: bytes) -> etree._Element:
    try:
        return etree.fromstring(xml_bytes)
    except etree.XMLSyntaxError as e:
        raise SunatSignatureError(f"XML inválido para firmar: {e}") from e


def _is_empty(element: etree._Element) -> bool:
    return len(element) == 0 and not (element.text or "").strip()


def find_signature_slot(root: etree._Element) -> etree._Element:
    """
    Ubica el primer ext:ExtensionContent vacío.

    Raises:
        SunatSignatureError: Si no hay ningún ExtensionContent vacío
    """
    for content in root.iter(f"{{{EXT_NS}}}ExtensionContent"):
        if _is_empty(content):
            return content
    raise SunatSignatureError(
        "No se encontró ext:ExtensionContent vacío donde insertar la firma"
    )


def _to_bytes(root: etree._Element) -> bytes:
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8")


class XmlSigner:
    """
    Firma XML enveloped con certificado PKCS#12 (.pfx/.p12) o PEM (cert + key).
    """

    signature_mode = SIGNATURE_MODE_XMLDSIG

    def __init__(
        self,
        cert_path: str,
        cert_password: Optional[str] = None,
        key_path: Optional[str] = None,
        key_password: Optional[str] = None,
    ):
        """
        Args:
            cert_path: Ruta al certificado PFX/P12, o certificado PEM si se indica key_path
            cert_password: Contraseña del PKCS#12
            key_path: Ruta a la clave privada PEM (modo PEM)
            key_password: Contraseña de la clave privada PEM

        Raises:
            SunatSignatureError: Si el certificado no se puede cargar o está vencido
        """
        if not cert_path:
            raise SunatSignatureError("Certificado no especificado. Configure SUNAT_CERT_PATH")
        if not Path(cert_path).exists():
            raise SunatSignatureError(f"Certificado no encontrado: {cert_path}")

        self.cert_path = cert_path
        self.cert_password = cert_password
        self.key_path = key_path
        self.key_password = key_password

        if key_path:
            self._load_pem()
        else:
            self._load_pkcs12()
        self._validate_certificate()

    @classmethod
    def from_config(cls, config: "SunatConfig") -> "XmlSigner":
        return cls(
            cert_path=config.cert_path,
            cert_password=config.cert_password,
            key_path=config.key_path,
            key_password=config.key_password,
        )

    def _load_pkcs12(self) -> None:
        data = Path(self.cert_path).read_bytes()
        password = self.cert_password.encode() if self.cert_password else None
        try:
            private_key, certificate, _ = pkcs12.load_key_and_certificates(data, password)
        except ValueError as e:
            raise SunatSignatureError(f"Error al cargar certificado PKCS#12: {e}") from e
        if private_key is None:
            raise SunatSignatureError("No se pudo extraer la clave privada del certificado")
        if certificate is None:
            raise SunatSignatureError("No se pudo extraer el certificado del archivo")
        self.private_key = private_key
        self.certificate = certificate

    def _load_pem(self) -> None:
        if not Path(self.key_path).exists():
            raise SunatSignatureError(f"Clave privada no encontrada: {self.key_path}")
        password = self.key_password.encode() if self.key_password else None
        try:
            self.certificate = x509.load_pem_x509_certificate(Path(self.cert_path).read_bytes())
            self.private_key = serialization.load_pem_private_key(
                Path(self.key_path).read_bytes(), password=password
            )
        except (ValueError, TypeError) as e:
            raise SunatSignatureError(f"Error al cargar certificado/clave PEM: {e}") from e

    def _validate_certificate(self) -> None:
        now = datetime.now(timezone.utc)
        if self.certificate.not_valid_after_utc < now:
            raise SunatSignatureError(
                f"Certificado expirado. Válido hasta: {self.certificate.not_valid_after_utc}"
            )
        if self.certificate.not_valid_before_utc > now:
            raise SunatSignatureError(
                f"Certificado aún no válido. Válido desde: {self.certificate.not_valid_before_utc}"
            )
        if not isinstance(self.private_key, rsa.RSAPrivateKey):
            raise SunatSignatureError("La clave privada debe ser RSA")
        logger.info(
            f"Certificado cargado. Sujeto: {self.certificate.subject.rfc4514_string()}, "
            f"válido hasta: {self.certificate.not_valid_after_utc}"
        )

    @property
    def certificate_pem(self) -> str:
        return self.certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")

    def sign(self, xml_bytes: bytes) -> bytes:
        """
        Firma el documento insertando ds:Signature en el primer ExtensionContent vacío.

        Args:
            xml_bytes: XML sin firmar (con declaración)

        Returns:
            XML firmado con declaración

        Raises:
            SunatSignatureError: Si no hay placeholder o falla la firma
        """
        root = _parse(xml_bytes)
        slot = find_signature_slot(root)
        etree.SubElement(slot, f"{{{DS_NS}}}Signature", Id="placeholder")

        signer = XMLSigner(
            method=methods.enveloped,
            signature_algorithm=SignatureMethod.RSA_SHA256,
            digest_algorithm=DigestAlgorithm.SHA256,
            c14n_algorithm=CanonicalizationMethod.CANONICAL_XML_1_0,
        )
        try:
            signed_root = signer.sign(root, key=self.private_key, cert=self.certificate_pem)
        except Exception as e:
            raise SunatSignatureError(f"Error al firmar XML: {e}") from e

        signature = _signature_element(signed_root)
        signature.set("Id", SIGNATURE_ELEMENT_ID)
        logger.info("XML firmado (enveloped, RSA-SHA256)")
        return _to_bytes(signed_root)


def _signature_element(root: etree._Element) -> etree._Element:
    nodes = root.xpath(
        "//ext:ExtensionContent/ds:Signature",
        namespaces={"ext": EXT_NS, "ds": DS_NS},
    )
    if len(nodes) != 1:
        raise SunatSignatureError(f"Se esperaba una firma en ExtensionContent, encontradas: {len(nodes)}")
    return nodes[0]


class UnsignedTestSigner:
    """
    Firmador NO productivo: inserta un ds:Signature con un SignatureValue marcador.

    Solo se habilita con SUNAT_ALLOW_UNSIGNED=true. Los documentos quedan
    marcados como signature_mode="unsigned-test" y se bloquean antes de
    cualquier envío a producción.
    """

    signature_mode = SIGNATURE_MODE_UNSIGNED

    def sign(self, xml_bytes: bytes) -> bytes:
        root = _parse(xml_bytes)
        slot = find_signature_slot(root)

        signature = etree.SubElement(slot, f"{{{DS_NS}}}Signature", Id=SIGNATURE_ELEMENT_ID)
        signed_info = etree.SubElement(signature, f"{{{DS_NS}}}SignedInfo")
        etree.SubElement(signed_info, f"{{{DS_NS}}}CanonicalizationMethod", Algorithm=C14N_INCLUSIVE)
        value = etree.SubElement(signature, f"{{{DS_NS}}}SignatureValue")
        value.text = base64.b64encode(DUMMY_SIGNATURE_MARKER.encode("ascii")).decode("ascii")

        logger.warning("Documento firmado en modo unsigned-test (NO válido para SUNAT)")
        return _to_bytes(root)


def assert_no_dummy_signature(xml_bytes: bytes) -> None:
    """
    Rechaza XML cuyo SignatureValue decodifica a texto de prueba.

    Raises:
        SunatSignatureError: Si se detecta firma dummy o no hay firma
    """
    root = _parse(xml_bytes)
    values = root.xpath("//ds:SignatureValue", namespaces={"ds": DS_NS})
    if not values:
        raise SunatSignatureError("El XML no contiene ds:SignatureValue")
    for node in values:
        text = (node.text or "").strip()
        try:
            decoded = base64.b64decode(text).decode("ascii", errors="ignore").lower()
        except ValueError:
            # no es base64 válido: no es el marcador
            continue
        if DUMMY_SIGNATURE_MARKER.lower() in decoded or "dummy" in decoded or "this is a test" in decoded:
            raise SunatSignatureError(
                "Se detectó firma dummy en el XML. Debe usar un certificado real para firmar."
            )


def build_signer(config: "SunatConfig"):
    """
    Selecciona el firmador según configuración.

    - Certificado configurado: XmlSigner
    - Sin certificado y SUNAT_ALLOW_UNSIGNED=true: UnsignedTestSigner
    - En otro caso: SunatSignatureError
    """
    if config.cert_path:
        return XmlSigner.from_config(config)
    if config.allow_unsigned:
        logger.warning("Sin certificado configurado: usando UnsignedTestSigner (SUNAT_ALLOW_UNSIGNED)")
        return UnsignedTestSigner()
    raise SunatSignatureError(
        "No hay certificado de firma configurado (SUNAT_CERT_PATH) y SUNAT_ALLOW_UNSIGNED no está habilitado"
    )
