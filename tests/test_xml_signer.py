from pathlib import Path
import sys
from types import SimpleNamespace

import lxml.etree as etree
import pytest
from cryptography.hazmat.primitives import serialization
from signxml import XMLVerifier

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.sunat_client.document_service import DocumentService
from app.sunat_client.exceptions import SunatSignatureError
from app.sunat_client.xml_generator import DS_NS, EXT_NS, build_document_xml, serialize_document
from app.sunat_client.xml_signer import (
    DUMMY_SIGNATURE_MARKER,
    UnsignedTestSigner,
    XmlSigner,
    assert_no_dummy_signature,
    build_signer,
)

from _sunat_fixtures import issuer, make_request, write_pem_pair, write_pfx

NS = {"ds": DS_NS, "ext": EXT_NS}


def _unsigned_invoice() -> bytes:
    service = DocumentService(None, issuer(), None)
    doc = service.create_document(make_request())
    return serialize_document(build_document_xml(doc, service.issuer))


def _cert_pem(cert) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def test_sign_with_pem_pair_produces_verifiable_signature(tmp_path: Path):
    cert_path, key_path, cert = write_pem_pair(tmp_path)
    signer = XmlSigner(str(cert_path), key_path=str(key_path))

    signed = signer.sign(_unsigned_invoice())

    assert signed.startswith(b"<?xml")
    root = etree.fromstring(signed)
    signatures = root.findall(".//ds:Signature", NS)
    assert len(signatures) == 1
    assert signatures[0].get("Id") == "SignatureST"
    assert signatures[0].getparent().tag == f"{{{EXT_NS}}}ExtensionContent"
    assert root.find(".//ds:KeyInfo/ds:X509Data/ds:X509Certificate", NS) is not None
    assert (
        root.find(".//ds:SignedInfo/ds:CanonicalizationMethod", NS).get("Algorithm")
        == "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"
    )
    assert root.find(".//ds:SignedInfo/ds:SignatureMethod", NS).get("Algorithm").endswith("rsa-sha256")

    XMLVerifier().verify(signed, x509_cert=_cert_pem(cert))


def test_sign_with_pfx(tmp_path: Path):
    pfx_path, cert = write_pfx(tmp_path, password="secret")
    signer = XmlSigner(str(pfx_path), cert_password="secret")

    signed = signer.sign(_unsigned_invoice())

    XMLVerifier().verify(signed, x509_cert=_cert_pem(cert))
    assert_no_dummy_signature(signed)


def test_pfx_wrong_password_raises(tmp_path: Path):
    pfx_path, _ = write_pfx(tmp_path, password="secret")
    with pytest.raises(SunatSignatureError, match="PKCS#12"):
        XmlSigner(str(pfx_path), cert_password="otra")


def test_expired_certificate_rejected(tmp_path: Path):
    cert_path, key_path, _ = write_pem_pair(tmp_path, expired=True)
    with pytest.raises(SunatSignatureError, match="expirado"):
        XmlSigner(str(cert_path), key_path=str(key_path))


def test_missing_certificate_file(tmp_path: Path):
    with pytest.raises(SunatSignatureError, match="no encontrado"):
        XmlSigner(str(tmp_path / "nope.pfx"), cert_password="x")


def test_sign_without_placeholder_raises(tmp_path: Path):
    cert_path, key_path, _ = write_pem_pair(tmp_path)
    signer = XmlSigner(str(cert_path), key_path=str(key_path))
    with pytest.raises(SunatSignatureError, match="ExtensionContent"):
        signer.sign(b"<?xml version='1.0' encoding='UTF-8'?><Invoice xmlns='urn:x'><ID>1</ID></Invoice>")


def test_only_first_placeholder_is_filled(tmp_path: Path):
    xml = (
        "<?xml version='1.0' encoding='UTF-8'?>"
        f"<Invoice xmlns='urn:x' xmlns:ext='{EXT_NS}'>"
        "<ext:UBLExtensions>"
        "<ext:UBLExtension><ext:ExtensionContent></ext:ExtensionContent></ext:UBLExtension>"
        "<ext:UBLExtension><ext:ExtensionContent></ext:ExtensionContent></ext:UBLExtension>"
        "</ext:UBLExtensions><ID>1</ID></Invoice>"
    ).encode("utf-8")
    signed = UnsignedTestSigner().sign(xml)
    contents = etree.fromstring(signed).findall(".//ext:ExtensionContent", NS)
    assert len(contents[0]) == 1
    assert len(contents[1]) == 0


def test_unsigned_test_signer_is_detected():
    signed = UnsignedTestSigner().sign(_unsigned_invoice())

    root = etree.fromstring(signed)
    assert root.find(".//ds:Signature", NS).get("Id") == "SignatureST"
    assert root.find(".//ds:X509Certificate", NS) is None
    with pytest.raises(SunatSignatureError, match="dummy"):
        assert_no_dummy_signature(signed)
    assert DUMMY_SIGNATURE_MARKER == "DUMMY-UNSIGNED-TEST-MODE"


def test_assert_no_dummy_signature_requires_signature():
    with pytest.raises(SunatSignatureError, match="SignatureValue"):
        assert_no_dummy_signature(_unsigned_invoice())


def test_build_signer_fails_closed():
    config = SimpleNamespace(cert_path=None, allow_unsigned=False)
    with pytest.raises(SunatSignatureError, match="SUNAT_ALLOW_UNSIGNED"):
        build_signer(config)

    config = SimpleNamespace(cert_path=None, allow_unsigned=True)
    assert isinstance(build_signer(config), UnsignedTestSigner)


def test_build_signer_uses_certificate(tmp_path: Path):
    cert_path, key_path, _ = write_pem_pair(tmp_path)
    config = SimpleNamespace(
        cert_path=str(cert_path), cert_password=None,
        key_path=str(key_path), key_password=None, allow_unsigned=True,
    )
    signer = build_signer(config)
    assert isinstance(signer, XmlSigner)
    assert signer.signature_mode == "xmldsig"
