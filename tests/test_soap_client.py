from pathlib import Path
from types import SimpleNamespace
import base64
import sys

import lxml.etree as etree
import pytest
import requests

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.sunat_client.exceptions import (
    SunatResponseError,
    SunatSizeLimitError,
    SunatSoapFault,
    SunatTransportError,
    SunatValidationError,
)
from app.sunat_client.soap_client import (
    SERVICE_NS,
    SOAP_ENV_NS,
    WSSE_NS,
    SunatSoapClient,
    build_envelope,
)

from _sunat_fixtures import (
    cdr_zip,
    fault_response,
    send_bill_response,
    send_summary_response,
    soap_envelope,
)

NS = {"soapenv": SOAP_ENV_NS, "wsse": WSSE_NS, "ser": SERVICE_NS}


class _MockResponse:
    def __init__(self, *, status_code: int, headers: dict, content: bytes):
        self.status_code = status_code
        self.headers = headers
        self.content = content


class _MockSession:
    def __init__(self, *, status_code: int = 200, content: bytes = b"", error: Exception = None):
        self.status_code = status_code
        self.content = content
        self.error = error
        self.calls = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return _MockResponse(
            status_code=self.status_code,
            headers={"Content-Type": "text/xml; charset=utf-8"},
            content=self.content,
        )


def _client_without_init(session: _MockSession, *, max_content_bytes: int = 10 * 1024 * 1024) -> SunatSoapClient:
    client = SunatSoapClient.__new__(SunatSoapClient)
    client.transport = SimpleNamespace(session=session)
    client.config = SimpleNamespace(
        bill_service_url="https://e-beta.sunat.gob.pe/ol-ti-itcpfegem-beta/billService",
        username="20123456789MODDATOS",
        password="moddatos",
        timeout=(10, 30),
        read_timeout=30,
        max_content_bytes=max_content_bytes,
    )
    return client


def test_build_envelope_has_username_token_and_fields():
    envelope = etree.fromstring(
        build_envelope("sendBill", "20123456789MODDATOS", "moddatos", fileName="a.zip", contentFile="QUJD")
    )

    assert envelope.findtext("soapenv:Header/wsse:Security/wsse:UsernameToken/wsse:Username", namespaces=NS) == "20123456789MODDATOS"
    assert envelope.findtext("soapenv:Header/wsse:Security/wsse:UsernameToken/wsse:Password", namespaces=NS) == "moddatos"
    operation = envelope.find("soapenv:Body/ser:sendBill", NS)
    assert [child.tag for child in operation] == ["fileName", "contentFile"]
    assert operation.findtext("contentFile") == "QUJD"


def test_send_bill_posts_envelope_and_decodes_cdr():
    zip_bytes = cdr_zip("0")
    session = _MockSession(content=send_bill_response(zip_bytes))
    client = _client_without_init(session)

    response = client.send_bill("20123456789-01-F001-123.zip", b"PK-payload")

    assert response.application_response == zip_bytes
    call = session.calls[0]
    assert call["url"].endswith("/billService")
    assert call["headers"]["Content-Type"] == "text/xml; charset=utf-8"
    assert call["headers"]["SOAPAction"] == '""'
    assert call["timeout"] == (10, 30)

    sent = etree.fromstring(call["data"])
    assert sent.findtext("soapenv:Body/ser:sendBill/fileName", namespaces=NS) == "20123456789-01-F001-123.zip"
    assert sent.findtext("soapenv:Body/ser:sendBill/contentFile", namespaces=NS) == base64.b64encode(b"PK-payload").decode("ascii")


def test_send_bill_accepts_envelope_without_namespace():
    zip_bytes = cdr_zip("0")
    session = _MockSession(content=send_bill_response(zip_bytes, namespaced=False))
    client = _client_without_init(session)

    assert client.send_bill("x.zip", b"zip").application_response == zip_bytes


def test_send_summary_returns_ticket():
    session = _MockSession(content=send_summary_response("1710000000123"))
    client = _client_without_init(session)

    assert client.send_summary("20123456789-03-B001-1.zip", b"zip").ticket == "1710000000123"
    sent = etree.fromstring(session.calls[0]["data"])
    assert sent.find("soapenv:Body/ser:sendSummary", NS) is not None


def test_empty_ticket_is_a_response_error():
    session = _MockSession(content=send_summary_response(""))
    client = _client_without_init(session)

    with pytest.raises(SunatResponseError, match="ticket vacío"):
        client.send_summary("x.zip", b"zip")


def test_soap_fault_preserves_code_and_string():
    session = _MockSession(status_code=200, content=fault_response())
    client = _client_without_init(session)

    with pytest.raises(SunatSoapFault) as exc_info:
        client.send_bill("x.zip", b"zip")

    assert exc_info.value.fault_code == "soap-env:Client.0111"
    assert exc_info.value.fault_string == "No tiene el perfil para enviar comprobantes electronicos"
    assert "SOAP fault" in str(exc_info.value)


def test_http_error_status_is_transport_error():
    session = _MockSession(status_code=500, content=b"Internal Server Error")
    client = _client_without_init(session)

    with pytest.raises(SunatTransportError) as exc_info:
        client.send_bill("x.zip", b"zip")

    assert exc_info.value.http_status == 500
    assert exc_info.value.response_received
    assert not exc_info.value.timeout


def test_timeout_is_transport_error_without_response():
    session = _MockSession(error=requests.exceptions.ReadTimeout("read timed out"))
    client = _client_without_init(session)

    with pytest.raises(SunatTransportError) as exc_info:
        client.send_bill("x.zip", b"zip")

    assert exc_info.value.timeout
    assert not exc_info.value.response_received
    assert len(session.calls) == 1


def test_connection_error_is_transport_error():
    session = _MockSession(error=requests.exceptions.ConnectionError("refused"))
    client = _client_without_init(session)

    with pytest.raises(SunatTransportError, match="conexión") as exc_info:
        client.send_summary("x.zip", b"zip")

    assert not exc_info.value.timeout


def test_non_xml_body_is_response_error():
    session = _MockSession(content=b"<html>gateway")
    client = _client_without_init(session)

    with pytest.raises(SunatResponseError, match="no es XML"):
        client.send_bill("x.zip", b"zip")


def test_missing_application_response_is_response_error():
    session = _MockSession(content=soap_envelope("<br:sendBillResponse xmlns:br='http://service.sunat.gob.pe'/>"))
    client = _client_without_init(session)

    with pytest.raises(SunatResponseError, match="applicationResponse"):
        client.send_bill("x.zip", b"zip")


def test_size_limit_checked_before_network():
    session = _MockSession(content=send_summary_response("1"))
    client = _client_without_init(session, max_content_bytes=8)

    with pytest.raises(SunatSizeLimitError) as exc_info:
        client.send_summary("x.zip", b"0123456789")

    assert exc_info.value.limit == 8
    assert exc_info.value.size == len(base64.b64encode(b"0123456789"))
    assert session.calls == []


def test_get_status_with_cdr_content():
    zip_bytes = cdr_zip("0")
    content = base64.b64encode(zip_bytes).decode("ascii")
    session = _MockSession(
        content=soap_envelope(
            "<br:getStatusResponse xmlns:br='http://service.sunat.gob.pe'>"
            f"<status><statusCode>0</statusCode><content>{content}</content></status>"
            "</br:getStatusResponse>"
        )
    )
    client = _client_without_init(session)

    status = client.get_status("1710000000123")

    assert status.status_code == "0"
    assert status.content == zip_bytes
    assert status.error is None
    sent = etree.fromstring(session.calls[0]["data"])
    assert sent.findtext("soapenv:Body/ser:getStatus/ticket", namespaces=NS) == "1710000000123"


def test_get_status_in_progress():
    session = _MockSession(
        content=soap_envelope(
            "<br:getStatusResponse xmlns:br='http://service.sunat.gob.pe'>"
            "<status><statusCode>98</statusCode></status>"
            "</br:getStatusResponse>"
        )
    )
    client = _client_without_init(session)

    status = client.get_status("1710000000123")
    assert status.status_code == "98"
    assert status.content is None


def test_get_status_requires_ticket():
    session = _MockSession()
    client = _client_without_init(session)
    with pytest.raises(SunatValidationError, match="ticket"):
        client.get_status("  ")
    assert session.calls == []


def test_missing_credentials_fail_before_post():
    session = _MockSession(content=send_summary_response("1"))
    client = _client_without_init(session)
    client.config.password = ""

    with pytest.raises(SunatTransportError, match="credenciales"):
        client.send_summary("x.zip", b"zip")
    assert session.calls == []
