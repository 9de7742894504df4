"""
Módulo cliente para emisión de comprobantes electrónicos SUNAT (Perú)
UBL 2.1 - billService SOAP 1.1
"""
from .config import SunatConfig, get_sunat_config, get_issuer_from_env, get_credentials
from .models import (
    CDR,
    Company,
    CreateDocumentLineRequest,
    CreateDocumentRequest,
    Document,
    DocumentLine,
    DocumentStatus,
    DocumentType,
    PaymentTerms,
    RelatedDocument,
    Tax,
    TaxType,
    VoidDocumentRequest,
)
from .amount_words import amount_to_words
from .xml_generator import build_document_xml, serialize_document
from .xml_signer import XmlSigner, UnsignedTestSigner, assert_no_dummy_signature, build_signer
from .packager import build_file_name, zip_document, unzip_single
from .cdr import parse_application_response, status_description
from .soap_client import SunatSoapClient, BillResponse, SummaryResponse, StatusResponse
from .document_service import DocumentService, PreparedDocument, SubmissionResult
from .exceptions import (
    SunatException,
    SunatValidationError,
    SunatSignatureError,
    SunatSizeLimitError,
    SunatTransportError,
    SunatSoapFault,
    SunatResponseError,
    SunatRejectionError,
    SunatNotImplementedError,
)

__all__ = [
    'SunatConfig',
    'get_sunat_config',
    'get_issuer_from_env',
    'get_credentials',
    'CDR',
    'Company',
    'CreateDocumentLineRequest',
    'CreateDocumentRequest',
    'Document',
    'DocumentLine',
    'DocumentStatus',
    'DocumentType',
    'PaymentTerms',
    'RelatedDocument',
    'Tax',
    'TaxType',
    'VoidDocumentRequest',
    'amount_to_words',
    'build_document_xml',
    'serialize_document',
    'XmlSigner',
    'UnsignedTestSigner',
    'assert_no_dummy_signature',
    'build_signer',
    'build_file_name',
    'zip_document',
    'unzip_single',
    'parse_application_response',
    'status_description',
    'SunatSoapClient',
    'BillResponse',
    'SummaryResponse',
    'StatusResponse',
    'DocumentService',
    'PreparedDocument',
    'SubmissionResult',
    'SunatException',
    'SunatValidationError',
    'SunatSignatureError',
    'SunatSizeLimitError',
    'SunatTransportError',
    'SunatSoapFault',
    'SunatResponseError',
    'SunatRejectionError',
    'SunatNotImplementedError',
]
