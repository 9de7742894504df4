"""
Generador de XML UBL 2.1 para comprobantes SUNAT

Esquemas soportados:
- Invoice-2 (Factura 01 y Boleta 03)
- CreditNote-2 (Nota de Crédito 07)
- DebitNote-2 (Nota de Débito 08)

El generador NO firma: deja exactamente un ext:ExtensionContent vacío
donde el firmador inserta ds:Signature.
"""
import logging
from typing import Dict, List, Optional, Tuple

from lxml import etree

from .amount_words import amount_to_words
from .exceptions import SunatValidationError
from .models import Company, Document, DocumentLine, DocumentType, Tax

logger = logging.getLogger(__name__)

# Namespaces UBL 2.1
INVOICE_NS = "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"
CREDIT_NOTE_NS = "urn:oasis:names:specification:ubl:schema:xsd:CreditNote-2"
DEBIT_NOTE_NS = "urn:oasis:names:specification:ubl:schema:xsd:DebitNote-2"
CAC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
CBC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"
EXT_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonExtensionComponents-2"
DS_NS = "http://www.w3.org/2000/09/xmldsig#"

UBL_VERSION = "2.1"
CUSTOMIZATION_ID = "2.0"

SIGNATURE_ID = "IDSignST"
SIGNATURE_URI = "#SignatureST"

CATALOG_01_URI = "urn:pe:gob:sunat:cpe:see:gem:catalogos:catalogo01"
CATALOG_06_URI = "urn:pe:gob:sunat:cpe:see:gem:catalogos:catalogo06"
SUNAT_AGENCY = "PE:SUNAT"

# Leyenda "monto en letras" (catálogo 52)
AMOUNT_IN_WORDS_LEGEND = "1000"

# Catálogo 09 / 10: motivo fijo por tipo de nota
NOTE_DISCREPANCY = {
    DocumentType.NOTA_CREDITO: ("01", "Anulación de la operación"),
    DocumentType.NOTA_DEBITO: ("02", "Aumento en el valor"),
}

ROOT_NAMESPACES = {
    "Invoice": INVOICE_NS,
    "CreditNote": CREDIT_NOTE_NS,
    "DebitNote": DEBIT_NOTE_NS,
}

LINE_ELEMENTS = {
    "Invoice": ("InvoiceLine", "InvoicedQuantity"),
    "CreditNote": ("CreditNoteLine", "CreditedQuantity"),
    "DebitNote": ("DebitNoteLine", "DebitedQuantity"),
}


def _cac(tag: str) -> str:
    return f"{{{CAC_NS}}}{tag}"


def _cbc(tag: str) -> str:
    return f"{{{CBC_NS}}}{tag}"


def _ext(tag: str) -> str:
    return f"{{{EXT_NS}}}{tag}"


def format_amount(value: float) -> str:
    """Importes con 2 decimales."""
    return f"{value:.2f}"


def format_quantity(value: float) -> str:
    text = f"{value:.10f}".rstrip("0").rstrip(".")
    return text or "0"


def _text(parent: etree._Element, tag: str, value: str, **attrib: str) -> etree._Element:
    el = etree.SubElement(parent, tag, {k: v for k, v in attrib.items() if v})
    el.text = value
    return el


def _amount(parent: etree._Element, tag: str, value: float, currency: str) -> etree._Element:
    return _text(parent, _cbc(tag), format_amount(value), currencyID=currency)


def _validate(doc: Document) -> None:
    if doc.type.schema == "Invoice":
        terms = doc.payment_terms
        if terms is None or not terms.payment_means_code:
            raise SunatValidationError(
                f"Comprobante {doc.serie}-{doc.number}: falta la forma de pago (payment_terms.payment_means_code)"
            )
    if doc.type.is_note and not doc.related_documents:
        raise SunatValidationError(
            f"Nota {doc.serie}-{doc.number}: requiere al menos un documento relacionado"
        )


# ---------------------------------------------------------------------
# Bloques comunes
# ---------------------------------------------------------------------
def _build_extensions(root: etree._Element) -> None:
    extensions = etree.SubElement(root, _ext("UBLExtensions"))
    extension = etree.SubElement(extensions, _ext("UBLExtension"))
    content = etree.SubElement(extension, _ext("ExtensionContent"))
    # text="" fuerza <ext:ExtensionContent></ext:ExtensionContent> al serializar
    content.text = ""


def _build_header(root: etree._Element, doc: Document) -> None:
    _text(root, _cbc("UBLVersionID"), UBL_VERSION)
    _text(root, _cbc("CustomizationID"), CUSTOMIZATION_ID)
    _text(root, _cbc("ID"), f"{doc.serie}-{doc.number}")
    _text(root, _cbc("IssueDate"), doc.issue_date.strftime("%Y-%m-%d"))
    _text(root, _cbc("IssueTime"), doc.issue_date.strftime("%H:%M:%S"))


def _build_signature_reference(root: etree._Element, issuer: Company) -> None:
    signature = etree.SubElement(root, _cac("Signature"))
    _text(signature, _cbc("ID"), SIGNATURE_ID)
    party = etree.SubElement(signature, _cac("SignatoryParty"))
    party_id = etree.SubElement(party, _cac("PartyIdentification"))
    _text(party_id, _cbc("ID"), issuer.document_number)
    party_name = etree.SubElement(party, _cac("PartyName"))
    _text(party_name, _cbc("Name"), issuer.name)
    attachment = etree.SubElement(signature, _cac("DigitalSignatureAttachment"))
    reference = etree.SubElement(attachment, _cac("ExternalReference"))
    _text(reference, _cbc("URI"), SIGNATURE_URI)


def _identity_attrs(document_type: str, scheme_name: str = "Documento de Identidad") -> Dict[str, str]:
    return {
        "schemeID": document_type,
        "schemeName": scheme_name,
        "schemeAgencyName": SUNAT_AGENCY,
        "schemeURI": CATALOG_06_URI,
    }


def _build_supplier(root: etree._Element, issuer: Company) -> None:
    supplier = etree.SubElement(root, _cac("AccountingSupplierParty"))
    party = etree.SubElement(supplier, _cac("Party"))

    party_id = etree.SubElement(party, _cac("PartyIdentification"))
    _text(party_id, _cbc("ID"), issuer.document_number, **_identity_attrs(issuer.document_type))

    party_name = etree.SubElement(party, _cac("PartyName"))
    _text(party_name, _cbc("Name"), issuer.trade_name)

    tax_scheme = etree.SubElement(party, _cac("PartyTaxScheme"))
    _text(tax_scheme, _cbc("RegistrationName"), issuer.name)
    _text(
        tax_scheme,
        _cbc("CompanyID"),
        issuer.document_number,
        **_identity_attrs(issuer.document_type, "SUNAT:Identificador de Documento de Identidad"),
    )
    scheme = etree.SubElement(tax_scheme, _cac("TaxScheme"))
    _text(scheme, _cbc("ID"), "9999")
    _text(scheme, _cbc("Name"), "SUNAT")

    legal = etree.SubElement(party, _cac("PartyLegalEntity"))
    _text(legal, _cbc("RegistrationName"), issuer.name)

    if issuer.email or issuer.phone:
        contact = etree.SubElement(party, _cac("Contact"))
        if issuer.email:
            _text(contact, _cbc("ElectronicMail"), issuer.email)
        if issuer.phone:
            _text(contact, _cbc("Telephone"), issuer.phone)


def _build_customer(root: etree._Element, customer: Company) -> None:
    wrapper = etree.SubElement(root, _cac("AccountingCustomerParty"))
    party = etree.SubElement(wrapper, _cac("Party"))
    party_id = etree.SubElement(party, _cac("PartyIdentification"))
    _text(party_id, _cbc("ID"), customer.document_number, **_identity_attrs(customer.document_type))
    legal = etree.SubElement(party, _cac("PartyLegalEntity"))
    _text(legal, _cbc("RegistrationName"), customer.name)


def _build_tax_subtotal(
    parent: etree._Element, taxable: float, amount: float, tax: Tax, currency: str
) -> None:
    subtotal = etree.SubElement(parent, _cac("TaxSubtotal"))
    _amount(subtotal, "TaxableAmount", taxable, currency)
    _amount(subtotal, "TaxAmount", amount, currency)
    category = etree.SubElement(subtotal, _cac("TaxCategory"))
    _text(category, _cbc("ID"), tax.code)
    _text(category, _cbc("Percent"), format_amount(tax.rate))
    scheme = etree.SubElement(category, _cac("TaxScheme"))
    _text(scheme, _cbc("ID"), tax.scheme_id)
    _text(scheme, _cbc("Name"), str(tax.type))


def group_taxes(lines: List[DocumentLine]) -> List[Tuple[Tax, float, float]]:
    """
    Agrupa impuestos del documento por (tipo, código).

    Returns:
        Lista de (impuesto representativo, base imponible, importe) en orden de aparición
    """
    groups: Dict[Tuple[str, str], List] = {}
    for line in lines:
        for tax in line.taxes:
            key = (str(tax.type), tax.code)
            if key not in groups:
                groups[key] = [tax, 0.0, 0.0]
            groups[key][1] += line.taxable_amount
            groups[key][2] += tax.amount
    return [(tax, taxable, amount) for tax, taxable, amount in groups.values()]


def _build_document_tax_total(root: etree._Element, doc: Document) -> None:
    tax_total = etree.SubElement(root, _cac("TaxTotal"))
    _amount(tax_total, "TaxAmount", doc.total_taxes, doc.currency_code)
    for tax, taxable, amount in group_taxes(doc.lines):
        _build_tax_subtotal(tax_total, taxable, amount, tax, doc.currency_code)


def _build_monetary_total(root: etree._Element, doc: Document, tag: str) -> None:
    total = etree.SubElement(root, _cac(tag))
    _amount(total, "LineExtensionAmount", doc.sub_total, doc.currency_code)
    _amount(total, "TaxInclusiveAmount", doc.total_amount, doc.currency_code)
    _amount(total, "TaxExclusiveAmount", doc.sub_total, doc.currency_code)
    _amount(total, "PayableAmount", doc.total_amount, doc.currency_code)


def _build_lines(root: etree._Element, doc: Document) -> None:
    line_tag, quantity_tag = LINE_ELEMENTS[doc.type.schema]
    currency = doc.currency_code
    for index, line in enumerate(doc.lines, start=1):
        el = etree.SubElement(root, _cac(line_tag))
        _text(el, _cbc("ID"), str(index))
        _text(el, _cbc(quantity_tag), format_quantity(line.quantity), unitCode=line.unit_code)
        _amount(el, "LineExtensionAmount", line.total_price, currency)

        # Precio unitario con impuestos (catálogo 16, código 01)
        pricing = etree.SubElement(el, _cac("PricingReference"))
        alternative = etree.SubElement(pricing, _cac("AlternativeConditionPrice"))
        _amount(alternative, "PriceAmount", line.unit_price * (1 + line.total_tax_rate / 100), currency)
        _text(alternative, _cbc("PriceTypeCode"), "01")

        if line.taxes:
            line_tax_total = etree.SubElement(el, _cac("TaxTotal"))
            _amount(line_tax_total, "TaxAmount", line.total_tax_amount, currency)
            for tax in line.taxes:
                _build_tax_subtotal(line_tax_total, line.taxable_amount, tax.amount, tax, currency)

        item = etree.SubElement(el, _cac("Item"))
        _text(item, _cbc("Description"), line.description)
        if line.product_code:
            sellers = etree.SubElement(item, _cac("SellersItemIdentification"))
            _text(sellers, _cbc("ID"), line.product_code)

        price = etree.SubElement(el, _cac("Price"))
        _amount(price, "PriceAmount", line.unit_price, currency)


def _build_note_references(root: etree._Element, doc: Document) -> None:
    related = doc.related_documents[0]
    response_code, description = NOTE_DISCREPANCY[doc.type]

    discrepancy = etree.SubElement(root, _cac("DiscrepancyResponse"))
    _text(discrepancy, _cbc("ReferenceID"), related.reference_id)
    _text(discrepancy, _cbc("ResponseCode"), response_code)
    _text(discrepancy, _cbc("Description"), description)

    billing = etree.SubElement(root, _cac("BillingReference"))
    reference = etree.SubElement(billing, _cac("InvoiceDocumentReference"))
    _text(reference, _cbc("ID"), related.reference_id)
    _text(reference, _cbc("DocumentTypeCode"), related.document_type)


def _new_root(schema: str) -> etree._Element:
    nsmap = {
        None: ROOT_NAMESPACES[schema],
        "cac": CAC_NS,
        "cbc": CBC_NS,
        "ext": EXT_NS,
        "ds": DS_NS,
    }
    root = etree.Element(f"{{{ROOT_NAMESPACES[schema]}}}{schema}", nsmap=nsmap)
    _build_extensions(root)
    return root


# ---------------------------------------------------------------------
# API pública
# ---------------------------------------------------------------------
def build_invoice_xml(doc: Document, issuer: Company) -> etree._Element:
    """
    Construye el XML Invoice-2 (Factura o Boleta).

    Raises:
        SunatValidationError: Si falta la forma de pago
    """
    _validate(doc)
    root = _new_root("Invoice")
    _build_header(root, doc)
    if doc.due_date is not None:
        _text(root, _cbc("DueDate"), doc.due_date.strftime("%Y-%m-%d"))
    _text(
        root,
        _cbc("InvoiceTypeCode"),
        doc.type.value,
        listAgencyName=SUNAT_AGENCY,
        listName="Tipo de Documento",
        listURI=CATALOG_01_URI,
    )
    _text(
        root,
        _cbc("Note"),
        amount_to_words(doc.total_amount, doc.currency_code),
        languageLocaleID=AMOUNT_IN_WORDS_LEGEND,
    )
    _text(root, _cbc("DocumentCurrencyCode"), doc.currency_code)
    _build_signature_reference(root, issuer)
    _build_supplier(root, issuer)
    _build_customer(root, doc.customer)

    terms = doc.payment_terms
    payment = etree.SubElement(root, _cac("PaymentTerms"))
    _text(payment, _cbc("ID"), "FormaPago")
    _text(payment, _cbc("PaymentMeansID"), terms.payment_means_code)
    _amount(payment, "Amount", terms.amount, doc.currency_code)
    if terms.due_date is not None:
        _text(payment, _cbc("PaymentDueDate"), terms.due_date.strftime("%Y-%m-%d"))

    _build_document_tax_total(root, doc)
    _build_monetary_total(root, doc, "LegalMonetaryTotal")
    _build_lines(root, doc)
    return root


def _build_note_xml(doc: Document, issuer: Company, total_tag: str) -> etree._Element:
    _validate(doc)
    root = _new_root(doc.type.schema)
    _build_header(root, doc)
    _text(root, _cbc("DocumentCurrencyCode"), doc.currency_code)
    _build_note_references(root, doc)
    _build_signature_reference(root, issuer)
    _build_supplier(root, issuer)
    _build_customer(root, doc.customer)
    _build_document_tax_total(root, doc)
    _build_monetary_total(root, doc, total_tag)
    _build_lines(root, doc)
    return root


def build_credit_note_xml(doc: Document, issuer: Company) -> etree._Element:
    """Construye el XML CreditNote-2. Requiere documento relacionado."""
    return _build_note_xml(doc, issuer, "LegalMonetaryTotal")


def build_debit_note_xml(doc: Document, issuer: Company) -> etree._Element:
    """Construye el XML DebitNote-2 (totales en RequestedMonetaryTotal)."""
    return _build_note_xml(doc, issuer, "RequestedMonetaryTotal")


BUILDERS = {
    "Invoice": build_invoice_xml,
    "CreditNote": build_credit_note_xml,
    "DebitNote": build_debit_note_xml,
}


def build_document_xml(doc: Document, issuer: Optional[Company] = None) -> etree._Element:
    """
    Construye el árbol UBL según el tipo de comprobante.

    Args:
        doc: Documento con totales ya calculados
        issuer: Emisor (por defecto doc.issuer)

    Returns:
        Elemento raíz lxml sin firmar

    Raises:
        SunatValidationError: Si faltan datos obligatorios para el esquema
    """
    issuer = issuer or doc.issuer
    builder = BUILDERS[doc.type.schema]
    root = builder(doc, issuer)
    logger.info(f"XML {doc.type.schema} generado: {doc.serie}-{doc.number} ({len(doc.lines)} líneas)")
    return root


def serialize_document(root: etree._Element) -> bytes:
    """Serializa a UTF-8 con declaración XML."""
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)
