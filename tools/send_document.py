#!/usr/bin/env python3
"""
CLI para crear, firmar y enviar comprobantes a SUNAT (billService)

Uso:
    python -m tools.send_document create --request request.json --out documento.json
    python -m tools.send_document dry-run --document documento.json
    python -m tools.send_document send --document documento.json --env beta
    python -m tools.send_document status 1718212345678
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.sunat_client import (  # noqa: E402
    CreateDocumentRequest,
    Document,
    DocumentService,
    SunatException,
    SunatConfig,
    SunatSoapClient,
    build_file_name,
    build_signer,
    get_credentials,
    get_issuer_from_env,
    get_sunat_config,
)
from tools.artifacts import make_run_dir, write_bytes, write_json  # noqa: E402

logger = logging.getLogger(__name__)


def _load_json(path: Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _build_service(env: Optional[str], *, network: bool, signing: bool) -> Tuple[SunatConfig, DocumentService]:
    config = get_sunat_config(env)
    issuer = get_issuer_from_env()
    if network:
        # falla antes de firmar si faltan credenciales SOL/OSE
        get_credentials()
    signer = build_signer(config) if signing else None
    soap_client = SunatSoapClient(config) if network else None
    return config, DocumentService(soap_client, issuer, signer)


def cmd_create(args) -> int:
    _, service = _build_service(args.env, network=False, signing=False)
    request = CreateDocumentRequest.from_dict(_load_json(args.request))
    doc = service.create_document(request)
    payload = json.dumps(doc.to_dict(), ensure_ascii=False, indent=2)
    if args.out:
        args.out.write_text(payload, encoding="utf-8")
        print(f"Documento guardado: {args.out}")
    else:
        print(payload)
    return 0


def _write_prepared(run_dir: Path, service: DocumentService, doc: Document, prepared) -> None:
    ruc = service.issuer.document_number
    write_bytes(run_dir, prepared.xml_file_name, prepared.signed_xml)
    write_bytes(
        run_dir,
        build_file_name(ruc, doc.type.value, doc.serie, doc.number, "xml", suffix="unsigned"),
        prepared.unsigned_xml,
    )
    write_bytes(run_dir, prepared.zip_file_name, prepared.zip_bytes)


def cmd_dry_run(args) -> int:
    config, service = _build_service(args.env, network=False, signing=True)
    doc = Document.from_dict(_load_json(args.document))
    prepared = service.prepare(doc)
    run_dir = make_run_dir("dry_run", config.env, document_id=doc.id,
                           artifacts_dir=args.artifacts_dir or config.artifacts_dir)
    _write_prepared(run_dir, service, doc, prepared)
    print(f"Dry-run OK ({doc.signature_mode}). Artifacts: {run_dir}")
    return 0


def cmd_send(args) -> int:
    config, service = _build_service(args.env, network=True, signing=True)
    doc = Document.from_dict(_load_json(args.document))
    run_dir = make_run_dir("send", config.env, document_id=doc.id,
                           artifacts_dir=args.artifacts_dir or config.artifacts_dir)
    exit_code = 0
    try:
        with service.soap_client:
            result = service.send_document(doc)
        _write_prepared(run_dir, service, doc, result.prepared)
        if result.cdr_zip:
            write_bytes(run_dir, f"R-{result.prepared.zip_file_name}", result.cdr_zip)
        print(f"Estado: {doc.status.value}")
        if result.ticket:
            print(f"Ticket: {result.ticket}")
        if doc.cdr:
            print(f"CDR: {doc.cdr.response_code} - {doc.cdr.description}")
    except SunatException as e:
        print(f"❌ {type(e).__name__}: {e.message}")
        print(f"Estado: {doc.status.value}")
        exit_code = 1
    write_json(run_dir, "document.json", doc.to_dict())
    if args.document_out:
        args.document_out.write_text(json.dumps(doc.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
    print(f"Artifacts dir: {run_dir}")
    return exit_code


def cmd_status(args) -> int:
    _, service = _build_service(args.env, network=True, signing=False)
    try:
        with service.soap_client:
            cdr = service.check_status(args.ticket)
    except SunatException as e:
        print(f"❌ {type(e).__name__}: {e.message}")
        return 1
    print(f"Código: {cdr.response_code}")
    print(f"Descripción: {cdr.description}")
    if cdr.notes:
        print(f"Observaciones:\n{cdr.notes}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Emisión de comprobantes electrónicos SUNAT (UBL 2.1 / billService)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Configuración requerida (variables de entorno o .env):
  SUNAT_ENV              Ambiente (beta/prod) - opcional, puede usar --env
  SUNAT_ISSUER_RUC       RUC del emisor
  SUNAT_ISSUER_NAME      Razón social del emisor
  SUNAT_USERNAME         Usuario SOL (RUC + usuario)
  SUNAT_PASSWORD         Clave SOL
  SUNAT_CERT_PATH        Certificado PFX/P12 (o PEM con SUNAT_KEY_PATH)
  SUNAT_CERT_PASSWORD    Contraseña del certificado
  SUNAT_ALLOW_UNSIGNED   true para usar el firmador de prueba (NO producción)
        """,
    )
    parser.add_argument("--env", choices=["beta", "prod"], default=None,
                        help="Ambiente SUNAT (sobrescribe SUNAT_ENV)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Logging DEBUG")
    sub = parser.add_subparsers(dest="command", required=True)

    p_create = sub.add_parser("create", help="Crear documento (draft) desde una solicitud JSON")
    p_create.add_argument("--request", type=Path, required=True, help="JSON con la solicitud")
    p_create.add_argument("--out", type=Path, default=None, help="Archivo de salida del documento")
    p_create.set_defaults(func=cmd_create)

    for name, func, help_text in (
        ("send", cmd_send, "Generar, firmar, empaquetar y enviar"),
        ("dry-run", cmd_dry_run, "Generar, firmar y empaquetar sin enviar"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--document", type=Path, required=True, help="JSON del documento (salida de create)")
        p.add_argument("--artifacts-dir", type=Path, default=None,
                       help="Directorio de artifacts (default: SUNAT_ARTIFACTS_DIR o artifacts/)")
        if name == "send":
            p.add_argument("--document-out", type=Path, default=None,
                           help="Guardar el documento actualizado (estado, ticket, CDR)")
        p.set_defaults(func=func)

    p_status = sub.add_parser("status", help="Consultar ticket (getStatus)")
    p_status.add_argument("ticket", help="Ticket devuelto por sendSummary")
    p_status.set_defaults(func=cmd_status)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except SunatException as e:
        print(f"❌ {type(e).__name__}: {e.message}")
        return 1
    except RuntimeError as e:
        # configuración incompleta (variables de entorno)
        print(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
