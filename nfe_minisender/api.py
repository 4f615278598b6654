import argparse
import asyncio
import base64
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional, Tuple

from app.nfe_client.config import get_nfe_config
from app.nfe_client.exceptions import NfeException
from app.nfe_client.models import Ambiente, DocumentKind, document_from_dict
from app.nfe_client.pkcs12_utils import load_pkcs12_base64
from app.nfe_client.xml_generator import build_document
from app.nfe_client.xsd_validator import validate_xml
from nfe_minisender.core_send import build_and_sign, consultar_nfse, submit_document

ENV_CHOICES = ["homologacao", "producao", "test", "prod", "1", "2"]


def _require_file(path: str, env_key: str) -> Path:
    p = Path(path).expanduser()
    if not p.exists() or not p.is_file():
        raise SystemExit(f"ERROR: {env_key} no existe o no es archivo: {p}")
    return p


def _get_cert(cert_arg: Optional[str], password_arg: Optional[str]) -> Tuple[str, Optional[str]]:
    """PKCS#12 en base64 y contraseña desde argumentos o NFE_CERT_PATH / NFE_CERT_PASSWORD."""
    cert_path = (cert_arg or os.getenv("NFE_CERT_PATH") or "").strip()
    if not cert_path:
        raise SystemExit("ERROR: falta --cert o NFE_CERT_PATH (PKCS#12 .pfx/.p12)")
    p12 = _require_file(cert_path, "NFE_CERT_PATH")
    password = password_arg if password_arg is not None else os.getenv("NFE_CERT_PASSWORD")
    return base64.b64encode(p12.read_bytes()).decode("ascii"), password


def _load_model(json_path: Path):
    data = json.loads(_require_file(str(json_path), "documento").read_text(encoding="utf-8"))
    return document_from_dict(data)


def _check_prod(env: Optional[str]) -> None:
    if env is not None and Ambiente.parse(env) is Ambiente.PRODUCAO:
        if (os.getenv("NFE_CONFIRM_PROD") or "").strip() != "YES":
            raise SystemExit("ERROR: --env producao requiere NFE_CONFIRM_PROD=YES")


def _write_or_print(xml: bytes, out: Optional[Path]) -> None:
    if out is None:
        sys.stdout.write(xml.decode("utf-8") + "\n")
        return
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(xml)
    print(f"xml: {out}", file=sys.stderr)


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def cmd_build(args) -> int:
    built = build_document(_load_model(args.documento))
    _write_or_print(built.xml, args.out)
    print(f"document_id: {built.document_id}", file=sys.stderr)
    if built.access_key:
        print(f"chave: {built.access_key}", file=sys.stderr)
    return 0


def cmd_sign(args) -> int:
    cert_b64, password = _get_cert(args.cert, args.password)
    certificate = load_pkcs12_base64(cert_b64, password)
    built, signed = build_and_sign(_load_model(args.documento), certificate)
    _write_or_print(signed.xml, args.out)
    print(f"Reference: {signed.reference_uri} ({signed.algorithm})", file=sys.stderr)
    return 0


def cmd_validate(args) -> int:
    xml_bytes = _require_file(str(args.xml), "xml").read_bytes()
    schemas_dir = args.schemas_dir or get_nfe_config().schemas_dir
    result = validate_xml(xml_bytes, DocumentKind(args.kind), schemas_dir=schemas_dir)
    _print_json(asdict(result))
    return 0 if result.valid else 1


def cmd_send(args) -> int:
    _check_prod(args.env)
    cert_b64, password = _get_cert(args.cert, args.password)
    model = _load_model(args.documento)
    result = asyncio.run(
        submit_document(
            model,
            cert_b64,
            password,
            ambiente=args.env,
            validate=not args.no_xsd,
            schemas_dir=args.schemas_dir,
            timeout=args.timeout,
        )
    )
    data = result.to_dict()
    if not args.include_payload:
        data.pop("sent_payload", None)
    _print_json(data)
    return 0 if result.success or result.processing else 1


def cmd_consult(args) -> int:
    result = asyncio.run(consultar_nfse(args.chave, args.env))
    _print_json(result.to_dict())
    return 0 if result.success else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="nfe_minisender")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_build = sub.add_parser("build", help="Genera el XML sin firmar")
    p_build.add_argument("documento", type=Path, help="JSON del documento (clave 'tipo')")
    p_build.add_argument("--out", type=Path, default=None)

    p_sign = sub.add_parser("sign", help="Genera y firma el XML")
    p_sign.add_argument("documento", type=Path)
    p_sign.add_argument("--cert", default=None)
    p_sign.add_argument("--password", default=None)
    p_sign.add_argument("--out", type=Path, default=None)

    p_validate = sub.add_parser("validate", help="Valida un XML contra los XSD locales")
    p_validate.add_argument("xml", type=Path)
    p_validate.add_argument("--kind", required=True, choices=[k.value for k in DocumentKind])
    p_validate.add_argument("--schemas-dir", type=Path, default=None)

    p_send = sub.add_parser("send", help="Pipeline completo hasta la autoridad")
    p_send.add_argument("documento", type=Path)
    p_send.add_argument("--env", default=None, choices=ENV_CHOICES)
    p_send.add_argument("--cert", default=None)
    p_send.add_argument("--password", default=None)
    p_send.add_argument("--schemas-dir", type=Path, default=None)
    p_send.add_argument("--timeout", type=float, default=None)
    p_send.add_argument("--no-xsd", action="store_true")
    p_send.add_argument("--include-payload", action="store_true")

    p_consult = sub.add_parser("consult", help="Consulta una NFS-e por chave (Sistema Nacional)")
    p_consult.add_argument("--chave", required=True)
    p_consult.add_argument("--env", default="homologacao", choices=ENV_CHOICES)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    handlers = {
        "build": cmd_build,
        "sign": cmd_sign,
        "validate": cmd_validate,
        "send": cmd_send,
        "consult": cmd_consult,
    }
    try:
        return handlers[args.cmd](args)
    except (NfeException, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
