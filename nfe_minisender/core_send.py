from __future__ import annotations

import dataclasses
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import httpx
from lxml import etree

from app.nfe_client.config import NfeConfig, get_nfe_config
from app.nfe_client.exceptions import (
    CertificateError,
    DocumentAssemblyError,
    KeyAssemblyError,
    NfeException,
    SignatureError,
    TransportError,
)
from app.nfe_client.models import Ambiente, BuiltDocument, DocumentKind, DocumentModel, SubmissionResult
from app.nfe_client.pkcs12_utils import CertificateBundle, load_pkcs12_base64
from app.nfe_client.response_parser import interpret
from app.nfe_client.soap_envelope import header_for, wrap
from app.nfe_client.transport import EndpointSelector, consultar
from app.nfe_client.transport import submit as transport_submit
from app.nfe_client.utils import RandomSource
from app.nfe_client.xml_generator import build_document
from app.nfe_client.xml_signer import SignedXml, sign_xml
from app.nfe_client.xsd_validator import validate_xml
from nfe_minisender.guards import run_pre_send_guardrails

logger = logging.getLogger(__name__)

_TIPO_ERRO = {
    DocumentAssemblyError: "ErroMontagem",
    KeyAssemblyError: "ErroChaveAcesso",
    CertificateError: "ErroCertificado",
    SignatureError: "ErroAssinatura",
}

_TIPO_ERRO_TRANSPORTE = {
    TransportError.TIMEOUT: "Timeout",
    TransportError.TLS: "ErroTLS",
    TransportError.CONNECT: "ErroConexao",
    TransportError.HTTP: "ErroHTTP",
}


def _ambiente_do_modelo(model: DocumentModel) -> Ambiente:
    if model.kind is DocumentKind.EVENTO:
        return model.ambiente
    return model.identificacao.ambiente


def _codigo_uf(model: DocumentModel) -> Optional[str]:
    if model.kind is DocumentKind.NFE:
        return model.identificacao.codigo_uf
    return None


def _etapa(exc: Exception) -> str:
    if isinstance(exc, NfeException):
        return exc.etapa
    return "guardrail" if str(exc).startswith("[guard]") else "interpretacao_resposta"


def structured_errors_for(exc: Exception) -> Dict[str, Tuple[str, ...]]:
    """
    Detalle estructurado de una falla del pipeline.

    Claves: TipoErro, Etapa, Campo, TipoExcecao, Mensagem y, según el caso,
    Motivo (certificado), Passo y XmlNaoAssinado (firma), URL (transporte).
    """
    if isinstance(exc, TransportError):
        tipo = _TIPO_ERRO_TRANSPORTE.get(exc.kind, "ErroTransporte")
    elif isinstance(exc, NfeException):
        tipo = next((v for k, v in _TIPO_ERRO.items() if isinstance(exc, k)), "ErroNfe")
    else:
        tipo = "ErroGuardrail" if str(exc).startswith("[guard]") else type(exc).__name__

    errors: Dict[str, Tuple[str, ...]] = {
        "TipoErro": (tipo,),
        "Etapa": (_etapa(exc),),
        "TipoExcecao": (type(exc).__name__,),
        "Mensagem": (getattr(exc, "message", None) or str(exc),),
    }
    campo = getattr(exc, "field", None)
    if campo:
        errors["Campo"] = (campo,)
    if isinstance(exc, CertificateError):
        errors["Motivo"] = (exc.reason,)
    if isinstance(exc, SignatureError):
        errors["Passo"] = (exc.step,)
        if exc.unsigned_xml:
            errors["XmlNaoAssinado"] = (exc.unsigned_xml.decode("utf-8", errors="replace"),)
    if isinstance(exc, TransportError) and exc.url:
        errors["URL"] = (exc.url,)
    return errors


def failure_result(exc: Exception, *, sent_payload: Optional[bytes] = None) -> SubmissionResult:
    return SubmissionResult(
        success=False,
        message=getattr(exc, "message", None) or str(exc),
        sent_payload=sent_payload.decode("utf-8") if sent_payload else None,
        structured_errors=structured_errors_for(exc),
    )


def build_and_sign(
    model: DocumentModel,
    certificate: CertificateBundle,
    *,
    random_source: Optional[RandomSource] = None,
    now: Optional[datetime] = None,
) -> Tuple[BuiltDocument, SignedXml]:
    """Arma y firma el documento. Propaga las excepciones tipadas."""
    built = build_document(model, random_source=random_source)
    signed = sign_xml(built.xml, certificate, now=now)
    logger.info(f"{built.kind.value} armado y firmado: Id={built.document_id}")
    return built, signed


async def submit_document(
    model: DocumentModel,
    certificate_b64: str,
    password: Optional[str],
    *,
    ambiente: Union[Ambiente, str, None] = None,
    validate: bool = True,
    schemas_dir: Optional[Path] = None,
    timeout: Optional[float] = None,
    config: Optional[NfeConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    random_source: Optional[RandomSource] = None,
    now: Optional[datetime] = None,
) -> SubmissionResult:
    """
    Pipeline completo: armado -> firma -> XSD -> guardrails -> envelope ->
    envío -> interpretación.

    Nunca lanza por errores del pipeline: cada falla tipada se convierte en
    un SubmissionResult con success=False y structured_errors.

    Args:
        model: DocumentModel ya validado por la capa de presentación
        certificate_b64: PKCS#12 en base64
        password: Contraseña del PKCS#12
        ambiente: Sobrescribe el ambiente del modelo para elegir endpoint
        validate: Ejecuta la validación XSD (informativa)
        schemas_dir: Directorio de XSD (por defecto NFE_SCHEMAS_DIR)
        timeout: Timeout del envío en segundos
        config: Configuración de endpoints
        transport: Transporte httpx alternativo (tests)
        random_source: Fuente para cNF / cVerif
        now: Instante para verificar la vigencia del certificado
    """
    amb = Ambiente.parse(ambiente) if ambiente is not None else _ambiente_do_modelo(model)
    config = config or get_nfe_config(amb)
    sent_payload: Optional[bytes] = None

    try:
        certificate = load_pkcs12_base64(certificate_b64, password)
        built, signed = build_and_sign(model, certificate, random_source=random_source, now=now)

        xsd_warnings: Tuple[str, ...] = ()
        if validate:
            result = validate_xml(signed.xml, built.kind, schemas_dir=schemas_dir)
            if result.schema_error:
                xsd_warnings = (f"Validação XSD omitida: esquemas não compilam: {result.schema_error}",)
            elif result.degraded:
                xsd_warnings = ("Validação XSD omitida: esquemas ausentes",)
            elif not result.valid:
                # informativo: no bloquea el envío
                xsd_warnings = tuple(result.errors)

        envelope = wrap(signed.xml, header_for(model))
        sent_payload = envelope.body
        run_pre_send_guardrails(
            signed_xml=signed.xml,
            envelope_body=envelope.body,
            kind=built.kind,
            context=f"Id={built.document_id}",
        )

        selector = EndpointSelector(kind=built.kind, ambiente=amb, codigo_uf=_codigo_uf(model))
        raw = await transport_submit(
            envelope,
            selector,
            certificate,
            timeout,
            config=config,
            transport=transport,
            random_source=random_source,
        )
    except (NfeException, RuntimeError) as exc:
        logger.error(f"Envío abortado: {type(exc).__name__}: {exc}")
        return failure_result(exc, sent_payload=sent_payload)

    try:
        result = interpret(raw, sent_payload=sent_payload, kind=built.kind)
    except (etree.LxmlError, ValueError) as exc:
        logger.error(f"Respuesta no interpretable: {type(exc).__name__}: {exc}")
        return dataclasses.replace(
            failure_result(exc, sent_payload=sent_payload),
            raw_reply=raw.text,
            simulated=raw.simulated,
        )

    # la chave/número calculado localmente completa lo que la respuesta no trae
    if result.access_key_or_number is None and (built.access_key or built.numero):
        result = dataclasses.replace(result, access_key_or_number=built.access_key or built.numero)
    if xsd_warnings:
        errors = dict(result.structured_errors)
        errors["AvisosXSD"] = xsd_warnings
        result = dataclasses.replace(result, structured_errors=errors)
    return result


async def consultar_nfse(
    chave: str,
    ambiente: Union[Ambiente, str, None] = None,
    *,
    config: Optional[NfeConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    random_source: Optional[RandomSource] = None,
) -> SubmissionResult:
    """Consulta una NFS-e por chave en el Sistema Nacional."""
    try:
        raw = await consultar(chave, ambiente, config=config, transport=transport, random_source=random_source)
    except TransportError as exc:
        logger.error(f"Consulta abortada: {exc}")
        return failure_result(exc)
    return interpret(raw, kind=DocumentKind.DPS)
