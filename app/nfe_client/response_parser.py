"""
Interpretación de respuestas de SEFAZ / NFS-e / Sistema Nacional

- Quita el Body SOAP 1.2 si existe y trabaja sobre el payload de negocio
- cStat 100/150 (NF-e) o 100/101 (NFS-e, DPS, eventos) = éxito
- cStat 103/105 = lote en processamento (el caller decide si consulta)
- Cualquier otro cStat es rechazo: la llamada funcionó, el documento no
- Respuestas HTTP de error: diagnóstico desde HTML (<title>/<h2>),
  soap:Fault/faultstring o retEnviNFSe/cStat
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from lxml import etree

from .models import DocumentKind, SubmissionResult
from .transport import RawReply
from .utils import truncate
from .xml_utils import _local, find_first_by_local, find_text_by_local, parse_xml

logger = logging.getLogger(__name__)

SUCCESS_CODES = {
    DocumentKind.NFE: frozenset({"100", "150"}),
    DocumentKind.NFSE: frozenset({"100", "101"}),
    DocumentKind.DPS: frozenset({"100", "101"}),
    DocumentKind.EVENTO: frozenset({"100", "101"}),
}
PROCESSING_CODES = frozenset({"103", "105"})

_TITLE_RE = re.compile(r"<title>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_H2_RE = re.compile(r"<h2>(.*?)</h2>", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class ReplyFields:
    """Campos de negocio extraídos del payload de respuesta."""
    status_code: Optional[str] = None
    reason: Optional[str] = None
    protocol_number: Optional[str] = None
    access_key_or_number: Optional[str] = None
    verification_code: Optional[str] = None
    link_consulta: Optional[str] = None


def strip_soap_body(root: etree._Element) -> etree._Element:
    """Devuelve el primer hijo de soap:Body, o la raíz si no hay envelope."""
    if _local(root.tag) != "Envelope":
        return root
    body = find_first_by_local(root, "Body")
    if body is None:
        return root
    first = next((el for el in body if isinstance(el.tag, str)), None)
    return first if first is not None else root


def _business_root(payload: etree._Element) -> etree._Element:
    # nfeResultMsg / nfseResultMsg envuelven el ret* dentro del Body
    if _local(payload.tag).endswith("ResultMsg"):
        inner = next((el for el in payload if isinstance(el.tag, str)), None)
        if inner is not None:
            return inner
    return payload


def extract_fields(payload: etree._Element, kind: DocumentKind) -> ReplyFields:
    """
    Lee cStat, xMotivo, nProt, chave/número, cVerif y linkConsulta.

    Para NF-e el protNFe/infProt tiene prioridad sobre el status del lote.
    """
    source = payload
    if kind is DocumentKind.NFE:
        inf_prot = find_first_by_local(payload, "infProt")
        if inf_prot is not None:
            source = inf_prot

    if kind is DocumentKind.NFE:
        chave = find_text_by_local(source, "chNFe")
    elif kind is DocumentKind.EVENTO:
        chave = find_text_by_local(source, "chNFSe")
    else:
        chave = find_text_by_local(source, "nNFSe")

    return ReplyFields(
        status_code=find_text_by_local(source, "cStat"),
        reason=find_text_by_local(source, "xMotivo"),
        protocol_number=find_text_by_local(source, "nProt"),
        access_key_or_number=chave,
        verification_code=find_text_by_local(source, "cVerif"),
        link_consulta=find_text_by_local(source, "linkConsulta"),
    )


def diagnose_http_error(status_code: int, text: str, url: Optional[str] = None) -> Tuple[str, Dict[str, Tuple[str, ...]], ReplyFields]:
    """
    Diagnóstico de una respuesta HTTP no exitosa.

    Returns:
        (mensaje, structured_errors, campos extraídos si la respuesta era un ret*)
    """
    message = f"Erro HTTP {status_code}"
    detalhes = ""
    fields = ReplyFields()
    tipo = "ErroHTTP"
    stripped = text.lstrip()

    if stripped[:9].lower().startswith("<!doctype") or stripped[:5].lower().startswith("<html"):
        match = _TITLE_RE.search(text) or _H2_RE.search(text)
        if match:
            detalhes = match.group(1).strip()
        message += f": o servidor retornou uma página HTML de erro: {detalhes}"
    else:
        try:
            root = parse_xml(text)
        except etree.XMLSyntaxError:
            root = None
        if root is not None:
            fault = find_text_by_local(root, "faultstring") or find_text_by_local(root, "Text")
            ret = find_first_by_local(root, "retEnviNFSe")
            if fault:
                tipo = "SoapFault"
                detalhes = fault
                message += f": {fault}"
            elif ret is not None:
                tipo = "Rejeicao"
                fields = ReplyFields(
                    status_code=find_text_by_local(ret, "cStat"),
                    reason=find_text_by_local(ret, "xMotivo"),
                )
                detalhes = fields.reason or ""
                message = fields.reason or message
        if not detalhes:
            detalhes = text[:200]
            message = f"Erro HTTP {status_code}: {detalhes}" if detalhes else message

    errors: Dict[str, Tuple[str, ...]] = {
        "TipoErro": (tipo,),
        "Local": ("Resposta do webservice",),
        "StatusCode": (str(status_code),),
        "Mensagem": (detalhes or message,),
    }
    if url:
        errors["URL"] = (url,)
    return message, errors, fields


def interpret(
    raw_reply: Union[RawReply, str, bytes],
    *,
    sent_payload: Optional[Union[str, bytes]] = None,
    kind: DocumentKind = DocumentKind.NFE,
) -> SubmissionResult:
    """
    Convierte la respuesta cruda en un SubmissionResult normalizado.

    Args:
        raw_reply: RawReply de transport (o el XML directo, asumido HTTP 200)
        sent_payload: Body enviado, se conserva en el resultado
        kind: Tipo de documento (decide códigos de éxito y campo de chave)

    Returns:
        SubmissionResult (rechazos y errores HTTP tienen success=False)
    """
    if not isinstance(raw_reply, RawReply):
        text = raw_reply.decode("utf-8") if isinstance(raw_reply, bytes) else raw_reply
        raw_reply = RawReply(status_code=200, text=text, url="")
    if isinstance(sent_payload, bytes):
        sent_payload = sent_payload.decode("utf-8")

    if not raw_reply.ok:
        message, errors, fields = diagnose_http_error(raw_reply.status_code, raw_reply.text, raw_reply.url or None)
        logger.warning(f"{kind.value}: {message}")
        return SubmissionResult(
            success=False,
            message=message,
            sent_payload=sent_payload,
            raw_reply=raw_reply.text,
            status_code=fields.status_code or str(raw_reply.status_code),
            reason=fields.reason or truncate(raw_reply.text, 200),
            structured_errors=errors,
        )

    try:
        root = parse_xml(raw_reply.text)
    except etree.XMLSyntaxError as e:
        logger.error(f"Respuesta de {kind.value} no es XML válido: {e}")
        return SubmissionResult(
            success=False,
            message=f"Resposta inválida do webservice: {e}",
            sent_payload=sent_payload,
            raw_reply=raw_reply.text,
            simulated=raw_reply.simulated,
            structured_errors={
                "TipoErro": ("RespostaInvalida",),
                "Mensagem": (str(e),),
            },
        )

    payload = _business_root(strip_soap_body(root))
    fields = extract_fields(payload, kind)
    cstat = fields.status_code

    success = cstat in SUCCESS_CODES[kind]
    processing = not success and cstat in PROCESSING_CODES
    if success:
        message = fields.reason or "Documento autorizado"
    elif processing:
        message = fields.reason or "Lote em processamento"
    elif cstat is None:
        message = "Resposta sem cStat"
    else:
        message = fields.reason or f"Documento rejeitado (cStat {cstat})"

    if success:
        logger.info(f"{kind.value} autorizado: cStat={cstat} nProt={fields.protocol_number}")
    elif processing:
        logger.info(f"{kind.value} em processamento: cStat={cstat}")
    else:
        logger.warning(f"{kind.value} rechazado: cStat={cstat} xMotivo={fields.reason}")

    errors: Dict[str, Tuple[str, ...]] = {}
    if not success and not processing:
        errors = {
            "TipoErro": ("Rejeicao" if cstat else "RespostaInvalida",),
            "cStat": (cstat or "",),
            "Mensagem": (fields.reason or message,),
        }

    return SubmissionResult(
        success=success,
        message=message,
        sent_payload=sent_payload,
        raw_reply=raw_reply.text,
        protocol_number=fields.protocol_number,
        access_key_or_number=fields.access_key_or_number,
        verification_code=fields.verification_code,
        status_code=cstat,
        reason=fields.reason,
        link_consulta=fields.link_consulta,
        simulated=raw_reply.simulated,
        processing=processing,
        structured_errors=errors,
    )
