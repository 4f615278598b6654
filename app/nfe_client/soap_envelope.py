"""
Envelopes de transporte para el documento firmado

- NF-e: SOAP 1.2, NFeAutorizacao4 (nfeCabecMsg + nfeDadosMsg/enviNFe)
- NFS-e municipal: SOAP 1.2 (nfseCabecMsg + nfseDadosMsg/enviNFSe)
- Sistema Nacional (DPS, eventos): REST, el XML firmado es el body completo

Los webservices rechazan espacios entre etiquetas, por eso el body final
siempre pasa por strip_intertag_whitespace.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Union

from lxml import etree

from .exceptions import DocumentAssemblyError
from .models import DocumentKind, DocumentModel
from .xml_utils import NFE_NS, NFSE_NS, parse_xml, strip_intertag_whitespace, to_bytes

logger = logging.getLogger(__name__)

SOAP12_NS = "http://www.w3.org/2003/05/soap-envelope"
NFE_WSDL_NS = "http://www.portalfiscal.inf.br/nfe/wsdl/NFeAutorizacao4"
NFSE_WSDL_NS = "http://www.portalfiscal.inf.br/nfse/wsdl/NFSeAutorizacao"

NFE_SOAP_ACTION = f"{NFE_WSDL_NS}/nfeAutorizacaoLote"
NFSE_SOAP_ACTION = f"{NFSE_WSDL_NS}/nfseAutorizacaoLote"

# lote de un único documento, procesamiento síncrono
ID_LOTE = "1"
IND_SINC = "1"


class EnvelopeStyle(str, Enum):
    SOAP = "soap"
    REST = "rest"


@dataclass(frozen=True)
class EnvelopeHeader:
    """Metadatos de ruteo: cUF (NF-e) o cMun (NFS-e) y versão dos dados."""
    kind: DocumentKind
    versao_dados: str
    codigo: Optional[str] = None


@dataclass(frozen=True)
class TransportEnvelope:
    style: EnvelopeStyle
    kind: DocumentKind
    body: bytes
    content_type: str
    soap_action: Optional[str] = None
    header_fields: Mapping[str, str] = field(default_factory=dict)

    def http_headers(self) -> dict:
        headers = {"Content-Type": self.content_type}
        if self.style is EnvelopeStyle.SOAP:
            headers["Accept"] = "application/soap+xml, text/xml, */*"
            headers["SOAPAction"] = self.soap_action or ""
        else:
            headers["Accept"] = "application/xml"
        return headers


def header_for(model: DocumentModel) -> EnvelopeHeader:
    """Arma el EnvelopeHeader a partir del modelo del documento."""
    if model.kind is DocumentKind.NFE:
        return EnvelopeHeader(kind=model.kind, versao_dados="4.00", codigo=model.identificacao.codigo_uf)
    if model.kind in (DocumentKind.NFSE, DocumentKind.DPS):
        return EnvelopeHeader(
            kind=model.kind, versao_dados="1.00", codigo=model.identificacao.codigo_municipio
        )
    return EnvelopeHeader(kind=model.kind, versao_dados="1.00")


def _soap(
    payload: etree._Element,
    *,
    wsdl_ns: str,
    cabec_tag: str,
    codigo_tag: str,
    codigo: str,
    versao_dados: str,
    dados_tag: str,
    lote_tag: str,
    lote_ns: str,
) -> bytes:
    envelope = etree.Element(f"{{{SOAP12_NS}}}Envelope", nsmap={"soap12": SOAP12_NS})

    header = etree.SubElement(envelope, f"{{{SOAP12_NS}}}Header")
    cabec = etree.SubElement(header, f"{{{wsdl_ns}}}{cabec_tag}", nsmap={None: wsdl_ns})
    etree.SubElement(cabec, f"{{{wsdl_ns}}}{codigo_tag}").text = codigo
    etree.SubElement(cabec, f"{{{wsdl_ns}}}versaoDados").text = versao_dados

    body = etree.SubElement(envelope, f"{{{SOAP12_NS}}}Body")
    dados = etree.SubElement(body, f"{{{wsdl_ns}}}{dados_tag}", nsmap={None: wsdl_ns})
    lote = etree.SubElement(dados, f"{{{lote_ns}}}{lote_tag}", nsmap={None: lote_ns})
    lote.set("versao", versao_dados)
    etree.SubElement(lote, f"{{{lote_ns}}}idLote").text = ID_LOTE
    etree.SubElement(lote, f"{{{lote_ns}}}indSinc").text = IND_SINC
    # el documento firmado se embebe sin tocar (namespaces y firma intactos)
    lote.append(payload)

    return to_bytes(envelope)


def wrap(signed_xml: Union[bytes, str], header: EnvelopeHeader) -> TransportEnvelope:
    """
    Envuelve el documento firmado según el tipo de documento.

    Args:
        signed_xml: XML firmado (con declaración o sin ella)
        header: Metadatos de ruteo (ver header_for)

    Returns:
        TransportEnvelope inmutable listo para TransportClient

    Raises:
        DocumentAssemblyError: Si un envelope SOAP no tiene cUF/cMun
    """
    if isinstance(signed_xml, str):
        signed_xml = signed_xml.encode("utf-8")

    if header.kind in (DocumentKind.DPS, DocumentKind.EVENTO):
        body = strip_intertag_whitespace(signed_xml)
        logger.debug(f"Envelope REST {header.kind.value}: {len(body)} bytes")
        return TransportEnvelope(
            style=EnvelopeStyle.REST,
            kind=header.kind,
            body=body,
            content_type="application/xml; charset=utf-8",
            header_fields={"versaoDados": header.versao_dados},
        )

    if not header.codigo:
        campo = "cUF" if header.kind is DocumentKind.NFE else "cMun"
        raise DocumentAssemblyError(f"envelope.{campo}")

    payload = parse_xml(strip_intertag_whitespace(signed_xml))

    if header.kind is DocumentKind.NFE:
        body = _soap(
            payload,
            wsdl_ns=NFE_WSDL_NS,
            cabec_tag="nfeCabecMsg",
            codigo_tag="cUF",
            codigo=header.codigo,
            versao_dados=header.versao_dados,
            dados_tag="nfeDadosMsg",
            lote_tag="enviNFe",
            lote_ns=NFE_NS,
        )
        action = NFE_SOAP_ACTION
        fields = {"cUF": header.codigo, "versaoDados": header.versao_dados}
    else:
        body = _soap(
            payload,
            wsdl_ns=NFSE_WSDL_NS,
            cabec_tag="nfseCabecMsg",
            codigo_tag="cMun",
            codigo=header.codigo,
            versao_dados=header.versao_dados,
            dados_tag="nfseDadosMsg",
            lote_tag="enviNFSe",
            lote_ns=NFSE_NS,
        )
        action = NFSE_SOAP_ACTION
        fields = {"cMun": header.codigo, "versaoDados": header.versao_dados}

    body = strip_intertag_whitespace(body)
    logger.debug(f"Envelope SOAP 1.2 {header.kind.value}: {len(body)} bytes, action={action}")
    return TransportEnvelope(
        style=EnvelopeStyle.SOAP,
        kind=header.kind,
        body=body,
        content_type=f'application/soap+xml; charset=utf-8; action="{action}"',
        soap_action=action,
        header_fields=fields,
    )
