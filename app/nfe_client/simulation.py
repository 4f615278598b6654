"""
Respuestas simuladas cuando el host de la autoridad no resuelve (DNS)

El Sistema Nacional todavía no publica todos sus endpoints; para que el
pipeline siga siendo demostrable, un fallo de resolución de nombre produce
una respuesta de éxito coherente con el documento enviado. Cualquier otro
error de transporte se propaga como TransportError.

Todas las respuestas llevan "(SIMULAÇÃO)" en xMotivo y se registran con el
nivel de log SIMULATION.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from lxml import etree

from .chave_utils import generate_verification_code
from .models import DocumentKind
from .utils import RandomSource
from .xml_utils import NFE_NS, NFSE_NS, SPED_NFSE_NS, _local, find_first_by_local, find_text_by_local, parse_xml, to_bytes

SIMULATION = 25
logging.addLevelName(SIMULATION, "SIMULATION")

logger = logging.getLogger(__name__)

LINK_CONSULTA = "https://nfse.gov.br/consulta/{numero}"


def _utc_now(now: Optional[datetime]) -> datetime:
    return (now or datetime.now(timezone.utc)).astimezone(timezone.utc)


def _protocolo(now: datetime) -> str:
    return now.strftime("%Y%m%d%H%M%S")


def _dh_proc(now: datetime) -> str:
    return now.strftime("%Y-%m-%dT%H:%M:%SZ")


def _el(parent: etree._Element, ns: str, tag: str, text: str) -> etree._Element:
    el = etree.SubElement(parent, f"{{{ns}}}{tag}")
    el.text = text
    return el


def _payload_root(payload: bytes) -> Optional[etree._Element]:
    try:
        return parse_xml(payload)
    except etree.XMLSyntaxError:
        logger.warning("Payload enviado no es XML parseable; se simula con valores por defecto")
        return None


def simulate_dps(payload: bytes, random_source: Optional[RandomSource] = None, now: Optional[datetime] = None) -> bytes:
    """retEnviNFSe/infNFSe con nNFSe = cLocEmi + últimos 8 dígitos de nDPS."""
    now = _utc_now(now)
    root = _payload_root(payload)
    n_dps = (find_text_by_local(root, "nDPS") if root is not None else None) or "000000000000001"
    c_loc_emi = (find_text_by_local(root, "cLocEmi") if root is not None else None) or "3550308"

    numero = f"{c_loc_emi}{n_dps[-8:]}"
    c_verif = generate_verification_code(random_source)

    ret = etree.Element(f"{{{SPED_NFSE_NS}}}retEnviNFSe", nsmap={None: SPED_NFSE_NS})
    inf = etree.SubElement(ret, f"{{{SPED_NFSE_NS}}}infNFSe")
    inf.set("Id", f"NFSe{numero}")
    _el(inf, SPED_NFSE_NS, "cStat", "100")
    _el(inf, SPED_NFSE_NS, "xMotivo", "DPS processada com sucesso (SIMULAÇÃO)")
    _el(inf, SPED_NFSE_NS, "nNFSe", numero)
    _el(inf, SPED_NFSE_NS, "cVerif", c_verif)
    _el(inf, SPED_NFSE_NS, "dhProc", _dh_proc(now))
    _el(inf, SPED_NFSE_NS, "nProt", _protocolo(now))
    _el(inf, SPED_NFSE_NS, "linkConsulta", LINK_CONSULTA.format(numero=numero))

    logger.log(SIMULATION, f"DPS simulada: nNFSe={numero} cVerif={c_verif}")
    return to_bytes(ret)


def simulate_evento(payload: bytes, now: Optional[datetime] = None) -> bytes:
    """retRegEvento/infEvento con el tipo de evento y la chave del pedido."""
    now = _utc_now(now)
    root = _payload_root(payload)
    ch_nfse = (find_text_by_local(root, "chNFSe") if root is not None else None) or "0" * 44
    tp_evento = "e101101"
    if root is not None:
        grupo = next(
            (el for el in root.iter() if isinstance(el.tag, str) and _local(el.tag).startswith("e10")),
            None,
        )
        if grupo is not None:
            tp_evento = _local(grupo.tag)

    ret = etree.Element(f"{{{SPED_NFSE_NS}}}retRegEvento", nsmap={None: SPED_NFSE_NS})
    inf = etree.SubElement(ret, f"{{{SPED_NFSE_NS}}}infEvento")
    inf.set("Id", f"EVT{ch_nfse}{_protocolo(now)}")
    _el(inf, SPED_NFSE_NS, "cStat", "100")
    _el(inf, SPED_NFSE_NS, "xMotivo", "Evento registrado com sucesso (SIMULAÇÃO)")
    _el(inf, SPED_NFSE_NS, "tpEvento", tp_evento)
    _el(inf, SPED_NFSE_NS, "chNFSe", ch_nfse)
    _el(inf, SPED_NFSE_NS, "dhProc", _dh_proc(now))
    _el(inf, SPED_NFSE_NS, "nProt", _protocolo(now))

    logger.log(SIMULATION, f"Evento simulado: {tp_evento} chNFSe={ch_nfse}")
    return to_bytes(ret)


def simulate_consulta(chave: str, random_source: Optional[RandomSource] = None) -> bytes:
    """retConsNFSe para la consulta por chave (nNFSe = últimos 15 dígitos)."""
    numero = chave[-15:] if len(chave) >= 15 else chave

    ret = etree.Element(f"{{{SPED_NFSE_NS}}}retConsNFSe", nsmap={None: SPED_NFSE_NS})
    inf = etree.SubElement(ret, f"{{{SPED_NFSE_NS}}}infNFSe")
    inf.set("Id", f"NFSe{numero}")
    _el(inf, SPED_NFSE_NS, "cStat", "100")
    _el(inf, SPED_NFSE_NS, "xMotivo", "NFS-e consultada com sucesso (SIMULAÇÃO)")
    _el(inf, SPED_NFSE_NS, "nNFSe", numero)
    _el(inf, SPED_NFSE_NS, "cVerif", generate_verification_code(random_source))
    _el(inf, SPED_NFSE_NS, "chNFSe", chave)

    logger.log(SIMULATION, f"Consulta simulada: chave={chave}")
    return to_bytes(ret)


def simulate_nfse(payload: bytes, random_source: Optional[RandomSource] = None, now: Optional[datetime] = None) -> bytes:
    """retEnviNFSe municipal que repite nNFSe y cVerif del documento enviado."""
    now = _utc_now(now)
    root = _payload_root(payload)
    numero = (find_text_by_local(root, "nNFSe") if root is not None else None) or "1"
    c_verif = (find_text_by_local(root, "cVerif") if root is not None else None) or generate_verification_code(
        random_source
    )

    ret = etree.Element(f"{{{NFSE_NS}}}retEnviNFSe", nsmap={None: NFSE_NS})
    _el(ret, NFSE_NS, "cStat", "100")
    _el(ret, NFSE_NS, "xMotivo", "NFS-e autorizada (SIMULAÇÃO)")
    _el(ret, NFSE_NS, "nProt", _protocolo(now))
    _el(ret, NFSE_NS, "nNFSe", numero)
    _el(ret, NFSE_NS, "cVerif", c_verif)
    _el(ret, NFSE_NS, "linkConsulta", LINK_CONSULTA.format(numero=numero))

    logger.log(SIMULATION, f"NFS-e municipal simulada: nNFSe={numero}")
    return to_bytes(ret)


def simulate_nfe(payload: bytes, now: Optional[datetime] = None) -> bytes:
    """retEnviNFe con protNFe/infProt autorizando la chave del infNFe enviado."""
    now = _utc_now(now)
    root = _payload_root(payload)
    ch_nfe = ""
    tp_amb = "2"
    if root is not None:
        inf_nfe = find_first_by_local(root, "infNFe")
        if inf_nfe is not None:
            ch_nfe = (inf_nfe.get("Id") or "").replace("NFe", "", 1)
        tp_amb = find_text_by_local(root, "tpAmb") or tp_amb
    n_prot = f"1{ch_nfe[:2] or '35'}{now.strftime('%y%m%d%H%M%S')}"

    ret = etree.Element(f"{{{NFE_NS}}}retEnviNFe", nsmap={None: NFE_NS})
    ret.set("versao", "4.00")
    _el(ret, NFE_NS, "tpAmb", tp_amb)
    _el(ret, NFE_NS, "cStat", "104")
    _el(ret, NFE_NS, "xMotivo", "Lote processado (SIMULAÇÃO)")
    prot = etree.SubElement(ret, f"{{{NFE_NS}}}protNFe")
    prot.set("versao", "4.00")
    inf = etree.SubElement(prot, f"{{{NFE_NS}}}infProt")
    _el(inf, NFE_NS, "tpAmb", tp_amb)
    _el(inf, NFE_NS, "chNFe", ch_nfe)
    _el(inf, NFE_NS, "dhRecbto", _dh_proc(now))
    _el(inf, NFE_NS, "nProt", n_prot)
    _el(inf, NFE_NS, "cStat", "100")
    _el(inf, NFE_NS, "xMotivo", "Autorizado o uso da NF-e (SIMULAÇÃO)")

    logger.log(SIMULATION, f"NF-e simulada: chNFe={ch_nfe} nProt={n_prot}")
    return to_bytes(ret)


def simulated_reply(
    kind: DocumentKind,
    payload: bytes,
    random_source: Optional[RandomSource] = None,
    now: Optional[datetime] = None,
) -> bytes:
    """Respuesta simulada para el tipo de documento (payload = body enviado)."""
    if kind is DocumentKind.DPS:
        return simulate_dps(payload, random_source, now)
    if kind is DocumentKind.EVENTO:
        return simulate_evento(payload, now)
    if kind is DocumentKind.NFSE:
        return simulate_nfse(payload, random_source, now)
    return simulate_nfe(payload, now)
