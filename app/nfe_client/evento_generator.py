"""
Generador de XML para eventos de NFS-e (pedRegEvento 1.00)

Soporta cancelamento (e101101) y cancelamento por substituição (e105102).
"""
from __future__ import annotations

import logging
from datetime import datetime

from lxml import etree

from .exceptions import DocumentAssemblyError
from .formatting import format_timestamp, only_digits
from .models import BuiltDocument, DocumentKind, EventoCancelamento, TipoEvento
from .xml_generator import _require
from .xml_utils import SPED_NFSE_NS, opt_text, sub_group, sub_text, to_bytes

logger = logging.getLogger(__name__)

EVENTO_VERSAO = "1.00"

_DESCRICOES = {
    TipoEvento.CANCELAMENTO: "Cancelamento de NFS-e",
    TipoEvento.CANCELAMENTO_SUBSTITUICAO: "Cancelamento de NFS-e por Substituicao",
}


def evento_id(chave: str, momento: datetime) -> str:
    """Id do pedido: "ID" + chave + "EVT" + yyyyMMddHHmmss."""
    return f"ID{chave}EVT{momento.strftime('%Y%m%d%H%M%S')}"


def build_evento(evento: EventoCancelamento) -> BuiltDocument:
    """
    Genera el pedido de registro de evento sin firmar.

    Raises:
        DocumentAssemblyError: Si falta la chave, el autor no es CNPJ (14)
            ni CPF (11), o falta el código de justificativa
    """
    chave = _require(evento.chave_acesso, "evento.chave_acesso").strip()
    autor = only_digits(_require(evento.documento_autor, "evento.documento_autor"))
    codigo = _require(evento.codigo_justificativa, "evento.codigo_justificativa")
    momento = evento.data_evento or datetime.now()
    document_id = evento_id(chave, momento)

    root = etree.Element(f"{{{SPED_NFSE_NS}}}pedRegEvento", nsmap={None: SPED_NFSE_NS})
    root.set("versao", EVENTO_VERSAO)
    inf = etree.SubElement(root, f"{{{SPED_NFSE_NS}}}infPedReg")
    inf.set("Id", document_id)

    sub_text(inf, "tpAmb", evento.ambiente.value)
    sub_text(inf, "verAplic", evento.versao_aplicativo)
    sub_text(inf, "dhEvento", format_timestamp(momento))
    if len(autor) == 14:
        sub_text(inf, "CNPJAutor", autor)
    elif len(autor) == 11:
        sub_text(inf, "CPFAutor", autor)
    else:
        raise DocumentAssemblyError("evento.documento_autor", "se esperaba CNPJ (14) o CPF (11)")
    sub_text(inf, "chNFSe", chave)
    sub_text(inf, "nPedRegEvento", "1")

    grupo = sub_group(inf, f"e{evento.tipo_evento.value}")
    sub_text(grupo, "xDesc", _DESCRICOES[evento.tipo_evento])
    sub_text(grupo, "cMotivo", codigo)
    if evento.tipo_evento is TipoEvento.CANCELAMENTO:
        sub_text(grupo, "xMotivo", _require(evento.motivo, "evento.motivo"))
    else:
        opt_text(grupo, "xMotivo", evento.motivo)
        opt_text(grupo, "chSubstituta", evento.chave_substituta)

    logger.info(f"Evento {evento.tipo_evento.value} armado: Id={document_id}")
    return BuiltDocument(
        kind=DocumentKind.EVENTO,
        xml=to_bytes(root),
        document_id=document_id,
        access_key=chave,
    )
