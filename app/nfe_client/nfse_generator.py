"""
Generadores de XML para servicios: NFS-e municipal (1.00) y DPS nacional (1.00)

- NFS-e municipal: namespace portalfiscal, Id = "NFSe" + nNFSe + cVerif
- DPS: namespace sped (Sistema Nacional), Id = "DPS" + nDPS con 15 dígitos
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from lxml import etree

from .chave_utils import generate_verification_code
from .exceptions import DocumentAssemblyError
from .formatting import format_date, format_timestamp, only_digits
from .models import (
    BuiltDocument,
    DocumentKind,
    DPSDocument,
    Endereco,
    IBSCBSServico,
    ISServico,
    NFSeDocument,
    Pagamento,
    Prestador,
    Servico,
    TipoPessoa,
    Tomador,
    TributacaoServico,
)
from .utils import RandomSource
from .xml_generator import CODIGO_PAIS_BRASIL, NOME_PAIS_BRASIL, ZERO, CEM, _require, _require_items, _require_valores
from .xml_utils import NFSE_NS, SPED_NFSE_NS, opt_text, sub_decimal, sub_group, sub_text, to_bytes

logger = logging.getLogger(__name__)

NFSE_VERSAO = "1.00"
DPS_VERSAO = "1.00"
DPS_NUMERO_LEN = 15
CODIGO_TRIB_NACIONAL_PADRAO = "010101"

# sitTrib municipal -> tribISSQN nacional
_TRIB_ISSQN = {"00": "1", "01": "2", "02": "3", "03": "4"}


def _valor_liquido(servico: Servico) -> Decimal:
    liquido = servico.liquido
    return liquido if liquido > 0 else servico.total


def _documento_pessoa(parent: etree._Element, tipo: TipoPessoa, documento: str) -> None:
    if tipo is TipoPessoa.PJ:
        sub_text(parent, "CNPJ", only_digits(documento))
    elif tipo is TipoPessoa.PF:
        sub_text(parent, "CPF", only_digits(documento))
    else:
        sub_text(parent, "NIF", documento)


# ---------------------------------------------------------------------------
# NFS-e municipal
# ---------------------------------------------------------------------------

def _endereco_municipal(parent: etree._Element, tag: str, endereco: Optional[Endereco], field: str) -> None:
    end = _require(endereco, field)
    el = sub_group(parent, tag)
    sub_text(el, "xLgr", _require(end.logradouro, f"{field}.logradouro"))
    sub_text(el, "nro", _require(end.numero, f"{field}.numero"))
    opt_text(el, "xCpl", end.complemento)
    sub_text(el, "xBairro", _require(end.bairro, f"{field}.bairro"))
    sub_text(el, "cMun", _require(end.codigo_municipio, f"{field}.codigo_municipio"))
    sub_text(el, "xMun", _require(end.nome_municipio, f"{field}.nome_municipio"))
    sub_text(el, "UF", _require(end.uf, f"{field}.uf"))
    sub_text(el, "CEP", only_digits(_require(end.cep, f"{field}.cep")))
    sub_text(el, "cPais", CODIGO_PAIS_BRASIL)
    sub_text(el, "xPais", NOME_PAIS_BRASIL)


def _prest(parent: etree._Element, prest: Prestador) -> None:
    el = sub_group(parent, "prest")
    if prest.cnpj:
        sub_text(el, "CNPJ", only_digits(prest.cnpj))
    elif prest.cpf:
        sub_text(el, "CPF", only_digits(prest.cpf))
    else:
        raise DocumentAssemblyError("prestador.cnpj")
    sub_text(el, "xNome", _require(prest.razao_social, "prestador.razao_social"))
    opt_text(el, "xFant", prest.nome_fantasia)
    sub_text(el, "IM", _require(prest.inscricao_municipal, "prestador.inscricao_municipal"))
    opt_text(el, "IE", prest.inscricao_estadual)
    _endereco_municipal(el, "enderPrest", prest.endereco, "prestador.endereco")
    opt_text(el, "fone", only_digits(prest.telefone))
    opt_text(el, "email", prest.email)


def _tom(parent: etree._Element, tom: Tomador) -> None:
    el = sub_group(parent, "tom")
    _documento_pessoa(el, tom.tipo, _require(tom.documento, "tomador.documento"))
    sub_text(el, "xNome", _require(tom.nome, "tomador.nome"))
    _endereco_municipal(el, "enderTom", tom.endereco, "tomador.endereco")
    opt_text(el, "fone", only_digits(tom.telefone))
    opt_text(el, "email", tom.email)
    opt_text(el, "IE", tom.inscricao_estadual)
    opt_text(el, "IM", tom.inscricao_municipal)


def _imposto_iss(parent: etree._Element, trib: TributacaoServico) -> None:
    imposto = sub_group(parent, "imposto")
    iss = sub_group(imposto, "ISS")
    sub_text(iss, "sitTrib", trib.situacao_tributaria)
    if trib.aliquota is not None:
        sub_decimal(iss, "aliq", trib.aliquota, 4)
    if trib.base_calculo is not None:
        sub_decimal(iss, "vBC", trib.base_calculo)
    if trib.valor_iss is not None:
        sub_decimal(iss, "vISS", trib.valor_iss)

    outros = [
        ("vPIS", trib.valor_pis),
        ("vCOFINS", trib.valor_cofins),
        ("vINSS", trib.valor_inss),
        ("vIR", trib.valor_ir),
        ("vCSLL", trib.valor_csll),
    ]
    if any(v is not None for _, v in outros):
        outros_el = sub_group(imposto, "outros")
        for tag, value in outros:
            if value is not None:
                sub_decimal(outros_el, tag, value)


def _ibscbs_valores(ibs: IBSCBSServico):
    v_uf = ibs.base_calculo * ibs.aliquota_ibs_uf / CEM
    v_mun = ibs.base_calculo * ibs.aliquota_ibs_municipio / CEM
    v_cbs = ibs.base_calculo * ibs.aliquota_cbs / CEM
    return v_uf, v_mun, v_cbs


def _ibscbs(parent: etree._Element, ibs: IBSCBSServico) -> None:
    v_uf, v_mun, v_cbs = _ibscbs_valores(ibs)
    el = sub_group(parent, "IBSCBS")
    sub_text(el, "CST", ibs.cst)
    sub_text(el, "cClassTrib", ibs.classificacao_tributaria)
    g = sub_group(el, "gIBSCBS")
    sub_decimal(g, "vBC", ibs.base_calculo)
    g_uf = sub_group(g, "gIBSUF")
    sub_decimal(g_uf, "pIBSUF", ibs.aliquota_ibs_uf, 4)
    sub_decimal(g_uf, "vIBSUF", v_uf)
    g_mun = sub_group(g, "gIBSMun")
    sub_decimal(g_mun, "pIBSMun", ibs.aliquota_ibs_municipio, 4)
    sub_decimal(g_mun, "vIBSMun", v_mun)
    sub_decimal(g, "vIBS", v_uf + v_mun)
    g_cbs = sub_group(g, "gCBS")
    sub_decimal(g_cbs, "pCBS", ibs.aliquota_cbs, 4)
    sub_decimal(g_cbs, "vCBS", v_cbs)


def _imposto_seletivo(parent: etree._Element, seletivo: ISServico) -> None:
    el = sub_group(parent, "IS")
    sub_text(el, "CSTIS", seletivo.cst)
    sub_text(el, "cClassTribIS", seletivo.classificacao_tributaria)
    if seletivo.base_calculo is not None:
        sub_decimal(el, "vBCIS", seletivo.base_calculo)
    if seletivo.aliquota is not None:
        sub_decimal(el, "pIS", seletivo.aliquota, 4)
    if seletivo.valor is not None:
        sub_decimal(el, "vIS", seletivo.valor)


def _serv(parent: etree._Element, n_item: int, servico: Servico, codigo_municipio: str) -> None:
    campo = f"servicos[{n_item - 1}]"
    el = sub_group(parent, "serv")
    el.set("nItem", str(n_item))
    sub_text(el, "cServ", _require(servico.codigo, f"{campo}.codigo"))
    sub_text(el, "xServ", servico.descricao or servico.discriminacao)
    sub_text(el, "cClassServ", servico.codigo_classificacao)
    sub_text(el, "cTribMun", servico.codigo_tributacao_municipal)
    sub_text(el, "discriminacao", _require(servico.discriminacao, f"{campo}.discriminacao"))
    sub_text(el, "cMunPrest", servico.codigo_municipio_prestacao or codigo_municipio)
    sub_text(el, "uCom", servico.unidade)
    sub_decimal(el, "qCom", servico.quantidade, 4)
    sub_decimal(el, "vUnCom", servico.valor_unitario, 4)
    sub_decimal(el, "vServ", servico.total)
    for tag, value in (
        ("vDeducoes", servico.deducoes),
        ("vDescIncond", servico.desconto_incondicionado),
        ("vDescCond", servico.desconto_condicionado),
        ("vOutrasRet", servico.outras_retencoes),
    ):
        if value > 0:
            sub_decimal(el, tag, value)
    sub_decimal(el, "vLiq", _valor_liquido(servico))
    if servico.tributacao is not None:
        _imposto_iss(el, servico.tributacao)
    if servico.ibscbs is not None:
        _ibscbs(el, servico.ibscbs)
    if servico.imposto_seletivo is not None:
        _imposto_seletivo(el, servico.imposto_seletivo)


def _total_servicos(parent: etree._Element, doc: NFSeDocument, servicos: List[Servico]) -> None:
    total = sub_group(parent, "total")
    serv_tot = sub_group(total, "servTot")
    sub_decimal(serv_tot, "vServ", sum((s.total for s in servicos), ZERO))
    sub_decimal(serv_tot, "vDeducoes", sum((s.deducoes for s in servicos), ZERO))
    sub_decimal(serv_tot, "vDescIncond", sum((s.desconto_incondicionado for s in servicos), ZERO))
    sub_decimal(serv_tot, "vDescCond", sum((s.desconto_condicionado for s in servicos), ZERO))
    sub_decimal(serv_tot, "vOutrasRet", sum((s.outras_retencoes for s in servicos), ZERO))
    sub_decimal(serv_tot, "vLiq", sum((_valor_liquido(s) for s in servicos), ZERO))
    v_iss = sum(
        (s.tributacao.valor_iss for s in servicos if s.tributacao and s.tributacao.valor_iss is not None),
        ZERO,
    )
    sub_decimal(serv_tot, "vISS", v_iss)

    grupos = [s.ibscbs for s in servicos if s.ibscbs is not None]
    if grupos:
        v_bc = sum((g.base_calculo for g in grupos), ZERO)
        v_ibs = v_cbs = ZERO
        for g in grupos:
            v_uf, v_mun, cbs = _ibscbs_valores(g)
            v_ibs += v_uf + v_mun
            v_cbs += cbs
        tot = sub_group(serv_tot, "IBSCBSTot")
        sub_decimal(tot, "vBCIBSCBS", v_bc)
        sub_decimal(sub_group(tot, "gIBS"), "vIBS", v_ibs)
        sub_decimal(sub_group(tot, "gCBS"), "vCBS", v_cbs)

    if doc.valor_total_nfse is not None:
        sub_decimal(serv_tot, "vNFSeTot", doc.valor_total_nfse)


def _pag_servicos(parent: etree._Element, pagamento: Pagamento) -> None:
    el = sub_group(parent, "pag")
    for forma in _require_items(pagamento.formas, "pagamento.formas"):
        det = sub_group(el, "detPag")
        sub_text(det, "tPag", forma.meio)
        sub_decimal(det, "vPag", forma.valor)
        if forma.vencimento is not None:
            sub_text(det, "dVenc", format_date(forma.vencimento))


def build_nfse(doc: NFSeDocument, random_source: Optional[RandomSource] = None) -> BuiltDocument:
    """
    Genera el XML sin firmar de una NFS-e municipal 1.00.

    El código de verificación (cVerif) es independiente de cualquier DV;
    se usa el informado en el modelo o se genera uno de 8 dígitos.

    Raises:
        DocumentAssemblyError: Si falta un campo requerido
    """
    ide = doc.identificacao
    _require(doc.prestador, "prestador")
    _require(doc.tomador, "tomador")
    servicos = _require_items(doc.servicos, "servicos")
    codigo_municipio = _require(ide.codigo_municipio, "identificacao.codigo_municipio")
    _require_valores(servicos, "servicos")
    _require(ide.numero, "identificacao.numero")
    _require(ide.data_emissao, "identificacao.data_emissao")

    c_verif = ide.codigo_verificacao or generate_verification_code(random_source)
    numero = str(ide.numero)
    document_id = f"NFSe{numero}{c_verif}"

    root = etree.Element(f"{{{NFSE_NS}}}NFSe", nsmap={None: NFSE_NS})
    inf = etree.SubElement(root, f"{{{NFSE_NS}}}infNFSe")
    inf.set("Id", document_id)
    inf.set("versao", NFSE_VERSAO)

    ide_el = sub_group(inf, "ide")
    # los dos primeros dígitos del código IBGE del municipio son la UF
    sub_text(ide_el, "cUF", ide.codigo_uf or codigo_municipio[:2])
    sub_text(ide_el, "cMun", codigo_municipio)
    sub_text(ide_el, "natOp", ide.natureza_operacao)
    sub_text(ide_el, "regEsp", ide.regime_especial)
    sub_text(ide_el, "optSimpNac", ide.optante_simples)
    sub_text(ide_el, "incCult", ide.incentivador_cultural)
    sub_text(ide_el, "nNFSe", numero)
    sub_text(ide_el, "cVerif", c_verif)
    sub_text(ide_el, "dhEmi", format_timestamp(ide.data_emissao))
    sub_text(ide_el, "tpAmb", ide.ambiente.value)
    opt_text(ide_el, "cMunFGIBS", ide.codigo_municipio_fg_ibs)
    opt_text(ide_el, "indPres", ide.indicador_presenca)

    _prest(inf, doc.prestador)
    _tom(inf, doc.tomador)
    for n_item, servico in enumerate(servicos, start=1):
        _serv(inf, n_item, servico, codigo_municipio)
    _total_servicos(inf, doc, servicos)
    if doc.pagamento is not None and doc.pagamento.formas:
        _pag_servicos(inf, doc.pagamento)
    if doc.informacoes_adicionais:
        sub_text(sub_group(inf, "infAdic"), "infCpl", doc.informacoes_adicionais)

    logger.info(f"NFS-e armada: Id={document_id} servicos={len(servicos)}")
    return BuiltDocument(
        kind=DocumentKind.NFSE,
        xml=to_bytes(root),
        document_id=document_id,
        verification_code=c_verif,
        numero=numero,
    )


# ---------------------------------------------------------------------------
# DPS (Sistema Nacional NFS-e)
# ---------------------------------------------------------------------------

def codigo_tributacao_nacional(codigo_classificacao: Optional[str]) -> str:
    """
    Convierte el código de clasificación "XXXX-XX" al cTribNac de 6 dígitos.

    Vacío devuelve el código por defecto 010101; más corto se completa con
    ceros a la derecha. Se ignoran guiones y puntos.
    """
    if not codigo_classificacao:
        return CODIGO_TRIB_NACIONAL_PADRAO
    codigo = only_digits(codigo_classificacao)
    return codigo[:6].ljust(6, "0")


def _end_nacional(parent: etree._Element, endereco: Endereco, field: str) -> None:
    end = sub_group(parent, "end")
    end_nac = sub_group(end, "endNac")
    sub_text(end_nac, "cMun", _require(endereco.codigo_municipio, f"{field}.codigo_municipio"))
    sub_text(end_nac, "CEP", only_digits(_require(endereco.cep, f"{field}.cep")))
    sub_text(end, "xLgr", _require(endereco.logradouro, f"{field}.logradouro"))
    sub_text(end, "nro", _require(endereco.numero, f"{field}.numero"))
    opt_text(end, "xCpl", endereco.complemento)
    sub_text(end, "xBairro", _require(endereco.bairro, f"{field}.bairro"))


def _prest_dps(parent: etree._Element, prest: Prestador) -> None:
    el = sub_group(parent, "prest")
    if prest.cnpj:
        sub_text(el, "CNPJ", only_digits(prest.cnpj))
    elif prest.cpf:
        sub_text(el, "CPF", only_digits(prest.cpf))
    else:
        raise DocumentAssemblyError("prestador.cnpj")
    opt_text(el, "IM", prest.inscricao_municipal)
    opt_text(el, "xNome", prest.razao_social)
    if prest.endereco is not None:
        _end_nacional(el, prest.endereco, "prestador.endereco")
    opt_text(el, "fone", only_digits(prest.telefone))
    opt_text(el, "email", prest.email)
    reg_trib = sub_group(el, "regTrib")
    sub_text(reg_trib, "opSimpNac", prest.opcao_simples)
    sub_text(reg_trib, "regEspTrib", prest.regime_especial)


def _toma_dps(parent: etree._Element, tom: Tomador) -> None:
    el = sub_group(parent, "toma")
    _documento_pessoa(el, tom.tipo, _require(tom.documento, "tomador.documento"))
    opt_text(el, "IM", tom.inscricao_municipal)
    sub_text(el, "xNome", _require(tom.nome, "tomador.nome"))
    if tom.endereco is not None:
        _end_nacional(el, tom.endereco, "tomador.endereco")
    opt_text(el, "fone", only_digits(tom.telefone))
    opt_text(el, "email", tom.email)


def _serv_dps(parent: etree._Element, servico: Servico, codigo_municipio: str) -> None:
    el = sub_group(parent, "serv")
    loc = sub_group(el, "locPrest")
    sub_text(loc, "cLocPrestacao", servico.codigo_municipio_prestacao or codigo_municipio)
    c_serv = sub_group(el, "cServ")
    sub_text(c_serv, "cTribNac", codigo_tributacao_nacional(servico.codigo_classificacao))
    opt_text(c_serv, "cTribMun", servico.codigo_tributacao_municipal)
    sub_text(c_serv, "xDescServ", _require(servico.discriminacao, "servicos[0].discriminacao"))
    info = sub_group(el, "infoCompl")
    sub_text(info, "xInfComp", servico.discriminacao)


def _valores_dps(parent: etree._Element, servicos: List[Servico]) -> None:
    principal = servicos[0]
    trib_principal = principal.tributacao

    v_serv = sum((s.total for s in servicos), ZERO)
    v_desc_incond = sum((s.desconto_incondicionado for s in servicos), ZERO)
    v_desc_cond = sum((s.desconto_condicionado for s in servicos), ZERO)
    v_deducoes = sum((s.deducoes for s in servicos), ZERO)

    def _soma(attr: str) -> Decimal:
        return sum(
            (getattr(s.tributacao, attr) for s in servicos
             if s.tributacao is not None and getattr(s.tributacao, attr) is not None),
            ZERO,
        )

    v_pis = _soma("valor_pis")
    v_cofins = _soma("valor_cofins")
    v_iss = _soma("valor_iss")

    valores = sub_group(parent, "valores")
    sub_decimal(sub_group(valores, "vServPrest"), "vServ", v_serv)

    if v_desc_incond > 0 or v_desc_cond > 0:
        desc = sub_group(valores, "vDescCondIncond")
        if v_desc_incond > 0:
            sub_decimal(desc, "vDescIncond", v_desc_incond)
        if v_desc_cond > 0:
            sub_decimal(desc, "vDescCond", v_desc_cond)

    if v_deducoes > 0:
        sub_decimal(sub_group(valores, "vDedRed"), "vDR", v_deducoes)

    trib = sub_group(valores, "trib")
    trib_mun = sub_group(trib, "tribMun")
    situacao = trib_principal.situacao_tributaria if trib_principal else "00"
    sub_text(trib_mun, "tribISSQN", _TRIB_ISSQN.get(situacao, "1"))
    if trib_principal is not None and trib_principal.aliquota is not None:
        sub_decimal(trib_mun, "pAliq", trib_principal.aliquota, 4)
    # 1 = não retido
    sub_text(trib_mun, "tpRetISSQN", "1")

    tem_federal = any(
        s.tributacao is not None and (s.tributacao.valor_pis is not None or s.tributacao.valor_cofins is not None)
        for s in servicos
    )
    if tem_federal:
        piscofins = sub_group(sub_group(trib, "tribFed"), "piscofins")
        sub_text(piscofins, "CST", "01")
        sub_decimal(piscofins, "vPis", v_pis)
        sub_decimal(piscofins, "vCofins", v_cofins)

    tot = sub_group(sub_group(trib, "totTrib"), "vTotTrib")
    sub_decimal(tot, "vTotTribFed", v_pis + v_cofins)
    sub_decimal(tot, "vTotTribEst", ZERO)
    sub_decimal(tot, "vTotTribMun", v_iss)

    sub_decimal(valores, "vLiq", v_serv - v_desc_incond - v_desc_cond - v_deducoes - v_iss)


def build_dps(doc: DPSDocument) -> BuiltDocument:
    """
    Genera el XML sin firmar de una DPS (Declaração de Prestação de Serviço).

    Args:
        doc: Modelo de la DPS; el primer servicio define cServ y la
            tributación municipal, los valores se suman sobre todos

    Returns:
        BuiltDocument con Id "DPS" + número de 15 dígitos

    Raises:
        DocumentAssemblyError: Si falta un campo requerido
    """
    ide = doc.identificacao
    _require(doc.prestador, "prestador")
    servicos = _require_items(doc.servicos, "servicos")
    codigo_municipio = _require(ide.codigo_municipio, "identificacao.codigo_municipio")
    _require_valores(servicos, "servicos")
    _require(ide.numero, "identificacao.numero")
    _require(ide.data_emissao, "identificacao.data_emissao")

    n_dps = str(ide.numero).zfill(DPS_NUMERO_LEN)
    document_id = f"DPS{n_dps}"

    root = etree.Element(f"{{{SPED_NFSE_NS}}}DPS", nsmap={None: SPED_NFSE_NS})
    root.set("versao", DPS_VERSAO)
    inf = etree.SubElement(root, f"{{{SPED_NFSE_NS}}}infDPS")
    inf.set("Id", document_id)

    sub_text(inf, "tpAmb", ide.ambiente.value)
    sub_text(inf, "dhEmi", format_timestamp(ide.data_emissao))
    sub_text(inf, "verAplic", ide.versao_aplicativo)
    sub_text(inf, "serie", ide.serie)
    sub_text(inf, "nDPS", n_dps)
    sub_text(inf, "dCompet", format_date(ide.data_emissao))
    # 1 = prestador
    sub_text(inf, "tpEmit", "1")
    sub_text(inf, "cLocEmi", codigo_municipio)

    _prest_dps(inf, doc.prestador)
    if doc.tomador is not None:
        _toma_dps(inf, doc.tomador)
    _serv_dps(inf, servicos[0], codigo_municipio)
    _valores_dps(inf, servicos)

    logger.info(f"DPS armada: Id={document_id}")
    return BuiltDocument(
        kind=DocumentKind.DPS,
        xml=to_bytes(root),
        document_id=document_id,
        numero=n_dps,
    )
