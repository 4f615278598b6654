"""
Generador de XML para NF-e modelo 55 (leiaute 4.00)

El árbol se arma con lxml en el orden exacto del leiaute; los totales se
suman en Decimal con precisión completa y se formatean una sola vez.
`build_document` es el punto de entrada común para todos los tipos.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from lxml import etree

from .chave_utils import generate_access_key
from .exceptions import DocumentAssemblyError
from .formatting import format_date, format_timestamp, only_digits
from .models import (
    BuiltDocument,
    Cobranca,
    Destinatario,
    DocumentKind,
    DocumentModel,
    Emitente,
    Endereco,
    NFeDocument,
    Pagamento,
    Produto,
    TaxRates,
    TipoPessoa,
    Transporte,
)
from .utils import RandomSource
from .xml_utils import NFE_NS, opt_text, sub_decimal, sub_group, sub_text, to_bytes

logger = logging.getLogger(__name__)

NFE_VERSAO = "4.00"
SEM_GTIN = "SEM GTIN"
CODIGO_PAIS_BRASIL = "1058"
NOME_PAIS_BRASIL = "BRASIL"

ZERO = Decimal("0")
CEM = Decimal("100")


@dataclass
class _ItemTributos:
    base: Decimal
    icms: Decimal
    pis: Decimal
    cofins: Decimal

    @property
    def total(self) -> Decimal:
        return self.icms + self.pis + self.cofins


def _require(value, field: str):
    if value is None or (isinstance(value, str) and not value.strip()):
        raise DocumentAssemblyError(field)
    return value


def _require_items(items: Iterable, field: str) -> List:
    items = list(items or [])
    if not items:
        raise DocumentAssemblyError(field, "la lista no puede estar vacía")
    return items


def _require_valores(items: List, campo: str) -> None:
    for i, item in enumerate(items):
        _require(item.quantidade, f"{campo}[{i}].quantidade")
        _require(item.valor_unitario, f"{campo}[{i}].valor_unitario")


def _endereco(parent: etree._Element, tag: str, endereco: Optional[Endereco], field: str) -> None:
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
    opt_text(el, "fone", only_digits(end.telefone))


def _ide(parent: etree._Element, doc: NFeDocument, cnf: str, dv: int) -> None:
    ide = doc.identificacao
    el = sub_group(parent, "ide")
    sub_text(el, "cUF", ide.codigo_uf)
    sub_text(el, "cNF", cnf)
    sub_text(el, "natOp", _require(ide.natureza_operacao, "identificacao.natureza_operacao"))
    sub_text(el, "mod", ide.modelo)
    sub_text(el, "serie", only_digits(ide.serie).lstrip("0") or "0")
    sub_text(el, "nNF", ide.numero)
    sub_text(el, "dhEmi", format_timestamp(ide.data_emissao))
    if ide.data_saida_entrada is not None:
        sub_text(el, "dhSaiEnt", format_timestamp(ide.data_saida_entrada))
    sub_text(el, "tpNF", ide.tipo_operacao)
    sub_text(el, "idDest", ide.destino_operacao)
    sub_text(el, "cMunFG", _require(ide.codigo_municipio_fg, "identificacao.codigo_municipio_fg"))
    sub_text(el, "tpImp", ide.tipo_impressao)
    sub_text(el, "tpEmis", ide.tipo_emissao)
    sub_text(el, "cDV", dv)
    sub_text(el, "tpAmb", ide.ambiente.value)
    sub_text(el, "finNFe", ide.finalidade)
    sub_text(el, "indFinal", ide.consumidor_final)
    sub_text(el, "indPres", ide.indicador_presenca)
    sub_text(el, "procEmi", ide.processo_emissao)
    sub_text(el, "verProc", ide.versao_processo)


def _emit(parent: etree._Element, emit: Emitente) -> None:
    el = sub_group(parent, "emit")
    sub_text(el, "CNPJ", only_digits(_require(emit.cnpj, "emitente.cnpj")))
    sub_text(el, "xNome", _require(emit.razao_social, "emitente.razao_social"))
    opt_text(el, "xFant", emit.nome_fantasia)
    _endereco(el, "enderEmit", emit.endereco, "emitente.endereco")
    sub_text(el, "IE", only_digits(_require(emit.inscricao_estadual, "emitente.inscricao_estadual")))
    sub_text(el, "CRT", emit.regime.value)


def _dest(parent: etree._Element, dest: Destinatario) -> None:
    el = sub_group(parent, "dest")
    documento = _require(dest.documento, "destinatario.documento")
    if dest.tipo is TipoPessoa.PJ:
        sub_text(el, "CNPJ", only_digits(documento))
    elif dest.tipo is TipoPessoa.PF:
        sub_text(el, "CPF", only_digits(documento))
    else:
        sub_text(el, "idEstrangeiro", documento)
    sub_text(el, "xNome", _require(dest.nome, "destinatario.nome"))
    _endereco(el, "enderDest", dest.endereco, "destinatario.endereco")
    sub_text(el, "indIEDest", dest.indicador_ie)
    opt_text(el, "IE", only_digits(dest.inscricao_estadual))


def _tributos(produto: Produto, doc: NFeDocument) -> _ItemTributos:
    base = produto.total - produto.desconto
    if doc.emitente.regime.simplificado:
        return _ItemTributos(base=base, icms=ZERO, pis=ZERO, cofins=ZERO)
    rates: TaxRates = doc.aliquotas
    return _ItemTributos(
        base=base,
        icms=base * rates.icms / CEM,
        pis=base * rates.pis / CEM,
        cofins=base * rates.cofins / CEM,
    )


def _det(parent: etree._Element, n_item: int, produto: Produto, trib: _ItemTributos, doc: NFeDocument) -> None:
    campo = f"produtos[{n_item - 1}]"
    det = sub_group(parent, "det")
    det.set("nItem", str(n_item))

    prod = sub_group(det, "prod")
    sub_text(prod, "cProd", _require(produto.codigo, f"{campo}.codigo"))
    sub_text(prod, "cEAN", produto.ean or SEM_GTIN)
    sub_text(prod, "xProd", _require(produto.descricao, f"{campo}.descricao"))
    sub_text(prod, "NCM", _require(produto.ncm, f"{campo}.ncm"))
    sub_text(prod, "CFOP", _require(produto.cfop, f"{campo}.cfop"))
    sub_text(prod, "uCom", produto.unidade)
    sub_decimal(prod, "qCom", produto.quantidade, 4)
    sub_decimal(prod, "vUnCom", produto.valor_unitario, 4)
    sub_decimal(prod, "vProd", produto.total)
    sub_text(prod, "cEANTrib", produto.ean or SEM_GTIN)
    sub_text(prod, "uTrib", produto.unidade_tributavel or produto.unidade)
    sub_decimal(prod, "qTrib", produto.quantidade_tributavel or produto.quantidade, 4)
    sub_decimal(prod, "vUnTrib", produto.valor_unitario_tributavel or produto.valor_unitario, 4)
    # opcionales: el leiaute no admite 0.00 en estos campos
    for tag, value in (("vFrete", produto.frete), ("vSeg", produto.seguro),
                       ("vDesc", produto.desconto), ("vOutro", produto.outros)):
        if value > 0:
            sub_decimal(prod, tag, value)
    sub_text(prod, "indTot", produto.indicador_total)

    imposto = sub_group(det, "imposto")
    sub_decimal(imposto, "vTotTrib", trib.total)

    icms = sub_group(imposto, "ICMS")
    if doc.emitente.regime.simplificado:
        sn = sub_group(icms, "ICMSSN102")
        sub_text(sn, "orig", produto.origem)
        sub_text(sn, "CSOSN", produto.csosn)
    else:
        icms00 = sub_group(icms, "ICMS00")
        sub_text(icms00, "orig", produto.origem)
        sub_text(icms00, "CST", "00")
        sub_text(icms00, "modBC", "3")
        sub_decimal(icms00, "vBC", trib.base)
        sub_decimal(icms00, "pICMS", doc.aliquotas.icms)
        sub_decimal(icms00, "vICMS", trib.icms)

    ipi = sub_group(imposto, "IPI")
    sub_text(ipi, "cEnq", "999")
    ipint = sub_group(ipi, "IPINT")
    sub_text(ipint, "CST", "53")

    pis = sub_group(imposto, "PIS")
    cofins = sub_group(imposto, "COFINS")
    if doc.emitente.regime.simplificado:
        sub_text(sub_group(pis, "PISNT"), "CST", "07")
        sub_text(sub_group(cofins, "COFINSNT"), "CST", "07")
    else:
        pis_aliq = sub_group(pis, "PISAliq")
        sub_text(pis_aliq, "CST", "01")
        sub_decimal(pis_aliq, "vBC", trib.base)
        sub_decimal(pis_aliq, "pPIS", doc.aliquotas.pis, 4)
        sub_decimal(pis_aliq, "vPIS", trib.pis)

        cofins_aliq = sub_group(cofins, "COFINSAliq")
        sub_text(cofins_aliq, "CST", "01")
        sub_decimal(cofins_aliq, "vBC", trib.base)
        sub_decimal(cofins_aliq, "pCOFINS", doc.aliquotas.cofins, 4)
        sub_decimal(cofins_aliq, "vCOFINS", trib.cofins)


def _total(parent: etree._Element, produtos: List[Produto], tributos: List[_ItemTributos], doc: NFeDocument) -> None:
    v_prod = sum((p.total for p in produtos), ZERO)
    v_frete = sum((p.frete for p in produtos), ZERO)
    v_seg = sum((p.seguro for p in produtos), ZERO)
    v_desc = sum((p.desconto for p in produtos), ZERO)
    v_outro = sum((p.outros for p in produtos), ZERO)
    v_icms = sum((t.icms for t in tributos), ZERO)
    v_pis = sum((t.pis for t in tributos), ZERO)
    v_cofins = sum((t.cofins for t in tributos), ZERO)
    v_bc = ZERO if doc.emitente.regime.simplificado else sum((t.base for t in tributos), ZERO)
    v_st = v_ii = v_ipi = ZERO
    v_nf = v_prod - v_desc + v_st + v_frete + v_seg + v_outro + v_ii + v_ipi

    total = sub_group(parent, "total")
    tot = sub_group(total, "ICMSTot")
    for tag, value in (
        ("vBC", v_bc),
        ("vICMS", v_icms),
        ("vICMSDeson", ZERO),
        ("vFCP", ZERO),
        ("vBCST", ZERO),
        ("vST", v_st),
        ("vFCPST", ZERO),
        ("vFCPSTRet", ZERO),
        ("vProd", v_prod),
        ("vFrete", v_frete),
        ("vSeg", v_seg),
        ("vDesc", v_desc),
        ("vII", v_ii),
        ("vIPI", v_ipi),
        ("vIPIDevol", ZERO),
        ("vPIS", v_pis),
        ("vCOFINS", v_cofins),
        ("vOutro", v_outro),
        ("vNF", v_nf),
        ("vTotTrib", v_icms + v_pis + v_cofins),
    ):
        sub_decimal(tot, tag, value)


def _transp(parent: etree._Element, transporte: Optional[Transporte]) -> None:
    el = sub_group(parent, "transp")
    if transporte is None:
        # 9 = sem ocorrência de transporte
        sub_text(el, "modFrete", "9")
        return
    sub_text(el, "modFrete", transporte.modalidade_frete)
    t = transporte.transportadora
    if t is None:
        return
    transporta = sub_group(el, "transporta")
    opt_text(transporta, "CNPJ", only_digits(t.cnpj))
    opt_text(transporta, "xNome", t.nome)
    opt_text(transporta, "IE", t.inscricao_estadual)
    opt_text(transporta, "xEnder", t.endereco)
    opt_text(transporta, "xMun", t.municipio)
    opt_text(transporta, "UF", t.uf)


def _cobr(parent: etree._Element, cobranca: Cobranca) -> None:
    el = sub_group(parent, "cobr")
    fat = cobranca.fatura
    if fat is not None:
        fat_el = sub_group(el, "fat")
        opt_text(fat_el, "nFat", fat.numero)
        sub_decimal(fat_el, "vOrig", fat.valor_original)
        sub_decimal(fat_el, "vDesc", fat.valor_desconto)
        liquido = fat.valor_liquido if fat.valor_liquido is not None else fat.valor_original - fat.valor_desconto
        sub_decimal(fat_el, "vLiq", liquido)
    for dup in cobranca.duplicatas:
        dup_el = sub_group(el, "dup")
        opt_text(dup_el, "nDup", dup.numero)
        sub_text(dup_el, "dVenc", format_date(dup.vencimento))
        sub_decimal(dup_el, "vDup", dup.valor)


def _pag(parent: etree._Element, pagamento: Pagamento) -> None:
    el = sub_group(parent, "pag")
    for forma in _require_items(pagamento.formas, "pagamento.formas"):
        det = sub_group(el, "detPag")
        opt_text(det, "indPag", forma.indicador)
        sub_text(det, "tPag", forma.meio)
        sub_decimal(det, "vPag", forma.valor)


def build_nfe(doc: NFeDocument, random_source: Optional[RandomSource] = None) -> BuiltDocument:
    """
    Genera el XML sin firmar de una NF-e 4.00.

    Args:
        doc: Modelo validado de la NF-e
        random_source: Fuente del cNF (inyectable para tests)

    Returns:
        BuiltDocument con el XML, el Id "NFe"+chave y la chave de 44 dígitos

    Raises:
        DocumentAssemblyError: Si falta un campo requerido
        KeyAssemblyError: Si algún sub-campo de la chave no entra en su ancho
    """
    ide = doc.identificacao
    emit = _require(doc.emitente, "emitente")
    _require(doc.destinatario, "destinatario")
    produtos = _require_items(doc.produtos, "produtos")
    _require_valores(produtos, "produtos")
    _require(ide.numero, "identificacao.numero")
    _require(ide.data_emissao, "identificacao.data_emissao")

    key = generate_access_key(
        codigo_uf=_require(ide.codigo_uf, "identificacao.codigo_uf"),
        data_emissao=ide.data_emissao,
        cnpj=_require(emit.cnpj, "emitente.cnpj"),
        modelo=ide.modelo,
        serie=ide.serie,
        numero=ide.numero,
        tipo_emissao=ide.tipo_emissao,
        random_source=random_source,
    )
    document_id = f"NFe{key.value}"

    root = etree.Element(f"{{{NFE_NS}}}NFe", nsmap={None: NFE_NS})
    inf = etree.SubElement(root, f"{{{NFE_NS}}}infNFe")
    inf.set("Id", document_id)
    inf.set("versao", NFE_VERSAO)

    _ide(inf, doc, key.nonce, key.check_digit)
    _emit(inf, emit)
    _dest(inf, doc.destinatario)

    tributos = [_tributos(p, doc) for p in produtos]
    for n_item, (produto, trib) in enumerate(zip(produtos, tributos), start=1):
        _det(inf, n_item, produto, trib, doc)

    _total(inf, produtos, tributos, doc)
    _transp(inf, doc.transporte)
    if doc.cobranca is not None:
        _cobr(inf, doc.cobranca)
    if doc.pagamento is not None:
        _pag(inf, doc.pagamento)
    if doc.informacoes_adicionais:
        inf_adic = sub_group(inf, "infAdic")
        sub_text(inf_adic, "infCpl", doc.informacoes_adicionais)

    logger.debug(f"NF-e armada: Id={document_id} itens={len(produtos)}")
    return BuiltDocument(
        kind=DocumentKind.NFE,
        xml=to_bytes(root),
        document_id=document_id,
        access_key=key.value,
        numero=str(ide.numero),
    )


def build_document(model: DocumentModel, random_source: Optional[RandomSource] = None) -> BuiltDocument:
    """
    Punto de entrada del builder: despacha según `model.kind`.

    Raises:
        DocumentAssemblyError: Si el tipo no es soportado o falta un campo
    """
    from .evento_generator import build_evento
    from .nfse_generator import build_dps, build_nfse

    if model.kind is DocumentKind.NFE:
        return build_nfe(model, random_source)
    if model.kind is DocumentKind.NFSE:
        return build_nfse(model, random_source)
    if model.kind is DocumentKind.DPS:
        return build_dps(model)
    if model.kind is DocumentKind.EVENTO:
        return build_evento(model)
    raise DocumentAssemblyError("kind", f"tipo de documento no soportado: {model.kind!r}")
