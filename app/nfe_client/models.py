"""
Modelos de datos para documentos fiscales (NF-e, NFS-e, DPS, eventos)

Cada tipo de documento es un dataclass plano con sub-registros opcionales.
`DocumentModel` es la unión etiquetada que recibe el builder; el campo
`kind` de cada variante decide el layout a generar.
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .formatting import to_decimal


class DocumentKind(str, Enum):
    NFE = "nfe"
    NFSE = "nfse"
    DPS = "dps"
    EVENTO = "evento"


class Ambiente(str, Enum):
    PRODUCAO = "1"
    HOMOLOGACAO = "2"

    @classmethod
    def parse(cls, value: Union["Ambiente", str, int, None]) -> "Ambiente":
        """Acepta 'producao'/'homologacao', '1'/'2' y los alias 'prod'/'test'."""
        if isinstance(value, Ambiente):
            return value
        v = str(value if value is not None else "").strip().lower()
        if v in ("1", "producao", "produção", "prod", "production"):
            return cls.PRODUCAO
        if v in ("2", "homologacao", "homologação", "test", "homolog", ""):
            return cls.HOMOLOGACAO
        raise ValueError(f"Ambiente inválido: {value!r}. Usar 'homologacao' o 'producao'")

    @property
    def nome(self) -> str:
        return "producao" if self is Ambiente.PRODUCAO else "homologacao"


class RegimeTributario(str, Enum):
    """CRT del emisor: decide la rama de ICMS (ICMSSN vs ICMS00)."""
    SIMPLES_NACIONAL = "1"
    SIMPLES_EXCESSO = "2"
    NORMAL = "3"

    @property
    def simplificado(self) -> bool:
        return self is not RegimeTributario.NORMAL


class TipoPessoa(str, Enum):
    PJ = "PJ"
    PF = "PF"
    ESTRANGEIRO = "Estrangeiro"


class TipoEvento(str, Enum):
    CANCELAMENTO = "101101"
    CANCELAMENTO_SUBSTITUICAO = "105102"


@dataclass
class Endereco:
    logradouro: str
    numero: str
    bairro: str
    codigo_municipio: str
    nome_municipio: str
    uf: str
    cep: str
    complemento: Optional[str] = None
    telefone: Optional[str] = None


# ---------------------------------------------------------------------------
# NF-e (modelo 55)
# ---------------------------------------------------------------------------

@dataclass
class Identificacao:
    codigo_uf: str
    numero: int
    data_emissao: datetime
    natureza_operacao: str = "VENDA"
    modelo: str = "55"
    serie: str = "1"
    data_saida_entrada: Optional[datetime] = None
    tipo_operacao: str = "1"
    destino_operacao: str = "1"
    codigo_municipio_fg: str = ""
    tipo_impressao: str = "1"
    tipo_emissao: str = "1"
    ambiente: Ambiente = Ambiente.HOMOLOGACAO
    finalidade: str = "1"
    consumidor_final: str = "0"
    indicador_presenca: str = "1"
    processo_emissao: str = "0"
    versao_processo: str = "nfe-minisender 1.0"


@dataclass
class Emitente:
    cnpj: str
    razao_social: str
    inscricao_estadual: str
    endereco: Endereco
    regime: RegimeTributario = RegimeTributario.NORMAL
    nome_fantasia: Optional[str] = None


@dataclass
class Destinatario:
    documento: str
    nome: str
    endereco: Endereco
    tipo: TipoPessoa = TipoPessoa.PJ
    indicador_ie: str = "9"
    inscricao_estadual: Optional[str] = None


@dataclass
class Produto:
    codigo: str
    descricao: str
    ncm: str
    cfop: str
    quantidade: Decimal
    valor_unitario: Decimal
    unidade: str = "UN"
    ean: Optional[str] = None
    valor_total: Optional[Decimal] = None
    unidade_tributavel: Optional[str] = None
    quantidade_tributavel: Optional[Decimal] = None
    valor_unitario_tributavel: Optional[Decimal] = None
    frete: Decimal = Decimal("0")
    seguro: Decimal = Decimal("0")
    desconto: Decimal = Decimal("0")
    outros: Decimal = Decimal("0")
    indicador_total: str = "1"
    origem: str = "0"
    csosn: str = "102"

    @property
    def total(self) -> Decimal:
        """Valor bruto del ítem en precisión completa (sin redondeo)."""
        if self.valor_total is not None:
            return self.valor_total
        return self.quantidade * self.valor_unitario


@dataclass
class Transportadora:
    cnpj: Optional[str] = None
    nome: Optional[str] = None
    inscricao_estadual: Optional[str] = None
    endereco: Optional[str] = None
    municipio: Optional[str] = None
    uf: Optional[str] = None


@dataclass
class Transporte:
    modalidade_frete: str = "9"
    transportadora: Optional[Transportadora] = None


@dataclass
class Fatura:
    numero: Optional[str]
    valor_original: Decimal
    valor_desconto: Decimal = Decimal("0")
    valor_liquido: Optional[Decimal] = None


@dataclass
class Duplicata:
    numero: str
    vencimento: date
    valor: Decimal


@dataclass
class Cobranca:
    fatura: Optional[Fatura] = None
    duplicatas: List[Duplicata] = field(default_factory=list)


@dataclass
class FormaPagamento:
    meio: str
    valor: Decimal
    indicador: Optional[str] = None
    vencimento: Optional[date] = None


@dataclass
class Pagamento:
    formas: List[FormaPagamento] = field(default_factory=list)


@dataclass
class TaxRates:
    """Alícuotas por defecto del régimen normal (en porcentaje)."""
    icms: Decimal = Decimal("18.00")
    pis: Decimal = Decimal("1.65")
    cofins: Decimal = Decimal("7.60")


@dataclass
class NFeDocument:
    identificacao: Identificacao
    emitente: Emitente
    destinatario: Destinatario
    produtos: List[Produto]
    transporte: Optional[Transporte] = None
    cobranca: Optional[Cobranca] = None
    pagamento: Optional[Pagamento] = None
    informacoes_adicionais: Optional[str] = None
    aliquotas: TaxRates = field(default_factory=TaxRates)
    kind: DocumentKind = field(default=DocumentKind.NFE, init=False)


# ---------------------------------------------------------------------------
# NFS-e municipal / DPS nacional
# ---------------------------------------------------------------------------

@dataclass
class NFSeIdentificacao:
    codigo_municipio: str
    numero: int
    data_emissao: datetime
    codigo_uf: Optional[str] = None
    natureza_operacao: str = "PRESTAÇÃO DE SERVIÇOS"
    regime_especial: str = "1"
    optante_simples: str = "2"
    incentivador_cultural: str = "2"
    ambiente: Ambiente = Ambiente.HOMOLOGACAO
    serie: str = "1"
    codigo_verificacao: Optional[str] = None
    codigo_municipio_fg_ibs: Optional[str] = None
    indicador_presenca: Optional[str] = None
    versao_aplicativo: str = "1.0.0"


@dataclass
class Prestador:
    razao_social: str
    inscricao_municipal: str
    endereco: Endereco
    cnpj: Optional[str] = None
    cpf: Optional[str] = None
    nome_fantasia: Optional[str] = None
    inscricao_estadual: Optional[str] = None
    telefone: Optional[str] = None
    email: Optional[str] = None
    opcao_simples: str = "1"
    regime_especial: str = "0"


@dataclass
class Tomador:
    documento: str
    nome: str
    tipo: TipoPessoa = TipoPessoa.PJ
    endereco: Optional[Endereco] = None
    telefone: Optional[str] = None
    email: Optional[str] = None
    inscricao_estadual: Optional[str] = None
    inscricao_municipal: Optional[str] = None


@dataclass
class TributacaoServico:
    situacao_tributaria: str = "00"
    aliquota: Optional[Decimal] = None
    base_calculo: Optional[Decimal] = None
    valor_iss: Optional[Decimal] = None
    valor_pis: Optional[Decimal] = None
    valor_cofins: Optional[Decimal] = None
    valor_inss: Optional[Decimal] = None
    valor_ir: Optional[Decimal] = None
    valor_csll: Optional[Decimal] = None


@dataclass
class IBSCBSServico:
    """Grupo IBS/CBS de la reforma tributaria (alícuotas en %)."""
    cst: str
    classificacao_tributaria: str
    base_calculo: Decimal
    aliquota_ibs_uf: Decimal
    aliquota_ibs_municipio: Decimal
    aliquota_cbs: Decimal


@dataclass
class ISServico:
    """Imposto Seletivo sobre el servicio."""
    cst: str
    classificacao_tributaria: str
    base_calculo: Optional[Decimal] = None
    aliquota: Optional[Decimal] = None
    valor: Optional[Decimal] = None


@dataclass
class Servico:
    codigo: str
    discriminacao: str
    valor_unitario: Decimal
    quantidade: Decimal = Decimal("1")
    descricao: str = ""
    codigo_classificacao: str = ""
    codigo_tributacao_municipal: str = ""
    codigo_municipio_prestacao: Optional[str] = None
    unidade: str = "UN"
    valor_total: Optional[Decimal] = None
    deducoes: Decimal = Decimal("0")
    desconto_incondicionado: Decimal = Decimal("0")
    desconto_condicionado: Decimal = Decimal("0")
    outras_retencoes: Decimal = Decimal("0")
    tributacao: Optional[TributacaoServico] = None
    ibscbs: Optional[IBSCBSServico] = None
    imposto_seletivo: Optional[ISServico] = None

    @property
    def total(self) -> Decimal:
        if self.valor_total is not None:
            return self.valor_total
        return self.quantidade * self.valor_unitario

    @property
    def liquido(self) -> Decimal:
        return (
            self.total
            - self.deducoes
            - self.desconto_incondicionado
            - self.desconto_condicionado
            - self.outras_retencoes
        )


@dataclass
class NFSeDocument:
    """NFS-e municipal (leiaute portalfiscal, SOAP)."""
    identificacao: NFSeIdentificacao
    prestador: Prestador
    tomador: Tomador
    servicos: List[Servico]
    pagamento: Optional[Pagamento] = None
    informacoes_adicionais: Optional[str] = None
    valor_total_nfse: Optional[Decimal] = None
    kind: DocumentKind = field(default=DocumentKind.NFSE, init=False)


@dataclass
class DPSDocument:
    """Declaração de Prestação de Serviço del Sistema Nacional (REST)."""
    identificacao: NFSeIdentificacao
    prestador: Prestador
    servicos: List[Servico]
    tomador: Optional[Tomador] = None
    informacoes_adicionais: Optional[str] = None
    kind: DocumentKind = field(default=DocumentKind.DPS, init=False)


@dataclass
class EventoCancelamento:
    chave_acesso: str
    documento_autor: str
    codigo_justificativa: str
    motivo: str = ""
    tipo_evento: TipoEvento = TipoEvento.CANCELAMENTO
    chave_substituta: Optional[str] = None
    ambiente: Ambiente = Ambiente.HOMOLOGACAO
    data_evento: Optional[datetime] = None
    versao_aplicativo: str = "1.0.0"
    kind: DocumentKind = field(default=DocumentKind.EVENTO, init=False)


DocumentModel = Union[NFeDocument, NFSeDocument, DPSDocument, EventoCancelamento]


@dataclass(frozen=True)
class BuiltDocument:
    """XML sin firmar y los identificadores calculados al armarlo."""
    kind: DocumentKind
    xml: bytes
    document_id: str
    access_key: Optional[str] = None
    verification_code: Optional[str] = None
    numero: Optional[str] = None


# ---------------------------------------------------------------------------
# Resultado
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SubmissionResult:
    """Resultado normalizado de un envío (se crea una vez, nunca se muta)."""
    success: bool
    message: str
    sent_payload: Optional[str] = None
    raw_reply: Optional[str] = None
    protocol_number: Optional[str] = None
    access_key_or_number: Optional[str] = None
    verification_code: Optional[str] = None
    status_code: Optional[str] = None
    reason: Optional[str] = None
    link_consulta: Optional[str] = None
    simulated: bool = False
    processing: bool = False
    structured_errors: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_rejection(self) -> bool:
        """La autoridad respondió pero rechazó el documento."""
        return not self.success and not self.processing and self.status_code is not None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["structured_errors"] = {k: list(v) for k, v in self.structured_errors.items()}
        data["timestamp"] = self.timestamp.isoformat()
        return data


# ---------------------------------------------------------------------------
# Carga desde dict (JSON de la capa de presentación / CLI)
# ---------------------------------------------------------------------------

def _dec(value: Any, default: Optional[str] = None) -> Optional[Decimal]:
    if value is None:
        return Decimal(default) if default is not None else None
    return to_decimal(value)


def _int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def _str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _d(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _endereco(data: Optional[Mapping[str, Any]]) -> Optional[Endereco]:
    if not data:
        return None
    return Endereco(
        logradouro=data.get("logradouro", ""),
        numero=str(data.get("numero", "")),
        bairro=data.get("bairro", ""),
        codigo_municipio=str(data.get("codigo_municipio", "")),
        nome_municipio=data.get("nome_municipio", ""),
        uf=data.get("uf", ""),
        cep=str(data.get("cep", "")),
        complemento=data.get("complemento"),
        telefone=data.get("telefone"),
    )


def _pagamento(data: Optional[Mapping[str, Any]]) -> Optional[Pagamento]:
    if not data:
        return None
    formas = [
        FormaPagamento(
            meio=str(f.get("meio", "01")),
            valor=_dec(f.get("valor"), "0"),
            indicador=f.get("indicador"),
            vencimento=_d(f.get("vencimento")),
        )
        for f in data.get("formas", [])
    ]
    return Pagamento(formas=formas)


def _servicos(items: List[Mapping[str, Any]]) -> List[Servico]:
    servicos = []
    for s in items or []:
        trib = s.get("tributacao")
        ibs = s.get("ibscbs")
        seletivo = s.get("imposto_seletivo")
        servicos.append(
            Servico(
                codigo=str(s.get("codigo", "")),
                discriminacao=s.get("discriminacao", ""),
                valor_unitario=_dec(s.get("valor_unitario")),
                quantidade=_dec(s.get("quantidade"), "1"),
                descricao=s.get("descricao", ""),
                codigo_classificacao=str(s.get("codigo_classificacao", "")),
                codigo_tributacao_municipal=str(s.get("codigo_tributacao_municipal", "")),
                codigo_municipio_prestacao=s.get("codigo_municipio_prestacao"),
                unidade=s.get("unidade", "UN"),
                valor_total=_dec(s.get("valor_total")),
                deducoes=_dec(s.get("deducoes"), "0"),
                desconto_incondicionado=_dec(s.get("desconto_incondicionado"), "0"),
                desconto_condicionado=_dec(s.get("desconto_condicionado"), "0"),
                outras_retencoes=_dec(s.get("outras_retencoes"), "0"),
                tributacao=TributacaoServico(
                    situacao_tributaria=str(trib.get("situacao_tributaria", "00")),
                    aliquota=_dec(trib.get("aliquota")),
                    base_calculo=_dec(trib.get("base_calculo")),
                    valor_iss=_dec(trib.get("valor_iss")),
                    valor_pis=_dec(trib.get("valor_pis")),
                    valor_cofins=_dec(trib.get("valor_cofins")),
                    valor_inss=_dec(trib.get("valor_inss")),
                    valor_ir=_dec(trib.get("valor_ir")),
                    valor_csll=_dec(trib.get("valor_csll")),
                ) if trib else None,
                ibscbs=IBSCBSServico(
                    cst=str(ibs["cst"]),
                    classificacao_tributaria=str(ibs["classificacao_tributaria"]),
                    base_calculo=_dec(ibs["base_calculo"]),
                    aliquota_ibs_uf=_dec(ibs["aliquota_ibs_uf"]),
                    aliquota_ibs_municipio=_dec(ibs["aliquota_ibs_municipio"]),
                    aliquota_cbs=_dec(ibs["aliquota_cbs"]),
                ) if ibs else None,
                imposto_seletivo=ISServico(
                    cst=str(seletivo["cst"]),
                    classificacao_tributaria=str(seletivo["classificacao_tributaria"]),
                    base_calculo=_dec(seletivo.get("base_calculo")),
                    aliquota=_dec(seletivo.get("aliquota")),
                    valor=_dec(seletivo.get("valor")),
                ) if seletivo else None,
            )
        )
    return servicos


def _nfse_identificacao(data: Mapping[str, Any]) -> NFSeIdentificacao:
    return NFSeIdentificacao(
        codigo_municipio=str(data.get("codigo_municipio", "")),
        numero=_int(data.get("numero")),
        data_emissao=_dt(data.get("data_emissao")),
        codigo_uf=_str(data.get("codigo_uf")),
        natureza_operacao=data.get("natureza_operacao", "PRESTAÇÃO DE SERVIÇOS"),
        regime_especial=str(data.get("regime_especial", "1")),
        optante_simples=str(data.get("optante_simples", "2")),
        incentivador_cultural=str(data.get("incentivador_cultural", "2")),
        ambiente=Ambiente.parse(data.get("ambiente")),
        serie=str(data.get("serie", "1")),
        codigo_verificacao=data.get("codigo_verificacao"),
        codigo_municipio_fg_ibs=data.get("codigo_municipio_fg_ibs"),
        indicador_presenca=data.get("indicador_presenca"),
    )


def _prestador(data: Mapping[str, Any]) -> Prestador:
    return Prestador(
        razao_social=data.get("razao_social", ""),
        inscricao_municipal=str(data.get("inscricao_municipal", "")),
        endereco=_endereco(data.get("endereco")),
        cnpj=data.get("cnpj"),
        cpf=data.get("cpf"),
        nome_fantasia=data.get("nome_fantasia"),
        inscricao_estadual=data.get("inscricao_estadual"),
        telefone=data.get("telefone"),
        email=data.get("email"),
        opcao_simples=str(data.get("opcao_simples", "1")),
        regime_especial=str(data.get("regime_especial", "0")),
    )


def _tomador(data: Optional[Mapping[str, Any]]) -> Optional[Tomador]:
    if not data:
        return None
    return Tomador(
        documento=str(data.get("documento", "")),
        nome=data.get("nome", ""),
        tipo=TipoPessoa(data.get("tipo", "PJ")),
        endereco=_endereco(data.get("endereco")),
        telefone=data.get("telefone"),
        email=data.get("email"),
        inscricao_estadual=data.get("inscricao_estadual"),
        inscricao_municipal=data.get("inscricao_municipal"),
    )


def document_from_dict(data: Mapping[str, Any]) -> DocumentModel:
    """
    Construye el DocumentModel a partir de un dict (JSON ya validado).

    Args:
        data: Dict con clave "tipo" ('nfe', 'nfse', 'dps' o 'evento')

    Los campos requeridos ausentes quedan en None; el builder los rechaza
    con DocumentAssemblyError en lugar de inventar un valor.

    Returns:
        Variante del DocumentModel correspondiente

    Raises:
        ValueError: Si el tipo no es reconocido
    """
    kind = DocumentKind(str(data.get("tipo", "nfe")).lower())

    if kind is DocumentKind.NFE:
        ide = data.get("identificacao", {})
        emit = data.get("emitente", {})
        dest = data.get("destinatario", {})
        transp = data.get("transporte")
        cobr = data.get("cobranca")
        return NFeDocument(
            identificacao=Identificacao(
                codigo_uf=_str(ide.get("codigo_uf")),
                numero=_int(ide.get("numero")),
                data_emissao=_dt(ide.get("data_emissao")),
                natureza_operacao=ide.get("natureza_operacao", "VENDA"),
                modelo=str(ide.get("modelo", "55")),
                serie=str(ide.get("serie", "1")),
                data_saida_entrada=_dt(ide.get("data_saida_entrada")),
                tipo_operacao=str(ide.get("tipo_operacao", "1")),
                destino_operacao=str(ide.get("destino_operacao", "1")),
                codigo_municipio_fg=str(ide.get("codigo_municipio_fg", "")),
                tipo_impressao=str(ide.get("tipo_impressao", "1")),
                tipo_emissao=str(ide.get("tipo_emissao", "1")),
                ambiente=Ambiente.parse(ide.get("ambiente")),
                finalidade=str(ide.get("finalidade", "1")),
                consumidor_final=str(ide.get("consumidor_final", "0")),
                indicador_presenca=str(ide.get("indicador_presenca", "1")),
            ),
            emitente=Emitente(
                cnpj=str(emit.get("cnpj", "")),
                razao_social=emit.get("razao_social", ""),
                inscricao_estadual=str(emit.get("inscricao_estadual", "")),
                endereco=_endereco(emit.get("endereco")),
                regime=RegimeTributario(str(emit.get("regime", "3"))),
                nome_fantasia=emit.get("nome_fantasia"),
            ),
            destinatario=Destinatario(
                documento=str(dest.get("documento", "")),
                nome=dest.get("nome", ""),
                endereco=_endereco(dest.get("endereco")),
                tipo=TipoPessoa(dest.get("tipo", "PJ")),
                indicador_ie=str(dest.get("indicador_ie", "9")),
                inscricao_estadual=dest.get("inscricao_estadual"),
            ),
            produtos=[
                Produto(
                    codigo=str(p.get("codigo", "")),
                    descricao=p.get("descricao", ""),
                    ncm=str(p.get("ncm", "")),
                    cfop=str(p.get("cfop", "")),
                    quantidade=_dec(p.get("quantidade")),
                    valor_unitario=_dec(p.get("valor_unitario")),
                    unidade=p.get("unidade", "UN"),
                    ean=p.get("ean"),
                    valor_total=_dec(p.get("valor_total")),
                    frete=_dec(p.get("frete"), "0"),
                    seguro=_dec(p.get("seguro"), "0"),
                    desconto=_dec(p.get("desconto"), "0"),
                    outros=_dec(p.get("outros"), "0"),
                    origem=str(p.get("origem", "0")),
                    csosn=str(p.get("csosn", "102")),
                )
                for p in data.get("produtos", [])
            ],
            transporte=Transporte(
                modalidade_frete=str(transp.get("modalidade_frete", "9")),
                transportadora=Transportadora(**transp["transportadora"]) if transp.get("transportadora") else None,
            ) if transp else None,
            cobranca=Cobranca(
                fatura=Fatura(
                    numero=cobr["fatura"].get("numero"),
                    valor_original=_dec(cobr["fatura"].get("valor_original"), "0"),
                    valor_desconto=_dec(cobr["fatura"].get("valor_desconto"), "0"),
                    valor_liquido=_dec(cobr["fatura"].get("valor_liquido")),
                ) if cobr.get("fatura") else None,
                duplicatas=[
                    Duplicata(numero=str(d["numero"]), vencimento=_d(d["vencimento"]), valor=_dec(d["valor"]))
                    for d in cobr.get("duplicatas", [])
                ],
            ) if cobr else None,
            pagamento=_pagamento(data.get("pagamento")),
            informacoes_adicionais=data.get("informacoes_adicionais"),
        )

    if kind is DocumentKind.NFSE:
        return NFSeDocument(
            identificacao=_nfse_identificacao(data.get("identificacao", {})),
            prestador=_prestador(data.get("prestador", {})),
            tomador=_tomador(data.get("tomador")),
            servicos=_servicos(data.get("servicos", [])),
            pagamento=_pagamento(data.get("pagamento")),
            informacoes_adicionais=data.get("informacoes_adicionais"),
            valor_total_nfse=_dec(data.get("valor_total_nfse")),
        )

    if kind is DocumentKind.DPS:
        return DPSDocument(
            identificacao=_nfse_identificacao(data.get("identificacao", {})),
            prestador=_prestador(data.get("prestador", {})),
            servicos=_servicos(data.get("servicos", [])),
            tomador=_tomador(data.get("tomador")),
            informacoes_adicionais=data.get("informacoes_adicionais"),
        )

    return EventoCancelamento(
        chave_acesso=str(data.get("chave_acesso", "")),
        documento_autor=str(data.get("documento_autor", "")),
        codigo_justificativa=str(data.get("codigo_justificativa", "")),
        motivo=data.get("motivo", ""),
        tipo_evento=TipoEvento(str(data.get("tipo_evento", "101101"))),
        chave_substituta=data.get("chave_substituta"),
        ambiente=Ambiente.parse(data.get("ambiente")),
        data_evento=_dt(data.get("data_evento")),
    )
