import copy
from decimal import Decimal

import pytest

from app.nfe_client.exceptions import DocumentAssemblyError
from app.nfe_client.models import (
    Ambiente,
    DocumentKind,
    DPSDocument,
    EventoCancelamento,
    NFeDocument,
    RegimeTributario,
    SubmissionResult,
    TipoEvento,
    document_from_dict,
)
from app.nfe_client.utils import FixedRandomSource
from app.nfe_client.xml_generator import build_document


@pytest.mark.parametrize(
    "valor, esperado",
    [
        ("producao", Ambiente.PRODUCAO),
        ("1", Ambiente.PRODUCAO),
        ("prod", Ambiente.PRODUCAO),
        ("homologacao", Ambiente.HOMOLOGACAO),
        ("test", Ambiente.HOMOLOGACAO),
        (None, Ambiente.HOMOLOGACAO),
        (2, Ambiente.HOMOLOGACAO),
    ],
)
def test_ambiente_parse(valor, esperado):
    assert Ambiente.parse(valor) is esperado


def test_ambiente_parse_invalido():
    with pytest.raises(ValueError):
        Ambiente.parse("staging")


def test_document_from_dict_nfe():
    doc = document_from_dict({
        "tipo": "nfe",
        "identificacao": {
            "codigo_uf": 35,
            "numero": 7,
            "data_emissao": "2026-01-15T10:00:00-03:00",
            "codigo_municipio_fg": "3550308",
            "ambiente": "homologacao",
        },
        "emitente": {"cnpj": "12345678000195", "razao_social": "EMPRESA", "regime": "1"},
        "destinatario": {"documento": "12345678909", "nome": "FULANO", "tipo": "PF"},
        "produtos": [{"codigo": "1", "descricao": "Item", "quantidade": 2, "valor_unitario": 0.1}],
    })
    assert isinstance(doc, NFeDocument)
    assert doc.kind is DocumentKind.NFE
    assert doc.identificacao.codigo_uf == "35"
    assert doc.emitente.regime is RegimeTributario.SIMPLES_NACIONAL
    assert doc.produtos[0].valor_unitario == Decimal("0.1")
    assert doc.produtos[0].total == Decimal("0.2")


def test_document_from_dict_dps_y_evento():
    dps = document_from_dict({
        "tipo": "DPS",
        "identificacao": {"codigo_municipio": "3550308", "numero": 5},
        "prestador": {"razao_social": "EMPRESA", "cnpj": "12345678000195"},
        "servicos": [{"codigo": "0107", "discriminacao": "Serviço", "valor_unitario": "100"}],
    })
    assert isinstance(dps, DPSDocument)
    assert dps.servicos[0].quantidade == Decimal("1")

    evento = document_from_dict({
        "tipo": "evento",
        "chave_acesso": "123",
        "documento_autor": "12345678000195",
        "codigo_justificativa": "2",
        "tipo_evento": "105102",
    })
    assert isinstance(evento, EventoCancelamento)
    assert evento.tipo_evento is TipoEvento.CANCELAMENTO_SUBSTITUICAO


def test_document_from_dict_tipo_desconocido():
    with pytest.raises(ValueError):
        document_from_dict({"tipo": "cte"})


def test_submission_result_inmutable():
    result = SubmissionResult(success=True, message="ok")
    with pytest.raises(AttributeError):
        result.success = False


ENDERECO = {
    "logradouro": "Rua das Flores",
    "numero": "100",
    "bairro": "Centro",
    "codigo_municipio": "3550308",
    "nome_municipio": "São Paulo",
    "uf": "SP",
    "cep": "01001-000",
}

NFE_DICT = {
    "tipo": "nfe",
    "identificacao": {
        "codigo_uf": "35",
        "numero": 9,
        "data_emissao": "2026-01-15T10:00:00-03:00",
        "codigo_municipio_fg": "3550308",
    },
    "emitente": {
        "cnpj": "12345678000195",
        "razao_social": "EMPRESA TESTE LTDA",
        "inscricao_estadual": "123456789110",
        "endereco": ENDERECO,
    },
    "destinatario": {"documento": "98765432000110", "nome": "CLIENTE", "endereco": ENDERECO},
    "produtos": [
        {"codigo": "P1", "descricao": "Item", "ncm": "73181500", "cfop": "5102", "quantidade": 1, "valor_unitario": "10.00"}
    ],
}

DPS_DICT = {
    "tipo": "dps",
    "identificacao": {"codigo_municipio": "3550308", "numero": 5, "data_emissao": "2026-01-15T10:00:00-03:00"},
    "prestador": {"razao_social": "EMPRESA", "cnpj": "12345678000195"},
    "servicos": [{"codigo": "0107", "discriminacao": "Serviço", "valor_unitario": "100"}],
}


def test_nfe_completa_se_arma():
    built = build_document(document_from_dict(NFE_DICT), FixedRandomSource("12345678"))
    assert built.numero == "9"
    assert built.access_key.startswith("352601")


@pytest.mark.parametrize("campo", ["codigo_uf", "numero", "data_emissao"])
def test_nfe_sin_campo_de_identificacao_no_usa_default(campo):
    data = copy.deepcopy(NFE_DICT)
    del data["identificacao"][campo]
    doc = document_from_dict(data)
    assert getattr(doc.identificacao, campo) is None
    with pytest.raises(DocumentAssemblyError) as exc_info:
        build_document(doc, FixedRandomSource("12345678"))
    assert exc_info.value.field == f"identificacao.{campo}"


@pytest.mark.parametrize("campo", ["quantidade", "valor_unitario"])
def test_nfe_producto_sin_valores(campo):
    data = copy.deepcopy(NFE_DICT)
    del data["produtos"][0][campo]
    with pytest.raises(DocumentAssemblyError) as exc_info:
        build_document(document_from_dict(data), FixedRandomSource("12345678"))
    assert exc_info.value.field == f"produtos[0].{campo}"


@pytest.mark.parametrize("campo", ["numero", "data_emissao"])
def test_dps_sin_campo_de_identificacao(campo):
    data = copy.deepcopy(DPS_DICT)
    del data["identificacao"][campo]
    with pytest.raises(DocumentAssemblyError) as exc_info:
        build_document(document_from_dict(data))
    assert exc_info.value.field == f"identificacao.{campo}"


def test_dps_servico_sin_valor_unitario():
    data = copy.deepcopy(DPS_DICT)
    del data["servicos"][0]["valor_unitario"]
    with pytest.raises(DocumentAssemblyError) as exc_info:
        build_document(document_from_dict(data))
    assert exc_info.value.field == "servicos[0].valor_unitario"


def test_nfse_sin_codigo_uf_lo_toma_del_municipio(nfse_model):
    from app.nfe_client.nfse_generator import build_nfse

    assert nfse_model.identificacao.codigo_uf is None
    built = build_nfse(nfse_model)
    assert b"<cUF>35</cUF>" in built.xml
