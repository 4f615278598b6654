from decimal import Decimal

import pytest
from lxml import etree

from app.nfe_client.exceptions import DocumentAssemblyError
from app.nfe_client.models import Produto, RegimeTributario
from app.nfe_client.utils import FixedRandomSource
from app.nfe_client.xml_generator import build_document, build_nfe
from app.nfe_client.xml_utils import NFE_NS

NS = {"n": NFE_NS}


def _children(el):
    return [etree.QName(c).localname for c in el if isinstance(c.tag, str)]


def _build(model):
    built = build_nfe(model, FixedRandomSource("12345678"))
    return built, etree.fromstring(built.xml)


def test_nfe_raiz_namespace_default_e_id(nfe_model):
    built, root = _build(nfe_model)

    assert root.tag == f"{{{NFE_NS}}}NFe"
    assert root.nsmap.get(None) == NFE_NS
    assert b"<NFe xmlns=" in built.xml

    inf = root.find("n:infNFe", NS)
    assert inf.get("versao") == "4.00"
    assert inf.get("Id") == "NFe35260112345678000195550010000000011123456782"
    assert built.document_id == inf.get("Id")
    assert built.access_key == "35260112345678000195550010000000011123456782"


def test_nfe_orden_de_hijos_de_infnfe(nfe_model):
    _, root = _build(nfe_model)
    inf = root.find("n:infNFe", NS)
    assert _children(inf) == ["ide", "emit", "dest", "det", "total", "transp"]


def test_nfe_ide_usa_cnf_y_dv_de_la_chave(nfe_model):
    _, root = _build(nfe_model)
    ide = root.find("n:infNFe/n:ide", NS)
    assert ide.findtext("n:cNF", namespaces=NS) == "12345678"
    assert ide.findtext("n:cDV", namespaces=NS) == "2"
    assert ide.findtext("n:serie", namespaces=NS) == "1"
    assert ide.findtext("n:dhEmi", namespaces=NS) == "2026-01-15T10:00:00-03:00"
    assert ide.findtext("n:tpAmb", namespaces=NS) == "2"


def test_nfe_regime_normal_icms00_y_totales(nfe_model):
    _, root = _build(nfe_model)
    imposto = root.find("n:infNFe/n:det/n:imposto", NS)

    assert imposto.find("n:ICMS/n:ICMS00", NS) is not None
    assert imposto.findtext("n:ICMS/n:ICMS00/n:vICMS", namespaces=NS) == "18.00"
    assert imposto.findtext("n:PIS/n:PISAliq/n:vPIS", namespaces=NS) == "1.65"
    assert imposto.findtext("n:COFINS/n:COFINSAliq/n:vCOFINS", namespaces=NS) == "7.60"

    tot = root.find("n:infNFe/n:total/n:ICMSTot", NS)
    assert _children(tot)[:2] == ["vBC", "vICMS"]
    assert _children(tot)[-2:] == ["vNF", "vTotTrib"]
    assert tot.findtext("n:vProd", namespaces=NS) == "100.00"
    assert tot.findtext("n:vNF", namespaces=NS) == "100.00"
    assert tot.findtext("n:vTotTrib", namespaces=NS) == "27.25"


def test_nfe_simples_nacional_icmssn102_y_pis_nt(nfe_model):
    nfe_model.emitente.regime = RegimeTributario.SIMPLES_NACIONAL
    _, root = _build(nfe_model)
    imposto = root.find("n:infNFe/n:det/n:imposto", NS)

    assert imposto.find("n:ICMS/n:ICMSSN102", NS) is not None
    assert imposto.find("n:ICMS/n:ICMS00", NS) is None
    assert imposto.findtext("n:PIS/n:PISNT/n:CST", namespaces=NS) == "07"
    assert imposto.findtext("n:COFINS/n:COFINSNT/n:CST", namespaces=NS) == "07"
    assert root.findtext("n:infNFe/n:total/n:ICMSTot/n:vBC", namespaces=NS) == "0.00"
    assert root.findtext("n:infNFe/n:total/n:ICMSTot/n:vTotTrib", namespaces=NS) == "0.00"


def test_nfe_valores_opcionales_solo_si_positivos(nfe_model):
    nfe_model.produtos.append(
        Produto(
            codigo="P002",
            descricao="Porca",
            ncm="73181600",
            cfop="5102",
            quantidade=Decimal("1"),
            valor_unitario=Decimal("50"),
            frete=Decimal("5"),
            desconto=Decimal("2"),
        )
    )
    _, root = _build(nfe_model)
    dets = root.findall("n:infNFe/n:det", NS)
    assert [d.get("nItem") for d in dets] == ["1", "2"]
    assert dets[0].find("n:prod/n:vFrete", NS) is None
    assert dets[1].findtext("n:prod/n:vFrete", namespaces=NS) == "5.00"
    assert dets[1].findtext("n:prod/n:vDesc", namespaces=NS) == "2.00"
    assert dets[1].find("n:prod/n:vSeg", NS) is None
    assert root.findtext("n:infNFe/n:total/n:ICMSTot/n:vNF", namespaces=NS) == "153.00"


def test_nfe_montos_con_punto_decimal(nfe_model):
    nfe_model.produtos[0].valor_unitario = Decimal("1234.5")
    nfe_model.produtos[0].quantidade = Decimal("1")
    built, root = _build(nfe_model)
    assert root.findtext("n:infNFe/n:det/n:prod/n:vProd", namespaces=NS) == "1234.50"
    assert root.findtext("n:infNFe/n:det/n:prod/n:qCom", namespaces=NS) == "1.0000"
    assert b"1234,50" not in built.xml


def test_nfe_falta_campo_requerido(nfe_model):
    nfe_model.identificacao.codigo_municipio_fg = ""
    with pytest.raises(DocumentAssemblyError) as exc_info:
        build_nfe(nfe_model, FixedRandomSource("12345678"))
    assert exc_info.value.field == "identificacao.codigo_municipio_fg"


def test_nfe_sin_productos(nfe_model):
    nfe_model.produtos = []
    with pytest.raises(DocumentAssemblyError) as exc_info:
        build_nfe(nfe_model)
    assert exc_info.value.field == "produtos"


def test_build_document_despacha_por_tipo(nfe_model, nfse_model, dps_model, evento_model):
    assert build_document(nfe_model).xml.startswith(b"<?xml")
    assert build_document(nfse_model).document_id.startswith("NFSe")
    assert build_document(dps_model).document_id.startswith("DPS")
    assert build_document(evento_model).document_id.startswith("ID")
