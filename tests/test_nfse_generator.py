from decimal import Decimal

import pytest
from lxml import etree

from app.nfe_client.exceptions import DocumentAssemblyError
from app.nfe_client.models import IBSCBSServico, Servico
from app.nfe_client.nfse_generator import build_dps, build_nfse, codigo_tributacao_nacional
from app.nfe_client.utils import FixedRandomSource
from app.nfe_client.xml_utils import NFSE_NS, SPED_NFSE_NS

N = {"n": NFSE_NS}
S = {"s": SPED_NFSE_NS}


def test_nfse_municipal_id_y_namespace(nfse_model):
    built = build_nfse(nfse_model)
    root = etree.fromstring(built.xml)

    assert root.tag == f"{{{NFSE_NS}}}NFSe"
    assert root.nsmap.get(None) == NFSE_NS
    inf = root.find("n:infNFSe", N)
    assert inf.get("Id") == "NFSe4287654321"
    assert inf.get("versao") == "1.00"
    assert built.verification_code == "87654321"
    assert built.numero == "42"
    assert inf.findtext("n:ide/n:cVerif", namespaces=N) == "87654321"


def test_nfse_municipal_genera_cverif_si_falta(nfse_model):
    nfse_model.identificacao.codigo_verificacao = None
    built = build_nfse(nfse_model, FixedRandomSource("11223344"))
    assert built.verification_code == "11223344"
    assert built.document_id == "NFSe4211223344"


def test_nfse_municipal_totales_e_iss(nfse_model):
    root = etree.fromstring(build_nfse(nfse_model).xml)
    serv_tot = root.find("n:infNFSe/n:total/n:servTot", N)
    assert serv_tot.findtext("n:vServ", namespaces=N) == "1500.00"
    assert serv_tot.findtext("n:vLiq", namespaces=N) == "1500.00"
    assert serv_tot.findtext("n:vISS", namespaces=N) == "30.00"
    iss = root.find("n:infNFSe/n:serv/n:imposto/n:ISS", N)
    assert iss.findtext("n:aliq", namespaces=N) == "2.0000"


def test_nfse_municipal_grupo_ibscbs(nfse_model):
    nfse_model.servicos[0].ibscbs = IBSCBSServico(
        cst="000",
        classificacao_tributaria="000001",
        base_calculo=Decimal("1000.00"),
        aliquota_ibs_uf=Decimal("0.10"),
        aliquota_ibs_municipio=Decimal("0.00"),
        aliquota_cbs=Decimal("0.90"),
    )
    root = etree.fromstring(build_nfse(nfse_model).xml)
    tot = root.find("n:infNFSe/n:total/n:servTot/n:IBSCBSTot", N)
    assert tot.findtext("n:vBCIBSCBS", namespaces=N) == "1000.00"
    assert tot.findtext("n:gIBS/n:vIBS", namespaces=N) == "1.00"
    assert tot.findtext("n:gCBS/n:vCBS", namespaces=N) == "9.00"


def test_nfse_municipal_requiere_tomador(nfse_model):
    nfse_model.tomador = None
    with pytest.raises(DocumentAssemblyError) as exc_info:
        build_nfse(nfse_model)
    assert exc_info.value.field == "tomador"


def test_dps_id_con_numero_de_15_digitos(dps_model):
    built = build_dps(dps_model)
    root = etree.fromstring(built.xml)

    assert root.tag == f"{{{SPED_NFSE_NS}}}DPS"
    assert root.get("versao") == "1.00"
    inf = root.find("s:infDPS", S)
    assert inf.get("Id") == "DPS000000000000123"
    assert len(inf.get("Id")) == 18
    assert inf.findtext("s:nDPS", namespaces=S) == "000000000000123"
    assert inf.findtext("s:dCompet", namespaces=S) == "2026-01-15"
    assert inf.findtext("s:dhEmi", namespaces=S) == "2026-01-15T10:00:00-03:00"
    assert built.numero == "000000000000123"


def test_dps_primer_servicio_define_cserv_y_valores_suman(dps_model):
    dps_model.servicos.append(
        Servico(codigo="0108", discriminacao="Suporte técnico", valor_unitario=Decimal("500.00"))
    )
    root = etree.fromstring(build_dps(dps_model).xml)
    serv = root.find("s:infDPS/s:serv", S)
    assert serv.findtext("s:cServ/s:cTribNac", namespaces=S) == "010701"
    assert serv.findtext("s:locPrest/s:cLocPrestacao", namespaces=S) == "3550308"

    valores = root.find("s:infDPS/s:valores", S)
    assert valores.findtext("s:vServPrest/s:vServ", namespaces=S) == "1500.00"
    assert valores.findtext("s:trib/s:tribMun/s:tribISSQN", namespaces=S) == "1"
    assert valores.findtext("s:trib/s:totTrib/s:vTotTrib/s:vTotTribMun", namespaces=S) == "20.00"
    assert valores.findtext("s:vLiq", namespaces=S) == "1480.00"


def test_dps_sin_servicios(dps_model):
    dps_model.servicos = []
    with pytest.raises(DocumentAssemblyError):
        build_dps(dps_model)


@pytest.mark.parametrize(
    "entrada, esperado",
    [
        ("01.07", "010700"),
        ("0107-01", "010701"),
        ("", "010101"),
        (None, "010101"),
        ("1234567890", "123456"),
    ],
)
def test_codigo_tributacao_nacional(entrada, esperado):
    assert codigo_tributacao_nacional(entrada) == esperado
