from app.nfe_client.models import DocumentKind
from app.nfe_client.response_parser import diagnose_http_error, interpret
from app.nfe_client.transport import RawReply

SOAP_NFE_AUTORIZADA = """<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope xmlns:soap="http://www.w3.org/2003/05/soap-envelope">
  <soap:Body>
    <nfeResultMsg xmlns="http://www.portalfiscal.inf.br/nfe/wsdl/NFeAutorizacao4">
      <retEnviNFe xmlns="http://www.portalfiscal.inf.br/nfe" versao="4.00">
        <tpAmb>2</tpAmb>
        <cStat>104</cStat>
        <xMotivo>Lote processado</xMotivo>
        <protNFe versao="4.00">
          <infProt>
            <chNFe>35260112345678000195550010000000011123456782</chNFe>
            <nProt>135260000000001</nProt>
            <cStat>100</cStat>
            <xMotivo>Autorizado o uso da NF-e</xMotivo>
          </infProt>
        </protNFe>
      </retEnviNFe>
    </nfeResultMsg>
  </soap:Body>
</soap:Envelope>"""


def test_nfe_autorizada_lee_infprot():
    result = interpret(RawReply(200, SOAP_NFE_AUTORIZADA, "https://sefaz"), kind=DocumentKind.NFE)
    assert result.success
    assert not result.processing
    assert result.status_code == "100"
    assert result.reason == "Autorizado o uso da NF-e"
    assert result.protocol_number == "135260000000001"
    assert result.access_key_or_number == "35260112345678000195550010000000011123456782"
    assert result.structured_errors == {}
    assert result.raw_reply == SOAP_NFE_AUTORIZADA


def test_rechazo_conserva_motivo_literal():
    xml = (
        '<retEnviNFe xmlns="http://www.portalfiscal.inf.br/nfe"><cStat>104</cStat>'
        "<protNFe><infProt><cStat>539</cStat>"
        "<xMotivo>Rejeição: Duplicidade de NF-e, com diferença na Chave de Acesso</xMotivo>"
        "</infProt></protNFe></retEnviNFe>"
    )
    result = interpret(xml, sent_payload=b"<enviNFe/>", kind=DocumentKind.NFE)
    assert not result.success
    assert result.is_rejection
    assert result.status_code == "539"
    assert result.reason == "Rejeição: Duplicidade de NF-e, com diferença na Chave de Acesso"
    assert result.message == result.reason
    assert result.sent_payload == "<enviNFe/>"
    assert result.structured_errors["TipoErro"] == ("Rejeicao",)
    assert result.structured_errors["cStat"] == ("539",)


def test_lote_en_procesamiento():
    xml = "<retEnviNFe><cStat>105</cStat><xMotivo>Lote em processamento</xMotivo></retEnviNFe>"
    result = interpret(xml, kind=DocumentKind.NFE)
    assert not result.success
    assert result.processing
    assert not result.is_rejection
    assert result.structured_errors == {}


def test_dps_exitosa_con_link_y_cverif():
    xml = (
        '<retEnviNFSe xmlns="http://www.sped.fazenda.gov.br/nfse"><infNFSe Id="NFSe1">'
        "<cStat>100</cStat><xMotivo>DPS processada</xMotivo><nNFSe>355030800000123</nNFSe>"
        "<cVerif>12345678</cVerif><nProt>20260115100000</nProt>"
        "<linkConsulta>https://nfse.gov.br/consulta/355030800000123</linkConsulta>"
        "</infNFSe></retEnviNFSe>"
    )
    result = interpret(xml.encode("utf-8"), kind=DocumentKind.DPS)
    assert result.success
    assert result.access_key_or_number == "355030800000123"
    assert result.verification_code == "12345678"
    assert result.link_consulta.endswith("/355030800000123")


def test_codigo_101_es_exito_fuera_de_nfe():
    xml = "<retRegEvento><infEvento><cStat>101</cStat><chNFSe>123</chNFSe></infEvento></retRegEvento>"
    assert interpret(xml, kind=DocumentKind.EVENTO).success
    assert interpret(xml, kind=DocumentKind.EVENTO).access_key_or_number == "123"
    assert not interpret(xml, kind=DocumentKind.NFE).success


def test_simulado_se_propaga():
    raw = RawReply(200, "<retEnviNFSe><cStat>100</cStat></retEnviNFSe>", "https://x", simulated=True)
    assert interpret(raw, kind=DocumentKind.DPS).simulated


def test_respuesta_no_xml():
    result = interpret(RawReply(200, "esto no es xml", "https://x"), kind=DocumentKind.DPS)
    assert not result.success
    assert result.structured_errors["TipoErro"] == ("RespostaInvalida",)


def test_http_error_html_usa_title():
    html = "<!DOCTYPE html><html><head><title>503 Service Unavailable</title></head><body></body></html>"
    result = interpret(RawReply(503, html, "https://sefaz/ws"), kind=DocumentKind.NFE)
    assert not result.success
    assert result.status_code == "503"
    assert "503 Service Unavailable" in result.message
    assert result.structured_errors["Mensagem"] == ("503 Service Unavailable",)
    assert result.structured_errors["URL"] == ("https://sefaz/ws",)


def test_http_error_soap_fault():
    fault = (
        '<soap:Envelope xmlns:soap="http://www.w3.org/2003/05/soap-envelope"><soap:Body><soap:Fault>'
        "<soap:Reason><soap:Text>Server was unable to process request</soap:Text></soap:Reason>"
        "</soap:Fault></soap:Body></soap:Envelope>"
    )
    message, errors, _ = diagnose_http_error(500, fault)
    assert errors["TipoErro"] == ("SoapFault",)
    assert "Server was unable to process request" in message


def test_http_error_con_retenvinfse_extrae_cstat():
    body = "<retEnviNFSe><cStat>215</cStat><xMotivo>Falha no schema XML</xMotivo></retEnviNFSe>"
    result = interpret(RawReply(400, body, "https://nfse"), kind=DocumentKind.NFSE)
    assert result.status_code == "215"
    assert result.reason == "Falha no schema XML"
    assert result.structured_errors["TipoErro"] == ("Rejeicao",)


def test_http_error_texto_plano_trunca():
    message, errors, _ = diagnose_http_error(502, "x" * 500)
    assert errors["Mensagem"] == ("x" * 200,)
    assert message.startswith("Erro HTTP 502")


def test_to_dict_serializable():
    result = interpret("<ret><cStat>999</cStat><xMotivo>Erro</xMotivo></ret>", kind=DocumentKind.DPS)
    data = result.to_dict()
    assert data["structured_errors"]["cStat"] == ["999"]
    assert isinstance(data["timestamp"], str)
