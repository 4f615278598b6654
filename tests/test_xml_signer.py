import base64
from datetime import datetime, timezone

import pytest
from lxml import etree

from app.nfe_client.exceptions import CertificateError, ReferenceNotFoundError, SignatureError
from app.nfe_client.nfse_generator import build_dps
from app.nfe_client.pkcs12_utils import load_pkcs12_base64
from app.nfe_client.utils import FixedRandomSource
from app.nfe_client.xml_generator import build_nfe
from app.nfe_client.xml_signer import VERIFY_CONFIG, sign_xml, verify_signature
from app.nfe_client.xml_utils import DS_NS

from conftest import CERT_PASSWORD

DS = {"ds": DS_NS}


def _localname(tag):
    return etree.QName(tag).localname


def test_firma_nfe_sha1_reference_y_ultimo_hijo(nfe_model, certificate):
    built = build_nfe(nfe_model, FixedRandomSource("12345678"))
    signed = sign_xml(built.xml, certificate)

    assert signed.algorithm == "rsa-sha1"
    assert signed.reference_uri == f"#{built.document_id}"

    root = etree.fromstring(signed.xml)
    children = [c for c in root if isinstance(c.tag, str)]
    assert [_localname(c.tag) for c in children] == ["infNFe", "Signature"]

    sig = children[-1]
    assert sig.tag == f"{{{DS_NS}}}Signature"
    assert sig.prefix is None
    assert b"<Signature xmlns=\"http://www.w3.org/2000/09/xmldsig#\"" in signed.xml
    assert sig.find("ds:SignedInfo/ds:Reference", DS).get("URI") == signed.reference_uri
    transforms = [t.get("Algorithm") for t in sig.iterfind("ds:SignedInfo/ds:Reference/ds:Transforms/ds:Transform", DS)]
    assert transforms == [
        "http://www.w3.org/2000/09/xmldsig#enveloped-signature",
        "http://www.w3.org/2001/10/xml-exc-c14n#",
    ]
    assert sig.findtext("ds:KeyInfo/ds:X509Data/ds:X509Certificate", namespaces=DS) == certificate.der_base64()
    assert verify_signature(signed.xml)


def test_firma_dps_sha256(dps_model, certificate):
    signed = sign_xml(build_dps(dps_model).xml, certificate)
    assert signed.algorithm == "rsa-sha256"
    assert signed.reference_uri == "#DPS000000000000123"
    root = etree.fromstring(signed.xml)
    method = root.find("ds:Signature/ds:SignedInfo/ds:SignatureMethod", DS).get("Algorithm")
    assert method == "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256"
    assert verify_signature(signed.xml)


def test_digest_determinista_para_mismo_documento(nfe_model, certificate):
    xml = build_nfe(nfe_model, FixedRandomSource("12345678")).xml
    primera = sign_xml(xml, certificate)
    segunda = sign_xml(xml, certificate)
    assert primera.digest_value == segunda.digest_value
    # RSA PKCS#1 v1.5 es determinista
    assert primera.xml == segunda.xml


def test_alteracion_invalida_la_firma(nfe_model, certificate):
    signed = sign_xml(build_nfe(nfe_model, FixedRandomSource("12345678")).xml, certificate)
    adulterado = signed.xml.replace(b"<vNF>100.00</vNF>", b"<vNF>1.00</vNF>")
    assert adulterado != signed.xml
    assert verify_signature(adulterado) is False


def test_normaliza_textos_antes_de_firmar(nfe_model, certificate):
    nfe_model.informacoes_adicionais = "  Pedido   nº 1ª  via  "
    signed = sign_xml(build_nfe(nfe_model, FixedRandomSource("12345678")).xml, certificate)
    assert "<infCpl>Pedido no 1a via</infCpl>" in signed.xml.decode("utf-8")


def test_sin_elemento_con_id(certificate):
    with pytest.raises(ReferenceNotFoundError) as exc_info:
        sign_xml(b"<raiz><hijo>1</hijo></raiz>", certificate)
    assert exc_info.value.step == "reference"
    assert exc_info.value.unsigned_xml == b"<raiz><hijo>1</hijo></raiz>"


def test_xml_mal_formado(certificate):
    with pytest.raises(SignatureError) as exc_info:
        sign_xml(b"<raiz><sin-cerrar>", certificate)
    assert exc_info.value.step == "parse"


def test_certificado_vencido(nfe_model, expired_cert_b64):
    bundle = load_pkcs12_base64(expired_cert_b64, CERT_PASSWORD)
    with pytest.raises(CertificateError) as exc_info:
        sign_xml(build_nfe(nfe_model).xml, bundle)
    assert exc_info.value.reason == CertificateError.EXPIRED


def test_certificado_todavia_no_vigente(nfe_model, certificate):
    antes = datetime(2000, 1, 1, tzinfo=timezone.utc)
    with pytest.raises(CertificateError) as exc_info:
        sign_xml(build_nfe(nfe_model).xml, certificate, now=antes)
    assert exc_info.value.reason == CertificateError.NOT_YET_VALID


def test_clave_ec_no_soportada(nfe_model, ec_cert_b64):
    bundle = load_pkcs12_base64(ec_cert_b64, CERT_PASSWORD)
    with pytest.raises(CertificateError) as exc_info:
        sign_xml(build_nfe(nfe_model).xml, bundle)
    assert exc_info.value.reason == CertificateError.UNSUPPORTED_KEY


def test_p12_contrasena_incorrecta(cert_b64):
    with pytest.raises(CertificateError) as exc_info:
        load_pkcs12_base64(cert_b64, "errada")
    assert exc_info.value.reason == CertificateError.BAD_PASSPHRASE


def test_p12_base64_invalido():
    with pytest.raises(CertificateError) as exc_info:
        load_pkcs12_base64("no es base64 !!", CERT_PASSWORD)
    assert exc_info.value.reason == CertificateError.INVALID_FORMAT
    with pytest.raises(CertificateError):
        load_pkcs12_base64(base64.b64encode(b"").decode(), CERT_PASSWORD)


def test_firma_verificable_con_xmlverifier(dps_model, certificate):
    from cryptography.hazmat.primitives import serialization
    from signxml import XMLVerifier

    signed = sign_xml(build_dps(dps_model).xml, certificate)
    cert_pem = certificate.certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")
    verified = XMLVerifier().verify(
        signed.xml, x509_cert=cert_pem, id_attribute="Id", expect_config=VERIFY_CONFIG
    )
    assert b"<nDPS>000000000000123</nDPS>" in etree.tostring(verified.signed_xml)


def test_algoritmo_forzado(nfe_model, certificate):
    signed = sign_xml(build_nfe(nfe_model, FixedRandomSource("12345678")).xml, certificate, algorithm="rsa-sha256")
    assert signed.algorithm == "rsa-sha256"
    root = etree.fromstring(signed.xml)
    digest = root.find("ds:Signature/ds:SignedInfo/ds:Reference/ds:DigestMethod", DS).get("Algorithm")
    assert digest == "http://www.w3.org/2001/04/xmlenc#sha256"
    assert verify_signature(signed.xml)


def test_algoritmo_no_soportado(nfe_model, certificate):
    with pytest.raises(SignatureError) as exc_info:
        sign_xml(build_nfe(nfe_model).xml, certificate, algorithm="dsa-sha1")
    assert exc_info.value.step == "algorithm"
    assert exc_info.value.unsigned_xml


def test_valores_base64_sin_saltos_de_linea(nfe_model, certificate):
    signed = sign_xml(build_nfe(nfe_model, FixedRandomSource("12345678")).xml, certificate)
    root = etree.fromstring(signed.xml)
    for path in ("ds:Signature/ds:SignatureValue", "ds:Signature/ds:KeyInfo/ds:X509Data/ds:X509Certificate"):
        text = root.findtext(path, namespaces=DS)
        assert text and "\n" not in text
