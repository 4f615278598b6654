import base64
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.nfe_client.models import (  # noqa: E402
    Destinatario,
    DPSDocument,
    Emitente,
    Endereco,
    EventoCancelamento,
    Identificacao,
    NFeDocument,
    NFSeDocument,
    NFSeIdentificacao,
    Prestador,
    Produto,
    RegimeTributario,
    Servico,
    Tomador,
    TributacaoServico,
)
from app.nfe_client.pkcs12_utils import load_pkcs12_base64  # noqa: E402

CERT_PASSWORD = "senha123"
BRT = timezone(timedelta(hours=-3))


def _self_signed(key, not_before: datetime, not_after: datetime) -> x509.Certificate:
    name = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "BR"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "EMPRESA TESTE LTDA"),
        x509.NameAttribute(NameOID.COMMON_NAME, "EMPRESA TESTE LTDA:12345678000195"),
    ])
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )


def _p12_b64(key, cert, password: str = CERT_PASSWORD) -> str:
    data = pkcs12.serialize_key_and_certificates(
        b"teste",
        key,
        cert,
        None,
        serialization.BestAvailableEncryption(password.encode("utf-8")),
    )
    return base64.b64encode(data).decode("ascii")


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def cert_b64(rsa_key) -> str:
    now = datetime.now(timezone.utc)
    cert = _self_signed(rsa_key, now - timedelta(days=1), now + timedelta(days=365))
    return _p12_b64(rsa_key, cert)


@pytest.fixture(scope="session")
def expired_cert_b64(rsa_key) -> str:
    now = datetime.now(timezone.utc)
    cert = _self_signed(rsa_key, now - timedelta(days=400), now - timedelta(days=1))
    return _p12_b64(rsa_key, cert)


@pytest.fixture(scope="session")
def ec_cert_b64() -> str:
    key = ec.generate_private_key(ec.SECP256R1())
    now = datetime.now(timezone.utc)
    cert = _self_signed(key, now - timedelta(days=1), now + timedelta(days=365))
    return _p12_b64(key, cert)


@pytest.fixture(scope="session")
def certificate(cert_b64):
    return load_pkcs12_base64(cert_b64, CERT_PASSWORD)


def _endereco(codigo_municipio: str = "3550308") -> Endereco:
    return Endereco(
        logradouro="Rua das Flores",
        numero="100",
        bairro="Centro",
        codigo_municipio=codigo_municipio,
        nome_municipio="São Paulo",
        uf="SP",
        cep="01001-000",
    )


def _prestador() -> Prestador:
    return Prestador(
        razao_social="EMPRESA TESTE LTDA",
        inscricao_municipal="1234567",
        endereco=_endereco(),
        cnpj="12.345.678/0001-95",
    )


def _tomador() -> Tomador:
    return Tomador(
        documento="98.765.432/0001-10",
        nome="CLIENTE EXEMPLO SA",
        endereco=_endereco(),
    )


@pytest.fixture
def nfe_model() -> NFeDocument:
    return NFeDocument(
        identificacao=Identificacao(
            codigo_uf="35",
            numero=1,
            data_emissao=datetime(2026, 1, 15, 10, 0, 0, tzinfo=BRT),
            codigo_municipio_fg="3550308",
        ),
        emitente=Emitente(
            cnpj="12.345.678/0001-95",
            razao_social="EMPRESA TESTE LTDA",
            inscricao_estadual="123.456.789.110",
            endereco=_endereco(),
            regime=RegimeTributario.NORMAL,
        ),
        destinatario=Destinatario(
            documento="98.765.432/0001-10",
            nome="CLIENTE EXEMPLO SA",
            endereco=_endereco(),
        ),
        produtos=[
            Produto(
                codigo="P001",
                descricao="Parafuso sextavado",
                ncm="73181500",
                cfop="5102",
                quantidade=Decimal("10"),
                valor_unitario=Decimal("10.00"),
            ),
        ],
    )


@pytest.fixture
def nfse_model() -> NFSeDocument:
    return NFSeDocument(
        identificacao=NFSeIdentificacao(
            codigo_municipio="3550308",
            numero=42,
            data_emissao=datetime(2026, 1, 15, 10, 0, 0, tzinfo=BRT),
            codigo_verificacao="87654321",
        ),
        prestador=_prestador(),
        tomador=_tomador(),
        servicos=[
            Servico(
                codigo="0107",
                discriminacao="Desenvolvimento de software sob encomenda",
                valor_unitario=Decimal("1500.00"),
                codigo_classificacao="01.07",
                tributacao=TributacaoServico(
                    aliquota=Decimal("2.00"),
                    base_calculo=Decimal("1500.00"),
                    valor_iss=Decimal("30.00"),
                ),
            ),
        ],
    )


@pytest.fixture
def dps_model() -> DPSDocument:
    return DPSDocument(
        identificacao=NFSeIdentificacao(
            codigo_municipio="3550308",
            numero=123,
            data_emissao=datetime(2026, 1, 15, 10, 0, 0, tzinfo=BRT),
        ),
        prestador=_prestador(),
        tomador=_tomador(),
        servicos=[
            Servico(
                codigo="0107",
                discriminacao="Desenvolvimento de software sob encomenda",
                valor_unitario=Decimal("1000.00"),
                codigo_classificacao="0107-01",
                tributacao=TributacaoServico(aliquota=Decimal("2.00"), valor_iss=Decimal("20.00")),
            ),
        ],
    )


@pytest.fixture
def evento_model() -> EventoCancelamento:
    return EventoCancelamento(
        chave_acesso="35503081234567800019500000000000012601000000001",
        documento_autor="12.345.678/0001-95",
        codigo_justificativa="1",
        motivo="Erro na emissão",
        data_evento=datetime(2026, 1, 20, 9, 30, 0, tzinfo=BRT),
    )
