"""
Cliente de transporte HTTPS con certificado de cliente (mTLS)

Cada envío crea su propio httpx.AsyncClient y su propio ssl.SSLContext con
el certificado de la llamada; no hay pool compartido entre certificados.

Regla de fallback: si el host de destino no resuelve (socket.gaierror en la
cadena de la excepción) se devuelve una respuesta simulada. Timeout, TLS y
conexión rechazada se propagan como TransportError.
"""
from __future__ import annotations

import logging
import socket
import ssl
from dataclasses import dataclass
from typing import Optional, Union

import httpx

from .config import NfeConfig, get_nfe_config
from .exceptions import TransportError
from .models import Ambiente, DocumentKind
from .pkcs12_utils import CertificateBundle, temp_pem_files
from .simulation import SIMULATION, simulate_consulta, simulated_reply
from .soap_envelope import EnvelopeStyle, TransportEnvelope
from .utils import RandomSource, truncate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawReply:
    """Respuesta HTTP cruda (o simulada) antes de interpretarla."""
    status_code: int
    text: str
    url: str
    simulated: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class EndpointSelector:
    """
    Destino del envío.

    Args:
        kind: Tipo de documento (decide tabla y servicio)
        ambiente: Homologação o produção
        codigo_uf: cUF de la NF-e (ignorado para NFS-e/DPS/eventos)
    """
    kind: DocumentKind
    ambiente: Ambiente = Ambiente.HOMOLOGACAO
    codigo_uf: Optional[str] = None

    def resolve(self, config: Optional[NfeConfig] = None) -> str:
        config = config or get_nfe_config(self.ambiente)
        if self.kind is DocumentKind.NFE:
            return config.nfe_autorizacao_url(self.codigo_uf or "")
        if self.kind is DocumentKind.NFSE:
            return config.nfse_url()
        if self.kind is DocumentKind.DPS:
            return config.nacional_url("dps")
        return config.nacional_url("eventos")


def _chain_has(exc: BaseException, types) -> bool:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, types):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def is_dns_failure(exc: BaseException) -> bool:
    """True si algún eslabón de __cause__/__context__ es un socket.gaierror."""
    return _chain_has(exc, socket.gaierror)


def build_ssl_context(config: NfeConfig, certificate: Optional[CertificateBundle]) -> ssl.SSLContext:
    """
    SSLContext propio de la llamada.

    En homologação no se valida el certificado del servidor; en produção
    siempre se valida (con NFE_CA_BUNDLE_PATH si está configurado).
    """
    if config.verify_tls:
        cafile = str(config.ca_bundle_path) if config.ca_bundle_path else None
        ctx = ssl.create_default_context(cafile=cafile)
    else:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE

    if certificate is not None:
        # load_cert_chain lee los PEM en el acto; se borran al salir del with
        with temp_pem_files(certificate) as (cert_path, key_path):
            ctx.load_cert_chain(certfile=cert_path, keyfile=key_path)
    return ctx


async def _request(
    method: str,
    url: str,
    *,
    headers: dict,
    content: Optional[bytes],
    ctx: ssl.SSLContext,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport],
) -> httpx.Response:
    async with httpx.AsyncClient(verify=ctx, timeout=timeout, transport=transport) as client:
        return await client.request(method, url, headers=headers, content=content)


def _raise_transport_error(exc: httpx.HTTPError, url: str, timeout: float) -> None:
    if isinstance(exc, httpx.TimeoutException):
        logger.error(f"Timeout ({timeout}s) contactando {url}")
        raise TransportError(
            f"Timeout: el servidor no respondió en {timeout} segundos ({url})",
            TransportError.TIMEOUT,
            url,
        ) from exc
    if _chain_has(exc, ssl.SSLError):
        logger.error(f"Error TLS contactando {url}: {exc}")
        raise TransportError(f"Error TLS/SSL con {url}: {exc}", TransportError.TLS, url) from exc
    if isinstance(exc, httpx.ConnectError):
        logger.error(f"Error de conexión con {url}: {exc}")
        raise TransportError(f"Error de conexión con {url}: {exc}", TransportError.CONNECT, url) from exc
    logger.error(f"Error HTTP con {url}: {type(exc).__name__}: {exc}")
    raise TransportError(f"Error HTTP con {url}: {exc}", TransportError.HTTP, url) from exc


async def submit(
    envelope: TransportEnvelope,
    selector: EndpointSelector,
    certificate: CertificateBundle,
    timeout: Optional[float] = None,
    *,
    config: Optional[NfeConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    random_source: Optional[RandomSource] = None,
) -> RawReply:
    """
    Envía el envelope al endpoint del selector.

    Args:
        envelope: Envelope SOAP o REST ya armado
        selector: Tipo de documento, ambiente y cUF
        certificate: Certificado de cliente de esta llamada
        timeout: Segundos; por defecto NFE_REQUEST_TIMEOUT
        config: Configuración; por defecto la del ambiente del selector
        transport: Transporte httpx alternativo (tests: httpx.MockTransport)
        random_source: Fuente para el cVerif de las respuestas simuladas

    Returns:
        RawReply con status HTTP y cuerpo (simulated=True si hubo fallback DNS)

    Raises:
        TransportError: timeout, TLS, conexión rechazada u otro error HTTP
        CertificateError: Si el certificado no trae clave privada
    """
    config = config or get_nfe_config(selector.ambiente)
    url = selector.resolve(config)
    timeout = float(timeout if timeout is not None else config.request_timeout)
    headers = envelope.http_headers()
    if envelope.style is EnvelopeStyle.REST:
        headers["User-Agent"] = config.USER_AGENT

    ctx = build_ssl_context(config, certificate)
    logger.info(f"POST {url} ({envelope.style.value}, {len(envelope.body)} bytes, ambiente={config.env})")

    try:
        response = await _request(
            "POST", url, headers=headers, content=envelope.body, ctx=ctx, timeout=timeout, transport=transport
        )
    except httpx.HTTPError as e:
        if isinstance(e, httpx.ConnectError) and is_dns_failure(e):
            logger.log(SIMULATION, f"Host de {url} no resuelve (DNS); devolviendo respuesta simulada")
            body = simulated_reply(envelope.kind, envelope.body, random_source)
            return RawReply(status_code=200, text=body.decode("utf-8"), url=url, simulated=True)
        _raise_transport_error(e, url, timeout)

    logger.info(f"Respuesta HTTP {response.status_code} de {url}")
    if response.status_code >= 400:
        logger.warning(f"Cuerpo de error: {truncate(response.text)}")
    return RawReply(status_code=response.status_code, text=response.text, url=url)


async def consultar(
    chave: str,
    ambiente: Union[Ambiente, str, None] = None,
    *,
    certificate: Optional[CertificateBundle] = None,
    config: Optional[NfeConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    random_source: Optional[RandomSource] = None,
) -> RawReply:
    """
    Consulta una NFS-e por chave en el Sistema Nacional (GET /nfse/{chave}).

    Misma regla de fallback que submit: DNS -> respuesta simulada.
    """
    config = config or get_nfe_config(ambiente)
    url = config.nacional_url("consulta", chave=chave)
    timeout = float(config.consulta_timeout)
    headers = {"Accept": "application/xml", "User-Agent": config.USER_AGENT}
    ctx = build_ssl_context(config, certificate)

    logger.info(f"GET {url}")
    try:
        response = await _request(
            "GET", url, headers=headers, content=None, ctx=ctx, timeout=timeout, transport=transport
        )
    except httpx.HTTPError as e:
        if isinstance(e, httpx.ConnectError) and is_dns_failure(e):
            logger.log(SIMULATION, f"Host de {url} no resuelve (DNS); devolviendo consulta simulada")
            body = simulate_consulta(chave, random_source)
            return RawReply(status_code=200, text=body.decode("utf-8"), url=url, simulated=True)
        _raise_transport_error(e, url, timeout)

    logger.info(f"Respuesta HTTP {response.status_code} de {url}")
    return RawReply(status_code=response.status_code, text=response.text, url=url)
