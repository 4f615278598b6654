"""
Utilidades para certificados PKCS#12 (A1) recibidos en base64

- Carga del P12/PFX con cryptography (clave, certificado y cadena)
- Verificación de vigencia y tipo de clave antes de firmar
- Conversión a archivos PEM temporales para el contexto TLS de httpx

El P12 sigue siendo la fuente de verdad; los PEM son temporales, se crean
con permisos 600 y se eliminan al salir del context manager.
"""
from __future__ import annotations

import base64
import binascii
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from .exceptions import CertificateError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertificateBundle:
    """Contenido de un PKCS#12 ya descifrado."""
    certificate: x509.Certificate
    private_key: Optional[object] = None
    chain: List[x509.Certificate] = field(default_factory=list)

    @property
    def subject(self) -> str:
        return self.certificate.subject.rfc4514_string()

    @property
    def not_before(self) -> datetime:
        return self.certificate.not_valid_before_utc

    @property
    def not_after(self) -> datetime:
        return self.certificate.not_valid_after_utc

    def der_base64(self) -> str:
        """Certificado en DER/base64 para KeyInfo/X509Data/X509Certificate."""
        der = self.certificate.public_bytes(serialization.Encoding.DER)
        return base64.b64encode(der).decode("ascii")


def load_pkcs12_base64(data_b64: str, password: Optional[str]) -> CertificateBundle:
    """
    Decodifica y descifra un PKCS#12 recibido en base64.

    Args:
        data_b64: Contenido del .pfx/.p12 en base64
        password: Contraseña del PKCS#12

    Returns:
        CertificateBundle (la clave privada puede ser None si el P12 no la trae)

    Raises:
        CertificateError: invalid_format si el base64 o el contenedor son
            ilegibles; bad_passphrase si la contraseña no descifra el P12
    """
    try:
        raw = base64.b64decode((data_b64 or "").strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise CertificateError(
            CertificateError.INVALID_FORMAT,
            f"Certificado en base64 inválido: {e}",
        ) from e
    if not raw:
        raise CertificateError(CertificateError.INVALID_FORMAT, "Certificado vacío")

    password_bytes = password.encode("utf-8") if password else None
    try:
        private_key, certificate, additional = pkcs12.load_key_and_certificates(raw, password_bytes)
    except ValueError as e:
        # cryptography no distingue contraseña incorrecta de datos corruptos
        raise CertificateError(
            CertificateError.BAD_PASSPHRASE,
            "Contraseña del certificado P12 incorrecta o el archivo está corrupto",
        ) from e

    if certificate is None:
        raise CertificateError(
            CertificateError.INVALID_FORMAT,
            "No se pudo extraer el certificado del archivo P12",
        )

    bundle = CertificateBundle(
        certificate=certificate,
        private_key=private_key,
        chain=list(additional or []),
    )
    logger.debug(f"Certificado P12 cargado: subject={bundle.subject}")
    return bundle


def check_certificate(bundle: CertificateBundle, now: Optional[datetime] = None) -> None:
    """
    Verifica que el certificado sirva para firmar en este momento.

    Raises:
        CertificateError: not_yet_valid, expired, missing_private_key o
            unsupported_key (la firma XMLDSig de la SEFAZ exige RSA)
    """
    instante = now or datetime.now(timezone.utc)
    if instante.tzinfo is None:
        instante = instante.astimezone(timezone.utc)

    if instante < bundle.not_before:
        raise CertificateError(
            CertificateError.NOT_YET_VALID,
            f"Certificado todavía no vigente (válido desde {bundle.not_before.isoformat()})",
        )
    if instante > bundle.not_after:
        raise CertificateError(
            CertificateError.EXPIRED,
            f"Certificado vencido en {bundle.not_after.isoformat()}",
        )
    if bundle.private_key is None:
        raise CertificateError(
            CertificateError.MISSING_PRIVATE_KEY,
            "El certificado no contiene clave privada",
        )
    if not isinstance(bundle.private_key, rsa.RSAPrivateKey):
        raise CertificateError(
            CertificateError.UNSUPPORTED_KEY,
            f"Tipo de clave no soportado: {type(bundle.private_key).__name__} (se requiere RSA)",
        )


def bundle_to_temp_pem_files(bundle: CertificateBundle) -> Tuple[str, str]:
    """
    Escribe certificado (con cadena) y clave privada en PEM temporales.

    Returns:
        Tupla (cert_pem_path, key_pem_path) con permisos 600

    Raises:
        CertificateError: missing_private_key si el bundle no trae clave
    """
    if bundle.private_key is None:
        raise CertificateError(
            CertificateError.MISSING_PRIVATE_KEY,
            "El certificado no contiene clave privada",
        )

    cert_pem = bundle.certificate.public_bytes(serialization.Encoding.PEM)
    for extra in bundle.chain:
        cert_pem += extra.public_bytes(serialization.Encoding.PEM)
    key_pem = bundle.private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )

    cert_fd, cert_path = tempfile.mkstemp(suffix=".pem", prefix="nfe_cert_")
    key_fd, key_path = tempfile.mkstemp(suffix=".pem", prefix="nfe_key_")
    try:
        with os.fdopen(cert_fd, "wb") as f:
            f.write(cert_pem)
        with os.fdopen(key_fd, "wb") as f:
            f.write(key_pem)
        os.chmod(cert_path, 0o600)
        os.chmod(key_path, 0o600)
    except OSError:
        cleanup_pem_files(cert_path, key_path)
        raise

    logger.debug(
        f"PEM temporales creados: cert={Path(cert_path).name}, key={Path(key_path).name}"
    )
    return cert_path, key_path


def cleanup_pem_files(cert_path: str, key_path: str) -> None:
    """Elimina los PEM temporales creados por bundle_to_temp_pem_files."""
    for path in [cert_path, key_path]:
        if path and os.path.exists(path):
            try:
                os.unlink(path)
                logger.debug(f"Archivo PEM temporal eliminado: {Path(path).name}")
            except OSError as e:
                logger.warning(f"No se pudo eliminar archivo PEM temporal {Path(path).name}: {str(e)}")


@contextmanager
def temp_pem_files(bundle: CertificateBundle) -> Iterator[Tuple[str, str]]:
    cert_path, key_path = bundle_to_temp_pem_files(bundle)
    try:
        yield cert_path, key_path
    finally:
        cleanup_pem_files(cert_path, key_path)
