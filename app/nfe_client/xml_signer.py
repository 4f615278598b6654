"""
Firma digital XML (XMLDSig enveloped) para NF-e, NFS-e, DPS y eventos

Requisitos de las autoridades:
- Reference URI="#<Id>" del elemento inf* (infNFe, infNFSe, infDPS, infPedReg)
- CanonicalizationMethod: Exclusive XML Canonicalization (exc-c14n), sin comentarios
- Transforms: enveloped-signature + exc-c14n
- RSA PKCS#1 v1.5; SHA-1 para NF-e 4.00 y NFS-e municipal, SHA-256 para el
  Sistema Nacional (DPS y eventos)
- KeyInfo/X509Data/X509Certificate con el certificado del firmante
- Signature como último hijo de la raíz del documento, sin prefijo ds:

La firma la construye signxml (XMLSigner/XMLVerifier).
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from lxml import etree
from signxml import (
    CanonicalizationMethod,
    DigestAlgorithm,
    SignatureConfiguration,
    SignatureMethod,
    XMLSigner,
    XMLVerifier,
    methods,
)
from signxml.exceptions import InvalidInput, InvalidSignature

from .exceptions import ReferenceNotFoundError, SignatureError
from .pkcs12_utils import CertificateBundle, check_certificate
from .xml_utils import DS_NS, _local, normalize_leaf_texts, parse_xml, to_bytes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignatureAlgorithm:
    name: str
    signature_method: SignatureMethod
    digest_algorithm: DigestAlgorithm


RSA_SHA1 = SignatureAlgorithm(
    name="rsa-sha1",
    signature_method=SignatureMethod.RSA_SHA1,
    digest_algorithm=DigestAlgorithm.SHA1,
)
RSA_SHA256 = SignatureAlgorithm(
    name="rsa-sha256",
    signature_method=SignatureMethod.RSA_SHA256,
    digest_algorithm=DigestAlgorithm.SHA256,
)

# (raíz del documento, versão) -> algoritmo
ALGORITHMS: Dict[Tuple[str, str], SignatureAlgorithm] = {
    ("NFe", "4.00"): RSA_SHA1,
    ("NFSe", "1.00"): RSA_SHA1,
    ("DPS", "1.00"): RSA_SHA256,
    ("pedRegEvento", "1.00"): RSA_SHA256,
}

_BY_NAME = {alg.name: alg for alg in (RSA_SHA1, RSA_SHA256)}

# NF-e 4.00 y NFS-e 1.00 siguen exigiendo SHA-1 en la verificación de la SEFAZ
VERIFY_CONFIG = SignatureConfiguration(
    signature_methods=frozenset({SignatureMethod.RSA_SHA1, SignatureMethod.RSA_SHA256}),
    digest_algorithms=frozenset({DigestAlgorithm.SHA1, DigestAlgorithm.SHA256}),
)


class FiscalXMLSigner(XMLSigner):
    """XMLSigner que acepta SHA-1 (signxml lo rechaza por defecto)."""

    def check_deprecated_methods(self):
        pass


@dataclass(frozen=True)
class SignedXml:
    xml: bytes
    reference_uri: str
    algorithm: str
    digest_value: str


def _ds(tag: str) -> str:
    return f"{{{DS_NS}}}{tag}"


def find_reference_target(root: etree._Element) -> Optional[etree._Element]:
    """Primer elemento (en orden de documento) que lleva atributo Id."""
    for el in root.iter():
        if isinstance(el.tag, str) and el.get("Id"):
            return el
    return None


def select_algorithm(root: etree._Element, target: etree._Element) -> SignatureAlgorithm:
    versao = root.get("versao") or target.get("versao") or ""
    alg = ALGORITHMS.get((_local(root.tag), versao))
    if alg is None:
        logger.warning(
            f"Sin algoritmo registrado para raíz={_local(root.tag)} versao={versao!r}; usando rsa-sha256"
        )
        return RSA_SHA256
    return alg


def build_signer(alg: SignatureAlgorithm) -> XMLSigner:
    signer = FiscalXMLSigner(
        method=methods.enveloped,
        signature_algorithm=alg.signature_method,
        digest_algorithm=alg.digest_algorithm,
        c14n_algorithm=CanonicalizationMethod.EXCLUSIVE_XML_CANONICALIZATION_1_0,
    )
    # Signature en el namespace por defecto, sin prefijo ds:
    signer.namespaces = {None: DS_NS}
    return signer


def _compact_base64(sig: etree._Element) -> None:
    # SignatureValue y X509Certificate quedan fuera de SignedInfo
    for tag in ("SignatureValue", "KeyInfo/X509Data/X509Certificate"):
        path = "/".join(_ds(part) for part in tag.split("/"))
        el = sig.find(path)
        if el is not None and el.text:
            el.text = "".join(el.text.split())


def sign_xml(
    xml: Union[bytes, str],
    certificate: CertificateBundle,
    *,
    algorithm: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SignedXml:
    """
    Firma el documento con firma enveloped sobre su elemento con Id.

    Args:
        xml: XML sin firmar (bytes UTF-8 o str)
        certificate: Certificado ya cargado (ver pkcs12_utils.load_pkcs12_base64)
        algorithm: Fuerza "rsa-sha1" o "rsa-sha256"; por defecto según la tabla ALGORITHMS
        now: Instante para verificar la vigencia del certificado

    Returns:
        SignedXml con el XML firmado y los datos de la Reference

    Raises:
        CertificateError: Si el certificado no está vigente o no sirve para firmar
        ReferenceNotFoundError: Si ningún elemento tiene atributo Id
        SignatureError: Si falla el parseo, la canonicalización o la firma RSA
    """
    check_certificate(certificate, now=now)

    unsigned = xml.encode("utf-8") if isinstance(xml, str) else xml
    try:
        root = parse_xml(unsigned)
    except etree.XMLSyntaxError as e:
        raise SignatureError(f"XML inválido (parse): {e}", step="parse", unsigned_xml=unsigned) from e

    normalize_leaf_texts(root)

    target = find_reference_target(root)
    if target is None:
        raise ReferenceNotFoundError(unsigned_xml=unsigned)
    reference_uri = f"#{target.get('Id')}"

    if algorithm is not None:
        if algorithm not in _BY_NAME:
            raise SignatureError(f"Algoritmo de firma no soportado: {algorithm}", step="algorithm", unsigned_xml=unsigned)
        alg = _BY_NAME[algorithm]
    else:
        alg = select_algorithm(root, target)

    cert_pem = certificate.certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")
    try:
        # enveloped: signxml agrega la Signature como último hijo de la raíz
        signed_root = build_signer(alg).sign(
            root,
            key=certificate.private_key,
            cert=cert_pem,
            reference_uri=reference_uri,
            id_attribute="Id",
            always_add_key_value=False,
        )
    except (InvalidInput, etree.C14NError, ValueError, TypeError) as e:
        raise SignatureError(f"Error firmando {reference_uri}: {e}", step="signature", unsigned_xml=unsigned) from e

    sig = signed_root.find(_ds("Signature"))
    if sig is None:
        raise SignatureError("signxml no dejó Signature como hijo de la raíz", step="signature", unsigned_xml=unsigned)
    _compact_base64(sig)
    digest_value = sig.findtext(f"{_ds('SignedInfo')}/{_ds('Reference')}/{_ds('DigestValue')}") or ""

    logger.info(f"Documento firmado: Reference={reference_uri} algoritmo={alg.name}")
    return SignedXml(
        xml=to_bytes(signed_root),
        reference_uri=reference_uri,
        algorithm=alg.name,
        digest_value=digest_value,
    )


def verify_signature(xml: Union[bytes, str]) -> bool:
    """
    Verifica DigestValue y SignatureValue con el certificado de KeyInfo.

    No valida la cadena de confianza, solo la integridad de la firma.

    Returns:
        True si digest y firma coinciden

    Raises:
        SignatureError: Si falta la Signature o su X509Certificate
    """
    root = parse_xml(xml)
    sig = root.find(_ds("Signature"))
    if sig is None:
        raise SignatureError("No se encontró Signature como hijo de la raíz", step="verify")
    cert_b64 = sig.findtext(f"{_ds('KeyInfo')}/{_ds('X509Data')}/{_ds('X509Certificate')}")
    if not cert_b64:
        raise SignatureError("Signature sin X509Certificate", step="verify")

    cert = x509.load_der_x509_certificate(base64.b64decode(cert_b64))
    try:
        XMLVerifier().verify(
            root,
            x509_cert=cert.public_bytes(serialization.Encoding.PEM).decode("ascii"),
            id_attribute="Id",
            expect_config=VERIFY_CONFIG,
        )
    except InvalidSignature as e:
        logger.warning(f"Firma inválida: {e}")
        return False
    return True
