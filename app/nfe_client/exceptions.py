"""
Excepciones personalizadas para el pipeline de documentos fiscales (NF-e / NFS-e / DPS)
"""
from typing import Optional, List, Sequence


class NfeException(Exception):
    """Excepción base para errores del pipeline fiscal"""
    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(self.message)

    @property
    def etapa(self) -> str:
        """Etapa del pipeline donde se originó el error"""
        return "desconocida"


class DocumentAssemblyError(NfeException):
    """Campo faltante o inválido al ensamblar el XML del documento"""
    def __init__(self, field: str, detail: Optional[str] = None):
        self.field = field
        message = f"Campo requerido ausente o inválido: {field}"
        if detail:
            message += f" ({detail})"
        super().__init__(message, "DOCUMENT_ASSEMBLY")

    @property
    def etapa(self) -> str:
        return "montagem"


class KeyAssemblyError(NfeException):
    """Ancho de sub-campo incorrecto al armar la chave de acesso (defecto del builder)"""
    def __init__(self, field: str, expected: int, actual: int, value: str = ""):
        self.field = field
        self.expected = expected
        self.actual = actual
        message = (
            f"Chave de acesso: sub-campo '{field}' con ancho {actual}, "
            f"se esperaban {expected} dígitos (valor={value!r})"
        )
        super().__init__(message, "KEY_ASSEMBLY")

    @property
    def etapa(self) -> str:
        return "chave"


class CertificateError(NfeException):
    """Certificado digital inutilizable (vigencia, clave privada, contraseña)"""

    NOT_YET_VALID = "not_yet_valid"
    EXPIRED = "expired"
    MISSING_PRIVATE_KEY = "missing_private_key"
    BAD_PASSPHRASE = "bad_passphrase"
    INVALID_FORMAT = "invalid_format"
    UNSUPPORTED_KEY = "unsupported_key"

    def __init__(self, reason: str, message: str):
        self.reason = reason
        super().__init__(message, f"CERT_{reason.upper()}")

    @property
    def etapa(self) -> str:
        return "certificado"


class SignatureError(NfeException):
    """Error en la firma digital (referencia, canonicalización o firma RSA)"""
    def __init__(self, message: str, step: str, unsigned_xml: Optional[bytes] = None):
        self.step = step
        self.unsigned_xml = unsigned_xml
        super().__init__(message, "SIGNATURE")

    @property
    def etapa(self) -> str:
        return "assinatura"


class ReferenceNotFoundError(SignatureError):
    """No existe elemento con atributo Id para referenciar en la firma"""
    def __init__(self, unsigned_xml: Optional[bytes] = None):
        super().__init__(
            "No se encontró elemento con atributo Id para la Reference de la firma",
            step="reference",
            unsigned_xml=unsigned_xml,
        )


class SchemaValidationError(NfeException):
    """Errores de validación XSD (informativo, no bloquea el envío por defecto)"""
    def __init__(self, errors: Sequence[str]):
        self.errors: List[str] = list(errors)
        resumen = "; ".join(self.errors[:3])
        message = f"XML no cumple el esquema ({len(self.errors)} errores): {resumen}"
        super().__init__(message, "SCHEMA")

    @property
    def etapa(self) -> str:
        return "validacao_xsd"


class TransportError(NfeException):
    """Falla genuina de conectividad (timeout, TLS, conexión rechazada)"""

    TIMEOUT = "timeout"
    TLS = "tls"
    CONNECT = "connect"
    HTTP = "http"

    def __init__(self, message: str, kind: str, url: Optional[str] = None):
        self.kind = kind
        self.url = url
        super().__init__(message, f"TRANSPORT_{kind.upper()}")

    @property
    def etapa(self) -> str:
        return "transporte"
