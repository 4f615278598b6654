"""
Módulo cliente para emisión de documentos fiscales electrónicos brasileños
NF-e 4.00, NFS-e municipal, DPS y eventos del Sistema Nacional NFS-e
"""
from .config import NfeConfig, get_nfe_config
from .chave_utils import AccessKey, calc_dv_mod11, generate_access_key, validate_access_key
from .models import (
    Ambiente,
    BuiltDocument,
    DocumentKind,
    DPSDocument,
    EventoCancelamento,
    NFeDocument,
    NFSeDocument,
    SubmissionResult,
    document_from_dict,
)
from .xml_generator import build_document
from .xml_signer import SignedXml, sign_xml, verify_signature
from .xsd_validator import ValidationResult, validate_xml
from .soap_envelope import TransportEnvelope, header_for, wrap
from .simulation import SIMULATION
from .transport import EndpointSelector, RawReply, consultar, submit
from .response_parser import interpret
from .pkcs12_utils import CertificateBundle, load_pkcs12_base64
from .exceptions import (
    NfeException,
    DocumentAssemblyError,
    KeyAssemblyError,
    CertificateError,
    SignatureError,
    ReferenceNotFoundError,
    SchemaValidationError,
    TransportError,
)

__all__ = [
    'NfeConfig',
    'get_nfe_config',
    'AccessKey',
    'calc_dv_mod11',
    'generate_access_key',
    'validate_access_key',
    'Ambiente',
    'BuiltDocument',
    'DocumentKind',
    'DPSDocument',
    'EventoCancelamento',
    'NFeDocument',
    'NFSeDocument',
    'SubmissionResult',
    'document_from_dict',
    'build_document',
    'SignedXml',
    'sign_xml',
    'verify_signature',
    'ValidationResult',
    'validate_xml',
    'TransportEnvelope',
    'header_for',
    'wrap',
    'SIMULATION',
    'EndpointSelector',
    'RawReply',
    'consultar',
    'submit',
    'interpret',
    'CertificateBundle',
    'load_pkcs12_base64',
    'NfeException',
    'DocumentAssemblyError',
    'KeyAssemblyError',
    'CertificateError',
    'SignatureError',
    'ReferenceNotFoundError',
    'SchemaValidationError',
    'TransportError',
]
