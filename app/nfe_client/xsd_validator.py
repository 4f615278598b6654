"""
Validador XSD local (offline) para NF-e, DPS y eventos.

Cada tipo de documento tiene un conjunto ordenado de esquemas (tipos base,
tipos complejos, documento, xmldsig). Los includes/imports se resuelven
desde el directorio local en lugar de URLs remotas.

La validación es informativa: si faltan esquemas o no compilan el resultado
queda "degradado" (valid=True, degraded=True) y se registra un warning.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from lxml import etree

from .exceptions import SchemaValidationError
from .models import DocumentKind

logger = logging.getLogger(__name__)

# tipo -> (esquema principal, conjunto requerido en orden de dependencia)
SCHEMA_SETS: Dict[DocumentKind, Tuple[Optional[str], List[str]]] = {
    DocumentKind.NFE: (
        "nfe_v4.00.xsd",
        ["tiposBasico_v4.00.xsd", "leiauteNFe_v4.00.xsd", "nfe_v4.00.xsd", "xmldsig-core-schema_v1.01.xsd"],
    ),
    DocumentKind.DPS: (
        "DPS_v1.00.xsd",
        ["tiposSimples_v1.00.xsd", "tiposComplexos_v1.00.xsd", "DPS_v1.00.xsd", "xmldsig-core-schema.xsd"],
    ),
    DocumentKind.EVENTO: (
        "pedRegEvento_v1.00.xsd",
        [
            "tiposSimples_v1.00.xsd",
            "tiposComplexos_v1.00.xsd",
            "tiposEventos_v1.00.xsd",
            "pedRegEvento_v1.00.xsd",
            "evento_v1.00.xsd",
            "xmldsig-core-schema.xsd",
        ],
    ),
    # la NFS-e municipal no publica leiaute XSD propio
    DocumentKind.NFSE: (None, []),
}

_schema_cache: Dict[Tuple[str, float], etree.XMLSchema] = {}


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    degraded: bool = False
    missing_schemas: List[str] = field(default_factory=list)
    schema_error: Optional[str] = None

    def raise_for_errors(self) -> None:
        """Para callers que prefieren excepción en lugar de resultado."""
        if not self.valid:
            raise SchemaValidationError(self.errors)


class LocalSchemaResolver(etree.Resolver):
    """Resolver que mapea schemaLocation (absoluto o relativo) a archivos locales."""

    def __init__(self, xsd_dir: Path):
        super().__init__()
        self.xsd_dir = Path(xsd_dir).resolve()

    def resolve(self, url, pubid, context):
        if url.startswith(("http://", "https://")):
            local_path = self.xsd_dir / url.split("/")[-1]
        else:
            local_path = self.xsd_dir / Path(url).name
        if local_path.exists():
            return self.resolve_filename(str(local_path), context)
        return None


def _parser_with_resolver(xsd_dir: Path) -> etree.XMLParser:
    parser = etree.XMLParser(
        remove_blank_text=False,
        load_dtd=False,
        resolve_entities=False,
        no_network=True,
        huge_tree=True,
    )
    parser.resolvers.add(LocalSchemaResolver(xsd_dir))
    return parser


def load_schema(main_xsd: Path, xsd_dir: Path, dependencies: Sequence[Path] = ()) -> etree.XMLSchema:
    """
    Carga un esquema XSD resolviendo includes/imports localmente.

    La caché se invalida cuando cambia el principal o cualquiera de
    `dependencies` (se toma el mtime más reciente del conjunto).

    Raises:
        etree.XMLSchemaParseError: Si el XSD es inválido
        etree.XMLSyntaxError: Si el archivo XSD no es XML bien formado
        FileNotFoundError: Si el archivo no existe
    """
    main_xsd = Path(main_xsd).resolve()
    if not main_xsd.exists():
        raise FileNotFoundError(f"XSD no encontrado: {main_xsd}")

    mtimes = [main_xsd.stat().st_mtime]
    mtimes.extend(Path(dep).stat().st_mtime for dep in dependencies if Path(dep).exists())
    key = (str(main_xsd), max(mtimes))
    schema = _schema_cache.get(key)
    if schema is None:
        doc = etree.parse(str(main_xsd), _parser_with_resolver(xsd_dir))
        schema = etree.XMLSchema(doc)
        _schema_cache[key] = schema
    return schema


def format_schema_errors(error_log) -> List[str]:
    errors = []
    for error in error_log:
        line_info = f"line {error.line}" if error.line else "line ?"
        col_info = f", col {error.column}" if error.column else ""
        errors.append(f"{line_info}{col_info}: {error.message}")
    return errors


def _default_schemas_dir() -> Path:
    from .config import get_nfe_config

    return get_nfe_config().schemas_dir


def validate_xml(
    xml: Union[bytes, str],
    kind: DocumentKind,
    schemas_dir: Optional[Union[str, Path]] = None,
) -> ValidationResult:
    """
    Valida el XML contra el conjunto de esquemas del tipo de documento.

    Args:
        xml: XML (firmado o no)
        kind: Tipo de documento (decide el conjunto de esquemas)
        schemas_dir: Directorio con los XSD; por defecto NFE_SCHEMAS_DIR

    Returns:
        ValidationResult con todas las violaciones ("line N, col M: mensaje")
    """
    xsd_dir = Path(schemas_dir) if schemas_dir is not None else _default_schemas_dir()
    main, required = SCHEMA_SETS.get(kind, (None, []))

    if main is None:
        logger.warning(f"Sin esquemas XSD registrados para {kind.value}; validación omitida")
        return ValidationResult(valid=True, degraded=True)

    missing = [name for name in required if not (xsd_dir / name).exists()]
    if missing:
        logger.warning(
            f"Esquemas XSD faltantes en {xsd_dir} para {kind.value}: {', '.join(missing)}; validación omitida"
        )
        return ValidationResult(valid=True, degraded=True, missing_schemas=missing)

    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    try:
        doc = etree.fromstring(xml, etree.XMLParser(resolve_entities=False, no_network=True))
    except etree.XMLSyntaxError as e:
        return ValidationResult(valid=False, errors=[f"line {e.lineno or '?'}: XML mal formado: {e.msg}"])

    try:
        schema = load_schema(xsd_dir / main, xsd_dir, [xsd_dir / name for name in required])
    except (etree.XMLSchemaParseError, etree.XMLSyntaxError) as e:
        logger.warning(f"Esquemas XSD de {kind.value} en {xsd_dir} no compilan: {e}; validación omitida")
        return ValidationResult(valid=True, degraded=True, schema_error=str(e))

    valid = schema.validate(doc)
    errors = [] if valid else format_schema_errors(schema.error_log)
    if valid:
        logger.info(f"XML {kind.value} válido contra {main}")
    else:
        logger.warning(f"XML {kind.value} con {len(errors)} error(es) XSD")
    return ValidationResult(valid=valid, errors=errors)
