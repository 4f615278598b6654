"""
Utilidades XML compartidas por los generadores, el firmador y el parser

- Construcción de elementos con texto (sub_text / opt_text)
- Serialización UTF-8 con declaración, sin pretty print
- Limpieza de espacios entre etiquetas y normalización de textos
"""
from __future__ import annotations

import re
from typing import Optional, Union

from lxml import etree

from .formatting import Number, format_decimal

NFE_NS = "http://www.portalfiscal.inf.br/nfe"
NFSE_NS = "http://www.portalfiscal.inf.br/nfse"
SPED_NFSE_NS = "http://www.sped.fazenda.gov.br/nfse"
DS_NS = "http://www.w3.org/2000/09/xmldsig#"

_INTERTAG_WS_RE = re.compile(rb">\s+<")
_MULTI_WS_RE = re.compile(r"\s+")

# caracteres que los esquemas de la SEFAZ rechazan en campos de texto
_CHAR_MAP = str.maketrans({"ª": "a", "º": "o", "²": "2", "³": "3", "¹": "1"})


def _local(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def find_first_by_local(root: etree._Element, name: str) -> Optional[etree._Element]:
    for el in root.iter():
        if isinstance(el.tag, str) and _local(el.tag) == name:
            return el
    return None


def find_text_by_local(root: etree._Element, name: str) -> Optional[str]:
    el = find_first_by_local(root, name)
    if el is None or el.text is None:
        return None
    return el.text.strip()


def sub_text(parent: etree._Element, tag: str, text: Union[str, int]) -> etree._Element:
    """Crea un hijo en el namespace del padre con el texto dado."""
    ns = etree.QName(parent).namespace
    el = etree.SubElement(parent, f"{{{ns}}}{tag}" if ns else tag)
    el.text = str(text)
    return el


def opt_text(parent: etree._Element, tag: str, text: Optional[Union[str, int]]) -> Optional[etree._Element]:
    """Como sub_text pero omite el elemento si el valor es None o vacío."""
    if text is None or text == "":
        return None
    return sub_text(parent, tag, text)


def sub_decimal(parent: etree._Element, tag: str, value: Number, places: int = 2) -> etree._Element:
    return sub_text(parent, tag, format_decimal(value, places))


def sub_group(parent: etree._Element, tag: str) -> etree._Element:
    ns = etree.QName(parent).namespace
    return etree.SubElement(parent, f"{{{ns}}}{tag}" if ns else tag)


def to_bytes(root: etree._Element) -> bytes:
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=False)


def parse_xml(xml: Union[bytes, str]) -> etree._Element:
    """
    Parsea XML sin resolver entidades ni acceder a red.

    Raises:
        etree.XMLSyntaxError: Si el XML está mal formado
    """
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    parser = etree.XMLParser(remove_blank_text=False, resolve_entities=False, no_network=True)
    return etree.fromstring(xml, parser)


def strip_intertag_whitespace(xml: bytes) -> bytes:
    """Quita espacios, tabs y saltos de línea entre etiquetas."""
    return _INTERTAG_WS_RE.sub(b"><", xml.strip())


def normalize_text(value: str) -> str:
    """Recorta, colapsa espacios internos y reemplaza ª º ² ³ ¹."""
    return _MULTI_WS_RE.sub(" ", value.translate(_CHAR_MAP)).strip()


def normalize_leaf_texts(root: etree._Element) -> None:
    """Aplica normalize_text a todos los nodos hoja (muta el árbol)."""
    for el in root.iter():
        if not isinstance(el.tag, str) or len(el):
            continue
        if el.text is not None:
            el.text = normalize_text(el.text)
