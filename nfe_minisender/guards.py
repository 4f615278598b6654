from __future__ import annotations

import re
from typing import Dict, Optional

from lxml import etree

from app.nfe_client.models import DocumentKind
from app.nfe_client.xml_utils import DS_NS, NFE_NS, NFSE_NS, SPED_NFSE_NS, _local, find_first_by_local

# tipo -> (raíz esperada, namespace default)
EXPECTED_ROOTS: Dict[DocumentKind, tuple] = {
    DocumentKind.NFE: ("NFe", NFE_NS),
    DocumentKind.NFSE: ("NFSe", NFSE_NS),
    DocumentKind.DPS: ("DPS", SPED_NFSE_NS),
    DocumentKind.EVENTO: ("pedRegEvento", SPED_NFSE_NS),
}

_INTERTAG_WS_RE = re.compile(rb">\s+<")


def _parse_xml(xml_bytes: bytes, *, context: str = "") -> etree._Element:
    try:
        return etree.fromstring(xml_bytes, etree.XMLParser(resolve_entities=False, no_network=True))
    except etree.XMLSyntaxError as e:
        raise RuntimeError(f"[guard] XML inválido (parse). {context} err={e}")


def _first_with_id(root: etree._Element) -> Optional[etree._Element]:
    for el in root.iter():
        if isinstance(el.tag, str) and el.get("Id"):
            return el
    return None


def assert_root_and_default_namespace(xml_bytes: bytes, kind: DocumentKind, *, context: str = "") -> None:
    """
    La raíz es la esperada para el tipo y declara el namespace como default
    (xmlns="..."), sin prefijo.
    """
    root = _parse_xml(xml_bytes, context=context)
    expected_tag, expected_ns = EXPECTED_ROOTS[kind]

    if _local(root.tag) != expected_tag:
        raise RuntimeError(
            f"[guard] Raíz inválida: {_local(root.tag)!r} (esperado {expected_tag!r}). {context}"
        )
    root_ns = etree.QName(root).namespace or ""
    if root_ns != expected_ns:
        raise RuntimeError(f"[guard] Namespace de {expected_tag} inválido: {root_ns!r}. {context}")

    xml_text = xml_bytes.decode("utf-8", errors="replace")
    opening = re.search(rf"<(?:[A-Za-z_][A-Za-z0-9._-]*:)?{expected_tag}\b([^>]*)>", xml_text)
    if opening is None:
        raise RuntimeError(f"[guard] No se encontró opening tag de {expected_tag}. {context}")
    xmlns_match = re.search(r'\bxmlns\s*=\s*"([^"]+)"', opening.group(1))
    if xmlns_match is None or xmlns_match.group(1).strip() != expected_ns:
        raise RuntimeError(f"[guard] {expected_tag} no declara xmlns default {expected_ns!r}. {context}")


def assert_signature_reference_uri_matches_id(xml_bytes: bytes, *, context: str = "") -> None:
    """
    Guardrail (no muta el XML):
      - Signature es el último hijo de la raíz, en namespace DSIG
      - Reference/@URI == "#" + Id del elemento firmado
    """
    root = _parse_xml(xml_bytes, context=context)

    target = _first_with_id(root)
    if target is None:
        raise RuntimeError(f"[guard] Ningún elemento tiene atributo Id. {context}")
    doc_id = target.get("Id").strip()

    children = [c for c in root if isinstance(c.tag, str)]
    if not children or _local(children[-1].tag) != "Signature":
        raise RuntimeError(
            f"[guard] Signature no es el último hijo de {_local(root.tag)}: "
            f"{[_local(c.tag) for c in children]}. {context}"
        )
    signature = children[-1]

    sig_ns = etree.QName(signature).namespace or ""
    if sig_ns != DS_NS:
        raise RuntimeError(f"[guard] Signature no está en namespace DSIG: {sig_ns!r}. {context}")

    reference = find_first_by_local(signature, "Reference")
    if reference is None:
        raise RuntimeError(f"[guard] No se encontró Reference dentro de Signature. {context}")

    uri = (reference.get("URI") or "").strip()
    if uri != f"#{doc_id}":
        raise RuntimeError(f"[guard] Reference URI inválido: {uri!r} != '#{doc_id}'. {context}")


def assert_envelope_payload(envelope_bytes: bytes, kind: DocumentKind, *, context: str = "") -> None:
    """
    El envelope no tiene espacios entre etiquetas y, si es SOAP, lleva un
    único documento con idLote=1 e indSinc=1.
    """
    if _INTERTAG_WS_RE.search(envelope_bytes):
        raise RuntimeError(f"[guard] El envelope contiene espacios entre etiquetas. {context}")

    root = _parse_xml(envelope_bytes, context=context)
    expected_tag, _ = EXPECTED_ROOTS[kind]

    if _local(root.tag) != "Envelope":
        if _local(root.tag) != expected_tag:
            raise RuntimeError(
                f"[guard] Body REST inválido: raíz {_local(root.tag)!r} (esperado {expected_tag!r}). {context}"
            )
        return

    lote = find_first_by_local(root, "enviNFe" if kind is DocumentKind.NFE else "enviNFSe")
    if lote is None:
        raise RuntimeError(f"[guard] El envelope SOAP no contiene el lote. {context}")

    id_lote = lote.findtext(f"{{{etree.QName(lote).namespace}}}idLote")
    ind_sinc = lote.findtext(f"{{{etree.QName(lote).namespace}}}indSinc")
    if id_lote != "1" or ind_sinc != "1":
        raise RuntimeError(f"[guard] Lote inválido: idLote={id_lote!r} indSinc={ind_sinc!r}. {context}")

    docs = [c for c in lote if isinstance(c.tag, str) and _local(c.tag) == expected_tag]
    if len(docs) != 1:
        raise RuntimeError(f"[guard] El lote debe contener exactamente un {expected_tag} (hay {len(docs)}). {context}")


def run_pre_send_guardrails(
    *,
    signed_xml: bytes,
    envelope_body: bytes,
    kind: DocumentKind,
    context: str = "",
) -> None:
    """Ejecuta todos los guardrails antes del envío HTTP."""
    assert_root_and_default_namespace(signed_xml, kind, context=context)
    assert_signature_reference_uri_matches_id(signed_xml, context=context)
    assert_envelope_payload(envelope_body, kind, context=context)
