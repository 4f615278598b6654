"""
Utilidades para cálculo y validación de la chave de acesso NF-e.

La chave es un número de 44 dígitos donde:
- Los primeros 43 dígitos son la concatenación de sub-campos de ancho fijo
  (cUF, AAMM, CNPJ, mod, serie, nNF, tpEmis, cNF)
- El último dígito es el DV (dígito verificador) calculado con módulo 11
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Tuple, Union

from .exceptions import KeyAssemblyError
from .formatting import only_digits
from .utils import RandomSource, default_random_source

KEY_BASE_LENGTH = 43
KEY_LENGTH = 44
NONCE_LENGTH = 8

# (nombre, ancho) en el orden del leiaute
KEY_FIELDS: List[Tuple[str, int]] = [
    ("cUF", 2),
    ("AAMM", 4),
    ("CNPJ", 14),
    ("mod", 2),
    ("serie", 3),
    ("nNF", 9),
    ("tpEmis", 1),
    ("cNF", 8),
]


@dataclass(frozen=True)
class AccessKey:
    """Chave de acesso completa (base + DV) y el cNF usado para armarla."""
    value: str
    nonce: str
    check_digit: int

    @property
    def base(self) -> str:
        return self.value[:-1]

    def __str__(self) -> str:
        return self.value


def calc_dv_mod11(num_str: str) -> int:
    """
    Calcula el dígito verificador (DV) usando módulo 11 con pesos 2-9.

    Los pesos se aplican desde el dígito más a la derecha y reinician en 2
    después del 9. Resto 0 o 1 da DV 0; si no, DV = 11 - resto.

    Args:
        num_str: String numérico (típicamente 43 dígitos)

    Returns:
        DV calculado (0-9)

    Raises:
        ValueError: Si num_str no es numérico
    """
    s = (num_str or "").strip()
    if not s.isdigit():
        raise ValueError(f"base debe ser numérica, recibido: {num_str!r}")

    peso = 2
    total = 0
    for ch in reversed(s):
        total += int(ch) * peso
        peso = 2 if peso == 9 else peso + 1

    resto = total % 11
    return 0 if resto < 2 else 11 - resto


def _fit_field(name: str, value: Union[str, int], width: int) -> str:
    digits = only_digits(str(value))
    if not digits or len(digits) > width:
        raise KeyAssemblyError(name, width, len(digits), str(value))
    return digits.zfill(width)


def build_key_base(
    codigo_uf: Union[str, int],
    data_emissao: Union[date, datetime],
    cnpj: str,
    modelo: Union[str, int],
    serie: Union[str, int],
    numero: Union[str, int],
    tipo_emissao: Union[str, int],
    nonce: str,
) -> str:
    """
    Concatena los sub-campos de la chave (sin DV).

    Raises:
        KeyAssemblyError: Si algún sub-campo no entra en su ancho o el
            total no suma 43 dígitos
    """
    values = {
        "cUF": codigo_uf,
        "AAMM": data_emissao.strftime("%y%m"),
        "CNPJ": cnpj,
        "mod": modelo,
        "serie": serie,
        "nNF": numero,
        "tpEmis": tipo_emissao,
        "cNF": nonce,
    }
    parts = [_fit_field(name, values[name], width) for name, width in KEY_FIELDS]
    base = "".join(parts)
    if len(base) != KEY_BASE_LENGTH:
        # solo ocurre si KEY_FIELDS quedara inconsistente
        raise KeyAssemblyError("chave", KEY_BASE_LENGTH, len(base), base)
    return base


def generate_access_key(
    codigo_uf: Union[str, int],
    data_emissao: Union[date, datetime],
    cnpj: str,
    modelo: Union[str, int],
    serie: Union[str, int],
    numero: Union[str, int],
    tipo_emissao: Union[str, int],
    random_source: Optional[RandomSource] = None,
) -> AccessKey:
    """
    Genera la chave de acesso de 44 dígitos.

    Args:
        codigo_uf: Código IBGE de la UF (2 dígitos)
        data_emissao: Fecha de emisión (se usa AAMM)
        cnpj: CNPJ del emisor (se quita puntuación)
        modelo: Modelo del documento (55 = NF-e)
        serie: Serie (hasta 3 dígitos)
        numero: Número del documento (hasta 9 dígitos)
        tipo_emissao: Forma de emisión (1 = normal)
        random_source: Fuente del cNF de 8 dígitos

    Returns:
        AccessKey con el valor completo, el cNF y el DV
    """
    source = random_source or default_random_source()
    nonce = source.digits(NONCE_LENGTH)
    base = build_key_base(codigo_uf, data_emissao, cnpj, modelo, serie, numero, tipo_emissao, nonce)
    dv = calc_dv_mod11(base)
    return AccessKey(value=base + str(dv), nonce=nonce, check_digit=dv)


def validate_access_key(chave: str) -> tuple[bool, int, int]:
    """
    Valida una chave verificando si el DV es correcto.

    Returns:
        Tupla (es_valido, dv_original, dv_calculado)
    """
    if not chave or not isinstance(chave, str):
        return (False, -1, -1)

    digits = chave.strip()
    if not digits.isdigit() or len(digits) != KEY_LENGTH:
        return (False, -1, -1)

    dv_original = int(digits[-1])
    dv_calculado = calc_dv_mod11(digits[:-1])
    return (dv_original == dv_calculado, dv_original, dv_calculado)


def fix_access_key(chave: str) -> str:
    """
    Corrige el DV de una chave de 44 dígitos.

    Raises:
        ValueError: Si la chave no tiene 44 dígitos o no es numérica
    """
    s = (chave or "").strip()
    if not s.isdigit() or len(s) != KEY_LENGTH:
        raise ValueError(f"Chave inválida (se esperan 44 dígitos): {chave!r}")
    base = s[:KEY_BASE_LENGTH]
    return base + str(calc_dv_mod11(base))


def generate_verification_code(random_source: Optional[RandomSource] = None) -> str:
    """Código de verificación NFS-e (8 dígitos, fuera de cualquier cálculo de DV)."""
    source = random_source or default_random_source()
    return source.digits(NONCE_LENGTH)
