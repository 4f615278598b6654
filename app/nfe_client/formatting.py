"""
Formateo de campos independiente de locale.

Todos los generadores XML usan estas funciones para montos (2 decimales),
cantidades y alícuotas (4 decimales) y fechas con offset numérico.
Los esquemas rechazan separador coma y notación científica, por eso nunca
se usa str(float) ni locale.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Union

Number = Union[Decimal, int, str, float]

_NON_DIGITS_RE = re.compile(r"[^\d]")


def to_decimal(value: Number) -> Decimal:
    """Convierte a Decimal sin pasar por la representación binaria de float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def format_decimal(value: Number, places: int = 2) -> str:
    """
    Formatea un número en punto fijo con exactamente `places` decimales.

    Args:
        value: Monto, cantidad o alícuota
        places: Cantidad de decimales (2 para montos, 4 para cantidades/alícuotas)

    Returns:
        String con punto decimal, sin separador de miles ni exponente
    """
    raw = to_decimal(value)
    if not raw.is_finite():
        raise ValueError(f"Valor no finito: {value!r}")
    quantum = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        # precisión suficiente para cualquier magnitud
        ctx.prec = max(28, raw.adjusted() + places + 2)
        dec = raw.quantize(quantum, rounding=ROUND_HALF_UP)
    if dec == 0:
        # evita "-0.00"
        dec = abs(dec)
    return format(dec, "f")


def format_timestamp(value: datetime) -> str:
    """
    Fecha-hora ISO 8601 con offset numérico (±HH:MM), nunca "Z".

    Un datetime naive se interpreta en la zona local del host en ese instante.
    """
    aware = value if value.tzinfo is not None else value.astimezone()
    offset = aware.utcoffset()
    total_minutes = int(offset.total_seconds() // 60) if offset is not None else 0
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{aware.strftime('%Y-%m-%dT%H:%M:%S')}{sign}{hours:02d}:{minutes:02d}"


def format_date(value: Union[date, datetime]) -> str:
    return value.strftime("%Y-%m-%d")


def only_digits(value: str | None) -> str:
    """Quita puntuación de CNPJ/CPF/CEP/teléfono."""
    if not value:
        return ""
    return _NON_DIGITS_RE.sub("", value)
