"""
Utilidades compartidas: fuente de aleatoriedad inyectable y helpers menores
"""
from __future__ import annotations

import secrets
from typing import Iterable, Iterator, Protocol


class RandomSource(Protocol):
    """Fuente de dígitos aleatorios (cNF, código de verificación)."""

    def digits(self, length: int) -> str:
        ...


class SystemRandomSource:
    """Fuente por defecto basada en `secrets` (entropía del proceso)."""

    def digits(self, length: int) -> str:
        # el primer dígito nunca es 0, igual que Random.Next(10000000, 99999999)
        first = str(secrets.randbelow(9) + 1)
        rest = "".join(str(secrets.randbelow(10)) for _ in range(length - 1))
        return first + rest


class FixedRandomSource:
    """
    Fuente determinista para tests y reproducción de casos.

    Args:
        values: Secuencia de strings numéricos; se consumen en orden y el
            último se repite cuando se agotan.
    """

    def __init__(self, values: Iterable[str] | str):
        if isinstance(values, str):
            values = [values]
        self._values = list(values)
        if not self._values:
            raise ValueError("FixedRandomSource requiere al menos un valor")
        self._iter: Iterator[str] = iter(self._values)
        self._last = self._values[0]

    def digits(self, length: int) -> str:
        try:
            self._last = next(self._iter)
        except StopIteration:
            pass
        value = self._last
        if not value.isdigit():
            raise ValueError(f"Valor no numérico en FixedRandomSource: {value!r}")
        return value.zfill(length)[-length:]


def default_random_source() -> RandomSource:
    return SystemRandomSource()


def truncate(text: str, limit: int = 500) -> str:
    """Recorta textos largos para logs y mensajes de error."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
