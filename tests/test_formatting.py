from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.nfe_client.formatting import format_date, format_decimal, format_timestamp, only_digits


def test_format_decimal_dos_decimales_con_punto():
    assert format_decimal(Decimal("1234.5")) == "1234.50"
    assert format_decimal(1234567.891) == "1234567.89"
    assert format_decimal("0.005") == "0.01"


def test_format_decimal_cuatro_decimales_para_cantidades():
    assert format_decimal(Decimal("10"), 4) == "10.0000"
    assert format_decimal(1.65, 4) == "1.6500"


def test_format_decimal_sin_exponente_ni_cero_negativo():
    assert format_decimal(Decimal("1E+7")) == "10000000.00"
    assert format_decimal(Decimal("-0.001")) == "0.00"


def test_format_decimal_rechaza_no_finitos():
    with pytest.raises(ValueError):
        format_decimal(Decimal("NaN"))


def test_format_timestamp_offset_numerico():
    brt = timezone(timedelta(hours=-3))
    assert format_timestamp(datetime(2026, 1, 15, 10, 0, 0, tzinfo=brt)) == "2026-01-15T10:00:00-03:00"
    assert format_timestamp(datetime(2026, 1, 15, 13, 0, 0, tzinfo=timezone.utc)) == "2026-01-15T13:00:00+00:00"


def test_format_timestamp_naive_usa_zona_local():
    out = format_timestamp(datetime(2026, 1, 15, 10, 0, 0))
    assert out.startswith("2026-01-15T10:00:00")
    assert not out.endswith("Z")
    assert out[-6] in "+-" and out[-3] == ":"


def test_format_date_y_only_digits():
    assert format_date(date(2026, 1, 5)) == "2026-01-05"
    assert only_digits("12.345.678/0001-95") == "12345678000195"
    assert only_digits(None) == ""
