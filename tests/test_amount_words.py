from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.sunat_client.amount_words import amount_to_words, integer_to_words
from app.sunat_client.exceptions import SunatValidationError


def test_reference_amount_in_soles():
    assert amount_to_words(1234.56, "PEN") == "MIL DOSCIENTOS TREINTA Y CUATRO CON 56/100 SOLES"


@pytest.mark.parametrize(
    "value,words",
    [
        (0, "CERO"),
        (16, "DIECISEIS"),
        (21, "VEINTIUNO"),
        (30, "TREINTA"),
        (45, "CUARENTA Y CINCO"),
        (100, "CIEN"),
        (101, "CIENTO UNO"),
        (500, "QUINIENTOS"),
        (777, "SETECIENTOS SETENTA Y SIETE"),
        (999, "NOVECIENTOS NOVENTA Y NUEVE"),
        (2000, "DOS MIL"),
        (21000, "VEINTIUN MIL"),
        (31500, "TREINTA Y UN MIL QUINIENTOS"),
        (100000, "CIEN MIL"),
        (999999, "NOVECIENTOS NOVENTA Y NUEVE MIL NOVECIENTOS NOVENTA Y NUEVE"),
    ],
)
def test_integer_to_words(value, words):
    assert integer_to_words(value) == words


def test_millions_fall_back_to_digits():
    assert amount_to_words(1500000, "PEN") == "1500000 CON 00/100 SOLES"


def test_singular_currency_and_rounding():
    assert amount_to_words(1, "PEN") == "UNO CON 00/100 SOL"
    assert amount_to_words(1.005, "USD") == "UNO CON 01/100 DOLAR AMERICANO"
    assert amount_to_words(10.999, "EUR") == "ONCE CON 00/100 EUROS"


def test_unknown_currency_uses_code():
    assert amount_to_words(2.5, "CLP") == "DOS CON 50/100 CLP"


def test_negative_amount_rejected():
    with pytest.raises(SunatValidationError):
        amount_to_words(-1, "PEN")
