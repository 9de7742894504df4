"""
Conversión de importes a letras (leyenda 1000 de los comprobantes)

Ejemplo: 1234.56 PEN -> "MIL DOSCIENTOS TREINTA Y CUATRO CON 56/100 SOLES"

Limitación conocida: importes desde 1.000.000 se escriben en dígitos.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union

from .exceptions import SunatValidationError

UNIDADES = ["", "UNO", "DOS", "TRES", "CUATRO", "CINCO", "SEIS", "SIETE", "OCHO", "NUEVE"]
DECENAS = ["", "DIEZ", "VEINTE", "TREINTA", "CUARENTA", "CINCUENTA",
           "SESENTA", "SETENTA", "OCHENTA", "NOVENTA"]
ESPECIALES = {
    11: "ONCE", 12: "DOCE", 13: "TRECE", 14: "CATORCE", 15: "QUINCE",
    16: "DIECISEIS", 17: "DIECISIETE", 18: "DIECIOCHO", 19: "DIECINUEVE",
    21: "VEINTIUNO", 22: "VEINTIDOS", 23: "VEINTITRES", 24: "VEINTICUATRO",
    25: "VEINTICINCO", 26: "VEINTISEIS", 27: "VEINTISIETE", 28: "VEINTIOCHO",
    29: "VEINTINUEVE",
}
CENTENAS = ["", "CIENTO", "DOSCIENTOS", "TRESCIENTOS", "CUATROCIENTOS", "QUINIENTOS",
            "SEISCIENTOS", "SETECIENTOS", "OCHOCIENTOS", "NOVECIENTOS"]

# (singular, plural)
CURRENCY_NAMES = {
    "PEN": ("SOL", "SOLES"),
    "USD": ("DOLAR AMERICANO", "DOLARES AMERICANOS"),
    "EUR": ("EURO", "EUROS"),
}

MAX_SPELLED = 1000000


def _spell(n: int) -> str:
    if n == 0:
        return "CERO"
    if n < 10:
        return UNIDADES[n]
    if n in ESPECIALES:
        return ESPECIALES[n]
    if n < 100:
        d, u = divmod(n, 10)
        return f"{DECENAS[d]} Y {UNIDADES[u]}" if u else DECENAS[d]
    if n < 1000:
        c, r = divmod(n, 100)
        if n == 100:
            return "CIEN"
        return f"{CENTENAS[c]} {_spell(r)}" if r else CENTENAS[c]
    m, r = divmod(n, 1000)
    if m == 1:
        prefix = "MIL"
    else:
        # apócope delante de MIL: VEINTIUN MIL, TREINTA Y UN MIL
        prefix = f"{_apocope(_spell(m))} MIL"
    return f"{prefix} {_spell(r)}" if r else prefix


def _apocope(words: str) -> str:
    if words.endswith("VEINTIUNO"):
        return words[:-1]
    if words.endswith(" UNO") or words == "UNO":
        return words[:-1]
    return words


def integer_to_words(n: int) -> str:
    """Escribe un entero en letras; desde 1.000.000 devuelve los dígitos."""
    if n < 0:
        raise SunatValidationError(f"No se puede escribir en letras un importe negativo: {n}")
    if n >= MAX_SPELLED:
        return str(n)
    return _spell(n)


def amount_to_words(amount: Union[float, Decimal, str], currency_code: str) -> str:
    """
    Convierte un importe a su leyenda en letras.

    Args:
        amount: Importe (se redondea a 2 decimales, half-up)
        currency_code: Código ISO 4217 (PEN, USD, EUR)

    Returns:
        Leyenda "<ENTERO EN LETRAS> CON <cc>/100 <MONEDA>"

    Raises:
        SunatValidationError: Si el importe es inválido o negativo
    """
    try:
        value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise SunatValidationError(f"Importe inválido: {amount!r}") from e
    if value < 0:
        raise SunatValidationError(f"No se puede escribir en letras un importe negativo: {amount}")

    entero = int(value)
    centavos = int((value - entero) * 100)

    code = (currency_code or "").upper()
    singular, plural = CURRENCY_NAMES.get(code, (code, code))
    currency = singular if entero == 1 else plural

    return f"{integer_to_words(entero)} CON {centavos:02d}/100 {currency}".rstrip()
