"""
Validadores compartidos para códigos y formatos de numeración
"""
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional


CODE_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._\-/]*$')

MAX_SEPARATOR_LENGTH = 5
MIN_SEQUENTIAL_LENGTH = 1
MAX_SEQUENTIAL_LENGTH = 10


def validate_code(code: str, max_length: int = 20) -> bool:
    """
    Valida un código de negocio (artículo, sujeto, unidad de negocio...).
    - No vacío, máximo `max_length` caracteres
    - Letras, números y . _ - /
    - No puede empezar con un símbolo
    """
    if not code:
        return False
    cleaned = code.strip()
    if len(cleaned) > max_length:
        return False
    return bool(CODE_PATTERN.match(cleaned))


def normalize_code(code: Optional[str]) -> Optional[str]:
    """Quita espacios y pasa a mayúsculas. None se mantiene."""
    if code is None:
        return None
    return code.strip().upper()


def validate_separator(separator: Optional[str]) -> bool:
    """El separador puede ser vacío, pero nunca más largo que MAX_SEPARATOR_LENGTH."""
    if separator is None:
        return False
    return len(separator) <= MAX_SEPARATOR_LENGTH


def validate_sequential_length(length: int) -> bool:
    return MIN_SEQUENTIAL_LENGTH <= length <= MAX_SEQUENTIAL_LENGTH


AMOUNT_PLACES = 4


def round_amount(value: Optional[Decimal], places: int = AMOUNT_PLACES) -> Optional[Decimal]:
    """Redondea (half-up) a la escala de las columnas Numeric(18, places). None se mantiene."""
    if value is None:
        return None
    return Decimal(value).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
