from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_EVEN
from typing import Tuple

from .errors import GrammarError


def transform_i18n_es_str(text: str) -> str:
    """Turn a Spanish-locale numeral ('1.000,03') into dot-decimal form ('1000.03')."""
    return text.replace(".", "").replace(",", ".")


def normalize_str(text: str) -> str:
    """Drop thousands-separating commas from a dot-decimal numeral ('1,234.5' -> '1234.5')."""
    return text.replace(",", "")


def _to_decimal(text: str, rule: str) -> Decimal:
    try:
        value = Decimal(text.strip())
    except InvalidOperation:
        raise GrammarError(rule, text) from None
    if not value.is_finite():
        raise GrammarError(rule, text)
    return value


def parse_es_decimal(text: str, rule: str = "decimal value") -> Decimal:
    """Parse a Spanish-locale numeral keeping every fractional digit of the source.

    Args:
        text: Numeral such as '0,9030' or '197.152,00'.
        rule: Grammar rule name reported when the text is not a number.

    Returns:
        Exact Decimal, e.g. Decimal('0.9030').

    Raises:
        GrammarError: if the text is not a numeral.
    """
    return _to_decimal(transform_i18n_es_str(text), rule)


def parse_plain_decimal(text: str, rule: str = "decimal value") -> Decimal:
    """Parse a machine-locale numeral ('1,234.56') keeping its scale."""
    return _to_decimal(normalize_str(text), rule)


def round_dp(value: Decimal, places: int) -> Decimal:
    """Round to at most ``places`` fractional digits using banker's rounding.

    Values that already have fewer fractional digits keep their scale.
    """
    exponent = value.as_tuple().exponent
    if isinstance(exponent, int) and exponent < -places:
        return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_EVEN)
    return value


def split_decimal(value: Decimal, places: int = 2, truncate: bool = False) -> Tuple[bool, int, int]:
    """Split a value into (negative, integer part, fraction digits) at ``places`` digits.

    The fraction is rounded half-even unless ``truncate`` is set, in which case
    extra digits are dropped.
    """
    quantum = Decimal(1).scaleb(-places)
    rounding = ROUND_DOWN if truncate else ROUND_HALF_EVEN
    fixed = value.quantize(quantum, rounding=rounding)
    negative = fixed < 0
    magnitude = abs(fixed)
    integer = int(magnitude)
    fraction = int((magnitude - integer).scaleb(places))
    return negative, integer, fraction


def format_decimal(value: Decimal, separator: str = ".") -> str:
    """Render a Decimal in positional notation with the given decimal separator."""
    return format(value, "f").replace(".", separator)
