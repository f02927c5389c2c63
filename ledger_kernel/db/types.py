"""
Module: ledger_kernel.db.types
Responsibility: Decimal coercion and the single rounding helper for
    monetary values.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.

Invariants enforced:
    - No floats for money.  Amounts are Numeric(38, 9); exchange rates are
      Numeric(38, 18).
    - round_money() is the only sanctioned rounding function (ROUND_HALF_UP).
"""

from decimal import ROUND_HALF_UP, Decimal

DEFAULT_ROUNDING = ROUND_HALF_UP


def to_decimal(value) -> Decimal:
    """
    Coerce a number-like value to Decimal without passing through float
    representation error.

    Raises:
        ValueError: If value is None, a bool, or not a finite number.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValueError(f"Not a number: {value!r}")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except ArithmeticError as exc:
            raise ValueError(f"Not a number: {value!r}") from exc
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        raise ValueError(f"Not a number: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).
    """
    if decimal_places == 0:
        return value.quantize(Decimal("1"), rounding=rounding)
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)
