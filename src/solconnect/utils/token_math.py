"""Token math utilities - exact base unit conversion."""
from decimal import ROUND_DOWN, Decimal, InvalidOperation

from solconnect.core.errors import InvalidInputError

NATIVE_DECIMALS = 9
LAMPORTS_PER_SOL = 10 ** NATIVE_DECIMALS


def _as_decimal(value, label="amount") -> Decimal:
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise InvalidInputError(f"{label} must be a number, got {value!r}")
    elif isinstance(value, (int, float, str)):
        try:
            # str() keeps 0.1 as 0.1 instead of its binary expansion
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise InvalidInputError(f"{label} is not a number: {value!r}") from exc
    else:
        raise InvalidInputError(f"{label} must be a number, got {type(value).__name__}")
    if not result.is_finite():
        raise InvalidInputError(f"{label} must be finite, got {value!r}")
    return result


def _check_decimals(decimals) -> int:
    if not isinstance(decimals, int) or isinstance(decimals, bool) or decimals < 0:
        raise InvalidInputError(f"decimals must be a non-negative integer, got {decimals!r}")
    return decimals


def to_base_units(display_amount, decimals: int) -> int:
    """Convert a display amount to integer base units, rounding toward zero."""
    decimals = _check_decimals(decimals)
    scaled = _as_decimal(display_amount).scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def to_display_amount(base_units: int, decimals: int) -> Decimal:
    """Convert integer base units to a display Decimal."""
    decimals = _check_decimals(decimals)
    return Decimal(int(base_units)).scaleb(-decimals)


def sol_to_lamports(sol) -> int:
    return to_base_units(sol, NATIVE_DECIMALS)


def lamports_to_sol(lamports: int) -> Decimal:
    return to_display_amount(lamports, NATIVE_DECIMALS)
