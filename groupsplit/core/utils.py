"""
Money and id helpers shared by the ledger and the services.
"""
from decimal import Decimal, ROUND_HALF_UP, getcontext

from groupsplit.core.exceptions import ValidationError

getcontext().prec = 28
CENTS = Decimal("0.01")
ZERO = Decimal("0")


def qround(d: Decimal) -> Decimal:
    """Round to cents, half up."""
    return d.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # floats go through str so 0.1 stays 0.1
    return Decimal(str(value))


def money(value) -> str:
    """Cents-rounded string form used in JSON payloads."""
    return str(qround(to_decimal(value)))


def require_id(value, name: str = "id") -> int:
    """Reject anything that is not a positive integer id (bools included)."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"Invalid {name}: {value!r}")
    return value
