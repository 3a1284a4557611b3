"""
Percentage / dollar amount normalization

A call (or closing target) is requested either as a percentage of its
commitment or as a dollar amount. Both forms are always stored, and this
module is the single place where one is derived from the other.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Iterable, List, Union

from capital_ledger.core.exceptions import ValidationError

CENTS = Decimal("0.01")
WHOLE_DOLLARS = Decimal("1")
PCT_PLACES = Decimal("0.0001")
HUNDRED = Decimal("100")


class AmountType(str, Enum):
    PERCENTAGE = "percentage"
    DOLLAR = "dollar"


@dataclass(frozen=True)
class Percentage:
    pct: Decimal


@dataclass(frozen=True)
class Dollar:
    amount: Decimal


RequestedAmount = Union[Percentage, Dollar]


@dataclass(frozen=True)
class NormalizedAmount:
    """Both expressions of one requested amount"""

    amount_type: AmountType
    call_amount: Decimal
    call_pct: Decimal


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """Coerce user input to Decimal, rejecting floats' binary noise via str()"""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError) as e:
            raise ValidationError(f"{field} must be a number, got {value!r}") from e
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def round_dollars(value: Decimal) -> Decimal:
    return value.quantize(WHOLE_DOLLARS, rounding=ROUND_HALF_UP)


def quantize_pct(value: Decimal) -> Decimal:
    return value.quantize(PCT_PLACES, rounding=ROUND_HALF_UP)


def requested_amount(amount_type: Union[str, AmountType], value: Any) -> RequestedAmount:
    """Build the tagged variant from an (amount_type, value) request pair"""
    try:
        kind = AmountType(amount_type)
    except ValueError as e:
        raise ValidationError(f"Unknown amount type {amount_type!r}") from e

    number = to_decimal(value)
    if number <= 0:
        raise ValidationError(f"{kind.value} amount must be greater than 0")
    if kind is AmountType.PERCENTAGE:
        if number > HUNDRED:
            raise ValidationError("Percentage amount cannot exceed 100")
        return Percentage(number)
    return Dollar(number)


def normalize(requested: RequestedAmount, commitment_amount: Decimal) -> NormalizedAmount:
    """
    Express a requested amount in both dollar and percentage terms.

    Args:
        requested: Percentage(pct) or Dollar(amount)
        commitment_amount: total committed capital the amount is relative to

    Returns:
        NormalizedAmount with call_amount in cents and call_pct to 4 places
    """
    if commitment_amount <= 0:
        raise ValidationError("Commitment amount must be greater than 0")

    if isinstance(requested, Percentage):
        call_amount = quantize_money(commitment_amount * requested.pct / HUNDRED)
        return NormalizedAmount(AmountType.PERCENTAGE, call_amount, quantize_pct(requested.pct))

    call_amount = quantize_money(requested.amount)
    call_pct = quantize_pct(call_amount / commitment_amount * HUNDRED)
    return NormalizedAmount(AmountType.DOLLAR, call_amount, call_pct)


def allocate_percentages(
    pcts: Iterable[Decimal], commitment_amount: Decimal, prior_pct: Decimal = Decimal("0")
) -> List[Decimal]:
    """
    Cent amounts for consecutive percentage calls.

    The running percentage total is rounded rather than each call, so the
    calls always add up to the commitment share of their combined
    percentage and never pass the commitment when that total is 100.

    Args:
        pcts: percentages of the calls, in call order
        commitment_amount: total committed capital
        prior_pct: combined percentage of the percentage calls that precede them
    """
    cumulative = Decimal(prior_pct)
    previous = quantize_money(commitment_amount * cumulative / HUNDRED)
    amounts = []
    for pct in pcts:
        cumulative += pct
        running = quantize_money(commitment_amount * cumulative / HUNDRED)
        amounts.append(running - previous)
        previous = running
    return amounts


def stored_amount(amount_type: str, call_amount: Decimal, call_pct: Decimal) -> RequestedAmount:
    """Recover the variant a stored call was requested as"""
    if AmountType(amount_type) is AmountType.PERCENTAGE:
        return Percentage(Decimal(call_pct))
    return Dollar(Decimal(call_amount))
