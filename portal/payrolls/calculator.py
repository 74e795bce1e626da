from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from portal.core.exceptions import ValidationError

CENTS = Decimal("0.01")

Amount = Union[Decimal, int, float, str, None]


def to_money(value: Amount) -> Decimal:
    """Coerce an amount to a Decimal rounded to cents; ``None`` counts as zero."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def net_pay(gross: Amount, overtime_pay: Amount = 0, bonus: Amount = 0, deductions: Amount = 0) -> Decimal:
    """gross + overtime pay + bonus - deductions."""
    return to_money(gross) + to_money(overtime_pay) + to_money(bonus) - to_money(deductions)


def validate_net_pay(
    net: Amount,
    gross: Amount,
    overtime_pay: Amount = 0,
    bonus: Amount = 0,
    deductions: Amount = 0
) -> Decimal:
    """Return the expected net pay, raising ValidationError if ``net`` disagrees with it."""
    expected = net_pay(gross, overtime_pay, bonus, deductions)
    if to_money(net) != expected:
        raise ValidationError(
            detail=f"Net pay {to_money(net)} does not match gross + overtime + bonus - deductions ({expected})",
            field="net_pay",
            value=str(net),
            error_data={"expected_net_pay": str(expected)}
        )
    return expected


def resolve_net_pay(
    net: Optional[Amount],
    gross: Amount,
    overtime_pay: Amount = 0,
    bonus: Amount = 0,
    deductions: Amount = 0
) -> Decimal:
    """Suggested net pay when none was entered, validated net pay otherwise."""
    if net is None:
        return net_pay(gross, overtime_pay, bonus, deductions)
    return validate_net_pay(net, gross, overtime_pay, bonus, deductions)
