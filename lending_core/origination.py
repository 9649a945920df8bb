"""
Loan Origination Calculator

Derives the one-off financial figures of a loan from its principal and the
loan product: interest, initial deduction, disbursed amount, per-installment
amount and total payable. Interest is computed once, here; nothing accrues
afterwards.

Rounding is ROUND_HALF_UP throughout. With the default RoundingPolicy the
interest and deduction are whole units and the installment amount has two
decimal places, e.g. principal 10000 at 10% interest, 5% deduction over 100
periods gives:

    prepaid:      interest 1000, deduction 500, disbursed 8500,
                  total payable 10000, installment 100.00
    not prepaid:  disbursed 9500, total payable 11000, installment 110.00
"""

from decimal import Decimal
from dataclasses import dataclass, asdict
from typing import Dict, Union

from .errors import DivisionByZero, InvalidPrincipal
from .money import RoundingPolicy, ZERO, percent_of, to_decimal


@dataclass(frozen=True)
class OriginationQuote:
    """Financial schedule of a loan at creation time"""
    principal: Decimal
    interest_amount: Decimal
    initial_deduction_amount: Decimal
    disbursed_amount: Decimal
    installment_amount: Decimal
    total_payable: Decimal
    total_installment_count: int
    interest_prepaid: bool

    @property
    def has_negative_disbursement(self) -> bool:
        """Charges withheld up front exceed the principal"""
        return self.disbursed_amount < ZERO

    def to_dict(self) -> Dict[str, Union[str, int, bool]]:
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, Decimal):
                result[key] = str(value)
        return result


def calculate_origination(
    principal: Union[Decimal, int, str],
    product,
    rounding: RoundingPolicy = RoundingPolicy()
) -> OriginationQuote:
    """
    Calculate the origination figures of a loan.

    Args:
        principal: Amount lent, must be positive
        product: LoanProduct (or anything with ``interest_percent``,
            ``initial_deduction_percent``, ``period_count`` and
            ``interest_prepaid``)
        rounding: Rounding policy for charges and installment amount

    Returns:
        OriginationQuote. A negative disbursed amount is returned as-is;
        rejecting it is the caller's policy.

    Raises:
        InvalidPrincipal: principal is not positive
        DivisionByZero: period_count is not positive
    """
    try:
        principal = to_decimal(principal, "principal")
    except ValueError as e:
        raise InvalidPrincipal(str(e), {"principal": principal})
    if principal <= ZERO:
        raise InvalidPrincipal("Principal must be greater than zero", {"principal": principal})

    period_count = product.period_count
    if isinstance(period_count, bool) or not isinstance(period_count, int) or period_count <= 0:
        raise DivisionByZero(
            "Period count must be a positive integer to split installments",
            {"period_count": period_count}
        )

    interest_amount = rounding.round_charge(
        percent_of(principal, to_decimal(product.interest_percent, "interest_percent"))
    )
    initial_deduction_amount = rounding.round_charge(
        percent_of(principal, to_decimal(product.initial_deduction_percent, "initial_deduction_percent"))
    )

    if product.interest_prepaid:
        disbursed_amount = principal - interest_amount - initial_deduction_amount
        total_payable = principal
    else:
        disbursed_amount = principal - initial_deduction_amount
        total_payable = principal + interest_amount

    installment_amount = rounding.round_installment(total_payable / Decimal(period_count))

    return OriginationQuote(
        principal=principal,
        interest_amount=interest_amount,
        initial_deduction_amount=initial_deduction_amount,
        disbursed_amount=disbursed_amount,
        installment_amount=installment_amount,
        total_payable=total_payable,
        total_installment_count=period_count,
        interest_prepaid=bool(product.interest_prepaid)
    )
