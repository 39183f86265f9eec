"""
Tax calculation.

Taxes are applied in the order given. A compound tax adds its own amount to
the running base, so every tax after it is charged on the tax-inclusive
amount; normal and withholding taxes leave the base alone. Reordering the
same set of taxes can therefore change the result.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, Optional

from models.tax import TaxType
from schemas.tax import TaxBreakdownItem, TaxCalculationResult

HUNDRED = Decimal("100")

ExemptionCheck = Callable[[int, int], bool]


def tax_on(amount: Decimal, rate) -> Decimal:
    return Decimal(amount) * Decimal(rate) / HUNDRED


def calculate_tax_with_exemptions(
    base_amount,
    taxes: Iterable,
    contact_id: Optional[int] = None,
    is_exempt: Optional[ExemptionCheck] = None,
) -> TaxCalculationResult:
    """
    Compute the tax owed on ``base_amount``.

    ``is_exempt(contact_id, tax_id)`` is consulted for every tax when a
    contact is given; an exempt tax still gets a zero-amount breakdown row.
    """
    base_amount = Decimal(base_amount)
    current_amount = base_amount
    total_tax = Decimal("0")
    breakdown = []

    for tax in taxes:
        exempt = bool(contact_id is not None and is_exempt and is_exempt(contact_id, tax.id))
        if exempt:
            breakdown.append(TaxBreakdownItem(
                tax_id=tax.id,
                tax_name=tax.name,
                tax_type=tax.type,
                tax_rate=tax.rate,
                tax_amount=Decimal("0"),
                is_exempt=True,
            ))
            continue

        amount = tax_on(current_amount, tax.rate)
        total_tax += amount
        breakdown.append(TaxBreakdownItem(
            tax_id=tax.id,
            tax_name=tax.name,
            tax_type=tax.type,
            tax_rate=tax.rate,
            tax_amount=amount,
            is_exempt=False,
        ))

        if tax.type == TaxType.COMPOUND.value:
            current_amount += amount

    if base_amount > 0:
        effective_rate = (total_tax / base_amount * HUNDRED).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    else:
        effective_rate = Decimal("0")

    return TaxCalculationResult(
        base_amount=base_amount,
        tax_amount=total_tax,
        total_amount=base_amount + total_tax,
        effective_rate=effective_rate,
        tax_breakdown=breakdown,
    )
