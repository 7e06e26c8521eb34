"""
Depreciation Schedule - month-by-month amortization of a fixed asset

Pure functions only: a schedule is recomputed from the asset's terms on every
call and never touches the database.
"""
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, List

from dateutil.relativedelta import relativedelta

from assetledger.core.exceptions import ValidationError
from assetledger.core.money import ROUNDING_UNIT, ZERO, quantize_money, round_down_money
from assetledger.models import DepreciationMethod
from assetledger.services.depreciation_types import AssetSnapshot, ScheduleLine

# (terms, period_index, opening_book_value) -> amount for that month
MethodRule = Callable[[AssetSnapshot, int, Decimal], Decimal]


def _straight_line(terms: AssetSnapshot, period: int, book_value: Decimal) -> Decimal:
    # Rounded down so the final period absorbs a non-negative remainder
    return round_down_money(terms.depreciable_base / Decimal(terms.useful_life_months))


def _declining_rate(terms: AssetSnapshot, factor: int) -> Decimal:
    if terms.depreciation_rate is not None and terms.depreciation_method == DepreciationMethod.DECLINING_BALANCE:
        return terms.depreciation_rate / Decimal(100) / Decimal(12)
    # (factor / useful life in years) / 12 == factor / useful life in months
    return Decimal(factor) / Decimal(terms.useful_life_months)


def _declining_balance(terms: AssetSnapshot, period: int, book_value: Decimal) -> Decimal:
    return quantize_money(book_value * _declining_rate(terms, 1))


def _double_declining(terms: AssetSnapshot, period: int, book_value: Decimal) -> Decimal:
    return quantize_money(book_value * _declining_rate(terms, 2))


def _sum_of_years_digits(terms: AssetSnapshot, period: int, book_value: Decimal) -> Decimal:
    life_years = (terms.useful_life_months + 11) // 12
    year = (period - 1) // 12 + 1
    months_in_year = 12 if year < life_years else terms.useful_life_months - 12 * (life_years - 1)
    digits_sum = life_years * (life_years + 1) // 2
    remaining_years = life_years - year + 1
    yearly_amount = terms.depreciable_base * Decimal(remaining_years) / Decimal(digits_sum)
    return quantize_money(yearly_amount / Decimal(months_in_year))


METHOD_RULES: Dict[DepreciationMethod, MethodRule] = {
    DepreciationMethod.STRAIGHT_LINE: _straight_line,
    DepreciationMethod.DECLINING_BALANCE: _declining_balance,
    DepreciationMethod.DOUBLE_DECLINING: _double_declining,
    DepreciationMethod.SUM_OF_YEARS_DIGITS: _sum_of_years_digits,
}

_unhandled = set(DepreciationMethod) - set(METHOD_RULES)
if _unhandled:
    raise RuntimeError(f"No depreciation rule for: {sorted(m.value for m in _unhandled)}")


def validate_terms(asset) -> AssetSnapshot:
    """Check the asset's depreciation terms and return them as a snapshot"""
    try:
        terms = AssetSnapshot.from_model(asset)
    except ValueError as e:
        raise ValidationError(f"Invalid asset terms: {e}") from e

    if terms.useful_life_months is None or terms.useful_life_months <= 0:
        raise ValidationError("useful_life_months must be greater than zero")
    if terms.purchase_cost < 0:
        raise ValidationError("purchase_cost cannot be negative")
    if terms.salvage_value < 0:
        raise ValidationError("salvage_value cannot be negative")
    if terms.salvage_value > terms.purchase_cost:
        raise ValidationError("salvage_value cannot exceed purchase_cost")
    if terms.depreciation_rate is not None and terms.depreciation_rate <= 0:
        raise ValidationError("depreciation_rate must be positive")
    return terms


def period_date(purchase_date: date, period_index: int) -> date:
    """Date on which the given period of the schedule ends"""
    return purchase_date + relativedelta(months=period_index)


def generate_schedule(asset) -> List[ScheduleLine]:
    """
    Build the full depreciation schedule for an asset.

    Period i covers the month ending purchase_date + i months. Every amount
    is at least one rounding unit, so book value strictly decreases; the last
    period of the useful life takes whatever base remains, so the amounts sum
    to purchase_cost - salvage_value exactly. A period that would take book
    value below salvage is clamped to land on salvage and ends the schedule.
    """
    terms = validate_terms(asset)
    rule = METHOD_RULES[terms.depreciation_method]
    life = terms.useful_life_months

    schedule = []
    book_value = terms.purchase_cost
    accumulated = ZERO

    for period in range(1, life + 1):
        remaining = book_value - terms.salvage_value
        if remaining <= 0:
            break

        if period == life:
            amount = remaining
        else:
            amount = max(rule(terms, period, book_value), ROUNDING_UNIT)
            amount = min(amount, remaining)

        accumulated += amount
        book_value -= amount
        schedule.append(ScheduleLine(
            period_index=period,
            date=period_date(terms.purchase_date, period),
            depreciation_amount=amount,
            accumulated_depreciation=accumulated,
            book_value=book_value,
        ))

    return schedule


def accumulated_through(schedule: List[ScheduleLine], period_index: int) -> Decimal:
    """Scheduled accumulated depreciation at the end of a period (0 = none yet)"""
    if period_index <= 0 or not schedule:
        return ZERO
    if period_index >= len(schedule):
        return schedule[-1].accumulated_depreciation
    return schedule[period_index - 1].accumulated_depreciation
