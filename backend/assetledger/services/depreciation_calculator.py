"""
Depreciation Calculator - amount owed since an asset's last posting

Pure: reads the asset snapshot it is given and its schedule, writes nothing.
"""
from datetime import date
from typing import List, Tuple

from dateutil.relativedelta import relativedelta

from assetledger.core.exceptions import ValidationError
from assetledger.core.money import ZERO
from assetledger.models import AssetStatus
from assetledger.services.depreciation_schedule import (
    accumulated_through, generate_schedule, validate_terms
)
from assetledger.services.depreciation_types import AssetSnapshot, DepreciationCalculation


def whole_months_between(start: date, end: date) -> int:
    """Number of complete months from start to end (start + n months <= end)"""
    if end <= start:
        return 0
    months = (end.year - start.year) * 12 + end.month - start.month
    if start + relativedelta(months=months) > end:
        months -= 1
    return max(months, 0)


def months_already_posted(terms: AssetSnapshot) -> int:
    """Schedule periods covered by postings so far"""
    last = terms.last_depreciation_date
    if last is None:
        return 0
    return max(0, (last.year - terms.purchase_date.year) * 12 + last.month - terms.purchase_date.month)


def spanned_periods(purchase_date: date, months: int, already_posted: int = 0) -> List[Tuple[int, int]]:
    """
    (year, month) of the end of each schedule period being posted.

    Periods already_posted + 1 .. already_posted + months, each dated
    purchase_date + i months. A period belongs to the month it ends in, so the
    purchase month itself is never one of them even though most of period 1
    falls inside it.
    """
    periods = []
    for offset in range(already_posted + 1, already_posted + months + 1):
        period_end = purchase_date + relativedelta(months=offset)
        periods.append((period_end.year, period_end.month))
    return periods


def calculate(asset, as_of: date) -> DepreciationCalculation:
    """
    Compute the depreciation owed from the last posting up to as_of.

    Only whole months count, measured from the purchase date. The amount
    brings accumulated depreciation up to the scheduled figure for the new period and never exceeds the
    remaining depreciable base. Assets that are fully depreciated or disposed
    get a not-applicable result with a zero amount.
    """
    terms = validate_terms(asset)

    if terms.status != AssetStatus.ACTIVE:
        return DepreciationCalculation(
            as_of_date=as_of,
            months_elapsed=0,
            depreciation_amount=ZERO,
            new_accumulated_depreciation=terms.accumulated_depreciation,
            new_book_value=terms.net_book_value,
            not_applicable=True,
        )

    anchor = terms.last_depreciation_date or terms.purchase_date
    if as_of < anchor:
        raise ValidationError(
            f"as_of_date {as_of.isoformat()} is before the last depreciation date {anchor.isoformat()}"
        )

    posted = months_already_posted(terms)
    total = whole_months_between(terms.purchase_date, as_of)
    months = max(total - posted, 0)
    if months == 0:
        return DepreciationCalculation(
            as_of_date=as_of,
            months_elapsed=0,
            depreciation_amount=ZERO,
            new_accumulated_depreciation=terms.accumulated_depreciation,
            new_book_value=terms.net_book_value,
        )

    schedule = generate_schedule(terms)
    target = accumulated_through(schedule, total)
    amount = min(max(target - terms.accumulated_depreciation, ZERO), terms.remaining_depreciable)
    new_accumulated = terms.accumulated_depreciation + amount

    return DepreciationCalculation(
        as_of_date=as_of,
        months_elapsed=months,
        depreciation_amount=amount,
        new_accumulated_depreciation=new_accumulated,
        new_book_value=terms.purchase_cost - new_accumulated,
        periods=spanned_periods(terms.purchase_date, months, already_posted=posted),
        new_last_depreciation_date=terms.purchase_date + relativedelta(months=total),
    )
