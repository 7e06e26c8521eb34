"""
Value types shared by the depreciation schedule, calculator and posting services
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from assetledger.core.money import ZERO, to_decimal
from assetledger.models import AssetStatus, DepreciationMethod


@dataclass(frozen=True)
class AssetSnapshot:
    """Immutable view of the depreciation terms and state of one asset"""
    id: Optional[int]
    tenant_id: Optional[int]
    purchase_date: date
    purchase_cost: Decimal
    salvage_value: Decimal
    useful_life_months: int
    depreciation_method: DepreciationMethod
    accumulated_depreciation: Decimal = ZERO
    last_depreciation_date: Optional[date] = None
    status: AssetStatus = AssetStatus.ACTIVE
    depreciation_rate: Optional[Decimal] = None
    version: int = 1
    asset_number: Optional[str] = None

    @classmethod
    def from_model(cls, asset) -> "AssetSnapshot":
        if isinstance(asset, cls):
            return asset
        rate = asset.depreciation_rate
        return cls(
            id=asset.id,
            tenant_id=asset.tenant_id,
            purchase_date=asset.purchase_date,
            purchase_cost=to_decimal(asset.purchase_cost),
            salvage_value=to_decimal(asset.salvage_value),
            useful_life_months=asset.useful_life_months,
            depreciation_method=DepreciationMethod(asset.depreciation_method),
            accumulated_depreciation=to_decimal(asset.accumulated_depreciation),
            last_depreciation_date=asset.last_depreciation_date,
            status=AssetStatus(asset.status),
            depreciation_rate=to_decimal(rate) if rate is not None else None,
            version=asset.version,
            asset_number=asset.asset_number,
        )

    @property
    def depreciable_base(self) -> Decimal:
        return self.purchase_cost - self.salvage_value

    @property
    def net_book_value(self) -> Decimal:
        return self.purchase_cost - self.accumulated_depreciation

    @property
    def remaining_depreciable(self) -> Decimal:
        return max(self.depreciable_base - self.accumulated_depreciation, ZERO)


@dataclass(frozen=True)
class ScheduleLine:
    period_index: int
    date: date
    depreciation_amount: Decimal
    accumulated_depreciation: Decimal
    book_value: Decimal


@dataclass(frozen=True)
class DepreciationCalculation:
    """Amount owed between the asset's last posting and an as-of date"""
    as_of_date: date
    months_elapsed: int
    depreciation_amount: Decimal
    new_accumulated_depreciation: Decimal
    new_book_value: Decimal
    not_applicable: bool = False
    periods: List[Tuple[int, int]] = field(default_factory=list)
    new_last_depreciation_date: Optional[date] = None

    @property
    def target_period(self) -> Optional[Tuple[int, int]]:
        """(year, month) the posting is recorded against"""
        if self.new_last_depreciation_date is None:
            return None
        return self.new_last_depreciation_date.year, self.new_last_depreciation_date.month


class PostingStatus(Enum):
    POSTED = "POSTED"
    REPLAYED = "REPLAYED"  # The period was already posted; the existing entry is returned
    NO_OP = "NO_OP"
    NOT_APPLICABLE = "NOT_APPLICABLE"


@dataclass
class PostingResult:
    asset_id: int
    status: PostingStatus
    calculation: Optional[DepreciationCalculation] = None
    entry: Optional[object] = None  # DepreciationEntry

    @property
    def depreciation_amount(self) -> Decimal:
        if self.entry is not None:
            return to_decimal(self.entry.amount)
        return ZERO

    @property
    def months_elapsed(self) -> int:
        if self.status == PostingStatus.REPLAYED and self.entry is not None:
            return self.entry.months_covered
        return self.calculation.months_elapsed if self.calculation else 0
