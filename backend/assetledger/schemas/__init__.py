"""
Pydantic Schemas for API Validation
"""
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import List, Optional
from datetime import datetime, date
from decimal import Decimal
from enum import Enum


# ==================== ENUMS ====================

class DepreciationMethodEnum(str, Enum):
    STRAIGHT_LINE = "STRAIGHT_LINE"
    DECLINING_BALANCE = "DECLINING_BALANCE"
    DOUBLE_DECLINING = "DOUBLE_DECLINING"
    SUM_OF_YEARS_DIGITS = "SUM_OF_YEARS_DIGITS"


class AssetCategoryEnum(str, Enum):
    BUILDING = "BUILDING"
    VEHICLE = "VEHICLE"
    EQUIPMENT = "EQUIPMENT"
    FURNITURE = "FURNITURE"
    COMPUTER = "COMPUTER"
    SOFTWARE = "SOFTWARE"
    MACHINERY = "MACHINERY"
    OTHER = "OTHER"


# ==================== FIXED ASSET SCHEMAS ====================

class FixedAssetBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    asset_number: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    category: Optional[AssetCategoryEnum] = None
    purchase_date: date
    purchase_cost: Decimal = Field(..., ge=0, decimal_places=2)
    salvage_value: Decimal = Field(default=Decimal("0.00"), ge=0, decimal_places=2)
    useful_life_months: int = Field(..., ge=1, le=1200)
    depreciation_method: DepreciationMethodEnum = DepreciationMethodEnum.STRAIGHT_LINE
    depreciation_rate: Optional[Decimal] = Field(None, gt=0, le=100)
    asset_account_code: Optional[str] = Field(None, max_length=20)
    depreciation_expense_account_code: Optional[str] = Field(None, max_length=20)
    accumulated_depreciation_account_code: Optional[str] = Field(None, max_length=20)

    @model_validator(mode="after")
    def check_salvage(self):
        if self.salvage_value > self.purchase_cost:
            raise ValueError("salvage_value cannot exceed purchase_cost")
        return self


class FixedAssetCreate(FixedAssetBase):
    pass


class FixedAssetResponse(BaseModel):
    id: int
    tenant_id: int
    asset_number: str
    name: str
    description: Optional[str]
    category: Optional[str]
    purchase_date: date
    purchase_cost: Decimal
    salvage_value: Decimal
    useful_life_months: int
    depreciation_method: str
    depreciation_rate: Optional[Decimal]
    accumulated_depreciation: Decimal
    net_book_value: Decimal
    remaining_life_months: int
    last_depreciation_date: Optional[date]
    status: str
    disposal_date: Optional[date]
    disposal_amount: Optional[Decimal]
    disposal_gain_loss: Optional[Decimal]
    version: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ScheduleLineResponse(BaseModel):
    period_index: int
    date: date
    depreciation_amount: Decimal
    accumulated_depreciation: Decimal
    book_value: Decimal

    model_config = ConfigDict(from_attributes=True)


class DepreciationScheduleResponse(BaseModel):
    asset_id: int
    asset_number: str
    depreciation_method: str
    depreciable_base: Decimal
    schedule: List[ScheduleLineResponse]


class DepreciationCalculationRequest(BaseModel):
    as_of_date: Optional[date] = None  # Defaults to today


class DepreciationCalculationResponse(BaseModel):
    asset_id: int
    as_of_date: date
    months_elapsed: int
    depreciation_amount: Decimal
    new_accumulated_depreciation: Decimal
    new_book_value: Decimal
    not_applicable: bool
    periods: List[str]  # YYYY-MM


class DepreciationEntryResponse(BaseModel):
    id: int
    asset_id: int
    tenant_id: int
    period_year: int
    period_month: int
    amount: Decimal
    months_covered: int
    period_start: date
    period_end: date
    posted_at: datetime
    posted_by: str
    journal_entry_id: Optional[int]

    model_config = ConfigDict(from_attributes=True)


class PostDepreciationRequest(BaseModel):
    as_of_date: date


class PostingResultResponse(BaseModel):
    asset_id: int
    status: str  # POSTED, REPLAYED, NO_OP, NOT_APPLICABLE
    depreciation_amount: Decimal
    months_elapsed: int
    entry: Optional[DepreciationEntryResponse] = None


class BulkDepreciationRequest(BaseModel):
    as_of_date: date
    asset_ids: Optional[List[int]] = None  # If None, depreciate all active assets


class BulkDepreciationResult(BaseModel):
    asset_id: int
    asset_number: str
    status: str
    depreciation_amount: Decimal = Decimal("0.00")
    error: Optional[str] = None


class DisposalRequest(BaseModel):
    disposal_date: date
    disposal_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    disposal_reason: Optional[str] = None


# ==================== FINANCIAL PERIOD SCHEMAS ====================

class FinancialPeriodResponse(BaseModel):
    tenant_id: int
    year: int
    month: int
    period_label: str
    is_locked: bool
    locked_at: Optional[datetime] = None
    locked_by: Optional[str] = None
    unlocked_at: Optional[datetime] = None
    unlocked_by: Optional[str] = None
    unlock_reason: Optional[str] = None
    journal_entry_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class PeriodUnlockRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class PeriodTransitionResponse(BaseModel):
    sequence: int
    from_state: str
    to_state: str
    actor: str
    reason: Optional[str]
    occurred_at: datetime

    model_config = ConfigDict(from_attributes=True)
