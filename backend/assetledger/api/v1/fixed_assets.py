"""
Fixed Assets API Routes - Asset register, depreciation and disposal
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from assetledger.core.database import get_db
from assetledger.core.security import CurrentActor, Role, RoleChecker, get_current_actor
from assetledger.schemas import (
    FixedAssetCreate, FixedAssetResponse, DepreciationScheduleResponse, ScheduleLineResponse,
    DepreciationCalculationRequest, DepreciationCalculationResponse, DepreciationEntryResponse,
    PostDepreciationRequest, PostingResultResponse, BulkDepreciationRequest, BulkDepreciationResult,
    DisposalRequest
)
from assetledger.services.fixed_assets_service import FixedAssetService
from assetledger.services.posting_service import DepreciationPostingService

router = APIRouter(prefix="/fixed-assets", tags=["Fixed Assets"])

can_post = RoleChecker([Role.OWNER, Role.ACCOUNTANT])


@router.get("", response_model=List[FixedAssetResponse])
async def list_fixed_assets(
    status: Optional[str] = None,
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(get_current_actor)
):
    """List all fixed assets"""
    asset_service = FixedAssetService(db)
    return asset_service.get_by_tenant(actor.tenant_id, status=status, category=category)


@router.post("", response_model=FixedAssetResponse, status_code=201)
async def create_fixed_asset(
    asset_data: FixedAssetCreate,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(can_post)
):
    """Register a new fixed asset"""
    asset_service = FixedAssetService(db)
    asset = asset_service.create(asset_data, actor.tenant_id, created_by=actor.username)
    db.commit()
    return asset


@router.get("/summary")
async def get_assets_summary(
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(get_current_actor)
):
    """Get summary of fixed assets"""
    asset_service = FixedAssetService(db)
    summary = asset_service.get_asset_summary(actor.tenant_id)

    return {
        "total_assets": summary["total_assets"],
        "total_cost": str(summary["total_cost"]),
        "total_accumulated_depreciation": str(summary["total_accumulated_depreciation"]),
        "total_book_value": str(summary["total_book_value"]),
        "by_category": {
            cat: {
                "count": data["count"],
                "total_cost": str(data["total_cost"]),
                "total_accumulated_depreciation": str(data["total_accumulated_depreciation"]),
                "total_book_value": str(data["total_book_value"])
            }
            for cat, data in summary["by_category"].items()
        },
        "by_status": summary["by_status"]
    }


@router.post("/bulk-depreciation", response_model=List[BulkDepreciationResult])
async def run_bulk_depreciation(
    data: BulkDepreciationRequest,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(can_post)
):
    """Post depreciation for all (or the listed) active assets"""
    posting_service = DepreciationPostingService(db)
    return posting_service.post_all(actor.tenant_id, data.as_of_date, actor.username, data.asset_ids)


@router.get("/{asset_id}", response_model=FixedAssetResponse)
async def get_fixed_asset(
    asset_id: int,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(get_current_actor)
):
    """Get fixed asset by ID"""
    return FixedAssetService(db).load(asset_id, actor.tenant_id)


@router.get("/{asset_id}/depreciation-schedule", response_model=DepreciationScheduleResponse)
async def get_depreciation_schedule(
    asset_id: int,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(get_current_actor)
):
    """Full month-by-month depreciation schedule"""
    asset_service = FixedAssetService(db)
    asset = asset_service.load(asset_id, actor.tenant_id)
    schedule = asset_service.get_schedule(asset_id, actor.tenant_id)

    return DepreciationScheduleResponse(
        asset_id=asset.id,
        asset_number=asset.asset_number,
        depreciation_method=asset.depreciation_method,
        depreciable_base=asset.depreciable_base,
        schedule=[ScheduleLineResponse.model_validate(line) for line in schedule]
    )


@router.post("/{asset_id}/calculate-depreciation", response_model=DepreciationCalculationResponse)
async def calculate_depreciation(
    asset_id: int,
    data: DepreciationCalculationRequest,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(get_current_actor)
):
    """Preview the depreciation a posting would record (no changes saved)"""
    asset_service = FixedAssetService(db)
    as_of = data.as_of_date or date.today()
    calculation = asset_service.preview_depreciation(asset_id, actor.tenant_id, as_of)

    return DepreciationCalculationResponse(
        asset_id=asset_id,
        as_of_date=calculation.as_of_date,
        months_elapsed=calculation.months_elapsed,
        depreciation_amount=calculation.depreciation_amount,
        new_accumulated_depreciation=calculation.new_accumulated_depreciation,
        new_book_value=calculation.new_book_value,
        not_applicable=calculation.not_applicable,
        periods=[f"{year}-{month:02d}" for year, month in calculation.periods]
    )


@router.post("/{asset_id}/post-depreciation", response_model=PostingResultResponse)
async def post_depreciation(
    asset_id: int,
    data: PostDepreciationRequest,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(can_post)
):
    """Post depreciation owed up to as_of_date; repeated calls return the existing entry"""
    posting_service = DepreciationPostingService(db)
    result = posting_service.post(asset_id, data.as_of_date, actor.username, actor.tenant_id)

    return PostingResultResponse(
        asset_id=result.asset_id,
        status=result.status.value,
        depreciation_amount=result.depreciation_amount,
        months_elapsed=result.months_elapsed,
        entry=DepreciationEntryResponse.model_validate(result.entry) if result.entry else None
    )


@router.get("/{asset_id}/depreciation-history", response_model=List[DepreciationEntryResponse])
async def get_depreciation_history(
    asset_id: int,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(get_current_actor)
):
    """Get depreciation history for an asset"""
    return FixedAssetService(db).get_depreciation_history(asset_id, actor.tenant_id)


@router.post("/{asset_id}/dispose", response_model=FixedAssetResponse)
async def dispose_asset(
    asset_id: int,
    data: DisposalRequest,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(can_post)
):
    """Dispose of an asset"""
    return FixedAssetService(db).dispose(asset_id, actor.tenant_id, data, actor.username)
