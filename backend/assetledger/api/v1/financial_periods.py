"""
Financial Periods API Routes - Monthly period locking
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from assetledger.core.database import get_db
from assetledger.core.security import CurrentActor, Role, RoleChecker, get_current_actor
from assetledger.schemas import FinancialPeriodResponse, PeriodTransitionResponse, PeriodUnlockRequest
from assetledger.services.period_lock_service import PeriodLockService

router = APIRouter(prefix="/financial-periods", tags=["Financial Periods"])


@router.get("", response_model=List[FinancialPeriodResponse])
async def list_financial_periods(
    year: Optional[int] = None,
    is_locked: Optional[bool] = None,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(get_current_actor)
):
    """List periods that have been referenced"""
    return PeriodLockService(db).list_periods(actor.tenant_id, year=year, is_locked=is_locked)


@router.get("/{year}/{month}", response_model=FinancialPeriodResponse)
async def get_financial_period(
    year: int,
    month: int,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(get_current_actor)
):
    """Get a period, creating it unlocked on first reference"""
    period = PeriodLockService(db).get_or_create_period(actor.tenant_id, year, month)
    db.commit()
    return period


@router.post(
    "/{year}/{month}/lock",
    response_model=FinancialPeriodResponse,
    dependencies=[Depends(RoleChecker([Role.OWNER, Role.ACCOUNTANT]))]
)
async def lock_financial_period(
    year: int,
    month: int,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(get_current_actor)
):
    """Lock a period; no depreciation can be posted into it afterwards"""
    return PeriodLockService(db).lock(actor.tenant_id, year, month, actor.username)


@router.post(
    "/{year}/{month}/unlock",
    response_model=FinancialPeriodResponse,
    dependencies=[Depends(RoleChecker([Role.OWNER]))]
)
async def unlock_financial_period(
    year: int,
    month: int,
    data: Optional[PeriodUnlockRequest] = None,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(get_current_actor)
):
    """Reopen a locked period (owner only)"""
    reason = data.reason if data else None
    return PeriodLockService(db).unlock(actor.tenant_id, year, month, actor.username, reason=reason)


@router.get("/{year}/{month}/history", response_model=List[PeriodTransitionResponse])
async def get_period_history(
    year: int,
    month: int,
    db: Session = Depends(get_db),
    actor: CurrentActor = Depends(get_current_actor)
):
    """Lock/unlock transitions of a period, oldest first"""
    return PeriodLockService(db).get_history(actor.tenant_id, year, month)
