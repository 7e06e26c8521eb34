"""
Fixed Assets Service - Asset register, schedules and disposal
"""
from typing import Optional, List, Dict
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, OperationalError
from decimal import Decimal
from datetime import date, datetime
import logging

from assetledger.core.config import settings
from assetledger.core.exceptions import AssetNotFoundError, ConflictError, ValidationError
from assetledger.core.money import ZERO, quantize_money, to_decimal
from assetledger.models import (
    FixedAsset, DepreciationEntry, AssetStatus, JournalSourceType
)
from assetledger.schemas import FixedAssetCreate, DisposalRequest
from assetledger.services.depreciation_calculator import calculate as calculate_depreciation
from assetledger.services.audit_service import AuditAction, AuditService
from assetledger.services.depreciation_schedule import generate_schedule, validate_terms
from assetledger.services.depreciation_types import AssetSnapshot, DepreciationCalculation, ScheduleLine
from assetledger.services.ledger_service import LedgerLine, LedgerPosting, LedgerService
from assetledger.services.period_lock_service import PeriodLockService

logger = logging.getLogger(__name__)


class FixedAssetService:
    """Service for managing fixed assets"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, asset_id: int, tenant_id: int) -> Optional[FixedAsset]:
        return self.db.query(FixedAsset).filter(
            FixedAsset.id == asset_id,
            FixedAsset.tenant_id == tenant_id
        ).first()

    def load(self, asset_id: int, tenant_id: int) -> FixedAsset:
        """Fetch an asset or raise AssetNotFoundError"""
        asset = self.get_by_id(asset_id, tenant_id)
        if not asset:
            raise AssetNotFoundError(asset_id)
        return asset

    def load_snapshot(self, asset_id: int, tenant_id: int) -> AssetSnapshot:
        return AssetSnapshot.from_model(self.load(asset_id, tenant_id))

    def compare_and_update(self, asset_id: int, expected_version: int, patch: Dict) -> int:
        """
        Apply patch only if the asset is still at expected_version.

        Bumps the version and returns the new one. Raises ConflictError if a
        concurrent writer updated the asset first.
        """
        values = dict(patch)
        values[FixedAsset.version] = expected_version + 1
        values[FixedAsset.updated_at] = datetime.utcnow()

        updated = self.db.query(FixedAsset).filter(
            FixedAsset.id == asset_id,
            FixedAsset.version == expected_version
        ).update(values, synchronize_session=False)

        if updated == 0:
            raise ConflictError(
                f"Fixed asset {asset_id} was modified concurrently (expected version {expected_version})"
            )
        return expected_version + 1

    def get_by_tenant(self, tenant_id: int, status: str = None,
                      category: str = None) -> List[FixedAsset]:
        query = self.db.query(FixedAsset).filter(FixedAsset.tenant_id == tenant_id)

        if status:
            query = query.filter(FixedAsset.status == status)

        if category:
            query = query.filter(FixedAsset.category == category)

        return query.order_by(FixedAsset.id).all()

    def get_next_asset_number(self, tenant_id: int) -> str:
        """Generate next asset number"""
        last_asset = self.db.query(FixedAsset).filter(
            FixedAsset.tenant_id == tenant_id,
            FixedAsset.asset_number.like('FA-%')
        ).order_by(FixedAsset.id.desc()).first()

        if last_asset and last_asset.asset_number:
            try:
                num = int(last_asset.asset_number.replace('FA-', ''))
                return f'FA-{num + 1:05d}'
            except ValueError:
                pass

        return 'FA-00001'

    def create(self, asset_data: FixedAssetCreate, tenant_id: int, created_by: str = None) -> FixedAsset:
        """Register a new fixed asset"""
        asset_number = asset_data.asset_number or self.get_next_asset_number(tenant_id)

        existing = self.db.query(FixedAsset.id).filter(
            FixedAsset.tenant_id == tenant_id,
            FixedAsset.asset_number == asset_number
        ).first()
        if existing:
            raise ValidationError(f"Asset number {asset_number} already exists")

        asset = FixedAsset(
            tenant_id=tenant_id,
            asset_number=asset_number,
            name=asset_data.name,
            description=asset_data.description,
            category=asset_data.category.value if asset_data.category else None,
            purchase_date=asset_data.purchase_date,
            purchase_cost=quantize_money(asset_data.purchase_cost),
            salvage_value=quantize_money(asset_data.salvage_value),
            useful_life_months=asset_data.useful_life_months,
            depreciation_method=asset_data.depreciation_method.value,
            depreciation_rate=asset_data.depreciation_rate,
            accumulated_depreciation=ZERO,
            status=AssetStatus.ACTIVE.value,
            asset_account_code=asset_data.asset_account_code,
            depreciation_expense_account_code=asset_data.depreciation_expense_account_code,
            accumulated_depreciation_account_code=asset_data.accumulated_depreciation_account_code,
            version=1,
            created_by=created_by
        )
        # Rejects impossible terms before anything is written
        validate_terms(AssetSnapshot.from_model(asset))

        try:
            self.db.add(asset)
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"Asset number {asset_number} was taken concurrently") from e

        AuditService(self.db).log(
            action=AuditAction.ASSET_CREATED,
            resource_type="FixedAsset",
            resource_id=asset.id,
            description=f"Registered asset {asset.asset_number} - {asset.name}",
            new_values={
                "purchase_cost": asset.purchase_cost,
                "salvage_value": asset.salvage_value,
                "useful_life_months": asset.useful_life_months,
                "depreciation_method": asset.depreciation_method,
            },
            username=created_by,
            tenant_id=tenant_id
        )
        return asset

    # ==================== DEPRECIATION (READ-ONLY) ====================

    def get_schedule(self, asset_id: int, tenant_id: int) -> List[ScheduleLine]:
        """Full depreciation schedule of an asset"""
        return generate_schedule(self.load_snapshot(asset_id, tenant_id))

    def preview_depreciation(self, asset_id: int, tenant_id: int,
                             as_of: date = None) -> DepreciationCalculation:
        """Depreciation that a posting at as_of would record; writes nothing"""
        return calculate_depreciation(
            self.load_snapshot(asset_id, tenant_id), as_of or date.today()
        )

    def get_depreciation_history(self, asset_id: int, tenant_id: int) -> List[DepreciationEntry]:
        """Get depreciation history for an asset"""
        self.load(asset_id, tenant_id)
        return self.db.query(DepreciationEntry).filter(
            DepreciationEntry.asset_id == asset_id,
            DepreciationEntry.tenant_id == tenant_id
        ).order_by(DepreciationEntry.period_end.desc()).all()

    def get_asset_summary(self, tenant_id: int) -> Dict:
        """Get summary of fixed assets"""
        assets = self.db.query(FixedAsset).filter(FixedAsset.tenant_id == tenant_id).all()
        in_service = [a for a in assets if a.status != AssetStatus.DISPOSED.value]

        total_cost = sum((to_decimal(a.purchase_cost) for a in in_service), ZERO)
        total_accumulated_dep = sum((to_decimal(a.accumulated_depreciation) for a in in_service), ZERO)

        by_category = {}
        for asset in in_service:
            cat = asset.category or "Uncategorized"
            if cat not in by_category:
                by_category[cat] = {
                    "count": 0,
                    "total_cost": ZERO,
                    "total_accumulated_depreciation": ZERO,
                    "total_book_value": ZERO
                }
            by_category[cat]["count"] += 1
            by_category[cat]["total_cost"] += to_decimal(asset.purchase_cost)
            by_category[cat]["total_accumulated_depreciation"] += to_decimal(asset.accumulated_depreciation)
            by_category[cat]["total_book_value"] += to_decimal(asset.net_book_value)

        return {
            "total_assets": len(in_service),
            "total_cost": total_cost,
            "total_accumulated_depreciation": total_accumulated_dep,
            "total_book_value": total_cost - total_accumulated_dep,
            "by_category": by_category,
            "by_status": {
                status: len([a for a in assets if a.status == status])
                for status in [s.value for s in AssetStatus]
            }
        }

    # ==================== DISPOSAL ====================

    def dispose(self, asset_id: int, tenant_id: int, disposal_data: DisposalRequest,
                actor: str) -> FixedAsset:
        """
        Dispose of an asset and record the disposal journal entry.

        Book value is taken as of the last posted depreciation; post any
        outstanding depreciation before disposing. The disposal date must
        fall in an open period.
        """
        asset = self.load(asset_id, tenant_id)
        if asset.status == AssetStatus.DISPOSED.value:
            raise ValidationError(f"Fixed asset {asset.asset_number} is already disposed")
        if disposal_data.disposal_date < asset.purchase_date:
            raise ValidationError("disposal_date cannot be before purchase_date")
        if asset.last_depreciation_date and disposal_data.disposal_date < asset.last_depreciation_date:
            raise ValidationError("disposal_date cannot be before the last depreciation date")

        periods = PeriodLockService(self.db)
        year, month = disposal_data.disposal_date.year, disposal_data.disposal_date.month
        periods.assert_open(tenant_id, [(year, month)])

        cost = to_decimal(asset.purchase_cost)
        accumulated = to_decimal(asset.accumulated_depreciation)
        proceeds = quantize_money(disposal_data.disposal_amount)
        gain_loss = proceeds - (cost - accumulated)
        expected_version = asset.version

        try:
            periods.claim_open_period(tenant_id, year, month, count_posting=True)
            self.compare_and_update(asset.id, expected_version, {
                FixedAsset.status: AssetStatus.DISPOSED.value,
                FixedAsset.disposal_date: disposal_data.disposal_date,
                FixedAsset.disposal_amount: proceeds,
                FixedAsset.disposal_gain_loss: gain_loss,
                FixedAsset.disposal_reason: disposal_data.disposal_reason,
            })
            if cost > 0 or proceeds > 0:
                LedgerService(self.db).append(self._disposal_posting(
                    asset, proceeds, accumulated, gain_loss, disposal_data.disposal_date, actor
                ))
            AuditService(self.db).log(
                action=AuditAction.ASSET_DISPOSED,
                resource_type="FixedAsset",
                resource_id=asset.id,
                description=f"Disposed asset {asset.asset_number}",
                old_values={"status": asset.status, "book_value": cost - accumulated},
                new_values={"status": AssetStatus.DISPOSED.value, "proceeds": proceeds, "gain_loss": gain_loss},
                username=actor,
                tenant_id=tenant_id
            )
            self.db.commit()
        except OperationalError as e:
            self.db.rollback()
            raise ConflictError(f"Fixed asset {asset_id} is busy; retry the disposal") from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Disposed asset {asset_id} tenant={tenant_id} proceeds={proceeds} gain_loss={gain_loss}"
        )
        return self.load(asset_id, tenant_id)

    def _disposal_posting(self, asset: FixedAsset, proceeds: Decimal, accumulated: Decimal,
                          gain_loss: Decimal, disposal_date: date, actor: str) -> LedgerPosting:
        """Remove cost and accumulated depreciation, book proceeds and gain or loss"""
        lines = []
        if to_decimal(asset.purchase_cost) > 0:
            lines.append(LedgerLine(
                account_code=asset.asset_account_code or settings.DEFAULT_ASSET_ACCOUNT,
                credit=to_decimal(asset.purchase_cost),
                description=f"Asset disposed - {asset.name}"
            ))
        if accumulated > 0:
            lines.append(LedgerLine(
                account_code=asset.accumulated_depreciation_account_code
                or settings.DEFAULT_ACCUMULATED_DEPRECIATION_ACCOUNT,
                debit=accumulated,
                description=f"Remove accumulated depreciation - {asset.name}"
            ))
        if proceeds > 0:
            lines.append(LedgerLine(
                account_code=settings.DEFAULT_DISPOSAL_PROCEEDS_ACCOUNT,
                debit=proceeds,
                description=f"Disposal proceeds - {asset.name}"
            ))
        if gain_loss > 0:
            lines.append(LedgerLine(
                account_code=settings.DEFAULT_DISPOSAL_GAIN_LOSS_ACCOUNT,
                credit=gain_loss,
                description=f"Gain on disposal - {asset.name}"
            ))
        elif gain_loss < 0:
            lines.append(LedgerLine(
                account_code=settings.DEFAULT_DISPOSAL_GAIN_LOSS_ACCOUNT,
                debit=-gain_loss,
                description=f"Loss on disposal - {asset.name}"
            ))

        return LedgerPosting(
            tenant_id=asset.tenant_id,
            entry_date=disposal_date,
            source_type=JournalSourceType.DISPOSAL.value,
            source_id=asset.id,
            lines=lines,
            memo=f"Asset Disposal - {asset.name}",
            reference=f"DISP-{asset.asset_number}",
            created_by=actor
        )
