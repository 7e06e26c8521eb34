"""
Depreciation Posting Service - Exactly-once depreciation postings

A posting records the depreciation owed since an asset's last posting as one
DepreciationEntry, one balanced journal entry and one asset update, all in a
single transaction. The entry is keyed by (asset, year, month) so a period
is never posted twice, no matter how many callers race on it.
"""
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, OperationalError
from datetime import date, datetime
import logging

from assetledger.core.config import settings
from assetledger.core.exceptions import AssetLedgerError, ConflictError
from assetledger.models import AssetStatus, DepreciationEntry, FixedAsset, JournalSourceType
from assetledger.services.audit_service import AuditAction, AuditService
from assetledger.services.depreciation_calculator import calculate, months_already_posted, whole_months_between
from assetledger.services.depreciation_types import (
    AssetSnapshot, DepreciationCalculation, PostingResult, PostingStatus
)
from assetledger.services.fixed_assets_service import FixedAssetService
from assetledger.services.ledger_service import LedgerLine, LedgerPosting, LedgerService
from assetledger.services.period_lock_service import PeriodLockService

logger = logging.getLogger(__name__)


class DepreciationPostingService:
    """Posts depreciation to the ledger, once per asset per period"""

    def __init__(self, db: Session, ledger: Optional[LedgerService] = None):
        self.db = db
        self.assets = FixedAssetService(db)
        self.periods = PeriodLockService(db)
        self.ledger = ledger or LedgerService(db)

    def find_entry(self, asset_id: int, year: int, month: int) -> Optional[DepreciationEntry]:
        return self.db.query(DepreciationEntry).filter(
            DepreciationEntry.asset_id == asset_id,
            DepreciationEntry.period_year == year,
            DepreciationEntry.period_month == month
        ).first()

    def post(self, asset_id: int, as_of: date, actor: str, tenant_id: int) -> PostingResult:
        """
        Post the depreciation owed for an asset up to as_of.

        Returns POSTED with the new entry, REPLAYED with the existing entry
        when the period was already posted, NO_OP when nothing is owed and
        NOT_APPLICABLE for fully depreciated or disposed assets.

        Raises AssetNotFoundError, ValidationError, PeriodLockedError when any
        month covered by the posting is locked, ConflictError when a
        concurrent writer got there first, and LedgerAppendError when the
        journal entry cannot be written. Nothing is written on error.
        """
        asset = self.assets.load(asset_id, tenant_id)
        terms = AssetSnapshot.from_model(asset)

        # Already posted through the schedule period as_of falls in
        last = terms.last_depreciation_date
        if (
            last is not None and last <= as_of
            and whole_months_between(terms.purchase_date, as_of) <= months_already_posted(terms)
        ):
            existing = self.find_entry(asset_id, last.year, last.month)
            if existing:
                logger.info(f"Depreciation for asset {asset_id} period {last.year}-{last.month:02d} already posted")
                return PostingResult(asset_id=asset_id, status=PostingStatus.REPLAYED, entry=existing)

        calculation = calculate(terms, as_of)
        if calculation.not_applicable:
            return PostingResult(asset_id=asset_id, status=PostingStatus.NOT_APPLICABLE, calculation=calculation)

        try:
            self.periods.assert_open(tenant_id, calculation.periods)
        except AssetLedgerError as e:
            logger.warning(f"Depreciation for asset {asset_id} refused: {e.message}")
            raise

        if calculation.depreciation_amount <= 0:
            return PostingResult(asset_id=asset_id, status=PostingStatus.NO_OP, calculation=calculation)

        return self._write(asset, terms, calculation, actor)

    def _write(self, asset: FixedAsset, terms: AssetSnapshot,
               calculation: DepreciationCalculation, actor: str) -> PostingResult:
        year, month = calculation.target_period
        anchor = terms.last_depreciation_date or terms.purchase_date
        new_status = (
            AssetStatus.FULLY_DEPRECIATED
            if calculation.new_book_value <= terms.salvage_value
            else AssetStatus.ACTIVE
        )

        try:
            for period_year, period_month in calculation.periods:
                self.periods.claim_open_period(
                    terms.tenant_id, period_year, period_month,
                    count_posting=(period_year, period_month) == (year, month)
                )

            entry = DepreciationEntry(
                asset_id=terms.id,
                tenant_id=terms.tenant_id,
                period_year=year,
                period_month=month,
                amount=calculation.depreciation_amount,
                months_covered=calculation.months_elapsed,
                period_start=anchor,
                period_end=calculation.new_last_depreciation_date,
                posted_at=datetime.utcnow(),
                posted_by=actor
            )
            self.db.add(entry)
            self.db.flush()

            self.assets.compare_and_update(terms.id, terms.version, {
                FixedAsset.accumulated_depreciation: calculation.new_accumulated_depreciation,
                FixedAsset.last_depreciation_date: calculation.new_last_depreciation_date,
                FixedAsset.status: new_status.value,
            })

            entry.journal_entry_id = self.ledger.append(
                self._journal_posting(asset, entry, actor)
            )

            AuditService(self.db).log(
                action=AuditAction.DEPRECIATION_POSTED,
                resource_type="FixedAsset",
                resource_id=terms.id,
                description=f"Depreciation {year}-{month:02d} for asset {terms.asset_number}",
                old_values={
                    "accumulated_depreciation": terms.accumulated_depreciation,
                    "last_depreciation_date": terms.last_depreciation_date,
                    "status": terms.status.value,
                },
                new_values={
                    "amount": calculation.depreciation_amount,
                    "accumulated_depreciation": calculation.new_accumulated_depreciation,
                    "last_depreciation_date": calculation.new_last_depreciation_date,
                    "status": new_status.value,
                },
                username=actor,
                tenant_id=terms.tenant_id
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            existing = self.find_entry(terms.id, year, month)
            if existing:
                logger.info(
                    f"Depreciation for asset {terms.id} period {year}-{month:02d} "
                    f"was posted by a concurrent caller"
                )
                return PostingResult(asset_id=terms.id, status=PostingStatus.REPLAYED, entry=existing)
            logger.warning(f"Depreciation for asset {terms.id} hit a constraint violation: {e}")
            raise ConflictError(f"Fixed asset {terms.id} was modified concurrently") from e
        except OperationalError as e:
            self.db.rollback()
            logger.warning(f"Depreciation for asset {terms.id} lost a database lock: {e}")
            raise ConflictError(f"Fixed asset {terms.id} is busy; retry the posting") from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Posted depreciation asset={terms.id} tenant={terms.tenant_id} period={year}-{month:02d} "
            f"months={calculation.months_elapsed} amount={calculation.depreciation_amount} by {actor}"
        )
        self.db.refresh(entry)
        return PostingResult(
            asset_id=terms.id, status=PostingStatus.POSTED, calculation=calculation, entry=entry
        )

    def _journal_posting(self, asset: FixedAsset, entry: DepreciationEntry, actor: str) -> LedgerPosting:
        """Debit depreciation expense, credit accumulated depreciation"""
        return LedgerPosting(
            tenant_id=entry.tenant_id,
            entry_date=entry.period_end,
            source_type=JournalSourceType.DEPRECIATION.value,
            source_id=entry.id,
            lines=[
                LedgerLine(
                    account_code=asset.depreciation_expense_account_code
                    or settings.DEFAULT_DEPRECIATION_EXPENSE_ACCOUNT,
                    debit=entry.amount,
                    description=f"Depreciation expense - {asset.name}"
                ),
                LedgerLine(
                    account_code=asset.accumulated_depreciation_account_code
                    or settings.DEFAULT_ACCUMULATED_DEPRECIATION_ACCOUNT,
                    credit=entry.amount,
                    description=f"Accumulated depreciation - {asset.name}"
                ),
            ],
            memo=f"Depreciation - {asset.name}",
            reference=f"DEP-{asset.asset_number}-{entry.period_year}{entry.period_month:02d}",
            created_by=actor
        )

    def post_all(self, tenant_id: int, as_of: date, actor: str,
                 asset_ids: List[int] = None) -> List[Dict]:
        """
        Run depreciation for every active asset of a tenant.

        Each asset is posted in its own transaction; one asset failing does
        not stop or undo the others.
        """
        query = self.db.query(FixedAsset.id, FixedAsset.asset_number).filter(
            FixedAsset.tenant_id == tenant_id,
            FixedAsset.status == AssetStatus.ACTIVE.value
        )
        if asset_ids:
            query = query.filter(FixedAsset.id.in_(asset_ids))
        targets = query.order_by(FixedAsset.id).all()

        results = []
        for asset_id, asset_number in targets:
            try:
                result = self.post(asset_id, as_of, actor, tenant_id)
                results.append({
                    "asset_id": asset_id,
                    "asset_number": asset_number,
                    "status": result.status.value,
                    "depreciation_amount": result.depreciation_amount,
                })
            except AssetLedgerError as e:
                self.db.rollback()
                results.append({
                    "asset_id": asset_id,
                    "asset_number": asset_number,
                    "status": "FAILED",
                    "error": e.message,
                })

        posted = len([r for r in results if r["status"] == PostingStatus.POSTED.value])
        logger.info(f"Bulk depreciation tenant={tenant_id} as_of={as_of} posted={posted}/{len(results)}")
        return results
