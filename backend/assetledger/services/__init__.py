# Services Package
from assetledger.services.audit_service import AuditService, AuditAction
from assetledger.services.depreciation_schedule import generate_schedule
from assetledger.services.depreciation_calculator import calculate
from assetledger.services.ledger_service import LedgerService, LedgerPosting, LedgerLine
from assetledger.services.period_lock_service import PeriodLockService
from assetledger.services.fixed_assets_service import FixedAssetService
from assetledger.services.posting_service import DepreciationPostingService

__all__ = [
    'AuditService',
    'AuditAction',
    'generate_schedule',
    'calculate',
    'LedgerService',
    'LedgerPosting',
    'LedgerLine',
    'PeriodLockService',
    'FixedAssetService',
    'DepreciationPostingService',
]
