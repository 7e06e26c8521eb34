"""
SQLAlchemy Models for the Fixed Asset Ledger
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Date, Numeric,
    ForeignKey, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
import enum

from assetledger.core.database import Base


# ==================== ENUMS ====================

class DepreciationMethod(enum.Enum):
    STRAIGHT_LINE = "STRAIGHT_LINE"
    DECLINING_BALANCE = "DECLINING_BALANCE"
    DOUBLE_DECLINING = "DOUBLE_DECLINING"
    SUM_OF_YEARS_DIGITS = "SUM_OF_YEARS_DIGITS"


class AssetStatus(enum.Enum):
    ACTIVE = "ACTIVE"
    FULLY_DEPRECIATED = "FULLY_DEPRECIATED"
    DISPOSED = "DISPOSED"


class PeriodLockState(enum.Enum):
    UNLOCKED = "UNLOCKED"
    LOCKED = "LOCKED"


class JournalSourceType(enum.Enum):
    DEPRECIATION = "DEPRECIATION"
    DISPOSAL = "DISPOSAL"


# ==================== FIXED ASSETS ====================

class FixedAsset(Base):
    """Fixed Asset"""
    __tablename__ = 'fixed_assets'

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, nullable=False)
    asset_number = Column(String(50), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=True)  # BUILDING, VEHICLE, EQUIPMENT, COMPUTER, etc.

    # Purchase Information
    purchase_date = Column(Date, nullable=False)
    purchase_cost = Column(Numeric(15, 2), nullable=False)

    # Depreciation
    salvage_value = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    useful_life_months = Column(Integer, nullable=False)
    depreciation_method = Column(String(30), nullable=False, default=DepreciationMethod.STRAIGHT_LINE.value)
    depreciation_rate = Column(Numeric(5, 2), nullable=True)  # Annual %, overrides the declining balance factor
    accumulated_depreciation = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    last_depreciation_date = Column(Date, nullable=True)

    # Status & Disposal
    status = Column(String(20), nullable=False, default=AssetStatus.ACTIVE.value)
    disposal_date = Column(Date, nullable=True)
    disposal_amount = Column(Numeric(15, 2), nullable=True)
    disposal_gain_loss = Column(Numeric(15, 2), nullable=True)
    disposal_reason = Column(Text, nullable=True)

    # Ledger account codes (settings defaults apply when empty)
    asset_account_code = Column(String(20), nullable=True)
    depreciation_expense_account_code = Column(String(20), nullable=True)
    accumulated_depreciation_account_code = Column(String(20), nullable=True)

    # Optimistic concurrency: every write is conditional on the version read
    version = Column(Integer, nullable=False, default=1)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    depreciation_entries = relationship(
        "DepreciationEntry", back_populates="asset", order_by="DepreciationEntry.period_end"
    )

    @property
    def depreciable_base(self) -> Decimal:
        return self.purchase_cost - self.salvage_value

    @property
    def net_book_value(self) -> Decimal:
        return self.purchase_cost - self.accumulated_depreciation

    @property
    def remaining_life_months(self) -> int:
        """Months of useful life not yet depreciated"""
        if self.status != AssetStatus.ACTIVE.value:
            return 0
        if self.last_depreciation_date is None:
            return self.useful_life_months
        elapsed = (
            (self.last_depreciation_date.year - self.purchase_date.year) * 12
            + self.last_depreciation_date.month - self.purchase_date.month
        )
        return max(0, self.useful_life_months - elapsed)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'asset_number', name='uq_fixed_asset_number'),
        CheckConstraint('purchase_cost >= 0', name='ck_fixed_asset_cost'),
        CheckConstraint('salvage_value >= 0 AND salvage_value <= purchase_cost', name='ck_fixed_asset_salvage'),
        CheckConstraint('useful_life_months > 0', name='ck_fixed_asset_life'),
        CheckConstraint('accumulated_depreciation >= 0', name='ck_fixed_asset_accumulated'),
        Index('ix_fixed_assets_tenant_id', 'tenant_id'),
        Index('ix_fixed_assets_status', 'tenant_id', 'status'),
    )


class DepreciationEntry(Base):
    """One posted depreciation increment; at most one per asset per month"""
    __tablename__ = 'depreciation_entries'

    id = Column(Integer, primary_key=True)
    asset_id = Column(Integer, ForeignKey('fixed_assets.id', ondelete='CASCADE'), nullable=False)
    tenant_id = Column(Integer, nullable=False)
    period_year = Column(Integer, nullable=False)
    period_month = Column(Integer, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    months_covered = Column(Integer, nullable=False, default=1)
    period_start = Column(Date, nullable=False)  # Depreciated from (exclusive)
    period_end = Column(Date, nullable=False)  # Depreciated through
    posted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    posted_by = Column(String(100), nullable=False)

    # Journal entry linkage
    journal_entry_id = Column(Integer, ForeignKey('journal_entries.id', ondelete='SET NULL'), nullable=True)

    # Relationships
    asset = relationship("FixedAsset", back_populates="depreciation_entries")
    journal_entry = relationship("JournalEntry")

    __table_args__ = (
        UniqueConstraint('asset_id', 'period_year', 'period_month', name='uq_depreciation_entry_period'),
        CheckConstraint('amount > 0', name='ck_depreciation_entry_amount'),
        CheckConstraint('period_month BETWEEN 1 AND 12', name='ck_depreciation_entry_month'),
        Index('ix_depreciation_entries_tenant_period', 'tenant_id', 'period_year', 'period_month'),
    )


# ==================== FINANCIAL PERIODS ====================

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December"
]


class FinancialPeriod(Base):
    """Current lock state of one (tenant, year, month) period"""
    __tablename__ = 'financial_periods'

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    is_locked = Column(Boolean, nullable=False, default=False)
    locked_at = Column(DateTime, nullable=True)
    locked_by = Column(String(100), nullable=True)
    unlocked_at = Column(DateTime, nullable=True)
    unlocked_by = Column(String(100), nullable=True)
    unlock_reason = Column(String(500), nullable=True)

    # Bumped by every lock/unlock transition
    version = Column(Integer, nullable=False, default=0)
    journal_entry_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    @property
    def period_label(self) -> str:
        return f"{MONTH_NAMES[self.month - 1]} {self.year}"

    @property
    def state(self) -> PeriodLockState:
        return PeriodLockState.LOCKED if self.is_locked else PeriodLockState.UNLOCKED

    __table_args__ = (
        UniqueConstraint('tenant_id', 'year', 'month', name='uq_financial_period'),
        CheckConstraint('month BETWEEN 1 AND 12', name='ck_financial_period_month'),
        Index('ix_financial_periods_locked', 'tenant_id', 'is_locked'),
    )


class PeriodLockTransition(Base):
    """Append-only history of lock/unlock transitions"""
    __tablename__ = 'period_lock_transitions'

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    sequence = Column(Integer, nullable=False)  # FinancialPeriod.version after the transition
    from_state = Column(String(10), nullable=False)
    to_state = Column(String(10), nullable=False)
    actor = Column(String(100), nullable=False)
    reason = Column(String(500), nullable=True)
    occurred_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'year', 'month', 'sequence', name='uq_period_lock_transition'),
        Index('ix_period_lock_transitions_period', 'tenant_id', 'year', 'month'),
    )


# ==================== LEDGER ====================

class JournalEntry(Base):
    """General ledger journal entry written by the ledger service"""
    __tablename__ = 'journal_entries'

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, nullable=False)
    entry_date = Column(Date, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    memo = Column(Text, nullable=True)
    reference = Column(String(100), nullable=True)
    source_type = Column(String(20), nullable=False)  # DEPRECIATION, DISPOSAL
    source_id = Column(Integer, nullable=False)
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    lines = relationship("JournalLine", back_populates="journal_entry", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_journal_entries_tenant_date', 'tenant_id', 'entry_date'),
        Index('ix_journal_entries_source', 'source_type', 'source_id'),
    )


class JournalLine(Base):
    """Debit or credit line of a journal entry"""
    __tablename__ = 'journal_lines'

    id = Column(Integer, primary_key=True)
    journal_entry_id = Column(Integer, ForeignKey('journal_entries.id', ondelete='CASCADE'), nullable=False)
    account_code = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    debit = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    credit = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))

    # Relationships
    journal_entry = relationship("JournalEntry", back_populates="lines")

    __table_args__ = (
        CheckConstraint('debit >= 0 AND credit >= 0', name='ck_journal_line_amounts'),
    )


# ==================== AUDIT LOG ====================

class AuditLog(Base):
    """Audit trail for sensitive operations"""
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Who performed the action
    username = Column(String(100), nullable=True)
    tenant_id = Column(Integer, nullable=True)

    # What action was performed
    action = Column(String(50), nullable=False)  # ASSET_CREATED, DEPRECIATION_POSTED, PERIOD_LOCKED, etc.
    resource_type = Column(String(100), nullable=False)  # FixedAsset, FinancialPeriod
    resource_id = Column(Integer, nullable=True)

    # Details
    description = Column(Text, nullable=True)
    old_values = Column(Text, nullable=True)  # JSON string of old values
    new_values = Column(Text, nullable=True)  # JSON string of new values
    status = Column(String(20), default='success')  # success, failure

    __table_args__ = (
        Index('ix_audit_logs_timestamp', 'timestamp'),
        Index('ix_audit_logs_tenant_id', 'tenant_id'),
        Index('ix_audit_logs_resource', 'resource_type', 'resource_id'),
        Index('ix_audit_logs_action', 'action'),
    )
