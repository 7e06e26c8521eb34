"""
Period Lock Service - Lock and unlock monthly financial periods

The financial_periods row is the authoritative lock state; every change goes
through a conditional UPDATE so two callers can never both win a transition.
Each transition is appended to period_lock_transitions.
"""
from typing import Iterable, List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError, OperationalError
from datetime import date, datetime
import logging

from assetledger.core.database import insert_if_missing
from assetledger.core.exceptions import ConflictError, PeriodLockedError, ValidationError
from assetledger.models import FinancialPeriod, PeriodLockState, PeriodLockTransition
from assetledger.services.audit_service import AuditAction, AuditService

logger = logging.getLogger(__name__)

MIN_YEAR = 1900
MAX_YEAR = 2999


def validate_period(year: int, month: int):
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")


class PeriodLockService:
    """Service for financial period lock state"""

    def __init__(self, db: Session):
        self.db = db

    def _period_query(self, tenant_id: int, year: int, month: int):
        return self.db.query(FinancialPeriod).filter(
            FinancialPeriod.tenant_id == tenant_id,
            FinancialPeriod.year == year,
            FinancialPeriod.month == month
        )

    def get_period(self, tenant_id: int, year: int, month: int) -> Optional[FinancialPeriod]:
        validate_period(year, month)
        return self._period_query(tenant_id, year, month).first()

    def get_or_create_period(self, tenant_id: int, year: int, month: int) -> FinancialPeriod:
        """Get the period row, creating it unlocked on first reference"""
        validate_period(year, month)
        self._ensure_period(tenant_id, year, month)
        return self._period_query(tenant_id, year, month).one()

    def _ensure_period(self, tenant_id: int, year: int, month: int):
        now = datetime.utcnow()
        insert_if_missing(
            self.db,
            FinancialPeriod,
            {
                "tenant_id": tenant_id,
                "year": year,
                "month": month,
                "is_locked": False,
                "version": 0,
                "journal_entry_count": 0,
                "created_at": now,
                "updated_at": now,
            },
            ["tenant_id", "year", "month"]
        )

    def list_periods(self, tenant_id: int, year: int = None,
                     is_locked: bool = None) -> List[FinancialPeriod]:
        query = self.db.query(FinancialPeriod).filter(FinancialPeriod.tenant_id == tenant_id)

        if year:
            query = query.filter(FinancialPeriod.year == year)

        if is_locked is not None:
            query = query.filter(FinancialPeriod.is_locked == is_locked)

        return query.order_by(FinancialPeriod.year, FinancialPeriod.month).all()

    # ==================== LOCK STATE ====================

    def get_state(self, tenant_id: int, year: int, month: int) -> PeriodLockState:
        """Current state of a period; a period never referenced is UNLOCKED"""
        validate_period(year, month)
        locked = self.db.query(FinancialPeriod.is_locked).filter(
            FinancialPeriod.tenant_id == tenant_id,
            FinancialPeriod.year == year,
            FinancialPeriod.month == month
        ).scalar()
        return PeriodLockState.LOCKED if locked else PeriodLockState.UNLOCKED

    def is_period_locked(self, tenant_id: int, year: int, month: int) -> bool:
        return self.get_state(tenant_id, year, month) == PeriodLockState.LOCKED

    def is_locked(self, tenant_id: int, on_date: date) -> bool:
        """Whether the month containing on_date is locked"""
        return self.is_period_locked(tenant_id, on_date.year, on_date.month)

    def locked_periods(self, tenant_id: int,
                       periods: Iterable[Tuple[int, int]]) -> List[Tuple[int, int]]:
        periods = sorted(set(periods))
        if not periods:
            return []
        for year, month in periods:
            validate_period(year, month)

        rows = self.db.query(FinancialPeriod.year, FinancialPeriod.month).filter(
            FinancialPeriod.tenant_id == tenant_id,
            FinancialPeriod.is_locked == True,  # noqa: E712
            or_(*[
                and_(FinancialPeriod.year == year, FinancialPeriod.month == month)
                for year, month in periods
            ])
        ).all()
        return sorted((row.year, row.month) for row in rows)

    def assert_open(self, tenant_id: int, periods: Iterable[Tuple[int, int]]):
        """Raise PeriodLockedError naming every locked period among those given"""
        locked = self.locked_periods(tenant_id, periods)
        if locked:
            raise PeriodLockedError(locked)

    def claim_open_period(self, tenant_id: int, year: int, month: int,
                          count_posting: bool = False):
        """
        Guarded write taken inside a posting transaction.

        Touches the period row only while it is unlocked. If a lock was
        committed after the caller's read check, no row matches and the
        posting fails with PeriodLockedError. The row write also serialises
        the posting against a concurrent lock of the same period.
        """
        validate_period(year, month)
        self._ensure_period(tenant_id, year, month)

        values = {FinancialPeriod.updated_at: datetime.utcnow()}
        if count_posting:
            values[FinancialPeriod.journal_entry_count] = FinancialPeriod.journal_entry_count + 1

        claimed = self._period_query(tenant_id, year, month).filter(
            FinancialPeriod.is_locked == False  # noqa: E712
        ).update(values, synchronize_session=False)

        if claimed == 0:
            raise PeriodLockedError([(year, month)])

    # ==================== TRANSITIONS ====================

    def atomic_transition(self, tenant_id: int, year: int, month: int,
                          from_state: PeriodLockState, to_state: PeriodLockState,
                          actor: str, reason: str = None) -> PeriodLockTransition:
        """
        Compare-and-set the lock state of a period and record the transition.

        Runs in the caller's transaction. Raises ConflictError when the
        period is not in from_state at the time of the write.
        """
        validate_period(year, month)
        if from_state == to_state:
            raise ValidationError(f"Period is already {to_state.value}")

        self._ensure_period(tenant_id, year, month)

        now = datetime.utcnow()
        values = {
            FinancialPeriod.is_locked: to_state == PeriodLockState.LOCKED,
            FinancialPeriod.version: FinancialPeriod.version + 1,
            FinancialPeriod.updated_at: now,
        }
        if to_state == PeriodLockState.LOCKED:
            values[FinancialPeriod.locked_at] = now
            values[FinancialPeriod.locked_by] = actor
        else:
            values[FinancialPeriod.unlocked_at] = now
            values[FinancialPeriod.unlocked_by] = actor
            values[FinancialPeriod.unlock_reason] = reason

        updated = self._period_query(tenant_id, year, month).filter(
            FinancialPeriod.is_locked == (from_state == PeriodLockState.LOCKED)
        ).update(values, synchronize_session=False)

        if updated == 0:
            raise ConflictError(
                f"Period {year}-{month:02d} is not {from_state.value}; "
                f"cannot change it to {to_state.value}"
            )

        sequence = self.db.query(FinancialPeriod.version).filter(
            FinancialPeriod.tenant_id == tenant_id,
            FinancialPeriod.year == year,
            FinancialPeriod.month == month
        ).scalar()

        transition = PeriodLockTransition(
            tenant_id=tenant_id,
            year=year,
            month=month,
            sequence=sequence,
            from_state=from_state.value,
            to_state=to_state.value,
            actor=actor,
            reason=reason,
            occurred_at=now
        )
        self.db.add(transition)
        self.db.flush()
        return transition

    def lock(self, tenant_id: int, year: int, month: int, actor: str,
             reason: str = None) -> FinancialPeriod:
        """Lock a period so no depreciation can be posted into it"""
        return self._transition(
            tenant_id, year, month,
            PeriodLockState.UNLOCKED, PeriodLockState.LOCKED,
            actor, reason, AuditAction.PERIOD_LOCKED
        )

    def unlock(self, tenant_id: int, year: int, month: int, actor: str,
               reason: str = None) -> FinancialPeriod:
        """Reopen a locked period"""
        return self._transition(
            tenant_id, year, month,
            PeriodLockState.LOCKED, PeriodLockState.UNLOCKED,
            actor, reason, AuditAction.PERIOD_UNLOCKED
        )

    def _transition(self, tenant_id: int, year: int, month: int,
                    from_state: PeriodLockState, to_state: PeriodLockState,
                    actor: str, reason: Optional[str], action: str) -> FinancialPeriod:
        try:
            transition = self.atomic_transition(
                tenant_id, year, month, from_state, to_state, actor, reason
            )
            AuditService(self.db).log(
                action=action,
                resource_type="FinancialPeriod",
                description=f"Period {year}-{month:02d} {to_state.value.lower()}",
                old_values={"state": from_state.value},
                new_values={"state": to_state.value, "sequence": transition.sequence, "reason": reason},
                username=actor,
                tenant_id=tenant_id
            )
            self.db.commit()
        except (IntegrityError, OperationalError) as e:
            self.db.rollback()
            logger.warning(f"Period {year}-{month:02d} transition lost to a concurrent writer: {e}")
            raise ConflictError(f"Period {year}-{month:02d} was changed concurrently") from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Period {year}-{month:02d} tenant={tenant_id} {from_state.value} -> "
            f"{to_state.value} by {actor}"
        )
        return self.get_period(tenant_id, year, month)

    def get_history(self, tenant_id: int, year: int, month: int) -> List[PeriodLockTransition]:
        """All transitions of a period, oldest first"""
        validate_period(year, month)
        return self.db.query(PeriodLockTransition).filter(
            PeriodLockTransition.tenant_id == tenant_id,
            PeriodLockTransition.year == year,
            PeriodLockTransition.month == month
        ).order_by(PeriodLockTransition.sequence).all()
