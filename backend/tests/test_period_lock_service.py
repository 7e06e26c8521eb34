# tests/test_period_lock_service.py
"""
Tests for financial period locking.
"""
from datetime import date

import pytest

from assetledger.core.exceptions import ConflictError, PeriodLockedError, ValidationError
from assetledger.models import AuditLog, FinancialPeriod, PeriodLockState
from assetledger.services.audit_service import AuditAction
from assetledger.services.period_lock_service import PeriodLockService

TENANT_ID = 1
OTHER_TENANT_ID = 2


@pytest.fixture
def periods(db):
    return PeriodLockService(db)


def test_unreferenced_period_is_unlocked(periods, db):
    assert periods.get_state(TENANT_ID, 2024, 3) == PeriodLockState.UNLOCKED
    assert periods.is_locked(TENANT_ID, date(2024, 3, 15)) is False
    assert db.query(FinancialPeriod).count() == 0


def test_get_or_create_period_creates_once(periods, db):
    first = periods.get_or_create_period(TENANT_ID, 2024, 3)
    second = periods.get_or_create_period(TENANT_ID, 2024, 3)

    assert first.id == second.id
    assert first.period_label == "March 2024"
    assert first.is_locked is False
    assert db.query(FinancialPeriod).count() == 1


def test_lock_records_state_and_transition(periods):
    period = periods.lock(TENANT_ID, 2024, 3, "owner")

    assert period.is_locked is True
    assert period.locked_by == "owner"
    assert periods.is_locked(TENANT_ID, date(2024, 3, 1)) is True

    history = periods.get_history(TENANT_ID, 2024, 3)
    assert [(t.sequence, t.from_state, t.to_state, t.actor) for t in history] == [
        (1, "UNLOCKED", "LOCKED", "owner")
    ]


def test_locking_a_locked_period_conflicts(periods):
    periods.lock(TENANT_ID, 2024, 3, "owner")

    with pytest.raises(ConflictError):
        periods.lock(TENANT_ID, 2024, 3, "someone-else")

    assert periods.is_period_locked(TENANT_ID, 2024, 3)
    assert len(periods.get_history(TENANT_ID, 2024, 3)) == 1


def test_unlocking_an_open_period_conflicts(periods):
    with pytest.raises(ConflictError):
        periods.unlock(TENANT_ID, 2024, 3, "owner")

    assert periods.get_history(TENANT_ID, 2024, 3) == []


def test_periods_can_be_relocked_indefinitely(periods):
    periods.lock(TENANT_ID, 2024, 3, "owner")
    reopened = periods.unlock(TENANT_ID, 2024, 3, "owner", reason="Late supplier invoice")
    assert reopened.is_locked is False
    assert reopened.unlock_reason == "Late supplier invoice"

    periods.lock(TENANT_ID, 2024, 3, "owner")

    history = periods.get_history(TENANT_ID, 2024, 3)
    assert [t.sequence for t in history] == [1, 2, 3]
    assert [t.to_state for t in history] == ["LOCKED", "UNLOCKED", "LOCKED"]
    assert history[1].reason == "Late supplier invoice"
    assert periods.get_period(TENANT_ID, 2024, 3).version == 3


def test_locks_are_per_tenant(periods):
    periods.lock(TENANT_ID, 2024, 3, "owner")

    assert periods.is_period_locked(TENANT_ID, 2024, 3)
    assert not periods.is_period_locked(OTHER_TENANT_ID, 2024, 3)


def test_lock_state_is_visible_to_other_sessions(periods, session_factory):
    other = session_factory()
    try:
        assert not PeriodLockService(other).is_period_locked(TENANT_ID, 2024, 3)
        periods.lock(TENANT_ID, 2024, 3, "owner")
        assert PeriodLockService(other).is_period_locked(TENANT_ID, 2024, 3)
    finally:
        other.close()


def test_assert_open_names_every_locked_period(periods):
    periods.lock(TENANT_ID, 2024, 2, "owner")
    periods.lock(TENANT_ID, 2024, 4, "owner")

    periods.assert_open(TENANT_ID, [(2024, 3)])
    with pytest.raises(PeriodLockedError) as exc_info:
        periods.assert_open(TENANT_ID, [(2024, 4), (2024, 3), (2024, 2)])

    assert exc_info.value.periods == [(2024, 2), (2024, 4)]
    assert "2024-02" in exc_info.value.message


def test_claim_refuses_locked_period(periods, db):
    periods.lock(TENANT_ID, 2024, 3, "owner")

    with pytest.raises(PeriodLockedError):
        periods.claim_open_period(TENANT_ID, 2024, 3)
    db.rollback()


def test_claim_counts_postings(periods, db):
    periods.claim_open_period(TENANT_ID, 2024, 3, count_posting=True)
    periods.claim_open_period(TENANT_ID, 2024, 3, count_posting=True)
    periods.claim_open_period(TENANT_ID, 2024, 3)
    db.commit()

    assert periods.get_period(TENANT_ID, 2024, 3).journal_entry_count == 2


@pytest.mark.parametrize("year, month", [(2024, 0), (2024, 13), (1800, 1)])
def test_invalid_periods_are_rejected(periods, year, month):
    with pytest.raises(ValidationError):
        periods.lock(TENANT_ID, year, month, "owner")


def test_transitions_are_audited(periods, db):
    periods.lock(TENANT_ID, 2024, 3, "owner")
    periods.unlock(TENANT_ID, 2024, 3, "owner", reason="Correction")

    actions = [log.action for log in db.query(AuditLog).order_by(AuditLog.id).all()]
    assert actions == [AuditAction.PERIOD_LOCKED, AuditAction.PERIOD_UNLOCKED]


def test_list_periods_filters(periods, db):
    periods.lock(TENANT_ID, 2024, 1, "owner")
    periods.get_or_create_period(TENANT_ID, 2024, 2)
    periods.get_or_create_period(TENANT_ID, 2023, 12)
    db.commit()

    assert [(p.year, p.month) for p in periods.list_periods(TENANT_ID)] == [
        (2023, 12), (2024, 1), (2024, 2)
    ]
    assert [(p.year, p.month) for p in periods.list_periods(TENANT_ID, year=2024)] == [(2024, 1), (2024, 2)]
    assert [(p.year, p.month) for p in periods.list_periods(TENANT_ID, is_locked=True)] == [(2024, 1)]
