# tests/test_posting_service.py
"""
Tests for exactly-once, lock-respecting depreciation postings.
"""
import threading
from datetime import date
from decimal import Decimal

import pytest

from assetledger.core.exceptions import (
    AssetNotFoundError, ConflictError, LedgerAppendError, PeriodLockedError, ValidationError
)
from assetledger.models import (
    AssetStatus, AuditLog, DepreciationEntry, FinancialPeriod, FixedAsset, JournalEntry
)
from assetledger.schemas import DisposalRequest
from assetledger.services.audit_service import AuditAction, AuditService
from assetledger.services.depreciation_types import PostingStatus
from assetledger.services.fixed_assets_service import FixedAssetService
from assetledger.services.ledger_service import LedgerService
from assetledger.services.period_lock_service import PeriodLockService
from assetledger.services.posting_service import DepreciationPostingService

TENANT_ID = 1
OTHER_TENANT_ID = 2


class FailingLedger:
    """Ledger store that refuses every journal entry"""

    def append(self, posting):
        raise LedgerAppendError("ledger store unavailable")


@pytest.fixture
def poster(db):
    return DepreciationPostingService(db)


def _reload(db, asset_id):
    db.expire_all()
    return db.get(FixedAsset, asset_id)


def _entries(db, asset_id):
    return db.query(DepreciationEntry).filter(
        DepreciationEntry.asset_id == asset_id
    ).order_by(DepreciationEntry.id).all()


class TestPosting:

    def test_first_posting_records_entry_journal_and_asset(self, db, poster, make_asset):
        asset = make_asset()

        result = poster.post(asset.id, date(2024, 4, 1), "jane", TENANT_ID)

        assert result.status == PostingStatus.POSTED
        assert result.depreciation_amount == Decimal("30000.00")
        assert result.months_elapsed == 3
        assert (result.entry.period_year, result.entry.period_month) == (2024, 4)
        assert result.entry.period_start == date(2024, 1, 1)
        assert result.entry.period_end == date(2024, 4, 1)

        asset = _reload(db, asset.id)
        assert asset.accumulated_depreciation == Decimal("30000.00")
        assert asset.net_book_value == Decimal("90000.00")
        assert asset.last_depreciation_date == date(2024, 4, 1)
        assert asset.status == AssetStatus.ACTIVE.value
        assert asset.version == 2

        journal, = LedgerService(db).get_by_source("DEPRECIATION", result.entry.id)
        assert journal.id == result.entry.journal_entry_id
        assert journal.amount == Decimal("30000.00")
        lines = {(line.account_code, line.debit, line.credit) for line in journal.lines}
        assert lines == {
            ("6100", Decimal("30000.00"), Decimal("0.00")),
            ("1590", Decimal("0.00"), Decimal("30000.00")),
        }

    def test_repeated_posting_replays_existing_entry(self, db, poster, make_asset):
        asset = make_asset()
        first = poster.post(asset.id, date(2024, 4, 1), "jane", TENANT_ID)

        again = poster.post(asset.id, date(2024, 4, 1), "jane", TENANT_ID)
        later_same_month = poster.post(asset.id, date(2024, 4, 20), "jane", TENANT_ID)

        assert again.status == PostingStatus.REPLAYED
        assert again.entry.id == first.entry.id
        assert again.depreciation_amount == Decimal("30000.00")
        assert later_same_month.status == PostingStatus.REPLAYED
        assert len(_entries(db, asset.id)) == 1
        assert db.query(JournalEntry).count() == 1
        assert _reload(db, asset.id).accumulated_depreciation == Decimal("30000.00")

    def test_incremental_postings_follow_the_schedule(self, db, poster, make_asset):
        asset = make_asset()

        poster.post(asset.id, date(2024, 2, 1), "jane", TENANT_ID)
        second = poster.post(asset.id, date(2024, 4, 1), "jane", TENANT_ID)

        assert second.depreciation_amount == Decimal("20000.00")
        assert second.entry.months_covered == 2
        assert [(e.period_year, e.period_month) for e in _entries(db, asset.id)] == [(2024, 2), (2024, 4)]
        assert _reload(db, asset.id).accumulated_depreciation == Decimal("30000.00")

    def test_nothing_owed_is_a_no_op(self, db, poster, make_asset):
        asset = make_asset()

        result = poster.post(asset.id, date(2024, 1, 20), "jane", TENANT_ID)

        assert result.status == PostingStatus.NO_OP
        assert result.entry is None
        assert _entries(db, asset.id) == []
        assert _reload(db, asset.id).version == 1

    def test_final_posting_marks_asset_fully_depreciated(self, db, poster, make_asset):
        asset = make_asset()

        result = poster.post(asset.id, date(2025, 3, 1), "jane", TENANT_ID)
        assert result.depreciation_amount == Decimal("120000.00")

        asset = _reload(db, asset.id)
        assert asset.status == AssetStatus.FULLY_DEPRECIATED.value
        assert asset.net_book_value == asset.salvage_value

        later = poster.post(asset.id, date(2025, 9, 1), "jane", TENANT_ID)
        assert later.status == PostingStatus.NOT_APPLICABLE
        assert len(_entries(db, asset.id)) == 1

    def test_disposed_asset_is_not_applicable(self, db, poster, make_asset):
        asset = make_asset(status=AssetStatus.DISPOSED.value)

        result = poster.post(asset.id, date(2024, 6, 1), "jane", TENANT_ID)

        assert result.status == PostingStatus.NOT_APPLICABLE
        assert result.depreciation_amount == Decimal("0")
        assert _entries(db, asset.id) == []

    def test_disposed_asset_with_later_posting_is_not_applicable(self, db, poster, make_asset):
        asset = make_asset(
            status=AssetStatus.DISPOSED.value,
            accumulated_depreciation=Decimal("50000.00"),
            last_depreciation_date=date(2024, 6, 1),
        )

        result = poster.post(asset.id, date(2024, 5, 1), "jane", TENANT_ID)

        assert result.status == PostingStatus.NOT_APPLICABLE
        assert _entries(db, asset.id) == []

    def test_month_end_purchase_posts_each_period_once(self, db, poster, make_asset):
        asset = make_asset(purchase_date=date(2024, 1, 31))

        first = poster.post(asset.id, date(2024, 3, 30), "jane", TENANT_ID)
        again = poster.post(asset.id, date(2024, 3, 30), "jane", TENANT_ID)

        assert first.status == PostingStatus.POSTED
        assert first.depreciation_amount == Decimal("10000.00")
        assert again.status == PostingStatus.REPLAYED
        assert again.entry.id == first.entry.id

        second = poster.post(asset.id, date(2024, 3, 31), "jane", TENANT_ID)
        assert second.status == PostingStatus.POSTED
        assert poster.post(asset.id, date(2024, 4, 29), "jane", TENANT_ID).status == PostingStatus.REPLAYED

        assert [(e.period_year, e.period_month, e.amount) for e in _entries(db, asset.id)] == [
            (2024, 2, Decimal("10000.00")),
            (2024, 3, Decimal("10000.00")),
        ]
        asset = _reload(db, asset.id)
        assert asset.accumulated_depreciation == Decimal("20000.00")
        assert asset.last_depreciation_date == date(2024, 3, 31)

    def test_unknown_asset(self, poster, make_asset):
        asset = make_asset()

        with pytest.raises(AssetNotFoundError):
            poster.post(9999, date(2024, 4, 1), "jane", TENANT_ID)
        with pytest.raises(AssetNotFoundError):
            poster.post(asset.id, date(2024, 4, 1), "jane", OTHER_TENANT_ID)

    def test_as_of_before_last_posting_is_rejected(self, poster, make_asset):
        asset = make_asset()
        poster.post(asset.id, date(2024, 4, 1), "jane", TENANT_ID)

        with pytest.raises(ValidationError):
            poster.post(asset.id, date(2024, 3, 1), "jane", TENANT_ID)

    def test_posting_is_audited(self, db, poster, make_asset):
        asset = make_asset()
        poster.post(asset.id, date(2024, 4, 1), "jane", TENANT_ID)

        logs = AuditService(db).get_by_resource("FixedAsset", asset.id, TENANT_ID)
        assert [log.action for log in logs] == [AuditAction.DEPRECIATION_POSTED]
        assert logs[0].username == "jane"
        assert AuditService(db).get_by_resource("FixedAsset", asset.id, OTHER_TENANT_ID) == []

    def test_target_period_counts_the_posting(self, db, poster, make_asset):
        asset = make_asset()
        poster.post(asset.id, date(2024, 4, 1), "jane", TENANT_ID)

        counts = {
            (p.year, p.month): p.journal_entry_count
            for p in PeriodLockService(db).list_periods(TENANT_ID)
        }
        assert counts == {(2024, 2): 0, (2024, 3): 0, (2024, 4): 1}


class TestLockedPeriods:

    def test_posting_into_locked_month_is_refused(self, db, poster, make_asset):
        asset = make_asset(
            purchase_date=date(2024, 1, 31),
            accumulated_depreciation=Decimal("10000.00"),
            last_depreciation_date=date(2024, 2, 29),
        )
        PeriodLockService(db).lock(TENANT_ID, 2024, 3, "owner")

        with pytest.raises(PeriodLockedError) as exc_info:
            poster.post(asset.id, date(2024, 3, 31), "jane", TENANT_ID)

        assert exc_info.value.periods == [(2024, 3)]
        asset = _reload(db, asset.id)
        assert asset.accumulated_depreciation == Decimal("10000.00")
        assert asset.last_depreciation_date == date(2024, 2, 29)
        assert asset.version == 1
        assert _entries(db, asset.id) == []
        assert db.query(JournalEntry).count() == 0

    def test_posting_succeeds_after_unlock(self, db, poster, make_asset):
        asset = make_asset(
            purchase_date=date(2024, 1, 31),
            accumulated_depreciation=Decimal("10000.00"),
            last_depreciation_date=date(2024, 2, 29),
        )
        periods = PeriodLockService(db)
        periods.lock(TENANT_ID, 2024, 3, "owner")
        periods.unlock(TENANT_ID, 2024, 3, "owner", reason="Reopened for depreciation")

        result = poster.post(asset.id, date(2024, 3, 31), "jane", TENANT_ID)

        assert result.status == PostingStatus.POSTED
        assert result.depreciation_amount == Decimal("10000.00")

    def test_locked_intermediate_month_blocks_multi_month_posting(self, db, poster, make_asset):
        asset = make_asset()
        PeriodLockService(db).lock(TENANT_ID, 2024, 2, "owner")

        with pytest.raises(PeriodLockedError) as exc_info:
            poster.post(asset.id, date(2024, 4, 1), "jane", TENANT_ID)

        assert exc_info.value.periods == [(2024, 2)]
        assert _entries(db, asset.id) == []

    def test_lock_granted_after_check_still_blocks(self, db, poster, make_asset, session_factory):
        asset = make_asset()
        check = poster.periods.assert_open

        def lock_after_check(tenant_id, periods):
            check(tenant_id, periods)
            other = session_factory()
            try:
                PeriodLockService(other).lock(TENANT_ID, 2024, 3, "owner")
            finally:
                other.close()

        poster.periods.assert_open = lock_after_check

        with pytest.raises(PeriodLockedError):
            poster.post(asset.id, date(2024, 4, 1), "jane", TENANT_ID)

        assert _entries(db, asset.id) == []
        assert _reload(db, asset.id).version == 1
        assert db.query(JournalEntry).count() == 0


class TestFailures:

    def test_ledger_failure_rolls_everything_back(self, db, make_asset):
        asset = make_asset()
        poster = DepreciationPostingService(db, ledger=FailingLedger())

        with pytest.raises(LedgerAppendError):
            poster.post(asset.id, date(2024, 4, 1), "jane", TENANT_ID)

        asset = _reload(db, asset.id)
        assert asset.accumulated_depreciation == Decimal("0.00")
        assert asset.last_depreciation_date is None
        assert asset.version == 1
        assert _entries(db, asset.id) == []
        assert db.query(FinancialPeriod).count() == 0
        assert db.query(AuditLog).filter(AuditLog.action == AuditAction.DEPRECIATION_POSTED).count() == 0

        retried = DepreciationPostingService(db).post(asset.id, date(2024, 4, 1), "jane", TENANT_ID)
        assert retried.status == PostingStatus.POSTED

    def test_stale_asset_version_conflicts(self, db, poster, make_asset, session_factory):
        asset = make_asset()
        check = poster.periods.assert_open

        def concurrent_edit(tenant_id, periods):
            check(tenant_id, periods)
            other = session_factory()
            try:
                FixedAssetService(other).compare_and_update(asset.id, 1, {FixedAsset.name: "Renamed"})
                other.commit()
            finally:
                other.close()

        poster.periods.assert_open = concurrent_edit

        with pytest.raises(ConflictError) as exc_info:
            poster.post(asset.id, date(2024, 4, 1), "jane", TENANT_ID)

        assert exc_info.value.retryable
        assert _entries(db, asset.id) == []


def test_concurrent_posts_create_exactly_one_entry(db, make_asset, session_factory):
    asset_id = make_asset().id
    workers = 4
    barrier = threading.Barrier(workers)
    outcomes = []
    outcomes_lock = threading.Lock()

    def run():
        session = session_factory()
        try:
            barrier.wait()
            try:
                result = DepreciationPostingService(session).post(asset_id, date(2024, 4, 1), "jane", TENANT_ID)
                outcome = result.status
            except ConflictError as e:
                outcome = e
            with outcomes_lock:
                outcomes.append(outcome)
        finally:
            session.close()

    threads = [threading.Thread(target=run) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(outcomes) == workers
    assert outcomes.count(PostingStatus.POSTED) == 1
    assert all(
        outcome in (PostingStatus.POSTED, PostingStatus.REPLAYED) or isinstance(outcome, ConflictError)
        for outcome in outcomes
    )
    assert len(_entries(db, asset_id)) == 1
    assert db.query(JournalEntry).count() == 1
    assert _reload(db, asset_id).accumulated_depreciation == Decimal("30000.00")


class TestBulkAndDisposal:

    def test_bulk_posting_isolates_failures(self, db, make_asset):
        blocked = make_asset(purchase_date=date(2024, 1, 1))
        posted = make_asset(purchase_date=date(2024, 3, 1))
        PeriodLockService(db).lock(TENANT_ID, 2024, 2, "owner")

        results = DepreciationPostingService(db).post_all(TENANT_ID, date(2024, 4, 1), "jane")

        by_asset = {r["asset_id"]: r for r in results}
        assert by_asset[blocked.id]["status"] == "FAILED"
        assert "2024-02" in by_asset[blocked.id]["error"]
        assert by_asset[posted.id]["status"] == "POSTED"
        assert by_asset[posted.id]["depreciation_amount"] == Decimal("10000.00")

    def test_dispose_records_gain_and_balanced_journal(self, db, poster, make_asset):
        asset = make_asset()
        poster.post(asset.id, date(2024, 4, 1), "jane", TENANT_ID)

        disposed = FixedAssetService(db).dispose(
            asset.id, TENANT_ID,
            DisposalRequest(disposal_date=date(2024, 4, 15), disposal_amount=Decimal("100000.00")),
            "jane"
        )

        assert disposed.status == AssetStatus.DISPOSED.value
        assert disposed.disposal_gain_loss == Decimal("10000.00")
        assert disposed.version == 3

        journal = db.query(JournalEntry).filter(JournalEntry.source_type == "DISPOSAL").one()
        assert sum(line.debit for line in journal.lines) == sum(line.credit for line in journal.lines)
        assert journal.amount == Decimal("130000.00")

        later = poster.post(asset.id, date(2024, 8, 1), "jane", TENANT_ID)
        assert later.status == PostingStatus.NOT_APPLICABLE

    def test_dispose_in_locked_month_is_refused(self, db, make_asset):
        asset = make_asset()
        PeriodLockService(db).lock(TENANT_ID, 2024, 5, "owner")

        with pytest.raises(PeriodLockedError):
            FixedAssetService(db).dispose(
                asset.id, TENANT_ID, DisposalRequest(disposal_date=date(2024, 5, 10)), "jane"
            )

        assert _reload(db, asset.id).status == AssetStatus.ACTIVE.value
