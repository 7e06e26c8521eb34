"""
Ledger Service - Double-entry journal entries for asset transactions
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

from assetledger.core.exceptions import LedgerAppendError
from assetledger.core.money import ZERO, quantize_money
from assetledger.models import JournalEntry, JournalLine

logger = logging.getLogger(__name__)


@dataclass
class LedgerLine:
    account_code: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: Optional[str] = None


@dataclass
class LedgerPosting:
    """A balanced journal entry waiting to be appended"""
    tenant_id: int
    entry_date: date
    source_type: str
    source_id: int
    lines: List[LedgerLine] = field(default_factory=list)
    memo: Optional[str] = None
    reference: Optional[str] = None
    created_by: Optional[str] = None

    @property
    def total_debit(self) -> Decimal:
        return sum((quantize_money(line.debit) for line in self.lines), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((quantize_money(line.credit) for line in self.lines), ZERO)


class LedgerService:
    """Appends journal entries inside the caller's transaction"""

    def __init__(self, db: Session):
        self.db = db

    def validate(self, posting: LedgerPosting):
        if len(posting.lines) < 2:
            raise LedgerAppendError("A journal entry needs at least one debit and one credit line")

        for line in posting.lines:
            if not line.account_code:
                raise LedgerAppendError("Every journal line needs an account code")
            if line.debit < 0 or line.credit < 0:
                raise LedgerAppendError("Journal line amounts cannot be negative")
            if (line.debit > 0) == (line.credit > 0):
                raise LedgerAppendError(
                    f"Journal line for account {line.account_code} must be either a debit or a credit"
                )

        if posting.total_debit != posting.total_credit:
            raise LedgerAppendError(
                f"Journal entry is unbalanced: debits {posting.total_debit} "
                f"!= credits {posting.total_credit}"
            )

    def append(self, posting: LedgerPosting) -> int:
        """Write the journal entry and its lines; returns the journal entry id"""
        self.validate(posting)

        try:
            entry = JournalEntry(
                tenant_id=posting.tenant_id,
                entry_date=posting.entry_date,
                amount=posting.total_debit,
                memo=posting.memo,
                reference=posting.reference,
                source_type=posting.source_type,
                source_id=posting.source_id,
                created_by=posting.created_by
            )
            for line in posting.lines:
                entry.lines.append(JournalLine(
                    account_code=line.account_code,
                    description=line.description,
                    debit=quantize_money(line.debit),
                    credit=quantize_money(line.credit)
                ))
            self.db.add(entry)
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Ledger append failed for {posting.source_type} {posting.source_id}: {e}")
            raise LedgerAppendError(f"Could not record journal entry: {e}") from e

        logger.info(
            f"Journal entry {entry.id} {posting.source_type} source={posting.source_id} "
            f"amount={entry.amount}"
        )
        return entry.id

    def get_by_source(self, source_type: str, source_id: int) -> List[JournalEntry]:
        return self.db.query(JournalEntry).filter(
            JournalEntry.source_type == source_type,
            JournalEntry.source_id == source_id
        ).order_by(JournalEntry.id).all()
