"""
Domain errors raised by the depreciation and period-lock services.

Each error says whether retrying the same call can succeed. The API layer
maps them onto HTTP status codes in main.py.
"""
from typing import Iterable, Tuple


class AssetLedgerError(Exception):
    """Base class for depreciation and period-lock errors"""
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AssetLedgerError):
    """Malformed input: impossible asset terms, dates out of order, bad periods"""


class AssetNotFoundError(AssetLedgerError):
    """The asset does not exist for this tenant"""

    def __init__(self, asset_id: int):
        super().__init__(f"Fixed asset {asset_id} not found")
        self.asset_id = asset_id


class PeriodLockedError(AssetLedgerError):
    """
    The operation touches at least one locked financial period.

    Recoverable only by unlocking the period or choosing an earlier date.
    """

    def __init__(self, periods: Iterable[Tuple[int, int]]):
        self.periods = sorted(set(periods))
        labels = ", ".join(f"{year}-{month:02d}" for year, month in self.periods)
        super().__init__(f"Financial period {labels} is locked and cannot be modified")


class ConflictError(AssetLedgerError):
    """A concurrent writer changed the same record first"""
    retryable = True


class LedgerAppendError(AssetLedgerError):
    """The ledger store refused or failed to record the journal entry"""
    retryable = True
