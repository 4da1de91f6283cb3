from datetime import datetime
from typing import Any, Callable, Tuple, Union
from weakref import WeakKeyDictionary
from zoneinfo import ZoneInfo
import structlog

from config import get_settings
from errors import LedgerError
from ledger import Ledger
from models import Statement, TransactionResult
from repositories import AccountRepository

# Configure structured logging
logger = structlog.get_logger()


def make_clock(tz_name: str) -> Callable[[], datetime]:
    tz = ZoneInfo(tz_name)
    return lambda: datetime.now(tz)


class LedgerService:
    """Runs every ledger operation while holding the repository lock.

    The lock covers all accounts, so operations on different accounts are
    serialized too.
    """

    def __init__(self, account_repo: AccountRepository, ledger: Ledger):
        self.account_repo = account_repo
        self.ledger = ledger

    async def apply_transaction(self, account_id: Union[int, str], request: Any) -> TransactionResult:
        """Apply a transaction to an account atomically."""

        logger.info(
            "Processing transaction",
            account_id=account_id,
            amount=getattr(request, "amount", None),
            kind=getattr(request, "kind", None),
        )

        async with self.account_repo.lock:
            try:
                result = self.ledger.apply_transaction(account_id, request)
            except LedgerError as e:
                logger.warning(
                    "Transaction rejected",
                    account_id=account_id,
                    error_code=e.error_code,
                    detail=e.detail,
                    reasons=e.reasons,
                )
                raise

        logger.info(
            "Transaction applied successfully",
            account_id=account_id,
            new_balance=result.balance,
            credit_limit=result.credit_limit,
        )

        return result

    async def get_statement(self, account_id: Union[int, str]) -> Statement:
        """Read balance, limit and latest transactions atomically."""
        async with self.account_repo.lock:
            try:
                statement = self.ledger.get_statement(account_id)
            except LedgerError as e:
                logger.warning(
                    "Statement rejected",
                    account_id=account_id,
                    error_code=e.error_code,
                    detail=e.detail,
                )
                raise

        logger.debug(
            "Statement generated",
            account_id=account_id,
            balance=statement.balance,
            transactions=len(statement.last_transactions),
        )

        return statement

    async def health(self) -> Tuple[int, int]:
        """Return (accounts_count, transactions_processed)."""
        async with self.account_repo.lock:
            return self.account_repo.count(), self.ledger.transactions_count()


# One ledger per repository, dropped when the repository is replaced
_ledgers: "WeakKeyDictionary[AccountRepository, Ledger]" = WeakKeyDictionary()


def get_ledger(account_repo: AccountRepository) -> Ledger:
    ledger = _ledgers.get(account_repo)
    if ledger is None:
        settings = get_settings()
        ledger = Ledger(
            account_repo,
            statement_size=settings.statement_size,
            clock=make_clock(settings.timezone),
        )
        _ledgers[account_repo] = ledger
    return ledger


# Factory function for dependency injection
def get_ledger_service(account_repo: AccountRepository) -> LedgerService:
    return LedgerService(account_repo, get_ledger(account_repo))
