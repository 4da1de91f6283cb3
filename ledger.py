"""Balance and history mutation under the credit-limit rule.

The ledger does no locking of its own. Callers hold the repository lock
around every call (see services.LedgerService).
"""

from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from errors import LimitExceededError
from models import Statement, Transaction, TransactionResult
from repositories import AccountRepository
from validators import validate_transaction

DEFAULT_STATEMENT_SIZE = 10


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Ledger:
    def __init__(
        self,
        account_repo: AccountRepository,
        statement_size: int = DEFAULT_STATEMENT_SIZE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if statement_size < 1:
            raise ValueError("statement_size must be at least 1")
        self.account_repo = account_repo
        self.statement_size = statement_size
        self.clock = clock or utc_now

    def apply_transaction(self, account_id: Union[int, str], request: Any) -> TransactionResult:
        """Apply a credit or debit and return the new balance and limit.

        Raises AccountNotFoundError, ValidationRejectedError or
        LimitExceededError; the account is untouched in all three cases.
        """
        account = self.account_repo.lookup(account_id)
        intent = validate_transaction(request)

        candidate_balance = account.balance + intent.signed_amount
        if candidate_balance < -account.credit_limit:
            raise LimitExceededError(
                account_id=account.id,
                balance=account.balance,
                credit_limit=account.credit_limit,
                amount=intent.amount,
            )

        # Built before anything is mutated, so a failing clock leaves no trace
        transaction = Transaction(
            amount=intent.amount,
            kind=intent.kind,
            description=intent.description,
            applied_at=self.clock(),
        )
        account.record(transaction, candidate_balance)

        return TransactionResult(balance=account.balance, credit_limit=account.credit_limit)

    def get_statement(self, account_id: Union[int, str]) -> Statement:
        account = self.account_repo.lookup(account_id)
        return Statement(
            balance=account.balance,
            credit_limit=account.credit_limit,
            taken_at=self.clock(),
            last_transactions=tuple(account.recent_transactions(self.statement_size)),
        )

    def transactions_count(self) -> int:
        return sum(len(account.history) for account in self.account_repo.accounts())
