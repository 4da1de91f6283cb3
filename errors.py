"""Expected ledger outcomes raised to the caller.

None of these are fatal: every one is raised before any account is
changed, and the caller decides whether to retry.
"""

from enum import Enum
from typing import List, Sequence, Union


class LedgerError(Exception):
    """Base class for rejected ledger operations."""

    error_code = "LEDGER_ERROR"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)

    @property
    def reasons(self) -> List[str]:
        return []


class AccountNotFoundError(LedgerError):
    """Account identifier is outside the fixed registry."""

    error_code = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: Union[int, str]):
        self.account_id = account_id
        super().__init__("Account not found")


class ValidationReason(str, Enum):
    invalid_kind = "invalid-kind"
    non_positive_amount = "non-positive-amount"
    invalid_description_length = "invalid-description-length"

    @property
    def message(self) -> str:
        return _REASON_MESSAGES[self]


_REASON_MESSAGES = {
    ValidationReason.invalid_kind: 'Kind must be "credit" or "debit"',
    ValidationReason.non_positive_amount: "Amount must be a positive integer",
    ValidationReason.invalid_description_length: "Description must be between 1 and 10 characters",
}


class ValidationRejectedError(LedgerError):
    """Transaction request is malformed."""

    error_code = "VALIDATION_REJECTED"

    def __init__(self, failures: Sequence[ValidationReason]):
        if not failures:
            raise ValueError("ValidationRejectedError needs at least one reason")
        self.failures = tuple(failures)
        super().__init__(self.failures[0].message)

    @property
    def reasons(self) -> List[str]:
        return [failure.value for failure in self.failures]


class LimitExceededError(LedgerError):
    """Valid transaction that would push the balance below the credit limit."""

    error_code = "LIMIT_EXCEEDED"

    def __init__(self, account_id: int, balance: int, credit_limit: int, amount: int):
        self.account_id = account_id
        self.balance = balance
        self.credit_limit = credit_limit
        self.amount = amount
        super().__init__("Transaction would exceed the account credit limit")
