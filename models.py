from dataclasses import dataclass
from itertools import islice
from pydantic import BaseModel, Field, StrictInt, StrictStr
from enum import Enum
from typing import List, Tuple
from datetime import datetime
from zoneinfo import ZoneInfo

from config import get_settings


class TransactionKind(str, Enum):
    credit = "credit"
    debit = "debit"

    @property
    def sign(self) -> int:
        """Direction the transaction moves the balance."""
        return 1 if self is TransactionKind.credit else -1


@dataclass(frozen=True)
class TransactionIntent:
    """A request that passed validation and has not been applied yet."""

    amount: int
    kind: TransactionKind
    description: str

    @property
    def signed_amount(self) -> int:
        return self.kind.sign * self.amount


@dataclass(frozen=True)
class Transaction:
    amount: int
    kind: TransactionKind
    description: str
    applied_at: datetime


class Account:
    """A ledger account. Amounts are integer minor units (cents)."""

    __slots__ = ("_id", "_credit_limit", "_balance", "_history")

    def __init__(self, account_id: int, credit_limit: int, balance: int = 0):
        if credit_limit < 0:
            raise ValueError("credit_limit must be non-negative")
        if balance < -credit_limit:
            raise ValueError("balance is below the credit limit")
        self._id = account_id
        self._credit_limit = credit_limit
        self._balance = balance
        self._history: List[Transaction] = []

    @property
    def id(self) -> int:
        return self._id

    @property
    def credit_limit(self) -> int:
        return self._credit_limit

    @property
    def balance(self) -> int:
        return self._balance

    @property
    def history(self) -> Tuple[Transaction, ...]:
        return tuple(self._history)

    def record(self, transaction: Transaction, new_balance: int) -> None:
        """Append to history and move the balance in one step.

        Only the ledger calls this, with the guard held and the limit
        already checked.
        """
        self._history.append(transaction)
        self._balance = new_balance

    def recent_transactions(self, limit: int) -> List[Transaction]:
        """Most recent first."""
        return list(islice(reversed(self._history), limit))

    def __repr__(self) -> str:
        return f"Account(id={self._id}, credit_limit={self._credit_limit}, balance={self._balance})"


@dataclass(frozen=True)
class TransactionResult:
    balance: int
    credit_limit: int


@dataclass(frozen=True)
class Statement:
    balance: int
    credit_limit: int
    taken_at: datetime
    last_transactions: Tuple[Transaction, ...]


def local_now() -> datetime:
    """Current time in the configured timezone, matching transaction stamps."""
    return datetime.now(ZoneInfo(get_settings().timezone))


# API schemas

class TransactionRequest(BaseModel):
    # Business rules are checked by validators.validate_transaction so every
    # rejection carries a ledger reason; the schema only enforces JSON types.
    amount: StrictInt = Field(..., description="Amount in minor units (cents), must be positive")
    kind: StrictStr = Field(..., description='Transaction kind: "credit" or "debit"')
    description: StrictStr = Field(..., description="Short description, 1 to 10 characters")


class TransactionResponse(BaseModel):
    creditLimit: int = Field(..., description="Account credit limit")
    balance: int = Field(..., description="Account balance after the transaction")

    @classmethod
    def from_result(cls, result: TransactionResult) -> "TransactionResponse":
        return cls(creditLimit=result.credit_limit, balance=result.balance)


class TransactionEntry(BaseModel):
    amount: int
    kind: TransactionKind
    description: str
    appliedAt: datetime

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> "TransactionEntry":
        return cls(
            amount=transaction.amount,
            kind=transaction.kind,
            description=transaction.description,
            appliedAt=transaction.applied_at,
        )


class StatementResponse(BaseModel):
    balance: int = Field(..., description="Current account balance")
    creditLimit: int = Field(..., description="Account credit limit")
    snapshotAt: datetime = Field(..., description="Time the statement was taken")
    lastTransactions: List[TransactionEntry] = Field(..., description="Most recent transactions, newest first")

    @classmethod
    def from_statement(cls, statement: Statement) -> "StatementResponse":
        return cls(
            balance=statement.balance,
            creditLimit=statement.credit_limit,
            snapshotAt=statement.taken_at,
            lastTransactions=[TransactionEntry.from_transaction(t) for t in statement.last_transactions],
        )


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error description")
    error_code: str = Field(..., description="Machine-readable error code")
    reasons: List[str] = Field(default_factory=list, description="Every failed validation rule")
    timestamp: datetime = Field(default_factory=local_now, description="Error timestamp")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(default_factory=local_now)
    accounts_count: int = Field(..., description="Number of accounts in system")
    transactions_processed: int = Field(..., description="Total transactions applied")
