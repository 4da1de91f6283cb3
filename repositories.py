from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Union
import asyncio

from errors import AccountNotFoundError
from models import Account

# Account id -> credit limit in cents. Every account opens with balance 0.
INITIAL_CREDIT_LIMITS: Dict[int, int] = {
    1: 100000,
    2: 80000,
    3: 1000000,
    4: 10000000,
    5: 500000,
}


def parse_account_id(account_id: Union[int, str]) -> Optional[int]:
    """Return the integer id, or None when it cannot name an account."""
    if isinstance(account_id, bool):
        return None
    if isinstance(account_id, int):
        return account_id
    if isinstance(account_id, str) and account_id.isascii() and account_id.isdigit():
        try:
            return int(account_id)
        except ValueError:
            # Past the interpreter's int-string conversion limit
            return None
    return None


class AccountRepository(ABC):
    @property
    @abstractmethod
    def lock(self) -> asyncio.Lock:
        """Guard covering every account in the repository."""
        pass

    @abstractmethod
    def lookup(self, account_id: Union[int, str]) -> Account:
        """Get account. Raises AccountNotFoundError if it doesn't exist."""
        pass

    @abstractmethod
    def accounts(self) -> List[Account]:
        """Get all accounts, ordered by id."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Get total number of accounts."""
        pass


class InMemoryAccountRepository(AccountRepository):
    def __init__(self, credit_limits: Mapping[int, int] = INITIAL_CREDIT_LIMITS):
        self._accounts: Dict[int, Account] = {
            account_id: Account(account_id, limit)
            for account_id, limit in credit_limits.items()
        }
        # One lock for the whole account set, not one per account
        self._lock = asyncio.Lock()

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    def lookup(self, account_id: Union[int, str]) -> Account:
        parsed = parse_account_id(account_id)
        account = self._accounts.get(parsed) if parsed is not None else None
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def accounts(self) -> List[Account]:
        return [self._accounts[key] for key in sorted(self._accounts)]

    def count(self) -> int:
        return len(self._accounts)


# Singleton instance (em produção, usar dependency injection)
_account_repo = InMemoryAccountRepository()


def get_account_repository() -> AccountRepository:
    return _account_repo


# Para testes
def reset_repositories():
    """Reset the account set to its initial state (for testing only)."""
    global _account_repo
    _account_repo = InMemoryAccountRepository()
