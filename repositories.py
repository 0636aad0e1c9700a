from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from accounts import AccountLedger


class AccountRepository(ABC):
    @abstractmethod
    def get(self, client_id: int) -> Optional[AccountLedger]:
        """Get account ledger. Returns None if account doesn't exist."""
        pass

    @abstractmethod
    def get_or_create(self, client_id: int) -> AccountLedger:
        """Get account ledger, creating an empty one on first reference."""
        pass

    @abstractmethod
    def list_accounts(self) -> List[AccountLedger]:
        """All known accounts in ascending client order."""
        pass

    @abstractmethod
    def get_accounts_count(self) -> int:
        """Get total number of accounts."""
        pass


class InMemoryAccountRepository(AccountRepository):
    def __init__(self):
        self.accounts: Dict[int, AccountLedger] = {}

    def get(self, client_id: int) -> Optional[AccountLedger]:
        return self.accounts.get(client_id)

    def get_or_create(self, client_id: int) -> AccountLedger:
        ledger = self.accounts.get(client_id)
        if ledger is None:
            ledger = self.accounts[client_id] = AccountLedger(client_id)
        return ledger

    def list_accounts(self) -> List[AccountLedger]:
        return [self.accounts[client_id] for client_id in sorted(self.accounts)]

    def get_accounts_count(self) -> int:
        return len(self.accounts)


def get_account_repository() -> AccountRepository:
    """Fresh repository for one batch. State never outlives a run."""
    return InMemoryAccountRepository()
