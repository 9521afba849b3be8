"""
Account Record Model

Defines transactions, accounts and the bounded account table. Accounts are
never removed from the table; deletion only flips the active flag so the
history stays on disk.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterator, List, Optional

from .currency import ZERO
from .exceptions import TableFullError

DEFAULT_MAX_ACCOUNTS = 100
DEFAULT_MAX_TRANSACTIONS = 100

ACCOUNT_NUMBER_MIN = 100000
ACCOUNT_NUMBER_MAX = 999999


class TransactionType(Enum):
    """Transaction labels as shown in the history"""
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    ACCOUNT_CREATION = "Account Creation"
    ACCOUNT_DELETION = "Account Deletion"


@dataclass(frozen=True)
class Transaction:
    """
    One entry in an account's history

    Amount is zero for account creation; for deletion it records the
    balance the account had when it was closed.
    """
    type: TransactionType
    amount: Decimal
    date: str  # DD-MM-YYYY
    time: str  # HH:MM:SS


@dataclass
class Account:
    """Bank account with its full, append-only transaction history"""
    account_number: int
    name: str
    pin: str
    password: str
    balance: Decimal = ZERO
    transactions: List[Transaction] = field(default_factory=list)
    is_active: bool = True
    transaction_capacity: int = field(default=DEFAULT_MAX_TRANSACTIONS, compare=False, repr=False)

    def record_transaction(self, transaction: Transaction) -> bool:
        """
        Append a transaction to the history

        Returns False when the history is full; the entry is dropped and
        existing entries are left untouched.
        """
        if len(self.transactions) >= self.transaction_capacity:
            return False
        self.transactions.append(transaction)
        return True

    @property
    def history_full(self) -> bool:
        """Check if further transactions will be dropped"""
        return len(self.transactions) >= self.transaction_capacity


class AccountTable:
    """
    Ordered, bounded collection of every account ever created

    Indexes are stable: soft-deleted accounts keep their slot.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_MAX_ACCOUNTS,
        transaction_capacity: int = DEFAULT_MAX_TRANSACTIONS,
        accounts: Optional[List[Account]] = None
    ):
        if capacity < 1 or transaction_capacity < 1:
            raise ValueError("Table capacities must be at least 1")

        self.capacity = capacity
        self.transaction_capacity = transaction_capacity
        self._accounts: List[Account] = []

        for account in accounts or []:
            self.append(account)

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self) -> Iterator[Account]:
        return iter(self._accounts)

    def __getitem__(self, index: int) -> Account:
        return self._accounts[index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, AccountTable):
            return NotImplemented
        return self._accounts == other._accounts

    @property
    def is_full(self) -> bool:
        """Check if no more accounts can be added"""
        return len(self._accounts) >= self.capacity

    def append(self, account: Account) -> int:
        """Add an account and return its index"""
        if self.is_full:
            raise TableFullError()
        account.transaction_capacity = self.transaction_capacity
        self._accounts.append(account)
        return len(self._accounts) - 1

    def find_account(self, account_number: int) -> Optional[int]:
        """
        Resolve an account number to its table index

        Only active accounts match; the first match wins. Returns None when
        no active account carries the number.
        """
        for index, account in enumerate(self._accounts):
            if account.account_number == account_number and account.is_active:
                return index
        return None

    def contains_number(self, account_number: int) -> bool:
        """Check if any account, active or deleted, uses the number"""
        return any(a.account_number == account_number for a in self._accounts)

    def active_accounts(self) -> List[Account]:
        """Get all accounts that have not been deleted"""
        return [a for a in self._accounts if a.is_active]
