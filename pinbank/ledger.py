"""
Ledger Operations Module

Guarded reads and mutations against the account table: account creation,
login, deposit, withdrawal, balance and history queries, and soft deletion.

Every mutation is followed by a full snapshot save. If the save fails the
in-memory change is kept and PersistenceError is raised to the caller, so
memory and disk may differ until the next successful save.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional
import hmac
import random

from .accounts import (
    Account, AccountTable, Transaction, TransactionType,
    ACCOUNT_NUMBER_MIN, ACCOUNT_NUMBER_MAX
)
from .currency import AmountLike, MAX_AMOUNT, ZERO, to_amount
from .exceptions import (
    AccountNotFoundError, InsufficientBalanceError, InvalidAmountError,
    InvalidCredentialsError, InvalidPinError, PersistenceError, TableFullError
)
from .logging_config import get_logger, log_action
from .storage import NAME_FIELD_SIZE, StorageInterface, fit_text
from .validators import ensure_valid_credentials

logger = get_logger(__name__)

DATE_FORMAT = "%d-%m-%Y"
TIME_FORMAT = "%H:%M:%S"


@dataclass(frozen=True)
class BalanceInfo:
    """Read-only view returned by balance checks and login"""
    name: str
    account_number: int
    balance: Decimal


def _secret_matches(stored: str, supplied: str) -> bool:
    # Terminal input may carry lone surrogates
    return hmac.compare_digest(
        stored.encode("utf-8", "surrogatepass"), supplied.encode("utf-8", "surrogatepass")
    )


class Ledger:
    """
    Runs banking operations against an account table and flushes every
    mutation to storage
    """

    def __init__(
        self,
        table: AccountTable,
        storage: StorageInterface,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
        unique_account_numbers: bool = False
    ):
        self.table = table
        self.storage = storage
        self._clock = clock or datetime.now
        self._rng = rng or random.Random()
        self.unique_account_numbers = unique_account_numbers

    # Internal helpers

    def _persist(self, action: str, account_number: int) -> None:
        """Save the whole table; the in-memory state is kept on failure"""
        try:
            self.storage.save(self.table)
        except PersistenceError as e:
            log_action(
                logger, "error", f"Save failed after {action}; changes kept in memory only",
                action=action, resource=str(account_number), extra={"error": e.message}
            )
            raise

    def _new_transaction(self, transaction_type: TransactionType, amount: Decimal) -> Transaction:
        now = self._clock()
        return Transaction(
            type=transaction_type,
            amount=amount,
            date=now.strftime(DATE_FORMAT),
            time=now.strftime(TIME_FORMAT)
        )

    def _record(self, account: Account, transaction_type: TransactionType, amount: Decimal) -> None:
        if not account.record_transaction(self._new_transaction(transaction_type, amount)):
            log_action(
                logger, "warning", "Transaction history full; entry not recorded",
                action=transaction_type.name.lower(), resource=str(account.account_number)
            )

    def generate_account_number(self) -> int:
        """
        Draw a random 6-digit account number

        Duplicates are possible unless unique_account_numbers is set, in
        which case numbers already used by any account are re-drawn.
        """
        number = self._rng.randint(ACCOUNT_NUMBER_MIN, ACCOUNT_NUMBER_MAX)
        if self.unique_account_numbers:
            while self.table.contains_number(number):
                number = self._rng.randint(ACCOUNT_NUMBER_MIN, ACCOUNT_NUMBER_MAX)
        return number

    def _lookup(self, account_number: int) -> Account:
        index = self.table.find_account(account_number)
        if index is None:
            raise AccountNotFoundError()
        return self.table[index]

    def _authorize_pin(self, account_number: int, pin: str, action: str) -> Account:
        """PIN gate: the supplied PIN must match exactly"""
        account = self._lookup(account_number)
        if not _secret_matches(account.pin, pin):
            log_action(logger, "warning", "Rejected PIN", action=action, resource=str(account_number))
            raise InvalidPinError()
        return account

    def _authorize_credentials(self, account_number: int, pin: str, password: str,
                               action: str) -> Account:
        """PIN+password gate: both secrets must match exactly"""
        account = self._lookup(account_number)
        pin_ok = _secret_matches(account.pin, pin)
        password_ok = _secret_matches(account.password, password)
        if not (pin_ok and password_ok):
            log_action(logger, "warning", "Rejected credentials", action=action,
                       resource=str(account_number))
            raise InvalidCredentialsError()
        return account

    @staticmethod
    def _positive_amount(amount: AmountLike) -> Decimal:
        value = to_amount(amount)
        if value <= ZERO:
            raise InvalidAmountError()
        return value

    # Operations

    def create_account(self, name: str, pin: str, password: str) -> Account:
        """
        Open a new account

        Args:
            name: Account holder's display name
            pin: Four-digit PIN
            password: Eight-character password

        Returns:
            The created Account, already saved

        Raises:
            TableFullError: If the table is at capacity
            ValidationError: If the PIN or password has the wrong format
        """
        if self.table.is_full:
            raise TableFullError()

        ensure_valid_credentials(pin, password)

        account = Account(
            account_number=self.generate_account_number(),
            name=fit_text(name, NAME_FIELD_SIZE),
            pin=pin,
            password=password,
            balance=ZERO
        )
        self.table.append(account)
        self._record(account, TransactionType.ACCOUNT_CREATION, ZERO)

        log_action(logger, "info", "Account created", action="create_account",
                   resource=str(account.account_number))

        self._persist("create_account", account.account_number)
        return account

    def verify_credentials(self, account_number: int, pin: str, password: str,
                           action: str) -> BalanceInfo:
        """Run the PIN+password gate on behalf of another action, without logging a login"""
        account = self._authorize_credentials(account_number, pin, password, action)
        return BalanceInfo(account.name, account.account_number, account.balance)

    def login(self, account_number: int, pin: str, password: str) -> BalanceInfo:
        """Verify PIN and password; no session state is kept"""
        account = self._authorize_credentials(account_number, pin, password, "login")
        log_action(logger, "info", "Login succeeded", action="login", resource=str(account_number))
        return BalanceInfo(account.name, account.account_number, account.balance)

    def deposit(self, account_number: int, pin: str, amount: AmountLike) -> Decimal:
        """
        Add funds to an account

        Every call is a separate deposit; repeating it applies it again.

        Returns:
            New balance
        """
        account = self._authorize_pin(account_number, pin, "deposit")
        value = self._positive_amount(amount)

        if account.balance + value > MAX_AMOUNT:
            raise InvalidAmountError(
                f"Deposit would take the balance above the maximum of ${MAX_AMOUNT:,.2f}"
            )

        account.balance += value
        self._record(account, TransactionType.DEPOSIT, value)

        log_action(logger, "info", "Deposit posted", action="deposit",
                   resource=str(account_number), extra={"amount": str(value)})

        self._persist("deposit", account_number)
        return account.balance

    def withdraw(self, account_number: int, pin: str, amount: AmountLike) -> Decimal:
        """
        Take funds from an account

        Raises:
            InsufficientBalanceError: If amount exceeds the balance

        Returns:
            New balance
        """
        account = self._authorize_pin(account_number, pin, "withdraw")
        value = self._positive_amount(amount)

        if value > account.balance:
            raise InsufficientBalanceError(account.balance)

        account.balance -= value
        self._record(account, TransactionType.WITHDRAWAL, value)

        log_action(logger, "info", "Withdrawal posted", action="withdraw",
                   resource=str(account_number), extra={"amount": str(value)})

        self._persist("withdraw", account_number)
        return account.balance

    def check_balance(self, account_number: int, pin: str) -> BalanceInfo:
        """Get holder name, number and balance"""
        account = self._authorize_pin(account_number, pin, "check_balance")
        return BalanceInfo(account.name, account.account_number, account.balance)

    def view_history(self, account_number: int, pin: str) -> List[Transaction]:
        """Get the account's transactions in the order they happened"""
        account = self._authorize_pin(account_number, pin, "view_history")
        return list(account.transactions)

    def delete_account(self, account_number: int, pin: str, password: str,
                       confirmed: bool) -> bool:
        """
        Soft-delete an account

        The account stays in the table with its balance and history, plus an
        "Account Deletion" entry recording the final balance, but can no
        longer be found by number.

        Returns:
            True if deleted, False if the caller did not confirm
        """
        account = self._authorize_credentials(account_number, pin, password, "delete_account")

        if not confirmed:
            log_action(logger, "info", "Account deletion cancelled", action="delete_account",
                       resource=str(account_number))
            return False

        account.is_active = False
        self._record(account, TransactionType.ACCOUNT_DELETION, account.balance)

        log_action(logger, "info", "Account deleted", action="delete_account",
                   resource=str(account_number), extra={"final_balance": str(account.balance)})

        self._persist("delete_account", account_number)
        return True
