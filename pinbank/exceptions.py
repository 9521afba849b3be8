"""
Error Taxonomy Module

Every failure a ledger operation can report carries an ErrorCode so the
console layer can show a user-facing message and return to the menu.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Failure categories reported at the operation boundary"""
    ACCOUNT_NOT_FOUND = "account_not_found"
    INVALID_PIN = "invalid_pin"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_AMOUNT = "invalid_amount"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    TABLE_FULL = "table_full"
    VALIDATION_FAILED = "validation_failed"
    PERSISTENCE_FAILURE = "persistence_failure"


class BankingError(Exception):
    """Base exception for all banking errors"""
    code: Optional[ErrorCode] = None
    default_message = "Operation failed"
    
    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class AccountNotFoundError(BankingError):
    """Raised when no active account has the requested number"""
    code = ErrorCode.ACCOUNT_NOT_FOUND
    default_message = "Account not found!"


class InvalidPinError(BankingError):
    """Raised when the supplied PIN does not match"""
    code = ErrorCode.INVALID_PIN
    default_message = "Invalid PIN!"


class InvalidCredentialsError(BankingError):
    """Raised when the PIN or password does not match"""
    code = ErrorCode.INVALID_CREDENTIALS
    default_message = "Invalid PIN or Password!"


class InvalidAmountError(BankingError):
    """Raised for non-positive or non-numeric amounts"""
    code = ErrorCode.INVALID_AMOUNT
    default_message = "Invalid amount! Must be positive."


class InsufficientBalanceError(BankingError):
    """Raised when a withdrawal exceeds the available balance"""
    code = ErrorCode.INSUFFICIENT_BALANCE
    
    def __init__(self, available: Decimal, message: Optional[str] = None):
        self.available = available
        super().__init__(message or f"Insufficient balance! Available: ${available:,.2f}")


class TableFullError(BankingError):
    """Raised when the account table has reached its capacity"""
    code = ErrorCode.TABLE_FULL
    default_message = "Maximum account limit reached!"


class ValidationError(BankingError):
    """Raised when a PIN or password does not meet the format rules"""
    code = ErrorCode.VALIDATION_FAILED
    default_message = "Invalid PIN or password format!"


class PersistenceError(BankingError):
    """Raised when the snapshot cannot be written or read"""
    code = ErrorCode.PERSISTENCE_FAILURE
    default_message = "Error saving data!"
