"""
Snapshot Storage Module

Provides the storage interface for the account table and two backends: an
in-memory one for testing and a binary snapshot file for persistence.

The snapshot is a flat, fixed-layout image of the whole table: an int32
record count followed by that many fixed-size account records, each with
its transaction history stored inline. Every save rewrites the entire file.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Union
import os
import struct
import tempfile

from .accounts import (
    Account, AccountTable, Transaction, TransactionType,
    DEFAULT_MAX_ACCOUNTS, DEFAULT_MAX_TRANSACTIONS
)
from .currency import to_cents, from_cents
from .exceptions import PersistenceError
from .logging_config import get_logger

logger = get_logger(__name__)

# Field sizes in bytes, including room for a terminating NUL
NAME_FIELD_SIZE = 50
PIN_FIELD_SIZE = 5
PASSWORD_FIELD_SIZE = 33  # 8 characters of up to 4 UTF-8 bytes each
TYPE_FIELD_SIZE = 20
DATE_FIELD_SIZE = 20
TIME_FIELD_SIZE = 20

TEXT_ENCODING = "utf-8"

_COUNT = struct.Struct("<i")
_ACCOUNT_HEAD = f"{NAME_FIELD_SIZE}sq{PIN_FIELD_SIZE}s{PASSWORD_FIELD_SIZE}s"
_TRANSACTION = f"{TYPE_FIELD_SIZE}sq{DATE_FIELD_SIZE}s{TIME_FIELD_SIZE}s"


def fit_text(value: str, field_size: int) -> str:
    """
    Truncate text so its encoded form fits a field, leaving room for the NUL

    Truncation never splits a multi-byte character. Characters that cannot
    be encoded (undecodable terminal bytes) become "?".
    """
    encoded = value.encode(TEXT_ENCODING, errors="replace")
    limit = field_size - 1
    return encoded[:limit].decode(TEXT_ENCODING, errors="ignore")


def _pack_text(value: str, field_size: int, field_name: str) -> bytes:
    try:
        encoded = value.encode(TEXT_ENCODING)
    except UnicodeEncodeError:
        raise PersistenceError(f"Value for {field_name} cannot be encoded as {TEXT_ENCODING}")
    if len(encoded) >= field_size:
        raise PersistenceError(
            f"Value for {field_name} does not fit its {field_size}-byte field"
        )
    return encoded


def _unpack_text(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode(TEXT_ENCODING, errors="replace")


class SnapshotCodec:
    """
    Encodes and decodes the account table as a flat binary snapshot

    The record size depends on the per-account transaction capacity, so a
    snapshot can only be read back with the capacity it was written with.
    """

    def __init__(self, transaction_capacity: int = DEFAULT_MAX_TRANSACTIONS):
        self.transaction_capacity = transaction_capacity
        self._record = struct.Struct(
            "<i" + _ACCOUNT_HEAD + _TRANSACTION * transaction_capacity + "ii"
        )

    @property
    def record_size(self) -> int:
        """Size of one account record in bytes"""
        return self._record.size

    def snapshot_size(self, count: int) -> int:
        """Expected file size for a snapshot holding count records"""
        return _COUNT.size + count * self.record_size

    def encode_account(self, account: Account) -> bytes:
        """Pack one account into its fixed-size record"""
        transactions = account.transactions
        if len(transactions) > self.transaction_capacity:
            raise PersistenceError(
                f"Account {account.account_number} holds {len(transactions)} transactions, "
                f"more than the capacity of {self.transaction_capacity}"
            )

        values: List = [
            account.account_number,
            _pack_text(account.name, NAME_FIELD_SIZE, "name"),
            to_cents(account.balance),
            _pack_text(account.pin, PIN_FIELD_SIZE, "pin"),
            _pack_text(account.password, PASSWORD_FIELD_SIZE, "password"),
        ]

        for transaction in transactions:
            values.extend([
                _pack_text(transaction.type.value, TYPE_FIELD_SIZE, "transaction type"),
                to_cents(transaction.amount),
                _pack_text(transaction.date, DATE_FIELD_SIZE, "transaction date"),
                _pack_text(transaction.time, TIME_FIELD_SIZE, "transaction time"),
            ])

        # Unused slots are zero-filled
        for _ in range(self.transaction_capacity - len(transactions)):
            values.extend([b"", 0, b"", b""])

        values.extend([len(transactions), 1 if account.is_active else 0])

        try:
            return self._record.pack(*values)
        except struct.error as e:
            raise PersistenceError(f"Cannot encode account {account.account_number}: {e}")

    def decode_account(self, record: bytes) -> Account:
        """Unpack one fixed-size record into an Account"""
        fields = self._record.unpack(record)
        account_number, name, balance_cents, pin, password = fields[:5]
        transaction_count, is_active = fields[-2:]

        if not 0 <= transaction_count <= self.transaction_capacity:
            raise PersistenceError(
                f"Account {account_number} has a corrupt transaction count: {transaction_count}"
            )

        transactions = []
        slots = fields[5:-2]
        for i in range(transaction_count):
            type_raw, amount_cents, date_raw, time_raw = slots[i * 4:i * 4 + 4]
            label = _unpack_text(type_raw)
            try:
                transaction_type = TransactionType(label)
            except ValueError:
                raise PersistenceError(f"Unknown transaction type in snapshot: {label!r}")
            transactions.append(Transaction(
                type=transaction_type,
                amount=from_cents(amount_cents),
                date=_unpack_text(date_raw),
                time=_unpack_text(time_raw)
            ))

        return Account(
            account_number=account_number,
            name=_unpack_text(name),
            pin=_unpack_text(pin),
            password=_unpack_text(password),
            balance=from_cents(balance_cents),
            transactions=transactions,
            is_active=bool(is_active),
            transaction_capacity=self.transaction_capacity
        )

    def encode(self, table: AccountTable) -> bytes:
        """Encode the whole table: count header then every record"""
        parts = [_COUNT.pack(len(table))]
        parts.extend(self.encode_account(account) for account in table)
        return b"".join(parts)

    def decode(self, data: bytes, capacity: int = DEFAULT_MAX_ACCOUNTS) -> AccountTable:
        """Decode a snapshot produced by encode()"""
        if len(data) < _COUNT.size:
            raise PersistenceError("Snapshot is too short to hold a record count")

        (count,) = _COUNT.unpack_from(data, 0)
        if count < 0:
            raise PersistenceError(f"Snapshot has a negative record count: {count}")

        if len(data) != self.snapshot_size(count):
            raise PersistenceError(
                f"Snapshot size {len(data)} does not match {count} records of "
                f"{self.record_size} bytes"
            )

        if count > capacity:
            raise PersistenceError(
                f"Snapshot holds {count} accounts, more than the capacity of {capacity}"
            )

        accounts = []
        offset = _COUNT.size
        for _ in range(count):
            accounts.append(self.decode_account(data[offset:offset + self.record_size]))
            offset += self.record_size

        return AccountTable(
            capacity=capacity,
            transaction_capacity=self.transaction_capacity,
            accounts=accounts
        )


class StorageInterface(ABC):
    """Abstract interface for account table storage backends"""

    def __init__(
        self,
        capacity: int = DEFAULT_MAX_ACCOUNTS,
        transaction_capacity: int = DEFAULT_MAX_TRANSACTIONS
    ):
        self.capacity = capacity
        self.transaction_capacity = transaction_capacity
        self.codec = SnapshotCodec(transaction_capacity)

    def new_table(self) -> AccountTable:
        """Create an empty table with this backend's capacities"""
        return AccountTable(self.capacity, self.transaction_capacity)

    @abstractmethod
    def save(self, table: AccountTable) -> None:
        """Persist the entire table, replacing any previous snapshot"""
        pass

    @abstractmethod
    def load(self) -> AccountTable:
        """Load the table; an absent snapshot yields an empty table"""
        pass

    def load_or_empty(self) -> AccountTable:
        """
        Load the table, treating any read failure as "no data yet"

        The failure is logged, not raised, so the application can still
        start.
        """
        try:
            return self.load()
        except PersistenceError as e:
            logger.warning("Could not load saved accounts, starting empty: %s", e)
            return self.new_table()


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(
        self,
        capacity: int = DEFAULT_MAX_ACCOUNTS,
        transaction_capacity: int = DEFAULT_MAX_TRANSACTIONS
    ):
        super().__init__(capacity, transaction_capacity)
        self.snapshot: Optional[bytes] = None
        self.save_count = 0

    def save(self, table: AccountTable) -> None:
        """Encode the table into memory"""
        # Round-trip through the codec so tests exercise the real layout
        self.snapshot = self.codec.encode(table)
        self.save_count += 1

    def load(self) -> AccountTable:
        """Decode the last saved snapshot"""
        if self.snapshot is None:
            return self.new_table()
        return self.codec.decode(self.snapshot, self.capacity)


class SnapshotFileStorage(StorageInterface):
    """Binary snapshot file storage"""

    def __init__(
        self,
        path: Union[str, Path],
        capacity: int = DEFAULT_MAX_ACCOUNTS,
        transaction_capacity: int = DEFAULT_MAX_TRANSACTIONS,
        atomic_writes: bool = False
    ):
        super().__init__(capacity, transaction_capacity)
        self.path = Path(path)
        self.atomic_writes = atomic_writes

    @property
    def exists(self) -> bool:
        """Check if a snapshot file is present"""
        return self.path.exists()

    def save(self, table: AccountTable) -> None:
        """Overwrite the snapshot file with the whole table"""
        data = self.codec.encode(table)
        try:
            if self.atomic_writes:
                self._write_atomic(data)
            else:
                with open(self.path, "wb") as f:
                    f.write(data)
        except OSError as e:
            logger.error("Failed to save snapshot to %s: %s", self.path, e)
            raise PersistenceError(f"Error saving data! ({e.strerror or e})")

        logger.debug("Saved %d accounts to %s", len(table), self.path)

    def _write_atomic(self, data: bytes) -> None:
        """Write to a temp file in the same directory, then rename over the snapshot"""
        fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except OSError:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def load(self) -> AccountTable:
        """Read the snapshot file; a missing file gives an empty table"""
        if not self.path.exists():
            logger.info("No snapshot at %s, starting with zero accounts", self.path)
            return self.new_table()

        try:
            data = self.path.read_bytes()
        except OSError as e:
            raise PersistenceError(f"Error loading data! ({e.strerror or e})")

        table = self.codec.decode(data, self.capacity)
        logger.info("Loaded %d accounts from %s", len(table), self.path)
        return table
