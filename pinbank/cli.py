"""
Console Interface

Interactive menus on top of the ledger. This layer owns all terminal I/O:
prompting, masked PIN/password entry, and formatting results. Ledger errors
are shown as messages and the menu always comes back.
"""

from typing import Callable, List, Optional, TextIO
import argparse
import sys

from . import __version__
from .config import PinbankConfig, get_config
from .currency import format_amount, parse_amount
from .exceptions import BankingError, PersistenceError
from .ledger import Ledger
from .logging_config import get_logger, setup_logging
from .storage import SnapshotFileStorage
from .validators import PASSWORD_LENGTH, PIN_LENGTH, validate_password, validate_pin

logger = get_logger(__name__)

RULE = "=" * 42
HISTORY_RULE = "-" * 60

BACKSPACE_CODES = ("\b", "\x7f")
ENTER_CODES = ("\n", "\r")


def _read_char_posix() -> str:
    import termios
    import tty

    fd = sys.stdin.fileno()
    old_settings = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        return sys.stdin.read(1)
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)


def _read_char_windows() -> str:
    import msvcrt

    return msvcrt.getwch()


def read_secret(prompt: str, read_char: Optional[Callable[[], str]] = None,
                out: Optional[TextIO] = None) -> str:
    """
    Read a secret one character at a time, echoing '*'

    Backspace removes the last character. Enter ends the input. When stdin
    is not a terminal the whole line is read without masking.
    """
    out = out or sys.stdout

    if read_char is None:
        if not sys.stdin.isatty():
            out.write(prompt)
            out.flush()
            return sys.stdin.readline().rstrip("\r\n")
        read_char = _read_char_windows if sys.platform == "win32" else _read_char_posix

    out.write(prompt)
    out.flush()

    chars: List[str] = []
    while True:
        ch = read_char()
        if ch == "" or ch in ENTER_CODES:
            break
        if ch == "\x03":
            raise KeyboardInterrupt
        if ch in BACKSPACE_CODES:
            if chars:
                chars.pop()
                out.write("\b \b")
                out.flush()
            continue
        chars.append(ch)
        out.write("*")
        out.flush()

    out.write("\n")
    out.flush()
    return "".join(chars)


class BankConsole:
    """Main menu and account sub-menu driver"""

    def __init__(
        self,
        ledger: Ledger,
        input_func: Optional[Callable[[str], str]] = None,
        secret_func: Optional[Callable[[str], str]] = None,
        out: Optional[TextIO] = None
    ):
        self.ledger = ledger
        self._input = input_func or input
        self._secret = secret_func or (lambda prompt: read_secret(prompt, out=self.out))
        self.out = out or sys.stdout

    def say(self, text: str = "") -> None:
        print(text, file=self.out)

    def ask(self, prompt: str) -> str:
        return self._input(prompt).strip()

    def ask_account_number(self) -> Optional[int]:
        raw = self.ask("Enter Account Number: ")
        try:
            return int(raw)
        except ValueError:
            self.say("Invalid input! Please enter a number.")
            return None

    def ask_amount(self, prompt: str):
        raw = self.ask(prompt)
        try:
            return parse_amount(raw)
        except BankingError as e:
            self.say(e.message)
            return None

    # Main menu

    def run(self) -> None:
        """Run the main menu until the user exits"""
        actions = {
            "1": self.create_account,
            "2": self.login,
            "3": self.delete_account,
            "4": self.deposit,
            "5": self.withdraw,
            "6": self.check_balance,
            "7": self.view_history,
        }

        while True:
            self.say("\n========== MAIN MENU ==========")
            self.say("1. Create New Account")
            self.say("2. Login to Account")
            self.say("3. Delete Account")
            self.say("4. Deposit Money")
            self.say("5. Withdraw Money")
            self.say("6. Check Balance")
            self.say("7. View Transaction History")
            self.say("8. Exit")
            self.say("===============================")

            try:
                choice = self.ask("Enter your choice: ")
            except EOFError:
                return

            if choice == "8":
                return

            action = actions.get(choice)
            if action is None:
                self.say("Invalid choice! Please try again.")
                continue

            self._guarded(action)

    def _guarded(self, action: Callable[[], None]) -> None:
        """Run a menu action, reporting ledger errors instead of raising"""
        try:
            action()
        except PersistenceError as e:
            self.say(f"{e.message} Your change is kept for this session but was not saved.")
        except BankingError as e:
            self.say(e.message)

    # Main menu actions

    def create_account(self) -> None:
        if self.ledger.table.is_full:
            self.say("Maximum account limit reached!")
            return

        self.say("\n======== CREATE ACCOUNT ========")
        name = self.ask("Enter your name: ")

        while True:
            pin = self.ask(f"Enter {PIN_LENGTH}-digit PIN: ")
            if validate_pin(pin):
                break
            self.say(f"Invalid PIN! Must be exactly {PIN_LENGTH} digits.")

        while True:
            password = self._secret(
                f"Enter password ({PASSWORD_LENGTH} chars, mix of upper/lower/digits): "
            )
            if validate_password(password):
                break
            self.say(f"Invalid password! Must be {PASSWORD_LENGTH} characters with "
                     "uppercase, lowercase, and digits.")

        try:
            account = self.ledger.create_account(name, pin, password)
        except PersistenceError as e:
            self.say(f"{e.message} The account exists for this session only.")
            return

        self.say("\nAccount created successfully!")
        self.say(f"Your Account Number: {account.account_number}")
        self.say("Keep your PIN and password secure!")

    def login(self) -> None:
        self.say("\n========== LOGIN ==========")
        account_number = self.ask_account_number()
        if account_number is None:
            return

        pin = self._secret("Enter PIN: ")
        password = self._secret("Enter Password: ")

        info = self.ledger.login(account_number, pin, password)
        self.say(f"Login successful! Welcome, {info.name}.")
        self.account_menu(account_number, pin)

    def delete_account(self) -> None:
        self.say("\n======== DELETE ACCOUNT ========")
        account_number = self.ask_account_number()
        if account_number is None:
            return

        pin = self._secret("Enter PIN: ")
        password = self._secret("Enter Password: ")

        # Check credentials before asking for confirmation
        self.ledger.verify_credentials(account_number, pin, password, "delete_account")

        self.say("WARNING: This will permanently delete your account!")
        answer = self.ask("Are you sure? (y/n): ")
        confirmed = answer[:1].lower() == "y"

        if self.ledger.delete_account(account_number, pin, password, confirmed):
            self.say("Account deleted successfully!")
        else:
            self.say("Account deletion cancelled.")

    def _ask_number_and_pin(self):
        account_number = self.ask_account_number()
        if account_number is None:
            return None
        pin = self.ask("Enter PIN: ")
        return account_number, pin

    def deposit(self, credentials=None) -> None:
        self.say("\n========== DEPOSIT ==========")
        credentials = credentials or self._ask_number_and_pin()
        if credentials is None:
            return
        account_number, pin = credentials

        # Check PIN before asking for the amount
        self.ledger.check_balance(account_number, pin)

        amount = self.ask_amount("Enter amount to deposit: $")
        if amount is None:
            return

        balance = self.ledger.deposit(account_number, pin, amount)
        self.say(f"Deposit successful! New balance: {format_amount(balance)}")

    def withdraw(self, credentials=None) -> None:
        self.say("\n========== WITHDRAW ==========")
        credentials = credentials or self._ask_number_and_pin()
        if credentials is None:
            return
        account_number, pin = credentials

        self.ledger.check_balance(account_number, pin)

        amount = self.ask_amount("Enter amount to withdraw: $")
        if amount is None:
            return

        balance = self.ledger.withdraw(account_number, pin, amount)
        self.say(f"Withdrawal successful! New balance: {format_amount(balance)}")

    def check_balance(self, credentials=None) -> None:
        self.say("\n======== CHECK BALANCE ========")
        credentials = credentials or self._ask_number_and_pin()
        if credentials is None:
            return

        info = self.ledger.check_balance(*credentials)
        self.say(f"\nAccount Holder: {info.name}")
        self.say(f"Account Number: {info.account_number}")
        self.say(f"Current Balance: {format_amount(info.balance)}")

    def view_history(self, credentials=None) -> None:
        self.say("\n===== TRANSACTION HISTORY =====")
        credentials = credentials or self._ask_number_and_pin()
        if credentials is None:
            return

        info = self.ledger.check_balance(*credentials)
        transactions = self.ledger.view_history(*credentials)

        self.say(f"\nAccount Holder: {info.name}")
        self.say(f"Account Number: {info.account_number}")
        self.say("\nTransaction History:")
        self.say(HISTORY_RULE)
        self.say(f"{'Type':<18}{'Amount':<14}{'Date':<13}{'Time':<12}")
        self.say(HISTORY_RULE)
        for transaction in transactions:
            self.say(f"{transaction.type.value:<18}{format_amount(transaction.amount):<14}"
                     f"{transaction.date:<13}{transaction.time:<12}")
        if not transactions:
            self.say("No transactions found.")
        self.say(HISTORY_RULE)

    # Account sub-menu

    def account_menu(self, account_number: int, pin: str) -> None:
        """Sub-menu for a logged-in account; reuses the login credentials"""
        credentials = (account_number, pin)
        actions = {
            "1": self.deposit,
            "2": self.withdraw,
            "3": self.check_balance,
            "4": self.view_history,
        }

        while True:
            self.say("\n======== ACCOUNT MENU ========")
            self.say("1. Deposit Money")
            self.say("2. Withdraw Money")
            self.say("3. Check Balance")
            self.say("4. View Transactions")
            self.say("5. Logout")
            self.say("==============================")

            try:
                choice = self.ask("Enter choice: ")
            except EOFError:
                return

            if choice == "5":
                self.say("Logged out successfully!")
                return

            action = actions.get(choice)
            if action is None:
                self.say("Invalid choice!")
                continue

            self._guarded(lambda: action(credentials))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pinbank", description="Console bank account system")
    parser.add_argument("--data-file", help="Snapshot file (default from PINBANK_DATA_FILE)")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--log-format", choices=["text", "json"])
    parser.add_argument("--log-file", help="Append logs to this file instead of stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def apply_overrides(config: PinbankConfig, args: argparse.Namespace) -> PinbankConfig:
    """Return a copy of the config with command-line values applied"""
    overrides = {
        key: value for key, value in {
            "data_file": args.data_file,
            "log_level": args.log_level,
            "log_format": args.log_format,
            "log_file": args.log_file,
        }.items() if value is not None
    }
    return config.model_copy(update=overrides)


def build_storage(config: PinbankConfig) -> SnapshotFileStorage:
    return SnapshotFileStorage(
        config.data_file,
        capacity=config.max_accounts,
        transaction_capacity=config.max_transactions,
        atomic_writes=config.atomic_writes
    )


def build_ledger(config: PinbankConfig, storage: Optional[SnapshotFileStorage] = None) -> Ledger:
    """Load the saved table and wire up the ledger"""
    storage = storage or build_storage(config)
    table = storage.load_or_empty()
    logger.info("Starting with %d accounts from %s", len(table), storage.path)
    return Ledger(table, storage, unique_account_numbers=config.unique_account_numbers)


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point"""
    args = build_parser().parse_args(argv)
    config = apply_overrides(get_config(), args)
    setup_logging(config.log_level, config.log_format, config.log_file)

    storage = build_storage(config)
    if not storage.exists:
        print("No existing data found. Starting fresh.")
    ledger = build_ledger(config, storage)

    print(f"\n{RULE}")
    print("     WELCOME TO BANK ACCOUNT SYSTEM")
    print(RULE)

    console = BankConsole(ledger)
    try:
        console.run()
    except (KeyboardInterrupt, EOFError):
        print()

    try:
        ledger.storage.save(ledger.table)
    except PersistenceError as e:
        print(e.message)
        return 1

    print("\nThank you for using our banking system!")
    return 0
