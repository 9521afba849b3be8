"""
Tests for the console menus and masked secret entry
"""

import io
import random
import struct
from datetime import datetime
from decimal import Decimal

import pytest

from pinbank.cli import BankConsole, read_secret, main, build_parser, apply_overrides
from pinbank.config import PinbankConfig
from pinbank.ledger import Ledger
from pinbank.storage import InMemoryStorage


class ScriptedConsole:
    """Drives BankConsole with canned answers"""

    def __init__(self, ledger, answers, secrets=()):
        self._answers = iter(answers)
        self._secrets = iter(secrets)
        self.out = io.StringIO()
        self.console = BankConsole(
            ledger,
            input_func=self._next_answer,
            secret_func=lambda prompt: next(self._secrets),
            out=self.out
        )

    def _next_answer(self, prompt):
        try:
            return next(self._answers)
        except StopIteration:
            raise EOFError

    def run(self) -> str:
        self.console.run()
        return self.out.getvalue()


class TestReadSecret:
    """Test character-at-a-time masked input"""

    def test_masks_and_handles_backspace(self):
        keys = iter(["a", "b", "\x7f", "c", "\r"])
        out = io.StringIO()

        secret = read_secret("PIN: ", read_char=lambda: next(keys), out=out)

        assert secret == "ac"
        assert out.getvalue() == "PIN: **\b \b*\n"

    def test_backspace_on_empty_input(self):
        keys = iter(["\b", "1", "\n"])
        out = io.StringIO()
        assert read_secret("", read_char=lambda: next(keys), out=out) == "1"

    def test_end_of_input_stops(self):
        keys = iter(["x", ""])
        assert read_secret("", read_char=lambda: next(keys), out=io.StringIO()) == "x"

    def test_ctrl_c_interrupts(self):
        keys = iter(["\x03"])
        with pytest.raises(KeyboardInterrupt):
            read_secret("", read_char=lambda: next(keys), out=io.StringIO())


class TestBankConsole:
    """Test menu flows against an in-memory ledger"""

    def setup_method(self):
        self.storage = InMemoryStorage(capacity=3, transaction_capacity=10)
        self.ledger = Ledger(
            self.storage.new_table(), self.storage,
            clock=lambda: datetime(2024, 3, 5, 14, 7, 9),
            rng=random.Random(3)
        )
        self.account = self.ledger.create_account("Alice", "1234", "Passw0rd")
        self.number = str(self.account.account_number)

    def test_create_account_reprompts_bad_formats(self):
        script = ScriptedConsole(self.ledger, ["1", "Bob", "12", "4321", "8"],
                                 secrets=["password", "Secr3tPw"])
        output = script.run()

        assert "Invalid PIN! Must be exactly 4 digits." in output
        assert "Invalid password!" in output
        assert "Account created successfully!" in output
        assert self.ledger.table[1].name == "Bob"
        assert self.ledger.table[1].pin == "4321"
        assert f"Your Account Number: {self.ledger.table[1].account_number}" in output

    def test_create_account_when_full(self):
        self.ledger.create_account("B", "1234", "Passw0rd")
        self.ledger.create_account("C", "1234", "Passw0rd")

        output = ScriptedConsole(self.ledger, ["1", "8"]).run()
        assert "Maximum account limit reached!" in output

    def test_deposit_and_withdraw(self):
        output = ScriptedConsole(self.ledger, [
            "4", self.number, "1234", "$150.00",
            "5", self.number, "1234", "200",
            "5", self.number, "1234", "150",
            "8",
        ]).run()

        assert "Deposit successful! New balance: $150.00" in output
        assert "Insufficient balance! Available: $150.00" in output
        assert "Withdrawal successful! New balance: $0.00" in output
        assert len(self.account.transactions) == 3

    def test_invalid_amount_text(self):
        output = ScriptedConsole(self.ledger, ["4", self.number, "1234", "lots", "8"]).run()
        assert "Cannot convert 'lots' to an amount" in output
        assert self.account.balance == Decimal('0.00')

    def test_oversized_amount_text(self):
        """Test that an amount beyond Decimal precision is reported, not fatal"""
        output = ScriptedConsole(self.ledger, [
            "4", self.number, "1234", "1" * 30,
            "6", self.number, "1234",
            "8",
        ]).run()

        assert "Amount exceeds the maximum of $92,233,720,368,547,758.07" in output
        assert "Current Balance: $0.00" in output
        assert self.account.balance == Decimal('0.00')

    def test_check_balance_wrong_pin(self):
        output = ScriptedConsole(self.ledger, ["6", self.number, "0000", "8"]).run()
        assert "Invalid PIN!" in output
        assert "Current Balance" not in output

    def test_unknown_account_and_bad_input(self):
        output = ScriptedConsole(self.ledger, ["6", "100", "1234", "7", "abc", "9", "8"]).run()
        assert "Account not found!" in output
        assert "Invalid input! Please enter a number." in output
        assert "Invalid choice! Please try again." in output

    def test_view_history(self):
        self.ledger.deposit(self.account.account_number, "1234", 25)
        output = ScriptedConsole(self.ledger, ["7", self.number, "1234", "8"]).run()

        assert "Account Holder: Alice" in output
        assert "Account Creation" in output
        assert "$25.00" in output
        assert "05-03-2024" in output
        assert "14:07:09" in output

    def test_login_sub_menu_reuses_credentials(self):
        output = ScriptedConsole(
            self.ledger,
            [
                "2", self.number,
                "1", "20",
                "2", "5",
                "3",
                "9",
                "5",
                "8",
            ],
            secrets=["1234", "Passw0rd"]
        ).run()

        assert "Login successful! Welcome, Alice." in output
        assert "Current Balance: $15.00" in output
        assert "Invalid choice!" in output
        assert "Logged out successfully!" in output
        assert self.account.balance == Decimal('15.00')

    def test_login_bad_credentials(self):
        output = ScriptedConsole(self.ledger, ["2", self.number, "8"],
                                 secrets=["1234", "Wrongpw1"]).run()
        assert "Invalid PIN or Password!" in output
        assert "ACCOUNT MENU" not in output

    def test_delete_confirmed(self):
        output = ScriptedConsole(self.ledger, ["3", self.number, "y", "8"],
                                 secrets=["1234", "Passw0rd"]).run()
        assert "Account deleted successfully!" in output
        assert not self.account.is_active

    def test_delete_cancelled(self):
        output = ScriptedConsole(self.ledger, ["3", self.number, "n", "8"],
                                 secrets=["1234", "Passw0rd"]).run()
        assert "Account deletion cancelled." in output
        assert self.account.is_active

    def test_delete_does_not_go_through_login(self, monkeypatch):
        def fail_login(*args):
            raise AssertionError("delete flow must not log a login")

        monkeypatch.setattr(self.ledger, "login", fail_login)
        output = ScriptedConsole(self.ledger, ["3", self.number, "y", "8"],
                                 secrets=["1234", "Passw0rd"]).run()
        assert "Account deleted successfully!" in output

    def test_end_of_input_exits(self):
        output = ScriptedConsole(self.ledger, []).run()
        assert "MAIN MENU" in output


class TestMain:
    """Test the console entry point"""

    def test_fresh_start_and_exit(self, tmp_path, monkeypatch, capsys):
        path = tmp_path / "bank_data.dat"
        monkeypatch.setattr("builtins.input", lambda prompt="": "8")

        assert main(["--data-file", str(path)]) == 0

        captured = capsys.readouterr()
        assert "No existing data found. Starting fresh." in captured.out
        assert "Thank you for using our banking system!" in captured.out
        assert path.read_bytes() == struct.pack("<i", 0)

    def test_overrides(self):
        args = build_parser().parse_args(["--data-file", "x.dat", "--log-format", "json"])
        config = apply_overrides(PinbankConfig(), args)
        assert config.data_file == "x.dat"
        assert config.log_format == "json"
