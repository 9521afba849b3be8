"""
Credential Format Validators

Pure predicates for PIN and password format rules. Callers decide whether
to re-prompt or fail.
"""

from typing import List, Tuple

from .exceptions import ValidationError

PIN_LENGTH = 4
PASSWORD_LENGTH = 8

_DIGITS = frozenset("0123456789")
_UPPER = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZ")
_LOWER = frozenset("abcdefghijklmnopqrstuvwxyz")


def validate_pin(pin: str) -> bool:
    """True iff the PIN is exactly four ASCII digits"""
    return len(pin) == PIN_LENGTH and all(c in _DIGITS for c in pin)


def password_violations(password: str) -> List[str]:
    """List every password rule the candidate breaks"""
    violations = []

    if len(password) != PASSWORD_LENGTH:
        violations.append(f"Must be exactly {PASSWORD_LENGTH} characters")

    if not any(c in _UPPER for c in password):
        violations.append("Must contain uppercase letter")

    if not any(c in _LOWER for c in password):
        violations.append("Must contain lowercase letter")

    if not any(c in _DIGITS for c in password):
        violations.append("Must contain digit")

    try:
        password.encode("utf-8")
    except UnicodeEncodeError:
        violations.append("Must contain only characters that can be stored")

    return violations


def validate_password(password: str) -> bool:
    """
    True iff the password is exactly eight characters and has at least one
    uppercase letter, one lowercase letter and one digit. Other characters
    are allowed but count toward no class, as long as UTF-8 can store them.
    """
    return not password_violations(password)


def check_credentials(pin: str, password: str) -> Tuple[bool, List[str]]:
    """Validate a PIN/password pair, returning (ok, violations)"""
    violations = []
    if not validate_pin(pin):
        violations.append(f"PIN must be exactly {PIN_LENGTH} digits")
    violations.extend(password_violations(password))
    return len(violations) == 0, violations


def ensure_valid_credentials(pin: str, password: str) -> None:
    """Raise ValidationError naming the broken rules, if any"""
    ok, violations = check_credentials(pin, password)
    if not ok:
        raise ValidationError("Invalid credentials: " + "; ".join(violations))
