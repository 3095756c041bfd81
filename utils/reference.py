"""Reference number issuance for complaint tracking."""
import secrets
import time
from typing import Callable, Optional

from models import Complaint
from utils.errors import DuplicateReferenceError

BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
RANDOM_PART_LENGTH = 4


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding expects a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def normalize_reference(value: Optional[str]) -> str:
    """Lookups are case-insensitive; stored numbers are always upper-case."""
    return (value or "").strip().upper()


def generate_reference(prefix: str = "LDCU", now_ms: Optional[int] = None, token: Optional[Callable[[], str]] = None) -> str:
    """Return ``PREFIX-<base36 ms timestamp>-<4 random base36 chars>``.

    ``now_ms`` and ``token`` exist so callers can pin the clock and the random
    part; production code passes neither.
    """
    millis = int(time.time() * 1000) if now_ms is None else now_ms
    random_part = token() if token else "".join(secrets.choice(BASE36_ALPHABET) for _ in range(RANDOM_PART_LENGTH))
    return f"{prefix}-{to_base36(millis)}-{random_part}".upper()


def reference_exists(reference_number: str) -> bool:
    return Complaint.query.filter_by(reference_number=normalize_reference(reference_number)).first() is not None


def issue_reference(prefix: str = "LDCU", generator: Optional[Callable[[], str]] = None) -> str:
    """Generate one reference and check it against stored complaints.

    Raises ``DuplicateReferenceError`` on collision; callers retry.
    """
    candidate = normalize_reference(generator() if generator else generate_reference(prefix))
    if reference_exists(candidate):
        raise DuplicateReferenceError("Reference number already issued.", details={"reference_number": candidate})
    return candidate
