"""
Belgian IBAN Utility

Validation (ISO 13616 mod-97), check digit derivation and best-effort
completion of Belgian account numbers found in CODA account fields.

Supported input shapes for completion:
- Belgian IBAN:               BE68539007547034 / be68 5390 0754 7034
- Partial IBAN (no checksum): BE539007547034 (BE + 12 digits)
- Old account number:         539-0075470-34
- Bare account number:        539007547034
"""
import re
from typing import Optional

from coda_service.core.exceptions import InvalidAccountFormat

BELGIAN_IBAN_RE = re.compile(r"^BE\d{14}$")
PARTIAL_BELGIAN_IBAN_RE = re.compile(r"^BE\d{12}$")
ACCOUNT_NUMBER_RE = re.compile(r"^\d{3}-?\d{7}-?\d{2}$")

# "BE" as base-36 digits (B=11, E=14)
BELGIUM_NUMERIC = "1114"


def _compact(value: str) -> str:
    return "".join(value.split()).upper()


def _mod97(digits: str) -> int:
    remainder = 0
    for ch in digits:
        remainder = (remainder * 10 + int(ch)) % 97
    return remainder


def _to_numeric(value: str) -> str:
    """Replace letters by their base-36 value (A=10 ... Z=35)."""
    return "".join(str(int(ch, 36)) for ch in value)


def is_valid_belgian_iban(value: Optional[str]) -> bool:
    """Check shape (BE + 14 digits) and mod-97 checksum of a Belgian IBAN."""
    if value is None:
        return False
    cleaned = _compact(value)
    if not BELGIAN_IBAN_RE.match(cleaned):
        return False
    rearranged = cleaned[4:] + cleaned[:4]
    return _mod97(_to_numeric(rearranged)) == 1


def calculate_belgian_check_digits(account: Optional[str]) -> str:
    """
    Compute the two IBAN check digits of a 12-digit Belgian account number.

    Check digits are 98 - (account + "1114" + "00") mod 97.

    Raises:
        InvalidAccountFormat: If the account is not exactly 12 digits
    """
    if account is None or len(account) != 12 or not account.isdigit():
        raise InvalidAccountFormat(account)
    check = 98 - _mod97(account + BELGIUM_NUMERIC + "00")
    return f"{check:02d}"


def format_iban(value: Optional[str]) -> Optional[str]:
    """Group an IBAN in blocks of 4 characters: BE68 5390 0754 7034."""
    if value is None:
        return None
    cleaned = _compact(value)
    return " ".join(cleaned[i:i + 4] for i in range(0, len(cleaned), 4))


def compact_iban(value: Optional[str]) -> Optional[str]:
    """Electronic form of an IBAN (no spaces, upper case)."""
    if value is None:
        return None
    return _compact(value)


def _from_account(account: str) -> str:
    return format_iban("BE" + calculate_belgian_check_digits(account) + account)


def autocomplete_iban(value: Optional[str]) -> Optional[str]:
    """
    Turn a Belgian account number in any common shape into a formatted IBAN.

    Anything not recognizable as Belgian is returned unchanged; this
    never raises.
    """
    if value is None or not value.strip():
        return value

    cleaned = _compact(value)

    if is_valid_belgian_iban(cleaned):
        return format_iban(cleaned)

    if PARTIAL_BELGIAN_IBAN_RE.match(cleaned):
        return _from_account(cleaned[2:])

    if ACCOUNT_NUMBER_RE.match(cleaned):
        return _from_account(cleaned.replace("-", ""))

    return value


def extract_and_complete_iban(field: Optional[str]) -> Optional[str]:
    """
    Normalize an account number read from a CODA field.

    Returns the spaced IBAN when completion yields a valid Belgian IBAN,
    otherwise the trimmed field content.
    """
    if field is None or not field.strip():
        return field.strip() if field is not None else None

    trimmed = field.strip()
    completed = autocomplete_iban(trimmed)
    if is_valid_belgian_iban(completed):
        return format_iban(completed)
    return trimmed


def is_belgian_account_format(value: Optional[str]) -> bool:
    """Check if a value looks like a Belgian account number or IBAN."""
    if value is None:
        return False
    cleaned = _compact(value)
    return (
        cleaned.startswith("BE")
        or bool(ACCOUNT_NUMBER_RE.match(cleaned))
        or bool(re.match(r"^\d{14}$", cleaned))
    )
