"""
CODA Field Codec

Primitive fixed-width read/write operations shared by every record type:
- raw slices (tolerant of short lines)
- right-padded text and left zero-padded numbers
- amounts as unsigned integers with an implied decimal scale
- DDMMYY dates where "000000" means no date

Positions are 0-indexed and end-exclusive, like Python slices.
"""
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from coda_service.core.exceptions import (
    InvalidAmountFormat,
    InvalidDateFormat,
    MalformedRecordError,
)

# Every amount in a CODA v2 file carries 3 decimals (e.g. 000000000072480 = 72.48)
AMOUNT_SCALE = 3
AMOUNT_WIDTH = 15

NO_DATE = "000000"
DATE_FORMAT = "%d%m%y"

SIGN_CREDIT = "0"
SIGN_DEBIT = "1"


def extract_field(line: str, start: int, end: int) -> str:
    """
    Return the raw substring line[start:end].

    A line shorter than `end` yields whatever remains from `start`
    (possibly an empty string); callers trim as needed.
    """
    return line[start:end]


def encode_text(value: Optional[str], width: int) -> str:
    """Right-pad with spaces to `width`, truncating overlong values."""
    text = "" if value is None else str(value)
    return text[:width].ljust(width)


def encode_number(value: Optional[int], width: int) -> str:
    """Left-pad with zeros to `width`; overflowing digits are cut from the left."""
    digits = str(abs(int(value or 0)))
    return digits.rjust(width, "0")[-width:]


def encode_digits(value: Optional[str], width: int) -> str:
    """Left zero-pad a numeric code kept as text (e.g. "024", "00404483367")."""
    text = ("" if value is None else str(value)).strip()
    if not text:
        return "0" * width
    return text.rjust(width, "0")[-width:]


def decode_number(text: str) -> int:
    """Read a zero-padded integer; blanks read as 0."""
    value = text.strip()
    if not value:
        return 0
    if not value.isdigit():
        raise MalformedRecordError(f"Invalid number '{text}'")
    return int(value)


def decode_amount(text: str, scale: int = AMOUNT_SCALE) -> Decimal:
    """
    Read an unsigned fixed-point amount.

    Args:
        text: Digit string (spaces are ignored, blanks read as zero)
        scale: Number of implied decimal digits

    Raises:
        InvalidAmountFormat: If the field holds anything but digits
    """
    value = "".join(text.split())
    if not value:
        return Decimal("0")
    if not value.isdigit():
        raise InvalidAmountFormat(text)
    return Decimal(value) / (Decimal(10) ** scale)


def encode_amount(value: Optional[Decimal], width: int, scale: int = AMOUNT_SCALE) -> str:
    """Write the absolute value of an amount as a zero-padded subunit count."""
    if value is None:
        value = Decimal("0")
    quantum = Decimal(1).scaleb(-scale)
    scaled = abs(Decimal(value)).quantize(quantum, rounding=ROUND_HALF_UP).scaleb(scale)
    return encode_number(int(scaled), width)


def amount_fits(value: Optional[Decimal], width: int = AMOUNT_WIDTH, scale: int = AMOUNT_SCALE) -> bool:
    """Check that an amount, once rounded to `scale`, can be written in `width` digits."""
    if value is None:
        return True
    limit = Decimal(10) ** (width - scale)
    magnitude = abs(Decimal(value))
    if magnitude >= limit:
        return False
    quantum = Decimal(1).scaleb(-scale)
    return magnitude.quantize(quantum, rounding=ROUND_HALF_UP) < limit


def decode_date(text: str) -> Optional[date]:
    """
    Read a DDMMYY date.

    Blank fields and all-zero fields mean "no date".

    Raises:
        InvalidDateFormat: If the field is not a calendar date
    """
    value = text.strip()
    if not value or value.strip("0") == "":
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise InvalidDateFormat(text)


def encode_date(value: Optional[date]) -> str:
    """Write a date as DDMMYY, or "000000" when absent."""
    if value is None:
        return NO_DATE
    return value.strftime(DATE_FORMAT)


def apply_sign(sign: str, amount: Decimal) -> Decimal:
    """Combine a sign digit ("1" = debit/negative) with an unsigned amount."""
    return -amount if sign.strip() == SIGN_DEBIT and amount else amount


def sign_of(amount: Optional[Decimal]) -> str:
    """Sign digit for a signed amount."""
    return SIGN_DEBIT if amount is not None and amount < 0 else SIGN_CREDIT
