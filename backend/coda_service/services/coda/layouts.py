"""
CODA Record Layouts

One declarative table per record type: an ordered list of
(name, width, kind) from which every field's offset is derived.
Each table is checked at import time to cover exactly 128 columns.

Record identification (first column, plus the article code for
families 2 and 3):

    0   Header                      21  Movement (main / global amount)
    1   Old balance                 22  Communication
    8   New balance                 23  Counterparty account
    9   Trailer                     31  Structured communication
                                    32  Counterparty address
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from .fields import (
    encode_amount,
    encode_date,
    encode_digits,
    encode_number,
    encode_text,
    extract_field,
)

LINE_LENGTH = 128


class RecordType(str, Enum):
    """Record identification codes."""
    HEADER = "0"
    OLD_BALANCE = "1"
    MOVEMENT = "21"
    COMMUNICATION = "22"
    COUNTERPARTY_ACCOUNT = "23"
    STRUCTURED_COMMUNICATION = "31"
    COUNTERPARTY_ADDRESS = "32"
    NEW_BALANCE = "8"
    TRAILER = "9"


class FieldKind(str, Enum):
    """Semantic type of a fixed-width field."""
    CONSTANT = "constant"    # fixed literal (record identification)
    FILLER = "filler"        # blanks
    INTEGER = "integer"      # int, left zero-padded
    NUMERIC = "numeric"      # digit code kept as text, left zero-padded
    TEXT = "text"            # alphanumeric, right space-padded
    AMOUNT = "amount"        # unsigned Decimal, scaled integer
    DATE = "date"            # DDMMYY, 000000 = no date


@dataclass(frozen=True)
class RecordField:
    name: str
    width: int
    kind: FieldKind
    default: Any = None


@dataclass(frozen=True)
class RecordLayout:
    """Field table of one record type."""
    record_type: RecordType
    fields: Tuple[RecordField, ...]
    offsets: Dict[str, Tuple[int, int]] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        offsets = {}
        position = 0
        for f in self.fields:
            offsets[f.name] = (position, position + f.width)
            position += f.width
        if position != LINE_LENGTH:
            raise ValueError(
                f"Layout {self.record_type.value} covers {position} columns, expected {LINE_LENGTH}"
            )
        object.__setattr__(self, "offsets", offsets)

    def slice(self, line: str, name: str) -> str:
        """Raw (untrimmed) content of a field."""
        start, end = self.offsets[name]
        return extract_field(line, start, end)

    def end_of(self, name: str) -> int:
        """Minimum line length that still contains the whole field."""
        return self.offsets[name][1]

    def render(self, values: Dict[str, Any]) -> str:
        """Serialize field values into one 128-character line."""
        parts: List[str] = []
        for f in self.fields:
            value = values.get(f.name, f.default)
            parts.append(_encode(f, value))
        line = "".join(parts)
        # Every encoder is width-exact; this only guards the invariant
        return line[:LINE_LENGTH].ljust(LINE_LENGTH)


def _encode(f: RecordField, value: Any) -> str:
    if f.kind == FieldKind.CONSTANT:
        return encode_text(f.default, f.width)
    if f.kind == FieldKind.FILLER:
        return " " * f.width
    if f.kind == FieldKind.INTEGER:
        return encode_number(value, f.width)
    if f.kind == FieldKind.NUMERIC:
        return encode_digits(value, f.width)
    if f.kind == FieldKind.AMOUNT:
        return encode_amount(value if value is not None else Decimal("0"), f.width)
    if f.kind == FieldKind.DATE:
        return encode_date(value)
    return encode_text(value, f.width)


def _f(name: str, width: int, kind: FieldKind, default: Any = None) -> RecordField:
    return RecordField(name, width, kind, default)


C, FL, I, N, T, A, D = (
    FieldKind.CONSTANT,
    FieldKind.FILLER,
    FieldKind.INTEGER,
    FieldKind.NUMERIC,
    FieldKind.TEXT,
    FieldKind.AMOUNT,
    FieldKind.DATE,
)


HEADER = RecordLayout(RecordType.HEADER, (
    _f("record_identification", 1, C, "0"),
    _f("zeros", 4, C, "0000"),
    _f("creation_date", 6, D),
    _f("bank_identification_number", 3, N),
    _f("application_code", 2, N, "05"),
    _f("duplicate_code", 1, T),
    _f("filler_1", 7, FL),
    _f("file_reference", 10, T),
    _f("addressee_name", 26, T),
    _f("bic", 11, T),
    _f("account_holder_id", 11, N),
    _f("filler_2", 1, FL),
    _f("separate_application_code", 5, N),
    _f("transaction_reference", 16, T),
    _f("related_reference", 16, T),
    _f("filler_3", 7, FL),
    _f("version_code", 1, T, "2"),
))

OLD_BALANCE = RecordLayout(RecordType.OLD_BALANCE, (
    _f("record_identification", 1, C, "1"),
    _f("account_structure", 1, T, "0"),
    _f("statement_number", 3, I),
    _f("account_zone", 37, T),
    _f("balance_sign", 1, T, "0"),
    _f("balance", 15, A),
    _f("balance_date", 6, D),
    _f("account_holder_name", 26, T),
    _f("account_description", 35, T),
    _f("paper_statement_sequence", 3, I),
))

MOVEMENT = RecordLayout(RecordType.MOVEMENT, (
    _f("record_identification", 1, C, "2"),
    _f("article_code", 1, C, "1"),
    _f("sequence_number", 4, I),
    _f("detail_number", 4, I),
    _f("reference_number", 21, T),
    _f("movement_sign", 1, T, "0"),
    _f("amount", 15, A),
    _f("value_date", 6, D),
    _f("transaction_code", 8, N),
    _f("communication_type", 1, T, "0"),
    _f("communication", 53, T),
    _f("entry_date", 6, D),
    _f("statement_number", 3, I),
    _f("globalisation_code", 1, T, "0"),
    _f("next_code", 1, T, "0"),
    _f("filler", 1, FL),
    _f("link_code", 1, T, "0"),
))

COMMUNICATION = RecordLayout(RecordType.COMMUNICATION, (
    _f("record_identification", 1, C, "2"),
    _f("article_code", 1, C, "2"),
    _f("sequence_number", 4, I),
    _f("detail_number", 4, I),
    _f("communication", 53, T),
    _f("counterparty_name", 35, T),
    _f("counterparty_bic", 11, T),
    _f("filler_1", 3, FL),
    _f("r_transaction_type", 1, T),
    _f("iso_reason_code", 4, T),
    _f("category_purpose", 4, T),
    _f("purpose", 4, T),
    _f("next_code", 1, T, "0"),
    _f("filler_2", 1, FL),
    _f("link_code", 1, T, "0"),
))

COUNTERPARTY_ACCOUNT = RecordLayout(RecordType.COUNTERPARTY_ACCOUNT, (
    _f("record_identification", 1, C, "2"),
    _f("article_code", 1, C, "3"),
    _f("sequence_number", 4, I),
    _f("detail_number", 4, I),
    _f("counterparty_account", 37, T),
    _f("counterparty_name", 35, T),
    _f("communication", 43, T),
    _f("next_code", 1, T, "0"),
    _f("filler", 1, FL),
    _f("link_code", 1, T, "0"),
))

STRUCTURED_COMMUNICATION = RecordLayout(RecordType.STRUCTURED_COMMUNICATION, (
    _f("record_identification", 1, C, "3"),
    _f("article_code", 1, C, "1"),
    _f("sequence_number", 4, I),
    _f("detail_number", 4, I),
    _f("reference_number", 21, T),
    _f("transaction_code", 8, N),
    _f("communication_structure", 1, T, "0"),
    _f("communication", 73, T),
    _f("filler_1", 12, FL),
    _f("next_code", 1, T, "0"),
    _f("filler_2", 1, FL),
    _f("link_code", 1, T, "0"),
))

COUNTERPARTY_ADDRESS = RecordLayout(RecordType.COUNTERPARTY_ADDRESS, (
    _f("record_identification", 1, C, "3"),
    _f("article_code", 1, C, "2"),
    _f("sequence_number", 4, I),
    _f("detail_number", 4, I),
    _f("address", 35, T),
    _f("postal_code", 12, T),
    _f("city", 35, T),
    _f("filler_1", 33, FL),
    _f("next_code", 1, T, "0"),
    _f("filler_2", 1, FL),
    _f("link_code", 1, T, "0"),
))

NEW_BALANCE = RecordLayout(RecordType.NEW_BALANCE, (
    _f("record_identification", 1, C, "8"),
    _f("statement_number", 3, I),
    _f("account_zone", 37, T),
    _f("balance_sign", 1, T, "0"),
    _f("balance", 15, A),
    _f("balance_date", 6, D),
    _f("filler", 64, FL),
    _f("link_code", 1, T, "0"),
))

TRAILER = RecordLayout(RecordType.TRAILER, (
    _f("record_identification", 1, C, "9"),
    _f("filler_1", 15, FL),
    _f("number_of_records", 6, I),
    _f("total_debit", 15, A),
    _f("total_credit", 15, A),
    _f("filler_2", 75, FL),
    _f("multiple_file_code", 1, T, "1"),
))

LAYOUTS: Dict[RecordType, RecordLayout] = {
    layout.record_type: layout
    for layout in (
        HEADER,
        OLD_BALANCE,
        MOVEMENT,
        COMMUNICATION,
        COUNTERPARTY_ACCOUNT,
        STRUCTURED_COMMUNICATION,
        COUNTERPARTY_ADDRESS,
        NEW_BALANCE,
        TRAILER,
    )
}


def record_type_of(line: str) -> Optional[RecordType]:
    """
    Identify a line's record type from its first one or two characters.

    Returns None for unknown identifications.
    """
    if not line:
        return None
    code = line[:2] if line[0] in ("2", "3") else line[0]
    try:
        return RecordType(code)
    except ValueError:
        return None


# ============ Account zone (records 1 and 8) ============

ACCOUNT_ZONE_WIDTH = 37


class AccountZone(NamedTuple):
    account_number: str
    currency_code: str
    qualification_code: str = ""
    country_code: str = ""
    extension_zone: str = ""


def infer_account_structure(zone: str) -> str:
    """
    Guess the account structure digit of an account zone.

    The new balance record carries no structure digit of its own.
    """
    compact = zone[:16]
    if compact[:12].isdigit() and zone[12:13] in (" ", ""):
        return "0"
    if compact[:2] == "BE" and compact[2:16].isdigit():
        return "2"
    if compact[:2].isalpha() and compact[2:4].isdigit():
        return "3"
    return "1"


def split_account_zone(zone: str, structure: str) -> AccountZone:
    """Decompose the 37-character account zone according to the structure digit."""
    zone = zone.ljust(ACCOUNT_ZONE_WIDTH)
    if structure == "0":
        return AccountZone(
            account_number=zone[0:12].strip(),
            currency_code=zone[13:16].strip(),
            qualification_code=zone[16:17].strip(),
            country_code=zone[17:19].strip(),
            extension_zone=zone[22:37].strip(),
        )
    return AccountZone(
        account_number=zone[0:34].strip(),
        currency_code=zone[34:37].strip(),
    )


def build_account_zone(
    structure: str,
    account_number: str,
    currency_code: str,
    qualification_code: str = "",
    country_code: str = "",
    extension_zone: str = "",
) -> str:
    """Inverse of split_account_zone; Belgian IBANs are reduced to 12 digits for structure 0."""
    account = "".join((account_number or "").split()).upper()
    if structure == "0":
        if account.startswith("BE") and len(account) == 16 and account[2:].isdigit():
            account = account[4:]
        return (
            encode_text(account, 12)
            + " "
            + encode_text(currency_code, 3)
            + encode_text(qualification_code or "0", 1)
            + encode_text(country_code, 2)
            + "   "
            + encode_text(extension_zone, 15)
        )
    return encode_text(account, 34) + encode_text(currency_code, 3)
