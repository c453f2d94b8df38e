"""
CODA Codec Exceptions

Error kinds raised by the field codec, parser, IBAN utility and
statement generator. Non-fatal conditions (unknown record types,
unreadable dates, optional amounts) are normally logged and degraded
by the parser; these classes are what surfaces when they are not.
"""
from typing import Optional


class CodaError(Exception):
    """Base exception for CODA codec operations."""
    pass


class MalformedRecordError(CodaError):
    """Raised when a line is too short or broken in a mandatory field."""
    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        line_number: Optional[int] = None,
    ):
        self.record_type = record_type
        self.line_number = line_number
        if line_number is not None:
            message = f"Line {line_number}: {message}"
        super().__init__(message)


class UnrecognizedRecordType(CodaError):
    """Raised for an unknown record identification when parsing strictly."""
    def __init__(self, record_type: str, line_number: Optional[int] = None):
        self.record_type = record_type
        self.line_number = line_number
        where = f" on line {line_number}" if line_number is not None else ""
        super().__init__(f"Unrecognized CODA record type '{record_type}'{where}")


class InvalidAmountFormat(MalformedRecordError):
    """Raised when an amount field is not a digit string."""
    def __init__(self, value: str, **kwargs):
        self.value = value
        super().__init__(f"Invalid amount '{value}'", **kwargs)


class InvalidDateFormat(CodaError):
    """Raised when a DDMMYY date field cannot be read."""
    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid date '{value}', expected DDMMYY")


class InvalidAccountFormat(CodaError):
    """Raised when a Belgian account number is not exactly 12 digits."""
    def __init__(self, value: Optional[str]):
        self.value = value
        super().__init__(f"Account number must be exactly 12 digits, got '{value}'")


class InvalidInputError(CodaError):
    """Raised when statement generation input is missing or invalid."""
    pass
