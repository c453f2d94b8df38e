"""
CODA Parser - Belgian Bank Statement Format

Parses CODA (COded Statement of Account) text files, version 2.
Every line is a 128-character fixed-width record identified by its
first character (and the second one for movement records 2x and
information records 3x):
- 0:  Header
- 1:  Old balance
- 21: Movement main data (or the global amount of a batch when the
      globalisation code is "1")
- 22/23: Communication, counterparty account
- 31/32: Structured communication, counterparty address
- 8:  New balance
- 9:  Trailer

Movement lines 21-32 sharing one sequence number form a single
transaction; the parser keeps the open transaction until the next
main record or the new balance seals it.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from coda_service.core.config import settings
from coda_service.core.exceptions import (
    CodaError,
    InvalidAmountFormat,
    InvalidDateFormat,
    MalformedRecordError,
    UnrecognizedRecordType,
)
from coda_service.schemas.coda import (
    CommunicationRecord,
    CounterpartyAccountRecord,
    CounterpartyAddressRecord,
    HeaderRecord,
    MovementRecord,
    NewBalanceRecord,
    OldBalanceRecord,
    Statement,
    StructuredCommunicationRecord,
    Transaction,
    TrailerRecord,
)
from coda_service.services.logging import codec_logger

from .fields import apply_sign, decode_amount, decode_date, decode_number
from .iban import extract_and_complete_iban
from .layouts import (
    COMMUNICATION,
    COUNTERPARTY_ACCOUNT,
    COUNTERPARTY_ADDRESS,
    HEADER,
    LINE_LENGTH,
    MOVEMENT,
    NEW_BALANCE,
    OLD_BALANCE,
    STRUCTURED_COMMUNICATION,
    TRAILER,
    RecordLayout,
    RecordType,
    infer_account_structure,
    record_type_of,
    split_account_zone,
)

logger = logging.getLogger(__name__)

# Shortest lines that still hold every mandatory field
MIN_HEADER_LENGTH = HEADER.end_of("application_code")
MIN_OLD_BALANCE_LENGTH = OLD_BALANCE.end_of("balance_date")

# Transaction slot name for each sub-record type
SUB_RECORD_SLOTS = {
    RecordType.COMMUNICATION: "communication",
    RecordType.COUNTERPARTY_ACCOUNT: "counterparty_account",
    RecordType.STRUCTURED_COMMUNICATION: "structured_communication",
    RecordType.COUNTERPARTY_ADDRESS: "counterparty_address",
}


class _FieldReader:
    """Reads the fields of one line through its layout, degrading optional fields."""

    def __init__(self, layout: RecordLayout, line: str, line_number: int):
        self.layout = layout
        self.line = line
        self.line_number = line_number

    def text(self, name: str) -> str:
        return self.layout.slice(self.line, name).strip()

    def number(self, name: str) -> int:
        raw = self.layout.slice(self.line, name)
        try:
            return decode_number(raw)
        except MalformedRecordError:
            logger.warning(
                "Line %d: invalid %s '%s' in record %s, using 0",
                self.line_number, name, raw, self.layout.record_type.value,
            )
            return 0

    def amount(self, name: str, sign_field: Optional[str] = None, mandatory: bool = False) -> Decimal:
        """
        Read an amount, signed by `sign_field` when given.

        Mandatory amounts propagate InvalidAmountFormat; others read as zero.
        """
        raw = self.layout.slice(self.line, name)
        try:
            value = decode_amount(raw)
        except InvalidAmountFormat:
            if mandatory:
                raise InvalidAmountFormat(
                    raw,
                    record_type=self.layout.record_type.value,
                    line_number=self.line_number,
                )
            logger.warning(
                "Line %d: invalid amount '%s' in %s of record %s, using 0",
                self.line_number, raw, name, self.layout.record_type.value,
            )
            return Decimal("0")
        if sign_field:
            value = apply_sign(self.layout.slice(self.line, sign_field), value)
        return value

    def date(self, name: str) -> Optional[date]:
        raw = self.layout.slice(self.line, name)
        try:
            return decode_date(raw)
        except InvalidDateFormat:
            logger.warning(
                "Line %d: invalid date '%s' in %s of record %s, ignored",
                self.line_number, raw, name, self.layout.record_type.value,
            )
            return None


class CodaParser:
    """
    Parser for Belgian CODA bank statements.

    The parser holds no state between calls; one instance can be shared.
    Unknown record types are skipped unless `strict` is set, in which
    case they raise UnrecognizedRecordType.
    """

    def __init__(self, strict: Optional[bool] = None):
        self.strict = settings.CODA_STRICT_PARSING if strict is None else strict

    def can_parse(self, file_bytes: bytes, filename: Optional[str] = None) -> bool:
        """Check if file is a CODA statement (header record with the 0000 marker)."""
        if filename and not filename.lower().endswith(('.cod', '.coda', '.txt')):
            return False
        for line in self.decode(file_bytes).splitlines():
            if not line.strip():
                continue
            return line.startswith('00000') and len(line.rstrip()) >= MIN_HEADER_LENGTH
        return False

    def get_format_name(self) -> str:
        return "CODA (Belgium)"

    def parse_bytes(self, file_bytes: bytes) -> Statement:
        """Parse raw file content, trying UTF-8 first, then Latin-1."""
        return self.parse(self.decode(file_bytes))

    def parse(self, text: str) -> Statement:
        """
        Parse CODA text into a Statement.

        Raises:
            MalformedRecordError: If the header or old balance line is too short
            InvalidAmountFormat: If a balance amount is not numeric
            UnrecognizedRecordType: On unknown lines when parsing strictly
        """
        try:
            return self._parse(text)
        except CodaError as e:
            codec_logger.statement_parse_failed(str(e), getattr(e, "line_number", None))
            raise

    def decode(self, file_bytes: bytes) -> str:
        """UTF-8 (a leading BOM is dropped), falling back to Latin-1."""
        try:
            return file_bytes.decode('utf-8-sig')
        except UnicodeDecodeError:
            return file_bytes.decode('latin-1')

    def _parse(self, text: str) -> Statement:
        parts: Dict[str, Any] = {}
        transactions: List[Transaction] = []
        current: Optional[Dict[str, Any]] = None
        line_count = 0
        skipped = 0

        for line_number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            line_count += 1
            if len(line) > LINE_LENGTH:
                logger.debug("Line %d: %d characters, expected %d", line_number, len(line), LINE_LENGTH)

            record_type = record_type_of(line)

            if record_type == RecordType.HEADER:
                self._store(parts, "header", self._parse_header(line, line_number), line_number)

            elif record_type == RecordType.OLD_BALANCE:
                self._store(parts, "old_balance", self._parse_old_balance(line, line_number), line_number)

            elif record_type == RecordType.MOVEMENT:
                movement = self._parse_movement(line, line_number)
                if movement.is_global:
                    self._store(parts, "global_amount", movement, line_number)
                else:
                    if current is not None:
                        transactions.append(Transaction(**current))
                    current = {"main": movement}

            elif record_type in SUB_RECORD_SLOTS:
                sub_record = self._parse_sub_record(record_type, line, line_number)
                if current is None:
                    logger.warning(
                        "Line %d: record %s without an open movement, ignored",
                        line_number, record_type.value,
                    )
                    continue
                self._attach(current, SUB_RECORD_SLOTS[record_type], sub_record, line_number)

            elif record_type == RecordType.NEW_BALANCE:
                if current is not None:
                    transactions.append(Transaction(**current))
                    current = None
                new_balance = self._parse_new_balance(line, line_number, parts.get("old_balance"))
                self._store(parts, "new_balance", new_balance, line_number)

            elif record_type == RecordType.TRAILER:
                self._store(parts, "trailer", self._parse_trailer(line, line_number), line_number)

            else:
                code = line[:2] if line[:1] in ("2", "3") else line[:1]
                if self.strict:
                    raise UnrecognizedRecordType(code, line_number)
                logger.warning("Line %d: unrecognized record type '%s', skipped", line_number, code)
                skipped += 1

        # Chain never closed by a new balance record
        if current is not None:
            main = current["main"]
            codec_logger.transaction_flushed_at_eof(main.sequence_number, main.detail_number)
            transactions.append(Transaction(**current))

        statement = Statement(transactions=transactions, **parts)
        codec_logger.statement_parsed(
            line_count=line_count,
            transaction_count=len(transactions),
            has_global=statement.global_amount is not None,
            skipped_lines=skipped,
        )
        return statement

    def _store(self, parts: Dict[str, Any], key: str, record: Any, line_number: int):
        if key in parts:
            logger.warning("Line %d: second %s record replaces the first", line_number, key)
        parts[key] = record

    def _attach(self, current: Dict[str, Any], slot: str, record: Any, line_number: int):
        main: MovementRecord = current["main"]
        if record.sequence_number != main.sequence_number:
            logger.warning(
                "Line %d: %s sequence %d does not match movement sequence %d",
                line_number, slot, record.sequence_number, main.sequence_number,
            )
        if slot in current:
            logger.warning("Line %d: repeated %s record replaces the earlier one", line_number, slot)
        current[slot] = record

    # ============ Record decoders ============

    def _parse_header(self, line: str, line_number: int) -> HeaderRecord:
        if len(line) < MIN_HEADER_LENGTH:
            raise MalformedRecordError(
                f"Header record too short ({len(line)} characters)",
                record_type=RecordType.HEADER.value,
                line_number=line_number,
            )
        r = _FieldReader(HEADER, line, line_number)
        return HeaderRecord(
            creation_date=r.date("creation_date"),
            bank_identification_number=r.text("bank_identification_number"),
            application_code=r.text("application_code"),
            duplicate_code=r.text("duplicate_code"),
            file_reference=r.text("file_reference"),
            addressee_name=r.text("addressee_name"),
            bic=r.text("bic"),
            account_holder_id=r.text("account_holder_id"),
            separate_application_code=r.text("separate_application_code"),
            transaction_reference=r.text("transaction_reference"),
            related_reference=r.text("related_reference"),
            version_code=r.text("version_code"),
        )

    def _parse_old_balance(self, line: str, line_number: int) -> OldBalanceRecord:
        if len(line) < MIN_OLD_BALANCE_LENGTH:
            raise MalformedRecordError(
                f"Old balance record too short ({len(line)} characters)",
                record_type=RecordType.OLD_BALANCE.value,
                line_number=line_number,
            )
        r = _FieldReader(OLD_BALANCE, line, line_number)
        structure = r.text("account_structure") or "0"
        zone = split_account_zone(r.layout.slice(line, "account_zone"), structure)
        return OldBalanceRecord(
            account_structure=structure,
            statement_number=r.number("statement_number"),
            account_number=extract_and_complete_iban(zone.account_number),
            currency_code=zone.currency_code,
            qualification_code=zone.qualification_code,
            country_code=zone.country_code,
            extension_zone=zone.extension_zone,
            balance=r.amount("balance", sign_field="balance_sign", mandatory=True),
            balance_date=r.date("balance_date"),
            account_holder_name=r.text("account_holder_name"),
            account_description=r.text("account_description"),
            paper_statement_sequence=r.number("paper_statement_sequence"),
        )

    def _parse_movement(self, line: str, line_number: int) -> MovementRecord:
        r = _FieldReader(MOVEMENT, line, line_number)
        return MovementRecord(
            sequence_number=r.number("sequence_number"),
            detail_number=r.number("detail_number"),
            reference_number=r.text("reference_number"),
            amount=r.amount("amount", sign_field="movement_sign"),
            value_date=r.date("value_date"),
            transaction_code=r.text("transaction_code"),
            communication_type=r.text("communication_type") or "0",
            communication=r.text("communication"),
            entry_date=r.date("entry_date"),
            statement_number=r.number("statement_number"),
            globalisation_code=r.text("globalisation_code") or "0",
            next_code=r.text("next_code") or "0",
            link_code=r.text("link_code") or "0",
        )

    def _parse_sub_record(self, record_type: RecordType, line: str, line_number: int):
        if record_type == RecordType.COMMUNICATION:
            r = _FieldReader(COMMUNICATION, line, line_number)
            return CommunicationRecord(
                sequence_number=r.number("sequence_number"),
                detail_number=r.number("detail_number"),
                communication=r.text("communication"),
                counterparty_name=r.text("counterparty_name"),
                counterparty_bic=r.text("counterparty_bic"),
                r_transaction_type=r.text("r_transaction_type"),
                iso_reason_code=r.text("iso_reason_code"),
                category_purpose=r.text("category_purpose"),
                purpose=r.text("purpose"),
                next_code=r.text("next_code") or "0",
                link_code=r.text("link_code") or "0",
            )

        if record_type == RecordType.COUNTERPARTY_ACCOUNT:
            r = _FieldReader(COUNTERPARTY_ACCOUNT, line, line_number)
            return CounterpartyAccountRecord(
                sequence_number=r.number("sequence_number"),
                detail_number=r.number("detail_number"),
                counterparty_account=extract_and_complete_iban(r.text("counterparty_account")),
                counterparty_name=r.text("counterparty_name"),
                communication=r.text("communication"),
                next_code=r.text("next_code") or "0",
                link_code=r.text("link_code") or "0",
            )

        if record_type == RecordType.STRUCTURED_COMMUNICATION:
            r = _FieldReader(STRUCTURED_COMMUNICATION, line, line_number)
            return StructuredCommunicationRecord(
                sequence_number=r.number("sequence_number"),
                detail_number=r.number("detail_number"),
                reference_number=r.text("reference_number"),
                transaction_code=r.text("transaction_code"),
                communication_structure=r.text("communication_structure") or "0",
                communication=r.text("communication"),
                next_code=r.text("next_code") or "0",
                link_code=r.text("link_code") or "0",
            )

        r = _FieldReader(COUNTERPARTY_ADDRESS, line, line_number)
        return CounterpartyAddressRecord(
            sequence_number=r.number("sequence_number"),
            detail_number=r.number("detail_number"),
            address=r.text("address"),
            postal_code=r.text("postal_code"),
            city=r.text("city"),
            next_code=r.text("next_code") or "0",
            link_code=r.text("link_code") or "0",
        )

    def _parse_new_balance(
        self,
        line: str,
        line_number: int,
        old_balance: Optional[OldBalanceRecord] = None,
    ) -> NewBalanceRecord:
        r = _FieldReader(NEW_BALANCE, line, line_number)
        raw_zone = r.layout.slice(line, "account_zone")
        # No structure digit on this record; reuse the old balance one
        if old_balance is not None:
            structure = old_balance.account_structure
        else:
            structure = infer_account_structure(raw_zone)
        zone = split_account_zone(raw_zone, structure)
        return NewBalanceRecord(
            statement_number=r.number("statement_number"),
            account_structure=structure,
            account_number=extract_and_complete_iban(zone.account_number),
            currency_code=zone.currency_code,
            qualification_code=zone.qualification_code,
            country_code=zone.country_code,
            extension_zone=zone.extension_zone,
            balance=r.amount("balance", sign_field="balance_sign", mandatory=True),
            balance_date=r.date("balance_date"),
        )

    def _parse_trailer(self, line: str, line_number: int) -> TrailerRecord:
        r = _FieldReader(TRAILER, line, line_number)
        return TrailerRecord(
            number_of_records=r.number("number_of_records"),
            total_debit=r.amount("total_debit"),
            total_credit=r.amount("total_credit"),
            multiple_file_code=r.text("multiple_file_code") or "1",
        )
