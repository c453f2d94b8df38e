"""
Unit Tests for the CODA Parser

Tests cover:
- Header / balance / trailer decoding from real sample lines
- Global amount vs. individual movements
- Transaction grouping of 21-32 records
- End of input without a new balance record
- Fatal and recoverable errors
- Byte decoding and format detection
"""
import logging

import pytest
from datetime import date
from decimal import Decimal

from coda_service.core.exceptions import (
    InvalidAmountFormat,
    MalformedRecordError,
    UnrecognizedRecordType,
)
from coda_service.services.coda import CodaParser

from conftest import (
    COMMUNICATION_LINE,
    COUNTERPARTY_ACCOUNT_LINE,
    GLOBAL_LINE,
    HEADER_LINE,
    MOVEMENT_LINE,
    NEW_BALANCE_LINE,
    OLD_BALANCE_LINE,
    TRAILER_LINE,
)


def join(*lines):
    return "\n".join(lines)


class TestStatementRecords:
    """Tests for the statement-level records."""

    def test_parse_header(self):
        """Test header fields."""
        statement = CodaParser().parse(HEADER_LINE)

        header = statement.header
        assert header.creation_date == date(2025, 3, 3)
        assert header.bank_identification_number == "300"
        assert header.application_code == "05"
        assert header.file_reference == "04308988"
        assert header.addressee_name == "AZA BELGIUM SA"
        assert header.bic == "BBRUBEBB"
        assert header.account_holder_id == "00404483367"
        assert header.version_code == "2"

    def test_parse_old_balance(self):
        """Test old balance fields and account completion."""
        statement = CodaParser().parse(join(HEADER_LINE, OLD_BALANCE_LINE))

        old = statement.old_balance
        assert old.account_structure == "0"
        assert old.statement_number == 24
        assert old.account_number == "BE51 3100 0001 7062"
        assert old.currency_code == "EUR"
        assert old.country_code == "BE"
        assert old.balance == Decimal("170022.11")
        assert old.balance_date == date(2025, 2, 27)
        assert old.account_holder_name == "AZA BELGIUM SA"
        assert old.account_description == "Compte à vue"
        assert old.paper_statement_sequence == 24

    def test_parse_negative_old_balance(self):
        """Test that sign digit 1 makes the balance negative."""
        line = OLD_BALANCE_LINE[:42] + "1" + OLD_BALANCE_LINE[43:]
        statement = CodaParser().parse(join(HEADER_LINE, line))

        assert statement.old_balance.balance == Decimal("-170022.11")

    def test_parse_new_balance(self):
        """Test new balance fields."""
        statement = CodaParser().parse(join(HEADER_LINE, OLD_BALANCE_LINE, NEW_BALANCE_LINE))

        new = statement.new_balance
        assert new.statement_number == 24
        assert new.account_structure == "0"
        assert new.account_number == "BE51 3100 0001 7062"
        assert new.balance == Decimal("170266.23")
        assert new.balance_date == date(2025, 3, 3)

    def test_parse_trailer(self):
        """Test trailer totals."""
        statement = CodaParser().parse(join(HEADER_LINE, TRAILER_LINE))

        trailer = statement.trailer
        assert trailer.number_of_records == 9
        assert trailer.total_debit == Decimal("0")
        assert trailer.total_credit == Decimal("316.6")
        assert trailer.multiple_file_code == "1"


class TestTransactionGrouping:
    """Tests for the transaction state machine."""

    def test_full_sample(self, sample_text):
        """Test the complete statement with a global batch."""
        statement = CodaParser().parse(sample_text)

        assert statement.global_amount is not None
        assert statement.global_amount.is_global
        assert statement.global_amount.amount == Decimal("244.12")
        assert statement.global_amount.transaction_code == "20150000"
        assert len(statement.transactions) == 1

        tx = statement.transactions[0]
        assert tx.amount == Decimal("72.48")
        assert tx.main.communication_type == "1"
        assert tx.main.communication == "102141359004019"
        assert tx.main.next_code == "1"
        assert tx.communication.counterparty_name == "NOTPROVIDED"
        assert tx.counterparty_bic == "BBRUBEBB"
        assert tx.counterparty_account.counterparty_account == "BE84 3900 6015 9859"
        assert tx.counterparty_name == "UCAR"
        assert tx.structured_communication.communication_structure == "1"
        assert tx.structured_communication.communication == "001UCAR"
        assert tx.structured_communication.transaction_code == "60150000"
        assert tx.counterparty_address.address == "BEKE TUINSTRAT 7"
        assert tx.counterparty_address.postal_code == "9950"
        assert tx.counterparty_address.city == "WALESCHELT"
        assert tx.record_count == 5

    def test_global_is_not_a_transaction(self):
        """Test that the global amount stays out of the transaction list."""
        text = join(
            HEADER_LINE, OLD_BALANCE_LINE, GLOBAL_LINE,
            MOVEMENT_LINE, COMMUNICATION_LINE,
            MOVEMENT_LINE, COUNTERPARTY_ACCOUNT_LINE,
            NEW_BALANCE_LINE,
        )
        statement = CodaParser().parse(text)

        assert statement.global_amount.amount == Decimal("244.12")
        assert len(statement.transactions) == 2
        assert statement.transactions[0].communication is not None
        assert statement.transactions[0].counterparty_account is None
        assert statement.transactions[1].communication is None
        assert statement.transactions[1].counterparty_account is not None

    def test_main_record_seals_previous_transaction(self):
        """Test that each non-global 21 record opens a new transaction."""
        text = join(HEADER_LINE, MOVEMENT_LINE, MOVEMENT_LINE, MOVEMENT_LINE, NEW_BALANCE_LINE)
        statement = CodaParser().parse(text)

        assert statement.global_amount is None
        assert len(statement.transactions) == 3

    def test_sub_record_without_movement_is_ignored(self):
        """Test 22 records with no open transaction."""
        statement = CodaParser().parse(join(HEADER_LINE, COMMUNICATION_LINE, NEW_BALANCE_LINE))

        assert statement.transactions == []

    def test_repeated_sub_record_replaces_earlier(self, caplog):
        """Test that a second 23 record replaces the first and is logged."""
        second = COUNTERPARTY_ACCOUNT_LINE.replace("UCAR", "ACME")
        with caplog.at_level(logging.WARNING):
            statement = CodaParser().parse(join(MOVEMENT_LINE, COUNTERPARTY_ACCOUNT_LINE, second, NEW_BALANCE_LINE))

        assert statement.transactions[0].counterparty_account.counterparty_name == "ACME"
        assert "repeated counterparty_account" in caplog.text

    def test_sequence_mismatch_is_logged(self, caplog):
        """Test that a sub-record of another sequence is attached with a warning."""
        other = COMMUNICATION_LINE[:2] + "0002" + COMMUNICATION_LINE[6:]
        with caplog.at_level(logging.WARNING):
            statement = CodaParser().parse(join(MOVEMENT_LINE, other, NEW_BALANCE_LINE))

        assert statement.transactions[0].communication is not None
        assert "does not match movement sequence" in caplog.text

    def test_blank_lines_are_skipped(self):
        """Test that blank lines and CRLF endings are tolerated."""
        text = "\r\n".join([HEADER_LINE, "", MOVEMENT_LINE, "   ", NEW_BALANCE_LINE, ""])
        statement = CodaParser().parse(text)

        assert statement.header is not None
        assert len(statement.transactions) == 1
        assert statement.new_balance is not None


class TestEndOfInput:
    """Tests for chains not closed by a new balance record."""

    def test_open_transaction_is_flushed(self):
        """Test that the last chain is kept when no 8 record follows."""
        text = join(HEADER_LINE, OLD_BALANCE_LINE, GLOBAL_LINE, MOVEMENT_LINE, COMMUNICATION_LINE, COUNTERPARTY_ACCOUNT_LINE)
        statement = CodaParser().parse(text)

        assert len(statement.transactions) == 1
        assert statement.transactions[0].counterparty_account is not None
        assert statement.new_balance is None

    def test_flush_is_logged(self, caplog):
        """Test the structured flush event."""
        with caplog.at_level(logging.INFO, logger="coda"):
            CodaParser().parse(join(HEADER_LINE, MOVEMENT_LINE))

        assert "transaction.flushed_at_eof" in caplog.text


class TestErrors:
    """Tests for fatal and recoverable conditions."""

    def test_short_header_is_fatal(self):
        """Test a header line without its mandatory fields."""
        with pytest.raises(MalformedRecordError) as exc_info:
            CodaParser().parse("00000030325")
        assert exc_info.value.line_number == 1
        assert exc_info.value.record_type == "0"

    def test_short_old_balance_is_fatal(self):
        """Test an old balance line cut before its date."""
        with pytest.raises(MalformedRecordError) as exc_info:
            CodaParser().parse(join(HEADER_LINE, OLD_BALANCE_LINE[:50]))
        assert exc_info.value.line_number == 2

    def test_invalid_balance_amount_is_fatal(self):
        """Test a non-numeric old balance amount."""
        line = OLD_BALANCE_LINE[:43] + "00000017002211X" + OLD_BALANCE_LINE[58:]
        with pytest.raises(InvalidAmountFormat):
            CodaParser().parse(join(HEADER_LINE, line))

    def test_invalid_movement_amount_reads_as_zero(self):
        """Test that movement amounts degrade to zero."""
        line = MOVEMENT_LINE[:32] + "ABCDEFGHIJKLMNO" + MOVEMENT_LINE[47:]
        statement = CodaParser().parse(join(HEADER_LINE, line))

        assert statement.transactions[0].amount == Decimal("0")

    def test_invalid_date_reads_as_none(self):
        """Test that impossible dates are dropped."""
        line = MOVEMENT_LINE[:47] + "999999" + MOVEMENT_LINE[53:]
        statement = CodaParser().parse(join(HEADER_LINE, line))

        assert statement.transactions[0].value_date is None
        assert statement.transactions[0].entry_date == date(2025, 3, 3)

    def test_short_movement_line_is_tolerated(self):
        """Test that a truncated movement keeps what is present."""
        statement = CodaParser().parse(join(HEADER_LINE, MOVEMENT_LINE[:53]))

        tx = statement.transactions[0]
        assert tx.amount == Decimal("72.48")
        assert tx.value_date == date(2025, 3, 3)
        assert tx.main.communication == ""

    def test_unknown_record_skipped(self):
        """Test that unknown lines are ignored by default."""
        text = join(HEADER_LINE, "4" + " " * 127, MOVEMENT_LINE, NEW_BALANCE_LINE)
        statement = CodaParser(strict=False).parse(text)

        assert len(statement.transactions) == 1

    def test_unknown_record_strict(self):
        """Test that strict parsing rejects unknown lines."""
        with pytest.raises(UnrecognizedRecordType) as exc_info:
            CodaParser(strict=True).parse(join(HEADER_LINE, "4" + " " * 127))
        assert exc_info.value.record_type == "4"
        assert exc_info.value.line_number == 2

    def test_parse_failure_is_logged(self, caplog):
        """Test the structured failure event."""
        with caplog.at_level(logging.INFO, logger="coda"):
            with pytest.raises(MalformedRecordError):
                CodaParser().parse("0000")

        assert "statement.parse_failed" in caplog.text


class TestBytesAndDetection:
    """Tests for byte input and format detection."""

    def test_parse_latin1_bytes(self):
        """Test Latin-1 files."""
        content = join(HEADER_LINE, OLD_BALANCE_LINE).encode("latin-1")
        statement = CodaParser().parse_bytes(content)

        assert statement.old_balance.account_description == "Compte à vue"

    def test_parse_utf8_bytes(self):
        """Test UTF-8 files."""
        content = join(HEADER_LINE, OLD_BALANCE_LINE).encode("utf-8")
        statement = CodaParser().parse_bytes(content)

        assert statement.old_balance.account_description == "Compte à vue"

    def test_can_parse_coda(self, sample_text):
        """Test detection of CODA content."""
        parser = CodaParser()

        assert parser.can_parse(sample_text.encode("utf-8"), "statement.cod") is True
        assert parser.can_parse(sample_text.encode("utf-8")) is True
        assert parser.get_format_name() == "CODA (Belgium)"

    def test_cannot_parse_other_formats(self, sample_text):
        """Test rejection of non-CODA files."""
        parser = CodaParser()

        assert parser.can_parse(b":20:STATEMENT\n:61:2401150115C100,00NTRF", "statement.sta") is False
        assert parser.can_parse(b"date,amount\n2024-01-15,1.00") is False
        assert parser.can_parse(sample_text.encode("utf-8"), "statement.pdf") is False

    def test_parse_utf8_bytes_with_bom(self):
        """Test that a byte order mark does not hide the header record."""
        content = b"\xef\xbb\xbf" + join(HEADER_LINE, OLD_BALANCE_LINE).encode("utf-8")
        parser = CodaParser(strict=True)
        statement = parser.parse_bytes(content)

        assert statement.header is not None
        assert statement.header.bank_identification_number == "300"
        assert parser.can_parse(content, "statement.cod") is True
