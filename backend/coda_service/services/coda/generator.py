"""
CODA Statement Generator

Builds a complete, balanced CODA statement from a plain list of credit
and debit transactions:
- header and old balance from the account metadata
- one 21/22/23 chain per transaction (plus 31 when a reference is given)
- closing balance = opening + credits - debits
- trailer with the record count and debit/credit totals

Bank-side constants (bank identification number, BIC, application code)
come from settings unless passed explicitly.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Union

from pydantic import ValidationError

from coda_service.core.config import settings
from coda_service.core.exceptions import InvalidInputError
from coda_service.schemas.coda import (
    CommunicationRecord,
    CounterpartyAccountRecord,
    HeaderRecord,
    MovementRecord,
    NewBalanceRecord,
    OldBalanceRecord,
    Statement,
    StructuredCommunicationRecord,
    Transaction,
    TrailerRecord,
)
from coda_service.schemas.generate import GenerateRequest, TransactionInput, TransactionType
from coda_service.services.logging import codec_logger

from .fields import amount_fits
from .iban import autocomplete_iban, is_valid_belgian_iban
from .writer import CodaWriter

logger = logging.getLogger(__name__)

TRANSACTION_CODE_CREDIT = "00150000"
TRANSACTION_CODE_DEBIT = "00101000"

# Header, old balance and new balance
FIXED_RECORDS = 3


def _format_validation_error(error: ValidationError) -> str:
    messages = []
    for item in error.errors():
        path = ".".join(str(part) for part in item.get("loc", ()))
        messages.append(f"{path}: {item.get('msg')}" if path else item.get("msg"))
    return "; ".join(messages)


class CodaGenerator:
    """
    Statement builder.

    Example:
        generator = CodaGenerator()
        text = generator.generate(
            "ACME NV", "BE68539007547034", "EUR", date(2025, 1, 31),
            Decimal("1200.00"),
            [{"booking_date": "2025-01-15", "type": "CREDIT", "amount": "125.00",
              "counterparty_name": "Client", "counterparty_account": "BE84390060159859"}],
        )
    """

    def __init__(
        self,
        writer: Optional[CodaWriter] = None,
        bank_identification_number: Optional[str] = None,
        application_code: Optional[str] = None,
        bic: Optional[str] = None,
        account_description: Optional[str] = None,
        statement_number: Optional[int] = None,
        file_reference: Optional[str] = None,
    ):
        self.writer = writer or CodaWriter()
        self.bank_identification_number = bank_identification_number or settings.CODA_BANK_IDENTIFICATION_NUMBER
        self.application_code = application_code or settings.CODA_APPLICATION_CODE
        self.bic = bic or settings.CODA_BANK_BIC
        self.account_description = account_description or settings.CODA_ACCOUNT_DESCRIPTION
        self.statement_number = statement_number if statement_number is not None else settings.CODA_STATEMENT_NUMBER
        self.file_reference = file_reference if file_reference is not None else settings.CODA_FILE_REFERENCE

    def generate(
        self,
        bank_name: Optional[str],
        account: Optional[str],
        currency: Optional[str],
        statement_date: Optional[date],
        opening_balance: Optional[Decimal],
        transactions: Optional[Iterable[Union[TransactionInput, dict]]] = None,
        grouped: bool = False,
    ) -> str:
        """Build the statement and serialize it as CODA text."""
        statement = self.generate_statement(
            bank_name, account, currency, statement_date, opening_balance, transactions
        )
        return self.writer.write(statement, grouped=grouped)

    def generate_statement(
        self,
        bank_name: Optional[str],
        account: Optional[str],
        currency: Optional[str],
        statement_date: Optional[date],
        opening_balance: Optional[Decimal],
        transactions: Optional[Iterable[Union[TransactionInput, dict]]] = None,
    ) -> Statement:
        """
        Build a balanced Statement from plain arguments.

        Raises:
            InvalidInputError: If the opening balance is missing or a
                transaction lacks its account, name or a positive amount,
                or an amount or balance does not fit the 15-digit field
        """
        request = self.validate_request(
            bank_name=bank_name,
            account=account,
            currency=currency or "EUR",
            statement_date=statement_date,
            opening_balance=opening_balance,
            transactions=list(transactions or []),
        )
        return self.build(request)

    def validate_request(self, **data: Any) -> GenerateRequest:
        """Turn raw input into a GenerateRequest, raising InvalidInputError on failure."""
        if data.get("opening_balance") is None:
            codec_logger.generator_input_rejected("opening balance is required")
            raise InvalidInputError("Opening balance is required")
        try:
            return GenerateRequest(**data)
        except ValidationError as e:
            reason = _format_validation_error(e)
            codec_logger.generator_input_rejected(reason)
            raise InvalidInputError(f"Invalid statement input: {reason}") from e

    def build(self, request: GenerateRequest) -> Statement:
        """Build a balanced Statement from a validated request."""
        total_credit = request.total_credit
        total_debit = request.total_debit
        closing_balance = request.opening_balance + total_credit - total_debit
        self._check_amount_width(
            opening_balance=request.opening_balance,
            total_credit=total_credit,
            total_debit=total_debit,
            closing_balance=closing_balance,
        )

        account = autocomplete_iban(request.account)
        structure = "2" if is_valid_belgian_iban(account) else "1"
        if structure == "1":
            logger.debug("Account %s is not a Belgian IBAN, written as a foreign account", account)

        header = HeaderRecord(
            creation_date=request.statement_date,
            bank_identification_number=self.bank_identification_number,
            application_code=self.application_code,
            file_reference=self.file_reference,
            addressee_name=request.bank_name,
            bic=self.bic,
        )

        old_balance = OldBalanceRecord(
            account_structure=structure,
            statement_number=self.statement_number,
            account_number=account,
            currency_code=request.currency,
            balance=request.opening_balance,
            balance_date=request.statement_date,
            account_holder_name=request.bank_name,
            account_description=self.account_description,
            paper_statement_sequence=self.statement_number,
        )

        transactions: List[Transaction] = [
            self._build_transaction(tx, index + 1) for index, tx in enumerate(request.transactions)
        ]

        new_balance = NewBalanceRecord(
            statement_number=self.statement_number,
            account_structure=structure,
            account_number=account,
            currency_code=request.currency,
            balance=closing_balance,
            balance_date=request.statement_date,
        )

        record_count = FIXED_RECORDS + sum(t.record_count for t in transactions)
        trailer = TrailerRecord(
            number_of_records=record_count,
            total_debit=total_debit,
            total_credit=total_credit,
        )

        codec_logger.statement_generated(
            account=account,
            transaction_count=len(transactions),
            total_credit=total_credit,
            total_debit=total_debit,
            closing_balance=closing_balance,
        )

        return Statement(
            header=header,
            old_balance=old_balance,
            transactions=transactions,
            new_balance=new_balance,
            trailer=trailer,
        )

    def _check_amount_width(self, **amounts: Decimal):
        """Reject amounts that would overflow a CODA amount field."""
        for name, value in amounts.items():
            if not amount_fits(value):
                reason = f"{name}: {value} does not fit a CODA amount field"
                codec_logger.generator_input_rejected(reason)
                raise InvalidInputError(f"Invalid statement input: {reason}")

    def _build_transaction(self, tx: TransactionInput, sequence_number: int) -> Transaction:
        credit = tx.type == TransactionType.CREDIT
        main = MovementRecord(
            sequence_number=sequence_number,
            reference_number=tx.reference or "",
            amount=tx.amount if credit else -tx.amount,
            value_date=tx.booking_date,
            transaction_code=TRANSACTION_CODE_CREDIT if credit else TRANSACTION_CODE_DEBIT,
            communication=tx.description or "",
            entry_date=tx.booking_date,
            statement_number=self.statement_number,
        )
        communication = CommunicationRecord(
            sequence_number=sequence_number,
            counterparty_name=tx.counterparty_name,
        )
        counterparty_account = CounterpartyAccountRecord(
            sequence_number=sequence_number,
            counterparty_account=autocomplete_iban(tx.counterparty_account),
            counterparty_name=tx.counterparty_name,
        )
        structured = None
        if tx.reference:
            structured = StructuredCommunicationRecord(
                sequence_number=sequence_number,
                reference_number=tx.reference,
                communication=tx.reference,
            )
        return Transaction(
            main=main,
            communication=communication,
            counterparty_account=counterparty_account,
            structured_communication=structured,
        )
