"""
Pytest configuration and fixtures for the CODA codec tests.

Provides sample CODA lines (a statement with a global amount batch)
and small Statement builders shared by the test modules.
"""
from datetime import date
from decimal import Decimal

import pytest

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


HEADER_LINE = "0000003032530005        04308988  AZA BELGIUM SA            BBRUBEBB   00404483367 00000                                       2"
OLD_BALANCE_LINE = "10024310000017062 EUR0BE   0030000        0000000170022110270225AZA BELGIUM SA            Compte à vue                       024"
GLOBAL_LINE = "21000100003010383003291000028  0000000000244120030325201500000REGROUPEMENT DE      6 VCS                           03032502410 0"
MOVEMENT_LINE = "21000100013010383003291000028  0000000000072480030325601500001102141359004019                                      03032502401 0"
COMMUNICATION_LINE = "2200010001                                                     NOTPROVIDED                        BBRUBEBB                   1 0"
COUNTERPARTY_ACCOUNT_LINE = "2300010001BE84390060159859                     UCAR                                                                          0 1"
STRUCTURED_COMMUNICATION_LINE = "31000100023010383003291000028  601500001001UCAR                                                                              1 0"
COUNTERPARTY_ADDRESS_LINE = "3200010002BEKE TUINSTRAT 7                   9950        WALESCHELT                                                          0 0"
NEW_BALANCE_LINE = "8024310000017062 EUR0BE   0030000        0000000170266230030325                                                                0"
TRAILER_LINE = "9" + " " * 15 + "000009" + "0" * 15 + "000000000316600" + " " * 75 + "1"

SAMPLE_LINES = [
    HEADER_LINE,
    OLD_BALANCE_LINE,
    GLOBAL_LINE,
    MOVEMENT_LINE,
    COMMUNICATION_LINE,
    COUNTERPARTY_ACCOUNT_LINE,
    STRUCTURED_COMMUNICATION_LINE,
    COUNTERPARTY_ADDRESS_LINE,
    NEW_BALANCE_LINE,
    TRAILER_LINE,
]


@pytest.fixture
def sample_lines():
    """The ten lines of a complete statement with one global batch."""
    return list(SAMPLE_LINES)


@pytest.fixture
def sample_text():
    """Complete sample statement as CODA text."""
    return "\n".join(SAMPLE_LINES) + "\n"


def make_transaction(
    amount: str = "125.00",
    sequence_number: int = 1,
    with_communication: bool = True,
    with_account: bool = True,
    with_structured: bool = False,
    with_address: bool = False,
) -> Transaction:
    """Build a transaction with the requested sub-records."""
    return Transaction(
        main=MovementRecord(
            sequence_number=sequence_number,
            reference_number="REF{:04d}".format(sequence_number),
            amount=Decimal(amount),
            value_date=date(2025, 3, 3),
            transaction_code="00150000",
            communication="Invoice {}".format(sequence_number),
            entry_date=date(2025, 3, 3),
            statement_number=24,
        ),
        communication=CommunicationRecord(
            counterparty_name="UCAR",
            counterparty_bic="GKCCBEBB",
        ) if with_communication else None,
        counterparty_account=CounterpartyAccountRecord(
            counterparty_account="BE84 3900 6015 9859",
            counterparty_name="UCAR",
        ) if with_account else None,
        structured_communication=StructuredCommunicationRecord(
            communication="102141359004019",
        ) if with_structured else None,
        counterparty_address=CounterpartyAddressRecord(
            address="BEKE TUINSTRAT 7",
            postal_code="9950",
            city="WALESCHELT",
        ) if with_address else None,
    )


def make_statement(transactions=None, global_amount=None) -> Statement:
    """Build a statement around the given transactions."""
    transactions = transactions if transactions is not None else [make_transaction()]
    debit = sum((-t.amount for t in transactions if t.amount < 0), Decimal("0"))
    credit = sum((t.amount for t in transactions if t.amount > 0), Decimal("0"))
    return Statement(
        header=HeaderRecord(
            creation_date=date(2025, 3, 3),
            bank_identification_number="300",
            file_reference="04308988",
            addressee_name="AZA BELGIUM SA",
            bic="GKCCBEBB",
            account_holder_id="00404483367",
        ),
        old_balance=OldBalanceRecord(
            account_structure="2",
            statement_number=24,
            account_number="BE51 3100 0001 7062",
            currency_code="EUR",
            balance=Decimal("1000.00"),
            balance_date=date(2025, 2, 27),
            account_holder_name="AZA BELGIUM SA",
            account_description="Current account",
            paper_statement_sequence=24,
        ),
        global_amount=global_amount,
        transactions=transactions,
        new_balance=NewBalanceRecord(
            statement_number=24,
            account_structure="2",
            account_number="BE51 3100 0001 7062",
            currency_code="EUR",
            balance=Decimal("1000.00") + credit - debit,
            balance_date=date(2025, 3, 3),
        ),
        trailer=TrailerRecord(
            number_of_records=3 + sum(t.record_count for t in transactions),
            total_debit=debit,
            total_credit=credit,
        ),
    )


@pytest.fixture
def transaction_factory():
    return make_transaction


@pytest.fixture
def statement_factory():
    return make_statement
