"""
CODA Statement Schemas

Pydantic models for:
- Individual records (header, balances, movement sub-records, trailer)
- Transactions (a main record plus up to four linked sub-records)
- The statement aggregate

These models are both the in-memory contract shared by the parser,
writer and generator, and the structured (JSON) representation of a
statement. Amounts are signed Decimals; the sign digit on the wire is
derived from them.
"""
from datetime import date
from decimal import Decimal
from typing import Optional, List, Tuple
from pydantic import BaseModel, Field


class CodaRecord(BaseModel):
    """Base for all record models (immutable once built)."""

    class Config:
        frozen = True
        populate_by_name = True


# ============ Statement-level records ============

class HeaderRecord(CodaRecord):
    """Record 0 - identification of the file."""
    creation_date: Optional[date] = None
    bank_identification_number: str = ""
    application_code: str = "05"
    duplicate_code: str = ""
    file_reference: str = ""
    addressee_name: str = ""
    bic: str = ""
    account_holder_id: str = Field(default="", description="Identification number of the Belgian account holder")
    separate_application_code: str = ""
    transaction_reference: str = ""
    related_reference: str = ""
    version_code: str = "2"


class OldBalanceRecord(CodaRecord):
    """Record 1 - opening balance of the account."""
    account_structure: str = Field(default="0", description="0/1/2/3: Belgian account, foreign account, Belgian IBAN, foreign IBAN")
    statement_number: int = 0
    account_number: str = ""
    currency_code: str = "EUR"
    qualification_code: str = ""
    country_code: str = ""
    extension_zone: str = ""
    balance: Decimal = Decimal("0")
    balance_date: Optional[date] = None
    account_holder_name: str = ""
    account_description: str = ""
    paper_statement_sequence: int = 0


class NewBalanceRecord(CodaRecord):
    """Record 8 - closing balance of the account."""
    statement_number: int = 0
    account_structure: str = "0"
    account_number: str = ""
    currency_code: str = "EUR"
    qualification_code: str = ""
    country_code: str = ""
    extension_zone: str = ""
    balance: Decimal = Decimal("0")
    balance_date: Optional[date] = None


class TrailerRecord(CodaRecord):
    """Record 9 - control totals."""
    number_of_records: int = 0
    total_debit: Decimal = Decimal("0")
    total_credit: Decimal = Decimal("0")
    multiple_file_code: str = "1"


# ============ Movement records ============

class MovementRecord(CodaRecord):
    """
    Record 2.1 - movement main data.

    Also used for the global amount of a batch, which differs only by
    globalisation_code == "1".
    """
    sequence_number: int = 0
    detail_number: int = 0
    reference_number: str = ""
    amount: Decimal = Decimal("0")
    value_date: Optional[date] = None
    transaction_code: str = ""
    communication_type: str = "0"
    communication: str = ""
    entry_date: Optional[date] = None
    statement_number: int = 0
    globalisation_code: str = "0"
    next_code: str = "0"
    link_code: str = "0"

    @property
    def is_global(self) -> bool:
        return self.globalisation_code.strip() == "1"


class CommunicationRecord(CodaRecord):
    """Record 2.2 - communication continued, counterparty name and BIC."""
    sequence_number: int = 0
    detail_number: int = 0
    communication: str = ""
    counterparty_name: str = ""
    counterparty_bic: str = ""
    r_transaction_type: str = ""
    iso_reason_code: str = ""
    category_purpose: str = ""
    purpose: str = ""
    next_code: str = "0"
    link_code: str = "0"


class CounterpartyAccountRecord(CodaRecord):
    """Record 2.3 - counterparty account and name."""
    sequence_number: int = 0
    detail_number: int = 0
    counterparty_account: str = ""
    counterparty_name: str = ""
    communication: str = ""
    next_code: str = "0"
    link_code: str = "0"


class StructuredCommunicationRecord(CodaRecord):
    """Record 3.1 - information record with the payment reference."""
    sequence_number: int = 0
    detail_number: int = 0
    reference_number: str = ""
    transaction_code: str = ""
    communication_structure: str = "0"
    communication: str = ""
    next_code: str = "0"
    link_code: str = "0"


class CounterpartyAddressRecord(CodaRecord):
    """Record 3.2 - counterparty address."""
    sequence_number: int = 0
    detail_number: int = 0
    address: str = ""
    postal_code: str = ""
    city: str = ""
    next_code: str = "0"
    link_code: str = "0"


# ============ Aggregates ============

class Transaction(CodaRecord):
    """
    One movement: the mandatory main record and whichever of its
    chained sub-records were present.
    """
    main: MovementRecord
    communication: Optional[CommunicationRecord] = None
    counterparty_account: Optional[CounterpartyAccountRecord] = None
    structured_communication: Optional[StructuredCommunicationRecord] = None
    counterparty_address: Optional[CounterpartyAddressRecord] = None

    @property
    def record_count(self) -> int:
        """Number of CODA lines this transaction occupies."""
        return 1 + sum(
            part is not None
            for part in (
                self.communication,
                self.counterparty_account,
                self.structured_communication,
                self.counterparty_address,
            )
        )

    @property
    def has_information_records(self) -> bool:
        return self.structured_communication is not None or self.counterparty_address is not None

    # Flattened accessors

    @property
    def amount(self) -> Decimal:
        return self.main.amount

    @property
    def is_credit(self) -> bool:
        return self.main.amount >= 0

    @property
    def value_date(self) -> Optional[date]:
        return self.main.value_date

    @property
    def entry_date(self) -> Optional[date]:
        return self.main.entry_date

    @property
    def counterparty_name(self) -> Optional[str]:
        if self.counterparty_account is not None and self.counterparty_account.counterparty_name:
            return self.counterparty_account.counterparty_name
        if self.communication is not None and self.communication.counterparty_name:
            return self.communication.counterparty_name
        return None

    @property
    def counterparty_bic(self) -> Optional[str]:
        if self.communication is not None and self.communication.counterparty_bic:
            return self.communication.counterparty_bic
        return None

    @property
    def counterparty_iban(self) -> Optional[str]:
        if self.counterparty_account is not None and self.counterparty_account.counterparty_account:
            return self.counterparty_account.counterparty_account
        return None

    @property
    def structured_reference(self) -> Optional[str]:
        if self.structured_communication is not None and self.structured_communication.communication:
            return self.structured_communication.communication
        return None

    @property
    def counterparty_address_line(self) -> Optional[str]:
        """Address as one line: street, postal code and city."""
        if self.counterparty_address is None:
            return None
        parts = [
            self.counterparty_address.address,
            " ".join(p for p in (self.counterparty_address.postal_code, self.counterparty_address.city) if p),
        ]
        return ", ".join(p for p in parts if p) or None


class Statement(CodaRecord):
    """A complete CODA statement."""
    header: Optional[HeaderRecord] = None
    old_balance: Optional[OldBalanceRecord] = None
    global_amount: Optional[MovementRecord] = Field(default=None, alias="global")
    transactions: List[Transaction] = Field(default_factory=list)
    new_balance: Optional[NewBalanceRecord] = None
    trailer: Optional[TrailerRecord] = None

    def control_totals(self) -> Tuple[Decimal, Decimal]:
        """(total debit, total credit) computed from the transaction amounts."""
        debit = sum((-t.amount for t in self.transactions if t.amount < 0), Decimal("0"))
        credit = sum((t.amount for t in self.transactions if t.amount > 0), Decimal("0"))
        return debit, credit

    def balances_reconcile(self) -> bool:
        """
        Check old balance + credits - debits == new balance.

        Statements without both balance records trivially reconcile.
        """
        if self.old_balance is None or self.new_balance is None:
            return True
        debit, credit = self.control_totals()
        return self.old_balance.balance + credit - debit == self.new_balance.balance

    def to_json_dict(self) -> dict:
        """Structured representation with the wire-level "global" key."""
        return self.model_dump(mode="json", by_alias=True)
