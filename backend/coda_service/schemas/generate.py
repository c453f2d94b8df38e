"""
Statement Generation Schemas

Input contract of the statement builder: account metadata, the opening
balance and a list of plain credit/debit transactions.
"""
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator

# 15-digit CODA amount field at 3 decimals
MAX_AMOUNT = Decimal("1000000000000")


class TransactionType(str, Enum):
    """Direction of a generated movement."""
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class TransactionInput(BaseModel):
    """One movement to put on a generated statement."""
    booking_date: date = Field(..., description="Booking date, also used as value and entry date")
    type: TransactionType = Field(..., description="CREDIT or DEBIT")
    amount: Decimal = Field(..., gt=0, lt=MAX_AMOUNT, description="Positive amount; the sign comes from the type")
    counterparty_name: str = Field(..., description="Counterparty display name")
    counterparty_account: str = Field(..., description="Counterparty account number or IBAN")
    description: Optional[str] = Field(None, description="Free-text communication")
    reference: Optional[str] = Field(None, description="Payment reference (structured communication)")

    @field_validator('type', mode='before')
    @classmethod
    def normalize_type(cls, v):
        """Accept lower case transaction types."""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator('counterparty_name', 'counterparty_account')
    @classmethod
    def required_text(cls, v: str) -> str:
        """Trim and reject blank required fields."""
        v = v.strip() if v else v
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator('description', 'reference')
    @classmethod
    def trim_optional(cls, v: Optional[str]) -> Optional[str]:
        """Trim whitespace from optional text fields."""
        if v:
            v = v.strip()
        return v if v else None


class GenerateRequest(BaseModel):
    """Everything the builder needs to produce a complete statement."""
    bank_name: str = Field(..., description="Account holder / addressee name printed on the statement")
    account: str = Field(..., description="Statement account number or IBAN")
    currency: str = Field("EUR", min_length=3, max_length=3, description="ISO 4217 currency code")
    statement_date: date
    opening_balance: Decimal
    transactions: List[TransactionInput] = Field(default_factory=list)

    @field_validator('bank_name', 'account')
    @classmethod
    def required_text(cls, v: str) -> str:
        """Trim and reject blank required fields."""
        v = v.strip() if v else v
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator('opening_balance')
    @classmethod
    def balance_in_range(cls, v: Decimal) -> Decimal:
        """Reject balances too large for the amount field."""
        if abs(v) >= MAX_AMOUNT:
            raise ValueError(f"must be less than {MAX_AMOUNT} in absolute value")
        return v

    @property
    def total_credit(self) -> Decimal:
        return sum(
            (t.amount for t in self.transactions if t.type == TransactionType.CREDIT),
            Decimal("0"),
        )

    @property
    def total_debit(self) -> Decimal:
        return sum(
            (t.amount for t in self.transactions if t.type == TransactionType.DEBIT),
            Decimal("0"),
        )
