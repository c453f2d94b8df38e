"""
CODA Writer

Serializes a Statement back into 128-character CODA lines.

Two layouts:
- canonical: header, old balance, the global amount (if any), each
  transaction's records in 21-22-23-31-32 order, new balance, trailer
- grouped: the statement is written as one global batch; the global
  amount line comes first and every transaction takes two detail slots
  under sequence 1 (one for 21/22/23, the next for 31/32)

Sequence, detail, next and link codes and the trailer record count are
always recomputed from the records actually written; values stored on
the records are ignored.
"""
import logging
from typing import List, Optional, Tuple

from coda_service.core.config import settings
from coda_service.schemas.coda import (
    MovementRecord,
    NewBalanceRecord,
    OldBalanceRecord,
    Statement,
    Transaction,
)
from coda_service.services.logging import codec_logger

from .fields import sign_of
from .layouts import (
    COMMUNICATION,
    COUNTERPARTY_ACCOUNT,
    COUNTERPARTY_ADDRESS,
    HEADER,
    MOVEMENT,
    NEW_BALANCE,
    OLD_BALANCE,
    STRUCTURED_COMMUNICATION,
    TRAILER,
    build_account_zone,
)

logger = logging.getLogger(__name__)

CANONICAL = "canonical"
GROUPED = "grouped"


def _flag(value: bool) -> str:
    return "1" if value else "0"


class CodaWriter:
    """Deterministic CODA serializer; holds no state between calls."""

    def write(self, statement: Statement, grouped: Optional[bool] = None) -> str:
        """
        Render a statement as CODA text.

        Args:
            statement: Statement to serialize (missing parts are omitted)
            grouped: Use the grouped layout; defaults to CODA_WRITER_MODE

        Returns:
            Newline-separated 128-character lines, with a trailing newline
        """
        if grouped is None:
            grouped = settings.grouped_output

        lines: List[str] = []

        if statement.header is not None:
            lines.append(HEADER.render(statement.header.model_dump()))

        if statement.old_balance is not None:
            lines.append(self._render_old_balance(statement.old_balance))

        if grouped:
            lines.extend(self._grouped_movements(statement))
        else:
            lines.extend(self._canonical_movements(statement))

        if statement.new_balance is not None:
            lines.append(self._render_new_balance(statement.new_balance))

        if statement.trailer is not None:
            # The record count covers every line written before the trailer
            trailer = statement.trailer
            if trailer.number_of_records != len(lines):
                logger.debug(
                    "Trailer record count %d replaced by %d for the %s layout",
                    trailer.number_of_records, len(lines), GROUPED if grouped else CANONICAL,
                )
                trailer = trailer.model_copy(update={"number_of_records": len(lines)})
            lines.append(TRAILER.render(trailer.model_dump()))

        codec_logger.statement_written(
            mode=GROUPED if grouped else CANONICAL,
            line_count=len(lines),
            transaction_count=len(statement.transactions),
        )
        return "\n".join(lines) + "\n" if lines else ""

    def _canonical_movements(self, statement: Statement) -> List[str]:
        lines = []
        if statement.global_amount is not None:
            lines.append(self._render_global(statement.global_amount))
            for index, transaction in enumerate(statement.transactions):
                lines.extend(self._render_transaction(transaction, 1, (index + 1, index + 1)))
        else:
            for index, transaction in enumerate(statement.transactions):
                lines.extend(self._render_transaction(transaction, index + 1, (0, 0)))
        return lines

    def _grouped_movements(self, statement: Statement) -> List[str]:
        if not statement.transactions and statement.global_amount is None:
            return []
        global_amount = statement.global_amount
        if global_amount is None:
            global_amount = statement.transactions[0].main
            logger.debug("No global amount record, using the first movement as batch total")
        lines = [self._render_global(global_amount)]
        for index, transaction in enumerate(statement.transactions):
            lines.extend(self._render_transaction(transaction, 1, (2 * index + 1, 2 * index + 2)))
        return lines

    # ============ Record renderers ============

    def _render_old_balance(self, record: OldBalanceRecord) -> str:
        values = record.model_dump()
        values["account_zone"] = build_account_zone(
            record.account_structure,
            record.account_number,
            record.currency_code,
            record.qualification_code,
            record.country_code,
            record.extension_zone,
        )
        values["balance_sign"] = sign_of(record.balance)
        return OLD_BALANCE.render(values)

    def _render_new_balance(self, record: NewBalanceRecord) -> str:
        values = record.model_dump()
        values["account_zone"] = build_account_zone(
            record.account_structure,
            record.account_number,
            record.currency_code,
            record.qualification_code,
            record.country_code,
            record.extension_zone,
        )
        values["balance_sign"] = sign_of(record.balance)
        values["link_code"] = "0"
        return NEW_BALANCE.render(values)

    def _render_global(self, record: MovementRecord) -> str:
        values = record.model_dump()
        values.update(
            sequence_number=1,
            detail_number=0,
            movement_sign=sign_of(record.amount),
            globalisation_code="1",
            next_code="0",
            link_code="0",
        )
        return MOVEMENT.render(values)

    def _render_transaction(
        self,
        transaction: Transaction,
        sequence_number: int,
        detail_numbers: Tuple[int, int],
    ) -> List[str]:
        """
        Render one transaction chain.

        detail_numbers holds the detail number of the 2x records and
        that of the 3x records.
        """
        detail_2x, detail_3x = detail_numbers
        has_communication = transaction.communication is not None
        has_account = transaction.counterparty_account is not None
        has_information = transaction.has_information_records
        lines = []

        # Link code sits on the last 2x record when 3x records follow
        main = transaction.main.model_dump()
        main.update(
            sequence_number=sequence_number,
            detail_number=detail_2x,
            movement_sign=sign_of(transaction.main.amount),
            globalisation_code="0",
            next_code=_flag(has_communication or has_account),
            link_code=_flag(has_information and not (has_communication or has_account)),
        )
        lines.append(MOVEMENT.render(main))

        if has_communication:
            values = transaction.communication.model_dump()
            values.update(
                sequence_number=sequence_number,
                detail_number=detail_2x,
                next_code=_flag(has_account),
                link_code=_flag(has_information and not has_account),
            )
            lines.append(COMMUNICATION.render(values))

        if has_account:
            values = transaction.counterparty_account.model_dump()
            values.update(
                sequence_number=sequence_number,
                detail_number=detail_2x,
                counterparty_account="".join(transaction.counterparty_account.counterparty_account.split()),
                next_code="0",
                link_code=_flag(has_information),
            )
            lines.append(COUNTERPARTY_ACCOUNT.render(values))

        if transaction.structured_communication is not None:
            values = transaction.structured_communication.model_dump()
            values.update(
                sequence_number=sequence_number,
                detail_number=detail_3x,
                next_code=_flag(transaction.counterparty_address is not None),
                link_code="0",
            )
            lines.append(STRUCTURED_COMMUNICATION.render(values))

        if transaction.counterparty_address is not None:
            values = transaction.counterparty_address.model_dump()
            values.update(
                sequence_number=sequence_number,
                detail_number=detail_3x,
                next_code="0",
                link_code="0",
            )
            lines.append(COUNTERPARTY_ADDRESS.render(values))

        return lines
