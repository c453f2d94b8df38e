"""
Structured Logging Service

Provides codec-aware structured logging for statement-level events:
- Statement parsed / written / generated
- Parse failures
- Open transaction flushed at end of input
- Generator input rejected

Each log entry includes:
- timestamp
- event
- severity (INFO/WARN/ERROR)
- entity_type (statement, transaction, record, generator)
- message and event-specific fields
"""
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Any
from enum import Enum

from coda_service.core.config import settings


class LogSeverity(str, Enum):
    """Log severity levels."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class LogEntityType(str, Enum):
    """Entity types for structured logging."""
    STATEMENT = "statement"
    TRANSACTION = "transaction"
    RECORD = "record"
    GENERATOR = "generator"


class StructuredLogger:
    """
    Structured logging service for CODA codec events.

    Logs are emitted in JSON format, one object per line.
    """

    def __init__(self, logger_name: str = "coda"):
        self.logger = logging.getLogger(logger_name)
        self._ensure_handler()

    def _ensure_handler(self):
        """Ensure logger has a proper handler configured."""
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)
            self.logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    def _serialize(self, value: Any) -> Any:
        """Serialize Decimal values to strings."""
        if isinstance(value, Decimal):
            return str(value)
        return value

    def _create_log_entry(
        self,
        event: str,
        severity: LogSeverity,
        entity_type: LogEntityType,
        message: Optional[str] = None,
        **extra
    ) -> dict:
        """Create a structured log entry."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "severity": severity.value,
            "entity_type": entity_type.value,
        }

        if message:
            entry["message"] = message

        for key, value in extra.items():
            entry[key] = self._serialize(value)

        return entry

    def _log(self, entry: dict, severity: LogSeverity):
        """Emit the log entry at the appropriate level."""
        log_str = json.dumps(entry)
        if severity == LogSeverity.ERROR:
            self.logger.error(log_str)
        elif severity == LogSeverity.WARN:
            self.logger.warning(log_str)
        else:
            self.logger.info(log_str)

    # Statement events
    def statement_parsed(
        self,
        line_count: int,
        transaction_count: int,
        has_global: bool,
        skipped_lines: int = 0
    ):
        """Log a completed parse."""
        severity = LogSeverity.WARN if skipped_lines else LogSeverity.INFO
        entry = self._create_log_entry(
            event="statement.parsed",
            severity=severity,
            entity_type=LogEntityType.STATEMENT,
            message=f"CODA statement parsed: {transaction_count} transactions"
            + (f", {skipped_lines} lines skipped" if skipped_lines else ""),
            line_count=line_count,
            transaction_count=transaction_count,
            has_global=has_global,
            skipped_lines=skipped_lines
        )
        self._log(entry, severity)

    def statement_parse_failed(self, error: str, line_number: Optional[int] = None):
        """Log a fatal parse error."""
        entry = self._create_log_entry(
            event="statement.parse_failed",
            severity=LogSeverity.ERROR,
            entity_type=LogEntityType.STATEMENT,
            message=f"CODA statement parsing failed: {error}",
            line_number=line_number,
            error=error
        )
        self._log(entry, LogSeverity.ERROR)

    def statement_written(self, mode: str, line_count: int, transaction_count: int):
        """Log a serialized statement."""
        entry = self._create_log_entry(
            event="statement.written",
            severity=LogSeverity.INFO,
            entity_type=LogEntityType.STATEMENT,
            message=f"CODA statement written ({mode}): {line_count} lines",
            mode=mode,
            line_count=line_count,
            transaction_count=transaction_count
        )
        self._log(entry, LogSeverity.INFO)

    # Transaction events
    def transaction_flushed_at_eof(self, sequence_number: int, detail_number: int):
        """Log a transaction chain that was still open when input ended."""
        entry = self._create_log_entry(
            event="transaction.flushed_at_eof",
            severity=LogSeverity.WARN,
            entity_type=LogEntityType.TRANSACTION,
            message="Open transaction kept at end of input (no new balance record)",
            sequence_number=sequence_number,
            detail_number=detail_number
        )
        self._log(entry, LogSeverity.WARN)

    # Generator events
    def statement_generated(
        self,
        account: str,
        transaction_count: int,
        total_credit: Decimal,
        total_debit: Decimal,
        closing_balance: Decimal
    ):
        """Log statement generation from a transaction list."""
        entry = self._create_log_entry(
            event="statement.generated",
            severity=LogSeverity.INFO,
            entity_type=LogEntityType.GENERATOR,
            message=f"CODA statement generated for {account}",
            account=account,
            transaction_count=transaction_count,
            total_credit=total_credit,
            total_debit=total_debit,
            closing_balance=closing_balance
        )
        self._log(entry, LogSeverity.INFO)

    def generator_input_rejected(self, reason: str):
        """Log rejected generator input."""
        entry = self._create_log_entry(
            event="generator.input_rejected",
            severity=LogSeverity.WARN,
            entity_type=LogEntityType.GENERATOR,
            message=f"Statement generation rejected: {reason}",
            reason=reason
        )
        self._log(entry, LogSeverity.WARN)


# Global logger instance
codec_logger = StructuredLogger()
