"""CLI for the CODA statement codec."""

import argparse
import json
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional

from coda_service.core.config import settings
from coda_service.core.exceptions import CodaError, InvalidInputError
from coda_service.schemas.coda import Statement
from coda_service.services.coda import CodaGenerator, CodaParser, CodaWriter, convert

# TYPE:YYYY-MM-DD:AMOUNT:ACCOUNT:NAME[:DESCRIPTION[:REFERENCE]]
INLINE_TX_FIELDS = ("type", "booking_date", "amount", "counterparty_account", "counterparty_name", "description", "reference")


def parse_inline_transaction(value: str) -> dict:
    """Split an inline transaction string into TransactionInput fields."""
    parts = value.split(":", len(INLINE_TX_FIELDS) - 1)
    if len(parts) < 5:
        raise InvalidInputError(
            f"Invalid transaction '{value}', expected TYPE:YYYY-MM-DD:AMOUNT:ACCOUNT:NAME[:DESCRIPTION[:REFERENCE]]"
        )
    return {name: part for name, part in zip(INLINE_TX_FIELDS, parts) if part != ""}


def _emit(text: str, output: Optional[Path]):
    if output:
        output.write_text(text, encoding="utf-8")
    else:
        sys.stdout.write(text)


def _grouped(args) -> Optional[bool]:
    return True if args.grouped else None


def cmd_parse(args) -> int:
    statement = CodaParser(strict=args.strict or None).parse_bytes(args.path.read_bytes())
    indent = 2 if args.pretty or args.output else None
    rendered = json.dumps(statement.to_json_dict(), ensure_ascii=False, indent=indent)
    _emit(rendered + "\n", args.output)
    return 0


def cmd_write(args) -> int:
    data = json.loads(args.path.read_text(encoding="utf-8"))
    statement = Statement.model_validate(data)
    _emit(CodaWriter().write(statement, grouped=_grouped(args)), args.output)
    return 0


def cmd_convert(args) -> int:
    text = CodaParser().decode(args.path.read_bytes())
    _emit(convert(text, grouped=_grouped(args)), args.output)
    return 0


def cmd_generate(args) -> int:
    generator = CodaGenerator()
    if args.request:
        data = json.loads(args.request.read_text(encoding="utf-8"))
        request = generator.validate_request(**data)
    else:
        try:
            opening_balance = Decimal(args.opening_balance) if args.opening_balance is not None else None
        except InvalidOperation:
            raise InvalidInputError(f"Invalid opening balance '{args.opening_balance}'")
        request = generator.validate_request(
            bank_name=args.bank_name,
            account=args.account,
            currency=args.currency,
            statement_date=args.date or date.today().isoformat(),
            opening_balance=opening_balance,
            transactions=[parse_inline_transaction(tx) for tx in args.tx],
        )
    statement = generator.build(request)
    _emit(generator.writer.write(statement, grouped=_grouped(args)), args.output)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="coda",
        description=f"{settings.APP_NAME}: read, write and generate Belgian CODA statements.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("parse", help="Parse a CODA file into JSON")
    p.add_argument("path", type=Path, help="Path to CODA file")
    p.add_argument("-o", "--output", type=Path, help="Output JSON file path")
    p.add_argument("--pretty", action="store_true", help="Pretty-print JSON")
    p.add_argument("--strict", action="store_true", help="Fail on unrecognized record types")
    p.set_defaults(func=cmd_parse)

    p = sub.add_parser("write", help="Write a JSON statement as CODA")
    p.add_argument("path", type=Path, help="Path to statement JSON")
    p.add_argument("-o", "--output", type=Path, help="Output CODA file path")
    p.add_argument("--grouped", action="store_true", help="Use the grouped (global batch) layout")
    p.set_defaults(func=cmd_write)

    p = sub.add_parser("convert", help="Normalize a CODA file (parse, then write)")
    p.add_argument("path", type=Path, help="Path to CODA file")
    p.add_argument("-o", "--output", type=Path, help="Output CODA file path")
    p.add_argument("--grouped", action="store_true", help="Use the grouped (global batch) layout")
    p.set_defaults(func=cmd_convert)

    p = sub.add_parser("generate", help="Generate a CODA statement from transactions")
    p.add_argument("request", type=Path, nargs="?", help="Path to a generation request JSON")
    p.add_argument("--bank-name", help="Account holder name")
    p.add_argument("--account", help="Account number or IBAN")
    p.add_argument("--currency", default="EUR", help="ISO currency code (default: EUR)")
    p.add_argument("--date", help="Statement date YYYY-MM-DD (default: today)")
    p.add_argument("--opening-balance", help="Opening balance, e.g. 1200.00")
    p.add_argument(
        "--tx",
        action="append",
        default=[],
        help="Transaction TYPE:YYYY-MM-DD:AMOUNT:ACCOUNT:NAME[:DESCRIPTION[:REFERENCE]] (repeatable)",
    )
    p.add_argument("-o", "--output", type=Path, help="Output CODA file path")
    p.add_argument("--grouped", action="store_true", help="Use the grouped (global batch) layout")
    p.set_defaults(func=cmd_generate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except (CodaError, ValueError, OSError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
