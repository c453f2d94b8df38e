"""CODA statement codec: parser, writer and statement generator."""
from typing import Optional

from .generator import CodaGenerator
from .parser import CodaParser
from .writer import CodaWriter


def convert(text: str, grouped: Optional[bool] = None) -> str:
    """Normalize CODA text: parse it, then write it back."""
    return CodaWriter().write(CodaParser().parse(text), grouped=grouped)


__all__ = [
    "CodaGenerator",
    "CodaParser",
    "CodaWriter",
    "convert",
]
