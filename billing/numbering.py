from __future__ import annotations

from datetime import datetime

SEQUENCE_WIDTH = 5


def format_document_number(prefix: str, when: datetime, seq: int) -> str:
    """Human-facing document number, e.g. INV-202406-00042."""
    return f"{prefix}-{when.year:04d}{when.month:02d}-{seq:0{SEQUENCE_WIDTH}d}"
