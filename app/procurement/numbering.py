from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Iterable, Set

from app.core.locks import KeyedLock


PR_PREFIX = "PR"
RFQ_PREFIX = "RFQ"

_NUMBERING_LOCKS = KeyedLock()


def format_number(prefix: str, year: int, sequence: int, width: int = 4) -> str:
    return f"{prefix}-{int(year)}-{int(sequence):0{int(width)}d}"


def parse_sequence(number: str | None, prefix: str, year: int) -> int | None:
    match = re.fullmatch(rf"{re.escape(prefix)}-{int(year)}-(\d+)", str(number or "").strip())
    if not match:
        return None
    return int(match.group(1))


def next_sequence(used: Iterable[int], *, gap_fill: bool = False) -> int:
    """Next sequence number: one past the highest, or the smallest unused one when gap filling."""
    taken: Set[int] = {value for value in used if value > 0}
    if not taken:
        return 1
    if gap_fill:
        candidate = 1
        while candidate in taken:
            candidate += 1
        return candidate
    return max(taken) + 1


def next_number(
    existing_numbers: Iterable[str],
    prefix: str,
    *,
    year: int | None = None,
    gap_fill: bool = False,
    width: int = 4,
) -> str:
    resolved_year = int(year or datetime.now(timezone.utc).year)
    used = (parse_sequence(number, prefix, resolved_year) for number in existing_numbers)
    sequence = next_sequence((value for value in used if value is not None), gap_fill=gap_fill)
    return format_number(prefix, resolved_year, sequence, width)


def numbering_lock(tenant_id: str, prefix: str, year: int | None = None):
    """Serialize number allocation per tenant, prefix and year inside this process."""
    resolved_year = int(year or datetime.now(timezone.utc).year)
    return _NUMBERING_LOCKS.hold((tenant_id, prefix, resolved_year))
