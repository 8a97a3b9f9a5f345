from __future__ import annotations

import re
from enum import Enum
from typing import Optional, Tuple

from .session_store import QueryDescriptor


class PaginationDirection(str, Enum):
    NEXT = "next"
    PREVIOUS = "previous"


NEXT_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"^(next|next page)\b"),
    re.compile(r"^show more\b"),
    re.compile(r"^more\b"),
    re.compile(r"\bmore results\b"),
    re.compile(r"\bnext set\b"),
)

PREVIOUS_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"^(previous|previous page|prev)\b"),
    re.compile(r"\bgo back\b"),
    re.compile(r"\bback\b"),
)


def detect_pagination_direction(text: Optional[str]) -> Optional[PaginationDirection]:
    """Return the paging direction a follow-up message asks for, if any."""
    normalized = (text or "").strip().lower()
    if not normalized:
        return None
    if any(pattern.search(normalized) for pattern in NEXT_PATTERNS):
        return PaginationDirection.NEXT
    if any(pattern.search(normalized) for pattern in PREVIOUS_PATTERNS):
        return PaginationDirection.PREVIOUS
    return None


def next_offset(descriptor: QueryDescriptor, direction: PaginationDirection) -> int:
    if direction == PaginationDirection.NEXT:
        return descriptor.offset + descriptor.limit
    return max(0, descriptor.offset - descriptor.limit)
