from __future__ import annotations

import re
from typing import Any, Iterable, List

ASIN_PATTERN = re.compile(r"[A-Z0-9]{10}")


def is_valid_asin(value: Any) -> bool:
    """Return True for a 10 character uppercase alphanumeric string.

    No normalization happens here; callers upper-case and strip first.
    """
    if not isinstance(value, str):
        return False
    return ASIN_PATTERN.fullmatch(value) is not None


def find_invalid_asins(values: Iterable[Any]) -> List[str]:
    return [value if isinstance(value, str) else str(value) for value in values if not is_valid_asin(value)]


def normalize_candidate(value: str) -> str:
    return value.strip().upper()
