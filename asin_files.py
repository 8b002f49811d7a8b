"""Extract candidate ASINs from uploaded CSV or plain text files."""

from __future__ import annotations

import csv
import io
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from asinrank.validation import is_valid_asin, normalize_candidate

# Header names tried in order before falling back to a case-insensitive
# match and finally to the first column. When several columns qualify the
# first one wins.
ASIN_COLUMN_ALIASES = ("ASIN", "asin", "Asin")

_TEXT_SEPARATORS = re.compile(r"[\n,\s]+")


def _dedupe_valid(values: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in values:
        if not value:
            continue
        candidate = normalize_candidate(value)
        if is_valid_asin(candidate):
            seen.setdefault(candidate, None)
    return list(seen)


def _match_asin_column(fieldnames: Sequence[str]) -> Optional[str]:
    for alias in ASIN_COLUMN_ALIASES:
        if alias in fieldnames:
            return alias
    return next((name for name in fieldnames if name.strip().lower() == "asin"), None)


def pick_asin_column(fieldnames: Sequence[str]) -> Optional[str]:
    if not fieldnames:
        return None
    return _match_asin_column(fieldnames) or fieldnames[0]


def parse_csv_asins(content: str) -> List[str]:
    reader = csv.DictReader(io.StringIO(content))
    if not reader.fieldnames:
        return []
    fieldnames = [name.strip() for name in reader.fieldnames]
    matched = _match_asin_column(fieldnames)
    column = matched or fieldnames[0]
    values: List[str] = []
    for row in reader:
        normalized = {key.strip(): value for key, value in row.items() if isinstance(key, str)}
        value = normalized.get(column)
        if isinstance(value, str):
            values.append(value)
    # Headerless file: the first line is an ASIN exactly as written and the
    # first data row has the same shape.
    first_value = values[0].strip() if values else ""
    if matched is None and is_valid_asin(column) and is_valid_asin(first_value):
        values.insert(0, column)
    return _dedupe_valid(values)


def parse_text_asins(content: str) -> List[str]:
    return _dedupe_valid(_TEXT_SEPARATORS.split(content))


def is_csv(filename: Optional[str] = None, mimetype: Optional[str] = None) -> bool:
    if mimetype == "text/csv":
        return True
    return bool(filename) and filename.lower().endswith(".csv")


def parse_asins(content: str, filename: Optional[str] = None, mimetype: Optional[str] = None) -> List[str]:
    """Return de-duplicated, upper-cased, valid ASINs in first-seen order."""
    content = content.lstrip("\ufeff")
    if is_csv(filename, mimetype):
        return parse_csv_asins(content)
    return parse_text_asins(content)


def read_asin_file(path: Path) -> List[str]:
    if not path.exists():
        raise FileNotFoundError(f"Input file {path} not found")
    content = path.read_text(encoding="utf-8-sig")
    return parse_asins(content, filename=path.name)
