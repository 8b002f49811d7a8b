"""Conversion of raw Keepa product records into display models."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from .categories import resolve_category
from .models import Availability, ProductResult, RankingEntry

_LOGGER = logging.getLogger(__name__)

IMAGE_URL_TEMPLATE = "https://images-na.ssl-images-amazon.com/images/I/{image}"

NO_TITLE = "No title available"
UNKNOWN = "Unknown"
MAIN_CATEGORY = "Main Category"

# Indices into Keepa's ``stats.current`` / ``stats.avg`` arrays.
STAT_AMAZON_PRICE = 0
STAT_SALES_RANK = 3
STAT_RATING = 16
STAT_REVIEW_COUNT = 17

AVAILABILITY_IN_STOCK = 0

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_CENTS = Decimal("0.01")
_TENTHS = Decimal("0.1")


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _stat(stats: Any, series: str, index: int) -> Optional[int]:
    if not isinstance(stats, Mapping):
        return None
    values = stats.get(series)
    if not isinstance(values, Sequence) or isinstance(values, str) or len(values) <= index:
        return None
    return _to_int(values[index])


def _text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def format_rank(rank: int) -> str:
    return f"{rank:,}"


def _main_category(raw: Mapping[str, Any]) -> str:
    tree = raw.get("categoryTree")
    if not isinstance(tree, Sequence) or isinstance(tree, str) or not tree:
        return MAIN_CATEGORY
    root = tree[0]
    if isinstance(root, Mapping):
        root = root.get("catId")
    return resolve_category(root)


def extract_rankings(raw: Mapping[str, Any]) -> List[RankingEntry]:
    """Main rank first (when present), then one entry per sales-rank category."""
    rankings: List[RankingEntry] = []

    main_rank = _stat(raw.get("stats"), "current", STAT_SALES_RANK)
    if main_rank is not None and main_rank > 0:
        rankings.append(RankingEntry(rank=format_rank(main_rank), category=_main_category(raw), is_main=True))

    sales_ranks = raw.get("salesRanks")
    if isinstance(sales_ranks, Mapping):
        for category_id, history in sales_ranks.items():
            if not isinstance(history, Sequence) or isinstance(history, str) or not history:
                continue
            latest = _to_int(history[-1])
            if latest is None:
                continue
            rankings.append(RankingEntry(rank=format_rank(latest), category=resolve_category(category_id)))
    return rankings


def cents_to_dollars(cents: Optional[int]) -> Optional[Decimal]:
    if cents is None or cents <= 0:
        return None
    return (Decimal(cents) / 100).quantize(_CENTS)


def tenths_to_rating(tenths: Optional[int]) -> Optional[Decimal]:
    if tenths is None or tenths <= 0:
        return None
    return (Decimal(tenths) / 10).quantize(_TENTHS)


def keepa_minutes_to_datetime(minutes: Any) -> Optional[datetime]:
    value = _to_int(minutes)
    if value is None or value <= 0:
        return None
    try:
        return _EPOCH + timedelta(minutes=value)
    except OverflowError:
        return None


def image_url(images_csv: Any) -> Optional[str]:
    if not isinstance(images_csv, str):
        return None
    first = images_csv.split(",")[0].strip()
    if not first:
        return None
    return IMAGE_URL_TEMPLATE.format(image=first)


def normalize_product(raw: Mapping[str, Any]) -> ProductResult:
    stats = raw.get("stats")
    review_count = _stat(stats, "current", STAT_REVIEW_COUNT)
    availability = (
        Availability.IN_STOCK
        if _to_int(raw.get("availabilityAmazon")) == AVAILABILITY_IN_STOCK
        else Availability.OUT_OF_STOCK
    )
    return ProductResult(
        asin=str(raw.get("asin") or ""),
        title=_text(raw.get("title"), NO_TITLE),
        brand=_text(raw.get("brand"), UNKNOWN),
        model=_text(raw.get("model"), UNKNOWN),
        rankings=tuple(extract_rankings(raw)),
        price=cents_to_dollars(_stat(stats, "current", STAT_AMAZON_PRICE)),
        rating=tenths_to_rating(_stat(stats, "avg", STAT_RATING)),
        review_count=review_count if review_count is not None and review_count >= 0 else 0,
        availability=availability,
        image_url=image_url(raw.get("imagesCSV")),
        last_update=keepa_minutes_to_datetime(raw.get("lastUpdate")),
    )


def normalize_products(records: Iterable[Any]) -> List[ProductResult]:
    products: List[ProductResult] = []
    for record in records or []:
        if not isinstance(record, Mapping):
            _LOGGER.warning("Skipping malformed Keepa product record: %r", record)
            continue
        products.append(normalize_product(record))
    return products
