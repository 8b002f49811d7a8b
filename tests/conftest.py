from __future__ import annotations

from typing import Any, Callable, Dict, List
from unittest.mock import MagicMock

import pytest

from asinrank.models import KeepaResponse, Quota


def make_record(asin: str = "B08N5WRWNW", **overrides: Any) -> Dict[str, Any]:
    current = [2999, -1, -1, 1500] + [-1] * 13 + [1234]
    avg = [-1] * 16 + [45]
    record: Dict[str, Any] = {
        "asin": asin,
        "title": "Echo Dot (4th Gen)",
        "brand": "Amazon",
        "model": "B7W64E",
        "stats": {"current": current, "avg": avg},
        "categoryTree": [{"catId": 5, "name": "Electronics"}],
        "salesRanks": {"5": [5000000, 1800, 5000060, 1500]},
        "imagesCSV": "71JB6hM6Z6L.jpg,61u48FEs0rL.jpg",
        "availabilityAmazon": 0,
        "lastUpdate": 28000000,
    }
    record.update(overrides)
    return record


@pytest.fixture
def record_factory() -> Callable[..., Dict[str, Any]]:
    return make_record


@pytest.fixture
def keepa_client() -> MagicMock:
    client = MagicMock(name="keepa_client")

    def _fetch(asins: List[str], *, timeout: float, offers: Any = None) -> KeepaResponse:
        return KeepaResponse(products=[make_record(asin) for asin in asins], quota=Quota(tokens_left=100, refill_in=60))

    client.fetch_products.side_effect = _fetch
    return client


@pytest.fixture
def sleeps() -> List[float]:
    return []
