from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Availability(str, Enum):
    IN_STOCK = "In Stock"
    OUT_OF_STOCK = "Out of Stock"


@dataclass(frozen=True)
class RankingEntry:
    """A single sales-rank reading for one category."""

    rank: str
    category: str
    is_main: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"rank": self.rank, "category": self.category, "isMain": self.is_main}


@dataclass(frozen=True)
class ProductResult:
    """Display model built from one Keepa product record."""

    asin: str
    title: str
    brand: str
    model: str
    rankings: Tuple[RankingEntry, ...]
    price: Optional[Decimal]
    rating: Optional[Decimal]
    review_count: int
    availability: Availability
    image_url: Optional[str] = None
    last_update: Optional[datetime] = None

    @property
    def main_ranking(self) -> Optional[RankingEntry]:
        return next((entry for entry in self.rankings if entry.is_main), None)

    def to_dict(self) -> Dict[str, Any]:
        last_update = None
        if self.last_update is not None:
            last_update = self.last_update.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return {
            "asin": self.asin,
            "title": self.title,
            "brand": self.brand,
            "model": self.model,
            "rankings": [entry.to_dict() for entry in self.rankings],
            "price": str(self.price) if self.price is not None else None,
            "rating": str(self.rating) if self.rating is not None else None,
            "reviewCount": self.review_count,
            "imageUrl": self.image_url,
            "availability": self.availability.value,
            "lastUpdate": last_update,
        }


@dataclass(frozen=True)
class Quota:
    """Keepa token telemetry as reported by a single API response."""

    tokens_left: int = 0
    refill_in: int = 0


@dataclass(frozen=True)
class KeepaResponse:
    products: List[Dict[str, Any]]
    quota: Quota


@dataclass(frozen=True)
class SingleLookupResult:
    product: ProductResult
    quota: Quota


@dataclass(frozen=True)
class BatchJob:
    """One paced unit of work: the ASINs for one Keepa call."""

    index: int
    asins: Tuple[str, ...]
    delay_after: float = 0.0


@dataclass
class BatchCallOutcome:
    """Result of one batch call; failures are carried in ``error``."""

    job: BatchJob
    products: List[ProductResult] = field(default_factory=list)
    quota: Optional[Quota] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchOutcome:
    results: List[ProductResult] = field(default_factory=list)
    tokens_left: int = 0
    refill_in: int = 0
    batches: List[BatchCallOutcome] = field(default_factory=list)

    @property
    def failed_asins(self) -> List[str]:
        failed: List[str] = []
        for batch in self.batches:
            if not batch.ok:
                failed.extend(batch.job.asins)
        return failed
