"""Amazon sales-rank lookups backed by the Keepa product API."""

from .batching import make_batches
from .categories import resolve_category
from .lookup import RankLookupService
from .normalizer import normalize_product
from .validation import is_valid_asin

__all__ = ["RankLookupService", "is_valid_asin", "make_batches", "normalize_product", "resolve_category"]
