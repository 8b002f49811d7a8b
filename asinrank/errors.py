"""Error taxonomy for rank lookups."""

from __future__ import annotations

from typing import Iterable, List, Optional

from .models import Quota


class RankLookupError(RuntimeError):
    """Base class for lookup failures surfaced to callers."""

    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.public_message)


class InvalidAsinError(RankLookupError):
    """Raised when one or more identifiers fail the ASIN format check."""

    status_code = 400
    public_message = "Invalid ASIN format. ASIN must be 10 alphanumeric characters."

    def __init__(self, invalid: Iterable[str] = (), message: Optional[str] = None) -> None:
        self.invalid: List[str] = list(invalid)
        super().__init__(message)


class AsinCountExceededError(RankLookupError):
    status_code = 400

    def __init__(self, count: int, limit: int) -> None:
        self.count = count
        self.limit = limit
        super().__init__(f"Maximum {limit} ASINs per request (got {count})")


class ProductNotFoundError(RankLookupError):
    status_code = 404
    public_message = "Product not found"

    def __init__(self, asin: str) -> None:
        self.asin = asin
        super().__init__()


class QuotaExceededError(RankLookupError):
    """Keepa rejected the call because the token bucket is empty."""

    status_code = 429
    public_message = "Keepa API rate limit exceeded. Please try again later."

    def __init__(self, quota: Optional[Quota] = None) -> None:
        self.quota = quota or Quota()
        super().__init__()


class LookupTimeoutError(RankLookupError):
    status_code = 504
    public_message = "Request timeout. Please try again."


class UpstreamError(RankLookupError):
    """Any other Keepa failure. The underlying cause is logged, not exposed."""

    def __init__(self, message: Optional[str] = None, status_code: int = 500) -> None:
        self.status_code = status_code
        if message is None and status_code == 400:
            message = "Bad request. Please check the ASIN."
        super().__init__(message)


class MissingCredentialsError(RuntimeError):
    """Raised when Keepa credentials are missing."""
