"""Single and batch ASIN lookups against the Keepa product API."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Sequence

from .batching import (
    BATCH_PACING_SECONDS,
    DEFAULT_BATCH_SIZE,
    MAX_ASINS_PER_REQUEST,
    check_request_size,
    iter_batch_jobs,
)
from .errors import (
    InvalidAsinError,
    ProductNotFoundError,
    QuotaExceededError,
    RankLookupError,
    UpstreamError,
)
from .models import BatchCallOutcome, BatchJob, BatchOutcome, SingleLookupResult
from .normalizer import normalize_product, normalize_products
from .validation import find_invalid_asins, is_valid_asin

_LOGGER = logging.getLogger(__name__)

SINGLE_TIMEOUT_SECONDS = 10
BATCH_TIMEOUT_SECONDS = 30
SINGLE_LOOKUP_OFFERS = 20

ProgressCallback = Callable[[int, int, BatchJob], None]


def validate_batch_request(asins: Sequence[Any], max_asins: int = MAX_ASINS_PER_REQUEST) -> None:
    """Reject the whole request before any Keepa call is made."""
    if not asins:
        raise InvalidAsinError(message="Please provide an array of ASINs")
    invalid = find_invalid_asins(asins)
    if invalid:
        raise InvalidAsinError(invalid, message="Invalid ASIN format")
    check_request_size(asins, max_asins)


class RankLookupService:
    """Runs lookups through a Keepa client.

    ``client`` must provide ``fetch_products(asins, *, timeout, offers=None)``
    returning a :class:`~asinrank.models.KeepaResponse` and raising
    :class:`~asinrank.errors.RankLookupError` subclasses on failure. The
    service keeps no state between calls, so one instance can serve
    concurrent requests.
    """

    def __init__(
        self,
        client: Any,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_asins: int = MAX_ASINS_PER_REQUEST,
        pacing_seconds: float = BATCH_PACING_SECONDS,
        single_timeout: float = SINGLE_TIMEOUT_SECONDS,
        batch_timeout: float = BATCH_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.client = client
        self.batch_size = batch_size
        self.max_asins = max_asins
        self.pacing_seconds = pacing_seconds
        self.single_timeout = single_timeout
        self.batch_timeout = batch_timeout
        self._sleep = sleep
        self._logger = logger or _LOGGER

    def lookup_single(self, asin: str) -> SingleLookupResult:
        if not is_valid_asin(asin):
            raise InvalidAsinError([asin if isinstance(asin, str) else str(asin)])

        self._logger.info("Fetching data for ASIN: %s", asin)
        response = self.client.fetch_products([asin], timeout=self.single_timeout, offers=SINGLE_LOOKUP_OFFERS)
        record = next((product for product in response.products if isinstance(product, dict)), None)
        if record is None:
            raise ProductNotFoundError(asin)
        return SingleLookupResult(product=normalize_product(record), quota=response.quota)

    def validate_batch(self, asins: Sequence[Any]) -> None:
        validate_batch_request(asins, self.max_asins)

    def lookup_batch(
        self,
        asins: Sequence[str],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> BatchOutcome:
        asins = list(asins)
        self.validate_batch(asins)

        jobs = list(iter_batch_jobs(asins, self.batch_size, self.pacing_seconds))
        self._logger.info("Fetching data for %d ASINs in %d batches", len(asins), len(jobs))

        outcome = BatchOutcome()
        for job in jobs:
            call = self._run_batch(job)
            outcome.batches.append(call)
            outcome.results.extend(call.products)
            if call.quota is not None:
                outcome.tokens_left = call.quota.tokens_left
                outcome.refill_in = call.quota.refill_in
            if progress_callback:
                progress_callback(job.index + 1, len(jobs), job)
            if job.delay_after > 0:
                self._sleep(job.delay_after)

        failed = len(outcome.failed_asins)
        if failed:
            self._logger.warning("%d of %d ASINs could not be fetched", failed, len(asins))
        self._logger.info("Fetched %d products, %d tokens left", len(outcome.results), outcome.tokens_left)
        return outcome

    def _run_batch(self, job: BatchJob) -> BatchCallOutcome:
        try:
            response = self.client.fetch_products(list(job.asins), timeout=self.batch_timeout)
        except QuotaExceededError as exc:
            self._logger.error("Batch %d (%d ASINs) rejected by Keepa quota", job.index + 1, len(job.asins))
            return BatchCallOutcome(job=job, quota=exc.quota, error=exc)
        except RankLookupError as exc:
            self._logger.error("Batch %d (%d ASINs) failed: %s", job.index + 1, len(job.asins), exc)
            return BatchCallOutcome(job=job, error=exc)
        except Exception as exc:
            self._logger.error("Batch %d (%d ASINs) failed: %s", job.index + 1, len(job.asins), exc)
            return BatchCallOutcome(job=job, error=UpstreamError())

        products = normalize_products(response.products)
        self._logger.debug("Batch %d returned %d products", job.index + 1, len(products))
        return BatchCallOutcome(job=job, products=products, quota=response.quota)
