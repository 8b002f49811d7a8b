from __future__ import annotations

import argparse
import csv
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, TextIO

from tqdm import tqdm

from asin_files import read_asin_file
from asinrank.batching import BATCH_PACING_SECONDS, DEFAULT_BATCH_SIZE
from asinrank.errors import RankLookupError
from asinrank.lookup import RankLookupService
from asinrank.models import BatchJob, BatchOutcome, ProductResult
from asinrank.validation import normalize_candidate
from keepa_client import create_client

logger = logging.getLogger("asin_rank_checker")

OUTPUT_COLUMNS = [
    "ASIN",
    "Product Title",
    "Main BSR",
    "Main Category",
    "Price",
    "Availability",
]

NOT_AVAILABLE = "N/A"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check Amazon sales ranks for ASINs via Keepa")
    parser.add_argument("asins", nargs="*", help="ASINs to look up")
    parser.add_argument("--input", help="CSV or TXT file with ASINs (an 'ASIN' column or one per line)")
    parser.add_argument("--output", help="Path to the output CSV file (defaults to stdout)")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help="Number of ASINs sent to Keepa per request",
    )
    parser.add_argument(
        "--pacing-seconds",
        type=float,
        default=BATCH_PACING_SECONDS,
        help="Delay between Keepa batch requests to respect the token bucket",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def collect_asins(cli_asins: Iterable[str], input_path: Optional[Path]) -> List[str]:
    """Merge command line and file ASINs, keeping first-seen order."""
    collected: Dict[str, None] = {}
    for value in cli_asins:
        candidate = normalize_candidate(value)
        if candidate:
            collected.setdefault(candidate, None)
    if input_path is not None:
        for asin in read_asin_file(input_path):
            collected.setdefault(asin, None)
    return list(collected)


def export_row(product: ProductResult) -> Dict[str, str]:
    main = product.main_ranking
    return {
        "ASIN": product.asin,
        "Product Title": product.title,
        "Main BSR": main.rank if main else NOT_AVAILABLE,
        "Main Category": main.category if main else NOT_AVAILABLE,
        "Price": f"${product.price}" if product.price is not None else NOT_AVAILABLE,
        "Availability": product.availability.value,
    }


def write_output(fh: TextIO, results: Iterable[ProductResult]) -> None:
    writer = csv.DictWriter(fh, fieldnames=OUTPUT_COLUMNS)
    writer.writeheader()
    for product in results:
        writer.writerow(export_row(product))


def summarize(asins: Sequence[str], outcome: BatchOutcome) -> None:
    found = {product.asin for product in outcome.results}
    logger.info("Requested %d ASINs", len(asins))
    logger.info("Fetched %d products", len(outcome.results))
    failed = outcome.failed_asins
    if failed:
        logger.warning("ASINs in failed batches: %d", len(failed))
        logger.debug("Failed list: %s", ", ".join(failed))
    missing = [asin for asin in asins if asin not in found and asin not in failed]
    if missing:
        logger.warning("ASINs without Keepa data: %d", len(missing))
        logger.debug("Missing list: %s", ", ".join(missing))
    logger.info("Keepa tokens left: %d (refill in %ds)", outcome.tokens_left, outcome.refill_in)


@contextmanager
def _tqdm_progress_callback(total_batches: int) -> Iterator[Optional[Callable[[int, int, BatchJob], None]]]:
    try:
        progress_bar = tqdm(total=total_batches, desc="Fetching batches", unit="batch")
    except Exception:  # pragma: no cover - tqdm not available or misconfigured
        yield None
        return

    def _callback(processed: int, total: int, job: BatchJob) -> None:
        if progress_bar.total != total:
            progress_bar.total = total
        progress_bar.n = processed
        progress_bar.set_postfix_str(f"{len(job.asins)} ASINs")
        progress_bar.refresh()

    try:
        yield _callback
    finally:
        progress_bar.close()


def run_checker(
    *,
    asins: Sequence[str],
    output_path: Optional[Path],
    batch_size: int = DEFAULT_BATCH_SIZE,
    pacing_seconds: float = BATCH_PACING_SECONDS,
    client=None,
    progress_callback: Optional[Callable[[int, int, BatchJob], None]] = None,
    summarize_results: bool = False,
) -> BatchOutcome:
    if client is None:
        client = create_client()
    if client is None:
        raise ValueError("No Keepa API key available (set KEEPA_API_KEY). Aborting.")

    service = RankLookupService(client, batch_size=batch_size, pacing_seconds=pacing_seconds)
    outcome = service.lookup_batch(asins, progress_callback=progress_callback)

    if output_path is None:
        write_output(sys.stdout, outcome.results)
    else:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8", newline="") as fh:
            write_output(fh, outcome.results)
        logger.info("Wrote %d rows to %s", len(outcome.results), output_path)
    if summarize_results:
        summarize(asins, outcome)
    return outcome


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        asins = collect_asins(args.asins, Path(args.input) if args.input else None)
        if not asins:
            raise ValueError("No ASINs given. Pass them as arguments or via --input.")
        total_batches = -(-len(asins) // max(args.batch_size, 1))
        with _tqdm_progress_callback(total_batches) as progress_cb:
            run_checker(
                asins=asins,
                output_path=Path(args.output) if args.output else None,
                batch_size=args.batch_size,
                pacing_seconds=args.pacing_seconds,
                progress_callback=progress_cb,
                summarize_results=True,
            )
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    except RankLookupError as exc:
        logger.error("%s", exc)
        invalid = getattr(exc, "invalid", None)
        if invalid:
            logger.error("Invalid ASINs: %s", ", ".join(invalid))
        return 1
    except ValueError as exc:
        logger.error("%s", exc)
        return 1
    except Exception as exc:  # pragma: no cover - defensive
        logger.exception("Unexpected error: %s", exc)
        return 2
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:  # pragma: no cover - cli convenience
        logger.warning("Interrupted by user")
        sys.exit(130)
