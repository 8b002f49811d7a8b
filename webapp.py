"""Flask JSON API for single and bulk ASIN sales-rank checks."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from asin_files import parse_asins
from asinrank.batching import MAX_ASINS_PER_REQUEST
from asinrank.errors import InvalidAsinError, QuotaExceededError, RankLookupError
from asinrank.lookup import RankLookupService, validate_batch_request
from asinrank.models import BatchOutcome
from keepa_client import create_client

logger = logging.getLogger("webapp")

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("MAX_UPLOAD_BYTES", 5 * 1024 * 1024))

FEATURES = ["single-check", "bulk-check", "file-upload"]

_service: Optional[RankLookupService] = None
_service_lock = threading.Lock()


def set_service(service: Optional[RankLookupService]) -> None:
    global _service
    with _service_lock:
        _service = service


def get_service() -> Optional[RankLookupService]:
    """Build the lookup service on first use; None when Keepa is not configured."""
    global _service
    with _service_lock:
        if _service is None:
            client = create_client()
            if client is None:
                return None
            logger.info("Keepa client ready (key %s)", client.credentials.masked_key)
            _service = RankLookupService(client)
        return _service


def _error(message: str, status: int, **extra: Any):
    payload: Dict[str, Any] = {"success": False, "error": message}
    payload.update(extra)
    return jsonify(payload), status


def _lookup_error_response(exc: RankLookupError):
    extra: Dict[str, Any] = {}
    if isinstance(exc, InvalidAsinError) and exc.invalid:
        extra["invalidASINs"] = exc.invalid
    if isinstance(exc, QuotaExceededError):
        extra["tokensLeft"] = exc.quota.tokens_left
        extra["refillIn"] = exc.quota.refill_in
    return _error(str(exc), exc.status_code, **extra)


def _service_or_error():
    service = get_service()
    if service is None:
        return None, _error("Keepa API key is not configured", 503)
    return service, None


def _batch_payload(outcome: BatchOutcome) -> Dict[str, Any]:
    return {
        "success": True,
        "data": [product.to_dict() for product in outcome.results],
        "processedCount": len(outcome.results),
        "failedAsins": outcome.failed_asins,
        "tokensLeft": outcome.tokens_left,
        "refillIn": outcome.refill_in,
    }


@app.route("/health", methods=["GET"])
def health():
    return jsonify(
        {
            "status": "OK",
            "message": "Keepa API Server is running",
            "environment": os.environ.get("FLASK_ENV", "development"),
            "features": FEATURES,
            "keepaConfigured": get_service() is not None,
        }
    )


@app.route("/api/product/<asin>", methods=["GET"])
def product(asin: str):
    service, failure = _service_or_error()
    if failure:
        return failure
    try:
        result = service.lookup_single(asin)
    except RankLookupError as exc:
        logger.warning("Single lookup for %s failed: %s", asin, exc)
        return _lookup_error_response(exc)
    return jsonify(
        {
            "success": True,
            "data": result.product.to_dict(),
            "tokensLeft": result.quota.tokens_left,
            "refillIn": result.quota.refill_in,
        }
    )


@app.route("/api/products", methods=["POST"])
def products():
    body = request.get_json(silent=True) or {}
    asins = body.get("asins") if isinstance(body, dict) else None
    if asins is None and isinstance(body, dict):
        asins = body.get("ids")
    if not isinstance(asins, list) or not asins:
        return _error("Please provide an array of ASINs", 400)

    try:
        validate_batch_request(asins)
    except RankLookupError as exc:
        return _lookup_error_response(exc)

    service, failure = _service_or_error()
    if failure:
        return failure
    try:
        outcome = service.lookup_batch(asins)
    except RankLookupError as exc:
        return _lookup_error_response(exc)
    return jsonify(_batch_payload(outcome))


@app.route("/api/upload", methods=["POST"])
def upload():
    file = request.files.get("file")
    if not file or not file.filename:
        return _error("No file uploaded", 400)

    logger.info("Processing uploaded file: %s", file.filename)
    try:
        content = file.read().decode("utf-8-sig")
    except UnicodeDecodeError:
        return _error("Uploaded file must be UTF-8 encoded text", 400)

    asins: List[str] = parse_asins(content, filename=file.filename, mimetype=file.mimetype)
    if not asins:
        return _error("No valid ASINs found in the file", 400)
    if len(asins) > MAX_ASINS_PER_REQUEST:
        return _error(
            f"Found {len(asins)} ASINs. Maximum {MAX_ASINS_PER_REQUEST} ASINs allowed per request.",
            400,
            foundCount=len(asins),
        )
    logger.info("Found %d valid ASINs", len(asins))

    service, failure = _service_or_error()
    if failure:
        return failure
    try:
        outcome = service.lookup_batch(asins)
    except RankLookupError as exc:
        return _lookup_error_response(exc)
    return jsonify(_batch_payload(outcome))


@app.errorhandler(RequestEntityTooLarge)
def too_large(exc: RequestEntityTooLarge):
    return _error("Uploaded file is too large", 413)


@app.errorhandler(404)
def not_found(exc: HTTPException):
    return _error("Endpoint not found", 404)


@app.errorhandler(Exception)
def unhandled(exc: Exception):
    if isinstance(exc, HTTPException):
        return _error(exc.description or exc.name, exc.code or 500)
    logger.exception("Server error: %s", exc)
    return _error("Internal server error", 500)


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    app.run(debug=False, host="0.0.0.0", port=int(os.environ.get("PORT", 3001)))
