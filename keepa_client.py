from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import requests

from asinrank.errors import LookupTimeoutError, MissingCredentialsError, QuotaExceededError, UpstreamError
from asinrank.models import KeepaResponse, Quota

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.keepa.com"
DEFAULT_DOMAIN = 1  # amazon.com

REQUIRED_ENV_VARS = {"KEEPA_API_KEY"}

OPTIONAL_ENV_VARS = {"KEEPA_API_BASE_URL", "KEEPA_DOMAIN"}

_ENV_ALIASES = {
    "KEEPA_API_KEY": ("KEEPA_API_KEY", "KEEPA_KEY", "KEEPA_ACCESS_KEY"),
    "KEEPA_API_BASE_URL": ("KEEPA_API_BASE_URL",),
    "KEEPA_DOMAIN": ("KEEPA_DOMAIN",),
}


@dataclass
class KeepaCredentials:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    domain: int = DEFAULT_DOMAIN

    @property
    def masked_key(self) -> str:
        return f"{self.api_key[:10]}..."


def _load_dotenv(path: Path) -> Dict[str, str]:
    if not path.exists():
        return {}
    env: Dict[str, str] = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        env[key.strip()] = value.strip().strip('"').strip("'")
    return env


def _collect_env_values(source: Dict[str, str], destination: Dict[str, str]) -> None:
    for canonical, aliases in _ENV_ALIASES.items():
        if destination.get(canonical):
            continue
        for alias in aliases:
            value = source.get(alias)
            if value:
                destination[canonical] = value
                break


def load_credentials(env_path: str | Path = ".env") -> Optional[KeepaCredentials]:
    env: Dict[str, str] = {}
    _collect_env_values(dict(os.environ), env)
    missing = {key for key in REQUIRED_ENV_VARS | OPTIONAL_ENV_VARS if not env.get(key)}
    if missing:
        _collect_env_values(_load_dotenv(Path(env_path)), env)
    if any(not env.get(key) for key in REQUIRED_ENV_VARS):
        return None

    domain_raw = env.get("KEEPA_DOMAIN") or str(DEFAULT_DOMAIN)
    try:
        domain = int(domain_raw)
    except ValueError:
        logger.warning("Ignoring invalid KEEPA_DOMAIN %r, using %d", domain_raw, DEFAULT_DOMAIN)
        domain = DEFAULT_DOMAIN

    return KeepaCredentials(
        api_key=env["KEEPA_API_KEY"],
        base_url=(env.get("KEEPA_API_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
        domain=domain,
    )


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def _quota_from_payload(payload: Any) -> Quota:
    if not isinstance(payload, dict):
        return Quota()
    return Quota(tokens_left=_as_int(payload.get("tokensLeft")), refill_in=_as_int(payload.get("refillIn")))


def _safe_json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class KeepaClient:
    """Thin wrapper around the Keepa ``/product`` endpoint.

    Every failure is translated into an :mod:`asinrank.errors` type so
    callers never see ``requests`` exceptions.
    """

    def __init__(self, credentials: KeepaCredentials, session: Optional[requests.Session] = None) -> None:
        if not credentials or not credentials.api_key:
            raise MissingCredentialsError("KEEPA_API_KEY is not set. Configure it to use KeepaClient.")
        self.credentials = credentials
        self._session = session or requests.Session()

    def _build_params(self, asins: Iterable[str], offers: Optional[int]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "key": self.credentials.api_key,
            "domain": self.credentials.domain,
            "asin": ",".join(asins),
            "stats": 1,
            "history": 0,
            "rating": 1,
        }
        if offers:
            params["offers"] = offers
        return params

    def fetch_products(self, asins: Iterable[str], *, timeout: float, offers: Optional[int] = None) -> KeepaResponse:
        asins = list(asins)
        url = f"{self.credentials.base_url}/product"
        try:
            response = self._session.get(url, params=self._build_params(asins, offers), timeout=timeout)
        except requests.Timeout as exc:
            logger.error("Keepa request timed out after %ss for %d ASINs: %s", timeout, len(asins), exc)
            raise LookupTimeoutError() from exc
        except requests.RequestException as exc:
            logger.error("Keepa request failed for %d ASINs: %s", len(asins), exc)
            raise UpstreamError() from exc

        payload = _safe_json(response)
        if response.status_code == 429:
            quota = _quota_from_payload(payload)
            logger.warning("Keepa rate limit hit: %d tokens left, refill in %d", quota.tokens_left, quota.refill_in)
            raise QuotaExceededError(quota)
        if response.status_code == 400:
            logger.error("Keepa rejected request for %s: %s", ",".join(asins), response.text[:200])
            raise UpstreamError(status_code=400)
        if not response.ok:
            logger.error("Keepa API error %s: %s", response.status_code, response.text[:200])
            raise UpstreamError()
        if not isinstance(payload, dict):
            logger.error("Keepa returned a malformed response body")
            raise UpstreamError()
        if payload.get("error"):
            logger.error("Keepa API error payload: %s", payload["error"])
            raise UpstreamError()

        products = payload.get("products") or []
        if not isinstance(products, list):
            logger.error("Keepa returned non-list products field")
            raise UpstreamError()
        return KeepaResponse(products=products, quota=_quota_from_payload(payload))


def create_client(env_path: str | Path = ".env") -> Optional[KeepaClient]:
    credentials = load_credentials(env_path)
    if not credentials:
        return None
    return KeepaClient(credentials)
