from __future__ import annotations

import io
from typing import Iterator, List
from unittest.mock import MagicMock

import pytest

import webapp
from asinrank.errors import LookupTimeoutError, QuotaExceededError, UpstreamError
from asinrank.lookup import RankLookupService
from asinrank.models import KeepaResponse, Quota


@pytest.fixture
def service(keepa_client: MagicMock) -> Iterator[RankLookupService]:
    service = RankLookupService(keepa_client, sleep=lambda _: None)
    webapp.set_service(service)
    yield service
    webapp.set_service(None)


@pytest.fixture
def http(service):
    webapp.app.config["TESTING"] = True
    with webapp.app.test_client() as client:
        yield client


def test_health(http):
    response = http.get("/health")

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "OK"
    assert body["features"] == ["single-check", "bulk-check", "file-upload"]
    assert body["keepaConfigured"] is True


def test_single_product(http):
    response = http.get("/api/product/B08N5WRWNW")

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["data"]["asin"] == "B08N5WRWNW"
    assert body["data"]["price"] == "29.99"
    assert body["tokensLeft"] == 100
    assert body["refillIn"] == 60


def test_single_product_invalid_format(http, keepa_client: MagicMock):
    response = http.get("/api/product/short")

    assert response.status_code == 400
    assert response.get_json()["success"] is False
    keepa_client.fetch_products.assert_not_called()


def test_single_product_not_found(http, keepa_client: MagicMock):
    keepa_client.fetch_products.side_effect = None
    keepa_client.fetch_products.return_value = KeepaResponse(products=[], quota=Quota())

    response = http.get("/api/product/B08N5WRWNW")

    assert response.status_code == 404
    assert response.get_json() == {"success": False, "error": "Product not found"}


@pytest.mark.parametrize(
    "error,status",
    [(LookupTimeoutError(), 504), (UpstreamError(), 500), (UpstreamError(status_code=400), 400)],
)
def test_single_product_error_statuses(http, keepa_client: MagicMock, error, status):
    keepa_client.fetch_products.side_effect = error

    response = http.get("/api/product/B08N5WRWNW")

    assert response.status_code == status
    assert response.get_json()["success"] is False


def test_single_product_quota_exceeded(http, keepa_client: MagicMock):
    keepa_client.fetch_products.side_effect = QuotaExceededError(Quota(0, 120))

    response = http.get("/api/product/B08N5WRWNW")

    assert response.status_code == 429
    body = response.get_json()
    assert body["tokensLeft"] == 0
    assert body["refillIn"] == 120


def test_bulk_products(http, keepa_client: MagicMock):
    response = http.post("/api/products", json={"asins": ["B08N5WRWNW", "B0B1VQ1ZQY"]})

    assert response.status_code == 200
    body = response.get_json()
    assert [item["asin"] for item in body["data"]] == ["B08N5WRWNW", "B0B1VQ1ZQY"]
    assert body["processedCount"] == 2
    assert body["failedAsins"] == []
    assert keepa_client.fetch_products.call_count == 1


def test_bulk_products_accepts_ids_alias(http):
    response = http.post("/api/products", json={"ids": ["B08N5WRWNW"]})
    assert response.status_code == 200


def test_bulk_products_lists_invalid_asins(http, keepa_client: MagicMock):
    response = http.post("/api/products", json={"asins": ["B08N5WRWNW", "INVALID-01", "B0B1VQ1ZQY"]})

    assert response.status_code == 400
    body = response.get_json()
    assert body["invalidASINs"] == ["INVALID-01"]
    keepa_client.fetch_products.assert_not_called()


def test_bulk_products_rejects_over_limit(http, keepa_client: MagicMock):
    asins: List[str] = [f"B{index:09d}" for index in range(101)]

    response = http.post("/api/products", json={"asins": asins})

    assert response.status_code == 400
    assert "Maximum 100" in response.get_json()["error"]
    keepa_client.fetch_products.assert_not_called()


@pytest.mark.parametrize("payload", [{}, {"asins": []}, {"asins": "B08N5WRWNW"}])
def test_bulk_products_requires_list(http, payload):
    response = http.post("/api/products", json=payload)
    assert response.status_code == 400
    assert response.get_json()["error"] == "Please provide an array of ASINs"


def test_upload_csv(http, keepa_client: MagicMock):
    data = {"file": (io.BytesIO(b"Name,ASIN\nEcho,b08n5wrwnw\nKindle,B0B1VQ1ZQY\nDup,B08N5WRWNW\n"), "asins.csv")}

    response = http.post("/api/upload", data=data, content_type="multipart/form-data")

    assert response.status_code == 200
    body = response.get_json()
    assert [item["asin"] for item in body["data"]] == ["B08N5WRWNW", "B0B1VQ1ZQY"]
    keepa_client.fetch_products.assert_called_once()


def test_upload_without_file(http):
    response = http.post("/api/upload", data={}, content_type="multipart/form-data")
    assert response.status_code == 400
    assert response.get_json()["error"] == "No file uploaded"


def test_upload_without_valid_asins(http):
    data = {"file": (io.BytesIO(b"nothing here\n"), "asins.txt")}
    response = http.post("/api/upload", data=data, content_type="multipart/form-data")
    assert response.status_code == 400
    assert response.get_json()["error"] == "No valid ASINs found in the file"


def test_upload_over_limit_reports_found_count(http, keepa_client: MagicMock):
    content = "\n".join(f"B{index:09d}" for index in range(120)).encode()
    data = {"file": (io.BytesIO(content), "asins.txt")}

    response = http.post("/api/upload", data=data, content_type="multipart/form-data")

    assert response.status_code == 400
    assert response.get_json()["foundCount"] == 120
    keepa_client.fetch_products.assert_not_called()


def test_unknown_route(http):
    response = http.get("/api/nope")
    assert response.status_code == 404
    assert response.get_json() == {"success": False, "error": "Endpoint not found"}


def test_lookup_without_credentials(monkeypatch):
    webapp.set_service(None)
    monkeypatch.setattr(webapp, "create_client", lambda: None)

    with webapp.app.test_client() as client:
        response = client.get("/api/product/B08N5WRWNW")
        health = client.get("/health")

    assert response.status_code == 503
    assert health.get_json()["keepaConfigured"] is False


def test_bulk_products_rejects_malformed_request_before_credentials(monkeypatch):
    webapp.set_service(None)
    monkeypatch.setattr(webapp, "create_client", lambda: None)

    with webapp.app.test_client() as client:
        response = client.post("/api/products", json={"asins": ["B08N5WRWNW", "INVALID-01"]})

    assert response.status_code == 400
    assert response.get_json()["invalidASINs"] == ["INVALID-01"]
