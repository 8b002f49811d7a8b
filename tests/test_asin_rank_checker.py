from __future__ import annotations

import csv
import io
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

import asin_rank_checker
from asin_rank_checker import OUTPUT_COLUMNS, collect_asins, export_row, main, run_checker, write_output
from asinrank.models import Availability, ProductResult, RankingEntry


def _product(**overrides) -> ProductResult:
    values = dict(
        asin="B08N5WRWNW",
        title="Echo Dot",
        brand="Amazon",
        model="Unknown",
        rankings=(RankingEntry("1,500", "Electronics", True), RankingEntry("12", "Category 172282")),
        price=Decimal("29.99"),
        rating=Decimal("4.5"),
        review_count=10,
        availability=Availability.IN_STOCK,
    )
    values.update(overrides)
    return ProductResult(**values)


def test_export_row_uses_main_ranking():
    assert export_row(_product()) == {
        "ASIN": "B08N5WRWNW",
        "Product Title": "Echo Dot",
        "Main BSR": "1,500",
        "Main Category": "Electronics",
        "Price": "$29.99",
        "Availability": "In Stock",
    }


def test_export_row_missing_values():
    row = export_row(_product(rankings=(), price=None, availability=Availability.OUT_OF_STOCK))
    assert row["Main BSR"] == "N/A"
    assert row["Main Category"] == "N/A"
    assert row["Price"] == "N/A"
    assert row["Availability"] == "Out of Stock"


def test_write_output_has_header_and_rows():
    buffer = io.StringIO()
    write_output(buffer, [_product(), _product(asin="B0B1VQ1ZQY")])

    rows = list(csv.DictReader(io.StringIO(buffer.getvalue())))
    assert list(rows[0].keys()) == OUTPUT_COLUMNS
    assert [row["ASIN"] for row in rows] == ["B08N5WRWNW", "B0B1VQ1ZQY"]


def test_collect_asins_merges_and_dedupes(tmp_path):
    path = tmp_path / "asins.txt"
    path.write_text("B0B1VQ1ZQY\nB08N5WRWNW\n", encoding="utf-8")

    assert collect_asins([" b08n5wrwnw", ""], path) == ["B08N5WRWNW", "B0B1VQ1ZQY"]


def test_run_checker_writes_csv(tmp_path, keepa_client: MagicMock):
    output = tmp_path / "out" / "results.csv"

    outcome = run_checker(
        asins=[f"B{index:09d}" for index in range(25)],
        output_path=output,
        client=keepa_client,
        pacing_seconds=0,
    )

    assert len(outcome.results) == 25
    assert keepa_client.fetch_products.call_count == 2
    with output.open(encoding="utf-8", newline="") as fh:
        rows = list(csv.DictReader(fh))
    assert len(rows) == 25
    assert rows[0]["Main BSR"] == "1,500"
    assert rows[0]["Price"] == "$29.99"


def test_run_checker_requires_credentials(monkeypatch, tmp_path):
    monkeypatch.setattr(asin_rank_checker, "create_client", lambda: None)
    with pytest.raises(ValueError, match="No Keepa API key"):
        run_checker(asins=["B08N5WRWNW"], output_path=tmp_path / "out.csv")


def test_main_reports_invalid_asins(monkeypatch, keepa_client: MagicMock, caplog):
    monkeypatch.setattr(asin_rank_checker, "create_client", lambda: keepa_client)

    with caplog.at_level("ERROR"):
        exit_code = main(["B08N5WRWNW", "NOPE"])

    assert exit_code == 1
    assert "NOPE" in caplog.text
    keepa_client.fetch_products.assert_not_called()


def test_main_without_asins_fails():
    assert main([]) == 1


def test_main_missing_input_file(tmp_path):
    assert main(["--input", str(tmp_path / "missing.txt")]) == 1


def test_main_success(monkeypatch, keepa_client: MagicMock, tmp_path):
    monkeypatch.setattr(asin_rank_checker, "create_client", lambda: keepa_client)
    output = tmp_path / "results.csv"

    exit_code = main(["B08N5WRWNW", "B0B1VQ1ZQY", "--output", str(output), "--pacing-seconds", "0"])

    assert exit_code == 0
    assert output.read_text(encoding="utf-8").splitlines()[0] == ",".join(OUTPUT_COLUMNS)
