"""
Tests for per-ASIN profitability merging.
"""

from seller_dashboard.services.profitability import (
    SOURCE_ADS_ONLY,
    SOURCE_ECONOMICS,
    SOURCE_LEGACY,
    ads_spend_by_asin,
    compute_profitability,
)


def _by_asin(records):
    return {r["asin"]: r for r in records}


def test_ads_spend_sums_per_asin_and_accepts_upper_case_key():
    spend = ads_spend_by_asin([
        {"asin": "A1", "spend": "10.5"},
        {"ASIN": "A1", "spend": 4.5},
        {"asin": "A2", "spend": None},
        "junk",
    ])
    assert spend == {"A1": 15.0, "A2": 0.0}


def test_economics_records_are_not_touched_by_legacy_rows():
    records = _by_asin(compute_profitability(
        total_sales=[{"asin": "A1", "amount": 999, "quantity": 9}],
        sponsored_ads=[{"asin": "A1", "spend": 20}],
        fba_data=[{"asin": "A1", "totalFba": 50, "totalAmzFee": 50}],
        fba_fees=[{"asin": "A1", "fees": 30}],
        economics_asin_data={"A1": {"sales": 200, "unitsSold": 10, "fbaFees": 15, "storageFees": 5}},
    ))
    a1 = records["A1"]
    assert a1["source"] == SOURCE_ECONOMICS
    assert a1["sales"] == 200
    assert a1["quantity"] == 10
    assert a1["amzFee"] == 20
    assert a1["ads"] == 20
    assert a1["grossProfit"] == 160
    assert a1["profitMargin"] == 80.0


def test_legacy_sources_accumulate_fees():
    records = _by_asin(compute_profitability(
        total_sales=[{"asin": "A1", "amount": 100, "quantity": 2}, {"asin": "A1", "amount": 50, "quantity": 1}],
        sponsored_ads=[],
        fba_data=[{"asin": "A1", "totalFba": "10", "totalAmzFee": 5}],
        fba_fees=[{"asin": "A1", "fees": {"amount": 7}}, {"fees": 100}],
    ))
    a1 = records["A1"]
    assert a1["source"] == SOURCE_LEGACY
    assert a1["sales"] == 150
    assert a1["quantity"] == 3
    assert a1["amzFee"] == 22
    assert a1["totalFees"] == 22
    assert a1["grossProfit"] == 128


def test_ads_only_asin_gets_a_zero_sales_record():
    records = _by_asin(compute_profitability([], [{"asin": "A9", "spend": 12}], [], []))
    a9 = records["A9"]
    assert a9["source"] == SOURCE_ADS_ONLY
    assert a9["sales"] == 0
    assert a9["grossProfit"] == -12
    assert a9["profitMargin"] == 0


def test_malformed_rows_degrade_to_zero():
    records = compute_profitability(
        total_sales=[{"asin": "A1", "amount": "lots", "quantity": None}],
        sponsored_ads=[{"asin": "A1", "spend": "n/a"}],
        fba_data=[],
        fba_fees=[{"asin": "A1", "fees": "   "}],
    )
    assert records[0]["sales"] == 0
    assert records[0]["ads"] == 0
    assert records[0]["amzFee"] == 0
