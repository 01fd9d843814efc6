"""
Profitability Calculation: merges sales, ad spend and Amazon fees per ASIN.

Source precedence:
- Sales, fees, storage: economics metrics (ASIN-wise) when available.
- Ad spend: sponsored-ads rows (the Ads API) for every ASIN, regardless of source.
- Legacy sales / FBA / fee rows only fill ASINs that economics did not cover.
"""

import logging
import math
from typing import Any, Optional

from seller_dashboard.utils import parse_float, round2

logger = logging.getLogger(__name__)

SOURCE_ECONOMICS = "economicsMetrics"
SOURCE_LEGACY = "legacy"
SOURCE_ADS_ONLY = "adsOnly"
ADS_SOURCE = "amazonAdsAPI"


def _num(value: Any) -> float:
    """parseFloat(x) || 0"""
    parsed = parse_float(value)
    return parsed if parsed else 0.0


def _plain(value: Any) -> float:
    """Numeric field as supplied; non-numeric becomes 0."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    return 0.0


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return not isinstance(value, (int, float))


def _fee_amount(fees: Any) -> float:
    """Fee may be a number, an ``{amount}`` object or a numeric string."""
    if fees is None or isinstance(fees, bool):
        return 0.0
    if isinstance(fees, (int, float)):
        return 0.0 if math.isnan(fees) else float(fees)
    if isinstance(fees, dict):
        return _num(fees.get("amount")) if fees.get("amount") is not None else 0.0
    if isinstance(fees, str) and fees.strip():
        return _num(fees)
    return 0.0


def _blank_record(asin: Any, source: str, ads: float = 0.0, ads_source: Optional[str] = ADS_SOURCE) -> dict:
    record = {
        "asin": asin,
        "quantity": 0,
        "sales": 0.0,
        "ads": ads,
        "amzFee": 0.0,
        "fbaFees": 0.0,
        "storageFees": 0.0,
        "source": source,
    }
    if ads_source:
        record["adsSource"] = ads_source
    return record


def ads_spend_by_asin(sponsored_ads: list[dict]) -> dict:
    """Sum of ``spend`` per ASIN (``asin`` or ``ASIN`` key), insertion-ordered."""
    spend: dict = {}
    for item in sponsored_ads or []:
        if not isinstance(item, dict):
            continue
        asin = item.get("asin") or item.get("ASIN")
        if asin:
            spend[asin] = spend.get(asin, 0.0) + _num(item.get("spend"))
    return spend


def compute_profitability(
    total_sales: list[dict],
    sponsored_ads: list[dict],
    fba_data: list[dict],
    fba_fees: list[dict],
    economics_asin_data: Optional[dict] = None,
) -> list[dict]:
    """
    Build one profitability record per ASIN.

    Records seeded from economics data are never touched by legacy sources;
    their ``ads`` still comes from the sponsored-ads rows. Malformed rows degrade
    to zero-valued fields, never an exception.
    """
    records: dict = {}
    ads_map = ads_spend_by_asin(sponsored_ads)

    # 1. Economics seed
    if isinstance(economics_asin_data, dict) and economics_asin_data:
        for asin, data in economics_asin_data.items():
            data = data if isinstance(data, dict) else {}
            if data.get("totalFees") is not None:
                total_fees = _plain(data.get("totalFees"))
            else:
                total_fees = _plain(data.get("fbaFees") or 0) + _plain(data.get("storageFees") or 0)
            ads = ads_map.get(asin, 0.0)
            sales = _plain(data.get("sales") or 0)
            records[asin] = {
                "asin": asin,
                "quantity": _plain(data.get("unitsSold") or 0),
                "sales": sales,
                "ads": ads,
                "amzFee": total_fees,
                "totalFees": total_fees,
                "grossProfit": sales - ads - total_fees,
                "fbaFees": _plain(data.get("fbaFees") or 0),
                "storageFees": _plain(data.get("storageFees") or 0),
                "source": SOURCE_ECONOMICS,
                "adsSource": ADS_SOURCE,
            }

    # 2. Legacy sales rows
    for item in total_sales or []:
        if not isinstance(item, dict):
            continue
        asin = item.get("asin")
        if asin not in records:
            records[asin] = _blank_record(asin, SOURCE_LEGACY, ads=ads_map.get(asin, 0.0))
        existing = records[asin]
        if existing["source"] != SOURCE_ECONOMICS:
            existing["quantity"] += _plain(item.get("quantity") or 0)
            existing["sales"] += _plain(item.get("amount") or 0)

    # 3. ASINs only the Ads API knows about
    for asin, spend in ads_map.items():
        if asin not in records:
            records[asin] = _blank_record(asin, SOURCE_ADS_ONLY, ads=spend)

    # 4. Legacy FBA rows
    for item in fba_data or []:
        if not isinstance(item, dict):
            continue
        asin = item.get("asin")
        if asin not in records:
            records[asin] = _blank_record(asin, SOURCE_LEGACY, ads_source=None)
        existing = records[asin]
        if existing["source"] != SOURCE_ECONOMICS:
            existing["amzFee"] += _num(item.get("totalFba")) + _num(item.get("totalAmzFee"))

    # 5. Legacy fee rows; rows without an ASIN are skipped
    for item in fba_fees or []:
        if not isinstance(item, dict) or not item.get("asin"):
            continue
        asin = item["asin"]
        if asin not in records:
            records[asin] = _blank_record(asin, SOURCE_LEGACY, ads_source=None)
        existing = records[asin]
        if existing["source"] != SOURCE_ECONOMICS:
            existing["amzFee"] += _fee_amount(item.get("fees"))

    # 6. Normalise
    for value in records.values():
        for key in ("amzFee", "ads", "sales"):
            if _is_missing(value.get(key)):
                value[key] = 0.0
        if _is_missing(value.get("totalFees")):
            value["totalFees"] = value["amzFee"] or 0.0
        if not value.get("grossProfit"):
            value["grossProfit"] = value["sales"] - value["ads"] - value["totalFees"]
        value["profitMargin"] = (
            round2(value["grossProfit"] / value["sales"] * 100) if value["sales"] > 0 else 0
        )

    result = list(records.values())
    logger.info(
        f"Profitability calculated for {len(result)} ASINs "
        f"({sum(1 for r in result if r['source'] == SOURCE_ECONOMICS)} from economics)"
    )
    return result
