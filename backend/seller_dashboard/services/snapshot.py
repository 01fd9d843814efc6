"""
Raw Snapshot Boundary: validates and normalises the multi-source payload
handed over by the integration worker before any calculation touches it.

Every field is optional. List-shaped sources that arrive as something else become
empty lists (non-dict rows are dropped); mapping-shaped sources that are not dicts
become empty dicts. Downstream calculators can then index without guards.
"""

import logging
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

_LIST_FIELDS = (
    "total_products", "sales_by_products", "product_wise_sponsored_ads",
    "product_wise_fba_data", "fba_fees_data", "date_wise_ppc_spend",
    "negative_keywords", "ads_keywords_performance", "keywords", "search_terms",
    "campaign_data", "total_sales", "order_data", "ads_group_data",
    "sponsored_ads_graph_data",
)

_MAPPING_FIELDS = (
    "finance_data", "economics_metrics", "inventory_analysis",
    "rankings_data", "conversion_data", "account_data", "keyword_tracking_data",
)


class DashboardSnapshot(BaseModel):
    """One raw snapshot for a (user, country, region); aliases are the wire keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Catalog & sales
    total_products: list[dict] = Field(default_factory=list, alias="TotalProducts")
    sales_by_products: list[dict] = Field(default_factory=list, alias="SalesByProducts")
    total_sales: list[dict] = Field(default_factory=list, alias="TotalSales")
    order_data: list[dict] = Field(default_factory=list, alias="GetOrderData")

    # Advertising
    product_wise_sponsored_ads: list[dict] = Field(default_factory=list, alias="ProductWiseSponsoredAds")
    sponsored_ads_graph_data: list[dict] = Field(default_factory=list, alias="ProductWiseSponsoredAdsGraphData")
    date_wise_ppc_spend: list[dict] = Field(default_factory=list, alias="GetDateWisePPCspendData")
    negative_keywords: list[dict] = Field(default_factory=list, alias="negetiveKeywords")
    ads_keywords_performance: list[dict] = Field(default_factory=list, alias="adsKeywordsPerformanceData")
    keywords: list[dict] = Field(default_factory=list)
    search_terms: list[dict] = Field(default_factory=list, alias="searchTerms")
    campaign_data: list[dict] = Field(default_factory=list, alias="campaignData")
    ads_group_data: list[dict] = Field(default_factory=list, alias="AdsGroupData")

    # Fees & finance
    product_wise_fba_data: list[dict] = Field(default_factory=list, alias="ProductWiseFBAData")
    fba_fees_data: list[dict] = Field(default_factory=list, alias="FBAFeesData")
    finance_data: dict = Field(default_factory=dict, alias="FinanceData")
    economics_metrics: dict = Field(default_factory=dict, alias="EconomicsMetrics")
    reimbursement: Optional[Any] = Field(default=None, alias="Reimburstment")

    # Buy box is kept as-is when it is a mapping; None otherwise
    buy_box_data: Optional[dict] = Field(default=None, alias="BuyBoxData")

    # Issue check results
    inventory_analysis: dict = Field(default_factory=dict, alias="InventoryAnalysis")
    rankings_data: dict = Field(default_factory=dict, alias="RankingsData")
    conversion_data: dict = Field(default_factory=dict, alias="ConversionData")
    account_data: dict = Field(default_factory=dict, alias="AccountData")

    # Passthrough
    country: Optional[str] = Field(default=None, alias="Country")
    brand: Optional[str] = Field(default=None, alias="Brand")
    created_account_date: Optional[Any] = Field(default=None, alias="createdAccountDate")
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")
    keyword_tracking_data: dict = Field(default_factory=dict, alias="keywordTrackingData")
    difference_data: Optional[Any] = Field(default=None, alias="DifferenceData")

    @field_validator(*_LIST_FIELDS, mode="before")
    @classmethod
    def _as_dict_list(cls, value: Any) -> list:
        if not isinstance(value, (list, tuple)):
            return []
        return [row for row in value if isinstance(row, dict)]

    @field_validator(*_MAPPING_FIELDS, mode="before")
    @classmethod
    def _as_mapping(cls, value: Any) -> dict:
        return value if isinstance(value, dict) else {}

    @field_validator("buy_box_data", mode="before")
    @classmethod
    def _buy_box_mapping(cls, value: Any) -> Optional[dict]:
        return value if isinstance(value, dict) else None

    @field_validator("country", "brand", "start_date", "end_date", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)

    @classmethod
    def parse(cls, raw: Any) -> "DashboardSnapshot":
        """Validate a raw payload. Never raises: unusable input yields an empty snapshot."""
        if isinstance(raw, DashboardSnapshot):
            return raw
        if not isinstance(raw, dict):
            return cls()
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Snapshot failed validation, treating as empty: {e.error_count()} errors")
            return cls()

    # ── Convenience accessors ─────────────────────────────────────────

    def inventory_section(self, name: str) -> list[dict]:
        rows = self.inventory_analysis.get(name)
        return [r for r in rows if isinstance(r, dict)] if isinstance(rows, list) else []

    def conversion_section(self, name: str) -> list[dict]:
        rows = self.conversion_data.get(name)
        return [r for r in rows if isinstance(r, dict)] if isinstance(rows, list) else []

    def ranking_section(self, name: str) -> list[dict]:
        rows = self.rankings_data.get(name)
        return [r for r in rows if isinstance(r, dict)] if isinstance(rows, list) else []

    def has_valid_data(self) -> bool:
        """True when at least one primary source carries data."""
        return bool(
            self.total_products
            or self.sales_by_products
            or self.product_wise_sponsored_ads
            or self.finance_data
            or self.economics_metrics
        )
