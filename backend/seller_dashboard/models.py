"""
Seller Dashboard: Database Models
Cache tables for computed issue aggregates, the seller catalog they annotate,
and the persisted metric snapshots the phased dashboard loaders read.
"""

import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import (
    String, Text, Float, Integer, Boolean, DateTime, Uuid,
    JSON, ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from seller_dashboard.database import Base


def _utcnow() -> datetime:
    """Naive UTC now: matches DB columns (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class CalculationSource(str, enum.Enum):
    INTEGRATION = "integration"
    SCHEDULE = "schedule"
    MANUAL = "manual"
    FALLBACK = "fallback"
    REQUEST = "request"
    PAGINATION_FALLBACK = "pagination_fallback"
    SUMMARY_FALLBACK = "summary_fallback"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ReportVersion(str, enum.Enum):
    V1 = "v1"
    V2 = "v2"


# ══════════════════════════════════════════════════════════════════════
#  SELLER CATALOG
# ══════════════════════════════════════════════════════════════════════

class Seller(Base):
    """A dashboard user's seller profile."""
    __tablename__ = "sellers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    brand: Mapped[str] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    accounts: Mapped[list["SellerAccount"]] = relationship(
        "SellerAccount", back_populates="seller", cascade="all, delete-orphan"
    )


class SellerAccount(Base):
    """One marketplace connection (country + region) of a seller."""
    __tablename__ = "seller_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("sellers.id", ondelete="CASCADE"), nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False)
    region: Mapped[str] = mapped_column(String(8), nullable=False)  # NA | EU | FE
    selling_partner_id: Mapped[str] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    seller: Mapped["Seller"] = relationship("Seller", back_populates="accounts")
    products: Mapped[list["SellerProduct"]] = relationship(
        "SellerProduct", back_populates="account", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("seller_id", "country", "region", name="uq_seller_account_marketplace"),
    )


class SellerProduct(Base):
    """Catalog entry for one ASIN, annotated with its computed issue count."""
    __tablename__ = "seller_products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("seller_accounts.id", ondelete="CASCADE"), nullable=False)
    asin: Mapped[str] = mapped_column(String(20), nullable=False)
    sku: Mapped[str] = mapped_column(String(255), nullable=True)
    item_name: Mapped[str] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="Active")
    issue_count: Mapped[int] = mapped_column(Integer, nullable=True)
    issue_count_updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0)  # catalog order

    account: Mapped["SellerAccount"] = relationship("SellerAccount", back_populates="products")

    __table_args__ = (
        Index("ix_seller_products_account_id", "account_id"),
        Index("ix_seller_products_asin", "asin"),
    )

    def to_dict(self) -> dict:
        return {
            "asin": self.asin,
            "sku": self.sku,
            "itemName": self.item_name,
            "price": self.price,
            "status": self.status,
            "issueCount": self.issue_count or 0,
            "issueCountUpdatedAt": self.issue_count_updated_at.isoformat() if self.issue_count_updated_at else None,
        }


# ══════════════════════════════════════════════════════════════════════
#  RAW COLLECTOR SNAPSHOTS
# ══════════════════════════════════════════════════════════════════════

class AnalysisSnapshot(Base):
    """Raw multi-source snapshot handed over by the integration worker."""
    __tablename__ = "analysis_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False)
    region: Mapped[str] = mapped_column(String(8), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_analysis_snapshots_key", "user_id", "country", "region", "created_at"),
    )


# ══════════════════════════════════════════════════════════════════════
#  ISSUE CACHES
# ══════════════════════════════════════════════════════════════════════

class IssueSummary(Base):
    """Precomputed issue counts per (user, country, region)."""
    __tablename__ = "issue_summaries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False)
    region: Mapped[str] = mapped_column(String(8), nullable=False)

    total_issues: Mapped[int] = mapped_column(Integer, default=0)
    total_profitability_errors: Mapped[int] = mapped_column(Integer, default=0)
    total_sponsored_ads_errors: Mapped[int] = mapped_column(Integer, default=0)
    total_inventory_errors: Mapped[int] = mapped_column(Integer, default=0)
    total_ranking_errors: Mapped[int] = mapped_column(Integer, default=0)
    total_conversion_errors: Mapped[int] = mapped_column(Integer, default=0)
    total_account_errors: Mapped[int] = mapped_column(Integer, default=0)
    number_of_products_with_issues: Mapped[int] = mapped_column(Integer, default=0)
    total_active_products: Mapped[int] = mapped_column(Integer, default=0)

    last_calculated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    calculation_source: Mapped[str] = mapped_column(String(32), default=CalculationSource.INTEGRATION.value)
    is_stale: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "country", "region", name="uq_issue_summary_key"),
        Index("ix_issue_summaries_stale", "is_stale", "last_calculated_at"),
    )

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "country": self.country,
            "region": self.region,
            "totalIssues": self.total_issues or 0,
            "totalProfitabilityErrors": self.total_profitability_errors or 0,
            "totalSponsoredAdsErrors": self.total_sponsored_ads_errors or 0,
            "totalInventoryErrors": self.total_inventory_errors or 0,
            "totalRankingErrors": self.total_ranking_errors or 0,
            "totalConversionErrors": self.total_conversion_errors or 0,
            "totalAccountErrors": self.total_account_errors or 0,
            "numberOfProductsWithIssues": self.number_of_products_with_issues or 0,
            "totalActiveProducts": self.total_active_products or 0,
            "lastCalculatedAt": self.last_calculated_at.isoformat() if self.last_calculated_at else None,
            "calculationSource": self.calculation_source,
            "isStale": bool(self.is_stale),
        }


class IssuesData(Base):
    """Full per-product issue arrays and account-level metadata per (user, country, region)."""
    __tablename__ = "issues_data"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False)
    region: Mapped[str] = mapped_column(String(8), nullable=False)

    # Counts
    total_ranking_errors: Mapped[int] = mapped_column(Integer, default=0)
    total_conversion_errors: Mapped[int] = mapped_column(Integer, default=0)
    total_inventory_errors: Mapped[int] = mapped_column(Integer, default=0)
    total_account_errors: Mapped[int] = mapped_column(Integer, default=0)
    total_profitability_errors: Mapped[int] = mapped_column(Integer, default=0)
    total_sponsored_ads_errors: Mapped[int] = mapped_column(Integer, default=0)

    # Account-level detail
    account_errors: Mapped[dict] = mapped_column(JSON, nullable=True)
    account_health_percentage: Mapped[dict] = mapped_column(JSON, nullable=True)
    buy_box_data: Mapped[dict] = mapped_column(JSON, nullable=True)
    top_error_products: Mapped[dict] = mapped_column(JSON, nullable=True)  # {first, second, third, fourth}

    # Detail arrays
    product_wise_error: Mapped[list] = mapped_column(JSON, nullable=True)
    ranking_product_wise_errors: Mapped[list] = mapped_column(JSON, nullable=True)
    conversion_product_wise_errors: Mapped[list] = mapped_column(JSON, nullable=True)
    inventory_product_wise_errors: Mapped[list] = mapped_column(JSON, nullable=True)
    profitability_error_details: Mapped[list] = mapped_column(JSON, nullable=True)
    sponsored_ads_error_details: Mapped[list] = mapped_column(JSON, nullable=True)
    total_product: Mapped[list] = mapped_column(JSON, nullable=True)
    active_products: Mapped[list] = mapped_column(JSON, nullable=True)

    last_calculated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    calculation_source: Mapped[str] = mapped_column(String(32), default=CalculationSource.INTEGRATION.value)
    is_stale: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "country", "region", name="uq_issues_data_key"),
    )


# ══════════════════════════════════════════════════════════════════════
#  TASKS
# ══════════════════════════════════════════════════════════════════════

class UserTaskList(Base):
    """Actionable tasks generated from issue details, one list per user."""
    __tablename__ = "user_task_lists"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    tasks: Mapped[list] = mapped_column(JSON, default=list)
    task_renewal_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "tasks": list(self.tasks or []),
            "taskRenewalDate": self.task_renewal_date.isoformat() if self.task_renewal_date else None,
        }


# ══════════════════════════════════════════════════════════════════════
#  METRIC SNAPSHOTS: read by the phased dashboard loaders
# ══════════════════════════════════════════════════════════════════════

class EconomicsMetrics(Base):
    """Sales/fee economics for a date range (amounts in marketplace currency)."""
    __tablename__ = "economics_metrics"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False)
    region: Mapped[str] = mapped_column(String(8), nullable=False)
    total_sales: Mapped[float] = mapped_column(Float, default=0.0)
    gross_profit: Mapped[float] = mapped_column(Float, default=0.0)
    ppc_spent: Mapped[float] = mapped_column(Float, default=0.0)
    fba_fees: Mapped[float] = mapped_column(Float, default=0.0)
    storage_fees: Mapped[float] = mapped_column(Float, default=0.0)
    amazon_fees: Mapped[float] = mapped_column(Float, default=0.0)
    refunds: Mapped[float] = mapped_column(Float, default=0.0)
    datewise_sales: Mapped[list] = mapped_column(JSON, nullable=True)  # [{date, sales: {amount}}]
    date_range: Mapped[dict] = mapped_column(JSON, nullable=True)  # {startDate, endDate}
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_economics_metrics_key", "user_id", "country", "region", "created_at"),
    )


class BuyBoxSnapshot(Base):
    __tablename__ = "buybox_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False)
    region: Mapped[str] = mapped_column(String(8), nullable=False)
    total_products: Mapped[int] = mapped_column(Integer, default=0)
    products_with_buybox: Mapped[int] = mapped_column(Integer, default=0)
    products_without_buybox: Mapped[int] = mapped_column(Integer, default=0)
    date_range: Mapped[dict] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_buybox_snapshots_key", "user_id", "country", "region", "created_at"),
    )


class SellerPerformanceReport(Base):
    """Raw seller performance report; v2 carries status flags and ahrScore, v1 carries counts."""
    __tablename__ = "seller_performance_reports"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False)
    region: Mapped[str] = mapped_column(String(8), nullable=False)
    report_version: Mapped[str] = mapped_column(String(4), nullable=False)  # v1 | v2
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_perf_reports_key", "user_id", "country", "region", "report_version", "created_at"),
    )


class PPCMetrics(Base):
    __tablename__ = "ppc_metrics"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False)
    region: Mapped[str] = mapped_column(String(8), nullable=False)
    summary: Mapped[dict] = mapped_column(JSON, nullable=True)
    date_wise_metrics: Mapped[list] = mapped_column(JSON, nullable=True)  # [{date, spend, sales, ...}]
    date_range: Mapped[dict] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_ppc_metrics_key", "user_id", "country", "region", "created_at"),
    )


class KeywordPerformanceSnapshot(Base):
    __tablename__ = "keyword_performance_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False)
    region: Mapped[str] = mapped_column(String(8), nullable=False)
    keywords_data: Mapped[list] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_keyword_perf_key", "user_id", "country", "region", "created_at"),
    )


class OrderSnapshot(Base):
    __tablename__ = "order_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False)
    region: Mapped[str] = mapped_column(String(8), nullable=False)
    revenue_data: Mapped[list] = mapped_column(JSON, nullable=True)  # [{orderId, orderStatus, ...}]
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_order_snapshots_key", "user_id", "country", "region", "created_at"),
    )


class DataFetchTracking(Base):
    """One row per upstream fetch run; the latest completed run defines the dashboard date range."""
    __tablename__ = "data_fetch_tracking"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False)
    region: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="completed")  # running | completed | failed
    date_range: Mapped[dict] = mapped_column(JSON, nullable=True)
    calendar_mode: Mapped[str] = mapped_column(String(20), default="default")
    fetched_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_data_fetch_tracking_key", "user_id", "country", "region", "status", "fetched_at"),
    )
