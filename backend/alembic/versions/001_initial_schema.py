"""Initial schema: seller catalog, raw snapshots, issue caches, tasks, metric snapshots.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

KEYED_TABLES = (
    "economics_metrics", "buybox_snapshots", "seller_performance_reports", "ppc_metrics",
    "keyword_performance_snapshots", "order_snapshots", "data_fetch_tracking",
    "analysis_snapshots", "issue_summaries", "issues_data",
)


def _key_columns() -> list:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("country", sa.String(8), nullable=False),
        sa.Column("region", sa.String(8), nullable=False),
    ]


def _error_counts() -> list:
    return [
        sa.Column(name, sa.Integer(), nullable=True, server_default="0")
        for name in (
            "total_ranking_errors", "total_conversion_errors", "total_inventory_errors",
            "total_account_errors", "total_profitability_errors", "total_sponsored_ads_errors",
        )
    ]


def _cache_meta() -> list:
    return [
        sa.Column("last_calculated_at", sa.DateTime(), nullable=True),
        sa.Column("calculation_source", sa.String(32), nullable=True, server_default="integration"),
        sa.Column("is_stale", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    conn = op.get_bind()
    existing = set(sa.inspect(conn).get_table_names())
    if "sellers" in existing:
        return

    op.create_table(
        "sellers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("brand", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )
    op.create_table(
        "seller_accounts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("seller_id", sa.Uuid(), nullable=False),
        sa.Column("country", sa.String(8), nullable=False),
        sa.Column("region", sa.String(8), nullable=False),
        sa.Column("selling_partner_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["seller_id"], ["sellers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("seller_id", "country", "region", name="uq_seller_account_marketplace"),
    )
    op.create_table(
        "seller_products",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.Uuid(), nullable=False),
        sa.Column("asin", sa.String(20), nullable=False),
        sa.Column("sku", sa.String(255), nullable=True),
        sa.Column("item_name", sa.Text(), nullable=True),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("status", sa.String(32), nullable=True, server_default="Active"),
        sa.Column("issue_count", sa.Integer(), nullable=True),
        sa.Column("issue_count_updated_at", sa.DateTime(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=True, server_default="0"),
        sa.ForeignKeyConstraint(["account_id"], ["seller_accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_seller_products_account_id", "seller_products", ["account_id"], unique=False)
    op.create_index("ix_seller_products_asin", "seller_products", ["asin"], unique=False)

    op.create_table(
        "analysis_snapshots",
        *_key_columns(),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_analysis_snapshots_key", "analysis_snapshots",
                    ["user_id", "country", "region", "created_at"], unique=False)

    op.create_table(
        "issue_summaries",
        *_key_columns(),
        sa.Column("total_issues", sa.Integer(), nullable=True, server_default="0"),
        *_error_counts(),
        sa.Column("number_of_products_with_issues", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("total_active_products", sa.Integer(), nullable=True, server_default="0"),
        *_cache_meta(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "country", "region", name="uq_issue_summary_key"),
    )
    op.create_index("ix_issue_summaries_stale", "issue_summaries", ["is_stale", "last_calculated_at"], unique=False)

    op.create_table(
        "issues_data",
        *_key_columns(),
        *_error_counts(),
        *[sa.Column(name, sa.JSON(), nullable=True) for name in (
            "account_errors", "account_health_percentage", "buy_box_data", "top_error_products",
            "product_wise_error", "ranking_product_wise_errors", "conversion_product_wise_errors",
            "inventory_product_wise_errors", "profitability_error_details", "sponsored_ads_error_details",
            "total_product", "active_products",
        )],
        *_cache_meta(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "country", "region", name="uq_issues_data_key"),
    )

    op.create_table(
        "user_task_lists",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("tasks", sa.JSON(), nullable=True),
        sa.Column("task_renewal_date", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )

    op.create_table(
        "economics_metrics",
        *_key_columns(),
        *[sa.Column(name, sa.Float(), nullable=True, server_default="0") for name in (
            "total_sales", "gross_profit", "ppc_spent", "fba_fees", "storage_fees", "amazon_fees", "refunds",
        )],
        sa.Column("datewise_sales", sa.JSON(), nullable=True),
        sa.Column("date_range", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_economics_metrics_key", "economics_metrics",
                    ["user_id", "country", "region", "created_at"], unique=False)

    op.create_table(
        "buybox_snapshots",
        *_key_columns(),
        sa.Column("total_products", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("products_with_buybox", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("products_without_buybox", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("date_range", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_buybox_snapshots_key", "buybox_snapshots",
                    ["user_id", "country", "region", "created_at"], unique=False)

    op.create_table(
        "seller_performance_reports",
        *_key_columns(),
        sa.Column("report_version", sa.String(4), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_perf_reports_key", "seller_performance_reports",
                    ["user_id", "country", "region", "report_version", "created_at"], unique=False)

    op.create_table(
        "ppc_metrics",
        *_key_columns(),
        sa.Column("summary", sa.JSON(), nullable=True),
        sa.Column("date_wise_metrics", sa.JSON(), nullable=True),
        sa.Column("date_range", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ppc_metrics_key", "ppc_metrics",
                    ["user_id", "country", "region", "created_at"], unique=False)

    op.create_table(
        "keyword_performance_snapshots",
        *_key_columns(),
        sa.Column("keywords_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_keyword_perf_key", "keyword_performance_snapshots",
                    ["user_id", "country", "region", "created_at"], unique=False)

    op.create_table(
        "order_snapshots",
        *_key_columns(),
        sa.Column("revenue_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_order_snapshots_key", "order_snapshots",
                    ["user_id", "country", "region", "created_at"], unique=False)

    op.create_table(
        "data_fetch_tracking",
        *_key_columns(),
        sa.Column("status", sa.String(20), nullable=True, server_default="completed"),
        sa.Column("date_range", sa.JSON(), nullable=True),
        sa.Column("calendar_mode", sa.String(20), nullable=True, server_default="default"),
        sa.Column("fetched_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_data_fetch_tracking_key", "data_fetch_tracking",
                    ["user_id", "country", "region", "status", "fetched_at"], unique=False)


def downgrade() -> None:
    for table in KEYED_TABLES:
        op.drop_table(table)
    op.drop_table("user_task_lists")
    op.drop_table("seller_products")
    op.drop_table("seller_accounts")
    op.drop_table("sellers")
