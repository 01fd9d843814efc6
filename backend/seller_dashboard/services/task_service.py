"""
Task Service: turns issue details into an actionable per-user task list.

Each error becomes one task identified by ``asin-errorCategory-errorType``.
A user's list renews every ``task_renewal_days``: on renewal only pending tasks
survive; between renewals new tasks are appended unless already listed.
"""

import logging
import secrets
import time
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seller_dashboard.config import get_settings
from seller_dashboard.models import TaskStatus, UserTaskList
from seller_dashboard.utils import to_float, utcnow

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(n: int) -> str:
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
        if n == 0:
            return out


def generate_task_id() -> str:
    """task_<ms timestamp base36>_<random>"""
    stamp = _base36(int(time.time() * 1000))
    rand = "".join(secrets.choice(_BASE36) for _ in range(11))
    return f"task_{stamp}_{rand}"


def task_identifier(task: dict) -> str:
    return f"{task.get('asin')}-{task.get('errorCategory')}-{task.get('errorType')}"


def _task(product_name: str, asin, category: str, error_type: str, error: str, solution: str) -> dict:
    return {
        "taskId": generate_task_id(),
        "productName": product_name,
        "asin": asin,
        "errorCategory": category,
        "errorType": error_type,
        "error": error,
        "solution": solution,
        "status": TaskStatus.PENDING.value,
    }


def _product_name(title) -> str:
    return title[:50] if isinstance(title, str) and title else "Unknown Product"


# ══════════════════════════════════════════════════════════════════════
#  TASK GENERATORS
# ══════════════════════════════════════════════════════════════════════

def generate_ranking_tasks(ranking_errors: list) -> list[dict]:
    tasks = []
    for error in ranking_errors or []:
        data = error.get("data") if isinstance(error, dict) else None
        if not isinstance(data, dict):
            continue
        total = data.get("TotalErrors")
        if isinstance(total, bool) or not isinstance(total, (int, float)) or total <= 0:
            continue
        name = _product_name(data.get("Title"))
        asin = error.get("asin")
        char_lim = isinstance(data.get("charLim"), dict) and data["charLim"].get("status") == "Error"
        duplicates = data.get("dublicateWords") == "Error"

        if char_lim:
            tasks.append(_task(
                name, asin, "ranking", "title_char_limit",
                "Title character limit exceeded",
                "Optimize product title to meet Amazon's character limit requirements. "
                "Keep it concise while maintaining keywords.",
            ))
        if duplicates:
            tasks.append(_task(
                name, asin, "ranking", "duplicate_words",
                "Title contains duplicate words",
                "Remove duplicate words from the product title to improve search ranking and customer experience.",
            ))
        remaining = total - int(char_lim) - int(duplicates)
        if remaining > 0:
            tasks.append(_task(
                name, asin, "ranking", "additional_ranking_issues",
                f"Additional ranking optimization needed ({remaining:g} issues)",
                "Review and optimize product listing elements including keywords, backend search terms, "
                "and other ranking factors.",
            ))
    return tasks


_CONVERSION_TASKS = (
    ("aplusErrorData", "missing_aplus_content", "A+ Content missing or needs improvement",
     "Create compelling A+ Content with high-quality images and detailed product information to improve "
     "conversion rates."),
    ("imageResultErrorData", "poor_images", "Product images need improvement",
     "Upload high-quality product images that meet Amazon's requirements. Ensure main image has white "
     "background and shows the product clearly."),
    ("videoResultErrorData", "missing_video", "Product video missing or low quality",
     "Add a professional product demonstration video to showcase features and benefits, improving customer "
     "engagement."),
    ("productReviewResultErrorData", "insufficient_reviews", "Insufficient reviews or poor review quality",
     "Implement review acquisition strategy through follow-up emails and improve product quality to earn "
     "better reviews."),
    ("productStarRatingResultErrorData", "low_star_rating", "Star rating below optimal threshold",
     "Focus on improving product quality and customer service to achieve higher star ratings."),
    ("productsWithOutBuyboxErrorData", "no_buybox", "Not winning the Buy Box",
     "Optimize pricing, improve seller metrics, and ensure fast shipping to win the Buy Box more frequently."),
)

_INVENTORY_TASKS = (
    ("inventoryPlanningErrorData", "inventory_planning", "Inventory planning optimization required",
     "Review inventory levels and adjust replenishment strategy to avoid stockouts while minimizing "
     "storage costs."),
    ("strandedInventoryErrorData", "stranded_inventory", "Stranded inventory detected",
     "Review and fix listing issues causing stranded inventory. Check for suppressed or incomplete listings."),
    ("inboundNonComplianceErrorData", "inbound_non_compliance", "Inbound shipment non-compliance",
     "Review and correct inbound shipment preparation to meet Amazon's requirements and avoid fees."),
    ("replenishmentErrorData", "replenishment_needed", "Product restocking required",
     "Create replenishment shipment to avoid stockout. Review sales velocity and adjust reorder points."),
)


def _keyed_tasks(errors: list, category: str, table: tuple) -> list[dict]:
    tasks = []
    for error in errors or []:
        if not isinstance(error, dict):
            continue
        name = _product_name(error.get("Title"))
        for key, error_type, message, solution in table:
            if error.get(key):
                tasks.append(_task(name, error.get("asin"), category, error_type, message, solution))
    return tasks


def generate_conversion_tasks(conversion_errors: list) -> list[dict]:
    return _keyed_tasks(conversion_errors, "conversion", _CONVERSION_TASKS)


def generate_inventory_tasks(inventory_errors: list) -> list[dict]:
    return _keyed_tasks(inventory_errors, "inventory", _INVENTORY_TASKS)


def generate_profitability_tasks(profitability_errors: list) -> list[dict]:
    tasks = []
    for error in profitability_errors or []:
        if not isinstance(error, dict):
            continue
        if error.get("errorType") == "negative_profit":
            error_type = "negative_profit"
            message = f"Product has negative profit: ${to_float(error.get('netProfit')):.2f}"
            solution = "Review pricing strategy, reduce costs, or optimize advertising spend to achieve profitability."
        else:
            error_type = "low_profit_margin"
            message = f"Low profit margin: {to_float(error.get('profitMargin')):.1f}%"
            solution = ("Improve profit margins by optimizing pricing, reducing costs, or improving advertising "
                        "efficiency.")
        asin = error.get("asin")
        tasks.append(_task(f"Product {asin}", asin, "profitability", error_type, message, solution))
    return tasks


def generate_sponsored_ads_tasks(sponsored_errors: list) -> list[dict]:
    tasks = []
    for error in sponsored_errors or []:
        if not isinstance(error, dict):
            continue
        acos = to_float(error.get("acos"))
        spend = to_float(error.get("spend"))
        kind = error.get("errorType")
        if kind == "high_acos":
            message = f"High ACOS detected ({acos:.1f}%)"
            solution = ("Optimize keywords, improve product listing, or adjust bids to reduce ACOS and improve "
                        "profitability.")
        elif kind == "no_sales_high_spend":
            message = f"High spend with no sales (${spend:.2f})"
            solution = "Review keyword relevance, improve product listing, or pause underperforming keywords."
        elif kind == "marginal_profit":
            message = f"Marginal profitability (ACOS: {acos:.1f}%)"
            solution = "Fine-tune bidding strategy and keyword targeting to improve campaign efficiency."
        elif kind == "extreme_high_acos":
            message = f"Extremely high ACOS ({acos:.1f}%)"
            solution = "Immediately review and optimize or pause this keyword to prevent further losses."
        elif kind == "keyword_no_sales":
            message = f"Keyword with spend but no sales (${spend:.2f})"
            solution = "Consider adding as negative keyword or improving product listing relevance."
        else:
            kind = "general_optimization"
            message = f"Sponsored ads optimization needed (ACOS: {acos:.1f}%)"
            solution = "Review and optimize sponsored ads performance."

        asin = error.get("asin")
        name = f"Product {asin}" if asin else f"Keyword: {error.get('keyword')}"
        tasks.append(_task(name, asin or "N/A", "sponsoredAds", kind, message, solution))
    return tasks


def generate_tasks(errors: dict) -> list[dict]:
    """All tasks for the five error arrays of one aggregation."""
    return (
        generate_ranking_tasks(errors.get("rankingProductWiseErrors"))
        + generate_conversion_tasks(errors.get("conversionProductWiseErrors"))
        + generate_inventory_tasks(errors.get("inventoryProductWiseErrors"))
        + generate_profitability_tasks(errors.get("profitabilityErrorDetails"))
        + generate_sponsored_ads_tasks(errors.get("sponsoredAdsErrorDetails"))
    )


# ══════════════════════════════════════════════════════════════════════
#  PERSISTENCE
# ══════════════════════════════════════════════════════════════════════

class TaskService:
    """Stores generated tasks in one renewable list per user."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.renewal_days = get_settings().task_renewal_days

    async def _get_list(self, user_id: str) -> Optional[UserTaskList]:
        result = await self.db.execute(select(UserTaskList).where(UserTaskList.user_id == user_id))
        return result.scalar_one_or_none()

    async def create_tasks_from_errors(self, user_id: str, errors: dict) -> UserTaskList:
        tasks = generate_tasks(errors or {})
        now = utcnow()
        row = await self._get_list(user_id)

        if row is None:
            row = UserTaskList(
                user_id=user_id,
                tasks=tasks,
                task_renewal_date=now + timedelta(days=self.renewal_days),
            )
            self.db.add(row)
            await self.db.flush()
            logger.info(f"Created task list for user {user_id} with {len(tasks)} tasks")
            return row

        existing = list(row.tasks or [])
        if now >= row.task_renewal_date:
            pending = [t for t in existing if t.get("status") == TaskStatus.PENDING.value]
            known = {task_identifier(t) for t in pending}
            new_tasks = [t for t in tasks if task_identifier(t) not in known]
            row.tasks = pending + new_tasks
            row.task_renewal_date = now + timedelta(days=self.renewal_days)
            await self.db.flush()
            logger.info(
                f"Renewed tasks for user {user_id}: kept {len(pending)} pending, added {len(new_tasks)} "
                f"({len(tasks) - len(new_tasks)} duplicates skipped)"
            )
            return row

        known = {task_identifier(t) for t in existing}
        new_tasks = [t for t in tasks if task_identifier(t) not in known]
        if new_tasks:
            row.tasks = existing + new_tasks
            await self.db.flush()
            logger.info(f"Added {len(new_tasks)} new tasks for user {user_id}")
        else:
            logger.info(f"No new tasks to add for user {user_id}")
        return row

    async def get_user_tasks(self, user_id: str) -> Optional[UserTaskList]:
        return await self._get_list(user_id)

    async def update_task_status(self, user_id: str, task_id: str, status: str) -> UserTaskList:
        """Set one task's status. Raises LookupError for an unknown user or task."""
        row = await self._get_list(user_id)
        if row is None:
            raise LookupError("User task document not found")

        tasks = [dict(t) for t in (row.tasks or [])]
        task = next((t for t in tasks if t.get("taskId") == task_id), None)
        if task is None:
            raise LookupError("Task not found")
        task["status"] = status
        row.tasks = tasks
        await self.db.flush()
        return row


def make_task_creator(db: AsyncSession):
    """
    Adapter passed to the aggregator so it can create tasks after a run.
    Writes go through a savepoint so a failed task flush leaves the shared
    session usable for the cache stores that follow.
    """
    service = TaskService(db)

    async def _create(user_id: str, errors: dict) -> None:
        async with db.begin_nested():
            await service.create_tasks_from_errors(user_id, errors)

    return _create
