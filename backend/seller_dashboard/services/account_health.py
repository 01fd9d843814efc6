"""
Account Health: turns seller performance reports into a health percentage and
a map of pass/fail account checks.

v2 reports carry status flags (NORMAL / GOOD); v1 reports carry counts.
"""

import logging
from typing import Any, Optional

from seller_dashboard.utils import length_of, to_number

logger = logging.getLogger(__name__)

STATUS_ERROR = "Error"
STATUS_SUCCESS = "Success"

_RESPONSE_TIME_MESSAGE = (
    "Some customer messages have not been responded to within 24 hours. Delayed responses can "
    "negatively impact your seller metrics, customer satisfaction, and account health."
)
_RESPONSE_TIME_HOW_TO = (
    "Ensure that all customer inquiries are responded to within 24 hours, including weekends and "
    "holidays. Use Amazon’s Buyer-Seller Messaging Service to track and manage messages efficiently. "
    "Set up automated responses acknowledging inquiries and follow up with a detailed reply as soon as "
    "possible. If needed, consider using a virtual assistant or customer support software to handle "
    "messages faster."
)
_POLICY_VIOLATION_MESSAGE = (
    "Amazon has issued a listing policy violation notification for one or more of your products. "
    "Ignoring this could lead to listing suppression, restricted selling privileges, or account suspension."
)

# (result key, report field, expected value, error message, how to solve, success message)
_V2_CHECKS = (
    (
        "accountStatus", "accountStatuses", "NORMAL",
        "Your account status is not in normal standing. This can impact your ability to sell, restrict "
        "your listings, or even lead to account suspension if not addressed promptly.",
        "Check your Account Health Dashboard in Seller Central to identify any performance issues, policy "
        "violations, or pending actions. Address any flagged concerns, such as order defect rate (ODR), "
        "late shipments, or intellectual property complaints. If action is required, respond promptly to "
        "Amazon’s notifications and provide necessary documentation to resolve the issue.",
        "Your account is in good standing! Maintaining a healthy account status helps ensure uninterrupted "
        "selling and long-term success on Amazon.",
    ),
    (
        "PolicyViolations", "listingPolicyViolations", "GOOD",
        _POLICY_VIOLATION_MESSAGE,
        _POLICY_VIOLATION_MESSAGE,
        "Excellent! You have no listing policy violations, ensuring your products remain active and "
        "compliant with Amazon’s marketplace guidelines.",
    ),
    (
        "validTrackingRateStatus", "validTrackingRateStatus", "GOOD",
        "Your Valid Tracking Rate (VTR) is below Amazon's required threshold. A low VTR can result in "
        "warnings, restrictions on self-fulfilled shipping methods, and a negative impact on your seller "
        "performance metrics.",
        "Ensure that every order you fulfill includes valid tracking information from an Amazon-approved "
        "carrier. Double-check that tracking numbers are correctly entered and active. Use Amazon’s Buy "
        "Shipping service to automatically provide valid tracking. Regularly monitor your VTR in Account "
        "Health and take corrective actions if discrepancies arise.",
        "Great job! Your Valid Tracking Rate is in good standing, helping you maintain strong seller "
        "performance and ensuring a smooth shipping experience for customers.",
    ),
    (
        "orderWithDefectsStatus", "orderWithDefectsStatus", "GOOD",
        "Your Order Defect Rate (ODR) is above Amazon's acceptable threshold. A high ODR can lead to "
        "listing deactivation, loss of Buy Box eligibility, or even account suspension if not addressed.",
        "Analyze the root causes of defects, such as negative feedback, A-to-Z claims, or chargebacks. "
        "Address customer complaints promptly, improve product quality, and ensure accurate product "
        "descriptions to set the right expectations. If you receive unjustified negative feedback, request "
        "Amazon to remove it. Maintain excellent customer service and fulfillment reliability to lower your "
        "ODR over time.",
        "Great job! Your Order Defect Rate is within Amazon's acceptable range, ensuring better account "
        "health and maintaining strong seller performance.",
    ),
    (
        "lateShipmentRateStatus", "lateShipmentRateStatus", "GOOD",
        "Your Late Shipment Rate (LSR) is above Amazon’s acceptable threshold. A high LSR can lead to "
        "restrictions on your ability to offer seller-fulfilled shipping options and negatively impact your "
        "account health.",
        "Ensure all orders are shipped on or before the expected ship date. Use Amazon’s Buy Shipping "
        "service to access reliable carriers and ensure accurate tracking. Optimize your fulfillment process "
        "by improving warehouse efficiency, updating handling times accurately, and using faster shipping "
        "methods when necessary. Monitor your shipping performance regularly in Account Health and adjust "
        "logistics strategies accordingly.",
        "Great job! Your Late Shipment Rate is within Amazon’s acceptable range, ensuring smooth order "
        "fulfillment and a strong seller performance record.",
    ),
    (
        "CancellationRate", "CancellationRate", "GOOD",
        _RESPONSE_TIME_MESSAGE,
        _RESPONSE_TIME_HOW_TO,
        "Great job! You are responding to customer messages within 24 hours, maintaining high customer "
        "satisfaction and a strong seller performance record.",
    ),
)

_NEGATIVE_FEEDBACK = (
    "Your account has received negative seller feedback. This can affect your seller rating, Buy Box "
    "eligibility, and customer trust, potentially impacting sales.",
    "Review the negative feedback in Seller Central and identify common issues. If the feedback is "
    "related to fulfillment by Amazon (FBA), you may request Amazon to remove it. For valid complaints, "
    "reach out to the customer to resolve their concerns professionally. Improving response time, order "
    "accuracy, and customer service can help prevent future negative feedback.",
)
_NCX = (
    "Your NCX (Negative Customer Experience) score is above 0. A high NCX rate can lead to suppressed "
    "listings, reduced visibility, and a decline in customer trust, potentially impacting sales and "
    "account health.",
    "Analyze the root causes of negative customer experiences through Seller Central. Identify common "
    "complaints related to product quality, description accuracy, late shipments, or customer service "
    "issues. Address these concerns by improving product listings, ensuring accurate descriptions, "
    "enhancing quality control, and optimizing fulfillment processes. Take proactive measures such as "
    "responding to negative feedback and improving post-purchase support.",
)
_A_Z_CLAIMS = (
    "An A-to-Z Guarantee Claim has been filed against your order. Unresolved claims can negatively "
    "impact your Order Defect Rate (ODR) and may lead to account restrictions if frequent claims occur.",
    "Review the claim details in Seller Central > Performance > A-to-Z Guarantee Claims. If the claim is "
    "valid, work with the customer to resolve the issue promptly by issuing a refund or replacement. If "
    "you believe the claim is unjustified, submit an appeal with supporting evidence, such as tracking "
    "details, delivery confirmation, or proof of product quality. Prevent future claims by improving "
    "order accuracy, shipping reliability, and customer communication.",
)


def calculate_account_health_percentage(data: Optional[dict]) -> dict:
    """Map an AHR score onto a status and percentage band."""
    if not data or not isinstance(data, dict) or data.get("ahrScore") is None:
        return {"status": "Data Not Available", "Percentage": 0}

    score = to_number(data.get("ahrScore"))
    if score >= 800:
        return {"status": "Healthy", "Percentage": 100}
    if score >= 200:
        return {"status": "Healthy", "Percentage": 80}
    if score >= 100:
        return {"status": "At Risk", "Percentage": 50}
    return {"status": "Unhealthy", "Percentage": 30}


def _count_field(v1: dict, name: str) -> Any:
    entry = v1.get(name)
    return entry.get("count") if isinstance(entry, dict) else None


def _v2_has_empty_fields(v2: Optional[dict]) -> bool:
    if not v2:
        return False
    fields = (
        "accountStatuses", "listingPolicyViolations", "validTrackingRateStatus",
        "orderWithDefectsStatus", "lateShipmentRateStatus", "CancellationRate",
    )
    return any(length_of(v2.get(f)) == 0 for f in fields)


def _v1_has_empty_counts(v1: Optional[dict]) -> bool:
    # Only string/list/mapping values have a length; numeric counts never look empty.
    if not v1:
        return False
    counts = [
        _count_field(v1, name)
        for name in ("negativeFeedbacks", "lateShipmentCount", "preFulfillmentCancellationCount",
                     "refundsCount", "a_z_claims")
    ]
    counts.append(v1.get("responseUnder24HoursCount"))
    return any(length_of(c) == 0 for c in counts)


def _error(message: str, how_to: str) -> dict:
    return {"status": STATUS_ERROR, "Message": message, "HowTOSolve": how_to}


def check_account_health(v2_data: Optional[dict], v1_data: Optional[dict]) -> dict:
    """
    Build the account error map. Returns ``{}`` when neither report carries data.

    v2 checks always produce an Error or Success entry; v1 checks produce an
    Error entry or ``{}``. ``TotalErrors`` counts the Error entries.
    """
    v2 = v2_data if isinstance(v2_data, dict) else None
    v1 = v1_data if isinstance(v1_data, dict) else None

    v2_empty = not v2 or _v2_has_empty_fields(v2)
    v1_empty = not v1 or _v1_has_empty_counts(v1)
    if v2_empty and v1_empty:
        return {}

    v2 = v2 or {}
    v1 = v1 or {}
    errors = 0
    result: dict = {}

    for key, field, expected, message, how_to, success in _V2_CHECKS:
        if v2.get(field) != expected:
            errors += 1
            result[key] = _error(message, how_to)
        else:
            result[key] = {"status": STATUS_SUCCESS, "Message": success, "HowTOSolve": ""}

    if to_number(_count_field(v1, "negativeFeedbacks")) > 0:
        errors += 1
        result["negativeFeedbacks"] = _error(*_NEGATIVE_FEEDBACK)
    else:
        result["negativeFeedbacks"] = {}

    ncx = (
        to_number(_count_field(v1, "lateShipmentCount"))
        + to_number(_count_field(v1, "preFulfillmentCancellationCount"))
        + to_number(_count_field(v1, "refundsCount"))
    )
    if ncx > 0:
        errors += 1
        result["NCX"] = _error(*_NCX)
    else:
        result["NCX"] = {}

    if to_number(_count_field(v1, "a_z_claims")) != 0:
        errors += 1
        result["a_z_claims"] = _error(*_A_Z_CLAIMS)
    else:
        result["a_z_claims"] = {}

    if to_number(v1.get("responseUnder24HoursCount")) != 0:
        errors += 1
        result["responseUnder24HoursCount"] = _error(_RESPONSE_TIME_MESSAGE, _RESPONSE_TIME_HOW_TO)
    else:
        result["responseUnder24HoursCount"] = {}

    result["TotalErrors"] = errors
    return result
