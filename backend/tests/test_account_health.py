"""
Tests for account health percentage bands and account checks.
"""

import pytest

from seller_dashboard.services.account_health import (
    calculate_account_health_percentage,
    check_account_health,
)

GOOD_V2 = {
    "accountStatuses": "NORMAL",
    "listingPolicyViolations": "GOOD",
    "validTrackingRateStatus": "GOOD",
    "orderWithDefectsStatus": "GOOD",
    "lateShipmentRateStatus": "GOOD",
    "CancellationRate": "GOOD",
}

CLEAN_V1 = {
    "negativeFeedbacks": {"count": 0},
    "lateShipmentCount": {"count": 0},
    "preFulfillmentCancellationCount": {"count": 0},
    "refundsCount": {"count": 0},
    "a_z_claims": {"count": 0},
    "responseUnder24HoursCount": 0,
}


@pytest.mark.parametrize("score,status,percentage", [
    (850, "Healthy", 100),
    (800, "Healthy", 100),
    (799, "Healthy", 80),
    (200, "Healthy", 80),
    (199, "At Risk", 50),
    (100, "At Risk", 50),
    (99, "Unhealthy", 30),
    ("450", "Healthy", 80),
])
def test_health_percentage_bands(score, status, percentage):
    assert calculate_account_health_percentage({"ahrScore": score}) == {"status": status, "Percentage": percentage}


def test_health_percentage_without_score():
    assert calculate_account_health_percentage(None) == {"status": "Data Not Available", "Percentage": 0}
    assert calculate_account_health_percentage({}) == {"status": "Data Not Available", "Percentage": 0}


def test_no_reports_gives_empty_map():
    assert check_account_health(None, None) == {}


def test_all_checks_pass():
    result = check_account_health(GOOD_V2, CLEAN_V1)
    assert result["TotalErrors"] == 0
    assert result["accountStatus"]["status"] == "Success"
    assert result["NCX"] == {}
    assert result["a_z_claims"] == {}


def test_failing_checks_are_counted():
    v2 = {**GOOD_V2, "accountStatuses": "AT_RISK", "lateShipmentRateStatus": "BAD"}
    v1 = {**CLEAN_V1, "negativeFeedbacks": {"count": 2}, "refundsCount": {"count": 1},
          "a_z_claims": {"count": 1}, "responseUnder24HoursCount": 3}
    result = check_account_health(v2, v1)
    assert result["accountStatus"]["status"] == "Error"
    assert result["lateShipmentRateStatus"]["status"] == "Error"
    assert result["negativeFeedbacks"]["status"] == "Error"
    assert result["NCX"]["status"] == "Error"
    assert result["a_z_claims"]["status"] == "Error"
    assert result["responseUnder24HoursCount"]["status"] == "Error"
    assert result["TotalErrors"] == 6


def test_all_v2_fields_missing_counts_every_v2_check():
    # v2 present but non-empty only where it matters: missing fields fail their check
    result = check_account_health({"accountStatuses": "NORMAL"}, CLEAN_V1)
    assert result["accountStatus"]["status"] == "Success"
    assert result["TotalErrors"] == 5


def test_ten_errors_when_everything_fails():
    v2 = {k: "BAD" for k in GOOD_V2}
    v1 = {
        "negativeFeedbacks": {"count": 1},
        "lateShipmentCount": {"count": 1},
        "preFulfillmentCancellationCount": {"count": 0},
        "refundsCount": {"count": 0},
        "a_z_claims": {"count": 2},
        "responseUnder24HoursCount": 1,
    }
    assert check_account_health(v2, v1)["TotalErrors"] == 10
