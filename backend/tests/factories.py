"""
Snapshot and collector builders shared by the tests.
"""


class StaticCollector:
    """Collector returning a fixed snapshot; counts calls."""

    def __init__(self, snapshot=None, status=200):
        self.snapshot = snapshot
        self.status = status
        self.calls = 0

    async def analyse(self, user_id, country, region):
        self.calls += 1
        if self.status != 200:
            return {"status": self.status, "message": "No data snapshot found for this account"}
        return {"status": 200, "message": self.snapshot}


def make_snapshot() -> dict:
    """Two active products with ranking, conversion and inventory issues; one inactive."""
    return {
        "Country": "US",
        "TotalProducts": [
            {"asin": "A1", "sku": "SKU-1", "itemName": "Steel Water Bottle 1L", "price": 20, "status": "Active"},
            {"asin": "A2", "sku": "SKU-2", "itemName": "Bamboo Cutting Board", "price": 35, "status": "Active"},
            {"asin": "A3", "sku": "SKU-3", "itemName": "Retired Kettle", "price": 15, "status": "Inactive"},
        ],
        "SalesByProducts": [
            {"asin": "A1", "amount": 500, "quantity": 25},
            {"asin": "A2", "amount": 100, "quantity": 3},
            {"asin": "A3", "amount": 999, "quantity": 9},
        ],
        "ProductWiseSponsoredAds": [
            {"asin": "A1", "spend": 40, "salesIn30Days": 200, "purchasedIn30Days": 10, "campaignName": "C1"},
            {"asin": "A2", "spend": 95, "salesIn30Days": 50, "purchasedIn30Days": 1, "campaignName": "C2"},
            {"asin": "A3", "spend": 500, "salesIn30Days": 0, "campaignName": "C3"},
        ],
        "RankingsData": {
            "RankingResultArray": [
                {"asin": "A1", "data": {
                    "Title": "Steel Water Bottle 1L Insulated Leak Proof Sports Flask For Hiking",
                    "TotalErrors": 2,
                    "TitleResult": {
                        "charLim": {"status": "Error", "Message": "Too long"},
                        "RestictedWords": {"status": "Error", "Message": "Contains 'best'"},
                    },
                }},
                {"asin": "A3", "data": {"Title": "Retired Kettle", "TotalErrors": 4}},
            ],
        },
        "ConversionData": {
            "imageResult": [
                {"asin": "A1", "data": {"status": "Error", "MainImage": "https://img/a1.jpg"}},
                {"asin": "A2", "data": {"status": "Success", "MainImage": "https://img/a2.jpg"}},
            ],
            "aPlusResult": [{"asin": "A2", "data": {"status": "Error", "Message": "No A+"}}],
        },
        "InventoryAnalysis": {
            "strandedInventory": [{"asin": "A2", "status": "Error"}],
            "replenishment": [{"asin": "A1", "status": "Success"}],
        },
        "AccountData": {
            "accountHealth": {"TotalErrors": 3},
            "getAccountHealthPercentge": {"Percentage": 80, "status": "Healthy"},
        },
    }
