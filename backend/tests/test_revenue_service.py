"""Revenue split tests"""
import pytest

from app.services.revenue_service import calculate_revenue_split, split


@pytest.mark.critical
class TestSplit:
    """Test integer-cent revenue split"""

    def test_standard_split(self):
        result = split(1000, 1000, 250)
        assert (result.creator_royalty, result.platform_fee, result.store_revenue) == (100, 25, 875)

    def test_parts_always_sum_to_total(self):
        for total in range(0, 2500, 7):
            for royalty_bps in (0, 1, 333, 1000, 5000, 9999, 10000):
                result = split(total, royalty_bps, 250)
                assert result.total == total
                assert min(result.creator_royalty, result.platform_fee, result.store_revenue) >= 0

    def test_shares_are_floored(self):
        result = split(999, 1000, 250)
        assert result.creator_royalty == 99
        assert result.platform_fee == 24
        assert result.store_revenue == 876

    def test_zero_total(self):
        result = split(0, 1000, 250)
        assert result.total == 0
        assert result.store_revenue == 0

    def test_full_royalty_leaves_nothing_for_platform(self):
        result = split(1000, 10000, 250)
        assert result.creator_royalty == 1000
        assert result.platform_fee == 0
        assert result.store_revenue == 0

    def test_rates_above_100_percent_are_clamped(self):
        result = split(1000, 20000, 250)
        assert result.creator_royalty == 1000
        assert result.total == 1000

    def test_negative_total_rejected(self):
        with pytest.raises(ValueError):
            split(-1, 1000, 250)


@pytest.mark.medium
class TestCalculateRevenueSplit:
    """Test prospective split for a product"""

    def test_split_with_percentages(self, db_session, product):
        result = calculate_revenue_split(db_session, product.id, 2000)
        assert result["creator_royalty"] == 200
        assert result["platform_fee"] == 50
        assert result["store_revenue"] == 1750
        assert result["splits"]["creator"]["percentage"] == 10.0
        assert result["splits"]["platform"]["percentage"] == 2.5
        assert result["splits"]["store"]["name"] == "Test Store"

    def test_unknown_product(self, db_session):
        with pytest.raises(ValueError):
            calculate_revenue_split(db_session, "missing", 1000)
