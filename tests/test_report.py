"""
Unit tests for analysis reporting

© 2026 Finans Kontrol Ekibi
"""
import pytest
import pandas as pd
from datetime import datetime, timedelta
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from matching.report import aggregate_by_staff, filter_results, get_analysis_summary, results_to_dataframe
from validation.models import AnalysisResult, Bonus, BonusRule, Withdrawal


def result(id_, status, staff="Ayşe", overpaid=0.0, minutes=0, customer="C1", bonus_name=None):
    request = datetime(2025, 1, 3)
    withdrawal = Withdrawal(
        id=id_, customer_id=customer, amount=1000, request_date=request,
        payment_date=request + timedelta(minutes=minutes) if minutes else None,
        staff_name=staff,
    )
    bonus = None
    rule = None
    if bonus_name:
        bonus = Bonus(id=f"b-{id_}", customer_id=customer, bonus_name=bonus_name, amount=100,
                      acceptance_date=datetime(2025, 1, 2))
        rule = BonusRule(id="r1", bonus_name=bonus_name.split()[0], calculation_type="unlimited")
    return AnalysisResult(
        withdrawal=withdrawal,
        bonus=bonus,
        bonus_rule=rule,
        status=status,
        is_overpayment=overpaid > 0,
        overpayment_amount=overpaid,
        processing_time_minutes=minutes,
    )


@pytest.fixture
def results():
    return [
        result("w1", "HATA", staff="Ayşe", overpaid=500, minutes=30, bonus_name="VIP 5x"),
        result("w2", "HATA", staff="Ayşe", overpaid=250.55, minutes=10, bonus_name="VIP 5x"),
        result("w3", "DOĞRU", staff="Mehmet", minutes=20, customer="C2", bonus_name="Hoş Geldin"),
        result("w4", "BONUS_YOK", staff="", customer="C3"),
        result("w5", "KURAL_YOK", staff="Mehmet", customer="C4", bonus_name="Özel Bonus"),
    ]


class TestAnalysisSummary:
    """Test suite for summary statistics"""

    def test_status_counts(self, results):
        summary = get_analysis_summary(results)
        assert summary["total"] == 5
        assert summary["hata"] == 2
        assert summary["dogru"] == 1
        assert summary["bonus_yok"] == 1
        assert summary["kural_yok"] == 1
        assert summary["hesaplama_hatasi"] == 0

    def test_totals(self, results):
        summary = get_analysis_summary(results)
        assert summary["total_overpaid"] == pytest.approx(750.55)
        assert summary["avg_processing_time"] == 20

    def test_staff_stats(self, results):
        summary = get_analysis_summary(results)
        assert summary["staff_errors"] == {"Ayşe": {"count": 2, "amount": 750.55}}
        assert summary["staff_processing_times"]["Ayşe"] == {"total_time": 40, "count": 2, "avg_time": 20}
        assert summary["staff_processing_times"]["Mehmet"]["count"] == 1
        assert "2" in summary["status"]

    def test_empty(self):
        summary = get_analysis_summary([])
        assert summary["total"] == 0
        assert summary["avg_processing_time"] == 0
        assert summary["status"].startswith("✓")


class TestDataFrame:
    """Test suite for tabular report"""

    def test_one_row_per_result(self, results):
        df = results_to_dataframe(results)
        assert len(df) == 5
        assert df.loc[df["withdrawal_id"] == "w4", "staff_name"].iloc[0] == "Bilinmiyor"
        assert df.loc[df["withdrawal_id"] == "w1", "bonus_name"].iloc[0] == "VIP 5x"

    def test_aggregate_by_staff(self, results):
        by_staff = aggregate_by_staff(results_to_dataframe(results))
        ayse = by_staff[by_staff["staff_name"] == "Ayşe"].iloc[0]
        assert ayse["withdrawal_count"] == 2
        assert ayse["error_count"] == 2
        assert ayse["total_overpaid"] == pytest.approx(750.55)
        assert ayse["avg_time"] == 20
        # Sorted by error count
        assert by_staff.iloc[0]["staff_name"] == "Ayşe"

    def test_aggregate_empty(self):
        assert aggregate_by_staff(results_to_dataframe([])).empty

    def test_aggregate_requires_staff_column(self):
        with pytest.raises(ValueError):
            aggregate_by_staff(pd.DataFrame({"x": [1]}))


class TestFilterResults:
    """Test suite for status and text filters"""

    def test_filter_by_status(self, results):
        assert [r.withdrawal.id for r in filter_results(results, status="HATA")] == ["w1", "w2"]

    def test_search_customer(self, results):
        assert [r.withdrawal.id for r in filter_results(results, search="c3")] == ["w4"]

    def test_search_bonus_name_case_insensitive(self, results):
        assert [r.withdrawal.id for r in filter_results(results, search="vip")] == ["w1", "w2"]

    def test_search_rule_name(self, results):
        assert [r.withdrawal.id for r in filter_results(results, search="hoş")] == ["w3"]

    def test_combined(self, results):
        assert filter_results(results, status="DOĞRU", search="vip") == []

    def test_no_filters(self, results):
        assert len(filter_results(results)) == 5
