"""Matching module: deposit-bonus linking, withdrawal analysis and reporting."""

from .deposit_matcher import DepositBonusMatcher, find_deposit_for_bonus
from .pipeline import BonusAnalysisService
from .report import aggregate_by_staff, filter_results, get_analysis_summary, results_to_dataframe
from .settings import load_settings
from .withdrawal_analyzer import WithdrawalAnalyzer, classify_withdrawal, compute_rule_limit

__all__ = [
    "DepositBonusMatcher",
    "find_deposit_for_bonus",
    "BonusAnalysisService",
    "aggregate_by_staff",
    "filter_results",
    "get_analysis_summary",
    "results_to_dataframe",
    "load_settings",
    "WithdrawalAnalyzer",
    "classify_withdrawal",
    "compute_rule_limit",
]
