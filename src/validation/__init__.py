"""Validation module: record and result models."""

from .models import (
    AIRulePrompt,
    AnalysisResult,
    Bonus,
    BonusRule,
    Deposit,
    ParsedRule,
    Withdrawal,
)

__all__ = [
    "AIRulePrompt",
    "AnalysisResult",
    "Bonus",
    "BonusRule",
    "Deposit",
    "ParsedRule",
    "Withdrawal",
]
