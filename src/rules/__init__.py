"""Bonus rule module: formula evaluation, NL parsing and rule resolution."""

from .formula import FormulaError, evaluate, try_evaluate, validate_formula
from .nl_parser import parse_bonus_rule_text, parse_formula_text, suggest_formula
from .resolver import resolve_rule
from .special_logic import SpecialBonusLogic, find_special_logic, load_special_logics

__all__ = [
    "FormulaError",
    "evaluate",
    "try_evaluate",
    "validate_formula",
    "parse_bonus_rule_text",
    "parse_formula_text",
    "suggest_formula",
    "resolve_rule",
    "SpecialBonusLogic",
    "find_special_logic",
    "load_special_logics",
]
