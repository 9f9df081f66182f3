"""AI-assisted bonus rules.

Works with natural-language rule descriptions (AIRulePrompt) when no
structured formula exists: finds the prompt for a bonus, computes a limit
directly from the parsed rule, and proposes structured rule updates for
rules that still have no formula.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from validation.models import AIRulePrompt, Bonus, BonusRule, Deposit, ParsedRule, UNLIMITED_SENTINEL

from .formula import try_evaluate
from .nl_parser import parse_bonus_rule_text
from .resolver import MatchPolicy, resolve_by_name

logger = logging.getLogger(__name__)


@dataclass
class AICalculationResult:
    """Limit computed from a parsed rule."""
    max_allowed: float
    calculation: str
    confidence: float
    rule: Optional[ParsedRule]


def find_prompt(
    bonus_name: str,
    prompts: Sequence[AIRulePrompt],
    policy: MatchPolicy = "longest",
) -> Optional[AIRulePrompt]:
    """Prompt registered for this bonus, matched like bonus rules."""
    return resolve_by_name(bonus_name, prompts, lambda p: p.bonus_name, policy)


def rule_from_prompt(prompt: AIRulePrompt) -> Optional[ParsedRule]:
    """Parse the prompt text; an empty prompt falls back to the bonus name."""
    return parse_bonus_rule_text(prompt.prompt.strip() or prompt.bonus_name)


def calculate_max_withdrawal(
    rule: ParsedRule,
    deposit: Optional[Deposit],
    bonus: Optional[Bonus],
) -> AICalculationResult:
    """Compute the withdrawal limit straight from a parsed rule.

    Confidence is halved when the rule's base (deposit or bonus) is missing.
    """
    confidence = rule.confidence

    if rule.calculation_type == "unlimited":
        return AICalculationResult(math.inf, "Sınırsız çekim", confidence, rule)

    if "deposit" in rule.formula and deposit is None and rule.calculation_type == "multiplier":
        return AICalculationResult(0.0, "Yatırım bulunamadı", confidence * 0.5, rule)
    if "bonus" in rule.formula and bonus is None:
        return AICalculationResult(0.0, "Bonus bulunamadı", confidence * 0.5, rule)

    variables = {
        "deposit": deposit.amount if deposit else 0.0,
        "bonus": bonus.amount if bonus else 0.0,
        "multiplier": rule.multiplier or 0.0,
        "fixed": rule.fixed_amount or 0.0,
    }
    value, error = try_evaluate(rule.formula, variables)
    if error:
        return AICalculationResult(0.0, f"Formül hatası: {error}", confidence * 0.5, rule)

    return AICalculationResult(value, f"{rule.formula} = {value}", confidence, rule)


def suggest_rule_updates(
    rules: Sequence[BonusRule],
    threshold: float = 0.7,
) -> tuple[list[BonusRule], list[str]]:
    """Propose structured rules for rules without a usable formula.

    Each rule name is parsed; parses above the confidence threshold become an
    updated copy of the rule. Nothing is written back, the operator decides.

    Returns:
        Tuple of (proposed rules, error messages).
    """
    proposals = []
    errors = []

    for rule in rules:
        if rule.has_formula:
            continue

        try:
            parsed = parse_bonus_rule_text(rule.bonus_name)
        except ValueError as e:
            errors.append(f"{rule.bonus_name}: {e}")
            continue

        if parsed is None or parsed.confidence <= threshold:
            continue

        if parsed.calculation_type == "unlimited":
            formula = UNLIMITED_SENTINEL
        else:
            formula = parsed.formula

        proposals.append(rule.model_copy(update={
            "calculation_type": parsed.calculation_type,
            "multiplier": parsed.multiplier or 0.0,
            "fixed_amount": parsed.fixed_amount or 0.0,
            "max_withdrawal_formula": formula,
        }))

    logger.info("%d bonus kuralı için öneri üretildi, %d hata", len(proposals), len(errors))
    return proposals, errors
