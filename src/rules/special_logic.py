"""Special bonus logic table.

Some bonus types do not follow the default "deposit comes before bonus" flow:
trial bonuses are granted first and meant to trigger a later deposit. The
table maps bonus name patterns to a deposit timing policy and, optionally, a
custom matching strategy or limit calculation. It is loaded from
config/settings.yaml (``special_bonuses``) and passed into the matcher and
analyzer.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Literal, Optional, Sequence

from validation.models import Bonus, BonusRule, Deposit, Withdrawal

from .formula import try_evaluate
from .resolver import MatchPolicy, resolve_by_name

logger = logging.getLogger(__name__)

DepositTiming = Literal["before", "after"]
MatchingStrategy = Callable[[Bonus, Sequence[Deposit]], Optional[Deposit]]
CalculationOverride = Callable[
    [Withdrawal, Optional[Deposit], Bonus, Optional[BonusRule]],
    Optional[tuple[float, str]],
]


@dataclass
class SpecialBonusLogic:
    """Per-bonus-name override of matching and calculation."""
    name: str
    deposit_timing: DepositTiming = "before"
    matching_strategy: Optional[MatchingStrategy] = None
    calculation_override: Optional[CalculationOverride] = None


def formula_override(formula: str) -> CalculationOverride:
    """Build a calculation override that evaluates a fixed formula."""

    def override(withdrawal, deposit, bonus, rule):
        variables = {
            "deposit": deposit.amount if deposit else 0.0,
            "bonus": bonus.amount,
            "withdrawal": withdrawal.amount,
            "multiplier": rule.multiplier if rule else 0.0,
            "fixed": rule.fixed_amount if rule else 0.0,
        }
        value, error = try_evaluate(formula, variables)
        if error:
            # Fall through to the rule-based calculation
            return None
        return value, f"Özel hesaplama: {formula} = {value}₺\n"

    return override


def load_special_logics(settings: dict) -> list[SpecialBonusLogic]:
    """Build the special logic table from settings."""
    logics = []
    for entry in settings.get("special_bonuses", []) or []:
        name = entry.get("name")
        if not name:
            logger.warning("İsimsiz özel bonus tanımı atlandı: %s", entry)
            continue

        timing = entry.get("deposit_timing", "before")
        if timing not in ("before", "after"):
            logger.warning("Geçersiz deposit_timing '%s' (%s), 'before' kullanılıyor", timing, name)
            timing = "before"

        formula = entry.get("max_withdrawal_formula")
        logics.append(SpecialBonusLogic(
            name=name,
            deposit_timing=timing,
            calculation_override=formula_override(formula) if formula else None,
        ))
    return logics


def find_special_logic(
    bonus_name: str,
    logics: Sequence[SpecialBonusLogic],
    policy: MatchPolicy = "longest",
) -> Optional[SpecialBonusLogic]:
    """Special logic entry whose name matches the bonus name, if any."""
    return resolve_by_name(bonus_name, logics, lambda l: l.name, policy)
