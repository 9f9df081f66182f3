"""
Unit tests for rule resolution, special bonus logic and AI rule helpers

© 2026 Finans Kontrol Ekibi
"""
import math
import pytest
from datetime import datetime
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rules.ai_rules import calculate_max_withdrawal, find_prompt, rule_from_prompt, suggest_rule_updates
from rules.nl_parser import parse_bonus_rule_text
from rules.resolver import names_match, resolve, resolve_rule
from rules.special_logic import SpecialBonusLogic, find_special_logic, formula_override, load_special_logics
from validation.models import AIRulePrompt, Bonus, BonusRule, Deposit, Withdrawal


def make_bonus(name="Hoş Geldin", amount=100.0):
    return Bonus(
        id="b1",
        customer_id="C1",
        bonus_name=name,
        amount=amount,
        acceptance_date=datetime(2025, 1, 2),
    )


def make_deposit(amount=1000.0):
    return Deposit(id="d1", customer_id="C1", amount=amount, deposit_date=datetime(2025, 1, 1))


class TestResolver:
    """Test suite for bonus name matching"""

    def test_names_match_both_directions(self):
        assert names_match("Hoş Geldin Bonusu 2025", "Hoş Geldin")
        assert names_match("VIP", "VIP 5x")
        assert not names_match("VIP", "vip")
        assert not names_match("", "VIP")

    def test_fuzzy_rule_resolution(self):
        rules = [
            BonusRule(id="r1", bonus_name="Kayıp Bonusu", calculation_type="unlimited"),
            BonusRule(id="r2", bonus_name="Hoş Geldin", calculation_type="multiplier", multiplier=3),
        ]
        rule = resolve_rule("Hoş Geldin Bonusu 2025", rules)
        assert rule.id == "r2"
        assert resolve("Hoş Geldin Bonusu 2025", rules) is rule

    def test_longest_match_wins(self):
        rules = [
            BonusRule(id="short", bonus_name="Bonus", calculation_type="unlimited"),
            BonusRule(id="long", bonus_name="Hoş Geldin Bonusu", calculation_type="multiplier", multiplier=3),
        ]
        assert resolve_rule("Hoş Geldin Bonusu 2025", rules).id == "long"

    def test_first_policy_keeps_collection_order(self):
        rules = [
            BonusRule(id="short", bonus_name="Bonus", calculation_type="unlimited"),
            BonusRule(id="long", bonus_name="Hoş Geldin Bonusu", calculation_type="multiplier", multiplier=3),
        ]
        assert resolve_rule("Hoş Geldin Bonusu 2025", rules, policy="first").id == "short"

    def test_no_match(self):
        rules = [BonusRule(id="r1", bonus_name="VIP 5x", calculation_type="multiplier", multiplier=5)]
        assert resolve_rule("Hoş Geldin", rules) is None


class TestSpecialLogic:
    """Test suite for special bonus logic table"""

    def test_load_from_settings(self):
        settings = {
            "special_bonuses": [
                {"name": "DENEME Bonusu", "deposit_timing": "after"},
                {"name": "Kampanya", "deposit_timing": "sideways"},
                {"deposit_timing": "after"},
            ]
        }
        logics = load_special_logics(settings)
        assert [l.name for l in logics] == ["DENEME Bonusu", "Kampanya"]
        assert logics[0].deposit_timing == "after"
        assert logics[1].deposit_timing == "before"

    def test_find_by_bonus_name(self):
        logics = [SpecialBonusLogic(name="500 DENEME Bonusu", deposit_timing="after")]
        found = find_special_logic("Tg ve Mobil app 500 DENEME Bonusu", logics)
        assert found is not None
        assert found.deposit_timing == "after"
        assert find_special_logic("Hoş Geldin", logics) is None

    def test_formula_override(self):
        override = formula_override("min(deposit + bonus, 1500)")
        withdrawal = Withdrawal(id="w1", customer_id="C1", amount=2000, request_date=datetime(2025, 1, 3))
        value, log = override(withdrawal, make_deposit(2000), make_bonus(amount=500), None)
        assert value == 1500
        assert "Özel hesaplama" in log

    def test_broken_formula_override_falls_through(self):
        override = formula_override("deposit ***")
        withdrawal = Withdrawal(id="w1", customer_id="C1", amount=2000, request_date=datetime(2025, 1, 3))
        assert override(withdrawal, make_deposit(), make_bonus(), None) is None


class TestAIRules:
    """Test suite for AI-assisted rule helpers"""

    def test_find_prompt(self):
        prompts = [AIRulePrompt(id="p1", bonus_name="Hafta Sonu", prompt="yatırımın 4 katı")]
        assert find_prompt("Hafta Sonu Bonusu", prompts).id == "p1"

    def test_empty_prompt_falls_back_to_name(self):
        prompt = AIRulePrompt(id="p1", bonus_name="Kayıp Bonusu", prompt="")
        parsed = rule_from_prompt(prompt)
        assert parsed.calculation_type == "unlimited"

    def test_calculate_multiplier(self):
        parsed = parse_bonus_rule_text("yatırımın 5 katı")
        result = calculate_max_withdrawal(parsed, make_deposit(1000), make_bonus())
        assert result.max_allowed == 5000
        assert result.confidence == parsed.confidence

    def test_missing_deposit_halves_confidence(self):
        parsed = parse_bonus_rule_text("yatırımın 5 katı")
        result = calculate_max_withdrawal(parsed, None, make_bonus())
        assert result.max_allowed == 0
        assert result.confidence == pytest.approx(parsed.confidence / 2)

    def test_unlimited(self):
        parsed = parse_bonus_rule_text("sınırsız")
        result = calculate_max_withdrawal(parsed, None, None)
        assert math.isinf(result.max_allowed)

    def test_suggest_rule_updates(self):
        rules = [
            BonusRule(id="r1", bonus_name="VIP 5x yatırım", calculation_type="fixed"),
            BonusRule(id="r2", bonus_name="Kayıp Bonusu", calculation_type="fixed", max_withdrawal_formula="Sınırsız"),
            BonusRule(id="r3", bonus_name="Özel", calculation_type="fixed", max_withdrawal_formula="deposit * 2"),
            BonusRule(id="r4", bonus_name="Hoş Geldin", calculation_type="fixed"),
        ]
        proposals, errors = suggest_rule_updates(rules)

        by_id = {r.id: r for r in proposals}
        assert errors == []
        assert set(by_id) == {"r1", "r2"}
        assert by_id["r1"].calculation_type == "multiplier"
        assert by_id["r1"].max_withdrawal_formula == "deposit * 5"
        assert by_id["r2"].max_withdrawal_formula == "Sınırsız"
        # Originals are untouched
        assert rules[0].calculation_type == "fixed"
