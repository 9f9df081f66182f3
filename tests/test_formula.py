"""
Unit tests for the withdrawal limit formula evaluator

© 2026 Finans Kontrol Ekibi
"""
import math
import pytest
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rules.formula import (
    FormulaError,
    evaluate,
    substitute_variables,
    tokenize,
    try_evaluate,
    validate_formula,
)


def vars_(deposit=0, bonus=0, withdrawal=0, multiplier=0, fixed=0):
    return {
        "deposit": deposit,
        "bonus": bonus,
        "withdrawal": withdrawal,
        "multiplier": multiplier,
        "fixed": fixed,
    }


class TestArithmetic:
    """Test suite for basic formula evaluation"""

    def test_deposit_times_multiplier(self):
        assert evaluate("deposit * multiplier", vars_(deposit=100, multiplier=5)) == 500

    def test_parenthesized_sum(self):
        assert evaluate("(deposit + bonus) * 3", vars_(deposit=100, bonus=50)) == 450

    def test_operator_precedence(self):
        assert evaluate("deposit + bonus * 2", vars_(deposit=100, bonus=50)) == 200

    def test_division(self):
        assert evaluate("deposit / 4", vars_(deposit=100)) == 25

    def test_unary_minus(self):
        assert evaluate("-deposit + 300", vars_(deposit=100)) == 200

    def test_fixed_variable(self):
        assert evaluate("deposit + fixed", vars_(deposit=1000, fixed=500)) == 1500

    def test_withdrawal_variable(self):
        assert evaluate("withdrawal - deposit", vars_(deposit=100, withdrawal=250)) == 150


class TestFunctionsAndConditionals:
    """Test suite for min/max and ternary expressions"""

    def test_min_caps_limit(self):
        assert evaluate("min(deposit + bonus, 1500)", vars_(deposit=2000, bonus=500)) == 1500

    def test_math_prefix_supported(self):
        assert evaluate("Math.max(deposit, bonus)", vars_(deposit=100, bonus=300)) == 300

    def test_ternary_true_branch(self):
        formula = "deposit >= 1000 ? deposit + bonus : 0"
        assert evaluate(formula, vars_(deposit=1000, bonus=200)) == 1200

    def test_ternary_false_branch(self):
        formula = "deposit >= 1000 ? deposit + bonus : 0"
        assert evaluate(formula, vars_(deposit=999, bonus=200)) == 0

    def test_comparison_with_expressions(self):
        formula = "max(deposit - 500, 500 - deposit) <= 100 ? deposit + bonus : deposit * 1.5"
        assert evaluate(formula, vars_(deposit=450, bonus=100)) == 550
        assert evaluate(formula, vars_(deposit=1000, bonus=100)) == 1500

    def test_parenthesized_condition(self):
        formula = "(deposit > 100) ? deposit : 0"
        assert evaluate(formula, vars_(deposit=500)) == 500
        assert evaluate(formula, vars_(deposit=50)) == 0

    def test_infinity_literal(self):
        assert math.isinf(evaluate("Infinity", vars_()))


class TestErrors:
    """Test suite for invalid formulas"""

    def test_garbage_returns_zero(self):
        assert evaluate("not a formula", vars_(deposit=100)) == 0

    def test_try_evaluate_reports_error(self):
        value, error = try_evaluate("deposit *", vars_(deposit=100))
        assert value == 0
        assert error is not None

    def test_empty_formula(self):
        assert try_evaluate("", vars_()) == (0.0, "Boş formül")
        assert try_evaluate(None, vars_()) == (0.0, "Boş formül")

    def test_division_by_zero(self):
        value, error = try_evaluate("deposit / bonus", vars_(deposit=100, bonus=0))
        assert value == 0
        assert "Sıfıra" in error

    def test_code_injection_rejected(self):
        value, error = try_evaluate("__import__('os').system('ls')", vars_())
        assert value == 0
        assert error is not None

    def test_comparison_without_ternary(self):
        value, error = try_evaluate("deposit > 100", vars_(deposit=500))
        assert value == 0
        assert error is not None

    def test_condition_not_usable_as_number(self):
        formulas = (
            "(deposit > 100) + 1",
            "-(deposit > 100)",
            "min((deposit > 1), 2)",
            "(deposit > 1) > 0 ? 1 : 2",
        )
        for formula in formulas:
            value, error = try_evaluate(formula, vars_(deposit=500))
            assert value == 0
            assert error == "Karşılaştırma sonucu sayı değil"

    def test_ternary_needs_comparison(self):
        _, error = try_evaluate("(deposit) ? 1 : 0", vars_(deposit=500))
        assert error == "Koşul karşılaştırma içermeli"

    def test_unknown_variable(self):
        _, error = try_evaluate("balance * 2", vars_())
        assert error is not None

    def test_min_needs_two_args(self):
        _, error = try_evaluate("min(deposit)", vars_(deposit=1))
        assert error is not None

    def test_tokenize_rejects_bad_characters(self):
        with pytest.raises(FormulaError):
            tokenize("deposit ; bonus")


class TestHelpers:
    """Test suite for substitution and validation helpers"""

    def test_substitution_is_whole_word(self):
        result = substitute_variables("deposit + deposits", {"deposit": 10})
        assert result == "10.0 + deposits"

    def test_negative_values_wrapped(self):
        result = substitute_variables("bonus - deposit", {"deposit": -5, "bonus": 1})
        assert result == "1.0 - (-5.0)"
        assert evaluate("bonus - deposit", vars_(deposit=-5, bonus=1)) == 6

    def test_validate_formula(self):
        assert validate_formula("min(deposit + bonus, 1500)") is None
        assert validate_formula("deposit ** 2") is not None
