"""Withdrawal limit formula evaluator.

Evaluates small arithmetic formulas such as ``deposit * multiplier`` or
``deposit >= 1000 ? deposit + bonus : 0`` over a fixed variable set.
Formulas are tokenized and parsed by hand; nothing outside the variable
set and the min/max functions is reachable.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


ALLOWED_VARIABLES = ("deposit", "bonus", "withdrawal", "multiplier", "fixed")
ALLOWED_FUNCTIONS = {"min": min, "max": max}
COMPARISONS = {
    ">=": lambda a, b: a >= b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    "<": lambda a, b: a < b,
    "==": lambda a, b: a == b,
}

TOKEN_PATTERN = re.compile(
    r"\s*(?:"
    r"(?P<number>\d+(?:\.\d*)?(?:[eE][-+]?\d+)?|\.\d+(?:[eE][-+]?\d+)?)"
    r"|(?P<op>>=|<=|==|[-+*/(),?:<>])"
    r"|(?P<name>[A-Za-z_][A-Za-z_0-9]*(?:\.[A-Za-z_][A-Za-z_0-9]*)?)"
    r")"
)


class FormulaError(ValueError):
    """Formula could not be evaluated."""
    pass


@dataclass
class Token:
    kind: str   # 'number', 'op', 'name', 'end'
    value: str


def _format_number(value: float) -> str:
    if math.isinf(value):
        return "Infinity" if value > 0 else "(-Infinity)"
    text = repr(float(value))
    return f"({text})" if value < 0 else text


def substitute_variables(expression: str, variables: dict[str, float]) -> str:
    """Replace each known variable name (whole word) with its numeric value."""
    for name, value in variables.items():
        if name not in ALLOWED_VARIABLES:
            continue
        expression = re.sub(rf"\b{name}\b", _format_number(value or 0), expression)
    return expression


def tokenize(expression: str) -> list[Token]:
    tokens = []
    pos = 0
    text = expression.rstrip()
    while pos < len(text):
        match = TOKEN_PATTERN.match(text, pos)
        if match is None or match.end() == pos:
            raise FormulaError(f"Geçersiz karakter: {text[pos:pos + 10]!r}")
        kind = match.lastgroup
        tokens.append(Token(kind, match.group(kind)))
        pos = match.end()
    tokens.append(Token("end", ""))
    return tokens


@dataclass
class _Condition:
    """Result of a comparison; only usable before '?'."""
    value: bool


def _num(value) -> float:
    if isinstance(value, _Condition):
        raise FormulaError("Karşılaştırma sonucu sayı değil")
    return value


class _Parser:
    """Recursive-descent evaluator.

    Grammar:
        conditional := additive [compare additive] ['?' conditional ':' conditional]
        additive    := term (('+' | '-') term)*
        term        := unary (('*' | '/') unary)*
        unary       := ('-' | '+') unary | primary
        primary     := number | 'Infinity' | func '(' args ')' | '(' conditional ')'

    A comparison yields a condition, not a number. It may only be followed
    by '?', either directly or from inside parentheses.
    """

    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.pos = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def _expect(self, value: str) -> None:
        token = self._advance()
        if token.value != value:
            raise FormulaError(f"'{value}' bekleniyordu, '{token.value}' bulundu")

    def parse(self) -> float:
        if self.current.kind == "end":
            raise FormulaError("Boş formül")
        result = _num(self.conditional())
        if self.current.kind != "end":
            raise FormulaError(f"Beklenmeyen ifade: '{self.current.value}'")
        return result

    def conditional(self):
        left = self.additive()
        if self.current.value in COMPARISONS:
            operator = self._advance().value
            right = self.additive()
            left = _Condition(COMPARISONS[operator](_num(left), _num(right)))

        if self.current.value != "?":
            return left
        if not isinstance(left, _Condition):
            raise FormulaError("Koşul karşılaştırma içermeli")
        self._advance()
        then_value = _num(self.conditional())
        self._expect(":")
        else_value = _num(self.conditional())
        return then_value if left.value else else_value

    def additive(self):
        value = self.term()
        while self.current.value in ("+", "-"):
            op = self._advance().value
            right = _num(self.term())
            value = _num(value) + right if op == "+" else _num(value) - right
        return value

    def term(self):
        value = self.unary()
        while self.current.value in ("*", "/"):
            op = self._advance().value
            right = _num(self.unary())
            if op == "*":
                value = _num(value) * right
            else:
                if right == 0:
                    raise FormulaError("Sıfıra bölme")
                value = _num(value) / right
        return value

    def unary(self):
        if self.current.value == "-":
            self._advance()
            return -_num(self.unary())
        if self.current.value == "+":
            self._advance()
            return _num(self.unary())
        return self.primary()

    def primary(self):
        token = self._advance()

        if token.kind == "number":
            return float(token.value)

        if token.value == "(":
            value = self.conditional()
            self._expect(")")
            return value

        if token.kind == "name":
            name = token.value[5:] if token.value.startswith("Math.") else token.value
            if name == "Infinity":
                return math.inf
            if name in ALLOWED_FUNCTIONS:
                return self._call(name)
            raise FormulaError(f"Bilinmeyen ifade: '{token.value}'")

        raise FormulaError(f"Beklenmeyen ifade: '{token.value or 'formül sonu'}'")

    def _call(self, name: str) -> float:
        self._expect("(")
        args = [_num(self.conditional())]
        while self.current.value == ",":
            self._advance()
            args.append(_num(self.conditional()))
        self._expect(")")
        if len(args) < 2:
            raise FormulaError(f"{name}() en az iki argüman almalı")
        return ALLOWED_FUNCTIONS[name](args)


def try_evaluate(expression: str, variables: dict[str, float]) -> tuple[float, Optional[str]]:
    """Evaluate a formula, returning (value, error).

    On failure the value is 0 and error describes the problem, so callers can
    tell a broken formula apart from a legitimate zero limit.
    """
    if expression is None or not str(expression).strip():
        return 0.0, "Boş formül"

    try:
        substituted = substitute_variables(str(expression), variables)
        result = _Parser(tokenize(substituted)).parse()
    except FormulaError as e:
        logger.warning("Formül değerlendirme hatası: %s (%s)", e, expression)
        return 0.0, str(e)
    except (OverflowError, RecursionError) as e:
        logger.warning("Formül değerlendirme hatası: %s (%s)", e, expression)
        return 0.0, f"Hesaplama hatası: {e}"

    if math.isnan(result):
        return 0.0, "Sonuç sayı değil"
    return result, None


def evaluate(expression: str, variables: dict[str, float]) -> float:
    """Evaluate a formula; any error yields 0."""
    value, _ = try_evaluate(expression, variables)
    return value


def validate_formula(expression: str) -> Optional[str]:
    """Check formula syntax against sample values. Returns an error message or None."""
    sample = {name: 1.0 for name in ALLOWED_VARIABLES}
    _, error = try_evaluate(expression, sample)
    return error
