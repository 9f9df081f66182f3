"""Natural-language bonus rule parser.

Turns free-text rule descriptions ("yatırımın 5 katı", "maksimum 1500 TL")
into a withdrawal limit formula with a confidence score.

Two variants:
    parse_bonus_rule_text: prompt-style descriptions -> structured rule
    parse_formula_text:    mostly-numeric descriptions -> capped/conditional formula

Each variant is an ordered table of PatternRule entries; the first entry whose
predicate holds and whose extractor returns a result wins. New patterns are
appended to the table without touching earlier ones.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional

from validation.models import CalculationType, ParsedRule


TURKISH_FOLD = str.maketrans({
    "ı": "i",
    "ş": "s",
    "ğ": "g",
    "ü": "u",
    "ö": "o",
    "ç": "c",
})

# "1.500" and "1.500,50" are thousands-grouped; a lone comma is the decimal separator.
NUMBER = r"(\d{1,3}(?:\.\d{3})+(?!\d)(?:,\d+)?|\d+(?:[.,]\d+)?)"
GROUPED_NUMBER = re.compile(r"\d{1,3}(?:\.\d{3})+(?:,\d+)?")
MULTIPLIER_AFTER_NUMBER = re.compile(NUMBER + r"\s*(?:×|x(?![a-z])|kat)")
MULTIPLIER_BEFORE_NUMBER = re.compile(r"(?:×|\*|(?<![a-z])x|carp[a-z]*)\s*" + NUMBER)
PLUS_FIXED = re.compile(r"(?:\+|(?<![a-z])arti|(?<![a-z])plus)\s*" + NUMBER)
PERCENT = re.compile(r"%\s*" + NUMBER + r"|" + NUMBER + r"\s*%")
MAX_AMOUNT = re.compile(r"maksimum\s+" + NUMBER + r"\s*(?:tl|₺|lira)")
DEPOSIT_AMOUNT = re.compile(r"yatirim\s+miktari\s+" + NUMBER + r"\s*(?:tl|₺|lira)")

UNLIMITED_KEYWORDS = (
    "sinirsiz", "unlimited", "limitsiz", "limit yok",
    "freespin", "free spin", "tam destek", "kayip bonusu",
)
DEPOSIT_KEYWORDS = ("yatirim", "deposit", "anapara")
LOSS_KEYWORDS = ("kayip", "loss")


def fold_text(text: str) -> str:
    """Lowercase with Turkish letters folded to ASCII, whitespace collapsed."""
    s = text.replace("İ", "i").replace("I", "i").lower().translate(TURKISH_FOLD)
    return re.sub(r"\s+", " ", s).strip()


def _number(raw: str) -> float:
    if GROUPED_NUMBER.fullmatch(raw):
        return float(raw.replace(".", "").replace(",", "."))
    return float(raw.replace(",", "."))


def _fmt(value: float) -> str:
    """5.0 -> '5', 1.5 -> '1.5'."""
    return str(int(value)) if float(value).is_integer() else repr(float(value))


def _find_multiplier(text: str) -> Optional[float]:
    match = MULTIPLIER_AFTER_NUMBER.search(text) or MULTIPLIER_BEFORE_NUMBER.search(text)
    return _number(match.group(1)) if match else None


def _has_deposit_word(text: str) -> bool:
    return any(k in text for k in DEPOSIT_KEYWORDS)


def _rule(
    calculation_type: CalculationType,
    formula: str,
    confidence: float,
    reasoning: str,
    source: str,
    multiplier: Optional[float] = None,
    fixed_amount: Optional[float] = None,
) -> ParsedRule:
    return ParsedRule(
        calculation_type=calculation_type,
        formula=formula,
        multiplier=multiplier,
        fixed_amount=fixed_amount,
        confidence=confidence,
        reasoning=reasoning,
        source_text=source,
    )


@dataclass(frozen=True)
class PatternRule:
    """One step of a parse cascade."""
    name: str
    predicate: Callable[[str], bool]
    extractor: Callable[[str, str, float], Optional[ParsedRule]]  # (folded, source, confidence)
    confidence: float


def _run_cascade(rules: list[PatternRule], text: str) -> Optional[ParsedRule]:
    if not text or not text.strip():
        return None
    folded = fold_text(text)
    for rule in rules:
        if rule.predicate(folded):
            parsed = rule.extractor(folded, text, rule.confidence)
            if parsed is not None:
                return parsed
    return None


# --- Prompt variant -------------------------------------------------------

def _unlimited_keyword(folded: str, source: str, confidence: float) -> ParsedRule:
    keyword = next(k for k in UNLIMITED_KEYWORDS if k in folded)
    return _rule("unlimited", "Infinity", confidence, f"Sınırsız çekim anahtar kelimesi: '{keyword}'", source)


def _prompt_multiplier(folded: str, source: str, confidence: float) -> Optional[ParsedRule]:
    multiplier = _find_multiplier(folded)
    if multiplier is None:
        return None

    has_bonus = "bonus" in folded
    has_deposit = _has_deposit_word(folded)

    if "toplam" in folded or (has_bonus and has_deposit):
        base, label = "(deposit + bonus)", "yatırım + bonus"
    elif has_bonus:
        base, label = "bonus", "bonus"
    elif has_deposit:
        base, label = "deposit", "yatırım"
    else:
        base, label = "deposit", "yatırım (varsayılan taban)"
        confidence = 0.8

    return _rule(
        "multiplier",
        f"{base} * {_fmt(multiplier)}",
        confidence,
        f"Çarpan tespit edildi: {label} × {_fmt(multiplier)}",
        source,
        multiplier=multiplier,
    )


def _prompt_plus_fixed(folded: str, source: str, confidence: float) -> Optional[ParsedRule]:
    match = PLUS_FIXED.search(folded)
    if match is None:
        return None
    amount = _number(match.group(1))
    return _rule(
        "fixed",
        f"deposit + {_fmt(amount)}",
        confidence,
        f"Yatırım + sabit tutar: {_fmt(amount)}",
        source,
        fixed_amount=amount,
    )


def _prompt_loss_percent(folded: str, source: str, confidence: float) -> ParsedRule:
    # Loss bonuses are unlimited regardless of the percentage
    match = PERCENT.search(folded)
    percent = match.group(1) or match.group(2)
    return _rule("unlimited", "Infinity", confidence, f"%{percent} kayıp bonusu: sınırsız çekim", source)


def _prompt_default(folded: str, source: str, confidence: float) -> ParsedRule:
    return _rule(
        "unlimited",
        "Infinity",
        confidence,
        "Belirsiz açıklama (ambiguous prompt): varsayılan sınırsız",
        source,
    )


PROMPT_RULES = [
    PatternRule(
        "unlimited_keyword",
        lambda t: any(k in t for k in UNLIMITED_KEYWORDS),
        _unlimited_keyword,
        0.95,
    ),
    PatternRule(
        "multiplier",
        lambda t: _find_multiplier(t) is not None,
        _prompt_multiplier,
        0.9,
    ),
    PatternRule("plus_fixed", lambda t: PLUS_FIXED.search(t) is not None, _prompt_plus_fixed, 0.85),
    PatternRule(
        "loss_percent",
        lambda t: PERCENT.search(t) is not None and any(k in t for k in LOSS_KEYWORDS),
        _prompt_loss_percent,
        0.9,
    ),
    PatternRule("default", lambda t: True, _prompt_default, 0.6),
]


def parse_bonus_rule_text(text: str) -> Optional[ParsedRule]:
    """Parse a prompt-style rule description.

    Returns None for empty text; otherwise always returns a rule, falling back
    to a low-confidence unlimited rule when nothing matches.
    """
    return _run_cascade(PROMPT_RULES, text)


parse = parse_bonus_rule_text


# --- Formula-text variant -------------------------------------------------

def _formula_max_amount(folded: str, source: str, confidence: float) -> ParsedRule:
    amount = _number(MAX_AMOUNT.search(folded).group(1))
    return _rule(
        "fixed",
        f"min(deposit + bonus, {_fmt(amount)})",
        confidence,
        f"Maksimum {_fmt(amount)}₺ çekim limiti",
        source,
    )


def _formula_deposit_amount(folded: str, source: str, confidence: float) -> ParsedRule:
    amount = _number(DEPOSIT_AMOUNT.search(folded).group(1))

    if "alti" in folded and "ustu" in folded and "inisiyatif" in folded:
        tolerance = amount * 0.2
        return _rule(
            "fixed",
            f"max(deposit - {_fmt(amount)}, {_fmt(amount)} - deposit) <= {_fmt(tolerance)} "
            f"? deposit + bonus : deposit * 1.5",
            0.7,
            f"Yatırım {_fmt(amount)}₺ civarında ise yatırım + bonus, değilse yatırım × 1.5",
            source,
        )

    return _rule(
        "fixed",
        f"deposit >= {_fmt(amount)} ? deposit + bonus : 0",
        confidence,
        f"Yatırım en az {_fmt(amount)}₺ olmalı",
        source,
    )


def _formula_multiplier(folded: str, source: str, confidence: float) -> Optional[ParsedRule]:
    multiplier = _find_multiplier(folded)
    if "bonus" in folded:
        base, label = "bonus", "Bonus"
    elif _has_deposit_word(folded):
        base, label = "deposit", "Yatırım"
    elif "toplam" in folded:
        base, label = "(deposit + bonus)", "(Yatırım + Bonus)"
    else:
        return None
    return _rule(
        "multiplier",
        f"{base} * {_fmt(multiplier)}",
        confidence,
        f"{label} × {_fmt(multiplier)}",
        source,
        multiplier=multiplier,
    )


def _formula_total(folded: str, source: str, confidence: float) -> ParsedRule:
    return _rule("fixed", "deposit + bonus", confidence, "Yatırım + Bonus", source, fixed_amount=0.0)


def _formula_single_base(base: str, label: str):
    def extract(folded: str, source: str, confidence: float) -> ParsedRule:
        multiplier = _find_multiplier(folded) or 1.0
        return _rule(
            "multiplier",
            f"{base} * {_fmt(multiplier)}",
            confidence,
            f"{label} × {_fmt(multiplier)}",
            source,
            multiplier=multiplier,
        )
    return extract


def _formula_unparsed(folded: str, source: str, confidence: float) -> ParsedRule:
    return _rule("fixed", source.strip(), confidence, "Manuel formül (parse edilemedi)", source)


FORMULA_TEXT_RULES = [
    PatternRule("max_amount", lambda t: MAX_AMOUNT.search(t) is not None, _formula_max_amount, 0.9),
    PatternRule("deposit_amount", lambda t: DEPOSIT_AMOUNT.search(t) is not None, _formula_deposit_amount, 0.8),
    PatternRule("multiplier", lambda t: _find_multiplier(t) is not None, _formula_multiplier, 0.9),
    PatternRule(
        "total",
        lambda t: "toplam" in t or ("yatirim" in t and "bonus" in t),
        _formula_total,
        0.7,
    ),
    PatternRule(
        "bonus_only",
        lambda t: "bonus" in t and not _has_deposit_word(t),
        _formula_single_base("bonus", "Bonus"),
        0.8,
    ),
    PatternRule(
        "deposit_only",
        lambda t: _has_deposit_word(t) and "bonus" not in t,
        _formula_single_base("deposit", "Yatırım"),
        0.8,
    ),
    PatternRule("unparsed", lambda t: True, _formula_unparsed, 0.3),
]


def parse_formula_text(text: str) -> Optional[ParsedRule]:
    """Parse a mostly-numeric description into a capped or conditional formula."""
    return _run_cascade(FORMULA_TEXT_RULES, text)


def suggest_formula(text: str, threshold: float = 0.5) -> Optional[str]:
    """Formula for the manual-entry assist, or None below the confidence threshold."""
    parsed = parse_formula_text(text)
    if parsed is None or parsed.confidence < threshold:
        return None
    return parsed.formula
