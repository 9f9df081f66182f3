"""Withdrawal Analyzer.

Checks every withdrawal against the limit of the bonus that preceded it:

    1. Most recent bonus of the customer strictly before the request date
    2. Deposit linked to that bonus (set by the deposit matcher)
    3. Bonus rule: configured rule -> AI prompt -> bonus name parse
    4. Limit from special logic, calculation type or formula
    5. Overpayment if the withdrawal exceeds a finite limit

Every decision is written to a calculation log that operators review in the
withdrawal error report. Reconciliation fields are written back to the store
on every run (full recompute).
"""

import logging
import math
from collections import defaultdict
from typing import Optional, Sequence

from rules.ai_rules import find_prompt, rule_from_prompt
from rules.formula import try_evaluate
from rules.nl_parser import parse_bonus_rule_text
from rules.resolver import MatchPolicy, resolve_rule
from rules.special_logic import SpecialBonusLogic, find_special_logic
from storage.record_store import RecordStore
from validation.models import (
    AIRulePrompt,
    AnalysisResult,
    Bonus,
    BonusRule,
    Deposit,
    ParsedRule,
    STATUS_BONUS_YOK,
    STATUS_DOGRU,
    STATUS_HATA,
    STATUS_HESAPLAMA_HATASI,
    STATUS_KURAL_YOK,
    Withdrawal,
)

from .format_utils import format_turkish_date, tl

logger = logging.getLogger(__name__)


def processing_time_minutes(withdrawal: Withdrawal) -> int:
    """Minutes from request to payment, rounded half up; 0 when unpaid."""
    if withdrawal.payment_date is None:
        return 0
    minutes = (withdrawal.payment_date - withdrawal.request_date).total_seconds() / 60
    return math.floor(minutes + 0.5)


def find_bonus_for_withdrawal(withdrawal: Withdrawal, bonuses: Sequence[Bonus]) -> Optional[Bonus]:
    """Latest bonus of the same customer with effective date strictly before the request."""
    latest = None
    for bonus in bonuses:
        if bonus.customer_id != withdrawal.customer_id:
            continue
        if bonus.effective_date >= withdrawal.request_date:
            continue
        if latest is None or bonus.effective_date > latest.effective_date:
            latest = bonus
    return latest


def classify_withdrawal(amount: float, max_allowed: float) -> tuple[bool, float]:
    """Return (is_overpayment, overpayment_amount).

    Any amount above the limit is an overpayment; the reported amount is
    rounded to kuruş with a floor of 0.01.
    """
    if math.isinf(max_allowed) or amount <= max_allowed:
        return False, 0.0
    return True, max(round(amount - max_allowed, 2), 0.01)


def _limit_text(max_allowed: float) -> str:
    """Currency text; sub-kuruş limits also show the exact value."""
    text = tl(max_allowed)
    if round(max_allowed, 2) != max_allowed:
        text += f" (tam: {max_allowed:.6g})"
    return text


def _formula_variables(
    rule: BonusRule,
    withdrawal: Withdrawal,
    deposit: Optional[Deposit],
    bonus: Bonus,
) -> dict[str, float]:
    return {
        "deposit": deposit.amount if deposit else 0.0,
        "bonus": bonus.amount,
        "withdrawal": withdrawal.amount,
        "multiplier": rule.multiplier or 0.0,
        "fixed": rule.fixed_amount or 0.0,
    }


def calculation_type_limit(
    rule: BonusRule,
    deposit: Optional[Deposit],
    bonus: Bonus,
) -> tuple[float, list[str]]:
    """Limit from the rule's calculation type alone."""
    if rule.calculation_type == "unlimited":
        return math.inf, ["Hesaplama: Sınırsız çekim"]

    if rule.calculation_type == "fixed":
        if deposit is not None:
            value = deposit.amount + rule.fixed_amount
            return value, [
                f"Hesaplama: Yatırım + Sabit Miktar = {tl(deposit.amount)} + {tl(rule.fixed_amount)} = {tl(value)}"
            ]
        return rule.fixed_amount, [f"Hesaplama: Sabit Miktar = {tl(rule.fixed_amount)}"]

    # multiplier
    if deposit is not None:
        value = deposit.amount * rule.multiplier
        return value, [
            f"Hesaplama: Yatırım × Çarpan = {tl(deposit.amount)} × {rule.multiplier:g} = {tl(value)}"
        ]
    value = bonus.amount * rule.multiplier
    return value, [
        "Not: Yatırım bulunamadı, bonus tutarı taban alındı",
        f"Hesaplama: Bonus × Çarpan = {tl(bonus.amount)} × {rule.multiplier:g} = {tl(value)}",
    ]


def compute_rule_limit(
    rule: BonusRule,
    withdrawal: Withdrawal,
    deposit: Optional[Deposit],
    bonus: Bonus,
) -> tuple[float, list[str]]:
    """Maximum allowed withdrawal for a resolved rule, with log lines.

    A formula overrides the calculation type; if it fails to evaluate, the
    calculation type is used as fallback.
    """
    if rule.calculation_type == "unlimited":
        return calculation_type_limit(rule, deposit, bonus)

    if not rule.has_formula:
        return calculation_type_limit(rule, deposit, bonus)

    variables = _formula_variables(rule, withdrawal, deposit, bonus)
    value, error = try_evaluate(rule.max_withdrawal_formula, variables)
    if error is None and value == -math.inf:
        error = "Negatif sonsuz sonuç"

    lines = [f"Formül: {rule.max_withdrawal_formula}"]
    if error is None:
        lines.append(
            "Değişkenler: "
            + ", ".join(f"{k}={v:g}" for k, v in variables.items() if k != "withdrawal")
        )
        lines.append(f"Hesaplanan Max: {_limit_text(value)}")
        return value, lines

    lines.append(f"Formül hatası! ({error}) Fallback hesaplamaya geçiliyor.")
    value, fallback_lines = calculation_type_limit(rule, deposit, bonus)
    lines.extend(fallback_lines)
    lines.append(f"Fallback Max: {tl(value)}")
    return value, lines


class WithdrawalAnalyzer:
    """Classifies withdrawals as compliant or overpayment."""

    def __init__(
        self,
        store: RecordStore,
        special_logics: Sequence[SpecialBonusLogic] = (),
        nl_confidence_threshold: float = 0.7,
        match_policy: MatchPolicy = "longest",
    ):
        self.store = store
        self.special_logics = list(special_logics)
        self.nl_confidence_threshold = nl_confidence_threshold
        self.match_policy = match_policy

    def resolve_bonus_rule(
        self,
        bonus: Bonus,
        rules: Sequence[BonusRule],
        prompts: Sequence[AIRulePrompt] = (),
    ) -> tuple[Optional[BonusRule], Optional[str], Optional[ParsedRule]]:
        """Find the rule for a bonus.

        Returns:
            Tuple of (rule, source, parsed) where source is "rule", "ai_prompt",
            "bonus_name" or None. For NL-derived rules, rule is a BonusRule built
            from the parse and parsed holds the parse itself.
        """
        rule = resolve_rule(bonus.bonus_name, rules, self.match_policy)
        if rule is not None:
            return rule, "rule", None

        prompt = find_prompt(bonus.bonus_name, prompts, self.match_policy)
        if prompt is not None:
            parsed = rule_from_prompt(prompt)
            if parsed is not None and parsed.confidence > self.nl_confidence_threshold:
                return parsed.to_bonus_rule(bonus.bonus_name, f"ai:{prompt.id}"), "ai_prompt", parsed

        parsed = parse_bonus_rule_text(bonus.bonus_name)
        if parsed is not None and parsed.confidence > self.nl_confidence_threshold:
            return parsed.to_bonus_rule(bonus.bonus_name), "bonus_name", parsed

        return None, None, parsed

    def analyze_withdrawal(
        self,
        withdrawal: Withdrawal,
        bonuses: Sequence[Bonus],
        deposits_by_id: dict[str, Deposit],
        rules: Sequence[BonusRule],
        prompts: Sequence[AIRulePrompt] = (),
    ) -> AnalysisResult:
        """Analyze a single withdrawal (no store writes)."""
        minutes = processing_time_minutes(withdrawal)
        log = [
            "=== ÇEKİM HATA RAPORU ===",
            f"Müşteri: {withdrawal.customer_id}",
            f"Çekim Miktarı: {tl(withdrawal.amount)}",
            f"Çekim Tarihi: {format_turkish_date(withdrawal.request_date)}",
            "",
        ]

        bonus = find_bonus_for_withdrawal(withdrawal, bonuses)
        if bonus is None:
            log.append("ℹ️ BONUS YOK: Bu çekim için eşleşen bonus bulunamadı")
            log.append("Limit kontrolü yapılamadı.")
            return self._result(withdrawal, log, STATUS_BONUS_YOK, minutes)

        deposit = deposits_by_id.get(bonus.deposit_id) if bonus.deposit_id else None
        if deposit is not None:
            log.append(f"Yatırım: {tl(deposit.amount)} ({format_turkish_date(deposit.deposit_date)})")
        else:
            log.append("Yatırım: bulunamadı (deposit not found)")
        log.append(f"Bonus: {bonus.bonus_name}")
        log.append(f"Bonus Miktarı: {tl(bonus.amount)}")
        log.append(f"Bonus Tarihi: {format_turkish_date(bonus.effective_date)}")
        log.append("")

        rule, source, parsed = self.resolve_bonus_rule(bonus, rules, prompts)
        if rule is None:
            log.append(f'⚠️ UYARI: "{bonus.bonus_name}" için kural bulunamadı!')
            if parsed is not None:
                log.append(f"AI çıkarımı yetersiz güven: %{parsed.confidence * 100:.0f} ({parsed.reasoning})")
            log.append("Lütfen bonus kurallarını kontrol edin.")
            return self._result(
                withdrawal, log, STATUS_KURAL_YOK, minutes,
                deposit=deposit, bonus=bonus, parsed_rule=parsed,
            )

        if source == "rule":
            log.append(f"Kural: {rule.bonus_name} ({rule.calculation_type})")
        else:
            origin = "AI prompt" if source == "ai_prompt" else "bonus adı"
            log.append(f"Kural: AI çıkarımı ({origin}, güven %{parsed.confidence * 100:.0f}): {parsed.reasoning}")

        max_allowed = None
        logic = find_special_logic(bonus.bonus_name, self.special_logics, self.match_policy)
        if logic is not None and logic.calculation_override is not None:
            override = logic.calculation_override(withdrawal, deposit, bonus, rule)
            if override is not None:
                max_allowed, override_log = override
                log.append(override_log.rstrip("\n"))

        if max_allowed is None:
            max_allowed, limit_lines = compute_rule_limit(rule, withdrawal, deposit, bonus)
            log.extend(limit_lines)

        is_overpayment, overpayment_amount = classify_withdrawal(withdrawal.amount, max_allowed)

        log.append("")
        if math.isinf(max_allowed):
            log.append("✅ DOĞRU: Sınırsız çekim (limit kontrolü yok)")
        elif is_overpayment:
            log.append("❌ HATA: FAZLA ÖDEME TESPİT EDİLDİ!")
            log.append(f"Çekilen: {tl(withdrawal.amount)}")
            log.append(f"Max İzin Verilen: {_limit_text(max_allowed)}")
            log.append(f"Fazla Ödeme: {tl(overpayment_amount)}")
        else:
            log.append("✅ DOĞRU: Çekim limiti içinde")
            log.append(f"Çekilen: {tl(withdrawal.amount)}")
            log.append(f"Max İzin Verilen: {_limit_text(max_allowed)}")

        return self._result(
            withdrawal,
            log,
            STATUS_HATA if is_overpayment else STATUS_DOGRU,
            minutes,
            deposit=deposit,
            bonus=bonus,
            bonus_rule=rule if source == "rule" else None,
            max_allowed=max_allowed,
            is_overpayment=is_overpayment,
            overpayment_amount=overpayment_amount,
            rule_source=source,
            parsed_rule=parsed,
        )

    @staticmethod
    def _result(withdrawal: Withdrawal, log: list[str], status: str, minutes: int, **fields) -> AnalysisResult:
        log.append("")
        log.append(f"📊 DURUM: {status}")
        return AnalysisResult(
            withdrawal=withdrawal,
            status=status,
            processing_time_minutes=minutes,
            calculation_log="\n".join(log) + "\n",
            **fields,
        )

    def _failed_result(self, withdrawal: Withdrawal, error: Exception) -> AnalysisResult:
        log = [
            "=== ÇEKİM HATA RAPORU ===",
            f"Müşteri: {withdrawal.customer_id}",
            f"Çekim Miktarı: {tl(withdrawal.amount)}",
            f"Çekim Tarihi: {format_turkish_date(withdrawal.request_date)}",
            "",
            f"⚠️ HESAPLAMA HATASI: {error}",
        ]
        return self._result(
            withdrawal, log, STATUS_HESAPLAMA_HATASI, processing_time_minutes(withdrawal)
        )

    def _persist(self, result: AnalysisResult) -> AnalysisResult:
        """Write reconciliation fields back; returns the result with the stored withdrawal."""
        limited = result.status in (STATUS_DOGRU, STATUS_HATA) and not math.isinf(result.max_allowed)
        updated = self.store.update_withdrawal(
            result.withdrawal.id,
            deposit_id=result.deposit.id if result.deposit else None,
            bonus_id=result.bonus.id if result.bonus else None,
            max_allowed_withdrawal=result.max_allowed if limited else None,
            is_overpayment=result.is_overpayment,
            overpayment_amount=result.overpayment_amount,
            processing_time_minutes=result.processing_time_minutes,
        )
        return result.model_copy(update={"withdrawal": updated})

    def analyze_all(self) -> list[AnalysisResult]:
        """Analyze every withdrawal and persist the reconciliation fields.

        A failure while resolving one withdrawal is recorded as
        HESAPLAMA_HATASI and the batch continues; store errors propagate.
        """
        withdrawals = self.store.withdrawals()
        if not withdrawals:
            return []

        deposits_by_id = {d.id: d for d in self.store.deposits()}
        bonuses_by_customer: dict[str, list[Bonus]] = defaultdict(list)
        for bonus in self.store.bonuses():
            bonuses_by_customer[bonus.customer_id].append(bonus)
        rules = self.store.bonus_rules()
        prompts = self.store.ai_prompts()

        results = []
        for withdrawal in withdrawals:
            try:
                result = self.analyze_withdrawal(
                    withdrawal,
                    bonuses_by_customer.get(withdrawal.customer_id, []),
                    deposits_by_id,
                    rules,
                    prompts,
                )
            except Exception as e:
                logger.exception("Çekim %s analiz edilemedi", withdrawal.id)
                result = self._failed_result(withdrawal, e)

            results.append(self._persist(result))

        overpayments = sum(1 for r in results if r.is_overpayment)
        logger.info("Çekim analizi tamamlandı: %d çekim, %d fazla ödeme", len(results), overpayments)
        return results
