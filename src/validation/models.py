"""Data models for bonus control.

Pydantic models for deposits, bonuses, withdrawals and bonus rules.
Includes reconciliation fields written back by the withdrawal analyzer.
"""

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


CalculationType = Literal["fixed", "multiplier", "unlimited"]
AnalysisStatus = Literal["DOĞRU", "HATA", "BONUS_YOK", "KURAL_YOK", "HESAPLAMA_HATASI"]
RuleSource = Literal["rule", "ai_prompt", "bonus_name"]

STATUS_DOGRU = "DOĞRU"
STATUS_HATA = "HATA"
STATUS_BONUS_YOK = "BONUS_YOK"
STATUS_KURAL_YOK = "KURAL_YOK"
STATUS_HESAPLAMA_HATASI = "HESAPLAMA_HATASI"

UNLIMITED_SENTINEL = "Sınırsız"


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Drop timezone info so all comparisons happen on naive UTC datetimes."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class _Record(BaseModel):
    """Common base: immutable records with string ids."""

    model_config = {"frozen": True}

    @field_validator("id", "customer_id", mode="before", check_fields=False)
    @classmethod
    def coerce_id(cls, v):
        """Excel exports often hand ids over as numbers."""
        if v is None:
            return v
        return str(v).strip()

    @field_validator("customer_id", check_fields=False)
    @classmethod
    def customer_id_not_empty(cls, v):
        if not v:
            raise ValueError("customer_id boş olamaz")
        return v


class Deposit(_Record):
    """Customer deposit / Yatırım kaydı."""

    id: str = Field(..., description="Yatırım ID")
    customer_id: str = Field(..., description="Müşteri ID")
    amount: float = Field(..., description="Yatırım tutarı", ge=0)
    deposit_date: datetime = Field(..., description="Yatırım tarihi")

    @field_validator("deposit_date")
    @classmethod
    def normalize_date(cls, v):
        return _naive_utc(v)


class Bonus(_Record):
    """Bonus grant / Bonus kaydı."""

    id: str = Field(..., description="Bonus ID")
    customer_id: str = Field(..., description="Müşteri ID")
    bonus_name: str = Field(..., description="Bonus adı", min_length=1)
    amount: float = Field(..., description="Bonus tutarı", ge=0)
    acceptance_date: datetime = Field(..., description="Kabul tarihi")
    created_date: Optional[datetime] = Field(None, description="Oluşturma tarihi")
    created_by: Optional[str] = Field(None, description="Oluşturan personel")
    btag: Optional[str] = Field(None, description="Takip etiketi")
    deposit_id: Optional[str] = Field(None, description="Eşleşen yatırım ID")

    @field_validator("acceptance_date", "created_date")
    @classmethod
    def normalize_dates(cls, v):
        return _naive_utc(v)

    @property
    def effective_date(self) -> datetime:
        """created_date if present, else acceptance_date."""
        return self.created_date or self.acceptance_date


class Withdrawal(_Record):
    """Withdrawal request / Çekim talebi."""

    id: str = Field(..., description="Çekim ID")
    customer_id: str = Field(..., description="Müşteri ID")
    amount: float = Field(..., description="Çekim tutarı", ge=0)
    request_date: datetime = Field(..., description="Talep tarihi")
    payment_date: Optional[datetime] = Field(None, description="Ödeme tarihi")
    staff_name: str = Field(default="", description="İşlemi yapan personel")
    konum: Optional[str] = Field(None, description="Konum")
    btag: Optional[str] = Field(None, description="Takip etiketi")
    rejection_date: Optional[datetime] = Field(None, description="Red tarihi")

    # Reconciliation fields
    deposit_id: Optional[str] = Field(None, description="Eşleşen yatırım ID")
    bonus_id: Optional[str] = Field(None, description="Eşleşen bonus ID")
    max_allowed_withdrawal: Optional[float] = Field(None, description="İzin verilen max çekim (None = sınırsız)")
    is_overpayment: bool = Field(default=False, description="Fazla ödeme mi")
    overpayment_amount: float = Field(default=0.0, description="Fazla ödeme tutarı", ge=0)
    processing_time_minutes: Optional[int] = Field(None, description="İşlem süresi (dk)")

    @field_validator("request_date", "payment_date", "rejection_date")
    @classmethod
    def normalize_dates(cls, v):
        return _naive_utc(v)


class BonusRule(BaseModel):
    """Operator-configured bonus rule / Bonus kuralı."""

    id: str = Field(..., description="Kural ID")
    bonus_name: str = Field(..., description="Bonus adı (eşleştirme anahtarı)", min_length=1)
    calculation_type: CalculationType = Field(default="unlimited", description="Hesaplama tipi")
    multiplier: float = Field(default=0.0, description="Çarpan")
    fixed_amount: float = Field(default=0.0, description="Sabit tutar")
    max_withdrawal_formula: str = Field(default="", description="Max çekim formülü")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v).strip() if v is not None else v

    @field_validator("multiplier", "fixed_amount", mode="before")
    @classmethod
    def none_to_zero(cls, v):
        return 0.0 if v is None else v

    @field_validator("max_withdrawal_formula", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @property
    def has_formula(self) -> bool:
        """True when the formula overrides calculation_type."""
        formula = self.max_withdrawal_formula.strip()
        return bool(formula) and formula != UNLIMITED_SENTINEL

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "id": "r1",
                "bonus_name": "VIP 5x",
                "calculation_type": "multiplier",
                "multiplier": 5,
                "fixed_amount": 0,
                "max_withdrawal_formula": "",
            }
        },
    }


class AIRulePrompt(BaseModel):
    """Natural-language rule description / Doğal dil kural açıklaması."""

    model_config = {"frozen": True}

    id: str = Field(..., description="Prompt ID")
    bonus_name: str = Field(..., description="Bonus adı", min_length=1)
    prompt: str = Field(default="", description="Kural açıklaması")


class ParsedRule(BaseModel):
    """Result of heuristic natural-language parsing."""

    model_config = {"frozen": True}

    calculation_type: CalculationType
    formula: str
    multiplier: Optional[float] = None
    fixed_amount: Optional[float] = None
    confidence: float = Field(..., ge=0, le=1)
    reasoning: str = ""
    source_text: str = ""

    def to_bonus_rule(self, bonus_name: str, rule_id: Optional[str] = None) -> BonusRule:
        """Express the parse as a BonusRule so it flows through the normal limit path."""
        return BonusRule(
            id=rule_id or f"nl:{bonus_name}",
            bonus_name=bonus_name,
            calculation_type=self.calculation_type,
            multiplier=self.multiplier or 0.0,
            fixed_amount=self.fixed_amount or 0.0,
            max_withdrawal_formula="" if self.calculation_type == "unlimited" else self.formula,
        )


class AnalysisResult(BaseModel):
    """Outcome of checking one withdrawal / Tek çekim analiz sonucu."""

    model_config = {"frozen": True}

    withdrawal: Withdrawal
    deposit: Optional[Deposit] = None
    bonus: Optional[Bonus] = None
    bonus_rule: Optional[BonusRule] = None
    max_allowed: float = Field(default=0.0, description="İzin verilen max çekim (inf = sınırsız)")
    is_overpayment: bool = False
    overpayment_amount: float = 0.0
    processing_time_minutes: int = 0
    calculation_log: str = ""
    status: AnalysisStatus = STATUS_BONUS_YOK
    rule_source: Optional[RuleSource] = None
    parsed_rule: Optional[ParsedRule] = None
