"""Record store for deposits, bonuses, withdrawals and rules.

Keeps validated records in memory and, when a storage path is given,
persists them to a JSON file across sessions. Ingestion adds records
through add_records/add_from_dataframe; the matcher and analyzer write
their link and reconciliation fields through the update methods.
"""

import json
import logging
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

import pandas as pd
import yaml
from pydantic import BaseModel

from validation.models import AIRulePrompt, Bonus, BonusRule, Deposit, Withdrawal

logger = logging.getLogger(__name__)


RECORD_TYPES: dict[str, type[BaseModel]] = {
    "deposits": Deposit,
    "bonuses": Bonus,
    "withdrawals": Withdrawal,
    "bonus_rules": BonusRule,
    "ai_prompts": AIRulePrompt,
}

WITHDRAWAL_RECONCILIATION_FIELDS = {
    "deposit_id",
    "bonus_id",
    "max_allowed_withdrawal",
    "is_overpayment",
    "overpayment_amount",
    "processing_time_minutes",
}


class StoreError(RuntimeError):
    """Record store update rejected."""
    pass


class RecordStore:
    """Stores source records and their reconciliation fields."""

    def __init__(self, storage_path: Path | str = None):
        self._records: dict[str, dict[str, BaseModel]] = {kind: {} for kind in RECORD_TYPES}
        self._listeners: list[Callable[[str], None]] = []

        self.records_file = None
        if storage_path is not None:
            storage_path = Path(storage_path)
            storage_path.mkdir(parents=True, exist_ok=True)
            self.records_file = storage_path / "records.json"
            self._load()

    def _load(self) -> None:
        """Load records from disk."""
        if not self.records_file.exists():
            return
        try:
            with open(self.records_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.warning("Kayıt dosyası okunamadı, boş başlatılıyor: %s", self.records_file)
            return

        for kind, model in RECORD_TYPES.items():
            for row in data.get(kind, []):
                record = model(**row)
                self._records[kind][record.id] = record

    def _save(self) -> None:
        """Save records to disk (no-op for in-memory stores)."""
        if self.records_file is None:
            return
        data = {
            kind: [r.model_dump(mode="json") for r in records.values()]
            for kind, records in self._records.items()
        }
        try:
            with open(self.records_file, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
        except OSError as e:
            raise StoreError(f"Kayıtlar yazılamadı: {e}") from e

    def _require_kind(self, kind: str) -> type[BaseModel]:
        if kind not in RECORD_TYPES:
            raise ValueError(f"Bilinmeyen kayıt tipi: {kind}")
        return RECORD_TYPES[kind]

    # --- Ingestion ---------------------------------------------------------

    def add_change_listener(self, callback: Callable[[str], None]) -> None:
        """Register a callback fired with the record kind after ingestion."""
        self._listeners.append(callback)

    def _notify(self, kind: str) -> None:
        for callback in self._listeners:
            callback(kind)

    def add_records(self, kind: str, records: Iterable[Union[BaseModel, dict]]) -> int:
        """Add or replace records by id. Returns the number of records written."""
        model = self._require_kind(kind)
        count = 0
        for record in records:
            if not isinstance(record, model):
                record = model(**record)
            self._records[kind][record.id] = record
            count += 1

        self._save()
        logger.info("%d kayıt eklendi: %s", count, kind)
        if count:
            self._notify(kind)
        return count

    def add_from_dataframe(self, kind: str, df: pd.DataFrame) -> int:
        """Add records from an already-parsed DataFrame (NaN becomes None)."""
        self._require_kind(kind)
        if df.empty:
            return 0
        clean = df.astype(object).where(pd.notna(df), None)
        return self.add_records(kind, clean.to_dict("records"))

    def clear(self, kind: Optional[str] = None) -> None:
        """Remove all records of one kind, or everything."""
        kinds = [kind] if kind else list(RECORD_TYPES)
        for k in kinds:
            self._require_kind(k)
            self._records[k] = {}
        self._save()
        for k in kinds:
            self._notify(k)

    # --- Queries -----------------------------------------------------------

    def deposits(self, customer_id: Optional[str] = None) -> list[Deposit]:
        """Deposits ordered by deposit_date."""
        records = self._records["deposits"].values()
        if customer_id is not None:
            records = [d for d in records if d.customer_id == customer_id]
        return sorted(records, key=lambda d: d.deposit_date)

    def bonuses(self, customer_id: Optional[str] = None, unlinked_only: bool = False) -> list[Bonus]:
        """Bonuses ordered by acceptance_date."""
        records = list(self._records["bonuses"].values())
        if customer_id is not None:
            records = [b for b in records if b.customer_id == customer_id]
        if unlinked_only:
            records = [b for b in records if b.deposit_id is None]
        return sorted(records, key=lambda b: b.acceptance_date)

    def withdrawals(self) -> list[Withdrawal]:
        """Withdrawals ordered by request_date."""
        return sorted(self._records["withdrawals"].values(), key=lambda w: w.request_date)

    def bonus_rules(self) -> list[BonusRule]:
        return list(self._records["bonus_rules"].values())

    def ai_prompts(self) -> list[AIRulePrompt]:
        return list(self._records["ai_prompts"].values())

    def get_deposit(self, deposit_id: str) -> Optional[Deposit]:
        return self._records["deposits"].get(deposit_id)

    def get_bonus(self, bonus_id: str) -> Optional[Bonus]:
        return self._records["bonuses"].get(bonus_id)

    def get_withdrawal(self, withdrawal_id: str) -> Optional[Withdrawal]:
        return self._records["withdrawals"].get(withdrawal_id)

    # --- Updates -----------------------------------------------------------

    def update_bonus_deposit(self, bonus_id: str, deposit_id: str) -> Bonus:
        """Link a bonus to its funding deposit."""
        bonus = self._records["bonuses"].get(bonus_id)
        if bonus is None:
            raise StoreError(f"Bonus bulunamadı: {bonus_id}")
        if deposit_id not in self._records["deposits"]:
            raise StoreError(f"Yatırım bulunamadı: {deposit_id}")

        updated = bonus.model_copy(update={"deposit_id": deposit_id})
        self._records["bonuses"][bonus_id] = updated
        self._save()
        return updated

    def update_withdrawal(self, withdrawal_id: str, **fields) -> Withdrawal:
        """Overwrite reconciliation fields of a withdrawal."""
        withdrawal = self._records["withdrawals"].get(withdrawal_id)
        if withdrawal is None:
            raise StoreError(f"Çekim bulunamadı: {withdrawal_id}")

        unknown = set(fields) - WITHDRAWAL_RECONCILIATION_FIELDS
        if unknown:
            raise StoreError(f"Güncellenemeyen alanlar: {', '.join(sorted(unknown))}")

        updated = withdrawal.model_copy(update=fields)
        self._records["withdrawals"][withdrawal_id] = updated
        self._save()
        return updated

    def get_summary(self) -> dict:
        """Record counts per kind."""
        summary = {kind: len(records) for kind, records in self._records.items()}
        summary["unlinked_bonuses"] = sum(
            1 for b in self._records["bonuses"].values() if b.deposit_id is None
        )
        return summary


def load_bonus_rules(config_path: Path = None) -> list[BonusRule]:
    """Load operator bonus rules from YAML (config/bonus_rules.yaml)."""
    if config_path is None:
        config_path = Path(__file__).parent.parent.parent / "config" / "bonus_rules.yaml"

    config_path = Path(config_path)
    if not config_path.exists():
        logger.warning("bonus_rules.yaml bulunamadı: %s", config_path)
        return []

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    rules = []
    for idx, entry in enumerate(config.get("rules", []), start=1):
        entry = dict(entry)
        entry.setdefault("id", f"rule-{idx}")
        rules.append(BonusRule(**entry))
    return rules
