"""Bonus analysis pipeline.

Runs deposit matching, withdrawal analysis and the summary in order and keeps
the result in the report cache until new records arrive.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from rules.nl_parser import suggest_formula
from rules.special_logic import load_special_logics
from storage.record_store import RecordStore
from storage.report_cache import ReportCache
from validation.models import AnalysisResult

from .deposit_matcher import DepositBonusMatcher
from .report import get_analysis_summary
from .settings import get_analysis_settings, load_settings
from .withdrawal_analyzer import WithdrawalAnalyzer

logger = logging.getLogger(__name__)

REPORT_TYPE = "bonus_analysis"
PROJECT_ROOT = Path(__file__).parent.parent.parent


def _resolve_path(value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else PROJECT_ROOT / path


class BonusAnalysisService:
    """Matcher + analyzer + cached report."""

    def __init__(self, store: RecordStore, cache: ReportCache, settings: Optional[dict] = None):
        self.store = store
        self.cache = cache
        self.settings = settings if settings is not None else load_settings()

        analysis = get_analysis_settings(self.settings)
        special_logics = load_special_logics(self.settings)
        policy = analysis["rule_match_policy"]

        self.matcher = DepositBonusMatcher(store, special_logics, match_policy=policy)
        self.analyzer = WithdrawalAnalyzer(
            store,
            special_logics,
            nl_confidence_threshold=analysis["nl_confidence_threshold"],
            match_policy=policy,
        )
        self.formula_assist_threshold = analysis["formula_assist_threshold"]
        self.last_data_upload: Optional[datetime] = None

        store.add_change_listener(self._on_records_changed)

    @classmethod
    def from_settings(cls, settings: Optional[dict] = None) -> "BonusAnalysisService":
        """Build store and cache from the storage section of settings."""
        if settings is None:
            settings = load_settings()
        storage = settings.get("storage", {})
        store = RecordStore(_resolve_path(storage.get("records_path", "data/records")))
        cache = ReportCache(_resolve_path(storage.get("cache_path", "data/reports")))
        return cls(store, cache, settings)

    def suggest_formula(self, text: str) -> Optional[str]:
        """Formula suggestion for manual rule entry, None when not confident enough."""
        return suggest_formula(text, self.formula_assist_threshold)

    def _on_records_changed(self, kind: str) -> None:
        self.last_data_upload = datetime.now()
        if self.cache.invalidate(REPORT_TYPE):
            logger.info("Yeni %s kaydı, analiz önbelleği geçersiz kılındı", kind)

    def run(self) -> tuple[list[AnalysisResult], dict]:
        """Full analysis run. Returns (results, summary) and caches them."""
        linked = self.matcher.match_all()
        results = self.analyzer.analyze_all()
        stats = get_analysis_summary(results)
        stats["linked_bonuses"] = linked

        self.cache.put(REPORT_TYPE, {
            "results": [r.model_dump() for r in results],
            "stats": stats,
            "last_data_upload": self.last_data_upload,
        })
        logger.info("Bonus analizi tamamlandı: %d çekim, %d hata", stats["total"], stats["hata"])
        return results, stats

    def load_report(self, refresh: bool = False) -> tuple[list[AnalysisResult], dict]:
        """Cached report if present, otherwise a fresh run."""
        if not refresh:
            cached = self.cache.get(REPORT_TYPE)
            if cached is not None:
                logger.info("Analiz önbellekten yüklendi")
                results = [AnalysisResult(**item) for item in cached.get("results", [])]
                return results, cached.get("stats", {})

        return self.run()
