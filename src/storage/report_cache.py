"""Report Cache Manager.

Keeps the last computed result of each report type on disk so repeated
dashboard loads skip the analysis run. One JSON file per report type,
overwritten on every put and deleted when source data changes.
"""

import json
import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"JSON'a çevrilemeyen değer: {type(value).__name__}")


class ReportCache:
    """Manages cached report results keyed by report type."""

    def __init__(self, cache_path: Path | str = None):
        if cache_path is None:
            cache_path = Path(__file__).parent.parent.parent / "data" / "reports"
        self.cache_path = Path(cache_path)
        self.cache_path.mkdir(parents=True, exist_ok=True)

    def _report_file(self, report_type: str) -> Path:
        safe_name = re.sub(r"[^A-Za-z0-9_-]", "_", report_type)
        return self.cache_path / f"{safe_name}.json"

    def get(self, report_type: str) -> Optional[dict]:
        """Cached report data, or None if missing or unreadable."""
        path = self._report_file(report_type)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f).get("report_data")
        except (json.JSONDecodeError, OSError):
            logger.warning("Rapor önbelleği okunamadı: %s", path)
            return None

    def put(self, report_type: str, data: dict) -> Path:
        """Upsert report data for this report type."""
        path = self._report_file(report_type)
        record = {
            "report_type": report_type,
            "updated_at": datetime.now().isoformat(),
            "report_data": data,
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(record, f, ensure_ascii=False, indent=2, default=_json_default)

        logger.info("Rapor önbelleğe yazıldı: %s", report_type)
        return path

    def updated_at(self, report_type: str) -> Optional[str]:
        """Timestamp of the last put, if cached."""
        path = self._report_file(report_type)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f).get("updated_at")
        except (json.JSONDecodeError, OSError):
            return None

    def invalidate(self, report_type: str) -> bool:
        """Delete cached data for a report type."""
        path = self._report_file(report_type)
        if path.exists():
            path.unlink()
            logger.info("Rapor önbelleği temizlendi: %s", report_type)
            return True
        return False

    def clear(self) -> int:
        """Delete all cached reports. Returns number of reports deleted."""
        count = 0
        for item in self.cache_path.glob("*.json"):
            item.unlink()
            count += 1
        return count
