"""Storage module for source records and cached reports."""

from .record_store import RecordStore, StoreError, load_bonus_rules
from .report_cache import ReportCache

__all__ = ["RecordStore", "StoreError", "load_bonus_rules", "ReportCache"]
