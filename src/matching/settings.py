"""Application settings.

Loads config/settings.yaml; falls back to built-in defaults when the file
is missing so the engine still runs in a bare checkout.
"""

import copy
import logging
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


DEFAULT_SETTINGS = {
    "analysis": {
        "nl_confidence_threshold": 0.7,
        "formula_assist_threshold": 0.5,
        "rule_match_policy": "longest",
    },
    "special_bonuses": [
        {"name": "Tg ve Mobil app 500 DENEME Bonusu", "deposit_timing": "after"},
    ],
    "storage": {
        "cache_path": "data/reports",
        "records_path": "data/records",
    },
}


def _merge(base: dict, override: dict) -> dict:
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(settings_path: Path = None) -> dict:
    """Load application settings from YAML file, merged over the defaults."""
    if settings_path is None:
        config_paths = [
            Path(__file__).parent.parent.parent / "config" / "settings.yaml",
            Path("config/settings.yaml"),
        ]
        settings_path = next((p for p in config_paths if p.exists()), None)

    if settings_path is None or not Path(settings_path).exists():
        logger.warning("settings.yaml bulunamadı, varsayılan ayarlar kullanılıyor")
        return copy.deepcopy(DEFAULT_SETTINGS)

    with open(settings_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    return _merge(DEFAULT_SETTINGS, config)


def get_analysis_settings(settings: dict = None) -> dict:
    """Analysis section with defaults filled in."""
    if settings is None:
        settings = load_settings()
    return _merge(DEFAULT_SETTINGS["analysis"], settings.get("analysis", {}) or {})
