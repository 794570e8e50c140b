"""
Settings: built-in DEFAULTS, overlaid by a YAML file, overlaid by CLI flags.

configs/defaults.yaml mirrors the layout of DEFAULTS; any key it omits keeps
its built-in value.
"""
from __future__ import annotations
import copy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from hrtempo.control.presets import find_zone_preset
from hrtempo.control.strategy import available_strategies
from hrtempo.control.types import AlgorithmConfig, HRZone

DEFAULTS: Dict[str, Any] = {
    "algorithm": {
        "min_music_bpm": 100,
        "max_music_bpm": 200,
        "responsiveness": 0.5,
        "cooldown_seconds": 5,
        "smoothing_window": 5,
        "strategy_name": "linear",
        "dwell_time_ms": 5000,
        "return_to_maintain_ms": 3000,
    },
    "zone": {
        "preset": "Zone 2 (Easy)",
        # explicit bounds override the preset when both are set
        "name": None,
        "min_bpm": None,
        "max_bpm": None,
        "color": "#4CAF50",
    },
    "session": {
        "source": "synthetic",
        "device": "Polar",
        "duration_sec": 600,
        "interval_ms": 1000,
        "outputs": "outputs/sessions",
    },
    "library": {
        "json": "library/tracks.json",
        "csv": "library/tracks.csv",
    },
}


def _safe_load_yaml(path) -> Dict[str, Any]:
    """Load YAML if present; else return {} (with a hint when it fails to parse)."""
    if path is None:
        return {}
    p = Path(path)
    if not p.exists():
        return {}
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        print(f"[WARN] Could not parse YAML at {p} ({e}). Falling back to defaults.")
        return {}
    if not isinstance(data, dict):
        print(f"[WARN] YAML at {p} is not a mapping. Falling back to defaults.")
        return {}
    return data


def merge_settings(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = merge_settings(out[k], v)
        else:
            out[k] = v
    return out


def load_settings(path: Optional[str | Path] = "configs/defaults.yaml") -> Dict[str, Any]:
    return merge_settings(DEFAULTS, _safe_load_yaml(path))


def zone_from_settings(zone_cfg: Dict[str, Any]) -> HRZone:
    lo, hi = zone_cfg.get("min_bpm"), zone_cfg.get("max_bpm")
    if lo is not None and hi is not None:
        return HRZone(
            name=zone_cfg.get("name") or f"Custom {lo:g}-{hi:g}",
            min_bpm=float(lo),
            max_bpm=float(hi),
            color=zone_cfg.get("color") or "#4CAF50",
        )
    return find_zone_preset(zone_cfg.get("preset") or "")


def config_from_settings(settings: Dict[str, Any]) -> AlgorithmConfig:
    a = settings["algorithm"]
    config = AlgorithmConfig(
        target_zone=zone_from_settings(settings.get("zone") or {}),
        min_music_bpm=float(a["min_music_bpm"]),
        max_music_bpm=float(a["max_music_bpm"]),
        responsiveness=float(a["responsiveness"]),
        cooldown_seconds=float(a["cooldown_seconds"]),
        smoothing_window=int(a["smoothing_window"]),
        strategy_name=str(a["strategy_name"]),
        dwell_time_ms=int(a["dwell_time_ms"]),
        return_to_maintain_ms=int(a["return_to_maintain_ms"]),
    )
    validate_config(config)
    return config


def validate_config(config: AlgorithmConfig) -> None:
    """Raise ValueError on the first problem found."""
    z = config.target_zone
    if not z.min_bpm < z.max_bpm:
        raise ValueError(f"Zone '{z.name}': min_bpm ({z.min_bpm}) must be below max_bpm ({z.max_bpm})")
    if not config.min_music_bpm < config.max_music_bpm:
        raise ValueError(f"min_music_bpm ({config.min_music_bpm}) must be below max_music_bpm ({config.max_music_bpm})")
    if not 0.0 <= config.responsiveness <= 1.0:
        raise ValueError(f"responsiveness must be within [0, 1] (got {config.responsiveness})")
    if config.smoothing_window < 1:
        raise ValueError(f"smoothing_window must be >= 1 (got {config.smoothing_window})")
    for name in ("cooldown_seconds", "dwell_time_ms", "return_to_maintain_ms"):
        if getattr(config, name) < 0:
            raise ValueError(f"{name} must be >= 0 (got {getattr(config, name)})")
    if config.strategy_name.lower() not in available_strategies():
        raise ValueError(f"Unknown strategy '{config.strategy_name}'. Available: {available_strategies()}")
