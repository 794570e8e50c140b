# hrtempo/control/presets.py
from __future__ import annotations
from typing import List, Optional

from hrtempo.control.types import HRZone, AlgorithmConfig

HR_ZONE_PRESETS: List[HRZone] = [
    HRZone(name="Zone 2 (Easy)", min_bpm=130, max_bpm=150, color="#4CAF50"),
    HRZone(name="Zone 3 (Tempo)", min_bpm=150, max_bpm=170, color="#FF9800"),
    HRZone(name="Zone 4 (Threshold)", min_bpm=170, max_bpm=185, color="#F44336"),
]


def find_zone_preset(name: str) -> HRZone:
    key = (name or "").strip().lower()
    for zone in HR_ZONE_PRESETS:
        # accept the full label or its leading "zone N"
        if zone.name.lower() == key or zone.name.lower().split(" (")[0] == key:
            return zone
    raise ValueError(f"Unknown zone preset '{name}'. Available: {[z.name for z in HR_ZONE_PRESETS]}")


def create_default_config(target_zone: Optional[HRZone] = None) -> AlgorithmConfig:
    return AlgorithmConfig(target_zone=target_zone or HR_ZONE_PRESETS[0])
