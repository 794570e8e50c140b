# hrtempo/control/types.py
from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple

from hrtempo.io.types import HeartRateReading

# State machine modes
MAINTAIN = "MAINTAIN"
RAISE = "RAISE"
LOWER = "LOWER"

# Zone classification of the smoothed HR
BELOW = "below"
IN_ZONE = "in_zone"
ABOVE = "above"


@dataclass(frozen=True)
class HRZone:
    name: str
    min_bpm: float
    max_bpm: float
    color: str = "#4CAF50"

    @property
    def mid(self) -> float:
        return (self.min_bpm + self.max_bpm) / 2

    @property
    def width(self) -> float:
        return self.max_bpm - self.min_bpm


@dataclass(frozen=True)
class AlgorithmConfig:
    target_zone: HRZone
    min_music_bpm: float = 100
    max_music_bpm: float = 200
    responsiveness: float = 0.5     # 0.0 gentle .. 1.0 aggressive
    cooldown_seconds: float = 5
    smoothing_window: int = 5       # readings averaged for smoothed HR
    strategy_name: str = "linear"
    dwell_time_ms: int = 5000       # continuous out-of-zone time before leaving MAINTAIN
    return_to_maintain_ms: int = 3000

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "AlgorithmConfig":
        fields = dict(d)
        zone = fields.pop("target_zone")
        if not isinstance(zone, HRZone):
            zone = HRZone(**zone)
        return cls(target_zone=zone, **fields)


@dataclass(frozen=True)
class AlgorithmState:
    current_mode: str
    mode_entered_at: int
    smoothed_hr: float
    hr_history: Tuple[HeartRateReading, ...]
    consecutive_out_of_zone_ms: float
    current_target_bpm: float
    ms_since_last_target_change: float


@dataclass(frozen=True)
class BPMTarget:
    target_bpm: int
    triggering_hr: float
    timestamp: int
    reason: str
    urgency: float      # 0..1, diagnostic only
    mode: str


@dataclass(frozen=True)
class ModeChange:
    from_mode: str
    to_mode: str
    timestamp: int


@dataclass(frozen=True)
class StrategyResult:
    next_state: AlgorithmState
    target: Optional[BPMTarget] = None
