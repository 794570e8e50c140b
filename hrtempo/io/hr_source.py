from __future__ import annotations
import csv
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Type, List, Optional

import numpy as np

from hrtempo.core.event_bus import EventBus
from hrtempo.core.events import HR_READING, HR_CONNECTION_STATE, HR_CONNECTED, HR_DISCONNECTED
from hrtempo.core.formatters import now_ms
from hrtempo.io.types import (
    HeartRateReading, BleDeviceInfo, DeviceDisconnected, CONNECTED, DISCONNECTED, CONNECTION_STATES,
)


class HRSource(ABC):
    """
    Unified interface all HR sources implement.

    Sources publish onto the bus only from poll(), i.e. on the caller's thread,
    whatever thread the underlying transport delivers on.
    """

    def __init__(self, bus: EventBus, **kwargs) -> None:
        self.bus = bus
        self._kwargs = kwargs
        self._state = DISCONNECTED

    @property
    def connection_state(self) -> str:
        return self._state

    def _set_state(self, state: str) -> None:
        if state not in CONNECTION_STATES:
            raise ValueError(f"Unknown connection state '{state}'. Expected one of {list(CONNECTION_STATES)}")
        self._state = state
        self.bus.publish(HR_CONNECTION_STATE, state)

    @abstractmethod
    def connect(self) -> None:
        """Open connections; publishes connection state transitions."""
        ...

    @abstractmethod
    def poll(self) -> int:
        """Publish whatever is pending. Returns the number of readings published."""
        ...

    def disconnect(self) -> None:
        """Optional cleanup."""
        ...

    def close(self) -> None:
        """Optional cleanup."""
        ...

    @property
    def exhausted(self) -> bool:
        """True when the source will never produce another reading."""
        return False


_SOURCE_REGISTRY: Dict[str, Type[HRSource]] = {}

def register_source(name: str):
    """Decorator to register a concrete HRSource under a CLI name."""
    def deco(cls: Type[HRSource]) -> Type[HRSource]:
        _SOURCE_REGISTRY[name.lower()] = cls
        return cls
    return deco

def create_source(name: str, bus: EventBus, **kwargs) -> HRSource:
    key = (name or "").lower()
    if key not in _SOURCE_REGISTRY:
        raise ValueError(f"Unknown HR source '{name}'. Available: {sorted(_SOURCE_REGISTRY.keys())}")
    return _SOURCE_REGISTRY[key](bus, **kwargs)

def available_sources() -> List[str]:
    return sorted(_SOURCE_REGISTRY.keys())


@register_source("synthetic")
class SyntheticHRSource(HRSource):
    """
    Simulated strap: HR relaxes towards `drift_to_bpm` with Gaussian noise.
    One reading per poll(), timestamps advance by `interval_ms` of virtual time.
    """

    def __init__(self, bus: EventBus, start_bpm: float = 120.0, drift_to_bpm: float = 165.0,
                 time_constant_sec: float = 60.0, noise_bpm: float = 2.0, interval_ms: int = 1000,
                 seed: int = 4242, start_ms: Optional[int] = None,
                 clock: Optional[Callable[[], int]] = None, **kwargs) -> None:
        super().__init__(bus, **kwargs)
        self.interval_ms = int(interval_ms)
        self.drift_to_bpm = float(drift_to_bpm)
        self.time_constant_sec = max(1e-3, float(time_constant_sec))
        self.noise_bpm = float(noise_bpm)
        self._rng = np.random.default_rng(seed)
        self._bpm = float(start_bpm)
        self._clock = clock or now_ms
        self._start_ms = start_ms
        self._n = 0

    def connect(self) -> None:
        if self._start_ms is None:
            self._start_ms = self._clock()
        self._set_state(CONNECTED)
        self.bus.publish(HR_CONNECTED, BleDeviceInfo(id="synthetic", name="Synthetic HR", rssi=0))

    def poll(self) -> int:
        if self._state != CONNECTED:
            return 0
        dt = self.interval_ms / 1000.0
        alpha = 1.0 - np.exp(-dt / self.time_constant_sec)
        self._bpm += alpha * (self.drift_to_bpm - self._bpm)
        bpm = int(np.clip(np.rint(self._bpm + self._rng.normal(0.0, self.noise_bpm)), 30, 240))
        rr_ms = int(np.rint(60000.0 / bpm))
        reading = HeartRateReading(
            bpm=bpm,
            timestamp=int(self._start_ms + self._n * self.interval_ms),
            sensor_contact=True,
            rr_intervals=(rr_ms,),
        )
        self._n += 1
        self.bus.publish(HR_READING, reading)
        return 1

    def disconnect(self) -> None:
        if self._state == CONNECTED:
            self._set_state(DISCONNECTED)
            self.bus.publish(HR_DISCONNECTED, DeviceDisconnected(device_id="synthetic", reason="stopped"))


def _parse_bool(raw: Optional[str]) -> bool:
    return (raw or "true").strip().lower() not in ("false", "0", "no", "")

def _parse_rr(raw: Optional[str]) -> tuple:
    parts = [p for p in (raw or "").split(";") if p.strip()]
    return tuple(int(float(p)) for p in parts)


@register_source("replay")
class ReplayHRSource(HRSource):
    """
    Replays readings from a time-series CSV export (needs `timestamp` and
    `hr_bpm`; `sensor_contact` and `rr_intervals` are optional).
    `batch` readings are published per poll().
    """

    def __init__(self, bus: EventBus, path: str | Path = "", batch: int = 1, **kwargs) -> None:
        super().__init__(bus, **kwargs)
        self.path = Path(path)
        self.batch = max(1, int(batch))
        self._readings: List[HeartRateReading] = []
        self._cursor = 0

    def _load(self) -> List[HeartRateReading]:
        if not self.path.exists():
            raise FileNotFoundError(f"Replay file not found: {self.path}")
        with self.path.open("r", encoding="utf-8-sig", newline="") as f:
            rdr = csv.DictReader(f)
            cols = set(rdr.fieldnames or [])
            missing = {"timestamp", "hr_bpm"} - cols
            if missing:
                raise ValueError(f"{self.path} is missing required columns: {sorted(missing)}")
            out = []
            for row in rdr:
                out.append(HeartRateReading(
                    bpm=float(row["hr_bpm"]),
                    timestamp=int(float(row["timestamp"])),
                    sensor_contact=_parse_bool(row.get("sensor_contact")),
                    rr_intervals=_parse_rr(row.get("rr_intervals")),
                ))
        return out

    def connect(self) -> None:
        self._readings = self._load()
        self._cursor = 0
        self._set_state(CONNECTED)
        self.bus.publish(HR_CONNECTED, BleDeviceInfo(id=str(self.path), name=self.path.name, rssi=0))

    def poll(self) -> int:
        if self._state != CONNECTED:
            return 0
        chunk = self._readings[self._cursor:self._cursor + self.batch]
        self._cursor += len(chunk)
        for reading in chunk:
            self.bus.publish(HR_READING, reading)
        return len(chunk)

    @property
    def exhausted(self) -> bool:
        return self._state == CONNECTED and self._cursor >= len(self._readings)

    def disconnect(self) -> None:
        if self._state == CONNECTED:
            reason = "end of file" if self.exhausted else "stopped"
            self._set_state(DISCONNECTED)
            self.bus.publish(HR_DISCONNECTED, DeviceDisconnected(device_id=str(self.path), reason=reason))
