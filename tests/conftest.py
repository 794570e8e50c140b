# tests/conftest.py
from pathlib import Path
import sys

import pytest

# Ensure project root is on sys.path for `import hrtempo.*`
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hrtempo.control.types import AlgorithmConfig, HRZone
from hrtempo.io.types import HeartRateReading


class FakeClock:
    """Manually advanced ms clock for components that stamp wall time."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def zone():
    return HRZone(name="Test", min_bpm=140, max_bpm=160)


@pytest.fixture
def make_config(zone):
    def _make(**overrides):
        base = dict(target_zone=zone, min_music_bpm=100, max_music_bpm=200, responsiveness=1.0,
                    cooldown_seconds=0, smoothing_window=1, dwell_time_ms=0, return_to_maintain_ms=0)
        base.update(overrides)
        return AlgorithmConfig(**base)
    return _make


def readings(bpms, start: int = 1_700_000_000_000, interval_ms: int = 1000, **kwargs):
    return [HeartRateReading(bpm=b, timestamp=start + i * interval_ms, **kwargs) for i, b in enumerate(bpms)]


@pytest.fixture
def make_readings():
    return readings
