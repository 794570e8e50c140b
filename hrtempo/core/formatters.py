# hrtempo/core/formatters.py
from __future__ import annotations
import math
from datetime import datetime


def round_half_up(x: float) -> int:
    """Nearest integer, halves rounded towards +inf (Python's round() is banker's)."""
    return int(math.floor(float(x) + 0.5))


def _pad(n: int) -> str:
    return f"{n:02d}"


def format_duration(ms: float) -> str:
    """MM:SS, or HH:MM:SS once past the hour."""
    total = int(ms // 1000)
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    if hours > 0:
        return f"{_pad(hours)}:{_pad(minutes)}:{_pad(seconds)}"
    return f"{_pad(minutes)}:{_pad(seconds)}"


def format_heart_rate(bpm: float) -> str:
    return f"{round_half_up(bpm)} bpm"


def format_bpm(bpm: float) -> str:
    return f"{round_half_up(bpm)} BPM"


def format_timestamp(unix_ms: int) -> str:
    return datetime.fromtimestamp(unix_ms / 1000.0).strftime("%H:%M:%S")


def now_ms() -> int:
    return int(datetime.now().timestamp() * 1000)
