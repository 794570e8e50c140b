# hrtempo/io/types.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple

# Connection lifecycle states published on hr:connectionStateChanged
DISCONNECTED = "disconnected"
SCANNING = "scanning"
CONNECTING = "connecting"
CONNECTED = "connected"
DISCONNECTING = "disconnecting"
ERROR = "error"

CONNECTION_STATES: Tuple[str, ...] = (
    DISCONNECTED, SCANNING, CONNECTING, CONNECTED, DISCONNECTING, ERROR,
)


@dataclass(frozen=True)
class HeartRateReading:
    bpm: float
    timestamp: int                          # unix ms
    sensor_contact: bool = True
    rr_intervals: Tuple[int, ...] = ()      # ms, oldest first
    energy_expended: Optional[int] = None   # kJ, resets periodically on the device


@dataclass(frozen=True)
class BleDeviceInfo:
    id: str
    name: Optional[str]
    rssi: int = -100


@dataclass(frozen=True)
class DeviceDisconnected:
    device_id: str
    reason: str


@dataclass(frozen=True)
class HRError:
    message: str
    code: Optional[str] = None
