from __future__ import annotations
import asyncio
from collections import deque
from typing import Callable, Deque, Optional, Tuple
from threading import Thread

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from hrtempo.core.event_bus import EventBus
from hrtempo.core.events import (
    HR_READING, HR_CONNECTED, HR_DISCONNECTED, HR_SCAN_RESULT, HR_ERROR,
)
from hrtempo.core.formatters import now_ms
from hrtempo.io.hr_parser import parse_heart_rate_measurement, HeartRateDecodeError
from hrtempo.io.hr_source import HRSource, register_source
from hrtempo.io.types import (
    HeartRateReading, BleDeviceInfo, DeviceDisconnected, HRError,
    SCANNING, CONNECTING, CONNECTED, DISCONNECTING, DISCONNECTED, ERROR,
)

# Standard Heart Rate service / Measurement characteristic
HR_SERVICE_UUID = "0000180d-0000-1000-8000-00805f9b34fb"
HR_CHAR_UUID = "00002a37-0000-1000-8000-00805f9b34fb"
POLAR_DEFAULT_NAME = "Polar"


@register_source("polar")
class PolarHeartRateSource(HRSource):
    """
    Persistent-loop wrapper for Bleak so HR notifications don't target a closed loop.

    Notifications arrive on the private loop thread; they are decoded there and
    queued. poll() drains the queue onto the bus from the caller's thread.
    """

    def __init__(self, bus: EventBus, device: Optional[str] = None, scan_timeout: float = 5.0,
                 clock: Optional[Callable[[], int]] = None, **kwargs):
        super().__init__(bus, **kwargs)
        self.device_query = device or POLAR_DEFAULT_NAME
        self.scan_timeout = float(scan_timeout)
        self._clock = clock or now_ms
        self._pending: Deque[Tuple[str, object]] = deque()   # (topic, payload)

        self._client: Optional[BleakClient] = None
        self._device: Optional[BleDeviceInfo] = None

        # Dedicated asyncio loop & thread (lazy-started on connect)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[Thread] = None

    # ---------- loop/thread helpers ----------
    def _ensure_loop(self):
        if self._loop is not None:
            return
        self._loop = asyncio.new_event_loop()
        self._thread = Thread(target=self._loop.run_forever, daemon=True)
        self._thread.start()

    def _run(self, coro):
        fut = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return fut.result()

    # ---------- async internals ----------
    async def _a_scan(self) -> list[BleDeviceInfo]:
        found = await BleakScanner.discover(
            timeout=self.scan_timeout, service_uuids=[HR_SERVICE_UUID], return_adv=True,
        )
        return [
            BleDeviceInfo(id=d.address, name=d.name or adv.local_name, rssi=adv.rssi)
            for d, adv in found.values()
        ]

    def _on_hr_notify(self, sender, data: bytearray):
        try:
            parsed = parse_heart_rate_measurement(bytes(data))
        except HeartRateDecodeError as e:
            self._pending.append((HR_ERROR, HRError(message=str(e), code="decode")))
            return
        self._pending.append((HR_READING, HeartRateReading(
            bpm=parsed.bpm,
            timestamp=self._clock(),
            sensor_contact=parsed.sensor_contact,
            rr_intervals=parsed.rr_intervals,
            energy_expended=parsed.energy_expended,
        )))

    def _on_disconnected(self, client: BleakClient):
        device_id = self._device.id if self._device else client.address
        self._pending.append((HR_DISCONNECTED, DeviceDisconnected(device_id=device_id, reason="Device disconnected")))

    async def _a_connect(self, address: str):
        self._client = BleakClient(address, disconnected_callback=self._on_disconnected)
        await self._client.connect()
        await self._client.start_notify(HR_CHAR_UUID, self._on_hr_notify)

    async def _a_disconnect(self):
        if self._client is None:
            return
        client, self._client = self._client, None
        if client.is_connected:
            await client.stop_notify(HR_CHAR_UUID)
            await client.disconnect()

    # ---------- public sync API ----------
    def scan(self) -> list[BleDeviceInfo]:
        """Discover HR-service devices; each is published on hr:scanResult."""
        self._ensure_loop()
        self._set_state(SCANNING)
        try:
            devices = self._run(self._a_scan())
        except BleakError as e:
            self._set_state(ERROR)
            self.bus.publish(HR_ERROR, HRError(message=str(e), code="scan"))
            raise
        for d in devices:
            self.bus.publish(HR_SCAN_RESULT, d)
        self._set_state(DISCONNECTED)
        return devices

    def _resolve(self) -> Optional[BleDeviceInfo]:
        dq = (self.device_query or "").strip()
        if ":" in dq or dq.count("-") >= 5:
            return BleDeviceInfo(id=dq, name=None)  # looks like an address
        dq_lower = dq.lower()
        for d in self.scan():
            if dq_lower in (d.name or "").lower():
                return d
        return None

    def connect(self) -> None:
        if self._state == CONNECTED:
            return
        self._ensure_loop()
        try:
            device = self._resolve()
        except BleakError as e:
            # scan() already published hr:error
            raise RuntimeError(f"Heart rate scan failed: {e}") from e
        if device is None:
            self._set_state(ERROR)
            msg = f"Heart rate device '{self.device_query}' not found. Wake it and retry."
            self.bus.publish(HR_ERROR, HRError(message=msg, code="not_found"))
            raise RuntimeError(msg)
        self._set_state(CONNECTING)
        try:
            self._run(self._a_connect(device.id))
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            self._set_state(ERROR)
            self.bus.publish(HR_ERROR, HRError(message=str(e), code="connect"))
            raise RuntimeError(f"Could not connect to {device.id}: {e}") from e
        self._device = device
        self._set_state(CONNECTED)
        self.bus.publish(HR_CONNECTED, device)

    def poll(self) -> int:
        readings = 0
        while self._pending:
            topic, payload = self._pending.popleft()
            if topic == HR_DISCONNECTED and self._state == CONNECTED:
                self._set_state(DISCONNECTED)
            self.bus.publish(topic, payload)
            if topic == HR_READING:
                readings += 1
        return readings

    @property
    def exhausted(self) -> bool:
        # link dropped after a successful connect
        return self._device is not None and self._state == DISCONNECTED

    def disconnect(self):
        if self._loop is None or self._client is None:
            return
        self._set_state(DISCONNECTING)
        try:
            self._run(self._a_disconnect())
        except BleakError as e:
            print(f"[WARN] BLE disconnect failed ({e}); treating device as gone.")
        self._set_state(DISCONNECTED)
        self.poll()   # flush anything queued before the link dropped

    def close(self):
        """Fully stop the background loop/thread. Call after disconnect()."""
        if self._loop is None:
            return
        self.disconnect()
        try:
            self._loop.call_soon_threadsafe(self._loop.stop)
            if self._thread:
                self._thread.join(timeout=2.0)
        finally:
            self._thread = None
            self._loop = None
