"""
Decoder for the Bluetooth SIG Heart Rate Measurement characteristic (0x2A37).

Byte 0 is a flags field:
  bit 0   HR value format (0 = uint8, 1 = uint16 LE)
  bit 1   sensor contact detected
  bit 2   sensor contact supported
  bit 3   energy expended present (uint16 LE, kJ)
  bit 4   RR intervals present (zero or more uint16 LE, 1/1024 s units)
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple

from hrtempo.core.formatters import round_half_up

FLAG_HR_UINT16 = 0x01
FLAG_CONTACT_DETECTED = 0x02
FLAG_CONTACT_SUPPORTED = 0x04
FLAG_ENERGY_PRESENT = 0x08
FLAG_RR_PRESENT = 0x10


class HeartRateDecodeError(ValueError):
    """Payload is shorter than its flags declare."""


@dataclass(frozen=True)
class ParsedHeartRate:
    bpm: int
    sensor_contact: bool
    rr_intervals: Tuple[int, ...]
    energy_expended: Optional[int]


def rr_to_ms(raw: int) -> int:
    return round_half_up(raw / 1024 * 1000)


def parse_heart_rate_measurement(data: bytes) -> ParsedHeartRate:
    data = bytes(data)
    if len(data) < 2:
        raise HeartRateDecodeError(f"Heart rate measurement needs at least 2 bytes, got {len(data)}")

    flags = data[0]
    contact_supported = bool(flags & FLAG_CONTACT_SUPPORTED)
    sensor_contact = contact_supported and bool(flags & FLAG_CONTACT_DETECTED)

    offset = 1
    if flags & FLAG_HR_UINT16:
        if len(data) < 3:
            raise HeartRateDecodeError("uint16 heart rate format needs at least 3 bytes")
        bpm = int.from_bytes(data[1:3], byteorder="little")
        offset = 3
    else:
        bpm = data[1]
        offset = 2

    energy: Optional[int] = None
    if flags & FLAG_ENERGY_PRESENT:
        if offset + 2 > len(data):
            raise HeartRateDecodeError("Energy expended flagged but payload ends early")
        energy = int.from_bytes(data[offset:offset + 2], byteorder="little")
        offset += 2

    rr = []
    if flags & FLAG_RR_PRESENT:
        # a trailing odd byte is ignored
        while offset + 1 < len(data):
            rr.append(rr_to_ms(int.from_bytes(data[offset:offset + 2], byteorder="little")))
            offset += 2

    return ParsedHeartRate(bpm=bpm, sensor_contact=sensor_contact,
                           rr_intervals=tuple(rr), energy_expended=energy)
