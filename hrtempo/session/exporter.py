"""
Session log exports.

Three pure renderings of a stopped SessionLog:
  - time-series CSV: one row per heart-rate reading (15 fixed columns)
  - events CSV: one row per log entry, entry data as compact JSON
  - JSON: the whole log

session_log_from_json() reads the JSON rendering back.
"""
from __future__ import annotations
import csv
import io
import json
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from hrtempo.session.types import LogEntry, SessionLog, SessionMetadata, TimeSeriesRow

TIME_SERIES_COLUMNS: List[str] = [
    "timestamp",
    "session_elapsed_ms",
    "hr_bpm",
    "sensor_contact",
    "rr_intervals",
    "smoothed_hr",
    "current_mode",
    "consecutive_out_of_zone_ms",
    "current_target_bpm",
    "target_zone_min",
    "target_zone_max",
    "current_track_id",
    "current_track_title",
    "current_track_bpm",
    "current_track_artist",
]

EVENT_COLUMNS: List[str] = ["timestamp", "session_elapsed_ms", "type", "data"]

EXPORT_FORMATS = ("csv_timeseries", "csv_events", "json")


def _num(x: Any) -> str:
    """Integral floats without the trailing .0; empty for None."""
    if x is None:
        return ""
    if isinstance(x, float) and x.is_integer():
        return str(int(x))
    return str(x)

def _bool(x: bool) -> str:
    return "true" if x else "false"

def _render(header: List[str], rows: List[List[str]]) -> str:
    # QUOTE_MINIMAL quotes only fields holding a comma, quote or newline,
    # doubling embedded quotes
    buf = io.StringIO()
    w = csv.writer(buf, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    w.writerow(header)
    w.writerows(rows)
    return buf.getvalue().rstrip("\n")


def _time_series_fields(row: TimeSeriesRow) -> List[str]:
    return [
        _num(row.timestamp),
        _num(row.session_elapsed_ms),
        _num(row.hr_bpm),
        _bool(row.sensor_contact),
        ";".join(str(rr) for rr in row.rr_intervals),
        f"{row.smoothed_hr:.1f}",
        row.current_mode,
        _num(row.consecutive_out_of_zone_ms),
        _num(row.current_target_bpm),
        _num(row.target_zone_min),
        _num(row.target_zone_max),
        row.current_track_id or "",
        row.current_track_title or "",
        _num(row.current_track_bpm),
        row.current_track_artist or "",
    ]

def export_time_series_csv(session: SessionLog) -> str:
    return _render(TIME_SERIES_COLUMNS, [_time_series_fields(r) for r in session.time_series])


def export_events_csv(session: SessionLog) -> str:
    rows = [
        [_num(e.timestamp), _num(e.session_elapsed_ms), e.type,
         json.dumps(e.data, separators=(",", ":"))]
        for e in session.entries
    ]
    return _render(EVENT_COLUMNS, rows)


def export_json(session: SessionLog) -> str:
    return json.dumps(asdict(session), indent=2)


def session_log_from_json(text: str) -> SessionLog:
    d: Dict[str, Any] = json.loads(text)
    rows = []
    for r in d["time_series"]:
        r = dict(r)
        r["rr_intervals"] = tuple(r.get("rr_intervals") or ())
        rows.append(TimeSeriesRow(**r))
    return SessionLog(
        session_id=d["session_id"],
        start_time=d["start_time"],
        end_time=d.get("end_time"),
        duration_ms=d["duration_ms"],
        config=d.get("config") or {},
        device_name=d.get("device_name"),
        entries=tuple(LogEntry(**e) for e in d["entries"]),
        time_series=tuple(rows),
        metadata=SessionMetadata(**d["metadata"]),
    )


def render_export(session: SessionLog, fmt: str) -> str:
    if fmt == "csv_timeseries":
        return export_time_series_csv(session)
    if fmt == "csv_events":
        return export_events_csv(session)
    if fmt == "json":
        return export_json(session)
    raise ValueError(f"Unknown export format '{fmt}'. Available: {list(EXPORT_FORMATS)}")


def write_session_exports(session: SessionLog, out_dir: str | Path) -> Dict[str, Path]:
    """Write all three exports under out_dir. Returns {format: path}."""
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    stamp = datetime.fromtimestamp(session.start_time / 1000.0).strftime("%Y%m%d-%H%M%S")
    names = {
        "csv_timeseries": f"{stamp}_{session.session_id}_timeseries.csv",
        "csv_events": f"{stamp}_{session.session_id}_events.csv",
        "json": f"{stamp}_{session.session_id}.json",
    }
    written: Dict[str, Path] = {}
    for fmt, name in names.items():
        path = out / name
        path.write_text(render_export(session, fmt), encoding="utf-8")
        written[fmt] = path
    return written
