# ui/live.py
import argparse
import sys
import time
from pathlib import Path
from random import Random


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hrtempo.config import load_settings, config_from_settings
from hrtempo.core.event_bus import EventBus
from hrtempo.core.events import (
    ALGO_MODE, ALGO_TARGET, MUSIC_CHANGED, MUSIC_ERROR, HR_ERROR, HR_DISCONNECTED, HR_READING,
)
from hrtempo.core.formatters import format_bpm, format_duration, format_heart_rate, format_timestamp
from hrtempo.io.hr_source import create_source, available_sources
import hrtempo.io.polar_bridge  # noqa: F401  registers the "polar" source
from hrtempo.music.library import MusicLibraryManager
from hrtempo.session.exporter import write_session_exports
from hrtempo.session.pipeline import SessionPipeline


def build_parser():
    p = argparse.ArgumentParser(
        prog="hrtempo live",
        description="Live HR-driven tempo loop: heart-rate source -> target engine -> track selection -> session log."
    )
    p.add_argument("--source", choices=available_sources(), help="Heart-rate source.")
    p.add_argument("--device", type=str, help="BLE name or address (polar source).")
    p.add_argument("--replay-file", type=str, help="Time-series CSV (replay source).")
    p.add_argument("--duration", type=int, help="Session length in seconds.")
    p.add_argument("--interval-ms", type=int, help="Reading interval for the synthetic source.")
    p.add_argument("--fast", action="store_true",
                   help="Don't sleep between synthetic/replay readings (simulate as fast as possible).")

    # Synthetic source shape
    p.add_argument("--start-bpm", type=float, default=120.0)
    p.add_argument("--drift-to", type=float, default=165.0, help="HR the synthetic source drifts towards.")
    p.add_argument("--seed", type=int, default=4242)

    p.add_argument("--config", default="configs/defaults.yaml", help="Path to defaults.yaml.")
    p.add_argument("--outputs", type=str, help="Session export dir.")
    p.add_argument("--log-level", choices=["INFO", "DEBUG"], default="INFO")
    return p


def _source_kwargs(source: str, args, session_cfg):
    if source == "polar":
        return {"device": args.device or session_cfg["device"]}
    if source == "replay":
        if not args.replay_file:
            raise ValueError("--replay-file is required for the replay source.")
        return {"path": args.replay_file}
    return {
        "interval_ms": int(session_cfg["interval_ms"]),
        "start_bpm": args.start_bpm,
        "drift_to_bpm": args.drift_to,
        "seed": args.seed,
    }


def _attach_console(bus: EventBus, debug: bool):
    bus.subscribe(ALGO_MODE, lambda m: print(f"[INFO] {format_timestamp(m.timestamp)} mode {m.from_mode} -> {m.to_mode}"))
    bus.subscribe(ALGO_TARGET, lambda t: print(f"[INFO] target {format_bpm(t.target_bpm)}  urgency={t.urgency:.2f}  ({t.reason})"))
    bus.subscribe(MUSIC_CHANGED, lambda t: print(f"[INFO] now playing: {t.title} - {t.artist} ({format_bpm(t.bpm)})"))
    bus.subscribe(MUSIC_ERROR, lambda e: print(f"[WARN] {e.message}"))
    bus.subscribe(HR_ERROR, lambda e: print(f"[WARN] heart-rate source: {e.message}"))
    bus.subscribe(HR_DISCONNECTED, lambda d: print(f"[WARN] {d.device_id} disconnected: {d.reason}"))
    if debug:
        bus.subscribe(HR_READING, lambda r: print(f"[DEBUG] {format_timestamp(r.timestamp)} HR {format_heart_rate(r.bpm)}"
                                                  f" contact={r.sensor_contact} rr={list(r.rr_intervals)}"))


def main(argv=None):
    args = build_parser().parse_args(argv)

    settings = load_settings(args.config)
    session_cfg = settings["session"]
    if args.duration is not None: session_cfg["duration_sec"] = int(args.duration)
    if args.interval_ms is not None: session_cfg["interval_ms"] = int(args.interval_ms)
    if args.outputs: session_cfg["outputs"] = args.outputs
    source_name = args.source or session_cfg["source"]

    try:
        config = config_from_settings(settings)
        kwargs = _source_kwargs(source_name, args, session_cfg)
    except ValueError as e:
        print(f"[ERROR] {e}")
        sys.exit(2)

    library = MusicLibraryManager()
    try:
        n = library.load_file(Path(settings["library"]["json"]), Path(settings["library"]["csv"]))
        print(f"[INFO] Track library: {n} tracks")
    except FileNotFoundError as e:
        print(f"[WARN] {e}; targets will be logged but no tracks selected.")

    bus = EventBus()
    # engine -> player -> logger subscribe first; console printers after them
    pipeline = SessionPipeline(bus, config, library_manager=library, rng=Random(args.seed))
    source = create_source(source_name, bus, **kwargs)

    session_id = pipeline.start()
    _attach_console(bus, debug=(args.log_level == "DEBUG"))
    z = config.target_zone
    print(f"[INFO] Session {session_id}: zone {z.name} [{z.min_bpm:g}-{z.max_bpm:g}] "
          f"music [{config.min_music_bpm:g}-{config.max_music_bpm:g}] strategy={config.strategy_name}")

    print(f"[INFO] Connecting to {source_name} source ...")
    try:
        source.connect()
    except (RuntimeError, FileNotFoundError, ValueError) as e:
        print(f"[ERROR] Could not start heart-rate source: {e}")
        source.close()
        pipeline.stop("error")
        sys.exit(2)

    duration_ms = int(session_cfg["duration_sec"]) * 1000
    interval = int(session_cfg["interval_ms"]) / 1000.0
    realtime = source_name == "polar" or not args.fast
    reason = "user"
    started = time.monotonic()
    readings = 0
    try:
        while True:
            readings += source.poll()
            if source.exhausted:
                if source_name == "polar":
                    reason = "error"
                break
            if source_name == "polar":
                if (time.monotonic() - started) * 1000 >= duration_ms:
                    reason = "timeout"
                    break
            elif readings * interval * 1000 >= duration_ms:
                reason = "timeout"
                break
            if realtime:
                time.sleep(interval if source_name != "polar" else 0.2)
    except KeyboardInterrupt:
        print("\n[INFO] Stopped by user.")
    finally:
        # Cleanly stop notifications, disconnect, and shut down any background loop/thread
        source.disconnect()
        source.close()

    log = pipeline.stop(reason)
    m = log.metadata
    print("\n=== Session Summary ===")
    print(f"Duration         : {format_duration(log.duration_ms)}  ({len(log.time_series)} readings)")
    print(f"HR avg/min/max   : {m.avg_heart_rate} / {m.min_heart_rate} / {m.max_heart_rate}")
    print(f"Time in zone     : {format_duration(m.time_in_zone_ms)}  above {format_duration(m.time_above_zone_ms)}"
          f"  below {format_duration(m.time_below_zone_ms)}")
    print(f"Target changes   : {m.total_bpm_target_changes}   Tracks played: {m.total_tracks_played}")

    written = write_session_exports(log, session_cfg["outputs"])
    for fmt, path in written.items():
        print(f"[OK] Wrote {fmt}: {path}")


if __name__ == "__main__":
    main()
