# ui/cli.py
import argparse
import sys
from random import Random
from pathlib import Path

# --- ensure project root on sys.path (so `import hrtempo.*` works when running from /ui) ---
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
# ------------------------------------------------------------------------------------------

from hrtempo.config import load_settings, config_from_settings
from hrtempo.control.presets import HR_ZONE_PRESETS
from hrtempo.core.event_bus import EventBus
from hrtempo.core.events import ALGO_TARGET, MUSIC_CHANGED
from hrtempo.core.formatters import format_duration
from hrtempo.io.hr_source import create_source
from hrtempo.music.library import MusicLibraryManager
from hrtempo.session.exporter import (
    EXPORT_FORMATS, render_export, session_log_from_json, write_session_exports,
)
from hrtempo.session.pipeline import SessionPipeline


# --------- CLI ---------
def build_parser():
    p = argparse.ArgumentParser(
        prog="hrtempo",
        description="Offline tools: replay recorded heart rate through the tempo engine, convert session exports."
    )
    p.add_argument("--list-zones", action="store_true", help="List HR zone presets and exit.")
    p.add_argument("--list-tracks", action="store_true", help="List the track library and exit.")

    # Replay
    p.add_argument("--replay", type=str, help="Time-series CSV (timestamp,hr_bpm,...) to run through the engine.")
    p.add_argument("--zone", type=str, help="Zone preset name (e.g. 'Zone 3').")
    p.add_argument("--zone-min", type=float, help="Custom zone lower bound (with --zone-max).")
    p.add_argument("--zone-max", type=float, help="Custom zone upper bound (with --zone-min).")
    p.add_argument("--responsiveness", type=float, help="0 gentle .. 1 aggressive.")
    p.add_argument("--cooldown", type=float, help="Seconds between target changes.")
    p.add_argument("--window", type=int, help="Smoothing window (readings).")
    p.add_argument("--dwell-ms", type=int, help="Out-of-zone dwell before leaving MAINTAIN.")
    p.add_argument("--return-ms", type=int, help="In-zone time before returning to MAINTAIN.")
    p.add_argument("--strategy", type=str, help="Strategy identifier.")
    p.add_argument("--seed", type=int, default=4242, help="Track tie-break seed.")

    # Convert
    p.add_argument("--convert", type=str, help="Session JSON export to re-render.")
    p.add_argument("--format", choices=EXPORT_FORMATS, default="csv_timeseries")

    # Paths & configs
    p.add_argument("--config", default="configs/defaults.yaml", help="Path to defaults.yaml.")
    p.add_argument("--outputs", help="Override session output dir.")
    p.add_argument("--log-level", choices=["INFO", "DEBUG"], default="INFO")
    return p


def _apply_overrides(settings, args):
    a = settings["algorithm"]
    if args.responsiveness is not None: a["responsiveness"] = float(args.responsiveness)
    if args.cooldown is not None: a["cooldown_seconds"] = float(args.cooldown)
    if args.window is not None: a["smoothing_window"] = int(args.window)
    if args.dwell_ms is not None: a["dwell_time_ms"] = int(args.dwell_ms)
    if args.return_ms is not None: a["return_to_maintain_ms"] = int(args.return_ms)
    if args.strategy: a["strategy_name"] = args.strategy

    z = settings["zone"]
    if args.zone:
        z["preset"] = args.zone
        z["min_bpm"] = z["max_bpm"] = None
    if args.zone_min is not None and args.zone_max is not None:
        z["min_bpm"], z["max_bpm"] = float(args.zone_min), float(args.zone_max)

    if args.outputs: settings["session"]["outputs"] = args.outputs
    return settings


def _load_library(settings) -> MusicLibraryManager:
    lib = MusicLibraryManager()
    paths = settings["library"]
    try:
        n = lib.load_file(Path(paths["json"]), Path(paths["csv"]))
        print(f"[INFO] Track library: {n} tracks")
    except FileNotFoundError as e:
        print(f"[WARN] {e}; running without music selection.")
    return lib


def _replay(args, settings) -> int:
    config = config_from_settings(settings)
    library = _load_library(settings)
    bus = EventBus()

    pipeline = SessionPipeline(bus, config, library_manager=library, rng=Random(args.seed))
    source = create_source("replay", bus, path=args.replay, batch=1)

    if args.log_level == "DEBUG":
        bus.subscribe(ALGO_TARGET, lambda t: print(f"[DEBUG] target {t.target_bpm} BPM ({t.reason})"))
        bus.subscribe(MUSIC_CHANGED, lambda t: print(f"[DEBUG] track -> {t.title} ({t.bpm:g} BPM)"))

    session_id = pipeline.start()
    print(f"[INFO] Session {session_id}: zone {config.target_zone.name} "
          f"[{config.target_zone.min_bpm:g}-{config.target_zone.max_bpm:g}], strategy={config.strategy_name}")
    source.connect()
    while not source.exhausted:
        source.poll()
    source.disconnect()
    log = pipeline.stop("user")

    m = log.metadata
    span = (log.time_series[-1].timestamp - log.time_series[0].timestamp) if log.time_series else 0
    print("=== Replay Summary ===")
    print(f"Readings         : {len(log.time_series)}  (span {format_duration(span)})")
    print(f"HR avg/min/max   : {m.avg_heart_rate} / {m.min_heart_rate} / {m.max_heart_rate}")
    print(f"Zone time (ms)   : in={m.time_in_zone_ms} above={m.time_above_zone_ms} below={m.time_below_zone_ms}")
    print(f"Target changes   : {m.total_bpm_target_changes}   Tracks played: {m.total_tracks_played}")

    written = write_session_exports(log, settings["session"]["outputs"])
    for fmt, path in written.items():
        print(f"[OK] Wrote {fmt}: {path}")
    return 0


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = _apply_overrides(load_settings(args.config), args)

    if args.list_zones:
        print("Available zones:")
        for z in HR_ZONE_PRESETS:
            print(f"  {z.name:20s} {z.min_bpm:g}-{z.max_bpm:g} bpm")
        sys.exit(0)

    if args.list_tracks:
        lib = _load_library(settings)
        for t in sorted(lib.get_library().tracks, key=lambda t: t.bpm):
            print(f"  [{t.id}] {t.bpm:6.1f} BPM  {t.title} - {t.artist}")
        sys.exit(0)

    if args.convert:
        path = Path(args.convert)
        if not path.exists():
            print(f"[ERROR] Session export not found: {path}"); sys.exit(2)
        try:
            log = session_log_from_json(path.read_text(encoding="utf-8"))
        except (ValueError, KeyError, TypeError) as e:
            print(f"[ERROR] Not a session JSON export ({e})"); sys.exit(2)
        print(render_export(log, args.format))
        sys.exit(0)

    if not args.replay:
        print("[ERROR] Pass --replay FILE, --convert FILE, --list-zones or --list-tracks.")
        sys.exit(2)

    try:
        sys.exit(_replay(args, settings))
    except (ValueError, FileNotFoundError) as e:
        print(f"[ERROR] {e}")
        sys.exit(2)
    except RuntimeError as e:
        print(f"[ERROR] Replay failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
