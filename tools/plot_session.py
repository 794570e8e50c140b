#!/usr/bin/env python
"""
Plot a session time-series CSV: raw and smoothed HR against the target zone,
with the music target BPM on a second axis and mode changes shaded.

Outputs:
- <outdir>/<session>_hr.png
- <outdir>/<session>_summary.csv (per-mode time and HR stats)

Usage:
  python tools/plot_session.py outputs/20260101-090000_1767254400000-a1b2c3d_timeseries.csv
  python tools/plot_session.py outputs/20260101-090000_1767254400000-a1b2c3d_timeseries.csv --outdir outputs/plots
"""
from __future__ import annotations
import argparse
from pathlib import Path
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

REQUIRED = ("session_elapsed_ms", "hr_bpm", "smoothed_hr", "current_mode",
            "current_target_bpm", "target_zone_min", "target_zone_max")

MODE_COLORS = {"RAISE": "#f59e0b", "LOWER": "#3b82f6", "MAINTAIN": None}


def load_timeseries(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Missing: {path}")
    df = pd.read_csv(path)
    df.columns = [c.strip() for c in df.columns]
    missing = [c for c in REQUIRED if c not in df.columns]
    if missing:
        raise ValueError(f"{path.name} missing required columns: {missing}")
    df["t_min"] = df["session_elapsed_ms"] / 60000.0
    return df


def mode_summary(df: pd.DataFrame) -> pd.DataFrame:
    """Per-mode share of readings and HR stats."""
    agg = df.groupby("current_mode", observed=True).agg(
        readings=("hr_bpm", "size"),
        hr_mean=("hr_bpm", "mean"),
        hr_min=("hr_bpm", "min"),
        hr_max=("hr_bpm", "max"),
        target_mean=("current_target_bpm", "mean"),
    ).reset_index()
    agg["share"] = agg["readings"] / max(1, len(df))
    return agg


def main(argv=None):
    ap = argparse.ArgumentParser()
    ap.add_argument("timeseries", help="Time-series CSV written by a session export.")
    ap.add_argument("--outdir", default="outputs/plots")
    args = ap.parse_args(argv)

    path = Path(args.timeseries)
    outdir = Path(args.outdir)
    outdir.mkdir(parents=True, exist_ok=True)
    df = load_timeseries(path)
    stem = path.stem.removesuffix("_timeseries")

    mode_summary(df).to_csv(outdir / f"{stem}_summary.csv", index=False)

    fig, ax = plt.subplots(figsize=(11, 5), dpi=120)
    ax.fill_between(df["t_min"], df["target_zone_min"], df["target_zone_max"],
                    color="#22c55e", alpha=0.15, label="target zone")
    ax.plot(df["t_min"], df["hr_bpm"], lw=0.8, alpha=0.6, label="HR")
    ax.plot(df["t_min"], df["smoothed_hr"], lw=1.6, label="smoothed HR")

    # shade contiguous runs of RAISE/LOWER
    runs = (df["current_mode"] != df["current_mode"].shift()).cumsum()
    for _, seg in df.groupby(runs):
        color = MODE_COLORS.get(seg["current_mode"].iloc[0])
        if color:
            ax.axvspan(seg["t_min"].iloc[0], seg["t_min"].iloc[-1], color=color, alpha=0.08)

    ax.set_xlabel("minutes")
    ax.set_ylabel("heart rate (bpm)")
    ax.grid(True, linestyle=":", alpha=0.5)

    ax2 = ax.twinx()
    ax2.step(df["t_min"], df["current_target_bpm"], where="post", color="#a855f7", lw=1.2, label="music target")
    ax2.set_ylabel("music tempo (bpm)")

    lines = ax.get_legend_handles_labels()
    lines2 = ax2.get_legend_handles_labels()
    ax.legend(lines[0] + lines2[0], lines[1] + lines2[1], loc="upper left", fontsize=8)

    fig.suptitle(f"Session {stem}", y=0.98)
    fig.tight_layout()
    fig.savefig(outdir / f"{stem}_hr.png")
    plt.close(fig)

    print(f"[OK] Wrote: {outdir / f'{stem}_hr.png'}")
    print(f"[OK] Wrote: {outdir / f'{stem}_summary.csv'}")


if __name__ == "__main__":
    main()
