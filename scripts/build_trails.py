from __future__ import annotations

import _bootstrap  # noqa: F401

import argparse
import json
from pathlib import Path

from balloontrails.ingestion.hour_client import HourBucketClient
from balloontrails.logging_config import configure_logging
from balloontrails.settings import get_config
from balloontrails.tracking.linker import build_tracks
from balloontrails.tracking.segments import build_segments, segments_to_features, segments_to_frame
from balloontrails.tracking.session import TrailSession


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch 24h of balloon snapshots and build trail segments.")
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for segments CSV/GeoJSON (default: config.paths.processed_dir).",
    )
    parser.add_argument(
        "--mode",
        choices=["pairs", "tracks"],
        default="pairs",
        help="pairs: one segment per linked hour pair (index path); tracks: chained multi-hour tracks.",
    )
    parser.add_argument("--hours", type=int, default=None, help="Hours of history (default: config.app.hours_back).")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging()
    config = get_config()

    output_dir = Path(args.output_dir) if args.output_dir else config.paths.processed_dir
    output_dir.mkdir(parents=True, exist_ok=True)
    hours = int(args.hours) if args.hours is not None else int(config.app.hours_back)

    session = TrailSession(config=config)
    with HourBucketClient(config=config) as client:
        for hour, samples in client.fetch_all(range(hours)).items():
            if samples:
                session.add_hour_bucket(hour, samples)

    if args.mode == "tracks":
        tracks = build_tracks(session.store, config.tracking.max_km_per_hour, hours=hours)
        segments = build_segments(tracks, max_speed_ms=config.tracking.max_reasonable_speed_ms)
    else:
        segments = session.all_segments()

    frame = segments_to_frame(segments)
    csv_path = output_dir / f"segments_{args.mode}.csv"
    frame.to_csv(csv_path, index=False)
    geojson_path = output_dir / f"segments_{args.mode}.geojson"
    geojson_path.write_text(json.dumps(segments_to_features(segments)), encoding="utf-8")

    print(f"Loaded hours: {session.store.loaded_hours()}")
    print(f"Linked pairs: {session.built_pairs()}")
    print(f"Saved segments: {csv_path} ({len(frame):,} rows)")
    print(f"Saved features: {geojson_path}")


if __name__ == "__main__":
    main()
