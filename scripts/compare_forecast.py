from __future__ import annotations

import _bootstrap  # noqa: F401

import argparse
import json
from pathlib import Path

from balloontrails.forecast.pipeline import compare_sync, comparisons_to_frame
from balloontrails.ingestion.hour_client import HourBucketClient
from balloontrails.logging_config import configure_logging
from balloontrails.settings import get_config
from balloontrails.tracking.session import TrailSession


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Compare observed balloon drift against forecast winds for one hour snapshot."
    )
    parser.add_argument("--hour", type=int, default=0, help="Hour offset to sample points from (0 = latest).")
    parser.add_argument("--limit", type=int, default=50, help="Number of points to compare (capped by config).")
    parser.add_argument("--output", default=None, help="Optional CSV path for per-point results.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging()
    config = get_config()

    session = TrailSession(config=config)
    wanted = sorted({h % config.app.hours_back for h in (args.hour - 1, args.hour, args.hour + 1)})
    with HourBucketClient(config=config) as client:
        client.fill_store(session.store, wanted)

    samples = list(session.store.get_bucket(args.hour))[: max(0, args.limit)]
    points = session.forecast_points(samples)
    result = compare_sync(points, config=config)

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        comparisons_to_frame(result).to_csv(output_path, index=False)
        print(f"Saved comparisons: {output_path}")

    print(f"Points with observed vector: {len(points)}")
    print(json.dumps(result.stats.model_dump(), indent=2))


if __name__ == "__main__":
    main()
